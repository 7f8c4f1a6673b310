"""Remux-vs-transcode decision and ffmpeg option planning.

Transcode plans come from a table keyed by (capability, is_hevc, is_high_bit).
Only NVENC branches on the source: 10-bit HEVC prefers hevc_nvenc when the
encoder is actually listed, and any HEVC source gets CUDA decode when
hevc_cuvid is available. Every hardware plan carries a libx264 fallback.
"""
import logging
from itertools import product
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Tuple
from vbconv.config.models import EncodingConfig
from vbconv.domain.models import (
    ConversionMode, ConversionPlan, EncodeOptions, EncoderCapability, SOFTWARE_ENCODER, StreamMetadata,
)
from vbconv.pipeline.capabilities import CapabilityDirectory

logger = logging.getLogger(__name__)

REMUX_VIDEO_CODECS = ("h264",)
REMUX_AUDIO_CODECS = ("aac", "mp3")

MAP_ARGS = ["-map", "0:v:0", "-map", "0:a:0?"]
STRIP_ARGS = ["-map_metadata", "-1", "-map_chapters", "-1"]
FASTSTART_ARGS = ["-movflags", "+faststart"]

CUDA_DECODE_ARGS = ["-hwaccel", "cuda", "-hwaccel_output_format", "cuda"]


class PlanTemplate(NamedTuple):
    encoder: str
    family: EncoderCapability
    # Set when `encoder` must be confirmed by the directory; used if it is missing
    alternate: Optional[str] = None
    hw_decoder: Optional[str] = None


PlanKey = Tuple[EncoderCapability, bool, bool]


def _build_plan_table() -> Dict[PlanKey, PlanTemplate]:
    table = {
        (capability, is_hevc, is_high_bit): PlanTemplate(capability.encoder, capability)
        for capability, is_hevc, is_high_bit in product(EncoderCapability, (False, True), (False, True))
    }
    nvidia = EncoderCapability.NVIDIA
    table[(nvidia, True, False)] = PlanTemplate("h264_nvenc", nvidia, hw_decoder="hevc_cuvid")
    table[(nvidia, True, True)] = PlanTemplate(
        "hevc_nvenc", nvidia, alternate="h264_nvenc", hw_decoder="hevc_cuvid"
    )
    return table


PLAN_TABLE = _build_plan_table()


def can_remux(metadata: StreamMetadata) -> bool:
    """H.264 video with AAC/MP3 audio (or no audio) can be copied into MP4 as-is."""
    video = metadata.video_stream
    if video is None:
        return False
    vcodec = video.codec_name.lower()
    if not any(c in vcodec for c in REMUX_VIDEO_CODECS):
        return False
    audio = metadata.audio_stream
    if audio is None or not audio.codec_name:
        return True
    acodec = audio.codec_name.lower()
    return any(c in acodec for c in REMUX_AUDIO_CODECS)


def resolve_output_path(input_path: Path, extension: str = ".mp4") -> Path:
    """<stem><ext>, or <stem>(N)<ext> with the first N that does not exist yet.

    Not atomic: another writer can create the candidate between the check and
    ffmpeg opening it.
    """
    directory = input_path.parent
    stem = input_path.stem
    candidate = directory / f"{stem}{extension}"
    counter = 1
    while candidate.exists():
        candidate = directory / f"{stem}({counter}){extension}"
        counter += 1
    return candidate


class PlacementPlanner:
    def __init__(
        self,
        directory: CapabilityDirectory,
        encoding: Optional[EncodingConfig] = None,
        output_extension: str = ".mp4",
    ):
        self.directory = directory
        self.encoding = encoding or EncodingConfig()
        self.output_extension = output_extension

    def _common_transcode_args(self) -> List[str]:
        return [
            "-max_muxing_queue_size", str(self.encoding.max_muxing_queue_size),
            *MAP_ARGS, *STRIP_ARGS, *FASTSTART_ARGS,
        ]

    def _rate_args(self, metadata: StreamMetadata) -> List[str]:
        # Match the source bitrate when known, otherwise a fixed quality target
        kbps = int(metadata.video_bitrate / 1000 + 0.5)
        if kbps > 0:
            return ["-b:v", f"{kbps}k"]
        return ["-crf", str(self.encoding.software_crf)]

    def _family_args(self, family: EncoderCapability, metadata: StreamMetadata) -> List[str]:
        enc = self.encoding
        if family == EncoderCapability.NVIDIA:
            return ["-preset", enc.nvenc_preset, "-rc", "vbr", "-cq", str(enc.nvenc_cq)]
        if family == EncoderCapability.INTEL:
            return ["-global_quality", str(enc.qsv_global_quality)]
        if family in (EncoderCapability.AMD, EncoderCapability.VAAPI):
            return ["-b:v", "0"]
        return [
            "-preset", enc.software_preset,
            "-threads", "0",
            "-thread_type", "frame",
            "-tune", "fastdecode",
            *self._rate_args(metadata),
        ]

    def software_options(self, metadata: StreamMetadata) -> EncodeOptions:
        return EncodeOptions(
            video_codec=SOFTWARE_ENCODER,
            audio_codec="aac",
            output_options=self._family_args(EncoderCapability.SOFTWARE, metadata) + self._common_transcode_args(),
        )

    def copy_options(self) -> EncodeOptions:
        return EncodeOptions(video_codec="copy", output_options=[*MAP_ARGS, *STRIP_ARGS, *FASTSTART_ARGS])

    def plan(self, metadata: StreamMetadata, capability: EncoderCapability) -> ConversionPlan:
        output_path = resolve_output_path(metadata.path, self.output_extension)

        if can_remux(metadata):
            logger.info(f"PLAN: {metadata.path.name} mode=copy -> {output_path.name}")
            return ConversionPlan(
                mode=ConversionMode.COPY,
                primary_options=self.copy_options(),
                output_path=output_path,
            )

        video = metadata.video_stream
        is_hevc = bool(video and video.is_hevc)
        is_high_bit = bool(video and video.is_high_bit_depth)
        template = PLAN_TABLE[(capability, is_hevc, is_high_bit)]

        notices: List[str] = []
        encoder = template.encoder
        if template.alternate:
            if self.directory.has_encoder(encoder):
                notices.append(f"Detected 10-bit HEVC source: trying {encoder} to preserve bit depth and speed.")
            else:
                notices.append(
                    f"10-bit HEVC source but {encoder} not available in ffmpeg; will try "
                    f"{template.alternate} and then fall back to {SOFTWARE_ENCODER} on failure."
                )
                encoder = template.alternate

        input_options: List[str] = []
        if template.hw_decoder and self.directory.detect_decoder(template.hw_decoder):
            input_options = [*CUDA_DECODE_ARGS, "-c:v", template.hw_decoder]

        if template.family == EncoderCapability.SOFTWARE:
            primary = self.software_options(metadata)
        else:
            primary = EncodeOptions(
                input_options=input_options,
                video_codec=encoder,
                audio_codec="aac",
                output_options=self._family_args(template.family, metadata) + self._common_transcode_args(),
            )
        fallback = self.software_options(metadata) if primary.is_hardware else None

        logger.info(
            f"PLAN: {metadata.path.name} mode=transcode encoder={primary.video_codec} "
            f"hwdec={bool(input_options)} fallback={fallback is not None} -> {output_path.name}"
        )
        return ConversionPlan(
            mode=ConversionMode.TRANSCODE,
            primary_options=primary,
            fallback_options=fallback,
            output_path=output_path,
            notices=notices,
        )
