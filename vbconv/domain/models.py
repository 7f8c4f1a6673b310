import re
from enum import Enum
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

SOFTWARE_ENCODER = "libx264"

_HEVC_PATTERN = re.compile(r"hevc|x265", re.IGNORECASE)


class StreamKind(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"
    OTHER = "other"


class ConversionMode(str, Enum):
    COPY = "copy"
    TRANSCODE = "transcode"


class EncoderCapability(str, Enum):
    """Encoder class available in the current environment."""
    SOFTWARE = "software"
    NVIDIA = "nvidia-hw"
    INTEL = "intel-hw"
    AMD = "amd-hw"
    VAAPI = "vaapi-hw"

    @property
    def encoder(self) -> str:
        return _CAPABILITY_ENCODERS[self]

    @property
    def is_hardware(self) -> bool:
        return self is not EncoderCapability.SOFTWARE

    @classmethod
    def parse(cls, value: str) -> "EncoderCapability":
        """Accepts either a capability value ('nvidia-hw') or an encoder name ('h264_nvenc')."""
        needle = value.strip().lower()
        for capability in cls:
            if needle in (capability.value, capability.encoder):
                return capability
        raise ValueError(f"Unknown encoder '{value}'")


_CAPABILITY_ENCODERS = {
    EncoderCapability.SOFTWARE: SOFTWARE_ENCODER,
    EncoderCapability.NVIDIA: "h264_nvenc",
    EncoderCapability.INTEL: "h264_qsv",
    EncoderCapability.AMD: "h264_amf",
    EncoderCapability.VAAPI: "h264_vaapi",
}


class StreamInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int = 0
    kind: StreamKind
    codec_name: str = ""
    pix_fmt: Optional[str] = None
    bits_per_raw_sample: Optional[int] = None
    bit_rate: Optional[int] = None

    @property
    def is_hevc(self) -> bool:
        return bool(_HEVC_PATTERN.search(self.codec_name))

    @property
    def is_high_bit_depth(self) -> bool:
        bits = self.bits_per_raw_sample or 0
        return bits >= 10 or "10" in (self.pix_fmt or "")


class StreamMetadata(BaseModel):
    """Probe result for a single input file."""
    model_config = ConfigDict(frozen=True)

    path: Path
    format_name: str = ""
    duration: Optional[float] = None
    bit_rate: Optional[int] = None
    streams: List[StreamInfo] = Field(default_factory=list)

    @property
    def video_stream(self) -> Optional[StreamInfo]:
        return next((s for s in self.streams if s.kind == StreamKind.VIDEO), None)

    @property
    def audio_stream(self) -> Optional[StreamInfo]:
        return next((s for s in self.streams if s.kind == StreamKind.AUDIO), None)

    @property
    def video_bitrate(self) -> int:
        """Video stream bitrate in bps, falling back to the container bitrate; 0 if unknown."""
        video = self.video_stream
        if video and video.bit_rate:
            return video.bit_rate
        return self.bit_rate or 0


class EncodeOptions(BaseModel):
    """Ordered option set handed to ffmpeg for one attempt."""
    model_config = ConfigDict(frozen=True)

    input_options: List[str] = Field(default_factory=list)
    video_codec: str
    audio_codec: Optional[str] = None
    output_options: List[str] = Field(default_factory=list)

    @property
    def is_copy(self) -> bool:
        return self.video_codec == "copy"

    @property
    def is_hardware(self) -> bool:
        return not self.is_copy and self.video_codec != SOFTWARE_ENCODER

    def to_args(self) -> List[str]:
        if self.is_copy:
            args = ["-c", "copy"]
        else:
            args = ["-c:v", self.video_codec]
            if self.audio_codec:
                args += ["-c:a", self.audio_codec]
        return args + list(self.output_options)


class ConversionPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: ConversionMode
    primary_options: EncodeOptions
    fallback_options: Optional[EncodeOptions] = None
    output_path: Path
    notices: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_fallback(self) -> "ConversionPlan":
        needs_fallback = self.mode == ConversionMode.TRANSCODE and self.primary_options.is_hardware
        if needs_fallback and self.fallback_options is None:
            raise ValueError("Hardware transcode plans require software fallback options")
        if not needs_fallback and self.fallback_options is not None:
            raise ValueError("Fallback options are only allowed for hardware transcode plans")
        if self.fallback_options is not None and self.fallback_options.is_hardware:
            raise ValueError("Fallback options must use the software encoder")
        return self


class JobResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    file_path: Path
    success: bool
    output_path: Optional[Path] = None
    error_message: Optional[str] = None
    metadata: Optional[StreamMetadata] = None
    mode: Optional[ConversionMode] = None
    attempts: int = 0
    used_fallback: bool = False
