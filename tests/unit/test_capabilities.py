import threading
import time
import pytest
from vbconv.domain.models import EncoderCapability
from vbconv.pipeline.capabilities import CapabilityDirectory


@pytest.mark.parametrize("encoders,expected", [
    ({"libx264"}, EncoderCapability.SOFTWARE),
    ({"libx264", "h264_vaapi"}, EncoderCapability.VAAPI),
    ({"h264_amf", "h264_vaapi"}, EncoderCapability.AMD),
    ({"h264_qsv", "h264_amf", "h264_vaapi"}, EncoderCapability.INTEL),
    ({"h264_vaapi", "h264_qsv", "h264_nvenc"}, EncoderCapability.NVIDIA),
])
def test_hardware_priority(scripted_engine, encoders, expected):
    directory = CapabilityDirectory(scripted_engine(encoders=encoders))
    assert directory.detect_encoder() == expected


def test_detection_is_cached(scripted_engine):
    engine = scripted_engine(encoders={"h264_nvenc", "hevc_nvenc"})
    directory = CapabilityDirectory(engine)

    assert directory.detect_encoder() == EncoderCapability.NVIDIA
    assert directory.detect_encoder() == EncoderCapability.NVIDIA
    assert directory.has_encoder("hevc_nvenc")
    assert engine.list_calls == 1


def test_forced_encoder_skips_discovery(scripted_engine):
    engine = scripted_engine(encoders={"h264_nvenc"})
    directory = CapabilityDirectory(engine, force_encoder="h264_qsv")

    assert directory.detect_encoder() == EncoderCapability.INTEL
    assert engine.list_calls == 0


def test_forced_capability_value(scripted_engine):
    directory = CapabilityDirectory(scripted_engine(encoders={"h264_nvenc"}), force_encoder="software")
    assert directory.detect_encoder() == EncoderCapability.SOFTWARE


def test_unknown_forced_encoder_is_ignored(scripted_engine):
    directory = CapabilityDirectory(scripted_engine(encoders={"h264_amf"}), force_encoder="x265_magic")
    assert directory.detect_encoder() == EncoderCapability.AMD


def test_listing_failure_degrades_to_software(scripted_engine):
    directory = CapabilityDirectory(scripted_engine(fail_listing=True))

    assert directory.detect_encoder() == EncoderCapability.SOFTWARE
    assert not directory.has_encoder("hevc_nvenc")
    assert not directory.detect_decoder("hevc_cuvid")


def test_decoder_lookup(scripted_engine):
    directory = CapabilityDirectory(scripted_engine(decoders={"hevc_cuvid", "h264"}))
    assert directory.detect_decoder("hevc_cuvid")
    assert not directory.detect_decoder("av1_cuvid")


def test_invalidate_rediscovers(scripted_engine):
    engine = scripted_engine(encoders={"libx264"})
    directory = CapabilityDirectory(engine)
    assert directory.detect_encoder() == EncoderCapability.SOFTWARE

    engine.encoders = {"h264_qsv"}
    directory.invalidate()

    assert directory.detect_encoder() == EncoderCapability.INTEL
    assert engine.list_calls == 2


def test_concurrent_callers_share_one_discovery(scripted_engine):
    class SlowEngine(scripted_engine):
        def list_encoders(self):
            time.sleep(0.05)
            return super().list_encoders()

    engine = SlowEngine(encoders={"h264_nvenc"})
    directory = CapabilityDirectory(engine)
    seen = []
    barrier = threading.Barrier(8)

    def call():
        barrier.wait()
        seen.append(directory.detect_encoder())

    threads = [threading.Thread(target=call) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert engine.list_calls == 1
    assert seen == [EncoderCapability.NVIDIA] * 8
