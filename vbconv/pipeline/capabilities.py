import logging
import threading
from typing import Optional, Protocol, Set
from vbconv.domain.errors import CapabilityDetectionError
from vbconv.domain.models import EncoderCapability

logger = logging.getLogger(__name__)

# Probe order when several hardware encoders are listed
HARDWARE_PRIORITY = (
    EncoderCapability.NVIDIA,
    EncoderCapability.INTEL,
    EncoderCapability.AMD,
    EncoderCapability.VAAPI,
)


class CodecLister(Protocol):
    def list_encoders(self) -> Set[str]: ...
    def list_decoders(self) -> Set[str]: ...


class CapabilityDirectory:
    """Lazily discovers and caches encoder/decoder availability.

    One instance is shared by the planner and the scheduler. The first caller
    runs discovery under the lock; concurrent callers wait and read the cached
    answer. Failed discovery degrades to software / "not available".
    """

    def __init__(self, engine: CodecLister, force_encoder: Optional[str] = None):
        self.engine = engine
        self.force_encoder = force_encoder
        self._lock = threading.RLock()
        self._capability: Optional[EncoderCapability] = None
        self._encoders: Optional[Set[str]] = None
        self._decoders: Optional[Set[str]] = None

    def _forced(self) -> Optional[EncoderCapability]:
        if not self.force_encoder:
            return None
        try:
            return EncoderCapability.parse(self.force_encoder)
        except ValueError:
            logger.warning(f"Ignoring unknown forced encoder '{self.force_encoder}'")
            return None

    def _encoder_names(self) -> Set[str]:
        with self._lock:
            if self._encoders is None:
                try:
                    self._encoders = self.engine.list_encoders()
                except (CapabilityDetectionError, OSError) as e:
                    logger.warning(f"Encoder detection failed, assuming software only: {e}")
                    self._encoders = set()
            return self._encoders

    def _decoder_names(self) -> Set[str]:
        with self._lock:
            if self._decoders is None:
                try:
                    self._decoders = self.engine.list_decoders()
                except (CapabilityDetectionError, OSError) as e:
                    logger.warning(f"Decoder detection failed, assuming none available: {e}")
                    self._decoders = set()
            return self._decoders

    def detect_encoder(self) -> EncoderCapability:
        if self._capability is not None:
            return self._capability
        with self._lock:
            if self._capability is None:
                forced = self._forced()
                if forced is not None:
                    logger.info(f"Encoder forced to {forced.value} ({forced.encoder})")
                    self._capability = forced
                else:
                    names = self._encoder_names()
                    self._capability = next(
                        (c for c in HARDWARE_PRIORITY if c.encoder in names),
                        EncoderCapability.SOFTWARE,
                    )
                    logger.info(f"Detected encoder: {self._capability.value} ({self._capability.encoder})")
            return self._capability

    def has_encoder(self, name: str) -> bool:
        return name in self._encoder_names()

    def detect_decoder(self, name: str) -> bool:
        return name in self._decoder_names()

    def invalidate(self):
        with self._lock:
            self._capability = None
            self._encoders = None
            self._decoders = None
