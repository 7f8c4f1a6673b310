from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from vbconv.domain.models import EncoderCapability

class GeneralConfig(BaseModel):
    jobs: Optional[int] = Field(default=None, gt=0)
    cpu_fraction: float = Field(default=0.75, gt=0.0, le=1.0)
    min_jobs: int = Field(default=2, gt=0)
    max_jobs: int = Field(default=8, gt=0)
    hw_max_jobs: int = Field(default=2, gt=0)
    extensions: List[str] = Field(default_factory=lambda: [".mkv"])
    output_extension: str = ".mp4"
    debug: bool = False

    @field_validator('extensions')
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        return [e.lower() if e.startswith(".") else f".{e.lower()}" for e in v]

    @field_validator('output_extension')
    @classmethod
    def normalize_output_extension(cls, v: str) -> str:
        return v if v.startswith(".") else f".{v}"

    @model_validator(mode="after")
    def check_bounds(self) -> "GeneralConfig":
        if self.min_jobs > self.max_jobs:
            raise ValueError(f"min_jobs ({self.min_jobs}) must not exceed max_jobs ({self.max_jobs})")
        return self

class EngineConfig(BaseModel):
    ffmpeg_bin: Optional[str] = None
    ffprobe_bin: Optional[str] = None
    force_encoder: Optional[str] = None
    query_timeout: float = Field(default=10.0, gt=0)

    @field_validator('force_encoder')
    @classmethod
    def validate_force_encoder(cls, v: Optional[str]) -> Optional[str]:
        if v:
            EncoderCapability.parse(v)
        return v or None

class EncodingConfig(BaseModel):
    software_preset: str = "veryfast"
    software_crf: int = Field(default=18, ge=0, le=51)
    nvenc_preset: str = "p1"
    nvenc_cq: int = Field(default=19, ge=0, le=51)
    qsv_global_quality: int = Field(default=23, ge=1, le=51)
    max_muxing_queue_size: int = Field(default=9999, gt=0)

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    encoding: EncodingConfig = Field(default_factory=EncodingConfig)
