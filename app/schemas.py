from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _CompatModel(BaseModel):
    """Base model configured to ignore unknown fields and accept camelCase aliases."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _strip_optional(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# -----------------------------------------------------------------------------
# Job lifecycle
# -----------------------------------------------------------------------------


class JobStatus(str, Enum):
    PENDING = "pending"
    QUEUED = "queued"
    GENERATING = "generating"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.READY, JobStatus.ERROR)


_ALLOWED_TRANSITIONS: Dict[JobStatus, frozenset] = {
    JobStatus.PENDING: frozenset({JobStatus.GENERATING, JobStatus.ERROR}),
    JobStatus.QUEUED: frozenset({JobStatus.GENERATING, JobStatus.ERROR}),
    JobStatus.GENERATING: frozenset({JobStatus.PROCESSING, JobStatus.ERROR}),
    JobStatus.PROCESSING: frozenset({JobStatus.READY, JobStatus.ERROR}),
    JobStatus.READY: frozenset(),
    JobStatus.ERROR: frozenset(),
}


def parse_status(value: Any) -> JobStatus:
    """Map a stored status string to ``JobStatus``; unknown or unset means pending."""

    text = str(value or "").strip().lower()
    try:
        return JobStatus(text)
    except ValueError:
        return JobStatus.PENDING


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in _ALLOWED_TRANSITIONS[current]


# -----------------------------------------------------------------------------
# Job document
# -----------------------------------------------------------------------------


class ProductSpec(_CompatModel):
    description: str = ""
    name: Optional[str] = None
    image_gs_path: Optional[str] = Field(None, alias="imageGsPath")
    hint: Optional[str] = None

    @field_validator("description", mode="before")
    @classmethod
    def _coerce_description(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("name", "image_gs_path", "hint", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Optional[str]:
        return _strip_optional(value)


class ShotSpec(_CompatModel):
    camera: str = ""
    subject: str = ""
    action: str = ""


class SceneSpec(_CompatModel):
    id: str = ""
    duration_s: Optional[float] = None
    beats: List[str] = Field(default_factory=list)
    shots: List[ShotSpec] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value or "").strip()


class AudioSpec(_CompatModel):
    preference: Optional[str] = None
    voiceover_script: Optional[str] = Field(None, alias="voiceoverScript")
    sfx_hints: List[str] = Field(default_factory=list, alias="sfxHints")


class CtaSpec(_CompatModel):
    key: Optional[str] = None
    copy_text: Optional[str] = Field(None, alias="copy")


class OutputSpec(_CompatModel):
    resolution: Optional[str] = None
    duration_s: Optional[float] = None


class PromptSpec(_CompatModel):
    """The ``promptV1`` document attached to a job by the upstream flow."""

    product: ProductSpec = Field(default_factory=ProductSpec)
    style: Optional[str] = None
    audio: Optional[AudioSpec] = None
    cta: Optional[CtaSpec] = None
    scenes: List[SceneSpec] = Field(default_factory=list)
    output: OutputSpec = Field(default_factory=OutputSpec)


class BrandSpec(_CompatModel):
    name: Optional[str] = None
    slogan: Optional[str] = None

    @field_validator("name", "slogan", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Optional[str]:
        return _strip_optional(value)


class Brief(_CompatModel):
    brand: BrandSpec = Field(default_factory=BrandSpec)
    product_name: Optional[str] = Field(None, alias="productName")
    aspect_ratio: Optional[str] = Field(None, alias="aspectRatio")


class ProcessingInfo(_CompatModel):
    started_at: Any = Field(None, alias="startedAt")
    started_by: Optional[str] = Field(None, alias="startedBy")
    heartbeat: Any = None
    poll_attempts: Optional[int] = Field(None, alias="pollAttempts")


class JobRecord(_CompatModel):
    """Typed view over an ``adJobs`` document; writes go through dotted-path updates."""

    job_id: Optional[str] = Field(None, alias="jobId")
    uid: Optional[str] = None
    status: Optional[str] = None
    mode: Optional[str] = None
    prompt_v1: Optional[PromptSpec] = Field(None, alias="promptV1")
    input_image_path: Optional[str] = Field(None, alias="inputImagePath")
    input_image_url: Optional[str] = Field(None, alias="inputImageUrl")
    aspect_ratio: Optional[str] = Field(None, alias="aspectRatio")
    model: Optional[str] = None
    brief: Optional[Brief] = None
    template_id: Optional[str] = Field(None, alias="templateId")
    provider_job_id: Optional[str] = Field(None, alias="providerJobId")
    processing: ProcessingInfo = Field(default_factory=ProcessingInfo)
    final_video_url: Optional[str] = Field(None, alias="finalVideoUrl")
    error: Optional[str] = None

    @field_validator("processing", mode="before")
    @classmethod
    def _coerce_processing(cls, value: Any) -> Any:
        return value if value is not None else {}

    @field_validator("input_image_path", "input_image_url", "final_video_url", "aspect_ratio", "model", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Optional[str]:
        return _strip_optional(value)

    @classmethod
    def from_document(cls, job_id: str, data: Dict[str, Any]) -> "JobRecord":
        record = cls.model_validate(data or {})
        record.job_id = job_id
        return record

    @property
    def job_status(self) -> JobStatus:
        return parse_status(self.status)

    @property
    def is_ready(self) -> bool:
        return self.job_status is JobStatus.READY and bool(self.final_video_url)


# -----------------------------------------------------------------------------
# API payloads
# -----------------------------------------------------------------------------


class StartJobRequest(_CompatModel):
    job_id: str = Field("", alias="jobId", description="Identifier of the adJobs document to generate")

    @field_validator("job_id", mode="before")
    @classmethod
    def _coerce_job_id(cls, value: Any) -> str:
        return str(value or "").strip()


class StartJobResponse(_CompatModel):
    status: str
    final_video_url: Optional[str] = Field(None, alias="finalVideoUrl")


class JobWrittenEvent(_CompatModel):
    """Document write notification forwarded by the job-queue trigger."""

    job_id: str = Field(..., alias="jobId")
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None


__all__ = [
    "AudioSpec",
    "Brief",
    "BrandSpec",
    "CtaSpec",
    "JobRecord",
    "JobStatus",
    "JobWrittenEvent",
    "OutputSpec",
    "ProcessingInfo",
    "ProductSpec",
    "PromptSpec",
    "SceneSpec",
    "ShotSpec",
    "StartJobRequest",
    "StartJobResponse",
    "can_transition",
    "parse_status",
]
