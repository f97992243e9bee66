from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Serializes with camelCase keys, accepts either spelling on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class JobFormat(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"


class JobDescriptor(CamelModel):
    title: str = Field(min_length=1)
    format: JobFormat
    quality: str
    file_size: Optional[str] = None
    thumbnail: Optional[str] = None
    duration: Optional[str] = None
    # where the finished file will be served from
    file_url: Optional[str] = None

    model_config = ConfigDict(coerce_numbers_to_str=True)


class Job(CamelModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str
    format: JobFormat
    quality: str
    status: JobStatus = JobStatus.PROCESSING
    progress: float = Field(default=0.0, ge=0, le=100)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    file_size: Optional[str] = None
    thumbnail: Optional[str] = None
    duration: Optional[str] = None
    file_url: Optional[str] = None
    download_url: Optional[str] = None
    speed: Optional[float] = None  # MB/s
    eta: Optional[int] = None  # seconds

    @model_validator(mode="after")
    def _progress_matches_status(self):
        # progress == 100 exactly when completed
        if (self.status == JobStatus.COMPLETED) != (self.progress >= 100):
            raise ValueError(
                f"progress {self.progress} is inconsistent with status {self.status.value}"
            )
        return self

    @classmethod
    def from_descriptor(cls, descriptor: JobDescriptor, status: JobStatus = JobStatus.PROCESSING) -> "Job":
        return cls(
            title=descriptor.title,
            format=descriptor.format,
            quality=descriptor.quality,
            status=status,
            file_size=descriptor.file_size,
            thumbnail=descriptor.thumbnail,
            duration=descriptor.duration,
            file_url=descriptor.file_url,
        )

    @property
    def file_id(self) -> Optional[str]:
        """Stored file backing this job, if it came from a conversion."""
        if not self.file_url:
            return None
        return self.file_url.rstrip("/").rsplit("/", 1)[-1] or None

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class VideoInfo(CamelModel):
    id: str
    title: str
    description: str
    duration: str
    thumbnail: str
    channel: str
    views: str
    upload_date: str
    available_formats: Dict[str, List[str]]


class ConversionResult(CamelModel):
    title: str
    duration: str
    thumbnail: str
    download_url: str
    file_size: str
    format: str
    quality: str
    filename: str
    job_id: Optional[str] = None


# -------------------- Request bodies --------------------

class ConvertRequest(BaseModel):
    url: Optional[str] = None
    format: Optional[str] = None
    quality: Optional[str] = None

    model_config = ConfigDict(coerce_numbers_to_str=True)


class VideoInfoRequest(BaseModel):
    url: Optional[str] = None


class JobCreateRequest(JobDescriptor):
    autostart: bool = True


class JobFailRequest(BaseModel):
    error: Optional[str] = None
