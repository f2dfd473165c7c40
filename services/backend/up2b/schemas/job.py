"""Upload job state schemas."""

from pathlib import Path
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from .image import ImageRecord


class Queued(BaseModel):
    state: Literal["QUEUED"] = "QUEUED"


class Compressing(BaseModel):
    state: Literal["COMPRESSING"] = "COMPRESSING"
    original_bytes: Optional[int] = None
    compressed_bytes: Optional[int] = None


class Uploading(BaseModel):
    state: Literal["UPLOADING"] = "UPLOADING"
    percent: float = Field(default=0.0, ge=0.0, le=100.0)


class Succeeded(BaseModel):
    state: Literal["SUCCEEDED"] = "SUCCEEDED"
    url: str
    deleted_id: str
    thumb: Optional[str] = None

    def to_record(self) -> ImageRecord:
        return ImageRecord(url=self.url, deleted_id=self.deleted_id, thumb=self.thumb)


class UploadWarning(BaseModel):
    """The image already exists on the provider."""

    state: Literal["WARNING"] = "WARNING"
    reason: str
    url: Optional[str] = None


class Failed(BaseModel):
    state: Literal["FAILED"] = "FAILED"
    code: str
    detail: str


JobState = Annotated[
    Union[Queued, Compressing, Uploading, Succeeded, UploadWarning, Failed],
    Field(discriminator="state"),
]

TERMINAL_STATES = ("SUCCEEDED", "WARNING", "FAILED")


class UploadJob(BaseModel):
    """One dropped file travelling through the upload pipeline."""

    id: int
    path: Path
    state: JobState = Field(default_factory=Queued)

    @property
    def is_terminal(self) -> bool:
        return self.state.state in TERMINAL_STATES
