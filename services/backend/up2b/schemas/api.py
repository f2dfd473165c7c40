"""Request and response bodies of the HTTP API."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from .descriptor import AuthConfig, ImageFormat


class VersionResponse(BaseModel):
    version: int = Field(..., description="Version of the saved configuration document")


class ManagerCodeRequest(BaseModel):
    code: str


class UsingResponse(BaseModel):
    using: str


class CodeAvailability(BaseModel):
    code: str
    available: bool


class NewManagerRequest(BaseModel):
    code: str = Field(..., description="Custom code, with or without the CUSTOM- prefix")
    descriptor: dict[str, Any] = Field(..., description="API provider descriptor")


class VerifyRequest(BaseModel):
    code: str
    config: AuthConfig


class VerifyResponse(BaseModel):
    extra: Optional[dict[str, str]] = None


class Capabilities(BaseModel):
    """What the active provider and this installation can do."""

    using: str
    allowed_formats: list[ImageFormat]
    compress: bool = Field(..., description="Whether a compressor is available")
    automatic_compression: bool
    stream: bool = Field(..., description="Whether uploads report progress")


class BatchUploadRequest(BaseModel):
    paths: list[str] = Field(..., min_length=1, description="Local image paths in drop order")
