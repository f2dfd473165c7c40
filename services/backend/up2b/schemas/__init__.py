"""Pydantic schemas for provider descriptors, configuration and jobs."""

from .config import AppConfig, ManagerItem, ManagerKind, ProxyConfig
from .descriptor import (
    ApiAuthConfig,
    ApiConfig,
    AuthConfig,
    CheveretoAuthConfig,
    GitAuthConfig,
    ImageFormat,
)
from .image import DeleteResponse, ImageRecord, UploadFailure, UploadResponse, UploadResult
from .job import UploadJob

__all__ = [
    "AppConfig",
    "ManagerItem",
    "ManagerKind",
    "ProxyConfig",
    "ApiAuthConfig",
    "ApiConfig",
    "AuthConfig",
    "CheveretoAuthConfig",
    "GitAuthConfig",
    "ImageFormat",
    "DeleteResponse",
    "ImageRecord",
    "UploadFailure",
    "UploadResponse",
    "UploadResult",
    "UploadJob",
]
