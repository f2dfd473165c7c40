"""Shared fixtures for the up2b test-suite."""

import copy
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest
from PIL import Image

from config import Settings
from up2b.transport import HttpTransport

SAMPLE_API: dict[str, Any] = {
    "base_url": "https://img.example.com/api/",
    "auth_method": {"type": "HEADER", "key": None, "prefix": "Bearer "},
    "list": {
        "path": "images",
        "method": {"type": "GET"},
        "controller": {
            "items_key": "data.items",
            "image_url_key": "url",
            "deleted_id_key": "id",
            "thumb_key": "thumb",
        },
    },
    "delete": {
        "path": "/images",
        "method": {"type": "DELETE", "kind": {"type": "PATH"}},
        "controller": {"type": "STATUS"},
    },
    "upload": {
        "path": "upload",
        "max_size": 1024 * 1024,
        "timeout": 10,
        "allowed_formats": ["JPEG", "PNG"],
        "compressed_format": "JPEG",
        "content_type": {"type": "MULTIPART", "file_kind": "STREAM", "file_part_name": "file"},
        "other_body": {"album": "up2b"},
        "controller": {
            "image_url_key": "data.url",
            "deleted_id_key": "data.id",
            "thumb_key": "data.thumb",
            "status": {"key": "success", "should_be": {"type": "BOOL", "value": True}},
            "error": {"key": "message", "repeated_regex": "exists at: (https?://\\S+)"},
        },
    },
}


@pytest.fixture
def api_descriptor() -> dict[str, Any]:
    """A custom API descriptor as the editor would submit it."""
    return copy.deepcopy(SAMPLE_API)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated in a temporary directory."""
    return Settings(
        config_file=tmp_path / "config.json",
        temp_dir=tmp_path / "tmp",
        upload_chunk_size=64,
    )


@pytest.fixture
def make_image(tmp_path) -> Callable[..., Path]:
    """Factory writing a real image file with Pillow."""

    def _make(
        name: str = "photo.png",
        size: tuple[int, int] = (32, 32),
        color: tuple[int, int, int] = (200, 30, 30),
        noise: bool = False,
    ) -> Path:
        path = tmp_path / name
        image = Image.new("RGB", size, color)
        if noise:
            image = Image.effect_noise(size, 100).convert("RGB")
        fmt = {"jpg": "JPEG"}.get(path.suffix.lstrip(".").lower(), path.suffix.lstrip(".").upper())
        image.save(path, format=fmt)
        return path

    return _make


@pytest.fixture
def mock_transport(settings) -> Callable[[Callable[[httpx.Request], httpx.Response]], HttpTransport]:
    """Factory wrapping a request handler into an HttpTransport."""

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> HttpTransport:
        return HttpTransport(settings, transport=httpx.MockTransport(handler))

    return _make
