"""Tests for the command line entry point."""

import json

import httpx
import pytest

from up2b.__main__ import build_parser, main, upload
from up2b.schemas import AppConfig
from up2b.service import Up2bService
from up2b.storage import InMemoryConfigStore


def test_parser():
    args = build_parser().parse_args(["upload", "a.png", "b.png"])
    assert args.command == "upload"
    assert args.images == ["a.png", "b.png"]


def test_parser_requires_images():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["upload"])


@pytest.mark.asyncio
async def test_upload_prints_results(settings, api_descriptor, make_image, capsys):
    """Test each image prints its URL, or its error on stderr."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "data": {"url": "https://img.example.com/a.png", "id": 1}})

    config = AppConfig(
        using="CUSTOM-TEST",
        auth_config={"CUSTOM-TEST": {"type": "API", "token": "t", "api": api_descriptor}},
    )
    service = Up2bService(InMemoryConfigStore(config), settings=settings, http_transport=httpx.MockTransport(handler))

    status = await upload(service, [str(make_image("a.png")), str(make_image("b.gif"))])

    captured = capsys.readouterr()
    assert status == 1
    assert "https://img.example.com/a.png" in captured.out.splitlines()
    assert "b.gif" in captured.err


def test_main_without_config(tmp_path, monkeypatch, capsys):
    from config import get_settings

    monkeypatch.setenv("CONFIG_FILE", str(tmp_path / "missing.json"))
    get_settings.cache_clear()
    try:
        assert main(["upload", "a.png"]) == 2
    finally:
        get_settings.cache_clear()
    assert "no configuration found" in capsys.readouterr().err


def test_main_reads_config_file(tmp_path, monkeypatch, api_descriptor, capsys):
    """Test the configured file is used and failures set the exit status."""
    from config import get_settings

    config_file = tmp_path / "config.json"
    document = {
        "version": 1,
        "config": {"using": "CUSTOM-TEST", "auth_config": {"CUSTOM-TEST": {"type": "API", "api": api_descriptor}}},
    }
    config_file.write_text(json.dumps(document), encoding="utf-8")
    monkeypatch.setenv("CONFIG_FILE", str(config_file))
    get_settings.cache_clear()
    try:
        assert main(["upload", str(tmp_path / "missing.png")]) == 1
    finally:
        get_settings.cache_clear()
    assert "image file not found" in capsys.readouterr().err
