"""Command line entry point: ``python -m up2b upload IMAGE...``."""

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from config import get_settings
from up2b.schemas.image import UploadResponse
from up2b.service import Up2bService
from up2b.storage.local import LocalConfigStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="up2b", description="Upload images to an image host")
    commands = parser.add_subparsers(dest="command", required=True)

    upload = commands.add_parser("upload", help="upload images with the active provider")
    upload.add_argument("images", nargs="+", metavar="IMAGE", help="image file paths")
    return parser


async def upload(service: Up2bService, images: Sequence[str]) -> int:
    """Upload ``images`` in order, printing one line per image.

    Returns:
        int: 0 if every upload succeeded, 1 otherwise.
    """
    failures = 0
    for image in images:
        result = await service.upload_image(image)
        if isinstance(result, UploadResponse):
            print(result.url)
        else:
            failures += 1
            print(f"{image}: {result.detail}", file=sys.stderr)
    return 1 if failures else 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = get_settings()
    settings.configure_logging()

    service = Up2bService(LocalConfigStore(settings.config_file), settings=settings)
    if service.get_config() is None:
        print(f"no configuration found at {settings.config_file}", file=sys.stderr)
        return 2

    return asyncio.run(upload(service, args.images))


if __name__ == "__main__":
    sys.exit(main())
