"""Interprets provider responses according to a descriptor's controllers.

All key paths are dotted (``data.url``); a segment that is a number
indexes into an array (``data.0.url``).
"""

import json
import logging
import re
from typing import Any, Optional

from up2b.errors import DecodeError, DuplicateUpload, ProviderRejected
from up2b.schemas.descriptor import (
    JsonController,
    ListController,
    StatusController,
    UploadController,
)
from up2b.schemas.image import DeleteResponse, ImageRecord

logger = logging.getLogger(__name__)

_MISSING = object()


def get_by_path(data: Any, key_path: str, default: Any = None) -> Any:
    """Look up ``key_path`` in decoded JSON, returning ``default`` when absent."""
    current = data
    for key in key_path.split("."):
        if isinstance(current, dict):
            if key not in current:
                return default
            current = current[key]
        elif isinstance(current, list) and key.lstrip("-").isdigit():
            index = int(key)
            if not -len(current) <= index < len(current):
                return default
            current = current[index]
        else:
            return default
    return current


def has_path(data: Any, key_path: str) -> bool:
    return get_by_path(data, key_path, _MISSING) is not _MISSING


def _is_success(status: int) -> bool:
    return 200 <= status <= 299


def _decode_json(body: bytes) -> Any:
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodeError(f"response is not valid JSON: {e}") from e


def _preview(body: bytes, limit: int = 200) -> str:
    text = body.decode("utf-8", errors="replace").strip()
    return text if len(text) <= limit else text[:limit] + "..."


def _as_id(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None


def interpret_list(controller: ListController, status: int, body: bytes) -> list[ImageRecord]:
    """Extract image records from a list response.

    Raises:
        ProviderRejected: If the status is not 2xx.
        DecodeError: If the items array or a required key of any item is
            missing; no partial listing is returned.
    """
    if not _is_success(status):
        raise ProviderRejected(f"HTTP {status}: {_preview(body)}")

    data = _decode_json(body)
    items = get_by_path(data, controller.items_key, _MISSING)
    if items is _MISSING:
        raise DecodeError(f"items key {controller.items_key!r} not found in list response")
    if items is None:
        return []
    if not isinstance(items, list):
        raise DecodeError(f"value at {controller.items_key!r} is not an array")

    records = []
    for index, item in enumerate(items):
        url = get_by_path(item, controller.image_url_key)
        deleted_id = _as_id(get_by_path(item, controller.deleted_id_key))
        if not isinstance(url, str):
            raise DecodeError(f"item {index} has no string at {controller.image_url_key!r}")
        if deleted_id is None:
            raise DecodeError(f"item {index} has no id at {controller.deleted_id_key!r}")
        thumb = get_by_path(item, controller.thumb_key) if controller.thumb_key else None
        records.append(
            ImageRecord(
                url=url,
                deleted_id=deleted_id,
                thumb=thumb if isinstance(thumb, str) else None,
            )
        )

    logger.debug(f"Interpreted {len(records)} images from list response")
    return records


def interpret_delete(
    controller: JsonController | StatusController, status: int, body: bytes
) -> DeleteResponse:
    """Classify a delete response.

    A ``STATUS`` controller only looks at the status code and never carries
    a message. A ``JSON`` controller compares the value at ``key`` with
    ``should_be`` without type coercion.

    Raises:
        DecodeError: If a ``JSON`` controller receives a non-JSON body.
    """
    if isinstance(controller, StatusController):
        return DeleteResponse(success=_is_success(status))

    data = _decode_json(body)
    value = get_by_path(data, controller.key, _MISSING)
    if value is not _MISSING and controller.should_be.matches(value):
        return DeleteResponse(success=True)

    message = None
    if controller.message_key:
        candidate = get_by_path(data, controller.message_key)
        if isinstance(candidate, str):
            message = candidate
    logger.debug(f"Delete rejected: key={controller.key!r} value={value!r} message={message!r}")
    return DeleteResponse(success=False, error=message)


def interpret_upload(controller: UploadController, status: int, body: bytes) -> ImageRecord:
    """Extract the uploaded image from an upload response.

    Raises:
        DuplicateUpload: If the rejection message matches the duplicate regex.
        ProviderRejected: If the provider reports a failure.
        DecodeError: If neither a result nor a failure message can be found.
    """
    try:
        data = _decode_json(body)
    except DecodeError:
        if not _is_success(status):
            raise ProviderRejected(f"HTTP {status}: {_preview(body)}")
        raise

    status_ok = True
    if controller.status is not None:
        value = get_by_path(data, controller.status.key, _MISSING)
        status_ok = value is not _MISSING and controller.status.should_be.matches(value)

    if status_ok:
        url = get_by_path(data, controller.image_url_key)
        deleted_id = _as_id(get_by_path(data, controller.deleted_id_key))
        if isinstance(url, str) and deleted_id is not None:
            thumb = get_by_path(data, controller.thumb_key) if controller.thumb_key else None
            return ImageRecord(
                url=url,
                deleted_id=deleted_id,
                thumb=thumb if isinstance(thumb, str) else None,
            )

    message = None
    if controller.error is not None:
        candidate = get_by_path(data, controller.error.key)
        if isinstance(candidate, str) and candidate:
            message = candidate

    if message is not None:
        if controller.error.repeated_regex:
            match = re.search(controller.error.repeated_regex, message)
            if match:
                url = match.group(1) if match.re.groups else None
                raise DuplicateUpload(message, url=url)
        raise ProviderRejected(message)

    if not _is_success(status):
        raise ProviderRejected(f"HTTP {status}: {_preview(body)}")
    raise DecodeError(
        f"upload response has no string at {controller.image_url_key!r} and "
        f"{controller.deleted_id_key!r}, and no failure message"
    )
