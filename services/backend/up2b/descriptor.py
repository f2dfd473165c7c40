"""Validation, templates and editor-form conversion for provider descriptors.

Everything here is pure: no function touches the network or the config
store, so the editor can call them on every keystroke.
"""

import copy
import json
import re
from typing import Any, Iterable, Literal, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from up2b.errors import ValidationError
from up2b.managers.smms import SMMS_API
from up2b.schemas.config import (
    CUSTOM_CODE_PATTERN,
    CUSTOM_PREFIX,
    ManagerKind,
    is_custom_code,
    normalize_custom_code,
)
from up2b.schemas.descriptor import (
    ApiAuthConfig,
    ApiConfig,
    AuthConfig,
    BodyAuth,
    DeleteDelete,
    DeleteGet,
    GitAuthConfig,
    ListGet,
)

PATH_PATTERN = re.compile(r"^/?[\w\-.~/]+$")

_auth_config_adapter = TypeAdapter(AuthConfig)


class FieldError(BaseModel):
    """A problem found in one field of a descriptor form."""

    model_config = ConfigDict(frozen=True)

    field: str
    message: str
    severity: Literal["error", "warning"] = "error"


def has_blocking_errors(errors: Iterable[FieldError]) -> bool:
    return any(error.severity == "error" for error in errors)


def _loc_to_field(loc: tuple) -> str:
    # Discriminator tags (``API``, ``GET``, ``QUERY``...) are upper case,
    # field names never are.
    parts = [str(part) for part in loc if not (isinstance(part, str) and part.isupper())]
    return ".".join(parts) or "__root__"


def field_errors_from_pydantic(exc: PydanticValidationError, prefix: str = "") -> list[FieldError]:
    """Map pydantic errors to dotted field paths."""
    errors = []
    for error in exc.errors():
        field = _loc_to_field(error["loc"])
        if prefix:
            field = f"{prefix}.{field}" if field != "__root__" else prefix
        errors.append(FieldError(field=field, message=error["msg"]))
    return errors


def _canonical_code(code: str) -> str:
    code = code.strip().upper()
    if is_custom_code(code):
        return normalize_custom_code(code)
    return code


def is_code_taken(code: str, existing_codes: Iterable[str]) -> bool:
    """Whether the custom code collides with one of ``existing_codes``, ignoring case."""
    return normalize_custom_code(code) in {_canonical_code(c) for c in existing_codes}


def validate_code(code: str, existing_codes: Iterable[str] = ()) -> list[FieldError]:
    """Check a new custom provider code for shape and uniqueness."""
    name = code.strip()
    if name.upper().startswith(CUSTOM_PREFIX):
        name = name[len(CUSTOM_PREFIX):]
    if not name:
        return [FieldError(field="code", message="code is required")]
    if not CUSTOM_CODE_PATTERN.match(name):
        return [
            FieldError(
                field="code",
                message="code may only contain letters, digits and underscores",
            )
        ]

    if is_code_taken(name, existing_codes):
        return [FieldError(field="code", message=f"{normalize_custom_code(name)} already exists")]
    return []


def _check_url(field: str, url: str) -> list[FieldError]:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        parsed = None
    if parsed is None or parsed.scheme not in ("http", "https") or not parsed.host:
        return [FieldError(field=field, message=f"{url!r} is not a valid URL", severity="warning")]
    return []


def _check_path(field: str, path: str) -> list[FieldError]:
    if PATH_PATTERN.match(path):
        return []
    return [
        FieldError(
            field=field,
            message=f"{path!r} does not look like a URL path",
            severity="warning",
        )
    ]


def _check_api(api: ApiConfig, prefix: str) -> list[FieldError]:
    errors = _check_url(f"{prefix}.base_url", api.base_url)
    errors += _check_path(f"{prefix}.list.path", api.list.path)
    errors += _check_path(f"{prefix}.delete.path", api.delete.path)
    errors += _check_path(f"{prefix}.upload.path", api.upload.path)

    if isinstance(api.auth_method, BodyAuth):
        bodyless = []
        if isinstance(api.list.method, ListGet):
            bodyless.append("list")
        if isinstance(api.delete.method, (DeleteGet, DeleteDelete)):
            bodyless.append("delete")
        if bodyless:
            errors.append(
                FieldError(
                    field=f"{prefix}.auth_method",
                    message=(
                        "the token cannot be sent in the body of "
                        f"{' and '.join(bodyless)} requests"
                    ),
                    severity="warning",
                )
            )

    if api.upload.controller.error and api.upload.controller.error.repeated_regex:
        try:
            re.compile(api.upload.controller.error.repeated_regex)
        except re.error as e:
            errors.append(
                FieldError(
                    field=f"{prefix}.upload.controller.error.repeated_regex",
                    message=f"invalid regular expression: {e}",
                )
            )
    return errors


def validate(
    descriptor: Union[dict[str, Any], AuthConfig],
    *,
    code: Optional[str] = None,
    existing_codes: Iterable[str] = (),
) -> list[FieldError]:
    """Validate a provider descriptor.

    Args:
        descriptor: A raw descriptor document or an already parsed one.
        code: The code of a custom provider being added; when given its
            shape and uniqueness among ``existing_codes`` are checked.
        existing_codes: Codes already present in the configuration.

    Returns:
        Field errors and warnings, sorted so that repeated calls on the same
        input return identical lists.
    """
    errors: list[FieldError] = []
    if code is not None:
        errors += validate_code(code, existing_codes)

    if isinstance(descriptor, BaseModel):
        descriptor = descriptor.model_dump(mode="json")

    try:
        parsed = _auth_config_adapter.validate_python(descriptor)
    except PydanticValidationError as e:
        errors += field_errors_from_pydantic(e)
    else:
        if isinstance(parsed, ApiAuthConfig):
            errors += _check_api(parsed.api, "api")
        elif isinstance(parsed, GitAuthConfig):
            errors += _check_url("base_url", parsed.base_url)

    return sorted(set(errors), key=lambda e: (e.field, e.severity, e.message))


def parse_descriptor(
    descriptor: Union[dict[str, Any], AuthConfig],
    *,
    code: Optional[str] = None,
    existing_codes: Iterable[str] = (),
) -> AuthConfig:
    """Validate and parse a descriptor.

    Raises:
        ValidationError: If :func:`validate` reports a blocking error.
    """
    errors = validate(descriptor, code=code, existing_codes=existing_codes)
    if has_blocking_errors(errors):
        blocking = [e for e in errors if e.severity == "error"]
        summary = "; ".join(f"{e.field}: {e.message}" for e in blocking)
        raise ValidationError(f"invalid provider configuration: {summary}", errors)
    if isinstance(descriptor, BaseModel):
        return descriptor
    return _auth_config_adapter.validate_python(descriptor)


BLANK_API_FORM: dict[str, Any] = {
    "base_url": "",
    "auth_method": {"type": "HEADER", "key": None, "prefix": None},
    "list": {
        "path": "",
        "method": {"type": "GET"},
        "controller": {
            "items_key": "",
            "image_url_key": "",
            "deleted_id_key": "",
            "thumb_key": None,
        },
    },
    "delete": {
        "path": "",
        "method": {"type": "GET", "kind": {"type": "PATH"}},
        "controller": {
            "type": "JSON",
            "key": "",
            "should_be": {"type": "BOOL", "value": True},
            "message_key": None,
        },
    },
    "upload": {
        "path": "",
        "max_size": None,
        "timeout": 5,
        "allowed_formats": ["PNG", "JPEG", "GIF"],
        "compressed_format": "WEBP",
        "content_type": {
            "type": "MULTIPART",
            "file_kind": "STREAM",
            "file_part_name": "",
        },
        "other_body": None,
        "controller": {
            "image_url_key": "",
            "deleted_id_key": "",
            "thumb_key": None,
            "status": {"key": "status", "should_be": {"type": "BOOL", "value": True}},
            "error": {"key": "error", "repeated_regex": None},
        },
    },
}


def defaults(
    kind: Union[ManagerKind, str],
    existing_code: Optional[str] = None,
) -> dict[str, Any]:
    """Return a blank editor form for a new provider of ``kind``.

    For the built-in ``SMMS`` code the baseline descriptor is returned,
    freshly built and with an empty token, since only the token of a
    built-in provider is editable.
    """
    kind = ManagerKind(kind)
    if existing_code is not None and existing_code.strip().upper() == "SMMS":
        return {"type": "API", "token": "", "api": config_to_form(SMMS_API.model_copy(deep=True))}

    if kind == ManagerKind.API:
        return {"type": "API", "token": "", "api": copy.deepcopy(BLANK_API_FORM)}
    if kind == ManagerKind.GIT:
        return {
            "type": "GIT",
            "base_url": "https://api.github.com",
            "token": "",
            "username": "",
            "repository": "",
            "path": "up2b",
        }
    return {"type": "CHEVERETO", "username": "", "password": "", "timeout": None, "extra": None}


def _dump_other_body(other_body: dict[str, Any]) -> str:
    text = json.dumps(other_body, ensure_ascii=False)
    return text.replace("\u201c", "\\u201c").replace("\u201d", "\\u201d")


def config_to_form(api: ApiConfig) -> dict[str, Any]:
    """Render an API descriptor as editor form data.

    ``upload.other_body`` becomes a JSON string; every other field keeps
    its persisted value, byte sizes included. Curly double quotes inside
    its values are written as ``\\u201c``/``\\u201d`` escapes;
    ``form_to_config`` reads literal ones as JSON quotes.
    """
    form = api.model_dump(mode="json")
    other_body = form["upload"].get("other_body")
    form["upload"]["other_body"] = (
        _dump_other_body(other_body) if other_body is not None else None
    )
    return form


def form_to_config(form: dict[str, Any]) -> ApiConfig:
    """Parse editor form data back into an API descriptor.

    Raises:
        ValidationError: If ``other_body`` is not a JSON object or the
            form is incomplete.
    """
    data = copy.deepcopy(form)
    upload = data.get("upload") or {}
    other_body = upload.get("other_body")
    if isinstance(other_body, str):
        text = other_body.replace("“", '"').replace("”", '"').strip()
        if not text:
            upload["other_body"] = None
        else:
            try:
                upload["other_body"] = json.loads(text)
            except json.JSONDecodeError as e:
                raise ValidationError(
                    f"upload.other_body is not valid JSON: {e}",
                    [FieldError(field="upload.other_body", message=str(e))],
                ) from e

    try:
        return ApiConfig.model_validate(data)
    except PydanticValidationError as e:
        errors = sorted(field_errors_from_pydantic(e), key=lambda err: err.field)
        summary = "; ".join(f"{err.field}: {err.message}" for err in errors)
        raise ValidationError(f"invalid API configuration: {summary}", errors) from e


def bytes_to_megabytes(size: int) -> float:
    return size / 1024 / 1024


def megabytes_to_bytes(size: float) -> int:
    return int(round(size * 1024 * 1024))


def format_bytes(size: int) -> str:
    """Human readable size, e.g. ``'4.9 MB'``."""
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"

