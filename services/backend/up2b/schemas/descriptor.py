"""Pydantic schemas describing how to call a provider's REST surface.

Every tagged union of the descriptor (auth method, list/delete methods,
delete kind, delete controller, upload content type and the ``should_be``
literal) is a discriminated union on its ``type`` field, so each variant
declares exactly the fields it needs.
"""

from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
)

DEFAULT_UPLOAD_TIMEOUT = 5

NonEmptyStr = Annotated[str, Field(min_length=1)]


class ImageFormat(str, Enum):
    """Image formats a provider may accept."""

    JPEG = "JPEG"
    PNG = "PNG"
    WEBP = "WEBP"
    AVIF = "AVIF"
    GIF = "GIF"
    BMP = "BMP"

    @classmethod
    def from_path(cls, path: str | Path) -> Optional["ImageFormat"]:
        """Guess the format from a file extension, ``None`` when unknown."""
        suffix = Path(path).suffix.lstrip(".").upper()
        if suffix == "JPG":
            suffix = "JPEG"
        try:
            return cls(suffix)
        except ValueError:
            return None


class CompressedFormat(str, Enum):
    """Target format of an automatically compressed image."""

    JPEG = "JPEG"
    WEBP = "WEBP"


class FileKind(str, Enum):
    """How a multipart file part is framed."""

    STREAM = "STREAM"
    BUFFER = "BUFFER"


# ``should_be`` literals


class BoolLiteral(BaseModel):
    type: Literal["BOOL"] = "BOOL"
    value: StrictBool

    def matches(self, value: Any) -> bool:
        return isinstance(value, bool) and value is self.value


class NumberLiteral(BaseModel):
    type: Literal["NUMBER"] = "NUMBER"
    value: Union[StrictInt, StrictFloat]

    def matches(self, value: Any) -> bool:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return value == self.value


class StringLiteral(BaseModel):
    type: Literal["STRING"] = "STRING"
    value: StrictStr

    def matches(self, value: Any) -> bool:
        return isinstance(value, str) and value == self.value


ShouldBe = Annotated[
    Union[BoolLiteral, NumberLiteral, StringLiteral],
    Field(discriminator="type"),
]


def tag_literal(value: Any) -> dict[str, Any]:
    """Wrap a bare JSON scalar into its tagged literal form.

    Used when reading documents written before literals were tagged.
    """
    if isinstance(value, bool):
        return {"type": "BOOL", "value": value}
    if isinstance(value, (int, float)):
        return {"type": "NUMBER", "value": value}
    if isinstance(value, str):
        return {"type": "STRING", "value": value}
    raise ValueError(f"should_be must be a boolean, number or string, got {value!r}")


# Authentication


class HeaderAuth(BaseModel):
    """Token sent in a header; ``Authorization`` when no key is given."""

    type: Literal["HEADER"] = "HEADER"
    key: Optional[str] = None
    prefix: Optional[str] = None

    @property
    def header_name(self) -> str:
        return self.key or "Authorization"


class BodyAuth(BaseModel):
    """Token sent as a field of the request body."""

    type: Literal["BODY"] = "BODY"
    key: NonEmptyStr


AuthMethod = Annotated[Union[HeaderAuth, BodyAuth], Field(discriminator="type")]


# List


class ListGet(BaseModel):
    type: Literal["GET"] = "GET"


class ListPost(BaseModel):
    type: Literal["POST"] = "POST"
    body: dict[str, Any] = Field(default_factory=dict)


ListMethod = Annotated[Union[ListGet, ListPost], Field(discriminator="type")]


class ListController(BaseModel):
    items_key: NonEmptyStr
    image_url_key: NonEmptyStr
    deleted_id_key: NonEmptyStr
    thumb_key: Optional[str] = None


class ApiList(BaseModel):
    path: NonEmptyStr
    method: ListMethod = Field(default_factory=ListGet)
    controller: ListController


# Delete


class PathKind(BaseModel):
    """The delete id is appended to the path."""

    type: Literal["PATH"] = "PATH"


class QueryKind(BaseModel):
    """The delete id is sent as the ``key`` query parameter."""

    type: Literal["QUERY"] = "QUERY"
    key: NonEmptyStr


DeleteKind = Annotated[Union[PathKind, QueryKind], Field(discriminator="type")]


class DeleteGet(BaseModel):
    type: Literal["GET"] = "GET"
    kind: DeleteKind = Field(default_factory=PathKind)


class DeleteDelete(BaseModel):
    type: Literal["DELETE"] = "DELETE"
    kind: DeleteKind = Field(default_factory=PathKind)


class DeletePost(BaseModel):
    """The delete id is sent in a JSON body under ``key``."""

    type: Literal["POST"] = "POST"
    key: NonEmptyStr = "id"
    body: dict[str, Any] = Field(default_factory=dict)


DeleteMethod = Annotated[
    Union[DeleteGet, DeletePost, DeleteDelete],
    Field(discriminator="type"),
]


class StatusController(BaseModel):
    """Success iff the HTTP status is 2xx."""

    type: Literal["STATUS"] = "STATUS"


class JsonController(BaseModel):
    """Success iff the value at ``key`` equals ``should_be``."""

    type: Literal["JSON"] = "JSON"
    key: NonEmptyStr
    should_be: ShouldBe
    message_key: Optional[str] = None

    @field_validator("should_be", mode="before")
    @classmethod
    def tag_bare_literal(cls, v: Any) -> Any:
        if isinstance(v, (dict, BaseModel)):
            return v
        return tag_literal(v)


DeleteController = Annotated[
    Union[JsonController, StatusController],
    Field(discriminator="type"),
]


class ApiDelete(BaseModel):
    path: NonEmptyStr
    method: DeleteMethod = Field(default_factory=DeleteGet)
    controller: DeleteController


# Upload


class MultipartContent(BaseModel):
    type: Literal["MULTIPART"] = "MULTIPART"
    file_kind: FileKind = FileKind.STREAM
    file_part_name: NonEmptyStr


class JsonContent(BaseModel):
    """Base64 encoded image under ``key`` of a JSON body."""

    type: Literal["JSON"] = "JSON"
    key: NonEmptyStr


UploadContentType = Annotated[
    Union[MultipartContent, JsonContent],
    Field(discriminator="type"),
]


class UploadStatusCheck(BaseModel):
    """Value the provider sets to flag a successful upload."""

    key: NonEmptyStr
    should_be: ShouldBe

    @field_validator("should_be", mode="before")
    @classmethod
    def tag_bare_literal(cls, v: Any) -> Any:
        if isinstance(v, (dict, BaseModel)):
            return v
        return tag_literal(v)


class UploadErrorController(BaseModel):
    """Where the provider puts its rejection message.

    ``repeated_regex`` recognizes a duplicate-upload message; its first
    group, when present, is the URL of the already stored image.
    """

    key: NonEmptyStr
    repeated_regex: Optional[str] = None


class UploadController(BaseModel):
    image_url_key: NonEmptyStr
    deleted_id_key: NonEmptyStr
    thumb_key: Optional[str] = None
    status: Optional[UploadStatusCheck] = None
    error: Optional[UploadErrorController] = None


class ApiUpload(BaseModel):
    path: NonEmptyStr
    max_size: int = Field(..., gt=0, description="Maximum accepted file size in bytes")
    timeout: Optional[int] = Field(default=None, ge=0, description="Seconds")
    allowed_formats: list[ImageFormat] = Field(..., min_length=1)
    compressed_format: CompressedFormat = CompressedFormat.WEBP
    content_type: UploadContentType
    other_body: Optional[dict[str, Any]] = None
    controller: UploadController

    @field_validator("allowed_formats")
    @classmethod
    def dedupe_formats(cls, v: list[ImageFormat]) -> list[ImageFormat]:
        return list(dict.fromkeys(v))

    @property
    def effective_timeout(self) -> int:
        return self.timeout or DEFAULT_UPLOAD_TIMEOUT


class ApiConfig(BaseModel):
    """Declarative description of a REST image provider."""

    base_url: NonEmptyStr
    auth_method: AuthMethod = Field(default_factory=HeaderAuth)
    list: ApiList
    delete: ApiDelete
    upload: ApiUpload


# Per-provider credentials


class ApiAuthConfig(BaseModel):
    type: Literal["API"] = "API"
    token: str = ""
    api: ApiConfig


class GitAuthConfig(BaseModel):
    type: Literal["GIT"] = "GIT"
    base_url: NonEmptyStr = "https://api.github.com"
    token: NonEmptyStr
    username: NonEmptyStr
    repository: NonEmptyStr
    path: Optional[str] = "up2b"


class CheveretoAuthConfig(BaseModel):
    type: Literal["CHEVERETO"] = "CHEVERETO"
    username: NonEmptyStr
    password: NonEmptyStr
    timeout: Optional[int] = Field(default=None, ge=0)
    extra: Optional[dict[str, str]] = None


AuthConfig = Annotated[
    Union[ApiAuthConfig, GitAuthConfig, CheveretoAuthConfig],
    Field(discriminator="type"),
]
