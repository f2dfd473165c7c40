"""Image-related Pydantic schemas returned by provider operations."""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


class ImageRecord(BaseModel):
    """An image stored on a provider.

    The ``deleted_id`` is whatever the provider needs to delete the image
    again: a hash, a numeric id, or a composite such as ``url---sha`` for
    git storage.
    """

    url: str = Field(..., description="Public URL of the image")
    deleted_id: str = Field(..., description="Identifier passed to delete")
    thumb: Optional[str] = Field(None, description="Thumbnail URL, if provided")


class DeleteResponse(BaseModel):
    success: bool
    error: Optional[str] = None


class UploadResponse(BaseModel):
    type: Literal["Response"] = "Response"
    url: str
    deleted_id: str
    thumb: Optional[str] = None


class UploadFailure(BaseModel):
    type: Literal["Error"] = "Error"
    code: str
    detail: str


UploadResult = Annotated[Union[UploadResponse, UploadFailure], Field(discriminator="type")]
