"""Pydantic schemas for the scan relay endpoints.

Field names are camelCase because the browser client consumes them as-is.
"""
from typing import List

from pydantic import BaseModel, Field

DEFAULT_MIME_TYPE = "image/jpeg"
IMAGE_MIME_PREFIX = "image/"


class SessionCreateRequest(BaseModel):
    """Body of POST /session. Validation of the id happens in the handler."""
    roomId: str = Field(default="", description="Room to create or refresh")


class SessionResponse(BaseModel):
    ok: bool = True
    roomId: str = Field(..., description="Canonical (lower-cased) room id")


class ImageMetadata(BaseModel):
    """An image as listed to clients: everything except the bytes."""
    id: str = Field(..., description="Image id, unique within its room")
    name: str = Field(..., description="Display filename")
    mime: str = Field(..., description="Declared content type")
    size: int = Field(..., description="Payload size in bytes")
    createdAt: int = Field(..., description="Upload time, ms since epoch")


class UploadResponse(BaseModel):
    ok: bool = True
    image: ImageMetadata


class ManifestResponse(BaseModel):
    """Poll result.

    Clients should advance their ``since`` cursor to at least
    ``serverTime`` before the next poll so that clock skew between the
    phone and the desktop cannot hide an image.
    """
    ok: bool = True
    images: List[ImageMetadata] = Field(default_factory=list)
    serverTime: int = Field(..., description="Server clock, ms since epoch")


class ErrorResponse(BaseModel):
    error: str
