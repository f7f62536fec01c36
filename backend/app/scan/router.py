"""FastAPI router for the scan relay.

Endpoints:
    POST   /api/scan-pdf/session   - Create (or refresh) a room
    DELETE /api/scan-pdf/session   - Clear a room's images
    POST   /api/scan-pdf/upload    - Upload one captured image
    GET    /api/scan-pdf/manifest  - Poll for images newer than a cursor
    GET    /api/scan-pdf/image     - Fetch (optionally consume) one image

Every endpoint validates its identifiers before touching the registry, so a
rejected request never mutates state. Errors are returned as ``{"error": ...}``.
"""
import logging
import random
import string
import uuid
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import JSONResponse, Response

from app.config import get_config

from .schemas import (
    DEFAULT_MIME_TYPE,
    IMAGE_MIME_PREFIX,
    ErrorResponse,
    ImageMetadata,
    ManifestResponse,
    SessionCreateRequest,
    SessionResponse,
    UploadResponse,
)
from .store import ImageRecord, RoomRegistry, get_registry
from .validators import (
    normalize_image_id,
    normalize_room_id,
    parse_consume_flag,
    parse_since,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scan-pdf", tags=["scan-pdf"])

_FALLBACK_ID_ALPHABET = string.ascii_lowercase + string.digits

_BAD_REQUEST = {400: {"model": ErrorResponse}}


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _max_upload_bytes() -> int:
    return get_config().scan.max_upload_bytes


def make_image_id() -> str:
    """Generate an image id.

    uuid4 draws from the OS CSPRNG. If the platform has no randomness
    source, fall back to a short pseudo-random token. The fallback has weak
    collision resistance and must never be used where ids act as secrets.
    """
    try:
        return str(uuid.uuid4())
    except NotImplementedError:
        logger.warning("OS randomness unavailable; using pseudo-random image id")
        return "".join(random.choices(_FALLBACK_ID_ALPHABET, k=8))


def _content_disposition(filename: str) -> str:
    filename = filename.replace('"', "")
    quoted = quote(filename)
    if quoted != filename:
        return f"inline; filename*=utf-8''{quoted}"
    return f'inline; filename="{filename}"'


# =============================================================================
# Session
# =============================================================================


@router.post("/session", response_model=SessionResponse, responses=_BAD_REQUEST)
async def create_session(
    body: SessionCreateRequest,
    registry: RoomRegistry = Depends(get_registry),
):
    """Create a room, or refresh it if it already exists.

    Returns:
        ``{ok, roomId}`` with the canonical room id, or 400 if the id is invalid.
    """
    room_id = normalize_room_id(body.roomId)
    if room_id is None:
        return _error("A valid roomId is required", 400)

    try:
        registry.ensure_room(room_id)
    except Exception:
        logger.exception("Failed to initialize room %s", room_id)
        return _error("Failed to initialize room", 500)

    return SessionResponse(roomId=room_id)


@router.delete("/session", responses=_BAD_REQUEST)
async def destroy_session(
    room: Optional[str] = Query(None),
    registry: RoomRegistry = Depends(get_registry),
):
    """Drop every image in a room.

    The room stays registered, so the desktop can keep polling without
    recreating it.
    """
    room_id = normalize_room_id(room)
    if room_id is None:
        return _error("A valid room is required", 400)

    dropped = registry.clear_room(room_id)
    logger.info("Cleared %d images from room %s", dropped, room_id)
    return {"ok": True}


# =============================================================================
# Upload
# =============================================================================


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={**_BAD_REQUEST, 413: {"model": ErrorResponse}, 415: {"model": ErrorResponse}},
)
async def upload_image(
    room: Optional[str] = Query(None),
    file: Optional[UploadFile] = File(None),
    registry: RoomRegistry = Depends(get_registry),
    max_bytes: int = Depends(_max_upload_bytes),
):
    """Upload one captured image into a room.

    Raises (as JSON errors):
        400: Missing/invalid room or missing file part
        415: Declared content type is not ``image/*``
        413: Payload larger than the configured limit (6 MB by default)
        500: Anything unexpected
    """
    room_id = normalize_room_id(room)
    if room_id is None:
        return _error("A valid room is required", 400)
    if file is None:
        return _error("file is required", 400)

    mime = (file.content_type or "").strip().lower() or DEFAULT_MIME_TYPE
    if not mime.startswith(IMAGE_MIME_PREFIX):
        return _error("Only image uploads are supported", 415)

    try:
        # One byte past the limit is enough to detect an oversize capture.
        data = await file.read(max_bytes + 1)
        if len(data) > max_bytes:
            return _error(
                f"Image too large. Keep each capture under {max_bytes // (1024 * 1024)} MB.",
                413,
            )

        created_at = registry.now()
        record = ImageRecord(
            id=make_image_id(),
            name=file.filename or f"scan-{created_at}.jpg",
            mime=mime,
            size=len(data),
            created_at=created_at,
            data=data,
        )
        registry.add_image(room_id, record)
    except Exception:
        logger.exception("Image upload to room %s failed", room_id)
        return _error("Failed to upload image", 500)
    finally:
        await file.close()

    logger.info(
        "Image %s uploaded to room %s (%s, %d bytes)",
        record.id, room_id, record.mime, record.size,
    )
    return UploadResponse(image=ImageMetadata(**record.metadata()))


# =============================================================================
# Manifest
# =============================================================================


@router.get("/manifest", response_model=ManifestResponse, responses=_BAD_REQUEST)
async def get_manifest(
    room: Optional[str] = Query(None),
    since: Optional[str] = Query(None),
    registry: RoomRegistry = Depends(get_registry),
):
    """List images uploaded after ``since`` (ms epoch, default 0).

    A valid room id that was never created yields an empty list rather than
    404: the phone may poll before the desktop's create call lands.
    """
    room_id = normalize_room_id(room)
    if room_id is None:
        return _error("A valid room is required", 400)
    cursor = parse_since(since)
    if cursor is None:
        return _error("since must be a non-negative number", 400)

    images = [
        ImageMetadata(**img.metadata())
        for img in registry.list_images(room_id)
        if img.created_at > cursor
    ]
    return ManifestResponse(images=images, serverTime=registry.now())


# =============================================================================
# Image delivery
# =============================================================================


@router.get("/image", responses={**_BAD_REQUEST, 404: {"model": ErrorResponse}})
async def get_image(
    room: Optional[str] = Query(None),
    id_: Optional[str] = Query(None, alias="id"),
    consume: Optional[str] = Query(None),
    registry: RoomRegistry = Depends(get_registry),
):
    """Return an image's raw bytes.

    With ``consume=1`` the image is removed in the same step, so a second
    fetch returns 404. Never-uploaded, consumed, and expired images are
    indistinguishable to the caller.
    """
    room_id = normalize_room_id(room)
    image_id = normalize_image_id(id_)
    if room_id is None or image_id is None:
        return _error("room and id are required", 400)

    if parse_consume_flag(consume):
        image = registry.take_image(room_id, image_id)
        if image is not None:
            logger.info("Image %s consumed from room %s", image_id, room_id)
    else:
        image = registry.get_image(room_id, image_id)

    if image is None:
        return _error("Image not found", 404)

    return Response(
        content=image.data,
        media_type=image.mime,
        headers={
            "Cache-Control": "no-store",
            "Content-Length": str(image.size),
            "Content-Disposition": _content_disposition(image.name),
        },
    )
