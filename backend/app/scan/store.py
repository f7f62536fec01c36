"""In-memory room registry with TTL-based lazy eviction.

Images are NEVER written to disk. The registry lives for the process
lifetime only and is not shared between processes: a deployment running
several workers must route a room's phone and desktop to the same one.

Two independent expiry policies apply:
    - an image expires ``image_ttl`` after it was uploaded
    - a room expires ``room_ttl`` after it was last touched

There is no background task. Every public operation first sweeps expired
state, so eviction stays correct even when the process sleeps between
requests.

Thread Safety:
    A single ``threading.Lock`` guards the whole registry. Every public
    method, including the sweep it runs, executes entirely inside it.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Tuple

from app.config import get_config

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def wall_clock_ms() -> int:
    """Milliseconds since the Unix epoch."""
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class ImageRecord:
    id:         str
    name:       str
    mime:       str
    size:       int
    created_at: int
    data:       bytes = field(repr=False)

    def metadata(self) -> dict:
        """Wire representation without the payload."""
        return {
            "id": self.id,
            "name": self.name,
            "mime": self.mime,
            "size": self.size,
            "createdAt": self.created_at,
        }


@dataclass
class Room:
    room_id:    str
    created_at: int
    touched_at: int
    images:     Dict[str, ImageRecord] = field(default_factory=dict)

    def touch(self, now: int) -> None:
        self.touched_at = max(self.touched_at, now)


class RoomRegistry:
    """Process-wide store of rooms and their images.

    Args:
        image_ttl_seconds: Lifetime of an image, counted from upload.
        room_ttl_seconds:  Idle lifetime of a room, counted from last touch.
        clock:             Returns "now" in epoch milliseconds. Injectable
                           so tests can move time.
    """

    def __init__(
        self,
        image_ttl_seconds: int = 5 * 60,
        room_ttl_seconds: int = 30 * 60,
        clock: Optional[Clock] = None,
    ) -> None:
        self._image_ttl_ms = image_ttl_seconds * 1000
        self._room_ttl_ms = room_ttl_seconds * 1000
        self._clock: Clock = clock or wall_clock_ms
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def image_ttl_ms(self) -> int:
        return self._image_ttl_ms

    @property
    def room_ttl_ms(self) -> int:
        return self._room_ttl_ms

    def now(self) -> int:
        return self._clock()

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    def ensure_room(self, room_id: str) -> Room:
        """Create the room if needed and touch it.

        Returns a snapshot; mutating it does not affect the registry.
        """
        with self._lock:
            now = self._clock()
            self._sweep_locked(now)
            room = self._ensure_locked(room_id, now)
            return replace(room, images=dict(room.images))

    def clear_room(self, room_id: str) -> int:
        """Drop every image in the room. The room itself stays registered."""
        with self._lock:
            now = self._clock()
            self._sweep_locked(now)
            room = self._ensure_locked(room_id, now)
            dropped = len(room.images)
            room.images.clear()
            return dropped

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def add_image(self, room_id: str, image: ImageRecord) -> None:
        """Insert an image, replacing any image with the same id."""
        with self._lock:
            now = self._clock()
            self._sweep_locked(now)
            room = self._ensure_locked(room_id, now)
            room.images[image.id] = image

    def list_images(self, room_id: str) -> List[ImageRecord]:
        """All images in the room, oldest first (ties broken by id)."""
        with self._lock:
            now = self._clock()
            self._sweep_locked(now)
            room = self._ensure_locked(room_id, now)
            return sorted(room.images.values(), key=lambda img: (img.created_at, img.id))

    def get_image(self, room_id: str, image_id: str) -> Optional[ImageRecord]:
        with self._lock:
            now = self._clock()
            self._sweep_locked(now)
            room = self._ensure_locked(room_id, now)
            return room.images.get(image_id)

    def take_image(self, room_id: str, image_id: str) -> Optional[ImageRecord]:
        """Remove and return an image. A second take of the same id returns None."""
        with self._lock:
            now = self._clock()
            self._sweep_locked(now)
            room = self._ensure_locked(room_id, now)
            return room.images.pop(image_id, None)

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def sweep(self) -> Tuple[int, int]:
        """Evict expired images and rooms.

        Returns:
            (evicted_images, evicted_rooms)
        """
        with self._lock:
            return self._sweep_locked(self._clock())

    def stats(self) -> dict:
        with self._lock:
            self._sweep_locked(self._clock())
            return {
                "rooms": len(self._rooms),
                "images": sum(len(room.images) for room in self._rooms.values()),
            }

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _ensure_locked(self, room_id: str, now: int) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(room_id=room_id, created_at=now, touched_at=now)
            self._rooms[room_id] = room
            logger.info("Room %s created", room_id)
        else:
            room.touch(now)
        return room

    def _sweep_locked(self, now: int) -> Tuple[int, int]:
        image_cutoff = now - self._image_ttl_ms
        room_cutoff = now - self._room_ttl_ms

        evicted_images = 0
        for room in self._rooms.values():
            stale = [img_id for img_id, img in room.images.items() if img.created_at < image_cutoff]
            for img_id in stale:
                del room.images[img_id]
            evicted_images += len(stale)

        # Room expiry looks only at touched_at, not at whether images remain.
        expired_rooms = [rid for rid, room in self._rooms.items() if room.touched_at < room_cutoff]
        for rid in expired_rooms:
            del self._rooms[rid]
            logger.info("Room %s expired", rid)

        if evicted_images:
            logger.debug("Sweep evicted %d expired images", evicted_images)
        return evicted_images, len(expired_rooms)


# ---------------------------------------------------------------------------
# Process-wide instance
# ---------------------------------------------------------------------------

_registry: Optional[RoomRegistry] = None
_registry_lock = threading.Lock()


def get_registry() -> RoomRegistry:
    """Return the process-wide registry, building it from config on first use."""
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                scan_cfg = get_config().scan
                _registry = RoomRegistry(
                    image_ttl_seconds=scan_cfg.image_ttl_seconds,
                    room_ttl_seconds=scan_cfg.room_ttl_seconds,
                )
                logger.info(
                    "Room registry ready (image_ttl=%ss, room_ttl=%ss)",
                    scan_cfg.image_ttl_seconds,
                    scan_cfg.room_ttl_seconds,
                )
    return _registry


def set_registry(registry: Optional[RoomRegistry]) -> None:
    """Replace the process-wide registry (None resets to lazy construction)."""
    global _registry
    _registry = registry
