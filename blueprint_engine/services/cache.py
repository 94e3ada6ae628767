"""
Blueprint Engine Image Session Cache
Bounded LRU cache of decoded images so repeated requests skip decoding.
"""
import hashlib
import itertools
import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional

import numpy as np

from blueprint_engine.errors import (
    DecodeError,
    Err,
    ErrorKind,
    InternalInvariantError,
    Ok,
    Result,
    invalid_input,
    not_found,
)
from blueprint_engine.services.colors.lab import RGB, round_half_up
from blueprint_engine.services.imaging import decode_and_resize
from blueprint_engine.utils.logging import get_logger


@dataclass
class CachedImage:
    """Decoded, resized image owned by the cache."""
    id: str
    buffer: np.ndarray
    width: int
    height: int
    last_accessed: float
    access_seq: int = 0


@dataclass(frozen=True)
class RegisteredImage:
    image_id: str
    width: int
    height: int
    cached: bool

    def to_dict(self) -> Dict[str, object]:
        return {
            "image_id": self.image_id,
            "width": self.width,
            "height": self.height,
            "cached": self.cached,
        }


def image_key(image_bytes: bytes, max_dimension: int) -> str:
    """Cache key: SHA-256 over the raw bytes and the resize target."""
    digest = hashlib.sha256()
    digest.update(image_bytes)
    digest.update(str(max_dimension).encode("ascii"))
    return digest.hexdigest()


class ImageSessionCache:
    """In-memory LRU cache of decoded images keyed by content hash."""

    def __init__(self, max_entries: int = 5,
                 clock: Callable[[], float] = time.monotonic,
                 decoder: Callable[[bytes, int], np.ndarray] = decode_and_resize):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._clock = clock
        self._decoder = decoder
        self._lock = Lock()
        self._entries: Dict[str, CachedImage] = {}
        self._sequence = itertools.count()
        self._hits = 0
        self._misses = 0

    def _touch(self, entry: CachedImage):
        entry.last_accessed = self._clock()
        entry.access_seq = next(self._sequence)

    def get(self, image_id: str) -> Optional[CachedImage]:
        """Look up an image and refresh its access time."""
        with self._lock:
            entry = self._entries.get(image_id)
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            self._touch(entry)
            return entry

    def register(self, image_bytes: bytes, max_dimension: int) -> Result[RegisteredImage]:
        """
        Decode and store an image unless it is already cached.

        Args:
            image_bytes: Raw encoded image
            max_dimension: Longest edge after resizing

        Returns:
            Ok(RegisteredImage) or Err(DECODE_FAILURE / INVALID_INPUT)
        """
        if not image_bytes:
            return invalid_input("Image payload is empty")

        key = image_key(image_bytes, max_dimension)
        existing = self.get(key)
        if existing is not None:
            return Ok(RegisteredImage(key, existing.width, existing.height, cached=True))

        # Decode outside the lock
        try:
            pixels = self._decoder(image_bytes, max_dimension)
        except DecodeError as e:
            get_logger().warning("Image decode failed", extra={"image_id": key[:12], "error": str(e)})
            return Err(ErrorKind.DECODE_FAILURE, str(e))

        height, width = pixels.shape[:2]
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                # Another thread inserted first
                self._touch(entry)
                return Ok(RegisteredImage(key, entry.width, entry.height, cached=True))

            if len(self._entries) >= self.max_entries:
                self._evict_lru()

            entry = CachedImage(id=key, buffer=pixels, width=width, height=height, last_accessed=0.0)
            self._touch(entry)
            self._entries[key] = entry

        get_logger().debug("Image registered", extra={"image_id": key[:12], "width": width, "height": height})
        return Ok(RegisteredImage(key, width, height, cached=False))

    def resolve(self, image_id: Optional[str] = None, image_bytes: Optional[bytes] = None,
                max_dimension: int = 2048) -> Result[CachedImage]:
        """Return a cached image by id, or register inline bytes and return that."""
        if image_id:
            entry = self.get(image_id)
            if entry is None:
                return not_found(
                    f"Image with ID '{image_id}' not found in cache. "
                    "Register the image first using /v1/images/register."
                )
            return Ok(entry)

        if image_bytes:
            registered = self.register(image_bytes, max_dimension)
            if isinstance(registered, Err):
                return registered
            entry = self.get(registered.value.image_id)
            if entry is None:
                # Evicted between register and get (cache smaller than concurrent load)
                return not_found("Image was evicted before it could be used; retry the request")
            return Ok(entry)

        return invalid_input("Provide either image_id or image_base64")

    @staticmethod
    def sample(image: CachedImage, x: float, y: float, radius: int = 0) -> RGB:
        """
        Mean RGB of the square window around a normalized coordinate.

        Args:
            image: Cached image
            x, y: Normalized coordinates in [0, 1]
            radius: Half-size of the window in pixels

        Raises:
            InternalInvariantError: If the window covers no pixels
        """
        w, h = image.width, image.height
        px = min(max(int(math.floor(x * w)), 0), w - 1)
        py = min(max(int(math.floor(y * h)), 0), h - 1)

        left = max(0, px - radius)
        right = min(w, px + radius + 1)
        top = max(0, py - radius)
        bottom = min(h, py + radius + 1)

        window = image.buffer[top:bottom, left:right].reshape(-1, 3)
        if window.shape[0] == 0:
            raise InternalInvariantError(f"Sampling window at ({px}, {py}) r={radius} is empty")

        mean = round_half_up(window.astype(np.float64).mean(axis=0))
        return int(mean[0]), int(mean[1]), int(mean[2])

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "max_entries": self.max_entries,
            }

    def clear(self):
        """Drop every entry and reset counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def _evict_lru(self):
        """Evict least recently used entry. Caller holds the lock."""
        if not self._entries:
            return

        lru_key = min(
            self._entries.keys(),
            key=lambda k: (self._entries[k].last_accessed, self._entries[k].access_seq),
        )
        del self._entries[lru_key]
        get_logger().debug("Image evicted", extra={"image_id": lru_key[:12]})
