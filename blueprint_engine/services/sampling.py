"""
Blueprint Engine Sampling Service
Registers images into the session cache and samples colors at normalized coordinates.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from blueprint_engine.errors import DecodeError, Err, ErrorKind, Ok, Result, invalid_input
from blueprint_engine.services.cache import ImageSessionCache, RegisteredImage
from blueprint_engine.services.colors.lab import RGB, LabColor, rgb_to_hex, rgb_to_lab
from blueprint_engine.services.colors.threads import Match, ThreadCatalog, match_thread
from blueprint_engine.services.imaging import decode_base64

SAMPLE_METHOD = "lab-d65-deltae76"


@dataclass(frozen=True)
class SampleResult:
    rgb: RGB
    hex: str
    lab: LabColor
    match: Match
    x: float
    y: float
    radius: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rgb": list(self.rgb),
            "hex": self.hex,
            "lab": self.lab.to_dict(),
            "match": self.match.to_dict(),
            "method": SAMPLE_METHOD,
            "input_normalized": {"x": self.x, "y": self.y, "radius": self.radius},
        }


def _decode_payload(image_base64: str) -> Result[bytes]:
    try:
        return Ok(decode_base64(image_base64))
    except DecodeError as e:
        return Err(ErrorKind.DECODE_FAILURE, str(e))


def register_image(cache: ImageSessionCache, image_base64: str,
                   max_size: int) -> Result[RegisteredImage]:
    """
    Decode a base64 image into the cache.

    Args:
        cache: Image session cache
        image_base64: Base64 string or data URL
        max_size: Longest edge after resizing

    Returns:
        Ok(RegisteredImage) or Err (INVALID_INPUT / DECODE_FAILURE)
    """
    if not image_base64 or not image_base64.strip():
        return invalid_input("image_base64 is required")

    payload = _decode_payload(image_base64)
    if isinstance(payload, Err):
        return payload
    return cache.register(payload.value, max_size)


def sample_color(cache: ImageSessionCache, catalog: Optional[ThreadCatalog],
                 image_id: Optional[str] = None, image_base64: Optional[str] = None,
                 x: float = 0.5, y: float = 0.5, radius: int = 0,
                 max_size: int = 2048) -> Result[SampleResult]:
    """
    Average the color around (x, y) and match it to DMC threads.

    Args:
        cache: Image session cache
        catalog: Thread catalog, None when unavailable
        image_id: ID from register_image (preferred)
        image_base64: Inline image, registered on the fly
        x, y: Normalized coordinates in [0, 1]
        radius: Window half-size in pixels
        max_size: Resize target for inline images

    Returns:
        Ok(SampleResult) or Err
    """
    if not (0.0 <= x <= 1.0 and 0.0 <= y <= 1.0):
        return invalid_input(f"Coordinates must be in [0, 1], got ({x}, {y})")
    if radius < 0:
        return invalid_input(f"radius must be non-negative, got {radius}")
    if not image_id and not image_base64:
        return invalid_input("Provide either image_id or image_base64")

    image_bytes = None
    if not image_id:
        payload = _decode_payload(image_base64)
        if isinstance(payload, Err):
            return payload
        image_bytes = payload.value

    resolved = cache.resolve(image_id=image_id, image_bytes=image_bytes, max_dimension=max_size)
    if isinstance(resolved, Err):
        return resolved

    rgb = cache.sample(resolved.value, x, y, radius)
    match = match_thread(catalog, rgb=rgb)
    if isinstance(match, Err):
        return match

    return Ok(SampleResult(
        rgb=rgb,
        hex=rgb_to_hex(rgb),
        lab=rgb_to_lab(rgb),
        match=match.value,
        x=x,
        y=y,
        radius=radius,
    ))
