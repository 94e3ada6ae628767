"""
Blueprint Engine Imaging Utilities
Handles base64 payloads, image decoding, long-edge resizing and PNG encoding.
"""
import base64
import binascii
import io
import math
from typing import Sequence, Tuple

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from blueprint_engine.errors import DecodeError


def extract_base64(data: str) -> str:
    """Strip a ``data:<mime>;base64,`` prefix if present."""
    data = data.strip()
    if data.startswith("data:") and "," in data:
        return data.split(",", 1)[1]
    return data


def decode_base64(data: str) -> bytes:
    """
    Decode a base64 string (optionally a data URL) to raw bytes.

    Raises:
        DecodeError: If the payload is not valid base64
    """
    try:
        return base64.b64decode(extract_base64(data), validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64 image data: {str(e)}")


def decode_image(image_bytes: bytes) -> np.ndarray:
    """
    Decode image bytes to an RGB numpy array.

    Args:
        image_bytes: Encoded image (PNG, JPEG, WebP, ...)

    Returns:
        uint8 array of shape (height, width, 3)

    Raises:
        DecodeError: For unreadable, corrupt or empty images
    """
    if not image_bytes:
        raise DecodeError("Empty image payload")

    try:
        pil_image = Image.open(io.BytesIO(image_bytes))
        pil_image.load()

        # Convert to RGB if necessary
        if pil_image.mode != "RGB":
            pil_image = pil_image.convert("RGB")

        rgb_array = np.array(pil_image, dtype=np.uint8)
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(f"Failed to decode image: {str(e)}")

    height, width = rgb_array.shape[:2]
    if width == 0 or height == 0:
        raise DecodeError("Decoded image has zero dimensions")

    return rgb_array


def fit_within(width: int, height: int, max_dim: int) -> Tuple[int, int]:
    """
    Scale (width, height) so the longest edge is at most max_dim.

    Never upscales; rounds half-up and keeps both edges at least 1px.
    """
    current_max = max(width, height)
    if current_max <= max_dim:
        return width, height

    scale = max_dim / current_max
    new_width = max(1, int(math.floor(width * scale + 0.5)))
    new_height = max(1, int(math.floor(height * scale + 0.5)))
    return new_width, new_height


def resize_long_edge(img_rgb: np.ndarray, max_dim: int) -> np.ndarray:
    """
    Resize image so the longest edge is at most max_dim pixels.

    Args:
        img_rgb: Input image (H, W, 3)
        max_dim: Maximum edge size

    Returns:
        Resized image, or the input itself when already small enough
    """
    height, width = img_rgb.shape[:2]
    new_width, new_height = fit_within(width, height, max_dim)

    if (new_width, new_height) == (width, height):
        return img_rgb

    # INTER_AREA for downscaling
    return cv2.resize(img_rgb, (new_width, new_height), interpolation=cv2.INTER_AREA)


def decode_and_resize(image_bytes: bytes, max_dim: int) -> np.ndarray:
    """Decode bytes and fit the result within max_dim. The returned buffer is read-only."""
    pixels = np.ascontiguousarray(resize_long_edge(decode_image(image_bytes), max_dim))
    pixels.setflags(write=False)
    return pixels


def encode_indexed_png(labels: np.ndarray, palette_rgb: Sequence[Sequence[int]],
                       width: int, height: int) -> bytes:
    """
    Render a label map as PNG, one flat color per palette index.

    Uses an indexed (mode "P") image when the palette fits in 256 entries,
    otherwise an RGB image.
    """
    grid = np.asarray(labels, dtype=np.int64).reshape(height, width)
    colors = np.asarray(palette_rgb, dtype=np.uint8).reshape(-1, 3)

    if len(colors) <= 256:
        image = Image.fromarray(grid.astype(np.uint8))
        # putpalette switches the "L" image to "P"
        flat_palette = colors.flatten().tolist()
        image.putpalette(flat_palette + [0] * (768 - len(flat_palette)))
    else:
        image = Image.fromarray(colors[grid])

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def encode_png_base64(labels: np.ndarray, palette_rgb: Sequence[Sequence[int]],
                      width: int, height: int) -> str:
    """Base64 string of ``encode_indexed_png`` output."""
    return base64.b64encode(encode_indexed_png(labels, palette_rgb, width, height)).decode("ascii")
