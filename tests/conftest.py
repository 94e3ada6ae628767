"""
Test configuration and fixtures for Blueprint Engine tests.
"""
import base64
import io

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from blueprint_engine.main import app
from blueprint_engine.services.cache import CachedImage


def encode_png(pixels: np.ndarray) -> bytes:
    """Encode an (H, W, 3) uint8 RGB array as PNG bytes."""
    buffer = io.BytesIO()
    Image.fromarray(np.asarray(pixels, dtype=np.uint8)).save(buffer, format="PNG")
    return buffer.getvalue()


def solid_image(width: int, height: int, rgb) -> np.ndarray:
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[:, :] = rgb
    return img


def split_image(width: int, height: int, left_rgb, right_rgb) -> np.ndarray:
    """Left half one color, right half another."""
    img = solid_image(width, height, left_rgb)
    img[:, width // 2:] = right_rgb
    return img


@pytest.fixture
def test_client():
    """Create test client for the FastAPI app (runs startup/shutdown)."""
    with TestClient(app) as client:
        yield client


@pytest.fixture(autouse=True)
def reset_metrics():
    """Reset metrics before each test."""
    from blueprint_engine.utils.metrics import reset_metrics
    reset_metrics()


@pytest.fixture
def png_bytes():
    """Factory: RGB array -> PNG bytes."""
    return encode_png


@pytest.fixture
def png_base64():
    """Factory: RGB array -> base64 PNG string."""
    def _encode(pixels):
        return base64.b64encode(encode_png(pixels)).decode("ascii")
    return _encode


@pytest.fixture
def cached_image():
    """Factory: RGB array -> CachedImage without going through the codec."""
    def _make(pixels, image_id="test-image"):
        pixels = np.ascontiguousarray(pixels, dtype=np.uint8)
        pixels.setflags(write=False)
        height, width = pixels.shape[:2]
        return CachedImage(id=image_id, buffer=pixels, width=width, height=height, last_accessed=0.0)
    return _make
