"""
Blueprint Engine Configuration
Manages environment variables and defaults for the blueprint, sampling and thread matching services.
"""
import os
from pathlib import Path
from typing import Optional


_PACKAGE_DIR = Path(__file__).resolve().parent


class Config:
    """Configuration class for Blueprint Engine services."""

    # Service identity
    SERVICE_NAME: str = "blueprint-engine"
    VERSION: str = os.environ.get("BLUEPRINT_VERSION", "1.0.0")

    # Upload limits and decode targets
    MAX_FILE_MB: int = int(os.environ.get("BLUEPRINT_MAX_FILE_MB", "10"))
    DEFAULT_MAX_SIZE: int = int(os.environ.get("BLUEPRINT_DEFAULT_MAX_SIZE", "2048"))
    MIN_MAX_SIZE: int = 16
    MAX_MAX_SIZE: int = 4096

    # Image session cache
    CACHE_MAX_ENTRIES: int = int(os.environ.get("BLUEPRINT_CACHE_MAX_ENTRIES", "5"))

    # Thread dataset
    DMC_DATASET_PATH: str = os.environ.get(
        "BLUEPRINT_DMC_DATASET_PATH", str(_PACKAGE_DIR / "data" / "dmc.json")
    )

    # Quantization and vectorization defaults
    DEFAULT_SEED: int = int(os.environ.get("BLUEPRINT_DEFAULT_SEED", "42"))
    DEFAULT_MAX_ITERATIONS: int = int(os.environ.get("BLUEPRINT_DEFAULT_MAX_ITERATIONS", "20"))
    DEFAULT_EPSILON: float = float(os.environ.get("BLUEPRINT_DEFAULT_EPSILON", "1.0"))
    MAX_PALETTE_SIZE: int = int(os.environ.get("BLUEPRINT_MAX_PALETTE_SIZE", "64"))

    # Timeouts (milliseconds)
    TIMEOUT_BLUEPRINT_MS: int = int(os.environ.get("BLUEPRINT_TIMEOUT_MS", "30000"))

    # Logging and observability
    LOG_LEVEL: str = os.environ.get("BLUEPRINT_LOG_LEVEL", "INFO")
    METRICS_ENABLED: bool = bool(int(os.environ.get("BLUEPRINT_METRICS_ENABLED", "1")))

    # CORS settings
    ALLOWED_ORIGINS: str = os.environ.get("BLUEPRINT_ALLOWED_ORIGINS", "")

    # Supported upload formats
    SUPPORTED_MIME_TYPES = ["image/jpeg", "image/png", "image/webp"]

    @classmethod
    def validate_palette_size(cls, palette_size: int) -> bool:
        """Validate requested palette size."""
        return 1 <= palette_size <= cls.MAX_PALETTE_SIZE

    @classmethod
    def validate_epsilon(cls, epsilon: float) -> bool:
        """Validate RDP simplification tolerance."""
        return 0.0 <= epsilon <= 50.0

    @classmethod
    def allowed_origins(cls) -> Optional[list]:
        """Parse comma-separated CORS origins, None when unset."""
        if not cls.ALLOWED_ORIGINS:
            return None
        return [origin.strip() for origin in cls.ALLOWED_ORIGINS.split(",") if origin.strip()]


# Global config instance
config = Config()
