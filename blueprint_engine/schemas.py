"""
Blueprint Engine API Schemas
Pydantic models for image registration, blueprint, sampling and thread matching.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from blueprint_engine.config import config


# ============================================================================
# SHARED
# ============================================================================

class LabModel(BaseModel):
    """CIE L*a*b* color."""
    l: float
    a: float
    b: float


class RGBInput(BaseModel):
    """RGB triple; components are rounded and clamped to 0-255 before matching."""
    r: float
    g: float
    b: float


class ErrorDetail(BaseModel):
    """Error body nested under ``detail``."""
    error: str = Field(..., description="Error kind, e.g. 'invalid_input'")
    message: str = Field(..., description="Human-readable message")


class ErrorResponse(BaseModel):
    detail: ErrorDetail


# ============================================================================
# IMAGE REGISTRATION
# ============================================================================

class ImageRegisterRequest(BaseModel):
    """Register a base64 image in the session cache."""
    image_base64: str = Field(..., min_length=1, description="Base64 image data or data URL")
    max_size: int = Field(
        config.DEFAULT_MAX_SIZE,
        ge=config.MIN_MAX_SIZE,
        le=config.MAX_MAX_SIZE,
        description="Longest edge after resizing (no upscaling)"
    )


class ImageRegisterResponse(BaseModel):
    image_id: str = Field(..., description="Content hash used as cache key")
    width: int
    height: int
    cached: bool = Field(..., description="True when the image was already registered")


# ============================================================================
# THREAD MATCHING
# ============================================================================

class ThreadMatchRequest(BaseModel):
    """Match a color to DMC threads. rgb takes precedence over hex."""
    rgb: Optional[RGBInput] = None
    hex: Optional[str] = Field(None, description="Color as #RRGGBB or RRGGBB")


class ThreadMatchModel(BaseModel):
    id: str
    name: str
    hex: str
    delta_e: float


class NormalizedColor(BaseModel):
    rgb: List[int] = Field(..., min_length=3, max_length=3)
    hex: str


class ThreadMatchResponse(BaseModel):
    best: ThreadMatchModel
    alternatives: List[ThreadMatchModel] = Field(..., max_length=5)
    method: str
    input_normalized: NormalizedColor


# ============================================================================
# SAMPLING
# ============================================================================

class SampleRequest(BaseModel):
    """Sample the mean color around a normalized point."""
    image_id: Optional[str] = None
    image_base64: Optional[str] = None
    x: float = Field(..., description="Normalized x in [0, 1]")
    y: float = Field(..., description="Normalized y in [0, 1]")
    radius: int = Field(0, description="Window half-size in pixels")
    max_size: int = Field(config.DEFAULT_MAX_SIZE, ge=config.MIN_MAX_SIZE, le=config.MAX_MAX_SIZE)


class SamplePoint(BaseModel):
    x: float
    y: float
    radius: int


class SampleResponse(BaseModel):
    rgb: List[int] = Field(..., min_length=3, max_length=3)
    hex: str
    lab: LabModel
    match: ThreadMatchResponse
    method: str
    input_normalized: SamplePoint


# ============================================================================
# BLUEPRINT
# ============================================================================

class BlueprintRequest(BaseModel):
    """Generate a paint-by-number blueprint from a registered or inline image."""
    image_id: Optional[str] = None
    image_base64: Optional[str] = None
    palette_size: int = Field(..., description=f"Number of colors (1-{config.MAX_PALETTE_SIZE})")
    seed: int = Field(config.DEFAULT_SEED, description="Seed for deterministic clustering")
    min_region_area: int = Field(0, ge=0, description="Merge regions smaller than this (0 = off)")
    merge_small_regions: Optional[bool] = Field(
        None, description="Set false to keep small regions even when min_region_area > 0"
    )
    merge_strategy: str = Field(
        "majority", description="'majority' (most frequent bordering label) or 'delta_e' (closest neighbor color)"
    )
    epsilon: float = Field(config.DEFAULT_EPSILON, description="Contour simplification tolerance in pixels")
    max_iterations: int = Field(config.DEFAULT_MAX_ITERATIONS, ge=1, le=100)
    include_dmc: bool = Field(True, description="Attach DMC thread matches to palette entries")
    return_preview: bool = Field(False, description="Include an indexed PNG preview")
    max_size: int = Field(config.DEFAULT_MAX_SIZE, ge=config.MIN_MAX_SIZE, le=config.MAX_MAX_SIZE)

    @field_validator("image_id", "image_base64")
    @classmethod
    def empty_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v


class Point(BaseModel):
    x: int
    y: int


class BBox(BaseModel):
    x0: int
    y0: int
    x1: int = Field(..., description="Exclusive")
    y1: int = Field(..., description="Exclusive")


class RegionModel(BaseModel):
    id: int
    label_index: int = Field(..., description="Index into the sorted palette")
    area_px: int
    bbox: BBox
    contours: List[List[Point]]


class PaletteEntryModel(BaseModel):
    index: int
    rgb: List[int] = Field(..., min_length=3, max_length=3)
    hex: str
    lab: LabModel
    count: int
    percent: float
    dmc_match: Optional[ThreadMatchResponse] = None


class BlueprintResponse(BaseModel):
    width: int
    height: int
    palette: List[PaletteEntryModel]
    regions: List[RegionModel]
    total_pixels: int
    method: str
    preview_png_base64: Optional[str] = None
    timings: Dict[str, float]


# ============================================================================
# HEALTH
# ============================================================================

class CacheStats(BaseModel):
    entries: int
    hits: int
    misses: int
    max_entries: int


class HealthResponse(BaseModel):
    """Health check response."""
    ok: bool = Field(True, description="Service health status")
    version: str = Field(..., description="Service version")
    service: str = Field(config.SERVICE_NAME, description="Service name")
    uptime_sec: float
    datasets: Dict[str, int] = Field(..., description="Loaded dataset sizes, e.g. {'dmc': 329}")
    cache: CacheStats
    memory_mb: float = Field(..., description="Resident set size of the process")
