"""
Blueprint Engine Pipeline
Chains LAB conversion, k-means quantization, region segmentation,
contour vectorization and thread matching into one blueprint result.
"""
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from blueprint_engine.config import config
from blueprint_engine.errors import Err, InternalInvariantError, Result, Ok, invalid_input
from blueprint_engine.services.blueprint.regions import MERGE_MAJORITY, MERGE_STRATEGIES, Region, segment
from blueprint_engine.services.blueprint.vectorize import vectorize_regions
from blueprint_engine.services.cache import CachedImage
from blueprint_engine.services.colors.lab import (
    LabColor,
    RGB,
    lab_to_rgb,
    rgb_array_to_lab,
    rgb_to_hex,
    round_half_up,
)
from blueprint_engine.services.colors.quantize import quantize
from blueprint_engine.services.colors.rng import SeededRNG
from blueprint_engine.services.colors.threads import ThreadCatalog, match_thread
from blueprint_engine.services.imaging import encode_png_base64
from blueprint_engine.utils.logging import get_logger

BLUEPRINT_METHOD = "lab-kmeans-deltae76-contours"


@dataclass
class BlueprintParams:
    """Tunable parameters for one blueprint run."""
    palette_size: int
    seed: int = 42
    min_region_area: int = 0
    merge_small_regions: Optional[bool] = None
    merge_strategy: str = MERGE_MAJORITY
    epsilon: float = 1.0
    max_iterations: int = 20
    include_dmc: bool = True
    return_preview: bool = False

    @property
    def merge_enabled(self) -> bool:
        """Merging is on when a minimum area is set, unless explicitly disabled."""
        return self.min_region_area > 0 and self.merge_small_regions is not False


@dataclass
class PaletteEntry:
    index: int
    rgb: RGB
    hex: str
    lab: LabColor
    count: int
    percent: float
    dmc_match: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "rgb": list(self.rgb),
            "hex": self.hex,
            "lab": self.lab.to_dict(),
            "count": self.count,
            "percent": self.percent,
            "dmc_match": self.dmc_match,
        }


@dataclass
class BlueprintResult:
    width: int
    height: int
    palette: List[PaletteEntry]
    regions: List[Region]
    total_pixels: int
    method: str = BLUEPRINT_METHOD
    preview_png_base64: Optional[str] = None
    timings: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "palette": [entry.to_dict() for entry in self.palette],
            "regions": [region.to_dict() for region in self.regions],
            "total_pixels": self.total_pixels,
            "method": self.method,
            "preview_png_base64": self.preview_png_base64,
            "timings": self.timings,
        }


def validate_params(params: BlueprintParams) -> Optional[Err]:
    """Return an INVALID_INPUT error for out-of-range parameters, None when valid."""
    if not config.validate_palette_size(params.palette_size):
        return invalid_input(f"palette_size must be between 1 and {config.MAX_PALETTE_SIZE}")
    if params.min_region_area < 0:
        return invalid_input("min_region_area must be non-negative")
    if params.merge_strategy not in MERGE_STRATEGIES:
        return invalid_input(f"merge_strategy must be one of: {', '.join(MERGE_STRATEGIES)}")
    if not config.validate_epsilon(params.epsilon):
        return invalid_input("epsilon must be between 0 and 50")
    if params.max_iterations < 1:
        return invalid_input("max_iterations must be at least 1")
    return None


def _elapsed_ms(start: float) -> float:
    return round((time.time() - start) * 1000, 2)


def _build_palette(pixels: np.ndarray, labels: np.ndarray, clusters: np.ndarray,
                   total_pixels: int) -> List[PaletteEntry]:
    """Palette entries in cluster order, colored by member mean RGB."""
    k = clusters.shape[0]
    counts = np.bincount(labels, minlength=k)
    sums = np.stack(
        [np.bincount(labels, weights=pixels[:, c].astype(np.float64), minlength=k) for c in range(3)],
        axis=1,
    )

    palette = []
    for i in range(k):
        count = int(counts[i])
        if count > 0:
            mean = round_half_up(sums[i] / count)
            rgb = (int(mean[0]), int(mean[1]), int(mean[2]))
        else:
            rgb = lab_to_rgb(clusters[i])
        palette.append(PaletteEntry(
            index=i,
            rgb=rgb,
            hex=rgb_to_hex(rgb),
            lab=LabColor(float(clusters[i][0]), float(clusters[i][1]), float(clusters[i][2])),
            count=count,
            percent=round(count / total_pixels * 100, 2),
        ))
    return palette


def generate_blueprint(image: CachedImage, params: BlueprintParams,
                       catalog: Optional[ThreadCatalog] = None,
                       request_id: Optional[str] = None) -> BlueprintResult:
    """
    Turn a decoded image into a paint-by-number blueprint.

    Args:
        image: Cached image whose buffer is (height, width, 3) RGB
        params: Validated blueprint parameters
        catalog: Thread catalog; None skips DMC matching
        request_id: Request ID for log correlation

    Returns:
        BlueprintResult with palette sorted by pixel count (descending)

    Raises:
        InternalInvariantError: If an intermediate result is inconsistent
    """
    logger = get_logger()
    log_extra = {"request_id": request_id}
    width, height = image.width, image.height
    total_pixels = width * height
    timings: Dict[str, float] = {}
    pipeline_start = time.time()

    pixels = np.asarray(image.buffer).reshape(-1, 3)
    if total_pixels == 0 or pixels.shape[0] != total_pixels:
        raise InternalInvariantError(
            f"Pixel buffer has {pixels.shape[0]} pixels, expected {total_pixels}"
        )

    # Step 1: LAB conversion
    step_start = time.time()
    pixels_lab = rgb_array_to_lab(pixels)
    timings["lab_ms"] = _elapsed_ms(step_start)

    # Step 2: k-means
    step_start = time.time()
    quantized = quantize(pixels_lab, params.palette_size, SeededRNG(params.seed), params.max_iterations)
    labels = np.array(quantized.labels, dtype=np.int64, copy=True)
    clusters = quantized.clusters
    timings["quantize_ms"] = _elapsed_ms(step_start)

    if labels.size == 0:
        raise InternalInvariantError("Quantization produced an empty label map")
    if int(labels.max()) >= clusters.shape[0]:
        raise InternalInvariantError(
            f"Label {int(labels.max())} out of range for {clusters.shape[0]} clusters"
        )

    logger.debug("Quantization complete", extra={
        **log_extra, "clusters": int(clusters.shape[0]), "iterations": quantized.iterations,
    })

    # Step 3: regions (labels rewritten in place by merging)
    step_start = time.time()
    segmentation = segment(
        labels, width, height, params.min_region_area, params.merge_enabled, params.merge_strategy, pixels_lab
    )
    timings["segment_ms"] = _elapsed_ms(step_start)

    # Step 4: contours
    step_start = time.time()
    vectorize_regions(segmentation, width, height, params.epsilon)
    timings["vectorize_ms"] = _elapsed_ms(step_start)

    # Step 5: palette sorted by count, stable
    palette = _build_palette(pixels, labels, clusters, total_pixels)
    if sum(entry.count for entry in palette) != total_pixels:
        raise InternalInvariantError("Palette counts do not cover the image")

    order = sorted(range(len(palette)), key=lambda i: -palette[i].count)
    remap = np.empty(len(palette), dtype=np.int64)
    remap[np.array(order, dtype=np.int64)] = np.arange(len(palette), dtype=np.int64)

    palette = [palette[i] for i in order]
    for position, entry in enumerate(palette):
        entry.index = position

    for region in segmentation.regions:
        if not 0 <= region.label_index < len(remap):
            raise InternalInvariantError(
                f"Region {region.id} has label {region.label_index} outside the palette"
            )
        region.label_index = int(remap[region.label_index])

    # Step 6: thread matching
    step_start = time.time()
    if params.include_dmc and catalog is not None:
        for entry in palette:
            match = match_thread(catalog, rgb=entry.rgb)
            if isinstance(match, Ok):
                entry.dmc_match = match.value.to_dict()
    timings["dmc_ms"] = _elapsed_ms(step_start)

    # Step 7: preview
    preview = None
    if params.return_preview:
        step_start = time.time()
        preview = encode_png_base64(remap[labels], [entry.rgb for entry in palette], width, height)
        timings["preview_ms"] = _elapsed_ms(step_start)

    timings["total_ms"] = _elapsed_ms(pipeline_start)

    logger.info("Blueprint generated", extra={
        **log_extra,
        "width": width,
        "height": height,
        "palette_size": len(palette),
        "regions": len(segmentation.regions),
        "total_ms": timings["total_ms"],
    })

    return BlueprintResult(
        width=width,
        height=height,
        palette=palette,
        regions=segmentation.regions,
        total_pixels=total_pixels,
        preview_png_base64=preview,
        timings=timings,
    )


def run_blueprint(image: CachedImage, params: BlueprintParams,
                  catalog: Optional[ThreadCatalog] = None,
                  request_id: Optional[str] = None) -> Result[BlueprintResult]:
    """Validate params, then generate. Pipeline bugs still raise."""
    error = validate_params(params)
    if error is not None:
        return error
    return Ok(generate_blueprint(image, params, catalog, request_id))
