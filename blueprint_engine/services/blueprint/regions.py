"""
Region segmentation for blueprint generation.

Splits a quantized label map into 4-connected flat-color regions, then
optionally folds regions below a minimum area into a neighboring label.
"""

import heapq
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np
from loguru import logger

from blueprint_engine.errors import InternalInvariantError

Point = Tuple[int, int]

MERGE_MAJORITY = "majority"
MERGE_DELTA_E = "delta_e"
MERGE_STRATEGIES = (MERGE_MAJORITY, MERGE_DELTA_E)


@dataclass
class Region:
    """A maximal 4-connected set of pixels sharing one palette label."""
    id: int
    label_index: int
    pixel_indices: np.ndarray
    area_px: int
    bbox: Tuple[int, int, int, int]  # x0, y0 inclusive; x1, y1 exclusive
    contours: List[List[Point]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        x0, y0, x1, y1 = self.bbox
        return {
            "id": self.id,
            "label_index": self.label_index,
            "area_px": self.area_px,
            "bbox": {"x0": x0, "y0": y0, "x1": x1, "y1": y1},
            "contours": [[{"x": x, "y": y} for x, y in contour] for contour in self.contours],
        }


@dataclass
class Segmentation:
    regions: List[Region]
    region_map: np.ndarray  # region id per pixel

    @property
    def total_area(self) -> int:
        return sum(region.area_px for region in self.regions)


def _bbox(pixel_indices: np.ndarray, width: int) -> Tuple[int, int, int, int]:
    xs = pixel_indices % width
    ys = pixel_indices // width
    return int(xs.min()), int(ys.min()), int(xs.max()) + 1, int(ys.max()) + 1


def _build_segmentation(groups: List[Tuple[int, np.ndarray]], width: int, height: int) -> Segmentation:
    """Number (label, pixels) groups by smallest pixel index and build the region map."""
    # Member pixels are kept ascending; merging leaves them unordered
    groups = sorted(
        ((label, np.sort(pixels)) for label, pixels in groups),
        key=lambda group: int(group[1][0]),
    )
    region_map = np.full(width * height, -1, dtype=np.int64)
    regions = []
    for region_id, (label, pixels) in enumerate(groups):
        region_map[pixels] = region_id
        regions.append(Region(
            id=region_id,
            label_index=int(label),
            pixel_indices=pixels,
            area_px=int(pixels.size),
            bbox=_bbox(pixels, width),
        ))
    return Segmentation(regions=regions, region_map=region_map)


def check_area_invariant(segmentation: Segmentation, width: int, height: int):
    """Raise if regions do not exactly cover the image."""
    total = segmentation.total_area
    if total != width * height:
        raise InternalInvariantError(
            f"Region areas sum to {total}, expected {width * height} ({width}x{height})"
        )


def extract_regions(labels: np.ndarray, width: int, height: int) -> Segmentation:
    """
    Find 4-connected components of each label.

    Args:
        labels: (width*height,) cluster index per pixel
        width: Image width
        height: Image height

    Returns:
        Segmentation with regions numbered in raster scan order of their first pixel
    """
    labels = np.asarray(labels, dtype=np.int64).reshape(-1)
    if labels.size != width * height:
        raise InternalInvariantError(
            f"Label map has {labels.size} entries, expected {width * height}"
        )

    grid = labels.reshape(height, width)
    groups: List[Tuple[int, np.ndarray]] = []

    for label in np.unique(labels):
        mask = (grid == label).astype(np.uint8)
        count, components = cv2.connectedComponents(mask, connectivity=4)
        flat = components.reshape(-1)

        members = np.flatnonzero(flat)
        component_ids = flat[members]
        # Stable sort keeps each component's pixels ascending
        order = np.argsort(component_ids, kind="stable")
        members = members[order]
        sizes = np.bincount(component_ids, minlength=count)[1:]
        for pixels in np.split(members, np.cumsum(sizes)[:-1]):
            groups.append((int(label), pixels.astype(np.int64)))

    segmentation = _build_segmentation(groups, width, height)
    check_area_invariant(segmentation, width, height)
    return segmentation


def _outside_neighbors(pixels: np.ndarray, region_map: np.ndarray, region_id: int,
                       width: int, height: int) -> np.ndarray:
    """Distinct pixels 4-adjacent to the region but not in it."""
    n = width * height
    xs = pixels % width
    candidates = np.concatenate([
        pixels[xs > 0] - 1,
        pixels[xs < width - 1] + 1,
        pixels[pixels >= width] - width,
        pixels[pixels < n - width] + width,
    ])
    candidates = candidates[region_map[candidates] != region_id]
    return np.unique(candidates)


def _lab_sums(region_map: np.ndarray, lab: np.ndarray, count: int) -> np.ndarray:
    """(count, 3) per-region sums of LAB values."""
    return np.stack(
        [np.bincount(region_map, weights=lab[:, c], minlength=count) for c in range(3)], axis=1
    )


def _closest_label(small_mean: np.ndarray, neighbor_ids: List[int], label_by_id: Dict[int, int],
                   area_by_id: Dict[int, int], lab_sum_by_id: Dict[int, np.ndarray]) -> int:
    """Neighbor label whose pooled mean LAB is nearest by deltaE76; ties go to the lower label."""
    pooled: Dict[int, List] = {}
    for i in neighbor_ids:
        entry = pooled.setdefault(label_by_id[i], [np.zeros(3), 0])
        entry[0] = entry[0] + lab_sum_by_id[i]
        entry[1] += area_by_id[i]

    best_label, best_distance = -1, np.inf
    for label in sorted(pooled):
        total, area = pooled[label]
        distance = float(np.sqrt(np.sum((total / area - small_mean) ** 2)))
        if distance < best_distance:
            best_label, best_distance = label, distance
    return best_label


def merge_small_regions(segmentation: Segmentation, labels: np.ndarray, width: int,
                        height: int, min_area: int, strategy: str = MERGE_MAJORITY,
                        lab: Optional[np.ndarray] = None) -> Segmentation:
    """
    Fold regions smaller than min_area into a neighboring label.

    With the "majority" strategy the target is the most frequent label among
    the distinct pixels bordering the region. With "delta_e" it is the
    neighboring label whose adjacent regions have the closest mean LAB color
    to the region's own mean. Ties go to the lower label in both cases. The
    region joins every adjacent region of the target label. ``labels`` is
    updated in place.

    Args:
        segmentation: Output of extract_regions for ``labels``
        labels: (width*height,) label map, rewritten for merged pixels
        width: Image width
        height: Image height
        min_area: Regions with area_px below this are merged
        strategy: "majority" or "delta_e"
        lab: (width*height, 3) LAB pixels, required for "delta_e"

    Returns:
        New canonical Segmentation
    """
    if strategy not in MERGE_STRATEGIES:
        raise ValueError(f"Unknown merge strategy: {strategy}")
    if strategy == MERGE_DELTA_E and lab is None:
        raise ValueError("delta_e merging needs the LAB pixels")

    check_area_invariant(segmentation, width, height)
    if min_area <= 0:
        return segmentation

    # Regions are stored under the id of their largest member so merging only
    # rewrites the smaller side. Processing order follows the lowest original
    # id in each merged group.
    region_map = segmentation.region_map.copy()
    chunks_by_id: Dict[int, List[np.ndarray]] = {r.id: [r.pixel_indices] for r in segmentation.regions}
    area_by_id: Dict[int, int] = {r.id: r.area_px for r in segmentation.regions}
    label_by_id: Dict[int, int] = {r.id: r.label_index for r in segmentation.regions}
    order_by_id: Dict[int, int] = {r.id: r.id for r in segmentation.regions}
    id_by_order: Dict[int, int] = dict(order_by_id)

    lab_sum_by_id: Dict[int, np.ndarray] = {}
    if strategy == MERGE_DELTA_E:
        sums = _lab_sums(region_map, np.asarray(lab, dtype=np.float64).reshape(-1, 3),
                         len(segmentation.regions))
        lab_sum_by_id = {r.id: sums[r.id] for r in segmentation.regions}

    pending = [r.id for r in segmentation.regions if r.area_px < min_area]
    heapq.heapify(pending)
    merges = 0

    while pending:
        order = heapq.heappop(pending)
        region_id = id_by_order.get(order)
        if region_id is None or area_by_id[region_id] >= min_area:
            continue

        pixels = np.concatenate(chunks_by_id[region_id])
        neighbors = _outside_neighbors(pixels, region_map, region_id, width, height)
        if neighbors.size == 0:
            # Sole region in the image
            continue

        neighbor_labels = labels[neighbors]
        if strategy == MERGE_DELTA_E:
            small_mean = lab_sum_by_id[region_id] / area_by_id[region_id]
            target = _closest_label(small_mean, np.unique(region_map[neighbors]).tolist(),
                                    label_by_id, area_by_id, lab_sum_by_id)
        else:
            target = int(np.argmax(np.bincount(neighbor_labels)))
        absorbed: List[int] = np.unique(region_map[neighbors[neighbor_labels == target]]).tolist()

        members = [region_id] + absorbed
        survivor = max(members, key=lambda i: (area_by_id[i], -i))
        merged_order = min(order_by_id[i] for i in members)

        labels[pixels] = target
        for i in members:
            del id_by_order[order_by_id.pop(i)]
            if i == survivor:
                continue
            moved = chunks_by_id.pop(i)
            region_map[np.concatenate(moved)] = survivor
            chunks_by_id[survivor].extend(moved)
            area_by_id[survivor] += area_by_id.pop(i)
            label_by_id.pop(i)
            if lab_sum_by_id:
                lab_sum_by_id[survivor] = lab_sum_by_id[survivor] + lab_sum_by_id.pop(i)

        label_by_id[survivor] = target
        order_by_id[survivor] = merged_order
        id_by_order[merged_order] = survivor
        merges += 1

        if area_by_id[survivor] < min_area:
            heapq.heappush(pending, merged_order)

    merged = _build_segmentation(
        [(label_by_id[i], np.concatenate(chunks)) for i, chunks in chunks_by_id.items()], width, height
    )
    check_area_invariant(merged, width, height)
    logger.debug(f"Merged {merges} small regions ({strategy}): "
                 f"{len(segmentation.regions)} -> {len(merged.regions)}")
    return merged


def segment(labels: np.ndarray, width: int, height: int, min_area: int = 0,
            merge: Optional[bool] = True, strategy: str = MERGE_MAJORITY,
            lab: Optional[np.ndarray] = None) -> Segmentation:
    """Extract regions and, when enabled, merge those below min_area."""
    segmentation = extract_regions(labels, width, height)
    if merge and min_area > 0:
        segmentation = merge_small_regions(segmentation, labels, width, height, min_area, strategy, lab)
    return segmentation
