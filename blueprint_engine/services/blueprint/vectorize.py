"""
Contour extraction and path simplification for blueprint regions.

Outer boundaries are traced with Moore-neighbor tracing and simplified with
Ramer-Douglas-Peucker.
"""

import math
from typing import List, Sequence, Tuple

import numpy as np

from .regions import Point, Segmentation

# Clockwise from north: N, NE, E, SE, S, SW, W, NW
DIRECTIONS: Tuple[Point, ...] = (
    (0, -1), (1, -1), (1, 0), (1, 1), (0, 1), (-1, 1), (-1, 0), (-1, -1),
)


def trace_boundary(pixel_indices: Sequence[int], width: int, height: int) -> List[Point]:
    """
    Trace the outer boundary of a region.

    Args:
        pixel_indices: Linear indices (y * width + x) of the region's pixels
        width: Image width
        height: Image height

    Returns:
        Closed list of (x, y) points, first point repeated at the end.
        Empty when the region has no pixels.
    """
    indices = np.asarray(pixel_indices, dtype=np.int64)
    if indices.size == 0:
        return []

    xs = indices % width
    ys = indices // width
    x0, y0 = int(xs.min()), int(ys.min())
    local = np.zeros((int(ys.max()) - y0 + 1, int(xs.max()) - x0 + 1), dtype=bool)
    local[ys - y0, xs - x0] = True
    inside_rows = local.tolist()
    local_h, local_w = local.shape

    def inside(x: int, y: int) -> bool:
        lx = x - x0
        ly = y - y0
        return 0 <= lx < local_w and 0 <= ly < local_h and inside_rows[ly][lx]

    start_index = int(indices.min())
    start = (start_index % width, start_index // width)
    current = start
    previous = (start[0] - 1, start[1])

    contour = []
    max_iterations = 2 * width * height
    iterations = 0

    while iterations < max_iterations:
        contour.append(current)

        # Resume the clockwise scan just past the pixel we came from
        offset = (previous[0] - current[0], previous[1] - current[1])
        scan_from = (DIRECTIONS.index(offset) + 1) % 8 if offset in DIRECTIONS else 0

        next_point = None
        for step in range(8):
            dx, dy = DIRECTIONS[(scan_from + step) % 8]
            candidate = (current[0] + dx, current[1] + dy)
            if inside(*candidate):
                next_point = candidate
                break

        if next_point is None or next_point == start:
            break

        previous = current
        current = next_point
        iterations += 1

    contour.append(start)
    return contour


def perpendicular_distance(point: Point, line_start: Point, line_end: Point) -> float:
    """Distance from point to the infinite line through the segment (point distance if degenerate)."""
    dx = line_end[0] - line_start[0]
    dy = line_end[1] - line_start[1]
    if dx == 0 and dy == 0:
        return math.hypot(point[0] - line_start[0], point[1] - line_start[1])

    numerator = abs(dy * point[0] - dx * point[1] + line_end[0] * line_start[1] - line_end[1] * line_start[0])
    return numerator / math.hypot(dx, dy)


def _farthest_point(points: Sequence[Point], start: int, end: int) -> Tuple[int, float]:
    """Index and distance of the first point farthest from the chord start-end."""
    index = start
    dmax = 0.0
    for i in range(start + 1, end):
        d = perpendicular_distance(points[i], points[start], points[end])
        if d > dmax:
            index = i
            dmax = d
    return index, dmax


def _check_epsilon(epsilon: float):
    if epsilon < 0:
        raise ValueError(f"epsilon must be non-negative, got {epsilon}")


def simplify_path(points: Sequence[Point], epsilon: float) -> List[Point]:
    """
    Ramer-Douglas-Peucker simplification using an explicit stack.

    Endpoints are always kept, so closed paths stay closed.

    Raises:
        ValueError: If epsilon is negative
    """
    _check_epsilon(epsilon)
    points = list(points)
    if len(points) <= 2:
        return points

    keep = [False] * len(points)
    keep[0] = keep[-1] = True
    stack = [(0, len(points) - 1)]

    while stack:
        start, end = stack.pop()
        index, dmax = _farthest_point(points, start, end)
        if dmax > epsilon:
            keep[index] = True
            stack.append((index, end))
            stack.append((start, index))

    return [point for point, kept in zip(points, keep) if kept]


def simplify_path_recursive(points: Sequence[Point], epsilon: float) -> List[Point]:
    """Recursive Ramer-Douglas-Peucker; same output as simplify_path."""
    _check_epsilon(epsilon)
    points = list(points)
    if len(points) <= 2:
        return points

    end = len(points) - 1
    index, dmax = _farthest_point(points, 0, end)

    if dmax > epsilon:
        first = simplify_path_recursive(points[:index + 1], epsilon)
        second = simplify_path_recursive(points[index:], epsilon)
        return first[:-1] + second

    return [points[0], points[end]]


def vectorize_regions(segmentation: Segmentation, width: int, height: int,
                      epsilon: float = 1.0) -> Segmentation:
    """
    Attach one simplified outer contour to every region.

    Simplified contours with fewer than 3 points fall back to the raw trace.
    """
    for region in segmentation.regions:
        raw = trace_boundary(region.pixel_indices, width, height)
        simplified = simplify_path(raw, epsilon)
        region.contours = [simplified if len(simplified) >= 3 else raw]
    return segmentation
