"""
K-means color quantization in CIELAB space.

Clusters pixel colors by Delta E 76 (Euclidean LAB distance). Initialization
draws distinct pixels from a SeededRNG so the same seed always produces the
same palette and label map.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from loguru import logger

from .rng import SeededRNG

# Pixels per assignment chunk; bounds the (chunk, k, 3) difference array to ~12 MB at k=64
ASSIGN_CHUNK_SIZE = 8192


@dataclass
class QuantizeResult:
    """Centroids (k', 3) with k' <= k, labels (N,) and the number of iterations run."""
    clusters: np.ndarray
    labels: np.ndarray
    iterations: int


def init_centroids(pixels_lab: np.ndarray, k: int, rng: SeededRNG) -> np.ndarray:
    """
    Pick k distinct pixels as starting centroids, driven only by the seeded generator.

    Args:
        pixels_lab: (N, 3) LAB pixels with N > k
        k: Number of centroids
        rng: Seeded generator (consumed)

    Returns:
        (k, 3) float64 array of initial centroids
    """
    n = pixels_lab.shape[0]
    chosen = []
    used = set()
    while len(chosen) < k:
        idx = rng.random_int_max(n)
        if idx not in used:
            used.add(idx)
            chosen.append(idx)
    return pixels_lab[np.array(chosen, dtype=np.int64)].astype(np.float64, copy=True)


def assign_labels(pixels_lab: np.ndarray, centroids: np.ndarray,
                  chunk_size: int = ASSIGN_CHUNK_SIZE) -> np.ndarray:
    """
    Assign every pixel to its nearest centroid (lowest index wins ties).

    Work proceeds over fixed-size chunks in pixel order, so the result does
    not depend on how the work is scheduled.
    """
    n = pixels_lab.shape[0]
    labels = np.empty(n, dtype=np.int64)
    for start in range(0, n, chunk_size):
        block = pixels_lab[start:start + chunk_size]
        diff = block[:, None, :] - centroids[None, :, :]
        dist = np.sqrt(np.sum(diff * diff, axis=2))
        labels[start:start + chunk_size] = np.argmin(dist, axis=1)
    return labels


def update_centroids(pixels_lab: np.ndarray, labels: np.ndarray,
                     centroids: np.ndarray) -> np.ndarray:
    """Recompute centroids as member means; empty clusters keep their previous centroid."""
    k = centroids.shape[0]
    counts = np.bincount(labels, minlength=k)
    updated = centroids.copy()
    nonempty = counts > 0
    for channel in range(3):
        sums = np.bincount(labels, weights=pixels_lab[:, channel], minlength=k)
        updated[nonempty, channel] = sums[nonempty] / counts[nonempty]
    return updated


def quantize(pixels_lab: np.ndarray, k: int, rng: Optional[SeededRNG] = None,
             max_iterations: int = 20) -> QuantizeResult:
    """
    Cluster LAB pixels into at most k colors with k-means.

    Args:
        pixels_lab: (N, 3) LAB pixels
        k: Desired cluster count (must be positive)
        rng: Seeded generator for initialization (defaults to SeededRNG(42))
        max_iterations: Upper bound on assignment/update rounds

    Returns:
        QuantizeResult with clusters, a label per pixel and iterations run

    Raises:
        ValueError: If k is not a positive integer
    """
    if k <= 0:
        raise ValueError(f"k must be a positive integer, got {k}")

    pixels_lab = np.asarray(pixels_lab, dtype=np.float64).reshape(-1, 3)
    n = pixels_lab.shape[0]

    if n == 0:
        return QuantizeResult(np.zeros((0, 3)), np.zeros(0, dtype=np.int64), 0)

    if k >= n:
        # Identity mapping: each pixel is its own cluster
        return QuantizeResult(pixels_lab.copy(), np.arange(n, dtype=np.int64), 0)

    if rng is None:
        rng = SeededRNG(42)

    centroids = init_centroids(pixels_lab, k, rng)
    labels = None
    iterations = 0

    for _ in range(max_iterations):
        iterations += 1
        new_labels = assign_labels(pixels_lab, centroids)

        if labels is not None and np.array_equal(new_labels, labels):
            labels = new_labels
            break

        labels = new_labels
        centroids = update_centroids(pixels_lab, labels, centroids)

    if labels is None:
        labels = assign_labels(pixels_lab, centroids)

    logger.debug(f"k-means finished: k={k}, pixels={n}, iterations={iterations}")

    return QuantizeResult(centroids, labels, iterations)
