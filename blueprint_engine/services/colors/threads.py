"""
DMC thread matching.

Loads the DMC floss catalog once, precomputes LAB for every entry and ranks
entries by Delta E 76 against a query color.
"""

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from loguru import logger

from blueprint_engine.errors import (
    DatasetUnavailableError,
    Err,
    ErrorKind,
    Ok,
    Result,
    invalid_input,
)

from .lab import RGB, hex_to_rgb, normalize_rgb, rgb_array_to_lab, rgb_to_hex, rgb_to_lab

MATCH_METHOD = "lab-d65-deltae76"
MAX_ALTERNATIVES = 5


@dataclass(frozen=True)
class DmcThread:
    """One catalog entry."""
    id: str
    name: str
    hex: str
    rgb: RGB


@dataclass(frozen=True)
class ThreadMatch:
    id: str
    name: str
    hex: str
    delta_e: float

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "hex": self.hex, "delta_e": self.delta_e}


@dataclass(frozen=True)
class Match:
    """Best thread, up to five runners-up and the normalized query."""
    best: ThreadMatch
    alternatives: List[ThreadMatch]
    method: str
    input_rgb: RGB
    input_hex: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "best": self.best.to_dict(),
            "alternatives": [alt.to_dict() for alt in self.alternatives],
            "method": self.method,
            "input_normalized": {"rgb": list(self.input_rgb), "hex": self.input_hex},
        }


@dataclass
class ThreadCatalog:
    """Immutable thread list plus an (N, 3) LAB table in the same order."""
    threads: List[DmcThread]
    lab: np.ndarray = field(repr=False)

    def __len__(self) -> int:
        return len(self.threads)

    @classmethod
    def from_entries(cls, entries: Sequence[Dict[str, Any]]) -> "ThreadCatalog":
        """
        Build a catalog from ``{id, name, hex}`` dictionaries.

        Raises:
            DatasetUnavailableError: If an entry is malformed or the list is empty
        """
        threads = []
        for position, entry in enumerate(entries):
            try:
                rgb = hex_to_rgb(entry["hex"])
                threads.append(DmcThread(
                    id=str(entry["id"]),
                    name=str(entry["name"]),
                    hex=rgb_to_hex(rgb),
                    rgb=rgb,
                ))
            except (KeyError, TypeError, ValueError) as e:
                raise DatasetUnavailableError(f"Invalid thread entry at position {position}: {e}")

        if not threads:
            raise DatasetUnavailableError("Thread dataset is empty")

        lab = rgb_array_to_lab(np.array([t.rgb for t in threads], dtype=np.float64))
        return cls(threads=threads, lab=lab)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ThreadCatalog":
        """
        Load the catalog from a JSON list on disk.

        Raises:
            DatasetUnavailableError: If the file is missing, unreadable or invalid
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                entries = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise DatasetUnavailableError(f"Failed to load thread dataset from {path}: {e}")

        if not isinstance(entries, list):
            raise DatasetUnavailableError(f"Thread dataset at {path} must be a JSON list")

        catalog = cls.from_entries(entries)
        logger.info(f"Loaded {len(catalog)} DMC threads from {path}")
        return catalog


def _normalize_query(rgb: Optional[Sequence[float]],
                     hex_color: Optional[str]) -> Result[RGB]:
    if rgb is not None:
        if len(rgb) < 3:
            return invalid_input("rgb must have three components")
        try:
            return Ok(normalize_rgb([float(c) for c in rgb[:3]]))
        except (TypeError, ValueError):
            return invalid_input("rgb components must be numbers")

    if hex_color is not None:
        try:
            return Ok(hex_to_rgb(hex_color))
        except ValueError:
            return invalid_input(f"Invalid hex color '{hex_color}', expected #RRGGBB")

    return invalid_input("Provide either rgb or hex")


def match_thread(catalog: Optional[ThreadCatalog],
                 rgb: Optional[Sequence[float]] = None,
                 hex: Optional[str] = None) -> Result[Match]:
    """
    Find the closest DMC threads to a color.

    Args:
        catalog: Loaded catalog, or None when the dataset is unavailable
        rgb: RGB triple (rounded and clamped to 0-255); takes precedence over hex
        hex: "#RRGGBB" or "RRGGBB"

    Returns:
        Ok(Match) or Err with INVALID_INPUT / DATASET_UNAVAILABLE
    """
    query = _normalize_query(rgb, hex)
    if isinstance(query, Err):
        return query

    if catalog is None:
        return Err(ErrorKind.DATASET_UNAVAILABLE, "DMC thread dataset is not loaded")

    query_rgb = query.value
    ranked = rank_threads(catalog, query_rgb)

    return Ok(Match(
        best=ranked[0],
        alternatives=ranked[1:1 + MAX_ALTERNATIVES],
        method=MATCH_METHOD,
        input_rgb=query_rgb,
        input_hex=rgb_to_hex(query_rgb),
    ))


def round_delta_e(distance: float) -> float:
    """Round to 2 decimals with ties going up (0.125 -> 0.13)."""
    return math.floor(distance * 100 + 0.5) / 100


def rank_threads(catalog: ThreadCatalog, rgb: RGB) -> List[ThreadMatch]:
    """All catalog entries ordered by rounded Delta E; ties keep dataset order."""
    query_lab = np.array(rgb_to_lab(rgb).as_tuple(), dtype=np.float64)
    diff = catalog.lab - query_lab
    distances = np.sqrt(np.sum(diff * diff, axis=1))

    scored: List[Tuple[float, DmcThread]] = [
        (round_delta_e(float(d)), thread) for d, thread in zip(distances, catalog.threads)
    ]
    # sorted() is stable
    scored = sorted(scored, key=lambda item: item[0])

    return [
        ThreadMatch(id=thread.id, name=thread.name, hex=thread.hex, delta_e=delta_e)
        for delta_e, thread in scored
    ]
