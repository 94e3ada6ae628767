"""
CIE LAB color conversion utilities.

Implements sRGB -> linear -> XYZ (D65) -> L*a*b* and the exact inverse path,
plus Delta E (CIE76) and hex helpers. The array functions operate on
``(N, 3)`` float arrays and back every scalar helper, so a single pixel and a
whole image go through identical arithmetic.
"""

import re
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

import numpy as np

# D65 reference white
XN = 0.95047
YN = 1.0
ZN = 1.08883

EPSILON = 216.0 / 24389.0
KAPPA = 24389.0 / 27.0

# linear sRGB -> XYZ
RGB_TO_XYZ = (
    (0.4124564, 0.3575761, 0.1804375),
    (0.2126729, 0.7151522, 0.0721750),
    (0.0193339, 0.1191920, 0.9503041),
)

# XYZ -> linear sRGB
XYZ_TO_RGB = (
    (3.2404542, -1.5371385, -0.4985314),
    (-0.9692660, 1.8760108, 0.0415560),
    (0.0556434, -0.2040259, 1.0572252),
)

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{6})$")

RGB = Tuple[int, int, int]


@dataclass(frozen=True)
class LabColor:
    """CIE L*a*b* value (no identity, always derived)."""
    l: float
    a: float
    b: float

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.l, self.a, self.b)

    def to_dict(self) -> Dict[str, float]:
        return {"l": float(self.l), "a": float(self.a), "b": float(self.b)}


def round_half_up(values):
    """Round to nearest integer with .5 going up (not banker's rounding)."""
    return np.floor(np.asarray(values, dtype=np.float64) + 0.5)


def _apply_matrix(m, c0: np.ndarray, c1: np.ndarray, c2: np.ndarray):
    # Explicit row sums keep results independent of the BLAS build
    return (
        c0 * m[0][0] + c1 * m[0][1] + c2 * m[0][2],
        c0 * m[1][0] + c1 * m[1][1] + c2 * m[1][2],
        c0 * m[2][0] + c1 * m[2][1] + c2 * m[2][2],
    )


def srgb_to_linear(v):
    """Inverse sRGB companding for values normalized to [0, 1]."""
    v = np.asarray(v, dtype=np.float64)
    return np.where(v <= 0.04045, v / 12.92, np.power((v + 0.055) / 1.055, 2.4))


def linear_to_srgb(v):
    """sRGB companding for linear values, result in [0, 1] before clamping."""
    v = np.asarray(v, dtype=np.float64)
    safe = np.maximum(v, 0.0)
    return np.where(v <= 0.0031308, v * 12.92, 1.055 * np.power(safe, 1.0 / 2.4) - 0.055)


def _lab_f(t: np.ndarray) -> np.ndarray:
    return np.where(t > EPSILON, np.cbrt(t), (KAPPA * t + 16.0) / 116.0)


def _lab_f_inv(f: np.ndarray) -> np.ndarray:
    f3 = f * f * f
    return np.where(f3 > EPSILON, f3, (116.0 * f - 16.0) / KAPPA)


def rgb_array_to_xyz(rgb: np.ndarray) -> np.ndarray:
    """Convert (N, 3) RGB values in [0, 255] to XYZ. Out-of-range input is clamped."""
    rgb = np.clip(np.asarray(rgb, dtype=np.float64).reshape(-1, 3), 0.0, 255.0)
    lin = srgb_to_linear(rgb / 255.0)
    x, y, z = _apply_matrix(RGB_TO_XYZ, lin[:, 0], lin[:, 1], lin[:, 2])
    return np.stack([x, y, z], axis=1)


def xyz_array_to_lab(xyz: np.ndarray) -> np.ndarray:
    """Convert (N, 3) XYZ values to LAB."""
    xyz = np.asarray(xyz, dtype=np.float64).reshape(-1, 3)
    fx = _lab_f(xyz[:, 0] / XN)
    fy = _lab_f(xyz[:, 1] / YN)
    fz = _lab_f(xyz[:, 2] / ZN)
    return np.stack([116.0 * fy - 16.0, 500.0 * (fx - fy), 200.0 * (fy - fz)], axis=1)


def rgb_array_to_lab(rgb: np.ndarray) -> np.ndarray:
    """Convert (N, 3) RGB values in [0, 255] to (N, 3) LAB float64."""
    return xyz_array_to_lab(rgb_array_to_xyz(rgb))


def lab_array_to_xyz(lab: np.ndarray) -> np.ndarray:
    """Convert (N, 3) LAB values back to XYZ."""
    lab = np.asarray(lab, dtype=np.float64).reshape(-1, 3)
    fy = (lab[:, 0] + 16.0) / 116.0
    fx = lab[:, 1] / 500.0 + fy
    fz = fy - lab[:, 2] / 200.0
    return np.stack([XN * _lab_f_inv(fx), YN * _lab_f_inv(fy), ZN * _lab_f_inv(fz)], axis=1)


def xyz_array_to_rgb(xyz: np.ndarray) -> np.ndarray:
    """Convert (N, 3) XYZ values to display RGB, rounded and clamped to [0, 255] (int64)."""
    xyz = np.asarray(xyz, dtype=np.float64).reshape(-1, 3)
    r, g, b = _apply_matrix(XYZ_TO_RGB, xyz[:, 0], xyz[:, 1], xyz[:, 2])
    encoded = linear_to_srgb(np.stack([r, g, b], axis=1)) * 255.0
    return np.clip(round_half_up(encoded), 0, 255).astype(np.int64)


def lab_array_to_rgb(lab: np.ndarray) -> np.ndarray:
    """Convert (N, 3) LAB values to display RGB (int64)."""
    return xyz_array_to_rgb(lab_array_to_xyz(lab))


def rgb_to_lab(rgb: Sequence[float]) -> LabColor:
    """Convert one RGB triple (0-255) to LAB."""
    l, a, b = rgb_array_to_lab(np.array([rgb[:3]], dtype=np.float64))[0]
    return LabColor(float(l), float(a), float(b))


def lab_to_rgb(lab) -> RGB:
    """Convert one LAB value (LabColor or triple) to a display RGB triple."""
    values = lab.as_tuple() if isinstance(lab, LabColor) else tuple(lab)
    r, g, b = lab_array_to_rgb(np.array([values], dtype=np.float64))[0]
    return int(r), int(g), int(b)


def delta_e76(lab1, lab2) -> float:
    """Delta E (CIE76): Euclidean distance in LAB. Lower is more similar."""
    l1, a1, b1 = lab1.as_tuple() if isinstance(lab1, LabColor) else lab1
    l2, a2, b2 = lab2.as_tuple() if isinstance(lab2, LabColor) else lab2
    dl = l1 - l2
    da = a1 - a2
    db = b1 - b2
    return float(np.sqrt(dl * dl + da * da + db * db))


def normalize_rgb(rgb: Sequence[float]) -> RGB:
    """Round and clamp an RGB triple into [0, 255]."""
    values = np.clip(round_half_up(np.asarray(rgb[:3], dtype=np.float64)), 0, 255)
    return int(values[0]), int(values[1]), int(values[2])


def rgb_to_hex(rgb: Sequence[float]) -> str:
    """Convert RGB triple to uppercase #RRGGBB, clamping out-of-range components."""
    r, g, b = normalize_rgb(rgb)
    return f"#{r:02X}{g:02X}{b:02X}"


def hex_to_rgb(hex_color: str) -> RGB:
    """
    Convert hex color string to RGB tuple.

    Raises:
        ValueError: If the string is not exactly 6 hex digits (optional leading '#')
    """
    match = _HEX_RE.match(hex_color.strip()) if isinstance(hex_color, str) else None
    if match is None:
        raise ValueError(f"Invalid hex color: {hex_color!r}")
    digits = match.group(1)
    return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)
