"""
Color Matching Module

Handles:
- RGB color values and hex conversion for the block catalog
- Weighted squared-difference similarity between two colors
- Nearest palette entry lookup for single colors and whole rasters

Similarity Background:
    similarity = 1 - (wR*dr^2 + wG*dg^2 + wB*db^2) / 65025

A perfect match scores 1.0. Scores fall below zero for very distant
colors, so the best candidate is tracked from the first entry rather
than from a zero baseline.

Tie-break: candidates are scanned in palette order and only a strictly
greater score replaces the current best, so the earliest entry wins
among equals.
"""

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple, Sequence, Tuple
import numpy as np
from numba import njit

from .errors import PreconditionFailed


class Color(NamedTuple):
    """An 8-bit RGB triple."""
    r: int
    g: int
    b: int

    @classmethod
    def from_hex(cls, text: str) -> "Color":
        """
        Parse an ``RRGGBB`` string (leading ``#`` allowed).

        Raises:
            ValueError: If the string is not six hex digits
        """
        text = text.lstrip("#")
        if len(text) != 6:
            raise ValueError(f"Expected RRGGBB, got {text!r}")
        return cls(int(text[0:2], 16), int(text[2:4], 16), int(text[4:6], 16))

    def to_hex(self) -> str:
        """Format as an uppercase ``RRGGBB`` string."""
        return f"{self.r:02X}{self.g:02X}{self.b:02X}"


@dataclass(frozen=True)
class PaletteEntry:
    """A block that can stand in for a color."""
    block_id: str
    texture: str
    color: Color


class ColorMetric(Enum):
    """Channel weightings for the similarity score."""
    PERCEPTUAL = "perceptual"  # red/green dominant
    LUMA = "luma"              # ITU-R BT.601 luma weights

    @property
    def weights(self) -> Tuple[float, float, float]:
        return _METRIC_WEIGHTS[self]


_METRIC_WEIGHTS = {
    ColorMetric.PERCEPTUAL: (0.32, 0.52, 0.16),
    ColorMetric.LUMA: (0.299, 0.587, 0.114),
}


def similarity(a: Sequence[int], b: Sequence[int],
               metric: ColorMetric = ColorMetric.PERCEPTUAL) -> float:
    """
    Score how alike two colors are.

    Args:
        a, b: RGB triples (0-255)
        metric: Channel weighting

    Returns:
        1.0 for identical colors, decreasing with distance
    """
    wr, wg, wb = metric.weights
    dr = float(a[0]) - float(b[0])
    dg = float(a[1]) - float(b[1])
    db = float(a[2]) - float(b[2])
    return 1.0 - (dr * dr * wr + dg * dg * wg + db * db * wb) / 65025.0


def nearest(color: Sequence[int], candidates: Sequence[PaletteEntry],
            metric: ColorMetric = ColorMetric.PERCEPTUAL) -> PaletteEntry:
    """
    Find the palette entry closest to a color.

    Args:
        color: RGB triple
        candidates: Non-empty palette
        metric: Channel weighting

    Returns:
        The first entry with the highest similarity

    Raises:
        PreconditionFailed: If the palette is empty
    """
    if not candidates:
        raise PreconditionFailed("Cannot match a color against an empty palette")

    best = candidates[0]
    best_score = similarity(color, best.color, metric)
    for entry in candidates[1:]:
        score = similarity(color, entry.color, metric)
        if score > best_score:
            best = entry
            best_score = score
    return best


def palette_colors(candidates: Sequence[PaletteEntry]) -> np.ndarray:
    """Stack palette colors into an (N, 3) uint8 array."""
    return np.array([tuple(entry.color) for entry in candidates],
                    dtype=np.uint8).reshape(-1, 3)


@njit(cache=True)
def _nearest_indices(pixels: np.ndarray, colors: np.ndarray,
                     wr: float, wg: float, wb: float) -> np.ndarray:
    """
    Linear-scan nearest palette index for every pixel.

    Args:
        pixels: Array of shape (N, 3) with uint8 RGB values
        colors: Array of shape (P, 3) with uint8 palette colors

    Returns:
        int32 array of shape (N,) with palette indices
    """
    n = pixels.shape[0]
    p = colors.shape[0]
    result = np.zeros(n, dtype=np.int32)

    for i in range(n):
        r = float(pixels[i, 0])
        g = float(pixels[i, 1])
        b = float(pixels[i, 2])
        best = 0
        best_score = -np.inf
        for j in range(p):
            dr = r - float(colors[j, 0])
            dg = g - float(colors[j, 1])
            db = b - float(colors[j, 2])
            score = 1.0 - (dr * dr * wr + dg * dg * wg + db * db * wb) / 65025.0
            if score > best_score:
                best = j
                best_score = score
        result[i] = best

    return result


def match_raster(raster: np.ndarray, candidates: Sequence[PaletteEntry],
                 metric: ColorMetric = ColorMetric.PERCEPTUAL) -> np.ndarray:
    """
    Match every pixel of a raster against the palette.

    Args:
        raster: RGB array of shape (H, W, 3)
        candidates: Non-empty palette
        metric: Channel weighting

    Returns:
        int32 array of shape (H, W) with palette indices

    Raises:
        PreconditionFailed: If the palette is empty
    """
    if not candidates:
        raise PreconditionFailed("Cannot match a color against an empty palette")

    h, w = raster.shape[:2]
    pixels = np.ascontiguousarray(raster[:, :, :3], dtype=np.uint8).reshape(-1, 3)
    wr, wg, wb = metric.weights
    indices = _nearest_indices(pixels, palette_colors(candidates), wr, wg, wb)
    return indices.reshape(h, w)
