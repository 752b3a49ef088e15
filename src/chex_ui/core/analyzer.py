"""
Image Analyzer
==============

Scalar statistics extracted from a bitmap. They drive both the validity
heuristics and the auto-correction parameters.

Classes
-------
ImageStatistics
    Brightness, contrast, edge density and dimensions of one bitmap

Functions
---------
analyze
    Compute ImageStatistics for a bitmap
brightness_map
    Per-pixel (R+G+B)/3
channel_difference
    Average per-pixel max(|R-G|, |R-B|, |G-B|)

Notes
-----
The contrast metric is a cheap proxy: the absolute brightness difference of
each pixel to the one *before it in raster order*. It only sees horizontal
steps, and every ``width``-th comparison spans the end of one row and the
start of the next. The thresholds in :mod:`chex_ui.config` are calibrated
against exactly this behaviour, so it must not be swapped for a 2-D gradient
without re-tuning them.

Both sums are divided by the pixel count, not by the number of compared
pairs. The first pixel has no predecessor and the last pixel is never
compared either.
"""

from dataclasses import dataclass

import numpy as np

from chex_ui.config import EDGE_THRESHOLD
from chex_ui.errors import ImageLoadError


@dataclass(frozen=True)
class ImageStatistics:
    """Statistics of one bitmap; read-only."""

    avg_brightness: float
    avg_contrast: float
    edge_density: float
    width: int
    height: int

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height


def brightness_map(bitmap: np.ndarray) -> np.ndarray:
    """Per-pixel mean of R, G and B as float64, shape (H, W)."""
    rgb = bitmap[..., :3].astype(np.float64)
    return rgb.sum(axis=2) / 3.0


def analyze(bitmap: np.ndarray) -> ImageStatistics:
    """
    Compute brightness, contrast and edge density of a bitmap.

    Parameters
    ----------
    bitmap : np.ndarray
        ``(H, W, 4)`` uint8 bitmap

    Returns
    -------
    ImageStatistics

    Raises
    ------
    ImageLoadError
        If the bitmap has no pixels

    Examples
    --------
    >>> import numpy as np
    >>> gray = np.full((224, 224, 4), 128, dtype=np.uint8)
    >>> stats = analyze(gray)
    >>> stats.avg_brightness, stats.avg_contrast, stats.edge_density
    (128.0, 0.0, 0.0)
    """
    height, width = bitmap.shape[:2]
    n = height * width
    if n == 0:
        raise ImageLoadError("Cannot analyze an empty image")

    b = brightness_map(bitmap).ravel()
    # pairs (i-1, i) for i = 1 .. n-2
    diffs = np.abs(b[1:n - 1] - b[0:n - 2])

    return ImageStatistics(
        avg_brightness=float(b.sum() / n),
        avg_contrast=float(diffs.sum() / n),
        edge_density=float(np.count_nonzero(diffs > EDGE_THRESHOLD) / n),
        width=int(width),
        height=int(height),
    )


def channel_difference(bitmap: np.ndarray) -> float:
    """
    Average over all pixels of max(|R-G|, |R-B|, |G-B|).

    Zero for a perfectly gray image; large for colorful photos.
    """
    rgb = bitmap[..., :3].astype(np.int16)
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    spread = np.maximum(np.maximum(np.abs(r - g), np.abs(r - b)), np.abs(g - b))
    if spread.size == 0:
        return 0.0
    return float(spread.mean())
