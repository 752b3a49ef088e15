"""
Turbo Colormap
==============

Perceptual colormap used to colorize per-channel saliency maps.

The 256-entry lookup table is generated once at import time from OpenCV's
built-in ``COLORMAP_TURBO`` (Google's Turbo, 2019) instead of being kept as a
literal table in source.

Functions
---------
turbo_colormap
    Map one scalar in [0, 1] to an (r, g, b) triple
apply_colormap
    Vectorized version for whole arrays
"""

import cv2
import numpy as np


def _build_turbo_lut() -> np.ndarray:
    ramp = np.arange(256, dtype=np.uint8).reshape(256, 1)
    bgr = cv2.applyColorMap(ramp, cv2.COLORMAP_TURBO).reshape(256, 3)
    lut = bgr[:, ::-1].copy()
    lut.setflags(write=False)
    return lut


TURBO_LUT = _build_turbo_lut()


def _lut_index(values):
    idx = np.rint(np.asarray(values, dtype=np.float64) * 255)
    return np.clip(np.nan_to_num(idx), 0, 255).astype(np.intp)


def turbo_colormap(v: float) -> tuple[int, int, int]:
    """
    Map a normalized scalar to an RGB triple.

    Values outside [0, 1] are clamped to the ends of the table.

    Examples
    --------
    >>> turbo_colormap(0.0) == tuple(int(c) for c in TURBO_LUT[0])
    True
    """
    r, g, b = TURBO_LUT[_lut_index(v)]
    return int(r), int(g), int(b)


def apply_colormap(values: np.ndarray) -> np.ndarray:
    """
    Colorize an array of normalized values.

    Parameters
    ----------
    values : np.ndarray
        Array of any shape with values nominally in [0, 1]

    Returns
    -------
    np.ndarray
        uint8 array of shape ``values.shape + (3,)``
    """
    return TURBO_LUT[_lut_index(values)]
