"""
Automatic Image Correction
==========================

This module normalizes exposure, contrast, sharpness and orientation of an
uploaded radiograph before it is displayed and sent for inference.

Classes
-------
CorrectionParameters
    Rotation, brightness, contrast and sharpness amounts
CorrectionResult
    Corrected and original images as data URLs plus the parameters used
AutoCorrector
    Analyze -> derive -> apply -> encode

Functions
---------
derive_corrections
    Map ImageStatistics to CorrectionParameters
apply_corrections
    Apply CorrectionParameters to a bitmap
rotate_bitmap, adjust_brightness, adjust_contrast, sharpen
    The individual correction stages

Notes
-----
Parameter derivation (all clamped):

- rotation: +90 if aspect < 0.5, -90 if aspect > 2, else 0
- brightness = (128 - avg_brightness) / 2, within [-50, 50]
- contrast = (50 - avg_contrast) / 2, within [-30, 30]
- sharpness = (0.1 - edge_density) * 100, within [-20, 20]

The rotation thresholds are wider than the validity classifier's rejection
band, so rotation only fires on images that were accepted anyway or that
the caller corrects without validating.

Each stage rounds back to 8 bits, as a canvas does between passes. The alpha
channel is never touched.
"""

import logging
from dataclasses import dataclass, asdict

import cv2
import numpy as np

from chex_ui import config
from chex_ui.core.analyzer import ImageStatistics, analyze
from chex_ui.core.image_io import encode_data_url, load_bitmap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CorrectionParameters:
    """Correction amounts derived from :class:`ImageStatistics`."""

    rotation: int = 0
    brightness: float = 0.0
    contrast: float = 0.0
    sharpness: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CorrectionResult:
    """
    Output of :meth:`AutoCorrector.correct`.

    Attributes
    ----------
    corrected_image : str
        Corrected bitmap as a JPEG data URL
    original_image : str
        Untouched input, encoded the same way
    corrections : CorrectionParameters
        Parameters that were applied
    corrected_bitmap : np.ndarray
        The corrected RGBA bitmap, for callers that display it directly
    """

    corrected_image: str
    original_image: str
    corrections: CorrectionParameters
    corrected_bitmap: np.ndarray


def _clamp(value, limit):
    return max(-limit, min(limit, value))


def _to_u8(values):
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def derive_corrections(stats: ImageStatistics) -> CorrectionParameters:
    """
    Derive correction parameters from image statistics.

    Examples
    --------
    >>> from chex_ui.core.analyzer import ImageStatistics
    >>> p = derive_corrections(ImageStatistics(128.0, 0.0, 0.0, 224, 224))
    >>> p.rotation, p.brightness, p.contrast, round(p.sharpness, 6)
    (0, 0.0, 25.0, 10.0)
    """
    aspect = stats.aspect_ratio
    if aspect < config.ROTATE_BELOW_ASPECT:
        rotation = 90
    elif aspect > config.ROTATE_ABOVE_ASPECT:
        rotation = -90
    else:
        rotation = 0

    brightness = _clamp(
        (config.TARGET_BRIGHTNESS - stats.avg_brightness) / 2, config.BRIGHTNESS_LIMIT
    )
    contrast = _clamp(
        (config.TARGET_CONTRAST - stats.avg_contrast) / 2, config.CONTRAST_LIMIT
    )
    sharpness = _clamp(
        (config.TARGET_EDGE_DENSITY - stats.edge_density) * 100, config.SHARPNESS_LIMIT
    )
    return CorrectionParameters(
        rotation=rotation,
        brightness=float(brightness),
        contrast=float(contrast),
        sharpness=float(sharpness),
    )


def rotate_bitmap(bitmap: np.ndarray, degrees: float) -> np.ndarray:
    """
    Rotate clockwise by ``degrees``, expanding the canvas to fit.

    Quarter turns are exact and swap width and height. Other angles grow the
    canvas to the rotated bounding box and leave the corners transparent
    black.
    """
    turns = degrees / 90.0
    if turns == int(turns):
        k = int(turns) % 4
        if k == 0:
            return bitmap.copy()
        code = {
            1: cv2.ROTATE_90_CLOCKWISE,
            2: cv2.ROTATE_180,
            3: cv2.ROTATE_90_COUNTERCLOCKWISE,
        }[k]
        return cv2.rotate(bitmap, code)

    h, w = bitmap.shape[:2]
    rad = np.deg2rad(degrees)
    cos, sin = abs(np.cos(rad)), abs(np.sin(rad))
    new_w = int(round(w * cos + h * sin))
    new_h = int(round(w * sin + h * cos))
    # cv2 angles are counter-clockwise
    M = cv2.getRotationMatrix2D((w / 2, h / 2), -degrees, 1.0)
    M[0, 2] += new_w / 2 - w / 2
    M[1, 2] += new_h / 2 - h / 2
    return cv2.warpAffine(
        bitmap,
        M,
        (new_w, new_h),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=(0, 0, 0, 0),
    )


def adjust_brightness(bitmap: np.ndarray, amount: float) -> np.ndarray:
    """Add ``amount`` to R, G and B, clamped to [0, 255]."""
    out = bitmap.copy()
    out[..., :3] = _to_u8(bitmap[..., :3].astype(np.float32) + amount)
    return out


def contrast_factor(contrast: float) -> float:
    """
    Linear contrast factor ``259 (c + 255) / (255 (259 - c))``.

    Equals exactly 1.0 for ``c == 0``.
    """
    if contrast >= 259:
        raise ValueError(f"Contrast must be below 259, got {contrast}")
    return (259 * (contrast + 255)) / (255 * (259 - contrast))


def adjust_contrast(bitmap: np.ndarray, contrast: float) -> np.ndarray:
    """Apply ``factor * (c - 128) + 128`` to R, G and B, clamped to [0, 255]."""
    factor = contrast_factor(contrast)
    out = bitmap.copy()
    rgb = bitmap[..., :3].astype(np.float32)
    out[..., :3] = _to_u8(factor * (rgb - 128) + 128)
    return out


def sharpen(bitmap: np.ndarray, amount: float) -> np.ndarray:
    """
    3x3 unsharp mask: ``c + (amount / 100) * (c - mean3x3)``.

    Negative amounts soften. The 1-pixel border is left untouched and every
    interior pixel reads the unsharpened neighbourhood.
    """
    out = bitmap.copy()
    h, w = bitmap.shape[:2]
    if h < 3 or w < 3:
        return out
    rgb = bitmap[..., :3].astype(np.float32)
    mean = cv2.blur(rgb, (3, 3))
    sharp = rgb + (amount / 100.0) * (rgb - mean)
    out[1:-1, 1:-1, :3] = _to_u8(sharp[1:-1, 1:-1])
    return out


def apply_corrections(bitmap: np.ndarray, params: CorrectionParameters) -> np.ndarray:
    """
    Apply rotation, brightness, contrast and (if strong enough) sharpening.

    Parameters
    ----------
    bitmap : np.ndarray
        ``(H, W, 4)`` uint8 bitmap; not modified
    params : CorrectionParameters
        Amounts to apply

    Returns
    -------
    np.ndarray
        New corrected bitmap; width and height swap for quarter turns
    """
    out = rotate_bitmap(bitmap, params.rotation) if params.rotation else bitmap.copy()
    out = adjust_brightness(out, params.brightness)
    out = adjust_contrast(out, params.contrast)
    if abs(params.sharpness) > config.MIN_SHARPNESS:
        out = sharpen(out, params.sharpness)
    return out


class AutoCorrector:
    """
    Analyze an upload, derive corrections, apply them and encode the result.

    Parameters
    ----------
    quality : int, default=90
        JPEG quality for both data URLs

    Examples
    --------
    >>> from chex_ui.core.correction import AutoCorrector
    >>> result = AutoCorrector().correct("xray.jpg")
    >>> result.corrections
    CorrectionParameters(rotation=0, brightness=3.5, contrast=25.0, sharpness=8.1)
    >>> result.corrected_image[:23]
    'data:image/jpeg;base64,'
    """

    def __init__(self, quality: int = config.JPEG_QUALITY):
        self.quality = quality

    def correct(self, source) -> CorrectionResult:
        """
        Correct one image.

        Raises
        ------
        ImageLoadError
            If the source cannot be read or decoded
        """
        original = load_bitmap(source)
        stats = analyze(original)
        params = derive_corrections(stats)
        logger.info(
            "Corrections: rotation=%d brightness=%.1f contrast=%.1f sharpness=%.1f",
            params.rotation,
            params.brightness,
            params.contrast,
            params.sharpness,
        )
        corrected = apply_corrections(original, params)
        return CorrectionResult(
            corrected_image=encode_data_url(corrected, "JPEG", self.quality),
            original_image=encode_data_url(original, "JPEG", self.quality),
            corrections=params,
            corrected_bitmap=corrected,
        )
