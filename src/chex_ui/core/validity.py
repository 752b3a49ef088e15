"""
Radiograph Validity Heuristics
==============================

Cheap pre-filter that rejects uploads which are obviously not chest
radiographs (selfies, screenshots, color photos) before any network call.

Functions
---------
is_plausible_radiograph
    Short-circuit accept/reject decision
assess_radiograph
    Evaluate every check for diagnostics

Notes
-----
Rejection rules, each an independent fixed threshold from
:mod:`chex_ui.config`:

1. aspect ratio (width / height) outside [0.6, 1.8]
2. average brightness outside [40, 180]
3. average raster contrast above 80
4. average max channel difference above 30

Decoding failures are treated as "not a radiograph" (fail closed) and never
propagate to the caller.
"""

import logging
from dataclasses import dataclass, field

from chex_ui import config
from chex_ui.core.analyzer import analyze, channel_difference
from chex_ui.core.image_io import load_bitmap
from chex_ui.errors import ImageLoadError

logger = logging.getLogger(__name__)


@dataclass
class ValidityReport:
    """
    Outcome of all validity checks for one image.

    Attributes
    ----------
    failures : list of str
        Names of failed checks, in evaluation order
    aspect_ratio, avg_brightness, avg_contrast, channel_difference : float
        Measured values (``None`` when the image could not be decoded)
    error : str or None
        Decode error message, if any
    """

    failures: list[str] = field(default_factory=list)
    aspect_ratio: float | None = None
    avg_brightness: float | None = None
    avg_contrast: float | None = None
    channel_difference: float | None = None
    error: str | None = None

    @property
    def plausible(self) -> bool:
        return self.error is None and not self.failures

    def describe(self) -> str:
        """One-line summary suitable for a status bar."""
        if self.error:
            return f"Unreadable image: {self.error}"
        if not self.failures:
            return "Image looks like a chest X-ray"
        return "Not a chest X-ray (" + ", ".join(self.failures) + ")"


def _aspect_ok(ratio):
    return config.MIN_ASPECT_RATIO <= ratio <= config.MAX_ASPECT_RATIO


def _brightness_ok(value):
    return config.MIN_BRIGHTNESS <= value <= config.MAX_BRIGHTNESS


def is_plausible_radiograph(source) -> bool:
    """
    Decide whether an upload plausibly is a chest radiograph.

    Checks run in the documented order and stop at the first failure. The
    channel-difference pass is only computed when the cheaper checks pass.

    Parameters
    ----------
    source : path, bytes, file-like, PIL.Image or np.ndarray
        The uploaded image

    Returns
    -------
    bool
        ``False`` on the first failing check or on any decoding failure

    Examples
    --------
    >>> import numpy as np
    >>> is_plausible_radiograph(np.full((224, 224, 3), 128, dtype=np.uint8))
    True
    >>> is_plausible_radiograph(np.full((100, 300, 3), 128, dtype=np.uint8))
    False
    """
    try:
        bitmap = load_bitmap(source)
        height, width = bitmap.shape[:2]
        if not _aspect_ok(width / height):
            logger.info("Rejected: aspect ratio %.2f", width / height)
            return False

        stats = analyze(bitmap)
        if not _brightness_ok(stats.avg_brightness):
            logger.info("Rejected: brightness %.1f", stats.avg_brightness)
            return False
        if stats.avg_contrast > config.MAX_CONTRAST:
            logger.info("Rejected: contrast %.1f", stats.avg_contrast)
            return False

        diff = channel_difference(bitmap)
        if diff > config.MAX_CHANNEL_DIFFERENCE:
            logger.info("Rejected: channel difference %.1f", diff)
            return False
        return True
    except (ImageLoadError, OSError, ValueError) as e:
        logger.warning("Validity check could not read image: %s", e)
        return False


def assess_radiograph(source) -> ValidityReport:
    """
    Run every validity check without short-circuiting.

    Same rules as :func:`is_plausible_radiograph`; use this when the caller
    wants to tell the user *why* an image was rejected.
    """
    report = ValidityReport()
    try:
        bitmap = load_bitmap(source)
        stats = analyze(bitmap)
    except (ImageLoadError, OSError, ValueError) as e:
        logger.warning("Validity check could not read image: %s", e)
        report.error = str(e)
        return report

    report.aspect_ratio = stats.aspect_ratio
    report.avg_brightness = stats.avg_brightness
    report.avg_contrast = stats.avg_contrast
    report.channel_difference = channel_difference(bitmap)

    if not _aspect_ok(report.aspect_ratio):
        report.failures.append("aspect ratio")
    if not _brightness_ok(report.avg_brightness):
        report.failures.append("brightness")
    if report.avg_contrast > config.MAX_CONTRAST:
        report.failures.append("contrast")
    if report.channel_difference > config.MAX_CHANNEL_DIFFERENCE:
        report.failures.append("color")

    logger.debug(
        "Validity: aspect=%.2f brightness=%.1f contrast=%.1f color=%.1f -> %s",
        report.aspect_ratio,
        report.avg_brightness,
        report.avg_contrast,
        report.channel_difference,
        report.failures or "ok",
    )
    return report
