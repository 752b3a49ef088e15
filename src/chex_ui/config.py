"""
Configuration for CheXScan
==========================

Heuristic thresholds, service endpoints and runtime settings.

The thresholds below are calibrated against the raster-order contrast metric
in :mod:`chex_ui.core.analyzer`. Changing that metric requires re-tuning them.

Classes
-------
PipelineConfig
    Runtime settings for one analysis session

Functions
---------
setup_logging
    Configure root logging for the application entry points
"""

import logging
import os
from dataclasses import dataclass

# --- Image Analyzer ---

# Brightness step (0-255) above which two raster neighbours count as an edge.
EDGE_THRESHOLD = 30

# --- Validity Classifier ---

# Radiographs are roughly square to portrait.
MIN_ASPECT_RATIO = 0.6
MAX_ASPECT_RATIO = 1.8

# Radiographs occupy a mid gray band.
MIN_BRIGHTNESS = 40
MAX_BRIGHTNESS = 180

# Radiographs have low local contrast compared to everyday photos.
MAX_CONTRAST = 80

# Radiographs are near-grayscale; average max channel spread above this is a photo.
MAX_CHANNEL_DIFFERENCE = 30

# --- Auto-Corrector ---

ROTATE_BELOW_ASPECT = 0.5
ROTATE_ABOVE_ASPECT = 2.0

TARGET_BRIGHTNESS = 128
TARGET_CONTRAST = 50
TARGET_EDGE_DENSITY = 0.1

BRIGHTNESS_LIMIT = 50
CONTRAST_LIMIT = 30
SHARPNESS_LIMIT = 20

# Unsharp mask is skipped for |sharpness| at or below this amount.
MIN_SHARPNESS = 5

JPEG_QUALITY = 90

# --- Saliency ---

DEFAULT_TARGET_SIZE = (224, 224)
IMAGENET_MEAN = (0.485, 0.456, 0.406)
IMAGENET_STD = (0.229, 0.224, 0.225)

OUTLINE_THRESHOLD = 0.7
GLOW_THRESHOLD = 0.85
OUTLINE_COLOR = (255, 255, 0)
PER_CHANNEL_OPACITY = 0.5

# --- Inference service ---

# Bounding boxes are returned in this square coordinate space.
BOX_SPACE = 224


@dataclass
class PipelineConfig:
    """
    Runtime settings for the analysis pipeline.

    Attributes
    ----------
    service_url : str
        Base URL of the remote inference service
    predict_path, heatmap_path, boxes_path : str
        Endpoint paths appended to ``service_url``
    timeout : float
        Per-request timeout in seconds
    graph : str or None
        Registered graph name or local path for on-device saliency. ``None``
        disables local heatmap generation.
    device : str
        PyTorch device for torch graphs
    target_size : tuple of int
        (width, height) the saliency generator works at
    """

    service_url: str = "http://127.0.0.1:8000"
    predict_path: str = "/predict"
    heatmap_path: str = "/heatmap"
    boxes_path: str = "/boxes"
    timeout: float = 120.0
    graph: str | None = None
    device: str = "cpu"
    target_size: tuple[int, int] = DEFAULT_TARGET_SIZE

    @classmethod
    def from_env(cls, environ=None) -> "PipelineConfig":
        """
        Build a config from ``CHEXSCAN_*`` environment variables.

        Recognised variables: ``CHEXSCAN_SERVICE_URL``, ``CHEXSCAN_TIMEOUT``,
        ``CHEXSCAN_GRAPH``, ``CHEXSCAN_DEVICE``.

        Examples
        --------
        >>> cfg = PipelineConfig.from_env({"CHEXSCAN_TIMEOUT": "30"})
        >>> cfg.timeout
        30.0
        """
        env = os.environ if environ is None else environ
        cfg = cls()
        if env.get("CHEXSCAN_SERVICE_URL"):
            cfg.service_url = env["CHEXSCAN_SERVICE_URL"].rstrip("/")
        if env.get("CHEXSCAN_TIMEOUT"):
            cfg.timeout = float(env["CHEXSCAN_TIMEOUT"])
        if env.get("CHEXSCAN_GRAPH"):
            cfg.graph = env["CHEXSCAN_GRAPH"]
        if env.get("CHEXSCAN_DEVICE"):
            cfg.device = env["CHEXSCAN_DEVICE"]
        return cfg


def setup_logging(level=logging.INFO) -> None:
    """Configure root logging for the GUI and CLI entry points."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
