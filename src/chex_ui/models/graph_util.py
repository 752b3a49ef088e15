"""
Graph Loading Utilities for CheXScan
=====================================

This module provides utilities for obtaining and loading the pre-trained
inference graph the saliency generator reads activations from:

- Registry of named graphs (GRAPH_CONFIGS)
- Download of remote graph files with local caching
- Checkpoint loading for PyTorch graphs
- Input preprocessing matching the ImageNet-normalized training setup

Graph sources accepted by :func:`load_graph`
--------------------------------------------
- A registered name, e.g. ``"chexnet_imagenet"``
- A local ``.onnx`` file (onnxruntime)
- A local ``.pth`` / ``.pt`` checkpoint for the CheXNet architecture
- An ``http(s)://`` URL to either of the above (downloaded once into
  ``~/.chexscan/graphs``)

Examples
--------
>>> from chex_ui.models.graph_util import load_graph, preprocess_bitmap
>>> graph = load_graph("chexnet_imagenet")
>>> tensor = preprocess_bitmap(bitmap)  # (1, 3, 224, 224) float32
>>> out = graph.run(tensor)
>>> out.features.shape
(1024, 7, 7)
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import numpy as np
import requests
import torch
from tqdm import tqdm

from chex_ui.config import IMAGENET_MEAN, IMAGENET_STD
from chex_ui.errors import InferenceError
from chex_ui.models.chexnet import CHEXNET_LABELS, build_chexnet
from chex_ui.models.graph import InferenceGraph, OnnxGraph, TorchGraph

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = "~/.chexscan/graphs"

GRAPH_CONFIGS = {
    "chexnet_imagenet": {
        "description": "DenseNet-121 with ImageNet backbone weights and an untrained 14-way head",
        "format": "torch",
        "architecture": "densenet121",
        "pretrained_backbone": True,
        "num_classes": len(CHEXNET_LABELS),
        "input_size": 224,
    },
    "chexnet_random": {
        "description": "Randomly initialized CheXNet architecture (smoke tests, offline use)",
        "format": "torch",
        "architecture": "densenet121",
        "pretrained_backbone": False,
        "num_classes": len(CHEXNET_LABELS),
        "input_size": 224,
    },
}


def _load_checkpoint(path, device):
    """
    Load a checkpoint of tensors only.

    ``weights_only=True`` refuses pickled objects, so files fetched from a URL
    cannot execute code on load.
    """
    try:
        return torch.load(path, map_location=device, weights_only=True)
    except Exception as e:
        raise InferenceError(f"Could not read checkpoint {path}: {e}") from e


class GraphDownloader:
    """
    Downloads a graph file from a URL into a local cache.

    Parameters
    ----------
    url : str
        ``http(s)`` location of an ``.onnx`` or ``.pth`` file
    save_dir : str, default="~/.chexscan/graphs"
        Cache directory (supports ~ expansion)

    Notes
    -----
    - Skips the download if the file already exists
    - Streams with a tqdm progress bar
    - Removes partial downloads on failure
    """

    def __init__(self, url: str, save_dir: str = DEFAULT_CACHE_DIR, timeout: float = 60.0):
        name = Path(urlparse(url).path).name
        if not name:
            raise ValueError(f"Cannot derive a file name from URL: {url}")
        self.url = url
        self.timeout = timeout
        self.save_dir = Path(os.path.expanduser(save_dir))
        self.path = self.save_dir / name

    def download(self) -> Path:
        """
        Download the graph if not already cached.

        Returns
        -------
        Path
            Local file path

        Raises
        ------
        InferenceError
            If the download fails
        """
        self.save_dir.mkdir(parents=True, exist_ok=True)
        if self.path.exists():
            logger.info("Graph already cached at %s", self.path)
            return self.path

        logger.info("Downloading graph from %s", self.url)
        try:
            response = requests.get(self.url, stream=True, timeout=self.timeout)
            response.raise_for_status()
            total_size = int(response.headers.get("content-length", 0))
            with open(self.path, "wb") as f:
                with tqdm(
                    desc=f"Downloading {self.path.name}",
                    total=total_size,
                    unit="B",
                    unit_scale=True,
                    unit_divisor=1024,
                ) as pbar:
                    for chunk in response.iter_content(chunk_size=8192):
                        if chunk:
                            f.write(chunk)
                            pbar.update(len(chunk))
        except requests.exceptions.RequestException as e:
            if self.path.exists():
                self.path.unlink()
            raise InferenceError(f"Failed to download graph: {e}") from e

        logger.info("Graph downloaded to %s", self.path)
        return self.path


def _build(pretrained_backbone, num_classes):
    try:
        return build_chexnet(pretrained_backbone=pretrained_backbone, num_classes=num_classes)
    except (OSError, RuntimeError) as e:
        raise InferenceError(f"Could not build CheXNet backbone: {e}") from e


def _torch_graph_from_checkpoint(path, device, num_classes) -> TorchGraph:
    checkpoint = _load_checkpoint(path, torch.device(device))
    if not isinstance(checkpoint, dict):
        raise InferenceError(
            f"Checkpoint {path} holds {type(checkpoint).__name__}, expected a state dict"
        )
    state = checkpoint.get("model_state_dict") or checkpoint.get("state_dict") or checkpoint
    model = _build(False, num_classes)
    try:
        model.load_state_dict(state, strict=True)
    except (RuntimeError, TypeError) as e:
        raise InferenceError(f"Checkpoint {path} does not match CheXNet: {e}") from e
    return TorchGraph(model, device=device, num_classes=num_classes)


def load_graph(
    source,
    device: str = "cpu",
    num_classes: int = len(CHEXNET_LABELS),
    save_dir: str = DEFAULT_CACHE_DIR,
) -> InferenceGraph:
    """
    Load an inference graph from a registered name, file or URL.

    Parameters
    ----------
    source : str or Path
        Registered name, local path or ``http(s)`` URL
    device : str, default="cpu"
        Device for PyTorch graphs
    num_classes : int, default=14
        Number of logits for file/URL graphs
    save_dir : str
        Cache directory for downloads

    Returns
    -------
    InferenceGraph

    Raises
    ------
    InferenceError
        If the source is unknown, cannot be downloaded, or fails to load
    """
    source = str(source)
    if source in GRAPH_CONFIGS:
        config = GRAPH_CONFIGS[source]
        model = _build(config["pretrained_backbone"], config["num_classes"])
        logger.info("Loaded graph '%s' on %s", source, device)
        return TorchGraph(model, device=device, num_classes=config["num_classes"])

    if urlparse(source).scheme in ("http", "https"):
        path = GraphDownloader(source, save_dir).download()
    else:
        path = Path(os.path.expanduser(source))
        if not path.exists():
            available = ", ".join(GRAPH_CONFIGS)
            raise InferenceError(
                f"Graph '{source}' is neither a file nor a registered name ({available})"
            )

    suffix = path.suffix.lower()
    if suffix == ".onnx":
        return OnnxGraph(path, num_classes=num_classes)
    if suffix in (".pth", ".pt"):
        return _torch_graph_from_checkpoint(path, device, num_classes)
    raise InferenceError(f"Unsupported graph format: {suffix or path.name}")


def preprocess_bitmap(bitmap: np.ndarray) -> np.ndarray:
    """
    Convert an RGBA bitmap into an ImageNet-normalized NCHW tensor.

    Parameters
    ----------
    bitmap : np.ndarray
        ``(H, W, 4)`` uint8 bitmap, already resized to the graph input size

    Returns
    -------
    np.ndarray
        ``(1, 3, H, W)`` float32

    Notes
    -----
    ``(c / 255 - mean[c]) / std[c]`` with the ImageNet statistics
    mean=[0.485, 0.456, 0.406], std=[0.229, 0.224, 0.225]. Alpha is ignored.
    """
    rgb = bitmap[..., :3].astype(np.float32) / 255.0
    mean = np.asarray(IMAGENET_MEAN, dtype=np.float32)
    std = np.asarray(IMAGENET_STD, dtype=np.float32)
    chw = ((rgb - mean) / std).transpose(2, 0, 1)
    return np.ascontiguousarray(chw[None, ...], dtype=np.float32)


def list_available_graphs() -> Dict[str, Any]:
    """Registered graph names with description and input size."""
    return {
        name: {
            "description": config["description"],
            "architecture": config["architecture"],
            "input_size": config["input_size"],
        }
        for name, config in GRAPH_CONFIGS.items()
    }


def describe_graph(graph: Optional[InferenceGraph]) -> str:
    """Short human-readable capability summary of a loaded graph."""
    if graph is None:
        return "no graph loaded"
    caps = []
    if graph.supports_gradients:
        caps.append("gradients")
    if graph.exposes_features:
        caps.append("features")
    return f"{type(graph).__name__} ({', '.join(caps) or 'logits only'})"
