"""
Inference Graphs for CheXScan
=============================

- **CheXNet**: torchvision DenseNet-121 with a 14-way multi-label head
- **Graph wrappers**: uniform access to logits, feature maps and gradients for
  ONNX (onnxruntime) and PyTorch graphs
- **Graph registry and loading**: named configurations, cached downloads,
  checkpoint loading and ImageNet preprocessing

Registered Graphs
-----------------
- ``chexnet_imagenet`` : ImageNet backbone weights, untrained head
- ``chexnet_random`` : random initialization (offline use)

Any ``.onnx`` or ``.pth`` file or URL can be loaded with :func:`load_graph`.

Classes
-------
CheXNet
    DenseNet-121 classifier exposing its last feature block
InferenceGraph, OnnxGraph, TorchGraph
    Graph interface and its two backends
GraphDownloader
    Cached download of graph files

Functions
---------
build_chexnet
    Construct the CheXNet architecture
load_graph
    Load a graph by name, path or URL
preprocess_bitmap
    RGBA bitmap -> ImageNet-normalized (1, 3, H, W) tensor
list_available_graphs
    Registered graphs with metadata
"""

from .chexnet import CHEXNET_LABELS, CheXNet, build_chexnet, init_weights
from .graph import GraphOutputs, InferenceGraph, OnnxGraph, TorchGraph
from .graph_util import (
    GRAPH_CONFIGS,
    GraphDownloader,
    describe_graph,
    list_available_graphs,
    load_graph,
    preprocess_bitmap,
)

__all__ = [
    "CHEXNET_LABELS",
    "CheXNet",
    "build_chexnet",
    "init_weights",
    "GraphOutputs",
    "InferenceGraph",
    "OnnxGraph",
    "TorchGraph",
    "GRAPH_CONFIGS",
    "GraphDownloader",
    "describe_graph",
    "list_available_graphs",
    "load_graph",
    "preprocess_bitmap",
]
