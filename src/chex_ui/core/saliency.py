"""
Saliency Heatmaps
=================

This module produces class-specific importance heatmaps from an inference
graph and composites them over the resized input radiograph.

Strategies
----------
GRADIENT
    Grad-CAM: channel weights are the spatial mean of the target-class
    gradient; map = ReLU(sum_c w_c * F_c). Red layer, *multiply* blend.
ATTENTION
    Luminance proxy: map = luminance^2 * max(0, logit[target]). This is a
    coarse fallback for graphs without feature maps, not true saliency.
    Red-to-blue layer, *screen* blend.
PER_CHANNEL
    Reads the feature channel with the target's index (channel mean if the
    graph has fewer channels than classes). Turbo colormap with a yellow
    outline around high-activation runs, composited at 50 % opacity.
AUTO
    GRADIENT if the graph supports gradients, PER_CHANNEL if its feature
    map has one channel per class, otherwise ATTENTION.

Every strategy min-max normalizes its map into [0, 1]; a map whose range
collapses to zero becomes all zeros.

Classes
-------
Strategy
    Strategy selector
HeatmapResult
    Heatmap, overlay and resized original bitmaps plus the raw importance map
SaliencyGenerator
    Resize -> preprocess -> run graph -> map -> colorize -> composite

See Also
--------
chex_ui.models.graph : Graph interface the generator consumes
chex_ui.core.colormap : Turbo lookup table
"""

import logging
from dataclasses import dataclass
from enum import Enum

import cv2
import numpy as np

from chex_ui import config
from chex_ui.errors import InferenceError
from chex_ui.models.graph import GraphOutputs, InferenceGraph
from chex_ui.models.graph_util import preprocess_bitmap
from chex_ui.core.colormap import apply_colormap
from chex_ui.core.image_io import resize_bitmap

logger = logging.getLogger(__name__)


class Strategy(str, Enum):
    AUTO = "auto"
    GRADIENT = "gradient"
    ATTENTION = "attention"
    PER_CHANNEL = "per_channel"


@dataclass
class HeatmapResult:
    """
    Output of :meth:`SaliencyGenerator.generate`.

    Attributes
    ----------
    heatmap : np.ndarray
        Colorized layer, ``(H, W, 4)`` uint8 at the target size
    overlay : np.ndarray
        Layer composited over ``original_image``
    original_image : np.ndarray
        Input bitmap resized to the target size
    importance : np.ndarray
        Normalized float map in [0, 1] at the resolution it was computed
    strategy : Strategy
        Strategy actually used (never AUTO)
    """

    heatmap: np.ndarray
    overlay: np.ndarray
    original_image: np.ndarray
    importance: np.ndarray
    strategy: Strategy


def normalize_map(values: np.ndarray) -> np.ndarray:
    """
    Min-max normalize into [0, 1].

    Examples
    --------
    >>> normalize_map(np.array([2.0, 4.0, 6.0])).tolist()
    [0.0, 0.5, 1.0]
    >>> normalize_map(np.full(3, 7.0)).tolist()
    [0.0, 0.0, 0.0]
    """
    values = np.nan_to_num(np.asarray(values, dtype=np.float32))
    if values.size == 0:
        return values
    lo, hi = float(values.min()), float(values.max())
    if hi - lo <= 0:
        return np.zeros_like(values)
    return (values - lo) / (hi - lo)


def _check_features(features) -> np.ndarray:
    if features is None:
        raise InferenceError("Graph does not expose a feature map")
    features = np.asarray(features, dtype=np.float32)
    if features.ndim != 3:
        raise InferenceError(f"Expected a (C, H, W) feature map, got shape {features.shape}")
    return features


def gradcam_map(features: np.ndarray, gradients: np.ndarray) -> np.ndarray:
    """Grad-CAM map of shape (H, W), normalized."""
    features = _check_features(features)
    gradients = np.asarray(gradients, dtype=np.float32)
    if gradients.shape != features.shape:
        raise InferenceError(
            f"Gradient shape {gradients.shape} does not match features {features.shape}"
        )
    weights = gradients.mean(axis=(1, 2))
    cam = np.tensordot(weights, features, axes=1)
    return normalize_map(np.maximum(cam, 0))


def attention_map(bitmap: np.ndarray, score: float) -> np.ndarray:
    """Luminance-squared map scaled by the clipped target score, normalized."""
    lum = bitmap[..., :3].astype(np.float32).sum(axis=2) / 3.0 / 255.0
    return normalize_map(lum ** 2 * max(0.0, float(score)))


def channel_map(features: np.ndarray, target_index: int) -> np.ndarray:
    """Feature channel ``target_index`` (or the channel mean), normalized."""
    features = _check_features(features)
    channels, h, w = features.shape
    if channels == 0:
        return np.zeros((h, w), dtype=np.float32)
    if target_index < channels:
        return normalize_map(features[target_index])
    return normalize_map(features.mean(axis=0))


def _upscale(values: np.ndarray, size) -> np.ndarray:
    width, height = size
    if values.shape[1] == width and values.shape[0] == height:
        return values.astype(np.float32)
    return cv2.resize(
        values.astype(np.float32), (width, height), interpolation=cv2.INTER_LINEAR
    )


def _to_u8(values):
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def _blend(base: np.ndarray, layer: np.ndarray, mode: str, opacity: float = 1.0) -> np.ndarray:
    """
    Composite an RGBA layer over an RGBA base.

    ``mode`` is ``"multiply"``, ``"screen"`` or ``"normal"``; the layer's
    alpha (times ``opacity``) mixes the blend result with the base color.
    """
    cb = base[..., :3].astype(np.float32) / 255.0
    cs = layer[..., :3].astype(np.float32) / 255.0
    alpha = layer[..., 3:4].astype(np.float32) / 255.0 * opacity
    if mode == "multiply":
        mixed = cb * cs
    elif mode == "screen":
        mixed = cb + cs - cb * cs
    elif mode == "normal":
        mixed = cs
    else:
        raise ValueError(f"Unknown blend mode: {mode}")
    out = base.copy()
    out[..., :3] = _to_u8(((1 - alpha) * cb + alpha * mixed) * 255)
    return out


def _gradient_layers(v: np.ndarray):
    h, w = v.shape
    red = _to_u8(v * 255)
    heatmap = np.zeros((h, w, 4), dtype=np.uint8)
    heatmap[..., 0] = red
    heatmap[..., 3] = 255
    layer = heatmap.copy()
    layer[..., 3] = _to_u8(v * 128)
    return heatmap, layer


def _attention_layers(v: np.ndarray):
    h, w = v.shape
    heatmap = np.zeros((h, w, 4), dtype=np.uint8)
    heatmap[..., 0] = _to_u8(v * 255)
    heatmap[..., 2] = _to_u8((1 - v) * 255)
    heatmap[..., 3] = 255
    layer = heatmap.copy()
    layer[..., 3] = _to_u8(v * 180)
    return heatmap, layer


def channel_layer(v: np.ndarray) -> np.ndarray:
    """
    Turbo-colorized RGBA layer with glow alpha and a yellow outline.

    A pixel above the outline threshold whose previous or next pixel in
    raster order is at or below it is painted opaque yellow.
    """
    h, w = v.shape
    layer = np.zeros((h, w, 4), dtype=np.uint8)
    layer[..., :3] = apply_colormap(v)
    alpha = _to_u8(180 * np.power(np.clip(v, 0, None), 1.5))
    alpha[v > config.GLOW_THRESHOLD] = 255
    layer[..., 3] = alpha

    flat = v.reshape(-1)
    above = flat > config.OUTLINE_THRESHOLD
    low_prev = np.zeros_like(above)
    low_next = np.zeros_like(above)
    low_prev[1:] = flat[:-1] <= config.OUTLINE_THRESHOLD
    low_next[:-1] = flat[1:] <= config.OUTLINE_THRESHOLD
    outline = (above & (low_prev | low_next)).reshape(h, w)
    layer[outline] = config.OUTLINE_COLOR + (255,)
    return layer


class SaliencyGenerator:
    """
    Generate class-specific saliency heatmaps.

    Parameters
    ----------
    graph : InferenceGraph or GraphManager
        Graph to read from; a manager is resolved on each call so the graph
        is only loaded when first needed
    strategy : Strategy, default=Strategy.AUTO
        Default strategy for :meth:`generate`

    Examples
    --------
    >>> from chex_ui.core.graph_manager import GraphManager
    >>> gen = SaliencyGenerator(GraphManager("chexnet_imagenet"))
    >>> result = gen.generate(bitmap, target_class_index=6)
    >>> result.strategy, result.overlay.shape
    (<Strategy.GRADIENT: 'gradient'>, (224, 224, 4))
    """

    def __init__(self, graph, strategy: Strategy = Strategy.AUTO):
        self._graph = graph
        self.strategy = Strategy(strategy)

    @property
    def graph(self) -> InferenceGraph:
        if isinstance(self._graph, InferenceGraph):
            return self._graph
        return self._graph.get()

    def generate(
        self,
        bitmap: np.ndarray,
        target_class_index: int,
        target_size=config.DEFAULT_TARGET_SIZE,
        strategy: Strategy | None = None,
    ) -> HeatmapResult:
        """
        Compute the heatmap for one class.

        Parameters
        ----------
        bitmap : np.ndarray
            ``(H, W, 4)`` uint8 input of any size
        target_class_index : int
            Class whose evidence is visualized
        target_size : (int, int), default=(224, 224)
            Graph input and output size as ``(width, height)``
        strategy : Strategy, optional
            Overrides the generator's default

        Raises
        ------
        InferenceError
            If the graph fails, lacks a required output, returns mismatched
            shapes or the target index is out of range
        """
        strategy = Strategy(strategy or self.strategy)
        if target_class_index < 0:
            raise InferenceError(f"Target class {target_class_index} is negative")

        graph = self.graph
        resized = resize_bitmap(bitmap, target_size)
        tensor = preprocess_bitmap(resized)

        outputs = None
        if strategy is Strategy.AUTO:
            strategy, outputs = self._select(graph, tensor)
        logger.debug("Generating %s heatmap for class %d", strategy.value, target_class_index)

        if strategy is Strategy.GRADIENT:
            self._check_target(target_class_index, graph.num_classes)
            features, grads = graph.gradients(tensor, target_class_index)
            importance = gradcam_map(features, grads)
            v = _upscale(importance, target_size)
            heatmap, layer = _gradient_layers(v)
            overlay = _blend(resized, layer, "multiply")
        elif strategy is Strategy.ATTENTION:
            outputs = outputs or graph.run(tensor)
            if outputs.logits is None:
                raise InferenceError("Graph does not expose logits")
            self._check_target(target_class_index, len(outputs.logits))
            importance = attention_map(resized, outputs.logits[target_class_index])
            heatmap, layer = _attention_layers(importance)
            overlay = _blend(resized, layer, "screen")
        elif strategy is Strategy.PER_CHANNEL:
            outputs = outputs or graph.run(tensor)
            num_classes = graph.num_classes
            if num_classes is None and outputs.logits is not None:
                num_classes = len(outputs.logits)
            self._check_target(target_class_index, num_classes)
            importance = channel_map(outputs.features, target_class_index)
            layer = channel_layer(importance)
            width, height = target_size
            heatmap = cv2.resize(layer, (width, height), interpolation=cv2.INTER_LINEAR)
            overlay = _blend(resized, heatmap, "normal", config.PER_CHANNEL_OPACITY)
        else:
            raise InferenceError(f"Unsupported strategy: {strategy}")

        return HeatmapResult(
            heatmap=heatmap,
            overlay=overlay,
            original_image=resized,
            importance=importance,
            strategy=strategy,
        )

    @staticmethod
    def _check_target(target_index, num_classes):
        if num_classes is not None and not 0 <= target_index < num_classes:
            raise InferenceError(
                f"Target class {target_index} outside 0..{num_classes - 1}"
            )

    @staticmethod
    def _select(graph: InferenceGraph, tensor) -> tuple[Strategy, GraphOutputs | None]:
        if graph.supports_gradients:
            return Strategy.GRADIENT, None
        outputs = graph.run(tensor)
        num_classes = graph.num_classes
        if num_classes is None and outputs.logits is not None:
            num_classes = len(outputs.logits)
        features = outputs.features
        if (
            features is not None
            and np.ndim(features) == 3
            and num_classes is not None
            and features.shape[0] == num_classes
        ):
            return Strategy.PER_CHANNEL, outputs
        return Strategy.ATTENTION, outputs
