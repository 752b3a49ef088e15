"""
Inference Graphs
================

Uniform access to the intermediate tensors the saliency generator needs,
whether the pre-trained graph is an ONNX export or a PyTorch module.

Classes
-------
GraphOutputs
    Logits and feature map of one forward pass
InferenceGraph
    Base class defining the graph interface
OnnxGraph
    onnxruntime session with named feature/logit/gradient outputs
TorchGraph
    PyTorch module with hooks on a target layer

Notes
-----
All tensors cross this boundary as numpy arrays with the batch dimension
removed: logits ``(num_classes,)``, feature maps and gradients
``(channels, H, W)``.

ONNX graphs cannot back-propagate at runtime, so a graph that supports
Grad-CAM must expose a dedicated gradient output, computed from a one-hot
``target_gradients`` input.

See Also
--------
chex_ui.core.graph_manager : Lazy, memoized ownership of a graph
chex_ui.core.saliency : Consumer of these tensors
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import torch

from chex_ui.errors import InferenceError

logger = logging.getLogger(__name__)


@dataclass
class GraphOutputs:
    """Result of one forward pass; either field may be ``None`` if not exposed."""

    logits: np.ndarray | None
    features: np.ndarray | None


def _squeeze_batch(arr: np.ndarray) -> np.ndarray:
    arr = np.asarray(arr, dtype=np.float32)
    if arr.ndim >= 1 and arr.shape[0] == 1 and arr.ndim in (2, 4):
        return arr[0]
    return arr


class InferenceGraph:
    """
    Interface every inference graph implements.

    Attributes
    ----------
    num_classes : int or None
        Number of logits, if known
    supports_gradients : bool
        Whether :meth:`gradients` is available (enables true Grad-CAM)
    exposes_features : bool
        Whether :meth:`run` returns a feature map
    """

    num_classes: int | None = None
    supports_gradients = False
    exposes_features = False

    def run(self, tensor: np.ndarray) -> GraphOutputs:
        raise NotImplementedError

    def gradients(self, tensor: np.ndarray, target_index: int) -> tuple[np.ndarray, np.ndarray]:
        """Return ``(features, gradients)`` for a one-hot target at ``target_index``."""
        raise InferenceError(f"{type(self).__name__} does not support gradients")

    def close(self) -> None:
        pass


class OnnxGraph(InferenceGraph):
    """
    onnxruntime-backed graph.

    Parameters
    ----------
    path : str or Path
        ONNX file
    num_classes : int, default=14
        Size of the logits / one-hot gradient vector
    providers : list of str, optional
        Execution providers, CPU by default

    Raises
    ------
    InferenceError
        If the session cannot be created
    """

    FEATURE_OUTPUTS = ("features", "conv_features", "feature_maps")
    LOGIT_OUTPUTS = ("logits", "output")
    GRADIENT_OUTPUTS = ("feature_gradients", "gradients", "input_gradients")
    GRADIENT_INPUT = "target_gradients"

    def __init__(self, path, num_classes: int = 14, providers=None):
        import onnxruntime as ort

        self.path = Path(path)
        self.num_classes = num_classes
        try:
            self.session = ort.InferenceSession(
                str(self.path), providers=providers or ["CPUExecutionProvider"]
            )
        except Exception as e:
            raise InferenceError(f"Could not load ONNX graph {self.path}: {e}") from e

        inputs = [i.name for i in self.session.get_inputs()]
        outputs = [o.name for o in self.session.get_outputs()]
        self.input_name = next((n for n in inputs if n != self.GRADIENT_INPUT), None)
        if self.input_name is None:
            raise InferenceError("ONNX graph has no image input")
        self.has_gradient_input = self.GRADIENT_INPUT in inputs
        self.feature_name = next((n for n in self.FEATURE_OUTPUTS if n in outputs), None)
        self.logit_name = next((n for n in self.LOGIT_OUTPUTS if n in outputs), None)
        self.gradient_name = next((n for n in self.GRADIENT_OUTPUTS if n in outputs), None)

        self.exposes_features = self.feature_name is not None
        self.supports_gradients = (
            self.gradient_name is not None and self.feature_name is not None
        )
        logger.info(
            "Loaded ONNX graph %s (features=%s, logits=%s, gradients=%s)",
            self.path.name,
            self.feature_name,
            self.logit_name,
            self.gradient_name,
        )

    def _feeds(self, tensor, target_index=None):
        feeds = {self.input_name: np.asarray(tensor, dtype=np.float32)}
        if self.has_gradient_input:
            one_hot = np.zeros((1, self.num_classes), dtype=np.float32)
            if target_index is not None:
                one_hot[0, target_index] = 1.0
            feeds[self.GRADIENT_INPUT] = one_hot
        return feeds

    def _run(self, names, feeds):
        try:
            return self.session.run(names, feeds)
        except Exception as e:
            raise InferenceError(f"ONNX inference failed: {e}") from e

    def run(self, tensor: np.ndarray) -> GraphOutputs:
        names = [n for n in (self.logit_name, self.feature_name) if n is not None]
        if not names:
            raise InferenceError("ONNX graph exposes neither logits nor features")
        values = dict(zip(names, self._run(names, self._feeds(tensor))))
        logits = values.get(self.logit_name)
        features = values.get(self.feature_name)
        return GraphOutputs(
            logits=None if logits is None else np.asarray(logits, np.float32).reshape(-1),
            features=None if features is None else _squeeze_batch(features),
        )

    def gradients(self, tensor, target_index):
        if not self.supports_gradients:
            raise InferenceError("ONNX graph has no gradient output")
        if not self.has_gradient_input:
            raise InferenceError(f"ONNX graph has no '{self.GRADIENT_INPUT}' input")
        features, grads = self._run(
            [self.feature_name, self.gradient_name], self._feeds(tensor, target_index)
        )
        return _squeeze_batch(features), _squeeze_batch(grads)

    def close(self) -> None:
        self.session = None


class TorchGraph(InferenceGraph):
    """
    PyTorch-backed graph with Grad-CAM hooks on a target layer.

    Parameters
    ----------
    model : torch.nn.Module
        Classifier returning logits of shape (1, num_classes)
    target_layer : torch.nn.Module, optional
        Layer whose output is the feature map. Defaults to
        ``model.target_layer`` when the model defines one.
    device : str or torch.device, default="cpu"
        Device to run on

    Notes
    -----
    The forward hook stores a detached copy of the target layer's output and
    hands a clone downstream, so in-place activations later in the network
    cannot corrupt the stored map or the gradient hook.
    """

    supports_gradients = True
    exposes_features = True

    def __init__(self, model, target_layer=None, device="cpu", num_classes=None):
        self.device = torch.device(device)
        self.model = model.to(self.device).eval()
        if target_layer is None:
            target_layer = getattr(model, "target_layer", None)
        if target_layer is None:
            raise InferenceError("No target layer given and model defines none")
        self.target_layer = target_layer
        self.num_classes = num_classes or getattr(model, "num_classes", None)

        self._activations = None
        self._gradients = None
        self._handle = self.target_layer.register_forward_hook(self._forward_hook)

    def _forward_hook(self, module, inputs, output):
        self._activations = output.detach()
        if output.requires_grad:
            output.register_hook(self._store_gradient)
        return output.clone()

    def _store_gradient(self, grad):
        self._gradients = grad.detach()

    def _input(self, tensor):
        return torch.from_numpy(np.ascontiguousarray(tensor, dtype=np.float32)).to(self.device)

    def run(self, tensor: np.ndarray) -> GraphOutputs:
        self._activations = None
        try:
            with torch.inference_mode():
                logits = self.model(self._input(tensor))
        except RuntimeError as e:
            raise InferenceError(f"Torch inference failed: {e}") from e
        if self._activations is None:
            raise InferenceError("Target layer produced no activations")
        return GraphOutputs(
            logits=logits.detach().cpu().numpy().reshape(-1).astype(np.float32),
            features=_squeeze_batch(self._activations.cpu().numpy()),
        )

    def gradients(self, tensor, target_index):
        self._activations = None
        self._gradients = None
        try:
            with torch.enable_grad():
                self.model.zero_grad()
                logits = self.model(self._input(tensor))
                if not 0 <= target_index < logits.shape[-1]:
                    raise InferenceError(
                        f"Target class {target_index} outside 0..{logits.shape[-1] - 1}"
                    )
                one_hot = torch.zeros_like(logits)
                one_hot[0, target_index] = 1.0
                logits.backward(gradient=one_hot)
        except RuntimeError as e:
            raise InferenceError(f"Torch back-propagation failed: {e}") from e
        if self._activations is None or self._gradients is None:
            raise InferenceError("Gradients/activations not captured by hooks")
        return (
            _squeeze_batch(self._activations.cpu().numpy()),
            _squeeze_batch(self._gradients.cpu().numpy()),
        )

    def close(self) -> None:
        if self._handle is not None:
            self._handle.remove()
            self._handle = None
