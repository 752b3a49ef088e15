# chexnet.py
# DenseNet-121 with a 14-way multi-label head (ChestX-ray14 label set)

from __future__ import annotations

import torch
import torch.nn.functional as F
from torch import nn
from torch.nn import init

CHEXNET_LABELS = [
    "Atelectasis",
    "Cardiomegaly",
    "Effusion",
    "Infiltration",
    "Mass",
    "Nodule",
    "Pneumonia",
    "Pneumothorax",
    "Consolidation",
    "Edema",
    "Emphysema",
    "Fibrosis",
    "Pleural_Thickening",
    "Hernia",
]


class CheXNet(nn.Module):
    """
    DenseNet-121 backbone with a ChestX-ray14 classification head.

    The wrapper keeps the torchvision feature extractor intact and exposes
    it as :attr:`target_layer`, the last convolutional block whose output
    Grad-CAM reads.

    Parameters
    ----------
    base_model : nn.Module
        A torchvision DenseNet (``features`` + ``classifier``). Its classifier
        is replaced.
    num_classes : int, default=14
        Number of output logits

    Attributes
    ----------
    features : nn.Module
        Convolutional feature extractor, output (N, 1024, H/32, W/32)
    classifier : nn.Linear
        Multi-label head (1024 features -> num_classes logits)

    Examples
    --------
    >>> from torchvision import models as tvm
    >>> from chex_ui.models.chexnet import CheXNet
    >>> model = CheXNet(tvm.densenet121(weights=None))
    >>> logits = model(torch.randn(1, 3, 224, 224))
    >>> logits.shape
    torch.Size([1, 14])
    """

    def __init__(self, base_model: nn.Module, num_classes: int = len(CHEXNET_LABELS)):
        super().__init__()
        self.features = base_model.features
        in_features = base_model.classifier.in_features
        self.classifier = nn.Linear(in_features, num_classes)
        self.classifier.apply(init_weights)
        self.num_classes = num_classes

    @property
    def target_layer(self) -> nn.Module:
        return self.features

    def forward(self, x: torch.Tensor) -> torch.Tensor:  # type: ignore[override]
        # no in-place ReLU: Grad-CAM hooks keep a reference to the feature map
        feats = F.relu(self.features(x))
        pooled = F.adaptive_avg_pool2d(feats, (1, 1)).flatten(1)
        return self.classifier(pooled)


def build_chexnet(pretrained_backbone: bool = False, num_classes: int = len(CHEXNET_LABELS)) -> CheXNet:
    """
    Build the CheXNet architecture.

    Parameters
    ----------
    pretrained_backbone : bool, default=False
        Initialize the DenseNet features with torchvision's ImageNet weights
    num_classes : int, default=14
        Number of output logits
    """
    from torchvision import models as tvm

    weights = tvm.DenseNet121_Weights.IMAGENET1K_V1 if pretrained_backbone else None
    return CheXNet(tvm.densenet121(weights=weights), num_classes=num_classes)


def init_weights(m: nn.Module) -> None:
    """
    Xavier-uniform initialization for linear layers (bias filled with 0.01).

    Other module types are left untouched.
    """
    if isinstance(m, nn.Linear):
        init.xavier_uniform_(m.weight)
        if m.bias is not None:
            m.bias.data.fill_(0.01)
