import numpy as np
import pytest
import torch
from torch import nn
import torch.nn.functional as F

from chex_ui.core.graph_manager import GraphManager
from chex_ui.core.saliency import (
    SaliencyGenerator,
    Strategy,
    channel_layer,
    channel_map,
    gradcam_map,
    normalize_map,
)
from chex_ui.errors import InferenceError
from chex_ui.models.graph import TorchGraph

from conftest import FakeGraph, make_bitmap


@pytest.fixture
def features():
    rng = np.random.default_rng(3)
    return rng.random((14, 7, 7)).astype(np.float32)


def test_normalize_map_range():
    v = normalize_map(np.array([[3.0, 5.0], [7.0, 11.0]]))
    assert v.min() == 0.0
    assert v.max() == 1.0


def test_normalize_constant_map_is_zero():
    assert (normalize_map(np.full((4, 4), 2.5)) == 0).all()
    assert (normalize_map(np.zeros((4, 4))) == 0).all()


def test_auto_picks_per_channel_when_channels_match_classes(features):
    graph = FakeGraph(features=features, logits=np.zeros(14))
    result = SaliencyGenerator(graph).generate(make_bitmap(300, 250), 0)

    assert result.strategy is Strategy.PER_CHANNEL
    np.testing.assert_allclose(result.importance, normalize_map(features[0]), atol=1e-6)
    assert result.heatmap.shape == (224, 224, 4)
    assert result.overlay.shape == (224, 224, 4)
    assert result.original_image.shape == (224, 224, 4)
    assert graph.runs == 1


def test_graph_receives_imagenet_tensor(features):
    graph = FakeGraph(features=features, logits=np.zeros(14))
    SaliencyGenerator(graph).generate(make_bitmap(50, 50, rgb=255), 0)
    tensor = graph.last_tensor
    assert tensor.shape == (1, 3, 224, 224)
    assert tensor.dtype == np.float32
    assert tensor[0, 0, 0, 0] == pytest.approx((1 - 0.485) / 0.229, rel=1e-5)


def test_per_channel_falls_back_to_channel_mean():
    feats = np.random.default_rng(4).random((4, 5, 5)).astype(np.float32)
    graph = FakeGraph(features=feats, logits=np.zeros(14))
    result = SaliencyGenerator(graph).generate(
        make_bitmap(64, 64), 10, strategy=Strategy.PER_CHANNEL
    )
    np.testing.assert_allclose(result.importance, normalize_map(feats.mean(axis=0)), atol=1e-6)


def test_per_channel_with_no_channels_is_zero():
    assert (channel_map(np.zeros((0, 3, 3), np.float32), 2) == 0).all()


def test_auto_picks_attention_without_matching_features():
    graph = FakeGraph(features=np.ones((8, 7, 7)), logits=np.ones(14))
    result = SaliencyGenerator(graph).generate(make_bitmap(64, 64), 1)
    assert result.strategy is Strategy.ATTENTION


def test_attention_black_image_with_zero_score():
    graph = FakeGraph(logits=np.zeros(14))
    black = make_bitmap(224, 224, rgb=0)
    result = SaliencyGenerator(graph).generate(black, 5, strategy=Strategy.ATTENTION)

    assert (result.importance == 0).all()
    assert (result.heatmap[..., 0] == 0).all()
    assert (result.heatmap[..., 2] == 255).all()
    assert (result.heatmap[..., 3] == 255).all()
    np.testing.assert_array_equal(result.overlay, black)


def test_attention_follows_luminance():
    bmp = make_bitmap(224, 224, rgb=0)
    bmp[:, 112:, :3] = 200
    graph = FakeGraph(logits=np.full(14, 2.0))
    result = SaliencyGenerator(graph).generate(bmp, 3, strategy=Strategy.ATTENTION)
    assert result.importance[0, 0] == 0.0
    assert result.importance[0, -1] == 1.0
    # screen never darkens
    assert (result.overlay[..., :3] >= bmp[..., :3]).all()


def test_attention_negative_score_is_zero():
    bmp = make_bitmap(64, 64, rgb=180)
    bmp[:32] = 20
    graph = FakeGraph(logits=np.full(14, -3.0))
    result = SaliencyGenerator(graph).generate(bmp, 0, strategy=Strategy.ATTENTION)
    assert (result.importance == 0).all()


def test_auto_picks_gradient_and_computes_gradcam():
    feats = np.zeros((3, 7, 7), dtype=np.float32)
    feats[0] = np.arange(49, dtype=np.float32).reshape(7, 7)
    feats[1] = 100.0
    grads = np.zeros_like(feats)
    grads[0] = 1.0
    graph = FakeGraph(features=feats, grads=grads, num_classes=14)

    bmp = make_bitmap(224, 224, rgb=120)
    result = SaliencyGenerator(graph).generate(bmp, 2)

    assert result.strategy is Strategy.GRADIENT
    np.testing.assert_allclose(result.importance, feats[0] / 48.0, atol=1e-6)
    assert result.heatmap.shape == (224, 224, 4)
    assert (result.heatmap[..., 1:3] == 0).all()
    assert (result.heatmap[..., 3] == 255).all()
    # multiply with zero alpha leaves the top-left corner untouched
    np.testing.assert_array_equal(result.overlay[0, 0], bmp[0, 0])
    # red layer keeps R and darkens G and B where the map is hot
    assert result.overlay[-1, -1, 0] == 120
    assert result.overlay[-1, -1, 1] < 120
    assert graph.runs == 0


def test_gradcam_relu_and_shape_check():
    feats = np.ones((2, 3, 3), dtype=np.float32)
    feats[0, 0, 0] = 5.0
    grads = -np.ones_like(feats)
    assert (gradcam_map(feats, grads) == 0).all()
    with pytest.raises(InferenceError):
        gradcam_map(feats, np.ones((2, 4, 4)))


def test_gradient_shape_mismatch_raises():
    graph = FakeGraph(features=np.ones((3, 7, 7)), grads=np.ones((3, 6, 6)))
    with pytest.raises(InferenceError):
        SaliencyGenerator(graph).generate(make_bitmap(32, 32), 0)


def test_target_out_of_range_raises(features):
    graph = FakeGraph(features=features, logits=np.zeros(14))
    gen = SaliencyGenerator(graph)
    with pytest.raises(InferenceError):
        gen.generate(make_bitmap(32, 32), 14)
    with pytest.raises(InferenceError):
        gen.generate(make_bitmap(32, 32), -1)


def test_missing_outputs_raise():
    with pytest.raises(InferenceError):
        SaliencyGenerator(FakeGraph(logits=np.zeros(14))).generate(
            make_bitmap(32, 32), 0, strategy=Strategy.PER_CHANNEL
        )
    with pytest.raises(InferenceError):
        SaliencyGenerator(FakeGraph(features=np.ones((2, 3, 3)))).generate(
            make_bitmap(32, 32), 0, strategy=Strategy.ATTENTION
        )


def test_non_square_target_size(features):
    graph = FakeGraph(features=features, logits=np.zeros(14))
    result = SaliencyGenerator(graph).generate(make_bitmap(80, 80), 0, target_size=(100, 50))
    assert result.overlay.shape == (50, 100, 4)
    assert result.heatmap.shape == (50, 100, 4)


def test_channel_layer_outline_and_glow():
    v = np.array([[0.0, 0.8, 0.8, 0.8, 0.0]], dtype=np.float32)
    layer = channel_layer(v)
    assert tuple(layer[0, 1]) == (255, 255, 0, 255)
    assert tuple(layer[0, 3]) == (255, 255, 0, 255)
    assert layer[0, 2, 3] == round(180 * 0.8 ** 1.5)
    assert layer[0, 0, 3] == 0

    glow = channel_layer(np.full((1, 3), 0.9, dtype=np.float32))
    assert (glow[..., 3] == 255).all()
    assert tuple(glow[0, 1, :3]) != (255, 255, 0)


def test_outline_uses_raster_neighbours_across_rows():
    v = np.array([[0.0, 0.9], [0.9, 0.9]], dtype=np.float32)
    layer = channel_layer(v)
    # (0, 1) follows (0, 0) in raster order
    assert tuple(layer[0, 1]) == (255, 255, 0, 255)
    # (1, 0) follows (0, 1), which is high
    assert tuple(layer[1, 0]) != (255, 255, 0, 255)


def test_generator_resolves_graph_manager_lazily(features):
    graph = FakeGraph(features=features, logits=np.zeros(14))
    manager = GraphManager(lambda: graph)
    gen = SaliencyGenerator(manager)
    assert not manager.loaded
    gen.generate(make_bitmap(32, 32), 0)
    assert manager.loaded


class TinyNet(nn.Module):
    def __init__(self):
        super().__init__()
        torch.manual_seed(0)
        self.features = nn.Conv2d(3, 4, 3, stride=4, padding=1)
        self.head = nn.Linear(4, 2)
        self.num_classes = 2

    @property
    def target_layer(self):
        return self.features

    def forward(self, x):
        f = F.relu(self.features(x))
        return self.head(f.mean(dim=(2, 3)))


def test_torch_graph_gradcam_end_to_end():
    graph = TorchGraph(TinyNet())
    rng = np.random.default_rng(5)
    bmp = rng.integers(40, 200, size=(64, 64, 4), dtype=np.uint8)
    result = SaliencyGenerator(graph).generate(bmp, 1, target_size=(32, 32))

    assert result.strategy is Strategy.GRADIENT
    assert result.importance.shape == (8, 8)
    assert 0.0 <= result.importance.min() and result.importance.max() <= 1.0
    assert result.overlay.shape == (32, 32, 4)

    with pytest.raises(InferenceError):
        SaliencyGenerator(graph).generate(bmp, 2, target_size=(32, 32))
    graph.close()
