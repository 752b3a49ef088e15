import threading

import numpy as np
import pytest

from chex_ui.config import PipelineConfig
from chex_ui.core.api_client import AnalysisReport, BoundingBox, Prediction
from chex_ui.core.graph_manager import GraphManager
from chex_ui.core.pipeline import (
    BOXES,
    FINALIZE,
    PREDICT,
    STEP_TITLES,
    VALIDATE,
    AnalysisPipeline,
    StepStatus,
)
from chex_ui.core.saliency import Strategy
from chex_ui.errors import NetworkError

from conftest import FakeGraph, make_bitmap, png_bytes


class FakeClient:
    def __init__(self, report=None, boxes=None, fail_on=None):
        self.report = report or AnalysisReport(
            predictions=[Prediction("Pneumonia", 12.0, 6), Prediction("Effusion", 81.0, 2)],
            summary="Likely effusion",
        )
        self.box_list = boxes if boxes is not None else [BoundingBox(112, 112, 56, 56, "Effusion")]
        self.fail_on = fail_on
        self.calls = []

    def _call(self, name, data):
        self.calls.append((name, data))
        if name == self.fail_on:
            raise NetworkError(f"{name} failed with status 500", status_code=500)

    def predict(self, data):
        self._call("predict", data)
        return self.report

    def heatmap(self, data):
        self._call("heatmap", data)
        return png_bytes(make_bitmap(224, 224, rgb=(255, 0, 0)))

    def boxes(self, data):
        self._call("boxes", data)
        return list(self.box_list)


def _recorder():
    events = []

    def on_progress(steps, progress):
        events.append(([s.status for s in steps], progress))

    return events, on_progress


def _cam_graph():
    features = np.ones((2, 7, 7), np.float32)
    grads = np.zeros((2, 7, 7), np.float32)
    grads[0, 3, 3] = 1.0
    features[0, 3, 3] = 5.0
    return FakeGraph(features=features, grads=grads)


def test_full_run_reports_milestones(gray_png):
    events, on_progress = _recorder()
    client = FakeClient()
    pipeline = AnalysisPipeline(client=client, on_progress=on_progress)
    result = pipeline.run(gray_png)

    assert result.completed and not result.rejected
    assert [p for _, p in events] == [5, 10, 15, 25, 35, 45, 55, 70, 80, 90, 95, 100]
    assert all(s.status is StepStatus.COMPLETED for s in result.steps)
    assert [s.title for s in result.steps] == list(STEP_TITLES)

    # the service always receives the original upload
    assert [name for name, _ in client.calls] == ["predict", "heatmap", "boxes"]
    assert all(data == gray_png for _, data in client.calls)

    assert result.report.primary.label == "Effusion"
    assert result.service_heatmap.shape == (224, 224, 4)
    assert result.saliency is None
    assert result.correction.corrected_image.startswith("data:image/jpeg;base64,")


def test_predict_step_completes_before_heatmap(gray_png):
    events, on_progress = _recorder()
    AnalysisPipeline(client=FakeClient(), on_progress=on_progress).run(gray_png)
    statuses, progress = events[5]
    assert progress == 45
    assert statuses[PREDICT] is StepStatus.COMPLETED


def test_boxes_scaled_to_corrected_image():
    png = png_bytes(make_bitmap(300, 448))
    result = AnalysisPipeline(client=FakeClient()).run(png)
    assert result.boxes == [BoundingBox(112, 112, 56, 56, "Effusion")]
    box = result.display_boxes[0]
    assert box.x == pytest.approx(224.0)
    assert box.y == pytest.approx(150.0)
    assert box.w == pytest.approx(112.0)
    assert box.h == pytest.approx(75.0)


def test_rejection_skips_service():
    events, on_progress = _recorder()
    client = FakeClient()
    photo = png_bytes(make_bitmap(200, 200, rgb=(250, 20, 20)))
    result = AnalysisPipeline(client=client, on_progress=on_progress).run(photo)

    assert result.rejected
    assert not result.completed
    assert client.calls == []
    assert result.correction is None and result.report is None
    assert result.steps[VALIDATE].status is StepStatus.ERROR
    assert all(s.status is StepStatus.PENDING for s in result.steps[1:])
    assert events[-1][1] == 5
    assert result.validity.failures == ["color"]


def test_undecodable_upload_is_rejected():
    client = FakeClient()
    result = AnalysisPipeline(client=client).run(b"not an image")
    assert result.rejected
    assert result.validity.error is not None
    assert client.calls == []


def test_service_error_marks_step_and_propagates(gray_png):
    events, on_progress = _recorder()
    client = FakeClient(fail_on="boxes")
    pipeline = AnalysisPipeline(client=client, on_progress=on_progress)
    with pytest.raises(NetworkError):
        pipeline.run(gray_png)

    steps = pipeline.result.steps
    assert steps[BOXES].status is StepStatus.ERROR
    assert steps[PREDICT].status is StepStatus.COMPLETED
    assert steps[FINALIZE].status is StepStatus.PENDING
    assert events[-1][0][BOXES] is StepStatus.ERROR


def test_local_saliency_targets_primary_class(gray_png):
    graph = _cam_graph()
    pipeline = AnalysisPipeline(client=FakeClient(), graph=graph)
    result = pipeline.run(gray_png)
    assert result.saliency is not None
    assert result.saliency.strategy is Strategy.GRADIENT
    assert result.saliency.overlay.shape == (224, 224, 4)
    assert graph.last_tensor.shape == (1, 3, 224, 224)


def test_local_saliency_explicit_target_and_unknown_primary(gray_png):
    report = AnalysisReport(predictions=[Prediction("NORMAL", 90.0)])
    pipeline = AnalysisPipeline(client=FakeClient(report=report), graph=_cam_graph())
    assert pipeline.run(gray_png).saliency is None
    assert pipeline.run(gray_png, target_class=4).saliency is not None


def test_graph_from_config_and_close(gray_png):
    graph = _cam_graph()
    manager = GraphManager(lambda: graph)
    cfg = PipelineConfig(target_size=(112, 112))
    with AnalysisPipeline(cfg, client=FakeClient(), graph=manager) as pipeline:
        result = pipeline.run(gray_png)
        assert pipeline.graphs is manager
    assert result.saliency.heatmap.shape == (112, 112, 4)
    assert graph.closed
    assert not manager.loaded


class BlockingClient(FakeClient):
    """Holds ``predict`` until released so a second run can start meanwhile."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def predict(self, data):
        self.entered.set()
        assert self.release.wait(timeout=10)
        return super().predict(data)


def test_overlapping_runs_keep_separate_results(gray_png):
    client = BlockingClient()
    pipeline = AnalysisPipeline(client=client)
    first = {}

    def slow_run():
        first["result"] = pipeline.run(gray_png)

    worker = threading.Thread(target=slow_run)
    worker.start()
    assert client.entered.wait(timeout=10)

    photo = png_bytes(make_bitmap(200, 200, rgb=(250, 20, 20)))
    rejected = pipeline.run(photo)
    client.release.set()
    worker.join(timeout=30)

    assert rejected.progress == 5
    assert [s.status for s in rejected.steps] == [StepStatus.ERROR] + [StepStatus.PENDING] * 5
    assert first["result"].completed
    assert all(s.status is StepStatus.COMPLETED for s in first["result"].steps)


def test_per_run_progress_callback(gray_png):
    default_events, default_cb = _recorder()
    run_events, run_cb = _recorder()
    pipeline = AnalysisPipeline(client=FakeClient(), on_progress=default_cb)
    pipeline.run(gray_png, on_progress=run_cb)
    assert default_events == []
    assert run_events[-1][1] == 100
