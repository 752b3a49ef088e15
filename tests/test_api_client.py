from unittest import mock

import pytest
import requests

from chex_ui.config import PipelineConfig
from chex_ui.core.api_client import (
    AnalysisReport,
    BoundingBox,
    InferenceClient,
    Prediction,
    rescale_boxes,
)
from chex_ui.errors import NetworkError

PREDICT_JSON = {
    "predictions": [
        {"label": "Effusion", "confidence": 71.5},
        {"label": "Pneumonia", "confidence": 22.0},
        {"label": "NORMAL", "confidence": 5.0},
    ],
    "report_text": "Findings ...",
    "summary": "Likely effusion",
    "recommendations": ["Follow up"],
    "primary_diagnosis": "Effusion",
    "confidence": 71.5,
}


def _response(status=200, json_data=None, content=b""):
    r = mock.Mock()
    r.status_code = status
    r.content = content
    if json_data is None:
        r.json.side_effect = ValueError("no json")
    else:
        r.json.return_value = json_data
    return r


@pytest.fixture
def post():
    with mock.patch("chex_ui.core.api_client.requests.post") as p:
        yield p


def test_predict_uploads_file_field(post):
    post.return_value = _response(json_data=PREDICT_JSON)
    report = InferenceClient("http://svc:9000/").predict(b"IMAGE")

    url = post.call_args.args[0]
    files = post.call_args.kwargs["files"]
    assert url == "http://svc:9000/predict"
    assert files["file"][1] == b"IMAGE"
    assert post.call_args.kwargs["timeout"] == 120.0

    assert report.primary.label == "Effusion"
    assert report.primary.class_index == 2
    assert report.predictions[2].class_index is None
    assert report.recommendations == ["Follow up"]
    assert report.confidence == 71.5


def test_path_upload_uses_file_name(post, tmp_path):
    path = tmp_path / "scan.png"
    path.write_bytes(b"PNGDATA")
    post.return_value = _response(content=b"HEAT")
    assert InferenceClient().heatmap(path) == b"HEAT"
    assert post.call_args.kwargs["files"]["file"][0] == "scan.png"


def test_boxes_parsed(post):
    post.return_value = _response(
        json_data={"boxes": [{"x": 10, "y": 20, "w": 30, "h": 40, "label": "Mass"}]}
    )
    boxes = InferenceClient().boxes(b"IMG")
    assert boxes == [BoundingBox(10.0, 20.0, 30.0, 40.0, "Mass")]


def test_missing_boxes_key_is_empty(post):
    post.return_value = _response(json_data={})
    assert InferenceClient().boxes(b"IMG") == []


def test_non_2xx_raises_with_status(post):
    post.return_value = _response(status=503, json_data={"detail": "down"})
    with pytest.raises(NetworkError) as err:
        InferenceClient().predict(b"IMG")
    assert err.value.status_code == 503


def test_transport_failures_are_wrapped(post):
    post.side_effect = requests.exceptions.ConnectionError("refused")
    with pytest.raises(NetworkError) as err:
        InferenceClient().boxes(b"IMG")
    assert isinstance(err.value.__cause__, requests.exceptions.ConnectionError)

    post.side_effect = requests.exceptions.Timeout()
    with pytest.raises(NetworkError):
        InferenceClient().heatmap(b"IMG")


def test_non_json_body_raises(post):
    post.return_value = _response(json_data=None)
    with pytest.raises(NetworkError):
        InferenceClient().predict(b"IMG")


def test_malformed_prediction_raises(post):
    post.return_value = _response(json_data={"predictions": [{"confidence": 3}]})
    with pytest.raises(NetworkError):
        InferenceClient().predict(b"IMG")


def test_client_from_config_paths(post):
    cfg = PipelineConfig(service_url="http://h", boxes_path="/v2/boxes")
    post.return_value = _response(json_data={"boxes": []})
    InferenceClient.from_config(cfg).boxes(b"IMG")
    assert post.call_args.args[0] == "http://h/v2/boxes"


def test_primary_tie_keeps_first():
    report = AnalysisReport(
        predictions=[Prediction("Mass", 40.0), Prediction("Nodule", 40.0)]
    )
    assert report.primary.label == "Mass"
    assert AnalysisReport(predictions=[]).primary is None


def test_box_scaling():
    box = BoundingBox(112, 56, 22.4, 44.8, "Mass")
    scaled = box.scaled(1000, 500)
    assert scaled.x == pytest.approx(500.0)
    assert scaled.y == pytest.approx(125.0)
    assert scaled.w == pytest.approx(100.0)
    assert scaled.h == pytest.approx(100.0)
    assert rescale_boxes([box], 224, 224) == [box]


def test_service_class_index_takes_precedence():
    report = AnalysisReport.from_json(
        {
            "predictions": [
                {"label": "Pleural Thickening", "confidence": 80, "classIndex": 12},
                {"label": "Effusion", "confidence": 10, "classIndex": "2"},
                {"label": "Mass", "confidence": 5},
            ]
        }
    )
    assert [p.class_index for p in report.predictions] == [12, 2, 4]
    assert report.primary.class_index == 12


def test_non_integer_class_index_is_malformed():
    with pytest.raises(NetworkError):
        AnalysisReport.from_json(
            {"predictions": [{"label": "Mass", "confidence": 5, "classIndex": "x"}]}
        )
