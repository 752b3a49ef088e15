"""
Inference Service Client
========================

Thin ``requests`` wrapper around the remote classification service.

Every endpoint takes the original upload as a multipart form field named
``file``:

- ``POST /predict`` returns the findings report as JSON
- ``POST /heatmap`` returns a rendered heatmap as raw image bytes
- ``POST /boxes`` returns ``{"boxes": [{x, y, w, h, label}, ...]}`` in a
  224x224 coordinate space

Transport failures, non-2xx responses and unparseable JSON all raise
:class:`~chex_ui.errors.NetworkError`. Nothing is retried.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import requests

from chex_ui import config
from chex_ui.errors import NetworkError
from chex_ui.models.chexnet import CHEXNET_LABELS
from chex_ui.core.image_io import read_source_bytes

logger = logging.getLogger(__name__)


@dataclass
class Prediction:
    label: str
    confidence: float
    class_index: int | None = None

    @classmethod
    def from_json(cls, item: dict) -> "Prediction":
        label = str(item["label"])
        index = item.get("classIndex")
        if index is not None:
            index = int(index)
        elif label in CHEXNET_LABELS:
            index = CHEXNET_LABELS.index(label)
        return cls(label=label, confidence=float(item["confidence"]), class_index=index)


@dataclass
class AnalysisReport:
    """Findings returned by the predict endpoint."""

    predictions: list[Prediction]
    report_text: str | None = None
    summary: str | None = None
    recommendations: list[str] = field(default_factory=list)
    primary_diagnosis: str | None = None
    confidence: float | None = None

    @property
    def primary(self) -> Prediction | None:
        """Highest-confidence prediction; the first one wins ties."""
        if not self.predictions:
            return None
        best = self.predictions[0]
        for p in self.predictions[1:]:
            if p.confidence > best.confidence:
                best = p
        return best

    @classmethod
    def from_json(cls, payload: dict) -> "AnalysisReport":
        try:
            predictions = [Prediction.from_json(p) for p in payload.get("predictions") or []]
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkError(f"Malformed prediction in response: {e}") from e
        confidence = payload.get("confidence")
        return cls(
            predictions=predictions,
            report_text=payload.get("report_text"),
            summary=payload.get("summary"),
            recommendations=list(payload.get("recommendations") or []),
            primary_diagnosis=payload.get("primary_diagnosis"),
            confidence=None if confidence is None else float(confidence),
        )


@dataclass(frozen=True)
class BoundingBox:
    """Region of interest in the service's square coordinate space."""

    x: float
    y: float
    w: float
    h: float
    label: str = ""

    def scaled(self, width: float, height: float, space: int = config.BOX_SPACE):
        """
        Map the box into a ``width`` x ``height`` display.

        Examples
        --------
        >>> BoundingBox(112, 56, 22.4, 44.8, "Mass").scaled(1000, 500)
        BoundingBox(x=500.0, y=125.0, w=100.0, h=100.0, label='Mass')
        """
        return BoundingBox(
            x=self.x / space * width,
            y=self.y / space * height,
            w=self.w / space * width,
            h=self.h / space * height,
            label=self.label,
        )


def rescale_boxes(boxes, width, height) -> list[BoundingBox]:
    return [b.scaled(width, height) for b in boxes]


class InferenceClient:
    """
    Client for the remote inference service.

    Parameters
    ----------
    base_url : str, default="http://127.0.0.1:8000"
        Service root
    timeout : float, default=120.0
        Per-request timeout in seconds
    paths : dict, optional
        Overrides for the ``predict``, ``heatmap`` and ``boxes`` paths
    session : requests.Session, optional
        Session to send requests with; plain ``requests.post`` if omitted
    """

    PATHS = {"predict": "/predict", "heatmap": "/heatmap", "boxes": "/boxes"}

    def __init__(self, base_url="http://127.0.0.1:8000", timeout=120.0, paths=None, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.paths = dict(self.PATHS, **(paths or {}))
        self.session = session

    @classmethod
    def from_config(cls, cfg: config.PipelineConfig) -> "InferenceClient":
        return cls(
            cfg.service_url,
            cfg.timeout,
            paths={
                "predict": cfg.predict_path,
                "heatmap": cfg.heatmap_path,
                "boxes": cfg.boxes_path,
            },
        )

    def _post(self, endpoint: str, source) -> requests.Response:
        url = f"{self.base_url}{self.paths[endpoint]}"
        name = Path(source).name if isinstance(source, (str, Path)) else "upload"
        files = {"file": (name, read_source_bytes(source), "application/octet-stream")}
        post = self.session.post if self.session is not None else requests.post
        logger.debug("POST %s", url)
        try:
            response = post(url, files=files, timeout=self.timeout)
        except requests.exceptions.ConnectionError as e:
            raise NetworkError(f"Cannot connect to inference service at {url}") from e
        except requests.exceptions.Timeout as e:
            raise NetworkError(f"Request to {url} timed out") from e
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e
        if not 200 <= response.status_code < 300:
            raise NetworkError(
                f"{endpoint} failed with status {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def _json(self, endpoint: str, source) -> dict:
        response = self._post(endpoint, source)
        try:
            payload = response.json()
        except ValueError as e:
            raise NetworkError(f"{endpoint} returned a non-JSON body") from e
        if not isinstance(payload, dict):
            raise NetworkError(f"{endpoint} returned {type(payload).__name__}, expected an object")
        return payload

    def predict(self, source) -> AnalysisReport:
        """Upload ``source`` and parse the findings report."""
        report = AnalysisReport.from_json(self._json("predict", source))
        logger.info("Received %d predictions", len(report.predictions))
        return report

    def heatmap(self, source) -> bytes:
        """Upload ``source`` and return the rendered heatmap image bytes."""
        return self._post("heatmap", source).content

    def boxes(self, source) -> list[BoundingBox]:
        """Upload ``source`` and return regions of interest in 224x224 space."""
        payload = self._json("boxes", source)
        try:
            return [
                BoundingBox(
                    x=float(b["x"]),
                    y=float(b["y"]),
                    w=float(b["w"]),
                    h=float(b["h"]),
                    label=str(b.get("label", "")),
                )
                for b in payload.get("boxes") or []
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkError(f"Malformed box in response: {e}") from e
