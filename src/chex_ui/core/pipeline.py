"""
Analysis Pipeline
=================

Sequences one upload through validation, enhancement, remote classification,
heatmap generation and region detection, reporting per-step status as it
goes.

Steps
-----
1. Validating image        - plausibility check; rejection ends the run
2. Enhancing image quality - :class:`~chex_ui.core.correction.AutoCorrector`
3. Running AI analysis     - ``/predict`` on the original upload
4. Generating heatmap      - ``/heatmap``, plus local saliency if a graph is configured
5. Detecting areas of interest - ``/boxes``
6. Finalizing results

The original (uncorrected) upload is what the service receives; the corrected
bitmap is what the user sees, and boxes are scaled to it.

Classes
-------
StepStatus
    pending / processing / completed / error
StepState
    Title, status and progress of one step
PipelineResult
    Everything one run produced
AnalysisPipeline
    Owns the service client and the inference graph for a session

Notes
-----
Runs are sequential and single-shot. Each run writes only to the
:class:`PipelineResult` it returns; ``AnalysisPipeline.result`` points at the
most recently started run. There is no cancellation.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum

import numpy as np

from chex_ui import config
from chex_ui.errors import ImageLoadError
from chex_ui.core.api_client import AnalysisReport, BoundingBox, InferenceClient, rescale_boxes
from chex_ui.core.correction import AutoCorrector, CorrectionResult
from chex_ui.core.graph_manager import GraphManager
from chex_ui.core.image_io import load_bitmap, read_source_bytes
from chex_ui.core.saliency import HeatmapResult, SaliencyGenerator
from chex_ui.core.validity import ValidityReport, assess_radiograph

logger = logging.getLogger(__name__)

STEP_TITLES = (
    "Validating image...",
    "Enhancing image quality...",
    "Running AI analysis...",
    "Generating heatmap...",
    "Detecting areas of interest...",
    "Finalizing results...",
)
VALIDATE, ENHANCE, PREDICT, HEATMAP, BOXES, FINALIZE = range(len(STEP_TITLES))


class StepStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class StepState:
    title: str
    status: StepStatus = StepStatus.PENDING
    progress: int = 0


@dataclass
class PipelineResult:
    """
    Output of one :meth:`AnalysisPipeline.run`.

    Attributes
    ----------
    steps : list of StepState
        Final state of every step
    progress : int
        Overall progress, 0-100
    rejected : bool
        The image failed validation; nothing after step 1 ran
    validity : ValidityReport
        Measured values and failed checks
    correction : CorrectionResult or None
        Corrected and original data URLs
    report : AnalysisReport or None
        Findings from the service
    service_heatmap : np.ndarray or None
        Heatmap rendered by the service, as a bitmap
    saliency : HeatmapResult or None
        Locally generated heatmap, when a graph is configured
    boxes : list of BoundingBox
        Regions in the service's 224x224 space
    display_boxes : list of BoundingBox
        The same regions scaled to the corrected image
    """

    steps: list[StepState]
    progress: int = 0
    rejected: bool = False
    validity: ValidityReport | None = None
    correction: CorrectionResult | None = None
    report: AnalysisReport | None = None
    service_heatmap: np.ndarray | None = None
    saliency: HeatmapResult | None = None
    boxes: list[BoundingBox] = field(default_factory=list)
    display_boxes: list[BoundingBox] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.progress == 100


class _RunTracker:
    """Step bookkeeping for one run; each run owns its result and callback."""

    def __init__(self, result, on_progress):
        self.result = result
        self.on_progress = on_progress

    def _notify(self):
        if self.on_progress is not None:
            self.on_progress([replace(s) for s in self.result.steps], self.result.progress)

    def set(self, index, status, progress, overall):
        step = self.result.steps[index]
        step.status = status
        step.progress = progress
        self.result.progress = overall
        self._notify()

    def fail_current(self):
        for step in self.result.steps:
            if step.status is StepStatus.PROCESSING:
                step.status = StepStatus.ERROR
                self._notify()
                return


class AnalysisPipeline:
    """
    Orchestrates the analysis of single uploads.

    Parameters
    ----------
    cfg : PipelineConfig, optional
        Runtime settings; ``PipelineConfig()`` if omitted
    client : InferenceClient, optional
        Service client; built from ``cfg`` if omitted
    graph : GraphManager, InferenceGraph, str or callable, optional
        Local saliency graph; ``cfg.graph`` if omitted. ``None`` disables
        local heatmaps.
    corrector : AutoCorrector, optional
        Image corrector
    on_progress : callable, optional
        Called as ``on_progress(steps, progress)`` after every transition with
        a snapshot of the step list

    Examples
    --------
    >>> from chex_ui.core.pipeline import AnalysisPipeline
    >>> with AnalysisPipeline() as pipeline:
    ...     result = pipeline.run("xray.png")
    >>> result.report.primary.label
    'Effusion'
    """

    def __init__(self, cfg=None, client=None, graph=None, corrector=None, on_progress=None):
        self.config = cfg or config.PipelineConfig()
        self.client = client or InferenceClient.from_config(self.config)
        if graph is None:
            graph = self.config.graph
        if isinstance(graph, GraphManager):
            self.graphs = graph
        else:
            self.graphs = GraphManager(graph, device=self.config.device)
        self.corrector = corrector or AutoCorrector()
        self.on_progress = on_progress
        self.result: PipelineResult | None = None

    def run(self, source, target_class: int | None = None, on_progress=None) -> PipelineResult:
        """
        Analyze one upload.

        Parameters
        ----------
        source : str, Path, bytes or file-like
            The uploaded file
        target_class : int, optional
            Class for the local heatmap; the primary prediction if omitted
        on_progress : callable, optional
            Progress callback for this run only; defaults to ``self.on_progress``

        Returns
        -------
        PipelineResult
            ``rejected`` is set when validation fails

        Raises
        ------
        ChexError
            From the step that failed; that step is marked ``error`` first
        """
        result = PipelineResult(steps=[StepState(t) for t in STEP_TITLES])
        self.result = result
        track = _RunTracker(result, on_progress or self.on_progress)
        try:
            track.set(VALIDATE, StepStatus.PROCESSING, 50, 5)
            try:
                data = read_source_bytes(source)
            except ImageLoadError as e:
                logger.warning("Could not read upload: %s", e)
                result.validity = ValidityReport(error=str(e))
            else:
                result.validity = assess_radiograph(data)
            if not result.validity.plausible:
                logger.info("Upload rejected: %s", result.validity.describe())
                result.rejected = True
                track.set(VALIDATE, StepStatus.ERROR, 100, 5)
                return result
            track.set(VALIDATE, StepStatus.COMPLETED, 100, 10)

            track.set(ENHANCE, StepStatus.PROCESSING, 50, 15)
            result.correction = self.corrector.correct(data)
            track.set(ENHANCE, StepStatus.COMPLETED, 100, 25)

            track.set(PREDICT, StepStatus.PROCESSING, 30, 35)
            result.report = self.client.predict(data)
            track.set(PREDICT, StepStatus.COMPLETED, 100, 45)

            track.set(HEATMAP, StepStatus.PROCESSING, 30, 55)
            result.service_heatmap = load_bitmap(self.client.heatmap(data))
            result.saliency = self._local_heatmap(result, target_class)
            track.set(HEATMAP, StepStatus.COMPLETED, 100, 70)

            track.set(BOXES, StepStatus.PROCESSING, 50, 80)
            result.boxes = self.client.boxes(data)
            height, width = result.correction.corrected_bitmap.shape[:2]
            result.display_boxes = rescale_boxes(result.boxes, width, height)
            track.set(BOXES, StepStatus.COMPLETED, 100, 90)

            track.set(FINALIZE, StepStatus.PROCESSING, 50, 95)
            primary = result.report.primary
            if primary is not None:
                logger.info("Primary finding: %s (%.1f%%)", primary.label, primary.confidence)
            track.set(FINALIZE, StepStatus.COMPLETED, 100, 100)
        except Exception:
            track.fail_current()
            raise
        return result

    def _local_heatmap(self, result, target_class):
        if not self.graphs.configured:
            return None
        if target_class is None:
            primary = result.report.primary
            target_class = primary.class_index if primary is not None else None
        if target_class is None:
            logger.info("No CheXNet class for the primary finding; skipping local heatmap")
            return None
        generator = SaliencyGenerator(self.graphs)
        return generator.generate(
            result.correction.corrected_bitmap,
            target_class,
            target_size=self.config.target_size,
        )

    def close(self) -> None:
        """Release the inference graph."""
        self.graphs.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
