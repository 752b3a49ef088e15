"""
Core Application Logic for CheXScan
===================================

- **Image I/O**: PNG/JPEG/DICOM loading into RGBA bitmaps, data URL encoding
- **Analysis**: brightness, raster contrast and edge density statistics
- **Validity**: chest X-ray plausibility heuristics (fail closed)
- **Correction**: rotation, brightness, contrast and unsharp-mask correction
- **Saliency**: Grad-CAM, per-channel and attention heatmaps
- **Service client**: ``/predict``, ``/heatmap`` and ``/boxes``
- **Pipeline**: six-step orchestration with progress reporting
- **Background tasks**: Qt thread pool execution (``chex_ui.core.tasks``,
  imported separately so the core works without a Qt event loop)

Modules
-------
image_io, analyzer, validity, correction, colormap
    Pixel-level building blocks
graph_manager, saliency
    Local inference and heatmaps
api_client, findings
    Remote service and finding descriptions
pipeline
    Orchestration
tasks
    QThreadPool wrapper for background execution
"""

from chex_ui.config import PipelineConfig
from .analyzer import ImageStatistics, analyze, channel_difference
from .validity import ValidityReport, assess_radiograph, is_plausible_radiograph
from .correction import (
    AutoCorrector,
    CorrectionParameters,
    CorrectionResult,
    apply_corrections,
    derive_corrections,
)
from .colormap import apply_colormap, turbo_colormap
from .graph_manager import GraphManager
from .saliency import HeatmapResult, SaliencyGenerator, Strategy
from .api_client import AnalysisReport, BoundingBox, InferenceClient, Prediction
from .pipeline import AnalysisPipeline, PipelineResult, StepState, StepStatus

__all__ = [
    "PipelineConfig",
    "ImageStatistics",
    "analyze",
    "channel_difference",
    "ValidityReport",
    "assess_radiograph",
    "is_plausible_radiograph",
    "AutoCorrector",
    "CorrectionParameters",
    "CorrectionResult",
    "apply_corrections",
    "derive_corrections",
    "apply_colormap",
    "turbo_colormap",
    "GraphManager",
    "HeatmapResult",
    "SaliencyGenerator",
    "Strategy",
    "AnalysisReport",
    "BoundingBox",
    "InferenceClient",
    "Prediction",
    "AnalysisPipeline",
    "PipelineResult",
    "StepState",
    "StepStatus",
]
