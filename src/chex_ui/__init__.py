"""
CheXScan: Chest X-ray Findings with Saliency Heatmaps
=====================================================

CheXScan checks that an upload plausibly is a chest radiograph, normalizes
its exposure, contrast, sharpness and orientation, sends it to a remote
classification service and visualizes the evidence for a finding as a
heatmap over the image.

Workflow
--------
1. **Validate**: cheap pixel heuristics reject photos and screenshots
2. **Enhance**: statistics-driven brightness/contrast/sharpness correction
3. **Classify**: 14 CheXNet findings from the inference service
4. **Explain**: Grad-CAM, per-channel or luminance-proxy heatmaps from a
   local inference graph, plus the service's own heatmap and regions

Quick Start
-----------
>>> from chex_ui.core import AnalysisPipeline, PipelineConfig
>>> cfg = PipelineConfig(graph="chexnet_imagenet")
>>> with AnalysisPipeline(cfg) as pipeline:
...     result = pipeline.run("xray.png")
>>> result.report.primary
Prediction(label='Effusion', confidence=71.2, class_index=2)

Main Modules
------------
models
    Inference graphs (ONNX, PyTorch) and graph loading
core
    Analysis, validation, correction, saliency, service client, pipeline
ui
    PySide6 GUI
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
