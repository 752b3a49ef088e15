"""
UI Components for CheXScan
==========================

PySide6 interface over :class:`chex_ui.core.pipeline.AnalysisPipeline`.

Components
----------
MainWindow
    Tab container; owns the pipeline's lifetime
AnalysisTab
    Upload, step-by-step progress, findings and overlays
OverlayCanvas
    Image view with heatmap layer and region boxes

All analysis runs off the GUI thread through ``core.tasks.submit_analysis``.
"""

__all__ = []
