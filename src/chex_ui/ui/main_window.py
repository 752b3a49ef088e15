"""Main window for the CheXScan application."""

from PySide6.QtWidgets import QMainWindow, QTabWidget, QWidget, QVBoxLayout, QLabel
from PySide6.QtCore import Qt

from .analysis_tab import AnalysisTab


class MainWindow(QMainWindow):
    """
    Main application window.

    Parameters
    ----------
    pipeline : AnalysisPipeline
        Pipeline shared by the tabs; closed when the window closes
    parent : QWidget, optional
        Parent widget, by default None

    Attributes
    ----------
    tab_widget : QTabWidget
        Tab container
    analysis_tab : AnalysisTab
        Single-image analysis
    """

    def __init__(self, pipeline, parent=None):
        super().__init__(parent)
        self.pipeline = pipeline
        self.setWindowTitle("CheXScan: Chest X-ray Findings and Heatmaps")
        self.setMinimumSize(1200, 800)

        central_widget = QWidget()
        self.setCentralWidget(central_widget)
        layout = QVBoxLayout(central_widget)

        self.tab_widget = QTabWidget()
        layout.addWidget(self.tab_widget)

        self.analysis_tab = AnalysisTab(pipeline)
        self.tab_widget.addTab(self.analysis_tab, "Analysis")
        self.tab_widget.addTab(self._create_about_tab(), "About")

    def _create_about_tab(self):
        widget = QWidget()
        layout = QVBoxLayout(widget)
        cfg = self.pipeline.config
        label = QLabel(
            "CheXScan\n\n"
            f"Inference service: {cfg.service_url}\n"
            f"Local saliency graph: {cfg.graph or 'disabled'}\n\n"
            "Results are informational and not a medical diagnosis."
        )
        label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        label.setStyleSheet("font-size: 14px; color: #666;")
        layout.addWidget(label)
        return widget

    def closeEvent(self, event):
        self.pipeline.close()
        super().closeEvent(event)
