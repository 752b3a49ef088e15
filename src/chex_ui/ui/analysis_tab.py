"""Single radiograph analysis tab for CheXScan."""

import logging
from pathlib import Path

from PySide6.QtWidgets import (
    QWidget,
    QVBoxLayout,
    QHBoxLayout,
    QPushButton,
    QLabel,
    QFileDialog,
    QGroupBox,
    QTextEdit,
    QProgressBar,
    QCheckBox,
    QMessageBox,
)
from PySide6.QtCore import Qt

from chex_ui.core.findings import confidence_band, describe_finding
from chex_ui.core.image_io import load_bitmap
from chex_ui.core.pipeline import AnalysisPipeline, StepStatus
from chex_ui.core.tasks import submit_analysis
from .overlay_canvas import OverlayCanvas

logger = logging.getLogger(__name__)

STATUS_MARKS = {
    StepStatus.PENDING: "○",
    StepStatus.PROCESSING: "◐",
    StepStatus.COMPLETED: "●",
    StepStatus.ERROR: "✕",
}

BAND_COLORS = {"high": "#2e7d32", "medium": "#f9a825", "low": "#c62828"}


class AnalysisTab(QWidget):
    """
    Tab for analyzing one chest X-ray.

    Provides interface for:
    - Selecting an image (PNG, JPEG, DICOM)
    - Running the full analysis in the background with step-by-step progress
    - Toggling between original and corrected image
    - Showing the service heatmap, the local saliency overlay and region boxes
    - Displaying findings with descriptions and recommendations

    Parameters
    ----------
    pipeline : AnalysisPipeline
        Pipeline owned by the application; the tab never closes it
    parent : QWidget, optional
        Parent widget, by default None
    """

    def __init__(self, pipeline: AnalysisPipeline, parent=None):
        super().__init__(parent)
        self.pipeline = pipeline
        self.image_path = None
        self.original_bitmap = None
        self.result = None
        self._run_id = 0
        self._running = False

        self._setup_ui()

    def _setup_ui(self):
        layout = QVBoxLayout(self)

        title = QLabel("Chest X-ray Analysis")
        title.setStyleSheet("font-size: 20px; font-weight: bold; margin: 10px;")
        layout.addWidget(title)

        layout.addWidget(self._create_image_selection_group())

        body = QHBoxLayout()
        self.canvas = OverlayCanvas()
        body.addWidget(self.canvas, stretch=3)
        body.addWidget(self._create_progress_group(), stretch=1)
        layout.addLayout(body, stretch=1)

        layout.addWidget(self._create_view_group())
        layout.addWidget(self._create_results_group())

    def _create_image_selection_group(self):
        group = QGroupBox("Image Selection")
        layout = QHBoxLayout()

        self.file_path_label = QLabel("No file selected")
        self.file_path_label.setStyleSheet("color: #666;")
        layout.addWidget(self.file_path_label, stretch=1)

        self.select_btn = QPushButton("Select Image...")
        self.select_btn.clicked.connect(self._select_image)
        layout.addWidget(self.select_btn)

        self.run_btn = QPushButton("Analyze")
        self.run_btn.clicked.connect(self._run_analysis)
        self.run_btn.setEnabled(False)
        self.run_btn.setStyleSheet(
            """
            QPushButton {
                background-color: #1976d2;
                color: white;
                font-weight: bold;
                padding: 8px 16px;
                border-radius: 5px;
            }
            QPushButton:disabled {
                background-color: #ccc;
            }
        """
        )
        layout.addWidget(self.run_btn)

        group.setLayout(layout)
        return group

    def _create_progress_group(self):
        group = QGroupBox("Progress")
        layout = QVBoxLayout()
        self.step_labels = []
        for _ in range(6):
            label = QLabel("")
            label.setStyleSheet("color: #666;")
            layout.addWidget(label)
            self.step_labels.append(label)
        layout.addStretch(1)
        self.progress_bar = QProgressBar()
        self.progress_bar.setRange(0, 100)
        layout.addWidget(self.progress_bar)
        group.setLayout(layout)
        return group

    def _create_view_group(self):
        group = QGroupBox("View")
        layout = QHBoxLayout()

        self.corrected_cb = QCheckBox("Corrected image")
        self.heatmap_cb = QCheckBox("Service heatmap")
        self.saliency_cb = QCheckBox("Local saliency")
        self.boxes_cb = QCheckBox("Areas of interest")
        for cb in (self.corrected_cb, self.heatmap_cb, self.saliency_cb, self.boxes_cb):
            cb.setEnabled(False)
            cb.toggled.connect(self._refresh_view)
            layout.addWidget(cb)
        layout.addStretch(1)

        group.setLayout(layout)
        return group

    def _create_results_group(self):
        group = QGroupBox("Results")
        layout = QVBoxLayout()

        self.results_text = QTextEdit()
        self.results_text.setReadOnly(True)
        self.results_text.setMaximumHeight(200)
        self.results_text.setText("No results yet. Select an image and run the analysis.")
        layout.addWidget(self.results_text)

        group.setLayout(layout)
        return group

    def _select_image(self):
        file_path, _ = QFileDialog.getOpenFileName(
            self,
            "Select X-ray Image",
            "",
            "Image Files (*.png *.jpg *.jpeg *.dcm);;All Files (*)",
        )
        if not file_path:
            return

        self.image_path = Path(file_path)
        self.file_path_label.setText(str(self.image_path))
        self._reset()
        try:
            self.original_bitmap = load_bitmap(self.image_path)
        except Exception as e:
            self.canvas.clear()
            self.results_text.setText(f"Error loading image:\n{e}")
            return
        self.canvas.set_bitmap(self.original_bitmap)
        self.run_btn.setEnabled(True)

    def _reset(self):
        self.result = None
        self.original_bitmap = None
        self.progress_bar.setValue(0)
        for label in self.step_labels:
            label.setText("")
        for cb in (self.corrected_cb, self.heatmap_cb, self.saliency_cb, self.boxes_cb):
            cb.blockSignals(True)
            cb.setChecked(False)
            cb.setEnabled(False)
            cb.blockSignals(False)
        self.canvas.set_heatmap(None)
        self.canvas.set_boxes([])

    def _run_analysis(self):
        if self.image_path is None or self._running:
            return
        self._run_id += 1
        run_id = self._run_id
        self._set_running(True)
        self.results_text.setText("Analysis in progress, please wait...")

        signals = submit_analysis(self.pipeline, str(self.image_path))
        # results of superseded runs are ignored
        signals.steps.connect(lambda steps: run_id == self._run_id and self._on_steps(steps))
        signals.progress.connect(
            lambda v: run_id == self._run_id and self.progress_bar.setValue(v)
        )
        signals.finished.connect(lambda r: run_id == self._run_id and self._on_complete(r))
        signals.error.connect(lambda msg: run_id == self._run_id and self._on_error(msg))

    def _set_running(self, running):
        # one run at a time; a new file can only be chosen once it finishes
        self._running = running
        self.select_btn.setEnabled(not running)
        self.run_btn.setEnabled(not running and self.image_path is not None)
        self.run_btn.setText("Analyzing..." if running else "Analyze")

    def _on_steps(self, steps):
        for label, step in zip(self.step_labels, steps):
            label.setText(f"{STATUS_MARKS[step.status]}  {step.title}")
            color = "#c62828" if step.status is StepStatus.ERROR else "#333"
            label.setStyleSheet(f"color: {color};")

    def _on_complete(self, result):
        self.result = result
        self._set_running(False)

        if result.rejected:
            QMessageBox.warning(
                self,
                "Not a chest X-ray",
                "Please upload a chest X-ray.\n\n" + result.validity.describe(),
            )
            self.results_text.setText(result.validity.describe())
            return

        self.corrected_cb.setEnabled(True)
        self.corrected_cb.setChecked(True)
        self.heatmap_cb.setEnabled(result.service_heatmap is not None)
        self.saliency_cb.setEnabled(result.saliency is not None)
        self.boxes_cb.setEnabled(bool(result.display_boxes))
        self.canvas.set_boxes(result.display_boxes)
        self._refresh_view()
        self.results_text.setHtml(self._format_report(result))

    def _on_error(self, error_msg):
        self.results_text.setText(f"Analysis failed:\n\n{error_msg}")
        self._set_running(False)

    def _refresh_view(self):
        if self.result is None or self.result.correction is None:
            return
        r = self.result
        if self.saliency_cb.isChecked() and r.saliency is not None:
            self.canvas.set_bitmap(r.saliency.overlay)
            self.canvas.set_heatmap(None)
        else:
            base = r.correction.corrected_bitmap if self.corrected_cb.isChecked() else self.original_bitmap
            self.canvas.set_bitmap(base)
            self.canvas.set_heatmap(r.service_heatmap, opacity=0.6)
        self.canvas.show_heatmap = self.heatmap_cb.isChecked()
        self.canvas.show_boxes = self.boxes_cb.isChecked()
        self.canvas.update()

    @staticmethod
    def _format_report(result) -> str:
        report = result.report
        primary = report.primary
        parts = []
        if primary is not None:
            band = confidence_band(primary.confidence)
            parts.append(
                f"<h3>{primary.label} "
                f"<span style='color:{BAND_COLORS[band]}'>{primary.confidence:.1f}%</span></h3>"
            )
            info = describe_finding(primary.label)
            if info is not None:
                parts.append(f"<p>{info.description}</p>")
                parts.append(f"<p><b>Symptoms:</b> {info.symptoms}</p>")
                parts.append(f"<p><b>Recommendations:</b> {info.recommendations}</p>")
        rows = "".join(
            f"<tr><td>{p.label}</td><td align='right'>{p.confidence:.1f}%</td></tr>"
            for p in sorted(report.predictions, key=lambda p: -p.confidence)
        )
        if rows:
            parts.append(f"<table>{rows}</table>")
        if report.summary:
            parts.append(f"<p><b>Summary:</b> {report.summary}</p>")
        if report.recommendations:
            items = "".join(f"<li>{r}</li>" for r in report.recommendations)
            parts.append(f"<ul>{items}</ul>")
        c = result.correction.corrections
        parts.append(
            "<p style='color:#666'>Corrections: "
            f"rotation {c.rotation}, brightness {c.brightness:+.1f}, "
            f"contrast {c.contrast:+.1f}, sharpness {c.sharpness:+.1f}</p>"
        )
        return "".join(parts)
