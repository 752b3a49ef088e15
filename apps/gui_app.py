#!/usr/bin/env python
"""
CheXScan GUI Application Entry Point.

This script launches the graphical user interface for chest X-ray analysis.
Service URL and local graph come from ``CHEXSCAN_*`` environment variables.
"""

import sys
from pathlib import Path

# Add src to path for development
src_path = Path(__file__).parent.parent / "src"
if src_path.exists():
    sys.path.insert(0, str(src_path))

from PySide6.QtWidgets import QApplication  # noqa: E402
from chex_ui.config import PipelineConfig, setup_logging  # noqa: E402
from chex_ui.core.pipeline import AnalysisPipeline  # noqa: E402
from chex_ui.ui.main_window import MainWindow  # noqa: E402


def main():
    """
    Launch the CheXScan GUI application.

    Returns
    -------
    int
        Exit code (0 for success)
    """
    setup_logging()

    app = QApplication(sys.argv)
    app.setApplicationName("CheXScan")
    app.setOrganizationName("CheXScan")
    app.setStyle("Fusion")

    pipeline = AnalysisPipeline(PipelineConfig.from_env())
    window = MainWindow(pipeline)
    window.show()

    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
