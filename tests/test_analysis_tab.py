import os

import pytest

pytest.importorskip("PySide6")
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PySide6.QtWidgets import QApplication  # noqa: E402

from chex_ui.ui import analysis_tab  # noqa: E402
from chex_ui.ui.analysis_tab import AnalysisTab  # noqa: E402


@pytest.fixture(scope="module")
def qapp():
    return QApplication.instance() or QApplication([])


class DummyPipeline:
    def run(self, source, target_class=None, on_progress=None):
        raise AssertionError("not expected to run")


def test_selection_locked_while_running(qapp, tmp_path, monkeypatch):
    submitted = []

    class Signals:
        def __getattr__(self, name):
            return self

        def connect(self, slot):
            pass

    def fake_submit(pipeline, source, target_class=None):
        submitted.append(source)
        return Signals()

    monkeypatch.setattr(analysis_tab, "submit_analysis", fake_submit)
    tab = AnalysisTab(DummyPipeline())
    tab.image_path = tmp_path / "xray.png"

    tab._run_analysis()
    assert len(submitted) == 1
    assert not tab.select_btn.isEnabled()
    assert not tab.run_btn.isEnabled()

    # a second click while the first run is in flight is ignored
    tab._run_analysis()
    assert len(submitted) == 1

    tab._on_error("service unreachable")
    assert tab.select_btn.isEnabled()
    assert tab.run_btn.isEnabled()
