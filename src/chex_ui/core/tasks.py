"""
Background Task Execution
==========================

Runs analysis off the GUI thread on Qt's global ``QThreadPool`` and relays
results, errors and pipeline progress back through Qt signals.

Classes
-------
TaskSignals
    Signals emitted from the worker thread
Task
    QRunnable wrapping a callable

Functions
---------
submit
    Run any callable in the background
submit_analysis
    Run :meth:`AnalysisPipeline.run` with progress relayed as signals

Examples
--------
>>> from chex_ui.core.tasks import submit_analysis
>>> signals = submit_analysis(pipeline, "xray.png")
>>> signals.progress.connect(progress_bar.setValue)
>>> signals.finished.connect(show_result)
>>> signals.error.connect(show_error)
"""

import logging

from PySide6.QtCore import QObject, QRunnable, QThreadPool, Signal

logger = logging.getLogger(__name__)


class TaskSignals(QObject):
    """
    Signals
    -------
    finished : Signal(object)
        Return value of the callable
    error : Signal(str)
        Message of the exception the callable raised
    progress : Signal(int)
        Overall progress, 0-100
    steps : Signal(object)
        Snapshot of the pipeline's list of StepState
    """

    finished = Signal(object)
    error = Signal(str)
    progress = Signal(int)
    steps = Signal(object)


class Task(QRunnable):
    """
    Execute ``fn(*args, **kwargs)`` in a worker thread.

    Exceptions are logged and turned into the ``error`` signal; the GUI
    decides how to present them.
    """

    def __init__(self, fn, *args, **kwargs):
        super().__init__()
        self.fn = fn
        self.args = args
        self.kwargs = kwargs
        self.signals = TaskSignals()

    def report(self, steps, progress):
        """Progress callback with the ``AnalysisPipeline.on_progress`` signature."""
        self.signals.steps.emit(steps)
        self.signals.progress.emit(int(progress))

    def run(self):
        try:
            res = self.fn(*self.args, **self.kwargs)
        except Exception as e:
            logger.exception("Background task failed")
            self.signals.error.emit(str(e))
        else:
            self.signals.finished.emit(res)


def submit(fn, *args, **kwargs) -> TaskSignals:
    """Start ``fn`` on the global thread pool and return its signals."""
    t = Task(fn, *args, **kwargs)
    QThreadPool.globalInstance().start(t)
    return t.signals


def submit_analysis(pipeline, source, target_class=None) -> TaskSignals:
    """
    Start ``pipeline.run(source, target_class)`` in the background.

    Progress of this run is relayed through the task's own signals, so
    connect to ``progress`` / ``steps`` before the event loop resumes.
    """
    t = Task(pipeline.run, source, target_class)
    t.kwargs["on_progress"] = t.report
    QThreadPool.globalInstance().start(t)
    return t.signals
