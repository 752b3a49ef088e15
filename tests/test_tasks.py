import pytest

pytest.importorskip("PySide6")

from chex_ui.core.tasks import Task  # noqa: E402


def _collect(task):
    out = {"finished": [], "error": [], "progress": [], "steps": []}
    for name, values in out.items():
        getattr(task.signals, name).connect(values.append)
    return out


def test_task_emits_result():
    task = Task(lambda a, b=0: a + b, 2, b=3)
    out = _collect(task)
    task.run()
    assert out["finished"] == [5]
    assert out["error"] == []


def test_task_turns_exception_into_error():
    def boom():
        raise RuntimeError("service unreachable")

    task = Task(boom)
    out = _collect(task)
    task.run()
    assert out["error"] == ["service unreachable"]
    assert out["finished"] == []


def test_report_relays_progress():
    task = Task(lambda: None)
    out = _collect(task)
    task.report(["step"], 45.0)
    assert out["steps"] == [["step"]]
    assert out["progress"] == [45]
