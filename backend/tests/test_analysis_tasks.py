import threading
from types import SimpleNamespace

from reposcope.domain import AnalysisStatus, AnalysisType
from reposcope.services.analysis_tasks import AnalysisTaskRunner
from reposcope.services.errors import AIFailure


class FakeService:
    def __init__(self, error: Exception | None = None, gate: threading.Event | None = None) -> None:
        self.error = error
        self.gate = gate
        self.calls: list[tuple[int, AnalysisType]] = []

    def analyze_repository(self, repo_id: int, analysis_type: AnalysisType):
        self.calls.append((repo_id, analysis_type))
        if self.gate is not None:
            self.gate.wait(5)
        if self.error:
            raise self.error
        return SimpleNamespace(id=41)


def test_submit_returns_before_the_run_finishes() -> None:
    gate = threading.Event()
    runner = AnalysisTaskRunner(FakeService(gate=gate), max_workers=1)
    try:
        task = runner.submit(3, "features")
        assert task.done is False
        assert task.status in {AnalysisStatus.PENDING, AnalysisStatus.PROCESSING}

        gate.set()
        task.wait(5)

        assert task.status == AnalysisStatus.COMPLETED
        assert task.analysis_id == 41
        assert task.analysis_type == AnalysisType.FEATURES
        assert task.finished_at is not None
        assert runner.get(task.task_id) is task
    finally:
        runner.shutdown()


def test_failures_are_recorded_on_the_handle() -> None:
    runner = AnalysisTaskRunner(FakeService(error=AIFailure("AI provider timed out")), max_workers=1)
    try:
        task = runner.submit(3).wait(5)
    finally:
        runner.shutdown()

    assert task.status == AnalysisStatus.FAILED
    assert task.error_code == "AI_UPSTREAM_ERROR"
    assert task.error == "AI provider timed out"
    assert task.analysis_id is None


def test_unknown_task_id() -> None:
    runner = AnalysisTaskRunner(FakeService(), max_workers=1)
    try:
        assert runner.get("missing") is None
    finally:
        runner.shutdown()


def test_finished_tasks_are_evicted_first() -> None:
    runner = AnalysisTaskRunner(FakeService(), max_workers=1, max_tracked=2)
    try:
        first = runner.submit(1).wait(5)
        second = runner.submit(2).wait(5)
        third = runner.submit(3).wait(5)
    finally:
        runner.shutdown()

    assert runner.get(first.task_id) is None
    assert runner.get(second.task_id) is second
    assert runner.get(third.task_id) is third
