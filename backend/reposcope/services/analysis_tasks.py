import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from reposcope.domain import AnalysisStatus, AnalysisType
from reposcope.services.errors import ServiceError


logger = logging.getLogger("reposcope.services.analysis_tasks")

MAX_TRACKED_TASKS = 1000


@dataclass
class AnalysisTask:
    """Handle for one background analysis run.

    Once the run completes, ``analysis_id`` points at the stored Analysis row,
    whose status is authoritative.
    """

    task_id: str
    repository_id: int
    analysis_type: AnalysisType
    status: AnalysisStatus = AnalysisStatus.PENDING
    analysis_id: int | None = None
    error_code: str | None = None
    error: str | None = None
    submitted_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    future: Future | None = field(default=None, repr=False, compare=False)

    @property
    def done(self) -> bool:
        return self.status in {AnalysisStatus.COMPLETED, AnalysisStatus.FAILED}

    def wait(self, timeout: float | None = None) -> "AnalysisTask":
        if self.future is not None:
            wait([self.future], timeout=timeout)
        return self


class AnalysisTaskRunner:
    def __init__(self, service, max_workers: int = 4, max_tracked: int = MAX_TRACKED_TASKS) -> None:
        self.service = service
        self.max_tracked = max_tracked
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="analysis")
        self._tasks: OrderedDict[str, AnalysisTask] = OrderedDict()
        self._lock = threading.Lock()

    def submit(self, repo_id: int, analysis_type: AnalysisType | str = AnalysisType.ARCHITECTURE) -> AnalysisTask:
        task = AnalysisTask(task_id=uuid4().hex, repository_id=repo_id, analysis_type=AnalysisType(analysis_type))
        with self._lock:
            self._tasks[task.task_id] = task
            self._evict_finished()
        task.future = self._executor.submit(self._run, task)
        logger.info("analysis_task.submitted task_id=%s repo_id=%s type=%s", task.task_id, repo_id, task.analysis_type.value)
        return task

    def get(self, task_id: str) -> AnalysisTask | None:
        with self._lock:
            return self._tasks.get(task_id)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _run(self, task: AnalysisTask) -> None:
        task.status = AnalysisStatus.PROCESSING
        try:
            analysis = self.service.analyze_repository(task.repository_id, task.analysis_type)
        except ServiceError as exc:
            task.status = AnalysisStatus.FAILED
            task.error_code = exc.code
            task.error = str(exc)
            logger.error(
                "analysis_task.failed task_id=%s repo_id=%s code=%s error=%s",
                task.task_id,
                task.repository_id,
                exc.code,
                exc,
            )
        except Exception as exc:  # pragma: no cover
            task.status = AnalysisStatus.FAILED
            task.error_code = "UNEXPECTED_ANALYSIS_ERROR"
            task.error = str(exc)
            logger.exception("analysis_task.crashed task_id=%s repo_id=%s", task.task_id, task.repository_id)
        else:
            task.analysis_id = analysis.id
            task.status = AnalysisStatus.COMPLETED
            logger.info("analysis_task.completed task_id=%s analysis_id=%s", task.task_id, analysis.id)
        finally:
            task.finished_at = datetime.now(UTC)

    def _evict_finished(self) -> None:
        while len(self._tasks) > self.max_tracked:
            oldest_id = next((task_id for task_id, task in self._tasks.items() if task.done), None)
            if oldest_id is None:
                return
            self._tasks.pop(oldest_id)
