"""Typed partial-update builders.

Each builder exposes one method per updatable field group. Column names are
fixed by the builder methods, so callers cannot smuggle arbitrary keys into
an UPDATE statement.
"""

import json
from datetime import UTC, datetime

from reposcope.domain import AnalysisStatus, UnificationStatus


class FieldUpdate:
    def __init__(self) -> None:
        self._values: dict[str, object] = {}

    def _set(self, column: str, value: object):
        self._values[column] = value
        return self

    def values(self) -> dict[str, object]:
        return dict(self._values)

    def __bool__(self) -> bool:
        return bool(self._values)


class AnalysisUpdate(FieldUpdate):
    def status(self, status: AnalysisStatus | str) -> "AnalysisUpdate":
        return self._set("status", AnalysisStatus(status).value)

    def outcome(self, *, result: str | None, summary: str | None, score: int | None) -> "AnalysisUpdate":
        self._set("result", result)
        self._set("summary", summary)
        return self._set("score", score)

    def error(self, message: str | None) -> "AnalysisUpdate":
        return self._set("error_message", message)

    def completed(self, at: datetime | None = None) -> "AnalysisUpdate":
        return self._set("completed_at", at or datetime.now(UTC))


class UnificationUpdate(FieldUpdate):
    def status(self, status: UnificationStatus | str) -> "UnificationUpdate":
        return self._set("status", UnificationStatus(status).value)

    def progress(self, progress: int, current_step: str | None = None) -> "UnificationUpdate":
        self._set("progress", max(0, min(100, int(progress))))
        if current_step is not None:
            self._set("current_step", current_step)
        return self

    def files(self, processed: int, total: int | None = None) -> "UnificationUpdate":
        self._set("files_processed", int(processed))
        if total is not None:
            self._set("total_files", int(total))
        return self

    def errors(self, errors: list[str]) -> "UnificationUpdate":
        return self._set("errors", json.dumps(list(errors)))

    def target_url(self, url: str | None) -> "UnificationUpdate":
        return self._set("target_repository_url", url)

    def completed(self, at: datetime | None = None) -> "UnificationUpdate":
        return self._set("completed_at", at or datetime.now(UTC))
