import logging
import threading
import time
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from reposcope.db.models import Repository
from reposcope.observability import record_stage_duration, record_sync_outcome, trace_span
from reposcope.services.errors import NotFound, NotLinked, PersistenceFailure
from reposcope.services.repository_store import (
    get_repository,
    get_user_repository,
    list_user_repositories,
    upsert_repository,
)
from reposcope.services.user_store import get_user


logger = logging.getLogger("reposcope.services.sync")


@dataclass
class SyncResult:
    fetched: int = 0
    synced: int = 0
    failed: int = 0
    total: int = 0


class _UserLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}

    def for_user(self, user_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock


class SyncService:
    """Pulls a user's repositories from GitHub into the local store.

    Syncs for the same user are serialized within this process. A failed
    upsert for one repository is logged and skipped; the rest still land.
    """

    def __init__(self, session_factory, github) -> None:
        self.session_factory = session_factory
        self.github = github
        self._locks = _UserLocks()

    def sync_user_repositories(self, user_id: int, open_id: str | None = None) -> SyncResult:
        with self._locks.for_user(user_id), trace_span("sync.run", user_id=user_id):
            with self.session_factory() as db:
                user = get_user(db, user_id)
                if user is None:
                    raise NotFound(f"User {user_id} not found", details={"user_id": user_id})
                if not user.github_username:
                    raise NotLinked(
                        "GitHub account is not linked",
                        details={"user_id": user_id, "open_id": open_id or user.open_id},
                    )
                username = user.github_username

            started = time.perf_counter()
            records = self.github.list_repositories(username)
            record_stage_duration("github_fetch", "success", time.perf_counter() - started)

            result = SyncResult(fetched=len(records))
            synced_at = datetime.now(UTC)
            with self.session_factory() as db:
                for record in records:
                    stamped = replace(record, user_id=user_id, last_sync_at=synced_at)
                    try:
                        upsert_repository(db, stamped)
                    except PersistenceFailure as exc:
                        result.failed += 1
                        logger.error(
                            "sync.repository_failed user_id=%s repo=%s error=%s",
                            user_id,
                            record.full_name,
                            exc.__cause__ or exc,
                        )
                        continue
                    result.synced += 1
                result.total = len(list_user_repositories(db, user_id))

        record_sync_outcome("synced", result.synced)
        record_sync_outcome("failed", result.failed)
        logger.info(
            "sync.completed user_id=%s username=%s fetched=%s synced=%s failed=%s total=%s",
            user_id,
            username,
            result.fetched,
            result.synced,
            result.failed,
            result.total,
        )
        return result

    def get_repository_details(self, user_id: int, repo_id: int) -> Repository:
        with self.session_factory() as db:
            return get_user_repository(db, user_id, repo_id)

    def analyze_dependencies(self, repo_id: int) -> None:
        with self.session_factory() as db:
            repo = get_repository(db, repo_id)
        if repo is None:
            raise NotFound(f"Repository {repo_id} not found", details={"repository_id": repo_id})
        # TODO: parse dependency manifests into Technology rows.
        logger.info("dependencies.analyze_requested repo_id=%s repo=%s", repo_id, repo.full_name)
