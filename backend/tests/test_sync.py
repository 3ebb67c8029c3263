import threading

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from reposcope.db.models import Repository, User
from reposcope.db.session import SessionLocal
from reposcope.services.errors import GatewayFailure, NotFound, NotLinked
from reposcope.services.repository_store import RepositoryRecord
from reposcope.services.sync import SyncService


def _record(github_id: str, name: str | None) -> RepositoryRecord:
    return RepositoryRecord(
        github_id=github_id,
        name=name,
        full_name=f"octocat/{name or 'broken'}",
        url=f"https://github.com/octocat/{name or 'broken'}",
        stars=3,
    )


class FakeGitHub:
    def __init__(self, records: list[RepositoryRecord] | None = None, error: Exception | None = None) -> None:
        self.records = records or []
        self.error = error
        self.calls: list[str] = []

    def list_repositories(self, username: str) -> list[RepositoryRecord]:
        self.calls.append(username)
        if self.error:
            raise self.error
        return list(self.records)


def test_sync_persists_successes_and_skips_failures(db_session: Session, user: User) -> None:
    github = FakeGitHub([_record("1", "alpha"), _record("2", None), _record("3", "gamma")])
    service = SyncService(SessionLocal, github)

    result = service.sync_user_repositories(user.id, user.open_id)

    assert github.calls == ["octocat"]
    assert (result.fetched, result.synced, result.failed) == (3, 2, 1)

    stored = db_session.execute(select(Repository).order_by(Repository.github_id)).scalars().all()
    assert [repo.name for repo in stored] == ["alpha", "gamma"]
    assert all(repo.user_id == user.id for repo in stored)
    assert all(repo.last_sync_at is not None for repo in stored)


def test_sync_twice_updates_instead_of_duplicating(db_session: Session, user: User) -> None:
    github = FakeGitHub([_record("1", "alpha")])
    service = SyncService(SessionLocal, github)

    service.sync_user_repositories(user.id)
    github.records = [_record("1", "alpha-renamed")]
    result = service.sync_user_repositories(user.id)

    assert (result.synced, result.total) == (1, 1)
    stored = db_session.execute(select(Repository)).scalars().all()
    assert [repo.name for repo in stored] == ["alpha-renamed"]


def test_sync_without_linked_account_never_calls_github(db_session: Session) -> None:
    unlinked = User(open_id="email:someone", role="user")
    db_session.add(unlinked)
    db_session.commit()
    github = FakeGitHub([_record("1", "alpha")])

    with pytest.raises(NotLinked) as exc:
        SyncService(SessionLocal, github).sync_user_repositories(unlinked.id, unlinked.open_id)

    assert exc.value.status_code == 409
    assert github.calls == []


def test_sync_unknown_user_is_not_found() -> None:
    github = FakeGitHub()
    with pytest.raises(NotFound):
        SyncService(SessionLocal, github).sync_user_repositories(424242)
    assert github.calls == []


def test_sync_gateway_failure_propagates(db_session: Session, user: User) -> None:
    github = FakeGitHub(error=GatewayFailure("GitHub API is unreachable"))

    with pytest.raises(GatewayFailure):
        SyncService(SessionLocal, github).sync_user_repositories(user.id)

    assert db_session.execute(select(Repository)).scalars().all() == []


def test_sync_serializes_runs_for_the_same_user(user: User) -> None:
    service = SyncService(SessionLocal, FakeGitHub())
    lock = service._locks.for_user(user.id)

    assert service._locks.for_user(user.id) is lock
    assert service._locks.for_user(user.id + 1) is not lock

    lock.acquire()
    finished = threading.Event()
    worker = threading.Thread(target=lambda: (service.sync_user_repositories(user.id), finished.set()))
    worker.start()
    try:
        assert not finished.wait(0.2)
    finally:
        lock.release()
    worker.join(timeout=5)
    assert finished.is_set()


def test_repository_details_require_ownership(user: User, make_repository) -> None:
    repo = make_repository("alpha")
    service = SyncService(SessionLocal, FakeGitHub())

    assert service.get_repository_details(user.id, repo.id).id == repo.id
    with pytest.raises(NotFound):
        service.get_repository_details(user.id + 1, repo.id)


def test_analyze_dependencies_is_a_no_op_for_known_repositories(make_repository) -> None:
    repo = make_repository("alpha")
    service = SyncService(SessionLocal, FakeGitHub())

    assert service.analyze_dependencies(repo.id) is None
    with pytest.raises(NotFound):
        service.analyze_dependencies(repo.id + 100)
