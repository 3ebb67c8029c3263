from datetime import UTC, datetime

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from reposcope.db.models import Analysis, Feature, Repository, RepositoryRelation, Suggestion, User
from reposcope.services import repository_store
from reposcope.services.errors import NotFound, PersistenceFailure
from reposcope.services.repository_store import RepositoryRecord


def _record(user_id: int | None, github_id: str = "42", **fields) -> RepositoryRecord:
    values = {
        "github_id": github_id,
        "name": "hello-world",
        "full_name": "octocat/hello-world",
        "url": "https://github.com/octocat/hello-world",
        "user_id": user_id,
        "description": "first",
        "language": "Python",
        "stars": 1,
    }
    values.update(fields)
    return RepositoryRecord(**values)


def _count(db: Session) -> int:
    return db.execute(select(func.count()).select_from(Repository)).scalar_one()


def test_upsert_inserts_then_updates_in_place(db_session: Session, user: User) -> None:
    first_id = repository_store.upsert_repository(db_session, _record(user.id))
    second_id = repository_store.upsert_repository(
        db_session, _record(user.id, description="second", stars=7, language=None)
    )

    assert first_id == second_id
    assert _count(db_session) == 1

    stored = repository_store.get_repository(db_session, first_id)
    assert stored.description == "second"
    assert stored.stars == 7
    assert stored.language is None


def test_upsert_keys_on_user_and_github_id(db_session: Session, user: User) -> None:
    other = User(open_id="github:2", role="user")
    db_session.add(other)
    db_session.commit()

    mine = repository_store.upsert_repository(db_session, _record(user.id))
    theirs = repository_store.upsert_repository(db_session, _record(other.id))
    another = repository_store.upsert_repository(db_session, _record(user.id, github_id="43", full_name="octocat/other"))

    assert len({mine, theirs, another}) == 3
    assert _count(db_session) == 3


def test_upsert_failure_rolls_back_and_leaves_no_row(db_session: Session, user: User) -> None:
    with pytest.raises(PersistenceFailure) as exc:
        repository_store.upsert_repository(db_session, _record(user.id, name=None))

    assert exc.value.details["github_id"] == "42"
    assert _count(db_session) == 0

    # The session stays usable after the rollback.
    assert repository_store.upsert_repository(db_session, _record(user.id)) > 0


def test_upsert_requires_owner(db_session: Session) -> None:
    with pytest.raises(PersistenceFailure):
        repository_store.upsert_repository(db_session, _record(None))


def test_record_owner_comes_from_full_name() -> None:
    assert _record(1).owner == "octocat"


def test_list_and_lookup_helpers(db_session: Session, user: User, make_repository) -> None:
    first = make_repository("alpha")
    second = make_repository("beta")

    listed = repository_store.list_user_repositories(db_session, user.id)
    assert {repo.id for repo in listed} == {first.id, second.id}

    assert repository_store.get_repositories_by_ids(db_session, []) == []
    assert {repo.id for repo in repository_store.get_repositories_by_ids(db_session, [second.id])} == {second.id}

    assert repository_store.get_user_repository(db_session, user.id, first.id).id == first.id
    with pytest.raises(NotFound):
        repository_store.get_user_repository(db_session, user.id + 1, first.id)


def test_delete_repository_removes_dependents(db_session: Session, make_repository) -> None:
    repo = make_repository("doomed")
    other = make_repository("kept")
    db_session.add_all(
        [
            Analysis(repository_id=repo.id, analysis_type="architecture", status="completed"),
            Feature(repository_id=repo.id, name="Auth", confidence=90),
            Suggestion(
                repository_id=repo.id,
                suggestion_type="refactor",
                title="Split module",
                description="Too large",
            ),
            Suggestion(
                repository_id=other.id,
                suggestion_type="merge_features",
                title="Merge",
                description="Shared code",
                source_repository_id=repo.id,
            ),
            RepositoryRelation(
                source_repository_id=other.id,
                target_repository_id=repo.id,
                relation_type="similar",
                similarity=50,
            ),
        ]
    )
    db_session.commit()

    assert repository_store.delete_repository(db_session, repo.id) is True
    assert repository_store.delete_repository(db_session, repo.id) is False

    assert repository_store.get_repository(db_session, repo.id) is None
    assert db_session.execute(select(func.count()).select_from(Analysis)).scalar_one() == 0
    assert db_session.execute(select(func.count()).select_from(RepositoryRelation)).scalar_one() == 0
    kept = db_session.execute(select(Suggestion)).scalars().all()
    assert len(kept) == 1
    assert kept[0].source_repository_id is None


def test_repository_stats(db_session: Session, user: User, make_repository) -> None:
    analyzed = make_repository("alpha", language="Python", stars=5, forks=1)
    make_repository("beta", language="Python", stars=2, is_private=True)
    make_repository("gamma", language=None, last_sync_at=datetime.now(UTC))
    db_session.add_all(
        [
            Analysis(repository_id=analyzed.id, analysis_type="architecture", status="completed"),
            Suggestion(repository_id=analyzed.id, suggestion_type="refactor", title="A", description="a"),
            Suggestion(
                repository_id=analyzed.id,
                suggestion_type="refactor",
                title="B",
                description="b",
                status="accepted",
            ),
        ]
    )
    db_session.commit()

    stats = repository_store.get_repository_stats(db_session, user.id)

    assert stats.total_repositories == 3
    assert stats.private_repositories == 1
    assert stats.public_repositories == 2
    assert stats.total_stars == 7
    assert stats.total_forks == 1
    assert stats.analyzed_repositories == 1
    assert stats.pending_suggestions == 1
    assert stats.languages == {"Python": 2}
