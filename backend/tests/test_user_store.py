from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Session

from reposcope.services.user_store import UserProfile, get_user_by_open_id, upsert_user


def test_upsert_creates_user_with_default_role(db_session: Session) -> None:
    user = upsert_user(db_session, UserProfile(open_id="github:1", name="Octo", github_username="octocat"))

    assert user.id is not None
    assert user.role == "user"
    assert user.github_username == "octocat"
    assert user.last_signed_in is not None


def test_upsert_merges_non_null_fields_and_keeps_role(db_session: Session) -> None:
    first_seen = datetime.now(UTC) - timedelta(days=3)
    created = upsert_user(
        db_session,
        UserProfile(
            open_id="github:1",
            name="Octo",
            email="octo@example.com",
            role="admin",
            github_username="octocat",
            last_signed_in=first_seen,
        ),
    )

    merged = upsert_user(db_session, UserProfile(open_id="github:1", name="Octo Cat", role="user"))

    assert merged.id == created.id
    assert merged.name == "Octo Cat"
    assert merged.email == "octo@example.com"
    assert merged.github_username == "octocat"
    assert merged.role == "admin"
    assert merged.last_signed_in.replace(tzinfo=UTC) > first_seen


def test_get_user_by_open_id(db_session: Session) -> None:
    upsert_user(db_session, UserProfile(open_id="github:7"))

    assert get_user_by_open_id(db_session, "github:7") is not None
    assert get_user_by_open_id(db_session, "github:8") is None
