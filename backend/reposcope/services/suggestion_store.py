from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reposcope.db.models import Repository, Suggestion
from reposcope.domain import SuggestionStatus
from reposcope.services.errors import NotFound, PersistenceFailure


def create_suggestion(db: Session, suggestion: Suggestion) -> int:
    try:
        db.add(suggestion)
        db.flush()
        suggestion_id = suggestion.id
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure(
            f"Failed to save suggestion '{suggestion.title}'",
            details={"repository_id": suggestion.repository_id},
        ) from exc
    return suggestion_id


def get_suggestion(db: Session, suggestion_id: int) -> Suggestion | None:
    return db.execute(select(Suggestion).where(Suggestion.id == suggestion_id)).scalar_one_or_none()


def list_repository_suggestions(db: Session, repo_id: int) -> list[Suggestion]:
    return list(
        db.execute(
            select(Suggestion)
            .where(Suggestion.repository_id == repo_id)
            .order_by(Suggestion.created_at.desc(), Suggestion.id.desc())
        ).scalars()
    )


def list_pending_suggestions(db: Session, user_id: int) -> list[Suggestion]:
    return list(
        db.execute(
            select(Suggestion)
            .join(Repository, Repository.id == Suggestion.repository_id)
            .where(Repository.user_id == user_id, Suggestion.status == SuggestionStatus.PENDING.value)
            .order_by(Suggestion.created_at.desc(), Suggestion.id.desc())
        ).scalars()
    )


def update_suggestion_status(db: Session, suggestion_id: int, status: SuggestionStatus | str) -> Suggestion:
    new_status = SuggestionStatus(status)
    suggestion = get_suggestion(db, suggestion_id)
    if suggestion is None:
        raise NotFound(f"Suggestion {suggestion_id} not found")

    try:
        suggestion.status = new_status.value
        suggestion.updated_at = datetime.now(UTC)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure(f"Failed to update suggestion {suggestion_id}") from exc
    return suggestion
