import json
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reposcope.db.models import UnificationOperation
from reposcope.domain import UnificationStatus
from reposcope.services.errors import NotFound, PersistenceFailure
from reposcope.services.updates import UnificationUpdate


def create_unification(
    db: Session,
    *,
    user_id: int,
    source_repository_ids: list[int],
    target_repository_name: str,
    visibility: str = "private",
) -> UnificationOperation:
    operation = UnificationOperation(
        user_id=user_id,
        operation_id=str(uuid4()),
        source_repository_ids=json.dumps(list(source_repository_ids)),
        target_repository_name=target_repository_name,
        visibility=visibility,
        status=UnificationStatus.PENDING.value,
        progress=0,
        files_processed=0,
        total_files=0,
    )
    try:
        db.add(operation)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure(f"Failed to create unification '{target_repository_name}'") from exc
    return operation


def get_unification(db: Session, operation_id: UUID | str) -> UnificationOperation | None:
    return db.execute(
        select(UnificationOperation).where(UnificationOperation.operation_id == str(operation_id))
    ).scalar_one_or_none()


def list_user_unifications(db: Session, user_id: int) -> list[UnificationOperation]:
    return list(
        db.execute(
            select(UnificationOperation)
            .where(UnificationOperation.user_id == user_id)
            .order_by(UnificationOperation.created_at.desc(), UnificationOperation.id.desc())
        ).scalars()
    )


def update_unification(db: Session, operation_id: UUID | str, changes: UnificationUpdate) -> None:
    if not changes:
        return
    try:
        result = db.execute(
            update(UnificationOperation)
            .where(UnificationOperation.operation_id == str(operation_id))
            .values(**changes.values())
        )
        if result.rowcount == 0:
            db.rollback()
            raise NotFound(f"Unification operation {operation_id} not found")
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure(f"Failed to update unification operation {operation_id}") from exc
