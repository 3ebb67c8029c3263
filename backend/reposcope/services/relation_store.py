from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reposcope.db.models import RepositoryRelation
from reposcope.domain import RelationType
from reposcope.services.errors import PersistenceFailure


def create_relation(
    db: Session,
    *,
    source_repository_id: int,
    target_repository_id: int,
    relation_type: RelationType | str,
    similarity: int,
    description: str | None = None,
) -> int:
    relation = RepositoryRelation(
        source_repository_id=source_repository_id,
        target_repository_id=target_repository_id,
        relation_type=RelationType(relation_type).value,
        similarity=max(0, min(100, int(similarity))),
        description=description or None,
    )
    try:
        db.add(relation)
        db.flush()
        relation_id = relation.id
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure(
            f"Failed to save relation {source_repository_id}->{target_repository_id}"
        ) from exc
    return relation_id


def list_repository_relations(db: Session, repo_id: int) -> list[RepositoryRelation]:
    return list(
        db.execute(
            select(RepositoryRelation)
            .where(RepositoryRelation.source_repository_id == repo_id)
            .order_by(RepositoryRelation.similarity.desc(), RepositoryRelation.id)
        ).scalars()
    )
