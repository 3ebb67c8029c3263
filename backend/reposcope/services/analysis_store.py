import logging

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reposcope.db.models import Analysis, Feature, Repository, Technology
from reposcope.services.errors import NotFound, PersistenceFailure
from reposcope.services.updates import AnalysisUpdate


logger = logging.getLogger("reposcope.services.analysis_store")


def create_analysis(db: Session, analysis: Analysis) -> int:
    try:
        db.add(analysis)
        db.flush()
        analysis_id = analysis.id
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure(
            f"Failed to save analysis for repository {analysis.repository_id}",
            details={"repository_id": analysis.repository_id},
        ) from exc
    return analysis_id


def update_analysis(db: Session, analysis_id: int, changes: AnalysisUpdate) -> None:
    if not changes:
        return
    try:
        result = db.execute(update(Analysis).where(Analysis.id == analysis_id).values(**changes.values()))
        if result.rowcount == 0:
            db.rollback()
            raise NotFound(f"Analysis {analysis_id} not found")
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure(f"Failed to update analysis {analysis_id}") from exc


def list_repository_analyses(db: Session, repo_id: int) -> list[Analysis]:
    return list(
        db.execute(
            select(Analysis)
            .where(Analysis.repository_id == repo_id)
            .order_by(Analysis.created_at.desc(), Analysis.id.desc())
        ).scalars()
    )


def list_user_analyses(db: Session, user_id: int) -> list[Analysis]:
    return list(
        db.execute(
            select(Analysis)
            .join(Repository, Repository.id == Analysis.repository_id)
            .where(Repository.user_id == user_id)
            .order_by(Analysis.created_at.desc(), Analysis.id.desc())
        ).scalars()
    )


def bulk_create_features(db: Session, features: list[Feature]) -> None:
    _bulk_insert(db, features, "features")


def list_repository_features(db: Session, repo_id: int) -> list[Feature]:
    return list(
        db.execute(
            select(Feature).where(Feature.repository_id == repo_id).order_by(Feature.confidence.desc(), Feature.id)
        ).scalars()
    )


def bulk_create_technologies(db: Session, technologies: list[Technology]) -> None:
    _bulk_insert(db, technologies, "technologies")


def list_repository_technologies(db: Session, repo_id: int) -> list[Technology]:
    return list(
        db.execute(
            select(Technology).where(Technology.repository_id == repo_id).order_by(Technology.type, Technology.name)
        ).scalars()
    )


def _bulk_insert(db: Session, rows: list, collection: str) -> None:
    if not rows:
        return
    try:
        db.add_all(rows)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure(f"Failed to save {collection}", details={"collection": collection, "rows": len(rows)}) from exc
