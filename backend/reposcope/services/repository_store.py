import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reposcope.db.models import Analysis, Feature, Repository, RepositoryRelation, Suggestion, Technology
from reposcope.domain import AnalysisStatus, SuggestionStatus
from reposcope.services.errors import NotFound, PersistenceFailure


logger = logging.getLogger("reposcope.services.repository_store")

MUTABLE_FIELDS = (
    "name",
    "full_name",
    "description",
    "url",
    "language",
    "is_private",
    "stars",
    "forks",
    "size",
    "default_branch",
    "last_commit_at",
    "last_sync_at",
)


@dataclass
class RepositoryRecord:
    github_id: str
    name: str
    full_name: str
    url: str
    user_id: int | None = None
    description: str | None = None
    language: str | None = None
    is_private: bool = False
    stars: int = 0
    forks: int = 0
    size: int = 0
    default_branch: str = "main"
    last_commit_at: datetime | None = None
    last_sync_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]


@dataclass
class RepositoryStats:
    total_repositories: int = 0
    public_repositories: int = 0
    private_repositories: int = 0
    total_stars: int = 0
    total_forks: int = 0
    analyzed_repositories: int = 0
    pending_suggestions: int = 0
    languages: dict[str, int] = field(default_factory=dict)


def upsert_repository(db: Session, record: RepositoryRecord) -> int:
    """Insert or update the repository identified by (user_id, github_id).

    The lookup and the write share one transaction; on any error it is rolled
    back and nothing from this call is visible.
    """
    if record.user_id is None:
        raise PersistenceFailure("Repository record has no owning user", details={"github_id": record.github_id})

    try:
        existing = db.execute(
            select(Repository)
            .where(Repository.user_id == record.user_id, Repository.github_id == record.github_id)
            .limit(1)
        ).scalar_one_or_none()

        if existing is None:
            repo = Repository(user_id=record.user_id, github_id=record.github_id)
            for name in MUTABLE_FIELDS:
                setattr(repo, name, getattr(record, name))
            db.add(repo)
        else:
            repo = existing
            for name in MUTABLE_FIELDS:
                setattr(repo, name, getattr(record, name))

        db.flush()
        repo_id = repo.id
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure(
            f"Failed to upsert repository {record.full_name}",
            details={"github_id": record.github_id, "user_id": record.user_id},
        ) from exc

    return repo_id


def get_repository(db: Session, repo_id: int) -> Repository | None:
    return db.execute(select(Repository).where(Repository.id == repo_id)).scalar_one_or_none()


def get_user_repository(db: Session, user_id: int, repo_id: int) -> Repository:
    repo = get_repository(db, repo_id)
    if repo is None or repo.user_id != user_id:
        raise NotFound(f"Repository {repo_id} not found", details={"repository_id": repo_id})
    return repo


def list_user_repositories(db: Session, user_id: int) -> list[Repository]:
    return list(
        db.execute(
            select(Repository)
            .where(Repository.user_id == user_id)
            .order_by(Repository.updated_at.desc(), Repository.id.desc())
        ).scalars()
    )


def get_repositories_by_ids(db: Session, repo_ids: list[int]) -> list[Repository]:
    if not repo_ids:
        return []
    return list(
        db.execute(
            select(Repository).where(Repository.id.in_(repo_ids)).order_by(Repository.updated_at.desc())
        ).scalars()
    )


def delete_repository(db: Session, repo_id: int) -> bool:
    try:
        repo = get_repository(db, repo_id)
        if repo is None:
            return False

        db.execute(
            delete(RepositoryRelation).where(
                (RepositoryRelation.source_repository_id == repo_id) | (RepositoryRelation.target_repository_id == repo_id)
            )
        )
        db.execute(
            update(Suggestion).where(Suggestion.source_repository_id == repo_id).values(source_repository_id=None)
        )
        for model in (Suggestion, Technology, Feature, Analysis):
            db.execute(delete(model).where(model.repository_id == repo_id))
        db.delete(repo)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure(f"Failed to delete repository {repo_id}") from exc

    logger.info("repository.deleted repo_id=%s", repo_id)
    return True


def get_repository_stats(db: Session, user_id: int) -> RepositoryStats:
    totals = db.execute(
        select(
            func.count(Repository.id),
            func.coalesce(func.sum(Repository.stars), 0),
            func.coalesce(func.sum(Repository.forks), 0),
        ).where(Repository.user_id == user_id)
    ).one()
    private_count = db.execute(
        select(func.count(Repository.id)).where(Repository.user_id == user_id, Repository.is_private.is_(True))
    ).scalar_one()

    language_rows = db.execute(
        select(Repository.language, func.count(Repository.id))
        .where(Repository.user_id == user_id, Repository.language.is_not(None))
        .group_by(Repository.language)
    ).all()

    analyzed = db.execute(
        select(func.count(func.distinct(Analysis.repository_id)))
        .join(Repository, Repository.id == Analysis.repository_id)
        .where(Repository.user_id == user_id, Analysis.status == AnalysisStatus.COMPLETED.value)
    ).scalar_one()

    pending = db.execute(
        select(func.count(Suggestion.id))
        .join(Repository, Repository.id == Suggestion.repository_id)
        .where(Repository.user_id == user_id, Suggestion.status == SuggestionStatus.PENDING.value)
    ).scalar_one()

    total, stars, forks = totals
    return RepositoryStats(
        total_repositories=int(total),
        public_repositories=int(total) - int(private_count),
        private_repositories=int(private_count),
        total_stars=int(stars),
        total_forks=int(forks),
        analyzed_repositories=int(analyzed),
        pending_suggestions=int(pending),
        languages={language: int(count) for language, count in sorted(language_rows, key=lambda row: (-row[1], row[0]))},
    )
