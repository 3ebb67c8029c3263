from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from reposcope.api.error_schema import error_response
from reposcope.db.models import Repository, RepositoryRelation, User
from reposcope.deps import get_current_user, get_db_session, get_sync_service
from reposcope.observability import trace_span
from reposcope.services.relation_store import list_repository_relations
from reposcope.services.repository_store import (
    delete_repository,
    get_repository_stats,
    get_user_repository,
    list_user_repositories,
)
from reposcope.services.sync import SyncService

router = APIRouter(prefix="/repositories", tags=["repositories"])
SYNC_RESPONSE_EXAMPLE = {"success": True, "fetched": 12, "synced": 12, "failed": 0, "count": 40}


class RepositoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    github_id: str
    name: str
    full_name: str
    description: str | None = None
    url: str
    language: str | None = None
    is_private: bool
    stars: int
    forks: int
    size: int
    default_branch: str
    last_commit_at: datetime | None = None
    last_sync_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RelationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    source_repository_id: int
    target_repository_id: int
    relation_type: str
    similarity: int
    description: str | None = None


class SyncResponse(BaseModel):
    success: bool
    fetched: int
    synced: int
    failed: int
    count: int


class RepositoryStatsResponse(BaseModel):
    total_repositories: int
    public_repositories: int
    private_repositories: int
    total_stars: int
    total_forks: int
    analyzed_repositories: int
    pending_suggestions: int
    languages: dict[str, int]


class DeleteResponse(BaseModel):
    success: bool


@router.post(
    "/sync",
    response_model=SyncResponse,
    summary="Sync repositories from GitHub",
    description="Fetches the user's GitHub repositories and upserts them. Individual repository failures are skipped. `count` is the user's repository total after the sync.",
    responses={
        200: {"content": {"application/json": {"example": SYNC_RESPONSE_EXAMPLE}}},
        401: error_response("Missing or invalid bearer token"),
        409: error_response("GitHub account is not linked"),
        429: error_response("Rate limit exceeded"),
        502: error_response("GitHub request failed"),
    },
)
def sync_repositories(
    current_user: User = Depends(get_current_user),
    sync_service: SyncService = Depends(get_sync_service),
) -> SyncResponse:
    with trace_span("repositories.sync", user_id=current_user.id):
        result = sync_service.sync_user_repositories(current_user.id, current_user.open_id)
    return SyncResponse(
        success=True,
        fetched=result.fetched,
        synced=result.synced,
        failed=result.failed,
        count=result.total,
    )


@router.get("", response_model=list[RepositoryResponse], summary="List synced repositories")
def list_repositories(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
) -> list[Repository]:
    return list_user_repositories(db, current_user.id)


@router.get("/stats", response_model=RepositoryStatsResponse, summary="Repository and suggestion counts for the user")
def repository_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
) -> RepositoryStatsResponse:
    return RepositoryStatsResponse(**asdict(get_repository_stats(db, current_user.id)))


@router.get(
    "/{repo_id}",
    response_model=RepositoryResponse,
    summary="Fetch one repository",
    responses={404: error_response("Repository not found")},
)
def repository_detail(
    repo_id: int,
    current_user: User = Depends(get_current_user),
    sync_service: SyncService = Depends(get_sync_service),
) -> Repository:
    return sync_service.get_repository_details(current_user.id, repo_id)


@router.delete(
    "/{repo_id}",
    response_model=DeleteResponse,
    status_code=status.HTTP_200_OK,
    summary="Delete a repository and its analysis data",
    responses={404: error_response("Repository not found")},
)
def remove_repository(
    repo_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
) -> DeleteResponse:
    get_user_repository(db, current_user.id, repo_id)
    return DeleteResponse(success=delete_repository(db, repo_id))


@router.get(
    "/{repo_id}/relations",
    response_model=list[RelationResponse],
    summary="Related repositories, most similar first",
    responses={404: error_response("Repository not found")},
)
def repository_relations(
    repo_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
) -> list[RepositoryRelation]:
    get_user_repository(db, current_user.id, repo_id)
    return list_repository_relations(db, repo_id)
