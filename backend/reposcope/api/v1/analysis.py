from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from reposcope.api.error_schema import error_response
from reposcope.api.v1.repositories import RelationResponse, RepositoryResponse
from reposcope.api.v1.suggestions import SuggestionResponse
from reposcope.db.models import Analysis, User
from reposcope.deps import get_current_user, get_db_session, get_task_runner
from reposcope.domain import AnalysisType
from reposcope.services.analysis_pipeline import load_repository_analysis
from reposcope.services.analysis_store import list_user_analyses
from reposcope.services.analysis_tasks import AnalysisTask, AnalysisTaskRunner
from reposcope.services.errors import NotFound
from reposcope.services.repository_store import get_user_repository

router = APIRouter(prefix="/analysis", tags=["analysis"])
START_RESPONSE_EXAMPLE = {
    "success": True,
    "message": "Analysis started",
    "task_id": "0f8fad5bd9cb469fa16570867728950e",
}


class StartAnalysisRequest(BaseModel):
    repository_id: int
    analysis_type: AnalysisType = Field(default=AnalysisType.ARCHITECTURE)


class StartAnalysisResponse(BaseModel):
    success: bool
    message: str
    task_id: str


class AnalysisTaskResponse(BaseModel):
    task_id: str
    repository_id: int
    analysis_type: AnalysisType
    status: str
    analysis_id: int | None = None
    error_code: str | None = None
    error: str | None = None
    submitted_at: datetime
    finished_at: datetime | None = None


class AnalysisResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    repository_id: int
    analysis_type: str
    status: str
    result: str | None = None
    summary: str | None = None
    score: int | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None


class FeatureResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    category: str | None = None
    file_paths: str | None = None
    code_snippet: str | None = None
    confidence: int


class TechnologyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    version: str | None = None
    type: str
    package_manager: str | None = None


class RepositoryAnalysisResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    repository: RepositoryResponse
    analyses: list[AnalysisResponse]
    features: list[FeatureResponse]
    technologies: list[TechnologyResponse]
    suggestions: list[SuggestionResponse]
    relations: list[RelationResponse]


def _task_response(task: AnalysisTask) -> AnalysisTaskResponse:
    return AnalysisTaskResponse(
        task_id=task.task_id,
        repository_id=task.repository_id,
        analysis_type=task.analysis_type,
        status=task.status.value,
        analysis_id=task.analysis_id,
        error_code=task.error_code,
        error=task.error,
        submitted_at=task.submitted_at,
        finished_at=task.finished_at,
    )


@router.post(
    "/start",
    response_model=StartAnalysisResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a background analysis",
    description="Returns immediately with a task id. Poll `/analysis/tasks/{task_id}` for the outcome.",
    responses={
        202: {"content": {"application/json": {"example": START_RESPONSE_EXAMPLE}}},
        401: error_response("Missing or invalid bearer token"),
        404: error_response("Repository not found"),
        429: error_response("Rate limit exceeded"),
    },
)
def start_analysis(
    body: StartAnalysisRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
    runner: AnalysisTaskRunner = Depends(get_task_runner),
) -> StartAnalysisResponse:
    get_user_repository(db, current_user.id, body.repository_id)
    task = runner.submit(body.repository_id, body.analysis_type)
    return StartAnalysisResponse(success=True, message="Analysis started", task_id=task.task_id)


@router.get(
    "/tasks/{task_id}",
    response_model=AnalysisTaskResponse,
    summary="Background analysis task state",
    responses={404: error_response("Task not found")},
)
def analysis_task(
    task_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
    runner: AnalysisTaskRunner = Depends(get_task_runner),
) -> AnalysisTaskResponse:
    task = runner.get(task_id)
    if task is None:
        raise NotFound(f"Analysis task {task_id} not found", details={"task_id": task_id})
    get_user_repository(db, current_user.id, task.repository_id)
    return _task_response(task)


@router.get(
    "/repositories/{repo_id}",
    response_model=RepositoryAnalysisResponse,
    summary="Analyses, features, technologies, suggestions and relations for a repository",
    responses={404: error_response("Repository not found")},
)
def repository_analysis(
    repo_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
) -> RepositoryAnalysisResponse:
    get_user_repository(db, current_user.id, repo_id)
    return RepositoryAnalysisResponse.model_validate(load_repository_analysis(db, repo_id))


@router.get("", response_model=list[AnalysisResponse], summary="All analyses across the user's repositories")
def user_analyses(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
) -> list[Analysis]:
    return list_user_analyses(db, current_user.id)
