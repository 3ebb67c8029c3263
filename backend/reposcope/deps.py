from collections.abc import Generator
from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from reposcope.config import settings
from reposcope.db.models import User
from reposcope.db.session import SessionLocal
from reposcope.services.analysis_pipeline import AnalysisService
from reposcope.services.analysis_tasks import AnalysisTaskRunner
from reposcope.services.github_repos import build_github_gateway
from reposcope.services.llm import build_llm_gateway
from reposcope.services.prompts import ManifestPromptBuilder
from reposcope.services.sync import SyncService
from reposcope.services.tokens import decode_access_token
from reposcope.services.user_store import get_user


def get_db_session() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db_session),
) -> User:
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Authorization header")

    payload = decode_access_token(credentials.credentials)
    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid access token payload")

    try:
        user_id = int(subject)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token subject") from exc

    user = get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    return user


@lru_cache(maxsize=1)
def get_sync_service() -> SyncService:
    # Shared so the per-user sync locks span requests.
    return SyncService(SessionLocal, build_github_gateway())


@lru_cache(maxsize=1)
def get_analysis_service() -> AnalysisService:
    return AnalysisService(SessionLocal, build_llm_gateway(), ManifestPromptBuilder(build_github_gateway()))


@lru_cache(maxsize=1)
def get_task_runner() -> AnalysisTaskRunner:
    return AnalysisTaskRunner(get_analysis_service(), max_workers=settings.analysis_worker_threads)
