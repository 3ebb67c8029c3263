from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from reposcope.api.error_schema import error_response
from reposcope.db.models import Suggestion, User
from reposcope.deps import get_current_user, get_db_session
from reposcope.domain import SuggestionStatus
from reposcope.services.errors import NotFound
from reposcope.services.repository_store import get_user_repository
from reposcope.services.suggestion_store import get_suggestion, list_pending_suggestions, update_suggestion_status

router = APIRouter(prefix="/suggestions", tags=["suggestions"])


class SuggestionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    repository_id: int
    suggestion_type: str
    title: str
    description: str
    source_repository_id: int | None = None
    priority: str
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SuggestionStatusRequest(BaseModel):
    status: SuggestionStatus


@router.get("", response_model=list[SuggestionResponse], summary="Pending suggestions across the user's repositories")
def pending_suggestions(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
) -> list[Suggestion]:
    return list_pending_suggestions(db, current_user.id)


@router.post(
    "/{suggestion_id}/status",
    response_model=SuggestionResponse,
    summary="Accept, reject or mark a suggestion applied",
    responses={404: error_response("Suggestion not found")},
)
def set_suggestion_status(
    suggestion_id: int,
    body: SuggestionStatusRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
) -> Suggestion:
    suggestion = get_suggestion(db, suggestion_id)
    if suggestion is None:
        raise NotFound(f"Suggestion {suggestion_id} not found")
    get_user_repository(db, current_user.id, suggestion.repository_id)
    return update_suggestion_status(db, suggestion_id, body.status)
