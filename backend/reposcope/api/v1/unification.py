import json
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.orm import Session

from reposcope.api.error_schema import error_response
from reposcope.db.models import UnificationOperation, User
from reposcope.deps import get_current_user, get_db_session
from reposcope.services.errors import NotFound
from reposcope.services.unification_store import get_unification, list_user_unifications

router = APIRouter(prefix="/unifications", tags=["unifications"])


class UnificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    operation_id: str
    source_repository_ids: list[int]
    target_repository_name: str
    target_repository_url: str | None = None
    visibility: str
    status: str
    progress: int
    current_step: str | None = None
    files_processed: int
    total_files: int
    errors: list[str]
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    @field_validator("source_repository_ids", "errors", mode="before")
    @classmethod
    def decode_json_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return json.loads(value) if value else []
        return value


@router.get("", response_model=list[UnificationResponse], summary="Unification operations started by the user")
def list_unifications(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
) -> list[UnificationOperation]:
    return list_user_unifications(db, current_user.id)


@router.get(
    "/{operation_id}",
    response_model=UnificationResponse,
    summary="Progress of one unification operation",
    responses={404: error_response("Unification operation not found")},
)
def unification_detail(
    operation_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
) -> UnificationOperation:
    operation = get_unification(db, operation_id)
    if operation is None or operation.user_id != current_user.id:
        raise NotFound(f"Unification operation {operation_id} not found", details={"operation_id": operation_id})
    return operation
