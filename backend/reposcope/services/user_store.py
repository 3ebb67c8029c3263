import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reposcope.db.models import User
from reposcope.domain import UserRole
from reposcope.services.errors import PersistenceFailure


logger = logging.getLogger("reposcope.services.user_store")

MERGED_FIELDS = ("name", "email", "login_method", "github_username", "github_id")


@dataclass
class UserProfile:
    open_id: str
    name: str | None = None
    email: str | None = None
    login_method: str | None = None
    role: str | None = None
    github_username: str | None = None
    github_id: str | None = None
    last_signed_in: datetime | None = None


def upsert_user(db: Session, profile: UserProfile) -> User:
    """Create the user or merge non-null profile fields into the stored row.

    The stored role is kept once it is set; only an empty role is filled in.
    """
    signed_in = profile.last_signed_in or datetime.now(UTC)
    try:
        user = db.execute(select(User).where(User.open_id == profile.open_id)).scalar_one_or_none()
        if user is None:
            user = User(
                open_id=profile.open_id,
                role=profile.role or UserRole.USER.value,
                last_signed_in=signed_in,
            )
            for name in MERGED_FIELDS:
                setattr(user, name, getattr(profile, name))
            db.add(user)
        else:
            for name in MERGED_FIELDS:
                value = getattr(profile, name)
                if value is not None:
                    setattr(user, name, value)
            if not user.role:
                user.role = profile.role or UserRole.USER.value
            user.last_signed_in = signed_in

        db.flush()
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure(f"Failed to upsert user {profile.open_id}") from exc

    return user


def get_user(db: Session, user_id: int) -> User | None:
    return db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()


def get_user_by_open_id(db: Session, open_id: str) -> User | None:
    return db.execute(select(User).where(User.open_id == open_id)).scalar_one_or_none()
