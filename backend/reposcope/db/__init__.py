from reposcope.db.base import Base
from reposcope.db.models import (
    Analysis,
    Feature,
    Repository,
    RepositoryRelation,
    Suggestion,
    Technology,
    UnificationOperation,
    User,
)

__all__ = [
    "Base",
    "User",
    "Repository",
    "Analysis",
    "Feature",
    "Technology",
    "Suggestion",
    "RepositoryRelation",
    "UnificationOperation",
]
