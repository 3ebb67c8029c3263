from enum import Enum


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class AnalysisType(str, Enum):
    ARCHITECTURE = "architecture"
    FEATURES = "features"
    DEPENDENCIES = "dependencies"
    QUALITY = "quality"
    PATTERNS = "patterns"
    SUGGESTIONS = "suggestions"


class AnalysisStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RelationType(str, Enum):
    SIMILAR = "similar"
    CONTINUATION = "continuation"
    SHARED_FEATURES = "shared_features"
    SHARED_DEPENDENCIES = "shared_dependencies"
    REFACTORED_FROM = "refactored_from"


class SuggestionType(str, Enum):
    MERGE_FEATURES = "merge_features"
    ADD_FEATURE = "add_feature"
    REFACTOR = "refactor"
    BEST_PRACTICE = "best_practice"
    CONSOLIDATE = "consolidate"
    UPDATE_DEPENDENCY = "update_dependency"


class SuggestionPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    APPLIED = "applied"


class TechnologyType(str, Enum):
    LANGUAGE = "language"
    FRAMEWORK = "framework"
    LIBRARY = "library"
    TOOL = "tool"
    DATABASE = "database"
    PLATFORM = "platform"


class UnificationStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
