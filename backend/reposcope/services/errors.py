class ServiceError(RuntimeError):
    code: str = "SERVICE_ERROR"
    status_code: int = 500

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class NotFound(ServiceError):
    code = "NOT_FOUND"
    status_code = 404


class NotLinked(ServiceError):
    """The user has no linked GitHub account."""

    code = "NOT_LINKED"
    status_code = 409


class GatewayFailure(ServiceError):
    code = "UPSTREAM_ERROR"
    status_code = 502


class AIFailure(GatewayFailure):
    code = "AI_UPSTREAM_ERROR"


class PersistenceFailure(ServiceError):
    code = "PERSISTENCE_ERROR"
    status_code = 500


class ValidationFailure(ServiceError):
    """The AI response body could not be parsed into the analysis payload."""

    code = "INVALID_UPSTREAM_PAYLOAD"
    status_code = 502
