"""
Error taxonomy for the workflow execution engine.

Every error carries an ``error_type`` tag and the HTTP status the API layer
answers with, so routes translate them without inspecting messages.
"""
from typing import Any, Dict, Optional


class EngineError(Exception):
    """Base class for all engine errors."""

    error_type = "internal"
    http_status = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "errorType": self.error_type}


class ValidationError(EngineError):
    """Malformed request or payload. Never retried by the engine."""

    error_type = "validation"
    http_status = 400


class NotFoundError(EngineError):
    """Unknown run, node, webhook config, workflow or edge."""

    error_type = "not_found"
    http_status = 404


class AuthenticationError(EngineError):
    """Signature or token verification failed."""

    error_type = "authentication"
    http_status = 401


class ConfigurationError(EngineError):
    """Operator must fix the configuration (inactive webhook, missing entry edge, missing mapped field)."""

    error_type = "configuration"
    http_status = 422


class ExternalDispatchError(EngineError):
    """Network or HTTP failure while dispatching to an external worker."""

    error_type = "dispatch"
    http_status = 502

    def __init__(self, message: str, status_code: Optional[int] = None, **context: Any):
        super().__init__(message, **context)
        self.status_code = status_code


class DuplicateDeliveryNoop(EngineError):
    """A callback or webhook for something already settled. Treated as success."""

    error_type = "duplicate"
    http_status = 200


class StatusTransitionError(EngineError):
    """An illegal NodeState transition was attempted. This is a programming error."""

    error_type = "invalid_transition"
    http_status = 500

    def __init__(self, from_status: str, to_status: str, node_id: Optional[str] = None):
        super().__init__(
            f"Invalid status transition from '{from_status}' to '{to_status}'",
            node_id=node_id,
        )
        self.from_status = from_status
        self.to_status = to_status


HTTP_STATUS_BY_ERROR_TYPE: Dict[str, int] = {
    cls.error_type: cls.http_status
    for cls in (
        EngineError,
        ValidationError,
        NotFoundError,
        AuthenticationError,
        ConfigurationError,
        ExternalDispatchError,
        DuplicateDeliveryNoop,
        StatusTransitionError,
    )
}
