"""
Engine-wide exception hierarchy.

Services raise these types; the approval blueprint registers handlers
against them once and gets consistent HTTP status codes everywhere.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ApprovalRoute", resource_id=42)
    raise ValidationError("name is required", details={"name": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND cross-group references, so a
    caller cannot probe another group's ids.

    Args:
        resource: Human-readable model/entity name (e.g. "ApprovalTemplate").
        resource_id: The PK that was looked up.
        group_id: Optional — the scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        group_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.group_id = group_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails validation in the service layer.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed (already aggregated).
        details: Optional structured breakdown for API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class SchemaError(ValidationError):
    """Raised when a form-field definition or a submitted payload is structurally wrong."""


class NoStepsError(ValidationError):
    """Raised when an application is started on a route with zero steps."""

    def __init__(self, route_id: int | None = None) -> None:
        self.route_id = route_id
        super().__init__("The approval route has no steps configured")


class ForbiddenError(Exception):
    """Raised when the caller is identified but not allowed to perform the operation.

    Maps to HTTP 403.
    """

    def __init__(self, message: str = "Forbidden", required_role: str | None = None) -> None:
        self.required_role = required_role
        super().__init__(message)


class InvalidStateError(Exception):
    """Raised when an operation is not allowed in the record's current state.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation.
        current_state: The state that blocked the operation, for logs.
    """

    def __init__(self, message: str, current_state: str | None = None) -> None:
        self.current_state = current_state
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a resource cannot be changed because other records depend on it.

    Maps to HTTP 400 (conflict-style).

    Args:
        resource: Model name.
        resource_id: PK of the blocked resource.
        reason: Human-readable reason.
    """

    def __init__(self, resource: str, resource_id: int | str | None, reason: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.reason = reason
        super().__init__(reason)


class AuthenticationError(Exception):
    """Raised when no caller identity is available. Maps to HTTP 401."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)
