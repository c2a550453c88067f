"""
Client-wide exception hierarchy.

Every service raises one of these types so callers (the CLI, an embedding
UI) can handle failures with a single set of except clauses instead of
inspecting HTTP status codes.

Mapping from HTTP responses lives in GatewayResult.raise_for_error():

    no response      → TransportError
    400 / 422        → ValidationError
    401              → AuthenticationError
    403              → PermissionDenied
    404              → NotFoundError
    405 / 501        → EndpointUnavailableError
    409              → ConflictError
    other            → ApiError

Usage:
    from teamtime.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="StagingProject", resource_id=42)
    raise ValidationError("fromAreaId and toAreaId must differ")
"""


class ApiError(Exception):
    """Base class for every error surfaced by the client.

    Args:
        message: Human-readable explanation, shown to the user verbatim.
        status_code: HTTP status when the error came from a response.
        details: Optional structured payload (field errors, server body).
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class TransportError(ApiError):
    """Raised when the request never produced a response (network, timeout)."""


class ValidationError(ApiError):
    """Raised when the server (or a local pre-check) rejects the input.

    `details` carries the field-level breakdown when one is available.
    """

    def __init__(self, message: str, details: dict | None = None, status_code: int | None = 422) -> None:
        super().__init__(message, status_code=status_code, details=details)


class NotFoundError(ApiError):
    """Raised when the requested resource does not exist (HTTP 404)."""

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        if message is None:
            message = f"{resource}"
            if resource_id is not None:
                message += f" id={resource_id}"
            message += " not found"
        super().__init__(message, status_code=404)


class ConflictError(ApiError):
    """Raised on HTTP 409 and on local refusals of a repeated or stale action.

    Args:
        message: Explanation of the conflict.
        resource: Entity name, when known.
        resource_id: Entity id, when known.
    """

    def __init__(
        self,
        message: str,
        resource: str | None = None,
        resource_id: int | str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(message, status_code=409)


class AuthenticationError(ApiError):
    """Raised when the session token is missing, expired or rejected (401)."""


class PermissionDenied(ApiError):
    """Raised on HTTP 403 and when the capability table refuses an action."""


class EndpointUnavailableError(ApiError):
    """Raised when the backend does not implement the endpoint (405 / 501)."""


class ConfirmationRequired(ApiError):
    """Raised when a destructive call is made without explicit confirmation."""

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"'{action}' cannot be undone; pass confirm=True to proceed")


class ImportTimeoutError(ApiError):
    """Raised when an import does not reach a terminal state in time."""

    def __init__(self, import_id: int | str, timeout: float, last_status: str | None = None) -> None:
        self.import_id = import_id
        self.timeout = timeout
        self.last_status = last_status
        super().__init__(
            f"Import {import_id} still {last_status or 'unknown'} after {timeout:g}s"
        )


class WorkflowStateError(ApiError):
    """Raised when an import workflow step is invoked from the wrong state."""

    def __init__(self, current: str, attempted: str) -> None:
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot {attempted} while workflow is '{current}'")
