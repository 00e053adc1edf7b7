"""
Service-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from todo_app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Todo", resource_id=42)
    raise NotFoundError("Todo", 42, message="Invalid todo ID: 42")
    raise ValidationError("priority must be between 1 and 10", details={"priority": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "Todo", "Person").
        resource_id: The id that was looked up.
        message: Optional caller-facing text. Defaults to
                 "<resource> id=<resource_id> not found".
    """

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
        super().__init__(message)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint) — this
    exception signals that the data was well-formed but violated a business
    rule (e.g. priority out of range, unknown status).

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class MessagingDeliveryError(Exception):
    """Raised when a queue send or topic publish failed after all retries.

    The messaging gateway itself never raises; callers that need a hard
    failure call ``GatewayResult.raise_for_status()``.

    Args:
        destination: Queue or topic name the message was addressed to.
        error: Last error reported by the transport.
        attempts: Number of delivery attempts made.
    """

    def __init__(self, destination: str, error: str | None, attempts: int = 0) -> None:
        self.destination = destination
        self.error = error
        self.attempts = attempts
        super().__init__(
            f"Delivery to {destination!r} failed after {attempts} attempt(s): {error}"
        )
