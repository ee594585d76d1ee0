"""Domain error taxonomy.

Every failure that crosses a module boundary is one of these. The HTTP
layer (main.py) maps each class to a status code and an error code in the
ApiResponse envelope; nothing below the API layer raises HTTPException.

Each error carries a ``context`` dict (operation name, entity ids) for
logging. Wrapped causes are chained with ``raise ... from exc``.

Leaf module: stdlib only.

Usage:
    from fightclub.errors import NotFoundError

    raise NotFoundError("Conversation state not found", thread_id=thread_id)
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain-qualified errors.

    Args:
        message: Human-readable description, safe to return to clients.
        **context: Structured details for server-side logs.
    """

    status_code: int = 500
    code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{key}={value!r}" for key, value in self.context.items())
        return f"{self.message} ({details})"


class NotFoundError(DomainError):
    """The requested entity does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class ValidationError(DomainError):
    """Malformed or missing input. Raised before any I/O, never retried."""

    status_code = 400
    code = "VALIDATION_FAILED"


class ForbiddenError(DomainError):
    """The caller may not access this entity."""

    status_code = 403
    code = "FORBIDDEN"


class ConflictError(DomainError):
    """A concurrent writer won: duplicate insert or stale aggregate version."""

    status_code = 409
    code = "CONFLICT"


class ProcessingError(DomainError):
    """Unexpected failure during orchestration (LLM call, unparsable JSON)."""

    status_code = 500
    code = "PROCESSING_ERROR"


class RepositoryError(DomainError):
    """Storage-layer failure. Always wraps the underlying cause."""

    status_code = 500
    code = "REPOSITORY_ERROR"
