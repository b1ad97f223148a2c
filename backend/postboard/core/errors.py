"""Error Hierarchy: typed, categorized exceptions for every Postboard failure mode.

Invariants:
    - Each error class fixes its code, category, severity and HTTP status
    - Auth, not-found and lifecycle-rule failures are distinct classes so callers can tell them apart
    - CollaboratorError is the only retryable class
    - to_response() produces the REST envelope; no internal details leak into it

Design Decisions:
    - Single hierarchy with PostboardError base: FastAPI global handler catches all
    - ErrorContext as dataclass: observability fields without coupling to logging
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """How loudly an error is logged and reported."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Coarse grouping used by clients to pick a recovery path."""
    AUTH = "auth"
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    DATA_INTEGRITY = "data_integrity"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Context attached to an error for logs and responses."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    post_id: int | None = None
    user_id: int | None = None
    collaborator: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class PostboardError(Exception):
    """Base exception for all Postboard errors."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """REST envelope; debug_info and user_id stay server-side."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "retryable": self.retryable,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "post_id": self.context.post_id,
                    "collaborator": self.context.collaborator,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }


# ─── Caller Errors (400-level) ──────────────────────────────────

class AuthError(PostboardError):
    """Caller token invalid, or the identity lookup rejected it."""
    def __init__(self, message: str = "token invalid", context: ErrorContext | None = None):
        super().__init__(
            message, "AUTH_ERROR", ErrorCategory.AUTH,
            ErrorSeverity.WARNING, context, 401,
        )


class ValidationError(PostboardError):
    """Malformed input, e.g. a negative point value or an empty tag body."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class NotFoundError(PostboardError):
    """Requested entity does not exist."""
    def __init__(
        self, resource_type: str, resource_id: int | str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class DomainError(PostboardError):
    """Entities are valid but the operation breaks a lifecycle rule."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "DOMAIN_RULE_VIOLATION", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, context, 409,
        )


# ─── Infrastructure Errors (500-level) ──────────────────────────

class CollaboratorError(PostboardError):
    """Identity or ledger service unreachable, or it answered with an error."""

    retryable = True

    def __init__(
        self,
        message: str,
        collaborator: str,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.collaborator = collaborator
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"{collaborator} service error: {message}",
            "COLLABORATOR_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, ctx, 503,
        )
        self.collaborator = collaborator


class DataError(PostboardError):
    """Internal consistency violation, e.g. a stored post without a requester."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "DATA_INTEGRITY_ERROR", ErrorCategory.DATA_INTEGRITY,
            ErrorSeverity.CRITICAL, context, 500,
        )


class DatabaseError(PostboardError):
    """The local store failed; raised by the session manager, never by services."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation
