"""Error Hierarchy — typed, categorized exceptions for all BadgeLedger failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain errors (400-level) are recoverable; infrastructure errors (500-level) are critical
    - to_response() produces the REST envelope used by every error handler
    - No internal details leaked in user-facing messages

Design Decisions:
    - Single hierarchy with BadgeLedgerError base: FastAPI global handler catches all
    - ErrorContext as dataclass: rich observability without coupling to logging framework
    - ExternalServiceError is the one parent for AI and payment failures, so callers
      that apply a fallback catch exactly one type
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"
    CONFLICT = "conflict"
    TIMEOUT = "timeout"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    case_id: str | None = None
    purchase_id: str | None = None
    target_id: str | None = None
    actor_id: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class BadgeLedgerError(Exception):
    """Base exception for all BadgeLedger errors."""

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
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "case_id": self.context.case_id,
                    "purchase_id": self.context.purchase_id,
                    "target_id": self.context.target_id,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class ValidationError(BadgeLedgerError):
    """Input failed validation. `details` lists offending fields."""
    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.details = details or []

    def to_response(self) -> dict:
        body = super().to_response()
        body["error"]["details"] = self.details
        return body


class AuthorizationError(BadgeLedgerError):
    """Caller lacks the role or secret required for the operation."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "FORBIDDEN", ErrorCategory.AUTHORIZATION,
            ErrorSeverity.WARNING, context, 403,
        )


class ResourceNotFoundError(BadgeLedgerError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(BadgeLedgerError):
    """Operation collides with existing state (e.g. an open verification case)."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


class InvalidTransitionError(BadgeLedgerError):
    """State machine rejected a transition."""
    def __init__(
        self, from_status: str, to_status: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Transition {from_status} -> {to_status} is not allowed",
            "INVALID_TRANSITION", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, context, 409,
        )
        self.from_status = from_status
        self.to_status = to_status


class ConcurrencyError(BadgeLedgerError):
    """Concurrent modification detected (stale version)."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONCURRENCY_CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


# ─── Infrastructure Errors (500-level) ──────────────────────────

class FlagWriteError(BadgeLedgerError):
    """Capability flags written outside the cascade resolver."""
    def __init__(self, attribute: str, context: ErrorContext | None = None):
        super().__init__(
            f"Capability flag '{attribute}' may only be written by the cascade resolver",
            "FLAG_WRITE_FORBIDDEN", ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, context, 500,
        )
        self.attribute = attribute


class DatabaseError(BadgeLedgerError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class ExternalServiceError(BadgeLedgerError):
    """A collaborator outside the process (AI reviewer, payment provider) failed."""
    def __init__(
        self,
        message: str,
        service: str,
        error_type: str,
        code: str = "EXTERNAL_SERVICE_ERROR",
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"{service} error ({error_type}): {message}",
            code, ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, ctx, 502,
        )
        self.service = service
        self.error_type = error_type


class AnthropicAPIError(ExternalServiceError):
    """Anthropic API call failed."""
    def __init__(
        self,
        message: str,
        api_error_type: str,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "Anthropic API", api_error_type,
            code="ANTHROPIC_API_ERROR",
            retry_after_ms=retry_after_ms, context=context,
        )
        self.api_error_type = api_error_type


class PaymentProviderError(ExternalServiceError):
    """Payment provider call failed or sent an unverifiable payload."""
    def __init__(
        self, message: str, error_type: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "Payment provider", error_type,
            code="PAYMENT_PROVIDER_ERROR", context=context,
        )
