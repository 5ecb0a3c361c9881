"""
Custom exception hierarchy for structured error handling.

WHY: Custom exceptions provide:
1. A typed failure for every ticket operation (callers never get a bare None)
2. An HTTP-equivalent status code the excluded API layer can map directly
3. Structured error payloads with contextual data
4. No sensitive data leaks in error messages

IMPORTANT: NEVER raise the base Exception class from engine code. Always use
one of the classes below.
"""

from typing import Any, Dict, Optional


class AppException(Exception):
    """
    Base exception class for all engine exceptions.

    WHY: Centralizing exception handling in a base class ensures consistent
    error payloads, status code mapping, and filtering of sensitive context.

    All custom exceptions should inherit from this class.
    """

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        Args:
            message: Human-readable error message
            status_code: Status code (overrides class default)
            **context: Additional context for debugging (filtered in to_dict)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary.

        Returns:
            Dictionary with error details (sensitive fields filtered out)
        """
        sensitive_fields = {"password", "token", "secret", "key", "api_key"}
        filtered_context = {
            k: v for k, v in self.context.items() if k.lower() not in sensitive_fields
        }

        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": filtered_context if filtered_context else None,
        }


# ============================================================================
# Authorization Exceptions
# ============================================================================


class AuthorizationError(AppException):
    """
    Raised when an actor lacks permissions for an action.

    HTTP Status: 403 Forbidden
    """

    status_code = 403
    default_message = "You do not have permission to perform this action"


class PermissionDeniedError(AuthorizationError):
    """
    Raised when the actor's role is not allowed to perform a transition.

    WHY: Role checks are consulted from one authorization table; this is the
    single failure type it produces (e.g. a requester trying to close).

    HTTP Status: 403 Forbidden
    """

    default_message = "Insufficient permissions"


# ============================================================================
# Validation Exceptions
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input validation fails.

    WHY: Missing or malformed fields on create/resolve should come back
    with details about which fields failed, so callers can correct input.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Validation failed"


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    default_message = "Resource not found"


class TicketNotFoundError(ResourceNotFoundError):
    """
    Raised when a ticket is absent or owned by another tenant.

    WHY: Both cases produce the same error so a caller can never learn that
    a ticket exists in a tenant it cannot see.
    """

    default_message = "Ticket not found"


# ============================================================================
# Business Logic Exceptions
# ============================================================================


class BusinessRuleViolation(AppException):
    """
    Raised when a business rule is violated.

    HTTP Status: 422 Unprocessable Entity
    """

    status_code = 422
    default_message = "Business rule violation"


class InvalidStateTransitionError(BusinessRuleViolation):
    """
    Raised when a requested status change is not in the ticket state machine.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Invalid state transition"


class ConflictError(AppException):
    """
    Raised when a conditional write loses against a concurrent writer.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "Conflicting concurrent update"


class AssignmentConflictError(ConflictError):
    """
    Raised when a self-assignment race is lost or the ticket is already taken.

    WHY: The ticket is left exactly as it was; callers re-fetch and pick
    another ticket rather than retrying blindly.
    """

    default_message = "Ticket has already been assigned"


class ConcurrentModificationError(ConflictError):
    """
    Raised when a ticket changed between read and conditional write.
    """

    default_message = "Ticket was modified by another request"


# ============================================================================
# External Service Exceptions
# ============================================================================


class ExternalServiceError(AppException):
    """
    Base exception for external service failures.

    HTTP Status: 502 Bad Gateway
    """

    status_code = 502
    default_message = "External service error"


class NotificationDeliveryError(ExternalServiceError):
    """
    Raised when a notification channel (Slack webhook) fails.

    WHY: Notification failures are logged by the lifecycle service and never
    roll back the ticket mutation that triggered them.
    """

    default_message = "Notification delivery error"


class SLASchedulingError(AppException):
    """
    Raised when SLA deadlines cannot be registered with the scheduler.

    WHY: The lifecycle service degrades to "no SLA tracking" for the ticket
    instead of failing the transition.
    """

    status_code = 500
    default_message = "SLA timer scheduling failed"


# ============================================================================
# Database Exceptions
# ============================================================================


class DatabaseError(AppException):
    """
    Raised when database operations fail.

    HTTP Status: 500 Internal Server Error
    """

    status_code = 500
    default_message = "Database error"
