"""
Tests for custom exception hierarchy.

WHY: Comprehensive exception testing ensures:
1. Exceptions serialize correctly without leaking sensitive data
2. Status codes map correctly
3. Context data is properly filtered
4. Callers can catch whole families (ConflictError, AuthorizationError)
"""

import pytest

from helpdesk.core.exceptions import (
    AppException,
    AssignmentConflictError,
    AuthorizationError,
    BusinessRuleViolation,
    ConcurrentModificationError,
    ConflictError,
    ExternalServiceError,
    InvalidStateTransitionError,
    NotificationDeliveryError,
    PermissionDeniedError,
    ResourceNotFoundError,
    SLASchedulingError,
    TicketNotFoundError,
    ValidationError,
)


class TestAppException:
    """Test base AppException class."""

    def test_default_message(self):
        """Verify default message is used when none provided."""
        exc = AppException()
        assert exc.message == "An unexpected error occurred"
        assert exc.status_code == 500

    def test_custom_message(self):
        """Verify custom message overrides default."""
        exc = AppException(message="Custom error message")
        assert exc.message == "Custom error message"
        assert str(exc) == "Custom error message"

    def test_custom_status_code(self):
        """Verify custom status code overrides class default."""
        exc = AppException(status_code=418)
        assert exc.status_code == 418

    def test_context_data(self):
        """Verify context data is stored."""
        exc = AppException(ticket_id=123, tenant_id="t1", action="close")
        assert exc.context == {"ticket_id": 123, "tenant_id": "t1", "action": "close"}

    def test_to_dict_basic(self):
        """Verify exception serializes to dict correctly."""
        exc = AppException(message="Test error", ticket_id=123)
        result = exc.to_dict()

        assert result["error"] == "AppException"
        assert result["message"] == "Test error"
        assert result["status_code"] == 500
        assert result["details"] == {"ticket_id": 123}

    def test_to_dict_filters_sensitive_data(self):
        """Verify sensitive fields are filtered from dict."""
        exc = AppException(
            message="Test error",
            ticket_id=123,
            password="secret123",
            token="abc123",
            api_key="key123",
            secret="mysecret",
            regular_field="visible",
        )
        result = exc.to_dict()

        assert result["details"] == {"ticket_id": 123, "regular_field": "visible"}

    def test_to_dict_no_context(self):
        """Verify details is None when there is no context."""
        assert AppException().to_dict()["details"] is None


class TestExceptionHierarchy:
    """Status codes and families of the engine exceptions."""

    @pytest.mark.parametrize(
        "exc_class,status_code",
        [
            (PermissionDeniedError, 403),
            (ValidationError, 400),
            (TicketNotFoundError, 404),
            (BusinessRuleViolation, 422),
            (InvalidStateTransitionError, 400),
            (AssignmentConflictError, 409),
            (ConcurrentModificationError, 409),
            (NotificationDeliveryError, 502),
            (SLASchedulingError, 500),
        ],
    )
    def test_status_codes(self, exc_class, status_code):
        assert exc_class().status_code == status_code

    def test_permission_denied_is_authorization_error(self):
        assert issubclass(PermissionDeniedError, AuthorizationError)

    def test_ticket_not_found_is_resource_not_found(self):
        exc = TicketNotFoundError(ticket_id=7)
        assert isinstance(exc, ResourceNotFoundError)
        assert exc.message == "Ticket not found"
        assert exc.context == {"ticket_id": 7}

    def test_conflicts_share_a_family(self):
        """Callers can catch every lost conditional write at once."""
        assert issubclass(AssignmentConflictError, ConflictError)
        assert issubclass(ConcurrentModificationError, ConflictError)

    def test_invalid_transition_is_business_rule_violation(self):
        assert issubclass(InvalidStateTransitionError, BusinessRuleViolation)

    def test_notification_error_is_external_service_error(self):
        assert issubclass(NotificationDeliveryError, ExternalServiceError)

    def test_all_inherit_from_app_exception(self):
        for exc_class in (
            PermissionDeniedError,
            ValidationError,
            TicketNotFoundError,
            InvalidStateTransitionError,
            AssignmentConflictError,
            NotificationDeliveryError,
            SLASchedulingError,
        ):
            assert issubclass(exc_class, AppException)
