"""
Role and transition authorization.

WHAT: The one place that decides which roles may move a ticket between
two statuses, which roles may claim work, and which categories each role
may see.

WHY: Role checks scattered across call sites drift apart. Every lifecycle
operation consults these tables exactly once, before touching the store.

HOW: Plain dictionaries keyed by (from_status, to_status) and by role,
read through small helper functions that raise PermissionDeniedError.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from helpdesk.core.config import settings
from helpdesk.core.exceptions import PermissionDeniedError
from helpdesk.models.ticket import TicketCategory, TicketStatus


class UserRole(str, Enum):
    """
    Actor roles, issued by the external identity service.

    - SUPER_ADMIN: Platform operator, may read across tenants
    - TENANT_ADMIN: Administrator of one tenant
    - SECURITY_ANALYST: Works the security queue
    - IT_HELPDESK_ANALYST: Works the IT support queue
    - USER: Requester, only sees their own tickets
    """

    SUPER_ADMIN = "super_admin"
    TENANT_ADMIN = "tenant_admin"
    SECURITY_ANALYST = "security_analyst"
    IT_HELPDESK_ANALYST = "it_helpdesk_analyst"
    USER = "user"


ADMIN_ROLES = frozenset({UserRole.SUPER_ADMIN, UserRole.TENANT_ADMIN})
ANALYST_ROLES = frozenset({UserRole.SECURITY_ANALYST, UserRole.IT_HELPDESK_ANALYST})
STAFF_ROLES = ADMIN_ROLES | ANALYST_ROLES


# ============================================================================
# Category visibility
# ============================================================================

SECURITY_CATEGORIES = frozenset({
    TicketCategory.SECURITY_INCIDENT,
    TicketCategory.VULNERABILITY,
    TicketCategory.MALWARE_DETECTION,
    TicketCategory.PHISHING_ATTEMPT,
    TicketCategory.DATA_BREACH,
    TicketCategory.POLICY_VIOLATION,
    TicketCategory.COMPLIANCE,
})

IT_CATEGORIES = frozenset({
    TicketCategory.IT_SUPPORT,
    TicketCategory.HARDWARE_ISSUE,
    TicketCategory.SOFTWARE_ISSUE,
    TicketCategory.NETWORK_ISSUE,
    TicketCategory.ACCESS_REQUEST,
    TicketCategory.ACCOUNT_SETUP,
})

GENERAL_CATEGORIES = frozenset({
    TicketCategory.GENERAL_REQUEST,
    TicketCategory.OTHER,
})

# None means "every category"
CATEGORY_ACCESS: Dict[UserRole, Optional[FrozenSet[TicketCategory]]] = {
    UserRole.SUPER_ADMIN: None,
    UserRole.TENANT_ADMIN: None,
    UserRole.SECURITY_ANALYST: SECURITY_CATEGORIES | GENERAL_CATEGORIES,
    UserRole.IT_HELPDESK_ANALYST: IT_CATEGORIES | GENERAL_CATEGORIES,
    UserRole.USER: None,
}


def visible_categories(role: UserRole) -> Optional[FrozenSet[TicketCategory]]:
    """
    Categories a role may see.

    Returns:
        Set of categories, or None when the role is not category-restricted
    """
    return CATEGORY_ACCESS[UserRole(role)]


def can_view_category(role: UserRole, category: TicketCategory) -> bool:
    allowed = visible_categories(role)
    return allowed is None or TicketCategory(category) in allowed


def can_view_ticket(role: Optional[UserRole], actor_id: Optional[str], ticket) -> bool:
    """
    Check whether an actor may see a ticket of their own tenant.

    Rules:
    - No role: internal call, no filter
    - USER: only tickets they requested
    - Analysts: their categories, plus anything assigned to them
    - Admins: everything
    """
    if role is None:
        return True
    role = UserRole(role)
    if role == UserRole.USER:
        return ticket.requester == actor_id
    if actor_id is not None and ticket.assignee == actor_id:
        return True
    return can_view_category(role, ticket.category)


# ============================================================================
# Transition authorization
# ============================================================================

_CLOSERS = ADMIN_ROLES | (ANALYST_ROLES if settings.ANALYSTS_CAN_CLOSE else frozenset())

TRANSITION_PERMISSIONS: Dict[Tuple[TicketStatus, TicketStatus], FrozenSet[UserRole]] = {
    (TicketStatus.NEW, TicketStatus.IN_PROGRESS): STAFF_ROLES,
    (TicketStatus.IN_PROGRESS, TicketStatus.AWAITING_RESPONSE): STAFF_ROLES,
    (TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED): STAFF_ROLES,
    (TicketStatus.AWAITING_RESPONSE, TicketStatus.RESOLVED): STAFF_ROLES,
    # Reopen is requester-driven; the lifecycle service also checks identity
    (TicketStatus.RESOLVED, TicketStatus.IN_PROGRESS): frozenset(UserRole),
    (TicketStatus.NEW, TicketStatus.CLOSED): _CLOSERS,
    (TicketStatus.IN_PROGRESS, TicketStatus.CLOSED): _CLOSERS,
    (TicketStatus.AWAITING_RESPONSE, TicketStatus.CLOSED): _CLOSERS,
    (TicketStatus.RESOLVED, TicketStatus.CLOSED): _CLOSERS,
}


def is_transition_defined(from_status: TicketStatus, to_status: TicketStatus) -> bool:
    """Check whether the state machine has an edge between two statuses."""
    return (TicketStatus(from_status), TicketStatus(to_status)) in TRANSITION_PERMISSIONS


def authorize_transition(
    role: UserRole,
    from_status: TicketStatus,
    to_status: TicketStatus,
) -> None:
    """
    Check that a role may perform a status transition.

    WHAT: Looks the (from, to) edge up in TRANSITION_PERMISSIONS.

    WHY: Callers validate the edge exists first (InvalidStateTransitionError),
    then call this once; a role outside the allowed set is PermissionDenied.

    Args:
        role: Actor role
        from_status: Current ticket status
        to_status: Requested status

    Raises:
        PermissionDeniedError: If the role may not perform the transition
    """
    allowed = TRANSITION_PERMISSIONS.get((TicketStatus(from_status), TicketStatus(to_status)))
    if allowed is None or UserRole(role) not in allowed:
        raise PermissionDeniedError(
            message=f"Role '{UserRole(role).value}' may not move a ticket "
            f"from '{TicketStatus(from_status).value}' to '{TicketStatus(to_status).value}'",
            role=UserRole(role).value,
            from_status=TicketStatus(from_status).value,
            to_status=TicketStatus(to_status).value,
        )


def can_self_assign(role: UserRole) -> bool:
    return UserRole(role) in TRANSITION_PERMISSIONS[(TicketStatus.NEW, TicketStatus.IN_PROGRESS)]


def require_admin(role: UserRole, action: str) -> None:
    """
    Raise PermissionDeniedError unless the role is an administrator.

    Args:
        role: Actor role
        action: Short description of the attempted action, for the error
    """
    if UserRole(role) not in ADMIN_ROLES:
        raise PermissionDeniedError(
            message=f"Only administrators may {action}",
            role=UserRole(role).value,
        )
