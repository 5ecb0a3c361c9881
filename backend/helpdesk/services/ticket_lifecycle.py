"""
Ticket Lifecycle Service.

WHAT: Owns the ticket state machine: creation, assignment, status changes,
comments, reopening, closure and deletion.

WHY: Every rule about how a ticket moves lives here:
1. Only the transitions of the state table are allowed
2. Role checks go through the single authorization table, once per call
3. Closure is always an explicit actor action; nothing closes a ticket
   automatically (can_auto_close() is permanently False)
4. A requester reply to a resolved ticket reopens it as a second, separate
   step after the comment is stored, so both show up in the audit trail

HOW: Each operation is one unit of work: open a session, read the ticket,
validate, apply one conditional update, record a ticket event, commit.
Only after the commit are SLA timers started/cancelled and notifications
dispatched. Delivery runs in the background, so a slow channel never delays
the caller. Notification and SLA scheduling failures are logged and never
undo the committed change.

State table:
    new               -> in_progress        assignment (AssignmentCoordinator)
    in_progress       -> awaiting_response  analyst waits on requester
    in_progress       -> resolved           resolution required
    awaiting_response -> resolved           resolution required
    resolved          -> in_progress        requester reopens
    any but closed    -> closed             manual close by an allowed role
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helpdesk.core.exceptions import (
    BusinessRuleViolation,
    ConcurrentModificationError,
    InvalidStateTransitionError,
    PermissionDeniedError,
    SLASchedulingError,
    TicketNotFoundError,
    ValidationError,
)
from helpdesk.core.permissions import (
    STAFF_ROLES,
    UserRole,
    authorize_transition,
    can_view_ticket,
    is_transition_defined,
    require_admin,
)
from helpdesk.dao.ticket import TicketCommentDAO, TicketDAO, changed_fields
from helpdesk.dao.ticket_event import TicketEventDAO
from helpdesk.models.base import utcnow
from helpdesk.models.ticket import (
    DEFAULT_PRIORITY_BY_SEVERITY,
    Ticket,
    TicketComment,
    TicketStatus,
)
from helpdesk.models.ticket_event import TicketEvent, TicketEventType
from helpdesk.schemas.ticket import (
    CommentCreate,
    SLAStatus,
    TicketCreate,
    TicketFilters,
    TicketUpdate,
)
from helpdesk.services import notification_service as events
from helpdesk.services.assignment import AssignmentCoordinator
from helpdesk.services.notification_service import (
    NotificationDispatcher,
    NotificationService,
)
from helpdesk.services.queue_manager import QueueManager
from helpdesk.services.sla_service import SLAService
from helpdesk.services.sla_timer_registry import SLATimerRegistry

logger = logging.getLogger(__name__)

SchemaType = TypeVar("SchemaType", bound=BaseModel)

# Content fields a requester may edit on their own ticket
REQUESTER_EDITABLE_FIELDS = frozenset(
    {"title", "description", "device_id", "contact_method", "phone_number"}
)
REQUIRED_FIELDS = frozenset({"title", "description", "category", "severity"})

_EVENT_FOR_STATUS = {
    TicketStatus.AWAITING_RESPONSE: (TicketEventType.STATUS_CHANGED, events.TICKET_STATUS_CHANGED),
    TicketStatus.RESOLVED: (TicketEventType.RESOLVED, events.TICKET_RESOLVED),
    TicketStatus.CLOSED: (TicketEventType.CLOSED, events.TICKET_CLOSED),
}


def _parse(schema: Type[SchemaType], data: Union[SchemaType, Mapping[str, Any]]) -> SchemaType:
    """
    Validate caller input against a schema.

    Raises:
        ValidationError: With one entry per failing field
    """
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            message=f"Invalid {schema.__name__} data",
            errors=[
                {
                    "field": ".".join(str(p) for p in err["loc"]),
                    "message": err["msg"],
                }
                for err in e.errors()
            ],
        ) from e


class TicketLifecycleService:
    """
    Service boundary for every ticket operation.

    Example:
        lifecycle = TicketLifecycleService(session_factory, notifications, registry)
        ticket = await lifecycle.create_ticket("acme", "u-1", {...})
        ticket = await lifecycle.self_assign("acme", ticket.id, "a-7", UserRole.IT_HELPDESK_ANALYST)
    """

    # Closure is manual only
    AUTO_CLOSE_ENABLED = False

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notification_service: Optional[NotificationService] = None,
        sla_registry: Optional[SLATimerRegistry] = None,
        sla_service: Optional[SLAService] = None,
        assignment_coordinator: Optional[AssignmentCoordinator] = None,
        queue_manager: Optional[QueueManager] = None,
    ):
        """
        Wire the service to its collaborators.

        Args:
            session_factory: Factory producing one session per operation
            notification_service: Notification gateway
            sla_registry: SLA timer registry, owned by the booting process
            sla_service: SLA calculations (built from the registry by default)
            assignment_coordinator: Assignment CAS (built by default)
            queue_manager: Queue projection (built by default)
        """
        self._session_factory = session_factory
        self._notifications = notification_service or NotificationService()
        self._dispatcher = NotificationDispatcher(self._notifications)
        self._sla_registry = sla_registry or SLATimerRegistry(notifier=self._notifications)
        self._sla_service = sla_service or SLAService(session_factory, self._sla_registry)
        self._assignment = assignment_coordinator or AssignmentCoordinator(
            session_factory, self._sla_service
        )
        self._queue = queue_manager or QueueManager(session_factory, self._sla_registry)

    @property
    def sla_registry(self) -> SLATimerRegistry:
        return self._sla_registry

    @property
    def queue_manager(self) -> QueueManager:
        return self._queue

    # =========================================================================
    # Policy checks
    # =========================================================================

    def can_auto_close(self) -> bool:
        """Permanent policy: no automatic process ever closes a ticket."""
        return self.AUTO_CLOSE_ENABLED

    def reset_sla_timers(self) -> int:
        """Cancel every SLA timer (shutdown and test isolation)."""
        return self._sla_registry.reset_all()

    @property
    def pending_notifications(self) -> int:
        return self._dispatcher.pending

    async def drain_notifications(self) -> None:
        """Wait for lifecycle notifications still being delivered."""
        await self._dispatcher.drain()

    # =========================================================================
    # Creation
    # =========================================================================

    async def create_ticket(
        self,
        tenant_id: str,
        requester_id: str,
        fields: Union[TicketCreate, Mapping[str, Any]],
        created_by: Optional[str] = None,
    ) -> Ticket:
        """
        Create a ticket in status new.

        Args:
            tenant_id: Owning tenant
            requester_id: Identity the ticket is raised for
            fields: title, description, category, severity and optional extras
            created_by: Actor entering the ticket (defaults to the requester)

        Returns:
            The created Ticket

        Raises:
            ValidationError: Missing or malformed fields
        """
        data = _parse(TicketCreate, fields)
        if not tenant_id or not requester_id:
            raise ValidationError(
                message="tenant_id and requester are required",
                tenant_id=tenant_id,
                requester=requester_id,
            )

        author = created_by or requester_id
        now = utcnow()

        async with self._session_factory() as session:
            ticket = await TicketDAO(session).create(
                tenant_id=tenant_id,
                requester=requester_id,
                created_by=author,
                title=data.title,
                description=data.description,
                category=data.category,
                severity=data.severity,
                priority=data.priority or DEFAULT_PRIORITY_BY_SEVERITY[data.severity],
                device_id=data.device_id,
                contact_method=data.contact_method,
                phone_number=data.phone_number,
                status=TicketStatus.NEW,
                created_at=now,
                updated_at=now,
            )
            await TicketEventDAO(session).record(
                tenant_id=tenant_id,
                ticket_id=ticket.id,
                event_type=TicketEventType.CREATED,
                actor_id=author,
                to_status=TicketStatus.NEW.value,
            )
            await session.commit()

        logger.info(
            f"Ticket {ticket.id} created in tenant {tenant_id} "
            f"(severity={ticket.severity.value}, category={ticket.category.value})"
        )
        self._notify(events.TICKET_CREATED, ticket, actor_id=author)
        return ticket

    # =========================================================================
    # Assignment
    # =========================================================================

    async def self_assign(
        self,
        tenant_id: str,
        ticket_id: int,
        actor_id: str,
        actor_role: UserRole,
    ) -> Ticket:
        """
        Claim a new ticket; see AssignmentCoordinator.self_assign.

        Raises:
            AssignmentConflictError: Already assigned or race lost
        """
        ticket = await self._assignment.self_assign(tenant_id, ticket_id, actor_id, actor_role)
        self._start_sla(ticket)
        self._notify(
            events.TICKET_ASSIGNED, ticket, actor_id=actor_id,
            from_status=TicketStatus.NEW.value,
        )
        return ticket

    async def assign_ticket(
        self,
        tenant_id: str,
        ticket_id: int,
        assignee_id: str,
        actor_id: str,
        actor_role: UserRole,
    ) -> Ticket:
        """Administrator assignment of a new ticket to a named analyst."""
        ticket = await self._assignment.assign_to(
            tenant_id, ticket_id, assignee_id, actor_id, actor_role
        )
        self._start_sla(ticket)
        self._notify(
            events.TICKET_ASSIGNED, ticket, actor_id=actor_id,
            from_status=TicketStatus.NEW.value,
        )
        return ticket

    # =========================================================================
    # Updates and transitions
    # =========================================================================

    async def update_ticket(
        self,
        tenant_id: str,
        ticket_id: int,
        patch: Union[TicketUpdate, Mapping[str, Any]],
        actor_id: str,
        actor_role: UserRole,
    ) -> Ticket:
        """
        Apply content changes and/or a status transition.

        WHAT: status=awaiting_response, resolved or closed are handled here.
        status=in_progress is routed to the dedicated protocol: assignment
        for a new ticket, reopening for a resolved one. Requesting the
        current status with no other change is a no-op.

        Args:
            tenant_id: Tenant of the actor
            ticket_id: Ticket to change
            patch: TicketUpdate or dict of the fields to change
            actor_id: Acting identity
            actor_role: Acting role

        Returns:
            The ticket after the change

        Raises:
            TicketNotFoundError: Absent, other tenant, or hidden from the role
            InvalidStateTransitionError: Edge not in the state table
            PermissionDeniedError: Role not allowed for the edge or field
            ValidationError: Resolving without a resolution, bad fields
            ConcurrentModificationError: Ticket changed since it was read
        """
        patch = _parse(TicketUpdate, patch)
        role = UserRole(actor_role)
        target = patch.status if "status" in patch.model_fields_set else None
        content = patch.content_changes()

        if "resolution" in patch.model_fields_set and target != TicketStatus.RESOLVED:
            raise ValidationError(
                message="A resolution can only be set when resolving a ticket",
                field="resolution",
            )

        delegate = None
        transition = None
        updated = None

        async with self._session_factory() as session:
            ticket_dao = TicketDAO(session)
            ticket = await self._load(ticket_dao, tenant_id, ticket_id, role, actor_id)
            from_status = ticket.status

            if target is not None and target != from_status:
                if target == TicketStatus.IN_PROGRESS and from_status in (
                    TicketStatus.NEW, TicketStatus.RESOLVED,
                ):
                    if content:
                        raise ValidationError(
                            message="Moving a ticket to in_progress cannot be combined with field changes",
                            fields=sorted(content),
                        )
                    delegate = from_status
                elif not is_transition_defined(from_status, target):
                    raise InvalidStateTransitionError(
                        message=f"Cannot move ticket from '{from_status.value}' to '{target.value}'",
                        ticket_id=ticket_id,
                        from_status=from_status.value,
                        to_status=target.value,
                    )
                else:
                    authorize_transition(role, from_status, target)
                    transition = target

            if delegate is None:
                if content:
                    self._check_content_edit(ticket, role, content)
                    content = self._normalize_content(content)

                now = utcnow()
                new: Dict[str, Any] = dict(content)
                if transition is not None:
                    new.update(self._transition_values(ticket, transition, patch.resolution, now))

                changes = changed_fields(ticket, new)
                if not changes:
                    return ticket

                changes["updated_at"] = now
                updated = await ticket_dao.conditional_update(
                    ticket_id,
                    expected={
                        "tenant_id": tenant_id,
                        "status": from_status,
                        "assignee": ticket.assignee,
                    },
                    new=changes,
                )
                if updated is None:
                    raise ConcurrentModificationError(ticket_id=ticket_id)

                event_dao = TicketEventDAO(session)
                edited = sorted(k for k in content if k in changes)
                if edited:
                    await event_dao.record(
                        tenant_id=tenant_id,
                        ticket_id=ticket_id,
                        event_type=TicketEventType.UPDATED,
                        actor_id=actor_id,
                        extra_data={"fields": edited},
                    )
                if transition is not None:
                    await event_dao.record(
                        tenant_id=tenant_id,
                        ticket_id=ticket_id,
                        event_type=_EVENT_FOR_STATUS[transition][0],
                        actor_id=actor_id,
                        from_status=from_status.value,
                        to_status=transition.value,
                    )
                await session.commit()

        if delegate == TicketStatus.NEW:
            return await self.self_assign(tenant_id, ticket_id, actor_id, role)
        if delegate == TicketStatus.RESOLVED:
            return await self.reopen_ticket(tenant_id, ticket_id, actor_id, role)

        if transition is None:
            logger.info(f"Ticket {ticket_id} updated by {actor_id}")
            return updated

        logger.info(
            f"Ticket {ticket_id} moved from {from_status.value} to {transition.value} by {actor_id}"
        )
        if transition in (TicketStatus.RESOLVED, TicketStatus.CLOSED):
            self._sla_registry.cancel(ticket_id)
        self._notify(
            _EVENT_FOR_STATUS[transition][1], updated, actor_id=actor_id,
            from_status=from_status.value,
        )
        return updated

    def _transition_values(
        self,
        ticket: Ticket,
        target: TicketStatus,
        resolution: Optional[str],
        now,
    ) -> Dict[str, Any]:
        """Column values for an allowed, authorized transition."""
        if target == TicketStatus.AWAITING_RESPONSE:
            if ticket.assignee is None:
                raise InvalidStateTransitionError(
                    message="Only an assigned ticket can await a response",
                    ticket_id=ticket.id,
                )
            return {"status": TicketStatus.AWAITING_RESPONSE}

        if target == TicketStatus.RESOLVED:
            if not resolution:
                raise ValidationError(
                    message="A resolution is required to resolve a ticket",
                    field="resolution",
                )
            return {
                "status": TicketStatus.RESOLVED,
                "resolution": resolution,
                "resolved_at": now,
                "assignee": None,
                "last_assignee": ticket.assignee,
                "assigned_at": None,
            }

        # Closed
        return {
            "status": TicketStatus.CLOSED,
            "closed_at": now,
            "assignee": None,
            "last_assignee": ticket.assignee or ticket.last_assignee,
            "assigned_at": None,
        }

    def _check_content_edit(self, ticket: Ticket, role: UserRole, content: Dict[str, Any]) -> None:
        if ticket.status == TicketStatus.CLOSED:
            raise BusinessRuleViolation(
                message="Closed tickets cannot be modified",
                ticket_id=ticket.id,
            )
        if role not in STAFF_ROLES:
            forbidden = sorted(set(content) - REQUESTER_EDITABLE_FIELDS)
            if forbidden:
                raise PermissionDeniedError(
                    message="Requesters cannot change these fields",
                    fields=forbidden,
                )

    def _normalize_content(self, content: Dict[str, Any]) -> Dict[str, Any]:
        missing = sorted(k for k in REQUIRED_FIELDS if k in content and content[k] is None)
        if missing:
            raise ValidationError(message="Required fields cannot be cleared", fields=missing)

        content = dict(content)
        # Severity drives priority unless the caller set one explicitly
        if content.get("severity") is not None and content.get("priority") is None:
            content["priority"] = DEFAULT_PRIORITY_BY_SEVERITY[content["severity"]]
        elif "priority" in content and content["priority"] is None:
            content.pop("priority")
        return content

    # =========================================================================
    # Comments and reopening
    # =========================================================================

    async def add_comment(
        self,
        tenant_id: str,
        ticket_id: int,
        actor_id: str,
        comment: Union[CommentCreate, Mapping[str, Any]],
        actor_role: Optional[UserRole] = None,
    ) -> TicketComment:
        """
        Append a comment. Never changes ticket status.

        WHAT: Stores the comment and records the first staff response for
        SLA purposes. A requester reply to a resolved ticket is reopened by
        the separate step handle_requester_reply (or reopen_ticket).

        Args:
            tenant_id: Tenant of the actor
            ticket_id: Ticket to comment on
            actor_id: Comment author
            comment: content and is_internal
            actor_role: Author role (None for trusted internal callers)

        Returns:
            The stored TicketComment

        Raises:
            TicketNotFoundError: Absent, other tenant, or hidden from the role
            PermissionDeniedError: A requester posting an internal note
            ValidationError: Empty content
        """
        data = _parse(CommentCreate, comment)
        role = UserRole(actor_role) if actor_role is not None else None
        first_response = False

        async with self._session_factory() as session:
            ticket_dao = TicketDAO(session)
            ticket = await self._load(ticket_dao, tenant_id, ticket_id, role, actor_id)

            if data.is_internal and role == UserRole.USER:
                raise PermissionDeniedError(
                    message="Requesters cannot post internal notes",
                    ticket_id=ticket_id,
                )

            stored = await TicketCommentDAO(session).append(
                ticket_id=ticket_id,
                author_id=actor_id,
                content=data.content,
                is_internal=data.is_internal,
            )

            if (
                not data.is_internal
                and actor_id != ticket.requester
                and ticket.first_response_at is None
            ):
                now = utcnow()
                # Losing this update means someone else responded first
                first_response = await ticket_dao.conditional_update(
                    ticket_id,
                    expected={"first_response_at": None},
                    new={"first_response_at": now},
                ) is not None

            await TicketEventDAO(session).record(
                tenant_id=tenant_id,
                ticket_id=ticket_id,
                event_type=TicketEventType.COMMENTED,
                actor_id=actor_id,
                extra_data={"comment_id": stored.id, "is_internal": data.is_internal},
            )
            await session.commit()

        logger.info(f"Comment {stored.id} added to ticket {ticket_id} by {actor_id}")

        if first_response:
            self._sla_registry.complete_response(ticket_id)
        if not data.is_internal:
            self._notify(
                events.COMMENT_ADDED, ticket, actor_id=actor_id, comment_id=stored.id
            )
        return stored

    async def handle_requester_reply(
        self,
        tenant_id: str,
        ticket_id: int,
        comment: TicketComment,
    ) -> Optional[Ticket]:
        """
        Second step after add_comment: reopen if the reply warrants it.

        Reopens iff the ticket is resolved and the comment is a public
        reply by the requester who was not also the last assignee.

        Returns:
            The reopened ticket, or None when no reopen applies
        """
        async with self._session_factory() as session:
            ticket = await TicketDAO(session).get_by_id(ticket_id, tenant_id)
        if ticket is None:
            raise TicketNotFoundError(ticket_id=ticket_id)

        if (
            ticket.status != TicketStatus.RESOLVED
            or comment.ticket_id != ticket_id
            or comment.is_internal
            or comment.author_id != ticket.requester
            or comment.author_id == ticket.last_assignee
        ):
            return None

        return await self.reopen_ticket(tenant_id, ticket_id, comment.author_id, UserRole.USER)

    async def reopen_ticket(
        self,
        tenant_id: str,
        ticket_id: int,
        actor_id: str,
        actor_role: UserRole = UserRole.USER,
    ) -> Ticket:
        """
        Move a resolved ticket back to in_progress.

        WHAT: Returns the ticket to the analyst who resolved it, with a
        fresh SLA window computed from now.

        Raises:
            TicketNotFoundError: Absent, other tenant, or hidden from the role
            InvalidStateTransitionError: Ticket is not resolved
            PermissionDeniedError: Actor is not the requester, or was the last assignee
            ConcurrentModificationError: Ticket changed since it was read
        """
        role = UserRole(actor_role)

        async with self._session_factory() as session:
            ticket_dao = TicketDAO(session)
            ticket = await self._load(ticket_dao, tenant_id, ticket_id, role, actor_id)

            if ticket.status != TicketStatus.RESOLVED:
                raise InvalidStateTransitionError(
                    message=f"Only resolved tickets can be reopened (status is '{ticket.status.value}')",
                    ticket_id=ticket_id,
                    from_status=ticket.status.value,
                    to_status=TicketStatus.IN_PROGRESS.value,
                )
            authorize_transition(role, TicketStatus.RESOLVED, TicketStatus.IN_PROGRESS)
            if actor_id != ticket.requester or actor_id == ticket.last_assignee:
                raise PermissionDeniedError(
                    message="Only the requester can reopen a resolved ticket",
                    ticket_id=ticket_id,
                )
            if ticket.last_assignee is None:
                raise InvalidStateTransitionError(
                    message="Resolved ticket has no analyst to return to",
                    ticket_id=ticket_id,
                )

            now = utcnow()
            response_due_at, resolution_due_at = await self._sla_service.due_dates_for(
                session, tenant_id, ticket.severity, now
            )
            updated = await ticket_dao.conditional_update(
                ticket_id,
                expected={
                    "tenant_id": tenant_id,
                    "status": TicketStatus.RESOLVED,
                    "assignee": None,
                },
                new={
                    "status": TicketStatus.IN_PROGRESS,
                    "assignee": ticket.last_assignee,
                    "assigned_at": now,
                    "resolution": None,
                    "resolved_at": None,
                    "sla_response_due_at": response_due_at,
                    "sla_resolution_due_at": resolution_due_at,
                    "updated_at": now,
                },
            )
            if updated is None:
                raise ConcurrentModificationError(ticket_id=ticket_id)

            await TicketEventDAO(session).record(
                tenant_id=tenant_id,
                ticket_id=ticket_id,
                event_type=TicketEventType.REOPENED,
                actor_id=actor_id,
                from_status=TicketStatus.RESOLVED.value,
                to_status=TicketStatus.IN_PROGRESS.value,
                extra_data={"assignee": ticket.last_assignee},
            )
            await session.commit()

        logger.info(f"Ticket {ticket_id} reopened by {actor_id}, returned to {updated.assignee}")
        self._start_sla(updated)
        self._notify(
            events.TICKET_REOPENED, updated, actor_id=actor_id,
            from_status=TicketStatus.RESOLVED.value,
        )
        return updated

    # =========================================================================
    # Deletion
    # =========================================================================

    async def delete_ticket(
        self,
        tenant_id: str,
        ticket_id: int,
        actor_id: str,
        actor_role: UserRole,
    ) -> None:
        """
        Delete a ticket and its comments (administrators only).

        Raises:
            PermissionDeniedError: Actor is not an administrator
            TicketNotFoundError: Absent or in another tenant
        """
        require_admin(actor_role, "delete tickets")

        async with self._session_factory() as session:
            ticket_dao = TicketDAO(session)
            ticket = await self._load(ticket_dao, tenant_id, ticket_id, None, actor_id)
            comment_count = await TicketCommentDAO(session).count_for_ticket(ticket_id)

            await ticket_dao.delete(ticket_id, tenant_id)
            await TicketEventDAO(session).record(
                tenant_id=tenant_id,
                ticket_id=ticket_id,
                event_type=TicketEventType.DELETED,
                actor_id=actor_id,
                from_status=ticket.status.value,
                extra_data={"title": ticket.title, "comments_deleted": comment_count},
            )
            await session.commit()

        logger.info(f"Ticket {ticket_id} deleted by {actor_id}")
        self._sla_registry.cancel(ticket_id)
        self._notify(events.TICKET_DELETED, ticket, actor_id=actor_id)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_ticket(
        self,
        tenant_id: str,
        ticket_id: int,
        actor_role: Optional[UserRole] = None,
        actor_id: Optional[str] = None,
    ) -> Ticket:
        """
        Get one ticket.

        WHY: A ticket of another tenant raises the same TicketNotFoundError
        as a missing one. Only SUPER_ADMIN reads across tenants.
        """
        role = UserRole(actor_role) if actor_role is not None else None
        scope = None if role == UserRole.SUPER_ADMIN else tenant_id

        async with self._session_factory() as session:
            return await self._load(TicketDAO(session), scope, ticket_id, role, actor_id)

    async def get_tickets(
        self,
        tenant_id: str,
        filters: Union[TicketFilters, Mapping[str, Any], None],
        actor_role: UserRole,
        actor_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Ordered, role-scoped queue page.

        WHY: The role is required; visibility is never widened by omission.

        Returns:
            Dict with "tickets" and "total"
        """
        filters = _parse(TicketFilters, filters or {})
        return await self._queue.get_queue(tenant_id, actor_role, actor_id, filters)

    async def get_my_tickets(
        self,
        tenant_id: str,
        actor_id: str,
        actor_role: UserRole,
        filters: Union[TicketFilters, Mapping[str, Any], None] = None,
    ) -> Dict[str, Any]:
        filters = _parse(TicketFilters, filters or {})
        return await self._queue.get_my_queue(tenant_id, actor_id, actor_role, filters)

    async def get_queue_metrics(
        self,
        tenant_id: str,
        actor_role: UserRole,
        actor_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._queue.get_metrics(tenant_id, actor_role, actor_id)

    async def get_ticket_comments(
        self,
        tenant_id: str,
        ticket_id: int,
        actor_role: Optional[UserRole] = None,
        actor_id: Optional[str] = None,
    ) -> List[TicketComment]:
        """
        Comments in chronological order; internal notes hidden from requesters.
        """
        role = UserRole(actor_role) if actor_role is not None else None

        async with self._session_factory() as session:
            await self._load(TicketDAO(session), tenant_id, ticket_id, role, actor_id)
            return await TicketCommentDAO(session).list_for_ticket(
                ticket_id, include_internal=role != UserRole.USER
            )

    async def get_ticket_events(
        self,
        tenant_id: str,
        ticket_id: int,
    ) -> List[TicketEvent]:
        """
        Audit trail of a ticket, oldest first.

        WHY: Still readable after the ticket is deleted.
        """
        async with self._session_factory() as session:
            found = await TicketEventDAO(session).list_for_ticket(tenant_id, ticket_id)
        if not found:
            raise TicketNotFoundError(ticket_id=ticket_id)
        return found

    async def get_sla_status(
        self,
        tenant_id: str,
        ticket_id: int,
        actor_role: Optional[UserRole] = None,
        actor_id: Optional[str] = None,
    ) -> SLAStatus:
        ticket = await self.get_ticket(tenant_id, ticket_id, actor_role, actor_id)
        return self._sla_service.build_status(ticket)

    # =========================================================================
    # SLA timers
    # =========================================================================

    async def restore_sla_timers(self) -> int:
        """
        Re-register timers for assigned tickets after a process start.

        Returns:
            Number of tickets whose timers were registered
        """
        async with self._session_factory() as session:
            tickets = await TicketDAO(session).list_with_sla_deadlines()

        restored = sum(1 for ticket in tickets if self._start_sla(ticket))
        logger.info(f"Restored SLA timers for {restored} of {len(tickets)} tickets")
        return restored

    def _start_sla(self, ticket: Ticket) -> bool:
        """Start timers; on failure the ticket simply has no SLA tracking."""
        try:
            self._sla_registry.start(
                ticket.id,
                None if ticket.first_response_at else ticket.sla_response_due_at,
                ticket.sla_resolution_due_at,
                tenant_id=ticket.tenant_id,
                started_at=ticket.assigned_at,
            )
        except SLASchedulingError as e:
            logger.warning(f"SLA tracking disabled for ticket {ticket.id}: {e.message}")
            return False
        return True

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _load(
        self,
        ticket_dao: TicketDAO,
        tenant_id: Optional[str],
        ticket_id: int,
        role: Optional[UserRole],
        actor_id: Optional[str],
    ) -> Ticket:
        ticket = await ticket_dao.get_by_id(ticket_id, tenant_id)
        if ticket is None or not can_view_ticket(role, actor_id, ticket):
            raise TicketNotFoundError(ticket_id=ticket_id)
        return ticket

    def _notify(
        self,
        event_type: str,
        ticket: Ticket,
        actor_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        """
        Hand a lifecycle event to the dispatcher without waiting for delivery.
        """
        payload = {
            "ticket_id": ticket.id,
            "tenant_id": ticket.tenant_id,
            "title": ticket.title,
            "category": ticket.category.value,
            "severity": ticket.severity.value,
            "priority": ticket.priority.value,
            "status": ticket.status.value,
            "assignee": ticket.assignee,
            "requester": ticket.requester,
            "actor_id": actor_id,
            **extra,
        }
        self._dispatcher.dispatch(event_type, payload)
