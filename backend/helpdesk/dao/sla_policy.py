"""
SLA policy Data Access Object.

WHY: Tenants negotiate their own response/resolution targets. Lookups fall
back to DEFAULT_SLA_HOURS when a tenant has no row for a severity.
"""

from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.exceptions import ValidationError
from helpdesk.dao.base import BaseDAO
from helpdesk.models.sla_policy import SLAPolicy
from helpdesk.models.ticket import DEFAULT_SLA_HOURS, TicketSeverity


class SLAPolicyDAO(BaseDAO[SLAPolicy]):
    """
    Data Access Object for tenant SLA policies.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(SLAPolicy, session)

    async def get_for_severity(
        self,
        tenant_id: str,
        severity: TicketSeverity,
    ) -> Optional[SLAPolicy]:
        result = await self.session.execute(
            select(SLAPolicy).where(
                SLAPolicy.tenant_id == tenant_id,
                SLAPolicy.severity == severity,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_tenant(self, tenant_id: str) -> List[SLAPolicy]:
        result = await self.session.execute(
            select(SLAPolicy)
            .where(SLAPolicy.tenant_id == tenant_id)
            .order_by(SLAPolicy.id)
        )
        return list(result.scalars().all())

    async def get_hours(self, tenant_id: str, severity: TicketSeverity) -> Dict[str, int]:
        """
        Resolve the SLA hours that apply to a ticket.

        Args:
            tenant_id: Owning tenant
            severity: Ticket severity

        Returns:
            Dict with response_hours and resolution_hours
        """
        policy = await self.get_for_severity(tenant_id, severity)
        if policy is None:
            return dict(DEFAULT_SLA_HOURS[TicketSeverity(severity)])
        return {
            "response_hours": policy.response_time_hours,
            "resolution_hours": policy.resolution_time_hours,
        }

    async def upsert(
        self,
        tenant_id: str,
        severity: TicketSeverity,
        response_time_hours: int,
        resolution_time_hours: int,
    ) -> SLAPolicy:
        """
        Create or replace a tenant's policy for one severity.

        Raises:
            ValidationError: If hours are not positive or response exceeds resolution
        """
        if response_time_hours <= 0 or resolution_time_hours <= 0:
            raise ValidationError(
                message="SLA hours must be positive",
                response_time_hours=response_time_hours,
                resolution_time_hours=resolution_time_hours,
            )
        if response_time_hours > resolution_time_hours:
            raise ValidationError(
                message="Response time cannot exceed resolution time",
                response_time_hours=response_time_hours,
                resolution_time_hours=resolution_time_hours,
            )

        policy = await self.get_for_severity(tenant_id, severity)
        if policy is None:
            return await self.create(
                tenant_id=tenant_id,
                severity=severity,
                response_time_hours=response_time_hours,
                resolution_time_hours=resolution_time_hours,
            )

        policy.response_time_hours = response_time_hours
        policy.resolution_time_hours = resolution_time_hours
        await self.session.flush()
        await self.session.refresh(policy)
        return policy
