"""
SLA policy model.

WHY: Response and resolution targets are negotiated per tenant. A row per
(tenant, severity) overrides DEFAULT_SLA_HOURS for that tenant.
"""

from sqlalchemy import Column, Integer, String, Enum, UniqueConstraint

from helpdesk.models.base import Base, TimestampMixin, PrimaryKeyMixin
from helpdesk.models.ticket import TicketSeverity


class SLAPolicy(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Tenant-configured SLA targets for one severity level.
    """

    __tablename__ = "sla_policies"

    tenant_id = Column(String(64), nullable=False, index=True)
    severity = Column(Enum(TicketSeverity, name="ticketseverity"), nullable=False)

    response_time_hours = Column(Integer, nullable=False)
    resolution_time_hours = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "severity", name="uq_sla_policies_tenant_severity"),
    )

    def __repr__(self) -> str:
        return (
            f"<SLAPolicy(tenant_id={self.tenant_id}, severity={self.severity.value}, "
            f"response={self.response_time_hours}h, resolution={self.resolution_time_hours}h)>"
        )
