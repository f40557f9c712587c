# backend/toolboxdb/apps/supervision/models.py

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SupervisorAssignment(Base):
    """
    Directed edge supervisor -> operator inside one tenant.

    Rows are never deleted: unassigning flips `is_active` and stamps
    `unassigned_at`, so the history stays available to the audit trail.
    At most one active row per (tenant, supervisor, operator).
    """

    __tablename__ = "supervisor_assignments"
    __table_args__ = (
        Index("idx_supervisor_assignments_tenant_supervisor", "tenant_id", "supervisor_id"),
        Index("idx_supervisor_assignments_tenant_operator", "tenant_id", "operator_id"),
        Index(
            "uq_supervisor_assignments_active_pair",
            "tenant_id",
            "supervisor_id",
            "operator_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    supervisor_id = Column(String(36), ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    operator_id = Column(String(36), ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)

    assigned_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    assigned_by = Column(String(36), ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    unassigned_at = Column(DateTime(timezone=True), nullable=True)
    unassigned_by = Column(String(36), ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)

    supervisor = relationship("Employee", foreign_keys=[supervisor_id], lazy="joined")
    operator = relationship("Employee", foreign_keys=[operator_id], lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<SupervisorAssignment id={self.id} supervisor={self.supervisor_id} "
            f"operator={self.operator_id} active={self.is_active}>"
        )
