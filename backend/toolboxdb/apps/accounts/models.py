# backend/toolboxdb/apps/accounts/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EmployeeRole(str, enum.Enum):
    """
    Coarse role used for report scoping.

    - ADMIN: sees the whole tenant
    - SUPERVISOR: sees themselves plus assigned operators
    - OPERATOR: sees only their own training
    """

    ADMIN = "ADMIN"
    SUPERVISOR = "SUPERVISOR"
    OPERATOR = "OPERATOR"


# ---------------------------------------------------------------------------
# TENANT
# ---------------------------------------------------------------------------


class Tenant(Base):
    """
    A customer organisation. Every employee, course, assignment and report
    row is scoped to exactly one tenant.
    """

    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    code = Column(String(32), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    employees = relationship("Employee", back_populates="tenant", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} code={self.code}>"


# ---------------------------------------------------------------------------
# EMPLOYEE
# ---------------------------------------------------------------------------


class Employee(Base):
    """
    A person who can be assigned training, sign it off, or supervise others.

    `department` and `job_title` hold lookup codes (see the lookups app);
    they are validated against the tenant's effective values at write time.
    """

    __tablename__ = "employees"
    __table_args__ = (
        UniqueConstraint("tenant_id", "employee_code", name="uq_employees_tenant_code"),
        Index("idx_employees_tenant_active", "tenant_id", "is_active"),
        Index("idx_employees_tenant_department", "tenant_id", "department"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    employee_code = Column(String(32), nullable=False)
    first_name = Column(String(128), nullable=False)
    last_name = Column(String(128), nullable=False)
    email = Column(String(255), nullable=True, index=True)

    department = Column(String(64), nullable=True)
    job_title = Column(String(64), nullable=True)

    role = Column(
        Enum(EmployeeRole, name="employee_role_enum"),
        nullable=False,
        default=EmployeeRole.OPERATOR,
        index=True,
    )
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    tenant = relationship("Tenant", back_populates="employees", lazy="joined")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Employee id={self.id} code={self.employee_code} tenant={self.tenant_id}>"


# ---------------------------------------------------------------------------
# TENANT SETTINGS
# ---------------------------------------------------------------------------


class TenantSetting(Base):
    """
    Free-form per-tenant key/value configuration, last write wins.
    """

    __tablename__ = "tenant_settings"
    __table_args__ = (
        UniqueConstraint("tenant_id", "key", name="uq_tenant_settings_tenant_key"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    module = Column(String(64), nullable=False, default="General")
    key = Column(String(128), nullable=False)
    value = Column(Text, nullable=False)

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )
