# backend/toolboxdb/apps/lookups/models.py

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LookupCategory(Base):
    """
    A named list of values (e.g. 'Department', 'JobTitle'), shared by all
    tenants. `allow_custom` controls whether tenants may add their own codes.
    """

    __tablename__ = "lookup_categories"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    name = Column(String(64), unique=True, nullable=False, index=True)
    module = Column(String(64), nullable=False, default="Core")
    allow_custom = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)

    values = relationship("LookupValue", back_populates="category", lazy="selectin")


class LookupValue(Base):
    """
    Global (platform-wide) default value for a category.
    """

    __tablename__ = "lookup_values"
    __table_args__ = (
        UniqueConstraint("category_id", "code", name="uq_lookup_values_category_code"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    category_id = Column(
        String(36),
        ForeignKey("lookup_categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    code = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    category = relationship("LookupCategory", back_populates="values")


class TenantLookupValue(Base):
    """
    Tenant-specific row in a category.

    - lookup_value_id set:  shadows a global value (enable/disable, rename,
      re-sort) for this tenant only.
    - lookup_value_id NULL: a tenant-custom addition.
    """

    __tablename__ = "tenant_lookup_values"
    __table_args__ = (
        UniqueConstraint("tenant_id", "category_id", "code", name="uq_tenant_lookup_values_tenant_category_code"),
        UniqueConstraint("tenant_id", "lookup_value_id", name="uq_tenant_lookup_values_tenant_global"),
        Index("idx_tenant_lookup_values_tenant_category", "tenant_id", "category_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category_id = Column(
        String(36),
        ForeignKey("lookup_categories.id", ondelete="CASCADE"),
        nullable=False,
    )
    lookup_value_id = Column(
        String(36),
        ForeignKey("lookup_values.id", ondelete="CASCADE"),
        nullable=True,
    )
    code = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    is_enabled = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    lookup_value = relationship("LookupValue")
