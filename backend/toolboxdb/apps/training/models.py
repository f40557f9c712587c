# backend/toolboxdb/apps/training/models.py

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
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class Frequency(str, enum.Enum):
    ONCE = "ONCE"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    ANNUALLY = "ANNUALLY"


class ScheduledTalkStatus(str, enum.Enum):
    PENDING = "PENDING"
    OVERDUE = "OVERDUE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# An assignment's "open" talk is the one still awaiting sign-off.
OPEN_STATUSES = (ScheduledTalkStatus.PENDING, ScheduledTalkStatus.OVERDUE)


# ---------------------------------------------------------------------------
# COURSE (TOOLBOX TALK)
# ---------------------------------------------------------------------------


class Course(Base):
    """
    A toolbox talk / learning that employees are assigned.

    - code = short reference like 'TT-LADDER' (unique per tenant)
    - default_frequency = used when the course is auto-assigned to new starters
    """

    __tablename__ = "courses"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_courses_tenant_code"),
        Index("idx_courses_tenant_active", "tenant_id", "is_active"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    code = Column(String(64), nullable=False)
    title = Column(String(255), nullable=False)
    category = Column(String(64), nullable=True, index=True)

    default_frequency = Column(Enum(Frequency, name="training_frequency_enum"), nullable=True)
    auto_assign_new_employees = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<Course id={self.id} code={self.code}>"


# ---------------------------------------------------------------------------
# ASSIGNMENT
# ---------------------------------------------------------------------------


class CourseAssignment(Base):
    """
    Standing requirement that an employee takes a course at a frequency.

    Immutable once created except for `active` (soft revoke). Changing the
    frequency means deactivating this row and creating a new one.
    """

    __tablename__ = "course_assignments"
    __table_args__ = (
        Index("idx_course_assignments_tenant_employee", "tenant_id", "employee_id"),
        Index("idx_course_assignments_tenant_course", "tenant_id", "course_id"),
        Index(
            "uq_course_assignments_active_pair",
            "tenant_id",
            "course_id",
            "employee_id",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active = 1"),
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id = Column(String(36), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    employee_id = Column(String(36), ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)

    frequency = Column(Enum(Frequency, name="training_frequency_enum"), nullable=False)
    assigned_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    assigned_by = Column(String(36), ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)

    active = Column(Boolean, nullable=False, default=True, index=True)
    deactivated_at = Column(DateTime(timezone=True), nullable=True)

    course = relationship("Course", lazy="joined")
    employee = relationship("Employee", foreign_keys=[employee_id], lazy="joined")
    scheduled_talks = relationship(
        "ScheduledTalk",
        back_populates="assignment",
        order_by="ScheduledTalk.due_at",
    )

    def __repr__(self) -> str:
        return f"<CourseAssignment id={self.id} course={self.course_id} employee={self.employee_id}>"


# ---------------------------------------------------------------------------
# SCHEDULED TALK (ONE CYCLE OF AN ASSIGNMENT)
# ---------------------------------------------------------------------------


class ScheduledTalk(Base):
    """
    One occurrence of an assignment with its own due date and outcome.

    At most one PENDING/OVERDUE row exists per assignment; the partial
    unique index backs the service-level rule at the database.
    """

    __tablename__ = "scheduled_talks"
    __table_args__ = (
        Index("idx_scheduled_talks_tenant_status_due", "tenant_id", "status", "due_at"),
        Index(
            "uq_scheduled_talks_open_per_assignment",
            "assignment_id",
            unique=True,
            postgresql_where=text("status IN ('PENDING', 'OVERDUE')"),
            sqlite_where=text("status IN ('PENDING', 'OVERDUE')"),
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    assignment_id = Column(
        String(36),
        ForeignKey("course_assignments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    due_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(
        Enum(ScheduledTalkStatus, name="scheduled_talk_status_enum"),
        nullable=False,
        default=ScheduledTalkStatus.PENDING,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    reminders_sent = Column(Integer, nullable=False, default=0)
    last_reminder_at = Column(DateTime(timezone=True), nullable=True)

    assignment = relationship("CourseAssignment", back_populates="scheduled_talks", lazy="joined")
    completion = relationship(
        "ScheduledTalkCompletion",
        back_populates="scheduled_talk",
        uselist=False,
        lazy="selectin",
    )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def __repr__(self) -> str:
        return f"<ScheduledTalk id={self.id} status={self.status} due_at={self.due_at}>"


# ---------------------------------------------------------------------------
# COMPLETION (SIGN-OFF EVIDENCE)
# ---------------------------------------------------------------------------


class ScheduledTalkCompletion(Base):
    """
    Signature evidence for a completed talk. Exactly one per COMPLETED talk,
    never updated after insert.
    """

    __tablename__ = "scheduled_talk_completions"
    __table_args__ = (
        UniqueConstraint("scheduled_talk_id", name="uq_scheduled_talk_completions_talk"),
        Index("idx_scheduled_talk_completions_tenant_completed", "tenant_id", "completed_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    scheduled_talk_id = Column(
        String(36),
        ForeignKey("scheduled_talks.id", ondelete="CASCADE"),
        nullable=False,
    )

    signed_by_name = Column(String(200), nullable=False)
    signature_data = Column(Text, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False)
    signed_by_employee_id = Column(
        String(36), ForeignKey("employees.id", ondelete="SET NULL"), nullable=True
    )
    certificate_number = Column(String(64), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    scheduled_talk = relationship("ScheduledTalk", back_populates="completion")
