# backend/toolboxdb/apps/training/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .models import Frequency, ScheduledTalkStatus


# ---------------------------------------------------------------------------
# COURSES
# ---------------------------------------------------------------------------


class CourseCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=64, description="Short reference like 'TT-LADDER'.")
    title: str = Field(..., min_length=1, max_length=255)
    category: Optional[str] = None
    default_frequency: Optional[Frequency] = Field(
        None,
        description="Frequency used when the course is auto-assigned to new starters.",
    )
    auto_assign_new_employees: bool = False


class CourseRead(BaseModel):
    id: str
    tenant_id: str
    code: str
    title: str
    category: Optional[str] = None
    default_frequency: Optional[Frequency] = None
    auto_assign_new_employees: bool
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# ASSIGNMENTS
# ---------------------------------------------------------------------------


class AssignmentCreate(BaseModel):
    course_id: str
    employee_id: str
    frequency: Frequency


class GroupAssignmentCreate(BaseModel):
    """
    Target selection, most specific first:
    - employee_ids: exactly these employees
    - department / job_title: everyone matching (lookup codes)
    - nothing: every active employee in the tenant
    """

    course_id: str
    frequency: Frequency
    employee_ids: Optional[List[str]] = None
    department: Optional[str] = None
    job_title: Optional[str] = None


class FrequencyChange(BaseModel):
    frequency: Frequency


class AssignmentRead(BaseModel):
    id: str
    tenant_id: str
    course_id: str
    employee_id: str
    frequency: Frequency
    assigned_at: datetime
    assigned_by: Optional[str] = None
    active: bool
    deactivated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# SCHEDULED TALKS + COMPLETION
# ---------------------------------------------------------------------------


class ScheduledTalkRead(BaseModel):
    id: str
    tenant_id: str
    assignment_id: str
    due_at: datetime
    status: ScheduledTalkStatus
    created_at: datetime
    closed_at: Optional[datetime] = None
    reminders_sent: int = 0
    last_reminder_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CompletionCreate(BaseModel):
    # Blank / oversized values are rejected by the service with the
    # user-facing messages, so no length constraints here.
    signed_by_name: str
    signature_data: str


class CompletionRead(BaseModel):
    id: str
    scheduled_talk_id: str
    signed_by_name: str
    completed_at: datetime
    signed_by_employee_id: Optional[str] = None
    certificate_number: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CompletionResultRead(BaseModel):
    completion: CompletionRead
    scheduled_talk: ScheduledTalkRead
    next_scheduled_talk: Optional[ScheduledTalkRead] = None
    completed_late: bool = False


class OverdueSweepResult(BaseModel):
    marked_overdue: int
    swept_at: datetime
