# backend/toolboxdb/apps/reports/schemas.py

from __future__ import annotations

import enum
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


# ---------------------------------------------------------------------------
# COMPLIANCE
# ---------------------------------------------------------------------------


class ComplianceBreakdown(BaseModel):
    """
    One row of a by-course or by-department breakdown. `key` is the course
    id or the department code; `label` is what a UI shows.
    """

    key: Optional[str] = None
    label: str
    total_assignments: int
    compliant_count: int
    overdue_count: int
    compliance_rate: float


class ComplianceReport(BaseModel):
    tenant_id: str
    total_assignments: int
    compliant_count: int
    completed_count: int
    not_yet_due_count: int
    overdue_count: int
    compliance_rate: float
    by_course: List[ComplianceBreakdown]
    by_department: List[ComplianceBreakdown]
    generated_at: datetime


# ---------------------------------------------------------------------------
# OVERDUE
# ---------------------------------------------------------------------------


class OverdueItem(BaseModel):
    scheduled_talk_id: str
    assignment_id: str
    employee_id: str
    employee_code: str
    employee_name: str
    department: Optional[str] = None
    course_id: str
    course_code: str
    course_title: str
    due_at: datetime
    days_overdue: int
    reminders_sent: int = 0
    last_reminder_at: Optional[datetime] = None


class OverdueReport(BaseModel):
    tenant_id: str
    items: List[OverdueItem]
    generated_at: datetime


# ---------------------------------------------------------------------------
# COMPLETIONS
# ---------------------------------------------------------------------------


class CompletionItem(BaseModel):
    completion_id: str
    scheduled_talk_id: str
    employee_id: str
    employee_code: str
    employee_name: str
    department: Optional[str] = None
    course_id: str
    course_code: str
    course_title: str
    due_at: datetime
    completed_at: datetime
    completed_on_time: bool
    signed_by_name: str
    signed_by_employee_id: Optional[str] = None
    signed_by_employee_name: Optional[str] = None
    certificate_number: Optional[str] = None


class CompletionsReport(BaseModel):
    tenant_id: str
    items: List[CompletionItem]
    total_count: int
    page: int
    page_size: int
    generated_at: datetime


# ---------------------------------------------------------------------------
# SKILLS MATRIX
# ---------------------------------------------------------------------------


class SkillsMatrixCellStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    ASSIGNED = "ASSIGNED"
    OVERDUE = "OVERDUE"
    NOT_ASSIGNED = "NOT_ASSIGNED"


class SkillsMatrixEmployee(BaseModel):
    id: str
    employee_code: str
    full_name: str
    department: Optional[str] = None
    job_title: Optional[str] = None


class SkillsMatrixCourse(BaseModel):
    id: str
    code: str
    title: str
    category: Optional[str] = None


class SkillsMatrixCell(BaseModel):
    employee_id: str
    course_id: str
    status: SkillsMatrixCellStatus = SkillsMatrixCellStatus.NOT_ASSIGNED
    due_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    days_overdue: Optional[int] = None


class SkillsMatrix(BaseModel):
    tenant_id: str
    employees: List[SkillsMatrixEmployee]
    courses: List[SkillsMatrixCourse]
    cells: List[SkillsMatrixCell]
    generated_at: datetime
