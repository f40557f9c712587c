"""
Compliance aggregator: read-only reports over assignments and their
scheduled talks.

Every report is scoped to one tenant and only counts active employees.
`employee_ids` narrows a report to a team (see supervision.team_scope);
None means the whole tenant.

An assignment is *compliant* when its open talk is PENDING and not yet due,
or when it has no open talk and its latest talk is COMPLETED (a ONCE
assignment that has been signed off).
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, exists, or_
from sqlalchemy.orm import Session, aliased

from toolboxdb.apps.accounts import models as account_models
from toolboxdb.apps.lookups import services as lookup_services
from toolboxdb.apps.training import models as training_models
from toolboxdb.apps.training.frequency import has_deadline

from ...errors import ValidationError
from ...utils.clock import as_utc
from . import schemas

logger = logging.getLogger(__name__)

_MAX_PAGE_SIZE = 500

COMPLETED = "completed"
NOT_YET_DUE = "not_yet_due"
OVERDUE = "overdue"
UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# HELPERS
# ---------------------------------------------------------------------------


def _rate(compliant: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(compliant * 100.0 / total, 2)


def _days_overdue(now: datetime, due_at: datetime) -> int:
    return int(math.ceil((now - as_utc(due_at)) / timedelta(days=1)))


def _is_past_due(talk: training_models.ScheduledTalk, now: datetime) -> bool:
    if not has_deadline(talk.assignment.frequency):
        return False
    if talk.status == training_models.ScheduledTalkStatus.OVERDUE:
        return True
    return talk.status == training_models.ScheduledTalkStatus.PENDING and as_utc(talk.due_at) < now


def _check_department(db: Session, tenant_id: str, department: Optional[str]) -> Optional[str]:
    if not department:
        return None
    return lookup_services.require_effective_code(
        db,
        tenant_id=tenant_id,
        category_name=lookup_services.DEPARTMENT_CATEGORY,
        code=department,
    )


def _active_assignments(
    db: Session,
    *,
    tenant_id: str,
    course_id: Optional[str] = None,
    department: Optional[str] = None,
    employee_ids: Optional[Iterable[str]] = None,
    category: Optional[str] = None,
    keep_completed_once: bool = False,
) -> List[training_models.CourseAssignment]:
    """
    Active assignments of active employees. With `keep_completed_once`, a
    revoked ONCE assignment whose talk was signed off is kept as well.
    """
    Assignment = training_models.CourseAssignment
    Employee = account_models.Employee
    Talk = training_models.ScheduledTalk

    current = Assignment.active.is_(True)
    if keep_completed_once:
        signed_off = exists().where(
            Talk.assignment_id == Assignment.id,
            Talk.status == training_models.ScheduledTalkStatus.COMPLETED,
        )
        current = or_(
            current,
            and_(Assignment.frequency == training_models.Frequency.ONCE, signed_off),
        )

    q = (
        db.query(Assignment)
        .join(Employee, Assignment.employee_id == Employee.id)
        .filter(
            Assignment.tenant_id == tenant_id,
            current,
            Employee.tenant_id == tenant_id,
            Employee.is_active.is_(True),
        )
    )
    if course_id:
        q = q.filter(Assignment.course_id == course_id)
    if department:
        q = q.filter(Employee.department == department)
    if employee_ids is not None:
        q = q.filter(Assignment.employee_id.in_(list(employee_ids)))
    if category:
        q = q.join(training_models.Course, Assignment.course_id == training_models.Course.id).filter(
            training_models.Course.category == category
        )
    return q.all()


def _talks_by_assignment(
    db: Session, *, tenant_id: str, assignment_ids: List[str]
) -> Dict[str, List[training_models.ScheduledTalk]]:
    """
    Non-cancelled talks per assignment, most recent due date first.
    """
    grouped: Dict[str, List[training_models.ScheduledTalk]] = defaultdict(list)
    if not assignment_ids:
        return grouped
    talks = (
        db.query(training_models.ScheduledTalk)
        .filter(
            training_models.ScheduledTalk.tenant_id == tenant_id,
            training_models.ScheduledTalk.assignment_id.in_(assignment_ids),
            training_models.ScheduledTalk.status != training_models.ScheduledTalkStatus.CANCELLED,
        )
        .order_by(training_models.ScheduledTalk.due_at.desc())
        .all()
    )
    for talk in talks:
        grouped[talk.assignment_id].append(talk)
    return grouped


def classify_assignment(talks: List[training_models.ScheduledTalk], now: datetime) -> str:
    """
    Compliance state of one assignment from its non-cancelled talks
    (most recent first).
    """
    for talk in talks:
        if talk.is_open:
            return OVERDUE if _is_past_due(talk, now) else NOT_YET_DUE
    if talks and talks[0].status == training_models.ScheduledTalkStatus.COMPLETED:
        return COMPLETED
    return UNKNOWN


class _Tally:
    __slots__ = ("total", "completed", "not_yet_due", "overdue")

    def __init__(self) -> None:
        self.total = 0
        self.completed = 0
        self.not_yet_due = 0
        self.overdue = 0

    def add(self, state: str) -> None:
        self.total += 1
        if state == COMPLETED:
            self.completed += 1
        elif state == NOT_YET_DUE:
            self.not_yet_due += 1
        elif state == OVERDUE:
            self.overdue += 1

    @property
    def compliant(self) -> int:
        return self.completed + self.not_yet_due

    def breakdown(self, key: Optional[str], label: str) -> schemas.ComplianceBreakdown:
        return schemas.ComplianceBreakdown(
            key=key,
            label=label,
            total_assignments=self.total,
            compliant_count=self.compliant,
            overdue_count=self.overdue,
            compliance_rate=_rate(self.compliant, self.total),
        )


# ---------------------------------------------------------------------------
# COMPLIANCE
# ---------------------------------------------------------------------------


def compliance_report(
    db: Session,
    *,
    tenant_id: str,
    now: datetime,
    course_id: Optional[str] = None,
    department: Optional[str] = None,
    employee_ids: Optional[Iterable[str]] = None,
) -> schemas.ComplianceReport:
    now = as_utc(now)
    department = _check_department(db, tenant_id, department)
    assignments = _active_assignments(
        db,
        tenant_id=tenant_id,
        course_id=course_id,
        department=department,
        employee_ids=employee_ids,
    )
    talks = _talks_by_assignment(db, tenant_id=tenant_id, assignment_ids=[a.id for a in assignments])

    overall = _Tally()
    by_course: Dict[str, _Tally] = defaultdict(_Tally)
    course_labels: Dict[str, Tuple[str, str]] = {}
    by_department: Dict[Optional[str], _Tally] = defaultdict(_Tally)

    for assignment in assignments:
        state = classify_assignment(talks.get(assignment.id, []), now)
        if state == UNKNOWN:
            logger.error("Active assignment %s has no open or completed talk", assignment.id)
        overall.add(state)
        by_course[assignment.course_id].add(state)
        course_labels[assignment.course_id] = (assignment.course.code, assignment.course.title)
        by_department[assignment.employee.department].add(state)

    course_rows = [
        by_course[cid].breakdown(cid, f"{code} - {title}")
        for cid, (code, title) in sorted(course_labels.items(), key=lambda item: item[1][0])
    ]
    department_rows = [
        tally.breakdown(dept, dept or "Unassigned") for dept, tally in by_department.items()
    ]
    department_rows.sort(key=lambda row: (-row.compliance_rate, row.label))

    return schemas.ComplianceReport(
        tenant_id=tenant_id,
        total_assignments=overall.total,
        compliant_count=overall.compliant,
        completed_count=overall.completed,
        not_yet_due_count=overall.not_yet_due,
        overdue_count=overall.overdue,
        compliance_rate=_rate(overall.compliant, overall.total),
        by_course=course_rows,
        by_department=department_rows,
        generated_at=now,
    )


# ---------------------------------------------------------------------------
# OVERDUE
# ---------------------------------------------------------------------------


def overdue_report(
    db: Session,
    *,
    tenant_id: str,
    now: datetime,
    course_id: Optional[str] = None,
    department: Optional[str] = None,
    employee_ids: Optional[Iterable[str]] = None,
) -> schemas.OverdueReport:
    """
    Open talks past their due date. PENDING talks the sweep has not reached
    yet are included so the report never lags the cron schedule.
    """
    now = as_utc(now)
    department = _check_department(db, tenant_id, department)
    assignments = _active_assignments(
        db,
        tenant_id=tenant_id,
        course_id=course_id,
        department=department,
        employee_ids=employee_ids,
    )
    by_id = {a.id: a for a in assignments}
    talks = _talks_by_assignment(db, tenant_id=tenant_id, assignment_ids=list(by_id))

    items: List[schemas.OverdueItem] = []
    for assignment_id, assignment_talks in talks.items():
        for talk in assignment_talks:
            if not (talk.is_open and _is_past_due(talk, now)):
                continue
            assignment = by_id[assignment_id]
            employee = assignment.employee
            items.append(
                schemas.OverdueItem(
                    scheduled_talk_id=talk.id,
                    assignment_id=assignment.id,
                    employee_id=employee.id,
                    employee_code=employee.employee_code,
                    employee_name=employee.full_name,
                    department=employee.department,
                    course_id=assignment.course_id,
                    course_code=assignment.course.code,
                    course_title=assignment.course.title,
                    due_at=as_utc(talk.due_at),
                    days_overdue=_days_overdue(now, talk.due_at),
                    reminders_sent=talk.reminders_sent or 0,
                    last_reminder_at=as_utc(talk.last_reminder_at),
                )
            )

    items.sort(key=lambda item: (item.due_at, item.employee_name))
    return schemas.OverdueReport(tenant_id=tenant_id, items=items, generated_at=now)


# ---------------------------------------------------------------------------
# COMPLETIONS
# ---------------------------------------------------------------------------


def completions_report(
    db: Session,
    *,
    tenant_id: str,
    now: datetime,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    course_id: Optional[str] = None,
    department: Optional[str] = None,
    employee_ids: Optional[Iterable[str]] = None,
    page: int = 1,
    page_size: int = 50,
) -> schemas.CompletionsReport:
    """
    Sign-offs in a date range, newest first. Completions of assignments that
    were later revoked are kept; they are still evidence of training.
    """
    now = as_utc(now)
    if date_from and date_to and as_utc(date_from) > as_utc(date_to):
        raise ValidationError("date_from must not be after date_to.")
    page = max(page, 1)
    page_size = min(max(page_size, 1), _MAX_PAGE_SIZE)
    department = _check_department(db, tenant_id, department)

    Completion = training_models.ScheduledTalkCompletion
    Talk = training_models.ScheduledTalk
    Assignment = training_models.CourseAssignment
    Course = training_models.Course
    Employee = account_models.Employee
    Signer = aliased(account_models.Employee)

    q = (
        db.query(Completion, Talk, Assignment, Course, Employee, Signer)
        .join(Talk, Completion.scheduled_talk_id == Talk.id)
        .join(Assignment, Talk.assignment_id == Assignment.id)
        .join(Course, Assignment.course_id == Course.id)
        .join(Employee, Assignment.employee_id == Employee.id)
        .outerjoin(Signer, Completion.signed_by_employee_id == Signer.id)
        .filter(
            Completion.tenant_id == tenant_id,
            Talk.tenant_id == tenant_id,
            Employee.is_active.is_(True),
        )
    )
    if date_from:
        q = q.filter(Completion.completed_at >= as_utc(date_from))
    if date_to:
        q = q.filter(Completion.completed_at <= as_utc(date_to))
    if course_id:
        q = q.filter(Assignment.course_id == course_id)
    if department:
        q = q.filter(Employee.department == department)
    if employee_ids is not None:
        q = q.filter(Assignment.employee_id.in_(list(employee_ids)))

    total = q.count()
    rows = (
        q.order_by(Completion.completed_at.desc(), Completion.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    items = []
    for completion, talk, assignment, course, employee, signer in rows:
        completed_at = as_utc(completion.completed_at)
        due_at = as_utc(talk.due_at)
        items.append(
            schemas.CompletionItem(
                completion_id=completion.id,
                scheduled_talk_id=talk.id,
                employee_id=employee.id,
                employee_code=employee.employee_code,
                employee_name=employee.full_name,
                department=employee.department,
                course_id=course.id,
                course_code=course.code,
                course_title=course.title,
                due_at=due_at,
                completed_at=completed_at,
                completed_on_time=completed_at <= due_at or not has_deadline(assignment.frequency),
                signed_by_name=completion.signed_by_name,
                signed_by_employee_id=completion.signed_by_employee_id,
                signed_by_employee_name=signer.full_name if signer is not None else None,
                certificate_number=completion.certificate_number,
            )
        )

    return schemas.CompletionsReport(
        tenant_id=tenant_id,
        items=items,
        total_count=total,
        page=page,
        page_size=page_size,
        generated_at=now,
    )


# ---------------------------------------------------------------------------
# SKILLS MATRIX
# ---------------------------------------------------------------------------


def _cell_for(
    employee_id: str,
    course_id: str,
    talks: List[training_models.ScheduledTalk],
    now: datetime,
) -> schemas.SkillsMatrixCell:
    if not talks:
        return schemas.SkillsMatrixCell(employee_id=employee_id, course_id=course_id)

    latest = talks[0]
    if latest.status == training_models.ScheduledTalkStatus.COMPLETED:
        return schemas.SkillsMatrixCell(
            employee_id=employee_id,
            course_id=course_id,
            status=schemas.SkillsMatrixCellStatus.COMPLETED,
            due_at=as_utc(latest.due_at),
            completed_at=as_utc(latest.completion.completed_at) if latest.completion else as_utc(latest.closed_at),
        )

    overdue = _is_past_due(latest, now)
    return schemas.SkillsMatrixCell(
        employee_id=employee_id,
        course_id=course_id,
        status=schemas.SkillsMatrixCellStatus.OVERDUE if overdue else schemas.SkillsMatrixCellStatus.ASSIGNED,
        due_at=as_utc(latest.due_at),
        days_overdue=_days_overdue(now, latest.due_at) if overdue else None,
    )


def skills_matrix(
    db: Session,
    *,
    tenant_id: str,
    now: datetime,
    department: Optional[str] = None,
    category: Optional[str] = None,
    employee_ids: Optional[Iterable[str]] = None,
) -> schemas.SkillsMatrix:
    """
    Employees x courses grid. Each cell reflects the most recent
    non-cancelled talk of the active assignment, or of a revoked ONCE
    assignment that was signed off; any other pair is NOT_ASSIGNED,
    which is never the same thing as OVERDUE.

    Courses are those with at least one such assignment in view. Rows are
    every active employee in view, assigned or not.
    """
    now = as_utc(now)
    department = _check_department(db, tenant_id, department)
    scope = list(employee_ids) if employee_ids is not None else None

    assignments = _active_assignments(
        db,
        tenant_id=tenant_id,
        department=department,
        employee_ids=scope,
        category=category,
        keep_completed_once=True,
    )
    talks = _talks_by_assignment(db, tenant_id=tenant_id, assignment_ids=[a.id for a in assignments])

    employee_q = db.query(account_models.Employee).filter(
        account_models.Employee.tenant_id == tenant_id,
        account_models.Employee.is_active.is_(True),
    )
    if department:
        employee_q = employee_q.filter(account_models.Employee.department == department)
    if scope is not None:
        employee_q = employee_q.filter(account_models.Employee.id.in_(scope))
    employees = employee_q.order_by(
        account_models.Employee.last_name.asc(), account_models.Employee.first_name.asc()
    ).all()

    courses: Dict[str, training_models.Course] = {}
    talks_by_pair: Dict[Tuple[str, str], List[training_models.ScheduledTalk]] = {}
    # active rows last so they win over a revoked ONCE for the same pair
    for assignment in sorted(assignments, key=lambda a: bool(a.active)):
        courses[assignment.course_id] = assignment.course
        talks_by_pair[(assignment.employee_id, assignment.course_id)] = talks.get(assignment.id, [])
    ordered_courses = sorted(courses.values(), key=lambda c: c.code)

    cells = [
        _cell_for(employee.id, course.id, talks_by_pair.get((employee.id, course.id), []), now)
        for employee in employees
        for course in ordered_courses
    ]

    return schemas.SkillsMatrix(
        tenant_id=tenant_id,
        employees=[
            schemas.SkillsMatrixEmployee(
                id=e.id,
                employee_code=e.employee_code,
                full_name=e.full_name,
                department=e.department,
                job_title=e.job_title,
            )
            for e in employees
        ],
        courses=[
            schemas.SkillsMatrixCourse(id=c.id, code=c.code, title=c.title, category=c.category)
            for c in ordered_courses
        ],
        cells=cells,
        generated_at=now,
    )
