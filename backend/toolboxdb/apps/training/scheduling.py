"""
Schedule generator.

Keeps exactly one open (PENDING or OVERDUE) scheduled talk per active
course assignment:

- a new assignment gets its first talk
- closing a talk by completion opens the next one, anchored to the closed
  talk's *due date* rather than the completion time, so late sign-offs do
  not drift the cadence
- deactivating an assignment cancels its open talk
- the overdue sweep flips PENDING talks past their due date to OVERDUE

Services flush but never commit; the caller owns the transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from toolboxdb.apps.accounts import models as account_models
from toolboxdb.apps.accounts import services as account_services
from toolboxdb.apps.audit import services as audit_services
from toolboxdb.apps.lookups import services as lookup_services
from toolboxdb.apps.workflow import apply_transition

from ...errors import ConflictError, NotFoundError, StateInvariantViolation, ValidationError
from ...utils.clock import as_utc, utcnow
from . import models
from .frequency import first_due, next_due, parse_frequency

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Courses
# ---------------------------------------------------------------------------


def create_course(
    db: Session,
    *,
    tenant_id: str,
    code: str,
    title: str,
    category: Optional[str] = None,
    default_frequency: Optional[str] = None,
    auto_assign_new_employees: bool = False,
) -> models.Course:
    code_norm = (code or "").strip().upper()
    if not code_norm:
        raise ValidationError("Course code is required.")
    if not (title or "").strip():
        raise ValidationError("Course title is required.")

    existing = (
        db.query(models.Course.id)
        .filter(models.Course.tenant_id == tenant_id, models.Course.code == code_norm)
        .first()
    )
    if existing:
        raise ConflictError("A course with this code already exists in this tenant.")

    course = models.Course(
        tenant_id=tenant_id,
        code=code_norm,
        title=title.strip(),
        category=category,
        default_frequency=parse_frequency(default_frequency) if default_frequency else None,
        auto_assign_new_employees=auto_assign_new_employees,
        is_active=True,
    )
    db.add(course)
    db.flush()
    return course


def get_course(db: Session, *, tenant_id: str, course_id: str) -> models.Course:
    course = (
        db.query(models.Course)
        .filter(models.Course.id == course_id, models.Course.tenant_id == tenant_id)
        .first()
    )
    if course is None:
        raise NotFoundError("Course not found for your tenant.")
    return course


def list_courses(db: Session, *, tenant_id: str, include_inactive: bool = False) -> List[models.Course]:
    q = db.query(models.Course).filter(models.Course.tenant_id == tenant_id)
    if not include_inactive:
        q = q.filter(models.Course.is_active.is_(True))
    return q.order_by(models.Course.code.asc()).all()


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def get_assignment(db: Session, *, tenant_id: str, assignment_id: str) -> models.CourseAssignment:
    assignment = (
        db.query(models.CourseAssignment)
        .filter(
            models.CourseAssignment.id == assignment_id,
            models.CourseAssignment.tenant_id == tenant_id,
        )
        .first()
    )
    if assignment is None:
        raise NotFoundError("Course assignment not found for your tenant.")
    return assignment


def get_open_talk(db: Session, assignment_id: str) -> Optional[models.ScheduledTalk]:
    open_talks = (
        db.query(models.ScheduledTalk)
        .filter(
            models.ScheduledTalk.assignment_id == assignment_id,
            models.ScheduledTalk.status.in_(models.OPEN_STATUSES),
        )
        .all()
    )
    if len(open_talks) > 1:
        raise StateInvariantViolation(f"Assignment {assignment_id} has {len(open_talks)} open talks.")
    return open_talks[0] if open_talks else None


def get_scheduled_talk(db: Session, *, tenant_id: str, scheduled_talk_id: str) -> models.ScheduledTalk:
    talk = (
        db.query(models.ScheduledTalk)
        .filter(
            models.ScheduledTalk.id == scheduled_talk_id,
            models.ScheduledTalk.tenant_id == tenant_id,
        )
        .first()
    )
    if talk is None:
        raise NotFoundError("Scheduled talk not found for your tenant.")
    return talk


def list_assignments(
    db: Session,
    *,
    tenant_id: str,
    employee_id: Optional[str] = None,
    course_id: Optional[str] = None,
    include_inactive: bool = False,
) -> List[models.CourseAssignment]:
    q = db.query(models.CourseAssignment).filter(models.CourseAssignment.tenant_id == tenant_id)
    if employee_id:
        q = q.filter(models.CourseAssignment.employee_id == employee_id)
    if course_id:
        q = q.filter(models.CourseAssignment.course_id == course_id)
    if not include_inactive:
        q = q.filter(models.CourseAssignment.active.is_(True))
    return q.order_by(models.CourseAssignment.assigned_at.desc()).all()


def list_scheduled_talks(
    db: Session,
    *,
    tenant_id: str,
    employee_id: Optional[str] = None,
    statuses: Optional[List[models.ScheduledTalkStatus]] = None,
) -> List[models.ScheduledTalk]:
    q = (
        db.query(models.ScheduledTalk)
        .join(models.CourseAssignment, models.ScheduledTalk.assignment_id == models.CourseAssignment.id)
        .filter(models.ScheduledTalk.tenant_id == tenant_id)
    )
    if employee_id:
        q = q.filter(models.CourseAssignment.employee_id == employee_id)
    if statuses:
        q = q.filter(models.ScheduledTalk.status.in_(statuses))
    return q.order_by(models.ScheduledTalk.due_at.asc()).all()


# ---------------------------------------------------------------------------
# Generator hooks
# ---------------------------------------------------------------------------


def _open_talk(db: Session, assignment: models.CourseAssignment, due_at: datetime) -> models.ScheduledTalk:
    if get_open_talk(db, assignment.id) is not None:
        raise StateInvariantViolation(f"Assignment {assignment.id} already has an open talk.")
    talk = models.ScheduledTalk(
        tenant_id=assignment.tenant_id,
        assignment_id=assignment.id,
        due_at=due_at,
        status=models.ScheduledTalkStatus.PENDING,
    )
    db.add(talk)
    db.flush()
    return talk


def on_assignment_created(db: Session, assignment: models.CourseAssignment) -> models.ScheduledTalk:
    due_at = first_due(assignment.frequency, as_utc(assignment.assigned_at))
    return _open_talk(db, assignment, due_at)


def on_instance_closed(db: Session, talk: models.ScheduledTalk) -> Optional[models.ScheduledTalk]:
    """
    Open the successor of a completed talk. ONCE assignments and revoked
    assignments get no successor.
    """
    assignment = talk.assignment
    if not assignment.active:
        return None
    due_at = next_due(assignment.frequency, as_utc(talk.due_at))
    if due_at is None:
        return None
    return _open_talk(db, assignment, due_at)


def on_assignment_deactivated(
    db: Session,
    assignment: models.CourseAssignment,
    *,
    actor_employee_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[models.ScheduledTalk]:
    """
    Cancel the open talk of a revoked assignment. Nothing open is a no-op.
    """
    now = now or utcnow()
    talk = get_open_talk(db, assignment.id)
    if talk is None:
        return None

    from_state = talk.status.value
    updated = (
        db.query(models.ScheduledTalk)
        .filter(
            models.ScheduledTalk.id == talk.id,
            models.ScheduledTalk.status.in_(models.OPEN_STATUSES),
        )
        .update(
            {
                models.ScheduledTalk.status: models.ScheduledTalkStatus.CANCELLED,
                models.ScheduledTalk.closed_at: now,
            },
            synchronize_session="fetch",
        )
    )
    if updated == 0:
        # Closed concurrently (e.g. signed off); nothing left to cancel.
        return None

    apply_transition(
        db,
        tenant_id=assignment.tenant_id,
        actor_employee_id=actor_employee_id,
        entity_type="scheduled_talk",
        entity_id=talk.id,
        from_state=from_state,
        to_state=models.ScheduledTalkStatus.CANCELLED.value,
        after_obj={"assignment_active": bool(assignment.active)},
    )
    return talk


def mark_overdue_sweep(db: Session, *, now: datetime, tenant_id: Optional[str] = None) -> int:
    """
    Flip every PENDING talk with due_at < now to OVERDUE in one set-based
    statement. Re-running with the same `now` changes nothing; OVERDUE and
    closed talks are never touched. `tenant_id` shards the sweep.

    Talks of ONCE assignments have no deadline: they stay PENDING until
    signed off.
    """
    recurring = select(models.CourseAssignment.id).where(
        models.CourseAssignment.frequency != models.Frequency.ONCE
    )
    q = db.query(models.ScheduledTalk).filter(
        models.ScheduledTalk.status == models.ScheduledTalkStatus.PENDING,
        models.ScheduledTalk.due_at < now,
        models.ScheduledTalk.assignment_id.in_(recurring),
    )
    if tenant_id is not None:
        q = q.filter(models.ScheduledTalk.tenant_id == tenant_id)

    count = q.update(
        {models.ScheduledTalk.status: models.ScheduledTalkStatus.OVERDUE},
        synchronize_session="fetch",
    )
    if count:
        logger.info("Overdue sweep at %s marked %d talk(s) overdue (tenant=%s)", now.isoformat(), count, tenant_id or "*")
    return count


# ---------------------------------------------------------------------------
# Assignment operations
# ---------------------------------------------------------------------------


def _active_assignment_exists(db: Session, *, tenant_id: str, course_id: str, employee_id: str) -> bool:
    return (
        db.query(models.CourseAssignment.id)
        .filter(
            models.CourseAssignment.tenant_id == tenant_id,
            models.CourseAssignment.course_id == course_id,
            models.CourseAssignment.employee_id == employee_id,
            models.CourseAssignment.active.is_(True),
        )
        .first()
        is not None
    )


def _create_assignment(
    db: Session,
    *,
    course: models.Course,
    employee: account_models.Employee,
    frequency: models.Frequency,
    assigned_by: Optional[str],
    assigned_at: datetime,
) -> models.CourseAssignment:
    assignment = models.CourseAssignment(
        tenant_id=course.tenant_id,
        course_id=course.id,
        employee_id=employee.id,
        frequency=frequency,
        assigned_at=assigned_at,
        assigned_by=assigned_by,
        active=True,
    )
    db.add(assignment)
    db.flush()
    talk = on_assignment_created(db, assignment)
    audit_services.log_event(
        db,
        tenant_id=course.tenant_id,
        actor_employee_id=assigned_by,
        entity_type="course_assignment",
        entity_id=assignment.id,
        action="assign",
        after={
            "course_id": course.id,
            "employee_id": employee.id,
            "frequency": frequency.value,
            "first_due_at": talk.due_at.isoformat(),
        },
        metadata={"module": "training"},
    )
    logger.info(
        "Assigned course %s to employee %s (%s), first due %s",
        course.code,
        employee.employee_code,
        frequency.value,
        talk.due_at.isoformat(),
    )
    return assignment


def assign_course(
    db: Session,
    *,
    tenant_id: str,
    course_id: str,
    employee_id: str,
    frequency,
    assigned_by: Optional[str] = None,
    assigned_at: Optional[datetime] = None,
) -> models.CourseAssignment:
    frequency = parse_frequency(frequency)
    course = get_course(db, tenant_id=tenant_id, course_id=course_id)
    if not course.is_active:
        raise ValidationError("Inactive courses cannot be assigned.")
    employee = account_services.get_active_employee(db, tenant_id=tenant_id, employee_id=employee_id)

    if _active_assignment_exists(db, tenant_id=tenant_id, course_id=course.id, employee_id=employee.id):
        raise ConflictError(
            "This employee already has an active assignment for this course.",
            code="duplicate_course_assignment",
        )

    return _create_assignment(
        db,
        course=course,
        employee=employee,
        frequency=frequency,
        assigned_by=assigned_by,
        assigned_at=as_utc(assigned_at) if assigned_at else utcnow(),
    )


def assign_course_to_group(
    db: Session,
    *,
    tenant_id: str,
    course_id: str,
    frequency,
    assigned_by: Optional[str] = None,
    employee_ids: Optional[List[str]] = None,
    department: Optional[str] = None,
    job_title: Optional[str] = None,
    assigned_at: Optional[datetime] = None,
) -> List[models.CourseAssignment]:
    """
    Assign a course to many employees at once: an explicit id list, everyone
    in a department / job title, or (no filters) every active employee.
    Employees who already hold an active assignment are skipped.
    """
    frequency = parse_frequency(frequency)
    course = get_course(db, tenant_id=tenant_id, course_id=course_id)
    if not course.is_active:
        raise ValidationError("Inactive courses cannot be assigned.")

    if department:
        department = lookup_services.require_effective_code(
            db, tenant_id=tenant_id, category_name=lookup_services.DEPARTMENT_CATEGORY, code=department
        )
    if job_title:
        job_title = lookup_services.require_effective_code(
            db, tenant_id=tenant_id, category_name=lookup_services.JOB_TITLE_CATEGORY, code=job_title
        )

    employees = account_services.list_active_employees(
        db,
        tenant_id=tenant_id,
        employee_ids=employee_ids,
        department=department,
        job_title=job_title,
    )
    if employee_ids is not None:
        missing = set(employee_ids) - {e.id for e in employees}
        if missing:
            raise NotFoundError(f"{len(missing)} employee(s) not found or inactive.")

    already = {
        row.employee_id
        for row in db.query(models.CourseAssignment.employee_id).filter(
            models.CourseAssignment.tenant_id == tenant_id,
            models.CourseAssignment.course_id == course.id,
            models.CourseAssignment.active.is_(True),
        )
    }

    when = as_utc(assigned_at) if assigned_at else utcnow()
    created: List[models.CourseAssignment] = []
    for employee in employees:
        if employee.id in already:
            continue
        created.append(
            _create_assignment(
                db,
                course=course,
                employee=employee,
                frequency=frequency,
                assigned_by=assigned_by,
                assigned_at=when,
            )
        )
    return created


def deactivate_assignment(
    db: Session,
    *,
    tenant_id: str,
    assignment_id: str,
    actor_employee_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> models.CourseAssignment:
    """
    Soft-revoke an assignment and cancel its open talk. Idempotent.
    """
    now = now or utcnow()
    assignment = get_assignment(db, tenant_id=tenant_id, assignment_id=assignment_id)
    if not assignment.active:
        return assignment

    assignment.active = False
    assignment.deactivated_at = now
    db.add(assignment)
    db.flush()

    apply_transition(
        db,
        tenant_id=tenant_id,
        actor_employee_id=actor_employee_id,
        entity_type="course_assignment",
        entity_id=assignment.id,
        from_state="ACTIVE",
        to_state="INACTIVE",
    )
    on_assignment_deactivated(db, assignment, actor_employee_id=actor_employee_id, now=now)
    logger.info("Deactivated course assignment %s", assignment.id)
    return assignment


def change_frequency(
    db: Session,
    *,
    tenant_id: str,
    assignment_id: str,
    frequency,
    actor_employee_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> models.CourseAssignment:
    """
    Frequency is fixed per assignment: retire the old one and start a new
    assignment (and cadence) from `now`.
    """
    frequency = parse_frequency(frequency)
    now = now or utcnow()
    old = get_assignment(db, tenant_id=tenant_id, assignment_id=assignment_id)
    if not old.active:
        raise ValidationError("Only active assignments can change frequency.")
    if old.frequency == frequency:
        raise ValidationError("The assignment already uses this frequency.")

    deactivate_assignment(
        db,
        tenant_id=tenant_id,
        assignment_id=old.id,
        actor_employee_id=actor_employee_id,
        now=now,
    )
    return _create_assignment(
        db,
        course=old.course,
        employee=old.employee,
        frequency=frequency,
        assigned_by=actor_employee_id,
        assigned_at=now,
    )


def assign_new_employee(
    db: Session,
    *,
    employee: account_models.Employee,
    assigned_by: Optional[str] = None,
) -> List[models.CourseAssignment]:
    """
    Assign every active auto-assign course to a newly created employee.
    """
    courses = (
        db.query(models.Course)
        .filter(
            models.Course.tenant_id == employee.tenant_id,
            models.Course.is_active.is_(True),
            models.Course.auto_assign_new_employees.is_(True),
        )
        .order_by(models.Course.code.asc())
        .all()
    )
    now = utcnow()
    created = []
    for course in courses:
        if _active_assignment_exists(db, tenant_id=employee.tenant_id, course_id=course.id, employee_id=employee.id):
            continue
        created.append(
            _create_assignment(
                db,
                course=course,
                employee=employee,
                frequency=course.default_frequency or models.Frequency.ONCE,
                assigned_by=assigned_by,
                assigned_at=now,
            )
        )
    return created
