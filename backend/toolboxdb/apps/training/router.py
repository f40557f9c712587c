from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ...database import get_db
from ...errors import ToolboxError, to_http_exception
from ...security import get_current_active_employee, require_admin, require_roles
from ...utils.clock import utcnow
from ..accounts import models as accounts_models
from ..supervision import services as supervision_services
from . import completion as completion_services
from . import models as training_models
from . import schemas as training_schemas
from . import scheduling

router = APIRouter(prefix="/training", tags=["training"])

_require_manager = require_roles(
    accounts_models.EmployeeRole.ADMIN,
    accounts_models.EmployeeRole.SUPERVISOR,
)


# ---------------------------------------------------------------------------
# HELPERS
# ---------------------------------------------------------------------------


def _fail(db: Session, exc: ToolboxError) -> HTTPException:
    db.rollback()
    return to_http_exception(exc)


def _assert_can_view(db: Session, current: accounts_models.Employee, employee_id: str) -> None:
    scope = supervision_services.team_scope(db, tenant_id=current.tenant_id, employee=current)
    if scope is not None and employee_id not in scope:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only view training for yourself or your team.",
        )


# ---------------------------------------------------------------------------
# COURSES
# ---------------------------------------------------------------------------


@router.get(
    "/courses",
    response_model=List[training_schemas.CourseRead],
    summary="List courses for the current tenant",
)
def list_courses(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(get_current_active_employee),
):
    return scheduling.list_courses(db, tenant_id=current.tenant_id, include_inactive=include_inactive)


@router.get("/courses/{course_id}", response_model=training_schemas.CourseRead)
def get_course(
    course_id: str,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(get_current_active_employee),
):
    try:
        return scheduling.get_course(db, tenant_id=current.tenant_id, course_id=course_id)
    except ToolboxError as exc:
        raise _fail(db, exc)


@router.post(
    "/courses",
    response_model=training_schemas.CourseRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a course (admin only)",
)
def create_course(
    payload: training_schemas.CourseCreate,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(require_admin),
):
    try:
        course = scheduling.create_course(
            db,
            tenant_id=current.tenant_id,
            code=payload.code,
            title=payload.title,
            category=payload.category,
            default_frequency=payload.default_frequency,
            auto_assign_new_employees=payload.auto_assign_new_employees,
        )
        db.commit()
    except ToolboxError as exc:
        raise _fail(db, exc)
    db.refresh(course)
    return course


# ---------------------------------------------------------------------------
# ASSIGNMENTS
# ---------------------------------------------------------------------------


@router.get("/assignments", response_model=List[training_schemas.AssignmentRead])
def list_assignments(
    employee_id: Optional[str] = None,
    course_id: Optional[str] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(get_current_active_employee),
):
    employee_id = employee_id or current.id
    _assert_can_view(db, current, employee_id)
    return scheduling.list_assignments(
        db,
        tenant_id=current.tenant_id,
        employee_id=employee_id,
        course_id=course_id,
        include_inactive=include_inactive,
    )


@router.post(
    "/assignments",
    response_model=training_schemas.AssignmentRead,
    status_code=status.HTTP_201_CREATED,
    summary="Assign a course to one employee and schedule the first talk",
)
def create_assignment(
    payload: training_schemas.AssignmentCreate,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(require_admin),
):
    try:
        assignment = scheduling.assign_course(
            db,
            tenant_id=current.tenant_id,
            course_id=payload.course_id,
            employee_id=payload.employee_id,
            frequency=payload.frequency,
            assigned_by=current.id,
        )
        db.commit()
    except ToolboxError as exc:
        raise _fail(db, exc)
    db.refresh(assignment)
    return assignment


@router.post(
    "/assignments/group",
    response_model=List[training_schemas.AssignmentRead],
    status_code=status.HTTP_201_CREATED,
    summary="Assign a course to a group of employees",
)
def create_group_assignment(
    payload: training_schemas.GroupAssignmentCreate,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(require_admin),
):
    try:
        created = scheduling.assign_course_to_group(
            db,
            tenant_id=current.tenant_id,
            course_id=payload.course_id,
            frequency=payload.frequency,
            assigned_by=current.id,
            employee_ids=payload.employee_ids,
            department=payload.department,
            job_title=payload.job_title,
        )
        db.commit()
    except ToolboxError as exc:
        raise _fail(db, exc)
    return created


@router.post(
    "/assignments/{assignment_id}/deactivate",
    response_model=training_schemas.AssignmentRead,
    summary="Revoke an assignment and cancel its open talk",
)
def deactivate_assignment(
    assignment_id: str,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(require_admin),
):
    try:
        assignment = scheduling.deactivate_assignment(
            db,
            tenant_id=current.tenant_id,
            assignment_id=assignment_id,
            actor_employee_id=current.id,
        )
        db.commit()
    except ToolboxError as exc:
        raise _fail(db, exc)
    db.refresh(assignment)
    return assignment


@router.post(
    "/assignments/{assignment_id}/frequency",
    response_model=training_schemas.AssignmentRead,
    summary="Replace an assignment with one at a new frequency",
)
def change_assignment_frequency(
    assignment_id: str,
    payload: training_schemas.FrequencyChange,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(require_admin),
):
    try:
        assignment = scheduling.change_frequency(
            db,
            tenant_id=current.tenant_id,
            assignment_id=assignment_id,
            frequency=payload.frequency,
            actor_employee_id=current.id,
        )
        db.commit()
    except ToolboxError as exc:
        raise _fail(db, exc)
    db.refresh(assignment)
    return assignment


# ---------------------------------------------------------------------------
# SCHEDULED TALKS
# ---------------------------------------------------------------------------


@router.get("/talks/my", response_model=List[training_schemas.ScheduledTalkRead])
def list_my_talks(
    open_only: bool = True,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(get_current_active_employee),
):
    return scheduling.list_scheduled_talks(
        db,
        tenant_id=current.tenant_id,
        employee_id=current.id,
        statuses=list(training_models.OPEN_STATUSES) if open_only else None,
    )


@router.get("/talks", response_model=List[training_schemas.ScheduledTalkRead])
def list_talks(
    employee_id: str,
    talk_status: Optional[training_models.ScheduledTalkStatus] = None,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(get_current_active_employee),
):
    _assert_can_view(db, current, employee_id)
    return scheduling.list_scheduled_talks(
        db,
        tenant_id=current.tenant_id,
        employee_id=employee_id,
        statuses=[talk_status] if talk_status else None,
    )


@router.post(
    "/talks/{scheduled_talk_id}/complete",
    response_model=training_schemas.CompletionResultRead,
    summary="Sign off a scheduled talk (assignee or their supervisor)",
)
def complete_talk(
    scheduled_talk_id: str,
    payload: training_schemas.CompletionCreate,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(get_current_active_employee),
):
    try:
        result = completion_services.complete(
            db,
            tenant_id=current.tenant_id,
            scheduled_talk_id=scheduled_talk_id,
            signed_by_name=payload.signed_by_name,
            signature_data=payload.signature_data,
            completed_at=utcnow(),
            actor_employee_id=current.id,
        )
        db.commit()
    except ToolboxError as exc:
        raise _fail(db, exc)

    return training_schemas.CompletionResultRead(
        completion=training_schemas.CompletionRead.model_validate(result.completion),
        scheduled_talk=training_schemas.ScheduledTalkRead.model_validate(result.scheduled_talk),
        next_scheduled_talk=(
            training_schemas.ScheduledTalkRead.model_validate(result.next_scheduled_talk)
            if result.next_scheduled_talk is not None
            else None
        ),
        completed_late=completion_services.is_late(result.completion, result.scheduled_talk),
    )


@router.get(
    "/talks/{scheduled_talk_id}/completion",
    response_model=training_schemas.CompletionRead,
)
def get_talk_completion(
    scheduled_talk_id: str,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(get_current_active_employee),
):
    try:
        talk = scheduling.get_scheduled_talk(db, tenant_id=current.tenant_id, scheduled_talk_id=scheduled_talk_id)
        _assert_can_view(db, current, talk.assignment.employee_id)
        completion = completion_services.get_completion(
            db, tenant_id=current.tenant_id, scheduled_talk_id=scheduled_talk_id
        )
    except ToolboxError as exc:
        raise _fail(db, exc)
    if completion is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="This talk has not been completed.",
        )
    return completion


@router.post(
    "/talks/{scheduled_talk_id}/reminders",
    response_model=training_schemas.ScheduledTalkRead,
    summary="Record that a reminder was sent for an open talk",
)
def send_reminder(
    scheduled_talk_id: str,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(_require_manager),
):
    try:
        talk = scheduling.get_scheduled_talk(db, tenant_id=current.tenant_id, scheduled_talk_id=scheduled_talk_id)
        _assert_can_view(db, current, talk.assignment.employee_id)
        talk = completion_services.record_reminder(
            db, tenant_id=current.tenant_id, scheduled_talk_id=scheduled_talk_id
        )
        db.commit()
    except ToolboxError as exc:
        raise _fail(db, exc)
    db.refresh(talk)
    return talk


@router.post(
    "/sweep",
    response_model=training_schemas.OverdueSweepResult,
    summary="Mark past-due talks of the current tenant as OVERDUE",
)
def run_overdue_sweep(
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(require_admin),
):
    now = utcnow()
    count = scheduling.mark_overdue_sweep(db, now=now, tenant_id=current.tenant_id)
    db.commit()
    return training_schemas.OverdueSweepResult(marked_overdue=count, swept_at=now)
