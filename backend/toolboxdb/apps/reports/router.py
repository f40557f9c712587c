from __future__ import annotations

from datetime import datetime
from typing import Optional, Set

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_read_db
from ...errors import ToolboxError, to_http_exception
from ...security import get_current_active_employee
from ...utils.clock import utcnow
from ..accounts import models as accounts_models
from ..supervision import services as supervision_services
from . import schemas, services

router = APIRouter(prefix="/reports", tags=["reports"])


def _scope(
    db: Session,
    current: accounts_models.Employee,
    supervisor_id: Optional[str],
) -> Optional[Set[str]]:
    """
    Employees the caller may see, optionally narrowed to one supervisor's
    team (the supervisor plus their operators).
    """
    scope = supervision_services.team_scope(db, tenant_id=current.tenant_id, employee=current)
    if supervisor_id:
        team = {supervisor_id} | supervision_services.operators_of(
            db, tenant_id=current.tenant_id, supervisor_id=supervisor_id
        )
        scope = team if scope is None else scope & team
    return scope


@router.get("/compliance", response_model=schemas.ComplianceReport)
def get_compliance_report(
    course_id: Optional[str] = None,
    department: Optional[str] = None,
    supervisor_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current: accounts_models.Employee = Depends(get_current_active_employee),
):
    try:
        return services.compliance_report(
            db,
            tenant_id=current.tenant_id,
            now=utcnow(),
            course_id=course_id,
            department=department,
            employee_ids=_scope(db, current, supervisor_id),
        )
    except ToolboxError as exc:
        raise to_http_exception(exc)


@router.get("/overdue", response_model=schemas.OverdueReport)
def get_overdue_report(
    course_id: Optional[str] = None,
    department: Optional[str] = None,
    supervisor_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current: accounts_models.Employee = Depends(get_current_active_employee),
):
    try:
        return services.overdue_report(
            db,
            tenant_id=current.tenant_id,
            now=utcnow(),
            course_id=course_id,
            department=department,
            employee_ids=_scope(db, current, supervisor_id),
        )
    except ToolboxError as exc:
        raise to_http_exception(exc)


@router.get("/completions", response_model=schemas.CompletionsReport)
def get_completions_report(
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    course_id: Optional[str] = None,
    department: Optional[str] = None,
    supervisor_id: Optional[str] = None,
    page: int = 1,
    page_size: int = 50,
    db: Session = Depends(get_read_db),
    current: accounts_models.Employee = Depends(get_current_active_employee),
):
    try:
        return services.completions_report(
            db,
            tenant_id=current.tenant_id,
            now=utcnow(),
            date_from=date_from,
            date_to=date_to,
            course_id=course_id,
            department=department,
            employee_ids=_scope(db, current, supervisor_id),
            page=page,
            page_size=page_size,
        )
    except ToolboxError as exc:
        raise to_http_exception(exc)


@router.get("/skills-matrix", response_model=schemas.SkillsMatrix)
def get_skills_matrix(
    department: Optional[str] = None,
    category: Optional[str] = None,
    supervisor_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current: accounts_models.Employee = Depends(get_current_active_employee),
):
    try:
        return services.skills_matrix(
            db,
            tenant_id=current.tenant_id,
            now=utcnow(),
            department=department,
            category=category,
            employee_ids=_scope(db, current, supervisor_id),
        )
    except ToolboxError as exc:
        raise to_http_exception(exc)
