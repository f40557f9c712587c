from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ...database import get_db
from ...errors import ToolboxError, to_http_exception
from ...security import get_current_active_employee, require_admin
from . import models, schemas, services

router = APIRouter(prefix="/settings", tags=["settings"])
employees_router = APIRouter(prefix="/employees", tags=["employees"])


# ---------------------------------------------------------------------------
# SETTINGS
# ---------------------------------------------------------------------------


@router.get("", response_model=schemas.TenantSettingsRead)
def get_settings(
    db: Session = Depends(get_db),
    current: models.Employee = Depends(get_current_active_employee),
):
    return schemas.TenantSettingsRead(
        tenant_id=current.tenant_id,
        settings=services.get_all_settings(db, tenant_id=current.tenant_id),
    )


@router.put("/{key}", response_model=schemas.TenantSettingRead)
def put_setting(
    key: str,
    payload: schemas.TenantSettingUpdate,
    db: Session = Depends(get_db),
    current: models.Employee = Depends(require_admin),
):
    try:
        setting = services.set_setting(db, tenant_id=current.tenant_id, key=key, value=payload.value)
        db.commit()
    except ToolboxError as exc:
        db.rollback()
        raise to_http_exception(exc)
    db.refresh(setting)
    return setting


# ---------------------------------------------------------------------------
# EMPLOYEES
# ---------------------------------------------------------------------------


@employees_router.get("/me", response_model=schemas.EmployeeRead)
def read_me(current: models.Employee = Depends(get_current_active_employee)):
    return current


@employees_router.post(
    "",
    response_model=schemas.EmployeeRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create an employee and auto-assign new-starter courses",
)
def create_employee(
    payload: schemas.EmployeeCreate,
    db: Session = Depends(get_db),
    current: models.Employee = Depends(require_admin),
):
    try:
        employee = services.create_employee(
            db,
            tenant_id=current.tenant_id,
            employee_code=payload.employee_code,
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=payload.email,
            department=payload.department,
            job_title=payload.job_title,
            role=payload.role,
            created_by=current.id,
            auto_assign_training=payload.auto_assign_training,
        )
        db.commit()
    except ToolboxError as exc:
        db.rollback()
        raise to_http_exception(exc)
    db.refresh(employee)
    return employee
