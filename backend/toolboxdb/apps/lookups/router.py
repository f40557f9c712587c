from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from ...database import get_db
from ...errors import ToolboxError, to_http_exception
from ...security import get_current_active_employee, require_admin
from ..accounts import models as accounts_models
from . import schemas, services

router = APIRouter(prefix="/lookups", tags=["lookups"])


@router.get("/categories", response_model=List[schemas.LookupCategoryRead])
def list_categories(
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(get_current_active_employee),
):
    return services.list_categories(db)


@router.get(
    "/categories/{category_id}/values",
    response_model=List[schemas.EffectiveLookupValue],
    summary="Effective values of a category for the current tenant",
)
def list_effective_values(
    category_id: str,
    include_disabled: bool = False,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(get_current_active_employee),
):
    if include_disabled and current.role != accounts_models.EmployeeRole.ADMIN:
        include_disabled = False
    try:
        return services.effective_values(
            db,
            tenant_id=current.tenant_id,
            category_id=category_id,
            include_disabled=include_disabled,
        )
    except ToolboxError as exc:
        raise to_http_exception(exc)


@router.post(
    "/categories/{category_id}/values",
    response_model=schemas.TenantLookupValueRead,
    status_code=status.HTTP_201_CREATED,
)
def create_tenant_value(
    category_id: str,
    payload: schemas.TenantLookupValueCreate,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(require_admin),
):
    try:
        row = services.create_tenant_value(
            db,
            tenant_id=current.tenant_id,
            category_id=category_id,
            code=payload.code,
            name=payload.name,
            sort_order=payload.sort_order,
        )
        db.commit()
    except ToolboxError as exc:
        db.rollback()
        raise to_http_exception(exc)
    db.refresh(row)
    return row


@router.patch("/values/{value_id}", response_model=schemas.TenantLookupValueRead)
def update_tenant_value(
    value_id: str,
    payload: schemas.TenantLookupValueUpdate,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(require_admin),
):
    try:
        row = services.update_tenant_value(
            db,
            tenant_id=current.tenant_id,
            value_id=value_id,
            changes=payload.model_dump(exclude_unset=True),
        )
        db.commit()
    except ToolboxError as exc:
        db.rollback()
        raise to_http_exception(exc)
    db.refresh(row)
    return row


@router.delete("/values/{value_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tenant_value(
    value_id: str,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(require_admin),
):
    try:
        services.delete_tenant_value(db, tenant_id=current.tenant_id, value_id=value_id)
        db.commit()
    except ToolboxError as exc:
        db.rollback()
        raise to_http_exception(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put(
    "/global-values/{global_value_id}",
    response_model=schemas.TenantLookupValueRead,
    summary="Enable or disable a global value for the current tenant",
)
def toggle_global_value(
    global_value_id: str,
    payload: schemas.GlobalValueToggle,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(require_admin),
):
    try:
        row = services.toggle_global_value(
            db,
            tenant_id=current.tenant_id,
            global_value_id=global_value_id,
            is_enabled=payload.is_enabled,
        )
        db.commit()
    except ToolboxError as exc:
        db.rollback()
        raise to_http_exception(exc)
    db.refresh(row)
    return row
