from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from ...database import get_db
from ...errors import ToolboxError, to_http_exception
from ...security import get_current_active_employee, require_admin
from ..accounts import models as accounts_models
from . import schemas, services

router = APIRouter(prefix="/supervision", tags=["supervision"])


@router.get("/assignments", response_model=List[schemas.SupervisorAssignmentRead])
def list_assignments(
    supervisor_id: Optional[str] = None,
    operator_id: Optional[str] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(require_admin),
):
    return services.list_assignments(
        db,
        tenant_id=current.tenant_id,
        supervisor_id=supervisor_id,
        operator_id=operator_id,
        include_inactive=include_inactive,
    )


@router.post(
    "/assignments",
    response_model=schemas.SupervisorAssignmentRead,
    status_code=status.HTTP_201_CREATED,
)
def create_assignment(
    payload: schemas.SupervisorAssignmentCreate,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(require_admin),
):
    try:
        row = services.assign(
            db,
            tenant_id=current.tenant_id,
            supervisor_id=payload.supervisor_id,
            operator_id=payload.operator_id,
            assigned_by=current.id,
        )
        db.commit()
    except ToolboxError as exc:
        db.rollback()
        raise to_http_exception(exc)
    db.refresh(row)
    return row


@router.post(
    "/assignments/bulk",
    response_model=List[schemas.SupervisorAssignmentRead],
    status_code=status.HTTP_201_CREATED,
)
def create_assignments_bulk(
    payload: schemas.SupervisorAssignmentBulkCreate,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(require_admin),
):
    try:
        rows = services.assign_many(
            db,
            tenant_id=current.tenant_id,
            supervisor_id=payload.supervisor_id,
            operator_ids=payload.operator_ids,
            assigned_by=current.id,
        )
        db.commit()
    except ToolboxError as exc:
        db.rollback()
        raise to_http_exception(exc)
    return rows


@router.delete("/assignments/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_assignment(
    assignment_id: str,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(require_admin),
):
    # Soft delete; unknown or already inactive ids are a no-op.
    services.unassign(
        db,
        tenant_id=current.tenant_id,
        assignment_id=assignment_id,
        actor_employee_id=current.id,
    )
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/team/{employee_id}", response_model=schemas.TeamRead)
def get_team(
    employee_id: str,
    db: Session = Depends(get_db),
    current: accounts_models.Employee = Depends(get_current_active_employee),
):
    if current.role != accounts_models.EmployeeRole.ADMIN and current.id != employee_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only view your own team.",
        )
    index = services.load_index(db, tenant_id=current.tenant_id)
    return schemas.TeamRead(
        employee_id=employee_id,
        operator_ids=sorted(index.operators_of(employee_id)),
        supervisor_ids=sorted(index.supervisors_of(employee_id)),
    )
