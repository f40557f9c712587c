from __future__ import annotations

import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ...errors import ConflictError, NotFoundError, ValidationError
from . import models

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tenant settings
# ---------------------------------------------------------------------------

GENERAL_MODULE = "General"

EMAIL_TEAM_NAME = "EmailTeamName"
TALK_CERTIFICATE_PREFIX = "TalkCertificatePrefix"
COURSE_CERTIFICATE_PREFIX = "CourseCertificatePrefix"
REMINDER_INTERVAL_DAYS = "ReminderIntervalDays"

SETTING_DEFAULTS: Dict[str, str] = {
    EMAIL_TEAM_NAME: "Training Team",
    TALK_CERTIFICATE_PREFIX: "LRN",
    COURSE_CERTIFICATE_PREFIX: "TBC",
    REMINDER_INTERVAL_DAYS: "3",
}


def get_setting(db: Session, *, tenant_id: str, key: str, default: Optional[str] = None) -> Optional[str]:
    setting = (
        db.query(models.TenantSetting)
        .filter(
            models.TenantSetting.tenant_id == tenant_id,
            models.TenantSetting.key == key,
        )
        .first()
    )
    if setting is not None:
        return setting.value
    if default is not None:
        return default
    return SETTING_DEFAULTS.get(key)


def set_setting(db: Session, *, tenant_id: str, key: str, value: str) -> models.TenantSetting:
    key = (key or "").strip()
    if not key:
        raise ValidationError("Setting key is required.")

    setting = (
        db.query(models.TenantSetting)
        .filter(
            models.TenantSetting.tenant_id == tenant_id,
            models.TenantSetting.key == key,
        )
        .first()
    )
    if setting is None:
        setting = models.TenantSetting(
            tenant_id=tenant_id,
            module=GENERAL_MODULE,
            key=key,
            value=value,
        )
    else:
        setting.value = value
    db.add(setting)
    db.flush()
    return setting


def get_all_settings(db: Session, *, tenant_id: str) -> Dict[str, str]:
    """
    Defaults overlaid with whatever the tenant has saved.
    """
    result = dict(SETTING_DEFAULTS)
    rows = db.query(models.TenantSetting).filter(models.TenantSetting.tenant_id == tenant_id).all()
    for row in rows:
        result[row.key] = row.value
    return result


# ---------------------------------------------------------------------------
# Tenants + employees
# ---------------------------------------------------------------------------


def get_employee(db: Session, *, tenant_id: str, employee_id: str) -> models.Employee:
    employee = (
        db.query(models.Employee)
        .filter(
            models.Employee.id == employee_id,
            models.Employee.tenant_id == tenant_id,
        )
        .first()
    )
    if employee is None:
        raise NotFoundError("Employee not found for your tenant.")
    return employee


def get_active_employee(db: Session, *, tenant_id: str, employee_id: str) -> models.Employee:
    employee = get_employee(db, tenant_id=tenant_id, employee_id=employee_id)
    if not employee.is_active:
        raise NotFoundError("Employee not found or is inactive.")
    return employee


def list_active_employees(
    db: Session,
    *,
    tenant_id: str,
    employee_ids: Optional[List[str]] = None,
    department: Optional[str] = None,
    job_title: Optional[str] = None,
) -> List[models.Employee]:
    q = db.query(models.Employee).filter(
        models.Employee.tenant_id == tenant_id,
        models.Employee.is_active.is_(True),
    )
    if employee_ids is not None:
        q = q.filter(models.Employee.id.in_(list(employee_ids)))
    if department:
        q = q.filter(models.Employee.department == department)
    if job_title:
        q = q.filter(models.Employee.job_title == job_title)
    return q.order_by(models.Employee.last_name.asc(), models.Employee.first_name.asc()).all()


def create_employee(
    db: Session,
    *,
    tenant_id: str,
    employee_code: str,
    first_name: str,
    last_name: str,
    email: Optional[str] = None,
    department: Optional[str] = None,
    job_title: Optional[str] = None,
    role: models.EmployeeRole = models.EmployeeRole.OPERATOR,
    created_by: Optional[str] = None,
    auto_assign_training: bool = True,
) -> models.Employee:
    """
    Create an employee and, unless disabled, assign every course flagged for
    automatic assignment to new starters.
    """
    # Imported here: training depends on accounts models.
    from toolboxdb.apps.lookups import services as lookup_services
    from toolboxdb.apps.training import scheduling

    code_norm = (employee_code or "").strip().upper()
    if not code_norm:
        raise ValidationError("Employee code is required.")
    exists = (
        db.query(models.Employee.id)
        .filter(
            models.Employee.tenant_id == tenant_id,
            models.Employee.employee_code == code_norm,
        )
        .first()
    )
    if exists:
        raise ConflictError(f"An employee with code '{code_norm}' already exists.")

    if department:
        department = lookup_services.require_effective_code(
            db, tenant_id=tenant_id, category_name=lookup_services.DEPARTMENT_CATEGORY, code=department
        )
    if job_title:
        job_title = lookup_services.require_effective_code(
            db, tenant_id=tenant_id, category_name=lookup_services.JOB_TITLE_CATEGORY, code=job_title
        )

    employee = models.Employee(
        tenant_id=tenant_id,
        employee_code=code_norm,
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        email=email.strip().lower() if email else None,
        department=department,
        job_title=job_title,
        role=role,
        is_active=True,
    )
    db.add(employee)
    db.flush()
    logger.info("Created employee %s in tenant %s", employee.employee_code, tenant_id)

    if auto_assign_training:
        scheduling.assign_new_employee(db, employee=employee, assigned_by=created_by)
    return employee
