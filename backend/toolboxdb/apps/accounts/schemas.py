# backend/toolboxdb/apps/accounts/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field

from .models import EmployeeRole


# ---------------------------------------------------------------------------
# EMPLOYEES
# ---------------------------------------------------------------------------


class EmployeeCreate(BaseModel):
    """
    department / job_title are lookup codes and must be effective values
    for the tenant.
    """

    employee_code: str = Field(..., min_length=1, max_length=32)
    first_name: str = Field(..., min_length=1, max_length=128)
    last_name: str = Field(..., min_length=1, max_length=128)
    email: Optional[str] = None
    department: Optional[str] = None
    job_title: Optional[str] = None
    role: EmployeeRole = EmployeeRole.OPERATOR
    auto_assign_training: bool = True


class EmployeeRead(BaseModel):
    id: str
    tenant_id: str
    employee_code: str
    first_name: str
    last_name: str
    email: Optional[str] = None
    department: Optional[str] = None
    job_title: Optional[str] = None
    role: EmployeeRole
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# TENANT SETTINGS
# ---------------------------------------------------------------------------


class TenantSettingsRead(BaseModel):
    tenant_id: str
    settings: Dict[str, str]


class TenantSettingUpdate(BaseModel):
    value: str = Field(..., max_length=4000)


class TenantSettingRead(BaseModel):
    key: str
    value: str
    module: str
    updated_at: datetime

    class Config:
        from_attributes = True
