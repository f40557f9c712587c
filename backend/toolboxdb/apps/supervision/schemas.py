from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class SupervisorAssignmentCreate(BaseModel):
    supervisor_id: str
    operator_id: str


class SupervisorAssignmentBulkCreate(BaseModel):
    supervisor_id: str
    operator_ids: List[str] = Field(..., min_length=1)


class SupervisorAssignmentRead(BaseModel):
    id: str
    tenant_id: str
    supervisor_id: str
    operator_id: str
    assigned_at: datetime
    assigned_by: Optional[str] = None
    is_active: bool
    unassigned_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TeamRead(BaseModel):
    employee_id: str
    operator_ids: List[str]
    supervisor_ids: List[str]
