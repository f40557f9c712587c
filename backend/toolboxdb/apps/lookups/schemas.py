from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class LookupCategoryRead(BaseModel):
    id: str
    name: str
    module: str
    allow_custom: bool
    is_active: bool

    class Config:
        from_attributes = True


class EffectiveLookupValue(BaseModel):
    """
    One row of a tenant's merged view of a category.

    - is_global: the row comes from the platform defaults
    - overridden_by_tenant_value_id: the tenant shadow row, if any
    """

    id: str
    category_id: str
    code: str
    name: str
    sort_order: int
    is_active: bool
    is_global: bool
    overridden_by_tenant_value_id: Optional[str] = None


class TenantLookupValueCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    sort_order: int = 0


class TenantLookupValueUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=64)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    sort_order: Optional[int] = None
    is_enabled: Optional[bool] = None


class GlobalValueToggle(BaseModel):
    is_enabled: bool


class TenantLookupValueRead(BaseModel):
    id: str
    tenant_id: str
    category_id: str
    lookup_value_id: Optional[str] = None
    code: str
    name: str
    sort_order: int
    is_enabled: bool

    class Config:
        from_attributes = True
