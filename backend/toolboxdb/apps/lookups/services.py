"""
Lookup override resolution.

Global values are shared by every tenant. A tenant can shadow a global value
(disable it, rename it, re-sort it) or add custom values of its own; the
effective view merges both. Within one tenant and category a code is unique
among effective values.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ...errors import LookupCodeConflict, NotFoundError, ValidationError
from . import models, schemas

logger = logging.getLogger(__name__)

DEPARTMENT_CATEGORY = "Department"
JOB_TITLE_CATEGORY = "JobTitle"


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def get_category(db: Session, category_id: str) -> models.LookupCategory:
    category = (
        db.query(models.LookupCategory)
        .filter(
            models.LookupCategory.id == category_id,
            models.LookupCategory.is_active.is_(True),
        )
        .first()
    )
    if category is None:
        raise NotFoundError(f"Lookup category '{category_id}' not found.")
    return category


def get_category_by_name(db: Session, name: str) -> models.LookupCategory:
    category = (
        db.query(models.LookupCategory)
        .filter(
            models.LookupCategory.name == name,
            models.LookupCategory.is_active.is_(True),
        )
        .first()
    )
    if category is None:
        raise NotFoundError(f"Lookup category '{name}' not found.")
    return category


def list_categories(db: Session) -> List[models.LookupCategory]:
    return (
        db.query(models.LookupCategory)
        .filter(models.LookupCategory.is_active.is_(True))
        .order_by(models.LookupCategory.name.asc())
        .all()
    )


# ---------------------------------------------------------------------------
# Effective view
# ---------------------------------------------------------------------------


def _tenant_rows(db: Session, tenant_id: str, category_id: str) -> List[models.TenantLookupValue]:
    return (
        db.query(models.TenantLookupValue)
        .filter(
            models.TenantLookupValue.tenant_id == tenant_id,
            models.TenantLookupValue.category_id == category_id,
        )
        .all()
    )


def _global_rows(db: Session, category_id: str) -> List[models.LookupValue]:
    return (
        db.query(models.LookupValue)
        .filter(
            models.LookupValue.category_id == category_id,
            models.LookupValue.is_active.is_(True),
        )
        .all()
    )


def merge_values(
    category: models.LookupCategory,
    global_values: List[models.LookupValue],
    tenant_values: List[models.TenantLookupValue],
    *,
    include_disabled: bool = False,
) -> List[schemas.EffectiveLookupValue]:
    """
    Pure merge of global rows and one tenant's rows for a single category.
    """
    shadows: Dict[str, models.TenantLookupValue] = {
        tv.lookup_value_id: tv for tv in tenant_values if tv.lookup_value_id is not None
    }

    result: List[schemas.EffectiveLookupValue] = []
    for gv in global_values:
        shadow = shadows.get(gv.id)
        if shadow is None:
            result.append(
                schemas.EffectiveLookupValue(
                    id=gv.id,
                    category_id=category.id,
                    code=gv.code,
                    name=gv.name,
                    sort_order=gv.sort_order,
                    is_active=True,
                    is_global=True,
                )
            )
            continue
        # Disabled shadow = tenant opt-out.
        if not shadow.is_enabled and not include_disabled:
            continue
        result.append(
            schemas.EffectiveLookupValue(
                id=gv.id,
                category_id=category.id,
                code=gv.code,
                name=shadow.name or gv.name,
                sort_order=shadow.sort_order,
                is_active=bool(shadow.is_enabled),
                is_global=True,
                overridden_by_tenant_value_id=shadow.id,
            )
        )

    if category.allow_custom:
        for tv in tenant_values:
            if tv.lookup_value_id is not None:
                continue
            if not tv.is_enabled and not include_disabled:
                continue
            result.append(
                schemas.EffectiveLookupValue(
                    id=tv.id,
                    category_id=category.id,
                    code=tv.code,
                    name=tv.name,
                    sort_order=tv.sort_order,
                    is_active=bool(tv.is_enabled),
                    is_global=False,
                )
            )

    result.sort(key=lambda v: (v.sort_order, v.code))
    return result


def effective_values(
    db: Session,
    *,
    tenant_id: str,
    category_id: str,
    include_disabled: bool = False,
) -> List[schemas.EffectiveLookupValue]:
    category = get_category(db, category_id)
    return merge_values(
        category,
        _global_rows(db, category.id),
        _tenant_rows(db, tenant_id, category.id),
        include_disabled=include_disabled,
    )


def effective_codes(db: Session, *, tenant_id: str, category_name: str) -> set:
    category = get_category_by_name(db, category_name)
    return {v.code for v in effective_values(db, tenant_id=tenant_id, category_id=category.id)}


def is_effective_code(db: Session, *, tenant_id: str, category_name: str, code: str) -> bool:
    return code in effective_codes(db, tenant_id=tenant_id, category_name=category_name)


def require_effective_code(db: Session, *, tenant_id: str, category_name: str, code: str) -> str:
    code = (code or "").strip()
    if not is_effective_code(db, tenant_id=tenant_id, category_name=category_name, code=code):
        raise ValidationError(f"'{code}' is not a valid {category_name} for this tenant.")
    return code


# ---------------------------------------------------------------------------
# Tenant writes
# ---------------------------------------------------------------------------


def _assert_code_available(
    db: Session,
    *,
    tenant_id: str,
    category: models.LookupCategory,
    code: str,
    exclude_id: Optional[str] = None,
) -> None:
    # Global codes are reserved even while the tenant has them disabled, so
    # re-enabling a global value can never produce a duplicate effective code.
    global_clash = (
        db.query(models.LookupValue.id)
        .filter(
            models.LookupValue.category_id == category.id,
            models.LookupValue.code == code,
            models.LookupValue.is_active.is_(True),
        )
        .first()
    )
    q = db.query(models.TenantLookupValue.id).filter(
        models.TenantLookupValue.tenant_id == tenant_id,
        models.TenantLookupValue.category_id == category.id,
        models.TenantLookupValue.code == code,
    )
    if exclude_id is not None:
        q = q.filter(models.TenantLookupValue.id != exclude_id)
    if global_clash or q.first():
        raise LookupCodeConflict(f"A value with code '{code}' already exists in this category.")


def create_tenant_value(
    db: Session,
    *,
    tenant_id: str,
    category_id: str,
    code: str,
    name: str,
    sort_order: int = 0,
) -> models.TenantLookupValue:
    category = get_category(db, category_id)
    if not category.allow_custom:
        raise ValidationError(f"Category '{category.name}' does not allow custom values.")

    code = (code or "").strip()
    name = (name or "").strip()
    if not code:
        raise ValidationError("Code is required.")
    if not name:
        raise ValidationError("Name is required.")

    _assert_code_available(db, tenant_id=tenant_id, category=category, code=code)

    row = models.TenantLookupValue(
        tenant_id=tenant_id,
        category_id=category.id,
        lookup_value_id=None,
        code=code,
        name=name,
        sort_order=sort_order,
        is_enabled=True,
    )
    db.add(row)
    db.flush()
    logger.info("Created tenant lookup value %s/%s for tenant %s", category.name, code, tenant_id)
    return row


def _get_tenant_row(db: Session, *, tenant_id: str, value_id: str) -> models.TenantLookupValue:
    row = (
        db.query(models.TenantLookupValue)
        .filter(
            models.TenantLookupValue.id == value_id,
            models.TenantLookupValue.tenant_id == tenant_id,
        )
        .first()
    )
    if row is None:
        raise NotFoundError("Lookup value not found for your tenant.")
    return row


def update_tenant_value(
    db: Session,
    *,
    tenant_id: str,
    value_id: str,
    changes: dict,
) -> models.TenantLookupValue:
    row = _get_tenant_row(db, tenant_id=tenant_id, value_id=value_id)

    new_code = changes.get("code")
    if new_code is not None:
        new_code = new_code.strip()
        if row.lookup_value_id is not None and new_code != row.code:
            raise ValidationError("The code of a global value cannot be changed.")
        if new_code != row.code:
            category = get_category(db, row.category_id)
            _assert_code_available(
                db, tenant_id=tenant_id, category=category, code=new_code, exclude_id=row.id
            )
            row.code = new_code

    for field in ("name", "sort_order", "is_enabled"):
        if changes.get(field) is not None:
            setattr(row, field, changes[field])

    db.add(row)
    db.flush()
    return row


def delete_tenant_value(db: Session, *, tenant_id: str, value_id: str) -> None:
    row = _get_tenant_row(db, tenant_id=tenant_id, value_id=value_id)
    if row.lookup_value_id is not None:
        raise ValidationError("Global values cannot be deleted; disable them instead.")
    db.delete(row)
    db.flush()


def toggle_global_value(
    db: Session,
    *,
    tenant_id: str,
    global_value_id: str,
    is_enabled: bool,
) -> models.TenantLookupValue:
    """
    Enable or disable a global value for one tenant by upserting its shadow
    row. Other tenants are untouched.
    """
    gv = (
        db.query(models.LookupValue)
        .filter(
            models.LookupValue.id == global_value_id,
            models.LookupValue.is_active.is_(True),
        )
        .first()
    )
    if gv is None:
        raise NotFoundError("Global lookup value not found.")

    shadow = (
        db.query(models.TenantLookupValue)
        .filter(
            models.TenantLookupValue.tenant_id == tenant_id,
            models.TenantLookupValue.lookup_value_id == gv.id,
        )
        .first()
    )
    if shadow is None:
        shadow = models.TenantLookupValue(
            tenant_id=tenant_id,
            category_id=gv.category_id,
            lookup_value_id=gv.id,
            code=gv.code,
            name=gv.name,
            sort_order=gv.sort_order,
        )
    shadow.is_enabled = is_enabled
    db.add(shadow)
    db.flush()
    logger.info(
        "Tenant %s %s global lookup value %s",
        tenant_id,
        "enabled" if is_enabled else "disabled",
        gv.code,
    )
    return shadow
