# backend/toolboxdb/security.py

"""
Identity helpers for the toolbox talks backend.

Responsibilities:
- Decode bearer JWTs issued by the identity service
- Resolve the calling Employee and its tenant
- Role-based FastAPI dependencies for routers

Tokens are issued elsewhere; this module only verifies them. A token must
carry `sub` (employee id) and `tenant_id`; both must match an active
employee row.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Set, Union

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .database import get_db
from toolboxdb.apps.accounts import models as account_models
from toolboxdb.apps.accounts.models import EmployeeRole

# ---------------------------------------------------------------------------
# CONFIG
# ---------------------------------------------------------------------------

# In production, ALWAYS override these via environment variables.
SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_IN_PRODUCTION")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

try:
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
except ValueError:
    ACCESS_TOKEN_EXPIRE_MINUTES = 60

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed JWT. Used by the identity service integration and tests.

    The `data` dict should already include the subject, e.g.:
        {"sub": employee.id, "tenant_id": employee.tenant_id}
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta if expires_delta is not None else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def resolve_employee_from_token(db: Session, token: str) -> account_models.Employee:
    """
    Decode the token and load the matching employee, enforcing that the
    tenant claim agrees with the employee row.
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise _credentials_exception()

    employee_id: Optional[str] = payload.get("sub")
    tenant_id: Optional[str] = payload.get("tenant_id")
    if not employee_id or not tenant_id:
        raise _credentials_exception()

    employee = (
        db.query(account_models.Employee)
        .filter(
            account_models.Employee.id == str(employee_id).strip(),
            account_models.Employee.tenant_id == str(tenant_id).strip(),
        )
        .first()
    )
    if employee is None:
        raise _credentials_exception()
    return employee


# ---------------------------------------------------------------------------
# FASTAPI DEPENDENCIES
# ---------------------------------------------------------------------------


def get_current_employee(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> account_models.Employee:
    return resolve_employee_from_token(db, token)


def get_current_active_employee(
    current_employee: account_models.Employee = Depends(get_current_employee),
) -> account_models.Employee:
    if not getattr(current_employee, "is_active", False):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inactive employee account",
        )
    return current_employee


def require_roles(
    *allowed_roles: Union[EmployeeRole, str],
) -> Callable[[account_models.Employee], account_models.Employee]:
    """
    Dependency factory to enforce that the caller has one of the given roles.

        @router.post(...)
        def endpoint(current: Employee = Depends(require_roles("ADMIN"))):
            ...
    """
    normalised_roles: Set[EmployeeRole] = set()
    for r in allowed_roles:
        if isinstance(r, EmployeeRole):
            normalised_roles.add(r)
        else:
            try:
                normalised_roles.add(EmployeeRole(r))
            except ValueError:
                raise ValueError(f"Unknown role {r!r} passed to require_roles()")

    def dependency(
        current_employee: account_models.Employee = Depends(get_current_active_employee),
    ) -> account_models.Employee:
        if current_employee.role not in normalised_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions for this operation",
            )
        return current_employee

    return dependency


require_admin = require_roles(EmployeeRole.ADMIN)
