# backend/toolboxdb/errors.py
"""
Typed failures raised by the scheduling / compliance services.

Services raise these; routers translate them with `to_http_exception`.
Every error carries a stable `code` for clients and a human `message`
naming the rule that was violated.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)


class ToolboxError(Exception):
    code = "error"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(ToolboxError):
    """Malformed input: missing signature, empty signer name, bad frequency."""

    code = "validation_error"
    http_status = status.HTTP_400_BAD_REQUEST


class NotFoundError(ToolboxError):
    """Unknown id within the caller's tenant."""

    code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND


class ConflictError(ToolboxError):
    code = "conflict"
    http_status = status.HTTP_409_CONFLICT


class UnauthorizedError(ToolboxError):
    """Actor lacks authority. The message never varies with the reason."""

    code = "unauthorized"
    http_status = status.HTTP_403_FORBIDDEN


class StateInvariantViolation(ToolboxError):
    """Internal: a persisted-state rule (one open talk, one completion) was broken. Signals a bug."""

    code = "internal_error"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR


# Named failures used by the individual components.

InstanceNotFound = NotFoundError


class AlreadyClosed(ConflictError):
    code = "already_closed"


class DuplicateAssignment(ConflictError):
    code = "duplicate_assignment"


class LookupCodeConflict(ConflictError):
    code = "lookup_code_conflict"


class SelfAssignment(ValidationError):
    code = "self_assignment"


def to_http_exception(exc: ToolboxError) -> HTTPException:
    if isinstance(exc, StateInvariantViolation):
        logger.error("State invariant violated: %s", exc.message)
        return HTTPException(
            status_code=exc.http_status,
            detail={"code": exc.code, "message": "Internal error."},
        )
    return HTTPException(
        status_code=exc.http_status,
        detail={"code": exc.code, "message": exc.message},
    )
