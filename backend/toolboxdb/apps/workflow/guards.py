from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy.orm import Session

GuardResult = List[Dict[str, str]]

SIGNED_BY_NAME_MAX_LENGTH = 200


def _get_value(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def guard_talk_completion(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    signature = _get_value(after_obj, "signature_data")
    signed_by_name = _get_value(after_obj, "signed_by_name")
    completed_at = _get_value(after_obj, "completed_at")

    missing = []
    if _is_blank(signature):
        missing.append({"field": "signature_data", "reason": "Signature is required to complete the learning."})
    if _is_blank(signed_by_name):
        missing.append({"field": "signed_by_name", "reason": "Signed by name is required."})
    elif len(signed_by_name) > SIGNED_BY_NAME_MAX_LENGTH:
        missing.append(
            {"field": "signed_by_name", "reason": "Signed by name must not exceed 200 characters."}
        )
    if not completed_at:
        missing.append({"field": "completed_at", "reason": "completion timestamp required"})
    return missing


def guard_talk_cancellation(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    # Open talks are only cancelled as a consequence of revoking the assignment.
    if _get_value(after_obj, "assignment_active"):
        return [{"field": "assignment", "reason": "assignment must be deactivated first"}]
    return []


def guard_supervision_unassign(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    if not _get_value(after_obj, "unassigned_at"):
        return [{"field": "unassigned_at", "reason": "unassignment timestamp required"}]
    return []
