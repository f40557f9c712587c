from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from toolboxdb.apps.audit import services as audit_services

from .registry import WORKFLOWS


@dataclass
class TransitionError(Exception):
    code: str
    detail: List[Dict[str, str]]

    def __str__(self) -> str:
        return "; ".join(item.get("reason", "") for item in self.detail) or self.code


def check_transition(
    db: Session,
    *,
    entity_type: str,
    from_state: str,
    to_state: str,
    before_obj: Any = None,
    after_obj: Any = None,
) -> None:
    """
    Validate a state change against the registry without recording it.
    Raises TransitionError with code `invalid_transition` or
    `missing_requirements`.
    """
    workflow = WORKFLOWS.get(entity_type)
    if not workflow:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "entity_type", "reason": f"No workflow registered for {entity_type}"}],
        )

    allowed = workflow.get("transitions", {}).get(from_state, {})
    guards = allowed.get(to_state)
    if guards is None:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "status", "reason": f"Cannot transition from {from_state} to {to_state}"}],
        )

    failures: List[Dict[str, str]] = []
    for guard in guards:
        failures.extend(
            guard(
                db,
                before_obj=before_obj,
                after_obj=after_obj,
                from_state=from_state,
                to_state=to_state,
            )
        )
    if failures:
        raise TransitionError(code="missing_requirements", detail=failures)


def apply_transition(
    db: Session,
    *,
    tenant_id: str,
    actor_employee_id: Optional[str],
    entity_type: str,
    entity_id: str,
    from_state: str,
    to_state: str,
    before_obj: Any = None,
    after_obj: Any = None,
    critical: bool = True,
) -> None:
    check_transition(
        db,
        entity_type=entity_type,
        from_state=from_state,
        to_state=to_state,
        before_obj=before_obj,
        after_obj=after_obj,
    )

    before_payload: Dict[str, Any] = {"status": from_state}
    after_payload: Dict[str, Any] = {"status": to_state}
    if isinstance(before_obj, dict):
        before_payload.update(before_obj)
    if isinstance(after_obj, dict):
        # Signature blobs can be large; the completion row is the evidence.
        after_payload.update({k: v for k, v in after_obj.items() if k != "signature_data"})

    audit_services.log_event(
        db,
        tenant_id=tenant_id,
        actor_employee_id=actor_employee_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action="transition",
        before=before_payload,
        after=after_payload,
        metadata={"workflow": entity_type},
        critical=critical,
    )
