"""
Supervisor-operator registry.

Oversight is a many-to-many, directed relation inside a tenant. Callers that
need repeated membership checks (sign-off authorisation, report scoping)
load a `SupervisorIndex` once per request and query it in O(1).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from toolboxdb.apps.accounts import models as account_models
from toolboxdb.apps.accounts import services as account_services
from toolboxdb.apps.audit import services as audit_services
from toolboxdb.apps.workflow import apply_transition

from ...errors import DuplicateAssignment, SelfAssignment
from ...utils.clock import utcnow
from . import models

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# In-memory edge index
# ---------------------------------------------------------------------------


@dataclass
class SupervisorIndex:
    """
    Active supervisor -> operator edges with both directions indexed.
    """

    by_supervisor: Dict[str, Set[str]] = field(default_factory=dict)
    by_operator: Dict[str, Set[str]] = field(default_factory=dict)

    @classmethod
    def from_edges(cls, edges: Iterable[Tuple[str, str]]) -> "SupervisorIndex":
        index = cls()
        for supervisor_id, operator_id in edges:
            index.add(supervisor_id, operator_id)
        return index

    def add(self, supervisor_id: str, operator_id: str) -> None:
        self.by_supervisor.setdefault(supervisor_id, set()).add(operator_id)
        self.by_operator.setdefault(operator_id, set()).add(supervisor_id)

    def is_supervisor_of(self, supervisor_id: str, operator_id: str) -> bool:
        return operator_id in self.by_supervisor.get(supervisor_id, ())

    def operators_of(self, supervisor_id: str) -> Set[str]:
        return set(self.by_supervisor.get(supervisor_id, ()))

    def supervisors_of(self, operator_id: str) -> Set[str]:
        return set(self.by_operator.get(operator_id, ()))


def load_index(db: Session, *, tenant_id: str) -> SupervisorIndex:
    rows = (
        db.query(models.SupervisorAssignment.supervisor_id, models.SupervisorAssignment.operator_id)
        .filter(
            models.SupervisorAssignment.tenant_id == tenant_id,
            models.SupervisorAssignment.is_active.is_(True),
        )
        .all()
    )
    return SupervisorIndex.from_edges((r.supervisor_id, r.operator_id) for r in rows)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def is_supervisor_of(db: Session, *, tenant_id: str, supervisor_id: str, operator_id: str) -> bool:
    return (
        db.query(models.SupervisorAssignment.id)
        .filter(
            models.SupervisorAssignment.tenant_id == tenant_id,
            models.SupervisorAssignment.supervisor_id == supervisor_id,
            models.SupervisorAssignment.operator_id == operator_id,
            models.SupervisorAssignment.is_active.is_(True),
        )
        .first()
        is not None
    )


def operators_of(db: Session, *, tenant_id: str, supervisor_id: str) -> Set[str]:
    return load_index(db, tenant_id=tenant_id).operators_of(supervisor_id)


def supervisors_of(db: Session, *, tenant_id: str, operator_id: str) -> Set[str]:
    return load_index(db, tenant_id=tenant_id).supervisors_of(operator_id)


def list_assignments(
    db: Session,
    *,
    tenant_id: str,
    supervisor_id: Optional[str] = None,
    operator_id: Optional[str] = None,
    include_inactive: bool = False,
) -> List[models.SupervisorAssignment]:
    q = db.query(models.SupervisorAssignment).filter(models.SupervisorAssignment.tenant_id == tenant_id)
    if supervisor_id:
        q = q.filter(models.SupervisorAssignment.supervisor_id == supervisor_id)
    if operator_id:
        q = q.filter(models.SupervisorAssignment.operator_id == operator_id)
    if not include_inactive:
        q = q.filter(models.SupervisorAssignment.is_active.is_(True))
    return q.order_by(models.SupervisorAssignment.assigned_at.desc()).all()


def team_scope(db: Session, *, tenant_id: str, employee: account_models.Employee) -> Optional[Set[str]]:
    """
    Employee ids the given actor may see in reports. None means the whole
    tenant (admins).
    """
    if employee.role == account_models.EmployeeRole.ADMIN:
        return None
    if employee.role == account_models.EmployeeRole.SUPERVISOR:
        return {employee.id} | operators_of(db, tenant_id=tenant_id, supervisor_id=employee.id)
    return {employee.id}


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def _active_pair(
    db: Session, *, tenant_id: str, supervisor_id: str, operator_id: str
) -> Optional[models.SupervisorAssignment]:
    return (
        db.query(models.SupervisorAssignment)
        .filter(
            models.SupervisorAssignment.tenant_id == tenant_id,
            models.SupervisorAssignment.supervisor_id == supervisor_id,
            models.SupervisorAssignment.operator_id == operator_id,
            models.SupervisorAssignment.is_active.is_(True),
        )
        .first()
    )


def _create(
    db: Session,
    *,
    tenant_id: str,
    supervisor_id: str,
    operator_id: str,
    assigned_by: Optional[str],
    assigned_at: datetime,
) -> models.SupervisorAssignment:
    row = models.SupervisorAssignment(
        tenant_id=tenant_id,
        supervisor_id=supervisor_id,
        operator_id=operator_id,
        assigned_by=assigned_by,
        assigned_at=assigned_at,
        is_active=True,
    )
    db.add(row)
    db.flush()
    audit_services.log_event(
        db,
        tenant_id=tenant_id,
        actor_employee_id=assigned_by,
        entity_type="supervisor_assignment",
        entity_id=row.id,
        action="assign",
        after={"supervisor_id": supervisor_id, "operator_id": operator_id},
        metadata={"module": "supervision"},
    )
    return row


def assign(
    db: Session,
    *,
    tenant_id: str,
    supervisor_id: str,
    operator_id: str,
    assigned_by: Optional[str] = None,
    assigned_at: Optional[datetime] = None,
) -> models.SupervisorAssignment:
    if supervisor_id == operator_id:
        raise SelfAssignment("An employee cannot supervise themselves.")

    account_services.get_active_employee(db, tenant_id=tenant_id, employee_id=supervisor_id)
    account_services.get_active_employee(db, tenant_id=tenant_id, employee_id=operator_id)

    if _active_pair(db, tenant_id=tenant_id, supervisor_id=supervisor_id, operator_id=operator_id):
        logger.warning(
            "Rejected duplicate supervisor assignment %s -> %s in tenant %s",
            supervisor_id,
            operator_id,
            tenant_id,
        )
        raise DuplicateAssignment("This operator is already assigned to this supervisor.")

    row = _create(
        db,
        tenant_id=tenant_id,
        supervisor_id=supervisor_id,
        operator_id=operator_id,
        assigned_by=assigned_by,
        assigned_at=assigned_at or utcnow(),
    )
    logger.info("Assigned operator %s to supervisor %s", operator_id, supervisor_id)
    return row


def assign_many(
    db: Session,
    *,
    tenant_id: str,
    supervisor_id: str,
    operator_ids: Iterable[str],
    assigned_by: Optional[str] = None,
) -> List[models.SupervisorAssignment]:
    """
    Bulk assign. Operators already under this supervisor are skipped
    instead of failing the whole batch.
    """
    account_services.get_active_employee(db, tenant_id=tenant_id, employee_id=supervisor_id)
    existing = load_index(db, tenant_id=tenant_id).operators_of(supervisor_id)

    now = utcnow()
    created: List[models.SupervisorAssignment] = []
    seen: Set[str] = set()
    for operator_id in operator_ids:
        if operator_id in existing or operator_id in seen:
            continue
        seen.add(operator_id)
        if operator_id == supervisor_id:
            raise SelfAssignment("An employee cannot supervise themselves.")
        account_services.get_active_employee(db, tenant_id=tenant_id, employee_id=operator_id)
        created.append(
            _create(
                db,
                tenant_id=tenant_id,
                supervisor_id=supervisor_id,
                operator_id=operator_id,
                assigned_by=assigned_by,
                assigned_at=now,
            )
        )
    if created:
        logger.info("Assigned %d operator(s) to supervisor %s", len(created), supervisor_id)
    return created


def unassign(
    db: Session,
    *,
    tenant_id: str,
    assignment_id: str,
    actor_employee_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[models.SupervisorAssignment]:
    """
    Soft-deactivate a pairing. Returns None when there is nothing to do
    (unknown id within the tenant, or already inactive).
    """
    row = (
        db.query(models.SupervisorAssignment)
        .filter(
            models.SupervisorAssignment.id == assignment_id,
            models.SupervisorAssignment.tenant_id == tenant_id,
        )
        .first()
    )
    if row is None or not row.is_active:
        return None

    now = now or utcnow()
    row.is_active = False
    row.unassigned_at = now
    row.unassigned_by = actor_employee_id
    db.add(row)
    db.flush()

    apply_transition(
        db,
        tenant_id=tenant_id,
        actor_employee_id=actor_employee_id,
        entity_type="supervisor_assignment",
        entity_id=row.id,
        from_state="ACTIVE",
        to_state="INACTIVE",
        after_obj={"unassigned_at": now.isoformat()},
    )
    logger.info("Unassigned operator %s from supervisor %s", row.operator_id, row.supervisor_id)
    return row
