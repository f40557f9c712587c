"""
Completion tracker: signature-backed sign-off of scheduled talks.

A completion is one unit of work: the status compare-and-set, the evidence
row, the audit event and the successor talk either all land or none do.
This module only flushes; the caller commits or rolls back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from toolboxdb.apps.accounts import services as account_services
from toolboxdb.apps.supervision import services as supervision_services
from toolboxdb.apps.workflow import apply_transition
from toolboxdb.apps.workflow.guards import guard_talk_completion

from ...errors import AlreadyClosed, ConflictError, InstanceNotFound, UnauthorizedError, ValidationError
from ...utils.clock import as_utc, utcnow
from ...utils.identifiers import format_certificate_number, generate_uuid7
from . import models
from .frequency import has_deadline
from .scheduling import on_instance_closed

logger = logging.getLogger(__name__)

UNAUTHORISED_MESSAGE = "You are not authorised to sign off this learning."


@dataclass
class CompletionResult:
    completion: models.ScheduledTalkCompletion
    scheduled_talk: models.ScheduledTalk
    next_scheduled_talk: Optional[models.ScheduledTalk]


def _load_talk(db: Session, *, tenant_id: str, scheduled_talk_id: str) -> models.ScheduledTalk:
    talk = (
        db.query(models.ScheduledTalk)
        .filter(
            models.ScheduledTalk.id == scheduled_talk_id,
            models.ScheduledTalk.tenant_id == tenant_id,
        )
        .first()
    )
    if talk is None:
        raise InstanceNotFound("Scheduled talk not found for your tenant.")
    return talk


def can_sign_off(db: Session, *, talk: models.ScheduledTalk, actor_employee_id: Optional[str]) -> bool:
    """
    The assignee signs their own talk; an active supervisor of the assignee
    may sign on their behalf. Nobody else.
    """
    if not actor_employee_id:
        return False
    assignee_id = talk.assignment.employee_id
    if actor_employee_id == assignee_id:
        return True
    return supervision_services.is_supervisor_of(
        db,
        tenant_id=talk.tenant_id,
        supervisor_id=actor_employee_id,
        operator_id=assignee_id,
    )


def complete(
    db: Session,
    *,
    tenant_id: str,
    scheduled_talk_id: str,
    signed_by_name: str,
    signature_data: str,
    actor_employee_id: Optional[str],
    completed_at: Optional[datetime] = None,
) -> CompletionResult:
    completed_at = as_utc(completed_at) if completed_at else utcnow()

    failures = guard_talk_completion(
        db,
        before_obj=None,
        after_obj={
            "signature_data": signature_data,
            "signed_by_name": signed_by_name,
            "completed_at": completed_at,
        },
        from_state=models.ScheduledTalkStatus.PENDING.value,
        to_state=models.ScheduledTalkStatus.COMPLETED.value,
    )
    if failures:
        raise ValidationError(failures[0]["reason"])
    signed_by_name = signed_by_name.strip()

    talk = _load_talk(db, tenant_id=tenant_id, scheduled_talk_id=scheduled_talk_id)

    if not can_sign_off(db, talk=talk, actor_employee_id=actor_employee_id):
        logger.warning(
            "Rejected sign-off of talk %s by employee %s",
            talk.id,
            actor_employee_id,
        )
        raise UnauthorizedError(UNAUTHORISED_MESSAGE)

    if not talk.is_open:
        raise AlreadyClosed("This learning has already been closed.")

    from_state = talk.status.value
    updated = (
        db.query(models.ScheduledTalk)
        .filter(
            models.ScheduledTalk.id == talk.id,
            models.ScheduledTalk.tenant_id == tenant_id,
            models.ScheduledTalk.status.in_(models.OPEN_STATUSES),
        )
        .update(
            {
                models.ScheduledTalk.status: models.ScheduledTalkStatus.COMPLETED,
                models.ScheduledTalk.closed_at: completed_at,
            },
            synchronize_session="fetch",
        )
    )
    if updated == 0:
        raise AlreadyClosed("This learning has already been closed.")

    prefix = account_services.get_setting(
        db, tenant_id=tenant_id, key=account_services.TALK_CERTIFICATE_PREFIX
    )
    completion_id = generate_uuid7()
    completion = models.ScheduledTalkCompletion(
        id=completion_id,
        tenant_id=tenant_id,
        scheduled_talk_id=talk.id,
        signed_by_name=signed_by_name,
        signature_data=signature_data,
        completed_at=completed_at,
        signed_by_employee_id=actor_employee_id,
        certificate_number=format_certificate_number(prefix, completed_at, completion_id),
    )
    db.add(completion)
    db.flush()

    apply_transition(
        db,
        tenant_id=tenant_id,
        actor_employee_id=actor_employee_id,
        entity_type="scheduled_talk",
        entity_id=talk.id,
        from_state=from_state,
        to_state=models.ScheduledTalkStatus.COMPLETED.value,
        after_obj={
            "signature_data": signature_data,
            "signed_by_name": signed_by_name,
            "completed_at": completed_at.isoformat(),
            "completion_id": completion.id,
            "certificate_number": completion.certificate_number,
        },
    )

    successor = on_instance_closed(db, talk)
    logger.info(
        "Talk %s completed by %s (%s)%s",
        talk.id,
        actor_employee_id,
        completion.certificate_number,
        f", next due {successor.due_at.isoformat()}" if successor else "",
    )
    return CompletionResult(completion=completion, scheduled_talk=talk, next_scheduled_talk=successor)


def get_completion(
    db: Session, *, tenant_id: str, scheduled_talk_id: str
) -> Optional[models.ScheduledTalkCompletion]:
    _load_talk(db, tenant_id=tenant_id, scheduled_talk_id=scheduled_talk_id)
    return (
        db.query(models.ScheduledTalkCompletion)
        .filter(
            models.ScheduledTalkCompletion.tenant_id == tenant_id,
            models.ScheduledTalkCompletion.scheduled_talk_id == scheduled_talk_id,
        )
        .first()
    )


def is_late(completion: models.ScheduledTalkCompletion, talk: models.ScheduledTalk) -> bool:
    if not has_deadline(talk.assignment.frequency):
        return False
    return as_utc(completion.completed_at) > as_utc(talk.due_at)


def record_reminder(
    db: Session,
    *,
    tenant_id: str,
    scheduled_talk_id: str,
    now: Optional[datetime] = None,
) -> models.ScheduledTalk:
    """
    Count a reminder against an open talk. Reminders closer together than
    the tenant's ReminderIntervalDays are refused.
    """
    now = now or utcnow()
    talk = _load_talk(db, tenant_id=tenant_id, scheduled_talk_id=scheduled_talk_id)
    if not talk.is_open:
        raise ConflictError("Reminders can only be sent for open learnings.", code="already_closed")

    raw_interval = account_services.get_setting(
        db, tenant_id=tenant_id, key=account_services.REMINDER_INTERVAL_DAYS
    )
    try:
        interval_days = max(int(raw_interval), 0)
    except (TypeError, ValueError):
        interval_days = 0

    last = as_utc(talk.last_reminder_at)
    if last is not None and interval_days and now - last < timedelta(days=interval_days):
        raise ConflictError(
            f"A reminder was already sent within the last {interval_days} day(s).",
            code="reminder_too_soon",
        )

    talk.reminders_sent = (talk.reminders_sent or 0) + 1
    talk.last_reminder_at = now
    db.add(talk)
    db.flush()
    return talk
