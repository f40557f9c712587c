from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from toolboxdb.apps.accounts import models as account_models
from toolboxdb.apps.accounts import services as account_services
from toolboxdb.apps.audit import models as audit_models
from toolboxdb.apps.supervision import services as supervision_services
from toolboxdb.apps.training import completion
from toolboxdb.apps.training import models as training_models
from toolboxdb.apps.training import scheduling
from toolboxdb.errors import (
    AlreadyClosed,
    ConflictError,
    InstanceNotFound,
    UnauthorizedError,
    ValidationError,
)
from toolboxdb.utils.clock import as_utc

SIGNATURE = "data:image/png;base64,iVBORw0KGgo="


def _dt(year: int, month: int, day: int, hour: int = 9) -> datetime:
    return datetime(year, month, day, hour, 0, tzinfo=timezone.utc)


def _create_tenant(db_session, code: str = "ACME") -> account_models.Tenant:
    tenant = account_models.Tenant(code=code, name=f"{code} Ltd")
    db_session.add(tenant)
    db_session.commit()
    return tenant


def _create_employee(db_session, tenant_id: str, code: str, role=account_models.EmployeeRole.OPERATOR):
    employee = account_models.Employee(
        tenant_id=tenant_id,
        employee_code=code,
        first_name=code.title(),
        last_name="Tester",
        role=role,
        is_active=True,
    )
    db_session.add(employee)
    db_session.commit()
    return employee


def _create_assignment(db_session, tenant_id: str, employee_id: str, frequency: str, assigned_at: datetime):
    course = scheduling.create_course(db_session, tenant_id=tenant_id, code="TT-1", title="Manual handling")
    assignment = scheduling.assign_course(
        db_session,
        tenant_id=tenant_id,
        course_id=course.id,
        employee_id=employee_id,
        frequency=frequency,
        assigned_at=assigned_at,
    )
    db_session.commit()
    return assignment


def _complete(db_session, talk, actor_id, completed_at, **kwargs):
    return completion.complete(
        db_session,
        tenant_id=talk.tenant_id,
        scheduled_talk_id=talk.id,
        signed_by_name=kwargs.pop("signed_by_name", "Pat Tester"),
        signature_data=kwargs.pop("signature_data", SIGNATURE),
        completed_at=completed_at,
        actor_employee_id=actor_id,
    )


def test_weekly_successor_is_anchored_to_due_date(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    assignment = _create_assignment(db_session, tenant.id, employee.id, "WEEKLY", _dt(2024, 1, 1))
    talk = scheduling.get_open_talk(db_session, assignment.id)
    assert as_utc(talk.due_at) == _dt(2024, 1, 8)

    result = _complete(db_session, talk, employee.id, _dt(2024, 1, 10))
    db_session.commit()

    assert result.scheduled_talk.status == training_models.ScheduledTalkStatus.COMPLETED
    assert as_utc(result.next_scheduled_talk.due_at) == _dt(2024, 1, 15)
    assert result.next_scheduled_talk.status == training_models.ScheduledTalkStatus.PENDING
    assert scheduling.get_open_talk(db_session, assignment.id).id == result.next_scheduled_talk.id
    assert completion.is_late(result.completion, result.scheduled_talk) is True


def test_monthly_successor_of_january_31_is_february_29(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    assignment = _create_assignment(db_session, tenant.id, employee.id, "MONTHLY", _dt(2023, 12, 31))
    talk = scheduling.get_open_talk(db_session, assignment.id)
    assert as_utc(talk.due_at) == _dt(2024, 1, 31)

    result = _complete(db_session, talk, employee.id, _dt(2024, 1, 5))

    assert as_utc(result.next_scheduled_talk.due_at) == _dt(2024, 2, 29)
    assert completion.is_late(result.completion, result.scheduled_talk) is False


def test_once_completion_has_no_successor(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    assignment = _create_assignment(db_session, tenant.id, employee.id, "ONCE", _dt(2024, 1, 1))
    talk = scheduling.get_open_talk(db_session, assignment.id)

    result = _complete(db_session, talk, employee.id, _dt(2024, 1, 2))
    db_session.commit()

    assert result.next_scheduled_talk is None
    assert scheduling.get_open_talk(db_session, assignment.id) is None
    assert completion.is_late(result.completion, result.scheduled_talk) is False


def test_exactly_one_completion_record_per_completed_talk(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    assignment = _create_assignment(db_session, tenant.id, employee.id, "WEEKLY", _dt(2024, 1, 1))
    talk = scheduling.get_open_talk(db_session, assignment.id)
    _complete(db_session, talk, employee.id, _dt(2024, 1, 5))
    db_session.commit()

    with pytest.raises(AlreadyClosed):
        _complete(db_session, talk, employee.id, _dt(2024, 1, 6))
    db_session.rollback()

    rows = (
        db_session.query(training_models.ScheduledTalkCompletion)
        .filter(training_models.ScheduledTalkCompletion.scheduled_talk_id == talk.id)
        .all()
    )
    assert len(rows) == 1
    assert completion.get_completion(db_session, tenant_id=tenant.id, scheduled_talk_id=talk.id).id == rows[0].id


def test_sweep_then_complete_still_succeeds(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    assignment = _create_assignment(db_session, tenant.id, employee.id, "WEEKLY", _dt(2024, 1, 8))
    talk = scheduling.get_open_talk(db_session, assignment.id)
    assert as_utc(talk.due_at) == _dt(2024, 1, 15)

    scheduling.mark_overdue_sweep(db_session, now=_dt(2024, 1, 16))
    db_session.commit()
    assert talk.status == training_models.ScheduledTalkStatus.OVERDUE

    result = _complete(db_session, talk, employee.id, _dt(2024, 1, 17))
    db_session.commit()

    assert result.scheduled_talk.status == training_models.ScheduledTalkStatus.COMPLETED
    assert as_utc(result.next_scheduled_talk.due_at) == _dt(2024, 1, 22)

    transition = (
        db_session.query(audit_models.AuditEvent)
        .filter(
            audit_models.AuditEvent.entity_id == talk.id,
            audit_models.AuditEvent.action == "transition",
        )
        .one()
    )
    assert transition.before["status"] == "OVERDUE"
    assert transition.after["status"] == "COMPLETED"
    assert "signature_data" not in transition.after


def test_completion_at_the_due_instant_wins_over_the_sweep(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    assignment = _create_assignment(db_session, tenant.id, employee.id, "WEEKLY", _dt(2024, 1, 1))
    talk = scheduling.get_open_talk(db_session, assignment.id)
    due = as_utc(talk.due_at)

    _complete(db_session, talk, employee.id, due)
    scheduling.mark_overdue_sweep(db_session, now=due)
    db_session.commit()

    assert talk.status == training_models.ScheduledTalkStatus.COMPLETED


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"signature_data": "  "}, "Signature is required to complete the learning."),
        ({"signed_by_name": ""}, "Signed by name is required."),
        ({"signed_by_name": "x" * 201}, "Signed by name must not exceed 200 characters."),
    ],
)
def test_completion_validation_messages(db_session, kwargs, message):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    assignment = _create_assignment(db_session, tenant.id, employee.id, "WEEKLY", _dt(2024, 1, 1))
    talk = scheduling.get_open_talk(db_session, assignment.id)

    with pytest.raises(ValidationError) as excinfo:
        _complete(db_session, talk, employee.id, _dt(2024, 1, 2), **kwargs)
    assert excinfo.value.message == message
    assert talk.status == training_models.ScheduledTalkStatus.PENDING


def test_signed_by_name_of_exactly_200_characters_is_accepted(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    assignment = _create_assignment(db_session, tenant.id, employee.id, "ONCE", _dt(2024, 1, 1))
    talk = scheduling.get_open_talk(db_session, assignment.id)

    result = _complete(db_session, talk, employee.id, _dt(2024, 1, 2), signed_by_name="y" * 200)
    assert len(result.completion.signed_by_name) == 200


def test_stranger_cannot_sign_off(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    stranger = _create_employee(db_session, tenant.id, "OP2")
    assignment = _create_assignment(db_session, tenant.id, employee.id, "WEEKLY", _dt(2024, 1, 1))
    talk = scheduling.get_open_talk(db_session, assignment.id)

    with pytest.raises(UnauthorizedError) as excinfo:
        _complete(db_session, talk, stranger.id, _dt(2024, 1, 2))
    assert excinfo.value.message == completion.UNAUTHORISED_MESSAGE


def test_supervisor_can_sign_off_until_unassigned(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    supervisor = _create_employee(db_session, tenant.id, "SUP1", role=account_models.EmployeeRole.SUPERVISOR)
    pairing = supervision_services.assign(
        db_session, tenant_id=tenant.id, supervisor_id=supervisor.id, operator_id=employee.id
    )
    assignment = _create_assignment(db_session, tenant.id, employee.id, "WEEKLY", _dt(2024, 1, 1))
    talk = scheduling.get_open_talk(db_session, assignment.id)

    result = _complete(db_session, talk, supervisor.id, _dt(2024, 1, 2))
    db_session.commit()
    assert result.completion.signed_by_employee_id == supervisor.id

    supervision_services.unassign(db_session, tenant_id=tenant.id, assignment_id=pairing.id)
    db_session.commit()

    with pytest.raises(UnauthorizedError):
        _complete(db_session, result.next_scheduled_talk, supervisor.id, _dt(2024, 1, 9))


def test_unknown_or_foreign_talk_is_not_found(db_session):
    tenant_a = _create_tenant(db_session, "A")
    tenant_b = _create_tenant(db_session, "B")
    employee = _create_employee(db_session, tenant_a.id, "OP1")
    assignment = _create_assignment(db_session, tenant_a.id, employee.id, "WEEKLY", _dt(2024, 1, 1))
    talk = scheduling.get_open_talk(db_session, assignment.id)

    with pytest.raises(InstanceNotFound):
        completion.complete(
            db_session,
            tenant_id=tenant_b.id,
            scheduled_talk_id=talk.id,
            signed_by_name="Pat",
            signature_data=SIGNATURE,
            completed_at=_dt(2024, 1, 2),
            actor_employee_id=employee.id,
        )


def test_certificate_number_uses_tenant_prefix(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    account_services.set_setting(
        db_session, tenant_id=tenant.id, key=account_services.TALK_CERTIFICATE_PREFIX, value="acme"
    )
    assignment = _create_assignment(db_session, tenant.id, employee.id, "ONCE", _dt(2024, 1, 1))
    talk = scheduling.get_open_talk(db_session, assignment.id)

    result = _complete(db_session, talk, employee.id, _dt(2024, 1, 10))

    assert result.completion.certificate_number.startswith("ACME-20240110-")


def test_cancelled_talk_cannot_be_completed(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    assignment = _create_assignment(db_session, tenant.id, employee.id, "WEEKLY", _dt(2024, 1, 1))
    talk = scheduling.get_open_talk(db_session, assignment.id)
    scheduling.deactivate_assignment(db_session, tenant_id=tenant.id, assignment_id=assignment.id)
    db_session.commit()

    with pytest.raises(AlreadyClosed):
        _complete(db_session, talk, employee.id, _dt(2024, 1, 2))


def test_record_reminder_respects_interval(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    assignment = _create_assignment(db_session, tenant.id, employee.id, "WEEKLY", _dt(2024, 1, 1))
    talk = scheduling.get_open_talk(db_session, assignment.id)

    completion.record_reminder(db_session, tenant_id=tenant.id, scheduled_talk_id=talk.id, now=_dt(2024, 1, 9))
    assert talk.reminders_sent == 1

    with pytest.raises(ConflictError):
        completion.record_reminder(
            db_session, tenant_id=tenant.id, scheduled_talk_id=talk.id, now=_dt(2024, 1, 10)
        )

    later = _dt(2024, 1, 9) + timedelta(days=3)
    completion.record_reminder(db_session, tenant_id=tenant.id, scheduled_talk_id=talk.id, now=later)
    assert talk.reminders_sent == 2
    assert as_utc(talk.last_reminder_at) == later


def test_record_reminder_on_closed_talk_is_a_conflict(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    assignment = _create_assignment(db_session, tenant.id, employee.id, "ONCE", _dt(2024, 1, 1))
    talk = scheduling.get_open_talk(db_session, assignment.id)
    _complete(db_session, talk, employee.id, _dt(2024, 1, 2))

    with pytest.raises(ConflictError):
        completion.record_reminder(db_session, tenant_id=tenant.id, scheduled_talk_id=talk.id)
