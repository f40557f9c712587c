from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from toolboxdb.apps.accounts import models as account_models
from toolboxdb.apps.accounts import services as account_services
from toolboxdb.apps.audit import models as audit_models
from toolboxdb.apps.training import models as training_models
from toolboxdb.apps.training import scheduling
from toolboxdb.errors import ConflictError, NotFoundError, ValidationError
from toolboxdb.utils.clock import as_utc


def _dt(year: int, month: int, day: int, hour: int = 9) -> datetime:
    return datetime(year, month, day, hour, 0, tzinfo=timezone.utc)


def _create_tenant(db_session, code: str = "ACME") -> account_models.Tenant:
    tenant = account_models.Tenant(code=code, name=f"{code} Ltd")
    db_session.add(tenant)
    db_session.commit()
    return tenant


def _create_employee(db_session, tenant_id: str, code: str, **kwargs) -> account_models.Employee:
    employee = account_models.Employee(
        tenant_id=tenant_id,
        employee_code=code,
        first_name=kwargs.pop("first_name", code.title()),
        last_name=kwargs.pop("last_name", "Tester"),
        role=kwargs.pop("role", account_models.EmployeeRole.OPERATOR),
        is_active=kwargs.pop("is_active", True),
        **kwargs,
    )
    db_session.add(employee)
    db_session.commit()
    return employee


def _create_course(db_session, tenant_id: str, code: str = "TT-LADDER", **kwargs) -> training_models.Course:
    return scheduling.create_course(
        db_session,
        tenant_id=tenant_id,
        code=code,
        title=kwargs.pop("title", "Ladder safety"),
        **kwargs,
    )


def _open_talks(db_session, assignment_id: str):
    return (
        db_session.query(training_models.ScheduledTalk)
        .filter(
            training_models.ScheduledTalk.assignment_id == assignment_id,
            training_models.ScheduledTalk.status.in_(training_models.OPEN_STATUSES),
        )
        .all()
    )


def test_assign_course_creates_first_talk_one_period_out(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    course = _create_course(db_session, tenant.id)

    assignment = scheduling.assign_course(
        db_session,
        tenant_id=tenant.id,
        course_id=course.id,
        employee_id=employee.id,
        frequency="Weekly",
        assigned_at=_dt(2024, 1, 1),
    )
    db_session.commit()

    talks = _open_talks(db_session, assignment.id)
    assert len(talks) == 1
    assert talks[0].status == training_models.ScheduledTalkStatus.PENDING
    assert as_utc(talks[0].due_at) == _dt(2024, 1, 8)

    event = (
        db_session.query(audit_models.AuditEvent)
        .filter(
            audit_models.AuditEvent.entity_type == "course_assignment",
            audit_models.AuditEvent.action == "assign",
        )
        .first()
    )
    assert event is not None


def test_once_assignment_has_no_deadline(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    course = _create_course(db_session, tenant.id)

    assignment = scheduling.assign_course(
        db_session,
        tenant_id=tenant.id,
        course_id=course.id,
        employee_id=employee.id,
        frequency=training_models.Frequency.ONCE,
        assigned_at=_dt(2024, 2, 1),
    )
    db_session.commit()

    talk = scheduling.get_open_talk(db_session, assignment.id)
    assert as_utc(talk.due_at) == _dt(2024, 2, 1)
    assert scheduling.mark_overdue_sweep(db_session, now=_dt(2030, 1, 1)) == 0
    db_session.commit()
    assert scheduling.get_open_talk(db_session, assignment.id).status == training_models.ScheduledTalkStatus.PENDING


def test_duplicate_active_assignment_is_rejected(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    course = _create_course(db_session, tenant.id)

    scheduling.assign_course(
        db_session, tenant_id=tenant.id, course_id=course.id, employee_id=employee.id, frequency="MONTHLY"
    )
    with pytest.raises(ConflictError):
        scheduling.assign_course(
            db_session, tenant_id=tenant.id, course_id=course.id, employee_id=employee.id, frequency="WEEKLY"
        )


def test_assign_course_from_another_tenant_is_not_found(db_session):
    tenant_a = _create_tenant(db_session, "A")
    tenant_b = _create_tenant(db_session, "B")
    employee_b = _create_employee(db_session, tenant_b.id, "OPB")
    course_a = _create_course(db_session, tenant_a.id)

    with pytest.raises(NotFoundError):
        scheduling.assign_course(
            db_session, tenant_id=tenant_b.id, course_id=course_a.id, employee_id=employee_b.id, frequency="ONCE"
        )


def test_second_open_talk_is_rejected_by_the_database(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    course = _create_course(db_session, tenant.id)
    assignment = scheduling.assign_course(
        db_session, tenant_id=tenant.id, course_id=course.id, employee_id=employee.id, frequency="WEEKLY"
    )
    db_session.commit()

    db_session.add(
        training_models.ScheduledTalk(
            tenant_id=tenant.id,
            assignment_id=assignment.id,
            due_at=_dt(2030, 1, 1),
            status=training_models.ScheduledTalkStatus.OVERDUE,
        )
    )
    with pytest.raises(IntegrityError):
        db_session.flush()
    db_session.rollback()


def test_deactivate_cancels_open_talk_and_is_idempotent(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    course = _create_course(db_session, tenant.id)
    assignment = scheduling.assign_course(
        db_session, tenant_id=tenant.id, course_id=course.id, employee_id=employee.id, frequency="WEEKLY"
    )
    talk = scheduling.get_open_talk(db_session, assignment.id)
    db_session.commit()

    scheduling.deactivate_assignment(db_session, tenant_id=tenant.id, assignment_id=assignment.id)
    db_session.commit()

    assert assignment.active is False
    assert assignment.deactivated_at is not None
    assert talk.status == training_models.ScheduledTalkStatus.CANCELLED
    assert _open_talks(db_session, assignment.id) == []

    again = scheduling.deactivate_assignment(db_session, tenant_id=tenant.id, assignment_id=assignment.id)
    assert again.id == assignment.id
    assert scheduling.on_assignment_deactivated(db_session, assignment) is None

    transitions = (
        db_session.query(audit_models.AuditEvent)
        .filter(
            audit_models.AuditEvent.entity_type == "scheduled_talk",
            audit_models.AuditEvent.entity_id == talk.id,
            audit_models.AuditEvent.action == "transition",
        )
        .all()
    )
    assert len(transitions) == 1
    assert transitions[0].after["status"] == "CANCELLED"


def test_overdue_sweep_is_idempotent(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    course_a = _create_course(db_session, tenant.id, "TT-A")
    course_b = _create_course(db_session, tenant.id, "TT-B")
    late = scheduling.assign_course(
        db_session,
        tenant_id=tenant.id,
        course_id=course_a.id,
        employee_id=employee.id,
        frequency="WEEKLY",
        assigned_at=_dt(2024, 1, 1),
    )
    on_time = scheduling.assign_course(
        db_session,
        tenant_id=tenant.id,
        course_id=course_b.id,
        employee_id=employee.id,
        frequency="ANNUALLY",
        assigned_at=_dt(2024, 1, 1),
    )
    db_session.commit()

    now = _dt(2024, 1, 16)
    assert scheduling.mark_overdue_sweep(db_session, now=now) == 1
    db_session.commit()
    assert scheduling.mark_overdue_sweep(db_session, now=now) == 0

    assert scheduling.get_open_talk(db_session, late.id).status == training_models.ScheduledTalkStatus.OVERDUE
    assert scheduling.get_open_talk(db_session, on_time.id).status == training_models.ScheduledTalkStatus.PENDING


def test_overdue_sweep_is_strict_at_the_due_instant(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    course = _create_course(db_session, tenant.id)
    assignment = scheduling.assign_course(
        db_session,
        tenant_id=tenant.id,
        course_id=course.id,
        employee_id=employee.id,
        frequency="WEEKLY",
        assigned_at=_dt(2024, 1, 1),
    )
    db_session.commit()

    assert scheduling.mark_overdue_sweep(db_session, now=_dt(2024, 1, 8)) == 0
    assert scheduling.get_open_talk(db_session, assignment.id).status == training_models.ScheduledTalkStatus.PENDING


def test_overdue_sweep_can_be_sharded_by_tenant(db_session):
    tenant_a = _create_tenant(db_session, "A")
    tenant_b = _create_tenant(db_session, "B")
    for tenant in (tenant_a, tenant_b):
        employee = _create_employee(db_session, tenant.id, "OP1")
        course = _create_course(db_session, tenant.id)
        scheduling.assign_course(
            db_session,
            tenant_id=tenant.id,
            course_id=course.id,
            employee_id=employee.id,
            frequency="WEEKLY",
            assigned_at=_dt(2024, 1, 1),
        )
    db_session.commit()

    assert scheduling.mark_overdue_sweep(db_session, now=_dt(2024, 2, 1), tenant_id=tenant_a.id) == 1
    overdue_b = (
        db_session.query(training_models.ScheduledTalk)
        .filter(
            training_models.ScheduledTalk.tenant_id == tenant_b.id,
            training_models.ScheduledTalk.status == training_models.ScheduledTalkStatus.OVERDUE,
        )
        .count()
    )
    assert overdue_b == 0


def test_group_assignment_skips_employees_already_assigned(db_session):
    tenant = _create_tenant(db_session)
    first = _create_employee(db_session, tenant.id, "OP1")
    second = _create_employee(db_session, tenant.id, "OP2")
    _create_employee(db_session, tenant.id, "OP3", is_active=False)
    course = _create_course(db_session, tenant.id)
    scheduling.assign_course(
        db_session, tenant_id=tenant.id, course_id=course.id, employee_id=first.id, frequency="MONTHLY"
    )

    created = scheduling.assign_course_to_group(
        db_session,
        tenant_id=tenant.id,
        course_id=course.id,
        frequency="MONTHLY",
    )
    db_session.commit()

    assert [a.employee_id for a in created] == [second.id]
    assert len(scheduling.list_assignments(db_session, tenant_id=tenant.id, course_id=course.id)) == 2


def test_group_assignment_with_unknown_employee_is_not_found(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    course = _create_course(db_session, tenant.id)

    with pytest.raises(NotFoundError):
        scheduling.assign_course_to_group(
            db_session,
            tenant_id=tenant.id,
            course_id=course.id,
            frequency="ONCE",
            employee_ids=[employee.id, "missing"],
        )


def test_change_frequency_replaces_the_assignment(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    course = _create_course(db_session, tenant.id)
    old = scheduling.assign_course(
        db_session,
        tenant_id=tenant.id,
        course_id=course.id,
        employee_id=employee.id,
        frequency="WEEKLY",
        assigned_at=_dt(2024, 1, 1),
    )
    db_session.commit()

    new = scheduling.change_frequency(
        db_session,
        tenant_id=tenant.id,
        assignment_id=old.id,
        frequency="MONTHLY",
        now=_dt(2024, 3, 31),
    )
    db_session.commit()

    assert old.active is False
    assert _open_talks(db_session, old.id) == []
    assert new.active is True
    assert new.frequency == training_models.Frequency.MONTHLY
    assert as_utc(scheduling.get_open_talk(db_session, new.id).due_at) == _dt(2024, 4, 30)

    with pytest.raises(ValidationError):
        scheduling.change_frequency(db_session, tenant_id=tenant.id, assignment_id=new.id, frequency="MONTHLY")


def test_new_employee_gets_auto_assigned_courses(db_session):
    tenant = _create_tenant(db_session)
    auto = _create_course(
        db_session,
        tenant.id,
        "TT-INDUCT",
        title="Site induction",
        default_frequency="ANNUALLY",
        auto_assign_new_employees=True,
    )
    _create_course(db_session, tenant.id, "TT-OTHER", title="Optional")
    db_session.commit()

    employee = account_services.create_employee(
        db_session,
        tenant_id=tenant.id,
        employee_code="new1",
        first_name="New",
        last_name="Starter",
    )
    db_session.commit()

    assignments = scheduling.list_assignments(db_session, tenant_id=tenant.id, employee_id=employee.id)
    assert [a.course_id for a in assignments] == [auto.id]
    assert assignments[0].frequency == training_models.Frequency.ANNUALLY
    assert scheduling.get_open_talk(db_session, assignments[0].id) is not None


def test_inactive_course_cannot_be_assigned(db_session):
    tenant = _create_tenant(db_session)
    employee = _create_employee(db_session, tenant.id, "OP1")
    course = _create_course(db_session, tenant.id)
    course.is_active = False
    db_session.commit()

    with pytest.raises(ValidationError):
        scheduling.assign_course(
            db_session, tenant_id=tenant.id, course_id=course.id, employee_id=employee.id, frequency="ONCE"
        )
