from __future__ import annotations

from datetime import datetime, timezone

from toolboxdb.apps.accounts import models as account_models
from toolboxdb.apps.training import router as training_router
from toolboxdb.apps.training import scheduling
from toolboxdb.apps.training import schemas as training_schemas
from toolboxdb.apps.training.router import router
from toolboxdb.main import app
from toolboxdb.utils.clock import as_utc, utcnow

SIGNATURE = "data:image/png;base64,iVBORw0KGgo="


def _has(path: str, method: str) -> bool:
    return any(route.path == path and method in route.methods for route in router.routes)


def test_course_and_assignment_routes_registered():
    assert _has("/training/courses", "GET")
    assert _has("/training/courses", "POST")
    assert _has("/training/assignments", "POST")
    assert _has("/training/assignments/group", "POST")
    assert _has("/training/assignments/{assignment_id}/deactivate", "POST")
    assert _has("/training/assignments/{assignment_id}/frequency", "POST")


def test_talk_routes_registered():
    assert _has("/training/talks/my", "GET")
    assert _has("/training/talks/{scheduled_talk_id}/complete", "POST")
    assert _has("/training/talks/{scheduled_talk_id}/completion", "GET")
    assert _has("/training/talks/{scheduled_talk_id}/reminders", "POST")
    assert _has("/training/sweep", "POST")


def test_app_mounts_every_router():
    paths = {getattr(route, "path", None) for route in app.routes}
    for path in (
        "/health",
        "/training/courses",
        "/supervision/assignments",
        "/reports/compliance",
        "/lookups/categories",
        "/settings",
        "/employees/me",
    ):
        assert path in paths


def test_completion_payload_has_no_client_timestamp():
    assert "completed_at" not in training_schemas.CompletionCreate.model_fields


def test_complete_talk_stamps_the_server_clock(db_session):
    tenant = account_models.Tenant(code="ACME", name="ACME Ltd")
    db_session.add(tenant)
    db_session.commit()
    employee = account_models.Employee(
        tenant_id=tenant.id,
        employee_code="OP1",
        first_name="Pat",
        last_name="Tester",
        role=account_models.EmployeeRole.OPERATOR,
        is_active=True,
    )
    db_session.add(employee)
    db_session.commit()
    course = scheduling.create_course(db_session, tenant_id=tenant.id, code="TT-1", title="Manual handling")
    assignment = scheduling.assign_course(
        db_session,
        tenant_id=tenant.id,
        course_id=course.id,
        employee_id=employee.id,
        frequency="WEEKLY",
        assigned_at=datetime(2024, 1, 1, 9, tzinfo=timezone.utc),
    )
    db_session.commit()
    talk = scheduling.get_open_talk(db_session, assignment.id)

    # A backdated timestamp in the body is dropped, not honoured.
    payload = training_schemas.CompletionCreate.model_validate(
        {
            "signed_by_name": "Pat Tester",
            "signature_data": SIGNATURE,
            "completed_at": "2024-01-02T09:00:00Z",
        }
    )
    before = utcnow()
    result = training_router.complete_talk(talk.id, payload, db=db_session, current=employee)

    assert as_utc(result.completion.completed_at) >= before
    assert result.completed_late is True
