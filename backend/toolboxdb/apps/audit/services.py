from __future__ import annotations

from datetime import datetime
import logging
from typing import Optional

from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)


def log_event(
    db: Session,
    *,
    tenant_id: str,
    actor_employee_id: Optional[str],
    entity_type: str,
    entity_id: str,
    action: str,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    metadata: Optional[dict] = None,
    occurred_at: Optional[datetime] = None,
    critical: bool = False,
) -> Optional[models.AuditEvent]:
    """
    Best-effort audit event logger.
    - For critical actions (sign-off, status transitions), raise on failure
      so the surrounding unit of work is rolled back.
    - For non-critical actions, log a warning and continue.
    """
    try:
        event = models.AuditEvent(
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_employee_id=actor_employee_id,
            before=before,
            after=after,
            metadata_json=metadata,
        )
        if occurred_at is not None:
            event.occurred_at = occurred_at
        db.add(event)
        db.flush()
        return event
    except Exception:
        logger.warning(
            "Failed to log audit event",
            extra={
                "tenant_id": tenant_id,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action,
                "critical": critical,
            },
        )
        if critical:
            raise
        return None
