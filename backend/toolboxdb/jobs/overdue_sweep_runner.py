"""Overdue sweep runner.

Flips PENDING scheduled talks past their due date to OVERDUE. Safe to run
from cron as often as needed: the sweep is idempotent, and `--tenant-id`
shards the work per tenant.
"""

from __future__ import annotations

import argparse
import logging
import os
from typing import List, Optional

from toolboxdb.database import WriteSessionLocal
from toolboxdb.apps.training import scheduling
from toolboxdb.utils.clock import utcnow

logger = logging.getLogger(__name__)


def run(tenant_id: Optional[str] = None) -> dict:
    now = utcnow()
    db = WriteSessionLocal()
    try:
        count = scheduling.mark_overdue_sweep(db, now=now, tenant_id=tenant_id)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Overdue sweep failed (tenant=%s)", tenant_id or "*")
        raise
    finally:
        db.close()
    return {"swept_at": now.isoformat(), "tenant_id": tenant_id, "marked_overdue": count}


def main(argv: Optional[List[str]] = None) -> dict:
    parser = argparse.ArgumentParser(description="Mark past-due scheduled talks as OVERDUE.")
    parser.add_argument("--tenant-id", default=None, help="Only sweep this tenant.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    return run(tenant_id=args.tenant_id)


if __name__ == "__main__":
    result = main()
    print("Overdue sweep completed:", result)
