# backend/toolboxdb/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- The package exposes a clear surface.

The actual model classes are kept in toolboxdb/apps/*/models.py.
"""

from .apps.accounts import models as accounts_models          # tenants / employees / settings
from .apps.audit import models as audit_models                # audit trail
from .apps.lookups import models as lookups_models            # global + tenant lookup values
from .apps.supervision import models as supervision_models    # supervisor -> operator edges
from .apps.training import models as training_models          # courses / assignments / talks

__all__ = [
    "accounts_models",
    "audit_models",
    "lookups_models",
    "supervision_models",
    "training_models",
]
