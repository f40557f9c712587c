from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"

from toolboxdb.database import Base  # noqa: E402
from toolboxdb.apps.accounts import models as account_models  # noqa: E402, F401
from toolboxdb.apps.audit import models as audit_models  # noqa: E402, F401
from toolboxdb.apps.lookups import models as lookup_models  # noqa: E402, F401
from toolboxdb.apps.supervision import models as supervision_models  # noqa: E402, F401
from toolboxdb.apps.training import models as training_models  # noqa: E402, F401


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
