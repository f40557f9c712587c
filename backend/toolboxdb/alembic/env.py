# backend/toolboxdb/alembic/env.py
"""
Alembic environment for the toolbox talks schema.

Online runs reuse the application's write engine; offline runs need a URL
from alembic.ini or DATABASE_WRITE_URL / DATABASE_URL to render SQL.
"""

from __future__ import annotations

import os
import sys
from logging.config import fileConfig

from alembic import context

# backend/ must be importable when alembic is run from that directory.
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

import toolboxdb  # noqa: F401, E402  registers every app's tables
from toolboxdb.database import Base, write_engine  # noqa: E402

target_metadata = Base.metadata


def _offline_url() -> str:
    url = (config.get_main_option("sqlalchemy.url") or "").strip()
    if not url or url.startswith("driver://"):
        url = (os.getenv("DATABASE_WRITE_URL") or os.getenv("DATABASE_URL") or "").strip()
    if not url:
        raise RuntimeError("Set sqlalchemy.url in alembic.ini or DATABASE_WRITE_URL / DATABASE_URL.")
    return url


def run_migrations_offline() -> None:
    context.configure(
        url=_offline_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    with write_engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
