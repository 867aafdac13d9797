from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from sqlalchemy import Engine, create_engine, event, insert, select
from sqlalchemy.engine import Connection

from alertcore.config import DatabaseConfig

from .tables import alerts, contacts, events, schema_migrations


logger = logging.getLogger("alertcore.db")

MigrationFn = Callable[[Connection], None]


@dataclass(frozen=True)
class Migration:
    version: str
    upgrade: MigrationFn


_MIGRATIONS: List[Migration] = []
_ENGINE: Optional[Engine] = None


def register_migration(version: str, upgrade: MigrationFn) -> None:
    """Register a migration step; versions must be unique."""
    if any(m.version == version for m in _MIGRATIONS):
        raise ValueError(f"Migration '{version}' already registered")
    _MIGRATIONS.append(Migration(version, upgrade))
    _MIGRATIONS.sort(key=lambda m: m.version)


def _sqlite_url(config: DatabaseConfig) -> str:
    if (config.engine or "sqlite").lower() != "sqlite":
        raise ValueError(f"Unsupported database engine '{config.engine}' without a url")
    directory = Path(config.path)
    directory.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{directory / config.name}"


def _on_sqlite_connect(dbapi_connection, _connection_record) -> None:  # type: ignore[override]
    """WAL lets pollers read while another process holds the write lock."""
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    cursor = dbapi_connection.cursor()
    for pragma in ("journal_mode=WAL", "synchronous=NORMAL", "foreign_keys=ON"):
        cursor.execute(f"PRAGMA {pragma}")
    cursor.close()


def create_db_engine(config: DatabaseConfig, *, echo: bool = False) -> Engine:
    """Build an Engine for ``config`` and bring its schema up to date."""
    options = {"future": True, "echo": echo}
    if config.url:
        engine = create_engine(config.url, pool_pre_ping=True, **options)
    else:
        engine = create_engine(
            _sqlite_url(config),
            connect_args={"check_same_thread": False, "timeout": config.busy_timeout},
            **options,
        )
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _on_sqlite_connect)
    run_migrations(engine)
    return engine


def run_migrations(engine: Engine) -> List[str]:
    """Apply outstanding migrations in version order; returns the versions applied."""
    applied_now: List[str] = []
    with engine.begin() as connection:
        schema_migrations.create(connection, checkfirst=True)
        applied = set(connection.execute(select(schema_migrations.c.version)).scalars())
        for migration in _MIGRATIONS:
            if migration.version in applied:
                continue
            migration.upgrade(connection)
            connection.execute(insert(schema_migrations).values(version=migration.version))
            applied_now.append(migration.version)
    if applied_now:
        logger.info("db.migrated", extra={"versions": applied_now})
    return applied_now


def init_engine(config: DatabaseConfig, *, echo: bool = False) -> Engine:
    """Create (or return) the process-wide Engine used by the CLI."""
    global _ENGINE

    if _ENGINE is None:
        _ENGINE = create_db_engine(config, echo=echo)
    return _ENGINE


def dispose_engine() -> None:
    global _ENGINE

    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None


def _initial_schema(connection: Connection) -> None:
    for table in (events, alerts, contacts):
        table.create(connection, checkfirst=True)


register_migration("0001_initial", _initial_schema)
