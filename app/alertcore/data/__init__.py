"""Storage layer: schema, engine setup and the alert store."""

from .db import create_db_engine, init_engine
from .store import AlertStore

__all__ = [
    "AlertStore",
    "create_db_engine",
    "init_engine",
]
