"""
Lightweight database helper using SQLAlchemy.

Provides simple helpers for fetching and executing statements against the
Supabase Postgres database. Each call runs in its own transaction unless it
is issued inside `Database.transaction()`.
"""

from __future__ import annotations

import json
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping, Optional, Sequence

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

from retailiq.config import settings
from retailiq.logger import get_logger

logger = get_logger(__name__)

_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """Get a singleton SQLAlchemy engine."""
    global _engine
    if _engine is None:
        if not settings.supabase.database_url:
            raise ValueError("Missing Supabase configuration")
        _engine = create_engine(
            settings.supabase.database_url,
            pool_pre_ping=True,
        )
        logger.info("Database engine initialized")
    return _engine


def utcnow_iso() -> str:
    """Current UTC time as an ISO-8601 string, the format rows are written with."""
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Read a timestamp column back as an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_json(value: Any) -> Optional[str]:
    """Serialize a value for a JSON column."""
    if value is None:
        return None
    return json.dumps(value)


def from_json(value: Any) -> Any:
    """Decode a JSON column that may come back as text."""
    if isinstance(value, (str, bytes)):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


class Database:
    """Thin wrapper around SQLAlchemy engine for common operations."""

    def __init__(self, engine: Optional[Engine] = None, connection: Optional[Connection] = None) -> None:
        self._engine = engine
        self._connection = connection

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = get_engine()
        return self._engine

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        if self._connection is not None:
            yield self._connection
            return
        with self.engine.begin() as conn:
            yield conn

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """Run several statements atomically.

        Example:
            with db.transaction() as tx:
                tx.execute("DELETE FROM elevenlabs_voices")
                tx.execute_many(insert_sql, rows)
        """
        if self._connection is not None:
            yield self
            return
        with self.engine.begin() as conn:
            yield Database(self._engine, connection=conn)

    def execute(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> int:
        """Execute a statement and return the affected row count."""
        with self._connect() as conn:
            result = conn.execute(text(sql), dict(params or {}))
            return result.rowcount

    def execute_many(self, sql: str, rows: Sequence[Mapping[str, Any]]) -> int:
        """Execute a statement once per parameter set."""
        if not rows:
            return 0
        with self._connect() as conn:
            conn.execute(text(sql), [dict(r) for r in rows])
        return len(rows)

    def insert(self, table: str, row: Mapping[str, Any]) -> dict:
        """Insert one row and read it back by its id.

        An id is generated when the row has none. `table` must be a trusted
        identifier; only values are bound.
        """
        values = dict(row)
        values.setdefault("id", str(uuid.uuid4()))
        columns = ", ".join(values)
        placeholders = ", ".join(f":{name}" for name in values)
        with self._connect() as conn:
            conn.execute(text(f"INSERT INTO {table} ({columns}) VALUES ({placeholders})"), values)
            created = conn.execute(
                text(f"SELECT * FROM {table} WHERE id = :id"), {"id": values["id"]}
            ).mappings().first()
            return dict(created) if created else values

    def fetch_one(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> Optional[dict]:
        with self._connect() as conn:
            row = conn.execute(text(sql), dict(params or {})).mappings().first()
            return dict(row) if row else None

    def fetch_all(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> list[dict]:
        with self._connect() as conn:
            return [dict(r) for r in conn.execute(text(sql), dict(params or {})).mappings().all()]

    def fetch_value(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        with self._connect() as conn:
            return conn.execute(text(sql), dict(params or {})).scalar()
