"""
Persistent SQLite tier for the response cache.

Uses SQLAlchemy Core against a single table. Unlike the in-memory tier this
survives restarts, so repeated CLI invocations can reuse earlier responses.
The engine is created lazily on first use.
"""

import os
import threading
from typing import Any

from sqlalchemy import (
    Column,
    Engine,
    Float,
    JSON,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from utils.logger import get_logger

logger = get_logger(__name__)

metadata = MetaData()

cache_entries = Table(
    "cache_entries",
    metadata,
    Column("key", String, primary_key=True),
    Column("source", String, nullable=False, index=True),
    Column("payload", JSON, nullable=False),
    Column("stored_at", Float, nullable=False),
    Column("ttl", Float, nullable=False),
)


class SqliteCacheStorage:
    """
    Key/value store for successful search payloads.

    Rows hold the JSON form of a SearchSuccess plus the time it was stored
    and the TTL it was stored with. Freshness is decided by the caller.
    """

    def __init__(self, db_path: str):
        """
        Args:
            db_path: Path of the SQLite file; parent directories are created
        """
        self.db_path = db_path
        self._engine: Engine | None = None
        self._engine_lock = threading.Lock()

    def _get_engine(self) -> Engine:
        if self._engine is None:
            with self._engine_lock:
                if self._engine is None:
                    directory = os.path.dirname(os.path.abspath(self.db_path))
                    os.makedirs(directory, exist_ok=True)
                    logger.info(
                        "Opening cache database",
                        extra={"extra_fields": {"db_path": self.db_path}},
                    )
                    engine = create_engine(
                        f"sqlite:///{self.db_path}",
                        connect_args={"check_same_thread": False},
                        echo=False,
                    )
                    metadata.create_all(engine)
                    self._engine = engine
        return self._engine

    def get(self, key: str) -> tuple[dict[str, Any], float, float] | None:
        """
        Load one row.

        Returns:
            (payload, stored_at, ttl), or None when the key is absent
        """
        stmt = select(cache_entries.c.payload, cache_entries.c.stored_at, cache_entries.c.ttl).where(
            cache_entries.c.key == key
        )
        with self._get_engine().connect() as conn:
            row = conn.execute(stmt).first()
        if row is None:
            return None
        return row.payload, row.stored_at, row.ttl

    def put(self, key: str, source: str, payload: dict[str, Any], stored_at: float, ttl: float) -> None:
        """Insert or replace one row."""
        stmt = sqlite_insert(cache_entries).values(
            key=key, source=source, payload=payload, stored_at=stored_at, ttl=ttl
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[cache_entries.c.key],
            set_={"payload": stmt.excluded.payload, "stored_at": stmt.excluded.stored_at, "ttl": stmt.excluded.ttl},
        )
        with self._get_engine().begin() as conn:
            conn.execute(stmt)

    def delete(self, key: str) -> bool:
        with self._get_engine().begin() as conn:
            result = conn.execute(delete(cache_entries).where(cache_entries.c.key == key))
        return result.rowcount > 0

    def purge_expired(self, now: float) -> int:
        """Delete rows whose own TTL has elapsed. Returns the number removed."""
        stmt = delete(cache_entries).where(cache_entries.c.stored_at + cache_entries.c.ttl <= now)
        with self._get_engine().begin() as conn:
            result = conn.execute(stmt)
        return result.rowcount

    def clear(self) -> None:
        with self._get_engine().begin() as conn:
            conn.execute(delete(cache_entries))

    def count(self, source: str | None = None) -> int:
        stmt = select(func.count()).select_from(cache_entries)
        if source is not None:
            stmt = stmt.where(cache_entries.c.source == source)
        with self._get_engine().connect() as conn:
            return conn.execute(stmt).scalar_one()

    def close(self) -> None:
        """Dispose the engine and its pooled connections."""
        with self._engine_lock:
            if self._engine is not None:
                self._engine.dispose()
                self._engine = None
