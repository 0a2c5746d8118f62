"""SQLite-backed key-value storage for per-user property partitions."""

from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiosqlite
from pydantic import TypeAdapter, ValidationError

from imobi.logging import get_logger
from imobi.models import Property, PropertyDraft, PropertyUpdate, now_ms
from imobi.store.base import (
    DEFAULT_SEED,
    PropertyNotFoundError,
    SnapshotCallback,
    SubscriptionHub,
    Unsubscribe,
)

__all__ = ["LocalPropertyStore", "SimulatedLatency", "SqliteKeyValue"]

logger = get_logger(__name__)

_PROPERTY_LIST: TypeAdapter[list[Property]] = TypeAdapter(list[Property])


class SqliteKeyValue:
    """String key to JSON text table in a single SQLite file."""

    def __init__(self, db_path: str) -> None:
        """Initialize with database path.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory.
        """
        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._ensure_directory()

    def _ensure_directory(self) -> None:
        """Ensure the directory for the database exists."""
        if self.db_path != ":memory:":
            path = Path(self.db_path)
            path.parent.mkdir(parents=True, exist_ok=True)

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self._conn = await aiosqlite.connect(self.db_path)
            self._conn.row_factory = aiosqlite.Row
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.execute("PRAGMA busy_timeout=5000")
            await self._conn.execute("""
                CREATE TABLE IF NOT EXISTS key_value (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await self._conn.commit()
        return self._conn

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def get(self, key: str) -> str | None:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT value FROM key_value WHERE key = ?", (key,))
        row = await cursor.fetchone()
        return row["value"] if row else None

    async def set(self, key: str, value: str) -> None:
        conn = await self._get_connection()
        await conn.execute(
            """
            INSERT INTO key_value (key, value, updated_at)
            VALUES (?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, value),
        )
        await conn.commit()

    async def delete(self, key: str) -> None:
        conn = await self._get_connection()
        await conn.execute("DELETE FROM key_value WHERE key = ?", (key,))
        await conn.commit()


@dataclass(frozen=True)
class SimulatedLatency:
    """Artificial delay (seconds) applied before each write completes."""

    create: float = 0.0
    write: float = 0.0


def _generate_id() -> str:
    return uuid.uuid4().hex


class LocalPropertyStore:
    """Property backend over one partition of a local key-value table.

    Every successful write publishes the new list to this store's
    subscribers. Writes from other store instances on the same database
    are only observed when ``poll_interval`` is set.
    """

    def __init__(
        self,
        db_path: str,
        partition: str,
        *,
        latency: SimulatedLatency | None = None,
        initial_delay: float = 0.0,
        poll_interval: float | None = None,
        seed: Iterable[Property] = DEFAULT_SEED,
        clock: Callable[[], int] = now_ms,
        kv: SqliteKeyValue | None = None,
    ) -> None:
        self.partition = partition
        self.latency = latency or SimulatedLatency()
        self._seed = tuple(seed)
        self._clock = clock
        self._kv = kv if kv is not None else SqliteKeyValue(db_path)
        self._owns_kv = kv is None
        self._lock = asyncio.Lock()
        self._hub = SubscriptionHub(
            self._read, initial_delay=initial_delay, poll_interval=poll_interval
        )

    @property
    def is_configured(self) -> bool:
        return True

    async def initialize(self) -> None:
        """Seed the partition if it has never been written."""
        if await self._kv.get(self.partition) is None:
            await self._write(list(self._seed))
            logger.info("partition_initialized", partition=self.partition)

    async def close(self) -> None:
        await self._hub.close()
        if self._owns_kv:
            await self._kv.close()

    def subscribe(self, callback: SnapshotCallback) -> Unsubscribe:
        return self._hub.subscribe(callback)

    async def create(self, draft: PropertyDraft) -> str:
        await asyncio.sleep(self.latency.create)
        async with self._lock:
            records = await self._read()
            record = Property(
                **draft.model_dump(),
                id=_generate_id(),
                last_updated_at=self._clock(),
            )
            records.insert(0, record)
            await self._commit(records)
        logger.info("property_created", partition=self.partition, property_id=record.id)
        return record.id

    async def update(self, property_id: str, fields: Mapping[str, Any]) -> None:
        changes = PropertyUpdate.model_validate(dict(fields)).changes()
        await asyncio.sleep(self.latency.write)
        async with self._lock:
            records = await self._read()
            for index, current in enumerate(records):
                if current.id == property_id:
                    break
            else:
                raise PropertyNotFoundError(property_id)
            stamp = max(self._clock(), current.last_updated_at + 1)
            records[index] = Property.model_validate(
                {**current.model_dump(), **changes, "last_updated_at": stamp}
            )
            await self._commit(records)
        logger.info(
            "property_updated",
            partition=self.partition,
            property_id=property_id,
            fields=sorted(changes),
        )

    async def remove(self, property_id: str) -> None:
        await asyncio.sleep(self.latency.write)
        async with self._lock:
            records = await self._read()
            remaining = [r for r in records if r.id != property_id]
            if len(remaining) == len(records):
                logger.debug("remove_unknown_property", property_id=property_id)
                return
            await self._commit(remaining)
        logger.info("property_removed", partition=self.partition, property_id=property_id)

    async def clear(self) -> None:
        await asyncio.sleep(self.latency.write)
        async with self._lock:
            await self._commit([])
        logger.warning("partition_cleared", partition=self.partition)

    async def restore_defaults(self) -> None:
        await asyncio.sleep(self.latency.write)
        async with self._lock:
            await self._commit(list(self._seed))
        logger.warning("partition_restored", partition=self.partition, count=len(self._seed))

    async def _commit(self, records: list[Property]) -> None:
        await self._write(records)
        await self._hub.publish(records)

    async def _write(self, records: list[Property]) -> None:
        payload = json.dumps([r.model_dump(mode="json") for r in records], ensure_ascii=False)
        await self._kv.set(self.partition, payload)

    async def _read(self) -> list[Property]:
        """Load the partition; unreadable contents count as an empty list."""
        raw = await self._kv.get(self.partition)
        if raw is None:
            return []
        try:
            return _PROPERTY_LIST.validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "partition_unreadable",
                partition=self.partition,
                error_count=e.error_count(),
            )
            return []
