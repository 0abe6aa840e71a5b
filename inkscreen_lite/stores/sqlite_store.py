"""SQLite persistence for devices, templates and metric queries."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

import aiosqlite

from inkscreen_lite.core.timezone_utils import now_utc
from inkscreen_lite.domain.exceptions import DuplicateMetricNameError
from inkscreen_lite.domain.models import DeviceProfile, MetricQuerySpec, Template

from . import load_default_template_text

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS devices (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        access_token TEXT NOT NULL UNIQUE,
        mac_address TEXT NOT NULL DEFAULT '',
        model TEXT NOT NULL DEFAULT '',
        friendly_id TEXT NOT NULL DEFAULT '',
        fw_version TEXT,
        width INTEGER NOT NULL,
        height INTEGER NOT NULL,
        battery_voltage REAL,
        rssi TEXT,
        last_seen_at TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS templates (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        content TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS metric_queries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        template_id INTEGER NOT NULL REFERENCES templates(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        address TEXT NOT NULL,
        query TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_metric_queries_template_name
    ON metric_queries(template_id, name)
    """,
)

DEVICE_COLUMNS = (
    "id, access_token, mac_address, model, friendly_id, fw_version, width, height, "
    "battery_voltage, rssi, last_seen_at, created_at"
)
QUERY_COLUMNS = "id, template_id, name, address, query"


def _to_db_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _device_from_row(row: Any) -> DeviceProfile:
    return DeviceProfile(**dict(row))


def _query_from_row(row: Any) -> MetricQuerySpec:
    return MetricQuerySpec(**dict(row))


def _is_unique_violation(error: Exception) -> bool:
    return "UNIQUE constraint failed" in str(error)


class SQLiteStore:
    """Store backed by a single SQLite file.

    The schema is created lazily on first use, and the bundled default
    template is inserted the first time the active template is requested.
    """

    def __init__(self, database_path: Union[Path, str]):
        """Initialize the store.

        Args:
            database_path: Path to SQLite database file (parent dirs are created)
        """
        self.database_path = Path(database_path)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialized = False
        self._initialization_lock = asyncio.Lock()
        self._seed_lock = asyncio.Lock()

        logger.info("SQLite store initialized (lazy): %s", self.database_path)

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(str(self.database_path))

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return

        async with self._initialization_lock:
            if self._initialized:
                return

            async with self._connect() as db:
                # WAL for concurrent readers while a template is being saved
                await db.execute("PRAGMA journal_mode=WAL")
                await db.execute("PRAGMA synchronous=NORMAL")
                await db.execute("PRAGMA foreign_keys=ON")
                for statement in SCHEMA:
                    await db.execute(statement)
                await db.commit()

            self._initialized = True
            logger.debug("SQLite schema ready at %s", self.database_path)

    async def _fetch_one(self, sql: str, params: tuple[Any, ...] = ()) -> Optional[Any]:
        await self._ensure_initialized()
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(sql, params) as cursor:
                return await cursor.fetchone()

    async def _fetch_all(self, sql: str, params: tuple[Any, ...] = ()) -> list[Any]:
        await self._ensure_initialized()
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(sql, params) as cursor:
                return list(await cursor.fetchall())

    async def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> tuple[int, Optional[int]]:
        """Run a write statement; return (rowcount, lastrowid)."""
        await self._ensure_initialized()
        async with self._connect() as db:
            await db.execute("PRAGMA foreign_keys=ON")
            cursor = await db.execute(sql, params)
            await db.commit()
            return cursor.rowcount, cursor.lastrowid

    # Devices

    async def get_device(self, device_id: int) -> Optional[DeviceProfile]:
        row = await self._fetch_one(
            f"SELECT {DEVICE_COLUMNS} FROM devices WHERE id = ?", (device_id,)
        )
        return _device_from_row(row) if row is not None else None

    async def list_devices(self) -> list[DeviceProfile]:
        rows = await self._fetch_all(f"SELECT {DEVICE_COLUMNS} FROM devices ORDER BY id")
        return [_device_from_row(row) for row in rows]

    async def get_device_by_access_token(self, token: str) -> Optional[DeviceProfile]:
        if not token:
            return None
        row = await self._fetch_one(
            f"SELECT {DEVICE_COLUMNS} FROM devices WHERE access_token = ?", (token,)
        )
        return _device_from_row(row) if row is not None else None

    async def create_device(self, device: DeviceProfile) -> DeviceProfile:
        _, device_id = await self._execute(
            "INSERT INTO devices (access_token, mac_address, model, friendly_id, fw_version, "
            "width, height, battery_voltage, rssi, last_seen_at, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                device.access_token,
                device.mac_address,
                device.model,
                device.friendly_id,
                device.fw_version,
                device.width,
                device.height,
                device.battery_voltage,
                device.rssi,
                _to_db_time(device.last_seen_at),
                _to_db_time(device.created_at),
            ),
        )
        logger.info("Created device %s (%dx%d)", device_id, device.width, device.height)
        return device.model_copy(update={"id": device_id})

    async def update_device(self, device: DeviceProfile) -> Optional[DeviceProfile]:
        rowcount, _ = await self._execute(
            "UPDATE devices SET mac_address = ?, model = ?, friendly_id = ?, fw_version = ?, "
            "width = ?, height = ?, battery_voltage = ?, rssi = ?, last_seen_at = ? "
            "WHERE id = ?",
            (
                device.mac_address,
                device.model,
                device.friendly_id,
                device.fw_version,
                device.width,
                device.height,
                device.battery_voltage,
                device.rssi,
                _to_db_time(device.last_seen_at),
                device.id,
            ),
        )
        if rowcount == 0:
            return None
        return await self.get_device(device.id)

    async def delete_device(self, device_id: int) -> bool:
        rowcount, _ = await self._execute("DELETE FROM devices WHERE id = ?", (device_id,))
        return rowcount > 0

    # Templates

    async def get_template(self, template_id: int) -> Optional[Template]:
        row = await self._fetch_one(
            "SELECT id, content, created_at, updated_at FROM templates WHERE id = ?",
            (template_id,),
        )
        return Template(**dict(row)) if row is not None else None

    async def get_default_template(self) -> Template:
        row = await self._fetch_one(
            "SELECT id, content, created_at, updated_at FROM templates ORDER BY id LIMIT 1"
        )
        if row is not None:
            return Template(**dict(row))

        async with self._seed_lock:
            row = await self._fetch_one(
                "SELECT id, content, created_at, updated_at FROM templates ORDER BY id LIMIT 1"
            )
            if row is None:
                now = _to_db_time(now_utc())
                _, template_id = await self._execute(
                    "INSERT INTO templates (content, created_at, updated_at) VALUES (?, ?, ?)",
                    (load_default_template_text(), now, now),
                )
                logger.info("Seeded default template %s", template_id)
                row = await self._fetch_one(
                    "SELECT id, content, created_at, updated_at FROM templates WHERE id = ?",
                    (template_id,),
                )
        return Template(**dict(row))

    async def update_template(self, template_id: int, content: str) -> Optional[Template]:
        rowcount, _ = await self._execute(
            "UPDATE templates SET content = ?, updated_at = ? WHERE id = ?",
            (content, _to_db_time(now_utc()), template_id),
        )
        if rowcount == 0:
            return None
        return await self.get_template(template_id)

    # Metric queries

    async def get_metric_queries(self, template_id: int) -> list[MetricQuerySpec]:
        rows = await self._fetch_all(
            f"SELECT {QUERY_COLUMNS} FROM metric_queries WHERE template_id = ? ORDER BY id",
            (template_id,),
        )
        return [_query_from_row(row) for row in rows]

    async def create_metric_query(
        self, template_id: int, spec: MetricQuerySpec
    ) -> MetricQuerySpec:
        now = _to_db_time(now_utc())
        try:
            _, query_id = await self._execute(
                "INSERT INTO metric_queries (template_id, name, address, query, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (template_id, spec.name, spec.address, spec.query, now, now),
            )
        except aiosqlite.IntegrityError as e:
            if not _is_unique_violation(e):
                raise
            raise DuplicateMetricNameError(template_id, spec.name) from e
        return spec.model_copy(update={"id": query_id, "template_id": template_id})

    async def update_metric_query(
        self, query_id: int, spec: MetricQuerySpec
    ) -> Optional[MetricQuerySpec]:
        try:
            rowcount, _ = await self._execute(
                "UPDATE metric_queries SET name = ?, address = ?, query = ?, updated_at = ? "
                "WHERE id = ?",
                (spec.name, spec.address, spec.query, _to_db_time(now_utc()), query_id),
            )
        except aiosqlite.IntegrityError as e:
            if not _is_unique_violation(e):
                raise
            existing = await self._fetch_one(
                "SELECT template_id FROM metric_queries WHERE id = ?", (query_id,)
            )
            template_id = existing["template_id"] if existing is not None else 0
            raise DuplicateMetricNameError(template_id, spec.name) from e
        if rowcount == 0:
            return None
        row = await self._fetch_one(
            f"SELECT {QUERY_COLUMNS} FROM metric_queries WHERE id = ?", (query_id,)
        )
        return _query_from_row(row) if row is not None else None

    async def delete_metric_query(self, query_id: int) -> bool:
        rowcount, _ = await self._execute("DELETE FROM metric_queries WHERE id = ?", (query_id,))
        return rowcount > 0

    async def close(self) -> None:
        # Connections are per-operation; nothing is held open
        logger.debug("SQLite store closed: %s", self.database_path)
