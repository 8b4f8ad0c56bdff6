from __future__ import annotations
import aiosqlite
from datetime import datetime, timezone
from typing import Dict, List, Optional
from ..domain.models import DeviceState, RuleSpec


class SQLiteRepository:
    def __init__(self, path: str) -> None:
        self._path = path

    async def init(self) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS rules (
                    id TEXT PRIMARY KEY,
                    text TEXT NOT NULL,
                    active INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS device_states (
                    device_id TEXT PRIMARY KEY,
                    power INTEGER NOT NULL,
                    temperature REAL,
                    mode TEXT,
                    brightness INTEGER,
                    updated_at TEXT NOT NULL
                )
                """
            )
            await db.execute("CREATE INDEX IF NOT EXISTS idx_rules_active ON rules(active)")
            await db.commit()

    # --- Rules ---

    async def upsert(self, rule_id: str, spec: RuleSpec) -> None:
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                "INSERT INTO rules(id, text, active, created_at, updated_at) VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET text=excluded.text, active=excluded.active, "
                "updated_at=excluded.updated_at",
                (rule_id, spec.text, 1 if spec.active else 0, now, now),
            )
            await db.commit()

    async def list_active(self) -> List[RuleSpec]:
        return await self._query_rules("WHERE active = 1")

    async def list_rules(self) -> List[RuleSpec]:
        return await self._query_rules("")

    async def get_rule(self, rule_id: str) -> Optional[RuleSpec]:
        rows = await self._query_rules("WHERE id = ?", (rule_id,))
        return rows[0] if rows else None

    async def _query_rules(self, where: str, params: tuple = ()) -> List[RuleSpec]:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                f"SELECT id, text, active, created_at, updated_at FROM rules {where} ORDER BY created_at",
                params,
            )
            rows = await cur.fetchall()
        return [
            RuleSpec(
                id=rid,
                text=text,
                active=bool(active),
                created_at=datetime.fromisoformat(created),
                updated_at=datetime.fromisoformat(updated),
            )
            for rid, text, active, created, updated in rows
        ]

    # --- Device state mirror ---

    async def save_device_state(self, device_id: str, state: DeviceState) -> None:
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                "INSERT INTO device_states(device_id, power, temperature, mode, brightness, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(device_id) DO UPDATE SET power=excluded.power, "
                "temperature=excluded.temperature, mode=excluded.mode, "
                "brightness=excluded.brightness, updated_at=excluded.updated_at",
                (device_id, 1 if state.power else 0, state.temperature, state.mode, state.brightness, now),
            )
            await db.commit()

    async def list_device_states(self) -> Dict[str, DeviceState]:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                "SELECT device_id, power, temperature, mode, brightness FROM device_states"
            )
            rows = await cur.fetchall()
        return {
            did: DeviceState(power=bool(power), temperature=temp, mode=mode, brightness=level)
            for did, power, temp, mode, level in rows
        }
