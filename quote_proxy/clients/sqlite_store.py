"""SQLite-backed credential store for local development and single-host deployments."""

from __future__ import annotations

import asyncio
import sqlite3
import time
from pathlib import Path
from typing import Callable, Optional

from quote_proxy.core.errors import StoreUnavailableError


class SQLiteStore:
    """Key-value store keeping one row per key with an optional expiry timestamp."""

    supports_conditional_put = True

    def __init__(
        self,
        db_path: str,
        *,
        key_prefix: str = "",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db_path = Path(db_path)
        self._prefix = key_prefix
        self._clock = clock
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False, timeout=5.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS credentials (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at REAL
                )
                """
            )

    def _expiry(self, ttl_seconds: Optional[int]) -> Optional[float]:
        return None if ttl_seconds is None else self._clock() + ttl_seconds

    def _get(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value, expires_at FROM credentials WHERE key = ?",
                (self._prefix + key,),
            ).fetchone()
        if not row:
            return None
        if row["expires_at"] is not None and row["expires_at"] <= self._clock():
            return None
        return row["value"]

    def _put(self, key: str, value: str, ttl_seconds: Optional[int]) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO credentials (key, value, expires_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    expires_at = excluded.expires_at
                """,
                (self._prefix + key, value, self._expiry(ttl_seconds)),
            )

    def _delete(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM credentials WHERE key = ?", (self._prefix + key,))

    def _put_if_absent(self, key: str, value: str, ttl_seconds: Optional[int]) -> bool:
        now = self._clock()
        with self._connect() as conn:
            # The DELETE takes the write lock, so the INSERT below cannot race
            # another process doing the same.
            conn.execute(
                "DELETE FROM credentials WHERE key = ? AND expires_at IS NOT NULL AND expires_at <= ?",
                (self._prefix + key, now),
            )
            cursor = conn.execute(
                "INSERT OR IGNORE INTO credentials (key, value, expires_at) VALUES (?, ?, ?)",
                (self._prefix + key, value, self._expiry(ttl_seconds)),
            )
            return cursor.rowcount == 1

    async def _run(self, func: Callable[..., object], *args: object):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"SQLite credential store failed: {exc}") from exc

    async def get(self, key: str) -> Optional[str]:
        return await self._run(self._get, key)

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        await self._run(self._put, key, value, ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._run(self._delete, key)

    async def put_if_absent(
        self, key: str, value: str, ttl_seconds: Optional[int] = None
    ) -> bool:
        return await self._run(self._put_if_absent, key, value, ttl_seconds)


__all__ = ["SQLiteStore"]
