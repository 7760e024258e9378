"""Cached action storage in SQLite, keyed by (website, name)."""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path

import aiosqlite

from .models import ActionKind, CachedAction, CacheKey

logger = logging.getLogger(__name__)


class ActionStore:
    """Async SQLite store for cached actions.

    The (website, name) pair is unique. Saving an action whose key already
    exists replaces the previous record (upsert), so a re-teach or two
    concurrent teaches of the same key leave exactly one entry behind.
    """

    def __init__(self, db_path: Path | None = None):
        """Initialize ActionStore.

        Args:
            db_path: Path to SQLite database. Defaults to the configured cache database.
        """
        if db_path is None:
            from ..config import settings

            db_path = settings.cache.get_db_path()
        self.db_path = db_path
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create schema if not exists."""
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA journal_mode = WAL")
                await db.execute("PRAGMA busy_timeout = 5000")

                await db.execute("""
                    CREATE TABLE IF NOT EXISTS cached_actions (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        website TEXT NOT NULL,
                        name TEXT NOT NULL,
                        kind TEXT NOT NULL,
                        instruction TEXT NOT NULL,
                        payload TEXT NOT NULL,
                        shape TEXT,
                        created_at TEXT NOT NULL,
                        UNIQUE (website, name)
                    )
                """)
                await db.execute("CREATE INDEX IF NOT EXISTS idx_cached_actions_website ON cached_actions(website)")
                await db.commit()

            self._initialized = True

    async def save_cached_action(self, action: CachedAction) -> CachedAction:
        """Insert or replace the action stored under its cache key.

        Returns:
            The stored action with its assigned id

        Raises:
            ValueError: If the action violates storage invariants
        """
        action.validate()
        await self.initialize()

        key = action.key
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO cached_actions (website, name, kind, instruction, payload, shape, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (website, name) DO UPDATE SET
                    kind = excluded.kind,
                    instruction = excluded.instruction,
                    payload = excluded.payload,
                    shape = excluded.shape,
                    created_at = excluded.created_at
            """,
                (
                    key.website,
                    key.name,
                    action.kind.value,
                    action.instruction,
                    json.dumps(action.payload, default=str),
                    action.shape,
                    action.created_at.isoformat(),
                ),
            )
            await db.commit()
            async with db.execute(
                "SELECT id FROM cached_actions WHERE website = ? AND name = ?",
                (key.website, key.name),
            ) as cursor:
                row = await cursor.fetchone()

        logger.info(f"Saved cached action: {key}")
        return CachedAction(
            id=row[0] if row else None,
            name=key.name,
            website=key.website,
            kind=action.kind,
            instruction=action.instruction,
            payload=action.payload,
            shape=action.shape,
            created_at=action.created_at,
        )

    async def get_cached_action(self, key: CacheKey) -> CachedAction | None:
        """Look up the action stored under a cache key."""
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM cached_actions WHERE website = ? AND name = ?",
                (key.website, key.name),
            ) as cursor:
                row = await cursor.fetchone()
        return self._row_to_action(row) if row else None

    async def list_cached_actions(self, website: str | None = None) -> list[CachedAction]:
        """List cached actions, optionally for one website, in insertion order."""
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            if website:
                query = "SELECT * FROM cached_actions WHERE website = ? ORDER BY id"
                params: tuple = (website.strip().lower(),)
            else:
                query = "SELECT * FROM cached_actions ORDER BY id"
                params = ()
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
        return [self._row_to_action(row) for row in rows]

    async def delete_cached_action(self, action_id: int) -> bool:
        """Delete one action by id. Returns True if it existed."""
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("DELETE FROM cached_actions WHERE id = ?", (action_id,))
            await db.commit()
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted cached action: {action_id}")
        return deleted

    async def clear_cache(self, website: str | None = None) -> int:
        """Delete all actions, or all actions of one website. Returns count deleted."""
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            if website:
                cursor = await db.execute("DELETE FROM cached_actions WHERE website = ?", (website.strip().lower(),))
            else:
                cursor = await db.execute("DELETE FROM cached_actions")
            await db.commit()
            count = cursor.rowcount

        logger.info(f"Cleared {count} cached actions" + (f" for {website}" if website else ""))
        return count

    @staticmethod
    def _row_to_action(row: aiosqlite.Row) -> CachedAction:
        """Convert DB row to CachedAction."""
        try:
            payload = json.loads(row["payload"])
        except json.JSONDecodeError:
            payload = {}

        return CachedAction(
            id=row["id"],
            name=row["name"],
            website=row["website"],
            kind=ActionKind(row["kind"]),
            instruction=row["instruction"],
            payload=payload if isinstance(payload, dict) else {"value": payload},
            shape=row["shape"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


# Singleton instance for server use
_action_store: ActionStore | None = None


def get_action_store() -> ActionStore:
    """Get the singleton ActionStore instance."""
    global _action_store
    if _action_store is None:
        _action_store = ActionStore()
    return _action_store
