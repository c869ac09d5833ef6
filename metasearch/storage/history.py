"""SQLite-backed search history and per-client preferences."""

import asyncio
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import aiosqlite

from ..exceptions import StorageError

logger = logging.getLogger(__name__)


@dataclass
class Preferences:
    default_engine: str = "default"
    results_per_page: int = 10
    safe_search: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class HistoryStore:
    """Async SQLite store for search history and client preferences.

    The schema is created on first use; concurrent first callers are
    serialized by an init lock.
    """

    def __init__(self, db_path: Union[str, Path] = "search_service.db"):
        """Initialize HistoryStore.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create schema if not exists."""
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            try:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute("PRAGMA journal_mode = WAL")
                    await db.execute("PRAGMA busy_timeout = 5000")

                    await db.execute("""
                        CREATE TABLE IF NOT EXISTS search_history (
                            id INTEGER PRIMARY KEY AUTOINCREMENT,
                            query TEXT NOT NULL,
                            results_count INTEGER DEFAULT 0,
                            search_engine TEXT,
                            client_id TEXT,
                            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                        )
                    """)
                    await db.execute("""
                        CREATE TABLE IF NOT EXISTS user_preferences (
                            client_id TEXT PRIMARY KEY,
                            default_search_engine TEXT DEFAULT 'default',
                            results_per_page INTEGER DEFAULT 10,
                            safe_search INTEGER DEFAULT 1,
                            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                        )
                    """)
                    await db.execute(
                        "CREATE INDEX IF NOT EXISTS idx_history_client ON search_history(client_id)"
                    )
                    await db.commit()
            except aiosqlite.Error as e:
                raise StorageError(f"Cannot initialize database {self.db_path}: {e}") from e

            self._initialized = True
            logger.info(f"History store ready at {self.db_path}")

    async def record_history(
        self,
        query: str,
        result_count: int,
        engine_used: Optional[str],
        client_id: Optional[str] = None,
    ) -> int:
        """Append one search to the history; returns the row id."""
        await self.initialize()

        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    "INSERT INTO search_history (query, results_count, search_engine, client_id) "
                    "VALUES (?, ?, ?, ?)",
                    (query, result_count, engine_used, client_id),
                )
                await db.commit()
                return cursor.lastrowid
        except aiosqlite.Error as e:
            raise StorageError(f"Cannot record search history: {e}") from e

    async def get_history(self, limit: int = 50, client_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Most recent searches first, optionally restricted to one client."""
        await self.initialize()

        if client_id is not None:
            sql = (
                "SELECT * FROM search_history WHERE client_id = ? "
                "ORDER BY created_at DESC, id DESC LIMIT ?"
            )
            params: tuple = (client_id, limit)
        else:
            sql = "SELECT * FROM search_history ORDER BY created_at DESC, id DESC LIMIT ?"
            params = (limit,)

        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                async with db.execute(sql, params) as cursor:
                    rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageError(f"Cannot read search history: {e}") from e

        return [dict(row) for row in rows]

    async def get_preferences(self, client_id: Optional[str]) -> Preferences:
        """Stored preferences for a client, or the defaults."""
        if client_id is None:
            return Preferences()

        await self.initialize()

        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                async with db.execute(
                    "SELECT * FROM user_preferences WHERE client_id = ?", (client_id,)
                ) as cursor:
                    row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageError(f"Cannot read preferences: {e}") from e

        if row is None:
            return Preferences()

        return Preferences(
            default_engine=row["default_search_engine"],
            results_per_page=row["results_per_page"],
            safe_search=bool(row["safe_search"]),
        )

    async def update_preferences(self, client_id: str, partial: Dict[str, Any]) -> Preferences:
        """Merge a partial update over the current preferences and store the result."""
        current = await self.get_preferences(client_id)
        merged = Preferences(
            default_engine=partial.get("default_engine", current.default_engine),
            results_per_page=partial.get("results_per_page", current.results_per_page),
            safe_search=partial.get("safe_search", current.safe_search),
        )

        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    """
                    INSERT INTO user_preferences
                        (client_id, default_search_engine, results_per_page, safe_search, updated_at)
                    VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(client_id) DO UPDATE SET
                        default_search_engine = excluded.default_search_engine,
                        results_per_page = excluded.results_per_page,
                        safe_search = excluded.safe_search,
                        updated_at = CURRENT_TIMESTAMP
                """,
                    (client_id, merged.default_engine, merged.results_per_page, int(merged.safe_search)),
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"Cannot update preferences: {e}") from e

        return merged
