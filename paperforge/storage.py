"""Concrete item repository backed by SQLite."""
from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path
from typing import Iterable, List, Optional

from .models import Item
from .repositories import ItemRepository


class SqliteItemRepository(ItemRepository):
    """Stores bank items as JSON payloads with indexed level/type/usage columns."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._initialise_schema()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _initialise_schema(self) -> None:
        with self._lock:
            cursor = self._conn.cursor()
            cursor.executescript(
                """
                CREATE TABLE IF NOT EXISTS items (
                    owner_id TEXT NOT NULL,
                    item_id TEXT NOT NULL,
                    level TEXT NOT NULL,
                    item_type TEXT NOT NULL,
                    usage_count INTEGER NOT NULL DEFAULT 0,
                    payload_json TEXT NOT NULL,
                    PRIMARY KEY (owner_id, item_id)
                );

                CREATE INDEX IF NOT EXISTS idx_items_owner_level
                    ON items (owner_id, level, item_type);
                """
            )
            self._conn.commit()

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> Item:
        payload = json.loads(row["payload_json"])
        payload["usage_count"] = row["usage_count"]
        return Item.model_validate(payload)

    def add_items(self, owner_id: str, items: Iterable[Item]) -> List[Item]:
        stored = [item.model_copy(update={"owner_id": owner_id}) for item in items]
        rows = [
            (
                owner_id,
                item.id,
                item.level,
                item.type,
                item.usage_count,
                json.dumps(item.model_dump(exclude={"usage_count"})),
            )
            for item in stored
        ]
        if not rows:
            return []
        with self._lock:
            cursor = self._conn.cursor()
            cursor.executemany(
                """
                INSERT OR REPLACE INTO items (owner_id, item_id, level, item_type, usage_count, payload_json)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            self._conn.commit()
        return stored

    def get_item(self, owner_id: str, item_id: str) -> Item:
        with self._lock:
            cursor = self._conn.cursor()
            row = cursor.execute(
                "SELECT payload_json, usage_count FROM items WHERE owner_id = ? AND item_id = ?",
                (owner_id, item_id),
            ).fetchone()
        if not row:
            raise KeyError(f"Item {item_id} does not exist for owner {owner_id}")
        return self._row_to_item(row)

    def list_items(
        self, owner_id: str, level: Optional[str] = None, item_type: Optional[str] = None
    ) -> List[Item]:
        query = "SELECT payload_json, usage_count FROM items WHERE owner_id = ?"
        params: List[str] = [owner_id]
        if level is not None:
            query += " AND level = ?"
            params.append(level)
        if item_type is not None:
            query += " AND item_type = ?"
            params.append(item_type)
        query += " ORDER BY rowid"
        with self._lock:
            cursor = self._conn.cursor()
            rows = cursor.execute(query, params).fetchall()
        return [self._row_to_item(row) for row in rows]

    def increment_usage(self, owner_id: str, item_ids: Iterable[str]) -> int:
        unique_ids = list(dict.fromkeys(item_ids))
        if not unique_ids:
            return 0
        with self._lock:
            cursor = self._conn.cursor()
            cursor.executemany(
                """
                UPDATE items
                   SET usage_count = usage_count + 1
                 WHERE owner_id = ? AND item_id = ?
                """,
                [(owner_id, item_id) for item_id in unique_ids],
            )
            updated = cursor.rowcount
            self._conn.commit()
        return updated


__all__ = ["SqliteItemRepository"]
