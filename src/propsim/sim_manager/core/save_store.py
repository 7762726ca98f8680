"""
Save-slot persistence for propsim.

A save store is a flat key/value blob store: one serialized GameState JSON
document per slot key. Two backends are provided, an in-memory dict for
tests and embedding, and a SQLite table reached through the shared
`get_connection` helper.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from propsim.common.db import execute_script, get_connection

logger = logging.getLogger(__name__)

DEFAULT_SAVE_SLOT = "propsim_game_save"

SAVE_SCHEMA = """
CREATE TABLE IF NOT EXISTS save_slots (
    slot_key TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    saved_at TEXT NOT NULL
);
"""


class SaveStore:
    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, blob: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError


class InMemorySaveStore(SaveStore):
    def __init__(self) -> None:
        self._slots: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._slots.get(key)

    def set(self, key: str, blob: str) -> None:
        self._slots[key] = blob

    def delete(self, key: str) -> bool:
        return self._slots.pop(key, None) is not None


class SqliteSaveStore(SaveStore):
    """
    SQLite-backed save slots.

    Args:
        db_path: Database file. Defaults to the PROPSIM_DB_PATH resolution
            in `propsim.common.db`.
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        self.db_path = db_path
        execute_script(SAVE_SCHEMA, self.db_path)

    def get(self, key: str) -> str | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute("SELECT payload FROM save_slots WHERE slot_key = ?", (key,)).fetchone()
        return row["payload"] if row else None

    def set(self, key: str, blob: str) -> None:
        saved_at = datetime.now(timezone.utc).isoformat()
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO save_slots(slot_key, payload, saved_at) VALUES (?, ?, ?)
                ON CONFLICT(slot_key) DO UPDATE SET payload = excluded.payload, saved_at = excluded.saved_at
                """,
                (key, blob, saved_at),
            )
        logger.debug("Wrote save slot '%s' (%d bytes)", key, len(blob))

    def delete(self, key: str) -> bool:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM save_slots WHERE slot_key = ?", (key,))
            return cursor.rowcount > 0

    def list_slots(self) -> list[dict[str, str]]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute("SELECT slot_key, saved_at FROM save_slots ORDER BY saved_at DESC").fetchall()
        return [{"slot_key": row["slot_key"], "saved_at": row["saved_at"]} for row in rows]
