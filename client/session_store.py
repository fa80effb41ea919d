"""
client/session_store.py -- SQLite-backed persistence for the client session.

Holds the last known token and user snapshot so a restarted client can pick
up where it left off. One row per key; the user snapshot is stored as JSON.

Usage:
    store = SessionStore()                  # ~/.taskboard/session.db
    store.save("eyJ...", {"username": "alice"})
    token, user = store.load()
    store.clear()
"""

import json
import sqlite3
from pathlib import Path
from typing import Optional, Union

_DEFAULT_DB = Path.home() / ".taskboard" / "session.db"

_DDL = """
CREATE TABLE IF NOT EXISTS session (
    key     TEXT PRIMARY KEY,
    value   TEXT NOT NULL
);
"""


class SessionStore:
    def __init__(self, db_path: Union[Path, str] = _DEFAULT_DB) -> None:
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.execute(_DDL)
        self._conn.commit()

    def load(self) -> tuple[Optional[str], Optional[dict]]:
        """Return (token, user). Either may be None if nothing is stored."""
        rows = dict(self._conn.execute("SELECT key, value FROM session").fetchall())
        token = rows.get("token") or None
        user = json.loads(rows["user"]) if rows.get("user") else None
        return token, user

    def save(self, token: str, user: Optional[dict]) -> None:
        """Replace the stored token and snapshot in one transaction."""
        with self._conn:
            self._conn.execute("INSERT OR REPLACE INTO session (key, value) VALUES ('token', ?)", (token,))
            if user is None:
                self._conn.execute("DELETE FROM session WHERE key = 'user'")
            else:
                self._conn.execute(
                    "INSERT OR REPLACE INTO session (key, value) VALUES ('user', ?)",
                    (json.dumps(user),),
                )

    def clear(self) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM session")

    def close(self) -> None:
        self._conn.close()
