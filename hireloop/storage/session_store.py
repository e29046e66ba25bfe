from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Optional, Union

from hireloop.protocol.messages import SessionUser, TokenPair

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
USER_KEY = "user"


class SessionStore:
    """Durable key/value storage for the token pair and the session profile."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = str(path)
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        self.conn.commit()

    def _get(self, key: str) -> Optional[str]:
        row = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def _set(self, key: str, value: str) -> None:
        self.conn.execute("INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (key, value))
        self.conn.commit()

    def get_access_token(self) -> Optional[str]:
        return self._get(ACCESS_TOKEN_KEY)

    def get_refresh_token(self) -> Optional[str]:
        return self._get(REFRESH_TOKEN_KEY)

    def save_tokens(self, pair: TokenPair) -> None:
        # Both keys go in one transaction so no mixed pair is ever readable.
        with self.conn:
            self.conn.execute(
                "DELETE FROM kv WHERE key IN (?, ?)", (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY)
            )
            self.conn.executemany(
                "INSERT INTO kv (key, value) VALUES (?, ?)",
                [
                    (ACCESS_TOKEN_KEY, pair.access_token),
                    (REFRESH_TOKEN_KEY, pair.refresh_token),
                ],
            )
        logger.debug("Stored new token pair")

    def clear_tokens(self) -> None:
        with self.conn:
            self.conn.execute(
                "DELETE FROM kv WHERE key IN (?, ?)", (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY)
            )

    def get_user(self) -> Optional[SessionUser]:
        """Stored profile; raises ValueError when the record is corrupt."""
        raw = self._get(USER_KEY)
        if raw is None:
            return None
        return SessionUser.model_validate(json.loads(raw))

    def save_user(self, user: SessionUser) -> None:
        self._set(USER_KEY, json.dumps(user.to_wire(), ensure_ascii=False))

    def clear(self) -> None:
        with self.conn:
            self.conn.execute(
                "DELETE FROM kv WHERE key IN (?, ?, ?)", (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_KEY)
            )

    def close(self) -> None:
        self.conn.close()


__all__ = ["ACCESS_TOKEN_KEY", "REFRESH_TOKEN_KEY", "USER_KEY", "SessionStore"]
