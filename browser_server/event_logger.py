"""SQLite-backed activity journal for sessions, tool calls and traffic."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

_EVENT_TABLES = ("action_events", "network_events")


class BrowserEventLogger:
    """Persist session lifecycle, tool-call and network events into SQLite."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._closed = False

    def start(self) -> None:
        with self._lock:
            self._closed = False
            if self._conn is not None:
                return
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False, timeout=10)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA busy_timeout=5000;")
            self._conn = conn
            self._init_schema()

    def close(self) -> None:
        with self._lock:
            self._closed = True
            if self._conn is None:
                return
            try:
                self._conn.close()
            except Exception as e:
                logger.warning("Failed to close event journal %s: %s", self.db_path, e)
            self._conn = None

    def session_opened(self, session_id: str, created_at: int, expires_at: int) -> None:
        self._safe_execute(
            """
            INSERT OR REPLACE INTO sessions (
                session_id, created_at, expires_at, closed_at, close_reason
            ) VALUES (?, ?, ?, NULL, NULL)
            """,
            (str(session_id), int(created_at), int(expires_at)),
        )

    def session_closed(self, session_id: str, reason: str) -> None:
        self._safe_execute(
            """
            UPDATE sessions
               SET closed_at = ?, close_reason = ?
             WHERE session_id = ?
            """,
            (int(time.time() * 1000), str(reason or "unknown"), str(session_id)),
        )

    def log_action_event(self, payload: Dict[str, Any]) -> None:
        self._insert_event("action_events", payload)

    def log_network_event(self, payload: Dict[str, Any]) -> None:
        self._insert_event("network_events", payload)

    def fetch_events(self, table: str, session_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Read back journalled events, oldest first."""
        if table not in _EVENT_TABLES:
            raise ValueError(f"Unknown event table: {table}")
        sql = f"SELECT session_id, ts, event_type, payload_json FROM {table}"
        params: tuple[Any, ...] = ()
        if session_id is not None:
            sql += " WHERE session_id = ?"
            params = (str(session_id),)
        sql += " ORDER BY id"
        with self._lock:
            if self._conn is None:
                return []
            rows = self._conn.execute(sql, params).fetchall()
        return [
            {"session_id": r[0], "ts": r[1], "event_type": r[2], "payload": json.loads(r[3])}
            for r in rows
        ]

    def fetch_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            if self._conn is None:
                return None
            row = self._conn.execute(
                "SELECT session_id, created_at, expires_at, closed_at, close_reason"
                " FROM sessions WHERE session_id = ?",
                (str(session_id),),
            ).fetchone()
        if row is None:
            return None
        keys = ("session_id", "created_at", "expires_at", "closed_at", "close_reason")
        return dict(zip(keys, row))

    def _init_schema(self) -> None:
        self._safe_execute(
            """
            CREATE TABLE IF NOT EXISTS sessions (
                session_id TEXT PRIMARY KEY,
                created_at INTEGER,
                expires_at INTEGER,
                closed_at INTEGER,
                close_reason TEXT
            )
            """
        )

        for table in _EVENT_TABLES:
            self._safe_execute(
                f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT,
                    ts REAL,
                    event_type TEXT,
                    payload_json TEXT
                )
                """
            )
            self._safe_execute(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_session_id ON {table}(session_id)"
            )
            self._safe_execute(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_event_type ON {table}(event_type)"
            )

    def _insert_event(self, table: str, payload: Dict[str, Any]) -> None:
        p = payload if isinstance(payload, dict) else {}
        session_id = str(p.get("session_id") or "")
        event_type = str(p.get("event_type") or "")
        ts = p.get("ts")
        try:
            ts_val = float(ts if ts is not None else time.time())
        except Exception:
            ts_val = float(time.time())
        try:
            payload_json = json.dumps(p.get("payload", {}), ensure_ascii=False, default=str)
        except Exception:
            payload_json = json.dumps({"_error": "payload_not_serializable"}, ensure_ascii=False)
        self._safe_execute(
            f"""
            INSERT INTO {table} (session_id, ts, event_type, payload_json)
            VALUES (?, ?, ?, ?)
            """,
            (session_id, ts_val, event_type, payload_json),
        )

    def _safe_execute(self, sql: str, params: tuple[Any, ...] = ()) -> None:
        with self._lock:
            try:
                # Late writes after close() are dropped rather than reopening.
                if self._conn is None and not self._closed:
                    self.start()
                if self._conn is None:
                    return
                self._conn.execute(sql, params)
                self._conn.commit()
            except Exception as e:
                # Journal is best-effort: never raise back into automation flow.
                logger.debug("Event journal write failed: %s", e)
