from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from .nback_core import GameMode, Modality, ModalityStats, SessionSummary
from .scoring import utc_now_iso

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
SESSIONS_STORAGE_KEY = "nback-sessions"


def summary_to_record(summary: SessionSummary) -> dict[str, Any]:
    """Flat, JSON-ready record for one session."""

    record: dict[str, Any] = {
        "trials": int(summary.trials),
        "n_level": int(summary.n_level),
        "accuracy": float(summary.accuracy),
        "visual_accuracy": float(summary.visual.accuracy),
        "audio_accuracy": float(summary.audio.accuracy),
        "average_response_time": float(summary.average_response_time_ms),
        "mode": summary.mode.value,
        "timestamp": str(summary.timestamp),
    }
    for m in Modality:
        s = summary.stats(m)
        record[f"actual_{m.value}_matches"] = int(s.actual_matches)
        record[f"{m.value}_hits"] = int(s.hits)
        record[f"{m.value}_misses"] = int(s.misses)
        record[f"{m.value}_false_alarms"] = int(s.false_alarms)
        record[f"{m.value}_correct_rejections"] = int(s.correct_rejections)
    return record


def summary_from_record(record: dict[str, Any]) -> SessionSummary:
    """Inverse of ``summary_to_record``. Raises KeyError/TypeError/ValueError on bad input."""

    if not isinstance(record, dict):
        raise TypeError("session record must be an object")

    def stats(m: Modality) -> ModalityStats:
        return ModalityStats(
            modality=m,
            accuracy=float(record[f"{m.value}_accuracy"]),
            actual_matches=int(record.get(f"actual_{m.value}_matches", 0)),
            hits=int(record.get(f"{m.value}_hits", 0)),
            misses=int(record.get(f"{m.value}_misses", 0)),
            false_alarms=int(record.get(f"{m.value}_false_alarms", 0)),
            correct_rejections=int(record.get(f"{m.value}_correct_rejections", 0)),
        )

    return SessionSummary(
        trials=int(record["trials"]),
        n_level=int(record["n_level"]),
        mode=GameMode(record["mode"]),
        accuracy=float(record["accuracy"]),
        average_response_time_ms=float(record["average_response_time"]),
        timestamp=str(record["timestamp"]),
        visual=stats(Modality.VISUAL),
        audio=stats(Modality.AUDIO),
    )


def decode_sessions(raw: str | None) -> list[SessionSummary]:
    """Parse a stored JSON array; anything unreadable yields an empty list."""

    if raw is None or raw.strip() == "":
        return []
    try:
        payload = json.loads(raw)
    except ValueError:
        logger.warning("session store holds invalid JSON; treating as empty")
        return []
    if not isinstance(payload, list):
        logger.warning("session store holds %s, expected a list; treating as empty", type(payload).__name__)
        return []

    sessions: list[SessionSummary] = []
    for item in payload:
        try:
            sessions.append(summary_from_record(item))
        except (KeyError, TypeError, ValueError):
            logger.warning("skipping malformed session record: %r", item)
    return sessions


def open_db(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(path)
    try:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        _migrate(conn)
    except sqlite3.Error:
        conn.close()
        raise
    return conn


def _migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("PRAGMA user_version;").fetchone()
    ver = int(row[0]) if row else 0
    if ver >= SCHEMA_VERSION:
        return

    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at_utc TEXT NOT NULL
            );
            """
        )
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION};")


class SqliteSessionStore:
    """Key-value SQLite store holding the session list as one JSON array."""

    def __init__(self, path: Path, *, key: str = SESSIONS_STORAGE_KEY) -> None:
        self._path = Path(path)
        self._key = str(key)

    @property
    def path(self) -> Path:
        return self._path

    def load_sessions(self) -> list[SessionSummary]:
        if not self._path.exists():
            return []
        try:
            conn = open_db(self._path)
            try:
                return decode_sessions(self._read_raw(conn))
            finally:
                conn.close()
        except sqlite3.Error:
            logger.warning("could not read session store %s; treating as empty", self._path, exc_info=True)
            return []

    def append_session(self, summary: SessionSummary) -> bool:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            conn = open_db(self._path)
            try:
                with conn:
                    sessions = decode_sessions(self._read_raw(conn))
                    records = [summary_to_record(s) for s in sessions]
                    records.append(summary_to_record(summary))
                    conn.execute(
                        """
                        INSERT INTO kv_store(key, value, updated_at_utc) VALUES (?, ?, ?)
                        ON CONFLICT(key) DO UPDATE SET
                            value = excluded.value,
                            updated_at_utc = excluded.updated_at_utc
                        """,
                        (self._key, json.dumps(records), utc_now_iso()),
                    )
            finally:
                conn.close()
        except (sqlite3.Error, OSError):
            logger.exception("failed to append session to %s", self._path)
            return False
        return True

    def _read_raw(self, conn: sqlite3.Connection) -> str | None:
        row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (self._key,)).fetchone()
        return None if row is None else str(row[0])


class InMemorySessionStore:
    """Process-local store; keeps serialized records like the SQLite store does."""

    def __init__(self, raw: str | None = None) -> None:
        self._raw = raw

    @property
    def raw(self) -> str | None:
        return self._raw

    def load_sessions(self) -> list[SessionSummary]:
        return decode_sessions(self._raw)

    def append_session(self, summary: SessionSummary) -> bool:
        records = [summary_to_record(s) for s in self.load_sessions()]
        records.append(summary_to_record(summary))
        self._raw = json.dumps(records)
        return True
