from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path
import sqlite3
import threading
from typing import Any, Protocol

from .errors import PersistenceFailure, SessionNotFound
from .models import Session, utc_now


class SessionPersistence(Protocol):
    def save(self, session: Session) -> None:
        ...

    def load(self, session_id: str) -> Session:
        ...


@dataclass(frozen=True, slots=True)
class SessionSummary:
    id: str
    name: str
    url: str
    start_time: str
    end_time: str | None
    action_count: int


class SessionStore:
    def __init__(self, base_dir: Path | None = None) -> None:
        root = base_dir or (Path.home() / ".actionscribe")
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceFailure(f"Could not create session folder {root}: {exc}") from exc
        self.db_path = root / "sessions.db"
        self.json_path = root / "sessions.json"
        self._lock = threading.Lock()
        self._use_sqlite = self._initialize_sqlite()
        if not self._use_sqlite:
            self._initialize_json()

    @property
    def backend(self) -> str:
        return "sqlite" if self._use_sqlite else "json"

    def _initialize_sqlite(self) -> bool:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS sessions (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        url TEXT NOT NULL,
                        start_time TEXT NOT NULL,
                        end_time TEXT,
                        action_count INTEGER NOT NULL,
                        payload TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                conn.commit()
            return True
        except sqlite3.Error:
            return False

    def _initialize_json(self) -> None:
        if self.json_path.exists():
            return
        self._write_json({"sessions": {}})

    def _fall_back_to_json(self) -> None:
        self._use_sqlite = False
        self._initialize_json()

    def save(self, session: Session) -> None:
        payload = session.to_dict()
        with self._lock:
            if self._use_sqlite:
                try:
                    self._save_sqlite(payload)
                    return
                except sqlite3.Error:
                    self._fall_back_to_json()
            data = self._read_json()
            data["sessions"][session.id] = payload
            self._write_json(data)

    def _save_sqlite(self, payload: dict[str, Any]) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO sessions (
                    id,
                    name,
                    url,
                    start_time,
                    end_time,
                    action_count,
                    payload,
                    updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    url = excluded.url,
                    start_time = excluded.start_time,
                    end_time = excluded.end_time,
                    action_count = excluded.action_count,
                    payload = excluded.payload,
                    updated_at = excluded.updated_at
                """,
                (
                    payload["id"],
                    payload["name"],
                    payload["url"],
                    payload["startTime"],
                    payload["endTime"],
                    len(payload["actions"]),
                    json.dumps(payload, ensure_ascii=False),
                    utc_now().isoformat(),
                ),
            )
            conn.commit()

    def load(self, session_id: str) -> Session:
        with self._lock:
            payload: Any = None
            if self._use_sqlite:
                try:
                    with sqlite3.connect(self.db_path) as conn:
                        row = conn.execute("SELECT payload FROM sessions WHERE id = ?", (session_id,)).fetchone()
                    if row is None:
                        raise SessionNotFound(session_id)
                    payload = json.loads(row[0])
                except sqlite3.Error:
                    self._fall_back_to_json()
            if payload is None:
                payload = self._read_json()["sessions"].get(session_id)
                if payload is None:
                    raise SessionNotFound(session_id)

        try:
            return Session.from_dict(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise PersistenceFailure(f"Stored session {session_id} is malformed: {exc}") from exc

    def list_sessions(self) -> list[SessionSummary]:
        with self._lock:
            if self._use_sqlite:
                try:
                    with sqlite3.connect(self.db_path) as conn:
                        rows = conn.execute(
                            """
                            SELECT id, name, url, start_time, end_time, action_count
                            FROM sessions
                            ORDER BY start_time DESC
                            """
                        ).fetchall()
                    return [
                        SessionSummary(
                            id=str(row[0]),
                            name=str(row[1]),
                            url=str(row[2]),
                            start_time=str(row[3]),
                            end_time=str(row[4]) if row[4] is not None else None,
                            action_count=int(row[5]),
                        )
                        for row in rows
                    ]
                except sqlite3.Error:
                    self._fall_back_to_json()

            summaries = [
                SessionSummary(
                    id=str(item.get("id", "")),
                    name=str(item.get("name", "")),
                    url=str(item.get("url", "")),
                    start_time=str(item.get("startTime", "")),
                    end_time=item.get("endTime"),
                    action_count=len(item.get("actions", [])),
                )
                for item in self._read_json()["sessions"].values()
            ]
            summaries.sort(key=lambda summary: summary.start_time, reverse=True)
            return summaries

    def delete(self, session_id: str) -> None:
        with self._lock:
            if self._use_sqlite:
                try:
                    with sqlite3.connect(self.db_path) as conn:
                        cursor = conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
                        conn.commit()
                    if cursor.rowcount == 0:
                        raise SessionNotFound(session_id)
                    return
                except sqlite3.Error:
                    self._fall_back_to_json()

            data = self._read_json()
            if data["sessions"].pop(session_id, None) is None:
                raise SessionNotFound(session_id)
            self._write_json(data)

    def _read_json(self) -> dict[str, Any]:
        if not self.json_path.exists():
            return {"sessions": {}}
        try:
            payload = json.loads(self.json_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceFailure(f"Could not read {self.json_path}: {exc}") from exc
        if not isinstance(payload, dict):
            payload = {}
        payload.setdefault("sessions", {})
        return payload

    def _write_json(self, payload: dict[str, Any]) -> None:
        try:
            self.json_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as exc:
            raise PersistenceFailure(f"Could not write {self.json_path}: {exc}") from exc
