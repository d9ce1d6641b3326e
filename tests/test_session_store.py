from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from actionscribe.errors import PersistenceFailure, SessionNotFound
from actionscribe.models import ActionRecord, ContextInfo, NetworkCall, Session
from actionscribe.session_store import SessionStore

STARTED = datetime(2026, 5, 2, 8, 0, tzinfo=timezone.utc)
CONTEXT = ContextInfo(url="https://shop.example", title="Shop", viewport_width=1280, viewport_height=720)


def _session(session_id: str, offset_minutes: int = 0, actions: int = 2) -> Session:
    started = STARTED + timedelta(minutes=offset_minutes)
    records = tuple(
        ActionRecord(
            id=f"{session_id}_action_{index}",
            timestamp=started,
            action_type="waitForResponse",
            value="",
            context=CONTEXT,
            notes=f"GET /api/{index}",
            network_call=NetworkCall(method="GET", url=f"https://shop.example/api/{index}"),
        )
        for index in range(actions)
    )
    return Session(id=session_id, name=f"Run {session_id}", url=CONTEXT.url, start_time=started, actions=records)


def test_sqlite_roundtrip_preserves_actions(tmp_path: Path) -> None:
    store = SessionStore(base_dir=tmp_path)
    session = _session("session_a", actions=3)

    store.save(session)
    loaded = store.load("session_a")

    assert store.backend == "sqlite"
    assert loaded == session
    assert [action.id for action in loaded.actions] == [action.id for action in session.actions]


def test_save_is_an_upsert(tmp_path: Path) -> None:
    store = SessionStore(base_dir=tmp_path)
    session = _session("session_a", actions=1)
    store.save(session)

    session = replace(
        session,
        end_time=session.start_time + timedelta(minutes=5),
        actions=session.actions + _session("session_b", actions=2).actions,
    )
    store.save(session)

    summaries = store.list_sessions()
    assert len(summaries) == 1
    assert summaries[0].action_count == 3
    assert summaries[0].end_time == session.end_time.isoformat()


def test_list_sessions_newest_first(tmp_path: Path) -> None:
    store = SessionStore(base_dir=tmp_path)
    store.save(_session("older", offset_minutes=0))
    store.save(_session("newer", offset_minutes=30))

    assert [summary.id for summary in store.list_sessions()] == ["newer", "older"]


def test_missing_sessions_raise(tmp_path: Path) -> None:
    store = SessionStore(base_dir=tmp_path)

    with pytest.raises(SessionNotFound):
        store.load("nope")
    with pytest.raises(SessionNotFound):
        store.delete("nope")


def test_delete_removes_session(tmp_path: Path) -> None:
    store = SessionStore(base_dir=tmp_path)
    store.save(_session("session_a"))

    store.delete("session_a")

    assert store.list_sessions() == []
    with pytest.raises(SessionNotFound):
        store.load("session_a")


def test_json_fallback_when_sqlite_is_unavailable(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(SessionStore, "_initialize_sqlite", lambda self: False)
    store = SessionStore(base_dir=tmp_path)
    store.save(_session("older", offset_minutes=0, actions=1))
    store.save(_session("newer", offset_minutes=10, actions=2))

    assert store.backend == "json"
    assert store.json_path.exists()
    assert store.load("newer") == _session("newer", offset_minutes=10, actions=2)
    assert [(summary.id, summary.action_count) for summary in store.list_sessions()] == [("newer", 2), ("older", 1)]

    store.delete("older")
    with pytest.raises(SessionNotFound):
        store.delete("older")


def test_corrupt_json_store_raises_persistence_failure(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(SessionStore, "_initialize_sqlite", lambda self: False)
    store = SessionStore(base_dir=tmp_path)
    store.json_path.write_text("{broken", encoding="utf-8")

    with pytest.raises(PersistenceFailure):
        store.save(_session("session_a"))
