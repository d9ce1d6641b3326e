from dataclasses import FrozenInstanceError, replace
from datetime import datetime, timezone

import pytest

from actionscribe.models import (
    ActionRecord,
    CandidateSelector,
    ComputedStyle,
    ContextInfo,
    ElementFacts,
    NetworkCall,
    Rect,
    RecordingMode,
    RecordingState,
    SelectorSet,
    SelectorSyntax,
    Session,
    StrategyKind,
)

STARTED = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)
CONTEXT = ContextInfo(url="https://example.org/login", title="Login", viewport_width=1280, viewport_height=720)


def _facts() -> ElementFacts:
    return ElementFacts(
        tag="button",
        element_id=None,
        classes=("primary",),
        text="Save",
        attributes={"class": "primary", "data-testid": "save"},
        bounds=Rect(10, 20, 80, 24),
        is_visible=True,
        computed_style=ComputedStyle(),
    )


def _selectors() -> SelectorSet:
    best = CandidateSelector(StrategyKind.DATA_ATTRIBUTE, '[data-testid="save"]', 1.0, True, SelectorSyntax.CSS, match_count=1)
    fallback = CandidateSelector(StrategyKind.XPATH, "/html/body/button", 0.3, True, SelectorSyntax.XPATH, match_count=1)
    return SelectorSet(candidates=(best, fallback), best=best, reliable=True)


def test_action_record_needs_exactly_one_source() -> None:
    call = NetworkCall(method="GET", url="https://example.org/api")

    with pytest.raises(ValueError):
        ActionRecord(id="a", timestamp=STARTED, action_type="click", value="", context=CONTEXT)
    with pytest.raises(ValueError):
        ActionRecord(
            id="a",
        timestamp=STARTED,
        action_type="click",
        value="",
        context=CONTEXT,
        element=_facts(),
            selectors=_selectors(),
            network_call=call,
        )
    with pytest.raises(ValueError):
        ActionRecord(id="a", timestamp=STARTED, action_type="click", value="", context=CONTEXT, element=_facts())


def test_session_roundtrip_keeps_action_order() -> None:
    click = ActionRecord(
        id="action_1",
        timestamp=STARTED,
        action_type="click",
        value="Save",
        context=CONTEXT,
        element=_facts(),
        selectors=_selectors(),
    )
    wait = ActionRecord(
        id="action_2",
        timestamp=STARTED,
        action_type="waitForResponse",
        value="",
        context=CONTEXT,
        notes="POST https://example.org/api",
        network_call=NetworkCall(method="POST", url="https://example.org/api", status=201),
    )
    session = Session(
        id="session_1",
        name="Checkout",
        url=CONTEXT.url,
        start_time=STARTED,
        end_time=STARTED,
        actions=(click, wait),
    )

    restored = Session.from_dict(session.to_dict())

    assert restored == session
    assert [action.id for action in restored.actions] == ["action_1", "action_2"]


def test_session_payload_uses_camel_case_keys() -> None:
    payload = Session(id="s", name="n", url="u", start_time=STARTED).to_dict()

    assert payload["startTime"] == STARTED.isoformat()
    assert payload["endTime"] is None
    assert payload["actions"] == []


def test_sessions_change_only_by_replacement() -> None:
    session = Session(id="s", name="n", url="u", start_time=STARTED)

    with pytest.raises(FrozenInstanceError):
        session.end_time = STARTED  # type: ignore[misc]

    closed = replace(session, end_time=STARTED)
    assert session.is_open
    assert not closed.is_open


def test_selector_set_serializes_best_by_index() -> None:
    selectors = _selectors()
    payload = selectors.to_dict()

    assert payload["best"] == 0
    assert SelectorSet.from_dict(payload) == selectors
    assert selectors.by_kind(StrategyKind.XPATH)[0].value == "/html/body/button"


def test_selector_set_keeps_shadow_host_chain() -> None:
    host = CandidateSelector(StrategyKind.CSS, "#widget", 0.8, True, SelectorSyntax.CSS, match_count=1)
    selectors = SelectorSet(candidates=_selectors().candidates, best=_selectors().best, reliable=True, host_chain=(host,))

    payload = selectors.to_dict()

    assert payload["hostChain"] == [host.to_dict()]
    assert SelectorSet.from_dict(payload) == selectors
    assert SelectorSet.from_dict({**payload, "hostChain": None}).host_chain == ()


def test_selector_set_requires_candidates() -> None:
    with pytest.raises(ValueError):
        SelectorSet.from_dict({"candidates": [], "best": 0})


def test_modes_map_to_active_states() -> None:
    assert RecordingMode.AUTO.state is RecordingState.AUTO_RECORDING
    assert RecordingMode.MANUAL.state is RecordingState.MANUAL_SELECTION
    assert RecordingState.AUTO_RECORDING.is_active
    assert not RecordingState.PAUSED.is_active
    assert StrategyKind.DATA_ATTRIBUTE.priority < StrategyKind.TEXT_BASED.priority
