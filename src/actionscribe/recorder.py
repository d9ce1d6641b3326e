from __future__ import annotations

from dataclasses import replace
from enum import Enum
import logging
from typing import Any, Callable, Protocol
from uuid import uuid4

from lxml import etree

from .action_classifier import classify, is_text_entry
from .document import HtmlDocument
from .dom_extractor import extract_element_facts, probe_bounds
from .errors import InvalidTransition
from .event_filter import CaptureGuard, EventFilter, InputDebouncer, RawEvent
from .models import (
    ActionRecord,
    ContextInfo,
    ElementFacts,
    NetworkCall,
    Rect,
    RecordingMode,
    RecordingState,
    SelectorSet,
    Session,
    utc_now,
)
from .session_store import SessionPersistence
from .settings import RecorderSettings
from .state_store import RecorderSnapshot, StateStore
from .strategies import default_strategies
from .synthesizer import SelectorSynthesizer

logger = logging.getLogger("actionscribe.recorder")

EventHandler = Callable[[RawEvent, HtmlDocument], Any]


class TransitionEvent(str, Enum):
    START = "start"
    SWITCH_MODE = "switch_mode"
    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"


class CaptureHost(Protocol):
    def attach(self, handler: EventHandler) -> None:
        ...

    def detach(self) -> None:
        ...


_ACTIVE = (RecordingState.AUTO_RECORDING, RecordingState.MANUAL_SELECTION)

TRANSITIONS: dict[tuple[RecordingState, TransitionEvent], str] = {
    (RecordingState.INACTIVE, TransitionEvent.START): "_on_start",
    **{(state, TransitionEvent.SWITCH_MODE): "_on_switch_mode" for state in _ACTIVE},
    **{(state, TransitionEvent.PAUSE): "_on_pause" for state in _ACTIVE},
    (RecordingState.PAUSED, TransitionEvent.RESUME): "_on_resume",
    **{(state, TransitionEvent.STOP): "_on_stop" for state in (*_ACTIVE, RecordingState.PAUSED)},
}


def context_from(document: HtmlDocument) -> ContextInfo:
    width, height = document.viewport
    return ContextInfo(url=document.url, title=document.title, viewport_width=width, viewport_height=height)


def new_action_id() -> str:
    return f"action_{uuid4().hex[:16]}"


def new_session_id() -> str:
    return f"session_{uuid4().hex[:16]}"


def _with_action(session: Session, index: int, record: ActionRecord) -> Session:
    actions = list(session.actions)
    actions[index] = record
    return replace(session, actions=tuple(actions))


class RecordingStateMachine:
    def __init__(
        self,
        *,
        host: CaptureHost | None = None,
        persistence: SessionPersistence | None = None,
        settings: RecorderSettings | None = None,
        synthesizer: SelectorSynthesizer | None = None,
        event_filter: EventFilter | None = None,
        store: StateStore | None = None,
        on_capture: Callable[[ActionRecord], None] | None = None,
        on_status: Callable[[str], None] | None = None,
        on_highlight: Callable[[etree._Element, Rect], None] | None = None,
        clock: Callable[[], Any] = utc_now,
    ) -> None:
        self.settings = settings or RecorderSettings()
        self.host = host
        self.persistence = persistence
        self.synthesizer = synthesizer or SelectorSynthesizer(
            default_strategies(
                ui_namespace=self.settings.ui_namespace,
                text_min_length=self.settings.text_min_length,
                text_max_length=self.settings.text_max_length,
            )
        )
        self.event_filter = event_filter or EventFilter(
            namespace=self.settings.ui_namespace,
            highlight_interval_ms=self.settings.highlight_interval_ms,
        )
        self.store = store or StateStore()
        self.on_capture = on_capture
        self.on_status = on_status
        self.on_highlight = on_highlight
        self._clock = clock
        self._debouncer = InputDebouncer(self.settings.input_debounce_ms)
        self._guard = CaptureGuard()
        self._last_context: ContextInfo | None = None

    @property
    def snapshot(self) -> RecorderSnapshot:
        return self.store.snapshot

    @property
    def state(self) -> RecordingState:
        return self.store.snapshot.state

    @property
    def mode(self) -> RecordingMode | None:
        return self.store.snapshot.mode

    @property
    def armed(self) -> bool:
        return self.store.snapshot.armed

    def current_session(self) -> Session | None:
        return self.store.snapshot.session

    def last_selector_set(self) -> SelectorSet | None:
        return self.store.snapshot.last_selector_set

    def subscribe(self, callback: Callable[[RecordingState, RecordingState], None]) -> Callable[[], None]:
        """Register ``callback(old_state, new_state)`` for every state transition."""

        def relay(current: RecorderSnapshot, previous: RecorderSnapshot) -> None:
            if current.state is not previous.state:
                callback(previous.state, current.state)

        return self.store.subscribe(relay)

    # Transitions

    def transition(self, event: TransitionEvent | str, **kwargs: Any) -> RecordingState:
        state = self.state
        try:
            resolved = TransitionEvent(event)
        except ValueError as exc:
            raise InvalidTransition(state.value, str(event)) from exc
        handler_name = TRANSITIONS.get((state, resolved))
        if handler_name is None:
            raise InvalidTransition(state.value, resolved.value)
        getattr(self, handler_name)(**kwargs)
        logger.info("Recorder %s: %s -> %s", resolved.value, state.value, self.state.value)
        return self.state

    def start(
        self,
        mode: RecordingMode | str | None = None,
        *,
        name: str | None = None,
        url: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> RecordingState:
        return self.transition(TransitionEvent.START, mode=mode, name=name, url=url, metadata=metadata)

    def switch_mode(self) -> RecordingState:
        return self.transition(TransitionEvent.SWITCH_MODE)

    def pause(self) -> RecordingState:
        return self.transition(TransitionEvent.PAUSE)

    def resume(self) -> RecordingState:
        return self.transition(TransitionEvent.RESUME)

    def stop(self) -> RecordingState:
        return self.transition(TransitionEvent.STOP)

    def _on_start(
        self,
        mode: RecordingMode | str | None = None,
        name: str | None = None,
        url: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> None:
        resolved = RecordingMode(mode) if mode is not None else self.settings.recording_mode
        started = self._clock()
        session = Session(
            id=new_session_id(),
            name=name or f"Session {started:%Y-%m-%d %H:%M:%S}",
            url=url,
            start_time=started,
            settings=self.settings.to_dict(),
            metadata=dict(metadata or {}),
        )
        self._last_context = None
        self.store.set_state(
            state=resolved.state,
            mode=resolved,
            session=session,
            last_selector_set=None,
            last_element=None,
        )
        self._arm()

    def _on_switch_mode(self) -> None:
        current = self.mode or RecordingMode.MANUAL
        target = RecordingMode.MANUAL if current is RecordingMode.AUTO else RecordingMode.AUTO
        self._disarm()
        self.store.set_state(state=target.state, mode=target)
        self._arm()

    def _on_pause(self) -> None:
        self._disarm()
        self.store.set_state(state=RecordingState.PAUSED)

    def _on_resume(self) -> None:
        mode = self.mode or self.settings.recording_mode
        self.store.set_state(state=mode.state)
        self._arm()

    def _on_stop(self) -> None:
        self._disarm()
        session = self.current_session()
        if session is None:
            self.store.set_state(state=RecordingState.INACTIVE)
            return
        ended = self._clock()
        session = replace(session, end_time=max(ended, session.start_time))
        self.store.set_state(state=RecordingState.INACTIVE, session=session)
        if self._persist(session):
            self._status(f"Session saved with {len(session.actions)} actions.")

    def _arm(self) -> None:
        self.event_filter.reset()
        self._debouncer.close()
        if self.host is not None:
            self.host.attach(self.handle_event)
        self.store.set_state(armed=True)

    def _disarm(self) -> None:
        self._debouncer.close()
        self.store.set_state(armed=False)
        if self.host is not None:
            self.host.detach()

    # Host lifecycle hooks

    def on_visibility_hidden(self) -> None:
        if self.state.is_active:
            self.pause()

    def on_before_unload(self) -> bool:
        session = self.current_session()
        if session is None or not session.is_open:
            return False
        return self._persist(session)

    def tick(self, now: float) -> None:
        if self._debouncer.expire(now):
            logger.debug("Input burst closed after %sms idle", self._debouncer.window_ms)

    # Capture pipeline

    def handle_event(self, event: RawEvent, document: HtmlDocument) -> ActionRecord | None:
        snapshot = self.store.snapshot
        if not snapshot.armed or not snapshot.state.is_active:
            logger.debug("Ignoring %s event while %s", event.kind, snapshot.state.value)
            return None

        node = event.target
        if node is None or not self.event_filter.should_capture(event, node, document):
            return None

        if event.is_highlight:
            self._highlight(node, document)
            return None

        with self._guard.hold() as acquired:
            if not acquired:
                logger.warning("Dropped re-entrant %s event", event.kind)
                return None
            try:
                return self._dispatch(event, node, document)
            except Exception as exc:
                logger.exception("Capture failed unexpectedly", exc_info=exc)
                self._status(f"Capture failed: {exc}")
                return None

    def _dispatch(self, event: RawEvent, node: etree._Element, document: HtmlDocument) -> ActionRecord | None:
        if self.state is RecordingState.MANUAL_SELECTION:
            if event.kind == "keydown" and event.key == "Escape":
                self._debouncer.close()
                self.pause()
                return None
            if event.kind != "click":
                return None
            self._debouncer.close()
            facts = extract_element_facts(node, document)
            return self._capture("activate", node, document, facts)

        facts = extract_element_facts(node, document)
        interaction = self._auto_interaction(event, facts)
        if interaction is None:
            return None

        if interaction == "input":
            record_id = self._debouncer.continues(node, event)
            if record_id is not None:
                return self._refresh_input(record_id, node, facts)

        self._debouncer.close()
        record = self._capture(interaction, node, document, facts, key=event.key)
        if record is not None and interaction == "input":
            self._debouncer.open(node, event, record.id)
        return record

    def _auto_interaction(self, event: RawEvent, facts: ElementFacts) -> str | None:
        kind = event.kind
        if kind == "click":
            if is_text_entry(facts) or facts.tag == "select":
                return None
            return "activate"
        if kind == "input":
            return "input" if is_text_entry(facts) else None
        if kind == "change":
            return "change" if facts.tag == "select" else None
        if kind == "submit":
            return "submit"
        if kind == "keydown" and event.key == "Enter":
            return "keypress"
        return None

    def _capture(
        self,
        interaction: str,
        node: etree._Element,
        document: HtmlDocument,
        facts: ElementFacts,
        *,
        key: str | None = None,
    ) -> ActionRecord | None:
        selectors = self.synthesizer.synthesize(node, document)
        action_type, value = classify(
            interaction,
            node,
            facts,
            key=key,
            value_limit=self.settings.click_value_limit,
        )
        context = context_from(document)
        self._last_context = context
        record = ActionRecord(
            id=new_action_id(),
            timestamp=self._clock(),
            action_type=action_type,
            value=value,
            context=context,
            element=facts,
            selectors=selectors,
        )
        self._append(record, user_agent=document.user_agent, last_selector_set=selectors, last_element=facts)
        if not selectors.reliable:
            self._status(f"No unique selector found; using {selectors.best.value}")
        return record

    def _refresh_input(self, record_id: str, node: etree._Element, facts: ElementFacts) -> ActionRecord | None:
        session = self.current_session()
        index = session.find_action(record_id) if session else None
        if session is None or index is None:
            self._debouncer.close()
            return None
        _, value = classify("input", node, facts, value_limit=self.settings.click_value_limit)
        record = replace(session.actions[index], value=value)
        self.store.set_state(session=_with_action(session, index, record), last_element=facts)
        return record

    def _append(self, record: ActionRecord, *, user_agent: str = "", **changes: Any) -> None:
        session = self.current_session()
        if session is None or not session.is_open:
            raise InvalidTransition(self.state.value, "append")
        session = replace(session, actions=(*session.actions, record))
        if user_agent and "userAgent" not in session.metadata:
            session = replace(session, metadata={**session.metadata, "userAgent": user_agent})
        self.store.set_state(session=session, **changes)
        logger.info("Recorded %s action (%d total)", record.action_type, len(session.actions))
        if self.on_capture:
            self.on_capture(record)
        if self.settings.auto_save:
            self._persist(session)

    def _highlight(self, node: etree._Element, document: HtmlDocument) -> None:
        if not self.settings.highlight_elements or self.on_highlight is None:
            return
        probe = probe_bounds(node, document)
        self.on_highlight(node, probe.bounds)

    def _persist(self, session: Session) -> bool:
        if self.persistence is None:
            return False
        try:
            self.persistence.save(session)
        except Exception as exc:
            logger.warning("Could not save session %s: %s", session.id, exc)
            self._status(f"Warning: session not saved ({exc}); it is kept in memory.")
            return False
        return True

    def _status(self, message: str) -> None:
        if self.on_status:
            self.on_status(message)

    # External and post-hoc operations

    def add_external_action(
        self,
        network_call: NetworkCall,
        action_type: str = "waitForResponse",
        *,
        context: ContextInfo | None = None,
    ) -> ActionRecord:
        if self.state is RecordingState.INACTIVE:
            raise InvalidTransition(self.state.value, "add_external_action")
        session = self.current_session()
        resolved_context = context or self._last_context or ContextInfo(
            url=session.url if session else "", title="", viewport_width=0, viewport_height=0
        )
        record = ActionRecord(
            id=new_action_id(),
            timestamp=self._clock(),
            action_type=action_type,
            value="",
            context=resolved_context,
            notes=f"{network_call.method} {network_call.url}",
            network_call=network_call,
        )
        self._debouncer.close()
        self._append(record)
        return record

    def edit_action(
        self,
        action_id: str,
        *,
        notes: str | None = None,
        value: str | None = None,
        action_type: str | None = None,
    ) -> ActionRecord:
        session, index = self._locate(action_id)
        changes: dict[str, str] = {}
        if notes is not None:
            changes["notes"] = notes
        if value is not None:
            changes["value"] = value
        if action_type is not None:
            changes["action_type"] = action_type
        record = replace(session.actions[index], **changes)
        self.store.set_state(session=_with_action(session, index, record))
        return record

    def delete_action(self, action_id: str) -> ActionRecord:
        session, index = self._locate(action_id)
        record = session.actions[index]
        session = replace(session, actions=session.actions[:index] + session.actions[index + 1 :])
        if self._debouncer.burst is not None and self._debouncer.burst.record_id == action_id:
            self._debouncer.close()
        self.store.set_state(session=session)
        return record

    def clear_session(self) -> None:
        if self.state is not RecordingState.INACTIVE:
            raise InvalidTransition(self.state.value, "clear_session")
        self.store.set_state(session=None, last_selector_set=None, last_element=None, mode=None)

    def _locate(self, action_id: str) -> tuple[Session, int]:
        session = self.current_session()
        index = session.find_action(action_id) if session else None
        if session is None or index is None:
            raise KeyError(action_id)
        return session, index
