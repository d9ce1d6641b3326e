from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable

from .models import ElementFacts, RecordingMode, RecordingState, SelectorSet, Session

logger = logging.getLogger("actionscribe.state")

StateObserver = Callable[["RecorderSnapshot", "RecorderSnapshot"], None]


@dataclass(frozen=True, slots=True)
class RecorderSnapshot:
    state: RecordingState = RecordingState.INACTIVE
    mode: RecordingMode | None = None
    session: Session | None = None
    last_selector_set: SelectorSet | None = None
    last_element: ElementFacts | None = None
    armed: bool = False


class StateStore:
    """Owns the recorder snapshot; every change fans out to subscribers."""

    def __init__(self, initial: RecorderSnapshot | None = None) -> None:
        self._snapshot = initial or RecorderSnapshot()
        self._observers: list[StateObserver] = []

    @property
    def snapshot(self) -> RecorderSnapshot:
        return self._snapshot

    def subscribe(self, observer: StateObserver) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def set_state(self, **changes: Any) -> RecorderSnapshot:
        previous = self._snapshot
        current = replace(previous, **changes)
        self._snapshot = current
        for observer in list(self._observers):
            try:
                observer(current, previous)
            except Exception:
                logger.exception("State observer failed")
        return current
