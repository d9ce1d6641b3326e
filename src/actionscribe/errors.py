from __future__ import annotations


class ActionscribeError(Exception):
    """Base class for every error raised by actionscribe."""


class SelectorSyntaxError(ActionscribeError):
    """A selector could not be parsed for the resolution semantics of its kind."""

    def __init__(self, selector: str, reason: str) -> None:
        super().__init__(f"Invalid selector {selector!r}: {reason}")
        self.selector = selector
        self.reason = reason


class GeometryUnavailable(ActionscribeError):
    """Bounds or visibility could not be read for a node (detached, no layout)."""


class InvalidTransition(ActionscribeError):
    def __init__(self, state: str, event: str) -> None:
        super().__init__(f"Transition {event!r} is not allowed while {state!r}.")
        self.state = state
        self.event = event


class PersistenceFailure(ActionscribeError):
    """The persistence collaborator failed to save or load a session."""


class SessionNotFound(PersistenceFailure):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id!r} was not found.")
        self.session_id = session_id
