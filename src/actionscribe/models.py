from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping


class StrategyKind(str, Enum):
    DATA_ATTRIBUTE = "data_attribute"
    SEMANTIC = "semantic"
    CSS = "css"
    XPATH = "xpath"
    TEXT_BASED = "text_based"

    @property
    def priority(self) -> int:
        return STRATEGY_PRIORITY.index(self)


STRATEGY_PRIORITY: tuple[StrategyKind, ...] = (
    StrategyKind.DATA_ATTRIBUTE,
    StrategyKind.SEMANTIC,
    StrategyKind.CSS,
    StrategyKind.XPATH,
    StrategyKind.TEXT_BASED,
)


class SelectorSyntax(str, Enum):
    CSS = "css"
    XPATH = "xpath"
    TEXT = "text"


DEFAULT_SYNTAX: dict[StrategyKind, SelectorSyntax] = {
    StrategyKind.DATA_ATTRIBUTE: SelectorSyntax.CSS,
    StrategyKind.SEMANTIC: SelectorSyntax.CSS,
    StrategyKind.CSS: SelectorSyntax.CSS,
    StrategyKind.XPATH: SelectorSyntax.XPATH,
    StrategyKind.TEXT_BASED: SelectorSyntax.TEXT,
}


class RecordingState(str, Enum):
    INACTIVE = "inactive"
    AUTO_RECORDING = "auto_recording"
    MANUAL_SELECTION = "manual_selection"
    PAUSED = "paused"

    @property
    def is_active(self) -> bool:
        return self in (RecordingState.AUTO_RECORDING, RecordingState.MANUAL_SELECTION)


class RecordingMode(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"

    @property
    def state(self) -> RecordingState:
        if self is RecordingMode.AUTO:
            return RecordingState.AUTO_RECORDING
        return RecordingState.MANUAL_SELECTION


@dataclass(frozen=True, slots=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def zero(cls) -> Rect:
        return cls(0.0, 0.0, 0.0, 0.0)


@dataclass(frozen=True, slots=True)
class ComputedStyle:
    display: str = "block"
    visibility: str = "visible"
    opacity: str = "1"
    z_index: str = "auto"


@dataclass(frozen=True, slots=True)
class ParentContext:
    tag: str
    element_id: str | None
    child_index: int


@dataclass(frozen=True, slots=True)
class ElementFacts:
    tag: str
    element_id: str | None
    classes: tuple[str, ...]
    text: str
    attributes: dict[str, str]
    bounds: Rect
    is_visible: bool
    computed_style: ComputedStyle
    parent: ParentContext | None = None

    def attr(self, name: str) -> str | None:
        raw = self.attributes.get(name)
        if raw is None:
            return None
        value = raw.strip()
        return value or None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tagName": self.tag,
            "id": self.element_id,
            "classes": list(self.classes),
            "textContent": self.text,
            "attributes": dict(self.attributes),
            "position": {
                "x": self.bounds.x,
                "y": self.bounds.y,
                "width": self.bounds.width,
                "height": self.bounds.height,
            },
            "isVisible": self.is_visible,
            "computedStyles": {
                "display": self.computed_style.display,
                "visibility": self.computed_style.visibility,
                "opacity": self.computed_style.opacity,
                "zIndex": self.computed_style.z_index,
            },
            "parentContext": (
                {
                    "tagName": self.parent.tag,
                    "id": self.parent.element_id,
                    "childIndex": self.parent.child_index,
                }
                if self.parent
                else None
            ),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ElementFacts:
        position = dict(payload.get("position") or {})
        styles = dict(payload.get("computedStyles") or {})
        parent = payload.get("parentContext")
        return cls(
            tag=str(payload.get("tagName", "")),
            element_id=payload.get("id"),
            classes=tuple(str(item) for item in payload.get("classes", [])),
            text=str(payload.get("textContent", "") or ""),
            attributes={str(k): str(v) for k, v in dict(payload.get("attributes") or {}).items()},
            bounds=Rect(
                x=float(position.get("x", 0.0)),
                y=float(position.get("y", 0.0)),
                width=float(position.get("width", 0.0)),
                height=float(position.get("height", 0.0)),
            ),
            is_visible=bool(payload.get("isVisible", False)),
            computed_style=ComputedStyle(
                display=str(styles.get("display", "block")),
                visibility=str(styles.get("visibility", "visible")),
                opacity=str(styles.get("opacity", "1")),
                z_index=str(styles.get("zIndex", "auto")),
            ),
            parent=(
                ParentContext(
                    tag=str(parent.get("tagName", "")),
                    element_id=parent.get("id"),
                    child_index=int(parent.get("childIndex", 0)),
                )
                if isinstance(parent, Mapping)
                else None
            ),
        )


@dataclass(frozen=True, slots=True)
class CandidateSelector:
    kind: StrategyKind
    value: str
    confidence: float
    is_unique: bool
    syntax: SelectorSyntax
    rule: str = ""
    match_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategyKind": self.kind.value,
            "value": self.value,
            "confidence": self.confidence,
            "isUnique": self.is_unique,
            "syntax": self.syntax.value,
            "rule": self.rule,
            "matchCount": self.match_count,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> CandidateSelector:
        kind = StrategyKind(payload["strategyKind"])
        return cls(
            kind=kind,
            value=str(payload["value"]),
            confidence=float(payload.get("confidence", 0.0)),
            is_unique=bool(payload.get("isUnique", False)),
            syntax=SelectorSyntax(payload.get("syntax") or DEFAULT_SYNTAX[kind].value),
            rule=str(payload.get("rule", "") or ""),
            match_count=int(payload.get("matchCount", 0) or 0),
        )


@dataclass(frozen=True, slots=True)
class SelectorSet:
    candidates: tuple[CandidateSelector, ...]
    best: CandidateSelector
    reliable: bool
    # Best selector of each enclosing shadow host, outermost first.
    host_chain: tuple[CandidateSelector, ...] = ()

    def by_kind(self, kind: StrategyKind) -> list[CandidateSelector]:
        return [candidate for candidate in self.candidates if candidate.kind is kind]

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidates": [candidate.to_dict() for candidate in self.candidates],
            "best": self.candidates.index(self.best),
            "reliable": self.reliable,
            "hostChain": [host.to_dict() for host in self.host_chain],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> SelectorSet:
        candidates = tuple(CandidateSelector.from_dict(item) for item in payload.get("candidates", []))
        if not candidates:
            raise ValueError("A selector set needs at least one candidate.")
        best_index = int(payload.get("best", 0) or 0)
        return cls(
            candidates=candidates,
            best=candidates[best_index],
            reliable=bool(payload.get("reliable", False)),
            host_chain=tuple(CandidateSelector.from_dict(item) for item in payload.get("hostChain") or []),
        )


@dataclass(frozen=True, slots=True)
class ContextInfo:
    url: str
    title: str
    viewport_width: int
    viewport_height: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "viewport": {"width": self.viewport_width, "height": self.viewport_height},
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ContextInfo:
        viewport = dict(payload.get("viewport") or {})
        return cls(
            url=str(payload.get("url", "") or ""),
            title=str(payload.get("title", "") or ""),
            viewport_width=int(viewport.get("width", 0) or 0),
            viewport_height=int(viewport.get("height", 0) or 0),
        )


@dataclass(frozen=True, slots=True)
class NetworkCall:
    method: str
    url: str
    status: int | None = None
    request_headers: dict[str, str] = field(default_factory=dict)
    response_headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "url": self.url,
            "status": self.status,
            "requestHeaders": dict(self.request_headers),
            "responseHeaders": dict(self.response_headers),
            "body": self.body,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> NetworkCall:
        status = payload.get("status")
        return cls(
            method=str(payload.get("method", "GET")),
            url=str(payload.get("url", "")),
            status=int(status) if status is not None else None,
            request_headers={str(k): str(v) for k, v in dict(payload.get("requestHeaders") or {}).items()},
            response_headers={str(k): str(v) for k, v in dict(payload.get("responseHeaders") or {}).items()},
            body=payload.get("body"),
        )


@dataclass(frozen=True, slots=True)
class ActionRecord:
    id: str
    timestamp: datetime
    action_type: str
    value: str
    context: ContextInfo
    notes: str = ""
    element: ElementFacts | None = None
    selectors: SelectorSet | None = None
    network_call: NetworkCall | None = None

    def __post_init__(self) -> None:
        has_element = self.element is not None and self.selectors is not None
        partial_element = (self.element is None) != (self.selectors is None)
        has_network = self.network_call is not None
        if partial_element or has_element == has_network:
            raise ValueError(
                "An action record needs exactly one capture source: element facts with selectors, "
                "or an external payload."
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": _format_time(self.timestamp),
            "actionType": self.action_type,
            "value": self.value,
            "notes": self.notes,
            "context": self.context.to_dict(),
            "elementFacts": self.element.to_dict() if self.element else None,
            "selectorSet": self.selectors.to_dict() if self.selectors else None,
            "networkCall": self.network_call.to_dict() if self.network_call else None,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ActionRecord:
        element = payload.get("elementFacts")
        selectors = payload.get("selectorSet")
        network_call = payload.get("networkCall")
        return cls(
            id=str(payload["id"]),
            timestamp=_parse_time(payload["timestamp"]),
            action_type=str(payload.get("actionType", "")),
            value=str(payload.get("value", "") or ""),
            notes=str(payload.get("notes", "") or ""),
            context=ContextInfo.from_dict(payload.get("context") or {}),
            element=ElementFacts.from_dict(element) if element else None,
            selectors=SelectorSet.from_dict(selectors) if selectors else None,
            network_call=NetworkCall.from_dict(network_call) if network_call else None,
        )


@dataclass(frozen=True, slots=True)
class Session:
    """One recording; edits produce a new ``Session`` via ``dataclasses.replace``."""

    id: str
    name: str
    url: str
    start_time: datetime
    end_time: datetime | None = None
    actions: tuple[ActionRecord, ...] = ()
    settings: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def find_action(self, action_id: str) -> int | None:
        for index, action in enumerate(self.actions):
            if action.id == action_id:
                return index
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "startTime": _format_time(self.start_time),
            "endTime": _format_time(self.end_time) if self.end_time else None,
            "actions": [action.to_dict() for action in self.actions],
            "settings": dict(self.settings),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Session:
        end_time = payload.get("endTime")
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name", "") or ""),
            url=str(payload.get("url", "") or ""),
            start_time=_parse_time(payload["startTime"]),
            end_time=_parse_time(end_time) if end_time else None,
            actions=tuple(ActionRecord.from_dict(item) for item in payload.get("actions", [])),
            settings=dict(payload.get("settings") or {}),
            metadata=dict(payload.get("metadata") or {}),
        )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _format_time(value: datetime) -> str:
    return value.isoformat()


def _parse_time(raw: str | datetime) -> datetime:
    if isinstance(raw, datetime):
        return raw
    parsed = datetime.fromisoformat(str(raw))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
