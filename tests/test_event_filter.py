import pytest
from lxml import html

from actionscribe.document import HtmlDocument
from actionscribe.event_filter import CaptureGuard, EventFilter, HighlightThrottle, InputDebouncer, RawEvent

PAGE = """
<html><body>
  <button id="save">Save</button>
  <div id="actionscribe-panel"><button id="stop">Stop</button></div>
  <div class="toolbar actionscribe-tooltip"><span>Tip</span></div>
  <div id="widget"></div>
</body></html>
"""


def _event(kind: str, timestamp: float = 0.0, **kwargs) -> RawEvent:
    return RawEvent(kind=kind, timestamp=timestamp, **kwargs)


def test_page_nodes_are_captured() -> None:
    document = HtmlDocument.from_html(PAGE)
    save = document.css("#save")[0]

    assert EventFilter().should_capture(_event("click", target=save), save, document)


def test_missing_target_is_never_captured() -> None:
    assert not EventFilter().should_capture(_event("click"), None)


def test_namespace_marker_excludes_tool_ui_and_descendants() -> None:
    document = HtmlDocument.from_html(PAGE)
    event_filter = EventFilter()

    assert event_filter.is_owned(document.css("#stop")[0], document)
    assert event_filter.is_owned(document.css(".toolbar span")[0], document)
    assert not event_filter.is_owned(document.css("#save")[0], document)


def test_registered_roots_are_excluded_without_marker() -> None:
    document = HtmlDocument.from_html(PAGE)
    event_filter = EventFilter(namespace="")
    widget = document.css("#widget")[0]
    child = html.Element("a")
    widget.append(child)

    event_filter.register_owned_root(widget)
    assert event_filter.is_owned(child, document)

    event_filter.unregister_owned_root(widget)
    assert not event_filter.is_owned(child, document)


def test_shadow_tree_under_owned_host_is_excluded() -> None:
    document = HtmlDocument.from_html(PAGE)
    host = document.css("#widget")[0]
    shadow_root = html.Element("shadow-root")
    inner = html.Element("button")
    shadow_root.append(inner)
    document.attach_shadow_root(host, shadow_root)
    event_filter = EventFilter(namespace="")

    assert not event_filter.is_owned(inner, document)

    document.mark_tool_owned(host)
    assert event_filter.is_owned(inner, document)
    assert not event_filter.should_capture(_event("click", target=inner), inner, document)


def test_highlight_events_are_throttled_but_clicks_are_not() -> None:
    document = HtmlDocument.from_html(PAGE)
    save = document.css("#save")[0]
    event_filter = EventFilter(highlight_interval_ms=16)

    moves = [event_filter.should_capture(_event("mousemove", t), save, document) for t in (0.0, 0.005, 0.010, 0.020)]
    clicks = [event_filter.should_capture(_event("click", t), save, document) for t in (0.0, 0.001, 0.002)]

    assert moves == [True, False, False, True]
    assert clicks == [True, True, True]


def test_filter_reset_reopens_highlight_window() -> None:
    throttle = HighlightThrottle(16)
    assert throttle.allow(1.0)
    assert not throttle.allow(1.001)
    throttle.reset()
    assert throttle.allow(1.002)


def test_input_debouncer_coalesces_within_window() -> None:
    document = HtmlDocument.from_html('<input id="q">')
    field = document.css("#q")[0]
    debouncer = InputDebouncer(window_ms=300)

    assert debouncer.continues(field, _event("input", 0.0, path=(1, 0))) is None
    debouncer.open(field, _event("input", 0.0, path=(1, 0)), "action_1")

    assert debouncer.continues(field, _event("input", 0.2, path=(1, 0))) == "action_1"
    assert debouncer.continues(field, _event("input", 0.45, path=(1, 0))) == "action_1"
    assert debouncer.continues(field, _event("input", 0.9, path=(1, 0))) is None


def test_input_debouncer_matches_by_path_across_snapshots() -> None:
    first = HtmlDocument.from_html('<input id="q">').css("#q")[0]
    second = HtmlDocument.from_html('<input id="q">').css("#q")[0]
    debouncer = InputDebouncer(window_ms=300)

    debouncer.open(first, _event("input", 0.0, path=(1, 0)), "action_1")

    assert debouncer.continues(second, _event("input", 0.1, path=(1, 0))) == "action_1"
    assert debouncer.continues(second, _event("input", 0.2, path=(1, 1))) is None


def test_input_debouncer_expires_after_idle_window() -> None:
    field = HtmlDocument.from_html('<input id="q">').css("#q")[0]
    debouncer = InputDebouncer(window_ms=300)
    debouncer.open(field, _event("input", 1.0), "action_1")

    assert not debouncer.expire(1.2)
    assert debouncer.expire(1.5)
    assert debouncer.burst is None


def test_capture_guard_drops_nested_capture() -> None:
    guard = CaptureGuard()

    with guard.hold() as outer:
        assert outer is True
        with guard.hold() as inner:
            assert inner is False
        assert guard.busy is True

    assert guard.busy is False


def test_capture_guard_releases_after_exception() -> None:
    guard = CaptureGuard()
    with pytest.raises(RuntimeError):
        with guard.hold():
            raise RuntimeError("boom")

    assert guard.busy is False
    with guard.hold() as acquired:
        assert acquired is True
