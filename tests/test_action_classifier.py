from actionscribe.action_classifier import classify, is_text_entry, selected_option_text
from actionscribe.document import HtmlDocument
from actionscribe.dom_extractor import extract_element_facts


def _classify(markup: str, selector: str, kind: str = "activate", **kwargs):
    document = HtmlDocument.from_html(markup)
    node = document.css(selector)[0]
    return classify(kind, node, extract_element_facts(node, document), **kwargs)


def test_text_input_records_live_value() -> None:
    assert _classify('<input id="q" type="search" value="shoes">', "#q") == ("input", "shoes")


def test_empty_text_input_falls_back_to_placeholder() -> None:
    assert _classify('<input id="mail" type="email" placeholder="you@example.org">', "#mail") == (
        "input",
        "you@example.org",
    )


def test_textarea_uses_its_text_when_no_live_value() -> None:
    assert _classify("<textarea>Hello there</textarea>", "textarea") == ("input", "Hello there")


def test_contenteditable_is_text_entry() -> None:
    document = HtmlDocument.from_html('<div contenteditable="true">Draft <b>note</b></div>')
    node = document.css("div")[0]
    facts = extract_element_facts(node, document)

    assert is_text_entry(facts)
    assert classify("input", node, facts) == ("input", "Draft note")


def test_checkable_inputs_report_their_state() -> None:
    assert _classify('<input type="checkbox" checked>', "input") == ("check", "checked")
    assert _classify('<input type="radio" name="plan">', "input") == ("check", "unchecked")


def test_select_reports_selected_option_text() -> None:
    markup = '<select><option>Norway</option><option selected>Peru</option></select>'
    assert _classify(markup, "select", "change") == ("select", "Peru")


def test_select_without_selection() -> None:
    document = HtmlDocument.from_html(
        '<select id="one"><option>Norway</option><option>Peru</option></select>'
        '<select id="many" multiple><option>Norway</option></select>'
    )
    assert selected_option_text(document.css("#one")[0]) == "Norway"
    assert selected_option_text(document.css("#many")[0]) == ""


def test_click_value_is_truncated() -> None:
    label = "Continue " * 10
    action_type, value = _classify(f"<button>{label}</button>", "button")

    assert action_type == "click"
    assert len(value) == 50
    assert value == label.strip()[:50]


def test_click_value_limit_is_configurable() -> None:
    assert _classify("<a href='/x'>Documentation</a>", "a", value_limit=4) == ("click", "Docu")


def test_submit_records_form_action() -> None:
    markup = '<form action="/login"><button type="submit">Go</button></form>'
    assert _classify(markup, "form", "submit") == ("submit", "/login")
    assert _classify(markup, "button", "submit") == ("submit", "/login")


def test_keypress_records_key() -> None:
    assert _classify("<input type='text'>", "input", "keypress", key="Enter") == ("keypress", "Enter")


def test_unknown_interaction_is_recorded_verbatim() -> None:
    assert _classify("<div>Zone</div>", "div", "hover") == ("hover", "")


def test_classification_is_deterministic() -> None:
    markup = '<form action="/a"><input name="n" value="v"><button>Send</button></form>'
    first = [_classify(markup, selector) for selector in ("input", "button", "form")]
    second = [_classify(markup, selector) for selector in ("input", "button", "form")]
    assert first == second
