from lxml import html

from actionscribe.document import HtmlDocument
from actionscribe.dom_extractor import sibling_index
from actionscribe.models import SelectorSyntax, StrategyKind
from actionscribe.strategies import (
    CssStrategy,
    DataAttributeStrategy,
    SemanticStrategy,
    TextStrategy,
    XPathStrategy,
    build_positional_xpath,
    implicit_role,
)


def _values(drafts) -> list[str]:
    return [draft.value for draft in drafts]


def test_data_attribute_candidates_follow_canonical_order() -> None:
    document = HtmlDocument.from_html(
        '<button data-qa="save" data-testid="submit-btn" data-hook-id="primary">Submit</button>'
    )
    drafts = DataAttributeStrategy().generate(document.css("button")[0], document)

    assert _values(drafts) == [
        '[data-testid="submit-btn"]',
        '[data-qa="save"]',
        '[data-hook-id="primary"]',
    ]
    assert [draft.rule for draft in drafts] == ["data:canonical", "data:canonical", "data:custom"]
    assert drafts[1].metadata["canonical_rank"] == 3
    assert all(draft.kind is StrategyKind.DATA_ATTRIBUTE for draft in drafts)


def test_data_attribute_adds_tag_when_bare_form_is_shared() -> None:
    document = HtmlDocument.from_html('<div data-testid="save"></div><button data-testid="save">Save</button>')
    drafts = DataAttributeStrategy().generate(document.css("button")[0], document)

    assert _values(drafts) == ['[data-testid="save"]', 'button[data-testid="save"]']
    assert drafts[1].rule == "data:canonical+tag"


def test_semantic_candidates_for_labelled_input() -> None:
    document = HtmlDocument.from_html(
        '<label for="email">Email address</label><input id="email" type="email" name="email" placeholder="you@example.com">'
    )
    field = document.css("input")[0]
    drafts = SemanticStrategy().generate(field, document)
    values = _values(drafts)

    assert "//input[@id=//label[normalize-space()='Email address']/@for]" in values
    assert 'input[name="email"]' in values
    assert 'input[placeholder="you@example.com"]' in values
    assert 'input[type="email"]' in values
    label_draft = next(draft for draft in drafts if draft.rule == "semantic:label")
    assert label_draft.syntax is SelectorSyntax.XPATH
    assert implicit_role(field) == "textbox"


def test_semantic_candidates_for_buttons_and_aria() -> None:
    document = HtmlDocument.from_html(
        '<div role="button" aria-label="Close dialog">x</div><a href="/help">Get help</a>'
    )
    close, link = document.css("div")[0], document.css("a")[0]

    close_values = _values(SemanticStrategy().generate(close, document))
    assert close_values[0] == '[role="button"][aria-label="Close dialog"]'
    assert 'div[aria-label="Close dialog"]' in close_values

    link_drafts = SemanticStrategy().generate(link, document)
    assert _values(link_drafts) == ["//a[normalize-space()='Get help']"]
    assert link_drafts[0].rule == "semantic:role-text"


def test_css_prefers_stable_ids() -> None:
    document = HtmlDocument.from_html('<button id="login">Go</button><button id="form:j_idt45">Go</button>')
    stable, generated = document.css("button")

    assert _values(CssStrategy().generate(stable, document))[0] == "#login"
    assert all(draft.rule != "css:id" for draft in CssStrategy().generate(generated, document))


def test_css_uses_minimal_unique_class_combination() -> None:
    document = HtmlDocument.from_html(
        '<button class="btn primary">Save</button><button class="btn">Cancel</button>'
    )
    save = document.css("button")[0]
    drafts = CssStrategy().generate(save, document)
    class_draft = next(draft for draft in drafts if draft.rule == "css:class")

    assert class_draft.value == "button.primary"
    assert class_draft.metadata["class_count"] == 1


def test_css_structural_chain_stops_at_stable_id_ancestor() -> None:
    document = HtmlDocument.from_html('<ul id="menu"><li>Home</li><li>Docs</li></ul>')
    docs = document.css("li")[1]
    drafts = CssStrategy().generate(docs, document)
    structural = next(draft for draft in drafts if draft.rule == "css:structural")

    assert structural.value == "#menu > li:nth-of-type(2)"
    assert document.css(structural.value) == [docs]


def test_css_structural_chain_inside_shadow_root_starts_at_its_top_level() -> None:
    document = HtmlDocument.from_html('<div id="host"></div>')
    shadow_root = html.Element("shadow-root")
    for _ in range(2):
        wrapper = html.Element("div")
        paragraph = html.Element("p")
        paragraph.text = "a"
        wrapper.append(paragraph)
        shadow_root.append(wrapper)
    document.attach_shadow_root(document.css("#host")[0], shadow_root)
    target = shadow_root.findall(".//p")[1]

    drafts = CssStrategy().generate(target, document)
    structural = next(draft for draft in drafts if draft.rule == "css:structural")

    assert structural.value == "div:nth-of-type(2) > p"
    assert document.css(structural.value, shadow_root) == [target]


def test_positional_xpath_indexes_same_tag_siblings() -> None:
    document = HtmlDocument.from_html("<div><p>a</p><span>b</span><p>c</p></div>")
    first, second = document.css("p")
    span = document.css("span")[0]

    assert build_positional_xpath(first) == "/html/body/div/p[1]"
    assert build_positional_xpath(second) == "/html/body/div/p[2]"
    assert build_positional_xpath(span) == "/html/body/div/span"
    assert sibling_index(second) - sibling_index(first) == 1
    for node in (first, second, span):
        assert document.xpath(build_positional_xpath(node)) == [node]


def test_xpath_anchors_at_nearest_stable_id() -> None:
    document = HtmlDocument.from_html('<div id="main"><section><a href="#">Read</a></section></div>')
    link = document.css("a")[0]
    drafts = XPathStrategy().generate(link, document)

    assert _values(drafts) == ["//div[@id='main']/section/a", "/html/body/div/section/a"]
    assert [draft.rule for draft in drafts] == ["xpath:anchored", "xpath:positional"]
    assert drafts[0].metadata["depth"] == 2


def test_xpath_uses_own_id_when_stable() -> None:
    document = HtmlDocument.from_html('<input id="search">')
    drafts = XPathStrategy().generate(document.css("input")[0], document)
    assert drafts[0].value == "//input[@id='search']"
    assert drafts[0].rule == "xpath:id"


def test_text_candidates_use_bounded_own_text() -> None:
    document = HtmlDocument.from_html(
        f"<button>  Sign   in </button><p>{'long ' * 30}</p><span>x</span><div><b>nested only</b></div>"
    )
    button = document.css("button")[0]
    strategy = TextStrategy()

    drafts = strategy.generate(button, document)
    assert _values(drafts) == ['text="Sign in"', "text=sign in"]
    assert [draft.rule for draft in drafts] == ["text:exact", "text:contains"]
    assert strategy.generate(document.css("p")[0], document) == []
    assert strategy.generate(document.css("span")[0], document) == []
    assert strategy.generate(document.css("div")[0], document) == []


def test_text_substring_cuts_at_word_boundary() -> None:
    document = HtmlDocument.from_html("<p>Continue to the secure payment page now</p>")
    drafts = TextStrategy().generate(document.css("p")[0], document)
    assert drafts[1].value == "text=continue to the secure payment"
