from actionscribe.document import HtmlDocument
from actionscribe.dom_extractor import (
    extract_attributes,
    extract_element_facts,
    has_same_tag_siblings,
    probe_bounds,
    sibling_index,
    split_classes,
)
from actionscribe.models import ComputedStyle, Rect


def test_sibling_index_counts_preceding_same_tag_siblings() -> None:
    document = HtmlDocument.from_html("<ul><li>a</li><span>x</span><li>b</li><li>c</li></ul>")
    first, second, third = document.css("li")
    span = document.css("span")[0]

    assert [sibling_index(node) for node in (first, second, third)] == [1, 2, 3]
    assert sibling_index(span) == 1
    assert has_same_tag_siblings(second)
    assert not has_same_tag_siblings(span)


def test_split_classes_deduplicates_in_order() -> None:
    assert split_classes("btn  primary btn") == ("btn", "primary")
    assert split_classes(None) == ()


def test_extract_attributes_returns_plain_strings() -> None:
    document = HtmlDocument.from_html('<a href="/home" data-testid="nav-home">Home</a>')
    assert extract_attributes(document.css("a")[0]) == {"href": "/home", "data-testid": "nav-home"}


def test_facts_include_layout_when_registered() -> None:
    document = HtmlDocument.from_html(
        '<div id="card"><p>intro</p><button class="btn primary" type="button">  Save   draft </button></div>'
    )
    button = document.css("button")[0]
    document.set_layout(button, Rect(10, 20, 100, 32), ComputedStyle(display="inline-block", z_index="2"))

    facts = extract_element_facts(button, document)

    assert facts.tag == "button"
    assert facts.element_id is None
    assert facts.classes == ("btn", "primary")
    assert facts.text == "Save draft"
    assert facts.bounds == Rect(10, 20, 100, 32)
    assert facts.is_visible
    assert facts.computed_style.z_index == "2"
    assert facts.parent is not None
    assert facts.parent.tag == "div"
    assert facts.parent.element_id == "card"
    assert facts.parent.child_index == 1


def test_missing_geometry_degrades_to_zero_rect() -> None:
    document = HtmlDocument.from_html("<button>Go</button>")
    probe = probe_bounds(document.css("button")[0], document)
    assert probe.bounds == Rect.zero()
    assert probe.is_visible is False


def test_hidden_style_is_not_visible_even_with_bounds() -> None:
    document = HtmlDocument.from_html('<button style="visibility: hidden">Go</button>')
    button = document.css("button")[0]
    document.set_layout(button, Rect(0, 0, 40, 20))
    assert probe_bounds(button, document).is_visible is False


def test_facts_text_is_truncated() -> None:
    document = HtmlDocument.from_html(f"<p>{'word ' * 60}</p>")
    facts = extract_element_facts(document.css("p")[0], document)
    assert len(facts.text) == 100
