"""
Tests for the DOM extraction helpers.
"""

import pytest

from scraper.base import ElementRule
from scraper.fields import FieldName
from scraper.utils.extractors import (
    parse_html,
    resolve_field,
    resolve_image,
    resolve_link,
    resolve_text,
    select_all,
    select_one,
)

BASE_URL = "https://hotel.example/listings"

CARD_HTML = """
<div class="card" data-id="42">
  <h2 class="title">  Ocean Suite  </h2>
  <a class="more" href="/rooms/42" data-track="card">Details</a>
  <span class="price">$1,234.56 - $1,999</span>
  <img class="thumb" src="data:image/gif;base64,R0lGOD" data-src="/img/42.jpg" alt="Sea view">
  <img class="hero" src="https://cdn.example/hero.jpg">
</div>
"""


@pytest.fixture
def card():
    return select_one(parse_html(CARD_HTML), ".card")


class TestSelectors:
    """Test selector helpers."""

    def test_select_one_without_selector_returns_root(self, card):
        assert select_one(card, None) is card

    def test_invalid_selector_never_raises(self, card):
        """Test that a malformed selector resolves to nothing."""
        assert select_one(card, "div[") is None
        assert select_all(card, "div[") == []

    def test_select_all(self):
        soup = parse_html("<ul><li>a</li><li>b</li></ul>")
        assert [li.get_text() for li in select_all(soup, "li")] == ["a", "b"]


class TestResolveText:
    """Test text and attribute resolution."""

    def test_text_is_trimmed(self, card):
        assert resolve_text(card, ".title") == "Ocean Suite"

    def test_attribute(self, card):
        assert resolve_text(card, "img.thumb", "alt") == "Sea view"

    def test_attribute_on_root(self, card):
        """Test that an attribute without a selector reads the root element."""
        assert resolve_text(card, None, "data-id") == "42"

    def test_missing(self, card):
        assert resolve_text(card, ".nothing") == ""
        assert resolve_text(card, ".title", "data-missing") == ""
        assert resolve_text(card, None, None) == ""


class TestResolveLink:
    """Test link resolution."""

    def test_href_made_absolute(self, card):
        assert resolve_link(card, "a.more", None, BASE_URL) == "https://hotel.example/rooms/42"

    def test_attribute_returned_raw(self, card):
        assert resolve_link(card, "a.more", "href", BASE_URL) == "/rooms/42"

    def test_nested_anchor(self, card):
        """Test that a non-anchor element falls back to the anchor inside it."""
        html = '<div class="wrap"><span><a href="/x/1">go</a></span></div>'
        root = parse_html(html)
        assert resolve_link(root, ".wrap", None, BASE_URL) == "https://hotel.example/x/1"

    def test_missing(self, card):
        assert resolve_link(card, "a.none", None, BASE_URL) == ""


class TestResolveImage:
    """Test image resolution."""

    def test_lazy_image_skips_placeholder(self, card):
        """Test that inline data: placeholders fall through to data-src."""
        assert resolve_image(card, "img.thumb", None, BASE_URL) == "https://hotel.example/img/42.jpg"

    def test_src(self, card):
        assert resolve_image(card, "img.hero", None, BASE_URL) == "https://cdn.example/hero.jpg"

    def test_attribute_made_absolute(self, card):
        """Test that a lazy-load attribute still yields a full image URL."""
        assert resolve_image(card, "img.thumb", "data-src", BASE_URL) == "https://hotel.example/img/42.jpg"

    def test_attribute_without_base(self, card):
        assert resolve_image(card, "img.thumb", "data-src") == "/img/42.jpg"


class TestResolveField:
    """Test per-field dispatch."""

    def test_price_fields_are_normalized(self, card):
        rule = ElementRule(selector=".price")
        assert resolve_field(card, FieldName.PRICE, rule, BASE_URL) == "1234"
        assert resolve_field(card, FieldName.SALE_PRICE, rule, BASE_URL) == "1234"

    def test_detail_url_is_a_link(self, card):
        rule = ElementRule(selector="a.more")
        assert resolve_field(card, FieldName.DETAIL_PAGE_URL, rule, BASE_URL) == "https://hotel.example/rooms/42"

    def test_image_field(self, card):
        rule = ElementRule(selector="img.hero")
        assert resolve_field(card, FieldName.IMAGE_LINK, rule, BASE_URL) == "https://cdn.example/hero.jpg"

    def test_text_field(self, card):
        rule = ElementRule(selector="a.more")
        assert resolve_field(card, FieldName.TITLE, rule, BASE_URL) == "Details"

    def test_empty_rule(self, card):
        assert resolve_field(card, FieldName.TITLE, ElementRule(), BASE_URL) == ""
