"""
DOM extraction helpers.

These functions resolve a single value from a BeautifulSoup element given a
selector and an optional attribute name. They are pure and never raise:
anything that does not resolve comes back as an empty string.
"""

import logging
from typing import Optional

from bs4 import BeautifulSoup
from bs4.element import Tag

from ..base import ElementRule
from ..fields import FieldName, PRICE_FIELDS
from .normalizers import absolute_url, normalize_price

logger = logging.getLogger(__name__)


def select_one(root: Tag, selector: Optional[str]) -> Optional[Tag]:
    """
    Select the first descendant matching a CSS selector.

    Returns the root itself when no selector is given, and None when the
    selector is invalid or matches nothing.
    """
    if root is None:
        return None
    if not selector:
        return root
    try:
        return root.select_one(selector)
    except Exception as e:
        logger.debug(f"Invalid selector '{selector}': {e}")
        return None


def select_all(root: Tag, selector: Optional[str]) -> list:
    """All descendants matching a selector; empty list on bad input."""
    if root is None or not selector:
        return []
    try:
        return root.select(selector)
    except Exception as e:
        logger.debug(f"Invalid selector '{selector}': {e}")
        return []


def _attribute(el: Optional[Tag], attribute: str) -> str:
    if el is None:
        return ''
    value = el.get(attribute)
    if value is None:
        return ''
    # Multi-valued attributes (class, rel) come back as lists
    if isinstance(value, (list, tuple)):
        value = ' '.join(value)
    return str(value).strip()


def resolve_text(root: Tag, selector: Optional[str] = None, attribute: Optional[str] = None) -> str:
    """
    Resolve trimmed text content, or an attribute value when one is named.

    Args:
        root: Element to resolve against
        selector: CSS selector relative to root (None = root itself)
        attribute: Attribute to read instead of text content

    Returns:
        Resolved string, or "" when nothing matches
    """
    if not selector and not attribute:
        return ''
    el = select_one(root, selector)
    if el is None:
        return ''
    if attribute:
        return _attribute(el, attribute)
    try:
        return el.get_text().strip()
    except Exception:
        return ''


def resolve_link(
    root: Tag,
    selector: Optional[str] = None,
    attribute: Optional[str] = None,
    base_url: Optional[str] = None
) -> str:
    """
    Resolve a link.

    Without an attribute the element's href is returned as an absolute URL
    (resolved against base_url). With an attribute the raw value is returned.
    """
    if not selector and not attribute:
        return ''
    el = select_one(root, selector)
    if el is None:
        return ''
    if attribute:
        return _attribute(el, attribute)
    href = _attribute(el, 'href')
    if not href:
        # Containers that are themselves cards often nest the anchor
        anchor = el.find('a', href=True) if el.name != 'a' else None
        href = _attribute(anchor, 'href')
    return absolute_url(href, base_url)


def resolve_image(
    root: Tag,
    selector: Optional[str] = None,
    attribute: Optional[str] = None,
    base_url: Optional[str] = None
) -> str:
    """
    Resolve an image URL.

    Without an attribute: src (absolute), then data-src for lazy-loaded
    images. Inline data: placeholders count as missing.
    An explicit attribute is resolved against base_url too.
    """
    if not selector and not attribute:
        return ''
    el = select_one(root, selector)
    if el is None:
        return ''
    if attribute:
        return absolute_url(_attribute(el, attribute), base_url)

    for candidate in ('src', 'data-src'):
        value = _attribute(el, candidate)
        if value and not value.startswith('data:'):
            return absolute_url(value, base_url)
    return ''


def resolve_rule(root: Tag, field_name: FieldName, rule: ElementRule, base_url: Optional[str] = None) -> str:
    """Apply one ElementRule for a field, picking the helper by field kind."""
    if rule is None or rule.is_empty:
        return ''
    if field_name == FieldName.DETAIL_PAGE_URL:
        return resolve_link(root, rule.selector, rule.attribute, base_url)
    if field_name == FieldName.IMAGE_LINK:
        return resolve_image(root, rule.selector, rule.attribute, base_url)
    return resolve_text(root, rule.selector, rule.attribute)


def resolve_price(root: Tag, rule: ElementRule) -> str:
    """Resolve a price rule and normalize it to a whole number string."""
    return normalize_price(resolve_text(root, rule.selector, rule.attribute))


def resolve_field(root: Tag, field_name: FieldName, rule: ElementRule, base_url: Optional[str] = None) -> str:
    """resolve_rule, with price fields normalized."""
    if field_name in PRICE_FIELDS:
        return resolve_price(root, rule)
    return resolve_rule(root, field_name, rule, base_url)


def parse_html(html: str) -> BeautifulSoup:
    """Parse page HTML the way every extractor expects it."""
    return BeautifulSoup(html or '', 'html.parser')
