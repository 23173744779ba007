"""Shared utilities for scrapers."""

from .normalizers import (
    normalize_price,
    absolute_url,
    is_absolute_url,
)
from .extractors import (
    select_one,
    select_all,
    resolve_text,
    resolve_link,
    resolve_image,
    resolve_rule,
    resolve_field,
    parse_html,
)

__all__ = [
    'normalize_price',
    'absolute_url',
    'is_absolute_url',
    'select_one',
    'select_all',
    'resolve_text',
    'resolve_link',
    'resolve_image',
    'resolve_rule',
    'resolve_field',
    'parse_html',
]
