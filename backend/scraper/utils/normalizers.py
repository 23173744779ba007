"""
Data normalization utilities for scrapers.

These functions standardize scraped strings into consistent formats.
None of them raise: malformed input comes back empty or unchanged.
"""

import re
from typing import Optional
from urllib.parse import urljoin, urlparse


def normalize_price(raw: Optional[str]) -> str:
    """
    Reduce a displayed price to its leading whole number.

    Examples:
        $1,234.56 - $1,999 -> 1234
        From 950 EUR -> 950
        1,250, 1,400 -> 1250
        "" -> ""
    """
    if not raw:
        return ''

    # Keep digits, separators and whatever splits a price range
    cleaned = re.sub(r'[^\d,.\s\-–—]', '', str(raw))

    # First price token: split on dashes, whitespace, or comma + whitespace
    tokens = [t for t in re.split(r'\s*[-–—]\s*|,\s+|\s+', cleaned) if t]
    if not tokens:
        return ''

    # Drop thousands separators, then everything after the decimal point
    price = tokens[0].replace(',', '')
    price = price.split('.', 1)[0]
    return price if price.isdigit() else ''


def absolute_url(url: Optional[str], base_url: Optional[str] = None) -> str:
    """
    Resolve a possibly relative URL against a base.

    Examples:
        ("/rooms/12", "https://hotel.example/rooms") -> "https://hotel.example/rooms/12"
        ("https://a.example/x", anything) -> "https://a.example/x"
        ("javascript:void(0)", ...) -> ""
    """
    if not url:
        return ''
    url = url.strip()
    if not url or url.startswith(('javascript:', 'mailto:', 'tel:', '#')):
        return ''
    if base_url:
        try:
            return urljoin(base_url, url)
        except ValueError:
            return url
    return url


def is_absolute_url(url: Optional[str]) -> bool:
    """True for http(s) URLs with a host."""
    if not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)

