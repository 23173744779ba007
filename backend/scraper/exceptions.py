"""
Error types raised by the scraping engine.

Listing- and detail-phase errors are caught by the orchestrator and turned
into per-client failure bookkeeping. Only ConfigurationError is allowed to
abort a whole run.
"""

from typing import Optional


class ScraperError(Exception):
    """Base class for all scraper errors."""


class ElementNotFound(ScraperError):
    """An expected selector never appeared within the wait timeout."""

    def __init__(self, selector: str, url: Optional[str] = None, timeout_ms: Optional[int] = None):
        self.selector = selector
        self.url = url
        self.timeout_ms = timeout_ms
        message = f"Selector '{selector}' not found"
        if url:
            message += f" on {url}"
        if timeout_ms is not None:
            message += f" after {timeout_ms}ms"
        super().__init__(message)


class NavigationTimeout(ScraperError):
    """Page load exceeded its navigation timeout."""

    def __init__(self, url: str, timeout_ms: Optional[int] = None):
        self.url = url
        self.timeout_ms = timeout_ms
        message = f"Navigation to {url} timed out"
        if timeout_ms is not None:
            message += f" after {timeout_ms}ms"
        super().__init__(message)


class MissingRequiredField(ScraperError):
    """A required detail-page field resolved empty."""

    def __init__(self, fields, url: Optional[str] = None):
        self.fields = list(fields)
        self.url = url
        message = f"Missing required field(s): {', '.join(self.fields)}"
        if url:
            message += f" on {url}"
        super().__init__(message)


class NoListingsFound(ScraperError):
    """The listings page produced no listing containers."""

    def __init__(self, url: str, selector: str):
        self.url = url
        self.selector = selector
        super().__init__(f"No listings matched '{selector}' on {url}")


class SinkWriteFailure(ScraperError):
    """The spreadsheet sink rejected a write."""

    def __init__(self, message: str, sheet_id: Optional[str] = None):
        self.sheet_id = sheet_id
        if sheet_id:
            message = f"{message} (sheet {sheet_id})"
        super().__init__(message)


class ConfigurationError(ScraperError):
    """Missing or invalid configuration. Fatal for the whole run."""
