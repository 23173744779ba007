"""Browser session used by the scraper."""

from .browser import BrowserCrawler, is_blocked_request

__all__ = ['BrowserCrawler', 'is_blocked_request']
