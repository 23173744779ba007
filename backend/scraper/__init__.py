"""
Config-driven listings scraper.

This module provides the scraping engine used by the API and the CLI:
- Client configs mapping field names to CSS selectors (config)
- Two-phase extraction: listings page, then detail pages (pages)
- Playwright browser sessions with resource blocking (crawlers)
- A 24h result cache and batched multi-client runs (cache, manager)
"""

from .base import (
    ClientConfig,
    ClientScrapeResult,
    ElementRule,
    ListingRecord,
    RunResult,
    ScrapeOptions,
    ScrapeState,
)
from .cache import ResultCache
from .client import ClientScraper, run_client
from .config import load_clients, get_client_config
from .fields import FieldName
from .manager import ScraperManager, run_clients

__all__ = [
    'ClientConfig',
    'ClientScrapeResult',
    'ElementRule',
    'ListingRecord',
    'RunResult',
    'ScrapeOptions',
    'ScrapeState',
    'ResultCache',
    'ClientScraper',
    'run_client',
    'load_clients',
    'get_client_config',
    'FieldName',
    'ScraperManager',
    'run_clients',
]
