"""
Listings page extraction.

Finds the repeated listing containers on a client's listings page and
resolves every listing-phase rule against each one.
"""

import logging
from typing import List, Optional

from playwright.async_api import Page, TimeoutError as PlaywrightTimeoutError

from ..base import ClientConfig, ListingRecord
from ..exceptions import ElementNotFound
from ..fields import record_attribute
from ..utils.extractors import parse_html, select_all, resolve_field
from ..utils.normalizers import absolute_url

logger = logging.getLogger(__name__)


class ListingPageExtractor:
    """
    Turns a loaded listings page into partial ListingRecords.

    `container_count` is kept after each extraction so callers can tell
    "no containers on the page" apart from "containers found, but none had
    a detail link".
    """

    def __init__(self, config: ClientConfig, wait_timeout: float = 15.0):
        self.config = config
        self.wait_timeout = wait_timeout
        self.container_count = 0
        self.dropped_count = 0

    async def wait_for_containers(self, page: Page):
        """Block until the first listing container is attached."""
        selector = self.config.container_selector
        timeout_ms = int(self.wait_timeout * 1000)
        try:
            await page.wait_for_selector(selector, state='attached', timeout=timeout_ms)
        except PlaywrightTimeoutError:
            raise ElementNotFound(selector, page.url, timeout_ms)

    async def extract(self, page: Page) -> List[ListingRecord]:
        """
        Extract partial records from the current page.

        Raises:
            ElementNotFound: The container selector never appeared
        """
        await self.wait_for_containers(page)
        html = await page.content()
        base_url = page.url or self.config.listings_url
        return self.parse(html, base_url)

    def parse(self, html: str, base_url: Optional[str] = None) -> List[ListingRecord]:
        """Build records from listings page HTML."""
        base_url = base_url or self.config.listings_url
        soup = parse_html(html)
        containers = select_all(soup, self.config.container_selector)
        self.container_count = len(containers)
        self.dropped_count = 0

        if not containers:
            logger.warning(
                f"No listing elements found for selector: {self.config.container_selector}"
            )
            return []

        rules = self.config.listing_rules()
        records: List[ListingRecord] = []

        for idx, container in enumerate(containers, 1):
            record = ListingRecord(brand=self.config.name)
            for field_name, rule in rules:
                value = resolve_field(container, field_name, rule, base_url)
                if value:
                    setattr(record, record_attribute(field_name), value)

            # Links read from an attribute come back raw
            record.link = absolute_url(record.link, base_url) or None
            if not record.link:
                self.dropped_count += 1
                logger.debug(f"Dropping listing {idx}: no detail page URL")
                continue
            records.append(record)

        logger.info(
            f"Found {self.container_count} listing elements, "
            f"{len(records)} with detail links"
        )
        return records


async def extract_listings(page: Page, config: ClientConfig, wait_timeout: float = 15.0) -> List[ListingRecord]:
    """Extract partial ListingRecords from a loaded listings page."""
    return await ListingPageExtractor(config, wait_timeout).extract(page)
