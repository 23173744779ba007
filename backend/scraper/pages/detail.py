"""
Detail page extraction.

Each listing with a detail link gets its own page; every detail-phase rule
is resolved there and the results are merged into the listing record by the
caller. Failed attempts are retried on a fresh page with backoff, and after
the last attempt an empty result is returned instead of raising.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..base import ClientConfig
from ..crawlers.browser import BrowserCrawler
from ..exceptions import ElementNotFound, MissingRequiredField
from ..fields import record_attribute
from ..retry import RetryPolicy
from ..utils.extractors import parse_html, select_one, resolve_field

logger = logging.getLogger(__name__)


class DetailPageExtractor:
    """
    Resolves a client's detail-phase rules on individual listing pages.

    Usage:
        extractor = DetailPageExtractor(config, RetryPolicy(max_attempts=3))
        values = await extractor.extract(crawler, record.link)
        record.merge(values)
    """

    def __init__(
        self,
        config: ClientConfig,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = 60.0,
        wait_timeout: float = 15.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            config: Client configuration
            retry_policy: Attempts and backoff (defaults to 3 attempts)
            timeout: Navigation timeout per attempt, in seconds
            wait_timeout: How long to wait for the detail container, in seconds
            sleep: Backoff sleep (injectable for tests)
        """
        self.config = config
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self.wait_timeout = wait_timeout
        self.sleep = sleep
        self.rules = config.detail_rules()
        self.last_error: Optional[BaseException] = None

    def parse(self, html: str, base_url: str) -> Dict[str, str]:
        """
        Resolve every detail rule against detail page HTML.

        Raises:
            ElementNotFound: A detail container is configured but absent
        """
        soup = parse_html(html)
        root = soup
        container_selector = self.config.detail_container_selector
        if container_selector:
            root = select_one(soup, container_selector)
            if root is None:
                raise ElementNotFound(container_selector, base_url)

        values: Dict[str, str] = {}
        for field_name, rule in self.rules:
            value = resolve_field(root, field_name, rule, base_url)
            if value:
                values[record_attribute(field_name)] = value
        return values

    def missing_required(self, values: Dict[str, str]) -> List[str]:
        """Required detail fields that resolved empty."""
        missing = []
        for field_name, rule in self.rules:
            attr = record_attribute(field_name)
            if rule.is_required(field_name) and not values.get(attr):
                missing.append(attr)
        return missing

    async def _attempt(self, crawler: BrowserCrawler, url: str) -> Dict[str, str]:
        page = await crawler.new_page()
        try:
            await crawler.goto(page, url, timeout=self.timeout, wait_until='networkidle')

            container_selector = self.config.detail_container_selector
            if container_selector:
                timeout_ms = int(self.wait_timeout * 1000)
                try:
                    await page.wait_for_selector(container_selector, state='attached', timeout=timeout_ms)
                except PlaywrightTimeoutError:
                    raise ElementNotFound(container_selector, url, timeout_ms)

            html = await page.content()
            values = self.parse(html, page.url or url)

            missing = self.missing_required(values)
            if missing:
                # Slow pages often render these late; try again on a fresh page
                raise MissingRequiredField(missing, url)
            return values
        finally:
            await crawler.close_page(page)

    async def extract(self, crawler: BrowserCrawler, url: str) -> Dict[str, str]:
        """
        Resolve detail fields for one listing.

        Returns:
            Mapping of record attribute -> value, or {} once retries are exhausted
        """
        self.last_error = None
        if not self.rules:
            return {}

        try:
            return await self.retry_policy.run(
                lambda attempt: self._attempt(crawler, url),
                description=url,
                sleep=self.sleep,
            )
        except Exception as e:
            self.last_error = e
            logger.warning(
                f"Giving up on detail page {url} after "
                f"{self.retry_policy.max_attempts} attempts: {e}"
            )
            return {}


async def extract_detail(
    crawler: BrowserCrawler,
    url: str,
    config: ClientConfig,
    retry_policy: Optional[RetryPolicy] = None,
) -> Dict[str, str]:
    """Resolve a client's detail-phase fields for one URL. Never raises."""
    return await DetailPageExtractor(config, retry_policy).extract(crawler, url)
