"""
Per-client scrape.

ClientScraper runs one client through its lifecycle:
IDLE -> NAVIGATING -> EXTRACTING_LISTINGS -> EXTRACTING_DETAILS -> CACHING -> DONE,
or FAILED when the listings page can't be loaded or has no listings after
retries. Detail page failures don't fail the client.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from .base import (
    ClientConfig,
    ClientScrapeResult,
    Colors,
    ListingRecord,
    ProgressCallback,
    ScrapeOptions,
    ScrapeState,
)
from .cache import ResultCache
from .crawlers.browser import BrowserCrawler
from .exceptions import NoListingsFound, ScraperError
from .fields import record_attribute
from .pages.detail import DetailPageExtractor
from .pages.listing import ListingPageExtractor
from .retry import RetryPolicy


class ClientScraper:
    """
    Scrapes one client: listings page, then detail pages, then cache.

    Usage:
        scraper = ClientScraper(config, options, cache=cache, progress=report)
        result = await scraper.run()
        if result.success:
            rows.extend(result.records)
    """

    def __init__(
        self,
        config: ClientConfig,
        options: Optional[ScrapeOptions] = None,
        cache: Optional[ResultCache] = None,
        progress: Optional[ProgressCallback] = None,
        crawler_factory: Optional[Callable[[], BrowserCrawler]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the scraper.

        Args:
            config: Client configuration
            options: Engine options (timeouts, retries, concurrency)
            cache: Result cache, read before and written after the scrape
            progress: Optional progress callback
            crawler_factory: Builds the browser session (defaults to BrowserCrawler)
            sleep: Backoff sleep (injectable for tests)
        """
        self.config = config
        self.options = options or ScrapeOptions()
        self.cache = cache
        self.progress = progress
        self.crawler_factory = crawler_factory or self._default_crawler
        self.sleep = sleep
        self.retry_policy = RetryPolicy(
            max_attempts=self.options.max_attempts,
            base_delay=self.options.backoff_base,
        )
        self.result = ClientScrapeResult(
            client_id=config.id,
            client_name=config.name,
            started_at=datetime.now(timezone.utc),
        )
        self.logger = logging.getLogger(f"scraper.{config.id}")

    def _default_crawler(self) -> BrowserCrawler:
        # Parallel mode is gated by the semaphore, not the rate limit
        rate_limit = self.options.rate_limit if self.options.sequential_details else 0
        return BrowserCrawler(
            rate_limit=rate_limit,
            headless=self.options.headless,
            block_resources=self.options.block_resources,
            navigation_timeout=self.options.navigation_timeout,
        )

    @property
    def state(self) -> ScrapeState:
        return self.result.state

    def _set_state(self, state: ScrapeState):
        if self.result.state != state:
            self.logger.debug(f"{self.config.id}: {self.result.state.value} -> {state.value}")
            self.result.state = state

    def report(self, message: str, percent: Optional[int] = None):
        """Forward a progress update. A failing callback never fails the scrape."""
        if not self.progress:
            return
        try:
            self.progress(self.config.id, message, percent)
        except Exception as e:
            self.logger.warning(f"Progress callback failed: {e}")

    # ------------------------------------------------------------
    # Listings phase
    # ------------------------------------------------------------

    async def scrape_listings(self, crawler: BrowserCrawler) -> List[ListingRecord]:
        """
        Load the listings page and extract partial records.

        Retried on navigation errors, a missing container selector, and pages
        with zero containers.

        Raises:
            The last listings-phase error once retries are exhausted
        """
        url = self.config.listings_url
        extractor = ListingPageExtractor(self.config, wait_timeout=self.options.wait_timeout)

        async def attempt(n: int) -> List[ListingRecord]:
            page = await crawler.new_page()
            try:
                self._set_state(ScrapeState.NAVIGATING)
                self.logger.info(f"Scraping listings from: {url}" + (f" (attempt {n})" if n > 1 else ''))
                await crawler.goto(page, url, timeout=self.options.navigation_timeout)

                self._set_state(ScrapeState.EXTRACTING_LISTINGS)
                records = await extractor.extract(page)
                if extractor.container_count == 0:
                    raise NoListingsFound(url, self.config.container_selector)
                return records
            finally:
                await crawler.close_page(page)

        records = await self.retry_policy.run(attempt, description=f"listings page {url}", sleep=self.sleep)
        if extractor.dropped_count:
            self.logger.info(f"Dropped {extractor.dropped_count} listing(s) without a detail link")
        return records

    # ------------------------------------------------------------
    # Details phase
    # ------------------------------------------------------------

    def _detail_extractor(self) -> DetailPageExtractor:
        return DetailPageExtractor(
            self.config,
            self.retry_policy,
            timeout=self.options.detail_timeout,
            wait_timeout=self.options.wait_timeout,
            sleep=self.sleep,
        )

    def log_record_extraction(self, idx: int, total: int, record: ListingRecord):
        """Log which configured fields were captured for a record."""
        expected = [
            record_attribute(f)
            for f, _ in self.config.listing_rules() + self.config.detail_rules()
        ]
        captured = [attr for attr in expected if getattr(record, attr, None)]
        missing = [attr for attr in expected if not getattr(record, attr, None)]

        label = f"[{idx}/{total}]"
        if captured:
            self.logger.info(f"   ➤ {label} {record.link}: {', '.join(captured)}")
        else:
            self.logger.info(f"   ➤ {label} {record.link}: no data captured")
        if missing:
            self.logger.info(f"   ✘ missing: {', '.join(missing)}")

    async def _enrich(self, crawler: BrowserCrawler, record: ListingRecord, idx: int, total: int):
        extractor = self._detail_extractor()
        values = await extractor.extract(crawler, record.link)
        if extractor.last_error is not None:
            self.result.detail_errors += 1
            self.logger.error(f"   {Colors.red('[ERR]')} {record.link}: {extractor.last_error}")
        record.merge(values)
        self.log_record_extraction(idx, total, record)
        self.report(
            f"{self.config.name}: processed listing {idx}/{total}",
            10 + int(85 * idx / total),
        )

    async def scrape_details(self, crawler: BrowserCrawler, records: List[ListingRecord]):
        """
        Enrich records from their detail pages, in place.

        Sequential mode (one page at a time, rate limited) takes precedence
        over bounded-parallel mode.
        """
        if not records or not self.config.has_detail_fields:
            return

        total = len(records)
        concurrency = max(1, self.options.detail_concurrency)

        if self.options.sequential_details or concurrency == 1:
            self.logger.info(f"Scraping {total} detail pages sequentially")
            for idx, record in enumerate(records, 1):
                await self._enrich(crawler, record, idx, total)
            return

        self.logger.info(f"Scraping {total} detail pages, {concurrency} at a time")
        semaphore = asyncio.Semaphore(concurrency)

        async def bounded(idx: int, record: ListingRecord):
            async with semaphore:
                await self._enrich(crawler, record, idx, total)

        await asyncio.gather(*(bounded(idx, record) for idx, record in enumerate(records, 1)))

    # ------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------

    def mark_failed(self, error: BaseException):
        self._set_state(ScrapeState.FAILED)
        self.result.error = str(error) or error.__class__.__name__
        self.result.completed_at = datetime.now(timezone.utc)
        self.logger.error(f"{Colors.red('[FAILED]')} {self.config.name}: {self.result.error}")
        self.report(f"Failed to scrape {self.config.name}: {self.result.error}", 100)

    async def run(self) -> ClientScrapeResult:
        """
        Scrape this client.

        Never raises for scrape errors; the returned result carries the
        final state and error message.
        """
        self.logger.info(f"Starting scrape for {Colors.bold(self.config.name)}")
        self.report(f"Starting {self.config.name}...", 0)

        try:
            if self.cache is not None and self.options.use_cache:
                cached = self.cache.get(self.config)
                if cached is not None:
                    self.logger.info(f"Using {len(cached)} cached listings for {self.config.name}")
                    self.result.records = cached
                    self.result.from_cache = True
                    self._set_state(ScrapeState.DONE)
                    self.result.completed_at = datetime.now(timezone.utc)
                    self.report(f"Loaded {len(cached)} cached listings for {self.config.name}", 100)
                    return self.result

            async with self.crawler_factory() as crawler:
                records = await self.scrape_listings(crawler)
                self.report(f"{self.config.name}: found {len(records)} listings", 10)

                self._set_state(ScrapeState.EXTRACTING_DETAILS)
                await self.scrape_details(crawler, records)

            for record in records:
                record.brand = self.config.name

            self._set_state(ScrapeState.CACHING)
            if self.cache is not None and records:
                self.cache.set(self.config, records)

            self.result.records = records
            self._set_state(ScrapeState.DONE)
            self.result.completed_at = datetime.now(timezone.utc)

            duration = self.result.duration_seconds or 0
            self.logger.info(
                f"✅ Scrape complete for {self.config.name} in {duration:.1f}s: "
                f"{len(records)} listings, {self.result.detail_errors} detail errors"
            )
            self.report(f"Finished {self.config.name}: {len(records)} listings", 100)
            return self.result

        except Exception as e:
            self.mark_failed(e)
            return self.result


async def run_client(
    config: ClientConfig,
    options: Optional[ScrapeOptions] = None,
    cache: Optional[ResultCache] = None,
    progress: Optional[ProgressCallback] = None,
) -> List[ListingRecord]:
    """
    Scrape a single client and return its records.

    Raises:
        ScraperError: The client scrape failed
    """
    result = await ClientScraper(config, options, cache=cache, progress=progress).run()
    if not result.success:
        raise ScraperError(result.error or f"Scrape failed for {config.name}")
    return result.records
