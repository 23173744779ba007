"""
Scraper Manager - orchestrates client scrapes.

Runs clients individually or in bounded batches, enforces the per-client
timeout, and aggregates everything into a RunResult for the sink.
"""

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional
from datetime import datetime, timezone
import logging

from .base import (
    ALL_CLIENTS,
    ClientConfig,
    ClientScrapeResult,
    Colors,
    ProgressCallback,
    RunResult,
    ScrapeOptions,
    ScrapeState,
)
from .cache import ResultCache
from .client import ClientScraper

logger = logging.getLogger(__name__)


class ScraperManager:
    """
    Manages and orchestrates client scrapes.

    Usage:
        manager = ScraperManager(options, cache=cache)

        # Run single client
        result = await manager.scrape_client(config)

        # Run many clients, batched
        run = await manager.scrape_all(configs)
        print(run.summary())
    """

    def __init__(
        self,
        options: Optional[ScrapeOptions] = None,
        cache: Optional[ResultCache] = None,
        progress: Optional[ProgressCallback] = None,
        scraper_factory: Optional[Callable[..., ClientScraper]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the scraper manager.

        Args:
            options: Engine options shared by every client scrape
            cache: Result cache shared by every client scrape
            progress: Optional progress callback
            scraper_factory: Builds a ClientScraper for a config (for tests)
            sleep: Delay between batches (injectable for tests)
        """
        self.options = options or ScrapeOptions()
        self.cache = cache
        self.progress = progress
        self.scraper_factory = scraper_factory or ClientScraper
        self.sleep = sleep
        self.results: Dict[str, ClientScrapeResult] = {}

    def get_scraper(self, config: ClientConfig) -> ClientScraper:
        """Build the scraper for a client."""
        return self.scraper_factory(
            config,
            self.options,
            cache=self.cache,
            progress=self.progress,
        )

    def _report(self, message: str, percent: Optional[int] = None):
        if not self.progress:
            return
        try:
            self.progress(ALL_CLIENTS, message, percent)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    async def scrape_client(self, config: ClientConfig) -> ClientScrapeResult:
        """
        Run the scrape for a single client, bounded by the client timeout.

        Returns:
            ClientScrapeResult; a timeout or unexpected error is a failed result
        """
        logger.info(f"Starting scrape for {config.name} ({config.id})")
        scraper = self.get_scraper(config)

        try:
            result = await asyncio.wait_for(scraper.run(), timeout=self.options.client_timeout)
        except asyncio.TimeoutError:
            scraper.mark_failed(
                asyncio.TimeoutError(f"timed out after {self.options.client_timeout:g}s")
            )
            result = scraper.result
        except Exception as e:
            logger.error(f"Scraper failed for {config.id}: {e}")
            scraper.mark_failed(e)
            result = scraper.result

        self.results[config.id] = result
        return result

    def make_batches(self, configs: List[ClientConfig]) -> List[List[ClientConfig]]:
        """Split clients into fixed-size batches, preserving order."""
        size = max(1, self.options.batch_size)
        return [configs[i:i + size] for i in range(0, len(configs), size)]

    def _failed_result(self, config: ClientConfig, error: BaseException) -> ClientScrapeResult:
        now = datetime.now(timezone.utc)
        return ClientScrapeResult(
            client_id=config.id,
            client_name=config.name,
            started_at=now,
            completed_at=now,
            state=ScrapeState.FAILED,
            error=str(error) or error.__class__.__name__,
        )

    async def scrape_all(self, configs: List[ClientConfig]) -> RunResult:
        """
        Scrape many clients in batches.

        Batch members run concurrently; a batch starts only after the previous
        one has fully resolved. A failing client never affects its siblings.

        Returns:
            RunResult with succeeded/failed client names and the merged rows
        """
        run_result = RunResult()
        if not configs:
            logger.info("No clients to scrape")
            return run_result

        batches = self.make_batches(configs)
        logger.info(
            f"Starting scrape for {len(configs)} client(s) in {len(batches)} batch(es): "
            f"{[c.id for c in configs]}"
        )
        self._report(f"Scraping {len(configs)} client(s)...", 0)

        for batch_idx, batch in enumerate(batches, 1):
            if batch_idx > 1 and self.options.batch_delay > 0:
                await self.sleep(self.options.batch_delay)

            logger.info(
                f"\n{Colors.cyan('❯❯❯')} Batch {batch_idx}/{len(batches)}: "
                f"{', '.join(c.name for c in batch)}"
            )
            outcomes = await asyncio.gather(
                *(self.scrape_client(config) for config in batch),
                return_exceptions=True,
            )

            for config, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    outcome = self._failed_result(config, outcome)
                    self.results[config.id] = outcome
                run_result.add(outcome)

            self._report(
                f"Completed batch {batch_idx}/{len(batches)}",
                int(100 * batch_idx / len(batches)),
            )

        logger.info(
            f"Run complete: {Colors.green(f'{len(run_result.successful_clients)} succeeded')}, "
            f"{Colors.red(f'{len(run_result.failed_clients)} failed')}, "
            f"{len(run_result.rows)} rows"
        )
        return run_result

    def get_results_summary(self) -> Dict:
        """
        Get summary of all client results so far.

        Returns:
            Summary dictionary with totals
        """
        if not self.results:
            return {
                'total_clients': 0,
                'successful': 0,
                'failed': 0,
                'total_listings': 0,
                'from_cache': 0,
            }

        successful = sum(1 for r in self.results.values() if r.success)
        return {
            'total_clients': len(self.results),
            'successful': successful,
            'failed': len(self.results) - successful,
            'total_listings': sum(len(r.records) for r in self.results.values()),
            'from_cache': sum(1 for r in self.results.values() if r.from_cache),
            'clients': {k: v.to_dict() for k, v in self.results.items()},
        }


# Convenience function for standalone usage

async def run_clients(
    configs: List[ClientConfig],
    options: Optional[ScrapeOptions] = None,
    cache: Optional[ResultCache] = None,
    progress: Optional[ProgressCallback] = None,
) -> RunResult:
    """
    Scrape many clients.

    Args:
        configs: Clients to scrape
        options: Engine options
        cache: Optional result cache
        progress: Optional progress callback

    Returns:
        RunResult
    """
    manager = ScraperManager(options, cache=cache, progress=progress)
    return await manager.scrape_all(configs)
