"""
Headless browser session for listing and detail pages.

Uses Playwright Chromium with stealth settings, blocks heavy and tracking
subresources per page, and rate limits navigations. One BrowserCrawler is
opened per client scrape and always cleaned up, including every page it
handed out.
"""

import asyncio
import os
import random
import time
from typing import Optional, Set
from urllib.parse import urlparse
from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Page,
    Route,
    TimeoutError as PlaywrightTimeoutError,
)
import logging

from ..exceptions import NavigationTimeout, ScraperError

logger = logging.getLogger(__name__)


# Subresources detail pages render fine without
BLOCKED_RESOURCE_TYPES = frozenset({'image', 'media', 'font'})

# Analytics/ads hosts, matched on domain suffix
BLOCKED_DOMAINS = (
    'google-analytics.com',
    'googletagmanager.com',
    'doubleclick.net',
    'googlesyndication.com',
    'facebook.net',
    'connect.facebook.com',
    'hotjar.com',
    'hotjar.io',
    'clarity.ms',
    'segment.io',
    'mixpanel.com',
    'newrelic.com',
    'nr-data.net',
    'criteo.com',
    'taboola.com',
    'outbrain.com',
    'bing.com',
    'tiktok.com',
)

USER_AGENT = (
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36'
)

STEALTH_INIT_SCRIPT = """
    Object.defineProperty(navigator, 'webdriver', {
        get: () => undefined
    });

    Object.defineProperty(navigator, 'languages', {
        get: () => ['en-US', 'en']
    });
"""


def is_blocked_request(resource_type: str, url: str) -> bool:
    """Whether a request should be aborted by the page filter."""
    if resource_type in BLOCKED_RESOURCE_TYPES:
        return True
    try:
        host = (urlparse(url).hostname or '').lower()
    except ValueError:
        return False
    return any(host == domain or host.endswith('.' + domain) for domain in BLOCKED_DOMAINS)


class BrowserCrawler:
    """
    Playwright browser session with stealth defaults.

    Features:
    - Realistic user agent, headers and viewport
    - Per-page request filter for images/media/fonts/trackers
    - Rate limiting between navigations
    - Cleanup with timeouts so a hung browser can't block shutdown

    Usage:
        async with BrowserCrawler(rate_limit=1.5) as crawler:
            page = await crawler.new_page()
            try:
                await crawler.goto(page, url)
                html = await page.content()
            finally:
                await crawler.close_page(page)
    """

    def __init__(
        self,
        rate_limit: float = 1.5,
        headless: bool = True,
        block_resources: bool = True,
        navigation_timeout: float = 45.0,
    ):
        """
        Initialize the crawler.

        Args:
            rate_limit: Minimum seconds between navigations
            headless: Run browser in headless mode
            block_resources: Install the request filter on new pages
            navigation_timeout: Default navigation timeout in seconds
        """
        self.rate_limit = rate_limit
        self.headless = headless
        self.block_resources = block_resources
        self.navigation_timeout = navigation_timeout
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._pages: Set[Page] = set()
        self._last_request_time = 0.0
        self._rate_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    @property
    def open_pages(self) -> int:
        return len(self._pages)

    async def wait_for_rate_limit(self):
        """Wait to respect the rate limit, with a little jitter."""
        if self.rate_limit <= 0:
            return
        async with self._rate_lock:
            elapsed = time.monotonic() - self._last_request_time
            wait_time = self.rate_limit - elapsed + random.uniform(0, 0.3)
            if wait_time > 0:
                await asyncio.sleep(wait_time)
            self._last_request_time = time.monotonic()

    async def start(self):
        """Launch Playwright, Chromium and a browser context."""
        if self.is_running and self._context is not None:
            return

        try:
            self._playwright = await async_playwright().start()

            chromium_path = self._playwright.chromium.executable_path
            if not chromium_path or not os.path.exists(chromium_path):
                raise ScraperError("Chromium browser not found. Run: playwright install chromium")

            logger.debug("Launching Chromium browser...")
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=[
                    '--disable-blink-features=AutomationControlled',
                    '--disable-dev-shm-usage',
                    '--no-sandbox',
                    '--disable-setuid-sandbox',
                    '--disable-gpu',
                ],
                handle_sigint=False,
                handle_sigterm=False,
                handle_sighup=False,
            )

            self._context = await self._browser.new_context(
                viewport={'width': 1920, 'height': 1080},
                user_agent=USER_AGENT,
                locale='en-US',
                ignore_https_errors=True,
                extra_http_headers={
                    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8',
                    'Accept-Language': 'en-US,en;q=0.9',
                    'DNT': '1',
                    'Upgrade-Insecure-Requests': '1',
                },
            )
            self._context.set_default_timeout(int(self.navigation_timeout * 1000))
            await self._context.add_init_script(STEALTH_INIT_SCRIPT)
            logger.debug("Browser initialization successful")

        except Exception as e:
            logger.error(f"Failed to initialize browser: {e}")
            await self.close()
            raise

    async def _route_filter(self, route: Route):
        request = route.request
        if is_blocked_request(request.resource_type, request.url):
            await route.abort()
        else:
            await route.continue_()

    async def new_page(self, block_resources: Optional[bool] = None) -> Page:
        """
        Open a new page in the browser context.

        The page is tracked and closed on cleanup if the caller doesn't.
        """
        if self._context is None:
            await self.start()

        try:
            page = await asyncio.wait_for(self._context.new_page(), timeout=10.0)
        except asyncio.TimeoutError:
            raise ScraperError("Timeout creating new page - browser may be unresponsive")

        self._pages.add(page)
        if self.block_resources if block_resources is None else block_resources:
            await page.route('**/*', self._route_filter)
        return page

    async def goto(
        self,
        page: Page,
        url: str,
        timeout: Optional[float] = None,
        wait_until: str = 'networkidle'
    ):
        """
        Navigate a page, honouring the rate limit.

        Raises:
            NavigationTimeout: The load didn't finish within the timeout
            ScraperError: The server answered with an error status
        """
        await self.wait_for_rate_limit()
        timeout_ms = int((timeout or self.navigation_timeout) * 1000)
        try:
            response = await page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except PlaywrightTimeoutError:
            raise NavigationTimeout(url, timeout_ms)

        if response is not None and response.status >= 400:
            raise ScraperError(f"HTTP {response.status} for {url}")
        return response

    async def close_page(self, page: Optional[Page]):
        """Close a page, never raising."""
        if page is None:
            return
        self._pages.discard(page)
        try:
            await asyncio.wait_for(page.close(), timeout=2.0)
        except asyncio.TimeoutError:
            logger.warning("Page close timed out, forcing cleanup")
        except Exception as e:
            logger.debug(f"Error closing page: {e}")

    async def close(self):
        """Clean up browser resources with timeouts to prevent hanging."""
        cleanup_timeout = 2.0

        for page in list(self._pages):
            await self.close_page(page)

        if self._context:
            try:
                await asyncio.wait_for(self._context.close(), timeout=cleanup_timeout)
            except asyncio.TimeoutError:
                logger.warning("Context close timed out, forcing cleanup")
            except Exception as e:
                logger.warning(f"Error closing context: {e}")
            self._context = None

        if self._browser:
            try:
                await asyncio.wait_for(self._browser.close(), timeout=cleanup_timeout)
            except asyncio.TimeoutError:
                logger.warning("Browser close timed out, forcing cleanup")
            except Exception as e:
                logger.warning(f"Error closing browser: {e}")
            self._browser = None

        if self._playwright:
            try:
                await asyncio.wait_for(self._playwright.stop(), timeout=cleanup_timeout)
            except asyncio.TimeoutError:
                logger.warning("Playwright stop timed out, forcing cleanup")
            except Exception as e:
                logger.warning(f"Error stopping playwright: {e}")
            self._playwright = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
