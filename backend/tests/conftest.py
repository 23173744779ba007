"""
Pytest configuration and fixtures for scraper tests.

Browser access is replaced by FakeCrawler/FakePage, which serve fixed HTML
per URL and record what was opened, visited and closed.
"""

import asyncio
import json

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from scraper.cache import ResultCache
from scraper.config import parse_client
from scraper.exceptions import NavigationTimeout
from scraper.utils.extractors import parse_html, select_all


LISTINGS_URL = "https://hotels.example/listings"


class FakePage:
    """Stands in for a Playwright page."""

    def __init__(self):
        self.url = "about:blank"
        self.html = ""
        self.closed = False

    async def wait_for_selector(self, selector, state="visible", timeout=None):
        if not select_all(parse_html(self.html), selector):
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for '{selector}'")

    async def content(self):
        return self.html

    async def close(self):
        self.closed = True


class FakeCrawler:
    """
    Stands in for BrowserCrawler.

    `pages` maps URL -> HTML. A list is served one entry per visit (the last
    entry repeats); an exception instance is raised instead of loading.
    Unknown URLs time out.
    """

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.visits = []
        self.opened = []
        self.entered = False
        self.exited = False
        self._active = set()
        self.max_active = 0

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.exited = True
        for page in self.opened:
            page.closed = True
        return False

    async def new_page(self, block_resources=None):
        page = FakePage()
        self.opened.append(page)
        return page

    async def goto(self, page, url, timeout=None, wait_until="networkidle"):
        self.visits.append(url)
        served = self.pages.get(url)
        if isinstance(served, list):
            served = served[min(self.visits.count(url), len(served)) - 1]
        if served is None:
            raise NavigationTimeout(url, int((timeout or 0) * 1000))
        if isinstance(served, BaseException):
            raise served

        page.url = url
        page.html = served
        self._active.add(id(page))
        self.max_active = max(self.max_active, len(self._active))
        # Let sibling tasks interleave like real navigation would
        await asyncio.sleep(0)

    async def close_page(self, page):
        if page is None:
            return
        self._active.discard(id(page))
        page.closed = True

    @property
    def open_pages(self):
        return sum(1 for page in self.opened if not page.closed)


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class SleepRecorder:
    """Async sleep that returns immediately and remembers the delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def listings_page(cards):
    """Listings page HTML; cards are (href, title, price) tuples."""
    items = "".join(
        f'<div class="card">'
        f'<a class="more" href="{href}">{title}</a>'
        f'<span class="price">{price}</span>'
        f'</div>'
        for href, title, price in cards
    )
    return f"<html><body><section id='results'>{items}</section></body></html>"


def detail_page(title, price="", image="/img/main.jpg", description="A fine place to stay."):
    """Detail page HTML inside a <main class="property"> container."""
    image_tag = f'<div class="gallery"><img src="{image}"></div>' if image else ""
    return (
        "<html><body><main class='property'>"
        f"<h1>{title}</h1>"
        f"<div class='rate'>{price}</div>"
        f"<p class='description'>{description}</p>"
        f"{image_tag}"
        "</main></body></html>"
    )


def make_client(client_id="seaside", name="Seaside Hotels", listings_url=LISTINGS_URL, sheet_id="", **selectors):
    """Build a ClientConfig through the same parser the JSON loader uses."""
    element_selectors = {
        "listingsPageContainer": {"selector": ".card", "selectorIfAttribute": None},
        "listingDetailPageUrl": {"selector": "a.more", "selectorIfAttribute": None},
    }
    element_selectors.update(selectors)
    return parse_client({
        "id": client_id,
        "name": name,
        "status": "active",
        "listingsUrl": listings_url,
        "sheetId": sheet_id,
        "elementSelectors": element_selectors,
    })


@pytest.fixture
def two_phase_config():
    """Price from the listings page; title, description and image from detail pages."""
    return make_client(
        listingDetailContainer={"selector": "main.property", "selectorIfAttribute": None},
        listingPrice={"selector": ".price", "selectorIfAttribute": None},
        listingTitle={"selector": "h1", "selectorIfAttribute": None, "getDataFromDetailsPage": True},
        listingDescription={"selector": ".description", "selectorIfAttribute": None, "getDataFromDetailsPage": True},
        listingImage={"selector": ".gallery img", "selectorIfAttribute": None, "getDataFromDetailsPage": True},
    )


@pytest.fixture
def listing_only_config():
    """Every field resolved on the listings page."""
    return make_client(
        client_id="harbor",
        name="Harbor Inns",
        listingTitle={"selector": "a.more", "selectorIfAttribute": None},
        listingPrice={"selector": ".price", "selectorIfAttribute": None},
    )


@pytest.fixture
def sample_listings_html():
    return listings_page([
        ("/rooms/1", "Ocean Suite", "$1,234.56 - $1,999"),
        ("/rooms/2", "Garden Room", "From 950 EUR"),
    ])


@pytest.fixture
def sample_pages(sample_listings_html):
    """Listings page plus both detail pages for two_phase_config."""
    return {
        LISTINGS_URL: sample_listings_html,
        "https://hotels.example/rooms/1": detail_page("Ocean Suite Deluxe", image="/img/ocean.jpg"),
        "https://hotels.example/rooms/2": detail_page("Garden Room Classic", image="https://cdn.example/garden.jpg"),
    }


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def no_sleep():
    return SleepRecorder()


@pytest.fixture
def cache_path(tmp_path):
    return tmp_path / "cache.json"


@pytest.fixture
def result_cache(cache_path, fake_clock):
    return ResultCache(cache_path, clock=fake_clock)


@pytest.fixture
def clients_file(tmp_path):
    """A clients JSON file with two valid clients."""
    path = tmp_path / "clients.json"
    path.write_text(json.dumps({
        "clients": [
            {
                "id": "seaside",
                "name": "Seaside Hotels",
                "status": "active",
                "listingsUrl": LISTINGS_URL,
                "sheetId": "sheet-seaside",
                "elementSelectors": {
                    "listingsPageContainer": {"selector": ".card", "selectorIfAttribute": None},
                    "listingDetailPageUrl": {"selector": "a.more", "selectorIfAttribute": None},
                    "listingTitle": {"selector": "h1", "selectorIfAttribute": None, "getDataFromDetailsPage": True},
                },
            },
            {
                "id": "harbor",
                "name": "Harbor Inns",
                "status": "paused",
                "listingsUrl": "https://harbor.example/stay",
                "elementSelectors": {
                    "listingsPageContainer": ".room",
                    "listingDetailPageUrl": "a",
                },
            },
        ]
    }), encoding="utf-8")
    return path


@pytest.fixture(scope="function")
def client(clients_file, cache_path, monkeypatch):
    """Create a test client backed by temporary clients and cache files."""
    from fastapi.testclient import TestClient
    from api.config import settings
    from api.main import app

    monkeypatch.setattr(settings, "clients_file", str(clients_file))
    monkeypatch.setattr(settings, "cache_file", str(cache_path))

    with TestClient(app) as test_client:
        yield test_client
