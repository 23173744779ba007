"""
Tests for detail page extraction.
"""

import asyncio

from scraper.exceptions import ElementNotFound, MissingRequiredField, NavigationTimeout
from scraper.pages.detail import DetailPageExtractor
from scraper.retry import RetryPolicy

from conftest import FakeCrawler, detail_page

DETAIL_URL = "https://hotels.example/rooms/1"


def make_extractor(config, sleep):
    return DetailPageExtractor(config, RetryPolicy(max_attempts=3, base_delay=2.0), sleep=sleep)


class TestDetailPageExtractor:
    """Test resolving detail-phase fields."""

    def test_resolves_detail_fields(self, two_phase_config, no_sleep):
        crawler = FakeCrawler({DETAIL_URL: detail_page("Ocean Suite Deluxe", image="/img/ocean.jpg")})
        extractor = make_extractor(two_phase_config, no_sleep)

        values = asyncio.run(extractor.extract(crawler, DETAIL_URL))

        assert values == {
            "title": "Ocean Suite Deluxe",
            "description": "A fine place to stay.",
            "image_link": "https://hotels.example/img/ocean.jpg",
        }
        assert extractor.last_error is None
        assert crawler.open_pages == 0

    def test_missing_required_field_retried(self, two_phase_config, no_sleep):
        """Test that a page rendered without its image is fetched again."""
        crawler = FakeCrawler({DETAIL_URL: [
            detail_page("Ocean Suite Deluxe", image=""),
            detail_page("Ocean Suite Deluxe", image="/img/ocean.jpg"),
        ]})
        extractor = make_extractor(two_phase_config, no_sleep)

        values = asyncio.run(extractor.extract(crawler, DETAIL_URL))

        assert values["image_link"] == "https://hotels.example/img/ocean.jpg"
        assert crawler.visits == [DETAIL_URL, DETAIL_URL]
        assert no_sleep.delays == [2.0]

    def test_gives_up_after_three_attempts(self, two_phase_config, no_sleep):
        """Test that exhausted retries yield an empty result, not an error."""
        crawler = FakeCrawler({})
        extractor = make_extractor(two_phase_config, no_sleep)

        values = asyncio.run(extractor.extract(crawler, DETAIL_URL))

        assert values == {}
        assert isinstance(extractor.last_error, NavigationTimeout)
        assert len(crawler.visits) == 3
        assert no_sleep.delays == [2.0, 4.0]
        # Every attempt's page is closed
        assert len(crawler.opened) == 3
        assert crawler.open_pages == 0

    def test_missing_detail_container(self, two_phase_config, no_sleep):
        crawler = FakeCrawler({DETAIL_URL: "<html><body><h1>Moved</h1></body></html>"})
        extractor = make_extractor(two_phase_config, no_sleep)

        assert asyncio.run(extractor.extract(crawler, DETAIL_URL)) == {}
        assert isinstance(extractor.last_error, ElementNotFound)

    def test_missing_required_reported(self, two_phase_config, no_sleep):
        crawler = FakeCrawler({DETAIL_URL: detail_page("", image="/img/a.jpg")})
        extractor = make_extractor(two_phase_config, no_sleep)

        asyncio.run(extractor.extract(crawler, DETAIL_URL))

        assert isinstance(extractor.last_error, MissingRequiredField)
        assert extractor.last_error.fields == ["title"]

    def test_optional_field_may_be_empty(self, two_phase_config, no_sleep):
        """Test that an empty non-required field doesn't cause a retry."""
        crawler = FakeCrawler({DETAIL_URL: detail_page("Ocean Suite", description="")})
        extractor = make_extractor(two_phase_config, no_sleep)

        values = asyncio.run(extractor.extract(crawler, DETAIL_URL))

        assert "description" not in values
        assert len(crawler.visits) == 1

    def test_no_detail_rules(self, listing_only_config, no_sleep):
        crawler = FakeCrawler({})
        extractor = make_extractor(listing_only_config, no_sleep)

        assert asyncio.run(extractor.extract(crawler, DETAIL_URL)) == {}
        assert crawler.visits == []

    def test_parse_without_detail_container(self, no_sleep):
        """Test that the whole document is the root when no detail container is set."""
        from conftest import make_client

        config = make_client(listingTitle={"selector": "h1", "getDataFromDetailsPage": True})
        extractor = make_extractor(config, no_sleep)

        assert extractor.parse("<h1> Loft </h1>", DETAIL_URL) == {"title": "Loft"}


class TestExtractDetail:
    """Test the standalone helper."""

    def test_extract_detail(self, two_phase_config):
        from scraper.pages.detail import extract_detail

        crawler = FakeCrawler({DETAIL_URL: detail_page("Ocean Suite Deluxe")})

        values = asyncio.run(extract_detail(crawler, DETAIL_URL, two_phase_config, RetryPolicy(max_attempts=1)))

        assert values["title"] == "Ocean Suite Deluxe"
