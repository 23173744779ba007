"""
Tests for the result cache.
"""

import json

from scraper.base import ListingRecord
from scraper.cache import DEFAULT_TTL_SECONDS, ResultCache

from conftest import make_client


def sample_records():
    return [
        ListingRecord(title="Ocean Suite", brand="Seaside Hotels", link="https://hotels.example/rooms/1", price="1234"),
        ListingRecord(title="Garden Room", brand="Seaside Hotels", link="https://hotels.example/rooms/2"),
    ]


class TestResultCache:
    """Test cache reads, writes and expiry."""

    def test_default_ttl_is_a_day(self):
        assert DEFAULT_TTL_SECONDS == 24 * 60 * 60

    def test_miss(self, result_cache, two_phase_config):
        assert result_cache.get(two_phase_config) is None

    def test_set_then_get(self, result_cache, two_phase_config):
        """Test that records come back field for field."""
        result_cache.set(two_phase_config, sample_records())

        cached = result_cache.get(two_phase_config)
        assert cached == sample_records()

    def test_key_includes_listings_url(self, result_cache):
        """Test that the same client id with a different URL is a different entry."""
        first = make_client(listings_url="https://hotels.example/listings")
        moved = make_client(listings_url="https://hotels.example/new-listings")

        result_cache.set(first, sample_records())

        assert result_cache.get(moved) is None
        assert first in result_cache
        assert moved not in result_cache

    def test_fresh_at_ttl_boundary(self, result_cache, fake_clock, two_phase_config):
        result_cache.set(two_phase_config, sample_records())
        fake_clock.advance(DEFAULT_TTL_SECONDS)

        assert result_cache.get(two_phase_config) is not None

    def test_expired_entry_is_removed_and_persisted(self, result_cache, fake_clock, cache_path, two_phase_config):
        """Test that reading an expired entry evicts it from memory and disk."""
        result_cache.set(two_phase_config, sample_records())
        fake_clock.advance(DEFAULT_TTL_SECONDS + 1)

        assert result_cache.get(two_phase_config) is None
        assert len(result_cache) == 0
        assert json.loads(cache_path.read_text()) == {}

    def test_persisted_across_instances(self, cache_path, fake_clock, two_phase_config):
        ResultCache(cache_path, clock=fake_clock).set(two_phase_config, sample_records())

        reopened = ResultCache(cache_path, clock=fake_clock)
        assert reopened.get(two_phase_config) == sample_records()

    def test_file_format(self, result_cache, fake_clock, cache_path, two_phase_config):
        """Test that entries are stored as timestamp + record dicts."""
        result_cache.set(two_phase_config, sample_records())

        data = json.loads(cache_path.read_text())
        entry = data[two_phase_config.cache_key]
        assert entry["timestamp"] == fake_clock.now
        assert entry["data"][0]["title"] == "Ocean Suite"
        assert "description" not in entry["data"][0]

    def test_corrupt_file_starts_empty(self, cache_path, fake_clock, two_phase_config):
        cache_path.write_text("{not json")

        cache = ResultCache(cache_path, clock=fake_clock)
        assert len(cache) == 0

        # Still usable, and the next write repairs the file
        cache.set(two_phase_config, sample_records())
        assert json.loads(cache_path.read_text())[two_phase_config.cache_key]["data"]

    def test_non_object_file_starts_empty(self, cache_path, fake_clock):
        cache_path.write_text("[1, 2, 3]")
        assert len(ResultCache(cache_path, clock=fake_clock)) == 0

    def test_clear_expired(self, result_cache, fake_clock, two_phase_config, listing_only_config):
        result_cache.set(two_phase_config, sample_records())
        fake_clock.advance(DEFAULT_TTL_SECONDS + 1)
        result_cache.set(listing_only_config, sample_records())

        assert result_cache.clear_expired() == 1
        assert two_phase_config not in result_cache
        assert listing_only_config in result_cache

    def test_clear(self, result_cache, cache_path, two_phase_config):
        result_cache.set(two_phase_config, sample_records())
        result_cache.clear()

        assert len(result_cache) == 0
        assert json.loads(cache_path.read_text()) == {}

    def test_delete(self, result_cache, two_phase_config):
        result_cache.set(two_phase_config, sample_records())

        assert result_cache.delete(two_phase_config) is True
        assert result_cache.delete(two_phase_config) is False

    def test_no_temp_files_left_behind(self, result_cache, tmp_path, two_phase_config):
        result_cache.set(two_phase_config, sample_records())
        result_cache.set(two_phase_config, sample_records()[:1])

        leftovers = [p.name for p in tmp_path.iterdir() if p.name.endswith(".tmp")]
        assert leftovers == []
