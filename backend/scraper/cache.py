"""
Disk-backed cache of scrape results.

One entry per client, keyed by client id + listings URL. The whole table is
loaded on construction and rewritten on every mutation; it only ever holds
one entry per client so a full rewrite is cheap.
"""

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from .base import ClientConfig, ListingRecord

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60  # 24 hours


class ResultCache:
    """
    Key-value cache of ListingRecords with a time-to-live.

    Usage:
        cache = ResultCache(settings.cache_file)
        records = cache.get(client)
        if records is None:
            records = await scrape(client)
            cache.set(client, records)
    """

    def __init__(
        self,
        path: Union[str, Path],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the cache and load any persisted entries.

        Args:
            path: JSON file the table is persisted to
            ttl_seconds: Entry lifetime measured from write time
            clock: Returns the current time in seconds (injectable for tests)
        """
        self.path = Path(path)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Dict] = {}
        self._load()

    @staticmethod
    def key_for(client: Union[ClientConfig, str]) -> str:
        if isinstance(client, ClientConfig):
            return client.cache_key
        return client

    def _load(self):
        """Read the table from disk. A missing or corrupt file means an empty cache."""
        if not self.path.exists():
            self._entries = {}
            return
        try:
            with self.path.open('r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            self._entries = {
                key: entry for key, entry in data.items()
                if isinstance(entry, dict) and 'timestamp' in entry and isinstance(entry.get('data'), list)
            }
            logger.debug(f"Loaded {len(self._entries)} cache entries from {self.path}")
        except (OSError, ValueError) as e:
            logger.warning(f"Error loading cache from {self.path}, starting empty: {e}")
            self._entries = {}

    def _save(self):
        """Rewrite the whole table, replacing the file atomically."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix='.tmp'
            )
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(self._entries, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            logger.error(f"Error saving cache to {self.path}: {e}")

    def _is_expired(self, entry: Dict) -> bool:
        try:
            return self._clock() - float(entry['timestamp']) > self.ttl_seconds
        except (KeyError, TypeError, ValueError):
            return True

    def get(self, client: Union[ClientConfig, str]) -> Optional[List[ListingRecord]]:
        """
        Cached records for a client, or None if absent or expired.

        Expired entries are removed (and the table persisted) on access.
        """
        key = self.key_for(client)
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._is_expired(entry):
            logger.debug(f"Cache entry expired for {key}")
            del self._entries[key]
            self._save()
            return None

        return [ListingRecord.from_dict(item) for item in entry['data'] if isinstance(item, dict)]

    def set(self, client: Union[ClientConfig, str], records: List[ListingRecord]):
        """Replace the entry for a client."""
        key = self.key_for(client)
        self._entries[key] = {
            'timestamp': self._clock(),
            'data': [r.to_dict() for r in records],
        }
        self._save()

    def delete(self, client: Union[ClientConfig, str]) -> bool:
        key = self.key_for(client)
        if key not in self._entries:
            return False
        del self._entries[key]
        self._save()
        return True

    def clear(self):
        """Drop every entry."""
        self._entries = {}
        self._save()

    def clear_expired(self) -> int:
        """Remove all expired entries. Returns how many were removed."""
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry)]
        for key in expired:
            del self._entries[key]
        if expired:
            self._save()
            logger.info(f"Removed {len(expired)} expired cache entries")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, client) -> bool:
        return self.key_for(client) in self._entries
