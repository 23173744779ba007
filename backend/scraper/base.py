"""
Core data structures for the listing scraper.

This module defines the configuration types (rules, client configs, run
options) and the result types produced by a scrape.
"""

from typing import List, Dict, Optional, Any, Mapping, Callable, Iterator, Tuple
from dataclasses import dataclass, field, fields as dataclass_fields
from enum import Enum
from datetime import datetime
from types import MappingProxyType
import logging

from .fields import FieldName, CONTAINER_FIELDS, DEFAULT_REQUIRED_DETAIL_FIELDS

logger = logging.getLogger(__name__)

# progress(client_id_or_all, message, percent)
ProgressCallback = Callable[[str, str, Optional[int]], None]

ALL_CLIENTS = 'all'


# ANSI color codes for terminal output
class Colors:
    """ANSI color codes for colorized logging."""
    RESET = '\033[0m'
    BOLD = '\033[1m'

    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GRAY = '\033[90m'

    @staticmethod
    def green(text):
        return f"{Colors.GREEN}{text}{Colors.RESET}"

    @staticmethod
    def yellow(text):
        return f"{Colors.YELLOW}{text}{Colors.RESET}"

    @staticmethod
    def red(text):
        return f"{Colors.RED}{text}{Colors.RESET}"

    @staticmethod
    def blue(text):
        return f"{Colors.BLUE}{text}{Colors.RESET}"

    @staticmethod
    def cyan(text):
        return f"{Colors.CYAN}{text}{Colors.RESET}"

    @staticmethod
    def gray(text):
        return f"{Colors.GRAY}{text}{Colors.RESET}"

    @staticmethod
    def bold(text):
        return f"{Colors.BOLD}{text}{Colors.RESET}"


class ScrapeState(Enum):
    """Lifecycle of a single client scrape."""
    IDLE = "idle"
    NAVIGATING = "navigating"
    EXTRACTING_LISTINGS = "extracting_listings"
    EXTRACTING_DETAILS = "extracting_details"
    CACHING = "caching"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ElementRule:
    """How to resolve one logical field from the DOM."""
    selector: Optional[str] = None      # CSS selector, relative to the root element
    attribute: Optional[str] = None     # Attribute to read instead of text/href/src
    resolve_on_detail_page: bool = False
    required: Optional[bool] = None     # None = default policy for the field

    def is_required(self, field_name: FieldName) -> bool:
        """Whether an empty value on the detail page should trigger a retry."""
        if not self.resolve_on_detail_page:
            return False
        if self.required is not None:
            return self.required
        return field_name in DEFAULT_REQUIRED_DETAIL_FIELDS

    @property
    def is_empty(self) -> bool:
        return not self.selector and not self.attribute


@dataclass(frozen=True)
class ClientConfig:
    """Configuration for one client site. Never mutated during a run."""
    id: str
    name: str
    listings_url: str
    field_map: Mapping[FieldName, ElementRule]
    status: str = "active"
    sheet_id: Optional[str] = None

    def __post_init__(self):
        # Freeze the mapping so rules can't change mid-run
        object.__setattr__(self, 'field_map', MappingProxyType(dict(self.field_map)))

    @property
    def enabled(self) -> bool:
        return not self.status or self.status.strip().lower() in ('active', 'enabled')

    @property
    def cache_key(self) -> str:
        return f"{self.id}-{self.listings_url}"

    def rule(self, field_name: FieldName) -> Optional[ElementRule]:
        return self.field_map.get(field_name)

    @property
    def container_selector(self) -> str:
        rule = self.rule(FieldName.LISTING_CONTAINER)
        return rule.selector if rule and rule.selector else ''

    @property
    def detail_container_selector(self) -> Optional[str]:
        rule = self.rule(FieldName.DETAIL_CONTAINER)
        return rule.selector if rule and rule.selector else None

    def _value_rules(self, on_detail_page: bool) -> Iterator[Tuple[FieldName, ElementRule]]:
        for field_name, rule in self.field_map.items():
            if field_name in CONTAINER_FIELDS:
                continue
            if rule.resolve_on_detail_page == on_detail_page:
                yield field_name, rule

    def listing_rules(self) -> List[Tuple[FieldName, ElementRule]]:
        """Rules resolved against each listing container."""
        return list(self._value_rules(False))

    def detail_rules(self) -> List[Tuple[FieldName, ElementRule]]:
        """Rules resolved against the listing's detail page."""
        return list(self._value_rules(True))

    @property
    def has_detail_fields(self) -> bool:
        return bool(self.detail_rules())


@dataclass
class ScrapeOptions:
    """Runtime knobs for the engine. Times are in seconds."""
    headless: bool = True
    navigation_timeout: float = 45.0    # Listings page load
    detail_timeout: float = 60.0        # Detail page load (network idle)
    wait_timeout: float = 15.0          # Waiting for container selectors
    rate_limit: float = 1.5             # Delay between sequential detail requests
    max_attempts: int = 3
    backoff_base: float = 2.0           # Backoff = backoff_base * attempt
    sequential_details: bool = True     # Takes precedence over detail_concurrency
    detail_concurrency: int = 5
    batch_size: int = 2                 # Clients scraped concurrently
    batch_delay: float = 5.0            # Pause between client batches
    client_timeout: float = 300.0       # Upper bound for one client scrape
    block_resources: bool = True
    use_cache: bool = True


@dataclass
class ListingRecord:
    """One listing, first partial (listings page) then merged (detail page)."""
    title: Optional[str] = None
    brand: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    link: Optional[str] = None
    image_link: Optional[str] = None
    image_tag: Optional[str] = None
    description: Optional[str] = None
    sale_price: Optional[str] = None
    price: Optional[str] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None
    neighborhood: Optional[str] = None

    # Extension columns (rarely scraped, written through to the sheet)
    loyalty_program: Optional[str] = None
    margin_level: Optional[str] = None
    star_rating: Optional[str] = None
    address2: Optional[str] = None
    address3: Optional[str] = None
    city_id: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None
    unit_number: Optional[str] = None
    priority: Optional[str] = None
    number_of_rooms: Optional[str] = None
    android_app_name: Optional[str] = None
    android_package: Optional[str] = None
    android_url: Optional[str] = None
    ios_app_name: Optional[str] = None
    ios_app_store_id: Optional[str] = None
    ios_url: Optional[str] = None
    ipad_app_name: Optional[str] = None
    ipad_app_store_id: Optional[str] = None
    ipad_url: Optional[str] = None
    iphone_app_name: Optional[str] = None
    iphone_app_store_id: Optional[str] = None
    iphone_url: Optional[str] = None
    windows_phone_app_id: Optional[str] = None
    windows_phone_app_name: Optional[str] = None
    windows_phone_url: Optional[str] = None
    video_url: Optional[str] = None
    video_tag: Optional[str] = None
    category: Optional[str] = None

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in dataclass_fields(cls)]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ListingRecord':
        known = set(cls.field_names())
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, str]:
        """Populated fields only."""
        return {k: v for k, v in self.__dict__.items() if v is not None}

    def merge(self, values: Dict[str, Any]) -> 'ListingRecord':
        """Copy non-empty values over this record. Unknown keys are ignored."""
        known = set(self.field_names())
        for key, value in values.items():
            if key in known and value not in (None, ''):
                setattr(self, key, value)
        return self


@dataclass
class ClientScrapeResult:
    """Result of scraping one client."""
    client_id: str
    client_name: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    state: ScrapeState = ScrapeState.IDLE
    records: List[ListingRecord] = field(default_factory=list)
    error: Optional[str] = None
    detail_errors: int = 0
    from_cache: bool = False

    @property
    def success(self) -> bool:
        return self.state == ScrapeState.DONE

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at and self.started_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict:
        return {
            'client_id': self.client_id,
            'client_name': self.client_name,
            'started_at': self.started_at.isoformat(),
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'duration_seconds': self.duration_seconds,
            'state': self.state.value,
            'total': len(self.records),
            'detail_errors': self.detail_errors,
            'from_cache': self.from_cache,
            'error': self.error,
            'success': self.success,
        }


@dataclass
class RunResult:
    """Outcome of a multi-client run, handed to the sink."""
    successful_clients: List[str] = field(default_factory=list)
    failed_clients: List[str] = field(default_factory=list)
    rows: List[ListingRecord] = field(default_factory=list)
    failure_reasons: Dict[str, str] = field(default_factory=dict)
    results: Dict[str, ClientScrapeResult] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failed_clients and bool(self.successful_clients)

    def add(self, result: ClientScrapeResult):
        self.results[result.client_id] = result
        if result.success:
            self.successful_clients.append(result.client_name)
            self.rows.extend(result.records)
        else:
            self.failed_clients.append(result.client_name)
            self.failure_reasons[result.client_name] = result.error or 'unknown error'

    def summary(self) -> str:
        """Human readable completion message."""
        if not self.successful_clients and not self.failed_clients:
            return "No clients were scraped."

        parts = []
        if self.successful_clients:
            parts.append(
                f"Scraped {len(self.rows)} listings from "
                f"{len(self.successful_clients)} client(s): {', '.join(self.successful_clients)}."
            )
        if self.failed_clients:
            reasons = '; '.join(
                f"{name} ({self.failure_reasons.get(name, 'unknown error')})"
                for name in self.failed_clients
            )
            parts.append(f"Failed {len(self.failed_clients)} client(s): {reasons}.")
        return ' '.join(parts)

    def to_dict(self) -> Dict:
        return {
            'successful_clients': self.successful_clients,
            'failed_clients': self.failed_clients,
            'failure_reasons': self.failure_reasons,
            'total_rows': len(self.rows),
            'clients': {k: v.to_dict() for k, v in self.results.items()},
            'summary': self.summary(),
        }
