"""
Google Sheets sink.

Scraped records are written to the first worksheet of a spreadsheet as a
fixed 43-column feed (header in row 1). Stale data below the header is
cleared first, then rows are written in chunks.
"""

import logging
import uuid
from typing import Callable, Dict, List, Optional

import gspread
from google.auth.exceptions import GoogleAuthError
from google.oauth2.service_account import Credentials

from scraper.base import ListingRecord
from scraper.exceptions import ConfigurationError, SinkWriteFailure

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

CLEAR_RANGE = "A2:AR"
CHUNK_SIZE = 1000

# (sheet column, record attribute); hotel_id is generated per row
COLUMNS = [
    ("hotel_id", None),
    ("name", "title"),
    ("brand", "brand"),
    ("address.addr1", "address"),
    ("address.city", "city"),
    ("url", "link"),
    ("image[0].url", "image_link"),
    ("image[0].tag[0]", "image_tag"),
    ("description", "description"),
    ("sale_price", "sale_price"),
    ("base_price", "price"),
    ("latitude", "latitude"),
    ("longitude", "longitude"),
    ("neighborhood", "neighborhood"),
    ("loyalty_program", "loyalty_program"),
    ("margin_level", "margin_level"),
    ("star_rating", "star_rating"),
    ("address.addr2", "address2"),
    ("address.addr3", "address3"),
    ("address.city_id", "city_id"),
    ("address.region", "region"),
    ("address.postal_code", "postal_code"),
    ("address.unit_number", "unit_number"),
    ("priority", "priority"),
    ("number_of_rooms", "number_of_rooms"),
    ("applink.android_app_name", "android_app_name"),
    ("applink.android_package", "android_package"),
    ("applink.android_url", "android_url"),
    ("applink.ios_app_name", "ios_app_name"),
    ("applink.ios_app_store_id", "ios_app_store_id"),
    ("applink.ios_url", "ios_url"),
    ("applink.ipad_app_name", "ipad_app_name"),
    ("applink.ipad_app_store_id", "ipad_app_store_id"),
    ("applink.ipad_url", "ipad_url"),
    ("applink.iphone_app_name", "iphone_app_name"),
    ("applink.iphone_app_store_id", "iphone_app_store_id"),
    ("applink.iphone_url", "iphone_url"),
    ("applink.windows_phone_app_id", "windows_phone_app_id"),
    ("applink.windows_phone_app_name", "windows_phone_app_name"),
    ("applink.windows_phone_url", "windows_phone_url"),
    ("video[0].url", "video_url"),
    ("video[0].tag[0]", "video_tag"),
    ("category", "category"),
]

HEADERS = [column for column, _ in COLUMNS]


def build_row(record: ListingRecord, row_id: Optional[str] = None) -> List[str]:
    """One sheet row for a record, in header order."""
    row = []
    for _, attr in COLUMNS:
        if attr is None:
            row.append(row_id or str(uuid.uuid4()))
        else:
            row.append(getattr(record, attr) or "")
    return row


def build_rows(records: List[ListingRecord], include_header: bool = True) -> List[List[str]]:
    """Sheet rows for records, each with a fresh hotel_id."""
    rows = [list(HEADERS)] if include_header else []
    rows.extend(build_row(record) for record in records)
    return rows


def credentials_from_settings(email: Optional[str], private_key: Optional[str]) -> Credentials:
    """
    Service account credentials from an email and a PEM private key.

    Raises:
        ConfigurationError: Either value is missing
    """
    if not private_key:
        raise ConfigurationError("GOOGLE_PRIVATE_KEY is not set")
    if not email:
        raise ConfigurationError("GOOGLE_SERVICE_ACCOUNT_EMAIL is not set")

    info = {
        "type": "service_account",
        "client_email": email,
        # Keys pasted into .env usually carry literal \n sequences
        "private_key": private_key.replace("\\n", "\n"),
        "token_uri": "https://oauth2.googleapis.com/token",
    }
    try:
        return Credentials.from_service_account_info(info, scopes=SCOPES)
    except ValueError as e:
        raise ConfigurationError(f"Invalid Google service account key: {e}") from e


class SheetSink:
    """
    Writes records to Google Sheets.

    Usage:
        sink = SheetSink.from_settings(settings)
        sink.write(sheet_id, records)
    """

    def __init__(self, client_factory: Callable[[], gspread.Client], chunk_size: int = CHUNK_SIZE):
        """
        Args:
            client_factory: Returns an authorized gspread client
            chunk_size: Rows per update request
        """
        self.client_factory = client_factory
        self.chunk_size = chunk_size
        self._client: Optional[gspread.Client] = None

    @classmethod
    def from_settings(cls, settings) -> 'SheetSink':
        """
        Build a sink from application settings.

        Raises:
            ConfigurationError: Missing Google credentials
        """
        creds = credentials_from_settings(
            settings.google_service_account_email,
            settings.google_private_key,
        )
        return cls(lambda: gspread.authorize(creds))

    @property
    def client(self) -> gspread.Client:
        if self._client is None:
            self._client = self.client_factory()
        return self._client

    def write(self, sheet_id: str, records: List[ListingRecord]) -> int:
        """
        Replace the feed in a spreadsheet with these records.

        Returns:
            Number of data rows written

        Raises:
            SinkWriteFailure: Any Google API, auth or network error
        """
        if not sheet_id:
            raise SinkWriteFailure("No sheet id configured for these clients")

        rows = build_rows(records)
        try:
            worksheet = self.client.open_by_key(sheet_id).sheet1
            worksheet.batch_clear([CLEAR_RANGE])
            logger.info(f"Stale data removed from sheet {sheet_id}")

            for start in range(0, len(rows), self.chunk_size):
                chunk = rows[start:start + self.chunk_size]
                worksheet.update(
                    range_name=f"A{start + 1}",
                    values=chunk,
                    value_input_option="RAW",
                )
        except (gspread.exceptions.GSpreadException, GoogleAuthError) as e:
            raise SinkWriteFailure(f"Error updating sheet: {e}", sheet_id=sheet_id) from e
        except Exception as e:
            # Transport errors from the underlying HTTP session
            raise SinkWriteFailure(
                f"Error updating sheet: {e.__class__.__name__}: {e}", sheet_id=sheet_id
            ) from e

        logger.info(f"Wrote {len(records)} rows to sheet {sheet_id}")
        return len(records)

    def write_groups(self, groups: Dict[str, List[ListingRecord]]) -> Dict[str, int]:
        """Write each sheet's records; stops at the first failure."""
        written = {}
        for sheet_id, records in groups.items():
            written[sheet_id] = self.write(sheet_id, records)
        return written
