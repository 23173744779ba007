"""
Logical output fields and the tables that map them to config keys and
record attributes.

Client configuration files use the camelCase key names of the selector UI
(``listingTitle``, ``listingsPageContainer`` ...). They are translated to
FieldName members here, once, when the config is loaded.
"""

from enum import Enum
from typing import Dict, Optional, FrozenSet


class FieldName(Enum):
    """Fields a client FieldMap can define a rule for."""
    LISTING_CONTAINER = "listing_container"
    DETAIL_CONTAINER = "detail_container"
    DETAIL_PAGE_URL = "detail_page_url"
    TITLE = "title"
    DESCRIPTION = "description"
    PRICE = "price"
    SALE_PRICE = "sale_price"
    IMAGE_LINK = "image_link"
    IMAGE_TAG = "image_tag"
    ADDRESS = "address"
    CITY = "city"
    LATITUDE = "latitude"
    LONGITUDE = "longitude"
    NEIGHBORHOOD = "neighborhood"
    REGION = "region"


# Structural fields locate elements; they never produce a record value
CONTAINER_FIELDS: FrozenSet[FieldName] = frozenset({
    FieldName.LISTING_CONTAINER,
    FieldName.DETAIL_CONTAINER,
})

# Values passed through normalize_price before they land in a record
PRICE_FIELDS: FrozenSet[FieldName] = frozenset({
    FieldName.PRICE,
    FieldName.SALE_PRICE,
})

# Detail-page fields treated as required unless the rule says otherwise
DEFAULT_REQUIRED_DETAIL_FIELDS: FrozenSet[FieldName] = frozenset({
    FieldName.TITLE,
    FieldName.IMAGE_LINK,
})


# ============================================================
# CONFIG KEY -> FIELD
# ============================================================

CONFIG_KEYS: Dict[str, FieldName] = {
    # Selector UI names
    'listingsPageContainer': FieldName.LISTING_CONTAINER,
    'listingContainer': FieldName.LISTING_CONTAINER,
    'listingDetailContainer': FieldName.DETAIL_CONTAINER,
    'listingDetailPageUrl': FieldName.DETAIL_PAGE_URL,
    'listingLink': FieldName.DETAIL_PAGE_URL,
    'listingTitle': FieldName.TITLE,
    'listingDescription': FieldName.DESCRIPTION,
    'listingPrice': FieldName.PRICE,
    'listingSalePrice': FieldName.SALE_PRICE,
    'listingImage': FieldName.IMAGE_LINK,
    'listingImageTag': FieldName.IMAGE_TAG,
    'listingAddress': FieldName.ADDRESS,
    'listingCity': FieldName.CITY,
    'listingLatitude': FieldName.LATITUDE,
    'listingLongitude': FieldName.LONGITUDE,
    'listingNeighborhood': FieldName.NEIGHBORHOOD,
    'listingRegion': FieldName.REGION,
}
# snake_case field names are accepted as well
CONFIG_KEYS.update({f.value: f for f in FieldName})


# ============================================================
# FIELD -> RECORD ATTRIBUTE
# ============================================================

RECORD_ATTRIBUTES: Dict[FieldName, str] = {
    FieldName.DETAIL_PAGE_URL: 'link',
    FieldName.TITLE: 'title',
    FieldName.DESCRIPTION: 'description',
    FieldName.PRICE: 'price',
    FieldName.SALE_PRICE: 'sale_price',
    FieldName.IMAGE_LINK: 'image_link',
    FieldName.IMAGE_TAG: 'image_tag',
    FieldName.ADDRESS: 'address',
    FieldName.CITY: 'city',
    FieldName.LATITUDE: 'latitude',
    FieldName.LONGITUDE: 'longitude',
    FieldName.NEIGHBORHOOD: 'neighborhood',
    FieldName.REGION: 'region',
}


def field_from_config_key(key: str) -> Optional[FieldName]:
    """Look up the FieldName for a config key, or None if it is unknown."""
    return CONFIG_KEYS.get(key)


def record_attribute(field: FieldName) -> Optional[str]:
    """ListingRecord attribute a field writes to (None for containers)."""
    return RECORD_ATTRIBUTES.get(field)
