"""
Client configuration loading.

Client configs live in a JSON file (``{"clients": [...]}``) written by the
selector UI. Each entry becomes a ClientConfig with a validated FieldMap.
Validation happens here, once, so extraction never has to deal with an
unknown field name or a client without a container selector.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .base import ClientConfig, ElementRule
from .exceptions import ConfigurationError
from .fields import FieldName, field_from_config_key
from .utils.normalizers import is_absolute_url


# ============================================================
# DEFAULTS
# ============================================================

DEFAULT_CLIENTS_FILE = Path(__file__).parent.parent / 'data' / 'clients.json'

# Alternate spellings seen in stored configs
_LISTINGS_URL_KEYS = ('listingsUrl', 'listingUrl', 'listings_url')
_SHEET_ID_KEYS = ('sheetId', 'sheet_id')
_FIELD_MAP_KEYS = ('elementSelectors', 'field_map', 'fieldMap')
_ATTRIBUTE_KEYS = ('selectorIfAttribute', 'attribute')
_DETAIL_FLAG_KEYS = ('getDataFromDetailsPage', 'resolveOnDetailPage', 'resolve_on_detail_page')


def _first(raw: Dict[str, Any], keys, default=None):
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigurationError(f"Expected a string, got {type(value).__name__}: {value!r}")
    value = value.strip()
    return value or None


# ============================================================
# PARSING
# ============================================================

def parse_rule(key: str, raw: Any) -> ElementRule:
    """
    Build an ElementRule from its stored form.

    Accepts a bare selector string or an object such as
    ``{"selector": ".price", "selectorIfAttribute": null, "getDataFromDetailsPage": true}``.
    """
    if isinstance(raw, str):
        return ElementRule(selector=_clean(raw))
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Rule '{key}' must be a string or an object")

    required = raw.get('required')
    if required is not None and not isinstance(required, bool):
        raise ConfigurationError(f"Rule '{key}': 'required' must be true or false")

    return ElementRule(
        selector=_clean(raw.get('selector')),
        attribute=_clean(_first(raw, _ATTRIBUTE_KEYS)),
        resolve_on_detail_page=bool(_first(raw, _DETAIL_FLAG_KEYS, False)),
        required=required,
    )


def parse_field_map(raw: Dict[str, Any]) -> Dict[FieldName, ElementRule]:
    """
    Translate stored selector keys into a FieldMap.

    Raises:
        ConfigurationError: Unknown key, malformed rule, or no container selector
    """
    if not isinstance(raw, dict):
        raise ConfigurationError("Field map must be an object")

    field_map: Dict[FieldName, ElementRule] = {}
    for key, value in raw.items():
        field_name = field_from_config_key(key)
        if field_name is None:
            raise ConfigurationError(f"Unknown field '{key}'")
        if value is None:
            continue  # Field not configured for this client
        rule = parse_rule(key, value)
        if rule.is_empty:
            continue
        if field_name in field_map:
            raise ConfigurationError(f"Field '{field_name.value}' is defined more than once")
        field_map[field_name] = rule

    container = field_map.get(FieldName.LISTING_CONTAINER)
    if container is None or not container.selector:
        raise ConfigurationError("A listing container selector is required")
    if container.resolve_on_detail_page:
        raise ConfigurationError("The listing container can't be resolved on the detail page")

    return field_map


def parse_client(raw: Dict[str, Any]) -> ClientConfig:
    """
    Build a ClientConfig from one stored client entry.

    Raises:
        ConfigurationError: With the client id in the message
    """
    if not isinstance(raw, dict):
        raise ConfigurationError("Client entry must be an object")

    client_id = str(raw.get('id') or '').strip()
    if not client_id:
        raise ConfigurationError("Client entry is missing an 'id'")

    try:
        name = _clean(raw.get('name'))
        if not name:
            raise ConfigurationError("missing 'name'")

        listings_url = _clean(_first(raw, _LISTINGS_URL_KEYS))
        if not listings_url or not is_absolute_url(listings_url):
            raise ConfigurationError(f"invalid listings URL: {listings_url!r}")

        field_map = parse_field_map(_first(raw, _FIELD_MAP_KEYS, {}))

        return ClientConfig(
            id=client_id,
            name=name,
            listings_url=listings_url,
            field_map=field_map,
            status=_clean(raw.get('status')) or 'active',
            sheet_id=_clean(_first(raw, _SHEET_ID_KEYS)),
        )
    except ConfigurationError as e:
        raise ConfigurationError(f"Client '{client_id}': {e}") from e


def load_clients(path: Optional[Union[str, Path]] = None) -> Dict[str, ClientConfig]:
    """
    Load every client config from a JSON file, keyed by client id.

    Raises:
        ConfigurationError: Unreadable file, malformed JSON, or an invalid client
    """
    path = Path(path) if path else DEFAULT_CLIENTS_FILE
    try:
        with path.open('r', encoding='utf-8') as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"Can't read clients file {path}: {e}") from e
    except ValueError as e:
        raise ConfigurationError(f"Clients file {path} is not valid JSON: {e}") from e

    entries = data.get('clients') if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise ConfigurationError(f"Clients file {path} must contain a 'clients' list")

    clients: Dict[str, ClientConfig] = {}
    for raw in entries:
        config = parse_client(raw)
        if config.id in clients:
            raise ConfigurationError(f"Duplicate client id '{config.id}' in {path}")
        clients[config.id] = config
    return clients


# ============================================================
# HELPER FUNCTIONS
# ============================================================

def get_client_config(client_id: str, clients: Dict[str, ClientConfig]) -> ClientConfig:
    """
    Get configuration for a client by its id.

    Raises:
        ConfigurationError: If client_id is not found
    """
    if client_id not in clients:
        valid_ids = ', '.join(sorted(clients.keys()))
        raise ConfigurationError(f"Unknown client: '{client_id}'. Valid clients: {valid_ids}")
    return clients[client_id]


def select_clients(client_ids: List[str], clients: Dict[str, ClientConfig]) -> List[ClientConfig]:
    """Configs for the given ids, in the given order. Unknown ids raise."""
    return [get_client_config(client_id, clients) for client_id in client_ids]


def get_client_summary(clients: Dict[str, ClientConfig]) -> List[Dict[str, Any]]:
    """Get a summary of all clients for display."""
    summary = []
    for key, config in clients.items():
        summary.append({
            'id': key,
            'name': config.name,
            'status': config.status,
            'enabled': config.enabled,
            'url': config.listings_url,
            'sheet_id': config.sheet_id,
            'detail_fields': [f.value for f, _ in config.detail_rules()],
        })
    return summary
