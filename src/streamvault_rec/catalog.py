"""
Catalog loading for the command line.

The engine never fetches or caches a catalog; the CLI loads one per
invocation from a JSON file or an http(s) URL and passes it in.
Accepted shapes: a JSON list of items, or an object with an "items" list.
"""
import json
import logging
from pathlib import Path
from typing import Any

import httpx

from .config import (
    HTTP_MAX_RETRY_DELAY,
    HTTP_RETRY_DELAY,
    HTTP_TIMEOUT,
    MAX_HTTP_RETRIES,
    RETRYABLE_STATUS_CODES,
)
from .utils import retry_with_backoff

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Catalog could not be fetched or parsed."""


def _is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def _is_transient(exc: Exception) -> bool:
    """Network failures and throttling/server errors are worth another attempt."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return True


@retry_with_backoff(
    max_retries=MAX_HTTP_RETRIES,
    initial_delay=HTTP_RETRY_DELAY,
    exceptions=(httpx.TransportError, httpx.HTTPStatusError),
    should_retry=_is_transient,
    max_delay=HTTP_MAX_RETRY_DELAY,
)
def _fetch(url: str) -> Any:
    resp = httpx.get(
        url,
        headers={"User-Agent": "streamvault-rec/0.1", "Accept": "application/json"},
        follow_redirects=True,
        timeout=HTTP_TIMEOUT,
    )
    resp.raise_for_status()
    return resp.json()


def parse_catalog(payload: Any) -> list[dict]:
    """Validate a decoded catalog; items without an id are skipped with a warning."""
    if isinstance(payload, dict):
        payload = payload.get('items')
    if not isinstance(payload, list):
        raise CatalogError("Catalog must be a list of items or an object with an 'items' list")

    items = []
    skipped = 0
    for entry in payload:
        if not isinstance(entry, dict) or entry.get('id') is None:
            skipped += 1
            continue
        items.append(entry)

    if skipped:
        logger.warning(f"Skipped {skipped} catalog entries without an id")
    return items


def load_catalog(source: str | Path) -> list[dict]:
    """Load catalog items from a file path or URL."""
    source = str(source)
    try:
        if _is_url(source):
            payload = _fetch(source)
        else:
            payload = json.loads(Path(source).read_text())
    except httpx.HTTPError as e:
        raise CatalogError(f"Failed to fetch catalog from {source}: {e}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise CatalogError(f"Failed to read catalog {source}: {e}") from e

    items = parse_catalog(payload)
    logger.debug(f"Loaded {len(items)} catalog items from {source}")
    return items


def find_item(catalog: list[dict], item_id: Any) -> dict | None:
    """Look up an item by id, comparing as strings so CLI arguments match numeric ids."""
    key = str(item_id)
    for item in catalog:
        if str(item.get('id')) == key:
            return item
    return None
