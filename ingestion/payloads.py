"""Shape adapters for scraped content.

The scraping API returns content in several shapes depending on target.
Adapters are tried in a fixed order and the first structural match wins;
content that matches none of them raises PayloadShapeError instead of
quietly producing nothing.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from data_models.scrape import ScrapeResult
from ingestion.errors import PayloadShapeError

logger = logging.getLogger(__name__)


def as_int(value: Any, default: int | None = 0) -> int | None:
    """Coerce a payload number (int, float or numeric string) to int."""
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def epoch_to_utc(value: Any) -> datetime | None:
    """Unix seconds to a naive UTC datetime; None for missing, zero or out of range."""
    seconds = as_int(value, None)
    if not seconds or seconds <= 0:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)
    except (ValueError, OverflowError, OSError):
        return None


def first_content(results: list[ScrapeResult], label: str) -> Any:
    """Content of the first scrape result.

    Raises:
        PayloadShapeError: If there are no results or the content is empty
    """
    if not results or not results[0].content:
        raise PayloadShapeError(f"No data returned for {label}")
    return results[0].content


def decode_content(content: Any) -> dict | list:
    """Normalize raw content to a dict or list, decoding JSON strings."""
    if isinstance(content, (dict, list)):
        return content
    if isinstance(content, str):
        try:
            decoded = json.loads(content)
        except json.JSONDecodeError as e:
            raise PayloadShapeError(f"Content is not JSON: {e}") from e
        if isinstance(decoded, (dict, list)):
            return decoded
        raise PayloadShapeError(f"Decoded content is {type(decoded).__name__}, expected object or array")
    raise PayloadShapeError(f"Unsupported content type: {type(content).__name__}")


def _dicts(items: list) -> list[dict]:
    return [item for item in items if isinstance(item, dict)]


def _direct_posts(content: dict | list) -> list[dict] | None:
    if isinstance(content, dict) and isinstance(content.get("posts"), list):
        return _dicts(content["posts"])
    return None


def _listing_children(content: dict | list) -> list[dict] | None:
    if not isinstance(content, dict):
        return None
    data = content.get("data")
    if not isinstance(data, dict) or not isinstance(data.get("children"), list):
        return None
    return [
        child["data"]
        for child in data["children"]
        if isinstance(child, dict) and isinstance(child.get("data"), dict)
    ]


def _results_array(content: dict | list) -> list[dict] | None:
    if isinstance(content, dict) and isinstance(content.get("results"), list):
        return _dicts(content["results"])
    return None


def _bare_list(content: dict | list) -> list[dict] | None:
    if isinstance(content, list):
        return _dicts(content)
    return None


POST_ADAPTERS: list[tuple[str, Callable[[dict | list], list[dict] | None]]] = [
    ("posts", _direct_posts),
    ("data.children", _listing_children),
    ("results", _results_array),
    ("list", _bare_list),
]


def extract_posts(content: Any) -> list[dict]:
    """Extract post dicts from scraped listing content.

    Args:
        content: Raw content of a scrape result

    Returns:
        Post dicts from the first matching shape (may be empty)

    Raises:
        PayloadShapeError: If no known shape matches
    """
    decoded = decode_content(content)
    for name, adapter in POST_ADAPTERS:
        posts = adapter(decoded)
        if posts is not None:
            logger.debug(f"Matched '{name}' content shape ({len(posts)} posts)")
            return posts

    keys = sorted(decoded.keys()) if isinstance(decoded, dict) else []
    raise PayloadShapeError(f"Unrecognized content shape (keys: {keys[:10]})")
