"""Deterministic cache keys for export requests."""

import hashlib
import json
from collections.abc import Mapping
from datetime import date
from typing import Any

from taskboard_api.lib.exporter.values import format_timestamp

CACHE_KEY_PREFIX = "export"


def normalize_filters(filters: Mapping[str, Any] | None) -> dict[str, Any]:
    """Drop filters that carry no value and render dates as ISO-8601 text.

    The result is what gets stored on the job and hashed into the cache
    key, so it must survive a JSON round trip unchanged.
    """
    if not filters:
        return {}
    normalized: dict[str, Any] = {}
    for key, value in filters.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        # datetime is a subclass of date
        normalized[key] = format_timestamp(value) if isinstance(value, date) else value
    return normalized


def canonical_filters(filters: Mapping[str, Any] | None) -> str:
    """Serialize filters so that equal mappings always give the same text.

    Keys are sorted at every nesting level; values JSON cannot represent
    natively (UUIDs, for instance) are rendered with ``str``.
    """
    return json.dumps(
        normalize_filters(filters),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def generate_cache_key(output_format: str, filters: Mapping[str, Any] | None) -> str:
    """Build the cache key for an export of ``filters`` in ``output_format``.

    Returns:
        ``export:<format>:<sha256 of canonical filters>``.
    """
    digest = hashlib.sha256(canonical_filters(filters).encode("utf-8")).hexdigest()
    return f"{CACHE_KEY_PREFIX}:{output_format}:{digest}"
