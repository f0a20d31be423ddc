"""
Ingestion-time normalisation for billing keys and tags.

Every comparison in the engine is case-insensitive. Rather than lower-casing at
each comparison site, values are folded once here when lines and tags enter the
engine, and every downstream module compares the folded values directly.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from spendlens.shared.core.currency import normalize_currency_code

KNOWN_PROVIDERS = (
    "azure",
    "aws",
    "gcp",
    "rackspace",
    "private",
    "wasabi",
    "wasabi-main",
    "vsax",
    "other",
)
PROVIDER_ALIASES = {"wasabi-wacm": "wasabi"}
PROVIDER_LABELS = {
    "azure": "AZURE",
    "aws": "AWS",
    "gcp": "GCP",
    "rackspace": "RACKSPACE",
    "wasabi": "WASABI-WACM",
    "wasabi-main": "WASABI-MAIN",
    "private": "PRIVATE",
    "vsax": "VSAX",
    "other": "OTHER",
}

UNCATEGORIZED_RESOURCE_TYPE = "Uncategorized"
NULL_TAG_VALUE = "null"
MAX_TAG_KEY_LENGTH = 256
MAX_TAG_VALUE_LENGTH = 2048

_WHITESPACE = re.compile(r"\s+")


def normalize_provider(value: Any) -> str:
    """Provider code; unknown providers collapse to 'other'."""
    provider = str(value or "").strip().lower()
    provider = PROVIDER_ALIASES.get(provider, provider)
    return provider if provider in KNOWN_PROVIDERS else "other"


def provider_label(provider: Any) -> str:
    normalized = normalize_provider(provider)
    return PROVIDER_LABELS.get(normalized) or normalized.upper() or "PROVIDER"


def normalize_resource_type(value: Any) -> str:
    """Collapse internal whitespace and lower-case; blank becomes 'uncategorized'."""
    collapsed = _WHITESPACE.sub(" ", str(value or "")).strip()
    return (collapsed or UNCATEGORIZED_RESOURCE_TYPE).lower()


def normalize_currency(value: Any, default: str = "USD") -> str:
    return normalize_currency_code(value, default=default)


def normalize_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize_tag_key(value: Any) -> str:
    return normalize_text(value)[:MAX_TAG_KEY_LENGTH].lower()


def normalize_tag_value(value: Any) -> str:
    return normalize_text(value)[:MAX_TAG_VALUE_LENGTH].lower()


def normalize_tags(raw: Any) -> dict[str, str]:
    """
    Fold a resolver payload into a lower-cased key -> value dict.

    Accepts a mapping or an AWS-style list of {"Key": ..., "Value": ...} rows.
    Blank keys are dropped; a key repeated after folding keeps the last value.
    """
    pairs: list[tuple[Any, Any]] = []
    if isinstance(raw, Mapping):
        pairs = list(raw.items())
    elif isinstance(raw, (list, tuple)):
        for row in raw:
            if isinstance(row, Mapping):
                pairs.append(
                    (row.get("Key", row.get("key")), row.get("Value", row.get("value")))
                )
    tags: dict[str, str] = {}
    for raw_key, raw_value in pairs:
        key = normalize_tag_key(raw_key)
        if not key:
            continue
        tags[key] = normalize_tag_value(raw_value)
    return tags


def is_null_tag_value(value: str | None) -> bool:
    """Empty and the literal 'null' both mean the tag carries no value."""
    return value is None or value == "" or value == NULL_TAG_VALUE


def flatten_tags(tags: Mapping[str, str]) -> str:
    """Render tags as 'key=value' pairs sorted by key, joined by '; '."""
    entries = sorted((key, value) for key, value in tags.items() if key)
    return "; ".join(f"{key}={value}" for key, value in entries)
