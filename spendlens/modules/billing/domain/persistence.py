"""
Canonical string encodings for persisted dashboard state.

The persistence collaborator stores the operator's last filter, sort key and
search text as opaque strings. Tag filters encode as:

    all | tagged | untagged | null:<key> | kv:<key>:<value>

Keys and values are percent-encoded, so a ':' inside either cannot be confused
with the separator and decode(encode(spec)) == spec for every spec. Encodings
are lower-case. Strings that cannot be decoded fall back to the defaults.
"""

from __future__ import annotations

from urllib.parse import quote, unquote

import structlog

from spendlens.modules.billing.domain.pipeline import BillingView
from spendlens.modules.billing.domain.sorting import (
    normalize_account_sort_key,
    normalize_group_sort_key,
)
from spendlens.modules.billing.domain.tag_filters import (
    ALL_TAGS,
    TagFilterMode,
    TagFilterSpec,
)
from spendlens.schemas.billing import DashboardPreferences
from spendlens.shared.core.exceptions import InvalidTagFilterError

logger = structlog.get_logger()

KEY_NULL_PREFIX = "null"
KV_PREFIX = "kv"


def _escape(text: str) -> str:
    return quote(text, safe="").lower()


def encode_tag_filter(spec: TagFilterSpec) -> str:
    if spec.mode is TagFilterMode.KEY_NULL:
        return f"{KEY_NULL_PREFIX}:{_escape(spec.key or '')}"
    if spec.mode is TagFilterMode.KV:
        return f"{KV_PREFIX}:{_escape(spec.key or '')}:{_escape(spec.value or '')}"
    return spec.mode.value


def decode_tag_filter(encoded: str | None) -> TagFilterSpec:
    text = str(encoded or "").strip()
    if not text:
        return ALL_TAGS
    prefix, _, rest = text.partition(":")
    prefix = prefix.lower()
    try:
        if not rest and prefix in (
            TagFilterMode.ALL.value,
            TagFilterMode.TAGGED.value,
            TagFilterMode.UNTAGGED.value,
        ):
            return TagFilterSpec(TagFilterMode(prefix))
        if prefix == KEY_NULL_PREFIX and rest:
            return TagFilterSpec.key_null(unquote(rest))
        if prefix == KV_PREFIX and ":" in rest:
            key, _, value = rest.partition(":")
            return TagFilterSpec.kv(unquote(key), unquote(value))
    except InvalidTagFilterError as exc:
        logger.warning("tag_filter_decode_failed", encoded=text, error=exc.message)
        return ALL_TAGS
    logger.warning("tag_filter_decode_failed", encoded=text, error="unrecognised")
    return ALL_TAGS


def view_to_preferences(
    view: BillingView, account_sort_key: str | None = None
) -> DashboardPreferences:
    return DashboardPreferences(
        tag_filter=encode_tag_filter(view.tag_filter),
        sort_key=normalize_group_sort_key(view.sort_key),
        account_sort_key=normalize_account_sort_key(account_sort_key),
        search_text=view.search_text,
    )


def preferences_to_view(
    preferences: DashboardPreferences,
    provider: str | None = None,
    resource_type: str | None = None,
) -> BillingView:
    return BillingView(
        provider=provider or "all",
        resource_type=resource_type or "all",
        tag_filter=decode_tag_filter(preferences.tag_filter),
        search_text=preferences.search_text,
        sort_key=normalize_group_sort_key(preferences.sort_key),
    )
