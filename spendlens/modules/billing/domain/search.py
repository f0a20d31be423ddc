"""
Free-text search over resource groups and detail lines.

Search text is split on whitespace into lower-case tokens, and an entity
matches when every token occurs somewhere in its haystack (AND of substrings,
not phrase matching).
"""

from __future__ import annotations

from typing import Iterable, Mapping

from spendlens.modules.billing.domain.models import BillingDetailLine
from spendlens.modules.billing.domain.normalization import flatten_tags, provider_label


def tokenize(text: str | None) -> tuple[str, ...]:
    return tuple(token for token in str(text or "").lower().split() if token)


def matches_all_tokens(haystack: str, tokens: Iterable[str]) -> bool:
    lowered = haystack.lower()
    return all(token in lowered for token in tokens)


def resolve_account_name(
    line: BillingDetailLine, account_names: Mapping[str, str] | None
) -> str:
    """Account display name, looked up by account id first, then vendor id."""
    if not account_names:
        return ""
    for candidate in (line.account_id, line.vendor_id):
        if candidate and account_names.get(candidate):
            return str(account_names[candidate])
    return ""


def line_haystack(
    line: BillingDetailLine,
    tags: Mapping[str, str],
    account_names: Mapping[str, str] | None = None,
) -> str:
    parts = (
        line.provider,
        provider_label(line.provider),
        line.resource_type,
        line.detail_name,
        line.item_type,
        line.section_type,
        line.invoice_id,
        line.invoice_date,
        line.coverage_start_date,
        line.coverage_end_date,
        line.account_id,
        resolve_account_name(line, account_names),
        flatten_tags(tags),
    )
    return " ".join(part for part in parts if part)


def group_haystack(
    provider: str,
    resource_type: str,
    currency: str,
    lines: Iterable[BillingDetailLine],
    account_names: Mapping[str, str] | None = None,
) -> str:
    parts = [provider, provider_label(provider), resource_type, currency]
    for line in lines:
        parts.append(line.account_id)
        parts.append(resolve_account_name(line, account_names))
    return " ".join(part for part in parts if part)
