from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

import structlog

from spendlens.modules.billing.domain.models import BillingDetailLine, TagTotalsRow
from spendlens.modules.billing.domain.normalization import (
    NULL_TAG_VALUE,
    is_null_tag_value,
    normalize_tag_key,
)
from spendlens.modules.billing.domain.tag_store import TagStore
from spendlens.shared.core.currency import ZERO

logger = structlog.get_logger()

SORT_CURRENCY = "USD"


@dataclass
class _Bucket:
    line_count: int = 0
    resource_refs: set[str] = field(default_factory=set)
    totals: dict[str, Decimal] = field(default_factory=dict)


def sortable_amount(totals_by_currency: dict[str, Decimal]) -> Decimal:
    """USD total when present, else the first currency seen, else zero."""
    if SORT_CURRENCY in totals_by_currency:
        return totals_by_currency[SORT_CURRENCY]
    for amount in totals_by_currency.values():
        return amount
    return ZERO


def summarize_tag_totals(
    lines: Iterable[BillingDetailLine], tag_key: str, tag_store: TagStore
) -> list[TagTotalsRow]:
    """
    Spend per value of one tag key (the org and product attribution cards).

    Lines without a value for the key land in a "null" bucket. Each bucket
    counts its lines and distinct resources and sums amounts per currency.
    Rows are ordered by sortable amount desc, then label asc.
    """
    key = normalize_tag_key(tag_key)
    buckets: dict[str, _Bucket] = {}

    for line in lines:
        value = tag_store.tags_for(line).get(key) if key else None
        label = NULL_TAG_VALUE if is_null_tag_value(value) else str(value)
        bucket = buckets.setdefault(label, _Bucket())
        bucket.line_count += 1
        if line.resource_ref:
            bucket.resource_refs.add(line.resource_ref)
        bucket.totals[line.currency] = bucket.totals.get(line.currency, ZERO) + line.amount

    rows = [
        TagTotalsRow(
            tag_key=key,
            label=label,
            is_null=label == NULL_TAG_VALUE,
            line_count=bucket.line_count,
            resource_count=len(bucket.resource_refs),
            totals_by_currency=dict(bucket.totals),
            sortable_amount=sortable_amount(bucket.totals),
        )
        for label, bucket in buckets.items()
    ]
    rows.sort(key=lambda row: (-row.sortable_amount, row.label))

    logger.debug("billing_tag_totals_built", tag_key=key, bucket_count=len(rows))
    return rows
