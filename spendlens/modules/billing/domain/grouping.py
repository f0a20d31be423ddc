"""
Resource grouping for billing detail lines.

Groups are keyed by (provider, resource type, currency). The fetch collaborator
normally supplies pre-aggregated summary rows carrying server totals; when it
does not, they are derived from the detail lines with the same rules the
billing backend applies.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from decimal import Decimal
from typing import Iterable, Sequence

import structlog

from spendlens.modules.billing.domain.models import (
    BillingDetailLine,
    GroupKey,
    ResourceGroup,
    ResourceSummaryRow,
)
from spendlens.shared.core.currency import ZERO

logger = structlog.get_logger()

PartitionKey = tuple[str, str]  # (provider, currency)


def compute_share_percent(total: Decimal, denominator: Decimal) -> float:
    if denominator <= 0:
        return 0.0
    return float(total / denominator * 100)


def group_detail_lines(
    lines: Iterable[BillingDetailLine],
) -> dict[GroupKey, list[BillingDetailLine]]:
    """Detail lines bucketed by group key, in first-seen order."""
    lookup: dict[GroupKey, list[BillingDetailLine]] = {}
    for line in lines:
        lookup.setdefault(line.group_key, []).append(line)
    return lookup


def summarize_by_resource_type(
    lines: Iterable[BillingDetailLine],
) -> list[ResourceSummaryRow]:
    """
    Derive server-style summary rows from raw detail lines.

    Zero amounts are skipped. Shares are relative to the (provider, currency)
    total. Rows are ordered provider asc, then total desc.
    """
    totals: dict[GroupKey, Decimal] = {}
    counts: dict[GroupKey, int] = defaultdict(int)
    partition_totals: dict[PartitionKey, Decimal] = defaultdict(lambda: ZERO)

    for line in lines:
        if line.amount == 0:
            continue
        key = line.group_key
        totals[key] = totals.get(key, ZERO) + line.amount
        counts[key] += 1
        partition_totals[(line.provider, line.currency)] += line.amount

    rows = [
        ResourceSummaryRow(
            provider=provider,
            resource_type=resource_type,
            currency=currency,
            total_amount=total,
            snapshot_count=counts[(provider, resource_type, currency)],
            share_percent=compute_share_percent(
                total, partition_totals[(provider, currency)]
            ),
        )
        for (provider, resource_type, currency), total in totals.items()
    ]
    rows.sort(key=lambda row: (row.provider, -row.total_amount, row.resource_type, row.currency))
    return rows


def _detail_identity(line: BillingDetailLine) -> tuple[str, ...]:
    return (
        *line.group_key,
        line.detail_name or line.resource_type,
        line.resource_ref,
        line.vendor_id,
        line.account_id,
        line.item_type,
        line.line_item_id,
        line.invoice_id,
    )


def consolidate_detail_lines(
    lines: Iterable[BillingDetailLine],
) -> list[BillingDetailLine]:
    """
    Merge repeated detail lines and order them for display.

    Lines with the same group key, detail name, resource ref, vendor, account,
    item type, line item id and invoice id collapse into one line carrying the
    summed amount; optional fields keep the first non-empty value seen. Within
    each group, details are ordered amount desc then detail name asc.
    """
    merged: dict[tuple[str, ...], BillingDetailLine] = {}
    for line in lines:
        if line.amount == 0:
            continue
        identity = _detail_identity(line)
        current = merged.get(identity)
        if current is None:
            merged[identity] = line
            continue
        merged[identity] = replace(
            current,
            amount=current.amount + line.amount,
            section_type=current.section_type or line.section_type,
            invoice_date=current.invoice_date or line.invoice_date,
            coverage_start_date=current.coverage_start_date or line.coverage_start_date,
            coverage_end_date=current.coverage_end_date or line.coverage_end_date,
        )

    consolidated: list[BillingDetailLine] = []
    for group_lines in group_detail_lines(merged.values()).values():
        consolidated.extend(
            sorted(group_lines, key=lambda line: (-line.amount, line.detail_name))
        )
    return consolidated


def build_resource_groups(
    lines: Sequence[BillingDetailLine],
    summary_rows: Sequence[ResourceSummaryRow] | None = None,
) -> list[ResourceGroup]:
    """
    Build one ResourceGroup per group key with its attached detail lines.

    Summary rows provide the server totals; repeated summary keys are merged,
    and detail keys without a summary row get a group totalled from their
    lines unless every line is zero. Server share percentages are kept only when every group in a
    (provider, currency) partition came with one, otherwise the partition's
    shares are recomputed from the group totals.
    """
    lookup = group_detail_lines(lines)
    if summary_rows is None:
        summary_rows = summarize_by_resource_type(lines)

    totals: dict[GroupKey, Decimal] = {}
    counts: dict[GroupKey, int] = {}
    shares: dict[GroupKey, float | None] = {}
    for row in summary_rows:
        key = row.group_key
        if key in totals:
            totals[key] += row.total_amount
            counts[key] += row.snapshot_count
            shares[key] = None
            continue
        totals[key] = row.total_amount
        counts[key] = row.snapshot_count
        shares[key] = row.share_percent

    synthesized = 0
    for key, group_lines in lookup.items():
        if key in totals or not any(line.amount for line in group_lines):
            continue
        totals[key] = sum((line.amount for line in group_lines), ZERO)
        counts[key] = len(group_lines)
        shares[key] = None
        synthesized += 1

    partition_totals: dict[PartitionKey, Decimal] = defaultdict(lambda: ZERO)
    stale_partitions: set[PartitionKey] = set()
    for key, total in totals.items():
        partition = (key[0], key[2])
        partition_totals[partition] += total
        if shares[key] is None:
            stale_partitions.add(partition)

    groups: list[ResourceGroup] = []
    for key, total in totals.items():
        provider, resource_type, currency = key
        share = shares[key]
        if share is None or (provider, currency) in stale_partitions:
            share = compute_share_percent(total, partition_totals[(provider, currency)])
        attached = tuple(lookup.get(key, ()))
        groups.append(
            ResourceGroup(
                provider=provider,
                resource_type=resource_type,
                currency=currency,
                total_amount=total,
                snapshot_count=counts[key],
                share_percent=share,
                lines=attached,
                visible_lines=attached,
            )
        )

    logger.debug(
        "billing_groups_built",
        group_count=len(groups),
        line_count=len(lines),
        synthesized_groups=synthesized,
    )
    return groups
