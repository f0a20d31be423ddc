"""
Filter pipeline and aggregate renormalisation for resource groups.

One call turns the full group set into the groups visible for a view:

1. provider and resource-type filters ("all" passes everything)
2. tag predicate over each group's detail lines
3. groups with no tag-matched lines are dropped while a tag filter is active
4. search: matching lines narrow the group, a matching group keeps its lines
5. totals and counts are recomputed from the visible lines when a tag filter
   or search is active, otherwise the server figures are kept
6. tagged/untagged counts over the visible lines
7. shares are re-based on the surviving groups of each (provider, currency)
   partition when a tag filter or search is active

The function is pure: it never mutates its inputs and returns new groups.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Callable, Mapping, Sequence

import structlog

from spendlens.modules.billing.domain.grouping import PartitionKey, compute_share_percent
from spendlens.modules.billing.domain.models import BillingDetailLine, ResourceGroup
from spendlens.modules.billing.domain.normalization import (
    normalize_provider,
    normalize_resource_type,
)
from spendlens.modules.billing.domain.search import (
    group_haystack,
    line_haystack,
    matches_all_tokens,
    tokenize,
)
from spendlens.modules.billing.domain.tag_filters import (
    ALL_TAGS,
    TagFilterSpec,
    is_tagged,
    is_untagged,
    matches_tag_filter,
)
from spendlens.modules.billing.domain.tag_store import TagStore
from spendlens.shared.core.currency import ZERO

logger = structlog.get_logger()

ALL = "all"
DEFAULT_GROUP_SORT = "amount_desc"


def _normalize_scope(value: str | None, normalizer: Callable[[Any], str]) -> str:
    raw = str(value or "").strip().lower()
    if not raw or raw == ALL:
        return ALL
    return normalizer(raw)


@dataclass(frozen=True, slots=True)
class BillingView:
    """Everything an operator can change between two renders."""

    provider: str = ALL
    resource_type: str = ALL
    tag_filter: TagFilterSpec = field(default_factory=lambda: ALL_TAGS)
    search_text: str = ""
    sort_key: str = DEFAULT_GROUP_SORT

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "provider", _normalize_scope(self.provider, normalize_provider)
        )
        object.__setattr__(
            self,
            "resource_type",
            _normalize_scope(self.resource_type, normalize_resource_type),
        )
        object.__setattr__(self, "search_text", str(self.search_text or ""))

    @property
    def search_tokens(self) -> tuple[str, ...]:
        return tokenize(self.search_text)

    @property
    def is_refined(self) -> bool:
        """True when a tag filter or search narrows lines inside groups."""
        return self.tag_filter.is_active or bool(self.search_tokens)


def _visible_total(lines: Sequence[BillingDetailLine]) -> Decimal:
    return sum((line.amount for line in lines), ZERO)


def run_filter_pipeline(
    groups: Sequence[ResourceGroup],
    view: BillingView,
    tag_store: TagStore,
    account_names: Mapping[str, str] | None = None,
) -> list[ResourceGroup]:
    """Apply view to groups and return the surviving, re-aggregated groups."""
    tag_filter = view.tag_filter
    tokens = view.search_tokens
    refined = view.is_refined

    survivors: list[ResourceGroup] = []
    for group in groups:
        if view.provider != ALL and group.provider != view.provider:
            continue
        if view.resource_type != ALL and group.resource_type != view.resource_type:
            continue

        if tag_filter.is_active:
            tag_matched = [
                line
                for line in group.lines
                if matches_tag_filter(line, tag_filter, tag_store)
            ]
            if not tag_matched:
                continue
        else:
            tag_matched = list(group.lines)

        if tokens:
            visible = [
                line
                for line in tag_matched
                if matches_all_tokens(
                    line_haystack(line, tag_store.tags_for(line), account_names),
                    tokens,
                )
            ]
            if not visible:
                haystack = group_haystack(
                    group.provider,
                    group.resource_type,
                    group.currency,
                    tag_matched,
                    account_names,
                )
                if not matches_all_tokens(haystack, tokens):
                    continue
                visible = tag_matched
        else:
            visible = tag_matched

        if refined:
            total = _visible_total(visible)
            snapshot_count = len(visible)
        else:
            total = group.total_amount
            snapshot_count = len(visible) if group.lines else group.snapshot_count

        tagged = sum(1 for line in visible if is_tagged(line, tag_store.tags_for(line)))
        untagged = sum(
            1 for line in visible if is_untagged(line, tag_store.tags_for(line))
        )

        survivors.append(
            replace(
                group,
                total_amount=total,
                snapshot_count=snapshot_count,
                visible_lines=tuple(visible),
                tagged_count=tagged,
                untagged_count=untagged,
            )
        )

    if refined:
        survivors = rebase_share_percent(survivors)

    logger.debug(
        "billing_filter_pipeline_completed",
        input_groups=len(groups),
        visible_groups=len(survivors),
        tag_filter=tag_filter.mode.value,
        search_tokens=len(tokens),
    )
    return survivors


def rebase_share_percent(groups: Sequence[ResourceGroup]) -> list[ResourceGroup]:
    """Recompute every share against its (provider, currency) partition total."""
    partition_totals: dict[PartitionKey, Decimal] = defaultdict(lambda: ZERO)
    for group in groups:
        partition_totals[(group.provider, group.currency)] += group.total_amount
    return [
        replace(
            group,
            share_percent=compute_share_percent(
                group.total_amount, partition_totals[(group.provider, group.currency)]
            ),
        )
        for group in groups
    ]
