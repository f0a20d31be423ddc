"""
Billing dashboard facade.

Threads explicit inputs (lines, summary rows, account totals, account names,
tag store) through the grouping, filtering, aggregation, budget and sorting
stages. Nothing is carried between renders except an optional memo of
finished results, keyed by every input that can change the output.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Hashable, Iterable, Mapping, Sequence

import structlog

from spendlens.modules.billing.domain.accounts import (
    AccountTotalsSummary,
    summarize_account_totals,
)
from spendlens.modules.billing.domain.budgets import (
    build_budget_lookup,
    build_budget_rows_for_year,
    evaluate_account_budgets,
    summarize_budget_status,
)
from spendlens.modules.billing.domain.grouping import build_resource_groups
from spendlens.modules.billing.domain.models import (
    AccountBudgetRow,
    AccountBudgetStatus,
    AccountTotalRow,
    BillingDetailLine,
    BudgetPlan,
    BudgetStatusSummary,
    ResourceGroup,
    ResourceSummaryRow,
    TagTotalsRow,
)
from spendlens.modules.billing.domain.pipeline import BillingView, run_filter_pipeline
from spendlens.modules.billing.domain.sorting import (
    normalize_group_sort_key,
    sort_account_rows,
    sort_resource_groups,
)
from spendlens.modules.billing.domain.tag_store import TagResolver, TagStore
from spendlens.modules.billing.domain.tag_totals import summarize_tag_totals
from spendlens.schemas.billing import BillingPeriodPayload
from spendlens.shared.core.config import Settings, get_settings

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class DashboardResult:
    groups: tuple[ResourceGroup, ...]
    sort_key: str
    search_tokens: tuple[str, ...]
    total_groups: int

    @property
    def is_empty(self) -> bool:
        return not self.groups

    @property
    def visible_lines(self) -> list[BillingDetailLine]:
        return [line for group in self.groups for line in group.visible_lines]


@dataclass(frozen=True, slots=True)
class BudgetOverview:
    accounts: list[AccountBudgetStatus]
    summaries: list[BudgetStatusSummary]
    totals: AccountTotalsSummary


class BillingDashboard:
    """Renders resource-group views over one period's billing lines."""

    def __init__(
        self,
        lines: Iterable[BillingDetailLine] = (),
        summary_rows: Sequence[ResourceSummaryRow] | None = None,
        tag_store: TagStore | None = None,
        account_names: Mapping[str, str] | None = None,
        settings: Settings | None = None,
        accounts: Iterable[AccountTotalRow] = (),
    ) -> None:
        self.settings = settings or get_settings()
        self.tag_store = tag_store or TagStore(settings=self.settings)
        self._input_version = 0
        self._cache: OrderedDict[Hashable, DashboardResult] = OrderedDict()
        self.load(lines, summary_rows, account_names, accounts)

    @classmethod
    def from_payload(
        cls,
        payload: BillingPeriodPayload | Mapping[str, Any],
        tag_store: TagStore | None = None,
        settings: Settings | None = None,
    ) -> "BillingDashboard":
        if not isinstance(payload, BillingPeriodPayload):
            payload = BillingPeriodPayload.model_validate(payload)
        settings = settings or get_settings()
        currency = settings.BILLING_DEFAULT_CURRENCY
        summary = (
            [row.to_domain(currency) for row in payload.summary]
            if payload.summary is not None
            else None
        )
        return cls(
            lines=[line.to_domain(currency) for line in payload.lines],
            summary_rows=summary,
            tag_store=tag_store,
            account_names=payload.account_names,
            settings=settings,
            accounts=[account.to_domain(currency) for account in payload.accounts],
        )

    @property
    def lines(self) -> tuple[BillingDetailLine, ...]:
        return self._lines

    @property
    def groups(self) -> tuple[ResourceGroup, ...]:
        return self._groups

    @property
    def accounts(self) -> tuple[AccountTotalRow, ...]:
        return self._accounts

    def load(
        self,
        lines: Iterable[BillingDetailLine],
        summary_rows: Sequence[ResourceSummaryRow] | None = None,
        account_names: Mapping[str, str] | None = None,
        accounts: Iterable[AccountTotalRow] = (),
    ) -> None:
        """Replace the period's inputs; every cached render is dropped."""
        self._lines = tuple(lines)
        self._summary_rows = tuple(summary_rows) if summary_rows is not None else None
        self._account_names = dict(account_names or {})
        self._accounts = tuple(accounts)
        self._groups = tuple(build_resource_groups(self._lines, self._summary_rows))
        self._input_version += 1
        self._cache.clear()

    async def resolve_tags(self, resolver: TagResolver) -> int:
        return await self.tag_store.resolve_missing(self._lines, resolver)

    def _cache_key(self, view: BillingView) -> Hashable:
        return (
            view.provider,
            view.resource_type,
            view.tag_filter,
            view.search_tokens,
            normalize_group_sort_key(view.sort_key),
            self._input_version,
            self.tag_store.version,
        )

    def render(self, view: BillingView | None = None) -> DashboardResult:
        view = view or BillingView()
        cache_size = self.settings.RENDER_CACHE_SIZE
        key = self._cache_key(view)
        if cache_size and key in self._cache:
            self._cache.move_to_end(key)
            return self._cache[key]

        filtered = run_filter_pipeline(
            self._groups, view, self.tag_store, self._account_names
        )
        sort_key = normalize_group_sort_key(view.sort_key)
        result = DashboardResult(
            groups=tuple(sort_resource_groups(filtered, sort_key)),
            sort_key=sort_key,
            search_tokens=view.search_tokens,
            total_groups=len(self._groups),
        )
        logger.debug(
            "billing_render_completed",
            visible_groups=len(result.groups),
            total_groups=result.total_groups,
            is_empty=result.is_empty,
        )

        if cache_size:
            self._cache[key] = result
            while len(self._cache) > cache_size:
                self._cache.popitem(last=False)
        return result

    def tag_totals(
        self, tag_key: str, view: BillingView | None = None
    ) -> list[TagTotalsRow]:
        """Tag attribution over the lines visible in view (all lines when None)."""
        lines = self.render(view).visible_lines if view is not None else self._lines
        return summarize_tag_totals(lines, tag_key, self.tag_store)

    def attribution_cards(
        self, view: BillingView | None = None
    ) -> dict[str, list[TagTotalsRow]]:
        return {
            key: self.tag_totals(key, view) for key in self.settings.TAG_SUMMARY_KEYS
        }

    def budget_overview(
        self,
        plans: Iterable[BudgetPlan],
        period_start: date | str,
        period_end: date | str,
        provider: str | None = None,
        sort_key: str | None = None,
    ) -> BudgetOverview:
        return budget_overview(
            self._accounts,
            plans,
            period_start,
            period_end,
            provider=provider,
            sort_key=sort_key,
            tolerance=self.settings.BUDGET_ON_TARGET_TOLERANCE,
        )

    def budget_grid(
        self, plans: Iterable[BudgetPlan], year: int, provider: str | None = None
    ) -> list[AccountBudgetRow]:
        """The year's budget grid for the loaded accounts."""
        return build_budget_rows_for_year(self._accounts, plans, year, provider)


def budget_overview(
    accounts: Sequence[AccountTotalRow],
    plans: Iterable[BudgetPlan],
    period_start: date | str,
    period_end: date | str,
    provider: str | None = None,
    sort_key: str | None = None,
    tolerance: Decimal | float | None = None,
) -> BudgetOverview:
    """Account rows annotated with budgets for a period, plus per-currency status."""
    lookup = build_budget_lookup(plans, period_start, period_end)
    statuses = evaluate_account_budgets(accounts, lookup, tolerance)
    summaries = summarize_budget_status(statuses, provider=provider, tolerance=tolerance)
    logger.info(
        "billing_budget_overview_built",
        accounts=len(statuses),
        configured=sum(1 for status in statuses if status.budget_configured),
        currencies=len(summaries),
    )
    return BudgetOverview(
        accounts=sort_account_rows(statuses, sort_key),
        summaries=summaries,
        totals=summarize_account_totals(accounts),
    )
