"""
Budget Delta Engine

Compares actual account spend with configured monthly budgets.

- Budgets are stored as plans: one month, or a whole year when no month is set.
- A plan contributes to a reporting period in proportion to the days it
  overlaps that period, so a January plan counts fully for January and
  one third for Jan 1-10 of a 30-day month.
- delta = actual - budget, and |delta| <= tolerance (0.005 by default) is
  on-target. Accounts without a budget stay "unset" and never enter the
  per-currency aggregate.
"""

from __future__ import annotations

import re
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Iterable, Mapping, Sequence

import structlog

from spendlens.modules.billing.domain.models import (
    MONTHS,
    AccountBudgetRow,
    AccountBudgetStatus,
    AccountTotalRow,
    BudgetPlan,
    BudgetStatus,
    BudgetStatusSummary,
)
from spendlens.modules.billing.domain.normalization import (
    normalize_currency,
    normalize_provider,
    normalize_text,
)
from spendlens.shared.core.config import get_settings
from spendlens.shared.core.currency import ZERO, round_currency_amount, to_decimal
from spendlens.shared.core.exceptions import BudgetValidationError

logger = structlog.get_logger()

BudgetLookup = dict[str, dict[str, Decimal]]

_AMOUNT_NOISE = re.compile(r"[$,\s]")


def parse_budget_amount(value: Any) -> Decimal | None:
    """Parse a budget cell such as "1,200" or "$99.50"; None when blank or invalid."""
    if value is None or value == "":
        return None
    parsed = to_decimal(_AMOUNT_NOISE.sub("", str(value)))
    if parsed is None or parsed < 0:
        return None
    return parsed


def classify_budget_delta(
    delta: Decimal | float | int, tolerance: Decimal | float | None = None
) -> BudgetStatus:
    if tolerance is None:
        tolerance = get_settings().BUDGET_ON_TARGET_TOLERANCE
    limit = Decimal(str(tolerance))
    value = delta if isinstance(delta, Decimal) else Decimal(str(delta))
    if value > limit:
        return BudgetStatus.OVER
    if value < -limit:
        return BudgetStatus.UNDER
    return BudgetStatus.ON_TARGET


# Period arithmetic

def parse_period_date(value: date | str | None) -> date | None:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value or "").strip())
    except ValueError:
        return None


def month_range(year: int, month: int) -> tuple[date, date]:
    start = date(year, month, 1)
    next_month = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, next_month - timedelta(days=1)


def year_range(year: int) -> tuple[date, date]:
    return date(year, 1, 1), date(year, 12, 31)


def overlap_days(
    left_start: date, left_end: date, right_start: date, right_end: date
) -> int:
    start = max(left_start, right_start)
    end = min(left_end, right_end)
    if end < start:
        return 0
    return (end - start).days + 1


def plan_range(plan: BudgetPlan) -> tuple[date, date]:
    if plan.month is not None:
        return month_range(plan.year, plan.month)
    return year_range(plan.year)


def prorate_plan_amount(plan: BudgetPlan, period_start: date, period_end: date) -> Decimal:
    """Share of a plan's amount that falls inside [period_start, period_end]."""
    if plan.amount is None:
        return ZERO
    start, end = plan_range(plan)
    overlap = overlap_days(start, end, period_start, period_end)
    if not overlap:
        return ZERO
    window = overlap_days(start, end, start, end)
    return plan.amount * Decimal(overlap) / Decimal(window)


def build_budget_lookup(
    plans: Iterable[BudgetPlan],
    period_start: date | str,
    period_end: date | str,
) -> BudgetLookup:
    """scope_id -> currency -> budget prorated to the period."""
    start = parse_period_date(period_start)
    end = parse_period_date(period_end)
    if start is None or end is None or end < start:
        logger.warning(
            "budget_lookup_invalid_period",
            period_start=str(period_start),
            period_end=str(period_end),
        )
        return {}

    lookup: BudgetLookup = {}
    skipped = 0
    for plan in plans:
        if not plan.scope_id:
            continue
        if not plan.is_valid:
            skipped += 1
            continue
        start_plan, end_plan = plan_range(plan)
        if not overlap_days(start_plan, end_plan, start, end):
            continue
        by_currency = lookup.setdefault(plan.scope_id, {})
        by_currency[plan.currency] = by_currency.get(
            plan.currency, ZERO
        ) + prorate_plan_amount(plan, start, end)
    if skipped:
        logger.warning(
            "budget_plans_skipped", reason="invalid_amount_or_month", plans=skipped
        )
    return lookup


# Yearly budget grid

def budget_rows_to_plans(rows: Iterable[AccountBudgetRow], year: int) -> list[BudgetPlan]:
    """One monthly plan per non-empty cell."""
    plans: list[BudgetPlan] = []
    for row in rows:
        if not row.scope_id:
            continue
        for month in MONTHS:
            amount = row.months.get(month)
            if amount is None:
                continue
            plans.append(
                BudgetPlan(
                    scope_id=row.scope_id,
                    year=year,
                    month=month,
                    amount=amount,
                    currency=row.currency,
                    provider=row.provider,
                    account_id=row.account_id,
                    account_name=row.account_name,
                    vendor_id=row.vendor_id,
                )
            )
    return plans


def parse_budget_submission(
    rows: Sequence[Mapping[str, Any]], year: int
) -> list[BudgetPlan]:
    """
    Validate a submitted budget grid and turn it into monthly plans.

    Blank cells are skipped. Every unparsable cell is reported; if any are
    found nothing is returned and BudgetValidationError lists them all.
    """
    plans: list[BudgetPlan] = []
    errors: list[str] = []
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        scope_id = normalize_text(row.get("scopeId") or row.get("scope_id"))
        if not scope_id:
            continue
        months = row.get("months")
        if not isinstance(months, Mapping):
            months = {}
        for month in MONTHS:
            raw_value = months.get(str(month), months.get(month))
            if raw_value is None or raw_value == "":
                continue
            amount = parse_budget_amount(raw_value)
            if amount is None:
                errors.append(f"Invalid budget amount for {scope_id} month {month}.")
                continue
            plans.append(
                BudgetPlan(
                    scope_id=scope_id,
                    year=year,
                    month=month,
                    amount=amount,
                    currency=normalize_currency(row.get("currency")),
                    provider=normalize_provider(row.get("provider")),
                    account_id=normalize_text(row.get("accountId") or row.get("account_id")),
                    account_name=normalize_text(
                        row.get("accountName") or row.get("account_name")
                    ),
                    vendor_id=normalize_text(row.get("vendorId") or row.get("vendor_id")),
                )
            )
    if errors:
        raise BudgetValidationError(errors)
    return plans


def build_budget_rows_for_year(
    accounts: Sequence[AccountTotalRow],
    plans: Iterable[BudgetPlan],
    year: int,
    provider: str | None = None,
) -> list[AccountBudgetRow]:
    """
    Lay a year's plans onto a 12-month grid per account.

    Every account gets a row even without plans. Monthly plans add to their
    month; whole-year plans are spread evenly over the twelve months. Plans for
    scopes with no account row create a row from the plan's own labels.
    Plans with a negative or non-finite amount or an invalid month are
    skipped and never seed a row. Rows are ordered provider, account name,
    account id.
    """
    provider_filter = normalize_provider(provider) if provider else None
    seeds: dict[str, dict[str, Any]] = {}
    for account in accounts:
        if not account.scope_id:
            continue
        if provider_filter and account.provider != provider_filter:
            continue
        seeds[account.scope_id] = {
            "scope_id": account.scope_id,
            "provider": account.provider,
            "currency": account.currency,
            "account_id": account.account_id,
            "account_name": account.account_name or account.account_id or "Account",
            "vendor_id": account.vendor_id,
            "months": {month: None for month in MONTHS},
        }

    skipped = 0
    for plan in plans:
        if plan.year != year or not plan.scope_id:
            continue
        if not plan.is_valid:
            skipped += 1
            continue
        if provider_filter and plan.provider != provider_filter and plan.scope_id not in seeds:
            continue
        seed = seeds.get(plan.scope_id)
        if seed is None:
            seed = seeds[plan.scope_id] = {
                "scope_id": plan.scope_id,
                "provider": plan.provider,
                "currency": plan.currency,
                "account_id": plan.account_id,
                "account_name": plan.account_name or plan.account_id or plan.scope_id,
                "vendor_id": plan.vendor_id,
                "months": {month: None for month in MONTHS},
            }
        months = seed["months"]
        if plan.month is not None:
            months[plan.month] = round_currency_amount(
                (months[plan.month] or ZERO) + plan.amount
            )
        else:
            share = plan.amount / 12
            for month in MONTHS:
                months[month] = round_currency_amount((months[month] or ZERO) + share)

    if skipped:
        logger.warning(
            "budget_plans_skipped",
            reason="invalid_amount_or_month",
            plans=skipped,
            year=year,
        )

    rows = [AccountBudgetRow(**seed) for seed in seeds.values()]
    rows.sort(key=lambda row: (row.provider, row.account_name.casefold(), row.account_id))
    return rows


# Actual vs budget

def evaluate_account_budgets(
    accounts: Sequence[AccountTotalRow],
    budget_lookup: Mapping[str, Mapping[str, Decimal]],
    tolerance: Decimal | float | None = None,
) -> list[AccountBudgetStatus]:
    """
    Attach budget, delta and status to each account row.

    The budget in the account's own currency is used when one exists;
    otherwise the first configured currency is shown (such rows are skipped by
    the per-currency aggregate).
    """
    results: list[AccountBudgetStatus] = []
    for account in accounts:
        by_currency = budget_lookup.get(account.scope_id) if account.scope_id else None
        if not by_currency:
            results.append(
                AccountBudgetStatus(
                    account=account,
                    budget_configured=False,
                    budget_amount=ZERO,
                    budget_currency=account.currency,
                    delta=None,
                    status=BudgetStatus.UNSET,
                )
            )
            continue

        if account.currency in by_currency:
            budget_currency = account.currency
        else:
            budget_currency = next(iter(by_currency))
        budget_amount = by_currency[budget_currency]
        delta = account.total_amount - budget_amount
        results.append(
            AccountBudgetStatus(
                account=account,
                budget_configured=True,
                budget_amount=budget_amount,
                budget_currency=budget_currency,
                delta=delta,
                status=classify_budget_delta(delta, tolerance),
            )
        )
    return results


def summarize_budget_status(
    statuses: Iterable[AccountBudgetStatus],
    provider: str | None = None,
    tolerance: Decimal | float | None = None,
) -> list[BudgetStatusSummary]:
    """
    One summary per currency over budget-configured accounts in scope.

    provider narrows the scope ("all" or None keeps every provider).
    Summaries are ordered by currency code.
    """
    provider_filter = (
        normalize_provider(provider)
        if provider and str(provider).strip().lower() != "all"
        else None
    )
    actual: dict[str, Decimal] = defaultdict(lambda: ZERO)
    budget: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)
    mismatched = 0

    for status in statuses:
        if not status.budget_configured:
            continue
        account = status.account
        if provider_filter and account.provider != provider_filter:
            continue
        if status.budget_currency != account.currency:
            mismatched += 1
            continue
        actual[account.currency] += account.total_amount
        budget[account.currency] += status.budget_amount
        counts[account.currency] += 1

    if mismatched:
        logger.warning("budget_summary_currency_mismatch_skipped", accounts=mismatched)

    summaries = []
    for currency in sorted(counts):
        delta = actual[currency] - budget[currency]
        summaries.append(
            BudgetStatusSummary(
                currency=currency,
                actual_amount=actual[currency],
                budget_amount=budget[currency],
                delta=delta,
                status=classify_budget_delta(delta, tolerance),
                account_count=counts[currency],
            )
        )
    return summaries
