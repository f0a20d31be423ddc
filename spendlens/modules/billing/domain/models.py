"""
Billing data model.

All records are frozen: a render never patches a previous render's objects, it
builds new ones with dataclasses.replace(). Normalisation happens in
__post_init__ so a record is canonical no matter which collaborator built it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

from spendlens.modules.billing.domain.normalization import (
    normalize_currency,
    normalize_provider,
    normalize_resource_type,
    normalize_text,
    provider_label,
)
from spendlens.shared.core.currency import ZERO, safe_decimal, to_decimal

GroupKey = tuple[str, str, str]  # (provider, resource_type, currency)

MONTHS = tuple(range(1, 13))


def _set(obj: Any, name: str, value: Any) -> None:
    object.__setattr__(obj, name, value)


@dataclass(frozen=True, slots=True)
class BillingDetailLine:
    """One billed invoice line, prior to any grouping."""

    provider: str
    resource_type: str
    amount: Decimal
    currency: str = "USD"
    resource_ref: str = ""
    account_id: str = ""
    vendor_id: str = ""
    detail_name: str = ""
    item_type: str = ""
    section_type: str = ""
    line_item_id: str = ""
    invoice_id: str = ""
    invoice_date: str = ""
    coverage_start_date: str = ""
    coverage_end_date: str = ""

    def __post_init__(self) -> None:
        _set(self, "provider", normalize_provider(self.provider))
        _set(self, "resource_type", normalize_resource_type(self.resource_type))
        _set(self, "currency", normalize_currency(self.currency))
        _set(self, "amount", safe_decimal(self.amount))
        for name in (
            "resource_ref",
            "account_id",
            "vendor_id",
            "detail_name",
            "item_type",
            "section_type",
            "line_item_id",
            "invoice_id",
            "invoice_date",
            "coverage_start_date",
            "coverage_end_date",
        ):
            _set(self, name, normalize_text(getattr(self, name)))

    @property
    def group_key(self) -> GroupKey:
        return (self.provider, self.resource_type, self.currency)

    @property
    def provider_label(self) -> str:
        return provider_label(self.provider)


@dataclass(frozen=True, slots=True)
class ResourceSummaryRow:
    """Server-side aggregate for one (provider, resource type, currency)."""

    provider: str
    resource_type: str
    currency: str = "USD"
    total_amount: Decimal = ZERO
    snapshot_count: int = 0
    share_percent: float | None = None

    def __post_init__(self) -> None:
        _set(self, "provider", normalize_provider(self.provider))
        _set(self, "resource_type", normalize_resource_type(self.resource_type))
        _set(self, "currency", normalize_currency(self.currency))
        _set(self, "total_amount", safe_decimal(self.total_amount))
        _set(self, "snapshot_count", max(0, int(self.snapshot_count or 0)))

    @property
    def group_key(self) -> GroupKey:
        return (self.provider, self.resource_type, self.currency)


@dataclass(frozen=True, slots=True)
class ResourceGroup:
    """
    All detail lines sharing one (provider, resource type, currency) key.

    `lines` is everything attached to the group; `visible_lines` is the subset
    that survived the current tag filter and search.
    """

    provider: str
    resource_type: str
    currency: str
    total_amount: Decimal
    snapshot_count: int
    share_percent: float
    lines: tuple[BillingDetailLine, ...] = ()
    visible_lines: tuple[BillingDetailLine, ...] = ()
    tagged_count: int = 0
    untagged_count: int = 0

    @property
    def key(self) -> GroupKey:
        return (self.provider, self.resource_type, self.currency)

    @property
    def provider_label(self) -> str:
        return provider_label(self.provider)


@dataclass(frozen=True, slots=True)
class AccountTotalRow:
    """Actual spend for one billing account over a period."""

    scope_id: str
    provider: str
    total_amount: Decimal = ZERO
    currency: str = "USD"
    account_id: str = ""
    account_name: str = ""
    vendor_id: str = ""
    snapshot_count: int = 0

    def __post_init__(self) -> None:
        _set(self, "scope_id", normalize_text(self.scope_id))
        _set(self, "provider", normalize_provider(self.provider))
        _set(self, "currency", normalize_currency(self.currency))
        _set(self, "total_amount", safe_decimal(self.total_amount))
        _set(self, "account_id", normalize_text(self.account_id))
        _set(self, "account_name", normalize_text(self.account_name))
        _set(self, "vendor_id", normalize_text(self.vendor_id))

    @property
    def provider_label(self) -> str:
        return provider_label(self.provider)


@dataclass(frozen=True, slots=True)
class AccountBudgetRow:
    """Monthly budget cells for one account and year; missing months are None."""

    scope_id: str
    provider: str
    currency: str = "USD"
    months: Mapping[int, Decimal | None] = field(default_factory=dict)
    account_id: str = ""
    account_name: str = ""
    vendor_id: str = ""

    def __post_init__(self) -> None:
        _set(self, "scope_id", normalize_text(self.scope_id))
        _set(self, "provider", normalize_provider(self.provider))
        _set(self, "currency", normalize_currency(self.currency))
        _set(self, "account_id", normalize_text(self.account_id))
        _set(self, "account_name", normalize_text(self.account_name))
        _set(self, "vendor_id", normalize_text(self.vendor_id))
        raw = dict(self.months or {})
        months: dict[int, Decimal | None] = {}
        for month in MONTHS:
            value = raw.get(month, raw.get(str(month)))
            amount = to_decimal(value)
            months[month] = amount if amount is not None and amount >= 0 else None
        _set(self, "months", months)

    @property
    def annual_total(self) -> Decimal:
        return sum(
            (value for value in self.months.values() if value is not None), ZERO
        )

    @property
    def has_budget(self) -> bool:
        return any(value is not None for value in self.months.values())


def _coerce_month(value: Any) -> tuple[int | None, bool]:
    """(month, valid); a blank month means a whole-year plan."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None, True
    if isinstance(value, bool):
        return None, False
    try:
        month = int(str(value).strip())
    except ValueError:
        return None, False
    return (month, True) if month in MONTHS else (None, False)


@dataclass(frozen=True, slots=True)
class BudgetPlan:
    """
    A stored budget entry: one month, or a whole year when month is None.

    Negative or non-finite amounts and months outside 1..12 leave the plan
    without an amount, so every budget computation skips it.
    """

    scope_id: str
    year: int
    amount: Decimal | None
    currency: str = "USD"
    month: int | None = None
    provider: str = "other"
    account_id: str = ""
    account_name: str = ""
    vendor_id: str = ""

    def __post_init__(self) -> None:
        _set(self, "scope_id", normalize_text(self.scope_id))
        _set(self, "currency", normalize_currency(self.currency))
        _set(self, "provider", normalize_provider(self.provider))
        month, valid_month = _coerce_month(self.month)
        parsed = to_decimal(self.amount)
        if parsed is not None and parsed < 0:
            parsed = None
        _set(self, "month", month)
        _set(self, "amount", parsed if valid_month else None)

    @property
    def is_valid(self) -> bool:
        return self.amount is not None


class BudgetStatus(str, Enum):
    OVER = "over"
    UNDER = "under"
    ON_TARGET = "on-target"
    UNSET = "unset"


@dataclass(frozen=True, slots=True)
class AccountBudgetStatus:
    account: AccountTotalRow
    budget_configured: bool
    budget_amount: Decimal
    budget_currency: str
    delta: Decimal | None
    status: BudgetStatus


@dataclass(frozen=True, slots=True)
class BudgetStatusSummary:
    currency: str
    actual_amount: Decimal
    budget_amount: Decimal
    delta: Decimal
    status: BudgetStatus
    account_count: int


@dataclass(frozen=True, slots=True)
class TagTotalsRow:
    tag_key: str
    label: str
    is_null: bool
    line_count: int
    resource_count: int
    totals_by_currency: Mapping[str, Decimal]
    sortable_amount: Decimal
