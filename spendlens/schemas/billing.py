"""
Billing Payload Schemas

Wire shapes exchanged with the fetch and persistence collaborators. Payloads
use camelCase keys; each model converts itself into the frozen domain record.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from spendlens.modules.billing.domain.models import (
    AccountTotalRow,
    BillingDetailLine,
    ResourceSummaryRow,
)
from spendlens.shared.core.currency import safe_decimal, to_decimal


class _BillingPayload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


def _text(value: Any) -> str:
    return "" if value is None else str(value)


class BillingDetailLinePayload(_BillingPayload):
    provider: str = "other"
    resource_type: str = ""
    currency: Optional[str] = None
    amount: Decimal = Decimal("0")
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

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> Decimal:
        return safe_decimal(value)

    @field_validator(
        "provider",
        "resource_type",
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
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _text(value)

    def to_domain(self, default_currency: str = "USD") -> BillingDetailLine:
        return BillingDetailLine(
            provider=self.provider,
            resource_type=self.resource_type,
            amount=self.amount,
            currency=self.currency or default_currency,
            resource_ref=self.resource_ref,
            account_id=self.account_id,
            vendor_id=self.vendor_id,
            detail_name=self.detail_name,
            item_type=self.item_type,
            section_type=self.section_type,
            line_item_id=self.line_item_id,
            invoice_id=self.invoice_id,
            invoice_date=self.invoice_date,
            coverage_start_date=self.coverage_start_date,
            coverage_end_date=self.coverage_end_date,
        )


class ResourceSummaryPayload(_BillingPayload):
    provider: str = "other"
    resource_type: str = ""
    currency: Optional[str] = None
    total_amount: Decimal = Decimal("0")
    snapshot_count: int = 0
    share_percent: Optional[float] = None

    @field_validator("total_amount", mode="before")
    @classmethod
    def _coerce_total(cls, value: Any) -> Decimal:
        return safe_decimal(value)

    @field_validator("share_percent", mode="before")
    @classmethod
    def _coerce_share(cls, value: Any) -> Optional[float]:
        parsed = to_decimal(value)
        return float(parsed) if parsed is not None else None

    @field_validator("provider", "resource_type", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _text(value)

    def to_domain(self, default_currency: str = "USD") -> ResourceSummaryRow:
        return ResourceSummaryRow(
            provider=self.provider,
            resource_type=self.resource_type,
            currency=self.currency or default_currency,
            total_amount=self.total_amount,
            snapshot_count=self.snapshot_count,
            share_percent=self.share_percent,
        )


class AccountTotalPayload(_BillingPayload):
    scope_id: str
    provider: str = "other"
    total_amount: Decimal = Decimal("0")
    currency: Optional[str] = None
    account_id: str = ""
    account_name: str = ""
    vendor_id: str = ""
    snapshot_count: int = 0

    @field_validator("total_amount", mode="before")
    @classmethod
    def _coerce_total(cls, value: Any) -> Decimal:
        return safe_decimal(value)

    @field_validator("account_id", "account_name", "vendor_id", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _text(value)

    def to_domain(self, default_currency: str = "USD") -> AccountTotalRow:
        return AccountTotalRow(
            scope_id=self.scope_id,
            provider=self.provider,
            total_amount=self.total_amount,
            currency=self.currency or default_currency,
            account_id=self.account_id,
            account_name=self.account_name,
            vendor_id=self.vendor_id,
            snapshot_count=self.snapshot_count,
        )


class BillingPeriodPayload(_BillingPayload):
    """Everything the fetch collaborator returns for one period and scope."""

    lines: List[BillingDetailLinePayload] = Field(default_factory=list)
    summary: Optional[List[ResourceSummaryPayload]] = None
    accounts: List[AccountTotalPayload] = Field(default_factory=list)
    account_names: Dict[str, str] = Field(default_factory=dict)


class DashboardPreferences(_BillingPayload):
    """The operator's last view, stored by the persistence collaborator."""

    tag_filter: str = "all"
    sort_key: str = "amount_desc"
    account_sort_key: str = "provider_asc"
    search_text: str = ""
