from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from spendlens.modules.billing.domain.models import AccountTotalRow
from spendlens.modules.billing.domain.normalization import provider_label
from spendlens.shared.core.currency import ZERO


@dataclass(frozen=True, slots=True)
class ProviderTotal:
    provider: str
    currency: str
    total_amount: Decimal
    account_count: int

    @property
    def provider_label(self) -> str:
        return provider_label(self.provider)


@dataclass(frozen=True, slots=True)
class CurrencyTotal:
    currency: str
    total_amount: Decimal


@dataclass(frozen=True, slots=True)
class AccountTotalsSummary:
    provider_totals: list[ProviderTotal]
    grand_totals: list[CurrencyTotal]


def summarize_account_totals(rows: Sequence[AccountTotalRow]) -> AccountTotalsSummary:
    """
    Roll account rows up per (provider, currency) and per currency.

    Provider totals are ordered provider asc, then total desc; grand totals keep
    first-seen currency order.
    """
    provider_amounts: dict[tuple[str, str], Decimal] = {}
    provider_counts: dict[tuple[str, str], int] = {}
    currency_amounts: dict[str, Decimal] = {}

    for row in rows:
        key = (row.provider, row.currency)
        provider_amounts[key] = provider_amounts.get(key, ZERO) + row.total_amount
        provider_counts[key] = provider_counts.get(key, 0) + 1
        currency_amounts[row.currency] = (
            currency_amounts.get(row.currency, ZERO) + row.total_amount
        )

    provider_totals = [
        ProviderTotal(
            provider=provider,
            currency=currency,
            total_amount=amount,
            account_count=provider_counts[(provider, currency)],
        )
        for (provider, currency), amount in provider_amounts.items()
    ]
    provider_totals.sort(key=lambda item: (item.provider, -item.total_amount, item.currency))

    return AccountTotalsSummary(
        provider_totals=provider_totals,
        grand_totals=[
            CurrencyTotal(currency=currency, total_amount=amount)
            for currency, amount in currency_amounts.items()
        ],
    )
