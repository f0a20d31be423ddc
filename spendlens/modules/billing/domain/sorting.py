"""
Deterministic ordering for resource groups and account rows.

The selected sort key only decides between rows that differ on it; ties always
fall through a fixed chain so repeated renders of the same input produce the
same order.
"""

from __future__ import annotations

from functools import cmp_to_key
from typing import Any, Callable, Sequence, TypeVar

import structlog

from spendlens.modules.billing.domain.models import (
    AccountBudgetStatus,
    AccountTotalRow,
    ResourceGroup,
)
from spendlens.shared.core.currency import ZERO

logger = structlog.get_logger()

T = TypeVar("T")
Comparator = Callable[[Any, Any], int]

GROUP_SORT_KEYS = (
    "amount_desc",
    "amount_asc",
    "untagged_desc",
    "type_asc",
    "type_desc",
    "provider_asc",
    "provider_desc",
)
DEFAULT_GROUP_SORT_KEY = "amount_desc"

ACCOUNT_SORT_KEYS = (
    "provider_asc",
    "provider_desc",
    "account_asc",
    "account_desc",
    "total_desc",
    "total_asc",
    "budget_desc",
    "budget_asc",
)
DEFAULT_ACCOUNT_SORT_KEY = "provider_asc"


def _cmp(left: Any, right: Any) -> int:
    return (left > right) - (left < right)


def _chain(*comparators: Comparator) -> Comparator:
    def compare(left: Any, right: Any) -> int:
        for comparator in comparators:
            result = comparator(left, right)
            if result:
                return result
        return 0

    return compare


def _asc(attr: Callable[[Any], Any]) -> Comparator:
    return lambda left, right: _cmp(attr(left), attr(right))


def _desc(attr: Callable[[Any], Any]) -> Comparator:
    return lambda left, right: _cmp(attr(right), attr(left))


def _sorted(rows: Sequence[T], comparator: Comparator) -> list[T]:
    return sorted(rows, key=cmp_to_key(comparator))


def normalize_group_sort_key(value: str | None) -> str:
    key = str(value or "").strip().lower()
    return key if key in GROUP_SORT_KEYS else DEFAULT_GROUP_SORT_KEY


def normalize_account_sort_key(value: str | None) -> str:
    key = str(value or "").strip().lower()
    return key if key in ACCOUNT_SORT_KEYS else DEFAULT_ACCOUNT_SORT_KEY


# Resource groups

def _group_amount(group: ResourceGroup) -> Any:
    return group.total_amount


def _group_provider(group: ResourceGroup) -> str:
    return group.provider


def _group_type(group: ResourceGroup) -> str:
    return group.resource_type


_GROUP_TIE_BREAK = _chain(
    _desc(_group_amount),
    _asc(_group_provider),
    _asc(_group_type),
    _asc(lambda group: group.currency),
)

_GROUP_PRIMARY: dict[str, Comparator] = {
    "amount_desc": _desc(_group_amount),
    "amount_asc": _asc(_group_amount),
    "untagged_desc": _desc(lambda group: group.untagged_count),
    "type_asc": _asc(_group_type),
    "type_desc": _desc(_group_type),
    "provider_asc": _asc(_group_provider),
    "provider_desc": _desc(_group_provider),
}


def sort_resource_groups(
    groups: Sequence[ResourceGroup], sort_key: str | None = DEFAULT_GROUP_SORT_KEY
) -> list[ResourceGroup]:
    key = normalize_group_sort_key(sort_key)
    if key != (sort_key or "").strip().lower():
        logger.debug("billing_sort_key_fallback", requested=sort_key, applied=key)
    return _sorted(groups, _chain(_GROUP_PRIMARY[key], _GROUP_TIE_BREAK))


# Account rows

def _account(row: AccountBudgetStatus | AccountTotalRow) -> AccountTotalRow:
    return row.account if isinstance(row, AccountBudgetStatus) else row


def _account_total(row: Any) -> Any:
    return _account(row).total_amount


def _account_provider(row: Any) -> str:
    return _account(row).provider


def _account_name(row: Any) -> str:
    return _account(row).account_name.casefold()


def _account_id(row: Any) -> str:
    return _account(row).account_id


def _account_budget(row: Any) -> Any:
    if isinstance(row, AccountBudgetStatus) and row.budget_configured:
        return row.budget_amount
    return ZERO


_ACCOUNT_ORDERINGS: dict[str, Comparator] = {
    "provider_asc": _chain(
        _asc(_account_provider),
        _desc(_account_total),
        _asc(_account_name),
        _asc(_account_id),
    ),
    "provider_desc": _chain(
        _desc(_account_provider),
        _desc(_account_total),
        _asc(_account_name),
        _asc(_account_id),
    ),
    "account_asc": _chain(
        _asc(_account_name),
        _asc(_account_provider),
        _asc(_account_id),
    ),
    "account_desc": _chain(
        _desc(_account_name),
        _asc(_account_provider),
        _asc(_account_id),
    ),
    "total_desc": _chain(
        _desc(_account_total),
        _asc(_account_provider),
        _asc(_account_name),
        _asc(_account_id),
    ),
    "total_asc": _chain(
        _asc(_account_total),
        _asc(_account_provider),
        _asc(_account_name),
        _asc(_account_id),
    ),
    "budget_desc": _chain(
        _desc(_account_budget),
        _desc(_account_total),
        _asc(_account_provider),
        _asc(_account_name),
        _asc(_account_id),
    ),
    "budget_asc": _chain(
        _asc(_account_budget),
        _desc(_account_total),
        _asc(_account_provider),
        _asc(_account_name),
        _asc(_account_id),
    ),
}


def sort_account_rows(
    rows: Sequence[T], sort_key: str | None = DEFAULT_ACCOUNT_SORT_KEY
) -> list[T]:
    """Order AccountTotalRow or AccountBudgetStatus rows by an account sort key."""
    key = normalize_account_sort_key(sort_key)
    return _sorted(rows, _ACCOUNT_ORDERINGS[key])
