from dataclasses import FrozenInstanceError
from decimal import Decimal

import pytest

from spendlens.modules.billing.domain.models import (
    AccountBudgetRow,
    BillingDetailLine,
    BudgetPlan,
    ResourceSummaryRow,
)


def test_detail_line_is_normalised_on_construction():
    line = BillingDetailLine(
        provider="AWS",
        resource_type="  Elastic  Compute ",
        amount="12.5",
        currency="usd",
        resource_ref=" i-123 ",
        detail_name=None,
    )

    assert line.provider == "aws"
    assert line.resource_type == "elastic compute"
    assert line.currency == "USD"
    assert line.amount == Decimal("12.5")
    assert line.resource_ref == "i-123"
    assert line.detail_name == ""
    assert line.group_key == ("aws", "elastic compute", "USD")
    assert line.provider_label == "AWS"


def test_detail_line_books_non_finite_amount_as_zero():
    line = BillingDetailLine(provider="gcp", resource_type="bq", amount="NaN", currency="")
    assert line.amount == Decimal("0")
    assert line.currency == "USD"


def test_detail_line_is_immutable(make_line):
    line = make_line()
    with pytest.raises(FrozenInstanceError):
        line.amount = Decimal("1")


def test_summary_row_clamps_snapshot_count():
    row = ResourceSummaryRow(provider="aws", resource_type="s3", snapshot_count=-3)
    assert row.snapshot_count == 0
    assert row.share_percent is None


def test_account_budget_row_normalises_month_cells():
    row = AccountBudgetRow(
        scope_id="acct-1",
        provider="aws",
        months={"1": "100", 2: Decimal("50"), "3": "-5", "4": "abc", 13: "9"},
    )

    assert set(row.months) == set(range(1, 13))
    assert row.months[1] == Decimal("100")
    assert row.months[2] == Decimal("50")
    assert row.months[3] is None
    assert row.months[4] is None
    assert row.annual_total == Decimal("150")
    assert row.has_budget is True
    assert AccountBudgetRow(scope_id="acct-2", provider="aws").has_budget is False


def test_budget_plan_drops_invalid_month_and_amount():
    plan = BudgetPlan(scope_id="acct-1", year=2024, amount="oops", month=14)
    assert plan.amount is None
    assert plan.month is None
