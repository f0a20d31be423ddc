from datetime import date
from decimal import Decimal

import pytest

from spendlens.modules.billing.domain.budgets import (
    budget_rows_to_plans,
    build_budget_lookup,
    build_budget_rows_for_year,
    classify_budget_delta,
    evaluate_account_budgets,
    month_range,
    overlap_days,
    parse_budget_amount,
    parse_budget_submission,
    prorate_plan_amount,
    summarize_budget_status,
)
from spendlens.modules.billing.domain.models import (
    AccountBudgetRow,
    BudgetPlan,
    BudgetStatus,
)
from spendlens.shared.core.exceptions import BudgetValidationError


class TestClassifyBudgetDelta:
    @pytest.mark.parametrize(
        "delta, expected",
        [
            (Decimal("0.005"), BudgetStatus.ON_TARGET),
            (Decimal("-0.005"), BudgetStatus.ON_TARGET),
            (Decimal("0"), BudgetStatus.ON_TARGET),
            (Decimal("0.0051"), BudgetStatus.OVER),
            (Decimal("-0.0051"), BudgetStatus.UNDER),
            (50, BudgetStatus.OVER),
            (0.005, BudgetStatus.ON_TARGET),
        ],
    )
    def test_default_tolerance_boundaries(self, delta, expected):
        assert classify_budget_delta(delta) is expected

    def test_explicit_tolerance(self):
        assert classify_budget_delta(Decimal("3"), tolerance=5) is BudgetStatus.ON_TARGET
        assert classify_budget_delta(Decimal("0.001"), tolerance=0) is BudgetStatus.OVER


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1,200", Decimal("1200")),
        ("$99.50", Decimal("99.50")),
        (" 42 ", Decimal("42")),
        (7, Decimal("7")),
        ("", None),
        (None, None),
        ("abc", None),
        ("-5", None),
    ],
)
def test_parse_budget_amount(raw, expected):
    assert parse_budget_amount(raw) == expected


class TestPeriodArithmetic:
    def test_month_range_handles_year_end_and_leap_years(self):
        assert month_range(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
        assert month_range(2023, 12) == (date(2023, 12, 1), date(2023, 12, 31))

    def test_overlap_days_is_inclusive(self):
        assert overlap_days(date(2024, 1, 1), date(2024, 1, 31), date(2024, 1, 31), date(2024, 2, 5)) == 1
        assert overlap_days(date(2024, 1, 1), date(2024, 1, 31), date(2024, 2, 1), date(2024, 2, 5)) == 0

    def test_prorate_monthly_and_yearly_plans(self):
        april = BudgetPlan(scope_id="a", year=2024, month=4, amount=Decimal("300"))
        assert prorate_plan_amount(april, date(2024, 4, 1), date(2024, 4, 10)) == Decimal("100")
        assert prorate_plan_amount(april, date(2024, 1, 1), date(2024, 12, 31)) == Decimal("300")

        yearly = BudgetPlan(scope_id="a", year=2023, amount=Decimal("365"))
        assert prorate_plan_amount(yearly, date(2023, 1, 1), date(2023, 1, 31)) == Decimal("31")


class TestBudgetLookup:
    def test_lookup_sums_plans_per_scope_and_currency(self):
        plans = [
            BudgetPlan(scope_id="acct-1", year=2024, month=1, amount="100"),
            BudgetPlan(scope_id="acct-1", year=2024, month=2, amount="200"),
            BudgetPlan(scope_id="acct-1", year=2024, month=1, amount="50", currency="eur"),
            BudgetPlan(scope_id="acct-2", year=2024, month=3, amount="70"),
            BudgetPlan(scope_id="acct-3", year=2024, month=1, amount=None),
        ]

        lookup = build_budget_lookup(plans, "2024-01-01", "2024-02-29")

        assert lookup == {"acct-1": {"USD": Decimal("300"), "EUR": Decimal("50")}}

    def test_invalid_period_gives_empty_lookup(self):
        plans = [BudgetPlan(scope_id="acct-1", year=2024, month=1, amount="100")]
        assert build_budget_lookup(plans, "2024-02-01", "2024-01-01") == {}
        assert build_budget_lookup(plans, "not-a-date", "2024-01-31") == {}

    def test_string_month_is_a_monthly_plan(self):
        plan = BudgetPlan(scope_id="acct-1", year=2024, month="3", amount="120")

        assert plan.month == 3
        assert build_budget_lookup([plan], "2024-01-01", "2024-01-31") == {}
        assert build_budget_lookup([plan], "2024-03-01", "2024-03-31") == {
            "acct-1": {"USD": Decimal("120")}
        }

    @pytest.mark.parametrize("month", ["13", "abc", 0])
    def test_invalid_month_never_becomes_a_whole_year_plan(self, month):
        plan = BudgetPlan(scope_id="acct-1", year=2024, month=month, amount="120")

        assert plan.is_valid is False
        assert build_budget_lookup([plan], "2024-01-01", "2024-12-31") == {}

    def test_negative_plan_is_skipped(self):
        plans = [
            BudgetPlan(scope_id="acct-1", year=2024, month=1, amount="100"),
            BudgetPlan(scope_id="acct-1", year=2024, month=1, amount="-30"),
        ]

        lookup = build_budget_lookup(plans, "2024-01-01", "2024-01-31")

        assert lookup == {"acct-1": {"USD": Decimal("100")}}


class TestAccountBudgets:
    def test_over_budget_account(self, make_account):
        account = make_account("acct-1", total="150")
        lookup = build_budget_lookup(
            [BudgetPlan(scope_id="acct-1", year=2024, month=1, amount="100")],
            date(2024, 1, 1),
            date(2024, 1, 31),
        )

        [status] = evaluate_account_budgets([account], lookup)

        assert status.budget_configured is True
        assert status.budget_amount == Decimal("100")
        assert status.delta == Decimal("50")
        assert status.status is BudgetStatus.OVER

    def test_unconfigured_account_is_unset(self, make_account):
        [status] = evaluate_account_budgets([make_account("acct-1", total="10")], {})

        assert status.budget_configured is False
        assert status.delta is None
        assert status.status is BudgetStatus.UNSET

    def test_budget_in_other_currency_falls_back_to_first_configured(self, make_account):
        lookup = {"acct-1": {"EUR": Decimal("80"), "GBP": Decimal("60")}}

        [status] = evaluate_account_budgets([make_account("acct-1", total="100")], lookup)

        assert status.budget_currency == "EUR"
        assert status.budget_amount == Decimal("80")

    def test_summary_per_currency_skips_unset_and_mismatched(self, make_account):
        accounts = [
            make_account("a", total="150"),
            make_account("b", total="40"),
            make_account("c", total="20", currency="EUR"),
            make_account("d", total="999"),
            make_account("e", total="10", provider="gcp"),
        ]
        lookup = {
            "a": {"USD": Decimal("100")},
            "b": {"USD": Decimal("90")},
            "c": {"EUR": Decimal("20")},
            "e": {"JPY": Decimal("5")},
        }

        summaries = summarize_budget_status(evaluate_account_budgets(accounts, lookup))

        assert [summary.currency for summary in summaries] == ["EUR", "USD"]
        eur, usd = summaries
        assert eur.status is BudgetStatus.ON_TARGET
        assert usd.actual_amount == Decimal("190")
        assert usd.budget_amount == Decimal("190")
        assert usd.delta == Decimal("0")
        assert usd.status is BudgetStatus.ON_TARGET
        assert usd.account_count == 2

    def test_summary_provider_scope(self, make_account):
        accounts = [make_account("a", total="150"), make_account("b", provider="gcp", total="5")]
        lookup = {"a": {"USD": Decimal("100")}, "b": {"USD": Decimal("10")}}
        statuses = evaluate_account_budgets(accounts, lookup)

        [gcp] = summarize_budget_status(statuses, provider="GCP")
        assert gcp.status is BudgetStatus.UNDER
        assert gcp.account_count == 1

        [everything] = summarize_budget_status(statuses, provider="all")
        assert everything.account_count == 2

    def test_grid_row_to_status_end_to_end(self, make_account):
        row = AccountBudgetRow(scope_id="acct-1", provider="aws", months={"1": "100", "2": None})

        plans = budget_rows_to_plans([row], 2024)
        lookup = build_budget_lookup(plans, date(2024, 1, 1), date(2024, 1, 31))
        [status] = evaluate_account_budgets([make_account("acct-1", total="150")], lookup)

        assert [plan.month for plan in plans] == [1]
        assert status.budget_amount == Decimal("100")
        assert status.delta == Decimal("50")
        assert status.status is BudgetStatus.OVER


class TestBudgetGrid:
    def test_submission_parses_cells_into_monthly_plans(self):
        plans = parse_budget_submission(
            [
                {
                    "scopeId": "acct-1",
                    "provider": "AWS",
                    "currency": "usd",
                    "accountName": "Payments",
                    "months": {"1": "1,000", "2": "", "3": None, "12": "$5"},
                },
                {"scope_id": "", "months": {"1": "10"}},
            ],
            2024,
        )

        assert [(plan.month, plan.amount) for plan in plans] == [
            (1, Decimal("1000")),
            (12, Decimal("5")),
        ]
        assert plans[0].provider == "aws"
        assert plans[0].account_name == "Payments"

    def test_submission_reports_every_invalid_cell(self):
        with pytest.raises(BudgetValidationError) as exc:
            parse_budget_submission(
                [{"scope_id": "acct-1", "months": {"1": "abc", "2": "-3", "3": "10"}}],
                2024,
            )

        assert exc.value.code == "budget_validation_error"
        assert exc.value.details["error_count"] == 2
        assert "acct-1 month 1" in exc.value.errors[0]

    def test_year_grid_spreads_annual_plans_and_seeds_every_account(self, make_account):
        accounts = [
            make_account("acct-1", account_name="Payments"),
            make_account("acct-2", provider="gcp", account_id="99"),
        ]
        plans = [
            BudgetPlan(scope_id="acct-1", year=2024, month=1, amount="100"),
            BudgetPlan(scope_id="acct-1", year=2024, amount="120"),
            BudgetPlan(scope_id="acct-1", year=2023, month=1, amount="999"),
            BudgetPlan(scope_id="orphan", year=2024, month=6, amount="7", provider="aws", account_name="Legacy"),
        ]

        rows = build_budget_rows_for_year(accounts, plans, 2024)

        assert [row.scope_id for row in rows] == ["orphan", "acct-1", "acct-2"]
        payments = rows[1]
        assert payments.months[1] == Decimal("110.00")
        assert payments.months[2] == Decimal("10.00")
        assert payments.annual_total == Decimal("220.00")
        assert rows[2].account_name == "99"
        assert rows[2].has_budget is False

        aws_only = build_budget_rows_for_year(accounts, plans, 2024, provider="aws")
        assert {row.scope_id for row in aws_only} == {"acct-1", "orphan"}

    def test_grid_rows_back_to_plans(self):
        row = AccountBudgetRow(scope_id="acct-1", provider="aws", months={"3": "30", "4": "40"})

        plans = budget_rows_to_plans([row], 2024)

        assert [(plan.month, plan.amount) for plan in plans] == [(3, Decimal("30")), (4, Decimal("40"))]
        assert all(plan.year == 2024 for plan in plans)

    def test_negative_plans_do_not_touch_the_grid(self, make_account):
        plans = [
            BudgetPlan(scope_id="acct-1", year=2024, month=1, amount="100"),
            BudgetPlan(scope_id="acct-1", year=2024, month=1, amount="-30"),
            BudgetPlan(scope_id="ghost", year=2024, month=1, amount="-5"),
        ]

        [row] = build_budget_rows_for_year([make_account("acct-1")], plans, 2024)

        assert row.scope_id == "acct-1"
        assert row.months[1] == Decimal("100.00")
        assert build_budget_rows_for_year([], plans[2:], 2024) == []
