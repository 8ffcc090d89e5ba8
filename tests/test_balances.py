"""Tests for balance aggregation and monthly summaries."""

from datetime import UTC, datetime

import pytest

from house_ledger.balances import aggregate, monthly_summary
from house_ledger.models import (
    BalanceLine,
    CustomShare,
    CustomSplit,
    EqualSplit,
    Expense,
    Settlement,
    SettlementState,
)
from house_ledger.money import to_minor_units
from house_ledger.settlement import settle


def make_expense(
    id: str,
    payer: str,
    amount: str,
    split_rule: EqualSplit | CustomSplit,
    household_id: str = "h1",
    created_at: datetime | None = None,
) -> Expense:
    """Create an expense for testing, amount given in major units."""
    return Expense(
        id=id,
        household_id=household_id,
        payer=payer,
        amount=to_minor_units(amount),
        split_rule=split_rule,
        description=f"Expense {id}",
        created_at=created_at or datetime(2025, 3, 10, tzinfo=UTC),
    )


def pairs(lines: list[BalanceLine]) -> list[tuple[str, int]]:
    return [(line.counterparty, line.amount) for line in lines]


def items(lines: list[BalanceLine]) -> list[tuple[str, int, str]]:
    return [(line.counterparty, line.amount, line.expense_id) for line in lines]


@pytest.fixture
def rent():
    """A pays 300, split equally over A, B and C."""
    return make_expense("rent", "A", "300", EqualSplit(participants=["A", "B", "C"]))


@pytest.fixture
def groceries():
    """A pays 100, B owes 60 and C owes 40."""
    return make_expense(
        "groceries",
        "A",
        "100",
        CustomSplit(
            shares=[
                CustomShare(member="B", amount=6000),
                CustomShare(member="C", amount=4000),
            ]
        ),
    )


class TestAggregateScenarios:
    """Household scenarios from the ledger rules."""

    def test_debtor_view_of_equal_split(self, rent):
        view = aggregate("h1", "B", [rent])

        assert view.total_owed_by_user == 10000
        assert view.total_owed_to_user == 0
        assert view.net_balance == -10000
        assert len(view.you_owe) == 1
        line = view.you_owe[0]
        assert (line.counterparty, line.creditor, line.amount) == ("A", "A", 10000)
        assert line.expense_id == "rent"

    def test_payer_view_of_equal_split(self, rent):
        view = aggregate("h1", "A", [rent])

        assert view.total_owed_to_user == 20000
        assert view.total_owed_by_user == 0
        assert view.net_balance == 20000
        assert sorted(pairs(view.owed_to_you)) == [("B", 10000), ("C", 10000)]
        assert all(line.creditor == "A" for line in view.owed_to_you)

    def test_custom_split_debtor_view(self, groceries):
        view = aggregate("h1", "B", [groceries])

        assert view.total_owed_by_user == 6000
        assert pairs(view.you_owe) == [("A", 6000)]

    def test_settling_removes_expense_from_both_views(self, groceries):
        settled = settle(groceries, actor="B")

        b_view = aggregate("h1", "B", [settled])
        a_view = aggregate("h1", "A", [settled])

        assert b_view.you_owe == [] and b_view.total_owed_by_user == 0
        assert a_view.owed_to_you == [] and a_view.total_owed_to_user == 0

    def test_uninvolved_user_sees_nothing(self, rent):
        view = aggregate("h1", "D", [rent])

        assert view.you_owe == []
        assert view.owed_to_you == []
        assert view.net_balance == 0


class TestAggregateRules:
    """Filtering, itemization and netting behaviour."""

    def test_opposite_debts_stay_itemized(self):
        """A owes B and B owes A both appear; only totals are netted."""
        first = make_expense("e1", "B", "50", EqualSplit(participants=["A", "B"]))
        second = make_expense("e2", "A", "30", EqualSplit(participants=["A", "B"]))

        view = aggregate("h1", "A", [first, second])

        assert items(view.you_owe) == [("B", 2500, "e1")]
        assert items(view.owed_to_you) == [("B", 1500, "e2")]
        assert view.net_balance == -1000

    def test_multiple_expenses_same_counterparty_not_combined(self, rent):
        second = make_expense("water", "A", "90", EqualSplit(participants=["A", "B"]))

        view = aggregate("h1", "B", [rent, second])

        assert [line.expense_id for line in view.you_owe] == ["rent", "water"]
        assert view.total_owed_by_user == 10000 + 4500

    def test_settled_expenses_contribute_nothing(self, rent, groceries):
        settled = groceries.model_copy(
            update={"settlement": Settlement(state=SettlementState.SETTLED)}
        )

        view = aggregate("h1", "A", [rent, settled])

        assert view.total_owed_to_user == 20000
        assert {line.expense_id for line in view.owed_to_you} == {"rent"}

    def test_settling_changes_net_by_exactly_its_contribution(self, rent, groceries):
        before = aggregate("h1", "A", [rent, groceries])
        contribution = aggregate("h1", "A", [groceries]).net_balance

        after = aggregate("h1", "A", [rent, settle(groceries, actor="A")])

        assert before.net_balance - contribution == after.net_balance

    def test_other_households_are_ignored(self, rent):
        elsewhere = make_expense(
            "x", "B", "80", EqualSplit(participants=["A", "B"]), household_id="h2"
        )

        view = aggregate("h1", "A", [rent, elsewhere])

        assert view.total_owed_by_user == 0

    def test_no_float_drift_across_many_expenses(self):
        """Ten thousand thirds of 0.10 stay exact."""
        expenses = [
            make_expense(f"e{i}", "A", "0.10", EqualSplit(participants=["A", "B", "C"]))
            for i in range(10000)
        ]

        view = aggregate("h1", "A", expenses)

        # 10 paise split three ways: A keeps 4, B and C owe 3 each
        assert view.total_owed_to_user == 60000
        assert view.formatted()["total_others_owe_you"] == "600.00"


class TestAggregateDataIntegrity:
    """Malformed records are skipped and reported."""

    def test_malformed_record_skipped_with_warning(self, rent, caplog):
        broken = make_expense("broken", "A", "50", EqualSplit(participants=[]))

        view = aggregate("h1", "A", [broken, rent])

        assert view.total_owed_to_user == 20000
        assert len(view.warnings) == 1
        assert view.warnings[0].expense_id == "broken"
        assert "no participants" in view.warnings[0].reason
        assert "broken" in caplog.text

    def test_unvalidated_custom_sum_skipped(self, rent):
        broken = make_expense(
            "broken",
            "A",
            "100",
            CustomSplit(shares=[CustomShare(member="B", amount=100)]),
        )

        view = aggregate("h1", "B", [broken, rent])

        assert [line.expense_id for line in view.you_owe] == ["rent"]
        assert [w.expense_id for w in view.warnings] == ["broken"]


class TestFormatted:
    def test_formats_two_decimals(self, rent, groceries):
        view = aggregate("h1", "B", [rent, groceries])

        assert view.formatted() == {
            "total_you_owe": "160.00",
            "total_others_owe_you": "0.00",
            "net_balance": "-160.00",
        }


class TestMonthlySummary:
    def test_totals_by_month_including_settled(self, rent):
        april = make_expense(
            "april",
            "B",
            "45.50",
            EqualSplit(participants=["A", "B"]),
            created_at=datetime(2025, 4, 2, tzinfo=UTC),
        )
        last_year = make_expense(
            "old",
            "A",
            "999",
            EqualSplit(participants=["A"]),
            created_at=datetime(2024, 3, 1, tzinfo=UTC),
        )

        summary = monthly_summary("h1", 2025, [rent, settle(april, "A"), last_year])

        assert summary.months[2] == 30000
        assert summary.months[3] == 4550
        assert summary.total == 34550
        assert len(summary.months) == 12
