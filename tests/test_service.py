"""Tests for LedgerService layer."""

from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest

from house_ledger.config import Settings
from house_ledger.db import Database
from house_ledger.exceptions import (
    ConfigurationError,
    ExpenseNotFoundError,
    ExpenseSettledError,
    MissingDataError,
    NotExpenseOwnerError,
    PaymentPendingError,
    SplitValidationError,
)
from house_ledger.models import (
    CustomShare,
    CustomSplit,
    EqualSplit,
    ExpenseCategory,
    PaymentStatus,
    ProviderOrder,
    VerificationOutcome,
)
from house_ledger.payments import compute_signature
from house_ledger.service import LedgerService


@pytest.fixture
def mock_settings(tmp_path):
    """Create test settings."""
    return Settings(
        razorpay_key_id="rzp_test_key",
        razorpay_key_secret="test_secret",
        database_path=tmp_path / "ledger" / "test.db",
        max_rejected_payment_attempts=2,
        recent_expense_limit=2,
    )


@pytest.fixture
def mock_db(mock_settings):
    """Create a temporary database."""
    db = Database(mock_settings.database_path)
    yield db
    db.close()


@pytest.fixture
def service(mock_settings, mock_db):
    """Create a LedgerService instance."""
    return LedgerService(mock_settings, mock_db)


@pytest.fixture
def rent(service):
    """A pays 300 for rent, split equally between A, B and C."""
    return service.record_expense(
        household_id="h1",
        payer="A",
        amount=30000,
        split_rule=EqualSplit(participants=["A", "B", "C"]),
        description="Rent",
        category=ExpenseCategory.RENT,
        created_at=datetime(2025, 1, 5, tzinfo=UTC),
    )


@pytest.fixture
def groceries(service):
    """A pays 100 for groceries, B owes 60 and C owes 40."""
    return service.record_expense(
        household_id="h1",
        payer="A",
        amount=10000,
        split_rule=CustomSplit(
            shares=[
                CustomShare(member="B", amount=6000),
                CustomShare(member="C", amount=4000),
            ]
        ),
        description="Groceries",
        category=ExpenseCategory.GROCERIES,
        created_at=datetime(2025, 2, 11, tzinfo=UTC),
    )


def mock_razorpay(mock_client_class, order_id: str = "order_TEST1", amount: int = 6000):
    """Wire a patched RazorpayClient class to return one order."""
    mock_client = MagicMock()
    mock_client.__enter__.return_value = mock_client
    mock_client.create_order.return_value = ProviderOrder(
        id=order_id, amount=amount, currency="INR"
    )
    mock_client_class.return_value = mock_client
    return mock_client


class TestRecordExpense:
    def test_stores_validated_expense(self, service, mock_db, rent):
        stored = mock_db.get(rent.id)

        assert stored == rent
        assert stored.settlement.state == "pending"

    def test_rejects_custom_split_with_wrong_total(self, service, mock_db):
        with pytest.raises(SplitValidationError):
            service.record_expense(
                household_id="h1",
                payer="A",
                amount=10000,
                split_rule=CustomSplit(shares=[CustomShare(member="B", amount=9000)]),
            )

        assert mock_db.list_expenses("h1") == []


class TestEditExpense:
    def test_payer_can_edit(self, service, rent):
        edited = service.edit_expense(rent.id, "A", amount=36000, description="Rent+")

        assert edited.amount == 36000
        assert edited.description == "Rent+"
        assert edited.split_rule == rent.split_rule

    def test_other_member_cannot_edit(self, service, rent):
        with pytest.raises(NotExpenseOwnerError):
            service.edit_expense(rent.id, "B", amount=1)

    def test_settled_expense_is_immutable(self, service, rent):
        service.settle_expense(rent.id, "B")

        with pytest.raises(ExpenseSettledError):
            service.edit_expense(rent.id, "A", amount=1)

    def test_edit_revalidates_split(self, service, groceries):
        with pytest.raises(SplitValidationError):
            service.edit_expense(groceries.id, "A", amount=12000)


class TestDeleteExpense:
    def test_payer_can_delete(self, service, mock_db, rent, groceries):
        service.delete_expense(rent.id, "A")

        assert [e.id for e in mock_db.list_expenses("h1")] == [groceries.id]

    def test_other_member_cannot_delete(self, service, mock_db, rent):
        with pytest.raises(NotExpenseOwnerError):
            service.delete_expense(rent.id, "B")

        assert mock_db.get(rent.id) == rent

    def test_settled_expense_cannot_be_deleted(self, service, rent):
        service.settle_expense(rent.id, "B")

        with pytest.raises(ExpenseSettledError):
            service.delete_expense(rent.id, "A")

    @patch("house_ledger.service.RazorpayClient")
    def test_pending_payment_blocks_delete(
        self, mock_client_class, service, groceries
    ):
        mock_razorpay(mock_client_class)
        service.create_payment_order("B", "A", groceries.id, 6000)

        with pytest.raises(PaymentPendingError):
            service.delete_expense(groceries.id, "A")


class TestBalanceSheet:
    def test_scenario_views(self, service, rent, groceries):
        b_view = service.balance_sheet("h1", "B")
        a_view = service.balance_sheet("h1", "A")

        assert b_view.total_owed_by_user == 16000
        assert {(line.expense_id, line.amount) for line in b_view.you_owe} == {
            (rent.id, 10000),
            (groceries.id, 6000),
        }
        assert a_view.total_owed_to_user == 30000
        assert a_view.net_balance == 30000

    def test_unreadable_row_becomes_warning(self, service, mock_db, rent):
        mock_db.conn.execute(
            """
            INSERT INTO expenses (id, household_id, payer, amount, split_rule,
                                  category, created_at)
            VALUES ('broken', 'h1', 'A', 5000, '{"kind": "equal"}', 'other', ?)
            """,
            (datetime(2025, 1, 6, tzinfo=UTC).isoformat(),),
        )
        mock_db.conn.commit()

        view = service.balance_sheet("h1", "B")

        assert view.total_owed_by_user == 10000
        assert [w.expense_id for w in view.warnings] == ["broken"]

    def test_settling_removes_expense_from_views(self, service, rent, groceries):
        before = service.balance_sheet("h1", "A").net_balance

        service.settle_expense(groceries.id, "A")

        after_a = service.balance_sheet("h1", "A")
        after_b = service.balance_sheet("h1", "B")
        assert before - 10000 == after_a.net_balance
        assert [line.expense_id for line in after_b.you_owe] == [rent.id]


class TestSettleExpense:
    def test_settle_is_idempotent(self, service, rent):
        first = service.settle_expense(rent.id, "B")
        second = service.settle_expense(rent.id, "C")

        assert first.applied is True
        assert second.applied is False
        assert second.expense.settlement.settled_by == "B"

    def test_unknown_expense(self, service):
        with pytest.raises(ExpenseNotFoundError):
            service.settle_expense("missing", "A")


class TestListing:
    def test_recent_expenses_newest_first_with_limit(self, service, rent, groceries):
        service.record_expense(
            household_id="h1",
            payer="B",
            amount=2000,
            split_rule=EqualSplit(participants=["A", "B"]),
            created_at=datetime(2025, 3, 1, tzinfo=UTC),
        )

        recent = service.recent_expenses("h1")

        assert len(recent) == 2
        assert recent[1].id == groceries.id
        assert [e.amount for e in service.recent_expenses("h1", limit=5)] == [
            2000,
            10000,
            30000,
        ]

    def test_zero_limit_returns_nothing(self, service, rent):
        assert service.recent_expenses("h1", limit=0) == []

    def test_monthly_summary(self, service, rent, groceries):
        summary = service.monthly_summary("h1", 2025)

        assert summary.months[0] == 30000
        assert summary.months[1] == 10000
        assert summary.total == 40000


class TestCreatePaymentOrder:
    @patch("house_ledger.service.RazorpayClient")
    def test_creates_order_and_pending_intent(
        self, mock_client_class, service, mock_db, groceries
    ):
        mock_client = mock_razorpay(mock_client_class)

        intent = service.create_payment_order("B", "A", groceries.id, 6000)

        mock_client_class.assert_called_once_with("rzp_test_key", "test_secret")
        mock_client.create_order.assert_called_once_with(
            amount=6000, currency="INR", receipt=f"rs_{groceries.id}"[:40]
        )
        assert intent.order_id == "order_TEST1"
        assert mock_db.get_intent(intent.id).status == PaymentStatus.PENDING

    @patch("house_ledger.service.RazorpayClient")
    def test_missing_data_never_reaches_provider(self, mock_client_class, service):
        with pytest.raises(MissingDataError):
            service.create_payment_order("B", "", "", 6000)

        mock_client_class.assert_not_called()

    @patch("house_ledger.service.RazorpayClient")
    def test_settled_expense_cannot_be_paid(
        self, mock_client_class, service, groceries
    ):
        service.settle_expense(groceries.id, "A")

        with pytest.raises(ExpenseSettledError):
            service.create_payment_order("B", "A", groceries.id, 6000)

        mock_client_class.assert_not_called()

    @patch("house_ledger.service.RazorpayClient")
    def test_missing_key_id_raises(self, mock_client_class, mock_db, groceries):
        settings = Settings(
            razorpay_key_secret="test_secret", database_path=mock_db.db_path
        )
        service = LedgerService(settings, mock_db)

        with pytest.raises(ConfigurationError):
            service.create_payment_order("B", "A", groceries.id, 6000)

        mock_client_class.assert_not_called()


class TestConfirmPayment:
    @pytest.fixture
    def intent(self, service, groceries):
        with patch("house_ledger.service.RazorpayClient") as mock_client_class:
            mock_razorpay(mock_client_class)
            return service.create_payment_order("B", "A", groceries.id, 6000)

    def test_verified_then_replayed(self, service, mock_db, intent, groceries):
        signature = compute_signature(intent.order_id, "pay_1", "test_secret")

        first = service.confirm_payment(intent.id, "pay_1", signature)
        second = service.confirm_payment(intent.id, "pay_1", signature)

        assert first.outcome == VerificationOutcome.VERIFIED
        assert first.settlement_applied is True
        assert second.outcome == VerificationOutcome.ALREADY_PROCESSED
        assert mock_db.get(groceries.id).settlement.settled_by == "B"
        assert service.balance_sheet("h1", "B").you_owe == []

    def test_rejections_fail_intent_at_configured_limit(
        self, service, mock_db, intent
    ):
        first = service.confirm_payment(intent.id, "pay_1", "forged")
        assert mock_db.get_intent(intent.id).status == PaymentStatus.PENDING

        service.confirm_payment(intent.id, "pay_1", "forged")

        assert first.outcome == VerificationOutcome.REJECTED
        assert mock_db.get_intent(intent.id).status == PaymentStatus.FAILED
