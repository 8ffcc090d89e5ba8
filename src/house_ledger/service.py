"""Service layer that composes the ledger engine, the store and the payment provider.

The engine modules (splits, balances, settlement, payments) stay pure or
store-agnostic; this module is where records are fetched and written back.
"""

import logging
import uuid
from datetime import UTC, datetime

from .balances import aggregate, monthly_summary
from .clients.razorpay import RazorpayClient
from .config import Settings
from .exceptions import (
    ConfigurationError,
    ExpenseSettledError,
    NotExpenseOwnerError,
)
from .models import (
    BalanceView,
    Expense,
    ExpenseCategory,
    MonthlySummary,
    PaymentIntent,
    SettlementResult,
    SplitRule,
    VerificationResult,
)
from .payments import PaymentGate, create_payment_intent, require_order_data
from .settlement import settle_stored_expense
from .splits import validate_split
from .store import LedgerStore

logger = logging.getLogger(__name__)


class LedgerService:
    """Service for recording, balancing and settling household expenses."""

    def __init__(self, settings: Settings, store: LedgerStore):
        """Initialize the ledger service."""
        self.settings = settings
        self.store = store
        self.gate = PaymentGate(
            store=store,
            secret=settings.razorpay_key_secret,
            max_rejected_attempts=settings.max_rejected_payment_attempts,
        )

    # ========================================================================
    # Expenses
    # ========================================================================

    def record_expense(
        self,
        household_id: str,
        payer: str,
        amount: int,
        split_rule: SplitRule,
        description: str = "",
        category: ExpenseCategory = ExpenseCategory.OTHER,
        created_at: datetime | None = None,
    ) -> Expense:
        """
        Validate and store a new expense.

        Args:
            household_id: Owning household
            payer: Member who fronted the cost
            amount: Cost in minor units
            split_rule: How the cost is divided
            description: Free-text description
            category: Expense category
            created_at: Creation time (defaults to now)

        Returns:
            The stored expense

        Raises:
            SplitValidationError: If the amount or split rule is invalid
        """
        validate_split(amount, split_rule)

        expense = Expense(
            id=uuid.uuid4().hex,
            household_id=household_id,
            payer=payer,
            amount=amount,
            split_rule=split_rule,
            description=description,
            category=category,
            created_at=created_at or datetime.now(UTC),
        )
        self.store.add(expense)

        logger.info(
            f"Recorded expense {expense.id} in {household_id}: "
            f"{amount} paid by {payer} ({split_rule.kind} split)"
        )
        return expense

    def edit_expense(
        self,
        expense_id: str,
        editor: str,
        amount: int | None = None,
        split_rule: SplitRule | None = None,
        description: str | None = None,
        category: ExpenseCategory | None = None,
    ) -> Expense:
        """
        Edit a pending expense. Only its payer may edit it.

        Raises:
            ExpenseNotFoundError: If the expense does not exist
            NotExpenseOwnerError: If ``editor`` is not the payer
            ExpenseSettledError: If the expense is already settled
            SplitValidationError: If the edited split is invalid
        """
        expense = self.store.get(expense_id)
        if expense.payer != editor:
            raise NotExpenseOwnerError(
                f"Only {expense.payer} may edit expense {expense_id}"
            )
        if expense.is_settled:
            raise ExpenseSettledError(expense_id)

        updates = {
            key: value
            for key, value in {
                "amount": amount,
                "split_rule": split_rule,
                "description": description,
                "category": category,
            }.items()
            if value is not None
        }
        edited = expense.model_copy(update=updates)
        validate_split(edited.amount, edited.split_rule)

        stored = self.store.replace(edited)
        logger.info(f"Edited expense {expense_id}: {sorted(updates)}")
        return stored

    def delete_expense(self, expense_id: str, actor: str) -> None:
        """
        Delete a pending expense. Only its payer may delete it.

        Raises:
            ExpenseNotFoundError: If the expense does not exist
            NotExpenseOwnerError: If ``actor`` is not the payer
            ExpenseSettledError: If the expense is already settled
            PaymentPendingError: If a pending payment refers to the expense
        """
        expense = self.store.get(expense_id)
        if expense.payer != actor:
            raise NotExpenseOwnerError(
                f"Only {expense.payer} may delete expense {expense_id}"
            )
        if expense.is_settled:
            raise ExpenseSettledError(expense_id)

        self.store.delete(expense_id)
        logger.info(f"Deleted expense {expense_id} ({actor})")

    def get_expense(self, expense_id: str) -> Expense:
        return self.store.get(expense_id)

    def recent_expenses(
        self, household_id: str, limit: int | None = None
    ) -> list[Expense]:
        """Latest expenses of a household, newest first."""
        expenses = sorted(
            self.store.list_expenses(household_id),
            key=lambda e: e.created_at,
            reverse=True,
        )
        if limit is None:
            limit = self.settings.recent_expense_limit
        return expenses[:limit]

    # ========================================================================
    # Balances
    # ========================================================================

    def balance_sheet(self, household_id: str, user_id: str) -> BalanceView:
        """Compute the balance view of ``user_id`` from pending expenses."""
        pending = self.store.list_pending(household_id)
        view = aggregate(household_id, user_id, pending)
        view.warnings.extend(self.store.list_unreadable(household_id))

        if view.warnings:
            logger.warning(
                f"{len(view.warnings)} expense(s) in {household_id} "
                f"were skipped due to data integrity problems"
            )
        return view

    def monthly_summary(
        self, household_id: str, year: int | None = None
    ) -> MonthlySummary:
        """Monthly spending totals for ``year`` (defaults to the current year)."""
        year = year or datetime.now(UTC).year
        expenses = self.store.list_expenses(household_id)
        return monthly_summary(household_id, year, expenses)

    # ========================================================================
    # Settlement
    # ========================================================================

    def settle_expense(
        self, expense_id: str, actor: str, now: datetime | None = None
    ) -> SettlementResult:
        """Mark an expense settled; safe to retry."""
        return settle_stored_expense(self.store, expense_id, actor, now)

    # ========================================================================
    # Payments
    # ========================================================================

    def create_payment_order(
        self, payer: str, payee: str, expense_id: str, amount: int
    ) -> PaymentIntent:
        """
        Create a provider order and a pending payment intent for it.

        Args:
            payer: Member sending money
            payee: Member receiving money
            expense_id: Expense the payment settles
            amount: Amount in minor units

        Returns:
            The stored pending intent

        Raises:
            MissingDataError: If any input is missing (before calling the provider)
            ExpenseNotFoundError: If the expense does not exist
            ExpenseSettledError: If the expense is already settled
            ConfigurationError: If no Razorpay key id is configured
            PaymentProviderError: If order creation fails
        """
        require_order_data(payer, payee, expense_id, amount)

        expense = self.store.get(expense_id)
        if expense.is_settled:
            raise ExpenseSettledError(expense_id)

        if not self.settings.razorpay_key_id:
            raise ConfigurationError("RAZORPAY_KEY_ID is required to create orders")

        with RazorpayClient(
            self.settings.razorpay_key_id, self.settings.razorpay_key_secret
        ) as client:
            order = client.create_order(
                amount=amount,
                currency=self.settings.currency,
                receipt=f"rs_{expense_id}"[:40],
            )

        intent = create_payment_intent(order, payer, payee, expense_id, amount)
        self.store.add_intent(intent)

        logger.info(
            f"Created payment intent {intent.id} for order {order.id}: "
            f"{payer} -> {payee}, {amount}"
        )
        return intent

    def confirm_payment(
        self,
        intent_id: str,
        external_payment_id: str,
        signature: str,
        now: datetime | None = None,
    ) -> VerificationResult:
        """Verify a provider payment confirmation and settle the linked expense."""
        return self.gate.confirm(intent_id, external_payment_id, signature, now)
