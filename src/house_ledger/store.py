"""Storage contracts for expenses and payment intents, plus an in-memory store."""

import threading
from typing import Protocol

from .exceptions import (
    ExpenseNotFoundError,
    ExpenseSettledError,
    InvalidTransitionError,
    PaymentIntentNotFoundError,
    PaymentPendingError,
)
from .models import (
    DataIntegrityWarning,
    Expense,
    PaymentIntent,
    PaymentStatus,
    Settlement,
    SettlementState,
)


class ExpenseStore(Protocol):
    """Durable storage of expense records."""

    def add(self, expense: Expense) -> Expense: ...

    def replace(self, expense: Expense) -> Expense: ...

    def get(self, expense_id: str) -> Expense: ...

    def list_expenses(self, household_id: str) -> list[Expense]: ...

    def list_pending(self, household_id: str) -> list[Expense]: ...

    def list_unreadable(self, household_id: str) -> list[DataIntegrityWarning]:
        """Stored records of a household that cannot be loaded as expenses."""
        ...

    def delete(self, expense_id: str) -> None:
        """
        Remove an expense unless a pending payment intent refers to it.

        Raises:
            ExpenseNotFoundError: If the expense does not exist
            PaymentPendingError: If a pending intent references the expense
        """
        ...

    def apply_settlement(
        self, expense_id: str, settlement: Settlement
    ) -> tuple[Expense, bool]:
        """
        Atomically write ``settlement`` if the stored state is still pending.

        Returns:
            Tuple of (stored expense, whether this call changed it)
        """
        ...


class PaymentIntentStore(Protocol):
    """Durable storage of payment intents."""

    def add_intent(self, intent: PaymentIntent) -> PaymentIntent: ...

    def get_intent(self, intent_id: str) -> PaymentIntent: ...

    def mark_intent(
        self,
        intent_id: str,
        status: PaymentStatus,
        external_payment_id: str | None = None,
        signature: str | None = None,
    ) -> tuple[PaymentIntent, bool]:
        """
        Atomically move a pending intent to a terminal status.

        Returns:
            Tuple of (stored intent, whether this call changed it)
        """
        ...

    def record_rejection(self, intent_id: str) -> PaymentIntent: ...


class LedgerStore(ExpenseStore, PaymentIntentStore, Protocol):
    """A store holding both expenses and payment intents."""


class InMemoryLedgerStore:
    """Thread-safe in-memory store, mainly for tests and local use."""

    def __init__(self):
        self._expenses: dict[str, Expense] = {}
        self._intents: dict[str, PaymentIntent] = {}
        self._lock = threading.Lock()

    # ========================================================================
    # Expense operations
    # ========================================================================

    def add(self, expense: Expense) -> Expense:
        with self._lock:
            if expense.id in self._expenses:
                raise ValueError(f"Expense {expense.id} already exists")
            self._expenses[expense.id] = expense.model_copy(deep=True)
        return expense

    def replace(self, expense: Expense) -> Expense:
        with self._lock:
            current = self._expenses.get(expense.id)
            if current is None:
                raise ExpenseNotFoundError(expense.id)
            if current.is_settled:
                raise ExpenseSettledError(expense.id)
            self._expenses[expense.id] = expense.model_copy(deep=True)
        return expense

    def get(self, expense_id: str) -> Expense:
        with self._lock:
            expense = self._expenses.get(expense_id)
            if expense is None:
                raise ExpenseNotFoundError(expense_id)
            return expense.model_copy(deep=True)

    def list_expenses(self, household_id: str) -> list[Expense]:
        with self._lock:
            return [
                e.model_copy(deep=True)
                for e in self._expenses.values()
                if e.household_id == household_id
            ]

    def list_pending(self, household_id: str) -> list[Expense]:
        return [e for e in self.list_expenses(household_id) if not e.is_settled]

    def list_unreadable(self, household_id: str) -> list[DataIntegrityWarning]:
        # Records are validated models on the way in
        return []

    def delete(self, expense_id: str) -> None:
        with self._lock:
            if expense_id not in self._expenses:
                raise ExpenseNotFoundError(expense_id)
            if any(
                intent.expense_id == expense_id
                and intent.status == PaymentStatus.PENDING
                for intent in self._intents.values()
            ):
                raise PaymentPendingError(expense_id)
            del self._expenses[expense_id]

    def apply_settlement(
        self, expense_id: str, settlement: Settlement
    ) -> tuple[Expense, bool]:
        with self._lock:
            current = self._expenses.get(expense_id)
            if current is None:
                raise ExpenseNotFoundError(expense_id)
            if settlement.state != SettlementState.SETTLED:
                raise InvalidTransitionError(
                    expense_id, current.settlement.state, settlement.state
                )
            if current.is_settled:
                return current.model_copy(deep=True), False

            updated = current.model_copy(update={"settlement": settlement})
            self._expenses[expense_id] = updated
            return updated.model_copy(deep=True), True

    # ========================================================================
    # Payment intent operations
    # ========================================================================

    def add_intent(self, intent: PaymentIntent) -> PaymentIntent:
        with self._lock:
            if intent.id in self._intents:
                raise ValueError(f"Payment intent {intent.id} already exists")
            self._intents[intent.id] = intent.model_copy()
        return intent

    def get_intent(self, intent_id: str) -> PaymentIntent:
        with self._lock:
            intent = self._intents.get(intent_id)
            if intent is None:
                raise PaymentIntentNotFoundError(intent_id)
            return intent.model_copy()

    def mark_intent(
        self,
        intent_id: str,
        status: PaymentStatus,
        external_payment_id: str | None = None,
        signature: str | None = None,
    ) -> tuple[PaymentIntent, bool]:
        with self._lock:
            current = self._intents.get(intent_id)
            if current is None:
                raise PaymentIntentNotFoundError(intent_id)
            if current.status != PaymentStatus.PENDING:
                return current.model_copy(), False

            updated = current.model_copy(
                update={
                    "status": status,
                    "external_payment_id": external_payment_id,
                    "signature": signature,
                }
            )
            self._intents[intent_id] = updated
            return updated.model_copy(), True

    def record_rejection(self, intent_id: str) -> PaymentIntent:
        with self._lock:
            current = self._intents.get(intent_id)
            if current is None:
                raise PaymentIntentNotFoundError(intent_id)
            updated = current.model_copy(
                update={"rejected_attempts": current.rejected_attempts + 1}
            )
            self._intents[intent_id] = updated
            return updated.model_copy()
