"""SQLite database operations for House Ledger."""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from pydantic import TypeAdapter

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
    SplitRule,
)

logger = logging.getLogger(__name__)

_split_rule_adapter: TypeAdapter[SplitRule] = TypeAdapter(SplitRule)

_EXPENSE_COLUMNS = """
    id, household_id, payer, amount, split_rule, description, category,
    created_at, settlement_state, settled_at, settled_by
"""

_INTENT_COLUMNS = """
    id, order_id, amount, payer, payee, expense_id, status,
    external_payment_id, signature, rejected_attempts, created_at
"""


class Database:
    """SQLite database manager implementing the expense and intent stores."""

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        # Expenses table
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS expenses (
                id TEXT PRIMARY KEY,
                household_id TEXT NOT NULL,
                payer TEXT NOT NULL,
                amount INTEGER NOT NULL,
                split_rule TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                category TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                settlement_state TEXT NOT NULL DEFAULT 'pending',
                settled_at TIMESTAMP,
                settled_by TEXT
            )
        """
        )
        cursor.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_expenses_household
            ON expenses (household_id, settlement_state)
        """
        )

        # Payment intents table
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS payment_intents (
                id TEXT PRIMARY KEY,
                order_id TEXT NOT NULL UNIQUE,
                amount INTEGER NOT NULL,
                payer TEXT NOT NULL,
                payee TEXT NOT NULL,
                expense_id TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                external_payment_id TEXT,
                signature TEXT,
                rejected_attempts INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP NOT NULL
            )
        """
        )

        self.conn.commit()

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # Expense operations
    # ========================================================================

    def add(self, expense: Expense) -> Expense:
        """Insert a new expense."""
        cursor = self.conn.cursor()
        try:
            cursor.execute(
                f"INSERT INTO expenses ({_EXPENSE_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                _expense_params(expense),
            )
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Expense {expense.id} already exists") from e
        self.conn.commit()
        return expense

    def replace(self, expense: Expense) -> Expense:
        """Overwrite an expense's editable fields while it is still pending."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            UPDATE expenses SET
                payer = ?, amount = ?, split_rule = ?, description = ?,
                category = ?
            WHERE id = ? AND settlement_state = 'pending'
            """,
            (
                expense.payer,
                expense.amount,
                _split_rule_adapter.dump_json(expense.split_rule).decode(),
                expense.description,
                expense.category.value,
                expense.id,
            ),
        )
        self.conn.commit()

        if cursor.rowcount == 0:
            # Distinguish a missing row from a settled one
            self.get(expense.id)
            raise ExpenseSettledError(expense.id)

        return self.get(expense.id)

    def get(self, expense_id: str) -> Expense:
        """Get an expense by id."""
        cursor = self.conn.cursor()
        cursor.execute(
            f"SELECT {_EXPENSE_COLUMNS} FROM expenses WHERE id = ?", (expense_id,)
        )
        row = cursor.fetchone()
        if not row:
            raise ExpenseNotFoundError(expense_id)
        return _row_to_expense(row)

    def list_expenses(self, household_id: str) -> list[Expense]:
        """Get all expenses of a household, newest first."""
        cursor = self.conn.cursor()
        cursor.execute(
            f"""
            SELECT {_EXPENSE_COLUMNS} FROM expenses
            WHERE household_id = ?
            ORDER BY created_at DESC
            """,
            (household_id,),
        )
        expenses, _ = _decode_rows(cursor.fetchall())
        return expenses

    def list_pending(self, household_id: str) -> list[Expense]:
        """Get the unsettled expenses of a household, newest first."""
        cursor = self.conn.cursor()
        cursor.execute(
            f"""
            SELECT {_EXPENSE_COLUMNS} FROM expenses
            WHERE household_id = ? AND settlement_state = 'pending'
            ORDER BY created_at DESC
            """,
            (household_id,),
        )
        expenses, _ = _decode_rows(cursor.fetchall())
        return expenses

    def list_unreadable(self, household_id: str) -> list[DataIntegrityWarning]:
        """Report stored rows of a household that no longer decode."""
        cursor = self.conn.cursor()
        cursor.execute(
            f"SELECT {_EXPENSE_COLUMNS} FROM expenses WHERE household_id = ?",
            (household_id,),
        )
        _, warnings = _decode_rows(cursor.fetchall())
        return warnings

    def delete(self, expense_id: str) -> None:
        """Delete an expense unless a pending payment intent refers to it."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            DELETE FROM expenses
            WHERE id = ? AND NOT EXISTS (
                SELECT 1 FROM payment_intents
                WHERE expense_id = ? AND status = 'pending'
            )
            """,
            (expense_id, expense_id),
        )
        self.conn.commit()

        if cursor.rowcount == 0:
            # Distinguish a missing row from a referenced one
            self.get(expense_id)
            raise PaymentPendingError(expense_id)

    def apply_settlement(
        self, expense_id: str, settlement: Settlement
    ) -> tuple[Expense, bool]:
        """Settle an expense only if it is still pending."""
        if settlement.state != SettlementState.SETTLED:
            current = self.get(expense_id)
            raise InvalidTransitionError(
                expense_id, current.settlement.state, settlement.state
            )

        cursor = self.conn.cursor()
        cursor.execute(
            """
            UPDATE expenses SET
                settlement_state = 'settled',
                settled_at = ?,
                settled_by = ?
            WHERE id = ? AND settlement_state = 'pending'
            """,
            (
                settlement.settled_at.isoformat() if settlement.settled_at else None,
                settlement.settled_by,
                expense_id,
            ),
        )
        self.conn.commit()
        applied = cursor.rowcount == 1

        return self.get(expense_id), applied

    # ========================================================================
    # Payment intent operations
    # ========================================================================

    def add_intent(self, intent: PaymentIntent) -> PaymentIntent:
        """Insert a new payment intent."""
        cursor = self.conn.cursor()
        try:
            cursor.execute(
                f"INSERT INTO payment_intents ({_INTENT_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    intent.id,
                    intent.order_id,
                    intent.amount,
                    intent.payer,
                    intent.payee,
                    intent.expense_id,
                    intent.status.value,
                    intent.external_payment_id,
                    intent.signature,
                    intent.rejected_attempts,
                    intent.created_at.isoformat(),
                ),
            )
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Payment intent {intent.id} already exists") from e
        self.conn.commit()
        return intent

    def get_intent(self, intent_id: str) -> PaymentIntent:
        """Get a payment intent by id."""
        cursor = self.conn.cursor()
        cursor.execute(
            f"SELECT {_INTENT_COLUMNS} FROM payment_intents WHERE id = ?",
            (intent_id,),
        )
        row = cursor.fetchone()
        if not row:
            raise PaymentIntentNotFoundError(intent_id)

        return PaymentIntent(
            id=row["id"],
            order_id=row["order_id"],
            amount=row["amount"],
            payer=row["payer"],
            payee=row["payee"],
            expense_id=row["expense_id"],
            status=PaymentStatus(row["status"]),
            external_payment_id=row["external_payment_id"],
            signature=row["signature"],
            rejected_attempts=row["rejected_attempts"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def mark_intent(
        self,
        intent_id: str,
        status: PaymentStatus,
        external_payment_id: str | None = None,
        signature: str | None = None,
    ) -> tuple[PaymentIntent, bool]:
        """Move a pending intent to ``status``; no-op if already terminal."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            UPDATE payment_intents SET
                status = ?,
                external_payment_id = ?,
                signature = ?
            WHERE id = ? AND status = 'pending'
            """,
            (status.value, external_payment_id, signature, intent_id),
        )
        self.conn.commit()
        applied = cursor.rowcount == 1

        return self.get_intent(intent_id), applied

    def record_rejection(self, intent_id: str) -> PaymentIntent:
        """Increment the rejected-attempt counter of an intent."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            UPDATE payment_intents
            SET rejected_attempts = rejected_attempts + 1
            WHERE id = ?
            """,
            (intent_id,),
        )
        self.conn.commit()
        return self.get_intent(intent_id)


def _expense_params(expense: Expense) -> tuple:
    settlement = expense.settlement
    return (
        expense.id,
        expense.household_id,
        expense.payer,
        expense.amount,
        _split_rule_adapter.dump_json(expense.split_rule).decode(),
        expense.description,
        expense.category.value,
        expense.created_at.isoformat(),
        settlement.state.value,
        settlement.settled_at.isoformat() if settlement.settled_at else None,
        settlement.settled_by,
    )


def _decode_rows(
    rows: list[sqlite3.Row],
) -> tuple[list[Expense], list[DataIntegrityWarning]]:
    """Decode rows, setting aside the ones that fail validation."""
    expenses = []
    warnings = []
    for row in rows:
        try:
            expenses.append(_row_to_expense(row))
        except ValueError as e:
            logger.warning(f"Skipping unreadable expense row {row['id']}: {e}")
            warnings.append(
                DataIntegrityWarning(
                    expense_id=row["id"], reason=f"unreadable record: {e}"
                )
            )
    return expenses, warnings


def _row_to_expense(row: sqlite3.Row) -> Expense:
    return Expense(
        id=row["id"],
        household_id=row["household_id"],
        payer=row["payer"],
        amount=row["amount"],
        split_rule=_split_rule_adapter.validate_json(row["split_rule"]),
        description=row["description"],
        category=row["category"],
        created_at=datetime.fromisoformat(row["created_at"]),
        settlement=Settlement(
            state=SettlementState(row["settlement_state"]),
            settled_at=(
                datetime.fromisoformat(row["settled_at"])
                if row["settled_at"]
                else None
            ),
            settled_by=row["settled_by"],
        ),
    )
