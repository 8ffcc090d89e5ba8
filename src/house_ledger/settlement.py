"""Settlement state machine for a single expense.

States are ``pending`` (initial) and ``settled`` (terminal). The only
transition is pending -> settled; settling again is a no-op and reopening
is rejected.
"""

import logging
from datetime import UTC, datetime

from .exceptions import InvalidTransitionError
from .models import Expense, Settlement, SettlementResult, SettlementState
from .store import ExpenseStore

logger = logging.getLogger(__name__)


def transition(
    expense: Expense,
    target: SettlementState,
    actor: str | None = None,
    now: datetime | None = None,
) -> Expense:
    """
    Move an expense to ``target``, returning a new record.

    Args:
        expense: Current expense record (not modified)
        target: Desired settlement state
        actor: Member performing the settlement
        now: Settlement timestamp (defaults to current UTC time)

    Returns:
        The updated expense, or the same record if already settled

    Raises:
        InvalidTransitionError: For settled -> pending or pending -> pending
    """
    current = expense.settlement.state

    if target == SettlementState.SETTLED:
        if current == SettlementState.SETTLED:
            logger.debug(f"Expense {expense.id} already settled, nothing to do")
            return expense
        return expense.model_copy(
            update={
                "settlement": Settlement(
                    state=SettlementState.SETTLED,
                    settled_at=now or datetime.now(UTC),
                    settled_by=actor,
                )
            }
        )

    raise InvalidTransitionError(expense.id, current, target)


def settle(expense: Expense, actor: str, now: datetime | None = None) -> Expense:
    """Mark an expense settled by ``actor``; idempotent on settled records."""
    return transition(expense, SettlementState.SETTLED, actor=actor, now=now)


def reopen(expense: Expense) -> Expense:
    """Settlement is irreversible, so this always raises."""
    return transition(expense, SettlementState.PENDING)


def settle_stored_expense(
    store: ExpenseStore, expense_id: str, actor: str, now: datetime | None = None
) -> SettlementResult:
    """
    Settle an expense in the store with a single conditional update.

    The store only writes if the record is still pending, so when two
    callers race exactly one of them sees ``applied=True``.

    Args:
        store: Expense store supporting atomic ``apply_settlement``
        expense_id: Expense to settle
        actor: Member performing the settlement
        now: Settlement timestamp (defaults to current UTC time)

    Returns:
        The stored expense and whether this call settled it

    Raises:
        ExpenseNotFoundError: If the expense does not exist
    """
    target = Settlement(
        state=SettlementState.SETTLED,
        settled_at=now or datetime.now(UTC),
        settled_by=actor,
    )
    expense, applied = store.apply_settlement(expense_id, target)

    if applied:
        logger.info(f"Expense {expense_id} settled by {actor}")
    else:
        logger.info(
            f"Expense {expense_id} was already settled "
            f"by {expense.settlement.settled_by} at {expense.settlement.settled_at}"
        )

    return SettlementResult(expense=expense, applied=applied)
