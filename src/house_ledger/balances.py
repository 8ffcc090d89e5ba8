"""Balance aggregation: fold pending expenses into a first-person balance view."""

import logging
from collections.abc import Iterable

from .exceptions import MalformedSplitError
from .models import (
    BalanceLine,
    BalanceView,
    DataIntegrityWarning,
    Expense,
    MonthlySummary,
    SettlementState,
)
from .splits import resolve

logger = logging.getLogger(__name__)


def aggregate(
    household_id: str, focal_user: str, expenses: Iterable[Expense]
) -> BalanceView:
    """
    Compute what the focal user owes and is owed across a household.

    Steps:
    1. Keep pending expenses of this household (settled ones contribute zero)
    2. Resolve each into obligations
    3. File obligations where the focal user is debtor under ``you_owe`` and
       where they are creditor under ``owed_to_you``; drop the rest
    4. Keep one line per obligation; only the totals are netted

    A record that cannot be resolved is skipped and reported in
    ``warnings`` so one bad expense never blanks the whole view.

    Args:
        household_id: Household to aggregate
        focal_user: Member the view is computed for
        expenses: Candidate expenses (other households are ignored)

    Returns:
        Balance view with totals in minor units
    """
    view = BalanceView(household_id=household_id, focal_user=focal_user)

    for expense in expenses:
        if expense.household_id != household_id:
            continue
        if expense.settlement.state != SettlementState.PENDING:
            continue

        try:
            obligations = resolve(expense)
        except MalformedSplitError as e:
            logger.warning(f"Skipping expense in balance view: {e}")
            view.warnings.append(
                DataIntegrityWarning(expense_id=expense.id, reason=e.reason)
            )
            continue

        for obligation in obligations:
            if obligation.debtor == focal_user:
                view.total_owed_by_user += obligation.amount
                view.you_owe.append(
                    BalanceLine(
                        counterparty=obligation.creditor,
                        debtor=obligation.debtor,
                        creditor=obligation.creditor,
                        amount=obligation.amount,
                        expense_id=obligation.expense_id,
                        description=expense.description,
                    )
                )
            elif obligation.creditor == focal_user:
                view.total_owed_to_user += obligation.amount
                view.owed_to_you.append(
                    BalanceLine(
                        counterparty=obligation.debtor,
                        debtor=obligation.debtor,
                        creditor=obligation.creditor,
                        amount=obligation.amount,
                        expense_id=obligation.expense_id,
                        description=expense.description,
                    )
                )

    logger.info(
        f"Balance for {focal_user} in {household_id}: "
        f"owes {view.total_owed_by_user}, owed {view.total_owed_to_user} "
        f"({len(view.warnings)} skipped)"
    )
    return view


def monthly_summary(
    household_id: str, year: int, expenses: Iterable[Expense]
) -> MonthlySummary:
    """
    Total household spending per calendar month of ``year``.

    Settled and pending expenses both count; months are taken from
    ``created_at``.
    """
    summary = MonthlySummary(household_id=household_id, year=year)
    for expense in expenses:
        if expense.household_id != household_id or expense.created_at.year != year:
            continue
        summary.months[expense.created_at.month - 1] += expense.amount
    return summary
