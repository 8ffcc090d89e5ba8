"""Split resolution: turn one expense into per-member shares and obligations."""

import logging

from .exceptions import MalformedSplitError, SplitValidationError
from .models import CustomSplit, EqualSplit, Expense, Obligation, Share, SplitRule

logger = logging.getLogger(__name__)


def validate_split(amount: int, split_rule: SplitRule) -> None:
    """
    Validate a split rule when an expense is created or edited.

    This is the only place custom share totals are checked; stored records
    are trusted afterwards.

    Args:
        amount: Expense amount in minor units
        split_rule: The split rule to check

    Raises:
        SplitValidationError: If the amount or split rule is invalid
    """
    if amount <= 0:
        raise SplitValidationError(f"Expense amount must be positive, got {amount}")

    if isinstance(split_rule, EqualSplit):
        if not split_rule.participants:
            raise SplitValidationError("Equal split needs at least one participant")
        return

    if not split_rule.shares:
        raise SplitValidationError("Custom split needs at least one share")

    seen: set[str] = set()
    for share in split_rule.shares:
        if share.amount <= 0:
            raise SplitValidationError(
                f"Custom share for {share.member} must be positive, got {share.amount}"
            )
        if share.member in seen:
            raise SplitValidationError(
                f"Member {share.member} appears more than once in custom split"
            )
        seen.add(share.member)

    total = sum(share.amount for share in split_rule.shares)
    if total != amount:
        raise SplitValidationError(
            f"Custom split total ({total}) must equal expense amount ({amount})"
        )


def split_equally(amount: int, participants: list[str]) -> list[Share]:
    """
    Divide an amount evenly, handing out the remainder one minor unit at a time.

    Participants are deduplicated and ordered by member id so the same
    set always produces the same shares. The first ``amount % n`` members
    receive one extra unit, so shares sum exactly to ``amount``.

    Args:
        amount: Amount in minor units
        participants: Member ids to split between

    Returns:
        One share per distinct participant
    """
    members = sorted(set(participants))
    if not members:
        raise ValueError("Cannot split between zero participants")

    base, remainder = divmod(amount, len(members))
    shares = [
        Share(member=member, amount=base + (1 if i < remainder else 0))
        for i, member in enumerate(members)
    ]

    assert sum(s.amount for s in shares) == amount, "Equal split leaked a remainder"
    return shares


def split_shares(expense: Expense) -> list[Share]:
    """
    Compute every participant's owed share of an expense, payer included.

    Args:
        expense: The expense to split

    Returns:
        Shares summing exactly to ``expense.amount``

    Raises:
        MalformedSplitError: If the stored record cannot be split
    """
    if expense.amount <= 0:
        raise MalformedSplitError(expense.id, f"non-positive amount {expense.amount}")

    rule = expense.split_rule
    if isinstance(rule, EqualSplit):
        if not rule.participants:
            raise MalformedSplitError(expense.id, "equal split has no participants")
        return split_equally(expense.amount, rule.participants)

    assert isinstance(rule, CustomSplit)
    total = sum(share.amount for share in rule.shares)
    if total != expense.amount:
        raise MalformedSplitError(
            expense.id,
            f"custom shares sum to {total}, expense amount is {expense.amount}",
        )
    if any(share.amount <= 0 for share in rule.shares):
        raise MalformedSplitError(expense.id, "custom split has a non-positive share")

    return [Share(member=s.member, amount=s.amount) for s in rule.shares]


def resolve(expense: Expense) -> list[Obligation]:
    """
    Resolve an expense into obligations owed to its payer.

    Settlement state is ignored here; callers decide whether settled
    expenses count.

    Args:
        expense: The expense to resolve

    Returns:
        One obligation per non-payer share

    Raises:
        MalformedSplitError: If the stored record cannot be split
    """
    obligations = [
        Obligation(
            debtor=share.member,
            creditor=expense.payer,
            amount=share.amount,
            expense_id=expense.id,
        )
        for share in split_shares(expense)
        if share.member != expense.payer
    ]

    logger.debug(f"Resolved expense {expense.id} into {len(obligations)} obligations")
    return obligations
