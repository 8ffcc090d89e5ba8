"""Pydantic domain models for House Ledger.

Every monetary field is an ``int`` in minor currency units.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from .money import format_minor_units


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ============================================================================
# Expense Models
# ============================================================================


class SettlementState(StrEnum):
    """Lifecycle state of an expense's settlement."""

    PENDING = "pending"
    SETTLED = "settled"


class ExpenseCategory(StrEnum):
    """Household expense categories."""

    RENT = "rent"
    UTILITIES = "utilities"
    GROCERIES = "groceries"
    INTERNET = "internet"
    CLEANING = "cleaning"
    MAINTENANCE = "maintenance"
    OTHER = "other"


class EqualSplit(BaseModel):
    """Cost divided evenly among participants (payer may or may not be one)."""

    kind: Literal["equal"] = "equal"
    participants: list[str]


class CustomShare(BaseModel):
    """One explicit per-person amount in a custom split."""

    member: str
    amount: int


class CustomSplit(BaseModel):
    """Explicit per-person amounts, in the order they were entered."""

    kind: Literal["custom"] = "custom"
    shares: list[CustomShare]


SplitRule = Annotated[EqualSplit | CustomSplit, Field(discriminator="kind")]


class Settlement(BaseModel):
    """Settlement status of a single expense."""

    state: SettlementState = SettlementState.PENDING
    settled_at: datetime | None = None
    settled_by: str | None = None


class Expense(BaseModel):
    """A shared household expense fronted by one member."""

    id: str
    household_id: str
    payer: str
    amount: int
    split_rule: SplitRule
    description: str = ""
    category: ExpenseCategory = ExpenseCategory.OTHER
    created_at: datetime = Field(default_factory=_utcnow)
    settlement: Settlement = Field(default_factory=Settlement)

    @property
    def is_settled(self) -> bool:
        """True once the expense has reached the terminal Settled state."""
        return self.settlement.state == SettlementState.SETTLED


# ============================================================================
# Derived Models (never persisted)
# ============================================================================


class Share(BaseModel):
    """What one participant owes toward an expense, payer included."""

    member: str
    amount: int


class Obligation(BaseModel):
    """debtor owes creditor ``amount`` because of ``expense_id``."""

    debtor: str
    creditor: str
    amount: int
    expense_id: str


class BalanceLine(BaseModel):
    """An itemized outstanding obligation as seen by the focal user."""

    counterparty: str
    debtor: str
    creditor: str
    amount: int
    expense_id: str
    description: str = ""


class DataIntegrityWarning(BaseModel):
    """A record skipped during aggregation because it could not be resolved."""

    expense_id: str
    reason: str


class BalanceView(BaseModel):
    """First-person summary of outstanding obligations in one household."""

    household_id: str
    focal_user: str
    total_owed_by_user: int = 0
    total_owed_to_user: int = 0
    you_owe: list[BalanceLine] = Field(default_factory=list)
    owed_to_you: list[BalanceLine] = Field(default_factory=list)
    warnings: list[DataIntegrityWarning] = Field(default_factory=list)

    @property
    def net_balance(self) -> int:
        """Positive when others owe the focal user overall."""
        return self.total_owed_to_user - self.total_owed_by_user

    def formatted(self) -> dict[str, str]:
        """Totals rendered as two-decimal strings for presentation."""
        return {
            "total_you_owe": format_minor_units(self.total_owed_by_user),
            "total_others_owe_you": format_minor_units(self.total_owed_to_user),
            "net_balance": format_minor_units(self.net_balance),
        }


class MonthlySummary(BaseModel):
    """Per-month spending totals for a household in one calendar year."""

    household_id: str
    year: int
    months: list[int] = Field(default_factory=lambda: [0] * 12)

    @property
    def total(self) -> int:
        return sum(self.months)


# ============================================================================
# Payment Models
# ============================================================================


class PaymentStatus(StrEnum):
    """Status of a payment intent."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class ProviderOrder(BaseModel):
    """An order created at the payment provider (untrusted until verified)."""

    id: str
    amount: int
    currency: str
    receipt: str | None = None


class PaymentIntent(BaseModel):
    """A real-money transfer between two members, linked to an expense."""

    id: str
    order_id: str
    amount: int
    payer: str
    payee: str
    expense_id: str | None = None
    status: PaymentStatus = PaymentStatus.PENDING
    external_payment_id: str | None = None
    signature: str | None = None
    rejected_attempts: int = 0
    created_at: datetime = Field(default_factory=_utcnow)


class VerificationOutcome(StrEnum):
    """Result of checking a payment confirmation."""

    VERIFIED = "verified"
    REJECTED = "rejected"
    ALREADY_PROCESSED = "already_processed"


class VerificationResult(BaseModel):
    """Outcome of a payment confirmation, including any settlement it caused."""

    outcome: VerificationOutcome
    intent_id: str
    reason: str | None = None
    settlement_applied: bool = False
    expense: Expense | None = None

    @property
    def verified(self) -> bool:
        return self.outcome == VerificationOutcome.VERIFIED


class SettlementResult(BaseModel):
    """Stored expense after a settle call, and whether this call settled it."""

    expense: Expense
    applied: bool
