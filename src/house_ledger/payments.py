"""Payment verification gate.

A payment confirmation is trusted only when its signature matches an
HMAC-SHA256 over ``"{order_id}|{external_payment_id}"`` keyed with the
provider secret. A verified confirmation succeeds its intent once and
settles the linked expense; replays are reported, never re-applied.
"""

import hashlib
import hmac
import logging
import uuid
from datetime import datetime

from .exceptions import MissingDataError
from .models import (
    PaymentIntent,
    PaymentStatus,
    ProviderOrder,
    VerificationOutcome,
    VerificationResult,
)
from .settlement import settle_stored_expense
from .store import LedgerStore

logger = logging.getLogger(__name__)


def require_order_data(
    payer: str | None, payee: str | None, expense_id: str | None, amount: int | None
) -> None:
    """
    Check order inputs before anything is sent to the payment provider.

    Raises:
        MissingDataError: Listing every missing or invalid field
    """
    missing = []
    if amount is None or amount <= 0:
        missing.append("amount")
    if not payer:
        missing.append("payer")
    if not payee:
        missing.append("payee")
    if not expense_id:
        missing.append("expense_id")

    if missing:
        raise MissingDataError(missing)


def create_payment_intent(
    order: ProviderOrder, payer: str, payee: str, expense_id: str, amount: int
) -> PaymentIntent:
    """Build a pending intent for a provider order."""
    require_order_data(payer, payee, expense_id, amount)
    return PaymentIntent(
        id=uuid.uuid4().hex,
        order_id=order.id,
        amount=amount,
        payer=payer,
        payee=payee,
        expense_id=expense_id,
    )


def compute_signature(order_id: str, external_payment_id: str, secret: str) -> str:
    """Hex HMAC-SHA256 of ``order_id|external_payment_id``."""
    message = f"{order_id}|{external_payment_id}"
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def verify(
    intent: PaymentIntent,
    external_payment_id: str,
    provided_signature: str,
    secret: str,
) -> VerificationResult:
    """
    Check a payment confirmation against an intent without changing anything.

    A bad signature is an expected input and yields ``rejected`` rather than
    raising.

    Args:
        intent: The stored payment intent
        external_payment_id: Payment id reported by the provider
        provided_signature: Signature reported by the provider
        secret: Provider secret used as the HMAC key

    Returns:
        Verification result (verified, rejected or already_processed)
    """
    if intent.status == PaymentStatus.SUCCESS:
        return VerificationResult(
            outcome=VerificationOutcome.ALREADY_PROCESSED,
            intent_id=intent.id,
            reason="payment already confirmed",
        )
    if intent.status == PaymentStatus.FAILED:
        return VerificationResult(
            outcome=VerificationOutcome.REJECTED,
            intent_id=intent.id,
            reason="payment intent has failed",
        )

    expected = compute_signature(intent.order_id, external_payment_id, secret)
    if not hmac.compare_digest(expected.encode(), (provided_signature or "").encode()):
        return VerificationResult(
            outcome=VerificationOutcome.REJECTED,
            intent_id=intent.id,
            reason="signature mismatch",
        )

    return VerificationResult(outcome=VerificationOutcome.VERIFIED, intent_id=intent.id)


class PaymentGate:
    """Ties verified payment confirmations to expense settlement."""

    def __init__(
        self,
        store: LedgerStore,
        secret: str,
        max_rejected_attempts: int | None = None,
    ):
        """
        Initialize the gate.

        Args:
            store: Store holding payment intents and expenses
            secret: Provider secret used as the HMAC key
            max_rejected_attempts: Rejections after which an intent is failed
                                   (None keeps it pending indefinitely)
        """
        self.store = store
        self.secret = secret
        self.max_rejected_attempts = max_rejected_attempts

    def confirm(
        self,
        intent_id: str,
        external_payment_id: str,
        signature: str,
        now: datetime | None = None,
    ) -> VerificationResult:
        """
        Verify a payment confirmation and apply its effects.

        Verified: the linked expense must exist, then the intent moves
        pending -> success exactly once and the expense is settled by the
        payer. A concurrent or replayed confirmation that loses the race gets
        ``already_processed``.

        Replays of a successful intent settle its expense again. Settling is
        idempotent, so this only changes anything when an earlier
        confirmation marked the intent but failed before the settle landed.

        Rejected: the rejection is counted and the intent is failed once
        ``max_rejected_attempts`` is reached.

        Raises:
            PaymentIntentNotFoundError: If the intent does not exist
            ExpenseNotFoundError: If the linked expense does not exist
                                  (the intent is left pending)
        """
        intent = self.store.get_intent(intent_id)
        result = verify(intent, external_payment_id, signature, self.secret)

        if result.outcome == VerificationOutcome.ALREADY_PROCESSED:
            logger.warning(f"Replayed confirmation for payment intent {intent_id}")
            return self._settle_linked_expense(intent, result, now)

        if result.outcome == VerificationOutcome.REJECTED:
            if intent.status == PaymentStatus.PENDING:
                self._handle_rejection(intent_id)
            logger.warning(f"Rejected payment intent {intent_id}: {result.reason}")
            return result

        if intent.expense_id:
            self.store.get(intent.expense_id)

        intent, applied = self.store.mark_intent(
            intent_id,
            PaymentStatus.SUCCESS,
            external_payment_id=external_payment_id,
            signature=signature,
        )
        if not applied:
            logger.warning(
                f"Payment intent {intent_id} was already {intent.status}, "
                f"not marking again"
            )
            if intent.status != PaymentStatus.SUCCESS:
                return VerificationResult(
                    outcome=VerificationOutcome.REJECTED,
                    intent_id=intent_id,
                    reason=f"payment intent is {intent.status}",
                )
            result = VerificationResult(
                outcome=VerificationOutcome.ALREADY_PROCESSED,
                intent_id=intent_id,
                reason="payment already confirmed",
            )
        else:
            logger.info(
                f"Payment intent {intent_id} verified (order {intent.order_id})"
            )

        return self._settle_linked_expense(intent, result, now)

    def _settle_linked_expense(
        self,
        intent: PaymentIntent,
        result: VerificationResult,
        now: datetime | None,
    ) -> VerificationResult:
        if not intent.expense_id:
            return result

        settlement = settle_stored_expense(
            self.store, intent.expense_id, actor=intent.payer, now=now
        )
        if settlement.applied and result.outcome != VerificationOutcome.VERIFIED:
            logger.warning(
                f"Completed settlement of expense {intent.expense_id} "
                f"for already confirmed payment intent {intent.id}"
            )
        return result.model_copy(
            update={
                "settlement_applied": settlement.applied,
                "expense": settlement.expense,
            }
        )

    def _handle_rejection(self, intent_id: str) -> None:
        """Count a rejected attempt and fail the intent past the limit."""
        intent = self.store.record_rejection(intent_id)
        if (
            self.max_rejected_attempts is not None
            and intent.rejected_attempts >= self.max_rejected_attempts
        ):
            _, applied = self.store.mark_intent(intent_id, PaymentStatus.FAILED)
            if applied:
                logger.warning(
                    f"Payment intent {intent_id} failed after "
                    f"{intent.rejected_attempts} rejected attempts"
                )
