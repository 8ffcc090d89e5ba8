"""Custom exceptions for House Ledger."""


class HouseLedgerError(Exception):
    """Base exception for all House Ledger errors."""

    pass


class ConfigurationError(HouseLedgerError):
    """Raised when configuration is invalid or missing."""

    pass


class SplitValidationError(HouseLedgerError):
    """Raised when a new or edited expense has an invalid split rule."""

    pass


class MalformedSplitError(HouseLedgerError):
    """Raised when a stored expense cannot be resolved into obligations."""

    def __init__(self, expense_id: str, reason: str):
        self.expense_id = expense_id
        self.reason = reason
        super().__init__(f"Expense {expense_id} has a malformed split: {reason}")


class InvalidTransitionError(HouseLedgerError):
    """Raised when a settlement state transition is not allowed."""

    def __init__(self, expense_id: str, current: str, target: str):
        self.expense_id = expense_id
        self.current = current
        self.target = target
        super().__init__(
            f"Expense {expense_id} cannot move from '{current}' to '{target}'"
        )


class MissingDataError(HouseLedgerError):
    """Raised when a payment order is requested without required data."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing payment data: {', '.join(missing)}")


class ExpenseNotFoundError(HouseLedgerError):
    """Raised when an expense id is not in the store."""

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} not found")


class PaymentIntentNotFoundError(HouseLedgerError):
    """Raised when a payment intent id is not in the store."""

    def __init__(self, intent_id: str):
        self.intent_id = intent_id
        super().__init__(f"Payment intent {intent_id} not found")


class ExpenseSettledError(HouseLedgerError):
    """Raised when attempting to edit an expense that is already settled."""

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} is settled and can no longer change")


class PaymentPendingError(HouseLedgerError):
    """Raised when deleting an expense that a pending payment still refers to."""

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(
            f"Expense {expense_id} has a pending payment and cannot be deleted"
        )


class NotExpenseOwnerError(HouseLedgerError):
    """Raised when someone other than the payer edits an expense."""

    pass


class APIError(HouseLedgerError):
    """Base class for API-related errors."""

    pass


class PaymentProviderError(APIError):
    """Raised when the payment provider request fails."""

    pass
