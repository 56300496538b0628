"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Request violates a plan or wallet rule; surfaced to the caller as-is"""

    pass


class NotFound(DomainException):
    """Subscription, loan or ledger entry does not exist"""

    pass


class StoreFailure(DomainException):
    """Transient storage error, safe for the caller to retry"""

    pass


class ArchetypeMismatch(DomainException):
    """Stored cycle metadata does not match the plan type (data-integrity bug)"""

    pass


class PlanCreditFailure(DomainException):
    """Wallet was debited but the plan-credit operation did not commit"""

    def __init__(
        self,
        message: str,
        subscription_id: str,
        debit_entry_id: str | None,
        amount,
        reconciliation_id: str | None = None,
    ):
        super().__init__(message)
        self.subscription_id = subscription_id
        self.debit_entry_id = debit_entry_id
        self.amount = amount
        self.reconciliation_id = reconciliation_id
