"""
LedgerStore port - the storage boundary the domain operations depend on.

Implemented by SqlLedgerStore (infrastructure/database/ledger_store.py) and by
the in-memory store used in unit tests.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from savings_engine.domain.models import (
    ActivityAction,
    EntryStatus,
    LedgerEntry,
    Loan,
    Plan,
    PlanCreditRequest,
    PlanCreditResult,
    PlanSubscription,
    Profile,
    SubscriptionChange,
    SubscriptionStatus,
)

ChangeFn = Callable[[PlanSubscription], Optional[SubscriptionChange]]


class LedgerStore(Protocol):
    """
    Every method either commits fully or raises.

    Writers that take `spend` debit the general wallet: the store re-checks,
    under a per-user lock in the same transaction, that the wallet covers
    `spend` before writing, and raises ValidationError otherwise.

    Raises:
        NotFound: unknown id
        StoreFailure: transient storage error
        ArchetypeMismatch: a loaded subscription's metadata does not fit its plan
    """

    # Ledger entries
    def list_entries(self, owner_id: str) -> List[LedgerEntry]: ...

    def list_scope_entries(self, scope: str) -> List[LedgerEntry]: ...

    def get_entry(self, entry_id: str) -> LedgerEntry: ...

    def append_entries(self, entries: Sequence[LedgerEntry], spend: Optional[Decimal] = None) -> List[LedgerEntry]: ...

    def update_entry_status(self, entry_id: str, expected: EntryStatus, new: EntryStatus) -> LedgerEntry: ...

    # Plans and subscriptions
    def get_plan(self, plan_id: str) -> Plan: ...

    def get_subscription(self, subscription_id: str) -> PlanSubscription: ...

    def list_subscriptions(
        self, user_id: str, statuses: Optional[Set[SubscriptionStatus]] = None
    ) -> List[PlanSubscription]: ...

    def create_subscription(self, subscription: PlanSubscription) -> PlanSubscription: ...

    def apply_plan_credit(self, request: PlanCreditRequest) -> PlanCreditResult: ...

    def record_standard_transfer(
        self, debit: LedgerEntry, credit: LedgerEntry, spend: Optional[Decimal] = None
    ) -> Tuple[List[LedgerEntry], Decimal]: ...

    def transition_status(
        self, subscription_id: str, expected: SubscriptionStatus, new: SubscriptionStatus
    ) -> bool: ...

    def update_subscription(
        self, subscription_id: str, change: ChangeFn
    ) -> Tuple[PlanSubscription, List[LedgerEntry]]: ...

    # Users and loans
    def get_profile(self, user_id: str) -> Profile: ...

    def list_loans(self, user_id: str) -> List[Loan]: ...

    def get_loan(self, loan_id: str) -> Loan: ...

    def save_loan(
        self, loan: Loan, entries: Iterable[LedgerEntry] = (), spend: Optional[Decimal] = None
    ) -> Tuple[Loan, List[LedgerEntry]]: ...

    # Side records
    def record_activity(
        self, user_id: str, action: ActivityAction, details: Dict[str, Any], is_public: bool = False
    ) -> None: ...

    def enqueue_reconciliation(
        self,
        user_id: str,
        subscription_id: str,
        debit_entry_id: Optional[str],
        amount: Decimal,
        reason: str,
        now: datetime,
    ) -> str: ...
