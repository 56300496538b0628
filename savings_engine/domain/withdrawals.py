"""General wallet withdrawals to the user's bank account, approved manually"""

from datetime import datetime

from savings_engine.domain.balance import general_wallet_balance
from savings_engine.domain.exceptions import ValidationError
from savings_engine.domain.models import ActivityAction, EntryKind, EntryStatus, LedgerEntry
from savings_engine.domain.ports import LedgerStore
from savings_engine.utils.money import to_money


def request_withdrawal(store: LedgerStore, user_id: str, amount, now: datetime) -> LedgerEntry:
    """
    Create a pending wallet withdrawal.

    A pending withdrawal already counts against the wallet balance, so the
    funds cannot be transferred or withdrawn twice while it awaits review.
    """
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("Withdrawal amount must be greater than zero")

    available = general_wallet_balance(store.list_entries(user_id))
    if amount > available:
        raise ValidationError(f"Insufficient wallet balance: ₦{available} available")

    [entry] = store.append_entries(
        [
            LedgerEntry(
                owner_id=user_id,
                kind=EntryKind.WITHDRAWAL,
                amount=amount,
                status=EntryStatus.PENDING,
                description="Withdrawal to bank account",
                created_at=now,
            )
        ],
        spend=amount,
    )
    store.record_activity(user_id, ActivityAction.WITHDRAWAL, {"amount": str(amount), "entry_id": entry.entry_id})
    return entry


def _pending_withdrawal(store: LedgerStore, entry_id: str) -> LedgerEntry:
    entry = store.get_entry(entry_id)
    if entry.kind != EntryKind.WITHDRAWAL or entry.scope is not None:
        raise ValidationError(f"Entry {entry_id} is not a wallet withdrawal")
    return entry


def approve_withdrawal(store: LedgerStore, entry_id: str) -> LedgerEntry:
    _pending_withdrawal(store, entry_id)
    return store.update_entry_status(entry_id, EntryStatus.PENDING, EntryStatus.COMPLETED)


def reject_withdrawal(store: LedgerStore, entry_id: str) -> LedgerEntry:
    """Failed withdrawals stop counting, which releases the reserved funds"""
    _pending_withdrawal(store, entry_id)
    return store.update_entry_status(entry_id, EntryStatus.PENDING, EntryStatus.FAILED)
