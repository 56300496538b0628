"""
Balance projection - folds ledger entries into a signed balance.

No stored balance is authoritative; everything here is recomputed from entries.
"""

import logging
from decimal import Decimal
from typing import Iterable, Optional, Set

from savings_engine.domain.models import EntryKind, EntryStatus, LedgerEntry
from savings_engine.utils.money import ZERO, to_money

CREDIT_KINDS = {EntryKind.DEPOSIT, EntryKind.LOAN_DISBURSEMENT}
DEBIT_KINDS = {EntryKind.WITHDRAWAL, EntryKind.LOAN_REPAYMENT, EntryKind.SERVICE_CHARGE}

# A pending debit reserves funds immediately; a pending credit is not spendable yet
CREDIT_STATUSES = {EntryStatus.COMPLETED}
DEBIT_STATUSES = {EntryStatus.COMPLETED, EntryStatus.PENDING}
TRANSFER_STATUSES = {EntryStatus.COMPLETED}


def is_credit(entry: LedgerEntry) -> bool:
    """
    Direction of an entry relative to its own scope.

    Transfers are directional by scope: at the general wallet (scope None) a
    transfer is money leaving for a plan, at a subscription scope it is money
    arriving from the wallet.
    """
    if entry.kind == EntryKind.TRANSFER:
        return entry.scope is not None
    return entry.kind in CREDIT_KINDS


def signed_effect(entry: LedgerEntry) -> Decimal:
    """Credits add amount - fee, debits subtract amount + fee"""
    amount = to_money(entry.amount)
    fee = to_money(entry.fee)
    if is_credit(entry):
        return amount - fee
    return -(amount + fee)


def counts_toward_balance(entry: LedgerEntry, status_filter: Optional[Set[EntryStatus]] = None) -> bool:
    if status_filter is not None:
        return entry.status in status_filter
    if entry.kind == EntryKind.TRANSFER:
        return entry.status in TRANSFER_STATUSES
    if is_credit(entry):
        return entry.status in CREDIT_STATUSES
    return entry.status in DEBIT_STATUSES


def calculate_balance(
    entries: Iterable[LedgerEntry],
    scope: Optional[str] = None,
    status_filter: Optional[Set[EntryStatus]] = None,
) -> Decimal:
    """
    Balance of one scope (None = general wallet, else a subscription id).

    Default status rule is asymmetric by kind:
    - deposits / loan disbursements / incoming transfers count when COMPLETED
    - withdrawals / repayments / service charges count when PENDING or COMPLETED
    - transfers (either direction) count when COMPLETED
    - FAILED entries never count

    Passing status_filter replaces that rule with a single status predicate.
    Result does not depend on entry order.
    """
    total = ZERO
    for entry in entries:
        if entry.scope != scope:
            continue
        if not counts_toward_balance(entry, status_filter):
            continue
        total += signed_effect(entry)
    return total


def general_wallet_balance(entries: Iterable[LedgerEntry]) -> Decimal:
    return calculate_balance(entries, scope=None)


def standard_plan_balance(entries: Iterable[LedgerEntry], scope: str) -> Decimal:
    """
    Balance of a standard (no cycle metadata) subscription.

    Flat sum of amount - fee over every COMPLETED entry of the scope, with no
    sign inversion by kind. This matches how standard plan balances have always
    been persisted and assumes every entry against such a subscription is
    additive; debit-kind entries are summed as-is and reported.
    """
    total = ZERO
    for entry in entries:
        if entry.scope != scope or entry.status != EntryStatus.COMPLETED:
            continue
        if not is_credit(entry):
            logging.warning(
                "Debit entry summed as credit in standard plan balance",
                extra={"subscription_id": scope, "entry_id": entry.entry_id, "kind": entry.kind.value},
            )
        total += to_money(entry.amount) - to_money(entry.fee)
    return total
