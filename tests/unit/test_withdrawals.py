"""Unit tests for general wallet withdrawals"""

import pytest
from decimal import Decimal
from savings_engine.domain.balance import general_wallet_balance
from savings_engine.domain.exceptions import ValidationError
from savings_engine.domain.models import EntryKind, EntryStatus, LedgerEntry
from savings_engine.domain.withdrawals import approve_withdrawal, reject_withdrawal, request_withdrawal
from factories import NOW, USER, fund_wallet


def test_pending_withdrawal_reserves_balance(store):
    fund_wallet(store, 10000)
    entry = request_withdrawal(store, USER, Decimal("4000"), NOW)

    assert entry.status == EntryStatus.PENDING
    assert general_wallet_balance(store.list_entries(USER)) == Decimal("6000.00")
    with pytest.raises(ValidationError, match="Insufficient"):
        request_withdrawal(store, USER, Decimal("7000"), NOW)


def test_reject_releases_funds(store):
    fund_wallet(store, 10000)
    entry = request_withdrawal(store, USER, Decimal("4000"), NOW)

    assert reject_withdrawal(store, entry.entry_id).status == EntryStatus.FAILED
    assert general_wallet_balance(store.list_entries(USER)) == Decimal("10000.00")


def test_approve_only_pending(store):
    fund_wallet(store, 10000)
    entry = request_withdrawal(store, USER, Decimal("4000"), NOW)

    assert approve_withdrawal(store, entry.entry_id).status == EntryStatus.COMPLETED
    assert general_wallet_balance(store.list_entries(USER)) == Decimal("6000.00")
    with pytest.raises(ValidationError):
        reject_withdrawal(store, entry.entry_id)


def test_deposit_is_not_a_withdrawal(store):
    deposit = fund_wallet(store, 10000)
    with pytest.raises(ValidationError, match="not a wallet withdrawal"):
        approve_withdrawal(store, deposit.entry_id)


def test_non_positive_amount(store):
    with pytest.raises(ValidationError):
        request_withdrawal(store, USER, Decimal("-5"), NOW)


def test_store_rechecks_wallet_when_writing(store):
    fund_wallet(store, 5000)
    request_withdrawal(store, USER, Decimal("4000"), NOW)
    late = LedgerEntry(owner_id=USER, kind=EntryKind.WITHDRAWAL, amount=Decimal("4000"), status=EntryStatus.PENDING)

    with pytest.raises(ValidationError, match="Insufficient wallet balance"):
        store.append_entries([late], spend=Decimal("4000"))
    assert general_wallet_balance(store.list_entries(USER)) == Decimal("1000.00")
