"""Unit tests for ledger balance projection"""

import logging
from decimal import Decimal
from savings_engine.domain.balance import calculate_balance, general_wallet_balance, standard_plan_balance
from savings_engine.domain.models import EntryKind, EntryStatus, LedgerEntry


def entry(kind, amount, status=EntryStatus.COMPLETED, scope=None, fee=0):
    return LedgerEntry(
        owner_id="user_1",
        kind=kind,
        amount=Decimal(str(amount)),
        fee=Decimal(str(fee)),
        status=status,
        scope=scope,
    )


def test_credits_minus_debits_in_wallet_scope():
    entries = [
        entry(EntryKind.DEPOSIT, 10000),
        entry(EntryKind.LOAN_DISBURSEMENT, 5000),
        entry(EntryKind.WITHDRAWAL, 2000),
        entry(EntryKind.LOAN_REPAYMENT, 1000),
        entry(EntryKind.SERVICE_CHARGE, 100),
    ]
    assert general_wallet_balance(entries) == Decimal("11900.00")


def test_balance_is_order_independent():
    entries = [
        entry(EntryKind.DEPOSIT, 10000),
        entry(EntryKind.TRANSFER, 3000, fee=200),
        entry(EntryKind.WITHDRAWAL, 1500, status=EntryStatus.PENDING),
        entry(EntryKind.TRANSFER, 3200, scope="sub_1", fee=200),
    ]
    assert calculate_balance(entries) == calculate_balance(list(reversed(entries)))
    assert calculate_balance(entries, scope="sub_1") == calculate_balance(list(reversed(entries)), scope="sub_1")


def test_transfer_direction_depends_on_scope():
    """Leaving the wallet costs amount + fee; arriving at the plan adds amount - fee"""
    entries = [
        entry(EntryKind.DEPOSIT, 10000),
        entry(EntryKind.TRANSFER, 3000, fee=200),
        entry(EntryKind.TRANSFER, 3200, scope="sub_1", fee=200),
    ]
    assert calculate_balance(entries) == Decimal("6800.00")
    assert calculate_balance(entries, scope="sub_1") == Decimal("3000.00")


def test_pending_deposit_not_spendable():
    entries = [entry(EntryKind.DEPOSIT, 5000, status=EntryStatus.PENDING)]
    assert general_wallet_balance(entries) == Decimal("0.00")


def test_pending_withdrawal_reserves_funds():
    entries = [
        entry(EntryKind.DEPOSIT, 5000),
        entry(EntryKind.WITHDRAWAL, 2000, status=EntryStatus.PENDING),
    ]
    assert general_wallet_balance(entries) == Decimal("3000.00")


def test_failed_entries_never_count():
    entries = [
        entry(EntryKind.DEPOSIT, 5000),
        entry(EntryKind.DEPOSIT, 9000, status=EntryStatus.FAILED),
        entry(EntryKind.WITHDRAWAL, 2000, status=EntryStatus.FAILED),
    ]
    assert general_wallet_balance(entries) == Decimal("5000.00")


def test_pending_transfer_ignored():
    entries = [
        entry(EntryKind.DEPOSIT, 5000),
        entry(EntryKind.TRANSFER, 2000, status=EntryStatus.PENDING),
    ]
    assert general_wallet_balance(entries) == Decimal("5000.00")


def test_status_filter_replaces_default_rule():
    entries = [
        entry(EntryKind.DEPOSIT, 5000),
        entry(EntryKind.DEPOSIT, 700, status=EntryStatus.PENDING),
        entry(EntryKind.WITHDRAWAL, 200, status=EntryStatus.PENDING),
    ]
    assert calculate_balance(entries, status_filter={EntryStatus.PENDING}) == Decimal("500.00")


def test_other_scopes_excluded():
    entries = [
        entry(EntryKind.DEPOSIT, 5000),
        entry(EntryKind.TRANSFER, 1000, scope="sub_2"),
    ]
    assert calculate_balance(entries, scope="sub_1") == Decimal("0.00")
    assert general_wallet_balance(entries) == Decimal("5000.00")


def test_standard_plan_balance_flat_sum(caplog):
    """Standard plan balances sum amount - fee without sign inversion, and warn on debit kinds"""
    entries = [
        entry(EntryKind.TRANSFER, 4000, scope="sub_1"),
        entry(EntryKind.WITHDRAWAL, 1000, scope="sub_1"),
        entry(EntryKind.TRANSFER, 9000, scope="sub_1", status=EntryStatus.PENDING),
    ]
    with caplog.at_level(logging.WARNING):
        balance = standard_plan_balance(entries, "sub_1")

    assert balance == Decimal("5000.00")
    assert "Debit entry summed as credit" in caplog.text
