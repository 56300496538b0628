"""Unit tests for deposit routing"""

import pytest
from decimal import Decimal
from savings_engine.domain.deposits import CREDITED, PENDING_REVIEW, DepositRouter
from savings_engine.domain.exceptions import NotFound, PlanCreditFailure, ValidationError
from savings_engine.domain.metadata import CircleMetadata, GoalWeeklyMetadata, MonthlyGoalMetadata
from savings_engine.domain.models import (
    ActivityAction,
    DepositChannel,
    DepositRequest,
    EntryKind,
    EntryStatus,
    PlanType,
    SubscriptionStatus,
)
from factories import NOW, USER, fund_wallet, make_plan, make_subscription


def wallet_deposit(amount, subscription_id=None, user_id=USER):
    return DepositRequest(
        user_id=user_id,
        amount=Decimal(str(amount)),
        channel=DepositChannel.WALLET,
        subscription_id=subscription_id,
    )


def sprint(store, current_week_total="0"):
    meta = GoalWeeklyMetadata(
        weeks_completed=0, current_week_total=Decimal(current_week_total), arrears_amount=Decimal("0")
    )
    return make_subscription(store, make_plan(PlanType.SPRINT), meta)


def circle(store, status=SubscriptionStatus.PENDING_ACTIVATION):
    meta = CircleMetadata(
        fixed_amount=Decimal("20000"), picking_turns=(3,), current_week=1, week_paid=False, missed_weeks=0
    )
    return make_subscription(store, make_plan(PlanType.AJO_CIRCLE), meta, status=status)


# External channel


def test_external_deposit_held_for_review(store):
    router = DepositRouter(store)
    outcome = router.deposit(
        DepositRequest(user_id=USER, amount=Decimal("5000"), channel=DepositChannel.EXTERNAL, receipt_url="https://r/1"),
        NOW,
    )

    assert outcome.status == PENDING_REVIEW
    assert outcome.entries[0].status == EntryStatus.PENDING
    assert outcome.entries[0].receipt_url == "https://r/1"
    assert router.wallet_balance(USER) == Decimal("0.00")
    assert ActivityAction.DEPOSIT in store.actions()

    router.approve_external_deposit(outcome.entries[0].entry_id)
    assert router.wallet_balance(USER) == Decimal("5000.00")


def test_external_deposit_requires_receipt(store):
    with pytest.raises(ValidationError, match="receipt"):
        DepositRouter(store).deposit(
            DepositRequest(user_id=USER, amount=Decimal("5000"), channel=DepositChannel.EXTERNAL), NOW
        )


def test_rejected_deposit_cannot_be_reviewed_again(store):
    router = DepositRouter(store)
    outcome = router.deposit(
        DepositRequest(user_id=USER, amount=Decimal("5000"), channel=DepositChannel.EXTERNAL, receipt_url="r"), NOW
    )
    entry_id = outcome.entries[0].entry_id

    assert router.reject_external_deposit(entry_id).status == EntryStatus.FAILED
    with pytest.raises(ValidationError, match="already failed"):
        router.approve_external_deposit(entry_id)
    assert router.wallet_balance(USER) == Decimal("0.00")


def test_non_positive_amount_rejected(store):
    with pytest.raises(ValidationError):
        DepositRouter(store).deposit(wallet_deposit(0), NOW)


# Wallet channel


def test_wallet_transfer_to_goal_weekly(store):
    fund_wallet(store, 5000)
    sub = sprint(store, "1200")

    outcome = DepositRouter(store).deposit(wallet_deposit(1800, sub.subscription_id), NOW)
    updated = store.get_subscription(sub.subscription_id)

    assert outcome.status == CREDITED
    assert outcome.total_deduction == Decimal("1800.00")
    assert outcome.plan_credit.message == "Week 1 goal met"
    assert updated.current_balance == Decimal("1800.00")
    assert updated.metadata.current_week_total == Decimal("3000.00")
    assert DepositRouter(store).wallet_balance(USER) == Decimal("3200.00")


def test_amount_below_mandated_rejected(store):
    fund_wallet(store, 5000)
    sub = sprint(store, "1200")

    with pytest.raises(ValidationError, match="Amount due"):
        DepositRouter(store).deposit(wallet_deposit(1000, sub.subscription_id), NOW)


def test_wallet_must_cover_amount_plus_fee(store):
    fund_wallet(store, 20000)
    sub = circle(store)

    with pytest.raises(ValidationError, match="includes ₦500.00 fee"):
        DepositRouter(store).deposit(wallet_deposit(20000, sub.subscription_id), NOW)


def test_circle_contribution_activates_membership(store):
    fund_wallet(store, 25000)
    sub = circle(store)

    outcome = DepositRouter(store).deposit(wallet_deposit(20000, sub.subscription_id), NOW)
    updated = store.get_subscription(sub.subscription_id)

    assert outcome.fee == Decimal("500.00")
    assert outcome.total_deduction == Decimal("20500.00")
    assert outcome.plan_credit.activated is True
    assert updated.status == SubscriptionStatus.ACTIVE
    assert updated.current_balance == Decimal("20000.00")
    assert DepositRouter(store).wallet_balance(USER) == Decimal("4500.00")


def test_monthly_goal_remainder_via_wallet(store):
    fund_wallet(store, 20000)
    meta = MonthlyGoalMetadata(
        months_completed=0,
        month_paid_so_far=Decimal("8000"),
        target_amount=Decimal("20000"),
        selected_duration=6,
        arrears=Decimal("0"),
    )
    sub = make_subscription(store, make_plan(PlanType.MONTHLY_BLOOM), meta, balance=8000)

    DepositRouter(store).deposit(wallet_deposit(12000, sub.subscription_id), NOW)
    updated = store.get_subscription(sub.subscription_id)

    assert updated.metadata.months_completed == 1
    assert updated.metadata.month_paid_so_far == Decimal("0.00")
    assert updated.current_balance == Decimal("20000.00")


def test_standard_plan_minimum_and_transfer(store):
    fund_wallet(store, 10000)
    sub = make_subscription(store, make_plan(PlanType.STANDARD, min_amount=Decimal("1000")))
    router = DepositRouter(store)

    with pytest.raises(ValidationError, match="Minimum deposit"):
        router.deposit(wallet_deposit(500, sub.subscription_id), NOW)

    outcome = router.deposit(wallet_deposit(2000, sub.subscription_id), NOW)
    assert outcome.plan_credit.new_balance == Decimal("2000.00")
    assert [e.kind for e in outcome.entries] == [EntryKind.TRANSFER, EntryKind.TRANSFER]
    assert router.wallet_balance(USER) == Decimal("8000.00")


def test_wallet_transfer_needs_target(store):
    fund_wallet(store, 10000)
    with pytest.raises(ValidationError, match="Select a plan"):
        DepositRouter(store).deposit(wallet_deposit(1000), NOW)


def test_insufficient_wallet_rejected(store):
    fund_wallet(store, 1000)
    sub = sprint(store)
    with pytest.raises(ValidationError, match="Insufficient wallet balance"):
        DepositRouter(store).deposit(wallet_deposit(3000, sub.subscription_id), NOW)


def test_other_users_subscription_not_found(store):
    fund_wallet(store, 10000, user_id="user_2")
    sub = sprint(store)
    with pytest.raises(NotFound):
        DepositRouter(store).deposit(wallet_deposit(3000, sub.subscription_id, user_id="user_2"), NOW)


def test_ownership_checked_before_amount_due(store):
    fund_wallet(store, 10000, user_id="user_2")
    sub = sprint(store, "1200")
    with pytest.raises(NotFound):
        DepositRouter(store).deposit(wallet_deposit(1000, sub.subscription_id, user_id="user_2"), NOW)


def test_cancelled_subscription_rejects_deposits(store):
    fund_wallet(store, 10000)
    meta = GoalWeeklyMetadata(weeks_completed=0, current_week_total=Decimal("0"), arrears_amount=Decimal("0"))
    sub = make_subscription(store, make_plan(PlanType.SPRINT), meta, status=SubscriptionStatus.CANCELLED)

    with pytest.raises(ValidationError, match="cannot receive deposits"):
        DepositRouter(store).deposit(wallet_deposit(3000, sub.subscription_id), NOW)


def test_plan_credit_failure_queued_for_reconciliation(store):
    fund_wallet(store, 10000)
    sub = sprint(store)
    store.fail_plan_credit = True

    with pytest.raises(PlanCreditFailure) as exc_info:
        DepositRouter(store).deposit(wallet_deposit(3000, sub.subscription_id), NOW)

    failure = exc_info.value
    [item] = store.reconciliation
    assert failure.reconciliation_id == item["reconciliation_id"]
    assert item["debit_entry_id"] == failure.debit_entry_id
    assert item["amount"] == Decimal("3000.00")
    assert "StoreFailure" in item["reason"]
    # The wallet debit stands until operations resolve it
    assert DepositRouter(store).wallet_balance(USER) == Decimal("7000.00")
    assert store.get_subscription(sub.subscription_id).current_balance == Decimal("0.00")
