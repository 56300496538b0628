"""
Deposit routing - validates a deposit request and dispatches it.

Two channels:
- external: bank transfer with a receipt, held as a pending wallet deposit
  until an administrator approves it
- wallet: general wallet -> plan subscription transfer
"""

import logging
from datetime import datetime
from typing import Optional

from savings_engine.domain.balance import general_wallet_balance
from savings_engine.domain.exceptions import DomainException, NotFound, PlanCreditFailure, ValidationError
from savings_engine.domain.models import (
    ActivityAction,
    DepositChannel,
    DepositOutcome,
    DepositRequest,
    EntryKind,
    EntryStatus,
    LedgerEntry,
    PlanCreditRequest,
    PlanCreditResult,
    PlanSubscription,
    PlanType,
    RuleEvaluation,
)
from savings_engine.domain.ports import LedgerStore
from savings_engine.domain.rules import rules_for
from savings_engine.utils.money import ZERO, to_money

PENDING_REVIEW = "pending_review"
CREDITED = "credited"


class DepositRouter:
    """Entry point for every deposit; stateless apart from the store it writes to"""

    def __init__(self, store: LedgerStore):
        self.store = store

    def wallet_balance(self, user_id: str):
        return general_wallet_balance(self.store.list_entries(user_id))

    def deposit(self, request: DepositRequest, now: datetime) -> DepositOutcome:
        """
        Validate and route a deposit.

        Validation order:
        1. amount positive and at least the effective minimum of the target plan
        2. wallet transfers: amount + fee within the general wallet balance
        3. wallet transfers: a target subscription is required
        4. target subscription accepts deposits; external deposits carry a receipt

        A subscription owned by someone else is reported as not found before
        any of the above, so its amounts are never revealed.

        Raises:
            ValidationError: any check above fails
            PlanCreditFailure: wallet was debited but the plan credit did not commit
        """
        amount = to_money(request.amount)
        if amount <= 0:
            raise ValidationError("Deposit amount must be greater than zero")

        subscription: Optional[PlanSubscription] = None
        evaluation: Optional[RuleEvaluation] = None
        if request.subscription_id:
            subscription = self.store.get_subscription(request.subscription_id)
            if subscription.user_id != request.user_id:
                raise NotFound(f"Subscription {subscription.subscription_id} not found")
            evaluation = rules_for(subscription.plan.type).evaluate(subscription, now, amount)
            self._check_minimum(subscription, evaluation, amount)

        fee = ZERO
        if request.channel == DepositChannel.WALLET and evaluation is not None:
            fee = to_money(evaluation.fee)
        total = amount + fee

        if request.channel == DepositChannel.WALLET:
            available = self.wallet_balance(request.user_id)
            if total > available:
                raise ValidationError(
                    f"Insufficient wallet balance: ₦{available} available, ₦{total} required"
                    + (f" (includes ₦{fee} fee)" if fee else "")
                )
            if subscription is None:
                raise ValidationError("Select a plan to transfer into")

        if subscription is not None:
            rules_for(subscription.plan.type).ensure_accepts_deposits(subscription)

        if request.channel == DepositChannel.EXTERNAL:
            if not request.receipt_url:
                raise ValidationError("External deposits require a payment receipt")
            return self._external(request, amount, subscription, now)

        periods = evaluation.periods_covered
        if subscription.plan.type == PlanType.STANDARD:
            return self._standard_transfer(request, subscription, amount, periods, now)
        return self._plan_transfer(request, subscription, amount, fee, periods, now)

    def _check_minimum(self, subscription: PlanSubscription, evaluation: RuleEvaluation, amount) -> None:
        plan = subscription.plan
        mandated = to_money(evaluation.mandated_amount)
        if mandated > 0:
            if amount < mandated:
                raise ValidationError(f"Amount due for {plan.name} is ₦{mandated}; you entered ₦{amount}")
            return
        minimum = to_money(plan.min_amount)
        if amount < minimum:
            raise ValidationError(f"Minimum deposit for {plan.name} is ₦{minimum}; you entered ₦{amount}")

    def _external(
        self, request: DepositRequest, amount, subscription: Optional[PlanSubscription], now: datetime
    ) -> DepositOutcome:
        description = "Bank transfer deposit"
        if subscription is not None:
            description = f"Bank transfer deposit for {subscription.plan.name}"

        entry = LedgerEntry(
            owner_id=request.user_id,
            kind=EntryKind.DEPOSIT,
            amount=amount,
            status=EntryStatus.PENDING,
            description=description,
            created_at=now,
            receipt_url=request.receipt_url,
        )
        saved = self.store.append_entries([entry])
        self._record_activity(request.user_id, amount, request.channel, subscription)

        return DepositOutcome(
            status=PENDING_REVIEW,
            amount=amount,
            fee=ZERO,
            total_deduction=ZERO,
            periods_covered=0,
            entries=saved,
            message="Deposit submitted and awaiting confirmation",
        )

    def _standard_transfer(
        self, request: DepositRequest, subscription: PlanSubscription, amount, periods: int, now: datetime
    ) -> DepositOutcome:
        debit = LedgerEntry(
            owner_id=request.user_id,
            kind=EntryKind.TRANSFER,
            amount=amount,
            status=EntryStatus.COMPLETED,
            description=f"Transfer to {subscription.plan.name}",
            created_at=now,
        )
        credit = LedgerEntry(
            owner_id=request.user_id,
            kind=EntryKind.TRANSFER,
            amount=amount,
            status=EntryStatus.COMPLETED,
            scope=subscription.subscription_id,
            description="Transfer from wallet",
            created_at=now,
        )
        entries, new_balance = self.store.record_standard_transfer(debit, credit, spend=amount)
        self._record_activity(request.user_id, amount, request.channel, subscription)

        message = f"₦{amount} saved to {subscription.plan.name}"
        return DepositOutcome(
            status=CREDITED,
            amount=amount,
            fee=ZERO,
            total_deduction=amount,
            periods_covered=periods,
            entries=entries,
            plan_credit=PlanCreditResult(
                subscription_id=subscription.subscription_id,
                credited_amount=amount,
                unit=rules_for(PlanType.STANDARD).unit,
                units_satisfied=0,
                penalty_cleared=ZERO,
                new_balance=new_balance,
                activated=False,
                message=message,
            ),
            message=message,
        )

    def _plan_transfer(
        self, request: DepositRequest, subscription: PlanSubscription, amount, fee, periods: int, now: datetime
    ) -> DepositOutcome:
        total = amount + fee
        debit = LedgerEntry(
            owner_id=request.user_id,
            kind=EntryKind.TRANSFER,
            amount=amount,
            fee=fee,
            status=EntryStatus.COMPLETED,
            description=f"Transfer to {subscription.plan.name}",
            created_at=now,
        )
        [saved_debit] = self.store.append_entries([debit], spend=total)

        try:
            result = self.store.apply_plan_credit(
                PlanCreditRequest(
                    user_id=request.user_id,
                    subscription_id=subscription.subscription_id,
                    amount=total,
                    fee=fee,
                    now=now,
                )
            )
        except DomainException as e:
            reason = f"{type(e).__name__}: {e}"
            reconciliation_id = self.store.enqueue_reconciliation(
                user_id=request.user_id,
                subscription_id=subscription.subscription_id,
                debit_entry_id=saved_debit.entry_id,
                amount=total,
                reason=reason,
                now=now,
            )
            logging.error(
                "Plan credit failed after wallet debit",
                extra={
                    "user_id": request.user_id,
                    "subscription_id": subscription.subscription_id,
                    "debit_entry_id": saved_debit.entry_id,
                    "reconciliation_id": reconciliation_id,
                },
            )
            raise PlanCreditFailure(
                f"₦{total} was debited from your wallet but {subscription.plan.name} was not credited; "
                "the transfer has been queued for reconciliation",
                subscription_id=subscription.subscription_id,
                debit_entry_id=saved_debit.entry_id,
                amount=total,
                reconciliation_id=reconciliation_id,
            ) from e

        self._record_activity(request.user_id, amount, request.channel, subscription)

        return DepositOutcome(
            status=CREDITED,
            amount=amount,
            fee=fee,
            total_deduction=total,
            periods_covered=periods,
            entries=[saved_debit],
            plan_credit=result,
            message=result.message,
        )

    def _record_activity(self, user_id: str, amount, channel: DepositChannel, subscription) -> None:
        details = {"amount": str(amount), "channel": channel.value}
        if subscription is not None:
            details["subscription_id"] = subscription.subscription_id
            details["plan"] = subscription.plan.name
        self.store.record_activity(user_id, ActivityAction.DEPOSIT, details, is_public=True)

    # Manual review of external deposits

    def approve_external_deposit(self, entry_id: str) -> LedgerEntry:
        self._pending_external(entry_id)
        return self.store.update_entry_status(entry_id, EntryStatus.PENDING, EntryStatus.COMPLETED)

    def reject_external_deposit(self, entry_id: str) -> LedgerEntry:
        self._pending_external(entry_id)
        return self.store.update_entry_status(entry_id, EntryStatus.PENDING, EntryStatus.FAILED)

    def _pending_external(self, entry_id: str) -> LedgerEntry:
        entry = self.store.get_entry(entry_id)
        if entry.kind != EntryKind.DEPOSIT or entry.scope is not None:
            raise ValidationError(f"Entry {entry_id} is not an external deposit")
        if entry.status != EntryStatus.PENDING:
            raise ValidationError(f"Deposit {entry_id} is already {entry.status.value}")
        return entry
