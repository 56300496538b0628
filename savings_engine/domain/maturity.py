"""Maturity monitor - moves active subscriptions to matured once their rule says so"""

import logging
from datetime import datetime
from typing import List

from savings_engine.domain.models import ActivityAction, MaturityTransition, SubscriptionStatus
from savings_engine.domain.ports import LedgerStore
from savings_engine.domain.rules import rules_for


class MaturityMonitor:
    """
    Opportunistic re-evaluation, run whenever a user's subscriptions are listed.

    The status change is a conditional update (active -> matured). Only the
    call whose update actually changed the row records the activity and
    returns the transition, so repeated or concurrent refreshes are harmless.
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    def refresh(self, user_id: str, now: datetime) -> List[MaturityTransition]:
        transitions = []
        for subscription in self.store.list_subscriptions(user_id, {SubscriptionStatus.ACTIVE}):
            verdict = rules_for(subscription.plan.type).maturity(subscription, now)
            if not verdict.matured:
                continue

            changed = self.store.transition_status(
                subscription.subscription_id, SubscriptionStatus.ACTIVE, SubscriptionStatus.MATURED
            )
            if not changed:
                logging.debug(
                    "Maturity already recorded",
                    extra={"subscription_id": subscription.subscription_id},
                )
                continue

            self.store.record_activity(
                user_id,
                ActivityAction.PLAN_MATURED,
                {
                    "subscription_id": subscription.subscription_id,
                    "plan": subscription.plan.name,
                    "units_done": verdict.units_done,
                    "unit": verdict.unit,
                },
            )
            transitions.append(
                MaturityTransition(
                    subscription_id=subscription.subscription_id,
                    plan_type=subscription.plan.type,
                    from_status=SubscriptionStatus.ACTIVE,
                    to_status=SubscriptionStatus.MATURED,
                )
            )
        return transitions
