"""Periodic sweep that rewrites entitlements from the provider's current view.

Catches drift left by events that were never delivered. Each customer is
handled in its own transaction; a failure is counted and the sweep moves on.
"""
from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass

from pydantic import ValidationError

from app.metrics import RECONCILE_RUNS
from app.schemas.billing import SubscriptionObject
from app.services.billing import entitlements
from app.services.billing.entitlements import PlanTags
from app.services.billing.errors import BillingError
from app.services.billing.provider import BillingProvider
from app.services.billing.reconciler import subscription_values
from app.services.billing.store import BillingStore

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    checked: int = 0
    updated: int = 0
    downgraded: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class ReconciliationSweep:
    def __init__(
        self,
        store: BillingStore,
        provider: BillingProvider,
        plans: PlanTags | None = None,
    ) -> None:
        self.store = store
        self.provider = provider
        self.plans = plans or PlanTags()

    def run(self, limit: int | None = None) -> SweepResult:
        result = SweepResult()
        mappings = [
            (row.user_id, row.external_customer_id)
            for row in self.store.iter_customer_mappings()
        ]
        if limit is not None:
            mappings = mappings[:limit]

        for user_id, customer_id in mappings:
            result.checked += 1
            try:
                premium = self._reconcile_customer(user_id, customer_id)
            except (BillingError, ValidationError) as exc:
                self.store.rollback()
                result.failed += 1
                RECONCILE_RUNS.labels("failed").inc()
                logger.error(
                    "Reconciliation failed for customer %s: %s",
                    customer_id,
                    exc,
                    extra={"user_id": user_id},
                )
                continue
            outcome = "updated" if premium else "downgraded"
            setattr(result, outcome, getattr(result, outcome) + 1)
            RECONCILE_RUNS.labels(outcome).inc()

        logger.info("Reconciliation sweep finished: %s", result.as_dict())
        return result

    def _reconcile_customer(self, user_id, customer_id: str) -> bool:
        # The sweep observes the provider now, so it outranks any event
        # created before this point.
        observed_at = int(time.time())
        latest = self.provider.latest_subscription(customer_id)
        if latest is None:
            state = entitlements.revoked(self.plans)
        else:
            sub = SubscriptionObject.model_validate(latest)
            values = subscription_values(sub, user_id)
            self.store.upsert_subscription(values, observed_at)
            state = entitlements.for_subscription(
                self.plans,
                status=values.status,
                period_start=values.period_start,
                period_end=values.period_end,
                cancel_at_period_end=values.cancel_at_period_end,
            )
        self.store.replace_entitlement(user_id, state, observed_at)
        self.store.commit()
        return state.is_premium
