"""Fold verified provider events into subscription and entitlement state.

Each handler resolves the user, writes its rows and commits once. Any
failure rolls the whole event back and propagates, so the provider
redelivers it; a half-applied event is never reported as handled.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from app.models.billing import SubscriptionStatus
from app.schemas.billing import (
    CheckoutCompletedEvent,
    InvoiceEvent,
    SubscriptionEvent,
    SubscriptionObject,
    from_timestamp,
)
from app.services.billing import entitlements
from app.services.billing.entitlements import PlanTags
from app.services.billing.identity import IdentityResolver, ResolvedIdentity
from app.services.billing.provider import BillingProvider
from app.services.billing.store import BillingStore, SubscriptionValues

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandlerOutcome:
    user_id: uuid.UUID
    entitlement_applied: bool


def subscription_values(
    sub: SubscriptionObject,
    user_id: uuid.UUID,
    *,
    status: SubscriptionStatus | None = None,
    canceled_at: datetime | None = None,
) -> SubscriptionValues:
    return SubscriptionValues(
        external_subscription_id=sub.id,
        user_id=user_id,
        external_customer_id=sub.customer,
        price_id=sub.price_id,
        status=status or sub.status,
        period_start=sub.period_start(),
        period_end=sub.period_end(),
        cancel_at_period_end=sub.cancel_at_period_end,
        canceled_at=canceled_at or from_timestamp(sub.canceled_at),
    )


class EntitlementReconciler:
    def __init__(
        self,
        store: BillingStore,
        resolver: IdentityResolver | None = None,
        plans: PlanTags | None = None,
        provider: BillingProvider | None = None,
    ) -> None:
        self.store = store
        self.resolver = resolver or IdentityResolver(store, provider=provider)
        self.plans = plans or PlanTags()

    # ── checkout.session.completed ───────────────────────

    def checkout_completed(self, event: CheckoutCompletedEvent) -> HandlerOutcome:
        session = event.data.object
        identity = self.resolver.resolve(
            customer_id=session.customer,
            correlation_id=session.client_reference_id,
            metadata=session.metadata,
            email=session.email,
        )
        user_id = identity.user_id
        self.store.touch_profile(user_id, free_plan=self.plans.free)
        self._remember_customer(identity, session.customer)

        expires_at = None
        if session.subscription:
            known = self.store.get_subscription(session.subscription)
            if known is not None:
                expires_at = known.period_end

        state = entitlements.granted(
            self.plans, started_at=datetime.now(UTC), expires_at=expires_at
        )
        applied = self.store.replace_entitlement(user_id, state, event.created)
        self.store.commit()
        return HandlerOutcome(user_id, applied)

    # ── customer.subscription.created / updated ──────────

    def subscription_changed(self, event: SubscriptionEvent) -> HandlerOutcome:
        sub = event.data.object
        identity = self.resolver.resolve(
            customer_id=sub.customer, metadata=sub.metadata, fetch_customer_email=True
        )
        user_id = identity.user_id
        self._remember_customer(identity, sub.customer)

        values = subscription_values(sub, user_id)
        self.store.upsert_subscription(values, event.created)
        state = entitlements.for_subscription(
            self.plans,
            status=values.status,
            period_start=values.period_start,
            period_end=values.period_end,
            cancel_at_period_end=values.cancel_at_period_end,
        )
        applied = self.store.replace_entitlement(user_id, state, event.created)
        self.store.commit()
        logger.info(
            "Subscription %s is %s",
            sub.id,
            values.status.value,
            extra={"user_id": user_id, "subscription_id": sub.id},
        )
        return HandlerOutcome(user_id, applied)

    # ── customer.subscription.deleted ────────────────────

    def subscription_deleted(self, event: SubscriptionEvent) -> HandlerOutcome:
        sub = event.data.object
        identity = self.resolver.resolve(
            customer_id=sub.customer, metadata=sub.metadata, fetch_customer_email=True
        )
        user_id = identity.user_id

        values = subscription_values(
            sub,
            user_id,
            status=SubscriptionStatus.canceled,
            canceled_at=datetime.now(UTC),
        )
        self.store.upsert_subscription(values, event.created)
        applied = self.store.replace_entitlement(
            user_id, entitlements.revoked(self.plans), event.created
        )
        self.store.commit()
        logger.info(
            "Subscription %s canceled",
            sub.id,
            extra={"user_id": user_id, "subscription_id": sub.id},
        )
        return HandlerOutcome(user_id, applied)

    # ── invoice.payment_failed / invoice.paid ────────────

    def _resolve_invoice(self, event: InvoiceEvent) -> ResolvedIdentity:
        invoice = event.data.object
        related = invoice.related_subscription
        return self.resolver.resolve(
            customer_id=invoice.customer,
            metadata=invoice.metadata,
            related_metadata=related.metadata if related else None,
            email=invoice.customer_email,
            fetch_customer_email=True,
        )

    def invoice_payment_failed(self, event: InvoiceEvent) -> HandlerOutcome:
        user_id = self._resolve_invoice(event).user_id
        applied = self.store.replace_entitlement(
            user_id, entitlements.revoked(self.plans), event.created
        )
        self.store.commit()
        logger.warning(
            "Renewal payment failed; entitlement revoked",
            extra={"user_id": user_id, "subscription_id": event.data.object.subscription_id},
        )
        return HandlerOutcome(user_id, applied)

    def invoice_paid(self, event: InvoiceEvent) -> HandlerOutcome:
        invoice = event.data.object
        user_id = self._resolve_invoice(event).user_id
        state = entitlements.granted(
            self.plans,
            started_at=datetime.now(UTC),
            expires_at=invoice.billed_period_end(),
        )
        applied = self.store.replace_entitlement(user_id, state, event.created)
        self.store.commit()
        return HandlerOutcome(user_id, applied)

    # ── helpers ──────────────────────────────────────────

    def _remember_customer(self, identity: ResolvedIdentity, customer_id: str | None) -> None:
        """Record the customer for users found without a mapping (write-if-absent)."""
        if not customer_id or self.store.has_current_mapping(identity.user_id):
            return
        self.store.save_customer_mapping(
            identity.user_id, customer_id, overwrite=False, commit=False
        )
