"""Route verified events to their reconciliation handler."""
from __future__ import annotations

import logging
from collections.abc import Callable

from app.metrics import WEBHOOK_EVENTS
from app.models.billing import WebhookEventStatus
from app.schemas.billing import ProviderEvent
from app.services.billing.errors import BillingError, StorageWriteFailed
from app.services.billing.reconciler import EntitlementReconciler, HandlerOutcome
from app.services.billing.store import BillingStore

logger = logging.getLogger(__name__)


class EventDispatcher:
    def __init__(
        self,
        store: BillingStore,
        reconciler: EntitlementReconciler,
        *,
        expected_livemode: bool | None = None,
    ) -> None:
        self.store = store
        self.reconciler = reconciler
        # None disables the check (no secret key to infer the mode from).
        self.expected_livemode = expected_livemode
        self.routes: dict[str, Callable[..., HandlerOutcome]] = {
            "checkout.session.completed": reconciler.checkout_completed,
            "customer.subscription.created": reconciler.subscription_changed,
            "customer.subscription.updated": reconciler.subscription_changed,
            "customer.subscription.deleted": reconciler.subscription_deleted,
            "invoice.payment_failed": reconciler.invoice_payment_failed,
            "invoice.paid": reconciler.invoice_paid,
        }

    def dispatch(self, event: ProviderEvent) -> bool:
        """Apply the event; return False when it was acknowledged without action.

        Handler failures roll back and propagate so the delivery is retried.
        """
        log_extra = {"event_id": event.id, "event_type": event.type}

        if self.expected_livemode is not None and event.livemode != self.expected_livemode:
            logger.warning("Ignoring event from the other provider mode", extra=log_extra)
            self._finish(event, WebhookEventStatus.ignored, error="livemode mismatch")
            return False

        handler = self.routes.get(event.type)
        if handler is None:
            logger.info("Ignoring unhandled event type", extra=log_extra)
            self._finish(event, WebhookEventStatus.ignored)
            return False

        try:
            outcome = handler(event)
        except BillingError as exc:
            self.store.rollback()
            WEBHOOK_EVENTS.labels(event.type, WebhookEventStatus.failed.value).inc()
            logger.error("Event handling failed: %s", exc.message, extra=log_extra)
            try:
                self.store.record_webhook_event(
                    event_id=event.id,
                    event_type=event.type,
                    livemode=event.livemode,
                    status=WebhookEventStatus.failed,
                    error=exc.message[:500],
                )
                self.store.commit()
            except StorageWriteFailed:
                logger.exception("Could not record failed event", extra=log_extra)
            raise

        self._finish(event, WebhookEventStatus.processed, user_id=outcome.user_id)
        logger.info(
            "Event processed",
            extra={**log_extra, "user_id": outcome.user_id},
        )
        return True

    def _finish(self, event: ProviderEvent, status: WebhookEventStatus, **fields) -> None:
        self.store.record_webhook_event(
            event_id=event.id,
            event_type=event.type,
            livemode=event.livemode,
            status=status,
            **fields,
        )
        self.store.commit()
        WEBHOOK_EVENTS.labels(event.type, status.value).inc()
