"""Webhook signature verification and envelope parsing."""
from __future__ import annotations

import json
import logging

import stripe
from pydantic import ValidationError

from app.schemas.billing import ProviderEvent, parse_event
from app.services.billing.errors import InvalidEventPayload, SignatureInvalid

logger = logging.getLogger(__name__)


class EventVerifier:
    def __init__(self, webhook_secret: str, *, tolerance_seconds: int = 300) -> None:
        self._webhook_secret = webhook_secret
        self._tolerance = tolerance_seconds

    def verify(self, payload: bytes, signature: str | None) -> ProviderEvent:
        """Check the signature over the exact received bytes, then parse."""
        if not self._webhook_secret:
            raise SignatureInvalid("Webhook secret is not configured")
        if not signature:
            raise SignatureInvalid("Missing Stripe-Signature header")
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SignatureInvalid("Payload is not valid UTF-8") from exc
        try:
            stripe.WebhookSignature.verify_header(
                text, signature, self._webhook_secret, self._tolerance
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("Webhook signature verification failed: %s", exc)
            raise SignatureInvalid("Invalid signature") from exc

        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise InvalidEventPayload("Invalid JSON") from exc
        if not isinstance(raw, dict):
            raise InvalidEventPayload("Event must be a JSON object")
        try:
            event = parse_event(raw)
        except ValidationError as exc:
            raise InvalidEventPayload(
                "Event payload does not match its type",
                details=exc.errors(
                    include_url=False, include_context=False, include_input=False
                ),
            ) from exc
        logger.info(
            "Verified webhook event",
            extra={"event_id": event.id, "event_type": event.type},
        )
        return event
