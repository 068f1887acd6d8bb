"""Stripe webhook endpoint."""

from fastapi import APIRouter, Depends, Request

from app.api.deps import get_dispatcher, get_verifier
from app.schemas.billing import WebhookAck
from app.services.billing.dispatcher import EventDispatcher
from app.services.billing.verifier import EventVerifier

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    verifier: EventVerifier = Depends(get_verifier),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> WebhookAck:
    """No bearer auth: the signature over the raw body is the credential.

    Any non-2xx answer makes Stripe redeliver the event.
    """
    body = await request.body()
    event = verifier.verify(body, request.headers.get("stripe-signature"))
    handled = dispatcher.dispatch(event)
    return WebhookAck(received=True, handled=handled)
