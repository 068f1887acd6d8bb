from fastapi import APIRouter, Depends

from app.api.deps import get_session_issuer, get_store, require_caller
from app.config import settings
from app.schemas.auth import CallerIdentity
from app.schemas.billing import (
    CheckoutRequest,
    CheckoutSessionRead,
    EntitlementRead,
    PortalSessionRead,
)
from app.services.billing.factory import plan_tags
from app.services.billing.sessions import SessionIssuer
from app.services.billing.store import BillingStore

router = APIRouter(prefix="/billing", tags=["billing"])


@router.post("/checkout", response_model=CheckoutSessionRead)
def create_checkout_session(
    payload: CheckoutRequest | None = None,
    caller: CallerIdentity = Depends(require_caller),
    issuer: SessionIssuer = Depends(get_session_issuer),
):
    price_id = payload.price_id if payload else None
    session = issuer.create_checkout(caller, price_id=price_id)
    return CheckoutSessionRead(url=session.url, session_id=session.id)


@router.post("/portal", response_model=PortalSessionRead)
def create_portal_session(
    caller: CallerIdentity = Depends(require_caller),
    issuer: SessionIssuer = Depends(get_session_issuer),
):
    session = issuer.create_portal(caller)
    return PortalSessionRead(url=session.url)


@router.get("/entitlement", response_model=EntitlementRead)
def get_entitlement(
    caller: CallerIdentity = Depends(require_caller),
    store: BillingStore = Depends(get_store),
):
    profile = store.get_profile(caller.user_id)
    if profile is None:
        return EntitlementRead(
            id=caller.user_id,
            is_premium=False,
            plan=plan_tags(settings).free,
            cancel_at_period_end=False,
        )
    return EntitlementRead.model_validate(profile)
