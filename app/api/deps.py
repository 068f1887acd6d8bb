from functools import lru_cache

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from app.config import settings
from app.db import SessionLocal
from app.schemas.auth import CallerIdentity
from app.services.auth_client import AuthService
from app.services.billing import factory
from app.services.billing.customers import CustomerProvisioner
from app.services.billing.dispatcher import EventDispatcher
from app.services.billing.provider import BillingProvider
from app.services.billing.reconciler import EntitlementReconciler
from app.services.billing.sessions import SessionIssuer
from app.services.billing.store import BillingStore
from app.services.billing.verifier import EventVerifier


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_store(db: Session = Depends(get_db)) -> BillingStore:
    return BillingStore(db)


@lru_cache
def get_provider() -> BillingProvider:
    return factory.stripe_provider(settings)


@lru_cache
def get_auth_service() -> AuthService:
    return factory.auth_service(settings)


def get_verifier() -> EventVerifier:
    return factory.event_verifier(settings)


def _extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip()
    return None


def require_caller(
    request: Request,
    authorization: str | None = Header(default=None),
    auth: AuthService = Depends(get_auth_service),
) -> CallerIdentity:
    caller = auth.verify(_extract_bearer_token(authorization))
    request.state.actor_id = str(caller.user_id)
    return caller


def get_session_issuer(
    store: BillingStore = Depends(get_store),
    provider: BillingProvider = Depends(get_provider),
) -> SessionIssuer:
    return SessionIssuer(
        CustomerProvisioner(store, provider),
        provider,
        factory.session_urls(settings),
        default_price_id=settings.stripe_price_id,
        trial_days=settings.stripe_trial_days,
    )


def get_dispatcher(
    store: BillingStore = Depends(get_store),
    provider: BillingProvider = Depends(get_provider),
) -> EventDispatcher:
    reconciler = EntitlementReconciler(
        store, plans=factory.plan_tags(settings), provider=provider
    )
    return EventDispatcher(
        store, reconciler, expected_livemode=factory.expected_livemode(settings)
    )
