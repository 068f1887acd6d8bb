"""Build billing components from a ``Settings`` instance."""
from __future__ import annotations

from app.config import Settings
from app.services.auth_client import AuthService
from app.services.billing.entitlements import PlanTags
from app.services.billing.provider import StripeProvider
from app.services.billing.sessions import SessionUrls
from app.services.billing.verifier import EventVerifier


def plan_tags(s: Settings) -> PlanTags:
    return PlanTags(premium=s.premium_plan, free=s.free_plan)


def session_urls(s: Settings) -> SessionUrls:
    return SessionUrls(
        site_url=s.site_url,
        success_path=s.checkout_success_path,
        cancel_path=s.checkout_cancel_path,
        portal_return_path=s.portal_return_path,
    )


def stripe_provider(s: Settings) -> StripeProvider:
    return StripeProvider(s.stripe_secret_key, timeout_seconds=s.stripe_timeout_seconds)


def event_verifier(s: Settings) -> EventVerifier:
    return EventVerifier(
        s.stripe_webhook_secret, tolerance_seconds=s.stripe_webhook_tolerance_seconds
    )


def expected_livemode(s: Settings) -> bool | None:
    """Mode events must match, or None when no key says which mode we are in."""
    if not s.stripe_enforce_livemode or not s.stripe_secret_key:
        return None
    return not s.stripe_test_mode


def auth_service(s: Settings) -> AuthService:
    return AuthService(
        jwt_secret=s.auth_jwt_secret,
        jwt_algorithm=s.auth_jwt_algorithm,
        jwt_audience=s.auth_jwt_audience,
        auth_url=s.auth_url,
        service_key=s.auth_service_key,
        timeout_seconds=s.auth_timeout_seconds,
    )
