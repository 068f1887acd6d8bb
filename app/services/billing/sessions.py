"""Provider-hosted checkout and billing portal sessions."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from app.schemas.auth import CallerIdentity
from app.services.billing.customers import CustomerProvisioner
from app.services.billing.errors import NotAuthenticated, RemoteProviderError
from app.services.billing.provider import BillingProvider, HostedSession

logger = logging.getLogger(__name__)

# A cancel flow cannot target a subscription that has already ended.
_NON_CANCELLABLE_STATUSES = {"canceled", "incomplete_expired"}


@dataclass(frozen=True)
class SessionUrls:
    site_url: str
    success_path: str = "/directors-cut/success"
    cancel_path: str = "/directors-cut/cancel"
    portal_return_path: str = "/settings/premium"

    def url(self, path: str) -> str:
        return f"{self.site_url.rstrip('/')}{path}"


class SessionIssuer:
    def __init__(
        self,
        provisioner: CustomerProvisioner,
        provider: BillingProvider,
        urls: SessionUrls,
        *,
        default_price_id: str = "",
        trial_days: int = 0,
    ) -> None:
        self.provisioner = provisioner
        self.provider = provider
        self.urls = urls
        self.default_price_id = default_price_id
        self.trial_days = trial_days

    def create_checkout(
        self, user: CallerIdentity | None, price_id: str | None = None
    ) -> HostedSession:
        if user is None:
            raise NotAuthenticated("A signed-in user is required for checkout")
        price = price_id or self.default_price_id
        if not price:
            raise RemoteProviderError("No price configured for checkout")

        customer_id = self.provisioner.ensure_customer(user.user_id, user.email)
        user_ref = str(user.user_id)
        subscription_data: dict[str, Any] = {"metadata": {"user_id": user_ref}}
        if self.trial_days > 0:
            subscription_data["trial_period_days"] = self.trial_days

        session = self.provider.create_checkout_session(
            {
                "mode": "subscription",
                "customer": customer_id,
                "client_reference_id": user_ref,
                "metadata": {"user_id": user_ref},
                "subscription_data": subscription_data,
                "line_items": [{"price": price, "quantity": 1}],
                "allow_promotion_codes": True,
                "success_url": self.urls.url(self.urls.success_path),
                "cancel_url": self.urls.url(self.urls.cancel_path),
            }
        )
        logger.info(
            "Created checkout session %s for customer %s",
            session.id,
            customer_id,
            extra={"user_id": user.user_id},
        )
        return session

    def create_portal(self, user: CallerIdentity | None) -> HostedSession:
        if user is None:
            raise NotAuthenticated("A signed-in user is required for the portal")

        customer_id = self.provisioner.ensure_customer(user.user_id, user.email)
        params: dict[str, Any] = {
            "customer": customer_id,
            "return_url": self.urls.url(self.urls.portal_return_path),
        }
        latest = self.provider.latest_subscription(customer_id)
        if latest and latest.get("status") not in _NON_CANCELLABLE_STATUSES:
            params["flow_data"] = {
                "type": "subscription_cancel",
                "subscription_cancel": {"subscription": latest["id"]},
            }

        session = self.provider.create_portal_session(params)
        logger.info(
            "Created portal session %s for customer %s",
            session.id,
            customer_id,
            extra={"user_id": user.user_id},
        )
        return session
