"""Stripe client wrapper.

Components receive a provider instance at construction instead of touching a
global ``stripe.api_key``, so tests can pass a fake with the same methods.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import stripe

from app.services.billing.errors import RemoteProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderCustomer:
    id: str
    deleted: bool = False
    email: str | None = None


@dataclass(frozen=True)
class HostedSession:
    id: str
    url: str


class BillingProvider(Protocol):
    def is_configured(self) -> bool: ...

    def retrieve_customer(self, customer_id: str) -> ProviderCustomer | None: ...

    def create_customer(
        self, *, email: str | None, metadata: dict[str, str]
    ) -> ProviderCustomer: ...

    def create_checkout_session(self, params: dict[str, Any]) -> HostedSession: ...

    def create_portal_session(self, params: dict[str, Any]) -> HostedSession: ...

    def latest_subscription(self, customer_id: str) -> dict[str, Any] | None: ...


class StripeProvider:
    """Thin wrapper around the Stripe API for the calls billing needs."""

    def __init__(
        self,
        secret_key: str,
        *,
        timeout_seconds: int = 10,
        client: stripe.StripeClient | None = None,
    ) -> None:
        self._secret_key = secret_key
        self._timeout = timeout_seconds
        self._stripe = client

    def is_configured(self) -> bool:
        return bool(self._secret_key)

    @property
    def _client(self) -> stripe.StripeClient:
        if not self.is_configured():
            raise RemoteProviderError("Stripe is not configured")
        if self._stripe is None:
            self._stripe = stripe.StripeClient(
                self._secret_key,
                max_network_retries=0,
                http_client=stripe.RequestsClient(timeout=self._timeout),
            )
        return self._stripe

    # ── Customers ────────────────────────────────────────

    def retrieve_customer(self, customer_id: str) -> ProviderCustomer | None:
        """Return the customer, or None when Stripe no longer knows the id."""
        try:
            customer = self._client.customers.retrieve(customer_id)
        except stripe.InvalidRequestError as exc:
            if exc.code == "resource_missing":
                logger.warning("Stripe customer %s not found", customer_id)
                return None
            raise RemoteProviderError(f"Customer lookup failed: {exc}") from exc
        except stripe.StripeError as exc:
            raise RemoteProviderError(f"Customer lookup failed: {exc}") from exc
        deleted = bool(getattr(customer, "deleted", False))
        return ProviderCustomer(
            id=customer.id, deleted=deleted, email=getattr(customer, "email", None)
        )

    def create_customer(
        self, *, email: str | None, metadata: dict[str, str]
    ) -> ProviderCustomer:
        params: dict[str, Any] = {"metadata": metadata}
        if email:
            params["email"] = email
        try:
            customer = self._client.customers.create(params=params)
        except stripe.StripeError as exc:
            raise RemoteProviderError(f"Customer creation failed: {exc}") from exc
        logger.info("Created Stripe customer: %s", customer.id)
        return ProviderCustomer(id=customer.id, email=email)

    # ── Hosted sessions ──────────────────────────────────

    def create_checkout_session(self, params: dict[str, Any]) -> HostedSession:
        try:
            session = self._client.checkout.sessions.create(params=params)
        except stripe.StripeError as exc:
            raise RemoteProviderError(f"Checkout session failed: {exc}") from exc
        if not session.url:
            raise RemoteProviderError("Checkout session has no hosted URL")
        return HostedSession(id=session.id, url=session.url)

    def create_portal_session(self, params: dict[str, Any]) -> HostedSession:
        try:
            session = self._client.billing_portal.sessions.create(params=params)
        except stripe.StripeError as exc:
            raise RemoteProviderError(f"Portal session failed: {exc}") from exc
        return HostedSession(id=session.id, url=session.url)

    # ── Subscriptions ────────────────────────────────────

    def latest_subscription(self, customer_id: str) -> dict[str, Any] | None:
        """Most recent subscription of the customer in any status."""
        try:
            page = self._client.subscriptions.list(
                params={"customer": customer_id, "status": "all", "limit": 1}
            )
        except stripe.StripeError as exc:
            raise RemoteProviderError(f"Subscription listing failed: {exc}") from exc
        if not page.data:
            return None
        return page.data[0].to_dict()
