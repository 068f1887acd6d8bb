from typing import Any

from app.services.billing.provider import HostedSession, ProviderCustomer


class FakeProvider:
    """In-memory stand-in for StripeProvider."""

    def __init__(self) -> None:
        self.customers: dict[str, ProviderCustomer] = {}
        self.subscriptions: dict[str, dict[str, Any]] = {}
        self.checkout_calls: list[dict[str, Any]] = []
        self.portal_calls: list[dict[str, Any]] = []
        self.created_customers: list[dict[str, Any]] = []
        self._seq = 0

    def _next(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}_{self._seq:04d}"

    def add_customer(
        self, customer_id: str, deleted: bool = False, email: str | None = None
    ) -> None:
        self.customers[customer_id] = ProviderCustomer(
            id=customer_id, deleted=deleted, email=email
        )

    def is_configured(self) -> bool:
        return True

    def retrieve_customer(self, customer_id: str) -> ProviderCustomer | None:
        return self.customers.get(customer_id)

    def create_customer(self, *, email, metadata) -> ProviderCustomer:
        customer = ProviderCustomer(id=self._next("cus"), email=email)
        self.customers[customer.id] = customer
        self.created_customers.append(
            {"id": customer.id, "email": email, "metadata": metadata}
        )
        return customer

    def create_checkout_session(self, params) -> HostedSession:
        self.checkout_calls.append(params)
        session_id = self._next("cs")
        return HostedSession(id=session_id, url=f"https://checkout.test/{session_id}")

    def create_portal_session(self, params) -> HostedSession:
        self.portal_calls.append(params)
        session_id = self._next("bps")
        return HostedSession(id=session_id, url=f"https://portal.test/{session_id}")

    def latest_subscription(self, customer_id: str) -> dict[str, Any] | None:
        return self.subscriptions.get(customer_id)
