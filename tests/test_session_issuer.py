"""Tests for hosted checkout and portal sessions."""

import pytest

from app.schemas.auth import CallerIdentity
from app.services.billing.customers import CustomerProvisioner
from app.services.billing.errors import NotAuthenticated, RemoteProviderError
from app.services.billing.sessions import SessionIssuer, SessionUrls


@pytest.fixture()
def issuer(store, provider):
    return SessionIssuer(
        CustomerProvisioner(store, provider),
        provider,
        SessionUrls(site_url="https://example.test/"),
        default_price_id="price_default",
        trial_days=14,
    )


@pytest.fixture()
def caller(mapped_user):
    return CallerIdentity(user_id=mapped_user, email="member@example.com")


def test_checkout_requires_user(issuer):
    with pytest.raises(NotAuthenticated):
        issuer.create_checkout(None)


def test_checkout_carries_correlation_id_everywhere(issuer, provider, caller):
    provider.add_customer("cus_1")

    session = issuer.create_checkout(caller)

    params = provider.checkout_calls[0]
    user_ref = str(caller.user_id)
    assert session.url.startswith("https://checkout.test/")
    assert params["mode"] == "subscription"
    assert params["customer"] == "cus_1"
    assert params["client_reference_id"] == user_ref
    assert params["metadata"] == {"user_id": user_ref}
    assert params["subscription_data"]["metadata"] == {"user_id": user_ref}
    assert params["subscription_data"]["trial_period_days"] == 14
    assert params["line_items"] == [{"price": "price_default", "quantity": 1}]
    assert params["allow_promotion_codes"] is True
    assert params["success_url"] == "https://example.test/directors-cut/success"
    assert params["cancel_url"] == "https://example.test/directors-cut/cancel"


def test_checkout_price_override(issuer, provider, caller):
    provider.add_customer("cus_1")
    issuer.create_checkout(caller, price_id="price_annual")
    assert provider.checkout_calls[0]["line_items"][0]["price"] == "price_annual"


def test_checkout_without_trial(store, provider, caller):
    provider.add_customer("cus_1")
    issuer = SessionIssuer(
        CustomerProvisioner(store, provider),
        provider,
        SessionUrls(site_url="https://example.test"),
        default_price_id="price_default",
    )
    issuer.create_checkout(caller)
    assert "trial_period_days" not in provider.checkout_calls[0]["subscription_data"]


def test_checkout_without_any_price(store, provider, caller):
    issuer = SessionIssuer(
        CustomerProvisioner(store, provider),
        provider,
        SessionUrls(site_url="https://example.test"),
    )
    with pytest.raises(RemoteProviderError):
        issuer.create_checkout(caller)
    assert provider.checkout_calls == []


def test_portal_requires_user(issuer):
    with pytest.raises(NotAuthenticated):
        issuer.create_portal(None)


def test_portal_targets_cancellable_subscription(issuer, provider, caller):
    provider.add_customer("cus_1")
    provider.subscriptions["cus_1"] = {"id": "sub_1", "status": "active"}

    session = issuer.create_portal(caller)

    params = provider.portal_calls[0]
    assert session.url.startswith("https://portal.test/")
    assert params["customer"] == "cus_1"
    assert params["return_url"] == "https://example.test/settings/premium"
    assert params["flow_data"] == {
        "type": "subscription_cancel",
        "subscription_cancel": {"subscription": "sub_1"},
    }


@pytest.mark.parametrize("status", ["canceled", "incomplete_expired"])
def test_portal_skips_ended_subscription(issuer, provider, caller, status):
    provider.add_customer("cus_1")
    provider.subscriptions["cus_1"] = {"id": "sub_1", "status": status}
    issuer.create_portal(caller)
    assert "flow_data" not in provider.portal_calls[0]


def test_portal_without_subscription(issuer, provider, caller):
    provider.add_customer("cus_1")
    issuer.create_portal(caller)
    assert "flow_data" not in provider.portal_calls[0]


def test_portal_provisions_customer_for_new_user(issuer, provider, user_id):
    issuer.create_portal(CallerIdentity(user_id=user_id))
    assert provider.portal_calls[0]["customer"] == provider.created_customers[0]["id"]
