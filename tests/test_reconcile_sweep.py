"""Tests for the periodic reconciliation sweep."""

import uuid
from dataclasses import replace
from unittest.mock import patch

from app.celery_app import build_beat_schedule
from app.config import settings
from app.models.billing import (
    CustomerMapping,
    Profile,
    SubscriptionRecord,
    SubscriptionStatus,
)
from app.services.billing.errors import RemoteProviderError
from app.services.billing.reconcile import ReconciliationSweep
from app.tasks.billing import reconcile_premium
from tests.payloads import PERIOD_END, aware, subscription_object


def _add_user(db_session, customer_id, *, premium=False):
    user = uuid.uuid4()
    db_session.add(Profile(id=user, is_premium=premium, plan="paid" if premium else "free"))
    db_session.add(CustomerMapping(user_id=user, external_customer_id=customer_id))
    db_session.commit()
    return user


def test_active_subscription_restores_premium(db_session, store, provider):
    user = _add_user(db_session, "cus_a")
    provider.subscriptions["cus_a"] = subscription_object("cus_a", sub_id="sub_a")

    result = ReconciliationSweep(store, provider).run()

    assert result.as_dict() == {"checked": 1, "updated": 1, "downgraded": 0, "failed": 0}
    profile = db_session.get(Profile, user, populate_existing=True)
    assert profile.is_premium is True
    assert aware(profile.premium_expires_at) == PERIOD_END
    record = db_session.query(SubscriptionRecord).one()
    assert record.external_subscription_id == "sub_a"


def test_missed_cancellation_is_corrected(db_session, store, provider):
    user = _add_user(db_session, "cus_b", premium=True)
    provider.subscriptions["cus_b"] = subscription_object(
        "cus_b", sub_id="sub_b", status="canceled"
    )

    result = ReconciliationSweep(store, provider).run()

    assert result.downgraded == 1
    assert db_session.get(Profile, user, populate_existing=True).is_premium is False
    assert db_session.query(SubscriptionRecord).one().status == SubscriptionStatus.canceled


def test_customer_without_subscription_is_downgraded(db_session, store, provider):
    user = _add_user(db_session, "cus_c", premium=True)

    result = ReconciliationSweep(store, provider).run()

    assert result.downgraded == 1
    assert db_session.get(Profile, user, populate_existing=True).plan == "free"


def test_failures_are_counted_and_sweep_continues(db_session, store, provider):
    _add_user(db_session, "cus_broken")
    healthy = _add_user(db_session, "cus_ok")
    provider.subscriptions["cus_ok"] = subscription_object("cus_ok", sub_id="sub_ok")
    original = provider.latest_subscription

    def flaky(customer_id):
        if customer_id == "cus_broken":
            raise RemoteProviderError("Subscription listing failed")
        return original(customer_id)

    with patch.object(provider, "latest_subscription", side_effect=flaky):
        result = ReconciliationSweep(store, provider).run()

    assert result.as_dict() == {"checked": 2, "updated": 1, "downgraded": 0, "failed": 1}
    assert db_session.get(Profile, healthy, populate_existing=True).is_premium is True


def test_malformed_provider_payload_counts_as_failure(db_session, store, provider):
    _add_user(db_session, "cus_odd")
    provider.subscriptions["cus_odd"] = {"id": "sub_odd"}
    assert ReconciliationSweep(store, provider).run().failed == 1


def test_limit(db_session, store, provider):
    for n in range(3):
        _add_user(db_session, f"cus_{n}")
    assert ReconciliationSweep(store, provider).run(limit=2).checked == 2


def test_celery_task_runs_sweep(db_session):
    with patch("app.tasks.billing.ReconciliationSweep") as sweep_cls:
        sweep_cls.return_value.run.return_value.as_dict.return_value = {"checked": 0}
        assert reconcile_premium.run(limit=5) == {"checked": 0}
    sweep_cls.return_value.run.assert_called_once_with(limit=5)


def test_beat_schedule_follows_settings():
    assert build_beat_schedule(replace(settings, reconcile_enabled=False)) == {}
    schedule = build_beat_schedule(
        replace(settings, reconcile_enabled=True, reconcile_interval_seconds=3600)
    )
    entry = schedule["reconcile_premium"]
    assert entry["task"] == "app.tasks.billing.reconcile_premium"
    assert entry["schedule"].total_seconds() == 3600
