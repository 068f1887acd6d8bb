"""Tests for resolving provider objects to users."""

import uuid

import pytest

from app.models.billing import CustomerMapping, LegacyCustomerMapping, Profile
from app.services.billing.errors import IdentityUnresolved
from app.services.billing.identity import (
    CURRENT_MAPPINGS,
    IdentityResolver,
    IdentitySource,
    user_id_from_metadata,
)


@pytest.fixture()
def resolver(store):
    return IdentityResolver(store)


def test_correlation_id_wins_over_everything(resolver, mapped_user):
    other = uuid.uuid4()
    resolved = resolver.resolve(
        customer_id="cus_1",
        correlation_id=str(other),
        metadata={"user_id": str(uuid.uuid4())},
    )
    assert resolved.user_id == other
    assert resolved.source is IdentitySource.correlation_id


def test_metadata_before_related_metadata(resolver):
    own, related = uuid.uuid4(), uuid.uuid4()
    resolved = resolver.resolve(
        metadata={"user_id": str(own)}, related_metadata={"user_id": str(related)}
    )
    assert resolved.user_id == own
    assert resolved.source is IdentitySource.metadata


def test_related_metadata_used_when_own_is_empty(resolver):
    related = uuid.uuid4()
    resolved = resolver.resolve(metadata={}, related_metadata={"userId": str(related)})
    assert resolved.user_id == related
    assert resolved.source is IdentitySource.related_metadata


def test_invalid_metadata_value_is_skipped(resolver, mapped_user):
    resolved = resolver.resolve(customer_id="cus_1", metadata={"user_id": "not-a-uuid"})
    assert resolved.user_id == mapped_user
    assert resolved.source is IdentitySource.customer_mapping


def test_current_mapping_before_legacy(db_session, resolver):
    current_user, legacy_owner = uuid.uuid4(), uuid.uuid4()
    db_session.add(CustomerMapping(user_id=current_user, external_customer_id="cus_x"))
    db_session.add(LegacyCustomerMapping(user_id=legacy_owner, external_customer_id="cus_x"))
    db_session.commit()

    resolved = resolver.resolve(customer_id="cus_x")
    assert resolved.user_id == current_user
    assert resolved.detail == "billing_customers"


def test_legacy_mapping_fallback(resolver, legacy_user):
    resolved = resolver.resolve(customer_id="cus_legacy")
    assert resolved.user_id == legacy_user
    assert resolved.detail == "stripe_customers"


def test_lookups_are_configurable(store, legacy_user):
    resolver = IdentityResolver(store, lookups=[CURRENT_MAPPINGS])
    with pytest.raises(IdentityUnresolved):
        resolver.resolve(customer_id="cus_legacy")


def test_email_fallback(db_session, resolver):
    owner = uuid.uuid4()
    db_session.add(Profile(id=owner, email="buyer@example.com"))
    db_session.commit()

    resolved = resolver.resolve(customer_id="cus_unknown", email="buyer@example.com")
    assert resolved.user_id == owner
    assert resolved.source is IdentitySource.email


def test_unresolved_raises(resolver):
    with pytest.raises(IdentityUnresolved) as exc_info:
        resolver.resolve(customer_id="cus_nobody", metadata={})
    assert exc_info.value.status_code == 400
    assert exc_info.value.details == {"customer_id": "cus_nobody"}


def test_user_id_from_metadata_keys():
    user = uuid.uuid4()
    assert user_id_from_metadata({"userId": str(user)}) == user
    assert user_id_from_metadata({"user_id": "", "userId": str(user)}) == user
    assert user_id_from_metadata(None) is None


def test_customer_email_lookup_only_when_requested(db_session, store, provider):
    owner = uuid.uuid4()
    db_session.add(Profile(id=owner, email="buyer@example.com"))
    db_session.commit()
    provider.add_customer("cus_unknown", email="buyer@example.com")
    resolver = IdentityResolver(store, provider=provider)

    with pytest.raises(IdentityUnresolved):
        resolver.resolve(customer_id="cus_unknown")

    resolved = resolver.resolve(customer_id="cus_unknown", fetch_customer_email=True)
    assert resolved.user_id == owner
    assert resolved.source is IdentitySource.customer_email


def test_mapping_beats_customer_email(db_session, store, provider, mapped_user):
    other = uuid.uuid4()
    db_session.add(Profile(id=other, email="other@example.com"))
    db_session.commit()
    provider.add_customer("cus_1", email="other@example.com")
    resolver = IdentityResolver(store, provider=provider)

    resolved = resolver.resolve(customer_id="cus_1", fetch_customer_email=True)
    assert resolved.user_id == mapped_user
    assert resolved.source is IdentitySource.customer_mapping
