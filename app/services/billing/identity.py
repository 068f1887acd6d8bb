"""Resolve provider objects to an internal user id.

Sources are tried in a fixed order, first match wins:

1. a correlation id this service attached at session creation
2. a user id in the object's own metadata
3. a user id in a related object's metadata (e.g. the invoice's subscription)
4. a reverse lookup of the customer id in each mapping store, in order
5. an email carried on the object against profile emails
6. the email of the provider's customer record, when the caller allows
   a provider lookup
"""
from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from app.models.billing import CustomerMapping, LegacyCustomerMapping
from app.services.billing.errors import IdentityUnresolved
from app.services.billing.provider import BillingProvider
from app.services.billing.store import BillingStore
from app.services.common import coerce_uuid

logger = logging.getLogger(__name__)

USER_ID_METADATA_KEYS = ("user_id", "userId")


class IdentitySource(str, enum.Enum):
    correlation_id = "correlation_id"
    metadata = "metadata"
    related_metadata = "related_metadata"
    customer_mapping = "customer_mapping"
    email = "email"
    customer_email = "customer_email"


@dataclass(frozen=True)
class ResolvedIdentity:
    user_id: uuid.UUID
    source: IdentitySource
    detail: str | None = None


@dataclass(frozen=True)
class CustomerMappingLookup:
    """Reverse lookup of a customer id in one mapping table."""

    name: str
    model: type

    def find_user(self, store: BillingStore, customer_id: str) -> uuid.UUID | None:
        return store.find_user_by_customer(self.model, customer_id)


CURRENT_MAPPINGS = CustomerMappingLookup("billing_customers", CustomerMapping)
LEGACY_MAPPINGS = CustomerMappingLookup("stripe_customers", LegacyCustomerMapping)
DEFAULT_LOOKUPS: tuple[CustomerMappingLookup, ...] = (CURRENT_MAPPINGS, LEGACY_MAPPINGS)


def _as_user_id(value: object) -> uuid.UUID | None:
    if value is None or value == "":
        return None
    try:
        return coerce_uuid(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-UUID user reference %r", value)
        return None


def user_id_from_metadata(metadata: Mapping[str, str] | None) -> uuid.UUID | None:
    if not metadata:
        return None
    for key in USER_ID_METADATA_KEYS:
        user_id = _as_user_id(metadata.get(key))
        if user_id:
            return user_id
    return None


class IdentityResolver:
    def __init__(
        self,
        store: BillingStore,
        lookups: Sequence[CustomerMappingLookup] = DEFAULT_LOOKUPS,
        provider: BillingProvider | None = None,
    ) -> None:
        self.store = store
        self.lookups = tuple(lookups)
        self.provider = provider

    def resolve(
        self,
        *,
        customer_id: str | None = None,
        correlation_id: str | None = None,
        metadata: Mapping[str, str] | None = None,
        related_metadata: Mapping[str, str] | None = None,
        email: str | None = None,
        fetch_customer_email: bool = False,
    ) -> ResolvedIdentity:
        resolved = self._resolve(
            customer_id=customer_id,
            correlation_id=correlation_id,
            metadata=metadata,
            related_metadata=related_metadata,
            email=email,
        )
        if resolved is None and fetch_customer_email and customer_id:
            resolved = self._resolve_customer_email(customer_id, tried=email)
        if resolved is None:
            raise IdentityUnresolved(
                "No user could be resolved for the provider object",
                details={"customer_id": customer_id},
            )
        logger.info(
            "Resolved identity via %s",
            resolved.source.value,
            extra={"user_id": resolved.user_id},
        )
        return resolved

    def _resolve(
        self,
        *,
        customer_id: str | None,
        correlation_id: str | None,
        metadata: Mapping[str, str] | None,
        related_metadata: Mapping[str, str] | None,
        email: str | None,
    ) -> ResolvedIdentity | None:
        user_id = _as_user_id(correlation_id)
        if user_id:
            return ResolvedIdentity(user_id, IdentitySource.correlation_id)

        user_id = user_id_from_metadata(metadata)
        if user_id:
            return ResolvedIdentity(user_id, IdentitySource.metadata)

        user_id = user_id_from_metadata(related_metadata)
        if user_id:
            return ResolvedIdentity(user_id, IdentitySource.related_metadata)

        if customer_id:
            for lookup in self.lookups:
                user_id = lookup.find_user(self.store, customer_id)
                if user_id:
                    return ResolvedIdentity(
                        user_id, IdentitySource.customer_mapping, lookup.name
                    )

        if email:
            user_id = self.store.find_user_by_email(email)
            if user_id:
                return ResolvedIdentity(user_id, IdentitySource.email)

        return None

    def _resolve_customer_email(
        self, customer_id: str, *, tried: str | None
    ) -> ResolvedIdentity | None:
        # Provider errors propagate; the event fails and is redelivered.
        if self.provider is None or not self.provider.is_configured():
            return None
        customer = self.provider.retrieve_customer(customer_id)
        if customer is None or customer.deleted or not customer.email:
            return None
        if customer.email == tried:
            return None
        user_id = self.store.find_user_by_email(customer.email)
        if user_id:
            return ResolvedIdentity(user_id, IdentitySource.customer_email, customer_id)
        return None
