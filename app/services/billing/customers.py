"""Customer provisioning: one live provider customer per user."""
from __future__ import annotations

import logging
import uuid

from app.services.billing.errors import StorageWriteFailed
from app.services.billing.provider import BillingProvider
from app.services.billing.store import BillingStore

logger = logging.getLogger(__name__)


class CustomerProvisioner:
    def __init__(self, store: BillingStore, provider: BillingProvider) -> None:
        self.store = store
        self.provider = provider

    def ensure_customer(self, user_id: uuid.UUID, email: str | None = None) -> str:
        """Return a usable customer id for the user, creating one if needed.

        A mapped customer the provider reports deleted (or no longer knows)
        is replaced and the mapping overwritten.
        """
        customer_id = self.store.get_customer_id(user_id)
        if customer_id is None:
            return self._create(user_id, email, overwrite=False)

        customer = self.provider.retrieve_customer(customer_id)
        if customer is None or customer.deleted:
            logger.warning(
                "Mapped customer %s is gone, provisioning a replacement",
                customer_id,
                extra={"user_id": user_id},
            )
            return self._create(user_id, email, overwrite=True)
        if not self.store.has_current_mapping(user_id):
            # Found through the legacy table only; carry it into the current one.
            return self.store.save_customer_mapping(user_id, customer_id, overwrite=False)
        return customer_id

    def _create(self, user_id: uuid.UUID, email: str | None, *, overwrite: bool) -> str:
        customer = self.provider.create_customer(
            email=email, metadata={"user_id": str(user_id)}
        )
        try:
            stored = self.store.save_customer_mapping(
                user_id, customer.id, overwrite=overwrite
            )
        except StorageWriteFailed:
            # The remote customer exists but the mapping did not land; the next
            # call provisions again and the extra customer is left unused.
            logger.exception(
                "Customer mapping write failed for %s",
                customer.id,
                extra={"user_id": user_id},
            )
            return customer.id
        if stored != customer.id:
            logger.info(
                "Concurrent provisioning won with %s; %s left unused",
                stored,
                customer.id,
                extra={"user_id": user_id},
            )
        return stored
