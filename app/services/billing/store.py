"""Relational store for customer mappings, subscriptions and entitlements.

All writes are single ``INSERT ... ON CONFLICT`` statements keyed by the
row's unique key, so the database serialises concurrent writers. Rows that
track an event timestamp only accept writes from an equal or newer event.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.metrics import ENTITLEMENT_WRITES
from app.models.billing import (
    CustomerMapping,
    LegacyCustomerMapping,
    Profile,
    SubscriptionRecord,
    SubscriptionStatus,
    WebhookEvent,
    WebhookEventStatus,
)
from app.services.billing.entitlements import EntitlementState
from app.services.billing.errors import StorageWriteFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubscriptionValues:
    external_subscription_id: str
    user_id: uuid.UUID
    external_customer_id: str | None
    price_id: str | None
    status: SubscriptionStatus
    period_start: datetime | None
    period_end: datetime | None
    cancel_at_period_end: bool
    canceled_at: datetime | None


def _insert(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise StorageWriteFailed(f"Upserts are not supported on {dialect}")


class BillingStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    # ── Transactions ─────────────────────────────────────

    def commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageWriteFailed(f"Commit failed: {exc}") from exc

    def rollback(self) -> None:
        self.db.rollback()

    def _execute(self, stmt, what: str):
        try:
            return self.db.execute(stmt)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageWriteFailed(f"{what} failed: {exc}") from exc

    def _read(self, what: str, op, *args, **kwargs):
        try:
            return op(*args, **kwargs)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageWriteFailed(f"{what} failed: {exc}") from exc

    # ── Customer mappings ────────────────────────────────

    def get_customer_id(self, user_id: uuid.UUID) -> str | None:
        """Current mapping first, then the legacy table."""
        for model in (CustomerMapping, LegacyCustomerMapping):
            row = self._read("Customer mapping read", self.db.get, model, user_id)
            if row:
                return row.external_customer_id
        return None

    def has_current_mapping(self, user_id: uuid.UUID) -> bool:
        row = self._read("Customer mapping read", self.db.get, CustomerMapping, user_id)
        return row is not None

    def find_user_by_customer(self, model, customer_id: str) -> uuid.UUID | None:
        stmt = (
            select(model.user_id)
            .where(model.external_customer_id == customer_id)
            .order_by(model.updated_at.desc())
            .limit(1)
        )
        return self._read("Customer lookup", self.db.scalar, stmt)

    def find_user_by_email(self, email: str) -> uuid.UUID | None:
        stmt = select(Profile.id).where(Profile.email == email).limit(1)
        return self._read("Email lookup", self.db.scalar, stmt)

    def save_customer_mapping(
        self,
        user_id: uuid.UUID,
        customer_id: str,
        *,
        overwrite: bool,
        commit: bool = True,
    ) -> str:
        """Write the current mapping and return the id that is now stored.

        Without ``overwrite`` an existing mapping wins, which keeps concurrent
        first-time provisioning converging on a single customer.
        """
        insert = _insert(self.db)
        now = datetime.now(UTC)
        stmt = insert(CustomerMapping).values(
            user_id=user_id,
            external_customer_id=customer_id,
            created_at=now,
            updated_at=now,
        )
        if overwrite:
            stmt = stmt.on_conflict_do_update(
                index_elements=[CustomerMapping.user_id],
                set_={"external_customer_id": customer_id, "updated_at": now},
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=[CustomerMapping.user_id])
        self._execute(stmt, "Customer mapping write")
        if commit:
            self.commit()
        stored = self._read(
            "Customer mapping read",
            self.db.get,
            CustomerMapping,
            user_id,
            populate_existing=True,
        )
        return stored.external_customer_id if stored else customer_id

    def iter_customer_mappings(self) -> Iterator[CustomerMapping]:
        stmt = select(CustomerMapping).order_by(CustomerMapping.created_at)
        yield from self._read("Customer mapping scan", self.db.scalars, stmt)

    # ── Subscriptions ────────────────────────────────────

    def upsert_subscription(self, values: SubscriptionValues, event_created: int) -> bool:
        insert = _insert(self.db)
        now = datetime.now(UTC)
        row = {
            "external_subscription_id": values.external_subscription_id,
            "user_id": values.user_id,
            "external_customer_id": values.external_customer_id,
            "price_id": values.price_id,
            "status": values.status,
            "period_start": values.period_start,
            "period_end": values.period_end,
            "cancel_at_period_end": values.cancel_at_period_end,
            "canceled_at": values.canceled_at,
            "source_event_created": event_created,
            "updated_at": now,
        }
        stmt = insert(SubscriptionRecord).values(
            id=uuid.uuid4(), created_at=now, **row
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[SubscriptionRecord.external_subscription_id],
            set_=row,
            where=or_(
                SubscriptionRecord.source_event_created.is_(None),
                SubscriptionRecord.source_event_created
                <= stmt.excluded.source_event_created,
            ),
        )
        result = self._execute(stmt, "Subscription upsert")
        applied = result.rowcount != 0
        if not applied:
            logger.info(
                "Skipped stale subscription write",
                extra={"subscription_id": values.external_subscription_id},
            )
        return applied

    def get_subscription(self, external_subscription_id: str) -> SubscriptionRecord | None:
        stmt = select(SubscriptionRecord).where(
            SubscriptionRecord.external_subscription_id == external_subscription_id
        )
        return self._read("Subscription read", self.db.scalar, stmt)

    # ── Entitlements ─────────────────────────────────────

    def touch_profile(self, user_id: uuid.UUID, *, free_plan: str) -> None:
        """Guarantee a profile row exists so the entitlement write has a target."""
        insert = _insert(self.db)
        now = datetime.now(UTC)
        stmt = insert(Profile).values(
            id=user_id,
            is_premium=False,
            plan=free_plan,
            cancel_at_period_end=False,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Profile.id], set_={"updated_at": now}
        )
        self._execute(stmt, "Profile touch")

    def replace_entitlement(
        self, user_id: uuid.UUID, state: EntitlementState, event_created: int
    ) -> bool:
        """Write all entitlement fields together, or nothing if the event is stale."""
        insert = _insert(self.db)
        now = datetime.now(UTC)
        row = {
            **state.as_values(),
            "entitlement_event_created": event_created,
            "updated_at": now,
        }
        stmt = insert(Profile).values(id=user_id, created_at=now, **row)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Profile.id],
            set_=row,
            where=or_(
                Profile.entitlement_event_created.is_(None),
                Profile.entitlement_event_created
                <= stmt.excluded.entitlement_event_created,
            ),
        )
        result = self._execute(stmt, "Entitlement write")
        applied = result.rowcount != 0
        ENTITLEMENT_WRITES.labels("applied" if applied else "stale").inc()
        if not applied:
            logger.info("Skipped stale entitlement write", extra={"user_id": user_id})
        return applied

    def get_profile(self, user_id: uuid.UUID) -> Profile | None:
        return self._read(
            "Profile read", self.db.get, Profile, user_id, populate_existing=True
        )

    # ── Webhook audit ────────────────────────────────────

    def record_webhook_event(
        self,
        *,
        event_id: str,
        event_type: str,
        livemode: bool,
        status: WebhookEventStatus,
        user_id: uuid.UUID | None = None,
        error: str | None = None,
    ) -> None:
        insert = _insert(self.db)
        now = datetime.now(UTC)
        stmt = insert(WebhookEvent).values(
            event_id=event_id,
            event_type=event_type,
            livemode=livemode,
            status=status,
            user_id=user_id,
            error=error,
            attempts=1,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[WebhookEvent.event_id],
            set_={
                "status": status,
                "user_id": stmt.excluded.user_id,
                "error": error,
                "attempts": WebhookEvent.attempts + 1,
                "updated_at": now,
            },
        )
        self._execute(stmt, "Webhook audit write")
