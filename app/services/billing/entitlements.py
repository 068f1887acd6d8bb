"""Entitlement tuple derivation.

Every function here is a total function of one event's fields. Prior
profile state is never consulted, so concurrent writers converge on
whichever full tuple is written last.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime

from app.models.billing import SubscriptionStatus

ENTITLED_STATUSES = frozenset({SubscriptionStatus.trialing, SubscriptionStatus.active})


@dataclass(frozen=True)
class EntitlementState:
    is_premium: bool
    plan: str
    premium_started_at: datetime | None
    premium_expires_at: datetime | None
    cancel_at_period_end: bool

    def as_values(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class PlanTags:
    premium: str = "paid"
    free: str = "free"


def granted(
    plans: PlanTags,
    *,
    started_at: datetime | None,
    expires_at: datetime | None,
    cancel_at_period_end: bool = False,
) -> EntitlementState:
    return EntitlementState(
        is_premium=True,
        plan=plans.premium,
        premium_started_at=started_at,
        premium_expires_at=expires_at,
        cancel_at_period_end=cancel_at_period_end,
    )


def revoked(plans: PlanTags) -> EntitlementState:
    return EntitlementState(
        is_premium=False,
        plan=plans.free,
        premium_started_at=None,
        premium_expires_at=None,
        cancel_at_period_end=False,
    )


def for_subscription(
    plans: PlanTags,
    *,
    status: SubscriptionStatus,
    period_start: datetime | None,
    period_end: datetime | None,
    cancel_at_period_end: bool,
) -> EntitlementState:
    if status not in ENTITLED_STATUSES:
        return revoked(plans)
    return granted(
        plans,
        started_at=period_start,
        expires_at=period_end,
        cancel_at_period_end=cancel_at_period_end,
    )
