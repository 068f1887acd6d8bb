from datetime import UTC, datetime
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field

from app.models.billing import SubscriptionStatus


def from_timestamp(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=UTC)


def _object_id(value: Any) -> Any:
    """Expanded provider references arrive as objects; keep only the id."""
    if isinstance(value, dict):
        return value.get("id")
    return value


ObjectRef = Annotated[str | None, BeforeValidator(_object_id)]

# Stripe sends `metadata: null` on some objects.
Metadata = Annotated[dict[str, str], BeforeValidator(lambda v: v or {})]


class _ProviderObject(BaseModel):
    model_config = ConfigDict(extra="ignore")


# ── Checkout session ─────────────────────────────────────


class CustomerDetails(_ProviderObject):
    email: str | None = None


class CheckoutSessionObject(_ProviderObject):
    id: str
    customer: ObjectRef = None
    client_reference_id: str | None = None
    metadata: Metadata = Field(default_factory=dict)
    subscription: ObjectRef = None
    customer_email: str | None = None
    customer_details: CustomerDetails | None = None
    mode: str | None = None

    @property
    def email(self) -> str | None:
        if self.customer_details and self.customer_details.email:
            return self.customer_details.email
        return self.customer_email


# ── Subscription ─────────────────────────────────────────


class PriceRef(_ProviderObject):
    id: str | None = None


class SubscriptionItemObject(_ProviderObject):
    price: PriceRef | None = None
    current_period_start: int | None = None
    current_period_end: int | None = None


class SubscriptionItemList(_ProviderObject):
    data: list[SubscriptionItemObject] = Field(default_factory=list)


class SubscriptionObject(_ProviderObject):
    id: str
    customer: ObjectRef = None
    status: SubscriptionStatus
    metadata: Metadata = Field(default_factory=dict)
    items: SubscriptionItemList = Field(default_factory=SubscriptionItemList)
    current_period_start: int | None = None
    current_period_end: int | None = None
    start_date: int | None = None
    billing_cycle_anchor: int | None = None
    cancel_at_period_end: bool = False
    canceled_at: int | None = None

    @property
    def first_item(self) -> SubscriptionItemObject | None:
        return self.items.data[0] if self.items.data else None

    @property
    def price_id(self) -> str | None:
        item = self.first_item
        if item and item.price:
            return item.price.id
        return None

    def period_start(self) -> datetime | None:
        """Explicit period field, then start/anchor fields, then the first item."""
        item = self.first_item
        for value in (
            self.current_period_start,
            self.start_date,
            self.billing_cycle_anchor,
            item.current_period_start if item else None,
        ):
            if value is not None:
                return from_timestamp(value)
        return None

    def period_end(self) -> datetime | None:
        item = self.first_item
        for value in (
            self.current_period_end,
            item.current_period_end if item else None,
        ):
            if value is not None:
                return from_timestamp(value)
        return None


# ── Invoice ──────────────────────────────────────────────


class SubscriptionDetails(_ProviderObject):
    subscription: ObjectRef = None
    metadata: Metadata = Field(default_factory=dict)


class InvoiceParent(_ProviderObject):
    subscription_details: SubscriptionDetails | None = None


class Period(_ProviderObject):
    start: int | None = None
    end: int | None = None


class InvoiceLine(_ProviderObject):
    period: Period | None = None


class InvoiceLineList(_ProviderObject):
    data: list[InvoiceLine] = Field(default_factory=list)


class InvoiceObject(_ProviderObject):
    id: str
    customer: ObjectRef = None
    subscription: ObjectRef = None
    customer_email: str | None = None
    metadata: Metadata = Field(default_factory=dict)
    subscription_details: SubscriptionDetails | None = None
    parent: InvoiceParent | None = None
    lines: InvoiceLineList = Field(default_factory=InvoiceLineList)
    period_end: int | None = None

    @property
    def related_subscription(self) -> SubscriptionDetails | None:
        # Newer API versions nest subscription details under `parent`.
        if self.parent and self.parent.subscription_details:
            return self.parent.subscription_details
        return self.subscription_details

    @property
    def subscription_id(self) -> str | None:
        if self.subscription:
            return self.subscription
        details = self.related_subscription
        return details.subscription if details else None

    def billed_period_end(self) -> datetime | None:
        for line in self.lines.data:
            if line.period and line.period.end is not None:
                return from_timestamp(line.period.end)
        return from_timestamp(self.period_end)


# ── Event envelope ───────────────────────────────────────


class _EventBase(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str
    type: str
    created: int
    livemode: bool = False


class CheckoutSessionData(BaseModel):
    object: CheckoutSessionObject


class SubscriptionData(BaseModel):
    object: SubscriptionObject


class InvoiceData(BaseModel):
    object: InvoiceObject


class CheckoutCompletedEvent(_EventBase):
    type: Literal["checkout.session.completed"]
    data: CheckoutSessionData


class SubscriptionEvent(_EventBase):
    type: Literal[
        "customer.subscription.created",
        "customer.subscription.updated",
        "customer.subscription.deleted",
    ]
    data: SubscriptionData


class InvoiceEvent(_EventBase):
    type: Literal["invoice.paid", "invoice.payment_failed"]
    data: InvoiceData


class IgnoredEvent(_EventBase):
    """Any event type this service does not act on; payload left opaque."""

    data: dict[str, Any] = Field(default_factory=dict)


ProviderEvent = CheckoutCompletedEvent | SubscriptionEvent | InvoiceEvent | IgnoredEvent

EVENT_MODELS: dict[str, type[_EventBase]] = {
    "checkout.session.completed": CheckoutCompletedEvent,
    "customer.subscription.created": SubscriptionEvent,
    "customer.subscription.updated": SubscriptionEvent,
    "customer.subscription.deleted": SubscriptionEvent,
    "invoice.paid": InvoiceEvent,
    "invoice.payment_failed": InvoiceEvent,
}


def parse_event(raw: dict[str, Any]) -> ProviderEvent:
    model = EVENT_MODELS.get(str(raw.get("type", "")), IgnoredEvent)
    return model.model_validate(raw)  # type: ignore[return-value]


# ── API ──────────────────────────────────────────────────


class CheckoutRequest(BaseModel):
    price_id: str | None = Field(default=None, max_length=255)


class CheckoutSessionRead(BaseModel):
    url: str
    session_id: str


class PortalSessionRead(BaseModel):
    url: str


class EntitlementRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    user_id: UUID = Field(validation_alias=AliasChoices("id", "user_id"))
    is_premium: bool
    plan: str
    premium_started_at: datetime | None = None
    premium_expires_at: datetime | None = None
    cancel_at_period_end: bool


class WebhookAck(BaseModel):
    received: bool = True
    handled: bool
