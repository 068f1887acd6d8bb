from app.models.billing import (  # noqa: F401
    CustomerMapping,
    LegacyCustomerMapping,
    Profile,
    SubscriptionRecord,
    SubscriptionStatus,
    WebhookEvent,
    WebhookEventStatus,
)
