from app.services.billing.errors import (
    BillingError,
    IdentityUnresolved,
    InvalidEventPayload,
    NotAuthenticated,
    RemoteProviderError,
    SignatureInvalid,
    StorageWriteFailed,
)
from app.services.billing.entitlements import EntitlementState, PlanTags
from app.services.billing.store import BillingStore, SubscriptionValues
from app.services.billing.identity import IdentityResolver, ResolvedIdentity
from app.services.billing.provider import BillingProvider, HostedSession, StripeProvider
from app.services.billing.customers import CustomerProvisioner
from app.services.billing.sessions import SessionIssuer, SessionUrls
from app.services.billing.verifier import EventVerifier
from app.services.billing.reconciler import EntitlementReconciler, HandlerOutcome
from app.services.billing.dispatcher import EventDispatcher
from app.services.billing.reconcile import ReconciliationSweep, SweepResult

__all__ = [
    "BillingError",
    "BillingProvider",
    "BillingStore",
    "CustomerProvisioner",
    "EntitlementReconciler",
    "EntitlementState",
    "EventDispatcher",
    "EventVerifier",
    "HandlerOutcome",
    "HostedSession",
    "IdentityResolver",
    "IdentityUnresolved",
    "InvalidEventPayload",
    "NotAuthenticated",
    "PlanTags",
    "ReconciliationSweep",
    "RemoteProviderError",
    "ResolvedIdentity",
    "SessionIssuer",
    "SessionUrls",
    "SignatureInvalid",
    "StorageWriteFailed",
    "StripeProvider",
    "SubscriptionValues",
    "SweepResult",
]
