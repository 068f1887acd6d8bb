"""Failure taxonomy for billing reconciliation.

Each error carries the HTTP status the transport layer answers with. The
status decides whether the payment provider redelivers: anything non-2xx is
retried, so transient failures surface as 500 and caller mistakes as 4xx.
"""
from __future__ import annotations


class BillingError(Exception):
    status_code = 500
    code = "billing_error"

    def __init__(self, message: str = "", *, details: object = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details


class SignatureInvalid(BillingError):
    status_code = 400
    code = "signature_invalid"


class InvalidEventPayload(BillingError):
    status_code = 400
    code = "invalid_event_payload"


class IdentityUnresolved(BillingError):
    status_code = 400
    code = "identity_unresolved"


class NotAuthenticated(BillingError):
    status_code = 401
    code = "not_authenticated"


class RemoteProviderError(BillingError):
    status_code = 500
    code = "remote_provider_error"


class StorageWriteFailed(BillingError):
    status_code = 500
    code = "storage_write_failed"
