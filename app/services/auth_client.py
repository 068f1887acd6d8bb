"""Caller identity from the upstream auth service.

Tokens are checked locally when the shared JWT secret is configured;
otherwise the auth service is asked who the bearer is.
"""
from __future__ import annotations

import logging

import httpx
from jose import JWTError, jwt

from app.schemas.auth import CallerIdentity
from app.services.billing.errors import NotAuthenticated, RemoteProviderError
from app.services.common import coerce_uuid

logger = logging.getLogger(__name__)


def _identity(user_id, email) -> CallerIdentity:
    try:
        parsed = coerce_uuid(user_id)
    except ValueError as exc:
        raise NotAuthenticated("Token subject is not a user id") from exc
    if parsed is None:
        raise NotAuthenticated("Token has no subject")
    return CallerIdentity(user_id=parsed, email=email or None)


class AuthService:
    def __init__(
        self,
        *,
        jwt_secret: str = "",
        jwt_algorithm: str = "HS256",
        jwt_audience: str | None = None,
        auth_url: str = "",
        service_key: str = "",
        timeout_seconds: float = 5,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._jwt_secret = jwt_secret
        self._jwt_algorithm = jwt_algorithm
        self._jwt_audience = jwt_audience
        self._auth_url = auth_url.rstrip("/")
        self._service_key = service_key
        self._timeout = timeout_seconds
        self._transport = transport

    def verify(self, token: str | None) -> CallerIdentity:
        if not token:
            raise NotAuthenticated("Missing bearer token")
        if self._jwt_secret:
            return self._verify_local(token)
        if self._auth_url:
            return self._verify_remote(token)
        raise NotAuthenticated("Authentication is not configured")

    def _verify_local(self, token: str) -> CallerIdentity:
        options = {"verify_aud": self._jwt_audience is not None}
        try:
            payload = jwt.decode(
                token,
                self._jwt_secret,
                algorithms=[self._jwt_algorithm],
                audience=self._jwt_audience,
                options=options,
            )
        except JWTError as exc:
            raise NotAuthenticated("Invalid token") from exc
        return _identity(payload.get("sub"), payload.get("email"))

    def _verify_remote(self, token: str) -> CallerIdentity:
        headers = {"Authorization": f"Bearer {token}"}
        if self._service_key:
            headers["apikey"] = self._service_key
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                resp = client.get(f"{self._auth_url}/auth/v1/user", headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Auth service request failed: %s", exc)
            raise RemoteProviderError("Auth service unavailable") from exc
        if resp.status_code in (401, 403):
            raise NotAuthenticated("Invalid token")
        if resp.status_code >= 400:
            logger.error("Auth service returned %s", resp.status_code)
            raise RemoteProviderError(f"Auth service returned {resp.status_code}")
        data = resp.json()
        return _identity(data.get("id"), data.get("email"))
