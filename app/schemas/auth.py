from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict


class CallerIdentity(BaseModel):
    """The authenticated user behind a request."""

    model_config = ConfigDict(frozen=True)

    user_id: UUID
    email: str | None = None
