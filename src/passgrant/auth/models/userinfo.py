"""User information returned by a provider's user-info endpoint."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class UserInfo(BaseModel):
    """Information about the authenticated user.

    Providers disagree on field names, so anything beyond the common fields
    is kept as extra attributes.
    """

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    provider_name: str | None = None
    id: str | None = None
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    photo_uri: str | None = None
