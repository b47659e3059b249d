"""Pydantic models for the JSON emitted by the Bitwarden CLI.

The shapes are an external contract owned by ``bw``. Models only declare the
fields the provider reads; everything else is kept as an extra so that an item
can be edited and written back without losing user data.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Bitwarden item type for login records
LOGIN_ITEM_TYPE = 1

# URI match detection: 0 = base domain, 1 = host
URI_MATCH_HOST = 1


class _BitwardenModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class LoginUri(_BitwardenModel):
    """One URI attached to a login item."""

    uri: str | None = None
    match: int | None = None


class LoginFields(_BitwardenModel):
    """The ``login`` block of a vault item."""

    username: str | None = None
    password: str | None = None
    uris: list[LoginUri] | None = Field(default=None)

    def has_uri(self, uri: str) -> bool:
        """Return True if ``uri`` is attached verbatim to this login."""
        return any(entry.uri == uri for entry in self.uris or [])


class VaultItem(_BitwardenModel):
    """A vault item as returned by ``bw list items`` / ``bw get item``."""

    id: str
    name: str
    type: int = LOGIN_ITEM_TYPE
    login: LoginFields | None = None
    folder_id: str | None = None
    revision_date: datetime | None = None

    @property
    def is_login(self) -> bool:
        return self.type == LOGIN_ITEM_TYPE and self.login is not None

    def to_payload(self) -> dict:
        """Serialize back to ``bw`` JSON, keeping only fields that were present."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class NewLoginItem(_BitwardenModel):
    """Body for ``bw create item``."""

    type: int = LOGIN_ITEM_TYPE
    name: str
    login: LoginFields
    folder_id: str | None = None

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class VaultStatus(_BitwardenModel):
    """Output of ``bw status``."""

    status: str
    user_email: str | None = None
    server_url: str | None = None

    @property
    def unlocked(self) -> bool:
        return self.status == "unlocked"

    @property
    def authenticated(self) -> bool:
        return self.status != "unauthenticated"
