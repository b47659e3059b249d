"""Wire format of Cargo's credential-provider protocol (version 1).

Cargo launches the provider with ``--cargo-plugin``, reads a hello line, then
exchanges one JSON document per line::

    provider -> {"v":[1]}
    cargo    -> {"v":1,"registry":{"index-url":"sparse+https://...","name":"my-registry"},"kind":"get","operation":"read","args":[]}
    provider -> {"Ok":{"kind":"get","token":"...","cache":"session","operation_independent":true}}

Errors are sent as ``{"Err":{"kind":"not-found"}}``,
``{"Err":{"kind":"operation-not-supported"}}`` or
``{"Err":{"kind":"other","message":"...","caused-by":["..."]}}``.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cargo_bitwarden.exceptions import ProtocolError
from cargo_bitwarden.models.domain import RegistryContext

PROTOCOL_VERSION = 1

HELLO: dict[str, Any] = {"v": [PROTOCOL_VERSION]}


def _kebab(name: str) -> str:
    return name.replace("_", "-")


class _CargoModel(BaseModel):
    model_config = ConfigDict(alias_generator=_kebab, populate_by_name=True, extra="ignore")


class RegistryInfo(_CargoModel):
    """The ``registry`` object of a request."""

    index_url: str
    name: str | None = None
    headers: list[str] = Field(default_factory=list)


class CredentialRequest(_CargoModel):
    """One request from Cargo.

    ``kind`` is ``get``, ``login`` or ``logout``; other kinds may appear in
    future protocol revisions and are answered with
    ``operation-not-supported``.
    """

    v: int
    registry: RegistryInfo
    kind: str
    operation: str | None = None
    token: str | None = Field(default=None, repr=False)
    login_url: str | None = None
    args: list[str] = Field(default_factory=list)

    def context(self) -> RegistryContext:
        return RegistryContext(index_url=self.registry.index_url, name=self.registry.name)


def parse_request(line: str) -> CredentialRequest:
    """Decode one request line.

    Raises:
        ProtocolError: If the line is not a valid version-1 request
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Request is not valid JSON: {e.msg}") from e

    if isinstance(data, dict) and data.get("v") != PROTOCOL_VERSION:
        raise ProtocolError(f"Unsupported credential-provider protocol version: {data.get('v')!r}")

    try:
        return CredentialRequest.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in e.errors())
        raise ProtocolError(f"Malformed credential request (invalid fields: {fields or 'request'})") from None


def ok_get(token: str) -> dict[str, Any]:
    return {"Ok": {"kind": "get", "token": token, "cache": "session", "operation_independent": True}}


def ok_login() -> dict[str, Any]:
    return {"Ok": {"kind": "login"}}


def ok_logout() -> dict[str, Any]:
    return {"Ok": {"kind": "logout"}}


def encode(message: dict[str, Any]) -> str:
    """Serialize a protocol message to a single line."""
    return json.dumps(message, separators=(",", ":"))
