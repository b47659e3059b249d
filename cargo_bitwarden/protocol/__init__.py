"""Cargo credential-provider protocol: wire messages, adapter and request loop."""

from cargo_bitwarden.protocol.adapter import ProtocolAdapter, error_response
from cargo_bitwarden.protocol.messages import CredentialRequest, parse_request
from cargo_bitwarden.protocol.server import CredentialProvider

__all__ = [
    "CredentialProvider",
    "CredentialRequest",
    "ProtocolAdapter",
    "error_response",
    "parse_request",
]
