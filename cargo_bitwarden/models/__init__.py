"""Data models for registry credentials and Bitwarden vault records."""

from cargo_bitwarden.models.domain import Credential, RegistryContext, VaultSession
from cargo_bitwarden.models.vault import (
    LoginFields,
    LoginUri,
    NewLoginItem,
    VaultItem,
    VaultStatus,
)

__all__ = [
    "Credential",
    "RegistryContext",
    "VaultSession",
    "LoginFields",
    "LoginUri",
    "NewLoginItem",
    "VaultItem",
    "VaultStatus",
]
