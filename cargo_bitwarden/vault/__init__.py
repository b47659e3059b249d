"""Bitwarden vault access: CLI gateway, session, item resolution and sync."""

from cargo_bitwarden.vault.gateway import BitwardenCLI, VaultCommand, VaultGateway, VaultOutput
from cargo_bitwarden.vault.resolver import VaultItemResolver, canonical_item_name
from cargo_bitwarden.vault.session import SessionManager
from cargo_bitwarden.vault.sync import SyncCoordinator

__all__ = [
    "BitwardenCLI",
    "SessionManager",
    "SyncCoordinator",
    "VaultCommand",
    "VaultGateway",
    "VaultItemResolver",
    "VaultOutput",
    "canonical_item_name",
]
