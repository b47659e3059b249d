"""Master-password sources used to unlock the vault."""

from cargo_bitwarden.credentials.sources import (
    EnvironmentSource,
    KeyringSource,
    MasterPasswordSource,
    PromptSource,
    first_master_password,
)

__all__ = [
    "EnvironmentSource",
    "KeyringSource",
    "MasterPasswordSource",
    "PromptSource",
    "first_master_password",
]
