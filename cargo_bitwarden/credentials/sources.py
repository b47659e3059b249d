"""Sources of the Bitwarden master password.

When no usable session key is available the provider has to log in or
unlock, which needs the master password. Sources are tried in order; the first
one that is available and yields a value wins.

Platform Support (keyring):
- Linux: Secret Service API (GNOME Keyring, KWallet)
- macOS: Keychain
- Windows: Windows Credential Locker
"""

import os
from collections.abc import Mapping, Sequence
from typing import Protocol

try:
    import keyring
    from keyring.errors import KeyringError

    KEYRING_AVAILABLE = True
except ImportError:
    KEYRING_AVAILABLE = False

from cargo_bitwarden.exceptions import NoCredentialSourceError
from cargo_bitwarden.utils.console import console_available, prompt_secret
from cargo_bitwarden.utils.logging_config import get_logger

log = get_logger(__name__)


class MasterPasswordSource(Protocol):
    """Protocol for anything that can supply the master password."""

    @property
    def name(self) -> str:
        """Source identifier used in logs (e.g. 'environment')."""
        ...

    @property
    def available(self) -> bool:
        """Whether this source can be consulted in the current environment."""
        ...

    def get(self, email: str | None) -> str | None:
        """Return the master password for ``email`` or None if this source has none."""
        ...


class EnvironmentSource:
    """Master password from an environment variable.

    Intended for CI jobs where the password is injected as a secret. The
    variable name is configurable; ``BW_PASSWORD`` is the default.

    Example:
        >>> source = EnvironmentSource("BW_PASSWORD")
        >>> password = source.get(None)
    """

    def __init__(self, var_name: str, environ: Mapping[str, str] | None = None) -> None:
        self.var_name = var_name
        self._environ = environ if environ is not None else os.environ

    @property
    def name(self) -> str:
        return "environment"

    @property
    def available(self) -> bool:
        return True

    def get(self, email: str | None) -> str | None:
        value = self._environ.get(self.var_name)
        if value:
            log.debug("master_password_from_environment", var_name=self.var_name)
            return value
        return None


class KeyringSource:
    """Master password stored in the OS keyring, keyed by account email.

    Store it once with ``keyring set <service> <email>``.
    """

    def __init__(self, service: str) -> None:
        self.service = service

    @property
    def name(self) -> str:
        return "keyring"

    @property
    def available(self) -> bool:
        """Check the keyring library is installed and a backend is usable."""
        if not KEYRING_AVAILABLE:
            return False

        try:
            keyring.get_keyring()
            return True
        except Exception as e:
            log.debug("keyring_unavailable", error=str(e))
            return False

    def get(self, email: str | None) -> str | None:
        if not email:
            return None

        try:
            value = keyring.get_password(self.service, email)
        except KeyringError as e:
            log.warning("keyring_lookup_failed", service=self.service, error=str(e))
            return None
        except Exception as e:
            # Backends raise their own errors (D-Bus, Secret Service)
            log.warning("keyring_backend_failed", service=self.service, error_type=type(e).__name__)
            return None

        if value:
            log.debug("master_password_from_keyring", service=self.service)
        return value or None


class PromptSource:
    """Ask for the master password on the controlling terminal."""

    @property
    def name(self) -> str:
        return "prompt"

    @property
    def available(self) -> bool:
        return console_available()

    def get(self, email: str | None) -> str | None:
        account = f" for {email}" if email else ""
        return prompt_secret(f"Bitwarden master password{account}") or None


def first_master_password(sources: Sequence[MasterPasswordSource], email: str | None) -> str:
    """Return the master password from the first source that has one.

    Args:
        sources: Sources in priority order
        email: Account email, used by sources keyed on it

    Raises:
        NoCredentialSourceError: If no source yields a password
    """
    tried = []
    for source in sources:
        if not source.available:
            continue
        tried.append(source.name)
        password = source.get(email)
        if password:
            return password

    raise NoCredentialSourceError(
        "No master password available to unlock the Bitwarden vault"
        + (f" (tried: {', '.join(tried)})" if tried else ""),
        suggestion="Export BW_SESSION from `bw unlock`, set BW_PASSWORD, or run from an interactive terminal",
    )
