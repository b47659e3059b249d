"""
Domain models for the credential provider.

These dataclasses are the provider's internal view of a credential operation:
which registry it targets, the secret being moved, and the vault session used
to move it. They are created per request and discarded once the response has
been written.

Example:
    Describing a registry and the token to store for it::

        ctx = RegistryContext(index_url="sparse+https://registry.example.com/index/", name="example")
        cred = Credential(token="cio_abc123")
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from urllib.parse import urlsplit

from cargo_bitwarden.enums import CredentialKind, SessionSource

# Cargo prefixes index URLs with the registry protocol
_INDEX_URL_PREFIXES = ("sparse+", "registry+")


@dataclass(frozen=True)
class RegistryContext:
    """Identifies the registry a credential operation targets.

    Attributes:
        index_url: Registry index URL exactly as Cargo sent it
        name: Registry name from Cargo's configuration, if it has one
    """

    index_url: str
    name: str | None = None

    @property
    def host(self) -> str | None:
        """Host name of the index URL, or None if the URL cannot be parsed."""
        url = self.index_url
        for prefix in _INDEX_URL_PREFIXES:
            if url.startswith(prefix):
                url = url[len(prefix) :]
                break
        try:
            return urlsplit(url).hostname
        except ValueError:
            return None


@dataclass(frozen=True)
class Credential:
    """A registry token moving between Cargo and the vault.

    The token is excluded from ``repr`` so the object can be logged or shown
    in a traceback without exposing it.
    """

    token: str = field(repr=False)
    username: str | None = None

    @property
    def kind(self) -> CredentialKind:
        """BASIC when a username accompanies the token, BEARER otherwise."""
        return CredentialKind.BASIC if self.username else CredentialKind.BEARER


@dataclass(frozen=True)
class VaultSession:
    """An unlocked-vault session key.

    Lives only in memory for the lifetime of one provider process.
    """

    session_token: str = field(repr=False)
    source: SessionSource
    obtained_at: datetime = field(default_factory=lambda: datetime.now(UTC))
