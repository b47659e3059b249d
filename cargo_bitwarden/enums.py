"""Enumerations shared across the credential provider."""

from enum import Enum


class ErrorKind(str, Enum):
    """Category of a provider error.

    Only ``NOT_FOUND`` and ``OPERATION_NOT_SUPPORTED`` have a dedicated
    representation on the Cargo wire; everything else is sent as ``other``.
    """

    TOOL_NOT_FOUND = "tool-not-found"
    LOCKED_VAULT = "locked-vault"
    NO_CREDENTIAL_SOURCE = "no-credential-source"
    NON_ZERO_EXIT = "non-zero-exit"
    MALFORMED_OUTPUT = "malformed-output"
    TIMEOUT = "timeout"
    AMBIGUOUS_ITEM = "ambiguous-item"
    NOT_FOUND = "not-found"
    SYNC_FAILED = "sync-failed"
    CONFIGURATION = "configuration"
    PROTOCOL = "protocol"
    OPERATION_NOT_SUPPORTED = "operation-not-supported"
    OTHER = "other"

    def __str__(self) -> str:
        return self.value


class CredentialKind(str, Enum):
    """Shape of a registry credential."""

    BEARER = "bearer"
    BASIC = "basic"

    def __str__(self) -> str:
        return self.value


class SessionSource(str, Enum):
    """Where an unlocked vault session came from."""

    ENVIRONMENT = "environment"
    """Taken from the ``BW_SESSION`` environment variable."""

    INTERACTIVE_UNLOCK = "unlock"
    """Obtained by running ``bw login`` or ``bw unlock``."""


class SyncPhase(str, Enum):
    """Point in an operation where a vault sync may run."""

    BEFORE_READ = "before-read"
    AFTER_WRITE = "after-write"


class DuplicatePolicy(str, Enum):
    """How to resolve several vault items matching one registry.

    - error: refuse to choose and raise ``AmbiguousItemError``
    - newest: pick the item with the latest revision date
    """

    ERROR = "error"
    NEWEST = "newest"

    def __str__(self) -> str:
        return self.value


class ProviderAction(str, Enum):
    """Credential actions understood by the protocol adapter."""

    GET = "get"
    STORE = "store"
    ERASE = "erase"

    def __str__(self) -> str:
        return self.value
