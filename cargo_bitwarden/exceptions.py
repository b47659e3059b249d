"""Exception hierarchy for the Bitwarden credential provider.

Every error raised below the protocol adapter is one of these classes. Each
carries an :class:`~cargo_bitwarden.enums.ErrorKind` so the adapter can map it
onto Cargo's error schema without inspecting messages.

Exception Hierarchy:
    CredentialProviderError (base)
    ├── ConfigurationError
    ├── ProtocolError
    ├── OperationNotSupportedError
    ├── CredentialNotFoundError
    ├── AmbiguousItemError
    ├── VaultAuthError
    │   ├── LockedVaultError
    │   └── NoCredentialSourceError
    └── VaultGatewayError
        ├── ToolNotFoundError
        ├── NonZeroExitError
        │   └── AuthRejectedError
        ├── MalformedOutputError
        ├── VaultTimeoutError
        └── VaultSyncError

Messages must never contain secret material. Anything derived from the vault
tool's stderr is redacted by the gateway before it reaches an exception.

Example Usage:
    >>> from cargo_bitwarden.exceptions import CredentialNotFoundError
    >>> try:
    ...     adapter.get(ctx)
    ... except CredentialNotFoundError:
    ...     print("no token stored for", ctx.index_url)
"""

from cargo_bitwarden.enums import ErrorKind


class CredentialProviderError(Exception):
    """Base exception for all provider errors.

    Attributes:
        message: Human-readable error description
        suggestion: Optional hint on how to resolve the problem
        kind: Error category used when translating to the wire format
    """

    kind: ErrorKind = ErrorKind.OTHER

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        """Initialize exception.

        Args:
            message: Error message
            suggestion: Optional suggestion for resolution
        """
        self.suggestion = suggestion

        full_message = message
        if suggestion:
            full_message = f"{message}\nSuggestion: {suggestion}"

        super().__init__(full_message)
        self.message = message


class ConfigurationError(CredentialProviderError):
    """Invalid provider arguments or settings."""

    kind = ErrorKind.CONFIGURATION


class ProtocolError(CredentialProviderError):
    """Request from Cargo could not be decoded or uses an unknown version."""

    kind = ErrorKind.PROTOCOL


class OperationNotSupportedError(CredentialProviderError):
    """Cargo asked for an action this provider does not implement."""

    kind = ErrorKind.OPERATION_NOT_SUPPORTED


class CredentialNotFoundError(CredentialProviderError):
    """No vault item holds a token for the requested registry."""

    kind = ErrorKind.NOT_FOUND


class AmbiguousItemError(CredentialProviderError):
    """Several vault items match one registry and no tie-break applies.

    Attributes:
        item_ids: Ids of the competing vault items
    """

    kind = ErrorKind.AMBIGUOUS_ITEM

    def __init__(self, message: str, item_ids: list[str], suggestion: str | None = None) -> None:
        self.item_ids = item_ids
        super().__init__(message, suggestion=suggestion)


class VaultAuthError(CredentialProviderError):
    """Base class for failures to obtain an unlocked vault session."""

    kind = ErrorKind.LOCKED_VAULT


class LockedVaultError(VaultAuthError):
    """Unlock or login was attempted and failed."""

    kind = ErrorKind.LOCKED_VAULT


class NoCredentialSourceError(VaultAuthError):
    """No way to obtain the master password (or account email) here."""

    kind = ErrorKind.NO_CREDENTIAL_SOURCE


class VaultGatewayError(CredentialProviderError):
    """Failure while running the vault CLI.

    Attributes:
        subcommand: The ``bw`` subcommand that failed (e.g. ``list``)
    """

    kind = ErrorKind.OTHER

    def __init__(self, message: str, subcommand: str, suggestion: str | None = None) -> None:
        self.subcommand = subcommand
        super().__init__(message, suggestion=suggestion)


class ToolNotFoundError(VaultGatewayError):
    """The ``bw`` executable is not installed or not on PATH."""

    kind = ErrorKind.TOOL_NOT_FOUND


class NonZeroExitError(VaultGatewayError):
    """The vault CLI exited with a failure status.

    Attributes:
        exit_code: Process exit status
        stderr: Redacted, truncated stderr excerpt
    """

    kind = ErrorKind.NON_ZERO_EXIT

    def __init__(self, message: str, subcommand: str, exit_code: int, stderr: str = "") -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message, subcommand=subcommand)


class AuthRejectedError(NonZeroExitError):
    """The vault CLI refused the call because the session is missing or invalid."""


class MalformedOutputError(VaultGatewayError):
    """The vault CLI produced output that does not match the expected shape."""

    kind = ErrorKind.MALFORMED_OUTPUT


class VaultTimeoutError(VaultGatewayError):
    """The vault CLI did not finish within the allowed time."""

    kind = ErrorKind.TIMEOUT


class VaultSyncError(VaultGatewayError):
    """Sync after a write failed; the change may not have reached the server."""

    kind = ErrorKind.SYNC_FAILED
