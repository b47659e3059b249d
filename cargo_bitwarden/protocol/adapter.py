"""Protocol adapter: Cargo credential actions on top of the Bitwarden vault.

Each action runs the same short state machine::

    Idle -> SessionEstablished -> Read | Write -> Responded

``get`` syncs (optionally) and reads, ``store`` writes then syncs, ``erase``
syncs, deletes, then syncs again. Any provider error short-circuits to an
error response. :func:`error_response` is the only place internal errors are
turned into Cargo's error schema.
"""

from collections.abc import Callable, Mapping, Sequence
from typing import Any

import structlog

from cargo_bitwarden.config.settings import ProviderSettings
from cargo_bitwarden.credentials.sources import (
    EnvironmentSource,
    KeyringSource,
    MasterPasswordSource,
    PromptSource,
)
from cargo_bitwarden.enums import ErrorKind, SyncPhase
from cargo_bitwarden.exceptions import (
    CredentialNotFoundError,
    CredentialProviderError,
    NoCredentialSourceError,
    OperationNotSupportedError,
)
from cargo_bitwarden.models.domain import Credential, RegistryContext
from cargo_bitwarden.protocol.messages import CredentialRequest, ok_get, ok_login, ok_logout
from cargo_bitwarden.utils.console import console_available, prompt_secret
from cargo_bitwarden.utils.logging_config import get_logger
from cargo_bitwarden.vault.gateway import VaultGateway
from cargo_bitwarden.vault.resolver import VaultItemResolver
from cargo_bitwarden.vault.session import SessionManager
from cargo_bitwarden.vault.sync import SyncCoordinator

log = get_logger(__name__)

TokenReader = Callable[[RegistryContext], str]


def default_password_sources(
    settings: ProviderSettings, environ: Mapping[str, str] | None = None
) -> list[MasterPasswordSource]:
    """Master-password sources enabled by ``settings``, in priority order."""
    sources: list[MasterPasswordSource] = [EnvironmentSource(settings.password_env, environ)]
    if settings.keyring_service:
        sources.append(KeyringSource(settings.keyring_service))
    if settings.prompt:
        sources.append(PromptSource())
    return sources


def read_token(ctx: RegistryContext) -> str:
    """Ask the user for the registry token on the terminal.

    Raises:
        NoCredentialSourceError: If there is no terminal or nothing was entered
    """
    if not console_available():
        raise NoCredentialSourceError(
            "No token was supplied and there is no terminal to ask for one",
            suggestion="Run `cargo login` with the token as an argument or on stdin",
        )
    label = ctx.name or ctx.index_url
    token = prompt_secret(f"please paste the token for {label} below")
    if not token:
        raise NoCredentialSourceError("Please provide a non-empty token")
    return token


def _caused_by(error: BaseException) -> list[str]:
    causes = []
    cause = error.__cause__
    while cause is not None:
        # Foreign exceptions may echo their inputs, so only their type is reported
        if isinstance(cause, CredentialProviderError):
            causes.append(str(cause))
        else:
            causes.append(type(cause).__name__)
        cause = cause.__cause__
    return causes


def error_response(error: CredentialProviderError) -> dict[str, Any]:
    """Translate a provider error into Cargo's ``Err`` response."""
    if error.kind is ErrorKind.NOT_FOUND:
        return {"Err": {"kind": "not-found"}}
    if error.kind is ErrorKind.OPERATION_NOT_SUPPORTED:
        return {"Err": {"kind": "operation-not-supported"}}

    body: dict[str, Any] = {"kind": "other", "message": str(error)}
    causes = _caused_by(error)
    if causes:
        body["caused-by"] = causes
    return {"Err": body}


class ProtocolAdapter:
    """Drives session, sync and item resolution for one set of settings.

    Args:
        gateway: Vault CLI gateway
        settings: Effective provider settings
        password_sources: Master-password sources; derived from settings if omitted
        environ: Environment used for ``BW_SESSION`` and the password variable
        token_reader: Called for ``login`` requests that carry no token
    """

    def __init__(
        self,
        gateway: VaultGateway,
        settings: ProviderSettings,
        password_sources: Sequence[MasterPasswordSource] | None = None,
        environ: Mapping[str, str] | None = None,
        token_reader: TokenReader = read_token,
    ) -> None:
        self.settings = settings
        if password_sources is None:
            password_sources = default_password_sources(settings, environ)
        self.sessions = SessionManager(
            gateway,
            password_sources=password_sources,
            email=settings.email,
            unlock_timeout=settings.unlock_timeout,
            environ=environ,
        )
        self.resolver = VaultItemResolver(self.sessions, duplicates=settings.duplicates)
        self.syncer = SyncCoordinator(self.sessions, enabled=settings.sync)
        self.token_reader = token_reader

    def get(self, ctx: RegistryContext) -> Credential:
        """Read the token stored for ``ctx``.

        Raises:
            CredentialNotFoundError: If no vault item holds a token for the registry
        """
        self.sessions.begin_operation()
        self.sessions.ensure_session()
        self.syncer.maybe_sync(SyncPhase.BEFORE_READ)

        item = self.resolver.find(ctx)
        if item is None or item.login is None or not item.login.password:
            raise CredentialNotFoundError(f"No Bitwarden login holds a token for `{ctx.index_url}`")

        return Credential(token=item.login.password, username=item.login.username)

    def store(self, ctx: RegistryContext, credential: Credential) -> None:
        """Save ``credential`` for ``ctx``, replacing any token already stored."""
        self.sessions.begin_operation()
        self.sessions.ensure_session()
        self.resolver.upsert(ctx, credential)
        self.syncer.maybe_sync(SyncPhase.AFTER_WRITE)

    def erase(self, ctx: RegistryContext) -> None:
        """Remove the token for ``ctx``. Succeeds when there is nothing to remove."""
        self.sessions.begin_operation()
        self.sessions.ensure_session()
        self.syncer.maybe_sync(SyncPhase.BEFORE_READ)
        if self.resolver.delete(ctx):
            self.syncer.maybe_sync(SyncPhase.AFTER_WRITE)

    def handle(self, request: CredentialRequest) -> dict[str, Any]:
        """Answer one Cargo request with an ``Ok`` or ``Err`` response."""
        ctx = request.context()
        with structlog.contextvars.bound_contextvars(registry=ctx.index_url, request_kind=request.kind):
            try:
                response = self._dispatch(request, ctx)
            except CredentialProviderError as e:
                level = "info" if e.kind is ErrorKind.NOT_FOUND else "warning"
                getattr(log, level)("credential_request_failed", error_kind=e.kind.value, error=e.message)
                return error_response(e)
            except Exception as e:
                log.error("credential_request_crashed", error_type=type(e).__name__)
                error = CredentialProviderError(f"Unexpected {type(e).__name__} while handling `{request.kind}`")
                return error_response(error)

            log.info("credential_request_completed")
            return response

    def _dispatch(self, request: CredentialRequest, ctx: RegistryContext) -> dict[str, Any]:
        if request.kind == "get":
            return ok_get(self.get(ctx).token)
        if request.kind == "login":
            token = request.token or self.token_reader(ctx)
            self.store(ctx, Credential(token=token))
            return ok_login()
        if request.kind == "logout":
            self.erase(ctx)
            return ok_logout()
        raise OperationNotSupportedError(f"Unsupported credential action `{request.kind}`")
