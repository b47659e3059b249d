"""Session management for the Bitwarden vault.

Every vault read or write needs an unlocked session key. The
:class:`SessionManager` obtains one lazily, caches it for the rest of the
process, and recovers once per operation from a rejected session.

Resolution order:
    1. The cached session, if any
    2. ``BW_SESSION`` from the environment, trialled with ``bw status``
    3. ``bw login`` (account not logged in) or ``bw unlock`` (vault locked),
       with the master password handed over through ``--passwordenv``

A session key that the vault rejected is remembered and never tried again.
"""

import os
import secrets
from collections.abc import Mapping, Sequence

from pydantic import ValidationError

from cargo_bitwarden.credentials.sources import MasterPasswordSource, first_master_password
from cargo_bitwarden.enums import SessionSource
from cargo_bitwarden.exceptions import (
    AuthRejectedError,
    LockedVaultError,
    MalformedOutputError,
    NoCredentialSourceError,
    NonZeroExitError,
)
from cargo_bitwarden.models.domain import VaultSession
from cargo_bitwarden.models.vault import VaultStatus
from cargo_bitwarden.utils.logging_config import get_logger
from cargo_bitwarden.vault.gateway import SESSION_ENV_VAR, VaultCommand, VaultGateway, VaultOutput

log = get_logger(__name__)


class SessionManager:
    """Owns the vault session for one provider process.

    Args:
        gateway: Vault CLI gateway
        password_sources: Master-password sources in priority order
        email: Account email for ``bw login`` when not yet logged in
        unlock_timeout: Seconds allowed for ``bw login``/``bw unlock``
        environ: Environment to read ``BW_SESSION`` from (defaults to ``os.environ``)
    """

    def __init__(
        self,
        gateway: VaultGateway,
        password_sources: Sequence[MasterPasswordSource] = (),
        email: str | None = None,
        unlock_timeout: float | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.gateway = gateway
        self.password_sources = tuple(password_sources)
        self.email = email
        self.unlock_timeout = unlock_timeout
        self._environ = environ if environ is not None else os.environ
        self._session: VaultSession | None = None
        self._rejected: set[str] = set()
        self._reunlocked = False
        self.unlock_count = 0

    @property
    def session(self) -> VaultSession | None:
        """The cached session, if one has been established."""
        return self._session

    def ensure_session(self) -> VaultSession:
        """Return an unlocked session, creating one if necessary.

        Raises:
            LockedVaultError: If login or unlock fails
            NoCredentialSourceError: If no master password (or email) is available
        """
        if self._session is not None:
            return self._session

        env_token = self._environ.get(SESSION_ENV_VAR)
        if env_token and env_token not in self._rejected:
            if self._trial(env_token):
                self._session = VaultSession(session_token=env_token, source=SessionSource.ENVIRONMENT)
                log.debug("session_from_environment")
                return self._session
            log.warning("environment_session_rejected", var_name=SESSION_ENV_VAR)
            self._rejected.add(env_token)

        self._session = self._unlock()
        return self._session

    def invalidate(self) -> None:
        """Drop the cached session and never reuse its key."""
        if self._session is not None:
            self._rejected.add(self._session.session_token)
            log.info("session_invalidated", source=self._session.source.value)
        self._session = None

    def begin_operation(self) -> None:
        """Start a provider operation with a fresh re-unlock allowance."""
        self._reunlocked = False

    def run(self, command: VaultCommand) -> VaultOutput:
        """Invoke ``command`` with the current session.

        If the vault rejects the session, the session is invalidated, a fresh
        unlock is attempted and the command retried once. Only one such
        re-unlock is allowed between calls to :meth:`begin_operation`.

        Raises:
            LockedVaultError: If the session is rejected after the re-unlock
        """
        session = self.ensure_session()
        try:
            return self.gateway.invoke(command.with_session(session.session_token))
        except AuthRejectedError as e:
            log.info("session_rejected", subcommand=command.subcommand)
            self.invalidate()
            if self._reunlocked:
                raise LockedVaultError(
                    f"Bitwarden rejected the session for `bw {command.subcommand}` after unlocking again"
                ) from e
            self._reunlocked = True

        session = self.ensure_session()
        try:
            return self.gateway.invoke(command.with_session(session.session_token))
        except AuthRejectedError as e:
            self.invalidate()
            raise LockedVaultError(
                f"Bitwarden rejected the session for `bw {command.subcommand}` after unlocking again"
            ) from e

    def status(self, session: str | None = None) -> VaultStatus:
        """Run ``bw status``, optionally against a session key.

        Raises:
            MalformedOutputError: If the output is not a status object
        """
        output = self.gateway.invoke(VaultCommand("status", session=session, expect_json=True))
        try:
            return VaultStatus.model_validate(output.data)
        except ValidationError as e:
            raise MalformedOutputError("Unexpected `bw status` output", subcommand="status") from e

    def _trial(self, token: str) -> bool:
        try:
            return self.status(session=token).unlocked
        except AuthRejectedError:
            return False

    def _unlock(self) -> VaultSession:
        status = self.status()
        email = self.email or status.user_email

        # The password reaches bw only through this child-only variable
        password_var = f"CARGO_BW_MASTER_{secrets.token_hex(4).upper()}"
        if status.authenticated:
            args: tuple[str, ...] = ("--raw", "--passwordenv", password_var)
            subcommand = "unlock"
        elif email:
            args = (email, "--raw", "--passwordenv", password_var)
            subcommand = "login"
        else:
            raise NoCredentialSourceError(
                "Bitwarden CLI is not logged in and no account email is configured",
                suggestion="Pass --email <address> in the registry's credential-provider args",
            )

        password = first_master_password(self.password_sources, email)
        command = VaultCommand(
            subcommand,
            args=args,
            env={password_var: password},
            secrets=(password,),
            timeout=self.unlock_timeout,
        )

        try:
            output = self.gateway.invoke(command)
        except NonZeroExitError as e:
            raise LockedVaultError(
                f"`bw {subcommand}` failed (exit status {e.exit_code})",
                suggestion="Check the master password and account email",
            ) from e

        lines = output.stdout.strip().splitlines()
        token = lines[0].strip() if lines else ""
        if not token:
            raise LockedVaultError(f"`bw {subcommand}` did not return a session key")

        self.unlock_count += 1
        log.info("vault_unlocked", method=subcommand)
        return VaultSession(session_token=token, source=SessionSource.INTERACTIVE_UNLOCK)
