"""Gateway to the Bitwarden CLI.

Everything the provider does to the vault goes through :class:`VaultGateway`.
The production implementation, :class:`BitwardenCLI`, runs ``bw`` as a child
process; tests substitute an in-memory double that returns canned JSON.

Key Features:
    - The session key travels in the child's ``BW_SESSION`` environment
      variable, never in argv
    - ``--nointeraction`` stops ``bw`` from blocking on prompts
    - Every call is bounded by a timeout
    - Secrets are scrubbed from stderr before it lands in an exception or log

Example:
    >>> gateway = BitwardenCLI(timeout=30.0)
    >>> out = gateway.invoke(VaultCommand("list", ("items", "--url", url), session=key, expect_json=True))
    >>> for item in out.data:
    ...     print(item["name"])
"""

import json
import os
import shutil
import subprocess  # nosec B404
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from cargo_bitwarden.exceptions import (
    AuthRejectedError,
    MalformedOutputError,
    NonZeroExitError,
    ToolNotFoundError,
    VaultTimeoutError,
)
from cargo_bitwarden.utils.logging_config import get_logger

log = get_logger(__name__)

SESSION_ENV_VAR = "BW_SESSION"

REDACTED = "****"

# Longest stderr excerpt carried by an exception
MAX_STDERR_CHARS = 500

# Lower-cased stderr fragments meaning the session was refused
AUTH_REJECTION_MARKERS = (
    "you are not logged in",
    "not logged in",
    "vault is locked",
    "invalid master password",
    "session key is invalid",
    "invalid session",
    "username or password is incorrect",
)

DEFAULT_COMMANDS = ("bw", "bw.cmd") if sys.platform == "win32" else ("bw",)


@dataclass(frozen=True)
class VaultCommand:
    """A fully formed ``bw`` invocation.

    Attributes:
        subcommand: ``bw`` subcommand, e.g. ``list`` or ``create``
        args: Arguments following the subcommand
        stdin: Payload written to the child's stdin
        session: Session key, exported to the child as ``BW_SESSION``
        env: Extra environment variables for the child (e.g. for ``--passwordenv``)
        expect_json: Parse stdout as JSON
        secrets: Values to scrub from diagnostics
        timeout: Per-command override of the gateway timeout
    """

    subcommand: str
    args: tuple[str, ...] = ()
    stdin: str | None = field(default=None, repr=False)
    session: str | None = field(default=None, repr=False)
    env: Mapping[str, str] = field(default_factory=dict, repr=False)
    expect_json: bool = False
    secrets: tuple[str, ...] = field(default=(), repr=False)
    timeout: float | None = None

    def with_session(self, session: str | None) -> "VaultCommand":
        """Return a copy bound to ``session``."""
        return VaultCommand(
            subcommand=self.subcommand,
            args=self.args,
            stdin=self.stdin,
            session=session,
            env=self.env,
            expect_json=self.expect_json,
            secrets=self.secrets,
            timeout=self.timeout,
        )


@dataclass
class VaultOutput:
    """Result of a successful ``bw`` call.

    Attributes:
        stdout: Raw standard output
        data: Parsed JSON when the command expected it, else None
    """

    stdout: str
    data: Any = None


class VaultGateway(Protocol):
    """Capability for running vault CLI commands."""

    def invoke(self, command: VaultCommand) -> VaultOutput:
        """Run ``command`` and return its output.

        Raises:
            ToolNotFoundError: If the vault CLI is not installed
            NonZeroExitError: If the command exits with a failure status
            AuthRejectedError: If the failure is a refused session
            MalformedOutputError: If JSON output cannot be parsed
            VaultTimeoutError: If the command exceeds its timeout
        """
        ...


def redact(text: str, secrets: tuple[str, ...] | list[str]) -> str:
    """Replace every occurrence of each secret in ``text``."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    return text


def is_auth_rejection(stderr: str) -> bool:
    """Return True if ``stderr`` reports a missing, locked or invalid session."""
    lowered = stderr.lower()
    return any(marker in lowered for marker in AUTH_REJECTION_MARKERS)


class BitwardenCLI:
    """Runs the Bitwarden CLI as a subprocess.

    Args:
        command: Executable name or path; defaults to ``bw`` (or ``bw.cmd`` on Windows)
        timeout: Default seconds to wait for a command
    """

    def __init__(self, command: str | None = None, timeout: float = 60.0) -> None:
        self._command = command
        self.timeout = timeout
        self._executable: str | None = None

    @property
    def executable(self) -> str:
        """Absolute path of the vault CLI.

        Raises:
            ToolNotFoundError: If no candidate is found on PATH
        """
        if self._executable is None:
            candidates = (self._command,) if self._command else DEFAULT_COMMANDS
            for candidate in candidates:
                found = shutil.which(candidate)
                if found:
                    self._executable = found
                    break
            else:
                raise ToolNotFoundError(
                    f"Could not find the Bitwarden CLI ({', '.join(candidates)})",
                    subcommand="",
                    suggestion="Install it from https://bitwarden.com/help/cli/ or set CARGO_BW_COMMAND",
                )
        return self._executable

    def build_argv(self, command: VaultCommand) -> list[str]:
        return [self.executable, "--nointeraction", "--cleanexit", command.subcommand, *command.args]

    def _child_env(self, command: VaultCommand) -> dict[str, str]:
        env = dict(os.environ)
        env.pop(SESSION_ENV_VAR, None)
        if command.session:
            env[SESSION_ENV_VAR] = command.session
        env.update(command.env)
        return env

    def invoke(self, command: VaultCommand) -> VaultOutput:
        argv = self.build_argv(command)
        timeout = command.timeout or self.timeout
        secrets = tuple(s for s in (command.session, *command.secrets) if s)

        log.debug("bw_invoke", subcommand=command.subcommand, args=list(command.args), has_session=bool(command.session))

        try:
            result = subprocess.run(  # nosec B603
                argv,
                input=command.stdin,
                stdin=subprocess.DEVNULL if command.stdin is None else None,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
                env=self._child_env(command),
            )
        except OSError as e:
            raise ToolNotFoundError(
                f"Failed to spawn the Bitwarden CLI: {e.strerror or type(e).__name__}",
                subcommand=command.subcommand,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise VaultTimeoutError(
                f"`bw {command.subcommand}` did not finish within {timeout:g} seconds",
                subcommand=command.subcommand,
                suggestion="The vault CLI may be waiting for input; check `bw status` in a terminal",
            ) from e

        stderr = redact(result.stderr.strip(), secrets)[:MAX_STDERR_CHARS]

        if result.returncode != 0:
            log.debug("bw_failed", subcommand=command.subcommand, exit_code=result.returncode, stderr=stderr)
            error_cls = AuthRejectedError if is_auth_rejection(stderr) else NonZeroExitError
            detail = f": {stderr}" if stderr else ""
            raise error_cls(
                f"`bw {command.subcommand}` exited with status {result.returncode}{detail}",
                subcommand=command.subcommand,
                exit_code=result.returncode,
                stderr=stderr,
            )

        # --cleanexit turns some failures into exit 0 with only stderr output
        if not result.stdout.strip() and is_auth_rejection(stderr):
            raise AuthRejectedError(
                f"`bw {command.subcommand}` was rejected: {stderr}",
                subcommand=command.subcommand,
                exit_code=0,
                stderr=stderr,
            )

        if not command.expect_json:
            return VaultOutput(stdout=result.stdout)

        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise MalformedOutputError(
                f"`bw {command.subcommand}` did not return valid JSON: {e.msg} at position {e.pos}",
                subcommand=command.subcommand,
            ) from e

        return VaultOutput(stdout=result.stdout, data=data)
