"""Request loop between Cargo and the protocol adapter.

:class:`CredentialProvider` owns the per-process state: base settings and one
:class:`~cargo_bitwarden.protocol.adapter.ProtocolAdapter` per distinct set of
provider arguments, so a session unlocked for one request is reused by the
next.
"""

from collections.abc import Callable, Mapping
from typing import IO, Any

from cargo_bitwarden.config.settings import ProviderSettings
from cargo_bitwarden.enums import ProviderAction
from cargo_bitwarden.exceptions import CredentialProviderError
from cargo_bitwarden.models.domain import RegistryContext
from cargo_bitwarden.protocol.adapter import ProtocolAdapter, error_response
from cargo_bitwarden.protocol.messages import (
    HELLO,
    PROTOCOL_VERSION,
    CredentialRequest,
    RegistryInfo,
    encode,
    parse_request,
)
from cargo_bitwarden.utils.logging_config import get_logger
from cargo_bitwarden.vault.gateway import BitwardenCLI, VaultGateway

log = get_logger(__name__)

# Cargo request kinds for each provider action
ACTION_KINDS = {
    ProviderAction.GET: "get",
    ProviderAction.STORE: "login",
    ProviderAction.ERASE: "logout",
}


def _default_gateway(settings: ProviderSettings) -> VaultGateway:
    return BitwardenCLI(command=settings.command, timeout=settings.timeout)


class CredentialProvider:
    """Serves Cargo credential requests.

    Args:
        settings: Base settings (defaults, environment, command line)
        gateway_factory: Builds a vault gateway for a set of settings
        environ: Environment for session and password lookup (defaults to ``os.environ``)
    """

    def __init__(
        self,
        settings: ProviderSettings,
        gateway_factory: Callable[[ProviderSettings], VaultGateway] = _default_gateway,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.settings = settings
        self.gateway_factory = gateway_factory
        self.environ = environ
        self._adapters: dict[tuple[str, ...], ProtocolAdapter] = {}

    def adapter_for(self, args: list[str]) -> ProtocolAdapter:
        """Return the adapter for a request's provider arguments.

        Raises:
            ConfigurationError: If the arguments are invalid
        """
        key = tuple(args)
        if key not in self._adapters:
            settings = self.settings.with_args(args)
            self._adapters[key] = ProtocolAdapter(
                self.gateway_factory(settings),
                settings,
                environ=self.environ,
            )
        return self._adapters[key]

    def handle(self, request: CredentialRequest) -> dict[str, Any]:
        try:
            adapter = self.adapter_for(request.args)
        except CredentialProviderError as e:
            log.warning("provider_arguments_rejected", error=e.message)
            return error_response(e)
        return adapter.handle(request)

    def handle_line(self, line: str) -> dict[str, Any]:
        """Decode one request line and answer it."""
        try:
            request = parse_request(line)
        except CredentialProviderError as e:
            log.warning("request_rejected", error=e.message)
            return error_response(e)
        return self.handle(request)

    def serve(self, stdin: IO[str], stdout: IO[str]) -> None:
        """Speak the plugin protocol until Cargo closes stdin."""
        self._write(stdout, HELLO)
        for line in stdin:
            if not line.strip():
                continue
            self._write(stdout, self.handle_line(line))
        log.debug("provider_stdin_closed")

    def run_once(self, action: ProviderAction, ctx: RegistryContext, token: str | None = None) -> dict[str, Any]:
        """Answer a single request built from command-line arguments."""
        request = CredentialRequest(
            v=PROTOCOL_VERSION,
            registry=RegistryInfo(index_url=ctx.index_url, name=ctx.name),
            kind=ACTION_KINDS[action],
            token=token,
        )
        return self.handle(request)

    @staticmethod
    def _write(stdout: IO[str], message: dict[str, Any]) -> None:
        stdout.write(encode(message) + "\n")
        stdout.flush()
