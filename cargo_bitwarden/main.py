"""CLI entry point for the Bitwarden credential provider."""

import json
import sys

import click
from pydantic import ValidationError

from cargo_bitwarden.config.settings import LOG_LEVELS, ProviderSettings
from cargo_bitwarden.enums import DuplicatePolicy, ProviderAction
from cargo_bitwarden.exceptions import ConfigurationError, CredentialProviderError
from cargo_bitwarden.models.domain import RegistryContext
from cargo_bitwarden.protocol.server import CredentialProvider
from cargo_bitwarden.utils.logging_config import configure_logging, get_logger

log = get_logger(__name__)

NOT_FOR_DIRECT_USE = (
    "This is a Cargo credential provider backed by the Bitwarden CLI.\n"
    "It is meant to be launched by Cargo; add it to your Cargo configuration:\n\n"
    "    [registry]\n"
    '    global-credential-providers = ["cargo-credential-bitwarden"]\n\n'
    "To exercise it by hand, use --action get|store|erase with --index-url."
)


def _load_settings(email: str | None, sync: bool, duplicates: str | None) -> ProviderSettings:
    try:
        settings = ProviderSettings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid CARGO_BW_* environment settings: {e}") from e

    args: list[str] = []
    if email:
        args += ["--email", email]
    if sync:
        args.append("--sync")
    if duplicates:
        args += ["--duplicates", duplicates]
    return settings.with_args(args)


@click.command(name="cargo-credential-bitwarden", context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--cargo-plugin", is_flag=True, help="Speak Cargo's credential-provider protocol on stdin/stdout")
@click.option("--email", help="Bitwarden account email, used when a login is required")
@click.option("--sync", is_flag=True, help="Run `bw sync` before reads and after writes")
@click.option(
    "--duplicates",
    type=click.Choice([p.value for p in DuplicatePolicy]),
    help="What to do when several vault items match a registry",
)
@click.option(
    "--action",
    type=click.Choice([a.value for a in ProviderAction]),
    help="Run a single action instead of the plugin protocol",
)
@click.option("--index-url", help="Registry index URL (with --action)")
@click.option("--registry-name", help="Registry name (with --action)")
@click.option("--token-stdin", is_flag=True, help="Read the token to store from stdin (with --action store)")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Logging level (default: CARGO_BW_LOG_LEVEL or WARNING)",
)
def cli(
    cargo_plugin: bool,
    email: str | None,
    sync: bool,
    duplicates: str | None,
    action: str | None,
    index_url: str | None,
    registry_name: str | None,
    token_stdin: bool,
    log_level: str | None,
) -> None:
    """Cargo credential provider that keeps registry tokens in Bitwarden."""
    try:
        settings = _load_settings(email, sync, duplicates)
    except ConfigurationError as e:
        configure_logging(log_level or "WARNING")
        click.echo(click.style(f"Error: {e.message}", fg="red"), err=True)
        sys.exit(1)

    configure_logging(log_level or settings.log_level)
    provider = CredentialProvider(settings)

    if cargo_plugin:
        try:
            provider.serve(sys.stdin, sys.stdout)
        except KeyboardInterrupt:
            sys.exit(130)
        except Exception as e:
            click.echo(f"Unexpected error: {type(e).__name__}", err=True)
            log.error("provider_unexpected", exc_info=True)
            sys.exit(1)
        return

    if action is None:
        click.echo(NOT_FOR_DIRECT_USE, err=True)
        sys.exit(1)

    if not index_url:
        raise click.UsageError("--index-url is required with --action")

    ctx = RegistryContext(index_url=index_url, name=registry_name)
    token = None
    if action == ProviderAction.STORE.value and token_stdin:
        token = sys.stdin.readline().strip() or None

    try:
        response = provider.run_once(ProviderAction(action), ctx, token=token)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    except CredentialProviderError as e:
        click.echo(click.style(f"Error: {e.message}", fg="red"), err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Unexpected error: {type(e).__name__}", err=True)
        log.error("run_once_unexpected", exc_info=True)
        sys.exit(1)

    click.echo(json.dumps(response, separators=(",", ":")))

    if "Err" in response:
        err = response["Err"]
        message = err.get("message") or f"{err['kind']} for `{index_url}`"
        click.echo(click.style(f"Error: {message}", fg="red"), err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
