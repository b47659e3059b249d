"""
Provider settings using pydantic-settings.

Settings come from three layers, later ones winning:

1. Defaults declared on :class:`ProviderSettings`
2. ``CARGO_BW_*`` environment variables
3. Provider arguments, either on the command line or in the ``args`` list
   Cargo sends with every request (see :meth:`ProviderSettings.with_args`)
"""

from __future__ import annotations

from collections.abc import Sequence

import click
from click.core import ParameterSource
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from cargo_bitwarden.enums import DuplicatePolicy
from cargo_bitwarden.exceptions import ConfigurationError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ProviderSettings(BaseSettings):
    """Runtime configuration for the Bitwarden credential provider."""

    model_config = SettingsConfigDict(
        env_prefix="CARGO_BW_",
        case_sensitive=False,
        extra="ignore",
    )

    email: str | None = Field(default=None, description="Bitwarden account used when a login is required")
    sync: bool = Field(default=False, description="Run `bw sync` before reads and after writes")
    duplicates: DuplicatePolicy = Field(
        default=DuplicatePolicy.ERROR,
        description="What to do when several vault items match one registry",
    )
    command: str | None = Field(default=None, description="Path or name of the Bitwarden CLI executable")
    timeout: float = Field(default=60.0, gt=0, description="Seconds to wait for a `bw` command")
    unlock_timeout: float = Field(default=120.0, gt=0, description="Seconds to wait for `bw login`/`bw unlock`")
    password_env: str = Field(
        default="BW_PASSWORD",
        description="Environment variable holding the master password",
    )
    keyring_service: str | None = Field(
        default=None,
        description="OS keyring service under which the master password is stored (keyed by email)",
    )
    prompt: bool = Field(default=True, description="Prompt on the terminal for the master password")
    log_level: str = Field(default="WARNING", description="Minimum log level written to stderr")

    def with_args(self, args: Sequence[str]) -> ProviderSettings:
        """Return a copy with provider arguments applied on top.

        Args:
            args: Arguments such as ``["--email", "me@example.com", "--sync"]``

        Returns:
            New settings instance (self is unchanged)

        Raises:
            ConfigurationError: If an argument is unknown or malformed
        """
        if not args:
            return self

        overrides = parse_provider_args(args)
        try:
            return self.model_validate({**self.model_dump(), **overrides})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid provider arguments: {e}") from e


@click.command(name="cargo-credential-bitwarden", add_help_option=False)
@click.option("--email")
@click.option("--sync", is_flag=True)
@click.option("--duplicates", type=click.Choice([p.value for p in DuplicatePolicy]))
def _provider_args(**kwargs: object) -> None:
    """Parser for the arguments Cargo forwards from the registry config."""


def parse_provider_args(args: Sequence[str]) -> dict[str, object]:
    """Parse provider arguments into setting overrides.

    Only options that were actually given appear in the result.

    Raises:
        ConfigurationError: On unknown options or stray positional arguments
    """
    try:
        ctx = _provider_args.make_context(_provider_args.name, list(args))
    except click.ClickException as e:
        raise ConfigurationError(
            e.format_message(),
            suggestion="Supported arguments are --email <address>, --sync and --duplicates {error,newest}",
        ) from e

    return {
        key: value
        for key, value in ctx.params.items()
        if ctx.get_parameter_source(key) == ParameterSource.COMMANDLINE
    }
