"""Configuration for the Bitwarden credential provider."""

from cargo_bitwarden.config.settings import LOG_LEVELS, ProviderSettings, parse_provider_args

__all__ = ["LOG_LEVELS", "ProviderSettings", "parse_provider_args"]
