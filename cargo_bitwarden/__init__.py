"""Cargo credential provider that stores registry tokens in a Bitwarden vault."""

__version__ = "0.1.0"
