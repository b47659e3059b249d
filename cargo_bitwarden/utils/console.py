"""Terminal prompts that never touch the protocol streams.

Cargo talks to the provider over stdin/stdout, so secrets typed by the user
must be read from the controlling terminal instead. ``click.prompt`` with
``hide_input=True`` goes through :func:`getpass.getpass`, which opens the
terminal directly; these helpers only make sure one exists first so that
getpass never falls back to reading the protocol stream.
"""

import os
import sys

import click

from cargo_bitwarden.exceptions import NoCredentialSourceError


def console_available() -> bool:
    """Return True if a controlling terminal can be opened for prompting."""
    if sys.platform == "win32":
        # getpass reads the console through msvcrt
        return True
    try:
        fd = os.open("/dev/tty", os.O_RDWR | os.O_NOCTTY)
    except OSError:
        return False
    os.close(fd)
    return True


def prompt_secret(text: str) -> str:
    """Prompt for a secret on the terminal, echoing the question to stderr.

    Args:
        text: Prompt shown to the user

    Returns:
        The entered value with surrounding whitespace removed

    Raises:
        NoCredentialSourceError: If the user cancels the prompt
    """
    try:
        value = click.prompt(text, hide_input=True, err=True, show_default=False)
    except click.Abort:
        raise NoCredentialSourceError("The prompt was cancelled") from None
    return str(value).strip()
