"""Maps registries onto Bitwarden vault items.

A registry's token lives in a login item whose URI list contains the
registry's index URL verbatim. New items are named deterministically from the
registry so the same registry always produces the same item name.

Items are fetched fresh for every operation; nothing is cached between calls
because other clients may change the vault at any time.
"""

import json

from pydantic import ValidationError

from cargo_bitwarden.enums import DuplicatePolicy
from cargo_bitwarden.exceptions import AmbiguousItemError, MalformedOutputError
from cargo_bitwarden.models.domain import Credential, RegistryContext
from cargo_bitwarden.models.vault import URI_MATCH_HOST, LoginFields, LoginUri, NewLoginItem, VaultItem
from cargo_bitwarden.utils.logging_config import get_logger
from cargo_bitwarden.vault.gateway import VaultCommand, VaultOutput
from cargo_bitwarden.vault.session import SessionManager

log = get_logger(__name__)


def canonical_item_name(ctx: RegistryContext) -> str:
    """Name given to the vault item created for ``ctx``.

    Example:
        >>> canonical_item_name(RegistryContext("sparse+https://index.crates.io/"))
        'Cargo registry token for index.crates.io'
    """
    label = ctx.name or ctx.host or "<unknown>"
    return f"Cargo registry token for {label}"


class VaultItemResolver:
    """Finds, creates, updates and deletes the vault item for a registry.

    Args:
        sessions: Session manager used to run every vault command
        duplicates: Policy applied when several items match one registry
    """

    def __init__(self, sessions: SessionManager, duplicates: DuplicatePolicy = DuplicatePolicy.ERROR) -> None:
        self.sessions = sessions
        self.duplicates = duplicates

    def find(self, ctx: RegistryContext) -> VaultItem | None:
        """Return the login item holding the token for ``ctx``, if any.

        Raises:
            AmbiguousItemError: If several items match and the policy cannot pick one
            MalformedOutputError: If ``bw list items`` does not return a list
        """
        output = self.sessions.run(VaultCommand("list", ("items", "--url", ctx.index_url), expect_json=True))
        if not isinstance(output.data, list):
            raise MalformedOutputError("`bw list items` did not return a list", subcommand="list")

        matches = []
        for entry in output.data:
            try:
                item = VaultItem.model_validate(entry)
            except ValidationError:
                log.debug("vault_item_skipped", reason="unparseable")
                continue
            if item.is_login and item.login is not None and item.login.has_uri(ctx.index_url):
                matches.append(item)

        return self._choose(ctx, matches)

    def _choose(self, ctx: RegistryContext, matches: list[VaultItem]) -> VaultItem | None:
        if not matches:
            return None
        if len(matches) == 1:
            return matches[0]

        item_ids = sorted(item.id for item in matches)
        message = f"{len(matches)} Bitwarden logins match registry `{ctx.index_url}`"
        suggestion = "Delete the excess entries, or pass --duplicates newest to use the most recently modified one"

        if self.duplicates is DuplicatePolicy.ERROR:
            raise AmbiguousItemError(message, item_ids=item_ids, suggestion=suggestion)

        if any(item.revision_date is None for item in matches):
            raise AmbiguousItemError(
                f"{message} and not all of them carry a revision date",
                item_ids=item_ids,
                suggestion="Delete the excess entries",
            )

        chosen = max(matches, key=lambda item: (item.revision_date, item.id))
        log.warning("duplicate_vault_items", registry=ctx.index_url, item_ids=item_ids, chosen=chosen.id)
        return chosen

    def upsert(self, ctx: RegistryContext, credential: Credential) -> VaultItem:
        """Store ``credential`` for ``ctx``, editing the existing item if there is one.

        An existing item keeps its id, name, folder and every other field;
        only the password (and the username, when the credential has one)
        change.

        Returns:
            The item as reported back by the vault
        """
        existing = self.find(ctx)

        if existing is not None and existing.login is not None:
            log.info("vault_item_updating", registry=ctx.index_url, item_id=existing.id)
            existing.login.password = credential.token
            if credential.username:
                existing.login.username = credential.username
            command = self._write_command("edit", ("item", existing.id), existing.to_payload(), credential)
        else:
            item = NewLoginItem(
                name=canonical_item_name(ctx),
                login=LoginFields(
                    username=credential.username,
                    password=credential.token,
                    uris=[LoginUri(uri=ctx.index_url, match=URI_MATCH_HOST)],
                ),
            )
            log.info("vault_item_creating", registry=ctx.index_url, name=item.name)
            command = self._write_command("create", ("item",), item.to_payload(), credential)

        return self._parse_item(self.sessions.run(command), command.subcommand)

    def delete(self, ctx: RegistryContext) -> bool:
        """Delete the item for ``ctx``.

        Returns:
            True if an item was deleted, False if there was none
        """
        existing = self.find(ctx)
        if existing is None:
            log.info("vault_item_absent", registry=ctx.index_url)
            return False

        self.sessions.run(VaultCommand("delete", ("item", existing.id)))
        log.info("vault_item_deleted", registry=ctx.index_url, item_id=existing.id)
        return True

    def _write_command(
        self, subcommand: str, args: tuple[str, ...], payload: dict, credential: Credential
    ) -> VaultCommand:
        encoded = self._encode(payload, credential)
        return VaultCommand(
            subcommand,
            args=args,
            stdin=encoded,
            expect_json=True,
            secrets=(credential.token, encoded),
        )

    def _encode(self, payload: dict, credential: Credential) -> str:
        """Encode an item body with ``bw encode``."""
        body = json.dumps(payload)
        output = self.sessions.run(VaultCommand("encode", stdin=body, secrets=(credential.token, body)))
        encoded = output.stdout.strip()
        if not encoded:
            raise MalformedOutputError("`bw encode` returned nothing", subcommand="encode")
        return encoded

    @staticmethod
    def _parse_item(output: VaultOutput, subcommand: str) -> VaultItem:
        try:
            return VaultItem.model_validate(output.data)
        except ValidationError as e:
            raise MalformedOutputError(f"`bw {subcommand} item` returned an unexpected item", subcommand=subcommand) from e
