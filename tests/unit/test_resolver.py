"""Tests for vault item resolution."""

import base64
import json

import pytest

from cargo_bitwarden.credentials import EnvironmentSource
from cargo_bitwarden.enums import DuplicatePolicy
from cargo_bitwarden.exceptions import AmbiguousItemError, MalformedOutputError
from cargo_bitwarden.models import Credential, RegistryContext
from cargo_bitwarden.vault.gateway import VaultOutput
from cargo_bitwarden.vault.resolver import VaultItemResolver, canonical_item_name
from cargo_bitwarden.vault.session import SessionManager
from tests.fake_vault import INDEX_URL


@pytest.fixture
def make_resolver(fake_vault, environ):
    def _make(duplicates=DuplicatePolicy.ERROR) -> VaultItemResolver:
        sessions = SessionManager(
            fake_vault,
            password_sources=[EnvironmentSource("BW_PASSWORD", environ)],
            environ=environ,
        )
        return VaultItemResolver(sessions, duplicates=duplicates)

    return _make


@pytest.fixture
def resolver(make_resolver) -> VaultItemResolver:
    return make_resolver()


class TestCanonicalItemName:
    def test_uses_registry_name(self):
        ctx = RegistryContext(INDEX_URL, name="my-registry")

        assert canonical_item_name(ctx) == "Cargo registry token for my-registry"

    def test_falls_back_to_host(self):
        ctx = RegistryContext("sparse+https://index.crates.io/")

        assert canonical_item_name(ctx) == "Cargo registry token for index.crates.io"

    def test_is_deterministic(self):
        assert canonical_item_name(RegistryContext(INDEX_URL)) == canonical_item_name(RegistryContext(INDEX_URL))

    def test_unparseable_url(self):
        assert canonical_item_name(RegistryContext("???")) == "Cargo registry token for <unknown>"


class TestFind:
    """Test looking up the item for a registry."""

    def test_no_items(self, resolver, ctx):
        assert resolver.find(ctx) is None

    def test_exact_uri_match(self, resolver, fake_vault, ctx):
        item = fake_vault.add_item()

        found = resolver.find(ctx)

        assert found.id == item["id"]
        assert found.login.password == "stored-token"

    def test_similar_uris_do_not_match(self, resolver, fake_vault, ctx):
        # bw list --url matches loosely; only the verbatim index URL counts
        fake_vault.add_item(uri="https://registry.example.com/index/")
        fake_vault.add_item(uri="sparse+https://registry.example.com/index")
        fake_vault.add_item(uri="sparse+https://registry.example.com/index/extra")

        assert resolver.find(ctx) is None

    def test_non_login_items_ignored(self, resolver, fake_vault, ctx):
        fake_vault.add_item(item_type=2)

        assert resolver.find(ctx) is None

    def test_unparseable_entries_skipped(self, resolver, fake_vault, ctx):
        fake_vault.items["broken"] = {"object": "item", "type": 1}
        item = fake_vault.add_item()

        assert resolver.find(ctx).id == item["id"]

    def test_list_must_return_array(self, resolver, fake_vault, ctx):
        fake_vault._list = lambda command: VaultOutput(stdout="{}", data={})

        with pytest.raises(MalformedOutputError):
            resolver.find(ctx)

    def test_queries_by_index_url(self, resolver, fake_vault, ctx):
        resolver.find(ctx)

        assert fake_vault.calls[-1].args == ("items", "--url", INDEX_URL)


class TestDuplicates:
    """Test the duplicate-item policy."""

    def test_error_policy(self, resolver, fake_vault, ctx):
        first = fake_vault.add_item(revision_date="2024-01-01T00:00:00.000Z")
        second = fake_vault.add_item(revision_date="2024-02-01T00:00:00.000Z")

        with pytest.raises(AmbiguousItemError) as exc_info:
            resolver.find(ctx)

        assert exc_info.value.item_ids == sorted([first["id"], second["id"]])
        assert "newest" in exc_info.value.suggestion

    def test_newest_policy(self, make_resolver, fake_vault, ctx):
        fake_vault.add_item(password="old", revision_date="2024-01-01T00:00:00.000Z")
        newest = fake_vault.add_item(password="new", revision_date="2024-02-01T00:00:00.000Z")
        fake_vault.add_item(password="older", revision_date="2023-06-01T00:00:00.000Z")

        found = make_resolver(DuplicatePolicy.NEWEST).find(ctx)

        assert found.id == newest["id"]

    def test_newest_policy_breaks_ties_by_id(self, make_resolver, fake_vault, ctx):
        fake_vault.add_item(id="aaa", revision_date="2024-01-01T00:00:00.000Z")
        fake_vault.add_item(id="bbb", revision_date="2024-01-01T00:00:00.000Z")

        assert make_resolver(DuplicatePolicy.NEWEST).find(ctx).id == "bbb"

    def test_newest_policy_needs_revision_dates(self, make_resolver, fake_vault, ctx):
        fake_vault.add_item(revision_date="2024-01-01T00:00:00.000Z")
        fake_vault.add_item()

        with pytest.raises(AmbiguousItemError):
            make_resolver(DuplicatePolicy.NEWEST).find(ctx)


class TestUpsert:
    """Test storing tokens."""

    def test_creates_item(self, resolver, fake_vault, ctx):
        item = resolver.upsert(ctx, Credential(token="new-token"))

        stored = fake_vault.items[item.id]
        assert stored["name"] == "Cargo registry token for example"
        assert stored["type"] == 1
        assert stored["login"]["password"] == "new-token"
        assert stored["login"]["uris"] == [{"uri": INDEX_URL, "match": 1}]
        assert fake_vault.subcommands()[-2:] == ["encode", "create"]

    def test_updates_existing_item_in_place(self, resolver, fake_vault, ctx):
        existing = fake_vault.add_item(
            name="Team registry",
            notes="rotated quarterly",
            fields=[{"name": "owner", "value": "infra", "type": 0}],
            folderId="folder-1",
        )

        item = resolver.upsert(ctx, Credential(token="rotated"))

        assert item.id == existing["id"]
        assert len(fake_vault.items) == 1
        stored = fake_vault.items[existing["id"]]
        assert stored["login"]["password"] == "rotated"
        assert stored["name"] == "Team registry"
        assert stored["notes"] == "rotated quarterly"
        assert stored["fields"] == [{"name": "owner", "value": "infra", "type": 0}]
        assert stored["folderId"] == "folder-1"
        assert fake_vault.calls[-1].args == ("item", existing["id"])

    def test_username_only_changed_when_given(self, resolver, fake_vault, ctx):
        existing = fake_vault.add_item()
        fake_vault.items[existing["id"]]["login"]["username"] = "ci-bot"

        resolver.upsert(ctx, Credential(token="t1"))
        assert fake_vault.items[existing["id"]]["login"]["username"] == "ci-bot"

        resolver.upsert(ctx, Credential(token="t2", username="deploy"))
        assert fake_vault.items[existing["id"]]["login"]["username"] == "deploy"

    def test_payload_goes_through_stdin(self, resolver, fake_vault, ctx):
        resolver.upsert(ctx, Credential(token="secret-token"))

        encode, create = fake_vault.calls[-2:]
        assert json.loads(encode.stdin)["login"]["password"] == "secret-token"
        assert json.loads(base64.b64decode(create.stdin))["login"]["password"] == "secret-token"
        for call in (encode, create):
            assert all("secret-token" not in arg for arg in call.args)
            assert "secret-token" in call.secrets

    def test_empty_encode_output(self, resolver, fake_vault, ctx):
        fake_vault._encode = lambda command: VaultOutput(stdout="")

        with pytest.raises(MalformedOutputError):
            resolver.upsert(ctx, Credential(token="t"))

        assert "create" not in fake_vault.subcommands()


class TestDelete:
    def test_deletes_matching_item(self, resolver, fake_vault, ctx):
        item = fake_vault.add_item()
        other = fake_vault.add_item(uri="sparse+https://other.example.com/")

        assert resolver.delete(ctx) is True
        assert list(fake_vault.items) == [other["id"]]
        assert fake_vault.calls[-1].args == ("item", item["id"])

    def test_nothing_to_delete(self, resolver, fake_vault, ctx):
        assert resolver.delete(ctx) is False
        assert "delete" not in fake_vault.subcommands()
