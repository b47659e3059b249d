"""Tests for the provider request loop."""

import io
import json
from unittest.mock import patch

import click
import pytest

from cargo_bitwarden.config import ProviderSettings
from cargo_bitwarden.enums import ProviderAction
from cargo_bitwarden.protocol.server import CredentialProvider
from tests.fake_vault import INDEX_URL


def request_line(kind="get", args=None, **fields) -> str:
    line = {
        "v": 1,
        "registry": {"index-url": INDEX_URL, "name": "example"},
        "kind": kind,
        "args": args or [],
        **fields,
    }
    return json.dumps(line) + "\n"


@pytest.fixture
def provider(fake_vault, environ):
    return CredentialProvider(
        ProviderSettings(prompt=False),
        gateway_factory=lambda settings: fake_vault,
        environ=environ,
    )


def serve(provider, *lines) -> list[dict]:
    stdout = io.StringIO()
    provider.serve(io.StringIO("".join(lines)), stdout)
    return [json.loads(line) for line in stdout.getvalue().splitlines()]


class TestServe:
    """Test the plugin loop."""

    def test_hello_only(self, provider):
        assert serve(provider) == [{"v": [1]}]

    def test_one_response_per_request(self, provider, fake_vault):
        fake_vault.add_item()

        responses = serve(provider, request_line("get"), request_line("logout"), request_line("get"))

        assert responses == [
            {"v": [1]},
            {"Ok": {"kind": "get", "token": "stored-token", "cache": "session", "operation_independent": True}},
            {"Ok": {"kind": "logout"}},
            {"Err": {"kind": "not-found"}},
        ]

    def test_blank_lines_skipped(self, provider):
        responses = serve(provider, "\n", "   \n", request_line("logout"))

        assert responses == [{"v": [1]}, {"Ok": {"kind": "logout"}}]

    def test_bad_line_does_not_stop_loop(self, provider):
        responses = serve(provider, "{garbage\n", request_line("logout"))

        assert responses[1]["Err"]["kind"] == "other"
        assert responses[2] == {"Ok": {"kind": "logout"}}

    def test_session_reused_across_requests(self, provider, fake_vault, environ):
        del environ["BW_SESSION"]

        serve(provider, request_line("login", token="t"), request_line("get"), request_line("get"))

        assert fake_vault.count("unlock") == 1

    def test_responses_are_flushed(self, provider):
        class Recorder(io.StringIO):
            flushes = 0

            def flush(self):
                Recorder.flushes += 1
                super().flush()

        stdout = Recorder()
        provider.serve(io.StringIO(request_line("logout")), stdout)

        assert Recorder.flushes == 2

    @patch("cargo_bitwarden.utils.console.click.prompt", side_effect=click.Abort)
    @patch("cargo_bitwarden.credentials.sources.console_available", return_value=True)
    def test_cancelled_password_prompt_is_answered(self, _, __, fake_vault):
        provider = CredentialProvider(
            ProviderSettings(prompt=True, keyring_service=None),
            gateway_factory=lambda settings: fake_vault,
            environ={},
        )

        responses = serve(provider, request_line("get"), request_line("logout"))

        assert len(responses) == 3
        assert responses[1]["Err"]["kind"] == "other"
        assert "cancelled" in responses[1]["Err"]["message"]
        assert responses[2]["Err"]["kind"] == "other"

    def test_unexpected_failure_does_not_stop_loop(self, provider, fake_vault):
        fake_vault.failures["list"] = ValueError("boom")

        responses = serve(provider, request_line("get"), request_line("login", token="t"))

        assert responses[1]["Err"] == {"kind": "other", "message": "Unexpected ValueError while handling `get`"}
        assert responses[2]["Err"]["kind"] == "other"


class TestProviderArgs:
    """Test per-request provider arguments."""

    def test_adapter_cached_per_args(self, provider):
        first = provider.adapter_for([])
        second = provider.adapter_for([])
        synced = provider.adapter_for(["--sync"])

        assert first is second
        assert synced is not first
        assert synced.settings.sync is True
        assert first.settings.sync is False

    def test_args_apply_to_request(self, provider, fake_vault):
        fake_vault.add_item()

        serve(provider, request_line("get", args=["--sync"]))

        assert fake_vault.count("sync") == 1

    def test_invalid_args(self, provider, fake_vault):
        responses = serve(provider, request_line("get", args=["--bogus"]))

        err = responses[1]["Err"]
        assert err["kind"] == "other"
        assert "--bogus" in err["message"]
        assert fake_vault.calls == []


class TestRunOnce:
    def test_store_get_erase(self, provider, ctx):
        assert provider.run_once(ProviderAction.STORE, ctx, token="cio_tok") == {"Ok": {"kind": "login"}}
        assert provider.run_once(ProviderAction.GET, ctx)["Ok"]["token"] == "cio_tok"
        assert provider.run_once(ProviderAction.ERASE, ctx) == {"Ok": {"kind": "logout"}}
        assert provider.run_once(ProviderAction.GET, ctx) == {"Err": {"kind": "not-found"}}
