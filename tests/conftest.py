"""Pytest configuration and shared fixtures."""

import pytest
import structlog

from cargo_bitwarden.config.settings import ProviderSettings
from cargo_bitwarden.credentials.sources import EnvironmentSource
from cargo_bitwarden.models.domain import RegistryContext
from cargo_bitwarden.protocol.adapter import ProtocolAdapter
from tests.fake_vault import INDEX_URL, MASTER_PASSWORD, FakeVault


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo configure_logging() so later tests don't write to a closed stream."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def fake_vault() -> FakeVault:
    """Locked vault with one valid session exported as BW_SESSION."""
    vault = FakeVault()
    vault.add_session("env-session")
    return vault


@pytest.fixture
def environ() -> dict[str, str]:
    """Process environment seen by the provider."""
    return {"BW_SESSION": "env-session", "BW_PASSWORD": MASTER_PASSWORD}


@pytest.fixture
def settings() -> ProviderSettings:
    """Settings with terminal prompts disabled."""
    return ProviderSettings(prompt=False)


@pytest.fixture
def ctx() -> RegistryContext:
    return RegistryContext(index_url=INDEX_URL, name="example")


@pytest.fixture
def make_adapter(fake_vault, environ):
    """Factory for adapters wired to the fake vault."""

    def _make(**overrides) -> ProtocolAdapter:
        settings = ProviderSettings(prompt=False, **overrides)
        return ProtocolAdapter(
            fake_vault,
            settings,
            password_sources=[EnvironmentSource("BW_PASSWORD", environ)],
            environ=environ,
        )

    return _make


@pytest.fixture
def adapter(make_adapter) -> ProtocolAdapter:
    return make_adapter()
