"""Shared fixtures: isolated settings, a scripted provider and a wired container."""

from __future__ import annotations

from pathlib import Path
import sys

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from tests.support import (  # noqa: E402
    BASE_URL,
    TEST_API_KEY,
    FakeClock,
    ProviderStub,
    RecordedSleep,
    make_settings,
)
from voxmemo.config.dependencies import ServiceContainer, build_container  # noqa: E402
from voxmemo.config.settings import Settings  # noqa: E402


@pytest.fixture(autouse=True)
def _no_ambient_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordedSleep:
    return RecordedSleep()


@pytest.fixture
def provider() -> ProviderStub:
    return ProviderStub()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def http_client(provider: ProviderStub) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(provider.handler), base_url=BASE_URL)


@pytest.fixture
def container(
    settings: Settings,
    http_client: httpx.AsyncClient,
    sleep: RecordedSleep,
    clock: FakeClock,
) -> ServiceContainer:
    services = build_container(settings, http_client=http_client, sleep=sleep, clock=clock)
    services.secure_store.set(settings.storage.credential_key, TEST_API_KEY)
    return services
