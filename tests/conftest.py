"""Shared fixtures: a recording sleep and AdoApiClient instances backed by httpx.MockTransport."""
import json
from typing import Callable, Optional

import httpx
import pytest

from ado_core.client import AdoApiClient, RetryPolicy
from ado_core.config import get_settings

ORGANIZATION = "contoso"
PAT = "secret-pat-value"

ADO_ENV_VARS = [
    "ADO_ORGANIZATION", "ADO_PROJECT", "ADO_PAT", "ADO_API_URL", "ADO_API_VERSION",
    "ADO_API_MAX_RETRIES", "ADO_API_DELAY_MS", "ADO_API_BACKOFF_FACTOR",
    "ADO_AUTH_SCHEME", "ADO_TIMEOUT_SECONDS", "ADO_LOG_LEVEL",
]


class RecordingSleep:
    """Stands in for asyncio.sleep; records requested delays without waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def json_response(status: int = 200, payload=None, headers: Optional[dict] = None) -> httpx.Response:
    return httpx.Response(status, json=payload if payload is not None else {}, headers=headers)


def request_json(request: httpx.Request):
    return json.loads(request.content.decode("utf-8"))


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Tests never see the developer's ADO_* variables or cached settings."""
    for name in ADO_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_client(sleep) -> Callable[..., AdoApiClient]:
    """Factory: make_client(handler, project=None, max_retries=3) -> AdoApiClient."""

    def factory(handler, project: Optional[str] = None, max_retries: int = 3, **kwargs) -> AdoApiClient:
        return AdoApiClient(
            organization=ORGANIZATION,
            token=PAT,
            project=project,
            retry=RetryPolicy(max_retries=max_retries, delay_ms=1000, backoff_factor=2.0),
            transport=httpx.MockTransport(handler),
            sleep=kwargs.pop("sleep", sleep),
            **kwargs,
        )

    return factory
