"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It pins APP_ENV to ``testing`` before settings are imported so no developer
.env file leaks into the run.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"

# Set default env vars that all tests might need
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123:42,test-api-key-456:7")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from typing import Iterator  # noqa: E402
from unittest.mock import Mock  # noqa: E402

import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from labsync.adapters.rate_limit.in_memory import InMemoryRateLimitStore  # noqa: E402
from labsync.core.app_factory import create_app  # noqa: E402
from labsync.core.config import ApiSettings, LogSettings, Settings  # noqa: E402

API_KEY = "test-api-key-123"
API_PRINCIPAL = "42"


def build_settings(**api_overrides) -> Settings:
    """Settings for an isolated app; keyword args override ApiSettings fields."""
    api_values = {"api_keys": f"{API_KEY}:{API_PRINCIPAL},test-api-key-456:7"}
    api_values.update(api_overrides)
    return Settings(
        app_env="testing",
        log=LogSettings(level="DEBUG", format="plain"),
        api=ApiSettings(**api_values),
    )


@pytest.fixture
def clock() -> Mock:
    """Controllable time source shared by the rate limit store."""
    return Mock(return_value=1_000.0)


@pytest.fixture
def app_settings() -> Settings:
    return build_settings()


@pytest.fixture
def app(app_settings: Settings, clock: Mock) -> FastAPI:
    store = InMemoryRateLimitStore(sweep_interval_seconds=60, clock=clock)
    return create_app(app_settings, rate_limit_store=store)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"X-API-Key": API_KEY}


@pytest.fixture
def make_client(clock: Mock) -> Iterator:
    """Factory for clients of apps built with ApiSettings overrides."""
    clients: list[TestClient] = []

    def _make(**api_overrides) -> TestClient:
        store = InMemoryRateLimitStore(sweep_interval_seconds=60, clock=clock)
        test_client = TestClient(create_app(build_settings(**api_overrides), rate_limit_store=store))
        test_client.__enter__()
        clients.append(test_client)
        return test_client

    yield _make
    for test_client in clients:
        test_client.__exit__(None, None, None)
