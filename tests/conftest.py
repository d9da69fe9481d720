"""Pytest configuration and fixtures shared across all test modules.

This file is loaded by pytest before any test module, so the environment is
in place before settings are first imported.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_TIME_WINDOW", "5")
os.environ.setdefault("RATE_LIMIT_MAX_REQUESTS", "10")
os.environ.setdefault("LOG_FORMAT", "json")

from unittest.mock import Mock  # noqa: E402

import pytest  # noqa: E402
from fastapi import Request  # noqa: E402

from sliding_limiter.adapters.rate_limit.in_memory import InMemoryWindowStore  # noqa: E402


def make_request(
    headers: dict[str, str] | None = None,
    client: tuple[str, int] | None = ("10.0.0.1", 50000),
    path: str = "/v1/ping",
) -> Request:
    """Build a bare Starlette request for resolver and limiter tests."""
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
        "server": ("testserver", 80),
        "scheme": "http",
    }
    return Request(scope)


@pytest.fixture
def clock() -> Mock:
    """Controllable time source returning UNIX seconds."""
    return Mock(return_value=1_700_000_000.0)


@pytest.fixture
def memory_store() -> InMemoryWindowStore:
    return InMemoryWindowStore()


@pytest.fixture
def request_factory():
    """Factory fixture building requests with the given headers/client."""
    return make_request
