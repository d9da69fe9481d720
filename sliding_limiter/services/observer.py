"""Denial observers.

Observers are a side channel notified when a request is rejected for
exceeding its limit. They never influence the decision itself.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from sliding_limiter.core.logging import hash_client_key


class DenialObserver(Protocol):
    """Capability notified about rate-exceeded denials."""

    def on_denied(self, key: str, count: int, max_requests: int) -> None:
        ...


def format_denial(key: str, max_requests: int) -> str:
    """Build the human-readable denial message."""

    return f"Client id {key} has passed the rate limit ({max_requests})"


class LoggingObserver:
    """Report denials through a stdlib logger at WARNING level.

    The message is the ``format_denial`` text with the key replaced by its
    digest, so denials for one client stay correlatable without exposing
    addresses or credentials.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("sliding_limiter.denials")

    def on_denied(self, key: str, count: int, max_requests: int) -> None:
        key_hash = hash_client_key(key)
        self._logger.warning(
            format_denial(key_hash, max_requests),
            extra={
                "event": "rate_limit.denied",
                "key_hash": key_hash,
                "count": count,
                "limit": max_requests,
            },
        )


class CallbackObserver:
    """Adapt a plain ``sink(message)`` function into an observer."""

    def __init__(self, sink: Callable[[str], object]) -> None:
        self._sink = sink

    def on_denied(self, key: str, count: int, max_requests: int) -> None:
        self._sink(format_denial(key, max_requests))


def observer_from_name(name: str) -> DenialObserver:
    """Map a configured denial sink name to an observer.

    ``logger`` reports through the logging pipeline with the key hashed;
    ``stdout`` prints the plain message, raw key included, to standard output.

    Raises:
        ValueError: If ``name`` is not a known sink.
    """

    if name == "logger":
        return LoggingObserver()
    if name == "stdout":
        return CallbackObserver(print)
    raise ValueError(f"unknown denial sink: {name!r}")
