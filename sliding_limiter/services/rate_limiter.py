"""Sliding-window-log admission control.

For every request the limiter resolves a client key, evicts the key's entries
older than the window, records the current request, and compares the window's
size against the configured limit. The window is a log of individual
timestamps rather than a counter, which gives exact sliding semantics at the
cost of one stored entry per admitted or rejected request.
"""

from __future__ import annotations

import enum
import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable

from fastapi import Request

from sliding_limiter.adapters.rate_limit.base import WindowStore
from sliding_limiter.core.errors import ConfigurationAppError, StoreUnavailableAppError
from sliding_limiter.services.identifiers import IdentifierResolver, by_client_address
from sliding_limiter.services.observer import DenialObserver, LoggingObserver

logger = logging.getLogger(__name__)


class DecisionKind(str, enum.Enum):
    ALLOW = "allow"
    DENY_FORBIDDEN = "deny_forbidden"
    DENY_RATE_EXCEEDED = "deny_rate_exceeded"
    DENY_UNAVAILABLE = "deny_unavailable"


class FailurePolicy(str, enum.Enum):
    """What to decide when the window store cannot be reached."""

    FAIL_CLOSED = "closed"
    FAIL_OPEN = "open"
    PROPAGATE = "propagate"


class Consistency(str, enum.Enum):
    """Whether the count read is part of the atomic evict+record unit.

    ``RACY`` reads the count in a second round trip, so concurrent requests on
    one key may observe each other's entries and a few extra requests can be
    admitted during a burst. ``STRICT`` reads it inside the same unit.
    """

    STRICT = "strict"
    RACY = "racy"


@dataclass(frozen=True)
class Decision:
    """Outcome of evaluating one request.

    Attributes:
        kind: Allow, or the reason for denial.
        count: Window size observed after recording the request, when known.
        max_requests: Configured limit, when the store was consulted.
    """

    kind: DecisionKind
    count: int | None = None
    max_requests: int | None = None

    @property
    def allowed(self) -> bool:
        return self.kind is DecisionKind.ALLOW

    @property
    def remaining(self) -> int | None:
        if self.count is None or self.max_requests is None:
            return None
        return max(0, self.max_requests - self.count)


@dataclass(frozen=True)
class RateLimiterConfig:
    """Immutable limiter configuration, validated on construction.

    Raises:
        ConfigurationAppError: If ``time_window`` is not a finite number of
            at least one millisecond, ``max_requests`` is not positive, or an
            enum-valued option has an unknown value.
    """

    time_window: float = 5
    max_requests: int = 10
    identifier: IdentifierResolver = by_client_address
    deny_undefined_identifier: bool = True
    enable_logging: bool = False
    observer: DenialObserver = field(default_factory=LoggingObserver)
    failure_policy: FailurePolicy = FailurePolicy.FAIL_CLOSED
    consistency: Consistency = Consistency.STRICT

    def __post_init__(self) -> None:
        if isinstance(self.time_window, bool) or not isinstance(self.time_window, (int, float)):
            raise ConfigurationAppError(
                code="invalid_time_window",
                message="time_window must be a number of seconds",
                details={"field": "time_window", "actual_value": self.time_window},
            )
        if not math.isfinite(self.time_window) or self.time_window * 1000 < 1:
            raise ConfigurationAppError(
                code="invalid_time_window",
                message="time_window must be finite and at least 1 millisecond",
                details={"field": "time_window", "actual_value": self.time_window},
            )
        if isinstance(self.max_requests, bool) or not isinstance(self.max_requests, int):
            raise ConfigurationAppError(
                code="invalid_max_requests",
                message="max_requests must be an integer",
                details={"field": "max_requests", "actual_value": self.max_requests},
            )
        if self.max_requests <= 0:
            raise ConfigurationAppError(
                code="invalid_max_requests",
                message="max_requests must be > 0",
                details={"field": "max_requests", "actual_value": self.max_requests},
            )
        if not callable(self.identifier):
            raise ConfigurationAppError(
                code="invalid_identifier",
                message="identifier must be callable",
                details={"field": "identifier"},
            )
        try:
            object.__setattr__(self, "failure_policy", FailurePolicy(self.failure_policy))
            object.__setattr__(self, "consistency", Consistency(self.consistency))
        except ValueError as exc:
            raise ConfigurationAppError(
                code="invalid_policy",
                message=str(exc),
            ) from exc

    @property
    def window_ms(self) -> int:
        return int(self.time_window * 1000)


class RateLimiter:
    """Decide whether each request may proceed.

    Holds no mutable state of its own: the configuration is frozen and every
    window lives in the store, so one instance serves all concurrent requests.
    """

    def __init__(
        self,
        store: WindowStore,
        config: RateLimiterConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Window store holding the per-key logs.
            config: Limiter configuration (defaults apply when omitted).
            clock: Time source returning UNIX time in seconds.
        """
        self._store = store
        self._config = config or RateLimiterConfig()
        self._clock = clock

    @property
    def config(self) -> RateLimiterConfig:
        return self._config

    @property
    def store(self) -> WindowStore:
        return self._store

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def _record(self, key: str) -> int:
        # One clock read serves both the cutoff and the new entry's score, so
        # the entry being recorded can never fall behind its own cutoff.
        now = self._now_ms()
        cutoff = now - self._config.window_ms
        member = f"{now}:{uuid.uuid4().hex}"

        if self._config.consistency is Consistency.STRICT:
            return await self._store.evict_record_and_count(key, cutoff, now, member)

        await self._store.evict_and_record(key, cutoff, now, member)
        return await self._store.count(key)

    def _on_store_unavailable(self, exc: StoreUnavailableAppError) -> Decision:
        policy = self._config.failure_policy
        logger.error(
            "rate_limit.store_unavailable",
            extra={"failure_policy": policy.value, "error_code": exc.code},
        )
        if policy is FailurePolicy.FAIL_OPEN:
            return Decision(DecisionKind.ALLOW)
        if policy is FailurePolicy.FAIL_CLOSED:
            return Decision(DecisionKind.DENY_UNAVAILABLE)
        raise exc

    def _notify_denied(self, key: str, count: int) -> None:
        if not self._config.enable_logging:
            return
        try:
            self._config.observer.on_denied(key, count, self._config.max_requests)
        except Exception:
            logger.exception("rate_limit.observer_failed")

    async def evaluate(self, request: Request) -> Decision:
        """Evaluate one request against its client's sliding window.

        Args:
            request: Incoming request the identifier resolver reads.

        Returns:
            Decision for the request. Requests without a resolvable key never
            touch the store.

        Raises:
            StoreUnavailableAppError: Only with ``FailurePolicy.PROPAGATE``.
        """
        key = self._config.identifier(request)
        if key is None:
            if self._config.deny_undefined_identifier:
                return Decision(DecisionKind.DENY_FORBIDDEN)
            return Decision(DecisionKind.ALLOW)

        return await self.evaluate_key(key)

    async def evaluate_key(self, key: str) -> Decision:
        """Evaluate a request already attributed to ``key``."""
        max_requests = self._config.max_requests
        try:
            count = await self._record(key)
        except StoreUnavailableAppError as exc:
            return self._on_store_unavailable(exc)

        if count > max_requests:
            self._notify_denied(key, count)
            return Decision(DecisionKind.DENY_RATE_EXCEEDED, count=count, max_requests=max_requests)

        return Decision(DecisionKind.ALLOW, count=count, max_requests=max_requests)

    async def reset(self, key: str) -> None:
        """Forget the recorded history for ``key``."""
        await self._store.reset(key)
