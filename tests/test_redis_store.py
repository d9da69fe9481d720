"""Tests for the Redis sorted-set window store (backed by fakeredis)."""

import fakeredis
import pytest

from sliding_limiter.adapters.rate_limit.redis_store import RedisWindowStore
from sliding_limiter.core.errors import StoreUnavailableAppError
from sliding_limiter.services.rate_limiter import DecisionKind, RateLimiter, RateLimiterConfig

WINDOW_MS = 1000


@pytest.fixture()
def redis_client() -> fakeredis.FakeAsyncRedis:
    return fakeredis.FakeAsyncRedis()


@pytest.fixture()
def store(redis_client) -> RedisWindowStore:
    return RedisWindowStore(redis_client, key_prefix="test")


@pytest.mark.asyncio
async def test_records_under_prefixed_sorted_set(store, redis_client) -> None:
    await store.evict_and_record("client", 0, 1000, "1000:a")

    entries = await redis_client.zrange("test:client", 0, -1, withscores=True)
    assert entries == [(b"1000:a", 1000.0)]
    assert await store.count("client") == 1


@pytest.mark.asyncio
async def test_evicts_strictly_older_than_cutoff(store) -> None:
    await store.evict_and_record("k", 0, 100, "100:a")
    await store.evict_and_record("k", 0, 200, "200:b")

    count = await store.evict_record_and_count("k", 200, 1200, "1200:c")

    assert count == 2


@pytest.mark.asyncio
async def test_same_score_entries_are_not_deduplicated(store) -> None:
    for member in ("500:a", "500:b", "500:c"):
        await store.evict_and_record("k", 0, 500, member)

    assert await store.count("k") == 3


@pytest.mark.asyncio
async def test_sets_expiry_of_one_window(store, redis_client) -> None:
    await store.evict_and_record("k", 1000, 1000 + WINDOW_MS, "2000:a")

    ttl_ms = await redis_client.pttl("test:k")
    assert 0 < ttl_ms <= WINDOW_MS


@pytest.mark.asyncio
async def test_reset_deletes_key(store, redis_client) -> None:
    await store.evict_and_record("k", 0, 100, "100:a")

    await store.reset("k")

    assert await redis_client.exists("test:k") == 0
    assert await store.count("k") == 0


@pytest.mark.asyncio
async def test_count_matches_unexpired_entries_plus_one(store) -> None:
    timestamps = [0, 10, 10, 250, 900, 1005, 1010, 1600, 2400, 2401, 4000]
    recorded: list[int] = []

    for i, now in enumerate(timestamps):
        cutoff = now - WINDOW_MS
        expected = sum(1 for ts in recorded if ts >= cutoff) + 1
        count = await store.evict_record_and_count("k", cutoff, now, f"{now}:{i}")
        recorded.append(now)
        assert count == expected, f"at t={now}"


@pytest.mark.asyncio
async def test_unreachable_server_raises_store_unavailable() -> None:
    server = fakeredis.FakeServer()
    server.connected = False
    store = RedisWindowStore(fakeredis.FakeAsyncRedis(server=server))

    with pytest.raises(StoreUnavailableAppError) as exc_info:
        await store.evict_record_and_count("k", 0, 100, "100:a")
    assert exc_info.value.code == "store_unavailable"

    with pytest.raises(StoreUnavailableAppError):
        await store.count("k")


@pytest.mark.asyncio
async def test_limiter_over_redis_reference_scenario(store, clock) -> None:
    start = clock.return_value
    limiter = RateLimiter(store, RateLimiterConfig(time_window=5, max_requests=10), clock=clock)

    for _ in range(10):
        assert (await limiter.evaluate_key("A")).allowed

    clock.return_value = start + 0.1
    eleventh = await limiter.evaluate_key("A")
    assert eleventh.kind is DecisionKind.DENY_RATE_EXCEEDED
    assert eleventh.count == 11

    clock.return_value = start + 6
    twelfth = await limiter.evaluate_key("A")
    assert twelfth.kind is DecisionKind.ALLOW
    assert twelfth.count == 1


@pytest.mark.asyncio
async def test_limiter_fails_closed_when_redis_is_down(clock) -> None:
    server = fakeredis.FakeServer()
    server.connected = False
    limiter = RateLimiter(
        RedisWindowStore(fakeredis.FakeAsyncRedis(server=server)),
        RateLimiterConfig(),
        clock=clock,
    )

    decision = await limiter.evaluate_key("A")

    assert decision.kind is DecisionKind.DENY_UNAVAILABLE
