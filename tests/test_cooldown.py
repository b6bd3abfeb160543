"""Tests for the cooldown stores."""

import json

import httpx
import pytest

from conftest import FakeClock
from core.settlement.cooldown import (
    CooldownStoreError,
    InMemoryCooldownStore,
    LocalCooldownWindow,
    UpstashCooldownStore,
    build_cooldown_store,
    cooldown_key,
)


def test_cooldown_key_normalizes_case() -> None:
    assert cooldown_key("0xAbC", 56, "bnb", "usdt") == "cooldown:trade:0xabc:56:BNB:USDT"


# ========== In-Memory Store Tests ==========


class TestInMemoryCooldownStore:
    @pytest.mark.asyncio
    async def test_second_set_within_ttl_fails(self) -> None:
        clock = FakeClock()
        store = InMemoryCooldownStore(clock=clock)

        assert await store.set_if_absent("k", 30) is True
        assert await store.set_if_absent("k", 30) is False
        assert await store.set_if_absent("other", 30) is True

    @pytest.mark.asyncio
    async def test_key_expires(self) -> None:
        clock = FakeClock()
        store = InMemoryCooldownStore(clock=clock)
        await store.set_if_absent("k", 30)

        clock.advance(30)

        assert await store.set_if_absent("k", 30) is True
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_expired_keys_are_pruned_on_write(self) -> None:
        clock = FakeClock()
        store = InMemoryCooldownStore(clock=clock)
        for i in range(1000):
            await store.set_if_absent(f"cooldown:0xabc:56:pair{i}", 30)

        clock.advance(10_000)
        assert await store.set_if_absent("cooldown:0xabc:56:bnb:usdt", 30) is True

        assert len(store._expiry) == 1
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_live_keys_survive_pruning(self) -> None:
        clock = FakeClock()
        store = InMemoryCooldownStore(clock=clock)
        await store.set_if_absent("old", 10)
        clock.advance(5)
        await store.set_if_absent("young", 30)

        clock.advance(10)
        await store.set_if_absent("new", 30)

        assert sorted(store._expiry) == ["new", "young"]
        assert await store.set_if_absent("young", 30) is False


# ========== Upstash Store Tests ==========


def _upstash(handler) -> UpstashCooldownStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return UpstashCooldownStore("https://kv.example/", "tok", client=client)


class TestUpstashCooldownStore:
    @pytest.mark.asyncio
    async def test_sends_set_nx_ex_command(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["host"] = request.url.host
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"result": "OK"})

        store = _upstash(handler)

        assert await store.set_if_absent("cooldown:trade:x", 30) is True
        assert seen["host"] == "kv.example"
        assert seen["auth"] == "Bearer tok"
        assert seen["body"] == ["SET", "cooldown:trade:x", "1", "NX", "EX", "30"]

    @pytest.mark.asyncio
    async def test_existing_key_returns_false(self) -> None:
        store = _upstash(lambda request: httpx.Response(200, json={"result": None}))

        assert await store.set_if_absent("k", 30) is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, text="boom"),
            httpx.Response(200, json={"error": "WRONGPASS"}),
            httpx.Response(200, text="not json"),
            httpx.Response(200, json=["OK"]),
        ],
    )
    async def test_failures_raise_store_error(self, response) -> None:
        store = _upstash(lambda request: response)

        with pytest.raises(CooldownStoreError):
            await store.set_if_absent("k", 30)

    @pytest.mark.asyncio
    async def test_transport_error_raises_store_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        store = _upstash(handler)

        with pytest.raises(CooldownStoreError):
            await store.set_if_absent("k", 30)


# ========== Local Window Tests ==========


class TestLocalCooldownWindow:
    def test_blocks_within_window(self) -> None:
        clock = FakeClock()
        window = LocalCooldownWindow(30, clock=clock)

        assert window.try_acquire("k") is True
        clock.advance(29)
        assert window.try_acquire("k") is False
        clock.advance(1)
        assert window.try_acquire("k") is True


def test_build_cooldown_store_selects_backend() -> None:
    assert isinstance(build_cooldown_store("", ""), InMemoryCooldownStore)
    assert isinstance(build_cooldown_store("https://kv.example", ""), InMemoryCooldownStore)
    assert isinstance(build_cooldown_store("https://kv.example", "tok"), UpstashCooldownStore)
