"""Duplicate-trade cooldown stores.

Two layers guard each (wallet, chain, pair):

* a shared TTL store (`CooldownStore`) with an atomic set-if-absent, so
  several processes agree on who got the slot;
* an in-process window (`LocalCooldownWindow`) that keeps working when the
  shared store is unreachable.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


def cooldown_key(wallet: str, chain_id: int, src_symbol: str, dest_symbol: str) -> str:
    return f"cooldown:trade:{wallet.lower()}:{chain_id}:{src_symbol.upper()}:{dest_symbol.upper()}"


class CooldownStoreError(Exception):
    """The shared cooldown store could not be reached or answered garbage."""


class CooldownStore(Protocol):
    async def set_if_absent(self, key: str, ttl_seconds: int) -> bool:
        """Atomically create `key` with a TTL.

        Returns True when the key was created, False when it already existed.
        """
        ...


class InMemoryCooldownStore:
    """Process-local TTL store.

    There is no await between the existence check and the write, so on a
    single event loop the operation is atomic.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._expiry: dict[str, float] = {}

    async def set_if_absent(self, key: str, ttl_seconds: int) -> bool:
        now = self._clock()
        self._prune(now)
        if key in self._expiry:
            return False
        self._expiry[key] = now + ttl_seconds
        return True

    def _prune(self, now: float) -> None:
        expired = [k for k, exp in self._expiry.items() if exp <= now]
        for k in expired:
            del self._expiry[k]

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for exp in self._expiry.values() if exp > now)


class UpstashCooldownStore:
    """Upstash Redis over its REST API (`SET key 1 NX EX ttl`)."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._client = client

    async def _post(self, command: list) -> dict:
        headers = {"Authorization": f"Bearer {self._token}"}
        try:
            if self._client is not None:
                response = await self._client.post(self.base_url, json=command, headers=headers, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self.base_url, json=command, headers=headers)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CooldownStoreError(f"cooldown store request failed: {e}") from e

        if not isinstance(payload, dict):
            raise CooldownStoreError("cooldown store returned a non-object payload")
        if payload.get("error"):
            raise CooldownStoreError(f"cooldown store error: {payload['error']}")
        return payload

    async def set_if_absent(self, key: str, ttl_seconds: int) -> bool:
        payload = await self._post(["SET", key, "1", "NX", "EX", str(int(ttl_seconds))])
        return payload.get("result") == "OK"


class LocalCooldownWindow:
    """In-process window map, applied after the shared store."""

    def __init__(self, window_seconds: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.window_seconds = window_seconds
        self._clock = clock
        self._last_seen: dict[str, float] = {}

    def try_acquire(self, key: str) -> bool:
        now = self._clock()
        self._prune(now)
        last = self._last_seen.get(key)
        if last is not None and now - last < self.window_seconds:
            return False
        self._last_seen[key] = now
        return True

    def _prune(self, now: float) -> None:
        stale = [k for k, ts in self._last_seen.items() if now - ts >= self.window_seconds]
        for k in stale:
            del self._last_seen[k]


def build_cooldown_store(url: str, token: str, timeout: float = 5.0) -> CooldownStore:
    """Shared store when credentials are configured, in-memory otherwise."""
    if url and token:
        logger.info("Using Upstash cooldown store at %s", url)
        return UpstashCooldownStore(url, token, timeout=timeout)
    logger.info("No cooldown store credentials configured, using in-memory store")
    return InMemoryCooldownStore()
