"""
Verifier key store for AdMob server-side verification callbacks.

Keys are pulled from the key distribution host on demand and cached
in process memory. The cache holds a single immutable key set; every
successful fetch swaps it by reference so concurrent readers see either
the previous or the new set, never a partial one.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

import httpx

from shared.circuit_breaker import CircuitBreakerManager, CircuitBreakerOpenException
from shared.errors import KeyFetchError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

# Tried in this order; the network has published both spellings.
KEY_ID_FIELDS = ("keyId", "key_id")


@dataclass(frozen=True)
class VerifierKey:
    """A single published public key."""

    key_id: str
    pem: str


@dataclass(frozen=True)
class KeySet:
    """Ordered, immutable set of verifier keys, unique by key id."""

    keys: Tuple[VerifierKey, ...] = ()

    def __len__(self) -> int:
        return len(self.keys)

    def find(self, key_id: str) -> Optional[str]:
        """Return the PEM for ``key_id`` or None."""
        key_id = str(key_id)
        for key in self.keys:
            if key.key_id == key_id:
                return key.pem
        return None

    @classmethod
    def from_payload(cls, payload: Any) -> "KeySet":
        """Build a key set from the decoded ``verifier-keys.json`` body.

        Raises ValueError when the payload has no ``keys`` array. Individual
        entries lacking an id or a PEM string are skipped.
        """
        if not isinstance(payload, dict):
            raise ValueError("key payload is not a JSON object")
        entries = payload.get("keys")
        if not isinstance(entries, list):
            raise ValueError("key payload missing 'keys' array")

        keys: list[VerifierKey] = []
        seen: set[str] = set()
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            key_id = _extract_key_id(entry)
            pem = entry.get("pem")
            if key_id is None or not isinstance(pem, str) or not pem.strip():
                continue
            if key_id in seen:
                continue
            seen.add(key_id)
            keys.append(VerifierKey(key_id=key_id, pem=pem))
        return cls(keys=tuple(keys))


def _extract_key_id(entry: Dict[str, Any]) -> Optional[str]:
    for name in KEY_ID_FIELDS:
        value = entry.get(name)
        if value is None or isinstance(value, (bool, dict, list)):
            continue
        value = str(value).strip()
        if value:
            return value
    return None


@dataclass(frozen=True)
class KeyCache:
    """A fetched key set and the time it was fetched."""

    key_set: KeySet
    fetched_at: float = field(default_factory=time.time)

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def is_fresh(self, now: float, ttl: float) -> bool:
        return self.age(now) < ttl


class KeyStore:
    """Fetches and caches the ad network's verifier keys."""

    def __init__(
        self,
        key_urls: Sequence[str],
        cache_ttl: float = 3600.0,
        http_timeout: float = 5.0,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        metrics: Optional[MetricsCollector] = None,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
    ) -> None:
        if not key_urls:
            raise ValueError("KeyStore needs at least one key URL")
        self.key_urls = tuple(key_urls)
        self.cache_ttl = cache_ttl
        self.metrics = metrics
        self.logger = get_logger("rewards.keys")

        self._cache: Optional[KeyCache] = None
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=http_timeout)

        # One breaker per source, so a dead primary is skipped quickly.
        self._breakers = CircuitBreakerManager()
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout

    @property
    def cache(self) -> Optional[KeyCache]:
        return self._cache

    async def close(self) -> None:
        """Close the underlying HTTP client if this store created it."""
        if self._owns_client:
            await self._client.aclose()

    async def warmup(self) -> None:
        """Eagerly load the key set so the first callback does not pay the cost."""
        try:
            await self.refresh()
        except KeyFetchError as exc:
            self.logger.warning("Key warmup failed", error=exc.message)

    async def get_key_pem(self, key_id: str) -> Optional[str]:
        """Return the PEM for ``key_id``, or None if the network does not publish it.

        Raises KeyFetchError only when no key set has ever been fetched and
        the current fetch fails as well.
        """
        key_id = str(key_id)
        cache = await self._usable_cache()

        pem = cache.key_set.find(key_id)
        if pem is not None:
            return pem

        # Possibly rotated since the last fetch; refresh once, ignoring the TTL.
        self.logger.info("Key not in cached key set, forcing refresh", key_id=key_id)
        try:
            cache = await self._refresh()
        except KeyFetchError as exc:
            self.logger.warning("Forced key refresh failed", key_id=key_id, error=exc.message)
            return None

        pem = cache.key_set.find(key_id)
        if pem is None:
            self.logger.info("Key not found after forced refresh", key_id=key_id)
        return pem

    async def refresh(self) -> KeySet:
        """Fetch the key set now, regardless of cache age."""
        return (await self._refresh()).key_set

    async def check_health(self) -> str:
        """Return 'ok', 'stale' (serving an expired set) or 'error'."""
        try:
            cache = await self._usable_cache()
        except KeyFetchError as exc:
            self.logger.error("Key store health check failed", error=exc.message)
            return "error"
        return "ok" if cache.is_fresh(time.time(), self.cache_ttl) else "stale"

    def clear_cache(self) -> None:
        """Drop the cached key set."""
        self._cache = None
        self.logger.info("Key cache cleared")

    def source_states(self) -> Dict[str, Dict[str, Any]]:
        return self._breakers.get_all_states()

    async def _usable_cache(self) -> KeyCache:
        """Return the cache to search, refreshing it once the TTL has passed."""
        cache = self._cache
        if cache is not None and cache.is_fresh(time.time(), self.cache_ttl):
            return cache

        try:
            return await self._refresh()
        except KeyFetchError:
            if cache is None:
                raise
            self.logger.warning(
                "Using stale key set due to fetch failure",
                age_seconds=round(cache.age(time.time()), 1),
                keys_count=len(cache.key_set),
            )
            return cache

    async def _refresh(self) -> KeyCache:
        key_set = await self._fetch_key_set()
        cache = KeyCache(key_set=key_set, fetched_at=time.time())
        self._cache = cache
        return cache

    async def _fetch_key_set(self) -> KeySet:
        """Try every source in order and return the first usable key set."""
        start_time = time.time()
        errors: Dict[str, str] = {}

        for url in self.key_urls:
            breaker = self._breakers.get_circuit_breaker(
                url,
                failure_threshold=self._failure_threshold,
                recovery_timeout=self._recovery_timeout,
            )
            try:
                key_set = await breaker.call(self._fetch_from_source, url)
            except (httpx.HTTPError, ValueError, CircuitBreakerOpenException) as exc:
                errors[url] = str(exc) or type(exc).__name__
                self.logger.warning("Key source failed", url=url, error=errors[url])
                continue

            self._record_refresh("success", start_time)
            self.logger.info("Verifier keys refreshed", url=url, keys_count=len(key_set))
            return key_set

        self._record_refresh("failure", start_time)
        raise KeyFetchError(details={"sources": errors})

    async def _fetch_from_source(self, url: str) -> KeySet:
        response = await self._client.get(url, headers={"Accept": "application/json"})
        response.raise_for_status()
        return KeySet.from_payload(response.json())

    def _record_refresh(self, status: str, start_time: float) -> None:
        if self.metrics is not None:
            self.metrics.record_key_refresh(status, time.time() - start_time)
