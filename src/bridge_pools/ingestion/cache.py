"""Memoisation of external lookups shared by all stage runs."""

from __future__ import annotations

from typing import Any, Generic, Optional, TypeVar

from cachetools import Cache, TTLCache

from ..config.settings import CacheConfig, get_app_config
from ..monitoring.metrics import METRICS, MetricsRegistry

V = TypeVar("V")


def tvl_cache_key(token: str, chain: str) -> str:
    return f"{token}:{chain}"


def rewards_cache_key(chain: str, token: str, account: str) -> str:
    return f"{chain}:{token}:{account}"


class ProviderCache(Generic[V]):
    """Key/value cache for one lookup namespace.

    A positive ``ttl_seconds`` expires entries after that many seconds; zero
    keeps them until :meth:`invalidate` or :meth:`clear` is called.
    """

    def __init__(
        self,
        namespace: str,
        *,
        maxsize: int = 1024,
        ttl_seconds: int = 0,
        metrics: MetricsRegistry = METRICS,
    ) -> None:
        self.namespace = namespace
        self._cache: Cache
        if ttl_seconds > 0:
            self._cache = TTLCache(maxsize=maxsize, ttl=ttl_seconds)
        else:
            self._cache = Cache(maxsize=maxsize)
        self._metrics = metrics

    def get(self, key: str) -> Optional[V]:
        if key in self._cache:
            self._metrics.increment(f"cache.{self.namespace}.hit")
            return self._cache[key]
        self._metrics.increment(f"cache.{self.namespace}.miss")
        return None

    def set(self, key: str, value: V) -> None:
        self._cache[key] = value

    def invalidate(self, key: str) -> None:
        self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()

    def __contains__(self, key: Any) -> bool:
        return key in self._cache

    def __len__(self) -> int:
        return len(self._cache)


class ProviderCaches:
    """The TVL and staking-rewards caches sized from :class:`CacheConfig`."""

    def __init__(self, config: Optional[CacheConfig] = None, *, metrics: MetricsRegistry = METRICS) -> None:
        cfg = config or get_app_config().cache
        self.tvl: ProviderCache[float] = ProviderCache(
            "tvl", maxsize=cfg.maxsize, ttl_seconds=cfg.tvl_ttl_seconds, metrics=metrics
        )
        self.rewards: ProviderCache[int] = ProviderCache(
            "rewards", maxsize=cfg.maxsize, ttl_seconds=cfg.rewards_ttl_seconds, metrics=metrics
        )

    def clear(self) -> None:
        self.tvl.clear()
        self.rewards.clear()


__all__ = ["ProviderCache", "ProviderCaches", "rewards_cache_key", "tvl_cache_key"]
