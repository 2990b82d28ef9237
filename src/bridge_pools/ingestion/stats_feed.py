"""Client for the remote pool statistics document."""

from __future__ import annotations

import asyncio
import math
from typing import Any, Dict, Mapping, Optional

import requests
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config.settings import StatsFeedConfig, get_app_config
from ..datalake.schemas import PoolStats
from ..monitoring.logger import get_logger

DEFAULT_HEADERS = {"User-Agent": "bridge-pools/1.0", "Accept": "application/json"}

StatsDocument = Dict[str, Any]


class FeedFetchError(RuntimeError):
    """Raised when the stats document as a whole cannot be obtained."""


class MalformedFeedDataError(ValueError):
    """Raised when the stats document lacks the entry for a single pool."""


class PoolStatsFeed:
    """Fetches ``{"data": {symbol: {chain: {"apr", "stakingApr"}}}}`` documents."""

    def __init__(
        self,
        config: Optional[StatsFeedConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config or get_app_config().stats_feed
        self._session = session or requests.Session()
        self._aliases = {key.upper(): value for key, value in self._config.symbol_aliases.items()}
        self._logger = get_logger(__name__)

    @property
    def url(self) -> str:
        return str(self._config.url)

    def canonical_symbol(self, symbol: str) -> str:
        return self._aliases.get(symbol.upper(), symbol)

    async def fetch(self) -> StatsDocument:
        return await asyncio.to_thread(self.fetch_sync)

    def fetch_sync(self) -> StatsDocument:
        retrying = Retrying(
            stop=stop_after_attempt(self._config.max_attempts),
            wait=wait_exponential(
                multiplier=self._config.retry_backoff_seconds,
                max=max(self._config.retry_backoff_seconds * 8, 0.0),
            ),
            retry=retry_if_exception_type(requests.RequestException),
        )
        try:
            payload = retrying(self._get)
        except RetryError as exc:
            cause = exc.last_attempt.exception()
            raise FeedFetchError(f"Pool stats request to {self.url} failed: {cause}") from cause
        except ValueError as exc:
            raise FeedFetchError(f"Pool stats response from {self.url} is not JSON") from exc

        if not isinstance(payload, dict):
            raise FeedFetchError("Pool stats payload must be a JSON object")
        data = payload.get("data")
        if not isinstance(data, dict):
            raise FeedFetchError("expected data")
        self._logger.debug("Pool stats document fetched", extra={"tokens": len(data)})
        return payload

    def lookup(self, document: Mapping[str, Any], symbol: str, chain: str) -> PoolStats:
        """Return the APR entry for ``symbol`` on ``chain`` after applying symbol aliases."""

        data = document.get("data") or {}
        canonical = self.canonical_symbol(symbol)
        by_chain = data.get(canonical)
        if not isinstance(by_chain, dict):
            raise MalformedFeedDataError(f'expected data for token symbol "{canonical}"')
        entry = by_chain.get(chain)
        if not isinstance(entry, dict):
            raise MalformedFeedDataError(f'expected data for network "{chain}"')
        if "apr" not in entry:
            raise MalformedFeedDataError(
                f'expected apr value for token "{canonical}" and network "{chain}"'
            )
        return PoolStats(
            apr=self._as_ratio(entry.get("apr"), "apr", canonical, chain),
            staking_apr=self._as_ratio(entry.get("stakingApr"), "stakingApr", canonical, chain),
        )

    def _get(self) -> Any:
        response = self._session.get(
            self.url,
            headers=DEFAULT_HEADERS,
            timeout=self._config.http_timeout,
        )
        response.raise_for_status()
        return response.json()

    @staticmethod
    def _as_ratio(value: Any, name: str, symbol: str, chain: str) -> float:
        if value is None:
            return 0.0
        valid = isinstance(value, (int, float)) and not isinstance(value, bool)
        if not valid or not math.isfinite(value):
            raise MalformedFeedDataError(
                f'invalid {name} value {value!r} for token "{symbol}" and network "{chain}"'
            )
        return float(value)


__all__ = ["FeedFetchError", "MalformedFeedDataError", "PoolStatsFeed", "StatsDocument"]
