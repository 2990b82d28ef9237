"""Enrichment stages that fill pool records from external providers.

Every stage fans out one lookup per record and merges each result as soon as
it resolves. A failed lookup only affects its own record: the stage writes the
record's fallback patch (if it has one), logs the failure and carries on. A
failure that prevents the fan-out from starting at all, such as the stats
document being unavailable, aborts that run without touching any record.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional

from ..config.settings import PipelineConfig, StakingConfig, get_app_config
from ..datalake.schemas import PoolKey, PoolPatch, PoolRecord, StageResult
from ..datalake.store import PoolStore
from ..ingestion.bridge import BridgeClient
from ..ingestion.cache import ProviderCache, rewards_cache_key, tvl_cache_key
from ..ingestion.resolver import ChainTokenResolver
from ..ingestion.staking import StakingRewardsClient, staking_contract_address
from ..ingestion.stats_feed import PoolStatsFeed, StatsDocument
from ..monitoring.logger import correlation_scope, get_logger
from ..monitoring.metrics import METRICS, MetricsRegistry
from ..utils.constants import (
    BALANCE_PLACEHOLDER,
    CLAIMABLE_REWARDS_STAGE,
    REMOTE_STATS_STAGE,
    TVL_STAGE,
    USER_BALANCE_STAGE,
    ZERO_AMOUNT,
)
from ..utils.formatting import format_percent, format_usd

Lookup = Callable[[PoolRecord], Awaitable[Optional[PoolPatch]]]


class StageFetchError(RuntimeError):
    """A single record's lookup failed inside a stage run."""

    def __init__(self, stage: str, key: PoolKey, cause: BaseException) -> None:
        super().__init__(f"{stage} lookup failed for {key[0]}:{key[1]}: {cause}")
        self.stage = stage
        self.key = key
        self.__cause__ = cause


@dataclass(slots=True)
class StageContext:
    """Dependency values a stage run was launched with."""

    run_id: str
    account: Optional[str] = None
    is_current: Callable[[], bool] = lambda: True


class EnrichmentStage:
    """Base class handling fan-out, per-record isolation and merging."""

    name = "stage"

    def __init__(self, store: PoolStore, *, metrics: MetricsRegistry = METRICS) -> None:
        self._store = store
        self._metrics = metrics
        self._logger = get_logger(f"{__name__}.{self.name}")

    async def run(self, context: StageContext) -> StageResult:
        result = StageResult(stage=self.name)
        started = time.perf_counter()
        with correlation_scope(context.run_id):
            try:
                await self._run(context, result)
            except Exception as exc:  # noqa: BLE001
                result.aborted = True
                result.errors["*"] = str(exc)
                self._metrics.increment(f"stage.{self.name}.aborted")
                self._logger.error("Stage %s aborted: %s", self.name, exc, exc_info=exc)
            else:
                self._logger.info(
                    "Stage %s finished",
                    self.name,
                    extra={
                        "succeeded": result.succeeded,
                        "failed": result.failed,
                        "skipped": result.skipped,
                        "dropped": result.dropped,
                    },
                )
        self._metrics.observe(f"stage.{self.name}.duration_ms", (time.perf_counter() - started) * 1000)
        return result

    async def _run(self, context: StageContext, result: StageResult) -> None:
        raise NotImplementedError

    def fallback_patch(self, record: PoolRecord, error: StageFetchError) -> Optional[PoolPatch]:
        return None

    async def _fan_out(
        self,
        context: StageContext,
        result: StageResult,
        records: Iterable[PoolRecord],
        lookup: Lookup,
    ) -> None:
        async def _enrich(record: PoolRecord) -> None:
            try:
                patch = await lookup(record)
            except Exception as exc:  # noqa: BLE001
                error = StageFetchError(self.name, record.key, exc)
                result.failed += 1
                result.errors[f"{record.key[0]}:{record.key[1]}"] = str(exc)
                self._metrics.increment(f"stage.{self.name}.failure")
                self._logger.warning(str(error))
                patch = self.fallback_patch(record, error)
            else:
                if patch is None:
                    result.skipped += 1
                    return
                result.succeeded += 1
                self._metrics.increment(f"stage.{self.name}.success")
            if patch:
                self._merge(context, result, record.key, patch)

        await asyncio.gather(*(_enrich(record) for record in records))

    def _merge(self, context: StageContext, result: StageResult, key: PoolKey, patch: PoolPatch) -> None:
        if not context.is_current():
            result.dropped += 1
            self._metrics.increment(f"stage.{self.name}.stale_dropped")
            self._logger.debug("Dropping stale %s result for %s:%s", self.name, *key)
            return
        self._store.apply(key, patch)


class TvlStage(EnrichmentStage):
    """Total value locked per pool, memoised by ``token:chain``."""

    name = TVL_STAGE

    def __init__(
        self,
        store: PoolStore,
        bridge: BridgeClient,
        cache: ProviderCache[float],
        config: Optional[PipelineConfig] = None,
        *,
        metrics: MetricsRegistry = METRICS,
    ) -> None:
        super().__init__(store, metrics=metrics)
        self._bridge = bridge
        self._cache = cache
        self._config = config or get_app_config().pipeline

    async def _run(self, context: StageContext, result: StageResult) -> None:
        await self._fan_out(context, result, self._store.records(), self._lookup)

    async def _lookup(self, record: PoolRecord) -> PoolPatch:
        key = tvl_cache_key(record.token.symbol, record.chain.slug)
        tvl = self._cache.get(key)
        if tvl is None:
            tvl = float(await self._bridge.tvl_usd(record.token.symbol, record.chain.slug))
            self._cache.set(key, tvl)
        return {
            "tvl_raw": tvl,
            "tvl_formatted": format_usd(tvl, self._config.tvl_min_decimals, self._config.tvl_max_decimals),
        }


class UserBalanceStage(EnrichmentStage):
    """USD value of the active account's LP position; never cached."""

    name = USER_BALANCE_STAGE

    def __init__(
        self,
        store: PoolStore,
        bridge: BridgeClient,
        config: Optional[PipelineConfig] = None,
        *,
        metrics: MetricsRegistry = METRICS,
    ) -> None:
        super().__init__(store, metrics=metrics)
        self._bridge = bridge
        self._config = config or get_app_config().pipeline

    async def _run(self, context: StageContext, result: StageResult) -> None:
        account = context.account
        if not account:
            for record in self._store.records():
                self._merge(context, result, record.key, self._placeholder())
                result.succeeded += 1
            return

        async def _lookup(record: PoolRecord) -> PoolPatch:
            balance = float(
                await self._bridge.account_lp_balance_usd(record.token.symbol, record.chain.slug, account)
            )
            if balance > 0:
                return {
                    "user_balance_raw": balance,
                    "user_balance_formatted": format_usd(
                        balance, self._config.tvl_min_decimals, self._config.tvl_max_decimals
                    ),
                }
            return self._placeholder()

        await self._fan_out(context, result, self._store.records(), _lookup)

    def fallback_patch(self, record: PoolRecord, error: StageFetchError) -> Optional[PoolPatch]:
        return self._placeholder()

    @staticmethod
    def _placeholder() -> PoolPatch:
        return {"user_balance_raw": ZERO_AMOUNT, "user_balance_formatted": BALANCE_PLACEHOLDER}


class RemoteStatsStage(EnrichmentStage):
    """APR and staking APR from the remote stats document.

    All three APR fields are written in a single patch, so ``total_apr_raw``
    always equals ``apr_raw + staking_apr_raw`` once a record has been visited.
    """

    name = REMOTE_STATS_STAGE

    def __init__(
        self,
        store: PoolStore,
        feed: PoolStatsFeed,
        resolver: ChainTokenResolver,
        *,
        metrics: MetricsRegistry = METRICS,
    ) -> None:
        super().__init__(store, metrics=metrics)
        self._feed = feed
        self._resolver = resolver

    async def _run(self, context: StageContext, result: StageResult) -> None:
        document = await self._feed.fetch()

        async def _lookup(record: PoolRecord) -> PoolPatch:
            return self._patch_from(document, record)

        await self._fan_out(context, result, self._store.records(), _lookup)

    def _patch_from(self, document: StatsDocument, record: PoolRecord) -> PoolPatch:
        stats = self._feed.lookup(document, record.token.symbol, record.chain.slug)
        total = stats.apr + stats.staking_apr
        return {
            "apr_raw": stats.apr,
            "apr_formatted": format_percent(stats.apr),
            "staking_apr_raw": stats.staking_apr,
            "staking_apr_formatted": format_percent(stats.staking_apr),
            "total_apr_raw": total,
            "total_apr_formatted": format_percent(total),
            "staking_apr_chain": self._resolver.resolve_chain(record.chain.slug),
        }

    def fallback_patch(self, record: PoolRecord, error: StageFetchError) -> Optional[PoolPatch]:
        zero = format_percent(ZERO_AMOUNT)
        return {
            "apr_raw": ZERO_AMOUNT,
            "apr_formatted": zero,
            "staking_apr_raw": ZERO_AMOUNT,
            "staking_apr_formatted": zero,
            "total_apr_raw": ZERO_AMOUNT,
            "total_apr_formatted": zero,
        }


class ClaimableRewardsStage(EnrichmentStage):
    """Flags pools where the active account has unclaimed staking rewards."""

    name = CLAIMABLE_REWARDS_STAGE

    def __init__(
        self,
        store: PoolStore,
        client: StakingRewardsClient,
        cache: ProviderCache[int],
        config: Optional[StakingConfig] = None,
        *,
        metrics: MetricsRegistry = METRICS,
    ) -> None:
        super().__init__(store, metrics=metrics)
        self._client = client
        self._cache = cache
        self._config = config or get_app_config().staking

    async def _run(self, context: StageContext, result: StageResult) -> None:
        account = context.account
        if not account:
            for record in self._store.records():
                if record.can_claim:
                    self._merge(context, result, record.key, {"can_claim": False})
                    result.succeeded += 1
            return

        async def _lookup(record: PoolRecord) -> Optional[PoolPatch]:
            address = staking_contract_address(self._config, record.chain.slug, record.token.symbol)
            if not address:
                return None
            key = rewards_cache_key(record.chain.slug, record.token.symbol, account)
            earned = self._cache.get(key)
            if earned is None:
                earned = int(await self._client.earned(record.chain.slug, address, account))
                self._cache.set(key, earned)
            if earned > 0:
                return {"can_claim": True}
            return {}

        await self._fan_out(context, result, self._store.records(), _lookup)


__all__ = [
    "ClaimableRewardsStage",
    "EnrichmentStage",
    "RemoteStatsStage",
    "StageContext",
    "StageFetchError",
    "TvlStage",
    "UserBalanceStage",
]
