"""Dependency-driven scheduling of the enrichment stages."""

from __future__ import annotations

import asyncio
import itertools
from typing import Callable, Dict, Optional, Set, Tuple

from ..config.settings import AppConfig, get_app_config
from ..datalake.schemas import StageResult
from ..datalake.store import PoolStore
from ..ingestion.bridge import BridgeClient
from ..ingestion.cache import ProviderCaches
from ..ingestion.resolver import ChainTokenResolver, ConfigResolver
from ..ingestion.staking import StakingRewardsClient
from ..ingestion.stats_feed import PoolStatsFeed
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS, MetricsRegistry
from ..utils.constants import (
    ACCOUNT_STAGES,
    ALL_STAGES,
    CLAIMABLE_REWARDS_STAGE,
    REMOTE_STATS_STAGE,
    TVL_STAGE,
    USER_BALANCE_STAGE,
)
from .catalog import CatalogBuilder
from .stages import (
    ClaimableRewardsStage,
    EnrichmentStage,
    RemoteStatsStage,
    StageContext,
    TvlStage,
    UserBalanceStage,
)

STAGE_DEPENDENCIES: Dict[str, Tuple[str, ...]] = {
    "catalog": ALL_STAGES,
    "account": ACCOUNT_STAGES,
}


class PoolPipeline:
    """Owns the pool store and re-runs each stage when its dependencies change.

    ``start`` publishes the catalog and launches every stage. ``set_account``
    re-launches the account-dependent stages. Stage runs are fire-and-forget
    tasks tagged with the account active at launch; with
    ``pipeline.drop_stale_results`` enabled, results from a run whose account
    is no longer active are discarded instead of merged.
    """

    def __init__(
        self,
        bridge: BridgeClient,
        staking_client: StakingRewardsClient,
        *,
        resolver: Optional[ChainTokenResolver] = None,
        stats_feed: Optional[PoolStatsFeed] = None,
        config: Optional[AppConfig] = None,
        store: Optional[PoolStore] = None,
        caches: Optional[ProviderCaches] = None,
        metrics: MetricsRegistry = METRICS,
    ) -> None:
        self._config = config or get_app_config()
        self._resolver = resolver or ConfigResolver(self._config.networks, self._config.catalog)
        self.store = store or PoolStore()
        self.caches = caches or ProviderCaches(self._config.cache, metrics=metrics)
        self._catalog = CatalogBuilder(bridge, self._resolver, self._config.catalog)
        self._stages: Dict[str, EnrichmentStage] = {
            TVL_STAGE: TvlStage(
                self.store, bridge, self.caches.tvl, self._config.pipeline, metrics=metrics
            ),
            USER_BALANCE_STAGE: UserBalanceStage(
                self.store, bridge, self._config.pipeline, metrics=metrics
            ),
            REMOTE_STATS_STAGE: RemoteStatsStage(
                self.store,
                stats_feed or PoolStatsFeed(self._config.stats_feed),
                self._resolver,
                metrics=metrics,
            ),
            CLAIMABLE_REWARDS_STAGE: ClaimableRewardsStage(
                self.store, staking_client, self.caches.rewards, self._config.staking, metrics=metrics
            ),
        }
        self._account: Optional[str] = None
        self._starting = False
        self._tasks: Set[asyncio.Task] = set()
        self._run_ids = itertools.count(1)
        self.last_results: Dict[str, StageResult] = {}
        self._logger = get_logger(__name__)

    @property
    def account(self) -> Optional[str]:
        return self._account

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def start(self) -> None:
        """Build and publish the catalog, then launch every stage."""

        if self._starting or self.store.is_ready:
            raise RuntimeError("Pipeline already started")
        self._starting = True
        try:
            records = await self._catalog.build()
            self.store.publish_catalog(records)
        finally:
            self._starting = False
        self._trigger("catalog")

    def set_account(self, account: Optional[str]) -> None:
        normalized = account or None
        if normalized == self._account:
            return
        self._account = normalized
        self._logger.info("Active account changed", extra={"connected": normalized is not None})
        if self.store.is_ready:
            self._trigger("account")

    def refresh(self, stage: str) -> "asyncio.Task[StageResult]":
        if stage not in self._stages:
            raise KeyError(f"Unknown stage {stage}")
        if not self.store.is_ready:
            raise RuntimeError("Pipeline has not been started")
        return self._launch(stage)

    async def wait_idle(self) -> None:
        """Wait until no stage run is in flight."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def _trigger(self, dependency: str) -> None:
        for stage in STAGE_DEPENDENCIES[dependency]:
            self._launch(stage)

    def _launch(self, stage_name: str) -> "asyncio.Task[StageResult]":
        stage = self._stages[stage_name]
        account = self._account if stage_name in ACCOUNT_STAGES else None
        context = StageContext(
            run_id=f"{stage_name}-{next(self._run_ids)}",
            account=account,
            is_current=self._currency_check(stage_name, account),
        )
        task = asyncio.get_running_loop().create_task(self._run_stage(stage, context), name=context.run_id)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _currency_check(self, stage_name: str, account: Optional[str]) -> Callable[[], bool]:
        if stage_name not in ACCOUNT_STAGES or not self._config.pipeline.drop_stale_results:
            return lambda: True
        return lambda: self._account == account

    async def _run_stage(self, stage: EnrichmentStage, context: StageContext) -> StageResult:
        result = await stage.run(context)
        self.last_results[stage.name] = result
        return result


__all__ = ["PoolPipeline", "STAGE_DEPENDENCIES"]
