"""Session state consumed by the pools page."""

from __future__ import annotations

from typing import Dict, List, Optional

from ..datalake.schemas import FilterChain, FilterToken, PoolRecord
from ..monitoring.metrics import METRICS, MetricsRegistry
from ..pipeline.scheduler import PoolPipeline
from .views import ViewProjector


class PoolsDashboardState:
    """Binds a :class:`PoolPipeline` to a :class:`ViewProjector` for one session."""

    def __init__(self, pipeline: PoolPipeline, *, metrics: MetricsRegistry = METRICS) -> None:
        self.pipeline = pipeline
        self.views = ViewProjector(pipeline.store)
        self.metrics = metrics

    async def start(self, account: Optional[str] = None) -> None:
        self.pipeline.set_account(account)
        await self.pipeline.start()

    def connect_account(self, account: str) -> None:
        self.pipeline.set_account(account)

    def disconnect_account(self) -> None:
        self.pipeline.set_account(None)

    @property
    def pools(self) -> List[PoolRecord]:
        return self.views.pools

    @property
    def user_pools(self) -> List[PoolRecord]:
        return self.views.user_pools

    @property
    def filter_tokens(self) -> List[FilterToken]:
        return self.views.filter_tokens

    @property
    def filter_chains(self) -> List[FilterChain]:
        return self.views.filter_chains

    def toggle_filter_token(self, symbol: str) -> None:
        self.views.toggle_filter_token(symbol)

    def toggle_filter_chain(self, slug: str) -> None:
        self.views.toggle_filter_chain(slug)

    def toggle_column_sort(self, column: str) -> None:
        self.views.toggle_column_sort(column)

    def snapshot(self) -> Dict[str, object]:
        payload = self.views.snapshot()
        payload["account_connected"] = self.pipeline.account is not None
        payload["in_flight"] = self.pipeline.in_flight
        payload["metrics"] = self.metrics.snapshot()
        return payload

    def close(self) -> None:
        self.views.close()


__all__ = ["PoolsDashboardState"]
