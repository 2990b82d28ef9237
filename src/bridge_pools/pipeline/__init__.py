"""Pipeline package exports."""

from .catalog import CatalogBuilder
from .scheduler import PoolPipeline
from .stages import (
    ClaimableRewardsStage,
    EnrichmentStage,
    RemoteStatsStage,
    StageContext,
    StageFetchError,
    TvlStage,
    UserBalanceStage,
)

__all__ = [
    "CatalogBuilder",
    "ClaimableRewardsStage",
    "EnrichmentStage",
    "PoolPipeline",
    "RemoteStatsStage",
    "StageContext",
    "StageFetchError",
    "TvlStage",
    "UserBalanceStage",
]
