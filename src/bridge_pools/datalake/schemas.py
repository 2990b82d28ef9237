"""Data models shared by the catalog, enrichment stages and views."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

PoolKey = Tuple[str, str]
PoolPatch = Dict[str, Any]

NUMERIC_COLUMNS: Dict[str, str] = {
    "tvlRaw": "tvl_raw",
    "userBalanceRaw": "user_balance_raw",
    "aprRaw": "apr_raw",
    "stakingAprRaw": "staking_apr_raw",
    "totalAprRaw": "total_apr_raw",
}


@dataclass(slots=True, frozen=True)
class ChainModel:
    """A chain a pool can live on."""

    slug: str
    name: str
    chain_id: Optional[int] = None


@dataclass(slots=True, frozen=True)
class TokenModel:
    """A bridged token as shown in the pools table."""

    symbol: str
    decimals: int
    name: str = ""
    image_url: str = ""


@dataclass(slots=True)
class PoolRecord:
    """One liquidity pool row, enriched in place by the pipeline stages."""

    token: TokenModel
    chain: ChainModel
    display_name: str
    display_subtitle: str
    deposit_link: str
    claim_link: str
    tvl_raw: float = 0.0
    tvl_formatted: str = ""
    user_balance_raw: float = 0.0
    user_balance_formatted: str = ""
    apr_raw: float = 0.0
    apr_formatted: str = ""
    staking_apr_raw: float = 0.0
    staking_apr_formatted: str = ""
    total_apr_raw: float = 0.0
    total_apr_formatted: str = ""
    staking_apr_chain: Optional[ChainModel] = None
    can_claim: bool = False

    @property
    def key(self) -> PoolKey:
        return (self.token.symbol, self.chain.slug)


@dataclass(slots=True)
class FilterToken:
    """Inclusion toggle for every pool of one token."""

    symbol: str
    image_url: str = ""
    enabled: bool = True


@dataclass(slots=True)
class FilterChain:
    """Inclusion toggle for every pool on one chain."""

    slug: str
    name: str = ""
    enabled: bool = True


@dataclass(slots=True)
class PoolStats:
    """APR figures for one pool from the remote stats document."""

    apr: float
    staking_apr: float = 0.0


@dataclass(slots=True)
class StageResult:
    """Outcome counts for a single stage run."""

    stage: str
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    dropped: int = 0
    aborted: bool = False
    errors: Dict[str, str] = field(default_factory=dict)


__all__ = [
    "ChainModel",
    "FilterChain",
    "FilterToken",
    "NUMERIC_COLUMNS",
    "PoolKey",
    "PoolPatch",
    "PoolRecord",
    "PoolStats",
    "StageResult",
    "TokenModel",
]
