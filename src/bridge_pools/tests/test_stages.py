from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Tuple

from bridge_pools.config.settings import (
    CatalogConfig,
    ChainSettings,
    NetworkConfig,
    PipelineConfig,
    StakingConfig,
    StatsFeedConfig,
    TokenSettings,
)
from bridge_pools.datalake.schemas import ChainModel, TokenModel
from bridge_pools.datalake.store import PoolStore
from bridge_pools.ingestion.bridge import NetworkError
from bridge_pools.ingestion.cache import ProviderCache
from bridge_pools.ingestion.resolver import ConfigResolver
from bridge_pools.ingestion.staking import ContractCallError
from bridge_pools.ingestion.stats_feed import FeedFetchError, PoolStatsFeed
from bridge_pools.monitoring.metrics import MetricsRegistry
from bridge_pools.pipeline.catalog import build_pool_record
from bridge_pools.pipeline.stages import (
    ClaimableRewardsStage,
    RemoteStatsStage,
    StageContext,
    TvlStage,
    UserBalanceStage,
)

ACCOUNT = "0x5C6E2e1A3aC1A0E9dD3b8E0f4F2b2C6A8c1d9E11"
CONTRACT = "0x2C2Ab81Cf235e86374468b387e241DF22459A265"

NETWORKS = NetworkConfig(
    chains={"chaina": ChainSettings(name="Chain A"), "chainb": ChainSettings(name="Chain B")},
    tokens={"USDC": TokenSettings(name="USD Coin", decimals=6)},
)


class FakeBridge:
    def __init__(
        self,
        tvl: Optional[Dict[Tuple[str, str], float]] = None,
        balances: Optional[Dict[Tuple[str, str, str], float]] = None,
        failing: Tuple[Tuple[str, str], ...] = (),
    ) -> None:
        self.tvl = tvl or {}
        self.balances = balances or {}
        self.failing = set(failing)
        self.tvl_calls: List[Tuple[str, str]] = []
        self.balance_calls: List[Tuple[str, str, str]] = []

    async def supported_chains(self, token: str) -> List[str]:
        return ["chaina", "chainb"]

    async def tvl_usd(self, token: str, chain: str) -> float:
        self.tvl_calls.append((token, chain))
        if (token, chain) in self.failing:
            raise NetworkError("tvl provider down")
        return self.tvl.get((token, chain), 0.0)

    async def account_lp_balance_usd(self, token: str, chain: str, account: str) -> float:
        self.balance_calls.append((token, chain, account))
        if (token, chain) in self.failing:
            raise NetworkError("balance provider down")
        return self.balances.get((token, chain, account), 0.0)


class FakeStakingClient:
    def __init__(self, earned: Dict[Tuple[str, str], int], failing: Tuple[str, ...] = ()) -> None:
        self._earned = earned
        self._failing = failing
        self.calls: List[Tuple[str, str, str]] = []

    async def earned(self, chain: str, contract_address: str, account: str) -> int:
        self.calls.append((chain, contract_address, account))
        if chain in self._failing:
            raise ContractCallError("execution reverted")
        return self._earned.get((chain, account), 0)


class StaticFeed(PoolStatsFeed):
    def __init__(self, document: Optional[dict] = None, error: Optional[Exception] = None) -> None:
        super().__init__(config=StatsFeedConfig(max_attempts=1, retry_backoff_seconds=0))
        self._document = document
        self._error = error

    async def fetch(self) -> dict:
        if self._error is not None:
            raise self._error
        return self._document


def _store() -> PoolStore:
    store = PoolStore()
    token = TokenModel(symbol="USDC", decimals=6)
    config = CatalogConfig()
    store.publish_catalog(
        [
            build_pool_record(token, ChainModel(slug="chaina", name="Chain A"), config),
            build_pool_record(token, ChainModel(slug="chainb", name="Chain B"), config),
        ]
    )
    return store


def _run(stage, account: Optional[str] = None):
    return asyncio.run(stage.run(StageContext(run_id="test", account=account)))


def test_tvl_stage_writes_formatted_values_and_caches() -> None:
    store = _store()
    bridge = FakeBridge(tvl={("USDC", "chaina"): 1234.56789, ("USDC", "chainb"): 0.0})
    cache: ProviderCache[float] = ProviderCache("tvl", metrics=MetricsRegistry())
    stage = TvlStage(store, bridge, cache, PipelineConfig(), metrics=MetricsRegistry())

    _run(stage)
    _run(stage)
    _run(stage)

    record = store.get(("USDC", "chaina"))
    assert record.tvl_raw == 1234.56789
    assert record.tvl_formatted == "$1,234.5679"
    assert store.get(("USDC", "chainb")).tvl_formatted == "$0"
    assert sorted(bridge.tvl_calls) == [("USDC", "chaina"), ("USDC", "chainb")]


def test_tvl_stage_formats_very_large_values() -> None:
    store = _store()
    bridge = FakeBridge(tvl={("USDC", "chaina"): 1e25})
    stage = TvlStage(store, bridge, ProviderCache("tvl", metrics=MetricsRegistry()), PipelineConfig(), metrics=MetricsRegistry())

    result = _run(stage)

    assert result.failed == 0
    assert store.get(("USDC", "chaina")).tvl_formatted == "$10,000,000,000,000,000,000,000,000"


def test_tvl_failure_is_isolated_and_leaves_prior_state() -> None:
    store = _store()
    store.apply(("USDC", "chainb"), {"tvl_raw": 7.0, "tvl_formatted": "$7"})
    bridge = FakeBridge(tvl={("USDC", "chaina"): 100.0}, failing=(("USDC", "chainb"),))
    metrics = MetricsRegistry()
    stage = TvlStage(store, bridge, ProviderCache("tvl", metrics=metrics), PipelineConfig(), metrics=metrics)

    result = _run(stage)

    assert result.succeeded == 1
    assert result.failed == 1
    assert "USDC:chainb" in result.errors
    assert store.get(("USDC", "chaina")).tvl_raw == 100.0
    assert store.get(("USDC", "chainb")).tvl_raw == 7.0
    assert metrics.get("stage.tvl.failure") == 1


def test_remote_stats_partial_feed_scenario() -> None:
    store = _store()
    store.apply(("USDC", "chaina"), {"tvl_raw": 100.0})
    store.apply(("USDC", "chainb"), {"tvl_raw": 50.0})
    feed = StaticFeed({"data": {"USDC": {"chaina": {"apr": 0.05}}}})
    stage = RemoteStatsStage(store, feed, ConfigResolver(NETWORKS, CatalogConfig()), metrics=MetricsRegistry())

    result = _run(stage)

    chain_a = store.get(("USDC", "chaina"))
    chain_b = store.get(("USDC", "chainb"))
    assert result.succeeded == 1 and result.failed == 1
    assert chain_a.apr_formatted == "5.00%"
    assert chain_a.staking_apr_chain == ChainModel(slug="chaina", name="Chain A")
    assert chain_b.apr_formatted == "0.00%"
    assert chain_b.total_apr_formatted == "0.00%"
    assert chain_a.tvl_raw == 100.0
    assert chain_b.tvl_raw == 50.0
    for record in store.records():
        assert record.total_apr_raw == record.apr_raw + record.staking_apr_raw


def test_remote_stats_non_finite_apr_gets_zero_fallback() -> None:
    store = _store()
    feed = StaticFeed(
        {"data": {"USDC": {"chaina": {"apr": float("nan")}, "chainb": {"apr": 0.01, "stakingApr": float("inf")}}}}
    )
    stage = RemoteStatsStage(store, feed, ConfigResolver(NETWORKS, CatalogConfig()), metrics=MetricsRegistry())

    result = _run(stage)

    assert result.failed == 2
    for record in store.records():
        assert record.apr_raw == record.staking_apr_raw == record.total_apr_raw == 0
        assert record.apr_formatted == "0.00%"
        assert record.total_apr_formatted == "0.00%"


def test_remote_stats_sums_staking_apr_through_alias() -> None:
    store = PoolStore()
    weth = TokenModel(symbol="WETH", decimals=18)
    store.publish_catalog([build_pool_record(weth, ChainModel(slug="chaina", name="Chain A"), CatalogConfig())])
    feed = StaticFeed({"data": {"ETH": {"chaina": {"apr": 0.01, "stakingApr": 0.025}}}})
    stage = RemoteStatsStage(store, feed, ConfigResolver(NETWORKS, CatalogConfig()), metrics=MetricsRegistry())

    _run(stage)

    record = store.get(("WETH", "chaina"))
    assert record.total_apr_raw == 0.01 + 0.025
    assert record.total_apr_formatted == "3.50%"
    assert record.staking_apr_formatted == "2.50%"


def test_remote_stats_fetch_failure_aborts_without_writes() -> None:
    store = _store()
    store.apply(("USDC", "chaina"), {"apr_raw": 0.04, "total_apr_raw": 0.04, "apr_formatted": "4.00%"})
    metrics = MetricsRegistry()
    stage = RemoteStatsStage(
        store, StaticFeed(error=FeedFetchError("expected data")), ConfigResolver(NETWORKS, CatalogConfig()), metrics=metrics
    )

    result = _run(stage)

    assert result.aborted
    assert result.succeeded == result.failed == 0
    assert store.get(("USDC", "chaina")).apr_formatted == "4.00%"
    assert store.get(("USDC", "chainb")).apr_formatted == ""
    assert metrics.get("stage.remote_stats.aborted") == 1


def test_user_balance_without_account_resets_to_placeholder() -> None:
    store = _store()
    store.apply(("USDC", "chaina"), {"user_balance_raw": 12.0, "user_balance_formatted": "$12"})
    bridge = FakeBridge()
    stage = UserBalanceStage(store, bridge, PipelineConfig(), metrics=MetricsRegistry())

    _run(stage, account=None)

    for record in store.records():
        assert record.user_balance_raw == 0
        assert record.user_balance_formatted == "-"
    assert bridge.balance_calls == []


def test_user_balance_is_idempotent_and_uncached() -> None:
    store = _store()
    bridge = FakeBridge(balances={("USDC", "chaina", ACCOUNT): 25.5})
    stage = UserBalanceStage(store, bridge, PipelineConfig(), metrics=MetricsRegistry())

    _run(stage, account=ACCOUNT)
    first = [(r.user_balance_raw, r.user_balance_formatted) for r in store.records()]
    _run(stage, account=ACCOUNT)
    second = [(r.user_balance_raw, r.user_balance_formatted) for r in store.records()]

    assert first == second == [(25.5, "$25.5"), (0.0, "-")]
    assert len(bridge.balance_calls) == 4


def test_user_balance_failure_writes_placeholder() -> None:
    store = _store()
    store.apply(("USDC", "chainb"), {"user_balance_raw": 3.0, "user_balance_formatted": "$3"})
    bridge = FakeBridge(balances={("USDC", "chaina", ACCOUNT): 1.0}, failing=(("USDC", "chainb"),))
    stage = UserBalanceStage(store, bridge, PipelineConfig(), metrics=MetricsRegistry())

    result = _run(stage, account=ACCOUNT)

    assert result.failed == 1
    assert store.get(("USDC", "chaina")).user_balance_raw == 1.0
    assert store.get(("USDC", "chainb")).user_balance_raw == 0.0
    assert store.get(("USDC", "chainb")).user_balance_formatted == "-"


def _claim_stage(store: PoolStore, client: FakeStakingClient, cache: ProviderCache[int]) -> ClaimableRewardsStage:
    staking = StakingConfig(rewards_contracts={"chaina": {"USDC": CONTRACT}})
    return ClaimableRewardsStage(store, client, cache, staking, metrics=MetricsRegistry())


def test_claimable_zero_earned_stays_false_and_clear_is_noop() -> None:
    store = _store()
    client = FakeStakingClient({("chaina", ACCOUNT): 0})
    stage = _claim_stage(store, client, ProviderCache("rewards", metrics=MetricsRegistry()))
    versions: List[int] = []
    store.subscribe(lambda s: versions.append(s.version))

    result = _run(stage, account=ACCOUNT)
    assert store.get(("USDC", "chaina")).can_claim is False
    assert result.skipped == 1

    _run(stage, account=None)
    assert store.get(("USDC", "chaina")).can_claim is False
    assert versions == []


def test_claimable_positive_earned_is_sticky_across_cached_triggers() -> None:
    store = _store()
    client = FakeStakingClient({("chaina", ACCOUNT): 1})
    stage = _claim_stage(store, client, ProviderCache("rewards", metrics=MetricsRegistry()))

    _run(stage, account=ACCOUNT)
    assert store.get(("USDC", "chaina")).can_claim is True
    assert store.get(("USDC", "chainb")).can_claim is False

    _run(stage, account=ACCOUNT)
    assert store.get(("USDC", "chaina")).can_claim is True
    assert client.calls == [("chaina", CONTRACT, ACCOUNT)]

    _run(stage, account=None)
    assert store.get(("USDC", "chaina")).can_claim is False


def test_claimable_contract_failure_is_logged_only() -> None:
    store = _store()
    client = FakeStakingClient({}, failing=("chaina",))
    stage = _claim_stage(store, client, ProviderCache("rewards", metrics=MetricsRegistry()))

    result = _run(stage, account=ACCOUNT)

    assert result.failed == 1
    assert not result.aborted
    assert store.get(("USDC", "chaina")).can_claim is False


def test_stale_context_drops_patches() -> None:
    store = _store()
    bridge = FakeBridge(balances={("USDC", "chaina", ACCOUNT): 9.0})
    metrics = MetricsRegistry()
    stage = UserBalanceStage(store, bridge, PipelineConfig(), metrics=metrics)

    result = asyncio.run(stage.run(StageContext(run_id="stale", account=ACCOUNT, is_current=lambda: False)))

    assert result.dropped == 2
    assert store.get(("USDC", "chaina")).user_balance_raw == 0.0
    assert metrics.get("stage.user_balance.stale_dropped") == 2
