"""Shared constants for the pool enrichment pipeline."""

BALANCE_PLACEHOLDER = "-"
ZERO_AMOUNT = 0.0

TVL_STAGE = "tvl"
USER_BALANCE_STAGE = "user_balance"
REMOTE_STATS_STAGE = "remote_stats"
CLAIMABLE_REWARDS_STAGE = "claimable_rewards"

ALL_STAGES = (TVL_STAGE, USER_BALANCE_STAGE, REMOTE_STATS_STAGE, CLAIMABLE_REWARDS_STAGE)
ACCOUNT_STAGES = (USER_BALANCE_STAGE, CLAIMABLE_REWARDS_STAGE)

__all__ = [
    "ACCOUNT_STAGES",
    "ALL_STAGES",
    "BALANCE_PLACEHOLDER",
    "CLAIMABLE_REWARDS_STAGE",
    "REMOTE_STATS_STAGE",
    "TVL_STAGE",
    "USER_BALANCE_STAGE",
    "ZERO_AMOUNT",
]
