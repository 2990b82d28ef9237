"""Contract the pipeline requires from the bridge SDK client."""

from __future__ import annotations

from typing import Protocol, Sequence


class NetworkError(RuntimeError):
    """Raised by a bridge client when its data provider fails."""


class BridgeClient(Protocol):
    """Per-token liquidity lookups exposed by the bridge SDK."""

    async def supported_chains(self, token: str) -> Sequence[str]:
        """Return the chain slugs that host an LP pool for ``token``, in display order."""

    async def tvl_usd(self, token: str, chain: str) -> float:
        """Return the USD total value locked in the ``token`` pool on ``chain``."""

    async def account_lp_balance_usd(self, token: str, chain: str, account: str) -> float:
        """Return the USD value of ``account``'s LP position in the pool."""


__all__ = ["BridgeClient", "NetworkError"]
