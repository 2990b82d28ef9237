"""Read-only access to StakingRewards contracts."""

from __future__ import annotations

import asyncio
from typing import Dict, Optional, Protocol

import requests
from web3 import Web3
from web3.exceptions import Web3Exception

from ..config.settings import NetworkConfig, StakingConfig, get_app_config
from ..monitoring.logger import get_logger

STAKING_REWARDS_ABI = [
    {
        "inputs": [{"name": "account", "type": "address"}],
        "name": "earned",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    }
]


class ContractCallError(RuntimeError):
    """Raised when a staking contract read fails at the RPC or contract level."""


class StakingRewardsClient(Protocol):
    async def earned(self, chain: str, contract_address: str, account: str) -> int:
        """Return the unclaimed reward amount of ``account`` in base units."""


def staking_contract_address(config: StakingConfig, chain: str, token: str) -> Optional[str]:
    """Return the configured rewards contract for a pool, if the pool has one."""

    return (config.rewards_contracts.get(chain) or {}).get(token) or None


class Web3StakingRewardsClient:
    """Calls ``earned(account)`` over each chain's JSON-RPC endpoint."""

    def __init__(
        self,
        networks: Optional[NetworkConfig] = None,
        staking: Optional[StakingConfig] = None,
    ) -> None:
        app_config = get_app_config() if networks is None or staking is None else None
        self._networks = networks or app_config.networks
        self._staking = staking or app_config.staking
        self._providers: Dict[str, Web3] = {}
        self._logger = get_logger(__name__)

    def provider(self, chain: str) -> Web3:
        if chain not in self._providers:
            settings = self._networks.chains.get(chain)
            if settings is None or settings.rpc_url is None:
                raise ContractCallError(f"No RPC endpoint configured for chain {chain}")
            self._providers[chain] = Web3(
                Web3.HTTPProvider(
                    str(settings.rpc_url),
                    request_kwargs={"timeout": self._staking.rpc_timeout},
                )
            )
        return self._providers[chain]

    async def earned(self, chain: str, contract_address: str, account: str) -> int:
        return await asyncio.to_thread(self._earned, chain, contract_address, account)

    def _earned(self, chain: str, contract_address: str, account: str) -> int:
        w3 = self.provider(chain)
        try:
            contract = w3.eth.contract(
                address=Web3.to_checksum_address(contract_address),
                abi=STAKING_REWARDS_ABI,
            )
            amount = contract.functions.earned(Web3.to_checksum_address(account)).call()
        except (Web3Exception, requests.RequestException, ValueError) as exc:
            raise ContractCallError(
                f"earned() failed on {chain} contract {contract_address}: {exc}"
            ) from exc
        return int(amount)


__all__ = [
    "ContractCallError",
    "STAKING_REWARDS_ABI",
    "StakingRewardsClient",
    "Web3StakingRewardsClient",
    "staking_contract_address",
]
