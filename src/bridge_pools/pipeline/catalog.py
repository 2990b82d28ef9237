"""Enumerate configured tokens and their supported chains into pool records."""

from __future__ import annotations

from typing import List, Optional, Sequence

from ..config.settings import CatalogConfig, get_app_config
from ..datalake.schemas import ChainModel, PoolRecord, TokenModel
from ..ingestion.bridge import BridgeClient
from ..ingestion.resolver import ChainTokenResolver
from ..monitoring.logger import get_logger


def build_pool_record(token: TokenModel, chain: ChainModel, config: CatalogConfig) -> PoolRecord:
    symbol = token.symbol
    query = f"token={symbol}&sourceNetwork={chain.slug}"
    return PoolRecord(
        token=token,
        chain=chain,
        display_name=f"{symbol} {chain.name} Pool",
        display_subtitle=f"{symbol} - h{symbol}",
        deposit_link=f"{config.deposit_path}?{query}",
        claim_link=f"{config.claim_path}?{query}",
    )


class CatalogBuilder:
    """Builds the baseline pool records every stage later enriches."""

    def __init__(
        self,
        bridge: BridgeClient,
        resolver: ChainTokenResolver,
        config: Optional[CatalogConfig] = None,
    ) -> None:
        self._bridge = bridge
        self._resolver = resolver
        self._config = config or get_app_config().catalog
        self._logger = get_logger(__name__)

    async def build(self, tokens: Optional[Sequence[str]] = None) -> List[PoolRecord]:
        records: List[PoolRecord] = []
        seen: set[tuple[str, str]] = set()
        for token_symbol in tokens if tokens is not None else self._config.tokens:
            token = self._resolver.resolve_token(token_symbol)
            if token is None:
                self._logger.debug("Skipping unresolvable token %s", token_symbol)
                continue
            try:
                chain_slugs = await self._bridge.supported_chains(token_symbol)
            except Exception as exc:  # noqa: BLE001
                self._logger.warning("Supported chains lookup failed for %s: %s", token_symbol, exc)
                continue
            for chain_slug in chain_slugs:
                chain = self._resolver.resolve_chain(chain_slug)
                if chain is None:
                    self._logger.debug("Skipping %s pool on unresolvable chain %s", token_symbol, chain_slug)
                    continue
                if (token.symbol, chain.slug) in seen:
                    continue
                seen.add((token.symbol, chain.slug))
                records.append(build_pool_record(token, chain, self._config))
        self._logger.info("Built pool catalog", extra={"pools": len(records)})
        return records


__all__ = ["CatalogBuilder", "build_pool_record"]
