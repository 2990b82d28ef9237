"""Chain and token resolution backed by the static network registry."""

from __future__ import annotations

from typing import Optional, Protocol

from ..config.settings import CatalogConfig, NetworkConfig, get_app_config
from ..datalake.schemas import ChainModel, TokenModel


class ChainTokenResolver(Protocol):
    def resolve_chain(self, slug: str) -> Optional[ChainModel]:
        ...

    def resolve_token(self, symbol: str) -> Optional[TokenModel]:
        ...


class ConfigResolver:
    """Resolve chain slugs and token symbols from :class:`NetworkConfig`."""

    def __init__(
        self,
        networks: Optional[NetworkConfig] = None,
        catalog: Optional[CatalogConfig] = None,
    ) -> None:
        app_config = get_app_config() if networks is None or catalog is None else None
        self._networks = networks or app_config.networks
        self._catalog = catalog or app_config.catalog
        self._chains = {slug.lower(): (slug, settings) for slug, settings in self._networks.chains.items()}
        self._tokens = {symbol.upper(): (symbol, settings) for symbol, settings in self._networks.tokens.items()}

    def resolve_chain(self, slug: str) -> Optional[ChainModel]:
        if not slug:
            return None
        entry = self._chains.get(slug.lower())
        if entry is None:
            return None
        canonical, settings = entry
        return ChainModel(slug=canonical, name=settings.name, chain_id=settings.chain_id)

    def resolve_token(self, symbol: str) -> Optional[TokenModel]:
        if not symbol:
            return None
        entry = self._tokens.get(symbol.upper())
        if entry is None:
            return None
        canonical, settings = entry
        image_url = settings.image_url or self._catalog.token_image_template.format(
            symbol=canonical.lower()
        )
        return TokenModel(
            symbol=canonical,
            decimals=settings.decimals,
            name=settings.name or canonical,
            image_url=image_url,
        )


__all__ = ["ChainTokenResolver", "ConfigResolver"]
