"""Configuration management for the pool enrichment pipeline."""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, cast

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CONFIG_FILE = Path("config/app.toml")
CONFIG_FILE_ENV_VAR = "APP_CONFIG_FILE"
PROFILE_ENV_VAR = "POOLS_PROFILE"


def _resolve_config_path() -> Path:
    env_value = os.getenv(CONFIG_FILE_ENV_VAR)
    if env_value:
        candidate = Path(env_value)
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        return candidate
    return Path.cwd() / DEFAULT_CONFIG_FILE


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {**base}
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(cast(Dict[str, Any], result[key]), value)
        else:
            result[key] = value
    return result


def _select_profile(data: Dict[str, Any]) -> Dict[str, Any]:
    if not data:
        return {}
    base_section = cast(Dict[str, Any], data.get("default", {}))
    requested = (os.getenv(PROFILE_ENV_VAR) or "").strip().lower()
    if requested and requested != "default" and isinstance(data.get(requested), dict):
        return _deep_merge(base_section, cast(Dict[str, Any], data[requested]))
    if base_section:
        return base_section
    return data


def _load_toml_config() -> Tuple[Dict[str, Any], Optional[Path]]:
    path = _resolve_config_path()
    if not path.exists():
        return {}, None
    with path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        return {}, path
    merged = _select_profile(payload)
    if not isinstance(merged, dict):
        return {}, path
    return dict(merged), path


def _default_symbol_aliases() -> Dict[str, str]:
    return {"WETH": "ETH", "XDAI": "DAI", "WXDAI": "DAI", "WMATIC": "MATIC"}


class ChainSettings(BaseModel):
    """Display and RPC details for a supported chain."""

    name: str
    chain_id: Optional[int] = None
    rpc_url: Optional[AnyHttpUrl] = None


class TokenSettings(BaseModel):
    """Display details for a bridged token."""

    name: str = ""
    decimals: int = Field(default=18, ge=0, le=36)
    image_url: Optional[str] = None


class CatalogConfig(BaseModel):
    """Which tokens are enumerated into pool records and how links are built."""

    tokens: List[str] = Field(default_factory=lambda: ["USDC", "USDT", "DAI", "ETH", "MATIC"])
    token_image_template: str = Field(default="https://assets.hop.exchange/logos/{symbol}.svg")
    deposit_path: str = Field(default="/pool/deposit")
    claim_path: str = Field(default="/stake")

    @field_validator("tokens", mode="before")
    @classmethod
    def _split_tokens(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


class NetworkConfig(BaseModel):
    """Static chain and token registry backing the resolver."""

    chains: Dict[str, ChainSettings] = Field(
        default_factory=lambda: {
            "ethereum": ChainSettings(name="Ethereum", chain_id=1),
            "polygon": ChainSettings(name="Polygon", chain_id=137),
            "gnosis": ChainSettings(name="Gnosis", chain_id=100),
            "optimism": ChainSettings(name="Optimism", chain_id=10),
            "arbitrum": ChainSettings(name="Arbitrum", chain_id=42161),
        }
    )
    tokens: Dict[str, TokenSettings] = Field(
        default_factory=lambda: {
            "USDC": TokenSettings(name="USD Coin", decimals=6),
            "USDT": TokenSettings(name="Tether USD", decimals=6),
            "DAI": TokenSettings(name="DAI Stablecoin", decimals=18),
            "ETH": TokenSettings(name="Ether", decimals=18),
            "MATIC": TokenSettings(name="Matic", decimals=18),
        }
    )


class StakingConfig(BaseModel):
    """Staking rewards contracts keyed by chain slug then token symbol."""

    rewards_contracts: Dict[str, Dict[str, str]] = Field(default_factory=dict)
    rpc_timeout: float = Field(default=10.0, ge=1.0, le=60.0)


class StatsFeedConfig(BaseModel):
    """Remote pool statistics document settings."""

    url: AnyHttpUrl = Field(default="https://assets.hop.exchange/v1-pool-stats.json")
    http_timeout: float = Field(default=10.0, ge=1.0, le=45.0)
    max_attempts: int = Field(default=3, ge=1, le=10)
    retry_backoff_seconds: float = Field(default=1.0, ge=0.0, le=30.0)
    symbol_aliases: Dict[str, str] = Field(default_factory=_default_symbol_aliases)


class CacheConfig(BaseModel):
    """Provider cache sizing; a TTL of zero keeps entries for the process lifetime."""

    maxsize: int = Field(default=1024, ge=1)
    tvl_ttl_seconds: int = Field(default=300, ge=0)
    rewards_ttl_seconds: int = Field(default=60, ge=0)


class PipelineConfig(BaseModel):
    """Enrichment scheduling and presentation policy."""

    drop_stale_results: bool = True
    tvl_min_decimals: int = Field(default=0, ge=0, le=8)
    tvl_max_decimals: int = Field(default=4, ge=0, le=8)


class MonitoringConfig(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO")


class AppConfig(BaseSettings):
    """Aggregated application configuration."""

    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    networks: NetworkConfig = Field(default_factory=NetworkConfig)
    staking: StakingConfig = Field(default_factory=StakingConfig)
    stats_feed: StatsFeedConfig = Field(default_factory=StatsFeedConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        def file_settings(_: Optional[BaseSettings] = None) -> Dict[str, Any]:
            payload, _ = _load_toml_config()
            return payload

        # Environment variables win over the static config file.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_settings,
            file_secret_settings,
        )


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Create a cached application configuration object."""

    return AppConfig()


__all__ = [
    "AppConfig",
    "CacheConfig",
    "CatalogConfig",
    "ChainSettings",
    "MonitoringConfig",
    "NetworkConfig",
    "PipelineConfig",
    "StakingConfig",
    "StatsFeedConfig",
    "TokenSettings",
    "get_app_config",
]
