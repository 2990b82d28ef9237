"""Filtered and sorted projections of the pool store."""

from __future__ import annotations

from operator import attrgetter
from typing import Dict, List, Optional

from ..datalake.schemas import NUMERIC_COLUMNS, FilterChain, FilterToken, PoolRecord
from ..datalake.store import PoolStore
from .utils import to_serializable


def resolve_column(column: str) -> str:
    """Map a sortable column name (``tvlRaw`` or ``tvl_raw``) to its record attribute."""

    if column in NUMERIC_COLUMNS:
        return NUMERIC_COLUMNS[column]
    if column in NUMERIC_COLUMNS.values():
        return column
    raise ValueError(f"Column {column!r} is not sortable")


class ViewProjector:
    """Maintains the all-pools and user-pools views over a :class:`PoolStore`.

    Filters are created once from the first non-empty record set; after that
    only the toggles change them. A record is hidden when its token or chain
    filter exists and is disabled.
    """

    def __init__(self, store: PoolStore) -> None:
        self._store = store
        self._filter_tokens: List[FilterToken] = []
        self._filter_chains: List[FilterChain] = []
        self._column_sort: Optional[str] = None
        self._column_sort_desc = True
        self._pools: List[PoolRecord] = []
        self._user_pools: List[PoolRecord] = []
        self._unsubscribe = store.subscribe(lambda _store: self.recompute())
        self.recompute()

    @property
    def pools(self) -> List[PoolRecord]:
        return list(self._pools)

    @property
    def user_pools(self) -> List[PoolRecord]:
        return list(self._user_pools)

    @property
    def filter_tokens(self) -> List[FilterToken]:
        return list(self._filter_tokens)

    @property
    def filter_chains(self) -> List[FilterChain]:
        return list(self._filter_chains)

    @property
    def column_sort(self) -> Optional[str]:
        return self._column_sort

    @property
    def column_sort_desc(self) -> bool:
        return self._column_sort_desc

    def toggle_filter_token(self, symbol: str) -> None:
        for item in self._filter_tokens:
            if item.symbol == symbol:
                item.enabled = not item.enabled
        self.recompute()

    def toggle_filter_chain(self, slug: str) -> None:
        for item in self._filter_chains:
            if item.slug == slug:
                item.enabled = not item.enabled
        self.recompute()

    def toggle_column_sort(self, column: str) -> None:
        attribute = resolve_column(column)
        if attribute == self._column_sort:
            self._column_sort_desc = not self._column_sort_desc
        else:
            self._column_sort = attribute
            self._column_sort_desc = True
        self.recompute()

    def recompute(self) -> None:
        records = self._store.records()
        self._ensure_filters(records)

        self._user_pools = sorted(
            (record for record in records if record.user_balance_raw > 0),
            key=attrgetter("user_balance_raw"),
            reverse=True,
        )

        disabled_tokens = {item.symbol for item in self._filter_tokens if not item.enabled}
        disabled_chains = {item.slug for item in self._filter_chains if not item.enabled}
        pools = [
            record
            for record in records
            if record.token.symbol not in disabled_tokens and record.chain.slug not in disabled_chains
        ]
        if self._column_sort:
            pools.sort(key=attrgetter(self._column_sort), reverse=self._column_sort_desc)
        self._pools = pools

    def snapshot(self) -> Dict[str, object]:
        return {
            "pools": to_serializable(self._pools),
            "user_pools": to_serializable(self._user_pools),
            "filter_tokens": to_serializable(self._filter_tokens),
            "filter_chains": to_serializable(self._filter_chains),
            "column_sort": self._column_sort,
            "column_sort_desc": self._column_sort_desc,
        }

    def close(self) -> None:
        self._unsubscribe()

    def _ensure_filters(self, records: List[PoolRecord]) -> None:
        if not self._filter_tokens:
            tokens: Dict[str, FilterToken] = {}
            for record in records:
                tokens.setdefault(
                    record.token.symbol,
                    FilterToken(symbol=record.token.symbol, image_url=record.token.image_url),
                )
            self._filter_tokens = list(tokens.values())
        if not self._filter_chains:
            chains: Dict[str, FilterChain] = {}
            for record in records:
                chains.setdefault(record.chain.slug, FilterChain(slug=record.chain.slug, name=record.chain.name))
            self._filter_chains = list(chains.values())


__all__ = ["ViewProjector", "resolve_column"]
