"""Identity-keyed arena of pool records shared by every enrichment stage."""

from __future__ import annotations

from dataclasses import fields
from typing import Callable, Dict, Iterable, List, Optional

from ..monitoring.logger import get_logger
from .schemas import PoolKey, PoolPatch, PoolRecord

Subscriber = Callable[["PoolStore"], None]

_IMMUTABLE_FIELDS = frozenset(
    {"token", "chain", "display_name", "display_subtitle", "deposit_link", "claim_link"}
)
_PATCHABLE_FIELDS = frozenset(f.name for f in fields(PoolRecord)) - _IMMUTABLE_FIELDS


class PoolStore:
    """Aggregate store of pool records.

    Records are published once by the catalog and afterwards only mutated
    through :meth:`apply`. All calls happen on the event loop thread, so no
    locking is needed; every effective change bumps :attr:`version` and
    notifies subscribers.
    """

    def __init__(self) -> None:
        self._records: Dict[PoolKey, PoolRecord] = {}
        self._subscribers: List[Subscriber] = []
        self._ready = False
        self._version = 0
        self._logger = get_logger(__name__)

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def version(self) -> int:
        return self._version

    def publish_catalog(self, records: Iterable[PoolRecord]) -> None:
        if self._ready:
            raise RuntimeError("Pool catalog has already been published")
        staged: Dict[PoolKey, PoolRecord] = {}
        for record in records:
            if record.key in staged:
                raise ValueError(f"Duplicate pool {record.key[0]}:{record.key[1]}")
            staged[record.key] = record
        self._records = staged
        self._ready = True
        self._logger.info("Published pool catalog", extra={"pools": len(staged)})
        self._notify()

    def records(self) -> List[PoolRecord]:
        return list(self._records.values())

    def keys(self) -> List[PoolKey]:
        return list(self._records.keys())

    def get(self, key: PoolKey) -> Optional[PoolRecord]:
        return self._records.get(key)

    def __len__(self) -> int:
        return len(self._records)

    def apply(self, key: PoolKey, patch: PoolPatch) -> bool:
        """Merge ``patch`` into the record at ``key``; return whether anything changed."""

        record = self._records.get(key)
        if record is None:
            raise KeyError(f"Unknown pool {key[0]}:{key[1]}")
        unknown = set(patch) - _PATCHABLE_FIELDS
        if unknown:
            raise AttributeError(f"Fields not patchable: {', '.join(sorted(unknown))}")
        changed = False
        for name, value in patch.items():
            if getattr(record, name) != value:
                setattr(record, name, value)
                changed = True
        if changed:
            self._notify()
        return changed

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _notify(self) -> None:
        self._version += 1
        for callback in list(self._subscribers):
            try:
                callback(self)
            except Exception:  # noqa: BLE001
                self._logger.exception("Pool store subscriber failed")


__all__ = ["PoolStore", "Subscriber"]
