"""Utility helpers for dashboard serialization."""

from __future__ import annotations

import math
from dataclasses import fields, is_dataclass
from typing import Any, Mapping


def to_serializable(value: Any) -> Any:
    """Recursively convert dataclasses into JSON-friendly structures."""

    if is_dataclass(value) and not isinstance(value, type):
        return {item.name: to_serializable(getattr(value, item.name)) for item in fields(value)}
    if isinstance(value, Mapping):
        return {str(key): to_serializable(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_serializable(item) for item in value]
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


__all__ = ["to_serializable"]
