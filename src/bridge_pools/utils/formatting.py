"""Presentation helpers for currency and percentage strings."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext


def format_currency(value: float, min_decimals: int = 0, max_decimals: int = 4) -> str:
    """Format ``value`` with thousands separators and between min and max fraction digits."""

    if max_decimals < min_decimals:
        raise ValueError("max_decimals must be >= min_decimals")
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    quantum = Decimal(1).scaleb(-max_decimals)
    with localcontext() as context:
        context.prec = max(context.prec, amount.adjusted() + max_decimals + 2)
        rounded = amount.quantize(quantum, rounding=ROUND_HALF_UP)
    text = f"{rounded:,.{max_decimals}f}"
    if max_decimals > min_decimals and "." in text:
        whole, fraction = text.split(".")
        fraction = fraction.rstrip("0")
        if len(fraction) < min_decimals:
            fraction = fraction.ljust(min_decimals, "0")
        text = f"{whole}.{fraction}" if fraction else whole
    if text.startswith("-") and not rounded:
        text = text[1:]
    return text


def format_usd(value: float, min_decimals: int = 0, max_decimals: int = 4) -> str:
    return f"${format_currency(value, min_decimals, max_decimals)}"


def format_percent(ratio: float) -> str:
    """Render a ratio such as ``0.05`` as ``"5.00%"``."""

    return f"{ratio * 100:.2f}%"


__all__ = ["format_currency", "format_percent", "format_usd"]
