from __future__ import annotations

import pytest

from bridge_pools.utils.formatting import format_currency, format_percent, format_usd


def test_format_currency_trims_to_max_decimals() -> None:
    assert format_currency(1234567.891234, 0, 4) == "1,234,567.8912"
    assert format_currency(100, 0, 4) == "100"
    assert format_currency(12.5, 0, 4) == "12.5"


def test_format_currency_pads_to_min_decimals() -> None:
    assert format_currency(3, 2, 4) == "3.00"
    assert format_currency(3.14159, 2, 2) == "3.14"


def test_format_currency_rejects_non_finite_values() -> None:
    with pytest.raises(ValueError):
        format_currency(float("nan"))
    with pytest.raises(ValueError):
        format_currency(1.0, 3, 1)


def test_format_usd_and_percent() -> None:
    assert format_usd(50) == "$50"
    assert format_percent(0.05) == "5.00%"
    assert format_percent(0) == "0.00%"
    assert format_percent(0.123456) == "12.35%"


def test_format_currency_handles_values_beyond_default_precision() -> None:
    assert format_currency(1e25, 0, 4) == "10,000,000,000,000,000,000,000,000"
    assert format_usd(123456789012345678901234.5, 0, 4) == "$123,456,789,012,345,680,000,000"
