"""Tests for fiscal date utilities."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from agents.vine.config import FiscalSettings
from agents.vine.dates import (
    SENTINEL_DATE,
    DateParseError,
    default_bulk_window,
    effective_withdrawal_date,
    end_of_fiscal_quarter,
    normalize_order_date,
    oldest_open_order_date,
    parse_delay,
    parse_german_date,
    parse_order_date,
)
from agents.vine.dto import UsageStatus
from backend.core import metrics


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-01-10", date(2024, 1, 10)),
        ("2024-01-10T08:15:00Z", date(2024, 1, 10)),
        ("2024-01-10T23:59:59.123+02:00", date(2024, 1, 10)),
        ("10/01/2024", date(2024, 1, 10)),
        ("10.01.2024", date(2024, 1, 10)),
        ("1.2.2024", date(2024, 2, 1)),
        ("5/12/2023", date(2023, 12, 5)),
    ],
)
def test_parse_order_date_accepts_supported_formats(raw: str, expected: date) -> None:
    result = parse_order_date(raw)
    assert result.ok
    assert result.value == expected


@pytest.mark.parametrize(
    "raw",
    ["", None, "gestern", "31/02/2024", "10/13/2024", "01/01/1899", "01.01.2201", "2024-13-01", 42],
)
def test_parse_order_date_reports_errors(raw) -> None:
    result = parse_order_date(raw)
    assert not result.ok
    assert result.value is None
    assert isinstance(result.error, DateParseError)


def test_normalize_order_date_falls_back_to_sentinel_and_counts() -> None:
    assert normalize_order_date("kaputt", asin="B0X") == SENTINEL_DATE
    assert metrics.get_counter("vine_date_fallbacks_total", {"field": "date"}) == 1
    assert normalize_order_date("03/04/2024") == date(2024, 4, 3)


def test_parse_german_date_requires_dots() -> None:
    assert parse_german_date("24.12.2024").value == date(2024, 12, 24)
    assert not parse_german_date("24/12/2024").ok
    assert not parse_german_date("30.02.2024").ok


def test_parse_delay() -> None:
    assert parse_delay("0d") == timedelta(0)
    assert parse_delay("180d") == timedelta(days=180)
    with pytest.raises(DateParseError):
        parse_delay("2w")


def test_effective_withdrawal_date_prefers_explicit_date(make_product) -> None:
    settings = FiscalSettings(default_withdrawal_delay="14d")
    explicit = make_product(private_withdrawal_date=date(2024, 6, 1))
    implicit = make_product()

    assert effective_withdrawal_date(explicit, settings) == date(2024, 6, 1)
    assert effective_withdrawal_date(implicit, settings) == date(2024, 1, 24)


def test_effective_withdrawal_date_is_none_for_sentinel(make_product) -> None:
    product = make_product(order_date=SENTINEL_DATE)
    assert effective_withdrawal_date(product, FiscalSettings()) is None


def test_invalid_delay_degrades_to_zero_days(make_product) -> None:
    product = make_product()
    settings = FiscalSettings(default_withdrawal_delay="bald")
    assert effective_withdrawal_date(product, settings) == product.order_date


@pytest.mark.parametrize(
    "value, expected",
    [
        (date(2024, 1, 1), date(2024, 3, 31)),
        (date(2024, 3, 31), date(2024, 3, 31)),
        (date(2024, 4, 1), date(2024, 6, 30)),
        (date(2024, 8, 15), date(2024, 9, 30)),
        (date(2024, 11, 2), date(2024, 12, 31)),
    ],
)
def test_end_of_fiscal_quarter(value: date, expected: date) -> None:
    assert end_of_fiscal_quarter(value) == expected


def test_default_bulk_window_uses_oldest_open_product(make_product) -> None:
    settings = FiscalSettings(minor_value_limit_active=True)
    products = [
        make_product("A", date(2024, 2, 20)),
        make_product("B", date(2024, 1, 5), finalized=True, invoice_number="VINE-2024-0001"),
        make_product("C", date(2024, 1, 2), usage=UsageStatus.CANCELLED),
        make_product("D", date(2024, 1, 3), etv="5.00"),
        make_product("E", date(2024, 2, 1)),
    ]

    assert oldest_open_order_date(products, settings) == date(2024, 2, 1)
    assert default_bulk_window(products, settings, date(2025, 1, 1)) == (
        date(2024, 2, 1),
        date(2024, 3, 31),
    )


def test_default_bulk_window_without_open_products_uses_today(fiscal) -> None:
    assert default_bulk_window([], fiscal, date(2025, 5, 5)) == (date(2025, 5, 5), date(2025, 6, 30))
