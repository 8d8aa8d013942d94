from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from agents.vine.config import FiscalSettings
from agents.vine.dto import Product
from agents.vine.stammdaten import BelegSettings, SenderIdentity
from backend.core import metrics


@pytest.fixture(autouse=True)
def _clean_metrics():
    metrics.reset_metrics()
    yield
    metrics.reset_metrics()


@pytest.fixture
def make_product():
    def _make(asin: str = "B000000001", order_date: date = date(2024, 1, 10), etv: str = "20.00", **kwargs) -> Product:
        kwargs.setdefault("name", f"Produkt {asin}")
        return Product(asin=asin, order_date=order_date, etv=Decimal(etv), **kwargs)

    return _make


@pytest.fixture
def fiscal() -> FiscalSettings:
    return FiscalSettings()


@pytest.fixture
def sender() -> SenderIdentity:
    return SenderIdentity(
        name="Erika Mustermann",
        address_line1="Musterstraße 1",
        address_line2="10115 Berlin",
        vat_id="DE123456789",
        small_business=True,
    )


@pytest.fixture
def beleg_settings(sender: SenderIdentity) -> BelegSettings:
    return BelegSettings(sender=sender)


@pytest.fixture
def fixed_clock():
    def _clock() -> datetime:
        return datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    return _clock
