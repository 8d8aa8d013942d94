"""Vermögensverzeichnisse: Umlaufvermögen (Lager) und Anlagenverzeichnis."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List

from .dto import ZERO, Product, UsageStatus, quantize_money

SORT_KEYS = {
    "asin": lambda p: p.asin,
    "name": lambda p: p.name.lower(),
    "date": lambda p: p.order_date,
    "etv": lambda p: p.etv,
    "fair_value": lambda p: p.effective_fair_value,
}


@dataclass(slots=True)
class AssetRegister:
    title: str
    products: List[Product] = field(default_factory=list)

    @property
    def etv_total(self) -> Decimal:
        return quantize_money(sum((p.etv for p in self.products), ZERO))

    @property
    def fair_value_total(self) -> Decimal:
        return quantize_money(sum((p.effective_fair_value for p in self.products), ZERO))


def _register(
    title: str,
    usage: UsageStatus,
    products: Iterable[Product],
    sort_key: str,
    descending: bool,
) -> AssetRegister:
    if sort_key not in SORT_KEYS:
        raise ValueError(f"Unknown sort key: {sort_key}")
    selected = [p for p in products if p.usage is usage]
    selected.sort(key=SORT_KEYS[sort_key], reverse=descending)
    return AssetRegister(title=title, products=selected)


def inventory_register(
    products: Iterable[Product], *, sort_key: str = "date", descending: bool = False
) -> AssetRegister:
    return _register("Umlaufvermögen", UsageStatus.INVENTORY, products, sort_key, descending)


def fixed_asset_register(
    products: Iterable[Product], *, sort_key: str = "date", descending: bool = False
) -> AssetRegister:
    return _register("Anlagenverzeichnis", UsageStatus.BUSINESS_USE, products, sort_key, descending)
