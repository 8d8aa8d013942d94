"""Produktbestand und Merge-Logik (last write wins, Gleichstand zugunsten lokal).

Merges arbeiten ausschließlich auf eingefrorenen Snapshots und sind rein:
``reconcile(reconcile(l, r), r) == reconcile(l, r)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .config import FiscalSettings
from .dto import Product, ZERO, optional_money

logger = logging.getLogger(__name__)


def reconcile(local: Iterable[Product], remote: Iterable[Product]) -> List[Product]:
    """Vereinigt lokalen und entfernten Bestand pro ASIN.

    Die Map wird mit dem Remote-Stand befüllt; ein lokaler Datensatz
    überschreibt, wenn es remote keinen gibt oder sein ``last_update_time``
    größer oder gleich ist.
    """

    merged: Dict[str, Product] = {product.asin: product for product in remote}
    for product in local:
        existing = merged.get(product.asin)
        if existing is None or product.last_update_time >= existing.last_update_time:
            merged[product.asin] = product
    return list(merged.values())


@dataclass(slots=True)
class ImportOutcome:
    products: List[Product]
    added: int = 0
    updated: int = 0
    skipped: int = 0
    skipped_asins: List[str] = field(default_factory=list)


def import_newer(existing: Iterable[Product], incoming: Iterable[Product]) -> ImportOutcome:
    """Übernimmt importierte Datensätze, sofern sie neu oder nicht älter sind."""

    merged: Dict[str, Product] = {product.asin: product for product in existing}
    outcome = ImportOutcome(products=[])
    for product in incoming:
        current = merged.get(product.asin)
        if current is None:
            merged[product.asin] = product
            outcome.added += 1
        elif product.last_update_time >= current.last_update_time:
            merged[product.asin] = product
            outcome.updated += 1
        else:
            outcome.skipped += 1
            outcome.skipped_asins.append(product.asin)
    outcome.products = list(merged.values())
    if outcome.skipped:
        logger.info(
            "Skipped older imported records",
            extra={"skipped": outcome.skipped, "asins": outcome.skipped_asins[:20]},
        )
    return outcome


def apply_filters(
    products: Iterable[Product],
    settings: FiscalSettings,
    alternate_valuation: Optional[Mapping[str, object]] = None,
) -> List[Product]:
    """Sicht auf den Bestand gemäß Einstellungen.

    Wirkt nur auf die angezeigte Menge; der persistierte Bestand bleibt
    ungefiltert.
    """

    result: List[Product] = []
    lookup = alternate_valuation or {}
    for product in products:
        if settings.ignore_zero_etv_products and product.etv == ZERO:
            continue
        if settings.use_alternate_valuation:
            product = product.with_changes(fair_value=optional_money(lookup.get(product.asin)))
        result.append(product)
    return result


class ProductLedger:
    """In-Memory-Bestand, eindeutig pro ASIN."""

    def __init__(self, products: Iterable[Product] = ()) -> None:
        self._products: Dict[str, Product] = {}
        self.replace_all(products)

    def replace_all(self, products: Iterable[Product]) -> None:
        self._products = {}
        for product in products:
            if product.asin in self._products:
                logger.warning("Duplicate ASIN in ledger input, keeping last", extra={"asin": product.asin})
            self._products[product.asin] = product

    def upsert(self, product: Product) -> None:
        self._products[product.asin] = product

    def remove(self, asin: str) -> None:
        self._products.pop(asin, None)

    def get(self, asin: str) -> Optional[Product]:
        return self._products.get(asin)

    def values(self) -> List[Product]:
        return list(self._products.values())

    def snapshot(self) -> Tuple[Product, ...]:
        return tuple(self._products.values())

    def view(
        self,
        settings: FiscalSettings,
        alternate_valuation: Optional[Mapping[str, object]] = None,
    ) -> List[Product]:
        return apply_filters(self._products.values(), settings, alternate_valuation)

    def __len__(self) -> int:
        return len(self._products)

    def __contains__(self, asin: object) -> bool:
        return asin in self._products
