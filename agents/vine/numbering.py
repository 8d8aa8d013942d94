"""Nummernkreis für Vine-Belege (``VINE-{Jahr}-{Zähler:04d}``).

Festgeschriebene Nummern sind reserviert und werden nie neu vergeben. Die
Vorschläge sind eine reine Funktion des Bestands und daher deterministisch.
"""

from __future__ import annotations

import re
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set

from .config import FiscalSettings
from .dates import is_sentinel
from .dto import Product

INVOICE_PREFIX = "VINE"
_INVOICE_PATTERN = re.compile(r"^VINE-(\d{4})-(\d{4,})$")


class NumberingError(RuntimeError):
    pass


class InvoiceNumberMissingError(NumberingError):
    pass


def format_invoice_number(year: int, counter: int) -> str:
    if counter < 1:
        raise NumberingError(f"counter must be positive, got {counter}")
    return f"{INVOICE_PREFIX}-{year}-{counter:04d}"


def parse_invoice_number(invoice_no: str) -> Optional[tuple[int, int]]:
    """(Jahr, Zähler) oder ``None`` für fremde Formate."""

    match = _INVOICE_PATTERN.match(invoice_no or "")
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def reserved_numbers(products: Iterable[Product]) -> Set[str]:
    return {p.invoice_number for p in products if p.finalized and p.invoice_number}


def _is_candidate(product: Product, settings: FiscalSettings) -> bool:
    if product.finalized or product.is_cancelled or is_sentinel(product.order_date):
        return False
    return not product.is_minor_value(settings.minor_value_limit_active, settings.minor_value_limit)


def propose_numbers(
    products: Iterable[Product],
    settings: FiscalSettings,
    *,
    year: Optional[int] = None,
) -> Dict[str, str]:
    """Schlägt Rechnungsnummern für offene, belegfähige Produkte vor.

    Kandidaten werden pro Bestelljahr nach (Bestelldatum, ASIN) sortiert und
    ab 1 durchnummeriert; reservierte Nummern werden übersprungen.
    """

    items = list(products)
    reserved = reserved_numbers(items)

    by_year: Dict[int, List[Product]] = defaultdict(list)
    for product in items:
        if year is not None and product.order_date.year != year:
            continue
        if _is_candidate(product, settings):
            by_year[product.order_date.year].append(product)

    proposals: Dict[str, str] = {}
    for order_year in sorted(by_year):
        counter = 0
        for product in sorted(by_year[order_year], key=lambda p: (p.order_date, p.asin)):
            counter += 1
            candidate = format_invoice_number(order_year, counter)
            while candidate in reserved:
                counter += 1
                candidate = format_invoice_number(order_year, counter)
            proposals[product.asin] = candidate
    return proposals


def resolve_invoice_number(product: Product, proposals: Dict[str, str]) -> str:
    """Bestehende Nummer vor Vorschlag; ohne beides ``InvoiceNumberMissingError``."""

    if product.invoice_number:
        return product.invoice_number
    proposal = proposals.get(product.asin)
    if not proposal:
        raise InvoiceNumberMissingError(f"no invoice number available for {product.asin}")
    return proposal
