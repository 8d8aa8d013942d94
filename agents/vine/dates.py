"""Datumslogik für Bestell-, Verkaufs- und Entnahmedaten.

Parser liefern ein ``DateParseResult`` statt Ausnahmen zu werfen. Ob bei einem
Fehler auf das historische Sentinel-Datum (01.01.1970) ausgewichen wird,
entscheidet der Aufrufer (``normalize_order_date``).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Tuple

from backend.core import metrics

from .config import FiscalSettings
from .dto import Product

logger = logging.getLogger(__name__)

SENTINEL_DATE = date(1970, 1, 1)
MIN_YEAR = 1900
MAX_YEAR = 2200

_DMY_PATTERN = re.compile(r"^(\d{1,2})[/.](\d{1,2})[/.](\d{4})$")
_GERMAN_PATTERN = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")
_ISO_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}([T ].*)?$")
_DELAY_PATTERN = re.compile(r"^\s*(\d+)\s*d\s*$", re.IGNORECASE)


class DateParseError(ValueError):
    """Ein Datumswert ist nicht interpretierbar."""


@dataclass(frozen=True, slots=True)
class DateParseResult:
    value: Optional[date] = None
    error: Optional[DateParseError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _fail(message: str) -> DateParseResult:
    return DateParseResult(error=DateParseError(message))


def _calendar_date(year: int, month: int, day: int, raw: str) -> DateParseResult:
    if not MIN_YEAR <= year <= MAX_YEAR:
        return _fail(f"year out of range in {raw!r}")
    try:
        return DateParseResult(value=date(year, month, day))
    except ValueError:
        return _fail(f"impossible calendar date {raw!r}")


def parse_order_date(raw: object) -> DateParseResult:
    """ISO-8601 oder D/M/YYYY bzw. D.M.YYYY (1-2-stelliger Tag/Monat)."""

    if isinstance(raw, datetime):
        raw = raw.date()
    if isinstance(raw, date):
        return _calendar_date(raw.year, raw.month, raw.day, raw.isoformat())
    if not isinstance(raw, str) or not raw.strip():
        return _fail("missing date")

    text = raw.strip()
    if _ISO_PATTERN.match(text):
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return _fail(f"invalid ISO date {text!r}")
        # Kalenderdatum wie geschrieben, ohne Zeitzonenumrechnung
        return _calendar_date(parsed.year, parsed.month, parsed.day, text)

    match = _DMY_PATTERN.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        return _calendar_date(year, month, day, text)

    return _fail(f"unrecognized date format {text!r}")


def normalize_order_date(raw: object, *, field_name: str = "date", asin: str | None = None) -> date:
    """Bestelldatum oder Sentinel; ein kaputter Datensatz bricht keinen Batch ab."""

    result = parse_order_date(raw)
    if result.ok:
        return result.value
    logger.warning(
        "Falling back to sentinel date",
        extra={"field": field_name, "asin": asin or "N/A", "error": str(result.error)},
    )
    metrics.increment_date_fallbacks(field_name)
    return SENTINEL_DATE


def parse_german_date(raw: object) -> DateParseResult:
    """TT.MM.JJJJ (Verkaufs- und Entnahmedatum)."""

    if isinstance(raw, date):
        return DateParseResult(value=raw)
    if not isinstance(raw, str) or not raw.strip():
        return _fail("missing date")
    match = _GERMAN_PATTERN.match(raw.strip())
    if not match:
        return _fail(f"expected TT.MM.JJJJ, got {raw!r}")
    day, month, year = (int(part) for part in match.groups())
    return _calendar_date(year, month, day, raw)


def optional_german_date(raw: object, *, field_name: str, asin: str | None = None) -> Optional[date]:
    if raw in (None, ""):
        return None
    result = parse_german_date(raw)
    if not result.ok:
        logger.warning(
            "Dropping invalid date",
            extra={"field": field_name, "asin": asin or "N/A", "error": str(result.error)},
        )
        return None
    return result.value


def format_german_date(value: date) -> str:
    return value.strftime("%d.%m.%Y")


def format_order_date(value: date) -> str:
    """Remote-Format des Bestelldatums (DD/MM/YYYY)."""
    return value.strftime("%d/%m/%Y")


def parse_delay(raw: str) -> timedelta:
    match = _DELAY_PATTERN.match(raw or "")
    if not match:
        raise DateParseError(f"invalid withdrawal delay {raw!r}, expected '<n>d'")
    return timedelta(days=int(match.group(1)))


def is_sentinel(value: date) -> bool:
    return value == SENTINEL_DATE


def effective_withdrawal_date(product: Product, settings: FiscalSettings) -> Optional[date]:
    """Explizites Entnahmedatum, sonst Bestelldatum plus Standardverzögerung."""

    if product.private_withdrawal_date is not None:
        return product.private_withdrawal_date
    if is_sentinel(product.order_date):
        return None
    try:
        delay = parse_delay(settings.default_withdrawal_delay)
    except DateParseError as exc:
        logger.warning("Using zero withdrawal delay", extra={"error": str(exc)})
        delay = timedelta(0)
    return product.order_date + delay


def end_of_fiscal_quarter(value: date) -> date:
    quarter_end_month = ((value.month - 1) // 3 + 1) * 3
    if quarter_end_month == 12:
        return date(value.year, 12, 31)
    return date(value.year, quarter_end_month + 1, 1) - timedelta(days=1)


def oldest_open_order_date(products: Iterable[Product], settings: FiscalSettings) -> Optional[date]:
    """Ältestes Bestelldatum noch nicht festgeschriebener, belegfähiger Produkte."""

    candidates = [
        p.order_date
        for p in products
        if not p.finalized
        and not p.is_cancelled
        and not is_sentinel(p.order_date)
        and not p.is_minor_value(settings.minor_value_limit_active, settings.minor_value_limit)
    ]
    return min(candidates) if candidates else None


def default_bulk_window(
    products: Iterable[Product], settings: FiscalSettings, today: date
) -> Tuple[date, date]:
    """Vorschlag für den Sammelbeleg-Zeitraum: ältestes offenes Datum bis Quartalsende."""

    start = oldest_open_order_date(products, settings) or today
    return start, end_of_fiscal_quarter(start)
