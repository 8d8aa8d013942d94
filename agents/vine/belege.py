"""Belegtexte (Proformarechnung, Sammelbeleg) über Jinja2-Templates."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Optional, Sequence

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .config import FiscalSettings
from .dates import effective_withdrawal_date
from .dto import Product, UsageStatus, quantize_money
from .stammdaten import BelegSettings

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

MINOR_VALUE_NOTICE = "Streuartikel: Für dieses Produkt wird kein Beleg generiert."
NAME_LIMIT = 50

# Verwendungen, bei denen keine Privatentnahme vorliegt
_NON_WITHDRAWAL_USAGES = frozenset(
    {
        UsageStatus.BUSINESS_USE,
        UsageStatus.INVENTORY,
        UsageStatus.CANCELLED,
        UsageStatus.DISPOSED,
        UsageStatus.SOLD,
    }
)


@dataclass(frozen=True, slots=True)
class BulkLine:
    asin: str
    name: str
    order_date: date
    value: Decimal


class BelegRenderer:
    """Rendert Belegtexte deterministisch aus Produkt und Stammdaten."""

    def __init__(self, template_dir: Path | str = TEMPLATE_DIR) -> None:
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["money"] = self._money_filter
        self.env.filters["datefmt"] = self._datefmt_filter
        self.env.filters["truncate_name"] = self._truncate_name

    @staticmethod
    def _money_filter(amount) -> str:
        return f"{quantize_money(amount):.2f}"

    @staticmethod
    def _datefmt_filter(date_obj, format_str: str = "%d.%m.%Y") -> str:
        if hasattr(date_obj, "strftime"):
            return date_obj.strftime(format_str)
        return str(date_obj)

    @staticmethod
    def _truncate_name(name: str) -> str:
        return name[:NAME_LIMIT] + ("..." if len(name) > NAME_LIMIT else "")

    def _render(self, template_name: str, **context) -> str:
        text = self.env.get_template(template_name).render(**context)
        return text.rstrip("\n") + "\n"

    def single(
        self,
        product: Product,
        beleg_settings: BelegSettings,
        settings: FiscalSettings,
        invoice_number: Optional[str],
        *,
        issue_date: date,
    ) -> str:
        """Einzelbeleg; Wert ist immer der effektive Teilwert."""

        if (
            product.is_minor_value(settings.minor_value_limit_active, settings.minor_value_limit)
            and not product.finalized
        ):
            return MINOR_VALUE_NOTICE

        if not invoice_number:
            invoice_number = product.invoice_number or (
                "N/A (Bulk)" if product.finalized else "N/A (Nummer fehlt)"
            )
            logger.warning(
                "Rendering document without explicit invoice number",
                extra={"asin": product.asin, "invoice_number": invoice_number},
            )

        withdrawal_date = None
        if product.usage is UsageStatus.WITHDRAWN_PRIVATELY or product.usage not in _NON_WITHDRAWAL_USAGES:
            withdrawal_date = effective_withdrawal_date(product, settings)

        return self._render(
            "beleg.txt.j2",
            invoice_number=invoice_number,
            issue_date=issue_date,
            product=product,
            sender=beleg_settings.sender,
            recipient=beleg_settings.recipient,
            withdrawal_date=withdrawal_date,
            value=product.effective_fair_value,
        )

    def bulk(
        self,
        products: Sequence[Product],
        beleg_settings: BelegSettings,
        settings: FiscalSettings,
        invoice_number: str,
        period_start: date,
        period_end: date,
        *,
        issue_date: date,
    ) -> str:
        """Sammelbeleg; Einzelwert ist Teilwert oder ETV je nach Methode."""

        lines = [
            BulkLine(
                asin=p.asin,
                name=p.name,
                order_date=p.order_date,
                value=p.effective_fair_value if settings.use_fair_value_for_income else p.etv,
            )
            for p in products
        ]
        total = sum((line.value for line in lines), Decimal("0"))
        return self._render(
            "sammelbeleg.txt.j2",
            invoice_number=invoice_number,
            issue_date=issue_date,
            period_start=period_start,
            period_end=period_end,
            sender=beleg_settings.sender,
            recipient=beleg_settings.recipient,
            lines=lines,
            total=total,
        )
