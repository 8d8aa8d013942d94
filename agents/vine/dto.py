"""Datentransferobjekte für Vine-Produkte und Zusatzausgaben.

Beträge sind durchgehend ``Decimal`` und werden mit ``ROUND_HALF_UP`` auf zwei
Nachkommastellen quantisiert. Der Verwendungsstatus ist als Enum der
exklusiven Gruppe modelliert; ``defective`` ist ein unabhängiges Flag, so dass
ungültige Kombinationen gar nicht erst darstellbar sind.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional
from uuid import uuid4


DecimalLike = Decimal | str | int | float

ZERO = Decimal("0.00")


def to_decimal(value: DecimalLike) -> Decimal:
    """Konvertiere Eingaben deterministisch in ``Decimal``.

    Floats werden zunächst in Strings umgewandelt, um binäre Rundungsfehler zu
    vermeiden.
    """

    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("bool is not a monetary amount")
    if isinstance(value, (int, str, float)):
        return Decimal(str(value))
    raise TypeError(f"Unsupported decimal input: {type(value)!r}")


def quantize_money(amount: DecimalLike) -> Decimal:
    """Rundet Beträge auf zwei Nachkommastellen (ROUND_HALF_UP)."""

    return to_decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def optional_money(amount: Optional[DecimalLike]) -> Optional[Decimal]:
    return None if amount is None else quantize_money(amount)


class UsageStatus(Enum):
    """Exklusive Verwendungsgruppe; der Wert ist das Label im Remote-Format."""

    CANCELLED = "storniert"
    SOLD = "verkauft"
    DISPOSED = "entsorgt"
    WITHDRAWN_PRIVATELY = "Privatentnahme"
    INVENTORY = "Lager"
    BUSINESS_USE = "betriebliche Nutzung"


DEFECTIVE_LABEL = "defekt"

# Auflösung, falls ein Altdatensatz mehrere exklusive Labels trägt
USAGE_PRECEDENCE = (
    UsageStatus.CANCELLED,
    UsageStatus.SOLD,
    UsageStatus.DISPOSED,
    UsageStatus.WITHDRAWN_PRIVATELY,
    UsageStatus.BUSINESS_USE,
    UsageStatus.INVENTORY,
)


@dataclass(slots=True)
class Product:
    asin: str
    name: str
    order_date: date
    etv: Decimal
    order_number: str = ""
    fair_value: Optional[Decimal] = None
    override_fair_value: Optional[Decimal] = None
    override_reason: str = ""
    usage: Optional[UsageStatus] = None
    defective: bool = False
    sale_price: Optional[Decimal] = None
    sale_date: Optional[date] = None
    buyer_address: Optional[str] = None
    private_withdrawal_date: Optional[date] = None
    finalized: bool = False
    invoice_number: Optional[str] = None
    last_update_time: int = 0
    valuation_document_url: Optional[str] = None
    keepa: Optional[Decimal] = None

    def __post_init__(self) -> None:
        if not self.asin:
            raise ValueError("asin is required")
        self.etv = quantize_money(self.etv)
        if self.etv < ZERO:
            raise ValueError(f"ETV must not be negative: {self.etv}")
        self.fair_value = optional_money(self.fair_value)
        self.override_fair_value = optional_money(self.override_fair_value)
        self.sale_price = optional_money(self.sale_price)
        self.keepa = optional_money(self.keepa)

    @property
    def is_cancelled(self) -> bool:
        return self.usage is UsageStatus.CANCELLED

    @property
    def is_sold(self) -> bool:
        return self.usage is UsageStatus.SOLD

    @property
    def effective_fair_value(self) -> Decimal:
        """Eigener Teilwert vor Teilwert vor 0."""
        if self.override_fair_value is not None:
            return self.override_fair_value
        if self.fair_value is not None:
            return self.fair_value
        return ZERO

    @property
    def counts_as_withdrawn(self) -> bool:
        """Privatentnahme explizit oder mangels anderer Verwendung (nicht defekt)."""
        if self.usage is UsageStatus.WITHDRAWN_PRIVATELY:
            return True
        return self.usage is None and not self.defective

    def is_minor_value(self, limit_active: bool, limit: Decimal) -> bool:
        """Streuartikel: ETV unterhalb der aktiven Grenze."""
        return limit_active and self.etv < limit

    def with_changes(self, **changes) -> "Product":
        return replace(self, **changes)

    def usage_labels(self) -> list[str]:
        labels = [self.usage.value] if self.usage is not None else []
        if self.defective:
            labels.append(DEFECTIVE_LABEL)
        return labels


def usage_from_labels(labels) -> tuple[Optional[UsageStatus], bool, list[str]]:
    """Übersetzt eine Label-Liste in (usage, defective, ignorierte Labels).

    Mehrere exklusive Labels werden nach ``USAGE_PRECEDENCE`` aufgelöst; die
    verworfenen sowie unbekannte Labels werden zurückgegeben, damit der
    Aufrufer loggen kann.
    """

    found: set[UsageStatus] = set()
    defective = False
    ignored: list[str] = []
    by_label = {status.value.lower(): status for status in UsageStatus}

    for raw in labels or []:
        label = str(raw).strip()
        if label.lower() == DEFECTIVE_LABEL:
            defective = True
            continue
        status = by_label.get(label.lower())
        if status is None:
            ignored.append(label)
            continue
        found.add(status)

    usage = None
    for candidate in USAGE_PRECEDENCE:
        if candidate in found:
            if usage is None:
                usage = candidate
            else:
                ignored.append(candidate.value)
    return usage, defective, ignored


@dataclass(slots=True)
class AdditionalExpense:
    date: date
    name: str
    amount: Decimal
    id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self) -> None:
        self.amount = quantize_money(self.amount)
        if self.amount <= ZERO:
            raise ValueError(f"Expense amount must be positive: {self.amount}")
        if not self.name or not self.name.strip():
            raise ValueError("Expense name is required")
