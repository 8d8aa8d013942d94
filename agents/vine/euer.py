"""Einnahmen-Überschuss-Rechnung (EÜR) für Vine-Produkte.

Methode A (Wertbasis): Verwendungen Lager, betriebliche Nutzung, entsorgt und
verkauft buchen den Wert im Bestelljahr als Einnahme und als Ausgabe
(Anlage- bzw. Umlaufvermögen); Privatentnahmen buchen den Wert als Einnahme
im Jahr der Entnahme. Wert ist der Teilwert oder die ETV.

Methode B (ETV rein/raus): ETV als Einnahme und Anlagenausgabe im
Bestelljahr, zusätzlich der Teilwert als Einnahme im Entnahmejahr.

Stornierte Produkte und Streuartikel tragen in beiden Methoden nichts bei.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional

from .config import FiscalSettings
from .dates import effective_withdrawal_date, is_sentinel
from .dto import ZERO, AdditionalExpense, Product, UsageStatus, quantize_money

# Verwendungen mit Einnahme und gleichzeitiger Ausgabe im Bestelljahr (Methode A)
HELD_USAGES = frozenset(
    {
        UsageStatus.INVENTORY,
        UsageStatus.BUSINESS_USE,
        UsageStatus.DISPOSED,
        UsageStatus.SOLD,
    }
)


class BookingCategory(str, Enum):
    PRODUCT_VALUE = "product_value"
    WITHDRAWAL = "withdrawal"
    ETV_INCOME = "etv_income"
    SALE = "sale"
    FIXED_ASSET = "fixed_asset"
    CURRENT_ASSET = "current_asset"
    HOME_OFFICE = "home_office"
    ADDITIONAL_EXPENSE = "additional_expense"


INCOME_CATEGORIES = frozenset(
    {
        BookingCategory.PRODUCT_VALUE,
        BookingCategory.WITHDRAWAL,
        BookingCategory.ETV_INCOME,
        BookingCategory.SALE,
    }
)


@dataclass(frozen=True, slots=True)
class Booking:
    reference: str
    category: BookingCategory
    amount: Decimal
    booking_date: date

    @property
    def is_income(self) -> bool:
        return self.category in INCOME_CATEGORIES


@dataclass(slots=True)
class EuerReport:
    year: int
    method: str
    use_fair_value_for_income: bool
    minor_value_limit_active: bool
    minor_value_limit: Decimal
    bookings: List[Booking] = field(default_factory=list)

    def _sum(self, *categories: BookingCategory) -> Decimal:
        total = sum((b.amount for b in self.bookings if b.category in categories), ZERO)
        return quantize_money(total)

    @property
    def product_value_income(self) -> Decimal:
        return self._sum(BookingCategory.PRODUCT_VALUE)

    @property
    def withdrawal_income(self) -> Decimal:
        return self._sum(BookingCategory.WITHDRAWAL)

    @property
    def etv_income(self) -> Decimal:
        return self._sum(BookingCategory.ETV_INCOME)

    @property
    def sales_income(self) -> Decimal:
        return self._sum(BookingCategory.SALE)

    @property
    def fixed_asset_expense(self) -> Decimal:
        return self._sum(BookingCategory.FIXED_ASSET)

    @property
    def current_asset_expense(self) -> Decimal:
        return self._sum(BookingCategory.CURRENT_ASSET)

    @property
    def home_office(self) -> Decimal:
        return self._sum(BookingCategory.HOME_OFFICE)

    @property
    def additional_expenses(self) -> Decimal:
        return self._sum(BookingCategory.ADDITIONAL_EXPENSE)

    @property
    def total_income(self) -> Decimal:
        return self._sum(*INCOME_CATEGORIES)

    @property
    def total_expense(self) -> Decimal:
        return self._sum(*(c for c in BookingCategory if c not in INCOME_CATEGORIES))

    @property
    def profit(self) -> Decimal:
        return self.total_income - self.total_expense

    def for_reference(self, reference: str) -> List[Booking]:
        return [b for b in self.bookings if b.reference == reference]

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "method": self.method,
            "use_fair_value_for_income": self.use_fair_value_for_income,
            "minor_value_limit_active": self.minor_value_limit_active,
            "minor_value_limit": str(self.minor_value_limit),
            "income": {
                "product_value": str(self.product_value_income),
                "withdrawal": str(self.withdrawal_income),
                "etv": str(self.etv_income),
                "sales": str(self.sales_income),
                "total": str(self.total_income),
            },
            "expense": {
                "fixed_asset": str(self.fixed_asset_expense),
                "current_asset": str(self.current_asset_expense),
                "home_office": str(self.home_office),
                "additional": str(self.additional_expenses),
                "total": str(self.total_expense),
            },
            "profit": str(self.profit),
        }


def _excluded(product: Product, settings: FiscalSettings) -> bool:
    return product.is_cancelled or product.is_minor_value(
        settings.minor_value_limit_active, settings.minor_value_limit
    )


def _withdrawal_in_year(product: Product, settings: FiscalSettings, year: int) -> Optional[date]:
    if not product.counts_as_withdrawn:
        return None
    withdrawal = effective_withdrawal_date(product, settings)
    if withdrawal is None or withdrawal.year != year:
        return None
    return withdrawal


def _method_a(product: Product, settings: FiscalSettings, year: int) -> List[Booking]:
    value = product.effective_fair_value if settings.use_fair_value_for_income else product.etv
    if product.usage in HELD_USAGES:
        if product.order_date.year != year:
            return []
        expense = (
            BookingCategory.FIXED_ASSET
            if product.usage is UsageStatus.BUSINESS_USE
            else BookingCategory.CURRENT_ASSET
        )
        return [
            Booking(product.asin, BookingCategory.PRODUCT_VALUE, value, product.order_date),
            Booking(product.asin, expense, value, product.order_date),
        ]
    withdrawal = _withdrawal_in_year(product, settings, year)
    if withdrawal is None:
        return []
    return [Booking(product.asin, BookingCategory.WITHDRAWAL, value, withdrawal)]


def _method_b(product: Product, settings: FiscalSettings, year: int) -> List[Booking]:
    bookings: List[Booking] = []
    if product.order_date.year == year:
        bookings.append(Booking(product.asin, BookingCategory.ETV_INCOME, product.etv, product.order_date))
        bookings.append(Booking(product.asin, BookingCategory.FIXED_ASSET, product.etv, product.order_date))
    withdrawal = _withdrawal_in_year(product, settings, year)
    if withdrawal is not None:
        bookings.append(
            Booking(product.asin, BookingCategory.WITHDRAWAL, product.effective_fair_value, withdrawal)
        )
    return bookings


def compute_euer(
    year: int,
    products: Iterable[Product],
    settings: FiscalSettings,
    expenses: Iterable[AdditionalExpense] = (),
) -> EuerReport:
    """Berechnet Einnahmen, Ausgaben und Gewinn eines Jahres."""

    report = EuerReport(
        year=year,
        method=settings.method,
        use_fair_value_for_income=settings.use_fair_value_for_income,
        minor_value_limit_active=settings.minor_value_limit_active,
        minor_value_limit=settings.minor_value_limit,
    )
    book = _method_b if settings.etv_in_out_method else _method_a

    for product in products:
        if _excluded(product, settings):
            continue
        report.bookings.extend(book(product, settings, year))
        if (
            product.is_sold
            and product.sale_price is not None
            and product.sale_date is not None
            and product.sale_date.year == year
        ):
            report.bookings.append(
                Booking(product.asin, BookingCategory.SALE, product.sale_price, product.sale_date)
            )

    report.bookings.append(
        Booking("home_office", BookingCategory.HOME_OFFICE, settings.home_office_flat_rate, date(year, 12, 31))
    )
    for expense in expenses:
        if expense.date.year == year:
            report.bookings.append(
                Booking(expense.id, BookingCategory.ADDITIONAL_EXPENSE, expense.amount, expense.date)
            )
    return report


def available_years(
    products: Iterable[Product],
    expenses: Iterable[AdditionalExpense] = (),
    today: Optional[date] = None,
) -> List[int]:
    """Berichtsjahre absteigend; das laufende Jahr ist immer enthalten."""

    years = {(today or date.today()).year}
    for product in products:
        if not is_sentinel(product.order_date):
            years.add(product.order_date.year)
        if product.sale_date is not None:
            years.add(product.sale_date.year)
        if product.private_withdrawal_date is not None:
            years.add(product.private_withdrawal_date.year)
    for expense in expenses:
        years.add(expense.date.year)
    return sorted(years, reverse=True)
