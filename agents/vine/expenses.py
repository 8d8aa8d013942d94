"""Zusätzliche Betriebsausgaben (nur lokal, anlegen und löschen)."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List

from .dates import format_german_date, parse_german_date
from .dto import AdditionalExpense, DecimalLike, ZERO, quantize_money
from .storage import EXPENSES_KEY, LocalStore

logger = logging.getLogger(__name__)


class ExpenseError(ValueError):
    pass


class ExpenseNotFoundError(ExpenseError):
    pass


def _to_dict(expense: AdditionalExpense) -> dict:
    return {
        "id": expense.id,
        "date": format_german_date(expense.date),
        "name": expense.name,
        "amount": float(expense.amount),
    }


def _from_dict(data: dict) -> AdditionalExpense:
    parsed = parse_german_date(data.get("date"))
    if not parsed.ok:
        raise ExpenseError(str(parsed.error))
    return AdditionalExpense(
        id=str(data["id"]),
        date=parsed.value,
        name=str(data.get("name", "")),
        amount=quantize_money(data.get("amount", 0)),
    )


class ExpenseBook:
    """Ausgabenliste im lokalen Speicher (``vineApp_additionalExpenses``)."""

    def __init__(self, store: LocalStore):
        self.store = store
        self._expenses: List[AdditionalExpense] = []
        for raw in store.get(EXPENSES_KEY, []) or []:
            try:
                self._expenses.append(_from_dict(raw))
            except (ExpenseError, KeyError, ValueError, TypeError) as exc:
                logger.warning("Skipping stored expense", extra={"error": str(exc)})

    def _persist(self) -> None:
        self.store.set(EXPENSES_KEY, [_to_dict(e) for e in self._expenses])

    def add(self, expense_date: date | str, name: str, amount: DecimalLike) -> AdditionalExpense:
        if isinstance(expense_date, str):
            parsed = parse_german_date(expense_date)
            if not parsed.ok:
                raise ExpenseError(f"Ungültiges Datum: {expense_date!r} (erwartet TT.MM.JJJJ)")
            expense_date = parsed.value
        try:
            value = quantize_money(amount)
        except (InvalidOperation, TypeError) as exc:
            raise ExpenseError(f"Ungültiger Betrag: {amount!r}") from exc
        if value <= ZERO:
            raise ExpenseError("Der Betrag muss größer als 0 sein.")
        if not name or not name.strip():
            raise ExpenseError("Bitte geben Sie eine Bezeichnung ein.")

        expense = AdditionalExpense(date=expense_date, name=name.strip(), amount=value)
        self._expenses.append(expense)
        self._persist()
        logger.info("Expense added", extra={"expense_id": expense.id, "amount": str(value)})
        return expense

    def delete(self, expense_id: str) -> None:
        remaining = [e for e in self._expenses if e.id != expense_id]
        if len(remaining) == len(self._expenses):
            raise ExpenseNotFoundError(f"Expense {expense_id} not found")
        self._expenses = remaining
        self._persist()

    def list(self, *, sort_key: str = "date", descending: bool = False) -> List[AdditionalExpense]:
        keys = {
            "date": lambda e: e.date,
            "name": lambda e: e.name.lower(),
            "amount": lambda e: e.amount,
        }
        if sort_key not in keys:
            raise ExpenseError(f"Unknown sort key: {sort_key}")
        return sorted(self._expenses, key=keys[sort_key], reverse=descending)

    def total_for_year(self, year: int) -> Decimal:
        return quantize_money(sum((e.amount for e in self._expenses if e.date.year == year), ZERO))

    def __iter__(self):
        return iter(list(self._expenses))

    def __len__(self) -> int:
        return len(self._expenses)
