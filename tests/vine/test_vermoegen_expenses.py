from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from agents.vine.dto import UsageStatus
from agents.vine.expenses import ExpenseBook, ExpenseError, ExpenseNotFoundError
from agents.vine.storage import EXPENSES_KEY, CredentialStore, LocalStore
from agents.vine.vermoegen import fixed_asset_register, inventory_register


def test_registers_select_by_usage_and_sort(make_product) -> None:
    products = [
        make_product("L2", date(2024, 5, 1), etv="8.00", usage=UsageStatus.INVENTORY),
        make_product("L1", date(2024, 2, 1), etv="2.00", usage=UsageStatus.INVENTORY, fair_value=Decimal("1")),
        make_product("N1", date(2024, 3, 1), etv="99.00", usage=UsageStatus.BUSINESS_USE),
        make_product("P1", date(2024, 3, 1)),
    ]

    inventory = inventory_register(products)
    assets = fixed_asset_register(products, sort_key="etv", descending=True)

    assert inventory.title == "Umlaufvermögen"
    assert [p.asin for p in inventory.products] == ["L1", "L2"]
    assert inventory.etv_total == Decimal("10.00")
    assert inventory.fair_value_total == Decimal("1.00")
    assert [p.asin for p in assets.products] == ["N1"]
    assert [p.asin for p in inventory_register(products, sort_key="etv", descending=True).products] == ["L2", "L1"]
    with pytest.raises(ValueError):
        inventory_register(products, sort_key="preis")


def test_expense_book_persists_and_reloads(tmp_path) -> None:
    store = LocalStore(tmp_path / "vine.json")
    book = ExpenseBook(store)

    first = book.add("15.03.2024", " Porto ", "4.2")
    book.add(date(2023, 12, 1), "Papier", Decimal("9.99"))

    reloaded = ExpenseBook(LocalStore(tmp_path / "vine.json"))
    assert len(reloaded) == 2
    assert [e.name for e in reloaded.list()] == ["Papier", "Porto"]
    assert reloaded.total_for_year(2024) == Decimal("4.20")
    assert store.get(EXPENSES_KEY)[0]["date"] == "15.03.2024"

    reloaded.delete(first.id)
    assert [e.name for e in ExpenseBook(LocalStore(tmp_path / "vine.json"))] == ["Papier"]


@pytest.mark.parametrize(
    "expense_date, name, amount",
    [
        ("2024-03-15", "Porto", "1"),
        ("15.03.2024", "   ", "1"),
        ("15.03.2024", "Porto", "0"),
        ("15.03.2024", "Porto", "-3"),
        ("15.03.2024", "Porto", "zehn"),
    ],
)
def test_expense_validation(tmp_path, expense_date, name, amount) -> None:
    book = ExpenseBook(LocalStore(tmp_path / "vine.json"))
    with pytest.raises(ExpenseError):
        book.add(expense_date, name, amount)
    assert len(book) == 0


def test_delete_unknown_expense(tmp_path) -> None:
    with pytest.raises(ExpenseNotFoundError):
        ExpenseBook(LocalStore(tmp_path / "vine.json")).delete("fehlt")


def test_broken_stored_expense_is_skipped(tmp_path) -> None:
    store = LocalStore(tmp_path / "vine.json")
    store.set(EXPENSES_KEY, [{"id": "1", "date": "kaputt", "name": "x", "amount": 1}, {"date": "01.01.2024"}])
    assert len(ExpenseBook(store)) == 0


def test_local_store_survives_invalid_json(tmp_path) -> None:
    path = tmp_path / "vine.json"
    path.write_text("{nicht json", encoding="utf-8")
    store = LocalStore(path)

    assert store.get("x", "default") == "default"
    store.set("x", 1)
    assert LocalStore(path).get("x") == 1


def test_credential_store(tmp_path) -> None:
    credentials = CredentialStore(LocalStore(tmp_path / "vine.json"))
    assert credentials.get() is None
    credentials.set("tok")
    assert credentials.get() == "tok"
    credentials.clear()
    assert credentials.get() is None
