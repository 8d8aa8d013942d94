"""Tests for the product ledger and the merge engine."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from agents.vine.config import FiscalSettings
from agents.vine.ledger import ProductLedger, apply_filters, import_newer, reconcile


def _by_asin(products):
    return {p.asin: p for p in products}


def test_reconcile_tie_keeps_local_fields(make_product) -> None:
    local = [make_product("A", name="lokal", last_update_time=100)]
    remote = [make_product("A", name="remote", last_update_time=100)]

    merged = _by_asin(reconcile(local, remote))
    assert merged["A"].name == "lokal"


def test_reconcile_newer_remote_wins(make_product) -> None:
    local = [make_product("A", name="lokal", last_update_time=100)]
    remote = [make_product("A", name="remote", last_update_time=101)]

    assert _by_asin(reconcile(local, remote))["A"].name == "remote"


def test_reconcile_unions_both_sides(make_product) -> None:
    local = [make_product("A", last_update_time=1), make_product("L", last_update_time=5)]
    remote = [make_product("A", last_update_time=2), make_product("R", last_update_time=1)]

    merged = _by_asin(reconcile(local, remote))
    assert set(merged) == {"A", "L", "R"}
    assert merged["A"].last_update_time == 2


def test_reconcile_is_idempotent(make_product) -> None:
    local = [
        make_product("A", name="a-local", last_update_time=10),
        make_product("B", name="b-local", last_update_time=3),
        make_product("C", last_update_time=7),
    ]
    remote = [
        make_product("A", name="a-remote", last_update_time=10),
        make_product("B", name="b-remote", last_update_time=4),
        make_product("D", last_update_time=1),
    ]

    once = reconcile(local, remote)
    twice = reconcile(once, once)
    again = reconcile(once, remote)

    assert _by_asin(twice) == _by_asin(once)
    assert _by_asin(again) == _by_asin(once)


def test_import_newer_counts_skipped(make_product) -> None:
    existing = [make_product("A", last_update_time=50), make_product("B", last_update_time=50)]
    incoming = [
        make_product("A", name="neu", last_update_time=60),
        make_product("B", name="alt", last_update_time=40),
        make_product("C", last_update_time=1),
    ]

    outcome = import_newer(existing, incoming)
    merged = _by_asin(outcome.products)

    assert (outcome.added, outcome.updated, outcome.skipped) == (1, 1, 1)
    assert outcome.skipped_asins == ["B"]
    assert merged["A"].name == "neu"
    assert merged["B"].name != "alt"


def test_apply_filters_drops_zero_etv_and_swaps_valuation(make_product) -> None:
    products = [
        make_product("A", etv="0", fair_value=Decimal("3")),
        make_product("B", fair_value=Decimal("10")),
        make_product("C", fair_value=Decimal("12")),
    ]
    settings = FiscalSettings(ignore_zero_etv_products=True, use_alternate_valuation=True)

    view = _by_asin(apply_filters(products, settings, {"B": 7.5}))

    assert set(view) == {"B", "C"}
    assert view["B"].fair_value == Decimal("7.50")
    assert view["C"].fair_value is None
    # input untouched
    assert products[1].fair_value == Decimal("10.00")


def test_ledger_view_does_not_change_stored_set(make_product) -> None:
    ledger = ProductLedger([make_product("A", etv="0"), make_product("B")])
    settings = FiscalSettings(ignore_zero_etv_products=True)

    assert [p.asin for p in ledger.view(settings)] == ["B"]
    assert len(ledger) == 2
    assert "A" in ledger


def test_ledger_snapshot_is_frozen_copy(make_product) -> None:
    ledger = ProductLedger([make_product("A")])
    snapshot = ledger.snapshot()
    ledger.upsert(make_product("B"))

    assert isinstance(snapshot, tuple)
    assert [p.asin for p in snapshot] == ["A"]


def test_ledger_upsert_replaces_by_asin(make_product) -> None:
    ledger = ProductLedger([make_product("A", name="alt")])
    ledger.upsert(make_product("A", name="neu", order_date=date(2024, 3, 1)))

    assert len(ledger) == 1
    assert ledger.get("A").name == "neu"
