"""Tests for single and bulk finalization and the edit confirmation gate."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from agents.vine.config import FiscalSettings
from agents.vine.dto import UsageStatus
from agents.vine.finalization import (
    EditGate,
    FinalizationStatus,
    Finalizer,
    ImmutableInvoiceError,
    requires_confirmation,
)
from agents.vine.ledger import ProductLedger
from agents.vine.numbering import propose_numbers
from agents.vine.stammdaten import BelegSettings
from backend.core import metrics

CLOCK_TS = 1736942400  # 2025-01-15 12:00 UTC


class Recorder:
    def __init__(self, push_ok: bool = True) -> None:
        self.documents = []
        self.persisted = 0
        self.pushed = []
        self.push_ok = push_ok

    def render(self, text, filename, attachments, *, invoice_number):
        self.documents.append((filename, list(attachments), invoice_number))
        return f"doc:{filename}"

    def persist(self) -> None:
        self.persisted += 1

    def push(self, products):
        self.pushed.append([p.asin for p in products])
        return SimpleNamespace(ok=self.push_ok)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


def _finalizer(ledger, beleg_settings, recorder, fixed_clock, settings=None, push=True):
    return Finalizer(
        ledger,
        beleg_settings,
        settings or FiscalSettings(),
        render_document=recorder.render,
        persist_local=recorder.persist,
        push_remote=recorder.push if push else None,
        clock=fixed_clock,
    )


def test_finalize_assigns_proposed_number_and_syncs(make_product, beleg_settings, recorder, fixed_clock) -> None:
    product = make_product("A", valuation_document_url="https://example.invalid/gutachten.pdf")
    ledger = ProductLedger([product])
    finalizer = _finalizer(ledger, beleg_settings, recorder, fixed_clock)

    result = finalizer.finalize(product, propose_numbers(ledger.values(), finalizer.settings))

    assert result.success
    assert result.status is FinalizationStatus.SYNCED
    assert result.invoice_number == "VINE-2024-0001"
    stored = ledger.get("A")
    assert stored.finalized and stored.invoice_number == "VINE-2024-0001"
    assert stored.last_update_time == CLOCK_TS
    assert recorder.documents == [
        ("Beleg_VINE-2024-0001_A.txt", ["https://example.invalid/gutachten.pdf"], "VINE-2024-0001")
    ]
    assert recorder.persisted == 1
    assert recorder.pushed == [["A"]]
    assert "VINE-2024-0001" in result.text
    assert metrics.get_counter("vine_finalizations_total", {"kind": "single", "status": "synced"}) == 1


def test_finalize_without_attachment(make_product, beleg_settings, recorder, fixed_clock) -> None:
    product = make_product("A", valuation_document_url="https://example.invalid/g.pdf")
    finalizer = _finalizer(ProductLedger([product]), beleg_settings, recorder, fixed_clock)

    finalizer.finalize(product, {"A": "VINE-2024-0001"}, attach_valuation_document=False)

    assert recorder.documents[0][1] == []


def test_finalize_rejects_missing_vat_id_without_mutation(make_product, sender, recorder, fixed_clock) -> None:
    product = make_product("A")
    ledger = ProductLedger([product])
    settings = BelegSettings(sender=replace(sender, vat_id=""))
    finalizer = _finalizer(ledger, settings, recorder, fixed_clock)

    result = finalizer.finalize(product, {"A": "VINE-2024-0001"})

    assert not result.success
    assert result.status is FinalizationStatus.REJECTED
    assert result.reason == "sender_incomplete"
    assert "USt-IdNr." in result.message
    assert ledger.get("A") == product
    assert not product.finalized
    assert recorder.documents == [] and recorder.persisted == 0 and recorder.pushed == []


def test_finalize_rejects_minor_value(make_product, beleg_settings, recorder, fixed_clock) -> None:
    product = make_product("A", etv="5.00")
    settings = FiscalSettings(minor_value_limit_active=True)
    finalizer = _finalizer(ProductLedger([product]), beleg_settings, recorder, fixed_clock, settings)

    result = finalizer.finalize(product, {"A": "VINE-2024-0001"})

    assert result.reason == "minor_value"
    assert recorder.documents == []


def test_finalize_rejects_without_number(make_product, beleg_settings, recorder, fixed_clock) -> None:
    product = make_product("A")
    finalizer = _finalizer(ProductLedger([product]), beleg_settings, recorder, fixed_clock)

    assert finalizer.finalize(product, {}).reason == "no_invoice_number"


def test_refinalize_keeps_existing_number(make_product, beleg_settings, recorder, fixed_clock) -> None:
    product = make_product("A", finalized=True, invoice_number="VINE-2024-0007")
    finalizer = _finalizer(ProductLedger([product]), beleg_settings, recorder, fixed_clock)

    result = finalizer.finalize(product, {"A": "VINE-2024-0001"})

    assert result.invoice_number == "VINE-2024-0007"


def test_failed_push_keeps_local_finalization_and_queues(make_product, beleg_settings, fixed_clock) -> None:
    recorder = Recorder(push_ok=False)
    product = make_product("A")
    ledger = ProductLedger([product])
    finalizer = _finalizer(ledger, beleg_settings, recorder, fixed_clock)

    result = finalizer.finalize(product, {"A": "VINE-2024-0001"})

    assert result.success
    assert result.status is FinalizationStatus.LOCALLY_FINALIZED
    assert ledger.get("A").finalized
    assert finalizer.pending == ["A"]

    recorder.push_ok = True
    assert finalizer.retry_pending()
    assert finalizer.pending == []
    assert len(recorder.documents) == 1
    assert recorder.pushed == [["A"], ["A"]]


def test_finalize_without_remote_is_local_only(make_product, beleg_settings, recorder, fixed_clock) -> None:
    product = make_product("A")
    finalizer = _finalizer(ProductLedger([product]), beleg_settings, recorder, fixed_clock, push=False)

    result = finalizer.finalize(product, {"A": "VINE-2024-0001"})

    assert result.status is FinalizationStatus.LOCALLY_FINALIZED
    assert finalizer.pending == ["A"]


def test_bulk_shares_number_of_oldest_product(make_product, beleg_settings, recorder, fixed_clock) -> None:
    products = [
        make_product("C", date(2024, 3, 1)),
        make_product("A", date(2024, 1, 5)),
        make_product("B", date(2024, 2, 1)),
    ]
    ledger = ProductLedger(products)
    finalizer = _finalizer(ledger, beleg_settings, recorder, fixed_clock)
    proposals = propose_numbers(ledger.values(), finalizer.settings)

    result = finalizer.finalize_batch(products, proposals)

    assert result.success
    assert result.invoice_number == "VINE-2024-0001"
    assert [p.asin for p in result.products] == ["A", "B", "C"]
    assert {ledger.get(a).invoice_number for a in "ABC"} == {"VINE-2024-0001"}
    assert all(ledger.get(a).finalized for a in "ABC")
    assert recorder.documents[0][0] == "Sammelbeleg_VINE-2024-0001.txt"
    assert "Leistungszeitraum: 05/01/2024 - 01/03/2024" in result.text

    # proposals for the remaining products skip the shared number
    ledger.upsert(make_product("D", date(2024, 4, 1)))
    assert propose_numbers(ledger.values(), finalizer.settings) == {"D": "VINE-2024-0002"}


def test_bulk_rejects_empty_selection(beleg_settings, recorder, fixed_clock) -> None:
    finalizer = _finalizer(ProductLedger(), beleg_settings, recorder, fixed_clock)
    assert finalizer.finalize_batch([], {}).reason == "empty_selection"


def test_bulk_rejects_invalid_members_without_mutation(make_product, beleg_settings, recorder, fixed_clock) -> None:
    products = [
        make_product("A", date(2024, 1, 5)),
        make_product("B", date(2024, 1, 6), usage=UsageStatus.CANCELLED),
        make_product("C", date(2024, 1, 7), finalized=True, invoice_number="VINE-2024-0009"),
    ]
    ledger = ProductLedger(products)
    finalizer = _finalizer(ledger, beleg_settings, recorder, fixed_clock)

    result = finalizer.finalize_batch(products, {"A": "VINE-2024-0001"})

    assert result.reason == "invalid_selection"
    assert "B" in result.message and "C" in result.message
    assert not ledger.get("A").finalized
    assert recorder.persisted == 0


def test_requires_confirmation_only_for_finalized(make_product) -> None:
    open_product = make_product("A")
    finalized = make_product("A", finalized=True, invoice_number="VINE-2024-0001")

    assert not requires_confirmation(None, open_product)
    assert not requires_confirmation(open_product, open_product.with_changes(override_fair_value=Decimal("3")))
    assert requires_confirmation(finalized, finalized.with_changes(override_fair_value=Decimal("3")))
    assert requires_confirmation(finalized, finalized.with_changes(override_reason="Gutachten"))
    assert requires_confirmation(finalized, finalized.with_changes(defective=True))
    assert requires_confirmation(finalized, finalized.with_changes(usage=UsageStatus.CANCELLED))
    assert not requires_confirmation(finalized, finalized.with_changes(usage=UsageStatus.INVENTORY))


def test_edit_gate_requires_confirmation(make_product, fixed_clock) -> None:
    finalized = make_product("A", finalized=True, invoice_number="VINE-2024-0001", last_update_time=10)
    ledger = ProductLedger([finalized])
    persisted = []
    gate = EditGate(ledger, persist_local=lambda: persisted.append(True), clock=fixed_clock)
    edit = finalized.with_changes(override_fair_value=Decimal("12"))

    pending = gate.submit(edit)
    assert pending.status == "confirmation_required"
    assert ledger.get("A") == finalized
    assert persisted == []

    applied = gate.submit(edit, confirmed=True)
    assert applied.applied
    assert ledger.get("A").override_fair_value == Decimal("12.00")
    assert ledger.get("A").last_update_time == CLOCK_TS
    assert persisted == [True]


def test_edit_gate_applies_plain_edits_and_pushes(make_product, fixed_clock) -> None:
    product = make_product("A")
    ledger = ProductLedger([product])
    pushed = []

    def push(products):
        pushed.extend(p.asin for p in products)
        return SimpleNamespace(ok=True)

    result = EditGate(ledger, push_remote=push, clock=fixed_clock).submit(product.with_changes(name="neu"))

    assert result.applied and result.synced is True
    assert ledger.get("A").name == "neu"
    assert pushed == ["A"]


def test_edit_gate_keeps_invoice_number_immutable(make_product, fixed_clock) -> None:
    finalized = make_product("A", finalized=True, invoice_number="VINE-2024-0001")
    gate = EditGate(ProductLedger([finalized]), clock=fixed_clock)

    with pytest.raises(ImmutableInvoiceError):
        gate.submit(finalized.with_changes(invoice_number="VINE-2024-0002"), confirmed=True)
    with pytest.raises(ImmutableInvoiceError):
        gate.submit(finalized.with_changes(finalized=False), confirmed=True)
