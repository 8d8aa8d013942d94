"""Festschreibung (GoBD) von Einzel- und Sammelbelegen.

Zustände: OPEN -> FINALIZED (terminal). Vorbedingungen werden vor jeder
Mutation geprüft; ein abgelehnter Aufruf verändert nichts. Nach erfolgreicher
lokaler Festschreibung wird nie zurückgerollt, ein fehlgeschlagener Push
landet in der Warteschlange (``retry_pending``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from backend.core import metrics

from .belege import BelegRenderer
from .config import FiscalSettings
from .dto import Product
from .ledger import ProductLedger
from .numbering import InvoiceNumberMissingError, resolve_invoice_number
from .stammdaten import BelegSettings, missing_sender_fields

logger = logging.getLogger(__name__)


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


class FinalizationError(ValueError):
    pass


class ImmutableInvoiceError(FinalizationError):
    pass


class PushResult(Protocol):
    @property
    def ok(self) -> bool: ...


RenderDocument = Callable[..., object]
PushRemote = Callable[[Sequence[Product]], PushResult]


class FinalizationStatus(str, Enum):
    REJECTED = "rejected"
    LOCALLY_FINALIZED = "locally_finalized"
    SYNCED = "synced"


@dataclass(slots=True)
class FinalizationResult:
    success: bool
    message: str
    status: FinalizationStatus
    invoice_number: Optional[str] = None
    reason: Optional[str] = None
    products: List[Product] = field(default_factory=list)
    document: object = None
    text: Optional[str] = None


def _rejected(reason: str, message: str, kind: str) -> FinalizationResult:
    metrics.increment_finalizations(kind, FinalizationStatus.REJECTED.value)
    logger.info("Finalization rejected", extra={"kind": kind, "reason": reason})
    return FinalizationResult(
        success=False, message=message, status=FinalizationStatus.REJECTED, reason=reason
    )


def _bump(previous: int, now: datetime) -> int:
    return max(int(now.timestamp()), previous)


class Finalizer:
    """Schreibt Produkte fest und stößt die Nebenwirkungen in fester Reihenfolge an.

    Reihenfolge: Belegtext, Rendern (mit Teilwert-Gutachten als Anhang),
    Bestand, lokales Speichern, Remote-Push.
    """

    def __init__(
        self,
        ledger: ProductLedger,
        beleg_settings: BelegSettings,
        settings: FiscalSettings,
        *,
        render_document: RenderDocument,
        persist_local: Callable[[], None],
        push_remote: Optional[PushRemote] = None,
        renderer: Optional[BelegRenderer] = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.ledger = ledger
        self.beleg_settings = beleg_settings
        self.settings = settings
        self._render_document = render_document
        self._persist_local = persist_local
        self._push_remote = push_remote
        self.renderer = renderer or BelegRenderer()
        self._clock = clock or _default_clock
        self._pending: Dict[str, None] = {}

    @property
    def pending(self) -> List[str]:
        return list(self._pending)

    def _sender_rejection(self, kind: str) -> Optional[FinalizationResult]:
        missing = missing_sender_fields(self.beleg_settings.sender)
        if not missing:
            return None
        return _rejected(
            "sender_incomplete",
            "Bitte vervollständigen Sie Ihre Absenderdaten (" + ", ".join(missing)
            + ") bevor Sie Belege festschreiben.",
            kind,
        )

    def _is_minor(self, product: Product) -> bool:
        return product.is_minor_value(self.settings.minor_value_limit_active, self.settings.minor_value_limit)

    def finalize(
        self,
        product: Product,
        proposals: Dict[str, str],
        *,
        attach_valuation_document: bool = True,
    ) -> FinalizationResult:
        """Einzelbeleg festschreiben.

        Ein bereits festgeschriebenes Produkt behält seine Nummer; der Beleg
        wird neu erzeugt.
        """

        rejection = self._sender_rejection("single")
        if rejection:
            return rejection
        if self._is_minor(product):
            return _rejected(
                "minor_value",
                f"Streuartikel (ETV unter {self.settings.minor_value_limit:.2f} EUR) "
                "können nicht festgeschrieben werden.",
                "single",
            )
        try:
            invoice_number = resolve_invoice_number(product, proposals)
        except InvoiceNumberMissingError:
            return _rejected(
                "no_invoice_number",
                f"Für {product.asin} ist keine Rechnungsnummer verfügbar.",
                "single",
            )

        now = self._clock()
        updated = product.with_changes(
            finalized=True,
            invoice_number=invoice_number,
            last_update_time=_bump(product.last_update_time, now),
        )
        text = self.renderer.single(
            updated, self.beleg_settings, self.settings, invoice_number, issue_date=now.date()
        )
        attachments = self._attachments([updated], attach_valuation_document)
        document = self._render_document(
            text, f"Beleg_{invoice_number}_{updated.asin}.txt", attachments, invoice_number=invoice_number
        )
        return self._commit("single", [updated], invoice_number, document, text)

    def finalize_batch(
        self,
        products: Sequence[Product],
        proposals: Dict[str, str],
        *,
        attach_valuation_document: bool = True,
    ) -> FinalizationResult:
        """Sammelbeleg: alle Produkte teilen sich die Nummer des ältesten.

        Der Leistungszeitraum reicht vom ältesten bis zum jüngsten Bestelldatum
        der Auswahl.
        """

        if not products:
            return _rejected("empty_selection", "Bitte wählen Sie mindestens ein Produkt aus.", "bulk")
        rejection = self._sender_rejection("bulk")
        if rejection:
            return rejection

        invalid = [
            p.asin for p in products if p.finalized or p.is_cancelled or self._is_minor(p)
        ]
        if invalid:
            return _rejected(
                "invalid_selection",
                "Bereits festgeschriebene, stornierte oder Streuartikel können nicht in einen "
                "Sammelbeleg aufgenommen werden: " + ", ".join(invalid),
                "bulk",
            )

        ordered = sorted(products, key=lambda p: (p.order_date, p.asin))
        invoice_number = proposals.get(ordered[0].asin)
        if not invoice_number:
            return _rejected(
                "no_invoice_number",
                f"Für das älteste Produkt {ordered[0].asin} ist keine Rechnungsnummer verfügbar.",
                "bulk",
            )
        period_start, period_end = ordered[0].order_date, ordered[-1].order_date

        now = self._clock()
        updated = [
            p.with_changes(
                finalized=True,
                invoice_number=invoice_number,
                last_update_time=_bump(p.last_update_time, now),
            )
            for p in ordered
        ]
        text = self.renderer.bulk(
            updated,
            self.beleg_settings,
            self.settings,
            invoice_number,
            period_start,
            period_end,
            issue_date=now.date(),
        )
        attachments = self._attachments(updated, attach_valuation_document)
        document = self._render_document(
            text, f"Sammelbeleg_{invoice_number}.txt", attachments, invoice_number=invoice_number
        )
        return self._commit("bulk", updated, invoice_number, document, text)

    @staticmethod
    def _attachments(products: Sequence[Product], enabled: bool) -> List[str]:
        if not enabled:
            return []
        return [p.valuation_document_url for p in products if p.valuation_document_url]

    def _commit(
        self,
        kind: str,
        products: List[Product],
        invoice_number: str,
        document: object,
        text: str,
    ) -> FinalizationResult:
        for product in products:
            self.ledger.upsert(product)
        self._persist_local()

        synced = self._push(products)
        status = FinalizationStatus.SYNCED if synced else FinalizationStatus.LOCALLY_FINALIZED
        metrics.increment_finalizations(kind, status.value)
        logger.info(
            "Products finalized",
            extra={
                "kind": kind,
                "invoice_no": invoice_number,
                "count": len(products),
                "status": status.value,
            },
        )
        message = f"Beleg {invoice_number} festgeschrieben."
        if not synced:
            message += " Die Übertragung an den Server steht noch aus."
        return FinalizationResult(
            success=True,
            message=message,
            status=status,
            invoice_number=invoice_number,
            products=products,
            document=document,
            text=text,
        )

    def _push(self, products: Sequence[Product]) -> bool:
        if self._push_remote is not None:
            result = self._push_remote(products)
            if result.ok:
                for product in products:
                    self._pending.pop(product.asin, None)
                return True
        for product in products:
            self._pending[product.asin] = None
        logger.warning(
            "Remote persistence pending",
            extra={"asins": [p.asin for p in products]},
        )
        return False

    def retry_pending(self) -> bool:
        """Offene Pushes erneut senden, ohne Belege neu zu erzeugen."""

        products = [self.ledger.get(asin) for asin in self._pending]
        products = [p for p in products if p is not None]
        if not products:
            self._pending.clear()
            return True
        return self._push(products)


def requires_confirmation(before: Optional[Product], after: Product) -> bool:
    """Änderung an einem festgeschriebenen Produkt, die bestätigt werden muss."""

    if before is None or not before.finalized:
        return False
    return (
        before.override_fair_value != after.override_fair_value
        or before.override_reason != after.override_reason
        or before.is_cancelled != after.is_cancelled
        or before.defective != after.defective
    )


@dataclass(slots=True)
class EditResult:
    status: str  # applied|confirmation_required
    product: Product
    synced: Optional[bool] = None

    @property
    def applied(self) -> bool:
        return self.status == "applied"


class EditGate:
    """Bearbeitungen mit GoBD-Bestätigung für festgeschriebene Produkte.

    Rein prozedural: ``ProductLedger.upsert`` selbst verweigert nie.
    """

    def __init__(
        self,
        ledger: ProductLedger,
        *,
        persist_local: Callable[[], None] | None = None,
        push_remote: Optional[PushRemote] = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.ledger = ledger
        self._persist_local = persist_local
        self._push_remote = push_remote
        self._clock = clock or _default_clock

    def submit(self, after: Product, *, confirmed: bool = False) -> EditResult:
        before = self.ledger.get(after.asin)
        if before is not None and before.finalized:
            if not after.finalized or after.invoice_number != before.invoice_number:
                raise ImmutableInvoiceError(
                    f"invoice number {before.invoice_number} of {before.asin} is immutable"
                )
        if requires_confirmation(before, after) and not confirmed:
            logger.info("Edit of finalized product needs confirmation", extra={"asin": after.asin})
            return EditResult(status="confirmation_required", product=before)

        previous = max(after.last_update_time, before.last_update_time if before else 0)
        updated = after.with_changes(last_update_time=_bump(previous, self._clock()))
        self.ledger.upsert(updated)
        if self._persist_local is not None:
            self._persist_local()
        synced = None
        if self._push_remote is not None:
            synced = self._push_remote([updated]).ok
        return EditResult(status="applied", product=updated, synced=synced)
