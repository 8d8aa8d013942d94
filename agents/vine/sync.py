"""Synchronisation zwischen lokalem Snapshot und Remote-Store.

Remote-Fehler lassen den lokalen Bestand unverändert. Wird das Token während
eines Aufrufs geändert oder gelöscht, wird das Ergebnis verworfen
(``superseded``). Es gibt keine Wiederholung auf Service-Ebene.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from backend.core import metrics

from .clients import VineApiClient
from .dto import Product, to_decimal
from .ledger import ProductLedger, reconcile
from .storage import ALTERNATE_VALUATION_KEY, PRODUCTS_KEY, CredentialStore, LocalStore
from .wire import ApiResponse, alternate_values_from_entries, decode_entries, product_to_entry

logger = logging.getLogger(__name__)

AUTH_ERROR_MARKER = "invalid token"


@dataclass(slots=True)
class SyncReport:
    status: str  # success|error|auth_error|superseded
    message: str = ""
    product_count: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    details: Dict[str, object] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "success"


def save_local_products(store: LocalStore, products: Iterable[Product]) -> None:
    store.set(PRODUCTS_KEY, [product_to_entry(p) for p in products])


def load_local_products(store: LocalStore) -> List[Product]:
    raw = store.get(PRODUCTS_KEY, [])
    try:
        return decode_entries(raw)
    except ValueError:
        logger.error("Local product snapshot is malformed, ignoring it")
        return []


def save_alternate_valuation(store: LocalStore, values: Dict[str, Decimal]) -> None:
    store.set(ALTERNATE_VALUATION_KEY, {asin: str(amount) for asin, amount in values.items()})


def load_alternate_valuation(store: LocalStore) -> Dict[str, Decimal]:
    """Gespeicherte Teilwerte (v2) plus ``teilwert_v2`` aus dem Snapshot."""

    values = alternate_values_from_entries(store.get(PRODUCTS_KEY, []))
    stored = store.get(ALTERNATE_VALUATION_KEY) or {}
    if not isinstance(stored, dict):
        logger.error("Stored alternate valuation is malformed, ignoring it")
        return values
    for asin, amount in stored.items():
        try:
            decoded = to_decimal(amount)
        except (TypeError, ArithmeticError):
            logger.warning("Skipping invalid stored alternate value", extra={"asin": asin})
            continue
        if decoded.is_finite():
            values[asin] = decoded
    return values


def is_auth_failure(message: Optional[str]) -> bool:
    return AUTH_ERROR_MARKER in (message or "").lower()


class SyncService:
    """Lädt, vereinigt und überträgt den Produktbestand."""

    def __init__(
        self,
        client: VineApiClient,
        ledger: ProductLedger,
        store: LocalStore,
        credentials: CredentialStore | None = None,
    ) -> None:
        self.client = client
        self.ledger = ledger
        self.store = store
        self.credentials = credentials or CredentialStore(store)
        self.alternate_valuation: Dict[str, Decimal] = {}

    def restore_local(self) -> int:
        """Bestand aus dem lokalen Snapshot übernehmen (Offline-Start)."""
        products = load_local_products(self.store)
        self.ledger.replace_all(products)
        self.alternate_valuation = load_alternate_valuation(self.store)
        return len(products)

    def persist_local(self) -> None:
        save_local_products(self.store, self.ledger.values())

    def _superseded(self, token: Optional[str], operation: str) -> bool:
        if self.credentials.get() != token:
            logger.info("Discarding result of superseded remote call", extra={"operation": operation})
            metrics.increment_sync_outcome(operation, "superseded")
            return True
        return False

    def _failure(self, response: ApiResponse, operation: str) -> SyncReport:
        message = response.message or "Unbekannter Fehler"
        if is_auth_failure(message):
            logger.warning("Remote store rejected credential, clearing it", extra={"operation": operation})
            self.credentials.clear()
            return SyncReport(status="auth_error", message=message, product_count=len(self.ledger))
        logger.warning(
            "Remote call failed, keeping local state",
            extra={"operation": operation, "error": message},
        )
        return SyncReport(status="error", message=message, product_count=len(self.ledger))

    def load(self) -> SyncReport:
        """Remote-Stand holen und mit dem lokalen Snapshot vereinigen."""

        token = self.credentials.get()
        local = self.ledger.snapshot()
        response = self.client.fetch_products(token)
        if self._superseded(token, "get_all"):
            return SyncReport(status="superseded", product_count=len(self.ledger))
        if not response.ok:
            return self._failure(response, "get_all")

        remote: List[Product] = response.data["products"]
        merged = reconcile(local, remote)
        self.ledger.replace_all(merged)
        self.alternate_valuation = dict(response.data.get("alternate_valuation") or {})
        save_alternate_valuation(self.store, self.alternate_valuation)
        self.persist_local()
        logger.info(
            "Products reconciled",
            extra={"local": len(local), "remote": len(remote), "merged": len(merged)},
        )
        return SyncReport(status="success", product_count=len(merged))

    def push(self, products: Iterable[Product]) -> SyncReport:
        """Einzelne Datensätze übertragen (Bearbeitung, Festschreibung)."""

        token = self.credentials.get()
        items = list(products)
        response = self.client.push_products(token, items)
        if self._superseded(token, "update_asin"):
            return SyncReport(status="superseded", product_count=len(items))
        if not response.ok:
            return self._failure(response, "update_asin")
        return SyncReport(
            status="success",
            message=response.message or "",
            product_count=len(items),
            inserted=response.inserted or 0,
            updated=response.updated or 0,
            skipped=response.skipped or 0,
        )

    def full_sync(self) -> SyncReport:
        """Holen, vereinigen, lokal sichern und den vereinigten Bestand zurückschreiben."""

        loaded = self.load()
        if not loaded.ok:
            return loaded
        pushed = self.push(self.ledger.values())
        if pushed.ok:
            logger.info(
                "Full sync finished",
                extra={"inserted": pushed.inserted, "updated": pushed.updated, "skipped": pushed.skipped},
            )
            pushed.product_count = len(self.ledger)
        return pushed

    def refresh_alternate_valuation(self) -> SyncReport:
        token = self.credentials.get()
        response = self.client.fetch_alternate_valuation(token)
        if self._superseded(token, "get_teilwert_v2"):
            return SyncReport(status="superseded")
        if not response.ok:
            return self._failure(response, "get_teilwert_v2")
        self.alternate_valuation = dict(response.data)
        save_alternate_valuation(self.store, self.alternate_valuation)
        return SyncReport(status="success", product_count=len(self.alternate_valuation))

    def delete_remote(self) -> SyncReport:
        """Alle Remote-Daten löschen; der lokale Bestand bleibt erhalten."""

        token = self.credentials.get()
        response = self.client.delete_all(token)
        if self._superseded(token, "delete_all"):
            return SyncReport(status="superseded")
        if not response.ok:
            return self._failure(response, "delete_all")
        logger.warning("Remote product store cleared")
        return SyncReport(status="success", message=response.message or "")
