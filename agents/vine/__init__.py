"""Vine-Buchhaltung: Bestand, Nummernkreis, Festschreibung und EÜR."""

from .archive import ArchiveRenderer, write_package
from .belege import BelegRenderer
from .clients import VineApiClient
from .config import FiscalSettings
from .dates import (
    SENTINEL_DATE,
    DateParseResult,
    default_bulk_window,
    effective_withdrawal_date,
    end_of_fiscal_quarter,
    normalize_order_date,
    parse_order_date,
)
from .dto import AdditionalExpense, Product, UsageStatus
from .euer import EuerReport, available_years, compute_euer
from .expenses import ExpenseBook
from .finalization import (
    EditGate,
    FinalizationResult,
    FinalizationStatus,
    Finalizer,
    requires_confirmation,
)
from .ledger import ProductLedger, apply_filters, import_newer, reconcile
from .numbering import propose_numbers
from .stammdaten import BelegSettings, RecipientIdentity, SenderIdentity
from .storage import CredentialStore, LocalStore
from .sync import SyncReport, SyncService
from .vermoegen import fixed_asset_register, inventory_register

__all__ = [
    "ArchiveRenderer",
    "write_package",
    "BelegRenderer",
    "VineApiClient",
    "FiscalSettings",
    "SENTINEL_DATE",
    "DateParseResult",
    "default_bulk_window",
    "effective_withdrawal_date",
    "end_of_fiscal_quarter",
    "normalize_order_date",
    "parse_order_date",
    "AdditionalExpense",
    "Product",
    "UsageStatus",
    "EuerReport",
    "available_years",
    "compute_euer",
    "ExpenseBook",
    "EditGate",
    "FinalizationResult",
    "FinalizationStatus",
    "Finalizer",
    "requires_confirmation",
    "ProductLedger",
    "apply_filters",
    "import_newer",
    "reconcile",
    "propose_numbers",
    "BelegSettings",
    "RecipientIdentity",
    "SenderIdentity",
    "CredentialStore",
    "LocalStore",
    "SyncReport",
    "SyncService",
    "fixed_asset_register",
    "inventory_register",
]
