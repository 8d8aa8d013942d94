"""Kommandozeile für Vine-Buchhaltung (Sync, Nummern, Festschreibung, EÜR)."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from agents.vine import (
    ArchiveRenderer,
    BelegSettings,
    CredentialStore,
    EditGate,
    ExpenseBook,
    Finalizer,
    FiscalSettings,
    LocalStore,
    ProductLedger,
    SyncService,
    VineApiClient,
    available_years,
    compute_euer,
    default_bulk_window,
    fixed_asset_register,
    import_newer,
    inventory_register,
    propose_numbers,
)
from agents.vine.dates import format_german_date, parse_german_date, parse_order_date
from agents.vine.dto import quantize_money, usage_from_labels
from agents.vine.expenses import ExpenseError
from agents.vine.storage import BELEG_SETTINGS_KEY, EUER_SETTINGS_KEY
from agents.vine.wire import decode_entries, product_to_entry
from backend.core.config import settings
from backend.core.logging import init_logging


def _iso_datetime(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _cli_date(value: str) -> date:
    result = parse_german_date(value)
    if not result.ok:
        result = parse_order_date(value)
    if not result.ok:
        raise argparse.ArgumentTypeError(f"invalid date: {value}")
    return result.value


@dataclass
class Workspace:
    store: LocalStore
    credentials: CredentialStore
    ledger: ProductLedger
    fiscal: FiscalSettings
    beleg: BelegSettings
    sync: SyncService
    expenses: ExpenseBook
    archive: ArchiveRenderer
    clock: Callable[[], datetime]

    def finalizer(self) -> Finalizer:
        return Finalizer(
            self.ledger,
            self.beleg,
            self.fiscal,
            render_document=self.archive,
            persist_local=self.sync.persist_local,
            push_remote=self.sync.push if self.credentials.get() else None,
            clock=self.clock,
        )

    def edit_gate(self) -> EditGate:
        return EditGate(
            self.ledger,
            persist_local=self.sync.persist_local,
            push_remote=self.sync.push if self.credentials.get() else None,
            clock=self.clock,
        )


def build_workspace(
    store_path: Path,
    archive_dir: Path,
    *,
    client: Optional[VineApiClient] = None,
    clock: Callable[[], datetime] | None = None,
) -> Workspace:
    store = LocalStore(store_path)
    credentials = CredentialStore(store)
    ledger = ProductLedger()
    stored_fiscal = store.get(EUER_SETTINGS_KEY)
    fiscal = FiscalSettings.from_dict(stored_fiscal) if stored_fiscal else FiscalSettings.from_env()
    clock = clock or (lambda: datetime.now(timezone.utc))
    sync = SyncService(client or VineApiClient(), ledger, store, credentials)
    sync.restore_local()
    return Workspace(
        store=store,
        credentials=credentials,
        ledger=ledger,
        fiscal=fiscal,
        beleg=BelegSettings.from_dict(store.get(BELEG_SETTINGS_KEY)),
        sync=sync,
        expenses=ExpenseBook(store),
        archive=ArchiveRenderer(archive_dir, clock=clock),
        clock=clock,
    )


def _emit(payload) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _report_dict(report) -> dict:
    return {
        "status": report.status,
        "message": report.message,
        "products": report.product_count,
        "inserted": report.inserted,
        "updated": report.updated,
        "skipped": report.skipped,
    }


def cmd_token(ws: Workspace, args: argparse.Namespace) -> int:
    if args.clear:
        ws.credentials.clear()
        _emit({"token": None})
        return 0
    if args.value:
        ws.credentials.set(args.value)
    _emit({"token_set": bool(ws.credentials.get())})
    return 0


def cmd_sync(ws: Workspace, args: argparse.Namespace) -> int:
    report = ws.sync.full_sync() if args.command == "full-sync" else ws.sync.load()
    _emit(_report_dict(report))
    return 0 if report.ok else 1


def cmd_numbers(ws: Workspace, args: argparse.Namespace) -> int:
    _emit(propose_numbers(ws.ledger.values(), ws.fiscal, year=args.year))
    return 0


def _result_dict(result) -> dict:
    return {
        "success": result.success,
        "status": result.status.value,
        "message": result.message,
        "invoice_number": result.invoice_number,
        "reason": result.reason,
        "document": result.document,
    }


def cmd_finalize(ws: Workspace, args: argparse.Namespace) -> int:
    product = ws.ledger.get(args.asin)
    if product is None:
        _emit({"success": False, "message": f"Produkt {args.asin} nicht gefunden."})
        return 1
    proposals = propose_numbers(ws.ledger.values(), ws.fiscal)
    result = ws.finalizer().finalize(
        product, proposals, attach_valuation_document=not args.no_attachment
    )
    _emit(_result_dict(result))
    return 0 if result.success else 1


def select_bulk_products(ws: Workspace, start: date, end: date, asins: List[str] | None = None):
    if asins:
        return [p for p in (ws.ledger.get(a) for a in asins) if p is not None]
    return [
        p
        for p in ws.ledger.values()
        if start <= p.order_date <= end
        and not p.finalized
        and not p.is_cancelled
        and not p.is_minor_value(ws.fiscal.minor_value_limit_active, ws.fiscal.minor_value_limit)
    ]


def cmd_bulk_finalize(ws: Workspace, args: argparse.Namespace) -> int:
    default_start, default_end = default_bulk_window(ws.ledger.values(), ws.fiscal, ws.clock().date())
    start = args.date_from or default_start
    end = args.date_to or default_end
    selection = select_bulk_products(ws, start, end, args.asin)
    proposals = propose_numbers(ws.ledger.values(), ws.fiscal)
    result = ws.finalizer().finalize_batch(
        selection,
        proposals,
        attach_valuation_document=not args.no_attachment,
    )
    _emit(_result_dict(result))
    return 0 if result.success else 1


def cmd_euer(ws: Workspace, args: argparse.Namespace) -> int:
    year = args.year or ws.clock().year
    products = ws.ledger.view(ws.fiscal, ws.sync.alternate_valuation)
    report = compute_euer(year, products, ws.fiscal, list(ws.expenses))
    payload = report.to_dict()
    payload["available_years"] = available_years(products, list(ws.expenses), ws.clock().date())
    _emit(payload)
    return 0


def cmd_expense_add(ws: Workspace, args: argparse.Namespace) -> int:
    try:
        expense = ws.expenses.add(args.date, args.name, args.amount)
    except ExpenseError as exc:
        _emit({"success": False, "message": str(exc)})
        return 1
    _emit({"success": True, "id": expense.id, "date": format_german_date(expense.date)})
    return 0


def cmd_expense_delete(ws: Workspace, args: argparse.Namespace) -> int:
    try:
        ws.expenses.delete(args.expense_id)
    except ExpenseError as exc:
        _emit({"success": False, "message": str(exc)})
        return 1
    _emit({"success": True})
    return 0


def cmd_assets(ws: Workspace, args: argparse.Namespace) -> int:
    products = ws.ledger.view(ws.fiscal, ws.sync.alternate_valuation)
    registers = [inventory_register(products), fixed_asset_register(products)]
    _emit(
        [
            {
                "title": register.title,
                "count": len(register.products),
                "etv_total": str(register.etv_total),
                "fair_value_total": str(register.fair_value_total),
                "asins": [p.asin for p in register.products],
            }
            for register in registers
        ]
    )
    return 0


def cmd_edit(ws: Workspace, args: argparse.Namespace) -> int:
    product = ws.ledger.get(args.asin)
    if product is None:
        _emit({"success": False, "message": f"Produkt {args.asin} nicht gefunden."})
        return 1
    changes = {}
    if args.override is not None:
        try:
            override = quantize_money(args.override)
        except ArithmeticError:
            override = None
        if override is None or override < 0:
            _emit({"success": False, "message": f"Ungültiger Teilwert: {args.override}"})
            return 1
        changes["override_fair_value"] = override
    if args.reason is not None:
        changes["override_reason"] = args.reason
    if args.usage is not None:
        usage, defective, ignored = usage_from_labels([args.usage])
        if ignored:
            _emit({"success": False, "message": f"Unbekannte Verwendung: {args.usage}"})
            return 1
        if defective:
            changes["defective"] = True
        else:
            changes["usage"] = usage
    if args.defective is not None:
        changes["defective"] = args.defective
    result = ws.edit_gate().submit(product.with_changes(**changes), confirmed=args.confirm)
    if not result.applied:
        _emit({
            "success": False,
            "status": result.status,
            "message": "Das Produkt ist festgeschrieben. Änderung mit --confirm bestätigen.",
        })
        return 2
    _emit({"success": True, "status": result.status, "synced": result.synced})
    return 0


def cmd_import(ws: Workspace, args: argparse.Namespace) -> int:
    try:
        raw = json.loads(args.file.read_text(encoding="utf-8"))
        incoming = decode_entries(raw)
    except (OSError, ValueError) as exc:
        _emit({"success": False, "message": f"Import fehlgeschlagen: {exc}"})
        return 1
    outcome = import_newer(ws.ledger.values(), incoming)
    ws.ledger.replace_all(outcome.products)
    ws.sync.persist_local()
    _emit({
        "success": True,
        "added": outcome.added,
        "updated": outcome.updated,
        "skipped": outcome.skipped,
        "skipped_asins": outcome.skipped_asins,
    })
    return 0


def cmd_export(ws: Workspace, args: argparse.Namespace) -> int:
    entries = [product_to_entry(p) for p in ws.ledger.values()]
    args.file.parent.mkdir(parents=True, exist_ok=True)
    args.file.write_text(json.dumps(entries, indent=2, ensure_ascii=False), encoding="utf-8")
    _emit({"success": True, "products": len(entries), "path": str(args.file)})
    return 0


def cmd_settings(ws: Workspace, args: argparse.Namespace) -> int:
    if args.method == "A":
        ws.fiscal.select(etv_in_out_method=False)
    elif args.method == "B":
        ws.fiscal.select(etv_in_out_method=True)
    if args.fair_value is not None:
        ws.fiscal.select(use_fair_value_for_income=args.fair_value)
    if args.delay:
        ws.fiscal.default_withdrawal_delay = args.delay
    ws.store.set(EUER_SETTINGS_KEY, ws.fiscal.to_dict())
    _emit(ws.fiscal.to_dict())
    return 0


COMMANDS = {
    "token": cmd_token,
    "sync": cmd_sync,
    "full-sync": cmd_sync,
    "numbers": cmd_numbers,
    "finalize": cmd_finalize,
    "bulk-finalize": cmd_bulk_finalize,
    "euer": cmd_euer,
    "expense-add": cmd_expense_add,
    "expense-delete": cmd_expense_delete,
    "assets": cmd_assets,
    "edit": cmd_edit,
    "import": cmd_import,
    "export": cmd_export,
    "settings": cmd_settings,
}


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Vine-Buchhaltung")
    parser.add_argument("--store", type=Path, default=Path(settings.LOCAL_STORE_PATH), help="Lokaler Speicher (JSON)")
    parser.add_argument("--archive-dir", type=Path, default=Path(settings.ARCHIVE_BASE_DIR), help="Basisverzeichnis für Belege")
    parser.add_argument("--now", help="ISO-8601 Zeitstempel für deterministische Läufe")
    parser.add_argument("--verbose", action="store_true", help="Zusätzliche Logs")
    sub = parser.add_subparsers(dest="command", required=True)

    token = sub.add_parser("token", help="API-Token setzen oder löschen")
    token.add_argument("value", nargs="?")
    token.add_argument("--clear", action="store_true")

    sub.add_parser("sync", help="Remote-Stand laden und zusammenführen")
    sub.add_parser("full-sync", help="Laden, zusammenführen und zurückschreiben")

    numbers = sub.add_parser("numbers", help="Rechnungsnummern vorschlagen")
    numbers.add_argument("--year", type=int)

    finalize = sub.add_parser("finalize", help="Einzelbeleg festschreiben")
    finalize.add_argument("asin")
    finalize.add_argument("--no-attachment", action="store_true", help="Teilwert-Gutachten nicht anhängen")

    bulk = sub.add_parser("bulk-finalize", help="Sammelbeleg festschreiben")
    bulk.add_argument("--from", dest="date_from", type=_cli_date)
    bulk.add_argument("--to", dest="date_to", type=_cli_date)
    bulk.add_argument("--asin", action="append", help="Explizite Auswahl (mehrfach)")
    bulk.add_argument("--no-attachment", action="store_true")

    euer = sub.add_parser("euer", help="EÜR berechnen")
    euer.add_argument("--year", type=int)

    expense_add = sub.add_parser("expense-add", help="Ausgabe erfassen")
    expense_add.add_argument("--date", required=True, help="TT.MM.JJJJ")
    expense_add.add_argument("--name", required=True)
    expense_add.add_argument("--amount", required=True)

    expense_delete = sub.add_parser("expense-delete", help="Ausgabe löschen")
    expense_delete.add_argument("expense_id")

    sub.add_parser("assets", help="Umlaufvermögen und Anlagenverzeichnis")

    edit = sub.add_parser("edit", help="Produkt bearbeiten (GoBD-Bestätigung bei festgeschriebenen)")
    edit.add_argument("asin")
    edit.add_argument("--override", help="Eigener Teilwert")
    edit.add_argument("--reason", help="Begründung für abweichenden Wert")
    edit.add_argument("--usage", help="Verwendung, z. B. Lager oder storniert")
    defect = edit.add_mutually_exclusive_group()
    defect.add_argument("--defective", dest="defective", action="store_true")
    defect.add_argument("--not-defective", dest="defective", action="store_false")
    edit.set_defaults(defective=None)
    edit.add_argument("--confirm", action="store_true", help="Änderung an festgeschriebenem Produkt bestätigen")

    import_parser = sub.add_parser("import", help="Produkte aus JSON-Sicherung übernehmen (neuere gewinnen)")
    import_parser.add_argument("file", type=Path)

    export_parser = sub.add_parser("export", help="Produkte als JSON-Sicherung schreiben")
    export_parser.add_argument("file", type=Path)

    settings_parser = sub.add_parser("settings", help="EÜR-Einstellungen")
    settings_parser.add_argument("--method", choices=["A", "B"])
    value_basis = settings_parser.add_mutually_exclusive_group()
    value_basis.add_argument("--fair-value", dest="fair_value", action="store_true", default=None)
    value_basis.add_argument("--etv", dest="fair_value", action="store_false")
    settings_parser.set_defaults(fair_value=None)
    settings_parser.add_argument("--delay", help="Standard-Entnahmeverzögerung, z. B. 14d")

    return parser.parse_args(argv)


def main(argv: Iterable[str] | None = None, *, client: Optional[VineApiClient] = None) -> int:
    args = parse_args(argv)
    init_logging(level="DEBUG" if args.verbose else None)
    clock = None
    if args.now:
        fixed = _iso_datetime(args.now)
        clock = lambda: fixed  # noqa: E731
    ws = build_workspace(args.store, args.archive_dir, client=client, clock=clock)
    return COMMANDS[args.command](ws, args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
