"""WORM-Light Archivierung für Vine-Belege mit Manifest und Hash-Kette."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from hashlib import sha256
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence, Tuple

from .numbering import parse_invoice_number

logger = logging.getLogger(__name__)

GENERATOR_VERSION = "vine-ledger/1.0"


def _ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _hash_bytes(data: bytes) -> str:
    return sha256(data).hexdigest()


def _utc_stamp(dt: datetime) -> str:
    return _ensure_utc(dt).isoformat().replace("+00:00", "Z")


def write_package(
    base_dir: Path,
    year: int,
    invoice_no: str,
    files: Dict[str, bytes],
    *,
    now: datetime,
    previous_hash: str | None,
    generator_version: str = GENERATOR_VERSION,
) -> Tuple[Path, str]:
    """Schreibt alle Artefakte und erzeugt ein Manifest mit Hash-Kette."""

    invoice_dir = base_dir / "belege" / str(year) / invoice_no
    (invoice_dir / "audit").mkdir(parents=True, exist_ok=True)

    for name, content in sorted(files.items()):
        (invoice_dir / name).write_bytes(content)

    manifest = {
        "schema_version": "1.0",
        "generator_version": generator_version,
        "invoice_no": invoice_no,
        "year": year,
        "created_at_utc": _utc_stamp(now),
        "previous_hash": previous_hash,
        "files": {name: _hash_bytes(content) for name, content in sorted(files.items())},
    }

    manifest_bytes = json.dumps(manifest, indent=2, sort_keys=True).encode("utf-8")
    (invoice_dir / "manifest.json").write_bytes(manifest_bytes)
    return invoice_dir, _hash_bytes(manifest_bytes)


def write_notice(
    invoice_dir: Path,
    invoice_no: str,
    status: str,
    now: datetime,
    *,
    actor: str = "system",
    comment: Optional[str] = None,
) -> Path:
    """Audit-Notice (z. B. ``finalized``) neben dem Beleg."""

    audit_dir = invoice_dir / "audit"
    audit_dir.mkdir(parents=True, exist_ok=True)
    now_utc = _ensure_utc(now)
    filename = f"NOTICE-{invoice_no}_{status}_{now_utc.strftime('%Y%m%dT%H%M%SZ')}.json"
    payload = {
        "invoice_no": invoice_no,
        "status": status,
        "timestamp_utc": _utc_stamp(now_utc),
        "actor": actor,
    }
    if comment:
        payload["comment"] = comment
    path = audit_dir / filename
    path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    return path


class ArchiveRenderer:
    """``render_document``-Implementierung auf Dateisystembasis.

    Die Kette (``previous_hash``) läuft über alle Belege eines Archivs; der
    letzte Manifest-Hash liegt in ``belege/chain.json``.
    """

    def __init__(self, base_dir: Path | str, *, clock: Callable[[], datetime] | None = None) -> None:
        self.base_dir = Path(base_dir)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def chain_path(self) -> Path:
        return self.base_dir / "belege" / "chain.json"

    def last_hash(self) -> Optional[str]:
        if not self.chain_path.exists():
            return None
        data = json.loads(self.chain_path.read_text(encoding="utf-8"))
        return data.get("last_hash")

    def __call__(
        self,
        text: str,
        filename: str,
        attachments: Sequence[str] = (),
        *,
        invoice_number: str,
    ) -> Path:
        now = self._clock()
        parsed = parse_invoice_number(invoice_number)
        year = parsed[0] if parsed else now.year

        files = {filename: text.encode("utf-8")}
        if attachments:
            files["attachments.json"] = json.dumps(list(attachments), indent=2).encode("utf-8")

        invoice_dir, manifest_hash = write_package(
            self.base_dir, year, invoice_number, files, now=now, previous_hash=self.last_hash()
        )
        self.chain_path.write_text(
            json.dumps({"last_hash": manifest_hash, "invoice_no": invoice_number}, indent=2),
            encoding="utf-8",
        )
        write_notice(invoice_dir, invoice_number, "finalized", now)
        logger.info(
            "Document archived",
            extra={"invoice_no": invoice_number, "path": str(invoice_dir), "manifest_hash": manifest_hash},
        )
        return invoice_dir
