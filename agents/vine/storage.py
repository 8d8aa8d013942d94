"""JSON-backed local key-value store (offline snapshot)."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

PRODUCTS_KEY = "vineApp_products"
EUER_SETTINGS_KEY = "vineApp_euerSettings"
BELEG_SETTINGS_KEY = "vineApp_belegSettings"
EXPENSES_KEY = "vineApp_additionalExpenses"
API_TOKEN_KEY = "vineApp_apiToken"
ALTERNATE_VALUATION_KEY = "vineApp_teilwertV2"


class LocalStore:
    """Single JSON file holding all keys; writes are atomic (rename)."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._cache: Optional[Dict[str, Any]] = None

    def _load(self) -> Dict[str, Any]:
        if self._cache is not None:
            return self._cache
        if not self.path.exists():
            self._cache = {}
            return self._cache
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError:
            logger.error("Local store is not valid JSON, starting empty", extra={"path": str(self.path)})
            data = {}
        self._cache = data if isinstance(data, dict) else {}
        return self._cache

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".store-", suffix=".json")
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(self._load(), handle, indent=2, sort_keys=True, ensure_ascii=False)
        os.replace(tmp, self.path)

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._load()[key] = value
        self._persist()

    def delete(self, key: str) -> None:
        if self._load().pop(key, None) is not None:
            self._persist()

    def clear(self) -> None:
        self._cache = {}
        self._persist()


class CredentialStore:
    """API token kept under ``vineApp_apiToken``."""

    def __init__(self, store: LocalStore):
        self.store = store

    def get(self) -> Optional[str]:
        return self.store.get(API_TOKEN_KEY) or None

    def set(self, token: str) -> None:
        self.store.set(API_TOKEN_KEY, token)

    def clear(self) -> None:
        self.store.delete(API_TOKEN_KEY)
