"""Pydantic models for the remote product store protocol."""

from __future__ import annotations

import json
import logging
import math
import time
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .dates import (
    SENTINEL_DATE,
    format_german_date,
    format_order_date,
    normalize_order_date,
    optional_german_date,
)
from .dto import Product, UsageStatus, ZERO, usage_from_labels

logger = logging.getLogger(__name__)

CORRUPTED_NAME = "Error: Corrupted Data"


class ApiRequest(BaseModel):
    """Request envelope; every call is a POST to the same URL."""

    token: str = Field(..., description="API credential")
    request: Literal["get_all", "update_asin", "delete_all", "get_teilwert_v2"]
    payload: Any = None


class ApiResponse(BaseModel):
    """Response envelope. Transport failures are mapped to ``status='error'``."""

    model_config = ConfigDict(extra="ignore")

    status: Literal["success", "error"]
    message: Optional[str] = None
    data: Any = None
    inserted: Optional[int] = None
    updated: Optional[int] = None
    skipped: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @classmethod
    def error(cls, message: str) -> "ApiResponse":
        return cls(status="error", message=message)


class ApiProductEntry(BaseModel):
    """Stored record: ``value`` holds the JSON-encoded product fields."""

    ASIN: str
    last_update_time: int = 0
    value: str


class UploadEntry(BaseModel):
    ASIN: str
    timestamp: int
    value: str


class ProductApiValue(BaseModel):
    """Product fields inside ``value``; unknown keys are ignored, amounts must be finite."""

    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    name: Optional[str] = None
    ordernumber: Optional[str] = None
    date: Optional[str] = None
    etv: Optional[float] = None
    keepa: Optional[float] = None
    teilwert: Optional[float] = None
    teilwert_v2: Optional[float] = None
    pdf: Optional[str] = None
    myTeilwert: Optional[float] = None
    myTeilwertReason: Optional[str] = None
    usageStatus: list[str] = Field(default_factory=list)
    salePrice: Optional[float] = None
    saleDate: Optional[str] = None
    buyerAddress: Optional[str] = None
    privatentnahmeDate: Optional[str] = None
    festgeschrieben: Optional[int] = None
    rechnungsNummer: Optional[str] = None


def _money(value: Optional[float]) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))


def corrupted_placeholder(asin: str, last_update_time: int) -> Product:
    return Product(
        asin=asin,
        name=CORRUPTED_NAME,
        order_number="N/A",
        order_date=SENTINEL_DATE,
        etv=ZERO,
        last_update_time=last_update_time,
    )


def entry_to_product(entry: ApiProductEntry) -> Product:
    """Decode one stored record; undecodable values yield a placeholder."""

    try:
        value = ProductApiValue.model_validate(json.loads(entry.value))
    except (ValueError, ValidationError) as exc:
        logger.error(
            "Failed to parse product value",
            extra={"asin": entry.ASIN, "error": str(exc)},
        )
        return corrupted_placeholder(entry.ASIN, entry.last_update_time)

    try:
        return _value_to_product(entry, value)
    except (ValueError, TypeError, ArithmeticError) as exc:
        logger.error(
            "Failed to build product from stored record",
            extra={"asin": entry.ASIN, "error": str(exc)},
        )
        return corrupted_placeholder(entry.ASIN, entry.last_update_time)


def _value_to_product(entry: ApiProductEntry, value: ProductApiValue) -> Product:
    usage, defective, ignored = usage_from_labels(value.usageStatus)
    if ignored:
        logger.warning("Ignoring usage labels", extra={"asin": entry.ASIN, "labels": ignored})

    etv = _money(value.etv) or ZERO
    if etv < ZERO:
        logger.warning("Negative ETV replaced by 0", extra={"asin": entry.ASIN})
        etv = ZERO

    sold = usage is UsageStatus.SOLD
    return Product(
        asin=entry.ASIN,
        name=value.name or "N/A",
        order_number=value.ordernumber or "N/A",
        order_date=normalize_order_date(value.date, field_name="order date", asin=entry.ASIN),
        etv=etv,
        fair_value=_money(value.teilwert),
        override_fair_value=_money(value.myTeilwert),
        override_reason=value.myTeilwertReason or "",
        usage=usage,
        defective=defective,
        sale_price=_money(value.salePrice) if sold else None,
        sale_date=optional_german_date(value.saleDate, field_name="sale date", asin=entry.ASIN) if sold else None,
        buyer_address=(value.buyerAddress or None) if sold else None,
        private_withdrawal_date=optional_german_date(
            value.privatentnahmeDate, field_name="withdrawal date", asin=entry.ASIN
        ),
        finalized=value.festgeschrieben == 1,
        invoice_number=value.rechnungsNummer or None,
        last_update_time=entry.last_update_time,
        valuation_document_url=value.pdf or None,
        keepa=_money(value.keepa),
    )


def decode_entries(raw_entries: Any) -> list[Product]:
    """Decode ``get_all`` data; entries without non-empty ASIN or string value are skipped."""

    if not isinstance(raw_entries, list):
        raise ValueError("Invalid data structure received from server (expected array).")
    products: list[Product] = []
    for raw in raw_entries:
        asin = raw.get("ASIN") if isinstance(raw, dict) else None
        if not isinstance(asin, str) or not asin.strip() or not isinstance(raw.get("value"), str):
            logger.warning("Skipping invalid API entry", extra={"entry_type": type(raw).__name__})
            continue
        last_update = raw.get("last_update_time")
        entry = ApiProductEntry(
            ASIN=raw["ASIN"],
            last_update_time=last_update if isinstance(last_update, int) and not isinstance(last_update, bool) else 0,
            value=raw["value"],
        )
        products.append(entry_to_product(entry))
    return products


def alternate_values_from_entries(raw_entries: Any) -> dict[str, Decimal]:
    """``teilwert_v2`` values carried inside stored records, keyed by ASIN."""

    result: dict[str, Decimal] = {}
    for raw in raw_entries if isinstance(raw_entries, list) else []:
        if not isinstance(raw, dict) or not raw.get("ASIN") or not isinstance(raw.get("value"), str):
            continue
        try:
            value = json.loads(raw["value"])
        except ValueError:
            continue
        if not isinstance(value, dict):
            continue
        amount = value.get("teilwert_v2")
        if isinstance(amount, (int, float)) and not isinstance(amount, bool) and math.isfinite(amount):
            result[raw["ASIN"]] = Decimal(str(amount))
    return result


def product_to_value(product: Product) -> dict[str, Any]:
    """Encode product fields; sale details only for sold products."""

    value: dict[str, Any] = {
        "name": product.name,
        "ordernumber": product.order_number,
        "date": format_order_date(product.order_date),
        "etv": float(product.etv),
        "teilwert": None if product.fair_value is None else float(product.fair_value),
        "usageStatus": product.usage_labels(),
    }
    if product.keepa is not None:
        value["keepa"] = float(product.keepa)
    if product.valuation_document_url:
        value["pdf"] = product.valuation_document_url
    if product.override_fair_value is not None:
        value["myTeilwert"] = float(product.override_fair_value)
    if product.override_reason:
        value["myTeilwertReason"] = product.override_reason
    if product.is_sold:
        if product.sale_price is not None:
            value["salePrice"] = float(product.sale_price)
        if product.sale_date is not None:
            value["saleDate"] = format_german_date(product.sale_date)
        if product.buyer_address:
            value["buyerAddress"] = product.buyer_address
    if product.private_withdrawal_date is not None:
        value["privatentnahmeDate"] = format_german_date(product.private_withdrawal_date)
    if product.finalized:
        value["festgeschrieben"] = 1
    if product.invoice_number:
        value["rechnungsNummer"] = product.invoice_number
    return value


def product_to_upload_entry(product: Product) -> UploadEntry:
    return UploadEntry(
        ASIN=product.asin,
        timestamp=product.last_update_time or int(time.time()),
        value=json.dumps(product_to_value(product), ensure_ascii=False),
    )


def product_to_entry(product: Product) -> dict[str, Any]:
    """Stored-record form, also used for the local snapshot."""

    return ApiProductEntry(
        ASIN=product.asin,
        last_update_time=product.last_update_time,
        value=json.dumps(product_to_value(product), ensure_ascii=False),
    ).model_dump()
