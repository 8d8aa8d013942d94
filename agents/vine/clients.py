"""Client for the remote product store.

Every request is a POST of ``{token, request, payload}`` to one URL. The
client never raises: transport and protocol failures come back as
``ApiResponse(status="error")``.
"""

import logging
import math
import time
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import requests

from agents.shared.http_client import JsonHttpClient
from backend.core import metrics
from backend.core.config import settings

from .dto import Product
from .wire import ApiRequest, ApiResponse, alternate_values_from_entries, decode_entries, product_to_upload_entry

logger = logging.getLogger(__name__)


class VineApiClient:
    """Typed operations over the single-endpoint store."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        http: Optional[JsonHttpClient] = None,
    ):
        self.base_url = base_url if base_url is not None else settings.VINE_API_BASE_URL
        self.http = http or JsonHttpClient(
            self.base_url,
            timeout=settings.VINE_API_TIMEOUT_S,
            max_retries=settings.VINE_API_RETRIES,
            backoff_factor=settings.VINE_API_BACKOFF,
        )

    def call(self, token: Optional[str], request: str, payload: Any = None) -> ApiResponse:
        """Send one request envelope.

        Args:
            token: API credential
            request: Request type
            payload: Request payload

        Returns:
            Decoded response envelope
        """
        if not token:
            return ApiResponse.error("API token is not set.")
        if not self.base_url.startswith("http"):
            return ApiResponse.error(f"Invalid API Base URL: {self.base_url}")

        envelope = ApiRequest(token=token, request=request, payload=payload)
        start_time = time.time()
        try:
            response = self.http.post_json(envelope.model_dump())
        except requests.RequestException as e:
            metrics.increment_sync_outcome(request, "transport_error")
            return ApiResponse.error(f"Network error or invalid response: {e}")
        finally:
            metrics.record_remote_duration(request, (time.time() - start_time) * 1000)

        body = response.data if isinstance(response.data, dict) else {}
        if not response.is_success:
            message = body.get("message") or f"API Error: {response.status_code}"
            metrics.increment_sync_outcome(request, "http_error")
            return ApiResponse.error(message)

        try:
            result = ApiResponse.model_validate(body)
        except ValueError as e:
            metrics.increment_sync_outcome(request, "protocol_error")
            return ApiResponse.error(f"Invalid response envelope: {e}")

        metrics.increment_sync_outcome(request, result.status)
        if not result.ok:
            logger.warning("Remote store returned error", extra={"request": request, "message": result.message})
        return result

    def fetch_products(self, token: Optional[str]) -> ApiResponse:
        """``get_all``; on success ``data`` is a list of ``Product``."""
        response = self.call(token, "get_all")
        if not response.ok:
            return response
        try:
            products = decode_entries(response.data)
        except ValueError as e:
            return ApiResponse.error(str(e))
        alternate = alternate_values_from_entries(response.data)
        return ApiResponse(
            status="success",
            message=response.message,
            data={"products": products, "alternate_valuation": alternate},
        )

    def push_products(self, token: Optional[str], products: Iterable[Product]) -> ApiResponse:
        """``update_asin``; the server keeps the newer record per ASIN."""
        entries = [product_to_upload_entry(p).model_dump() for p in products]
        if not entries:
            return ApiResponse(status="success", message="No products to update.", inserted=0, updated=0, skipped=0)
        return self.call(token, "update_asin", entries)

    def delete_all(self, token: Optional[str]) -> ApiResponse:
        return self.call(token, "delete_all")

    def fetch_alternate_valuation(self, token: Optional[str]) -> ApiResponse:
        """``get_teilwert_v2``; on success ``data`` maps ASIN to ``Decimal``."""
        response = self.call(token, "get_teilwert_v2")
        if not response.ok:
            return response
        data = response.data
        values: Dict[str, Decimal] = {}
        if isinstance(data, dict):
            items: List[tuple] = list(data.items())
        elif isinstance(data, list):
            items = [
                (row.get("ASIN"), row.get("teilwert_v2"))
                for row in data
                if isinstance(row, dict)
            ]
        else:
            return ApiResponse.error("Invalid data structure received from server.")
        for asin, value in items:
            if (
                isinstance(asin, str)
                and isinstance(value, (int, float))
                and not isinstance(value, bool)
                and math.isfinite(value)
            ):
                values[asin] = Decimal(str(value))
        return ApiResponse(status="success", data=values)

    def close(self):
        self.http.close()
