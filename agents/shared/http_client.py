"""Shared JSON-over-HTTP client.

Provides a pooled ``requests`` session with configurable transport retries
and debug logging that never includes credentials.
"""

import json
import logging
import time
from typing import Dict, Any, Optional
from dataclasses import dataclass
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

_SECRET_KEYS = {"token", "authorization", "password"}


def _mask_secrets(data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not isinstance(data, dict):
        return data
    return {k: ("***" if k.lower() in _SECRET_KEYS else v) for k, v in data.items()}


@dataclass
class HttpRequest:
    """Represents an outgoing JSON request."""

    method: str
    url: str
    headers: Dict[str, str]
    data: Optional[Dict[str, Any]] = None
    timeout: int = 30

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "method": self.method,
            "url": self.url,
            "headers": {k: v for k, v in self.headers.items() if k.lower() != 'authorization'},
            "data": _mask_secrets(self.data),
            "timeout": self.timeout,
        }


@dataclass
class HttpResponse:
    """Represents a decoded JSON response."""

    status_code: int
    data: Any
    request_time: float

    @property
    def is_success(self) -> bool:
        """Check if response indicates success."""
        return 200 <= self.status_code < 300


class JsonHttpClient:
    """HTTP client for single-endpoint JSON APIs.

    Retries happen at transport level only and default to none.
    """

    def __init__(
        self,
        base_url: str,
        timeout: int = 30,
        max_retries: int = 0,
        backoff_factor: float = 0.3,
        session: Optional[requests.Session] = None,
    ):
        """Initialize client.

        Args:
            base_url: Endpoint URL
            timeout: Request timeout in seconds
            max_retries: Maximum number of transport retries
            backoff_factor: Backoff factor for retries
            session: Preconfigured session (tests)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

        if session is None:
            session = requests.Session()
            retry_strategy = Retry(
                total=max_retries,
                backoff_factor=backoff_factor,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["GET", "POST"],
                raise_on_status=False,
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session

        self.logger = logging.getLogger(__name__)

    def post_json(
        self,
        data: Dict[str, Any],
        endpoint: str = "",
        timeout: Optional[int] = None,
    ) -> HttpResponse:
        """POST a JSON body and decode the JSON answer.

        Raises:
            requests.RequestException: On transport failure
        """
        headers = {"Content-Type": "application/json", "User-Agent": "vine-ledger/1.0"}
        request = HttpRequest(
            method="POST",
            url=f"{self.base_url}{endpoint}",
            headers=headers,
            data=data,
            timeout=timeout or self.timeout,
        )
        self.logger.debug("HTTP request", extra={"request": request.to_dict()})

        start_time = time.time()
        try:
            response = self.session.request(
                method=request.method,
                url=request.url,
                headers=headers,
                data=json.dumps(data),
                timeout=request.timeout,
            )
        except requests.RequestException as e:
            self.logger.error("HTTP request failed", extra={
                "error": str(e),
                "request": request.to_dict(),
                "request_time": time.time() - start_time,
            })
            raise

        try:
            response_data = response.json()
        except ValueError:
            response_data = {"status": "error", "message": "Invalid JSON response"}

        result = HttpResponse(
            status_code=response.status_code,
            data=response_data,
            request_time=time.time() - start_time,
        )
        self.logger.debug("HTTP response", extra={
            "status_code": result.status_code,
            "request_time": result.request_time,
        })
        return result

    def close(self):
        """Close the client session."""
        self.session.close()
