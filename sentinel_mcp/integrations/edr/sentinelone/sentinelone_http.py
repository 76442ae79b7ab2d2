"""
Low-level HTTP client for the SentinelOne management API.

This module is responsible for:
- authentication (API token)
- building URLs under the versioned API prefix
- making exactly one HTTP request per call, bounded by a wall-clock timeout
- normalizing failures into timeout / HTTP status / transport errors

It never retries; retry decisions belong to the callers that understand
which status codes are transient for their route.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import requests

from ....core.errors import (
    HttpStatusError,
    RequestTimeoutError,
    TransportError,
    sanitize_error_message,
)
from ....core.logging import get_logger


logger = get_logger("sentinel_mcp.integrations.sentinelone.http")

API_PREFIX = "/web/api/v2.1"
MAX_ERROR_BODY = 500
CHUNK_SIZE = 8192


@dataclass
class SentinelOneHttpClient:
    """
    Simple HTTP client for the SentinelOne v2.1 REST API.

    ``timeout_seconds`` bounds the whole call, from connect until the body has
    been read, not just individual socket operations.
    """

    base_url: str
    api_key: str
    timeout_seconds: float = 30
    verify_ssl: bool = True
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    def __post_init__(self) -> None:
        self.base_url = self.base_url.rstrip("/")

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Build request headers; explicit headers override the defaults."""
        headers = {
            "Authorization": f"ApiToken {self.api_key}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def _build_url(self, endpoint: str) -> str:
        """
        Join the console URL, the API version prefix and an endpoint.

        Args:
            endpoint: Route such as ``/threats`` or ``dv/init-query``.
        """
        return f"{self.base_url}{API_PREFIX}/{endpoint.lstrip('/')}"

    def _sanitize(self, message: Any) -> str:
        return sanitize_error_message(str(message), secrets=[self.api_key])

    def _read_body(self, response: requests.Response, deadline: float) -> bytes:
        """Read the streamed body, aborting once the deadline passes."""
        chunks = []
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if self.clock() >= deadline:
                raise RequestTimeoutError(self.timeout_seconds)
            if chunk:
                chunks.append(chunk)
        if self.clock() >= deadline:
            raise RequestTimeoutError(self.timeout_seconds)
        return b"".join(chunks)

    def request(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Make one HTTP request to the SentinelOne API.

        Args:
            method: HTTP method (GET, POST, ...)
            endpoint: API route below ``/web/api/v2.1``
            json_data: JSON payload
            params: Query parameters
            headers: Extra headers, overriding the defaults

        Returns:
            Parsed JSON body (empty dict for an empty body).

        Raises:
            RequestTimeoutError: The wall-clock bound elapsed.
            HttpStatusError: Non-2xx response; carries status code and body.
            TransportError: Any other failure, with credentials stripped.
        """
        url = self._build_url(endpoint)
        deadline = self.clock() + self.timeout_seconds
        response: Optional[requests.Response] = None

        logger.debug(f"SentinelOne {method} {url}")
        if params:
            logger.debug(f"  Query params: {params}")
        if json_data:
            logger.debug(f"  JSON payload: {json.dumps(json_data)[:200]}")

        try:
            response = requests.request(
                method=method,
                url=url,
                headers=self._headers(headers),
                json=json_data,
                params=params,
                timeout=self.timeout_seconds,
                verify=self.verify_ssl,
                stream=True,
            )
            body = self._read_body(response, deadline)

            logger.debug(f"SentinelOne response status: {response.status_code}")
            if not 200 <= response.status_code < 300:
                text = body.decode(response.encoding or "utf-8", errors="replace")
                logger.warning(
                    f"SentinelOne API error - Status: {response.status_code}, "
                    f"URL: {url}, Response: {text[:MAX_ERROR_BODY]}"
                )
                raise HttpStatusError(
                    response.status_code,
                    reason=response.reason or "",
                    body=self._sanitize(text[:MAX_ERROR_BODY]),
                )

            if not body.strip():
                return {}
            try:
                return json.loads(body.decode(response.encoding or "utf-8"))
            except (UnicodeDecodeError, ValueError) as e:
                raise TransportError(
                    f"SentinelOne API returned malformed JSON: {self._sanitize(e)}"
                ) from e

        except requests.exceptions.Timeout as e:
            raise RequestTimeoutError(self.timeout_seconds) from e
        except requests.exceptions.RequestException as e:
            raise TransportError(
                f"SentinelOne API request failed: {self._sanitize(e)}"
            ) from e
        finally:
            if response is not None:
                response.close()

    def get(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """GET request."""
        return self.request("GET", endpoint, params=params)

    def post(
        self,
        endpoint: str,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """POST request."""
        return self.request("POST", endpoint, json_data=json_data)
