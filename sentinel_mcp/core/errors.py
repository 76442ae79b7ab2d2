"""
Core error types for the SentinelOne MCP server.

These exceptions provide a common base for all raised errors across the
project so that callers (tools, the search orchestrator and the MCP server)
can handle them in a consistent way.

The request executor reports failures through three distinct subclasses of
``IntegrationError`` so that retry decisions can be made on the structured
status code instead of on message text.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional


class SentinelMCPError(Exception):
    """
    Base exception for all project-specific errors.
    """


class ConfigError(SentinelMCPError):
    """
    Raised when configuration is missing, invalid, or inconsistent.
    """


class IntegrationError(SentinelMCPError):
    """
    Raised when the SentinelOne integration fails or returns an unexpected
    response.
    """


class ValidationError(SentinelMCPError):
    """
    Raised when tool arguments or configuration values fail validation.
    """


class RequestTimeoutError(IntegrationError):
    """
    The request did not complete within the executor's wall-clock bound.
    """

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Request timeout after {timeout_seconds:g}s")


class HttpStatusError(IntegrationError):
    """
    The platform answered with a non-2xx status.
    """

    def __init__(self, status_code: int, reason: str = "", body: str = "") -> None:
        self.status_code = status_code
        self.reason = reason
        self.body = body
        message = f"HTTP {status_code}"
        if reason:
            message += f": {reason}"
        if body:
            message += f" - {body}"
        super().__init__(message)


class TransportError(IntegrationError):
    """
    Any other request failure (DNS, connection reset, malformed body).

    The message is sanitized before the error is constructed.
    """


class SearchCancelledError(SentinelMCPError):
    """
    Raised when a caller cancels a Deep Visibility search in progress.
    """

    def __init__(self, query_id: Optional[str] = None) -> None:
        self.query_id = query_id
        if query_id:
            super().__init__(f"Deep Visibility search {query_id} was cancelled")
        else:
            super().__init__("Deep Visibility search was cancelled before submission")


_TOKEN_PATTERNS = (
    re.compile(r"(ApiToken|Bearer|Basic)\s+\S+", re.IGNORECASE),
    re.compile(r"((?:api[_-]?key|api[_-]?token|token|password)\s*[=:]\s*)[^\s&,'\"]+", re.IGNORECASE),
    re.compile(r"(https?://)[^/\s:@]+:[^/\s@]+@"),
)

MAX_ERROR_LENGTH = 300


def sanitize_error_message(message: str, secrets: Optional[Iterable[str]] = None) -> str:
    """
    Strip credential-adjacent details from an error message.

    Removes auth header values, ``key=value`` style tokens, URL userinfo and
    any explicitly supplied secret strings, then truncates the result.
    """

    text = str(message)
    for secret in secrets or ():
        if secret:
            text = text.replace(secret, "***")
    text = _TOKEN_PATTERNS[0].sub(r"\1 ***", text)
    text = _TOKEN_PATTERNS[1].sub(r"\1***", text)
    text = _TOKEN_PATTERNS[2].sub(r"\1***@", text)
    if len(text) > MAX_ERROR_LENGTH:
        text = text[: MAX_ERROR_LENGTH - 3] + "..."
    return text
