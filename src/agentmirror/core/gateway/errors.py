"""
Exceptions raised by the remote gateway.

Exception Hierarchy:
    GatewayError (base; carries status code and structured reasons)
    └── AuthenticationError (token exchange failed)
"""

from __future__ import annotations

from typing import Any, Optional

import httpx


class GatewayError(Exception):
    """
    A remote operation failed.

    Attributes:
        message: Human-readable error message
        status_code: HTTP status, when the platform answered at all
        reasons: Structured validation reasons supplied by the platform
        retry_after: Seconds the platform asked to wait before trying again
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        reasons: Optional[list[str]] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.reasons = reasons or []
        self.retry_after = retry_after

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (HTTP {self.status_code})"
        return self.message

    @classmethod
    def from_response(cls, response: httpx.Response, action: str) -> GatewayError:
        """Build an error from a failed response, extracting message and reasons."""
        body: Any = None
        try:
            body = response.json()
        except ValueError:
            body = None

        message = f"{action} failed"
        reasons: list[str] = []
        if isinstance(body, dict):
            if isinstance(body.get("message"), str):
                message = f"{action} failed: {body['message']}"
            reasons = _extract_reasons(body)
        elif response.text:
            message = f"{action} failed: {response.text[:200]}"

        return cls(
            message,
            status_code=response.status_code,
            reasons=reasons,
            retry_after=_retry_after(response),
        )


class AuthenticationError(GatewayError):
    """API key could not be exchanged for an access token."""

    pass


def _retry_after(response: httpx.Response) -> Optional[float]:
    # Only the delta-seconds form; an HTTP-date falls back to backoff.
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _extract_reasons(body: dict[str, Any]) -> list[str]:
    for key in ("reasons", "errors", "detail"):
        value = body.get(key)
        if value is None:
            continue
        if isinstance(value, list):
            return [_format_reason(item) for item in value]
        if isinstance(value, dict):
            return [f"{k}: {v}" for k, v in value.items()]
        return [str(value)]
    return []


def _format_reason(item: Any) -> str:
    if isinstance(item, dict):
        if "msg" in item:
            return str(item["msg"])
        if "message" in item:
            return str(item["message"])
    return str(item)
