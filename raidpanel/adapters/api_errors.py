from __future__ import annotations

from typing import Any, Optional


class ApiError(RuntimeError):
    """Base class for REST adapter failures."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
        hint: Optional[str] = None,
        payload: Any = None,
        context: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.hint = hint
        self.payload = payload
        self.context = context


class ApiClientError(ApiError):
    """HTTP 4xx from the appliance API."""


class ApiServerError(ApiError):
    """HTTP 5xx from the appliance API."""


class ApiRejectedError(ApiError):
    """2xx response whose body reports ``success: false``."""


class ApiTimeoutError(ApiError):
    """Transport level timeout or connectivity failure."""

    def __init__(self, message: str, *, context: Optional[str] = None) -> None:
        super().__init__(message, context=context)


def parse_error_payload(resp: Any) -> Any:
    """Best-effort extraction of error payload without raising."""
    try:
        return resp.json()
    except Exception:
        snippet = getattr(resp, "text", "") or ""
        return snippet[:400] or None


def first_string(payload: Any) -> Optional[str]:
    """Return the first human-readable message found in an error payload."""
    if isinstance(payload, str):
        return payload.strip() or None
    if isinstance(payload, dict):
        for key in ("error", "message", "detail", "details"):
            candidate = first_string(payload.get(key))
            if candidate:
                return candidate
    if isinstance(payload, list):
        for item in payload:
            candidate = first_string(item)
            if candidate:
                return candidate
    return None


def build_error_message(ctx: str, status: int, payload: Any) -> str:
    detail = first_string(payload)
    if detail:
        return f"{ctx}: {detail} (HTTP {status})"
    return f"{ctx}: HTTP {status}"


def extract_error_code(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        value = payload.get("code") or payload.get("error_code")
        if value is not None:
            return str(value)
    return None


def extract_error_hint(payload: Any) -> Optional[str]:
    """Short detail text for toasts; the backend puts it under ``details``."""
    if isinstance(payload, dict):
        for key in ("details", "hint", "error", "message"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()[:200]
            if isinstance(value, list):
                parts = [str(item).strip() for item in value[:3] if str(item).strip()]
                if parts:
                    return "; ".join(parts)[:200]
        return None
    if isinstance(payload, str):
        return payload.strip()[:200] or None
    return None


__all__ = [
    "ApiClientError",
    "ApiError",
    "ApiRejectedError",
    "ApiServerError",
    "ApiTimeoutError",
    "build_error_message",
    "extract_error_code",
    "extract_error_hint",
    "first_string",
    "parse_error_payload",
]
