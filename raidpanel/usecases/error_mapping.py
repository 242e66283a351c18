"""Translate adapter errors into user-facing UseCaseError instances."""

from __future__ import annotations


from typing import Optional

from raidpanel.adapters.api_errors import (
    ApiClientError,
    ApiError,
    ApiRejectedError,
    ApiServerError,
    ApiTimeoutError,
    extract_error_hint,
)
from raidpanel.domain.ports import UseCaseError


def map_api_error(
    exc: Exception,
    *,
    default_code: str,
    default_message: Optional[str] = None,
) -> UseCaseError:
    """Map adapter exceptions to stable UseCaseError codes.

    Args:
        exc: Exception raised by an adapter or use case.
        default_code: Code used for rejections and unknown exceptions.
        default_message: Message used when the exception carries none.

    Returns:
        UseCaseError: Error with a stable ``code`` and a toast-ready message.
    """
    if isinstance(exc, UseCaseError):
        return exc
    if isinstance(exc, ApiTimeoutError):
        return UseCaseError("REQUEST_TIMEOUT", "Request timed out. Check connection.")
    if isinstance(exc, ApiRejectedError):
        hint = exc.hint or extract_error_hint(exc.payload)
        return UseCaseError(
            default_code,
            _compose_error_message(default_message or "Operation refused", hint),
        )
    if isinstance(exc, ApiClientError):
        status = exc.status or 0
        hint = exc.hint or extract_error_hint(exc.payload)
        if status in (401, 403):
            return UseCaseError("AUTH_FAILED", "Auth failed / API token invalid.")
        if status == 409:
            return UseCaseError(
                "OPERATION_IN_PROGRESS",
                _compose_error_message("Another storage operation is running", hint),
            )
        label = f"Request failed (HTTP {status})" if status else "Request failed"
        return UseCaseError("REQUEST_FAILED", _compose_error_message(label, hint))
    if isinstance(exc, ApiServerError):
        hint = exc.hint or extract_error_hint(exc.payload)
        return UseCaseError("SERVER_ERROR", _compose_error_message("Server error", hint))
    if isinstance(exc, ApiError):
        return UseCaseError("API_ERROR", str(exc))

    message = default_message or str(exc) or "Unexpected error."
    return UseCaseError(default_code, message)


def _compose_error_message(base: str, hint: Optional[str]) -> str:
    hint_text = (hint or "").strip()
    if hint_text:
        return f"{base}: {hint_text}"
    if base.endswith("."):
        return base
    return f"{base}."


__all__ = ["map_api_error"]
