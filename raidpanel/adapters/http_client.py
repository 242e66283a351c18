"""Shared HTTP transport utilities for REST adapters.

This module provides a thin wrapper around ``requests.Session`` so adapter
implementations share timeout policy, retry behavior, and auth headers.

Dependencies:
    - ``requests`` for network I/O.
    - ``raidpanel.adapters.api_errors.ApiTimeoutError`` for typed transport failures.

Call context:
    - Constructed by ``StorageRestAdapter`` and ``HttpHealthProbe``.
    - Used only inside adapter layer methods; use cases interact through ports.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from requests import exceptions as req_exc

from raidpanel.adapters.api_errors import ApiError, ApiTimeoutError


@dataclass
class HttpConfig:
    """Timeout and retry configuration for adapter HTTP calls.

    Attributes:
        request_timeout_s: Default timeout in seconds for read calls.
        execute_timeout_s: Timeout for the long-running mutating calls. A resync
            can take tens of minutes and the backend answers only once the job
            was accepted or refused.
        retries: Retry attempts after the initial request, reads only.
    """

    request_timeout_s: float = 10
    execute_timeout_s: float = 1800
    retries: int = 2


class RetryingSession:
    """Shared requests wrapper with auth headers and retry loops for reads.

    This class is transport-only. Callers provide endpoint URLs and decide how
    to map non-2xx responses into domain/use-case errors.
    """

    def __init__(self, api_token: Optional[str], cfg: HttpConfig) -> None:
        """Create a session.

        Args:
            api_token: Bearer token for the ``Authorization`` header, or ``None``.
            cfg: Shared timeout and retry settings.
        """
        self.session = requests.Session()
        self.api_token = api_token
        self.cfg = cfg

    def _headers(self, json_body: bool = False) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    def get(self, url: str, *, timeout: Optional[float] = None) -> requests.Response:
        """Send a GET request with retries on timeout/connectivity failures.

        Raises:
            ApiTimeoutError: If all attempts fail with timeout/connection errors.
        """
        context = f"GET {url}"
        last_err: Optional[ApiError] = None
        for _ in range(self.cfg.retries + 1):
            try:
                return self.session.get(
                    url,
                    headers=self._headers(),
                    timeout=timeout or self.cfg.request_timeout_s,
                )
            except (req_exc.Timeout, req_exc.ConnectionError):
                last_err = ApiTimeoutError(f"Timeout contacting {url}", context=context)
            except req_exc.RequestException as exc:
                raise ApiError(str(exc), context=context) from exc
        raise last_err

    def post(
        self,
        url: str,
        *,
        json_body: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        retry: bool = True,
    ) -> requests.Response:
        """Send a JSON POST request.

        Args:
            url: Absolute endpoint URL.
            json_body: Optional payload object.
            timeout: Optional timeout override in seconds.
            retry: ``False`` for destructive calls; the backend has no
                idempotency key, so a resend could start a second job.

        Raises:
            ApiTimeoutError: If the (last) attempt fails with a transport error.
        """
        context = f"POST {url}"
        attempts = self.cfg.retries + 1 if retry else 1
        last_err: Optional[ApiError] = None
        for _ in range(attempts):
            try:
                return self.session.post(
                    url,
                    json=json_body,
                    headers=self._headers(json_body=json_body is not None),
                    timeout=timeout or self.cfg.request_timeout_s,
                )
            except (req_exc.Timeout, req_exc.ConnectionError):
                last_err = ApiTimeoutError(f"Timeout contacting {url}", context=context)
            except req_exc.RequestException as exc:
                raise ApiError(str(exc), context=context) from exc
        raise last_err


__all__ = ["HttpConfig", "RetryingSession"]
