"""REST adapter for the appliance storage endpoints."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Union

import requests
from requests import exceptions as req_exc

from raidpanel.adapters.api_errors import (
    ApiClientError,
    ApiError,
    ApiRejectedError,
    ApiServerError,
    ApiTimeoutError,
    build_error_message,
    extract_error_code,
    extract_error_hint,
    first_string,
    parse_error_payload,
)
from raidpanel.adapters.http_client import HttpConfig, RetryingSession
from raidpanel.domain.ports import ArrayId, DiskPath, HealthPort, StoragePort


class StorageRestAdapter(StoragePort):
    """HTTP adapter for ``/api/storage/*`` on the current backend origin."""

    def __init__(
        self,
        base_url: Union[str, Callable[[], str]],
        *,
        api_token: Optional[str] = None,
        request_timeout_s: float = 10,
        execute_timeout_s: float = 1800,
        retries: int = 2,
    ) -> None:
        if not base_url:
            raise ValueError("StorageRestAdapter requires a base URL")
        self._base_url = base_url
        self.cfg = HttpConfig(
            request_timeout_s=request_timeout_s,
            execute_timeout_s=execute_timeout_s,
            retries=retries,
        )
        self.session = RetryingSession(api_token, self.cfg)

    # ---- reads ----
    def inventory(self) -> Dict[str, Any]:
        resp = self.session.get(self._make_url("/api/storage/inventory"))
        self._ensure_ok(resp, "inventory")
        payload = self._json_dict(resp, "inventory")
        self._ensure_success(payload, "inventory")
        data = payload.get("data")
        return dict(data) if isinstance(data, dict) else payload

    def mdraid_status(self) -> Dict[str, Any]:
        resp = self.session.get(self._make_url("/api/storage/mdraid-status"))
        self._ensure_ok(resp, "mdraid_status")
        payload = self._json_dict(resp, "mdraid_status")
        self._ensure_success(payload, "mdraid_status")
        status = payload.get("status")
        return dict(status) if isinstance(status, dict) else {"exists": False}

    # ---- validation ----
    def mdraid_prechecks(self, array: ArrayId, disk: DiskPath) -> Dict[str, Any]:
        """Return the raw precheck verdict; ``success: false`` is a verdict, not an error."""
        resp = self.session.post(
            self._make_url("/api/storage/mdraid-prechecks"),
            json_body={"array": array, "disk": disk},
        )
        self._ensure_ok(resp, "mdraid_prechecks")
        return self._json_dict(resp, "mdraid_prechecks")

    # ---- mutations (sent once, long timeout) ----
    def mdraid_add_disk(self, array: ArrayId, disk: DiskPath, dry_run: bool = False) -> Dict[str, Any]:
        return self._mutate(
            "/api/storage/mdraid-add-disk",
            {"array": array, "disk": disk, "dryRun": bool(dry_run)},
            "mdraid_add_disk",
        )

    def mdraid_optimize_and_add(self, array: ArrayId, smart_optimization: Dict[str, Any]) -> Dict[str, Any]:
        return self._mutate(
            "/api/storage/mdraid-optimize-and-add",
            {"array": array, "smartOptimization": dict(smart_optimization)},
            "mdraid_optimize_and_add",
        )

    def mdraid_stop_resync(self, array: ArrayId) -> Dict[str, Any]:
        resp = self.session.post(
            self._make_url("/api/storage/mdraid-stop-resync"),
            json_body={"array": array},
            retry=False,
        )
        self._ensure_ok(resp, "mdraid_stop_resync")
        payload = self._json_dict(resp, "mdraid_stop_resync")
        self._ensure_success(payload, "mdraid_stop_resync")
        return payload

    # ------------------------------------------------------------------
    def _mutate(self, path: str, body: Dict[str, Any], ctx: str) -> Dict[str, Any]:
        resp = self.session.post(
            self._make_url(path),
            json_body=body,
            timeout=self.cfg.execute_timeout_s,
            retry=False,
        )
        self._ensure_ok(resp, ctx)
        payload = self._json_dict(resp, ctx)
        self._ensure_success(payload, ctx)
        return payload

    @property
    def base_url(self) -> str:
        """Current origin; a callable follows access-mode changes."""
        base = self._base_url() if callable(self._base_url) else self._base_url
        return base.rstrip("/")

    def _make_url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    @staticmethod
    def _ensure_ok(resp: requests.Response, ctx: str) -> None:
        """Raise typed adapter errors for non-2xx responses."""
        status = resp.status_code
        if 200 <= status < 300:
            return
        payload = parse_error_payload(resp)
        message = build_error_message(ctx, status, payload)
        if 400 <= status < 500:
            raise ApiClientError(
                message,
                status=status,
                code=extract_error_code(payload),
                hint=extract_error_hint(payload),
                payload=payload,
                context=ctx,
            )
        if 500 <= status < 600:
            raise ApiServerError(
                message,
                status=status,
                hint=extract_error_hint(payload),
                payload=payload,
                context=ctx,
            )
        raise ApiError(message, status=status, payload=payload, context=ctx)

    @staticmethod
    def _ensure_success(payload: Dict[str, Any], ctx: str) -> None:
        if payload.get("success") is False:
            detail = first_string(payload) or "operation refused by server"
            raise ApiRejectedError(
                f"{ctx}: {detail}",
                hint=detail,
                payload=payload,
                context=ctx,
            )

    @staticmethod
    def _json_dict(resp: requests.Response, ctx: str) -> Dict[str, Any]:
        try:
            payload = resp.json()
        except ValueError:
            snippet = (getattr(resp, "text", "") or "")[:400]
            raise ApiError(f"{ctx}: invalid JSON response: {snippet}", context=ctx)
        if not isinstance(payload, dict):
            raise ApiError(f"{ctx}: expected object response", context=ctx)
        return payload


class HttpHealthProbe(HealthPort):
    """Single-shot ``GET /status`` with a hard timeout, no retries."""

    def __init__(self, api_token: Optional[str] = None) -> None:
        self.session = RetryingSession(api_token, HttpConfig(retries=0))

    def probe(self, base_url: str, timeout_s: float) -> Dict[str, Any]:
        url = f"{base_url.rstrip('/')}/status"
        try:
            resp = self.session.session.get(
                url,
                headers={"Accept": "application/json"},
                timeout=timeout_s,
            )
        except (req_exc.Timeout, req_exc.ConnectionError) as exc:
            raise ApiTimeoutError(f"Timeout contacting {url}", context=f"GET {url}") from exc
        StorageRestAdapter._ensure_ok(resp, "status")
        try:
            payload = resp.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}


__all__ = ["HttpHealthProbe", "StorageRestAdapter"]
