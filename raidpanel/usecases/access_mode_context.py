"""Process-wide access-mode context (current mode, persistence, observers).

The context wraps the pure rules of :mod:`raidpanel.domain.access_mode` with
the cached last-known mode, the durable ``accessMode`` slot, the ``/status``
connectivity probe and change notification.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from raidpanel.domain.access_mode import (
    DEFAULT_LOCAL_ALIAS,
    DEFAULT_PUBLIC_SUFFIXES,
    DEFAULT_SERVER_PORT,
    resolve_mode,
    server_url,
)
from raidpanel.domain.entities import AccessMode, ClientLocation, RemoteIdentity
from raidpanel.domain.ports import HealthPort, KeyValueStorePort, UseCaseError

log = logging.getLogger(__name__)

ACCESS_MODE_KEY = "accessMode"

ModeListener = Callable[[AccessMode], None]


@dataclass(frozen=True)
class SwitchResult:
    """Outcome of a manual mode switch.

    ``target_url`` is where the page should navigate after a successful
    switch; a failed switch carries the error for the toast and no URL.
    """

    ok: bool
    mode: AccessMode
    target_url: Optional[str] = None
    error: Optional[UseCaseError] = None


class AccessModeContext:
    """Current access mode with ``init``/``get_current``/``set_mode``/``subscribe``."""

    def __init__(
        self,
        store: KeyValueStorePort,
        health: HealthPort,
        identity: Optional[RemoteIdentity] = None,
        *,
        location: Optional[ClientLocation] = None,
        local_alias: str = DEFAULT_LOCAL_ALIAS,
        public_suffixes: Iterable[str] = DEFAULT_PUBLIC_SUFFIXES,
        server_port: int = DEFAULT_SERVER_PORT,
        probe_timeout_ms: int = 2000,
    ) -> None:
        self.store = store
        self.health = health
        self.identity = identity or RemoteIdentity()
        self.location = location
        self.local_alias = local_alias
        self.public_suffixes = tuple(public_suffixes)
        self.server_port = int(server_port)
        self.probe_timeout_ms = int(probe_timeout_ms)
        self.local_ip: Optional[str] = None
        self._current: Optional[AccessMode] = None
        self._url_seen: Optional[AccessMode] = None
        self._detected: Optional[AccessMode] = None
        self._listeners: List[ModeListener] = []

    # ---- lifecycle ----
    def init(self, location: Optional[ClientLocation] = None) -> AccessMode:
        """Bind the page location and load the cached mode."""
        if location is not None:
            self.location = location
        url_mode = self.url_mode()
        stored = AccessMode.coerce(self._read_stored())
        if stored is not url_mode:
            log.info("Access mode from URL %s overrides stored %s", url_mode.value, stored)
            self._persist(url_mode)
        self._current = url_mode
        self._url_seen = url_mode
        return self.get_current()

    def get_current(self) -> AccessMode:
        """Re-resolve from the location; a secure page always means public.

        A mode chosen through :meth:`set_mode` sticks until the location
        resolves to a different mode than it did on the previous read.
        """
        url_mode = self.url_mode()
        if self._current is None or url_mode is not self._url_seen:
            log.debug("Access mode %s replaced by URL mode %s", self._current, url_mode.value)
            self._current = url_mode
            self._persist(url_mode)
        self._url_seen = url_mode
        if self.location is not None and self.location.is_secure:
            if self._current is not AccessMode.PUBLIC:
                log.info("Secure page detected, forcing public access mode")
                self.set_mode(AccessMode.PUBLIC)
            return AccessMode.PUBLIC
        return self._current

    def set_mode(self, mode: Any) -> AccessMode:
        resolved = AccessMode.coerce(mode)
        if resolved is None:
            raise ValueError(f"Invalid access mode: {mode!r} (use 'private' or 'public')")
        self._current = resolved
        self._persist(resolved)
        log.info("Access mode set to %s", resolved.value.upper())
        self._notify(resolved)
        return resolved

    def subscribe(self, callback: ModeListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    # ---- endpoints ----
    def server_url(self, mode: Optional[AccessMode] = None) -> str:
        return server_url(
            mode or self.get_current(),
            self.location,
            self.identity,
            local_alias=self.local_alias,
            server_port=self.server_port,
            local_ip=self.local_ip,
        )

    # ---- connectivity ----
    def test_connectivity(self, mode: AccessMode, timeout_ms: Optional[int] = None) -> bool:
        """Bounded ``GET <base>/status``; any failure counts as unreachable."""
        base = self.server_url(mode)
        timeout_s = (timeout_ms if timeout_ms is not None else self.probe_timeout_ms) / 1000.0
        try:
            self.health.probe(base, timeout_s)
        except Exception as exc:
            log.info("Connectivity test to %s failed: %s", base, exc)
            return False
        return True

    def switch_mode(self, mode: Any, timeout_ms: Optional[int] = None) -> SwitchResult:
        """Manual switch: the mode changes only when the target answers.

        Blocking. A UI loop runs :meth:`test_connectivity` off the loop and
        hands the answer to :meth:`apply_switch` back on it.
        """
        target = self.coerce_target(mode)
        return self.apply_switch(target, self.test_connectivity(target, timeout_ms))

    def coerce_target(self, mode: Any) -> AccessMode:
        target = AccessMode.coerce(mode)
        if target is None:
            raise ValueError(f"Invalid access mode: {mode!r} (use 'private' or 'public')")
        return target

    def apply_switch(self, target: AccessMode, reachable: bool) -> SwitchResult:
        current = self._current or self.get_current()
        if not reachable:
            err = UseCaseError(
                "CONNECTIVITY_FAILED",
                f"Cannot reach the {target.value} server. Access mode unchanged.",
                meta={"mode": target.value},
            )
            return SwitchResult(ok=False, mode=current, error=err)
        self.set_mode(target)
        return SwitchResult(ok=True, mode=target, target_url=self.server_url(target))

    def detect_access_mode(self, timeout_ms: Optional[int] = None) -> AccessMode:
        """Startup detection: probe the private server unless the URL says public."""
        mode = self.detect_from_url()
        if mode is not None:
            return mode
        return self.apply_detection(self.probe_private(timeout_ms))

    def detect_from_url(self) -> Optional[AccessMode]:
        """Settle detection without a probe when the URL already says public."""
        if self.url_mode() is not AccessMode.PUBLIC:
            return None
        log.info("URL indicates public access, skipping connectivity probe")
        return self._detected_as(AccessMode.PUBLIC)

    def probe_private(self, timeout_ms: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """``GET /status`` on the private server; ``None`` when unreachable."""
        base = self.server_url(AccessMode.PRIVATE)
        timeout_s = (timeout_ms if timeout_ms is not None else self.probe_timeout_ms) / 1000.0
        try:
            payload = self.health.probe(base, timeout_s)
        except Exception as exc:
            log.info("Private server %s unreachable (%s), switching to public", base, exc)
            return None
        return payload if isinstance(payload, dict) else {}

    def apply_detection(self, payload: Optional[Dict[str, Any]]) -> AccessMode:
        if payload is None:
            return self._detected_as(AccessMode.PUBLIC)
        ip = payload.get("ip")
        if isinstance(ip, str) and ip.strip():
            self.local_ip = ip.strip()
            log.info("Local IP reported by server: %s", self.local_ip)
        return self._detected_as(AccessMode.PRIVATE)

    @property
    def detected_mode(self) -> Optional[AccessMode]:
        """Mode settled by :meth:`detect_access_mode`, ``None`` until it ran."""
        return self._detected

    def url_mode(self) -> AccessMode:
        return resolve_mode(self.location, self.identity, public_suffixes=self.public_suffixes)

    # ------------------------------------------------------------------
    def _detected_as(self, mode: AccessMode) -> AccessMode:
        self._detected = self.set_mode(mode)
        return self._detected

    def _read_stored(self) -> Any:
        try:
            return self.store.get_item(ACCESS_MODE_KEY)
        except Exception:
            log.warning("Could not read stored access mode", exc_info=True)
            return None

    def _persist(self, mode: AccessMode) -> None:
        try:
            self.store.set_item(ACCESS_MODE_KEY, mode.value)
        except Exception:
            log.warning("Could not persist access mode", exc_info=True)

    def _notify(self, mode: AccessMode) -> None:
        for callback in list(self._listeners):
            try:
                callback(mode)
            except Exception:
                log.exception("Access mode subscriber failed")


__all__ = ["ACCESS_MODE_KEY", "AccessModeContext", "SwitchResult"]
