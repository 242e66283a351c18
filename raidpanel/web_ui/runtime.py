"""NiceGUI runtime orchestration for the storage assistant.

This module composes the settings, the app controller and the event-loop
glue (dispatch, offload, timers) that every page needs. It holds no widgets.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Callable, Dict, Mapping, Optional

from raidpanel.adapters.storage_local import StorageLocal
from raidpanel.app.controller import AppController
from raidpanel.app.polling_scheduler import asyncio_scheduler
from raidpanel.domain.entities import ClientLocation
from raidpanel.usecases.offload import Done, Offload
from raidpanel.usecases.storage_assistant import AssistantHooks, StorageAssistant
from raidpanel.utils import logging as logging_utils
from raidpanel.viewmodels.settings_vm import SettingsVM

LOGGER = logging.getLogger(__name__)


def loop_dispatch(loop: asyncio.AbstractEventLoop) -> Callable[[Callable[[], None]], None]:
    """Marshal callbacks from foreign threads (socket.io client) onto ``loop``."""

    def _dispatch(fn: Callable[[], None]) -> None:
        if loop.is_closed():
            return
        loop.call_soon_threadsafe(fn)

    return _dispatch


def loop_offload(loop: asyncio.AbstractEventLoop) -> Offload:
    """Run blocking jobs in the default executor; ``done`` runs on ``loop``."""

    def _offload(job: Callable[[], Any], done: Done) -> None:
        future = loop.run_in_executor(None, job)

        def _finished(fut: "asyncio.Future[Any]") -> None:
            if fut.cancelled():
                done(None, asyncio.CancelledError())
                return
            error = fut.exception()
            if error is not None:
                done(None, error)
                return
            done(fut.result(), None)

        future.add_done_callback(_finished)

    return _offload


def location_from_request(url: str, headers: Optional[Mapping[str, str]] = None) -> ClientLocation:
    """Client location of a page request, honoring reverse-proxy headers."""
    location = ClientLocation.from_url(url)
    headers = headers or {}
    proto = (headers.get("x-forwarded-proto") or "").split(",")[0].strip().lower()
    host = (headers.get("x-forwarded-host") or "").split(",")[0].strip()
    if not proto and not host:
        return location
    if host:
        return ClientLocation.from_url(f"{proto or location.scheme}://{host}")
    return ClientLocation(hostname=location.hostname, scheme=proto, port=location.port)


class WebRuntime:
    """Orchestration state used by NiceGUI views."""

    def __init__(self, *, storage_root: Optional[str] = None, dry_run: bool = False) -> None:
        self.status_message = "Ready."
        self.dry_run = dry_run
        self.settings_vm = SettingsVM(on_save=self._persist_settings)
        self.storage = StorageLocal(
            root_dir=storage_root or os.environ.get("RAIDPANEL_STORAGE_ROOT") or "."
        )
        self.controller = AppController(self.settings_vm, self.storage)
        self._load_settings_defaults()

    # ------------------------------------------------------------------
    # Settings workflows
    # ------------------------------------------------------------------
    def settings_payload(self) -> Dict[str, Any]:
        return self.settings_vm.to_dict()

    def apply_settings_payload(self, payload: Mapping[str, Any]) -> None:
        self.settings_vm.apply_dict(payload)
        self.controller.reset()
        logging_utils.apply_gui_preferences(self.settings_vm.debug_logging)
        self.status_message = "Settings applied."

    def save_settings(self, payload: Mapping[str, Any]) -> None:
        """Apply and persist; takes effect on the next page load."""
        self.apply_settings_payload(payload)
        self.settings_vm.cmd_save()
        self.status_message = "Settings saved. Reload the page to apply them."

    # ------------------------------------------------------------------
    # Page lifecycle
    # ------------------------------------------------------------------
    def open_page(
        self,
        location: ClientLocation,
        loop: asyncio.AbstractEventLoop,
        hooks: AssistantHooks,
    ) -> StorageAssistant:
        """Build and mount the coordinator for one connected page."""
        assistant = self.controller.build_storage_assistant(
            location,
            scheduler=asyncio_scheduler(loop),
            dispatch=loop_dispatch(loop),
            offload=loop_offload(loop),
            hooks=hooks,
            dry_run=self.dry_run,
        )
        LOGGER.info(
            "Page opened from %s://%s, access mode %s",
            location.scheme,
            location.hostname,
            assistant.context.get_current().value,
        )
        assistant.mount()
        return assistant

    # ------------------------------------------------------------------
    def _persist_settings(self, payload: Dict[str, Any]) -> None:
        self.storage.save_user_settings(payload)

    def _load_settings_defaults(self) -> None:
        try:
            payload = self.storage.load_user_settings()
        except Exception as exc:
            LOGGER.warning("Could not load local settings defaults: %s", exc)
            return
        if not payload:
            return
        try:
            self.settings_vm.apply_dict(payload)
        except Exception as exc:
            LOGGER.warning("Could not apply local settings defaults: %s", exc)
            return
        logging_utils.apply_gui_preferences(self.settings_vm.debug_logging)


__all__ = ["WebRuntime", "location_from_request", "loop_dispatch", "loop_offload"]
