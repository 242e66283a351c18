"""Adapter and use-case wiring for the storage assistant runtime.

This module owns construction of the concrete REST/socket.io adapters and of
one :class:`~raidpanel.usecases.storage_assistant.StorageAssistant` per page,
from the values held by :class:`raidpanel.viewmodels.settings_vm.SettingsVM`.
The web runtime calls :meth:`AppController.build_storage_assistant` when a
page mounts.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from ..adapters.channel_socketio import socketio_channel_factory
from ..adapters.storage_local import StorageLocal
from ..adapters.storage_rest import HttpHealthProbe, StorageRestAdapter
from ..domain.entities import ClientLocation
from ..domain.execution import ExecutionState
from ..domain.operation_log import OperationLog, ProgressTracker
from ..domain.ports import ChannelFactory, HealthPort, SchedulerPort, StoragePort
from ..usecases.access_mode_context import AccessModeContext
from ..usecases.execute_operation import OperationExecutor
from ..usecases.live_channel import Dispatch, LiveChannelManager
from ..usecases.offload import Offload, run_inline
from ..usecases.plan_operation import OperationPlanner, RunPrecheck
from ..usecases.progress_stream import ProgressStreamConsumer
from ..usecases.read_storage_status import FetchArrayStatus, FetchInventory, StorageStatusReader
from ..usecases.resumable_session import ResumableSessionStore, SessionPersistence
from ..usecases.storage_assistant import AssistantHooks, StorageAssistant
from ..viewmodels.settings_vm import SettingsVM

log = logging.getLogger(__name__)


def _direct(fn: Callable[[], None]) -> None:
    fn()


class AppController:
    """Create runtime adapters and per-page coordinators from settings state.

    Call chain:
        ``raidpanel.web_ui.runtime.WebRuntime`` creates one instance; every
        page mount asks it for a fresh :class:`StorageAssistant` bound to the
        page's :class:`ClientLocation`.
    """

    def __init__(
        self,
        settings_vm: SettingsVM,
        storage: StorageLocal,
        *,
        channel_factory: ChannelFactory = socketio_channel_factory,
        health: Optional[HealthPort] = None,
        adapter_factory: Optional[Callable[[AccessModeContext], StoragePort]] = None,
    ) -> None:
        """Initialize with settings and the local storage root.

        Args:
            settings_vm: Settings state (token, timeouts, array device...).
            storage: Local JSON storage; client state is keyed per origin.
            channel_factory: Builds one push channel for a backend URL.
            health: ``/status`` probe; built from the API token when omitted.
            adapter_factory: Builds the storage port for a page context;
                defaults to :meth:`build_storage_adapter`.
        """
        self.settings_vm = settings_vm
        self.storage = storage
        self.channel_factory = channel_factory
        self._health = health
        self.adapter_factory = adapter_factory or self.build_storage_adapter

    @property
    def health(self) -> HealthPort:
        """Return the cached ``/status`` probe."""
        if self._health is None:
            self._health = HttpHealthProbe(api_token=self.settings_vm.api_token or None)
        return self._health

    def reset(self) -> None:
        """Drop cached adapters so the next page picks up new settings."""
        self._health = None

    def build_context(self, location: Optional[ClientLocation]) -> AccessModeContext:
        cfg = self.settings_vm.config
        origin = location.hostname if location is not None and location.hostname else "default"
        context = AccessModeContext(
            self.storage.for_origin(origin),
            self.health,
            cfg.identity,
            local_alias=cfg.local_alias,
            public_suffixes=cfg.public_suffixes,
            server_port=cfg.server_port,
            probe_timeout_ms=cfg.probe_timeout_ms,
        )
        context.init(location)
        return context

    def build_storage_adapter(self, context: AccessModeContext) -> StorageRestAdapter:
        cfg = self.settings_vm.config
        return StorageRestAdapter(
            context.server_url,
            api_token=cfg.api_token or None,
            request_timeout_s=cfg.request_timeout_s,
            execute_timeout_s=cfg.execute_timeout_s,
            retries=2,
        )

    def build_storage_assistant(
        self,
        location: Optional[ClientLocation],
        *,
        scheduler: SchedulerPort,
        dispatch: Dispatch = _direct,
        offload: Offload = run_inline,
        hooks: Optional[AssistantHooks] = None,
        dry_run: bool = False,
    ) -> StorageAssistant:
        """Wire one page's coordinator.

        Args:
            location: Where the page is served from (drives the access mode).
            scheduler: Keyed timers bound to the page's event loop.
            dispatch: Marshals push-channel callbacks onto that loop.
            offload: Runs blocking REST calls off the loop.
            hooks: View callbacks.
            dry_run: Send ``dryRun`` with add-disk and resolve immediately.
        """
        cfg = self.settings_vm.config
        context = self.build_context(location)
        adapter = self.adapter_factory(context)
        array_id = cfg.array_device

        oplog = OperationLog()
        progress = ProgressTracker()
        state = ExecutionState()

        channels = LiveChannelManager(
            self.channel_factory,
            context.server_url,
            dispatch=dispatch,
            offload=offload,
            timeout_s=cfg.channel_timeout_s,
            native_shell=cfg.native_shell,
            is_secure_page=lambda: bool(context.location and context.location.is_secure),
        )
        reader = StorageStatusReader(
            FetchInventory(adapter),
            FetchArrayStatus(adapter),
            scheduler,
            offload,
            poll_ms=cfg.status_poll_ms,
        )
        planner = OperationPlanner(RunPrecheck(adapter), array_id, offload)
        executor = OperationExecutor(
            adapter,
            array_id,
            state,
            oplog,
            progress,
            planner.is_current,
            offload,
            dry_run=dry_run,
        )
        consumer = ProgressStreamConsumer(
            oplog,
            progress,
            state,
            scheduler,
            settle_delay_ms=cfg.settle_delay_ms,
        )
        persistence = SessionPersistence(
            ResumableSessionStore(context.store),
            oplog,
            progress,
            state,
            scheduler,
            max_age_ms=cfg.session_max_age_ms,
            clear_delay_ms=cfg.session_clear_delay_ms,
        )
        log.debug(
            "Storage assistant wired: array=%s mode=%s base=%s",
            array_id,
            context.get_current().value,
            context.server_url(),
        )
        return StorageAssistant(
            context=context,
            channels=channels,
            reader=reader,
            planner=planner,
            executor=executor,
            consumer=consumer,
            persistence=persistence,
            scheduler=scheduler,
            oplog=oplog,
            progress=progress,
            state=state,
            offload=offload,
            hooks=hooks,
            mode_watch_ms=100,
            mode_watch_max_ms=max(cfg.probe_timeout_ms, 100),
        )


__all__ = ["AppController"]
