"""Single live push channel to the backend selected by the access mode."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from raidpanel.domain.entities import AccessMode
from raidpanel.domain.ports import ChannelFactory, PushChannel
from raidpanel.usecases.offload import Offload, run_inline

log = logging.getLogger(__name__)

EVENT_CONNECT = "connect"
EVENT_DISCONNECT = "disconnect"
EVENT_ERROR = "connect_error"
EVENT_LOG = "mdraid-log"
EVENT_PROGRESS = "mdraid-resync-progress"
EVENT_SERVER_STATUS = "server-status"

CHANNEL_EVENTS = (
    EVENT_CONNECT,
    EVENT_DISCONNECT,
    EVENT_ERROR,
    EVENT_LOG,
    EVENT_PROGRESS,
    EVENT_SERVER_STATUS,
)

Dispatch = Callable[[Callable[[], None]], None]
EventCallback = Callable[[Any], None]


class ChannelState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def _direct(fn: Callable[[], None]) -> None:
    fn()


class LiveChannelManager:
    """Owns at most one push channel, keyed by access mode.

    Channel callbacks arrive on the client's own thread; every one of them is
    handed to ``dispatch`` so subscribers only ever run on the owning loop.
    The channel never reconnects by itself: a new :meth:`connect` (normally
    triggered by an access-mode change) is the only way back.
    """

    def __init__(
        self,
        factory: ChannelFactory,
        url_for: Callable[[AccessMode], str],
        *,
        dispatch: Dispatch = _direct,
        offload: Offload = run_inline,
        timeout_s: float = 10,
        native_shell: bool = False,
        is_secure_page: Callable[[], bool] = lambda: False,
    ) -> None:
        self.factory = factory
        self.url_for = url_for
        self.dispatch = dispatch
        self.offload = offload
        self.timeout_s = float(timeout_s)
        self.native_shell = native_shell
        self.is_secure_page = is_secure_page
        self._lock = threading.RLock()
        self._channel: Optional[PushChannel] = None
        self._mode: Optional[AccessMode] = None
        self._state = ChannelState.DISCONNECTED
        self._subscribers: Dict[str, List[EventCallback]] = {}

    # ---- state ----
    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def mode(self) -> Optional[AccessMode]:
        return self._mode

    @property
    def channel(self) -> Optional[PushChannel]:
        return self._channel

    # ---- subscriptions ----
    def subscribe(self, event: str, callback: EventCallback) -> Callable[[], None]:
        if event not in CHANNEL_EVENTS:
            raise ValueError(f"Unknown channel event: {event}")
        bucket = self._subscribers.setdefault(event, [])
        bucket.append(callback)

        def _unsubscribe() -> None:
            if callback in bucket:
                bucket.remove(callback)

        return _unsubscribe

    # ---- lifecycle ----
    def should_skip(self, mode: Optional[AccessMode]) -> bool:
        """Browser page on https cannot reach the plain-http private backend."""
        if mode is None:
            return True
        return (
            not self.native_shell
            and mode is AccessMode.PRIVATE
            and bool(self.is_secure_page())
        )

    def connect(self, mode: Optional[AccessMode]) -> Optional[PushChannel]:
        """Open (or reuse) the channel for ``mode``; blocks for the handshake."""
        if mode is None:
            log.info("No access mode, channel connection skipped")
            return None
        if self.should_skip(mode):
            log.info("Secure browser page in private mode, channel connection skipped")
            return None

        with self._lock:
            if (
                self._channel is not None
                and self._mode is mode
                and self._state in (ChannelState.CONNECTING, ChannelState.CONNECTED)
            ):
                return self._channel
            self._teardown_locked()
            url = self.url_for(mode)
            channel = self.factory(url)
            self._register(channel)
            self._channel = channel
            self._mode = mode
            self._set_state(ChannelState.CONNECTING)
        log.info("Connecting push channel to %s (mode=%s)", url, mode.value)

        try:
            channel.connect(self.timeout_s)
        except Exception as exc:
            log.warning("Push channel connect to %s failed: %s", url, exc)
            with self._lock:
                if self._channel is channel:
                    self._channel = None
                    self._set_state(ChannelState.DISCONNECTED)
            self._emit(EVENT_ERROR, str(exc) or exc.__class__.__name__)
            return None

        with self._lock:
            if self._channel is channel and self._state is ChannelState.CONNECTING:
                self._set_state(ChannelState.CONNECTED)
        return channel

    def request(self, mode: Optional[AccessMode]) -> None:
        """Non-blocking :meth:`connect` through the offload hook."""
        if self.should_skip(mode):
            self.connect(mode)
            return
        self.offload(lambda: self.connect(mode), lambda _result, _err: None)

    def disconnect(self) -> None:
        with self._lock:
            self._teardown_locked()
            self._mode = None

    def follow(self, context) -> Callable[[], None]:
        """Reconnect whenever the access-mode context announces a mode."""
        return context.subscribe(self.request)

    # ------------------------------------------------------------------
    def _teardown_locked(self) -> None:
        previous = self._channel
        self._channel = None
        if previous is None:
            return
        try:
            previous.disconnect()
        except Exception:
            log.warning("Error while disconnecting previous channel", exc_info=True)
        self._set_state(ChannelState.DISCONNECTED)

    def _register(self, channel: PushChannel) -> None:
        def _handler(event: str) -> Callable[..., None]:
            def _on_event(*args: Any) -> None:
                if self._channel is not channel:
                    return
                payload = args[0] if args else None
                if event == EVENT_CONNECT:
                    self._set_state(ChannelState.CONNECTED)
                    log.info("Push channel connected")
                elif event == EVENT_DISCONNECT:
                    self._set_state(ChannelState.DISCONNECTED)
                    log.info("Push channel disconnected")
                self._emit(event, payload)

            return _on_event

        for event in CHANNEL_EVENTS:
            channel.on(event, _handler(event))

    def _set_state(self, state: ChannelState) -> None:
        self._state = state

    def _emit(self, event: str, payload: Any) -> None:
        def _deliver() -> None:
            for callback in list(self._subscribers.get(event, ())):
                try:
                    callback(payload)
                except Exception:
                    log.exception("Channel subscriber for %s failed", event)

        self.dispatch(_deliver)


__all__ = [
    "CHANNEL_EVENTS",
    "ChannelState",
    "EVENT_CONNECT",
    "EVENT_DISCONNECT",
    "EVENT_ERROR",
    "EVENT_LOG",
    "EVENT_PROGRESS",
    "EVENT_SERVER_STATUS",
    "LiveChannelManager",
]
