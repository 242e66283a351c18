"""socket.io push channel adapter.

Wraps ``socketio.Client`` so use cases only see the ``PushChannel`` port. The
client runs its own background thread; handlers registered through :meth:`on`
are invoked on that thread and must be marshalled by the caller.
"""

from __future__ import annotations

import logging
from typing import Callable

import socketio
from socketio import exceptions as sio_exc

from raidpanel.domain.ports import PushChannel

log = logging.getLogger(__name__)

TRANSPORTS = ["websocket", "polling"]


class ChannelConnectError(RuntimeError):
    """Raised when the socket.io handshake fails or times out."""


class SocketIOChannel(PushChannel):
    """One socket.io connection to ``url``; reconnection is left to the caller."""

    def __init__(self, url: str, *, socketio_path: str = "socket.io") -> None:
        self.url = url
        self.socketio_path = socketio_path
        self._client = socketio.Client(reconnection=False, logger=False, engineio_logger=False)

    @property
    def connected(self) -> bool:
        return bool(self._client.connected)

    def on(self, event: str, handler: Callable[..., None]) -> None:
        self._client.on(event, handler)

    def connect(self, timeout_s: float) -> None:
        log.debug("socket.io connect url=%s timeout=%.1fs", self.url, timeout_s)
        try:
            self._client.connect(
                self.url,
                transports=TRANSPORTS,
                socketio_path=self.socketio_path,
                wait_timeout=timeout_s,
            )
        except sio_exc.ConnectionError as exc:
            raise ChannelConnectError(f"Push channel connect failed: {exc}") from exc

    def disconnect(self) -> None:
        self._client.disconnect()


def socketio_channel_factory(url: str) -> PushChannel:
    """Default ``ChannelFactory`` used by the app controller."""
    return SocketIOChannel(url)


__all__ = ["ChannelConnectError", "SocketIOChannel", "TRANSPORTS", "socketio_channel_factory"]
