"""Adapter package for external I/O implementations.

Purpose:
    Concrete implementations of the domain ports: the storage REST client, the
    ``/status`` health probe, the socket.io push channel and the local JSON
    store for settings and per-origin client state.

Dependencies:
    Submodules depend on ``requests``, ``python-socketio``, filesystem APIs and
    the protocol definitions in ``raidpanel.domain.ports``.

Call context:
    Imported by ``raidpanel.app.controller`` for runtime wiring and by tests
    for transport-level behavior verification.
"""
