"""Hand-off of blocking adapter calls away from the owning event loop.

An ``Offload`` runs ``job`` somewhere that may block (a worker thread in the
web runtime) and then calls ``done(result, error)`` back on the owning loop.
Exactly one of ``result``/``error`` is meaningful.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

Done = Callable[[Any, Optional[BaseException]], None]
Offload = Callable[[Callable[[], Any], Done], None]


def run_inline(job: Callable[[], Any], done: Done) -> None:
    """Run ``job`` synchronously on the caller's thread (tests, CLI)."""
    try:
        result = job()
    except Exception as exc:
        done(None, exc)
        return
    done(result, None)


__all__ = ["Done", "Offload", "run_inline"]
