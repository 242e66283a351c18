"""Pure access-mode resolution and base URL derivation.

Both functions are side-effect free; caching, persistence and notification
live in :mod:`raidpanel.usecases.access_mode_context`.
"""

from __future__ import annotations

from typing import Iterable, Optional

from .entities import AccessMode, ClientLocation, RemoteIdentity

DEFAULT_LOCAL_ALIAS = "ryvie.local"
DEFAULT_PUBLIC_SUFFIXES = (".ryvie.fr",)
DEFAULT_SERVER_PORT = 3002


def resolve_mode(
    location: Optional[ClientLocation],
    identity: RemoteIdentity,
    *,
    public_suffixes: Iterable[str] = DEFAULT_PUBLIC_SUFFIXES,
) -> AccessMode:
    """Derive the access mode from where the client page is served.

    Rules in priority order: remote identity or public suffix -> public,
    local alias on the default port -> private, anything else -> private.
    The secure-transport override is applied by the context, not here.
    """
    if location is None:
        return AccessMode.PRIVATE
    host = (location.hostname or "").strip().lower()
    if not host:
        return AccessMode.PRIVATE

    backend_host = (identity.backend_host or "").strip().lower()
    if backend_host and host == backend_host:
        return AccessMode.PUBLIC
    domains = {str(value).strip().lower() for value in (identity.domains or {}).values() if value}
    if host in domains:
        return AccessMode.PUBLIC
    for suffix in public_suffixes:
        if suffix and host.endswith(suffix.lower()):
            return AccessMode.PUBLIC

    # local alias on the default port and every other host stay private
    return AccessMode.PRIVATE


def server_url(
    mode: AccessMode,
    location: Optional[ClientLocation],
    identity: RemoteIdentity,
    *,
    local_alias: str = DEFAULT_LOCAL_ALIAS,
    server_port: int = DEFAULT_SERVER_PORT,
    local_ip: Optional[str] = None,
) -> str:
    """Return the backend origin for REST and push-channel traffic."""
    host = (location.hostname if location else "").strip().lower()
    if mode is AccessMode.PRIVATE:
        if host == local_alias.lower():
            # served through the appliance's reverse proxy, same origin
            return f"http://{local_alias}"
        return f"http://{local_ip or local_alias}:{server_port}"

    status_domain = (identity.domains or {}).get("status")
    if status_domain:
        return f"https://{status_domain}"
    if identity.backend_host:
        return f"http://{identity.backend_host}:{server_port}"
    if host:
        scheme = "https" if location is not None and location.is_secure else "http"
        return f"{scheme}://{host}:{server_port}"
    return f"http://{local_alias}:{server_port}"


__all__ = [
    "DEFAULT_LOCAL_ALIAS",
    "DEFAULT_PUBLIC_SUFFIXES",
    "DEFAULT_SERVER_PORT",
    "resolve_mode",
    "server_url",
]
