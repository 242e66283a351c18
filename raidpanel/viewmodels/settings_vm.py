from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from ..domain.access_mode import DEFAULT_LOCAL_ALIAS, DEFAULT_PUBLIC_SUFFIXES, DEFAULT_SERVER_PORT
from ..domain.entities import RemoteIdentity
from ..utils.logging import env_requests_debug

_INT_FIELDS = (
    "server_port",
    "request_timeout_s",
    "probe_timeout_ms",
    "execute_timeout_s",
    "status_poll_ms",
    "settle_delay_ms",
    "session_clear_delay_ms",
    "session_max_age_ms",
    "channel_timeout_s",
)


@dataclass
class SettingsConfig:
    """Typed runtime settings that persist via StorageLocal."""

    array_device: str = "/dev/md0"
    local_alias: str = DEFAULT_LOCAL_ALIAS
    public_suffixes: Tuple[str, ...] = DEFAULT_PUBLIC_SUFFIXES
    server_port: int = DEFAULT_SERVER_PORT
    backend_host: str = ""
    domains: Dict[str, str] = field(default_factory=dict)
    api_token: str = ""
    request_timeout_s: int = 10
    probe_timeout_ms: int = 2000
    execute_timeout_s: int = 1800
    status_poll_ms: int = 5000
    settle_delay_ms: int = 2000
    session_clear_delay_ms: int = 10_000
    session_max_age_ms: int = 300_000
    channel_timeout_s: int = 10
    native_shell: bool = False

    @property
    def identity(self) -> RemoteIdentity:
        return RemoteIdentity(backend_host=self.backend_host, domains=dict(self.domains))


def _default_debug_logging() -> bool:
    return env_requests_debug()


class SettingsVM:
    """Keeps settings state and validation, no I/O here."""

    def __init__(
        self,
        *,
        config: Optional[SettingsConfig] = None,
        on_save: Optional[Callable[[dict], None]] = None,
    ) -> None:
        self.config = config or SettingsConfig()
        self.on_save = on_save
        self.debug_logging: bool = _default_debug_logging()

    # ------------------------------------------------------------------
    # Properties bridging to the typed config
    # ------------------------------------------------------------------
    @property
    def array_device(self) -> str:
        return self.config.array_device

    @array_device.setter
    def array_device(self, value: str) -> None:
        self.config = replace(self.config, array_device=self._coerce_device(value))

    @property
    def api_token(self) -> str:
        return self.config.api_token

    @api_token.setter
    def api_token(self, value: Any) -> None:
        self.config = replace(self.config, api_token=self._coerce_optional_str(value))

    @property
    def domains(self) -> Dict[str, str]:
        return self.config.domains

    @domains.setter
    def domains(self, value: Mapping[str, Any]) -> None:
        self.config = replace(self.config, domains=self._coerce_domains(value))

    # ------------------------------------------------------------------
    def is_valid(self) -> bool:
        cfg = self.config
        if not cfg.array_device.startswith("/dev/"):
            return False
        if not 0 < cfg.server_port < 65536:
            return False
        if cfg.session_clear_delay_ms > cfg.session_max_age_ms:
            return False
        return all(getattr(cfg, name) > 0 for name in _INT_FIELDS)

    def apply_dict(self, payload: Mapping[str, Any]) -> None:
        """Apply persisted settings to the view-model."""

        if not isinstance(payload, Mapping):
            raise ValueError("Settings payload must be a mapping of flat keys.")

        allowed_flat_keys = {*SettingsConfig.__annotations__.keys(), "debug_logging"}
        unknown = set(payload.keys()) - allowed_flat_keys
        if unknown:
            raise ValueError(f"Unsupported settings keys: {', '.join(sorted(str(key) for key in unknown))}")

        updates: Dict[str, Any] = {}
        for cfg_key in SettingsConfig.__annotations__.keys():
            if cfg_key in payload:
                updates[cfg_key] = self._coerce_config_value(cfg_key, payload[cfg_key])

        if updates:
            self.config = replace(self.config, **updates)

        if "debug_logging" in payload:
            self.debug_logging = self._coerce_bool(payload["debug_logging"])

    def to_dict(self) -> dict:
        snapshot = asdict(self.config)
        snapshot["public_suffixes"] = list(self.config.public_suffixes)
        snapshot["debug_logging"] = bool(self.debug_logging)
        return snapshot

    def set_debug_logging(self, enabled: bool) -> None:
        self.debug_logging = self._coerce_bool(enabled)

    def cmd_save(self) -> None:
        if not self.is_valid():
            raise ValueError("Settings invalid")
        if self.on_save:
            self.on_save(self.to_dict())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _coerce_config_value(self, key: str, raw: Any) -> Any:
        if key == "array_device":
            return self._coerce_device(raw)
        if key in {"local_alias", "backend_host"}:
            return self._coerce_optional_str(raw).lower()
        if key == "api_token":
            return self._coerce_optional_str(raw)
        if key == "public_suffixes":
            return self._coerce_suffixes(raw)
        if key == "domains":
            return self._coerce_domains(raw)
        if key in _INT_FIELDS:
            return self._coerce_int(key, raw, allow_negative=False)
        if key == "native_shell":
            return self._coerce_bool(raw)
        raise ValueError(f"Unhandled config field: {key}")

    @staticmethod
    def _coerce_device(value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("array_device must be a device path like /dev/md0.")
        text = value.strip()
        return text if text.startswith("/dev/") else f"/dev/{text}"

    @staticmethod
    def _coerce_optional_str(value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @staticmethod
    def _coerce_bool(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return bool(value)
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)

    @staticmethod
    def _coerce_int(name: str, value: Any, *, allow_negative: bool = True) -> int:
        if isinstance(value, bool):
            raise ValueError(f"{name} must be an integer.")
        if isinstance(value, (int, float)):
            coerced = int(value)
        elif isinstance(value, str):
            try:
                coerced = int(value.strip())
            except (TypeError, ValueError) as exc:
                raise ValueError(f"{name} must be an integer.") from exc
        else:
            raise ValueError(f"{name} must be an integer.")
        if not allow_negative and coerced < 0:
            raise ValueError(f"{name} must be non-negative.")
        return coerced

    @staticmethod
    def _coerce_suffixes(value: Any) -> Tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple)):
            raise ValueError("public_suffixes must be a list of domain suffixes.")
        suffixes = []
        for item in value:
            text = str(item or "").strip().lower()
            if not text:
                continue
            suffixes.append(text if text.startswith(".") else f".{text}")
        return tuple(suffixes)

    @staticmethod
    def _coerce_domains(value: Any) -> Dict[str, str]:
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            raise ValueError("domains must be a mapping of name to host.")
        normalized: Dict[str, str] = {}
        for raw_key, raw_val in value.items():
            host = str(raw_val or "").strip().lower()
            if host:
                normalized[str(raw_key)] = host
        return normalized


def default_settings_payload() -> dict:
    """Return a fresh snapshot containing the default settings payload."""
    return SettingsVM().to_dict()
