from __future__ import annotations
import json, os, re, tempfile
from typing import Any, Dict, Optional
from raidpanel.domain.ports import KeyValueStorePort, SettingsStorePort


class StorageLocal(SettingsStorePort, KeyValueStorePort):
    """Local filesystem storage for user settings and per-origin client state (JSON).

    Client state mirrors browser storage: every origin gets its own file so a
    page served from ``ryvie.local`` never sees the state written for the
    public domain.
    """

    SETTINGS_FILE = "user_settings.json"

    def __init__(self, root_dir: str = ".", origin: str = "default") -> None:
        self.root = root_dir
        self.origin = origin

    # ---- User settings (JSON) ----
    def save_user_settings(self, payload: Dict) -> None:
        self._write_json(os.path.join(self.root, self.SETTINGS_FILE), payload)

    def load_user_settings(self) -> Optional[Dict]:
        data = self._read_json(os.path.join(self.root, self.SETTINGS_FILE))
        return data if isinstance(data, dict) else None

    # ---- Per-origin key/value slots ----
    def get_item(self, key: str) -> Any:
        return self._read_state().get(key)

    def set_item(self, key: str, value: Any) -> None:
        state = self._read_state()
        state[key] = value
        self._write_json(self._state_path(), state)

    def remove_item(self, key: str) -> None:
        state = self._read_state()
        if key not in state:
            return
        del state[key]
        self._write_json(self._state_path(), state)

    def for_origin(self, origin: str) -> "StorageLocal":
        return StorageLocal(self.root, origin)

    # ------------------------------------------------------------------
    def _state_path(self) -> str:
        slug = re.sub(r"[^A-Za-z0-9_.-]+", "_", self.origin).strip("_") or "default"
        return os.path.join(self.root, f"client_state_{slug}.json")

    def _read_state(self) -> Dict[str, Any]:
        data = self._read_json(self._state_path())
        return dict(data) if isinstance(data, dict) else {}

    @staticmethod
    def _read_json(path: str) -> Any:
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except ValueError:
            # corrupted slot behaves like an empty one
            return None

    def _write_json(self, path: str, payload: Any) -> None:
        os.makedirs(self.root, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise
