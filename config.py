"""Simple JSON-based config store."""

from __future__ import annotations

import json
from pathlib import Path

CONFIG_DIR = Path.home() / ".config" / "voiceclone"


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or CONFIG_DIR / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_dashscope_api_key(self) -> str:
        return self._get("dashscope_api_key", "")

    def set_dashscope_api_key(self, key: str) -> None:
        self._set("dashscope_api_key", key)

    def get_elevenlabs_api_key(self) -> str:
        return self._get("elevenlabs_api_key", "")

    def set_elevenlabs_api_key(self, key: str) -> None:
        self._set("elevenlabs_api_key", key)

    def get_hotkey(self) -> str:
        return self._get("hotkey", "Key.alt_l")

    def set_hotkey(self, hotkey: str) -> None:
        self._set("hotkey", hotkey)

    def get_input_device(self) -> str:
        return self._get("input_device", "")

    def set_input_device(self, name: str) -> None:
        self._set("input_device", name)

    def get_user_id(self) -> str:
        return self._get("user_id", "local")

    def set_user_id(self, user_id: str) -> None:
        self._set("user_id", user_id)

    def _get(self, key: str, default: str) -> str:
        data = self._read_all()
        return str(data.get(key, default))

    def _set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
