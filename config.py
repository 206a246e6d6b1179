"""Simple JSON-based config store."""

from __future__ import annotations

import json
import os
from pathlib import Path

from models import CaptureConstraints

DEFAULT_INTERVAL_MS = 5000
MIN_INTERVAL_MS = 500


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "signtext" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", "")) or os.getenv("DASHSCOPE_API_KEY", "")

    def set_api_key(self, key: str) -> None:
        self._set("api_key", key)

    def get_model(self) -> str:
        return str(self._read_all().get("model", "qwen-vl-plus"))

    def get_hotkey(self) -> str:
        return str(self._read_all().get("hotkey", "Key.f8"))

    def set_hotkey(self, hotkey: str) -> None:
        self._set("hotkey", hotkey)

    def get_interval_ms(self) -> int:
        value = self._get_int("interval_ms", DEFAULT_INTERVAL_MS)
        return max(value, MIN_INTERVAL_MS)

    def set_interval_ms(self, interval_ms: int) -> None:
        self._set("interval_ms", max(int(interval_ms), MIN_INTERVAL_MS))

    def get_camera_index(self) -> int:
        return self._get_int("camera_index", 0)

    def get_constraints(self) -> CaptureConstraints:
        return CaptureConstraints(
            width=self._get_int("frame_width", 640),
            height=self._get_int("frame_height", 480),
            exact=bool(self._read_all().get("exact_resolution", False)),
        )

    def get_auto_start(self) -> bool:
        return bool(self._read_all().get("auto_start", True))

    def _get_int(self, key: str, default: int) -> int:
        try:
            return int(self._read_all().get(key, default))
        except (TypeError, ValueError):
            return default

    def _set(self, key: str, value: object) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
