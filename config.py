"""Simple JSON-based config store."""

from __future__ import annotations

import json
import os
from pathlib import Path
from urllib.parse import urlparse

from errors import ConfigurationError
from models import Settings

DEFAULT_ENDPOINT = "wss://dashscope.aliyuncs.com/api-ws/v1/inference/"
DEFAULT_SAMPLE_RATE = 16000
DEFAULT_MODEL = "fun-asr-realtime"
DEFAULT_HOTKEY = "Key.cmd_r"


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "voicenow" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", "")) or os.getenv("DASHSCOPE_API_KEY", "")

    def set_api_key(self, key: str) -> None:
        self._update("api_key", key.strip())

    def get_endpoint(self) -> str:
        data = self._read_all()
        return str(data.get("endpoint", DEFAULT_ENDPOINT))

    def set_endpoint(self, endpoint: str) -> None:
        self._update("endpoint", endpoint.strip())

    def get_sample_rate(self) -> int:
        data = self._read_all()
        value = data.get("sample_rate", DEFAULT_SAMPLE_RATE)
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            return DEFAULT_SAMPLE_RATE
        return value

    def set_sample_rate(self, sample_rate: int) -> None:
        self._update("sample_rate", int(sample_rate))

    def get_model(self) -> str:
        data = self._read_all()
        return str(data.get("model", DEFAULT_MODEL)) or DEFAULT_MODEL

    def get_hotkey(self) -> str:
        data = self._read_all()
        return str(data.get("hotkey", DEFAULT_HOTKEY))

    def set_hotkey(self, hotkey: str) -> None:
        self._update("hotkey", hotkey)

    def is_configured(self) -> bool:
        return bool(self.get_api_key())

    def load_settings(self) -> Settings:
        """Snapshot the current configuration, validated for opening a session."""
        api_key = self.get_api_key()
        if not api_key:
            raise ConfigurationError("API key is not configured")
        endpoint = self.get_endpoint()
        parsed = urlparse(endpoint)
        if parsed.scheme not in ("ws", "wss") or not parsed.netloc:
            raise ConfigurationError(f"invalid endpoint: {endpoint!r}")
        return Settings(
            endpoint=endpoint,
            api_key=api_key,
            sample_rate=self.get_sample_rate(),
            model=self.get_model(),
        )

    def _update(self, key: str, value: object) -> None:
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
