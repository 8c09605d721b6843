"""Protocol interfaces used by SessionOrchestrator and its collaborators."""

from __future__ import annotations

from typing import Callable, Protocol

from models import AudioChunk, HistoryEntry, ProtocolEvent, Settings


class AudioSource(Protocol):
    def start(self, on_chunk: Callable[[AudioChunk], None]) -> None: ...

    def stop(self) -> None: ...


class RecognitionSession(Protocol):
    def open(
        self,
        endpoint: str,
        credential: str,
        sample_rate: int,
        on_event: Callable[[ProtocolEvent], None],
    ) -> None: ...

    def start_task(self) -> None: ...

    def send_audio(self, chunk: AudioChunk) -> None: ...

    def finish_task(self) -> None: ...

    def close(self) -> None: ...


class TextInjector(Protocol):
    def insert(self, text: str) -> None: ...

    def delete_trailing(self, count: int) -> None: ...


class HistorySink(Protocol):
    def add(self, text: str) -> HistoryEntry | None: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_hotkey(self) -> str: ...

    def set_hotkey(self, hotkey: str) -> None: ...

    def is_configured(self) -> bool: ...

    def load_settings(self) -> Settings: ...
