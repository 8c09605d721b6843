"""JSON-backed history of committed utterances."""

from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from pathlib import Path

from models import HistoryEntry

logger = logging.getLogger(__name__)


class JsonHistoryStore:
    def __init__(self, path: Path | None = None, max_entries: int = 100) -> None:
        self._path = path or Path.home() / ".config" / "voicenow" / "history.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._max_entries = max_entries
        self._lock = threading.Lock()
        self._entries = self._load()

    def add(self, text: str) -> HistoryEntry | None:
        if not text:
            return None
        entry = HistoryEntry(id=uuid.uuid4().hex, text=text, timestamp=time.time())
        with self._lock:
            self._entries.insert(0, entry)
            del self._entries[self._max_entries:]
            self._save()
        logger.debug("history entry saved (%d chars)", len(text))
        return entry

    def entries(self) -> list[HistoryEntry]:
        with self._lock:
            return list(self._entries)

    def delete(self, index: int) -> None:
        with self._lock:
            if 0 <= index < len(self._entries):
                del self._entries[index]
                self._save()

    def clear(self) -> None:
        with self._lock:
            self._entries = []
            self._save()

    def _load(self) -> list[HistoryEntry]:
        if not self._path.exists():
            return []
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            entries = [
                HistoryEntry(id=str(item["id"]), text=str(item["text"]), timestamp=float(item["timestamp"]))
                for item in raw
            ]
        except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError):
            logger.warning("history file %s is unreadable, starting empty", self._path)
            return []
        logger.info("loaded %d history entries", len(entries))
        return entries[: self._max_entries]

    def _save(self) -> None:
        data = [{"id": e.id, "text": e.text, "timestamp": e.timestamp} for e in self._entries]
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
