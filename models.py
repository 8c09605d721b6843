"""Core data models for the dictation engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SessionState(str, Enum):
    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    STREAMING = "STREAMING"
    FINISHING = "FINISHING"
    TEARING_DOWN = "TEARING_DOWN"


class ProtocolEventKind(str, Enum):
    OPENED = "opened"
    TASK_STARTED = "task_started"
    TRANSCRIPT = "transcript"
    TASK_FINISHED = "task_finished"
    TASK_FAILED = "task_failed"
    CONNECTION_CLOSED = "connection_closed"
    CONNECTION_ERROR = "connection_error"


class EditKind(str, Enum):
    INSERT = "insert"
    DELETE = "delete"


@dataclass(frozen=True)
class AudioChunk:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass(frozen=True)
class TranscriptRevision:
    text: str
    is_final: bool = False


@dataclass
class ProtocolEvent:
    kind: str
    text: str = ""
    is_final: bool = False
    message: str = ""
    cause: Optional[BaseException] = None

    @property
    def revision(self) -> TranscriptRevision:
        return TranscriptRevision(text=self.text, is_final=self.is_final)


@dataclass
class CommitState:
    last_committed_text: str = ""
    committed_char_count: int = 0


@dataclass(frozen=True)
class EditOp:
    kind: str
    text: str = ""
    count: int = 0


@dataclass(frozen=True)
class Settings:
    endpoint: str
    api_key: str
    sample_rate: int = 16000
    model: str = "fun-asr-realtime"


@dataclass
class HistoryEntry:
    id: str
    text: str
    timestamp: float
