"""Shared error codes, user-facing messages and exception types."""

from __future__ import annotations

CONFIG_MISSING = "CONFIG_MISSING"
PERMISSION_DENIED = "PERMISSION_DENIED"
NETWORK_ERROR = "NETWORK_ERROR"
AUTH_FAILED = "AUTH_FAILED"
TASK_FAILED = "TASK_FAILED"
CAPTURE_FAILED = "CAPTURE_FAILED"
NO_ACTIVE_TARGET = "NO_ACTIVE_TARGET"
ASR_PROTOCOL_ERROR = "ASR_PROTOCOL_ERROR"

ERROR_MESSAGES = {
    CONFIG_MISSING: "Please configure the API key first.",
    PERMISSION_DENIED: "Permission is required in system settings.",
    NETWORK_ERROR: "Connection failed, check the network and API key.",
    AUTH_FAILED: "API key is invalid.",
    TASK_FAILED: "Recognition failed.",
    CAPTURE_FAILED: "Microphone is unavailable.",
    NO_ACTIVE_TARGET: "No active input target.",
    ASR_PROTOCOL_ERROR: "ASR response format is invalid.",
}


class DictationError(Exception):
    code = ASR_PROTOCOL_ERROR

    def __init__(self, message: str = "", code: str | None = None) -> None:
        super().__init__(message or ERROR_MESSAGES.get(code or self.code, ""))
        if code is not None:
            self.code = code


class SessionConnectionError(DictationError, ConnectionError):
    code = NETWORK_ERROR


class ConfigurationError(SessionConnectionError):
    code = CONFIG_MISSING


class TaskFailure(DictationError):
    code = TASK_FAILED


class CaptureError(DictationError):
    code = CAPTURE_FAILED
