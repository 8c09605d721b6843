"""Duplex streaming client for the DashScope realtime ASR websocket.

One ``ProtocolSession`` drives exactly one connection.  Control messages are
JSON text frames shaped ``{"header": ..., "payload": ...}``; audio goes out as
binary frames of 16-bit PCM.  Connecting and receiving happen on a daemon
thread, and every inbound event is handed to ``on_event`` on that thread in
receipt order.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from typing import Any, Callable, Optional
from urllib.parse import urlparse

from websockets.exceptions import InvalidStatus, WebSocketException
from websockets.sync.client import connect as ws_connect

from errors import AUTH_FAILED, ConfigurationError, SessionConnectionError
from models import AudioChunk, ProtocolEvent, ProtocolEventKind

logger = logging.getLogger(__name__)

EventCallback = Callable[[ProtocolEvent], None]

_STATE_NEW = "new"
_STATE_CONNECTING = "connecting"
_STATE_OPEN = "open"
_STATE_STARTED = "started"
_STATE_FINISHING = "finishing"
_STATE_CLOSED = "closed"


def new_task_id() -> str:
    return uuid.uuid4().hex


def build_run_task(task_id: str, model: str, sample_rate: int) -> dict:
    return {
        "header": {
            "action": "run-task",
            "task_id": task_id,
            "streaming": "duplex",
        },
        "payload": {
            "task_group": "audio",
            "task": "asr",
            "function": "recognition",
            "model": model,
            "parameters": {
                "format": "pcm",
                "sample_rate": sample_rate,
            },
            "input": {},
        },
    }


def build_finish_task(task_id: str) -> dict:
    return {
        "header": {
            "action": "finish-task",
            "task_id": task_id,
            "streaming": "duplex",
        },
        "payload": {
            "input": {},
        },
    }


def parse_event(raw: str | bytes) -> Optional[ProtocolEvent]:
    """Translate one inbound frame into an event, or None when it carries nothing usable."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("dropping undecodable binary frame (%d bytes)", len(raw))
            return None
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("dropping non-JSON frame")
        return None
    if not isinstance(message, dict):
        return None
    header = message.get("header")
    if not isinstance(header, dict):
        return None
    event = header.get("event")

    if event == "task-started":
        return ProtocolEvent(kind=ProtocolEventKind.TASK_STARTED.value)
    if event == "task-finished":
        return ProtocolEvent(kind=ProtocolEventKind.TASK_FINISHED.value)
    if event == "task-failed":
        error_message = header.get("error_message")
        return ProtocolEvent(
            kind=ProtocolEventKind.TASK_FAILED.value,
            message=error_message if isinstance(error_message, str) else "",
        )
    if event == "result-generated":
        sentence = _dig(message, "payload", "output", "sentence")
        if not isinstance(sentence, dict):
            return None
        text = sentence.get("text")
        sentence_end = sentence.get("sentence_end")
        if not isinstance(text, str) or not isinstance(sentence_end, bool):
            return None
        return ProtocolEvent(
            kind=ProtocolEventKind.TRANSCRIPT.value,
            text=text,
            is_final=sentence_end,
        )

    logger.info("ignoring unknown event %r", event)
    return None


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


class ProtocolSession:
    def __init__(
        self,
        model: str = "fun-asr-realtime",
        open_timeout_s: float = 10.0,
        close_timeout_s: float = 1.0,
        connect: Callable[..., Any] = ws_connect,
    ) -> None:
        self._model = model
        self._open_timeout_s = open_timeout_s
        self._close_timeout_s = close_timeout_s
        self._connect = connect

        self._lock = threading.Lock()
        self._state = _STATE_NEW
        self._close_requested = threading.Event()
        self._ws: Any = None
        self._thread: Optional[threading.Thread] = None
        self._on_event: Optional[EventCallback] = None
        self._sample_rate = 16000
        self._task_id = ""

    @property
    def task_id(self) -> str:
        return self._task_id

    def open(
        self,
        endpoint: str,
        credential: str,
        sample_rate: int,
        on_event: EventCallback,
    ) -> None:
        if not credential:
            raise ConfigurationError("API key is empty")
        parsed = urlparse(endpoint or "")
        if parsed.scheme not in ("ws", "wss") or not parsed.netloc:
            raise SessionConnectionError(f"malformed endpoint: {endpoint!r}")

        with self._lock:
            if self._state != _STATE_NEW:
                raise SessionConnectionError("session was already opened")
            self._state = _STATE_CONNECTING
            self._on_event = on_event
            self._sample_rate = sample_rate

        self._thread = threading.Thread(
            target=self._worker,
            args=(endpoint, credential),
            name="asr-receive",
            daemon=True,
        )
        self._thread.start()

    def start_task(self) -> None:
        with self._lock:
            if self._state != _STATE_OPEN:
                raise SessionConnectionError(f"cannot start task while {self._state}")
            self._task_id = new_task_id()
            message = build_run_task(self._task_id, self._model, self._sample_rate)
        logger.info("run-task %s (model=%s, %d Hz)", self._task_id, self._model, self._sample_rate)
        self._send_json(message)

    def send_audio(self, chunk: AudioChunk) -> None:
        if self._state != _STATE_STARTED:
            return
        ws = self._ws
        if ws is None:
            return
        try:
            ws.send(chunk.pcm16_bytes)
        except (WebSocketException, OSError) as exc:
            logger.warning("sending audio failed: %s", exc)

    def finish_task(self) -> None:
        with self._lock:
            if self._state not in (_STATE_OPEN, _STATE_STARTED) or not self._task_id:
                logger.info("finish-task skipped while %s", self._state)
                return
            self._state = _STATE_FINISHING
            message = build_finish_task(self._task_id)
        logger.info("finish-task %s", self._task_id)
        self._send_json(message)

    def close(self) -> None:
        """Stop the session without waiting for the closing handshake.

        The close-requested flag is set and the connection detached before
        returning; the websocket itself is closed on a short-lived thread.
        """
        with self._lock:
            self._close_requested.set()
            self._state = _STATE_CLOSED
            ws, self._ws = self._ws, None
        if ws is None:
            return
        threading.Thread(
            target=self._close_quietly,
            args=(ws,),
            name="asr-close",
            daemon=True,
        ).start()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _close_quietly(ws: Any) -> None:
        try:
            ws.close()
        except (WebSocketException, OSError) as exc:
            logger.debug("error while closing websocket: %s", exc)

    def _send_json(self, message: dict) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            ws.send(json.dumps(message, ensure_ascii=False))
        except (WebSocketException, OSError) as exc:
            logger.warning("sending %s failed: %s", message["header"]["action"], exc)

    def _worker(self, endpoint: str, credential: str) -> None:
        logger.info("connecting to %s", endpoint)
        try:
            ws = self._connect(
                endpoint,
                additional_headers={"Authorization": f"bearer {credential}"},
                open_timeout=self._open_timeout_s,
                close_timeout=self._close_timeout_s,
            )
        except (WebSocketException, OSError) as exc:
            if not self._close_requested.is_set():
                self._emit_error(exc)
            return

        with self._lock:
            if self._close_requested.is_set():
                late = ws
            else:
                late = None
                self._ws = ws
                self._state = _STATE_OPEN
        if late is not None:
            self._close_quietly(late)
            return

        logger.info("websocket open")
        self._emit(ProtocolEvent(kind=ProtocolEventKind.OPENED.value))

        try:
            for raw in ws:
                event = parse_event(raw)
                if event is None:
                    continue
                if event.kind == ProtocolEventKind.TASK_STARTED.value:
                    with self._lock:
                        if self._state == _STATE_OPEN:
                            self._state = _STATE_STARTED
                self._emit(event)
        except (WebSocketException, OSError) as exc:
            if not self._close_requested.is_set():
                self._emit_error(exc)
            return

        logger.info("websocket closed")
        self._emit(ProtocolEvent(kind=ProtocolEventKind.CONNECTION_CLOSED.value))

    def _emit_error(self, exc: BaseException) -> None:
        with self._lock:
            self._state = _STATE_CLOSED
            self._ws = None
        cause: BaseException = exc
        if isinstance(exc, InvalidStatus) and exc.response.status_code in (401, 403):
            cause = SessionConnectionError(str(exc), code=AUTH_FAILED)
        logger.warning("connection error: %s", exc)
        self._emit(
            ProtocolEvent(
                kind=ProtocolEventKind.CONNECTION_ERROR.value,
                message=str(exc),
                cause=cause,
            )
        )

    def _emit(self, event: ProtocolEvent) -> None:
        if self._on_event is None:
            return
        self._on_event(event)
