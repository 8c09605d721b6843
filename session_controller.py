"""State-machine based session orchestration.

All transitions run on one ``SerialQueue`` (the state owner).  Activation
toggles, protocol events and timer expiries arrive on other threads and are
only ever enqueued there, so nothing below needs a lock.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Callable, Optional

from errors import (
    CONFIG_MISSING,
    NETWORK_ERROR,
    TASK_FAILED,
    CaptureError,
    ConfigurationError,
    DictationError,
    SessionConnectionError,
)
from interfaces import AudioSource, ConfigStore, RecognitionSession
from models import ProtocolEvent, ProtocolEventKind, SessionState, Settings
from protocol_session import ProtocolSession
from recorder import SoundDeviceRecorder
from serial_queue import SerialQueue
from text_committer import IncrementalTextCommitter

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionState, SessionState], None]
PartialCallback = Callable[[str], None]
ErrorCallback = Callable[[str, str], None]
ReadyCallback = Callable[[], None]
SessionFactory = Callable[[Settings], RecognitionSession]
PipelineFactory = Callable[[Settings], AudioSource]


def default_session_factory(settings: Settings) -> RecognitionSession:
    return ProtocolSession(model=settings.model)


def default_pipeline_factory(settings: Settings) -> AudioSource:
    return SoundDeviceRecorder(target_rate=settings.sample_rate)


class SessionOrchestrator:
    def __init__(
        self,
        config: ConfigStore,
        committer: IncrementalTextCommitter,
        session_factory: SessionFactory = default_session_factory,
        pipeline_factory: PipelineFactory = default_pipeline_factory,
        connect_timeout_s: float = 5.0,
        finish_timeout_s: float = 5.0,
        on_state_change: Optional[StateCallback] = None,
        on_partial: Optional[PartialCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_ready: Optional[ReadyCallback] = None,
    ) -> None:
        self._config = config
        self._committer = committer
        self._session_factory = session_factory
        self._pipeline_factory = pipeline_factory
        self._connect_timeout_s = connect_timeout_s
        self._finish_timeout_s = finish_timeout_s
        self._on_state_change = on_state_change
        self._on_partial = on_partial
        self._on_error = on_error
        self._on_ready = on_ready

        self._owner = SerialQueue("session-owner")
        self._state = SessionState.IDLE
        self._idle = threading.Event()
        self._idle.set()
        self._session_id: Optional[str] = None
        self._protocol: Optional[RecognitionSession] = None
        self._pipeline: Optional[AudioSource] = None
        self._connect_timer: Optional[threading.Timer] = None
        self._finish_timer: Optional[threading.Timer] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    def toggle(self) -> None:
        self._owner.submit(self._handle_toggle)

    def cancel_session(self, reason: str) -> None:
        self._owner.submit(self._handle_cancel, reason)

    def flush(self, timeout: Optional[float] = None) -> bool:
        return self._owner.flush(timeout)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        return self._idle.wait(timeout)

    def close(self) -> None:
        self._owner.close()
        self._committer.close()

    # ------------------------------------------------------------------
    # Transitions (state-owner thread only)
    # ------------------------------------------------------------------

    def _handle_toggle(self) -> None:
        if self._state == SessionState.IDLE:
            self._begin_session()
        elif self._state == SessionState.STREAMING:
            self._finish_session()
        else:
            logger.info("toggle ignored while %s", self._state.value)

    def _handle_cancel(self, reason: str) -> None:
        if self._state == SessionState.IDLE:
            return
        logger.info("cancelling session %s: %s", self._session_id, reason)
        self._teardown()

    def _begin_session(self) -> None:
        try:
            settings = self._config.load_settings()
        except ConfigurationError as exc:
            logger.info("toggle rejected: %s", exc)
            self._emit_error(CONFIG_MISSING, str(exc))
            return

        session_id = uuid.uuid4().hex
        self._session_id = session_id
        self._committer.reset()
        self._transition(SessionState.CONNECTING)
        self._protocol = self._session_factory(settings)
        self._pipeline = self._pipeline_factory(settings)
        self._connect_timer = self._arm_timer(self._connect_timeout_s, self._on_connect_timeout, session_id)

        def on_event(event: ProtocolEvent) -> None:
            self._owner.submit(self._handle_event, session_id, event)

        try:
            self._protocol.open(settings.endpoint, settings.api_key, settings.sample_rate, on_event)
        except SessionConnectionError as exc:
            logger.warning("open failed: %s", exc)
            self._teardown(exc.code, str(exc))

    def _finish_session(self) -> None:
        self._transition(SessionState.FINISHING)
        self._safe_stop_pipeline()
        if self._protocol is not None:
            self._protocol.finish_task()
        self._finish_timer = self._arm_timer(self._finish_timeout_s, self._on_finish_timeout, self._session_id)

    def _handle_event(self, session_id: str, event: ProtocolEvent) -> None:
        if session_id != self._session_id or self._state in (SessionState.IDLE, SessionState.TEARING_DOWN):
            logger.debug("dropping %s from stale session", event.kind)
            return
        kind = event.kind

        if kind == ProtocolEventKind.OPENED.value:
            if self._state != SessionState.CONNECTING or self._protocol is None:
                return
            try:
                self._protocol.start_task()
            except SessionConnectionError as exc:
                self._teardown(NETWORK_ERROR, str(exc))
            return

        if kind == ProtocolEventKind.TASK_STARTED.value:
            if self._state != SessionState.CONNECTING:
                return
            self._connect_timer = self._disarm(self._connect_timer)
            self._transition(SessionState.STREAMING)
            if self._pipeline is None or self._protocol is None:
                return
            try:
                self._pipeline.start(self._protocol.send_audio)
            except CaptureError as exc:
                logger.error("capture unavailable: %s", exc)
                self._teardown()
                return
            if self._on_ready:
                self._on_ready()
            return

        if kind == ProtocolEventKind.TRANSCRIPT.value:
            if self._state not in (SessionState.STREAMING, SessionState.FINISHING):
                return
            self._committer.submit(event.revision)
            if self._on_partial:
                self._on_partial(event.text)
            return

        if kind == ProtocolEventKind.TASK_FINISHED.value:
            self._finish_timer = self._disarm(self._finish_timer)
            self._committer.reset()
            self._teardown()
            return

        if kind == ProtocolEventKind.TASK_FAILED.value:
            self._teardown(TASK_FAILED, event.message or "task failed")
            return

        if kind == ProtocolEventKind.CONNECTION_ERROR.value:
            code = event.cause.code if isinstance(event.cause, DictationError) else NETWORK_ERROR
            self._teardown(code, event.message or "connection error")
            return

        if kind == ProtocolEventKind.CONNECTION_CLOSED.value:
            if self._state == SessionState.FINISHING:
                self._teardown()
            else:
                self._teardown(NETWORK_ERROR, "connection closed by server")

    def _on_connect_timeout(self, session_id: str, timer: threading.Timer) -> None:
        if session_id != self._session_id or timer is not self._connect_timer:
            return
        self._connect_timer = None
        if self._state != SessionState.CONNECTING:
            return
        logger.warning("connection timed out after %.1fs", self._connect_timeout_s)
        self._teardown(NETWORK_ERROR, "connection timed out")

    def _on_finish_timeout(self, session_id: str, timer: threading.Timer) -> None:
        if session_id != self._session_id or timer is not self._finish_timer:
            return
        self._finish_timer = None
        if self._state != SessionState.FINISHING:
            return
        logger.warning("task-finished not received after %.1fs, forcing teardown", self._finish_timeout_s)
        self._teardown()

    def _teardown(self, code: str = "", message: str = "") -> None:
        if self._state in (SessionState.IDLE, SessionState.TEARING_DOWN):
            return
        self._transition(SessionState.TEARING_DOWN)
        self._connect_timer = self._disarm(self._connect_timer)
        self._finish_timer = self._disarm(self._finish_timer)
        self._safe_stop_pipeline()
        if code:
            self._emit_error(code, message)
        session_id = self._session_id
        self._committer.drain(lambda: self._owner.submit(self._complete_teardown, session_id))

    def _complete_teardown(self, session_id: Optional[str]) -> None:
        if session_id != self._session_id or self._state != SessionState.TEARING_DOWN:
            return
        self._safe_close_protocol()
        self._protocol = None
        self._pipeline = None
        self._session_id = None
        logger.info("session %s closed", session_id)
        self._transition(SessionState.IDLE)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _arm_timer(
        self,
        delay_s: float,
        handler: Callable[[str, threading.Timer], None],
        session_id: Optional[str],
    ) -> threading.Timer:
        timer: threading.Timer

        def fire() -> None:
            self._owner.submit(handler, session_id, timer)

        timer = threading.Timer(delay_s, fire)
        timer.daemon = True
        timer.start()
        return timer

    def _disarm(self, timer: Optional[threading.Timer]) -> None:
        if timer is not None:
            timer.cancel()
        return None

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)

    def _safe_stop_pipeline(self) -> None:
        if self._pipeline is None:
            return
        try:
            self._pipeline.stop()
        except Exception:
            logger.exception("stopping audio capture failed")

    def _safe_close_protocol(self) -> None:
        if self._protocol is None:
            return
        try:
            self._protocol.close()
        except Exception:
            logger.exception("closing protocol session failed")

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if to_state == SessionState.IDLE:
            self._idle.set()
        else:
            self._idle.clear()
        logger.info("%s -> %s", from_state.value, to_state.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
