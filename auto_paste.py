"""Clipboard/keyboard based text injection into the focused field."""

from __future__ import annotations

import logging
import sys
import threading
import time

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

try:
    from pynput.keyboard import Controller, Key
except Exception:  # pragma: no cover
    Controller = None  # type: ignore
    Key = None  # type: ignore

logger = logging.getLogger(__name__)


class ClipboardTextInjector:
    def __init__(
        self,
        settle_delay_s: float = 0.02,
        restore_delay_s: float = 0.5,
        key_delay_s: float = 0.01,
    ) -> None:
        self._settle_delay_s = settle_delay_s
        self._restore_delay_s = restore_delay_s
        self._key_delay_s = key_delay_s
        self._keyboard = None

    def insert(self, text: str) -> None:
        if not text:
            return
        keyboard = self._controller()
        if pyperclip is None or keyboard is None:
            logger.warning("clipboard/keyboard dependency missing, dropped %d chars", len(text))
            return

        previous: str | None = None
        try:
            previous = pyperclip.paste()
            pyperclip.copy(text)
            time.sleep(self._settle_delay_s)
            modifier = Key.cmd if sys.platform == "darwin" else Key.ctrl
            with keyboard.pressed(modifier):
                keyboard.press("v")
                keyboard.release("v")
            time.sleep(self._settle_delay_s)
        except Exception:
            logger.exception("pasting text failed")
        if previous:
            self._restore_later(previous)

    def delete_trailing(self, count: int) -> None:
        if count <= 0:
            return
        keyboard = self._controller()
        if keyboard is None:
            logger.warning("keyboard dependency missing, cannot delete %d chars", count)
            return
        try:
            for _ in range(count):
                keyboard.press(Key.backspace)
                keyboard.release(Key.backspace)
                time.sleep(self._key_delay_s)
        except Exception:
            logger.exception("deleting %d chars failed", count)

    def _controller(self):  # noqa: ANN202
        if Controller is None or Key is None:
            return None
        if self._keyboard is None:
            self._keyboard = Controller()
        return self._keyboard

    def _restore_later(self, previous: str) -> None:
        def restore() -> None:
            try:
                pyperclip.copy(previous)
            except Exception:
                logger.warning("restoring clipboard failed")

        timer = threading.Timer(self._restore_delay_s, restore)
        timer.daemon = True
        timer.start()
