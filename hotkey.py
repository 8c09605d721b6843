"""Global activation key: one toggle per physical key press."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

logger = logging.getLogger(__name__)


def parse_hotkey(name: str) -> Any:
    """Resolve ``Key.<name>`` or a single character to a pynput key object."""
    if keyboard is None:
        raise RuntimeError("pynput is not installed")
    name = (name or "").strip()
    if name.startswith("Key."):
        key = getattr(keyboard.Key, name[len("Key."):], None)
        if key is not None:
            return key
    elif len(name) == 1:
        return keyboard.KeyCode.from_char(name.lower())
    raise ValueError(f"unknown hotkey: {name!r}")


class ToggleHotkey:
    """Turns presses of one global key into activation toggles.

    Auto-repeat is swallowed: the key has to be released before it toggles
    again.  pynput delivers press and release on its single listener thread.
    """

    def __init__(self, hotkey_name: str = "Key.cmd_r") -> None:
        self.hotkey_name = hotkey_name
        self._key: Any = None
        self._listener: Optional[Any] = None
        self._on_toggle: Optional[Callable[[], None]] = None
        self._held = False

    @property
    def running(self) -> bool:
        return self._listener is not None

    def start(self, on_toggle: Callable[[], None]) -> None:
        if self.running:
            return
        self._key = parse_hotkey(self.hotkey_name)
        self._on_toggle = on_toggle
        self._held = False
        self._listener = keyboard.Listener(on_press=self._handle_press, on_release=self._handle_release)
        self._listener.start()
        logger.info("toggle hotkey %s active", self.hotkey_name)

    def stop(self) -> None:
        listener, self._listener = self._listener, None
        if listener is None:
            return
        listener.stop()
        logger.info("toggle hotkey %s released", self.hotkey_name)

    def _handle_press(self, key: Any) -> None:
        if key != self._key or self._held:
            return
        self._held = True
        if self._on_toggle is None:
            return
        try:
            self._on_toggle()
        except Exception:
            logger.exception("toggle handler failed")

    def _handle_release(self, key: Any) -> None:
        if key == self._key:
            self._held = False
