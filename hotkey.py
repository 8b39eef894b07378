"""Hold-to-speak global key based on pynput."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

logger = logging.getLogger("voiceclone.hotkey")


class HoldToSpeakKey:
    """Calls ``on_hold`` when the key goes down and ``on_release`` when it
    comes back up. Key repeat while held does not re-trigger ``on_hold``.
    """

    def __init__(self, key_name: str = "Key.alt_l") -> None:
        self.key_name = key_name
        self._listener: Optional[object] = None
        self._held = False
        self._lock = threading.Lock()
        self._on_hold: Optional[Callable[[], None]] = None
        self._on_release: Optional[Callable[[], None]] = None

    @property
    def held(self) -> bool:
        return self._held

    def start(self, on_hold: Callable[[], None], on_release: Callable[[], None]) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")
        self._on_hold = on_hold
        self._on_release = on_release
        self._listener = keyboard.Listener(on_press=self.key_down, on_release=self.key_up)
        self._listener.start()
        logger.info("hold-to-speak bound to %s", self.key_name)

    def key_down(self, key: object) -> None:
        if str(key) != self.key_name:
            return
        with self._lock:
            if self._held:
                return
            self._held = True
        if self._on_hold:
            self._on_hold()

    def key_up(self, key: object) -> None:
        if str(key) != self.key_name:
            return
        with self._lock:
            if not self._held:
                return
            self._held = False
        if self._on_release:
            self._on_release()

    def stop(self) -> None:
        listener, self._listener = self._listener, None
        if listener is not None:
            listener.stop()
        self._held = False
