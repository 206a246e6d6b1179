"""Global hotkeys based on pynput.

Each binding fires once per physical press; holding the key does not
repeat the action.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore


class GlobalHotkeyAdapter:
    def __init__(self, bindings: Optional[dict[str, Callable[[], None]]] = None) -> None:
        self._bindings: dict[str, Callable[[], None]] = dict(bindings or {})
        self._listener: Optional[object] = None
        self._held: set[str] = set()
        self._lock = threading.Lock()

    def bind(self, hotkey_name: str, action: Callable[[], None]) -> None:
        with self._lock:
            self._bindings[hotkey_name] = action

    def start(self) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")
        if self._listener is not None:
            return
        self._listener = keyboard.Listener(on_press=self.handle_press, on_release=self.handle_release)
        self._listener.start()

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None

    def handle_press(self, key: object) -> None:
        name = str(key)
        with self._lock:
            action = self._bindings.get(name)
            if action is None or name in self._held:
                return
            self._held.add(name)
        action()

    def handle_release(self, key: object) -> None:
        with self._lock:
            self._held.discard(str(key))
