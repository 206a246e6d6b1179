"""Protocol interfaces used by SessionController and its collaborators."""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol

from errors import DeviceRuntimeError
from models import CaptureConstraints, CapturedImage


class FrameStream(Protocol):
    def start(
        self,
        on_ready: Callable[[], None],
        on_error: Callable[[DeviceRuntimeError], None],
    ) -> None: ...

    def latest_frame(self) -> Optional[Any]: ...

    def stop(self) -> None: ...


class CameraDevice(Protocol):
    def request_access(self, constraints: CaptureConstraints) -> FrameStream: ...


class Recognizer(Protocol):
    async def classify(self, image: CapturedImage) -> str: ...


class Clipboard(Protocol):
    def write(self, text: str) -> None: ...
