"""Core data models for the app."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class SessionState(str, Enum):
    IDLE = "IDLE"
    ACQUIRING = "ACQUIRING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"


class DeviceStatus(str, Enum):
    IDLE = "IDLE"
    ACQUIRING = "ACQUIRING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"


class CycleOutcome(str, Enum):
    PENDING = "pending"
    LABEL = "label"
    FAILURE = "failure"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class ErrorInfo:
    code: str
    message: str


@dataclass(frozen=True)
class CaptureConstraints:
    width: int = 640
    height: int = 480
    exact: bool = False


@dataclass
class CapturedImage:
    data: bytes
    width: int
    height: int
    mime_type: str = "image/jpeg"

    def to_data_uri(self) -> str:
        payload = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{payload}"


@dataclass
class RecognitionCycle:
    started_at: float
    image: Optional[CapturedImage] = None
    outcome: CycleOutcome = CycleOutcome.PENDING
    label: str = ""
    error: Optional[ErrorInfo] = None


@dataclass(frozen=True)
class LoopState:
    active: bool
    in_flight: bool
    timer_armed: bool


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    severity: Severity = Severity.INFO


class Transcript:
    """Space-joined sequence of recognized tokens.

    Appends only ever add tokens; the only way to remove content is
    ``clear()``. ``on_change`` fires with the new text whenever the
    content actually changes.
    """

    def __init__(self, on_change: Optional[Callable[[str], None]] = None) -> None:
        self._tokens: list[str] = []
        self._on_change = on_change

    @property
    def text(self) -> str:
        return " ".join(self._tokens)

    @property
    def tokens(self) -> tuple[str, ...]:
        return tuple(self._tokens)

    def __bool__(self) -> bool:
        return bool(self._tokens)

    def __len__(self) -> int:
        return len(self._tokens)

    def append(self, label: str) -> bool:
        token = label.strip()
        if not token:
            return False
        self._tokens.append(token)
        self._changed()
        return True

    def clear(self) -> bool:
        if not self._tokens:
            return False
        self._tokens = []
        self._changed()
        return True

    def _changed(self) -> None:
        if self._on_change:
            self._on_change(self.text)
