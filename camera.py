"""OpenCV webcam adapter.

``Cv2CameraDevice.request_access`` opens the device and returns a
``Cv2FrameStream``. The stream reads frames on a daemon thread, keeps
the newest one, and reports readiness (first frame) and later read
failures through the callbacks handed to ``start``.
"""

from __future__ import annotations

import os
import threading
import time
from pathlib import Path
from typing import Any, Callable, Optional

from loguru import logger

from errors import (
    CONSTRAINT_UNSATISFIABLE,
    DEVICE_BUSY,
    DEVICE_NOT_FOUND,
    PERMISSION_DENIED,
    UNKNOWN,
    UNSUPPORTED,
    DeviceAcquisitionError,
    DeviceRuntimeError,
)
from models import CaptureConstraints

try:
    import cv2
except Exception:  # pragma: no cover
    cv2 = None  # type: ignore


def classify_open_failure(index: int, dev_dir: Path = Path("/dev")) -> str:
    """Best-effort reason for a VideoCapture that refused to open."""
    node = dev_dir / f"video{index}"
    if not node.exists():
        return DEVICE_NOT_FOUND
    if not os.access(node, os.R_OK | os.W_OK):
        return PERMISSION_DENIED
    return DEVICE_BUSY


class Cv2FrameStream:
    """Newest-frame reader over an opened ``cv2.VideoCapture``.

    ``stop()`` never blocks the caller: it signals the reader thread and the
    capture is released by whichever side sees the reader finished, so
    ``release()`` never races a ``read()`` in progress.
    """

    def __init__(
        self,
        capture: Any,
        read_failure_limit: int = 5,
        retry_delay_s: float = 0.05,
    ) -> None:
        self._capture = capture
        self._read_failure_limit = read_failure_limit
        self._retry_delay_s = retry_delay_s
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._reader_done = True
        self._frame: Any = None

    def start(
        self,
        on_ready: Callable[[], None],
        on_error: Callable[[DeviceRuntimeError], None],
    ) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._reader_done = False
        self._thread = threading.Thread(
            target=self._reader, args=(on_ready, on_error), daemon=True
        )
        self._thread.start()

    def latest_frame(self) -> Optional[Any]:
        with self._lock:
            if self._frame is None:
                return None
            return self._frame.copy()

    def stop(self) -> None:
        self._stop_event.set()
        with self._lock:
            self._frame = None
            if self._reader_done:
                self._release_locked()
        self._thread = None

    def _release_locked(self) -> None:
        capture, self._capture = self._capture, None
        if capture is not None:
            capture.release()

    def _reader(
        self,
        on_ready: Callable[[], None],
        on_error: Callable[[DeviceRuntimeError], None],
    ) -> None:
        try:
            self._read_frames(on_ready, on_error)
        finally:
            with self._lock:
                self._reader_done = True
                if self._stop_event.is_set():
                    self._release_locked()

    def _read_frames(
        self,
        on_ready: Callable[[], None],
        on_error: Callable[[DeviceRuntimeError], None],
    ) -> None:
        ready = False
        failures = 0
        while not self._stop_event.is_set():
            capture = self._capture
            if capture is None:
                return
            try:
                ok, frame = capture.read()
            except Exception as exc:
                logger.warning(f"cv2_camera: read raised {exc}")
                ok, frame = False, None
            if self._stop_event.is_set():
                return
            if ok and frame is not None:
                failures = 0
                with self._lock:
                    self._frame = frame
                if not ready:
                    ready = True
                    on_ready()
                continue
            failures += 1
            if failures >= self._read_failure_limit:
                logger.warning(f"cv2_camera: {failures} consecutive read failures")
                on_error(DeviceRuntimeError())
                return
            time.sleep(self._retry_delay_s)


class Cv2CameraDevice:
    def __init__(self, index: int = 0, read_failure_limit: int = 5) -> None:
        self._index = index
        self._read_failure_limit = read_failure_limit

    def request_access(self, constraints: CaptureConstraints) -> Cv2FrameStream:
        if cv2 is None:
            raise DeviceAcquisitionError(UNSUPPORTED)
        try:
            capture = cv2.VideoCapture(self._index)
        except PermissionError as exc:
            raise DeviceAcquisitionError(PERMISSION_DENIED) from exc
        except Exception as exc:
            raise DeviceAcquisitionError(UNKNOWN, f"An unexpected error occurred: {exc}") from exc

        if not capture.isOpened():
            capture.release()
            reason = classify_open_failure(self._index)
            logger.warning(f"cv2_camera: failed to open device {self._index} ({reason})")
            raise DeviceAcquisitionError(reason)

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)
        width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        if constraints.exact and (width, height) != (constraints.width, constraints.height):
            capture.release()
            raise DeviceAcquisitionError(
                CONSTRAINT_UNSATISFIABLE,
                f"Camera does not support {constraints.width}x{constraints.height} "
                f"(got {width}x{height}).",
            )
        logger.info(f"cv2_camera: opened device {self._index} at {width}x{height}")
        return Cv2FrameStream(capture, read_failure_limit=self._read_failure_limit)
