"""Camera acquisition and release for one device session.

Each call to ``acquire`` is one attempt. The stream's reader thread
resolves a per-attempt readiness future through the event loop;
callbacks belonging to an older attempt are ignored.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

from loguru import logger

from errors import (
    ABORTED,
    DEVICE_BUSY,
    UNKNOWN,
    DeviceAcquisitionError,
    DeviceRuntimeError,
)
from interfaces import CameraDevice, FrameStream
from models import CaptureConstraints, DeviceStatus, ErrorInfo

RuntimeErrorCallback = Callable[[DeviceRuntimeError], None]


class DeviceSession:
    def __init__(
        self,
        device: CameraDevice,
        constraints: CaptureConstraints = CaptureConstraints(),
        ready_timeout_s: float = 10.0,
        on_runtime_error: Optional[RuntimeErrorCallback] = None,
    ) -> None:
        self._device = device
        self._constraints = constraints
        self._ready_timeout_s = ready_timeout_s
        self._on_runtime_error = on_runtime_error

        self._status = DeviceStatus.IDLE
        self._stream: Optional[FrameStream] = None
        self._last_error: Optional[ErrorInfo] = None
        self._attempt = 0
        self._ready: Optional[asyncio.Future[None]] = None

    @property
    def status(self) -> DeviceStatus:
        return self._status

    @property
    def is_active(self) -> bool:
        return self._status == DeviceStatus.ACTIVE

    @property
    def last_error(self) -> Optional[ErrorInfo]:
        return self._last_error

    def latest_frame(self) -> Optional[Any]:
        if self._status != DeviceStatus.ACTIVE or self._stream is None:
            return None
        return self._stream.latest_frame()

    async def acquire(self) -> None:
        """Open the camera and wait until it produces frames.

        Raises ``DeviceAcquisitionError`` on failure, after the status has
        moved to FAILED and ``last_error`` has been set. A ``release()``
        during the attempt makes it fail with ``ABORTED``.
        """
        self.release()
        self._attempt += 1
        attempt = self._attempt
        self._status = DeviceStatus.ACQUIRING
        loop = asyncio.get_running_loop()

        try:
            stream = await asyncio.to_thread(self._device.request_access, self._constraints)
        except DeviceAcquisitionError as exc:
            self._fail_attempt(attempt, exc)
            raise
        except Exception as exc:
            error = DeviceAcquisitionError(UNKNOWN, f"An unexpected error occurred: {exc}")
            self._fail_attempt(attempt, error)
            raise error from exc

        if attempt != self._attempt:
            stream.stop()
            raise DeviceAcquisitionError(ABORTED)

        ready: asyncio.Future[None] = loop.create_future()
        self._stream = stream
        self._ready = ready

        def on_ready() -> None:
            loop.call_soon_threadsafe(self._resolve_ready, attempt)

        def on_error(exc: DeviceRuntimeError) -> None:
            loop.call_soon_threadsafe(self._handle_stream_error, attempt, exc)

        stream.start(on_ready, on_error)

        try:
            await asyncio.wait_for(ready, timeout=self._ready_timeout_s)
        except asyncio.CancelledError:
            if attempt != self._attempt:
                raise DeviceAcquisitionError(ABORTED) from None
            self.release()
            raise
        except asyncio.TimeoutError:
            error = DeviceAcquisitionError(ABORTED, "Camera did not start producing frames in time.")
            self._fail_attempt(attempt, error)
            raise error from None
        except DeviceRuntimeError as exc:
            error = DeviceAcquisitionError(DEVICE_BUSY)
            self._fail_attempt(attempt, error)
            raise error from exc
        finally:
            if self._ready is ready:
                self._ready = None

        self._status = DeviceStatus.ACTIVE
        self._last_error = None
        logger.info("Device session active")

    def release(self) -> None:
        """Stop the stream and return to IDLE. Safe to call at any time."""
        self._attempt += 1
        ready, self._ready = self._ready, None
        if ready is not None and not ready.done():
            ready.cancel()
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
            logger.info("Device session released")
        self._status = DeviceStatus.IDLE

    def _fail_attempt(self, attempt: int, error: DeviceAcquisitionError) -> None:
        if attempt != self._attempt:
            return
        logger.warning(f"Camera acquisition failed: {error.code} {error.message}")
        self.release()
        self._status = DeviceStatus.FAILED
        self._last_error = ErrorInfo(error.code, error.message)

    def _resolve_ready(self, attempt: int) -> None:
        ready = self._ready
        if attempt != self._attempt or ready is None or ready.done():
            return
        ready.set_result(None)

    def _handle_stream_error(self, attempt: int, exc: DeviceRuntimeError) -> None:
        if attempt != self._attempt:
            return
        ready = self._ready
        if ready is not None and not ready.done():
            ready.set_exception(exc)
            return
        if self._status != DeviceStatus.ACTIVE:
            return
        logger.error(f"Camera stream failed: {exc.message}")
        self.release()
        self._status = DeviceStatus.FAILED
        self._last_error = ErrorInfo(exc.code, exc.message)
        if self._on_runtime_error:
            self._on_runtime_error(exc)
