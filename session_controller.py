"""State-machine based camera session orchestration."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from loguru import logger

from device_session import DeviceSession
from errors import (
    ERROR_MESSAGES,
    UNSUPPORTED,
    ClipboardError,
    DeviceAcquisitionError,
    DeviceRuntimeError,
    SignTextError,
)
from frame_sampler import FrameSampler
from interfaces import CameraDevice, Clipboard, Recognizer
from models import CaptureConstraints, ErrorInfo, Notification, SessionState, Severity, Transcript
from recognition_loop import RecognitionLoop

StateCallback = Callable[[SessionState, SessionState], None]
TranscriptCallback = Callable[[str], None]
NotifyCallback = Callable[[Notification], None]
BusyCallback = Callable[[bool], None]


class SessionController:
    def __init__(
        self,
        camera: CameraDevice,
        recognizer: Recognizer,
        clipboard: Clipboard,
        interval_s: float = 5.0,
        constraints: CaptureConstraints = CaptureConstraints(),
        ready_timeout_s: float = 10.0,
        jpeg_quality: int = 85,
        on_state_change: Optional[StateCallback] = None,
        on_transcript: Optional[TranscriptCallback] = None,
        on_notify: Optional[NotifyCallback] = None,
        on_busy_change: Optional[BusyCallback] = None,
    ) -> None:
        self._clipboard = clipboard
        self._on_state_change = on_state_change
        self._on_notify = on_notify
        self._on_busy_change = on_busy_change

        self._state = SessionState.IDLE
        self._error: Optional[ErrorInfo] = None
        self._generation = 0
        self._transcript = Transcript(on_change=on_transcript)
        self._device = DeviceSession(
            camera,
            constraints=constraints,
            ready_timeout_s=ready_timeout_s,
            on_runtime_error=self._handle_device_runtime_error,
        )
        self._loop = RecognitionLoop(
            sampler=FrameSampler(self._device.latest_frame, jpeg_quality=jpeg_quality),
            recognizer=recognizer,
            transcript=self._transcript,
            is_source_active=lambda: self._device.is_active,
            interval_s=interval_s,
            on_notify=self._notify,
            on_busy_change=self._handle_busy_change,
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def error(self) -> Optional[ErrorInfo]:
        """Persistent device error while FAILED, otherwise None."""
        return self._error

    @property
    def transcript(self) -> str:
        return self._transcript.text

    @property
    def recognizing(self) -> bool:
        return self._loop.in_flight

    @property
    def paused(self) -> bool:
        return self._state == SessionState.ACTIVE and not self._loop.active

    @property
    def recognition_loop(self) -> RecognitionLoop:
        return self._loop

    @property
    def transcript_actions_enabled(self) -> bool:
        return bool(self._transcript) and not self._loop.in_flight

    def set_interval(self, interval_s: float) -> None:
        self._loop.interval_s = interval_s

    def replace_recognizer(self, recognizer: Recognizer) -> None:
        """Swap the classifier; a call already in flight finishes on the old one."""
        self._loop.recognizer = recognizer

    async def start(self) -> None:
        if self._state in (SessionState.ACQUIRING, SessionState.ACTIVE):
            return
        self._generation += 1
        generation = self._generation
        self._error = None
        self._transition(SessionState.ACQUIRING)
        try:
            await self._device.acquire()
        except DeviceAcquisitionError as exc:
            if generation != self._generation:
                logger.info(f"Acquisition ended after stop ({exc.code})")
                return
            self._fail(exc)
            return
        except asyncio.CancelledError:
            if generation == self._generation:
                self._transition(SessionState.IDLE)
            raise
        # New session: the loop blanks the transcript before ACTIVE is announced.
        self._loop.start()
        self._transition(SessionState.ACTIVE)

    def stop(self) -> None:
        self._generation += 1
        self._loop.stop()
        self._device.release()
        self._transcript.clear()
        self._error = None
        self._transition(SessionState.IDLE)

    def close(self) -> None:
        self.stop()

    async def __aenter__(self) -> "SessionController":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    def pause(self) -> None:
        if self._state == SessionState.ACTIVE:
            self._loop.pause()

    def resume(self) -> None:
        if self._state == SessionState.ACTIVE:
            self._loop.resume()

    def clear_transcript(self) -> bool:
        if not self.transcript_actions_enabled:
            return False
        self._transcript.clear()
        self._notify(Notification("Transcript Cleared", "The recognized text has been cleared."))
        return True

    async def copy_transcript(self) -> bool:
        if not self.transcript_actions_enabled:
            return False
        text = self._transcript.text
        try:
            await asyncio.to_thread(self._clipboard.write, text)
        except ClipboardError as exc:
            logger.warning(f"Clipboard write failed: {exc.message}")
            self._notify(Notification("Copy Failed", exc.message, Severity.ERROR))
            return False
        self._notify(Notification("Copied", "Transcript copied to clipboard."))
        return True

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _fail(self, exc: SignTextError) -> None:
        self._error = ErrorInfo(exc.code, exc.message)
        self._transition(SessionState.FAILED)
        if exc.code == UNSUPPORTED:
            title = "Camera Unsupported"
        else:
            title = "Camera Error"
        self._notify(Notification(title, exc.message, Severity.ERROR))

    def _handle_device_runtime_error(self, exc: DeviceRuntimeError) -> None:
        if self._state != SessionState.ACTIVE:
            return
        self._generation += 1
        self._loop.stop()
        self._transcript.clear()
        self._fail(exc)

    def _handle_busy_change(self, busy: bool) -> None:
        if self._on_busy_change:
            self._on_busy_change(busy)

    def _notify(self, notification: Notification) -> None:
        if self._on_notify:
            self._on_notify(notification)

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        logger.info(f"Session {from_state.value} -> {to_state.value}")
        if self._on_state_change:
            self._on_state_change(from_state, to_state)


def describe_error(error: Optional[ErrorInfo]) -> str:
    if error is None:
        return ""
    return error.message or ERROR_MESSAGES.get(error.code, error.code)
