"""Periodic sample-and-classify loop that feeds the transcript."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional

from loguru import logger

from errors import (
    CAPTURE_ERROR,
    ERROR_MESSAGES,
    GENERIC,
    RATE_LIMITED,
    CaptureError,
    ClassificationError,
)
from frame_sampler import FrameSampler
from interfaces import Recognizer
from models import (
    CycleOutcome,
    ErrorInfo,
    LoopState,
    Notification,
    RecognitionCycle,
    Severity,
    Transcript,
)

NotifyCallback = Callable[[Notification], None]
BusyCallback = Callable[[bool], None]


class RecognitionLoop:
    """Fixed-delay driver around one sample -> classify -> merge cycle.

    The timer is an asyncio task that sleeps ``interval_s`` and then awaits
    ``tick()``; it is only re-armed once the previous cycle has finished,
    so at most one classification call is ever outstanding. The cycle
    itself runs in a shielded task: stopping the loop cancels the timer
    but leaves the call alone, and the epoch check drops its result.
    Pausing only cancels the timer, so a call in flight still lands.
    """

    def __init__(
        self,
        sampler: FrameSampler,
        recognizer: Recognizer,
        transcript: Transcript,
        is_source_active: Callable[[], bool],
        interval_s: float = 5.0,
        on_notify: Optional[NotifyCallback] = None,
        on_busy_change: Optional[BusyCallback] = None,
    ) -> None:
        self._sampler = sampler
        self._recognizer = recognizer
        self._transcript = transcript
        self._is_source_active = is_source_active
        self._interval_s = interval_s
        self._on_notify = on_notify
        self._on_busy_change = on_busy_change

        self._active = False
        self._in_flight = False
        self._timer: Optional[asyncio.Task[None]] = None
        self._epoch = 0
        self._cycle_task: Optional[asyncio.Task[RecognitionCycle]] = None

    @property
    def state(self) -> LoopState:
        return LoopState(
            active=self._active,
            in_flight=self._in_flight,
            timer_armed=self._timer is not None,
        )

    @property
    def active(self) -> bool:
        return self._active

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def recognizer(self) -> Recognizer:
        return self._recognizer

    @recognizer.setter
    def recognizer(self, recognizer: Recognizer) -> None:
        self._recognizer = recognizer

    @property
    def interval_s(self) -> float:
        return self._interval_s

    @interval_s.setter
    def interval_s(self, value: float) -> None:
        # Picked up by the next sleep; the running one is not shortened.
        self._interval_s = value

    def start(self) -> None:
        """Begin a new session: blank transcript, timer armed."""
        self._disarm()
        self._epoch += 1
        self._transcript.clear()
        self._arm()
        logger.info(f"Recognition loop started (interval {self._interval_s:.1f}s)")

    def resume(self) -> None:
        if self._active:
            return
        self._arm()
        logger.info("Recognition loop resumed")

    def pause(self) -> None:
        if not self._active:
            return
        self._disarm()
        logger.info("Recognition loop paused")

    def stop(self) -> None:
        # A paused loop can still have a call in flight; drop it too.
        was_active = self._active
        self._disarm()
        self._epoch += 1
        if was_active:
            logger.info("Recognition loop stopped")

    async def tick(self) -> Optional[RecognitionCycle]:
        if not self._active or not self._is_source_active():
            logger.debug("tick skipped: loop or device inactive")
            return None
        if self._in_flight:
            logger.debug("tick skipped: cycle in flight")
            return None
        self._set_in_flight(True)
        self._cycle_task = asyncio.ensure_future(self._run_cycle(self._epoch))
        return await asyncio.shield(self._cycle_task)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _arm(self) -> None:
        self._active = True
        self._timer = asyncio.get_running_loop().create_task(self._drive())

    def _disarm(self) -> None:
        self._active = False
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    async def _drive(self) -> None:
        while True:
            await asyncio.sleep(self._interval_s)
            try:
                await self.tick()
            except Exception as exc:
                logger.exception(f"Recognition cycle crashed: {exc}")

    async def _run_cycle(self, epoch: int) -> RecognitionCycle:
        cycle = RecognitionCycle(started_at=time.monotonic())
        try:
            try:
                cycle.image = self._sampler.capture()
            except CaptureError as exc:
                cycle.outcome = CycleOutcome.FAILURE
                cycle.error = ErrorInfo(exc.code, exc.message)
                logger.warning(f"Capture failed: {exc.message}")
                self._notify("Capture Error", ERROR_MESSAGES[exc.code], Severity.ERROR)
                return cycle
            except Exception as exc:
                cycle.outcome = CycleOutcome.FAILURE
                cycle.error = ErrorInfo(CAPTURE_ERROR, str(exc))
                logger.exception(f"Capture raised unexpectedly: {exc}")
                self._notify("Capture Error", ERROR_MESSAGES[CAPTURE_ERROR], Severity.ERROR)
                return cycle

            try:
                cycle.label = await self._recognizer.classify(cycle.image)
                cycle.outcome = CycleOutcome.LABEL
            except ClassificationError as exc:
                cycle.outcome = CycleOutcome.FAILURE
                cycle.error = ErrorInfo(exc.code, exc.message)
            except Exception as exc:
                logger.exception(f"Recognizer raised unexpectedly: {exc}")
                cycle.outcome = CycleOutcome.FAILURE
                cycle.error = ErrorInfo(GENERIC, str(exc))

            if epoch != self._epoch:
                logger.debug(f"Discarding result of stopped cycle ({cycle.outcome.value})")
                return cycle
            self._merge(cycle)
            return cycle
        finally:
            self._set_in_flight(False)

    def _merge(self, cycle: RecognitionCycle) -> None:
        if cycle.outcome == CycleOutcome.LABEL:
            if self._transcript.append(cycle.label):
                logger.info(f"Recognized: {cycle.label.strip()!r}")
            return
        if cycle.error is None:
            return
        if cycle.error.code == RATE_LIMITED:
            logger.warning(f"Recognition rate limited: {cycle.error.message}")
            self._notify("Slow Down", ERROR_MESSAGES[RATE_LIMITED], Severity.WARNING)
        else:
            logger.warning(f"Recognition failed: {cycle.error.message}")
            self._notify("Recognition Error", ERROR_MESSAGES[GENERIC], Severity.ERROR)

    def _set_in_flight(self, value: bool) -> None:
        if self._in_flight == value:
            return
        self._in_flight = value
        if self._on_busy_change:
            self._on_busy_change(value)

    def _notify(self, title: str, description: str, severity: Severity) -> None:
        if self._on_notify:
            self._on_notify(Notification(title, description, severity))
