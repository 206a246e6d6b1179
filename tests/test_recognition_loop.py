"""Tests for RecognitionLoop scheduling and transcript merging."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from errors import GENERIC, RATE_LIMITED, CaptureError, ClassificationError
from models import CapturedImage, CycleOutcome, Notification, Severity, Transcript
from recognition_loop import RecognitionLoop


class FakeSampler:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.captures = 0

    def capture(self) -> CapturedImage:
        self.captures += 1
        if self.fail:
            raise CaptureError()
        return CapturedImage(data=b"\xff\xd8", width=640, height=480)


class FakeRecognizer:
    """Returns scripted results; with ``hold=True`` each call waits for release()."""

    def __init__(self, *results: object, hold: bool = False) -> None:
        self.results = list(results)
        self.hold = hold
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self._gates: list[asyncio.Event] = []

    async def classify(self, image: CapturedImage) -> str:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.hold:
                gate = asyncio.Event()
                self._gates.append(gate)
                await gate.wait()
            else:
                await asyncio.sleep(0)
            result = self.results.pop(0) if self.results else ""
            if isinstance(result, Exception):
                raise result
            return str(result)
        finally:
            self.in_flight -= 1

    def release(self) -> None:
        self._gates.pop(0).set()


def _make_loop(
    recognizer: FakeRecognizer,
    sampler: Optional[FakeSampler] = None,
    interval_s: float = 60.0,
    source_active: Callable[[], bool] = lambda: True,
) -> tuple[RecognitionLoop, Transcript, list[Notification]]:
    notifications: list[Notification] = []
    transcript = Transcript()
    loop = RecognitionLoop(
        sampler=sampler or FakeSampler(),
        recognizer=recognizer,
        transcript=transcript,
        is_source_active=source_active,
        interval_s=interval_s,
        on_notify=notifications.append,
    )
    return loop, transcript, notifications


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def test_labels_are_appended_in_order() -> None:
    recognizer = FakeRecognizer("hello", "  world ", "")
    loop, transcript, notifications = _make_loop(recognizer)

    async def scenario() -> None:
        loop.start()
        await loop.tick()
        await loop.tick()
        assert transcript.text == "hello world"
        cycle = await loop.tick()  # empty label
        assert cycle is not None and cycle.outcome == CycleOutcome.LABEL
        loop.stop()

    asyncio.run(scenario())

    assert transcript.text == "hello world"
    assert notifications == []


def test_start_resets_transcript_but_resume_keeps_it() -> None:
    loop, transcript, _ = _make_loop(FakeRecognizer("again"))

    async def scenario() -> None:
        transcript.append("leftover")
        loop.start()
        assert transcript.text == ""
        await loop.tick()
        loop.pause()
        assert loop.state.active is False
        assert loop.state.timer_armed is False
        loop.resume()
        assert loop.state.active is True
        assert loop.state.timer_armed is True
        loop.stop()

    asyncio.run(scenario())

    assert transcript.text == "again"


def test_tick_is_noop_when_inactive() -> None:
    recognizer = FakeRecognizer("hello")
    device_active = {"value": False}
    loop, transcript, _ = _make_loop(recognizer, source_active=lambda: device_active["value"])

    async def scenario() -> None:
        assert await loop.tick() is None  # loop not started
        loop.start()
        assert await loop.tick() is None  # device not active
        loop.stop()

    asyncio.run(scenario())

    assert recognizer.calls == 0
    assert transcript.text == ""


def test_concurrent_ticks_issue_one_call() -> None:
    recognizer = FakeRecognizer("hello", hold=True)
    loop, transcript, _ = _make_loop(recognizer)

    async def scenario() -> None:
        loop.start()
        first = asyncio.create_task(loop.tick())
        await _wait_until(lambda: recognizer.calls == 1)
        assert await loop.tick() is None
        assert await loop.tick() is None
        assert loop.state.in_flight is True
        recognizer.release()
        await first
        assert loop.state.in_flight is False
        loop.stop()

    asyncio.run(scenario())

    assert recognizer.calls == 1
    assert recognizer.max_in_flight == 1
    assert transcript.text == "hello"


def test_timer_never_overlaps_cycles() -> None:
    class SlowRecognizer(FakeRecognizer):
        async def classify(self, image: CapturedImage) -> str:
            self.calls += 1
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            await asyncio.sleep(0.03)  # slower than the interval
            self.in_flight -= 1
            return "a"

    recognizer = SlowRecognizer()
    loop, transcript, _ = _make_loop(recognizer, interval_s=0.005)

    async def scenario() -> None:
        loop.start()
        await _wait_until(lambda: recognizer.calls >= 3)
        loop.stop()

    asyncio.run(scenario())

    assert recognizer.max_in_flight == 1


def test_stop_discards_late_result() -> None:
    recognizer = FakeRecognizer("hello", "world", hold=True)
    loop, transcript, notifications = _make_loop(recognizer)

    async def scenario() -> None:
        loop.start()
        first = asyncio.create_task(loop.tick())
        await _wait_until(lambda: recognizer.calls == 1)
        recognizer.release()
        await first
        assert transcript.text == "hello"

        pending = asyncio.create_task(loop.tick())
        await _wait_until(lambda: recognizer.calls == 2)
        loop.stop()
        recognizer.release()  # resolves with "world" after the stop
        cycle = await pending
        assert cycle is not None and cycle.label == "world"
        assert loop.state.in_flight is False
        assert loop.state.timer_armed is False

    asyncio.run(scenario())

    assert transcript.text == "hello"
    assert notifications == []


def test_straggler_blocks_next_session_until_it_resolves() -> None:
    recognizer = FakeRecognizer("old", "new", hold=True)
    loop, transcript, _ = _make_loop(recognizer)

    async def scenario() -> None:
        loop.start()
        straggler = asyncio.create_task(loop.tick())
        await _wait_until(lambda: recognizer.calls == 1)
        loop.stop()
        loop.start()  # new session while the old call is still out
        assert await loop.tick() is None
        recognizer.release()
        await straggler
        assert transcript.text == ""

        fresh = asyncio.create_task(loop.tick())
        await _wait_until(lambda: recognizer.calls == 2)
        recognizer.release()
        await fresh
        loop.stop()

    asyncio.run(scenario())

    assert transcript.text == "new"
    assert recognizer.max_in_flight == 1


def test_rate_limit_failure_keeps_timer_running() -> None:
    recognizer = FakeRecognizer(ClassificationError("slow down", code=RATE_LIMITED), "ok")
    loop, transcript, notifications = _make_loop(recognizer, interval_s=0.01)

    async def scenario() -> None:
        loop.start()
        await _wait_until(lambda: transcript.text == "ok")
        loop.stop()

    asyncio.run(scenario())

    assert recognizer.calls >= 2
    assert notifications[0].severity == Severity.WARNING
    assert notifications[0].title == "Slow Down"


def test_generic_failure_notifies_and_leaves_transcript() -> None:
    recognizer = FakeRecognizer("hello", ClassificationError("boom", code=GENERIC), RuntimeError("sdk bug"))
    loop, transcript, notifications = _make_loop(recognizer)

    async def scenario() -> None:
        loop.start()
        await loop.tick()
        failed = await loop.tick()
        assert failed is not None and failed.outcome == CycleOutcome.FAILURE
        crashed = await loop.tick()
        assert crashed is not None and crashed.error is not None
        assert crashed.error.code == GENERIC
        loop.stop()

    asyncio.run(scenario())

    assert transcript.text == "hello"
    assert [n.title for n in notifications] == ["Recognition Error", "Recognition Error"]
    assert all(n.severity == Severity.ERROR for n in notifications)


def test_capture_error_skips_classification() -> None:
    recognizer = FakeRecognizer("hello")
    sampler = FakeSampler(fail=True)
    loop, transcript, notifications = _make_loop(recognizer, sampler=sampler)

    async def scenario() -> None:
        loop.start()
        cycle = await loop.tick()
        assert cycle is not None and cycle.outcome == CycleOutcome.FAILURE
        assert loop.state.in_flight is False
        loop.stop()

    asyncio.run(scenario())

    assert sampler.captures == 1
    assert recognizer.calls == 0
    assert transcript.text == ""
    assert [n.title for n in notifications] == ["Capture Error"]


def test_busy_callback_tracks_in_flight() -> None:
    busy: list[bool] = []
    loop = RecognitionLoop(
        sampler=FakeSampler(),
        recognizer=FakeRecognizer("hi"),
        transcript=Transcript(),
        is_source_active=lambda: True,
        interval_s=60.0,
        on_busy_change=busy.append,
    )

    async def scenario() -> None:
        loop.start()
        await loop.tick()
        loop.stop()

    asyncio.run(scenario())

    assert busy == [True, False]


def test_unexpected_capture_exception_keeps_timer_running() -> None:
    class FlakySampler(FakeSampler):
        def capture(self) -> CapturedImage:
            self.captures += 1
            if self.captures == 1:
                raise ValueError("encoder exploded")
            return CapturedImage(data=b"\xff\xd8", width=640, height=480)

    sampler = FlakySampler()
    recognizer = FakeRecognizer("hello")
    loop, transcript, notifications = _make_loop(recognizer, sampler=sampler, interval_s=0.01)

    async def scenario() -> None:
        loop.start()
        await _wait_until(lambda: transcript.text == "hello")
        assert loop.state.timer_armed is True
        loop.stop()

    asyncio.run(scenario())

    assert sampler.captures >= 2
    assert recognizer.calls >= 1
    assert notifications[0].title == "Capture Error"
    assert notifications[0].severity == Severity.ERROR


def test_raising_callback_does_not_kill_timer() -> None:
    recognizer = FakeRecognizer(ClassificationError("boom"), "later")
    transcript = Transcript()
    seen: list[Notification] = []

    def noisy_notify(notification: Notification) -> None:
        seen.append(notification)
        raise RuntimeError("ui went away")

    loop = RecognitionLoop(
        sampler=FakeSampler(),
        recognizer=recognizer,
        transcript=transcript,
        is_source_active=lambda: True,
        interval_s=0.01,
        on_notify=noisy_notify,
    )

    async def scenario() -> None:
        loop.start()
        await _wait_until(lambda: transcript.text == "later")
        assert loop.state.in_flight is False
        loop.stop()

    asyncio.run(scenario())

    assert [n.title for n in seen] == ["Recognition Error"]


def test_pause_and_resume_keep_label_in_flight() -> None:
    recognizer = FakeRecognizer("kept", hold=True)
    loop, transcript, notifications = _make_loop(recognizer)

    async def scenario() -> None:
        loop.start()
        pending = asyncio.create_task(loop.tick())
        await _wait_until(lambda: recognizer.calls == 1)
        loop.pause()
        loop.resume()
        recognizer.release()
        await pending
        loop.stop()

    asyncio.run(scenario())

    assert transcript.text == "kept"
    assert notifications == []


def test_label_lands_while_paused_but_not_after_stop() -> None:
    recognizer = FakeRecognizer("paused", "stopped", hold=True)
    loop, transcript, _ = _make_loop(recognizer)

    async def scenario() -> None:
        loop.start()
        first = asyncio.create_task(loop.tick())
        await _wait_until(lambda: recognizer.calls == 1)
        loop.pause()
        recognizer.release()
        await first
        assert transcript.text == "paused"

        loop.resume()
        second = asyncio.create_task(loop.tick())
        await _wait_until(lambda: recognizer.calls == 2)
        loop.pause()
        loop.stop()  # stopping a paused loop still drops the call in flight
        recognizer.release()
        await second

    asyncio.run(scenario())

    assert transcript.text == "paused"
