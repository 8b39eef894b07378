from __future__ import annotations

from typing import Callable, List, Optional

import threading
import time

import numpy as np
import pytest

from errors import DEVICE_ERROR, INTERNAL_ERROR, DeviceError
from listener import ListeningSession
from models import AudioFrame, AudioSample, LevelReading, VadEventKind
from recording_controller import RecordingController


class FakeAnalyser:
    """Analyser stand-in whose output maps to an exact level."""

    def __init__(self, calls: List[str]) -> None:
        self.calls = calls
        self.level = 0.0
        self.pushed = 0
        self.connected = False
        self.error: Optional[Exception] = None
        self.on_read: Optional[Callable[[], None]] = None

    def connect(self) -> None:
        self.calls.append("analyser.connect")
        self.connected = True

    def disconnect(self) -> None:
        self.calls.append("analyser.disconnect")
        self.connected = False

    def push(self, pcm16_bytes: bytes) -> None:
        self.pushed += 1

    def byte_frequency_data(self) -> np.ndarray:
        if self.error is not None:
            raise self.error
        if self.on_read is not None:
            self.on_read()
        # a flat spectrum of v reads back as v / 128 * 200
        return np.full(512, self.level * 128.0 / 200.0)


class FakeRecorder:
    def __init__(self, calls: List[str], fail: Optional[DeviceError] = None) -> None:
        self.calls = calls
        self.fail = fail
        self.on_frame: Optional[Callable[[AudioFrame], None]] = None

    def start(self, on_frame: Callable[[AudioFrame], None]) -> None:
        self.calls.append("recorder.start")
        if self.fail is not None:
            raise self.fail
        self.on_frame = on_frame

    def stop(self) -> None:
        self.calls.append("recorder.stop")

    def close(self) -> None:
        self.calls.append("recorder.close")

    def emit(self, n_samples: int = 256) -> None:
        assert self.on_frame is not None
        self.on_frame(AudioFrame(pcm16_bytes=b"\x10\x00" * n_samples))


class Harness:
    def __init__(self, fail: Optional[DeviceError] = None, **session_kwargs) -> None:
        self.calls: List[str] = []
        self.now = 0
        self.samples: List[AudioSample] = []
        self.levels: List[LevelReading] = []
        self.errors: List[tuple[str, str]] = []
        self.recorder = FakeRecorder(self.calls, fail)
        self.analyser = FakeAnalyser(self.calls)
        self.controller = RecordingController(
            clock=lambda: self.now,
            on_sample=self.samples.append,
            on_state_change=lambda f, t: self.calls.append(f"state:{t.value}"),
            on_error=lambda code, message: self.errors.append((code, message)),
        )
        self.session = ListeningSession(
            self.recorder,
            self.controller,
            analyser=self.analyser,
            clock=lambda: self.now,
            on_level=self.levels.append,
            on_error=lambda code, message: self.errors.append((code, message)),
            **session_kwargs,
        )

    def run(self, level: float, duration_ms: int) -> list:
        events = []
        self.analyser.level = level
        for _ in range(duration_ms // 16):
            self.now += 16
            self.recorder.emit()
            event = self.session.tick()
            if event is not None:
                events.append(event)
        return events


def test_calibrated_utterance_produces_exactly_one_sample() -> None:
    h = Harness()
    h.session.start(run_loop=False)

    assert h.run(4.0, 30 * 16) == []
    start = h.run(15.0, 600)
    end = h.run(3.0, 1600)

    assert [e.kind for e in start] == [VadEventKind.SPEECH_START]
    assert [e.kind for e in end] == [VadEventKind.SPEECH_END]
    assert len(h.samples) == 1
    assert h.samples[0].mime_type == "audio/wav"
    assert h.session.detector.profile.baseline == pytest.approx(4.0)
    assert h.levels[-1].level == pytest.approx(3.0)


def test_frames_feed_analyser_but_chunks_only_while_recording() -> None:
    h = Harness()
    h.session.start(run_loop=False)
    h.run(4.0, 30 * 16)
    assert h.analyser.pushed == 30
    assert not h.controller.is_recording

    h.run(20.0, 160)
    assert h.controller.is_recording


def test_stop_flushes_and_releases_in_order() -> None:
    h = Harness()
    h.session.start(run_loop=False)
    h.run(4.0, 30 * 16)
    h.run(30.0, 320)
    h.calls.clear()

    h.session.stop()

    assert h.calls == [
        "recorder.stop",
        "state:FLUSHING",
        "state:IDLE",
        "analyser.disconnect",
        "recorder.close",
    ]
    assert len(h.samples) == 1
    assert h.session.active is False
    assert h.session.tick() is None


def test_stop_is_idempotent() -> None:
    h = Harness()
    h.session.start(run_loop=False)
    h.session.stop()
    h.calls.clear()
    h.session.stop()
    assert h.calls == []


def test_device_error_on_start_releases_and_reports() -> None:
    h = Harness(fail=DeviceError("Permission denied", kind="permission"))

    with pytest.raises(DeviceError):
        h.session.start(run_loop=False)

    assert h.calls == [
        "analyser.connect",
        "recorder.start",
        "analyser.disconnect",
        "recorder.close",
    ]
    assert len(h.errors) == 1
    assert h.errors[0][0] == DEVICE_ERROR
    assert "permission" in h.errors[0][1]
    assert h.session.active is False


def test_restart_recalibrates() -> None:
    h = Harness()
    h.session.start(run_loop=False)
    h.run(4.0, 30 * 16)
    h.session.stop()

    h.session.start(run_loop=False)
    assert h.run(50.0, 16 * 29) == []
    assert h.session.detector.profile is None


def _wait_until(predicate, timeout: float = 2.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_tick_failure_stops_session_and_releases_device() -> None:
    h = Harness(tick_interval_s=0.001)
    h.session.start()
    h.analyser.error = RuntimeError("buffer corrupted")

    assert _wait_until(lambda: not h.session.active)
    assert _wait_until(lambda: "recorder.close" in h.calls)
    assert h.calls[-2:] == ["analyser.disconnect", "recorder.close"]
    assert [code for code, _ in h.errors] == [INTERNAL_ERROR]
    assert "buffer corrupted" in h.errors[0][1]
    assert not any(t.name == "level-tick" and t.is_alive() for t in threading.enumerate())



def test_failing_sample_handler_stops_session_and_releases_device() -> None:
    h = Harness(tick_interval_s=0.001)

    def broken_store(sample: AudioSample) -> None:
        raise OSError("disk full")

    h.controller._on_sample = broken_store
    levels = iter([4.0] * 30 + [20.0] * 40)

    def next_tick() -> None:
        h.now += 16
        h.recorder.emit()
        h.analyser.level = next(levels, 1.0)

    h.analyser.on_read = next_tick
    h.session.start()

    assert _wait_until(lambda: not h.session.active)
    assert _wait_until(lambda: "recorder.close" in h.calls)
    assert h.calls[-2:] == ["analyser.disconnect", "recorder.close"]
    assert h.errors[-1][0] == INTERNAL_ERROR
    assert "disk full" in h.errors[-1][1]
