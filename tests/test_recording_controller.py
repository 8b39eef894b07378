from __future__ import annotations

import io
import threading
import wave

from errors import DEVICE_ERROR
from models import AudioSample, RecordingState, VadEvent, VadEventKind
from recording_controller import RecordingController, pcm_to_wav


class FakePlayback:
    def __init__(self, playing: bool = False) -> None:
        self.playing = playing
        self.stop_calls = 0

    @property
    def is_playing(self) -> bool:
        return self.playing

    def play(self, audio: bytes, sample_rate: int = 16000) -> None:
        self.playing = True

    def speak_locally(self, text: str) -> None:
        self.playing = True

    def stop(self) -> None:
        self.stop_calls += 1
        self.playing = False


def _start() -> VadEvent:
    return VadEvent(VadEventKind.SPEECH_START, 0, 20.0)


def _end() -> VadEvent:
    return VadEvent(VadEventKind.SPEECH_END, 0, 1.0)


def _make(**kwargs) -> tuple[RecordingController, list[AudioSample], list[tuple[RecordingState, RecordingState]]]:
    samples: list[AudioSample] = []
    transitions: list[tuple[RecordingState, RecordingState]] = []
    controller = RecordingController(
        clock=lambda: 42,
        on_sample=samples.append,
        on_state_change=lambda f, t: transitions.append((f, t)),
        **kwargs,
    )
    return controller, samples, transitions


def test_vad_cycle_emits_one_wav_sample() -> None:
    controller, samples, transitions = _make(session_index=lambda: 3)

    controller.handle_vad_event(_start())
    controller.on_chunk(b"\x01\x00" * 10)
    controller.on_chunk(b"\x02\x00" * 10)
    sample = controller.handle_vad_event(_end())

    assert samples == [sample]
    assert sample is not None
    assert sample.mime_type == "audio/wav"
    assert sample.captured_at_ms == 42
    assert sample.session_index == 3
    with wave.open(io.BytesIO(sample.data), "rb") as wf:
        assert wf.getframerate() == 16000
        assert wf.readframes(wf.getnframes()) == b"\x01\x00" * 10 + b"\x02\x00" * 10
    assert transitions == [
        (RecordingState.IDLE, RecordingState.RECORDING),
        (RecordingState.RECORDING, RecordingState.FLUSHING),
        (RecordingState.FLUSHING, RecordingState.IDLE),
    ]
    assert controller.state == RecordingState.IDLE


def test_empty_capture_emits_nothing_and_returns_to_idle() -> None:
    errors: list[tuple[str, str]] = []
    controller, samples, _ = _make(on_error=lambda c, m: errors.append((c, m)))

    controller.handle_vad_event(_start())
    result = controller.handle_vad_event(_end())

    assert result is None
    assert samples == []
    assert errors == []
    assert controller.state == RecordingState.IDLE


def test_chunks_outside_recording_are_ignored() -> None:
    controller, samples, _ = _make()
    controller.on_chunk(b"\x05\x00")
    controller.handle_vad_event(_start())
    controller.on_chunk(b"")
    controller.handle_vad_event(_end())
    assert samples == []


def test_second_speech_start_does_not_restart_recording() -> None:
    controller, samples, _ = _make()
    controller.handle_vad_event(_start())
    controller.on_chunk(b"\x01\x00")
    controller.handle_vad_event(_start())
    controller.on_chunk(b"\x02\x00")
    sample = controller.handle_vad_event(_end())
    assert sample is not None
    assert sample.data.endswith(b"\x01\x00\x02\x00")


def test_speech_end_while_idle_is_noop() -> None:
    controller, samples, transitions = _make()
    assert controller.handle_vad_event(_end()) is None
    assert samples == []
    assert transitions == []


def test_recording_interrupts_playback() -> None:
    playback = FakePlayback(playing=True)
    controller, _, _ = _make(playback=playback)

    controller.handle_vad_event(_start())

    assert playback.stop_calls == 1
    assert playback.is_playing is False
    assert controller.is_recording


def test_manual_start_stops_playback_and_ignores_vad() -> None:
    playback = FakePlayback(playing=True)
    controller, samples, _ = _make(playback=playback)

    controller.start_manual()
    assert playback.stop_calls == 1
    assert controller.manual is True

    controller.on_chunk(b"\x01\x00")
    assert controller.handle_vad_event(_end()) is None
    assert controller.is_recording

    sample = controller.stop_manual()
    assert sample is not None
    assert samples == [sample]
    assert controller.state == RecordingState.IDLE
    assert controller.manual is False


def test_manual_takes_over_vad_recording() -> None:
    controller, samples, _ = _make()
    controller.handle_vad_event(_start())
    controller.on_chunk(b"\x01\x00")
    controller.start_manual()
    controller.handle_vad_event(_end())
    assert controller.is_recording

    controller.stop_manual()
    assert len(samples) == 1


def test_manual_stop_without_start_is_noop() -> None:
    controller, samples, _ = _make()
    assert controller.stop_manual() is None
    assert samples == []


def test_capture_end_flushes_recording() -> None:
    controller, samples, _ = _make()
    controller.start_manual()
    controller.on_chunk(b"\x01\x00")
    controller.on_capture_end()
    assert len(samples) == 1
    assert controller.manual is False
    assert controller.on_capture_end() is None


def test_device_error_drops_chunks_and_reports() -> None:
    errors: list[tuple[str, str]] = []
    controller, samples, _ = _make(on_error=lambda c, m: errors.append((c, m)))
    controller.handle_vad_event(_start())
    controller.on_chunk(b"\x01\x00")

    controller.on_device_error("disconnected")

    assert controller.state == RecordingState.IDLE
    assert samples == []
    assert errors[0][0] == DEVICE_ERROR
    assert "disconnected" in errors[0][1]


def test_pcm_to_wav_has_riff_header() -> None:
    data = pcm_to_wav(b"\x00\x00" * 1600, sample_rate=16000, channels=1)
    assert data[:4] == b"RIFF"
    assert data[8:12] == b"WAVE"


def test_slow_sample_handler_does_not_block_capture() -> None:
    entered = threading.Event()
    release = threading.Event()

    def slow_store(sample: AudioSample) -> None:
        entered.set()
        release.wait(timeout=5)

    controller = RecordingController(clock=lambda: 0, on_sample=slow_store)
    controller.start_manual()
    controller.on_chunk(b"\x01\x00")
    flusher = threading.Thread(target=controller.stop_manual, daemon=True)
    flusher.start()
    assert entered.wait(timeout=2)

    controller.start_manual()
    feeder = threading.Thread(target=controller.on_chunk, args=(b"\x02\x00",), daemon=True)
    feeder.start()
    feeder.join(timeout=1)
    try:
        assert not feeder.is_alive()
        assert controller.is_recording
    finally:
        release.set()
        flusher.join(timeout=2)


def test_state_callbacks_run_without_holding_the_lock() -> None:
    lock_free: list[bool] = []
    controller: RecordingController

    def on_state_change(from_state: RecordingState, to_state: RecordingState) -> None:
        # the lock is reentrant, so try it from another thread
        result: list[bool] = []

        def try_lock() -> None:
            acquired = controller._lock.acquire(timeout=0.5)
            if acquired:
                controller._lock.release()
            result.append(acquired)

        t = threading.Thread(target=try_lock)
        t.start()
        t.join()
        lock_free.extend(result)

    controller = RecordingController(clock=lambda: 0, on_state_change=on_state_change)
    controller.handle_vad_event(_start())
    controller.on_chunk(b"\x01\x00")
    controller.handle_vad_event(_end())

    assert lock_free == [True, True, True]
