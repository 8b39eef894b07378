from __future__ import annotations

import numpy as np
import pytest

from errors import SampleError
from level_monitor import AudioLevelMonitor, SpectrumAnalyser, compute_level
from models import LevelReading


def _tone(freq: float = 440.0, amplitude: float = 0.5, n: int = 1024, rate: int = 16000) -> bytes:
    t = np.arange(n) / rate
    wave = (amplitude * 32767 * np.sin(2 * np.pi * freq * t)).astype(np.int16)
    return wave.tobytes()


# ---------------------------------------------------------------
# compute_level
# ---------------------------------------------------------------

def test_silence_is_zero() -> None:
    assert compute_level(np.zeros(512, dtype=np.uint8)) == 0.0


def test_average_of_nonzero_bins_is_scaled() -> None:
    bins = np.zeros(512, dtype=np.uint8)
    bins[:10] = 32  # mean 32 -> 50, peak 32 -> ~12.5
    assert compute_level(bins) == pytest.approx(50.0)


def test_peak_wins_when_larger() -> None:
    bins = np.zeros(512, dtype=np.uint8)
    bins[0] = 255
    bins[1:200] = 1  # mean barely above 1
    assert compute_level(bins) == pytest.approx(100.0)


def test_level_is_clamped_to_100() -> None:
    bins = np.full(512, 200, dtype=np.uint8)
    assert compute_level(bins) == 100.0


# ---------------------------------------------------------------
# SpectrumAnalyser
# ---------------------------------------------------------------

def test_analyser_reports_loud_tone_above_silence() -> None:
    analyser = SpectrumAnalyser()
    analyser.connect()
    quiet = compute_level(analyser.byte_frequency_data())

    analyser.push(_tone())
    loud = compute_level(analyser.byte_frequency_data())

    assert quiet == 0.0
    assert loud > 10.0


def test_analyser_output_shape_and_type() -> None:
    analyser = SpectrumAnalyser(fft_size=256)
    analyser.connect()
    analyser.push(_tone(n=100))
    data = analyser.byte_frequency_data()
    assert data.shape == (128,)
    assert data.dtype == np.uint8


def test_disconnected_analyser_raises_sample_error() -> None:
    analyser = SpectrumAnalyser()
    with pytest.raises(SampleError):
        analyser.byte_frequency_data()

    analyser.connect()
    analyser.disconnect()
    analyser.push(_tone())  # ignored while disconnected
    with pytest.raises(SampleError):
        analyser.byte_frequency_data()


# ---------------------------------------------------------------
# AudioLevelMonitor
# ---------------------------------------------------------------

def test_monitor_emits_timestamped_reading() -> None:
    bins = np.zeros(512, dtype=np.uint8)
    bins[:4] = 64
    seen: list[LevelReading] = []
    monitor = AudioLevelMonitor(lambda: bins, clock=lambda: 1234, on_level=seen.append)

    reading = monitor.sample()

    assert reading is not None
    assert reading.timestamp_ms == 1234
    assert reading.level == pytest.approx(100.0)
    assert seen == [reading]
    assert monitor.last_level == reading.level


def test_monitor_skips_tick_on_sample_error() -> None:
    calls = {"n": 0}
    bins = np.zeros(512, dtype=np.uint8)
    bins[:4] = 32

    def read() -> np.ndarray:
        calls["n"] += 1
        if calls["n"] == 2:
            raise SampleError("buffer busy")
        return bins

    seen: list[LevelReading] = []
    monitor = AudioLevelMonitor(read, clock=lambda: 0, on_level=seen.append)

    first = monitor.sample()
    second = monitor.sample()

    assert first is not None
    assert second is None
    assert monitor.skipped_ticks == 1
    assert monitor.last_level == first.level
    assert len(seen) == 1
