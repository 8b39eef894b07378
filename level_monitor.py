"""Live microphone loudness sampling.

The :class:`SpectrumAnalyser` keeps the most recent PCM window fed from the
capture callback and turns it into byte-scaled frequency magnitudes (0-255 per
bin, the same scale a browser analyser node produces). The
:class:`AudioLevelMonitor` reads that buffer once per tick and reduces it to a
single 0-100 loudness level.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

import numpy as np

from errors import SampleError
from models import LevelReading

logger = logging.getLogger("voiceclone.level_monitor")

TICK_INTERVAL_S = 0.016


def compute_level(magnitudes: np.ndarray) -> float:
    """Reduce a byte magnitude buffer to a loudness level in ``[0, 100]``.

    The mean of the non-zero bins is scaled so that an average of 64 maps to
    100, the peak bin is scaled linearly; the larger of the two wins so that
    short consonant bursts still register.
    """
    values = np.asarray(magnitudes, dtype=np.float64)
    nonzero = values[values > 0]
    if nonzero.size == 0:
        return 0.0
    average = float(nonzero.mean())
    peak = float(nonzero.max())
    normalized = min(100.0, (average / 128.0) * 200.0)
    instant = min(100.0, (peak / 255.0) * 100.0)
    return max(normalized, instant)


class SpectrumAnalyser:
    def __init__(
        self,
        fft_size: int = 1024,
        smoothing: float = 0.2,
        min_decibels: float = -90.0,
        max_decibels: float = -10.0,
    ) -> None:
        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels
        self._window = np.blackman(fft_size)
        self._buffer = np.zeros(fft_size, dtype=np.float64)
        self._previous = np.zeros(fft_size // 2, dtype=np.float64)
        self._lock = threading.Lock()
        self._connected = False

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        with self._lock:
            self._buffer[:] = 0.0
            self._previous[:] = 0.0
            self._connected = True

    def disconnect(self) -> None:
        with self._lock:
            self._connected = False

    def push(self, pcm16_bytes: bytes) -> None:
        """Append int16 PCM to the rolling analysis window."""
        samples = np.frombuffer(pcm16_bytes, dtype=np.int16).astype(np.float64) / 32768.0
        if samples.size == 0:
            return
        with self._lock:
            if not self._connected:
                return
            if samples.size >= self.fft_size:
                self._buffer[:] = samples[-self.fft_size:]
            else:
                self._buffer = np.roll(self._buffer, -samples.size)
                self._buffer[-samples.size:] = samples

    def byte_frequency_data(self) -> np.ndarray:
        with self._lock:
            if not self._connected:
                raise SampleError("analyser is disconnected")
            windowed = self._buffer * self._window
            magnitude = np.abs(np.fft.rfft(windowed))[: self.frequency_bin_count] / self.fft_size
            smoothed = self.smoothing * self._previous + (1.0 - self.smoothing) * magnitude
            self._previous = smoothed
        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(smoothed)
        scale = 255.0 / (self.max_decibels - self.min_decibels)
        scaled = np.clip((decibels - self.min_decibels) * scale, 0, 255)
        return scaled.astype(np.uint8)


class AudioLevelMonitor:
    def __init__(
        self,
        read_magnitudes: Callable[[], np.ndarray],
        clock: Optional[Callable[[], int]] = None,
        on_level: Optional[Callable[[LevelReading], None]] = None,
    ) -> None:
        self._read_magnitudes = read_magnitudes
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._on_level = on_level
        self.last_level = 0.0
        self.skipped_ticks = 0

    def sample(self) -> Optional[LevelReading]:
        """Take one reading, or ``None`` when the buffer could not be read."""
        try:
            magnitudes = self._read_magnitudes()
            level = compute_level(magnitudes)
        except SampleError as exc:
            self.skipped_ticks += 1
            logger.debug("level sample skipped: %s", exc)
            return None
        reading = LevelReading(level=level, timestamp_ms=self._clock())
        self.last_level = level
        if self._on_level:
            self._on_level(reading)
        return reading
