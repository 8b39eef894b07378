"""Microphone capture adapter."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional

from errors import DeviceError
from models import AudioFrame

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger("voiceclone.recorder")


def find_input_device(preferred: str = "") -> Optional[int]:
    """Index of the first input device whose name contains ``preferred``.

    Returns ``None`` to use the system default. Raises :class:`DeviceError`
    when no input device exists at all.
    """
    if sd is None:
        raise DeviceError("sounddevice is not installed", kind="missing")
    try:
        devices = list(sd.query_devices())
    except Exception as exc:
        raise DeviceError(f"cannot list audio devices: {exc}", kind="unavailable") from exc
    inputs = [
        (index, dev)
        for index, dev in enumerate(devices)
        if int(dev.get("max_input_channels", 0)) > 0
    ]
    if not inputs:
        raise DeviceError("No microphone found", kind="missing")
    if preferred:
        needle = preferred.lower()
        for index, dev in inputs:
            if needle in str(dev.get("name", "")).lower():
                return index
        logger.info("no input device matches %r, using default", preferred)
    return None


class SoundDeviceRecorder:
    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 20,
        device: Optional[int] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.device = device
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self._on_frame: Optional[Callable[[AudioFrame], None]] = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self, on_frame: Callable[[AudioFrame], None]) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise DeviceError("sounddevice is not installed", kind="missing")
            self._on_frame = on_frame
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            try:
                if self._stream is None:
                    self._stream = sd.InputStream(
                        samplerate=self.sample_rate,
                        channels=self.channels,
                        dtype="int16",
                        blocksize=blocksize,
                        device=self.device,
                        callback=self._on_audio,
                    )
                self._stream.start()
            except Exception as exc:
                self._on_frame = None
                raise DeviceError(f"cannot open microphone: {exc}", kind="permission") from exc
            self._running = True

    def stop(self) -> None:
        """Stop delivering frames; the device stays open until :meth:`close`."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            if self._stream is not None:
                self._stream.stop()

    def close(self) -> None:
        with self._lock:
            self._running = False
            self._on_frame = None
            if self._stream is not None:
                self._stream.close()
                self._stream = None

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        on_frame = self._on_frame
        if not self._running or on_frame is None:
            return
        if np is None:
            return
        if status:
            logger.debug("input status: %s", status)
        payload = np.asarray(indata, dtype=np.int16).tobytes()
        on_frame(
            AudioFrame(
                pcm16_bytes=payload,
                sample_rate=self.sample_rate,
                channels=self.channels,
                timestamp_ms=int(time.time() * 1000),
            )
        )
