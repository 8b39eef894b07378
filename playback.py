"""Local audio playback of synthesized replies."""

from __future__ import annotations

import logging
import shutil
import subprocess
import threading
from typing import Any, Optional

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger("voiceclone.playback")


class SoundDevicePlayer:
    """Plays int16 PCM replies, or hands text to the system ``say`` voice.

    Only one reply plays at a time; starting a new one stops the previous.
    """

    def __init__(self, device: Optional[int] = None, say_command: str = "say") -> None:
        self._device = device
        self._say_command = say_command
        self._lock = threading.Lock()
        self._stream: Any = None
        self._buffer: Any = None
        self._position = 0
        self._say_process: Optional[subprocess.Popen] = None

    @property
    def is_playing(self) -> bool:
        with self._lock:
            if self._stream is not None and self._stream.active:
                return True
            return self._say_process is not None and self._say_process.poll() is None

    def play(self, audio: bytes, sample_rate: int = 16000) -> None:
        if not audio:
            return
        if sd is None or np is None:
            raise RuntimeError("sounddevice is not installed")
        with self._lock:
            self._stop_locked()
            self._buffer = np.frombuffer(audio, dtype=np.int16)
            self._position = 0
            self._stream = sd.OutputStream(
                samplerate=sample_rate,
                channels=1,
                dtype="int16",
                device=self._device,
                callback=self._on_output,
                finished_callback=self._on_finished,
            )
            self._stream.start()

    def speak_locally(self, text: str) -> None:
        """Fallback speech when remote synthesis is unavailable."""
        if not text.strip():
            return
        executable = shutil.which(self._say_command)
        if executable is None:
            logger.warning("no local speech command %r, reply stays text only", self._say_command)
            return
        with self._lock:
            self._stop_locked()
            self._say_process = subprocess.Popen([executable, text])

    def stop(self) -> None:
        with self._lock:
            self._stop_locked()

    def _stop_locked(self) -> None:
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None
        self._buffer = None
        if self._say_process is not None and self._say_process.poll() is None:
            self._say_process.terminate()
        self._say_process = None

    def _on_output(self, outdata: Any, frames: int, time_info: Any, status: Any) -> None:
        buffer = self._buffer
        if buffer is None:
            outdata.fill(0)
            raise sd.CallbackStop()
        chunk = buffer[self._position:self._position + frames]
        self._position += len(chunk)
        outdata[: len(chunk), 0] = chunk
        if len(chunk) < frames:
            outdata[len(chunk):, 0] = 0
            raise sd.CallbackStop()

    def _on_finished(self) -> None:
        logger.debug("playback finished")
