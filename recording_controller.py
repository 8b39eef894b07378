"""State machine binding speech transitions to audio capture."""

from __future__ import annotations

import io
import logging
import threading
import time
import wave
from typing import Callable, List, Optional, Tuple

from errors import DEVICE_ERROR, ERROR_MESSAGES
from interfaces import Playback
from models import AudioSample, RecordingState, VadEvent, VadEventKind

logger = logging.getLogger("voiceclone.recording")

StateCallback = Callable[[RecordingState, RecordingState], None]
SampleCallback = Callable[[AudioSample], None]
ErrorCallback = Callable[[str, str], None]


def pcm_to_wav(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> bytes:
    """Wrap raw PCM bytes in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buf.getvalue()


class RecordingController:
    def __init__(
        self,
        playback: Optional[Playback] = None,
        sample_rate: int = 16000,
        channels: int = 1,
        clock: Optional[Callable[[], int]] = None,
        session_index: Optional[Callable[[], int]] = None,
        on_sample: Optional[SampleCallback] = None,
        on_state_change: Optional[StateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._playback = playback
        self._sample_rate = sample_rate
        self._channels = channels
        self._clock = clock or now_ms
        self._session_index = session_index or (lambda: 0)
        self._on_sample = on_sample
        self._on_state_change = on_state_change
        self._on_error = on_error

        self._lock = threading.RLock()
        self._state = RecordingState.IDLE
        self._chunks: List[bytes] = []
        self._manual = False
        self._started_at = 0
        self._transitions: List[Tuple[RecordingState, RecordingState]] = []
        self._interrupt_playback = False

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state == RecordingState.RECORDING

    @property
    def manual(self) -> bool:
        return self._manual

    # ------------------------------------------------------------------
    # Drivers
    # ------------------------------------------------------------------

    def handle_vad_event(self, event: VadEvent) -> Optional[AudioSample]:
        sample = None
        with self._lock:
            if self._manual:
                return None
            if event.kind == VadEventKind.SPEECH_START:
                self._begin()
            elif event.kind == VadEventKind.SPEECH_END:
                sample = self._flush()
        self._notify(sample)
        return sample

    def start_manual(self) -> None:
        """Hold-to-speak press: start recording regardless of detected speech."""
        with self._lock:
            if self._state == RecordingState.RECORDING:
                self._manual = True
                return
            if self._state != RecordingState.IDLE:
                return
            self._manual = True
            self._begin()
        self._notify()

    def stop_manual(self) -> Optional[AudioSample]:
        with self._lock:
            if not self._manual:
                return None
            self._manual = False
            sample = self._flush()
        self._notify(sample)
        return sample

    # ------------------------------------------------------------------
    # Capture ports
    # ------------------------------------------------------------------

    def on_chunk(self, data: bytes) -> None:
        with self._lock:
            if self._state != RecordingState.RECORDING or not data:
                return
            self._chunks.append(data)

    def on_capture_end(self) -> Optional[AudioSample]:
        with self._lock:
            self._manual = False
            sample = self._flush()
        self._notify(sample)
        return sample

    def on_device_error(self, kind: str) -> None:
        with self._lock:
            dropped = len(self._chunks)
            self._chunks = []
            self._manual = False
            self._transition(RecordingState.IDLE)
        self._notify()
        logger.error("capture device error (%s), dropped %d chunks", kind, dropped)
        self._emit_error(DEVICE_ERROR, f"{ERROR_MESSAGES[DEVICE_ERROR]} ({kind})")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    # The helpers below run under the lock. They only change state and queue
    # notifications; callbacks and playback control run in _notify.

    def _begin(self) -> None:
        if self._state != RecordingState.IDLE:
            return
        self._interrupt_playback = True
        self._chunks = []
        self._started_at = self._clock()
        self._transition(RecordingState.RECORDING)

    def _flush(self) -> Optional[AudioSample]:
        if self._state != RecordingState.RECORDING:
            return None
        self._transition(RecordingState.FLUSHING)
        chunks, self._chunks = self._chunks, []
        if not chunks:
            logger.debug("no audio captured, nothing to flush")
            self._transition(RecordingState.IDLE)
            return None

        pcm = b"".join(chunks)
        sample = AudioSample(
            data=pcm_to_wav(pcm, self._sample_rate, self._channels),
            mime_type="audio/wav",
            captured_at_ms=self._started_at,
            session_index=self._session_index(),
        )
        logger.info(
            "captured sample %s: %d chunks, %d bytes",
            sample.sample_id,
            len(chunks),
            len(pcm),
        )
        self._transition(RecordingState.IDLE)
        return sample

    def _transition(self, to_state: RecordingState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        self._transitions.append((from_state, to_state))

    def _notify(self, sample: Optional[AudioSample] = None) -> None:
        with self._lock:
            transitions, self._transitions = self._transitions, []
            interrupt, self._interrupt_playback = self._interrupt_playback, False
        if interrupt:
            self._stop_playback()
        if self._on_state_change:
            for from_state, to_state in transitions:
                self._on_state_change(from_state, to_state)
        if sample is not None and self._on_sample:
            self._on_sample(sample)

    def _stop_playback(self) -> None:
        playback = self._playback
        if playback is None or not playback.is_playing:
            return
        logger.debug("interrupting playback to record")
        playback.stop()

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)


def now_ms() -> int:
    return int(time.time() * 1000)
