"""Energy-based voice activity detection with calibration and hysteresis."""

from __future__ import annotations

import logging
from typing import List, Optional

from models import CalibrationProfile, LevelReading, VadEvent, VadEventKind, VadState

logger = logging.getLogger("voiceclone.vad")

SILENCE_THRESHOLD = 10.0
SILENCE_DURATION_MS = 1500
MIN_RECORDING_TIME_MS = 500
CALIBRATION_SAMPLES = 30


class VoiceActivityDetector:
    """Turn a level stream into speech start/end transitions.

    The first ``calibration_samples`` readings after :meth:`reset` only feed
    the ambient baseline. Afterwards a reading above ``threshold`` starts
    speech, and speech ends once every reading for more than
    ``silence_duration_ms`` stayed at or below the threshold and the
    utterance is older than ``min_recording_ms``. A single loud reading
    restarts the silence window.
    """

    def __init__(
        self,
        threshold: float = SILENCE_THRESHOLD,
        silence_duration_ms: int = SILENCE_DURATION_MS,
        min_recording_ms: int = MIN_RECORDING_TIME_MS,
        calibration_samples: int = CALIBRATION_SAMPLES,
    ) -> None:
        self.threshold = threshold
        self.silence_duration_ms = silence_duration_ms
        self.min_recording_ms = min_recording_ms
        self.calibration_samples = calibration_samples

        self._state = VadState.CALIBRATING
        self._calibration: List[float] = []
        self._profile: Optional[CalibrationProfile] = None
        self._speech_started_at = 0
        self._last_loud_at = 0
        self.reset()

    @property
    def state(self) -> VadState:
        return self._state

    @property
    def profile(self) -> Optional[CalibrationProfile]:
        return self._profile

    @property
    def is_speaking(self) -> bool:
        return self._state == VadState.SPEAKING

    def reset(self) -> None:
        self._calibration = []
        self._profile = None
        self._speech_started_at = 0
        self._last_loud_at = 0
        self._state = VadState.CALIBRATING if self.calibration_samples > 0 else VadState.SILENT

    def process(self, reading: LevelReading) -> Optional[VadEvent]:
        if self._state == VadState.CALIBRATING:
            self._calibrate(reading.level)
            return None

        now = reading.timestamp_ms
        if reading.level > self.threshold:
            self._last_loud_at = now
            if self._state == VadState.SILENT:
                self._state = VadState.SPEAKING
                self._speech_started_at = now
                logger.debug("speech start at level %.1f", reading.level)
                return VadEvent(VadEventKind.SPEECH_START, now, reading.level)
            return None

        if self._state != VadState.SPEAKING:
            return None
        silence_ms = now - self._last_loud_at
        recording_ms = now - self._speech_started_at
        if silence_ms > self.silence_duration_ms and recording_ms > self.min_recording_ms:
            self._state = VadState.SILENT
            logger.debug("speech end after %dms of silence", silence_ms)
            return VadEvent(VadEventKind.SPEECH_END, now, reading.level)
        return None

    def _calibrate(self, level: float) -> None:
        self._calibration.append(level)
        if len(self._calibration) < self.calibration_samples:
            return
        baseline = sum(self._calibration) / len(self._calibration)
        self._profile = CalibrationProfile(
            baseline=baseline,
            threshold_offset=self.threshold - baseline,
        )
        self._calibration = []
        self._state = VadState.SILENT
        logger.info("calibrated ambient baseline %.2f (threshold %.1f)", baseline, self.threshold)
