"""Core data models for the voice-clone conversation loop."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class RecordingState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    FLUSHING = "FLUSHING"


class VadState(str, Enum):
    CALIBRATING = "CALIBRATING"
    SILENT = "SILENT"
    SPEAKING = "SPEAKING"


class VadEventKind(str, Enum):
    SPEECH_START = "speech_start"
    SPEECH_END = "speech_end"


class TrainingStatus(str, Enum):
    ACCUMULATING = "ACCUMULATING"
    TRAINING = "TRAINING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class VoiceProvenance(str, Enum):
    DEFAULT = "default"
    TRAINED = "trained"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass
class LevelReading:
    level: float
    timestamp_ms: int


@dataclass
class VadEvent:
    kind: VadEventKind
    timestamp_ms: int
    level: float = 0.0


@dataclass(frozen=True)
class AudioSample:
    data: bytes
    mime_type: str
    captured_at_ms: int
    session_index: int = 0
    sample_id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class CalibrationProfile:
    baseline: float
    threshold_offset: float


@dataclass
class TrainingSession:
    index: int
    sample_count: int = 0
    status: TrainingStatus = TrainingStatus.ACCUMULATING


@dataclass(frozen=True)
class VoiceIdentity:
    voice_id: str
    name: str
    provenance: VoiceProvenance = VoiceProvenance.DEFAULT
    confirmed: bool = False


@dataclass
class RetryState:
    kind: str
    attempts: int = 0
    last_failure_at: Optional[float] = None
    failed: bool = False

    def record_failure(self, at: float) -> None:
        self.attempts += 1
        self.last_failure_at = at

    def reset(self) -> None:
        self.attempts = 0
        self.last_failure_at = None
        self.failed = False


@dataclass
class Message:
    role: str
    content: str


@dataclass
class TrainingResult:
    voice_id: str
    name: str
    session: int


@dataclass
class TrainingCompleted:
    session: int
    identity: VoiceIdentity
    switched: bool
    awaiting_confirmation: bool
    training_complete: bool


@dataclass
class TrainingLogEntry:
    timestamp: float
    message: str
    kind: str = "info"


@dataclass
class SpeechResult:
    audio: bytes = b""
    sample_rate: int = 16000
    use_local_fallback: bool = False
