"""Shared error codes, user-facing messages and exception types."""

from __future__ import annotations

DEVICE_ERROR = "DEVICE_ERROR"
NETWORK_ERROR = "NETWORK_ERROR"
AUTH_FAILED = "AUTH_FAILED"
TRAINING_FAILED = "TRAINING_FAILED"
INIT_FAILED = "INIT_FAILED"
RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
SAMPLE_ERROR = "SAMPLE_ERROR"
INTERNAL_ERROR = "INTERNAL_ERROR"

ERROR_MESSAGES = {
    DEVICE_ERROR: "Microphone is unavailable. Check the device and its permission.",
    NETWORK_ERROR: "Network failed, please retry.",
    AUTH_FAILED: "API key is invalid.",
    TRAINING_FAILED: "Voice training failed, continuing with the next session.",
    INIT_FAILED: "Unable to initialize. Check microphone permissions, then reset.",
    RETRY_EXHAUSTED: "Failed multiple times. Use reset to try again.",
    SAMPLE_ERROR: "Could not read the audio level.",
    INTERNAL_ERROR: "Something went wrong, see the log for details.",
}


class VoiceCloneError(Exception):
    code = NETWORK_ERROR

    def __init__(self, message: str = "") -> None:
        super().__init__(message or ERROR_MESSAGES.get(self.code, self.code))
        self.message = str(self)


class DeviceError(VoiceCloneError):
    code = DEVICE_ERROR

    def __init__(self, message: str = "", kind: str = "unavailable") -> None:
        super().__init__(message)
        self.kind = kind


class NetworkError(VoiceCloneError):
    code = NETWORK_ERROR

    def __init__(self, message: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(NetworkError):
    code = AUTH_FAILED


class TrainingFailure(VoiceCloneError):
    code = TRAINING_FAILED


class InitializationFailure(VoiceCloneError):
    code = INIT_FAILED


class SampleError(VoiceCloneError):
    code = SAMPLE_ERROR


class RetryExhausted(VoiceCloneError):
    code = RETRY_EXHAUSTED

    def __init__(self, kind: str, attempts: int, message: str = "") -> None:
        super().__init__(message or f"{kind} failed after {attempts} attempts")
        self.kind = kind
        self.attempts = attempts
