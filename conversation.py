"""Sequential conversation turns: transcribe, reply, speak."""

from __future__ import annotations

import logging
import re
import threading
from concurrent.futures import Future
from enum import Enum
from typing import Callable, List, Optional

from errors import (
    ERROR_MESSAGES,
    INTERNAL_ERROR,
    NETWORK_ERROR,
    RETRY_EXHAUSTED,
    RetryExhausted,
    VoiceCloneError,
)
from interfaces import ChatClient, Playback, SpeechSynthesizer, Transcriber
from models import AudioSample, Message, RetryState, TrainingCompleted
from retry import RetryPolicy, transcription_retry_policy
from training import TrainingOrchestrator

logger = logging.getLogger("voiceclone.conversation")

WELCOME_MESSAGE = "Hello! I'm Guenka. I'll start with my voice and learn to speak like you."
CONFIRMATION_PROMPT = (
    "I've completed the first training session with your voice. Would you like me "
    "to start using your voice now? Simply say 'yes' to confirm."
)
SWITCH_ACK = "Great, I'll speak with your voice from now on."
DECLINE_ACK = "No problem, I'll keep my current voice for now."
TRAINING_COMPLETE_MESSAGE = "Perfect! Training is now complete, and I'm using your fully trained voice."

_AFFIRMATIVE = {"yes", "yeah", "yep", "sure", "okay", "ok"}
_NEGATIVE = {"no", "nope", "nah"}

MessageCallback = Callable[[Message], None]
ErrorCallback = Callable[[str, str], None]


class TurnOutcome(str, Enum):
    SPOKEN = "spoken"
    EMPTY = "empty"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    FAILED = "failed"


def report_failures(on_error: ErrorCallback) -> Callable[[Future], None]:
    """Done-callback for background jobs: log and surface what they raised."""

    def done(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is None:
            return
        logger.error("background job failed", exc_info=exc)
        on_error(INTERNAL_ERROR, f"{ERROR_MESSAGES[INTERNAL_ERROR]} ({exc})")

    return done


def classify_answer(text: str) -> Optional[bool]:
    """``True`` for a yes, ``False`` for a no, ``None`` when neither is clear."""
    words = set(re.findall(r"[a-z']+", text.lower()))
    yes = bool(words & _AFFIRMATIVE)
    no = bool(words & _NEGATIVE)
    if yes == no:
        return None
    return yes


class ConversationPipeline:
    def __init__(
        self,
        transcriber: Transcriber,
        chat: ChatClient,
        speech: SpeechSynthesizer,
        playback: Playback,
        orchestrator: TrainingOrchestrator,
        is_recording: Callable[[], bool] = lambda: False,
        policy: Optional[RetryPolicy] = None,
        on_message: Optional[MessageCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._transcriber = transcriber
        self._chat = chat
        self._speech = speech
        self._playback = playback
        self._orchestrator = orchestrator
        self._is_recording = is_recording
        self._policy = policy or transcription_retry_policy()
        self._on_message = on_message
        self._on_error = on_error

        self._turn_lock = threading.Lock()
        self.history: List[Message] = []
        self.transcription_state: RetryState = self._policy.new_state()

    @property
    def transcription_failed(self) -> bool:
        return self.transcription_state.failed

    def reset_transcription(self) -> None:
        self.transcription_state.reset()

    def welcome(self) -> None:
        with self._turn_lock:
            if self.history:
                return
            self._add(Message("assistant", WELCOME_MESSAGE))
            self._say(WELCOME_MESSAGE, self._orchestrator.active_identity.voice_id)

    def process_sample(self, sample: AudioSample) -> TurnOutcome:
        with self._turn_lock:
            return self._process(sample)

    def handle_training_completed(self, event: TrainingCompleted) -> None:
        with self._turn_lock:
            if event.awaiting_confirmation:
                self._add(Message("assistant", CONFIRMATION_PROMPT))
                self._say(CONFIRMATION_PROMPT, self._orchestrator.active_identity.voice_id)
            elif event.training_complete:
                self._add(Message("assistant", TRAINING_COMPLETE_MESSAGE))
                self._say(TRAINING_COMPLETE_MESSAGE, event.identity.voice_id)

    def _process(self, sample: AudioSample) -> TurnOutcome:
        try:
            text = self._policy.call(
                lambda: self._transcriber.transcribe(sample.data, sample.mime_type),
                self.transcription_state,
            )
        except RetryExhausted:
            self._emit_error(
                RETRY_EXHAUSTED,
                "Transcription failed multiple times. Use reset to try again.",
            )
            return TurnOutcome.FAILED
        except VoiceCloneError as exc:
            self._emit_error(exc.code, exc.message)
            return TurnOutcome.FAILED

        text = text.strip()
        if not text:
            logger.debug("no speech in sample %s", sample.sample_id)
            return TurnOutcome.EMPTY

        if self._orchestrator.awaiting_confirmation:
            answer = classify_answer(text)
            if answer is not None:
                self._add(Message("user", text))
                return self._answer_confirmation(answer)

        prior = list(self.history)
        self._add(Message("user", text))
        try:
            reply = self._chat.reply(text, prior)
        except VoiceCloneError as exc:
            logger.error("chat reply failed: %s", exc)
            self._emit_error(NETWORK_ERROR, "Failed to get AI response.")
            return TurnOutcome.FAILED

        self._add(Message("assistant", reply))
        self._say(reply, self._orchestrator.active_identity.voice_id)
        return TurnOutcome.SPOKEN

    def _answer_confirmation(self, accepted: bool) -> TurnOutcome:
        if accepted:
            identity = self._orchestrator.confirm_switch()
            voice_id = identity.voice_id if identity else self._orchestrator.active_identity.voice_id
            self._add(Message("assistant", SWITCH_ACK))
            self._say(SWITCH_ACK, voice_id)
            return TurnOutcome.CONFIRMED
        self._orchestrator.decline_switch()
        self._add(Message("assistant", DECLINE_ACK))
        self._say(DECLINE_ACK, self._orchestrator.active_identity.voice_id)
        return TurnOutcome.DECLINED

    def _say(self, text: str, voice_id: str) -> None:
        result = self._speech.speak(text, voice_id)
        if self._is_recording():
            logger.info("skipping playback, recording in progress")
            return
        if result.use_local_fallback:
            self._playback.speak_locally(text)
        elif result.audio:
            self._playback.play(result.audio, result.sample_rate)

    def _add(self, message: Message) -> None:
        self.history.append(message)
        if self._on_message:
            self._on_message(message)

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)
