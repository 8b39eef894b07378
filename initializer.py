"""Start-up: check the microphone and resolve the voice to speak with."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from errors import InitializationFailure, NetworkError
from interfaces import VoiceStore, VoiceTrainer
from models import RetryState, VoiceIdentity
from retry import RetryCallback, RetryPolicy, init_retry_policy
from voice_client import DEFAULT_VOICE

logger = logging.getLogger("voiceclone.initializer")


class VoiceInitializer:
    """Resolve the active voice with bounded retries.

    A persisted trained voice is restored (and counts as confirmed) if the
    cloning service still knows it; otherwise the default voice is used.
    Once retries are exhausted the initializer stays failed until
    :meth:`reset` is called.
    """

    def __init__(
        self,
        trainer: VoiceTrainer,
        store: VoiceStore,
        check_device: Optional[Callable[[], object]] = None,
        policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._trainer = trainer
        self._store = store
        self._check_device = check_device
        self._policy = policy or init_retry_policy()
        self.retry_state: RetryState = self._policy.new_state()

    @property
    def failed(self) -> bool:
        return self.retry_state.failed

    def reset(self) -> None:
        self.retry_state.reset()

    def initialize(self, on_retry: Optional[RetryCallback] = None) -> VoiceIdentity:
        """Return the identity to speak with, or raise :class:`RetryExhausted`."""
        return self._policy.call(self._attempt, self.retry_state, on_retry=on_retry)

    def _attempt(self) -> VoiceIdentity:
        if self._check_device is not None:
            self._check_device()

        saved = self._store.get_identity()
        if saved is None:
            logger.info("no saved voice, using %s", DEFAULT_VOICE.name)
            return DEFAULT_VOICE

        try:
            remote = self._trainer.lookup_voice(saved.voice_id)
        except NetworkError as exc:
            raise InitializationFailure(f"Failed to initialize voice service: {exc}") from exc
        if remote is None:
            logger.warning("saved voice %s no longer exists, using default", saved.voice_id)
            return DEFAULT_VOICE
        identity = VoiceIdentity(
            voice_id=saved.voice_id,
            name=saved.name or remote.name,
            provenance=saved.provenance,
            confirmed=True,
        )
        logger.info("restored voice %s", identity.name)
        return identity
