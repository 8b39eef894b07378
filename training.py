"""Progressive voice training across recording sessions.

Finished recordings accumulate into sessions of ``SAMPLES_PER_SESSION``. Each
full session fires one training request carrying that session's samples plus
every sample left untrained in the persisted backlog by earlier runs. A
successful session yields a new trained voice; the first one waits for the
user to confirm the switch, later ones are applied right away. After
``MAX_TRAINING_SESSIONS`` successful sessions no more training is requested.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Callable, List, Optional

from errors import VoiceCloneError
from interfaces import VoiceStore, VoiceTrainer
from models import (
    AudioSample,
    TrainingCompleted,
    TrainingLogEntry,
    TrainingSession,
    TrainingStatus,
    VoiceIdentity,
    VoiceProvenance,
)

logger = logging.getLogger("voiceclone.training")

SAMPLES_PER_SESSION = 5
MAX_TRAINING_SESSIONS = 5
DEFAULT_TRAINING_NAME = "Your Voice Clone"

Runner = Callable[[Callable[[], None]], None]
IdentityCallback = Callable[[VoiceIdentity], None]
CompletedCallback = Callable[[TrainingCompleted], None]
LogCallback = Callable[[TrainingLogEntry], None]


def should_auto_switch(session_index: int, confirmed: bool) -> bool:
    """First trained voice needs explicit confirmation, later ones do not."""
    return confirmed or session_index > 1


def thread_runner(job: Callable[[], None]) -> None:
    threading.Thread(target=job, name="voice-training", daemon=True).start()


class TrainingOrchestrator:
    def __init__(
        self,
        trainer: VoiceTrainer,
        store: VoiceStore,
        active_identity: VoiceIdentity,
        runner: Runner = thread_runner,
        training_name: str = DEFAULT_TRAINING_NAME,
        samples_per_session: int = SAMPLES_PER_SESSION,
        max_sessions: int = MAX_TRAINING_SESSIONS,
        on_training_completed: Optional[CompletedCallback] = None,
        on_confirmation_required: Optional[IdentityCallback] = None,
        on_identity_changed: Optional[IdentityCallback] = None,
        on_log: Optional[LogCallback] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._trainer = trainer
        self._store = store
        self._runner = runner
        self._training_name = training_name
        self._samples_per_session = samples_per_session
        self._max_sessions = max_sessions
        self._on_training_completed = on_training_completed
        self._on_confirmation_required = on_confirmation_required
        self._on_identity_changed = on_identity_changed
        self._on_log = on_log
        self._clock = clock

        self._lock = threading.RLock()
        self._active = active_identity
        self._pending_identity: Optional[VoiceIdentity] = None
        self._pending: List[AudioSample] = []
        self._session_index = 1
        self._completed_sessions = 0
        self._status = TrainingStatus.ACCUMULATING
        self._in_flight = False
        self.training_logs: List[TrainingLogEntry] = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def active_identity(self) -> VoiceIdentity:
        return self._active

    @property
    def pending_identity(self) -> Optional[VoiceIdentity]:
        return self._pending_identity

    @property
    def awaiting_confirmation(self) -> bool:
        return self._pending_identity is not None

    @property
    def session_index(self) -> int:
        return min(self._session_index, self._max_sessions)

    @property
    def completed_sessions(self) -> int:
        return self._completed_sessions

    @property
    def training_in_flight(self) -> bool:
        return self._in_flight

    @property
    def training_complete(self) -> bool:
        return self._completed_sessions >= self._max_sessions

    @property
    def session(self) -> TrainingSession:
        with self._lock:
            return TrainingSession(
                index=self.session_index,
                sample_count=min(len(self._pending), self._samples_per_session),
                status=self._status,
            )

    def set_active_identity(self, identity: VoiceIdentity) -> None:
        """Adopt the identity resolved at start-up without persisting it."""
        with self._lock:
            self._active = identity

    # ------------------------------------------------------------------
    # Samples
    # ------------------------------------------------------------------

    def add_sample(self, sample: AudioSample) -> None:
        with self._lock:
            if self.training_complete:
                logger.debug("training complete, ignoring sample %s", sample.sample_id)
                return
            self._pending.append(sample)
            backlog = self._store.get_backlog()
            backlog.append(sample)
            self._store.set_backlog(backlog)
            if self._status == TrainingStatus.FAILED:
                self._status = TrainingStatus.ACCUMULATING
            job = self._next_job()
        if job is not None:
            self._runner(job)

    def _next_job(self) -> Optional[Callable[[], None]]:
        if self._in_flight or self.training_complete:
            return None
        if len(self._pending) < self._samples_per_session:
            return None

        session_samples = self._pending[: self._samples_per_session]
        self._pending = self._pending[self._samples_per_session:]
        pending_ids = {s.sample_id for s in session_samples}
        pending_ids.update(s.sample_id for s in self._pending)
        persisted = [s for s in self._store.get_backlog() if s.sample_id not in pending_ids]

        self._in_flight = True
        self._status = TrainingStatus.TRAINING
        index = self._session_index
        return lambda: self._train(index, session_samples, persisted)

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def _train(
        self,
        index: int,
        session_samples: List[AudioSample],
        persisted: List[AudioSample],
    ) -> None:
        self._log(f"Starting voice training session {index}/{self._max_sessions}...")
        try:
            result = self._trainer.train(
                session_samples + persisted,
                name=self._training_name,
                session_number=index,
                is_background=True,
            )
        except VoiceCloneError as exc:
            self._drop_from_backlog(session_samples + persisted)
            with self._lock:
                self._status = TrainingStatus.FAILED
            self._log(f"Training session {index} failed: {exc}", "error")
        else:
            self._drop_from_backlog(session_samples + persisted)
            identity = VoiceIdentity(
                voice_id=result.voice_id,
                name=f"Your Voice v{index}",
                provenance=VoiceProvenance.TRAINED,
            )
            self._complete_session(index, identity)
        finally:
            with self._lock:
                self._in_flight = False
                if self._status == TrainingStatus.TRAINING:
                    self._status = TrainingStatus.ACCUMULATING
                job = self._next_job()
            if job is not None:
                self._runner(job)

    def _complete_session(self, index: int, identity: VoiceIdentity) -> None:
        with self._lock:
            self._completed_sessions = index
            self._session_index = index + 1
            complete = self.training_complete
            self._status = TrainingStatus.COMPLETED if complete else TrainingStatus.ACCUMULATING
            switch = should_auto_switch(index, self._active.confirmed)
            if switch:
                identity = replace(identity, confirmed=True)
                self._pending_identity = None
                self._active = identity
                self._store.set_identity(identity)
            else:
                self._pending_identity = identity

        self._log(f"Voice training session {index} completed successfully!", "success")
        if complete:
            self._log("Voice training complete.", "success")
        if switch and self._on_identity_changed:
            self._on_identity_changed(identity)
        if not switch and self._on_confirmation_required:
            self._on_confirmation_required(identity)
        if self._on_training_completed:
            self._on_training_completed(
                TrainingCompleted(
                    session=index,
                    identity=identity,
                    switched=switch,
                    awaiting_confirmation=not switch,
                    training_complete=complete,
                )
            )

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------

    def confirm_switch(self) -> Optional[VoiceIdentity]:
        with self._lock:
            pending = self._pending_identity
            if pending is None:
                return None
            identity = replace(pending, confirmed=True)
            self._pending_identity = None
            self._active = identity
            self._store.set_identity(identity)
        self._log(f"Switched to {identity.name}.", "success")
        if self._on_identity_changed:
            self._on_identity_changed(identity)
        return identity

    def decline_switch(self) -> None:
        with self._lock:
            if self._pending_identity is None:
                return
            self._pending_identity = None
        self._log("Keeping the current voice for now.")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _drop_from_backlog(self, samples: List[AudioSample]) -> None:
        ids = {s.sample_id for s in samples}
        with self._lock:
            backlog = [s for s in self._store.get_backlog() if s.sample_id not in ids]
            self._store.set_backlog(backlog)

    def _log(self, message: str, kind: str = "info") -> None:
        level = logging.ERROR if kind == "error" else logging.INFO
        logger.log(level, message)
        entry = TrainingLogEntry(timestamp=self._clock(), message=message, kind=kind)
        self.training_logs.append(entry)
        if self._on_log:
            self._on_log(entry)
