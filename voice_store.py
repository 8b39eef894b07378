"""Per-user persistence of the active voice and the recording backlog."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from pathlib import Path
from typing import List, Optional

from config import CONFIG_DIR
from models import AudioSample, VoiceIdentity, VoiceProvenance

logger = logging.getLogger("voiceclone.voice_store")

MAX_BACKLOG = 50


class JsonVoiceStore:
    """One JSON document per user holding ``identity`` and ``backlog``.

    Audio bytes are stored base64-encoded. The backlog keeps the newest
    ``max_backlog`` samples.
    """

    def __init__(
        self,
        user_id: str,
        root: Path | None = None,
        max_backlog: int = MAX_BACKLOG,
    ) -> None:
        safe_user = re.sub(r"[^A-Za-z0-9_.-]", "_", user_id) or "local"
        self._path = (root or CONFIG_DIR / "users") / safe_user / "voice.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._max_backlog = max_backlog

    def get_identity(self) -> Optional[VoiceIdentity]:
        raw = self._read_all().get("identity")
        if not isinstance(raw, dict) or not raw.get("voice_id"):
            return None
        try:
            provenance = VoiceProvenance(raw.get("provenance", VoiceProvenance.TRAINED.value))
        except ValueError:
            provenance = VoiceProvenance.TRAINED
        return VoiceIdentity(
            voice_id=str(raw["voice_id"]),
            name=str(raw.get("name", "")),
            provenance=provenance,
            confirmed=bool(raw.get("confirmed", False)),
        )

    def set_identity(self, identity: VoiceIdentity) -> None:
        data = self._read_all()
        data["identity"] = {
            "voice_id": identity.voice_id,
            "name": identity.name,
            "provenance": identity.provenance.value,
            "confirmed": identity.confirmed,
        }
        self._write_all(data)

    def get_backlog(self) -> List[AudioSample]:
        samples: List[AudioSample] = []
        for raw in self._read_all().get("backlog", []):
            try:
                samples.append(
                    AudioSample(
                        data=base64.b64decode(raw["data"]),
                        mime_type=str(raw.get("mime_type", "audio/wav")),
                        captured_at_ms=int(raw.get("captured_at_ms", 0)),
                        session_index=int(raw.get("session_index", 0)),
                        sample_id=str(raw["sample_id"]),
                    )
                )
            except (KeyError, TypeError, ValueError, binascii.Error) as exc:
                logger.warning("skipping unreadable backlog entry: %s", exc)
        return samples

    def set_backlog(self, samples: List[AudioSample]) -> None:
        kept = samples[-self._max_backlog:] if self._max_backlog > 0 else []
        data = self._read_all()
        data["backlog"] = [
            {
                "sample_id": sample.sample_id,
                "data": base64.b64encode(sample.data).decode("ascii"),
                "mime_type": sample.mime_type,
                "captured_at_ms": sample.captured_at_ms,
                "session_index": sample.session_index,
            }
            for sample in kept
        ]
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")


class MemoryVoiceStore:
    """Non-persistent store for sessions that should leave nothing on disk."""

    def __init__(self) -> None:
        self._identity: Optional[VoiceIdentity] = None
        self._backlog: List[AudioSample] = []

    def get_identity(self) -> Optional[VoiceIdentity]:
        return self._identity

    def set_identity(self, identity: VoiceIdentity) -> None:
        self._identity = identity

    def get_backlog(self) -> List[AudioSample]:
        return list(self._backlog)

    def set_backlog(self, samples: List[AudioSample]) -> None:
        self._backlog = list(samples[-MAX_BACKLOG:])
