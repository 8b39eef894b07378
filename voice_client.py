"""ElevenLabs speech synthesis and voice cloning over httpx."""

from __future__ import annotations

import logging
import os
from typing import Any, Optional, Sequence

import httpx

from errors import AuthError, NetworkError, TrainingFailure
from models import AudioSample, SpeechResult, TrainingResult, VoiceIdentity, VoiceProvenance

logger = logging.getLogger("voiceclone.voice_client")

API_BASE = "https://api.elevenlabs.io/v1"

# Rachel, used until a cloned voice exists.
DEFAULT_VOICE_ID = "21m00Tcm4TlvDq8ikWAM"
DEFAULT_VOICE_NAME = "Rachel (Default Voice)"

DEFAULT_VOICE = VoiceIdentity(
    voice_id=DEFAULT_VOICE_ID,
    name=DEFAULT_VOICE_NAME,
    provenance=VoiceProvenance.DEFAULT,
    confirmed=False,
)

SPEECH_SAMPLE_RATE = 16000

VOICE_SETTINGS = {
    "stability": 0.25,
    "similarity_boost": 0.75,
    "style": 0.35,
    "use_speaker_boost": True,
}

_EXTENSIONS = {
    "audio/wav": "wav",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/webm": "webm",
}


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"status {response.status_code}"
    detail: Any = data.get("detail") if isinstance(data, dict) else None
    if isinstance(detail, dict):
        return str(detail.get("message") or detail)
    if detail:
        return str(detail)
    return f"status {response.status_code}"


class ElevenLabsClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = API_BASE,
        model_id: str = "eleven_monolingual_v1",
        timeout_s: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._api_key = api_key
        self._model_id = model_id
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout_s)

    def close(self) -> None:
        self._client.close()

    def _headers(self, accept: str = "application/json") -> dict:
        key = self._api_key or os.getenv("ELEVENLABS_API_KEY", "")
        if not key:
            raise AuthError("No ElevenLabs API key configured")
        return {"Accept": accept, "xi-api-key": key}

    def speak(self, text: str, voice_id: str) -> SpeechResult:
        """Synthesize ``text``; any failure asks the caller to speak locally."""
        if not text.strip():
            return SpeechResult()
        target = DEFAULT_VOICE_ID if voice_id in ("", "default") else voice_id
        try:
            response = self._client.post(
                f"/text-to-speech/{target}",
                params={
                    "output_format": f"pcm_{SPEECH_SAMPLE_RATE}",
                    "optimize_streaming_latency": 3,
                },
                headers=self._headers(accept="audio/pcm"),
                json={
                    "text": text,
                    "model_id": self._model_id,
                    "voice_settings": VOICE_SETTINGS,
                },
            )
        except (httpx.HTTPError, AuthError) as exc:
            logger.warning("speech request failed, using local synthesis: %s", exc)
            return SpeechResult(use_local_fallback=True)

        if not response.is_success:
            logger.warning(
                "speech request returned %s, using local synthesis: %s",
                response.status_code,
                _error_detail(response),
            )
            return SpeechResult(use_local_fallback=True)
        return SpeechResult(audio=response.content, sample_rate=SPEECH_SAMPLE_RATE)

    def train(
        self,
        samples: Sequence[AudioSample],
        name: str,
        session_number: int,
        is_background: bool = True,
    ) -> TrainingResult:
        if not samples:
            raise TrainingFailure("No audio samples to train on")
        voice_name = f"{name} (Session {session_number})"
        files = []
        for i, sample in enumerate(samples, start=1):
            base_mime = sample.mime_type.split(";")[0]
            ext = _EXTENSIONS.get(base_mime, "wav")
            files.append(("files", (f"sample-{i}.{ext}", sample.data, base_mime)))
        data = {
            "name": voice_name,
            "description": f"Progressive voice training - Session {session_number}",
        }

        try:
            response = self._client.post(
                "/voices/add",
                headers=self._headers(),
                data=data,
                files=files,
            )
        except httpx.HTTPError as exc:
            raise TrainingFailure(f"Failed to clone voice: {exc}") from exc
        except AuthError as exc:
            raise TrainingFailure(str(exc)) from exc

        if not response.is_success:
            raise TrainingFailure(_error_detail(response))
        try:
            body = response.json()
        except ValueError as exc:
            raise TrainingFailure(f"Clone response was not JSON: {exc}") from exc
        voice_id = body.get("voice_id") if isinstance(body, dict) else None
        if not voice_id:
            raise TrainingFailure("Clone response carried no voice_id")
        logger.info(
            "%s session %d trained %s from %d samples",
            "background" if is_background else "foreground",
            session_number,
            voice_id,
            len(samples),
        )
        return TrainingResult(voice_id=voice_id, name=voice_name, session=session_number)

    def lookup_voice(self, voice_id: str) -> Optional[VoiceIdentity]:
        """Return the remote voice, ``None`` if it no longer exists."""
        try:
            response = self._client.get(f"/voices/{voice_id}", headers=self._headers())
        except httpx.HTTPError as exc:
            raise NetworkError(f"Voice lookup failed: {exc}") from exc
        if response.status_code in (400, 404):
            return None
        if response.status_code in (401, 403):
            raise AuthError(_error_detail(response), status_code=response.status_code)
        if not response.is_success:
            raise NetworkError(_error_detail(response), status_code=response.status_code)
        try:
            data = response.json()
        except ValueError as exc:
            raise NetworkError(f"Voice lookup returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise NetworkError("Voice lookup returned an unexpected body")
        return VoiceIdentity(
            voice_id=str(data.get("voice_id", voice_id)),
            name=str(data.get("name", "")),
            provenance=VoiceProvenance.TRAINED,
            confirmed=True,
        )
