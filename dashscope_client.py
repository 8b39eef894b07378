"""Transcription and chat adapters using DashScope.

Transcription sends a finished recording to ``qwen3-asr-flash`` as a
base64 data URI; chat replies come from a short-answer persona on
``qwen-turbo``. Both map SDK and HTTP failures to :class:`NetworkError`
(or :class:`AuthError` for rejected keys).
"""

from __future__ import annotations

import base64
import logging
import os
from typing import Any, List, Sequence

from errors import AuthError, NetworkError
from models import Message

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger("voiceclone.dashscope")

SYSTEM_PROMPT = """You are Guenka, a wise and compassionate AI companion. IMPORTANT RULES:
- Keep all responses under 15 words
- Be concise but warm
- Focus on one clear point per response
- Use simple, direct language"""

FALLBACK_REPLY = "I apologize, but I am unable to respond right now."


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a key from a dict-like SDK response, falling back to attributes."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _resolve_api_key(api_key: str) -> str:
    key = api_key or os.getenv("DASHSCOPE_API_KEY", "")
    if not key:
        raise AuthError("No DashScope API key configured")
    return key


def _check_status(response: Any) -> None:
    status = _field(response, "status_code")
    if status == 200:
        return
    message = str(_field(response, "message", "") or f"status {status}")
    if status in (401, 403):
        raise AuthError(message, status_code=status)
    raise NetworkError(message, status_code=status)


def _to_network_error(exc: Exception) -> NetworkError:
    message = str(exc)
    low = message.lower()
    if "401" in low or "api key" in low or "auth" in low:
        return AuthError(message)
    return NetworkError(message)


def _first_message(response: Any) -> Any:
    output = _field(response, "output") or {}
    choices = _field(output, "choices") or []
    if not choices:
        return None
    return _field(choices[0], "message")


class DashscopeTranscriber:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen3-asr-flash",
        request_timeout_s: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._request_timeout_s = request_timeout_s

    def transcribe(self, audio: bytes, mime_type: str) -> str:
        """Return the recognised text; an empty string means no speech."""
        if dashscope is None:
            raise RuntimeError("dashscope is not installed")
        if not audio:
            return ""
        api_key = _resolve_api_key(self._api_key)
        base_mime = mime_type.split(";")[0] or "audio/wav"
        data_uri = f"data:{base_mime};base64,{base64.b64encode(audio).decode('ascii')}"

        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": data_uri}]},
                ],
                result_format="message",
                asr_options={"enable_itn": False},
                timeout=self._request_timeout_s,
            )
        except Exception as exc:
            raise _to_network_error(exc) from exc

        _check_status(response)
        text = self._extract_text(response)
        logger.debug("transcribed %d bytes to %r", len(audio), text)
        return text

    def _extract_text(self, response: Any) -> str:
        message = _first_message(response)
        if message is None:
            return ""
        content = _field(message, "content") or []
        if not content:
            return ""
        value = content[0]
        if isinstance(value, dict):
            return str(value.get("text", "")).strip()
        return ""


class DashscopeChatClient:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen-turbo",
        system_prompt: str = SYSTEM_PROMPT,
        max_tokens: int = 50,
        temperature: float = 0.7,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._system_prompt = system_prompt
        self._max_tokens = max_tokens
        self._temperature = temperature

    def build_messages(self, message: str, history: Sequence[Message]) -> List[dict]:
        messages = [{"role": "system", "content": self._system_prompt}]
        messages.extend({"role": m.role, "content": m.content} for m in history)
        messages.append({"role": "user", "content": message})
        return messages

    def reply(self, message: str, history: Sequence[Message]) -> str:
        if dashscope is None:
            raise RuntimeError("dashscope is not installed")
        api_key = _resolve_api_key(self._api_key)
        try:
            response = dashscope.Generation.call(
                api_key=api_key,
                model=self._model,
                messages=self.build_messages(message, history),
                result_format="message",
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
        except Exception as exc:
            raise _to_network_error(exc) from exc

        _check_status(response)
        result = _first_message(response)
        content = _field(result, "content") if result is not None else None
        if not isinstance(content, str) or not content.strip():
            return FALLBACK_REPLY
        return content.strip()
