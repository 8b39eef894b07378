"""Protocol interfaces for the devices and remote services the core uses."""

from __future__ import annotations

from typing import Callable, List, Optional, Protocol, Sequence

from models import AudioFrame, AudioSample, Message, SpeechResult, TrainingResult, VoiceIdentity


class Recorder(Protocol):
    def start(self, on_frame: Callable[[AudioFrame], None]) -> None: ...

    def stop(self) -> None: ...

    def close(self) -> None: ...


class Playback(Protocol):
    @property
    def is_playing(self) -> bool: ...

    def play(self, audio: bytes, sample_rate: int = 16000) -> None: ...

    def speak_locally(self, text: str) -> None: ...

    def stop(self) -> None: ...


class Transcriber(Protocol):
    def transcribe(self, audio: bytes, mime_type: str) -> str: ...


class ChatClient(Protocol):
    def reply(self, message: str, history: Sequence[Message]) -> str: ...


class SpeechSynthesizer(Protocol):
    def speak(self, text: str, voice_id: str) -> SpeechResult: ...


class VoiceTrainer(Protocol):
    def train(
        self,
        samples: Sequence[AudioSample],
        name: str,
        session_number: int,
        is_background: bool = True,
    ) -> TrainingResult: ...

    def lookup_voice(self, voice_id: str) -> Optional[VoiceIdentity]: ...


class VoiceStore(Protocol):
    def get_identity(self) -> Optional[VoiceIdentity]: ...

    def set_identity(self, identity: VoiceIdentity) -> None: ...

    def get_backlog(self) -> List[AudioSample]: ...

    def set_backlog(self, samples: List[AudioSample]) -> None: ...


class ConfigStore(Protocol):
    def get_dashscope_api_key(self) -> str: ...

    def set_dashscope_api_key(self, key: str) -> None: ...

    def get_elevenlabs_api_key(self) -> str: ...

    def set_elevenlabs_api_key(self, key: str) -> None: ...

    def get_hotkey(self) -> str: ...

    def set_hotkey(self, hotkey: str) -> None: ...

    def get_input_device(self) -> str: ...

    def get_user_id(self) -> str: ...
