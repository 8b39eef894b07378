from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from hotkey import HoldToSpeakKey


def _bound(key_name: str = "Key.alt_l") -> tuple[HoldToSpeakKey, list[str]]:
    calls: list[str] = []
    hotkey = HoldToSpeakKey(key_name)
    hotkey._on_hold = lambda: calls.append("hold")
    hotkey._on_release = lambda: calls.append("release")
    return hotkey, calls


def test_press_and_release_fire_once() -> None:
    hotkey, calls = _bound()

    hotkey.key_down("Key.alt_l")
    hotkey.key_down("Key.alt_l")  # auto-repeat
    assert hotkey.held
    hotkey.key_up("Key.alt_l")

    assert calls == ["hold", "release"]
    assert not hotkey.held


def test_other_keys_are_ignored() -> None:
    hotkey, calls = _bound()
    hotkey.key_down("Key.shift")
    hotkey.key_up("Key.alt_l")
    assert calls == []


@patch("hotkey.keyboard")
def test_start_and_stop_listener(mock_keyboard: MagicMock) -> None:
    listener = MagicMock()
    mock_keyboard.Listener.return_value = listener
    hotkey = HoldToSpeakKey("Key.alt_r")

    hotkey.start(lambda: None, lambda: None)
    mock_keyboard.Listener.assert_called_once_with(on_press=hotkey.key_down, on_release=hotkey.key_up)
    listener.start.assert_called_once()

    hotkey.key_down("Key.alt_r")
    hotkey.stop()
    listener.stop.assert_called_once()
    assert not hotkey.held


@patch("hotkey.keyboard", None)
def test_start_without_pynput() -> None:
    with pytest.raises(RuntimeError, match="pynput is not installed"):
        HoldToSpeakKey().start(lambda: None, lambda: None)
