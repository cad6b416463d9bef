"""
Test global hook helpers and hotkey dispatch
pynput key objects are replaced by simple stand-ins
"""

import sys
import threading
from types import SimpleNamespace

import pytest
from unittest.mock import MagicMock, patch

from mousemacro.core.macro.errors import HookInstallError, InvalidStateError
from mousemacro.core.macro.hooks import (
    GlobalHotkeyManager, PynputHook, RawEventType, button_to_name, key_to_name_and_code
)


def char_key(char, vk=None):
    return SimpleNamespace(char=char, vk=vk)


def special_key(name, vk):
    return SimpleNamespace(name=name, value=SimpleNamespace(vk=vk))


class TestKeyHelpers:

    def test_char_key(self):
        assert key_to_name_and_code(char_key("a", 65)) == ("a", 65)

    def test_special_key_reads_value_vk(self):
        assert key_to_name_and_code(special_key("shift", 16)) == ("shift", 16)

    def test_button_name(self):
        assert button_to_name(SimpleNamespace(name="left")) == "left"
        assert button_to_name("Button.middle") == "middle"


class TestNormalizeHotkey:

    @pytest.mark.parametrize("text,expected", [
        ("Ctrl+Shift+R", "ctrl+shift+r"),
        ("shift + control + r", "ctrl+shift+r"),
        ("Alt_L+F5", "alt+f5"),
        ("Ctrl+Shift+Space", "ctrl+shift+space"),
    ])
    def test_normalize(self, text, expected):
        assert GlobalHotkeyManager.normalize_hotkey(text) == expected

    def test_key_name_control_char(self):
        # Ctrl+R delivered as ASCII 0x12
        assert GlobalHotkeyManager.key_name(char_key("\x12")) == "r"

    def test_key_name_modifier_alias(self):
        assert GlobalHotkeyManager.key_name(special_key("ctrl_l", 162)) == "ctrl"


class TestHotkeyDispatch:

    @pytest.fixture
    def manager(self):
        return GlobalHotkeyManager()

    def test_fires_once_per_hold(self, manager):
        fired = threading.Event()
        calls = []

        def callback():
            calls.append(1)
            fired.set()

        manager.register("Ctrl+R", callback)
        manager._on_key_press(special_key("ctrl_l", 162))
        manager._on_key_press(char_key("r"))
        assert fired.wait(2)

        # auto-repeat
        manager._on_key_press(char_key("r"))
        manager._on_key_release(char_key("r"))
        manager._on_key_release(special_key("ctrl_l", 162))
        assert calls == [1]

    def test_unregistered_combo_ignored(self, manager):
        callback = MagicMock()
        manager.register("Ctrl+R", callback)
        manager.unregister("ctrl+r")
        manager._on_key_press(special_key("ctrl", 17))
        manager._on_key_press(char_key("r"))
        assert manager.hotkeys == {}
        callback.assert_not_called()

    def test_listener_failure_raises(self, manager):
        pynput = MagicMock()
        pynput.keyboard.Listener.side_effect = RuntimeError("no display")
        with patch.dict(sys.modules, {"pynput": pynput, "pynput.keyboard": pynput.keyboard}):
            with pytest.raises(HookInstallError):
                manager.start()


class TestPynputHook:

    def test_second_active_hook_rejected(self):
        first = PynputHook()
        PynputHook._active = first
        with pytest.raises(InvalidStateError):
            PynputHook().start(lambda e: None)

    def test_callbacks_build_raw_events(self):
        received = []
        hook = PynputHook(clock=lambda: 5.0)
        hook._callback = received.append
        hook._running = True

        hook._on_mouse_move(10.0, 20.0)
        hook._on_mouse_click(1, 2, SimpleNamespace(name="left"), True)
        hook._on_mouse_scroll(1, 2, 0, -1)
        hook._on_key_release(char_key("a", 65))

        assert [e.event_type for e in received] == [
            RawEventType.MOUSE_MOVE, RawEventType.MOUSE_DOWN,
            RawEventType.MOUSE_SCROLL, RawEventType.KEY_UP
        ]
        assert (received[0].x, received[0].y) == (10, 20)
        assert received[1].button == "left"
        assert received[2].scroll_dy == -1
        assert received[3].vk_code == 65
        assert all(e.timestamp == 5.0 for e in received)

    def test_stop_is_idempotent(self):
        hook = PynputHook()
        hook.stop()
        hook.stop()
        assert not hook.is_running()
