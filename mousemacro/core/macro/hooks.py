"""
Global Input Hooks
Captures system-wide mouse/keyboard events and global hotkeys.
Uses pynput for cross-platform global hooks
"""

from __future__ import annotations
from typing import Optional, Callable, Tuple, Dict, Set
from dataclasses import dataclass
from abc import ABC, abstractmethod
from enum import Enum
import time
import threading

from .errors import HookInstallError, InvalidStateError
from mousemacro.utils.logger import log, debug


# ==================== RAW EVENT TYPES ====================

class RawEventType(Enum):
    MOUSE_MOVE = "mouse_move"
    MOUSE_DOWN = "mouse_down"
    MOUSE_UP = "mouse_up"
    MOUSE_SCROLL = "mouse_scroll"
    KEY_DOWN = "key_down"
    KEY_UP = "key_up"
    WINDOW_FOCUS = "window_focus"  # reported by focus-tracking hooks, never replayed


@dataclass
class RawEvent:
    """Raw input event from global hooks"""
    event_type: RawEventType
    timestamp: float  # time.perf_counter()

    # Mouse data (screen coords)
    x: Optional[int] = None
    y: Optional[int] = None
    button: Optional[str] = None  # left, right, middle, x1, x2
    scroll_dx: int = 0
    scroll_dy: int = 0

    # Keyboard data
    key: Optional[str] = None
    vk_code: Optional[int] = None


# ==================== RECORDER HOOK INTERFACE ====================

class IRecorderHook(ABC):
    """Abstract interface for input hooks (swappable implementation)"""

    @abstractmethod
    def start(self, callback: Callable[[RawEvent], None]):
        """
        Start listening for input events

        Raises:
            HookInstallError: the platform refused the hook
        """

    @abstractmethod
    def stop(self):
        """Stop listening (idempotent)"""

    @abstractmethod
    def is_running(self) -> bool:
        """Check if hook is active"""


# ==================== KEY HELPERS ====================

def key_to_name_and_code(key) -> Tuple[str, Optional[int]]:
    """
    Convert a pynput key to (name, virtual key code)

    Character keys give their character; special keys (pynput.keyboard.Key
    members) give their enum name and carry the code on key.value.
    """
    char = getattr(key, 'char', None)
    vk = getattr(key, 'vk', None)

    value = getattr(key, 'value', None)
    if vk is None and value is not None:
        vk = getattr(value, 'vk', None)

    if char:
        return (char, vk)

    name = getattr(key, 'name', None)
    if not isinstance(name, str):
        name = str(key).replace('Key.', '')
    return (name, vk)


def button_to_name(button) -> str:
    name = getattr(button, 'name', None)
    if isinstance(name, str):
        return name
    return str(button).replace('Button.', '')


# ==================== PYNPUT HOOK IMPLEMENTATION ====================

class PynputHook(IRecorderHook):
    """
    Global input hook using pynput library

    The OS hook is a process-wide resource, so only one PynputHook may be
    running at a time.
    """

    _active_lock = threading.Lock()
    _active: Optional['PynputHook'] = None

    def __init__(self, clock: Callable[[], float] = time.perf_counter):
        self._clock = clock
        self._callback: Optional[Callable[[RawEvent], None]] = None
        self._running = False

        self._mouse_listener = None
        self._keyboard_listener = None

    def start(self, callback: Callable[[RawEvent], None]):
        """Start listening for input events"""
        if self._running:
            return

        with PynputHook._active_lock:
            if PynputHook._active is not None:
                raise InvalidStateError("Another global input hook is already active")

            try:
                from pynput import mouse, keyboard
            except Exception as e:
                # pynput raises backend errors (e.g. no X display) at import time
                raise HookInstallError(f"pynput is not available: {e}") from e

            self._callback = callback
            self._mouse_listener = mouse.Listener(
                on_move=self._on_mouse_move,
                on_click=self._on_mouse_click,
                on_scroll=self._on_mouse_scroll
            )
            self._keyboard_listener = keyboard.Listener(
                on_press=self._on_key_press,
                on_release=self._on_key_release
            )

            try:
                for listener in (self._mouse_listener, self._keyboard_listener):
                    listener.daemon = True
                    listener.start()
                    listener.wait()
                    # macOS: listener runs but receives nothing without accessibility rights
                    if getattr(listener, 'IS_TRUSTED', True) is False:
                        raise HookInstallError(
                            "Process is not trusted for input monitoring; "
                            "grant accessibility permission and retry"
                        )
            except HookInstallError:
                self._teardown()
                raise
            except Exception as e:
                self._teardown()
                raise HookInstallError(f"Failed to install global input hook: {e}") from e

            PynputHook._active = self
            self._running = True

        log("[HOOK] PynputHook started")

    def stop(self):
        """Stop listening"""
        if not self._running:
            return

        with PynputHook._active_lock:
            self._running = False
            self._teardown()
            if PynputHook._active is self:
                PynputHook._active = None

        log("[HOOK] PynputHook stopped")

    def is_running(self) -> bool:
        return self._running

    def _teardown(self):
        for listener in (self._mouse_listener, self._keyboard_listener):
            if listener is not None:
                listener.stop()
        self._mouse_listener = None
        self._keyboard_listener = None
        self._callback = None

    def _emit(self, event: RawEvent):
        callback = self._callback
        if callback is not None and self._running:
            callback(event)

    def _on_mouse_move(self, x, y, *args):
        self._emit(RawEvent(
            event_type=RawEventType.MOUSE_MOVE,
            timestamp=self._clock(),
            x=int(x),
            y=int(y)
        ))

    def _on_mouse_click(self, x, y, button, pressed, *args):
        self._emit(RawEvent(
            event_type=RawEventType.MOUSE_DOWN if pressed else RawEventType.MOUSE_UP,
            timestamp=self._clock(),
            x=int(x),
            y=int(y),
            button=button_to_name(button)
        ))

    def _on_mouse_scroll(self, x, y, dx, dy, *args):
        self._emit(RawEvent(
            event_type=RawEventType.MOUSE_SCROLL,
            timestamp=self._clock(),
            x=int(x),
            y=int(y),
            scroll_dx=int(dx),
            scroll_dy=int(dy)
        ))

    def _on_key_press(self, key, *args):
        name, vk = key_to_name_and_code(key)
        self._emit(RawEvent(
            event_type=RawEventType.KEY_DOWN,
            timestamp=self._clock(),
            key=name,
            vk_code=vk
        ))

    def _on_key_release(self, key, *args):
        name, vk = key_to_name_and_code(key)
        self._emit(RawEvent(
            event_type=RawEventType.KEY_UP,
            timestamp=self._clock(),
            key=name,
            vk_code=vk
        ))


# ==================== GLOBAL HOTKEY MANAGER ====================

MODIFIERS = ('ctrl', 'alt', 'shift', 'cmd')

_MODIFIER_ALIASES = {
    'control': 'ctrl', 'ctrl_l': 'ctrl', 'ctrl_r': 'ctrl',
    'menu': 'alt', 'alt_l': 'alt', 'alt_r': 'alt', 'alt_gr': 'alt',
    'shift_l': 'shift', 'shift_r': 'shift',
    'win': 'cmd', 'super': 'cmd', 'cmd_l': 'cmd', 'cmd_r': 'cmd',
}


class GlobalHotkeyManager:
    """Manages global hotkeys for recording/playback control"""

    def __init__(self):
        self._hotkeys: Dict[str, Callable] = {}
        self._listener = None
        self._running = False
        self._current_keys: Set[str] = set()
        self._fired: Set[str] = set()
        self._lock = threading.Lock()

    @property
    def hotkeys(self) -> Dict[str, Callable]:
        return dict(self._hotkeys)

    def register(self, hotkey: str, callback: Callable):
        """
        Register a global hotkey

        Args:
            hotkey: Key combination like "Ctrl+Shift+R"
            callback: Function to call when hotkey is pressed
        """
        normalized = self.normalize_hotkey(hotkey)
        self._hotkeys[normalized] = callback
        log(f"[HOTKEY] Registered: {hotkey} -> {normalized}")

    def unregister(self, hotkey: str):
        """Unregister a hotkey"""
        self._hotkeys.pop(self.normalize_hotkey(hotkey), None)

    def start(self):
        """Start listening for hotkeys"""
        if self._running:
            return

        try:
            from pynput import keyboard
            self._listener = keyboard.Listener(
                on_press=self._on_key_press,
                on_release=self._on_key_release
            )
            self._listener.daemon = True
            self._listener.start()
        except Exception as e:
            self._listener = None
            raise HookInstallError(f"Cannot start hotkey listener: {e}") from e

        self._running = True
        log("[HOTKEY] GlobalHotkeyManager started")

    def stop(self):
        """Stop listening"""
        if not self._running:
            return

        self._running = False

        if self._listener:
            self._listener.stop()
            self._listener = None

        log("[HOTKEY] GlobalHotkeyManager stopped")

    @staticmethod
    def normalize_hotkey(hotkey: str) -> str:
        """Normalize hotkey string to consistent format"""
        parts = [p.strip().lower() for p in hotkey.split('+') if p.strip()]
        normalized = [_MODIFIER_ALIASES.get(p, p) for p in parts]

        # Sort modifiers first, then key
        modifiers = sorted(p for p in normalized if p in MODIFIERS)
        keys = sorted(p for p in normalized if p not in MODIFIERS)

        return '+'.join(modifiers + keys)

    @staticmethod
    def key_name(key) -> Optional[str]:
        """Get normalized key name"""
        char = getattr(key, 'char', None)
        if char:
            # Ctrl+letter arrives as an ASCII control character on some platforms
            if len(char) == 1 and 0 < ord(char) < 27:
                char = chr(ord(char) + 96)
            return char.lower()

        name, _ = key_to_name_and_code(key)
        if not name:
            return None
        name = name.lower()
        return _MODIFIER_ALIASES.get(name, name)

    def _current_combo(self) -> str:
        modifiers = sorted(k for k in self._current_keys if k in MODIFIERS)
        keys = sorted(k for k in self._current_keys if k not in MODIFIERS)
        return '+'.join(modifiers + keys)

    def _on_key_press(self, key, *args):
        """Handle key press"""
        with self._lock:
            key_name = self.key_name(key)
            if not key_name:
                return
            self._current_keys.add(key_name)
            combo = self._current_combo()
            callback = self._hotkeys.get(combo)
            # Auto-repeat keeps sending presses; fire once per hold
            if callback is None or combo in self._fired:
                return
            self._fired.add(combo)

        debug(f"[HOTKEY] Triggered: {combo}")
        # Execute callback in separate thread to not block listener
        threading.Thread(target=callback, daemon=True).start()

    def _on_key_release(self, key, *args):
        """Handle key release"""
        with self._lock:
            key_name = self.key_name(key)
            if key_name:
                self._current_keys.discard(key_name)
                self._fired = {c for c in self._fired if key_name not in c.split('+')}
