"""
Macro Data Models
Canonical input events, the Macro container and recording/playback settings
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import IntEnum
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import InvalidArgumentError
from .schedule import DelayPolicy, ExecutionSchedule


# ==================== ENUMS ====================

class EventKind(IntEnum):
    """Closed set of input event kinds; values are the persisted tags"""
    KEY_DOWN = 1
    KEY_UP = 2
    MOUSE_MOVE = 3
    MOUSE_BUTTON_DOWN = 4
    MOUSE_BUTTON_UP = 5
    MOUSE_WHEEL = 6


MOUSE_KINDS = frozenset({
    EventKind.MOUSE_MOVE, EventKind.MOUSE_BUTTON_DOWN,
    EventKind.MOUSE_BUTTON_UP, EventKind.MOUSE_WHEEL,
})

KEY_KINDS = frozenset({EventKind.KEY_DOWN, EventKind.KEY_UP})


class MouseButton(IntEnum):
    LEFT = 1
    RIGHT = 2
    MIDDLE = 3
    X1 = 4
    X2 = 5

    @staticmethod
    def from_name(name: str) -> Optional['MouseButton']:
        aliases = {"left": MouseButton.LEFT, "right": MouseButton.RIGHT,
                   "middle": MouseButton.MIDDLE, "x1": MouseButton.X1,
                   "x2": MouseButton.X2, "button8": MouseButton.X1,
                   "button9": MouseButton.X2}
        return aliases.get(name.lower())


class WheelAxis(IntEnum):
    VERTICAL = 0
    HORIZONTAL = 1


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ==================== INPUT EVENT ====================

@dataclass(frozen=True)
class InputEvent:
    """
    One normalized input event.

    Attributes:
        kind: Event kind tag
        timestamp_us: Microseconds since recording start
        code: Virtual key code, MouseButton value or WheelAxis value
        x, y: Cursor position (mouse events)
        delta: Scroll steps (wheel events)
    """
    kind: EventKind
    timestamp_us: int
    code: int = 0
    x: int = 0
    y: int = 0
    delta: int = 0

    def __post_init__(self):
        try:
            object.__setattr__(self, "kind", EventKind(self.kind))
        except ValueError as e:
            raise InvalidArgumentError(f"Unknown event kind: {self.kind!r}") from e
        if self.timestamp_us < 0:
            raise InvalidArgumentError(f"Negative timestamp: {self.timestamp_us}")

    @property
    def is_mouse(self) -> bool:
        return self.kind in MOUSE_KINDS

    @property
    def is_keyboard(self) -> bool:
        return self.kind in KEY_KINDS

    def with_timestamp(self, timestamp_us: int) -> 'InputEvent':
        return replace(self, timestamp_us=timestamp_us)

    # Factories

    @classmethod
    def key_down(cls, code: int, timestamp_us: int) -> 'InputEvent':
        return cls(EventKind.KEY_DOWN, timestamp_us, code=code)

    @classmethod
    def key_up(cls, code: int, timestamp_us: int) -> 'InputEvent':
        return cls(EventKind.KEY_UP, timestamp_us, code=code)

    @classmethod
    def mouse_move(cls, x: int, y: int, timestamp_us: int) -> 'InputEvent':
        return cls(EventKind.MOUSE_MOVE, timestamp_us, x=x, y=y)

    @classmethod
    def button_down(cls, button: MouseButton, x: int, y: int, timestamp_us: int) -> 'InputEvent':
        return cls(EventKind.MOUSE_BUTTON_DOWN, timestamp_us, code=int(button), x=x, y=y)

    @classmethod
    def button_up(cls, button: MouseButton, x: int, y: int, timestamp_us: int) -> 'InputEvent':
        return cls(EventKind.MOUSE_BUTTON_UP, timestamp_us, code=int(button), x=x, y=y)

    @classmethod
    def wheel(cls, delta: int, x: int, y: int, timestamp_us: int,
              axis: WheelAxis = WheelAxis.VERTICAL) -> 'InputEvent':
        return cls(EventKind.MOUSE_WHEEL, timestamp_us, code=int(axis), x=x, y=y, delta=delta)

    def get_summary(self) -> str:
        t = f"{self.timestamp_us / 1000:.1f}ms"
        if self.kind in KEY_KINDS:
            return f"{t} {self.kind.name} code={self.code}"
        if self.kind == EventKind.MOUSE_MOVE:
            return f"{t} MOVE ({self.x}, {self.y})"
        if self.kind == EventKind.MOUSE_WHEEL:
            return f"{t} WHEEL {WheelAxis(self.code).name.lower()} {self.delta:+d} at ({self.x}, {self.y})"
        return f"{t} {self.kind.name} button={self.code} at ({self.x}, {self.y})"


# ==================== MACRO ====================

@dataclass(frozen=True)
class Macro:
    """Immutable recorded macro; events are ordered by non-decreasing timestamp"""
    name: str = "New Macro"
    events: Tuple[InputEvent, ...] = ()
    created_at: datetime = field(default_factory=_utc_now)

    def __post_init__(self):
        events = tuple(self.events)
        object.__setattr__(self, "events", events)

        # Naive datetimes are taken as UTC so persisted values compare equal
        if self.created_at.tzinfo is None:
            object.__setattr__(self, "created_at", self.created_at.replace(tzinfo=timezone.utc))

        check_monotonic(events)

    @property
    def duration_us(self) -> int:
        if not self.events:
            return 0
        return self.events[-1].timestamp_us

    def __len__(self) -> int:
        return len(self.events)

    def kind_counts(self) -> Dict[EventKind, int]:
        return dict(Counter(e.kind for e in self.events))

    def renamed(self, name: str) -> 'Macro':
        return replace(self, name=name)

    def get_summary(self) -> str:
        return f"{self.name}: {len(self.events)} events, {self.duration_us / 1_000_000:.2f}s"


def check_monotonic(events: Iterable[InputEvent]):
    """Raise InvalidArgumentError at the first event whose timestamp goes backwards"""
    last = 0
    for idx, event in enumerate(events):
        if event.timestamp_us < last:
            raise InvalidArgumentError(
                f"Event #{idx} timestamp {event.timestamp_us} is before previous {last}"
            )
        last = event.timestamp_us


# ==================== HOTKEY CONFIG ====================

@dataclass
class HotkeyConfig:
    """Global hotkey configuration"""
    record_start_stop: str = "Ctrl+Shift+R"
    play_toggle: str = "Ctrl+Shift+P"
    pause_toggle: str = "Ctrl+Shift+Space"
    stop_playback: str = "Ctrl+Shift+S"

    def to_dict(self) -> dict:
        return {
            "record_start_stop": self.record_start_stop,
            "play_toggle": self.play_toggle,
            "pause_toggle": self.pause_toggle,
            "stop_playback": self.stop_playback
        }

    @staticmethod
    def from_dict(data: dict) -> 'HotkeyConfig':
        return HotkeyConfig(
            record_start_stop=data.get("record_start_stop", "Ctrl+Shift+R"),
            play_toggle=data.get("play_toggle", "Ctrl+Shift+P"),
            pause_toggle=data.get("pause_toggle", "Ctrl+Shift+Space"),
            stop_playback=data.get("stop_playback", "Ctrl+Shift+S")
        )


# ==================== PLAYBACK OPTIONS ====================

@dataclass
class PlaybackOptions:
    """Per-request playback parameters"""
    speed: float = 1.0
    loop_count: int = 1
    jitter_px: int = 0
    schedule: Optional[ExecutionSchedule] = None
    loop_delay_ms: int = 0
    loop_delay_random_ms: Tuple[int, int] = (0, 0)

    def loop_delay(self) -> DelayPolicy:
        """Delay between passes; raises InvalidArgumentError on bad values"""
        try:
            low, high = self.loop_delay_random_ms
        except (TypeError, ValueError) as e:
            raise InvalidArgumentError(
                f"loop_delay_random_ms must be (min, max), got {self.loop_delay_random_ms!r}"
            ) from e
        return DelayPolicy(self.loop_delay_ms, low, high)


# ==================== MACRO SETTINGS ====================

@dataclass
class MacroSettings:
    """Macro recording/playback settings"""
    include_mouse_move: bool = True
    mouse_move_min_delta_px: int = 5
    ignored_keys: List[str] = field(default_factory=list)
    play_speed_multiplier: float = 1.0
    loop_count: int = 1
    jitter_px: int = 0
    loop_delay_ms: int = 0
    loop_delay_random_ms: Tuple[int, int] = (0, 0)
    hotkeys: HotkeyConfig = field(default_factory=HotkeyConfig)

    def playback_options(self) -> PlaybackOptions:
        return PlaybackOptions(
            speed=self.play_speed_multiplier,
            loop_count=self.loop_count,
            jitter_px=self.jitter_px,
            loop_delay_ms=self.loop_delay_ms,
            loop_delay_random_ms=tuple(self.loop_delay_random_ms)
        )

    def to_dict(self) -> dict:
        return {
            "include_mouse_move": self.include_mouse_move,
            "mouse_move_min_delta_px": self.mouse_move_min_delta_px,
            "ignored_keys": list(self.ignored_keys),
            "play_speed_multiplier": self.play_speed_multiplier,
            "loop_count": self.loop_count,
            "jitter_px": self.jitter_px,
            "loop_delay_ms": self.loop_delay_ms,
            "loop_delay_random_ms": list(self.loop_delay_random_ms),
            "hotkeys": self.hotkeys.to_dict()
        }

    @staticmethod
    def from_dict(data: dict) -> 'MacroSettings':
        return MacroSettings(
            include_mouse_move=data.get("include_mouse_move", True),
            mouse_move_min_delta_px=data.get("mouse_move_min_delta_px", 5),
            ignored_keys=list(data.get("ignored_keys", [])),
            play_speed_multiplier=data.get("play_speed_multiplier", 1.0),
            loop_count=data.get("loop_count", 1),
            jitter_px=data.get("jitter_px", 0),
            loop_delay_ms=data.get("loop_delay_ms", 0),
            loop_delay_random_ms=tuple(data.get("loop_delay_random_ms", (0, 0))),
            hotkeys=HotkeyConfig.from_dict(data.get("hotkeys", {}))
        )
