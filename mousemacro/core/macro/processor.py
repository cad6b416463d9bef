"""
Macro Event Processor - Normalizes raw hook events into canonical InputEvents
Handles timestamp conversion, mouse move thinning and ignored keys
"""

from __future__ import annotations
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence

from .hooks import RawEvent, RawEventType
from .models import InputEvent, MacroSettings, MouseButton, WheelAxis, EventKind

from mousemacro.utils.logger import debug


US_PER_SECOND = 1_000_000


def to_micros(timestamp: float, start_time: float) -> int:
    """Seconds since start_time as integer microseconds, clamped at 0"""
    return max(0, int(round((timestamp - start_time) * US_PER_SECOND)))


def _key_code(raw: RawEvent) -> Optional[int]:
    if raw.vk_code is not None:
        return raw.vk_code
    if raw.key is not None and len(raw.key) == 1:
        return ord(raw.key)
    return None


def normalize_event(raw: RawEvent, start_time: float) -> Optional[InputEvent]:
    """
    Convert a raw hook event into an InputEvent

    Args:
        raw: Event as delivered by the hook
        start_time: Recording start on the same clock as raw.timestamp

    Returns:
        The normalized event, or None when the raw event cannot be replayed
    """
    t_us = to_micros(raw.timestamp, start_time)
    event_type = raw.event_type

    if event_type == RawEventType.MOUSE_MOVE:
        if raw.x is None or raw.y is None:
            return None
        return InputEvent.mouse_move(raw.x, raw.y, t_us)

    if event_type in (RawEventType.MOUSE_DOWN, RawEventType.MOUSE_UP):
        button = MouseButton.from_name(raw.button or "")
        if button is None or raw.x is None or raw.y is None:
            return None
        if event_type == RawEventType.MOUSE_DOWN:
            return InputEvent.button_down(button, raw.x, raw.y, t_us)
        return InputEvent.button_up(button, raw.x, raw.y, t_us)

    if event_type == RawEventType.MOUSE_SCROLL:
        x, y = raw.x or 0, raw.y or 0
        if raw.scroll_dy:
            return InputEvent.wheel(raw.scroll_dy, x, y, t_us, WheelAxis.VERTICAL)
        if raw.scroll_dx:
            return InputEvent.wheel(raw.scroll_dx, x, y, t_us, WheelAxis.HORIZONTAL)
        return None

    if event_type in (RawEventType.KEY_DOWN, RawEventType.KEY_UP):
        code = _key_code(raw)
        if code is None:
            return None
        if event_type == RawEventType.KEY_DOWN:
            return InputEvent.key_down(code, t_us)
        return InputEvent.key_up(code, t_us)

    return None


def drop_reason(raw: RawEvent) -> str:
    """Diagnostic label for a raw event normalize_event rejected"""
    if raw.event_type in (RawEventType.MOUSE_DOWN, RawEventType.MOUSE_UP):
        return f"unknown_button:{raw.button}"
    if raw.event_type in (RawEventType.KEY_DOWN, RawEventType.KEY_UP):
        return "key_without_code"
    if raw.event_type == RawEventType.MOUSE_SCROLL:
        return "empty_scroll"
    if isinstance(raw.event_type, RawEventType):
        return f"unsupported:{raw.event_type.value}"
    return f"unsupported:{raw.event_type}"


def strip_unpaired_keys(events: Sequence[InputEvent]) -> List[InputEvent]:
    """
    Drop key releases with no preceding press and presses never released

    Used to remove the tail of the hotkey chord that started or stopped a
    recording. Repeated presses of a held key are all kept by one release.
    """
    keep = [True] * len(events)
    open_downs: Dict[int, List[int]] = {}

    for idx, event in enumerate(events):
        if event.kind == EventKind.KEY_DOWN:
            open_downs.setdefault(event.code, []).append(idx)
        elif event.kind == EventKind.KEY_UP:
            if not open_downs.pop(event.code, None):
                keep[idx] = False

    for indices in open_downs.values():
        for idx in indices:
            keep[idx] = False

    return [event for event, kept in zip(events, keep) if kept]


class MacroEventProcessor:
    """
    Normalizes raw events and applies recording filters

    Dropped events are counted per reason in `dropped` for diagnostics.
    """

    def __init__(self, settings: MacroSettings = None):
        self._settings = settings or MacroSettings()
        self._ignored_keys = {k.lower() for k in self._settings.ignored_keys}
        self._last_move: Optional[InputEvent] = None
        self.dropped: Counter = Counter()

    @property
    def dropped_total(self) -> int:
        return sum(self.dropped.values())

    def reset(self):
        self._last_move = None
        self.dropped.clear()

    def process(self, raw: RawEvent, start_time: float) -> Optional[InputEvent]:
        """Normalize one raw event; None when it was dropped or filtered"""
        if raw.key is not None and raw.key.lower() in self._ignored_keys:
            self.dropped["ignored_key"] += 1
            return None

        event = normalize_event(raw, start_time)
        if event is not None and raw.event_type == RawEventType.MOUSE_SCROLL \
                and raw.scroll_dx and raw.scroll_dy:
            # Only the vertical axis of a diagonal scroll is kept
            self.dropped["scroll_dx_dropped"] += 1
        if event is None:
            reason = drop_reason(raw)
            self.dropped[reason] += 1
            debug(f"[PROCESSOR] Dropped raw event ({reason})")
            return None

        if event.kind == EventKind.MOUSE_MOVE:
            if not self._keep_move(event):
                self.dropped["move_filtered"] += 1
                return None
            self._last_move = event

        return event

    def process_events(self, events: Iterable[RawEvent], start_time: float) -> List[InputEvent]:
        """Normalize a batch of raw events, keeping order"""
        result = []
        for raw in events:
            event = self.process(raw, start_time)
            if event is not None:
                result.append(event)
        return result

    def _keep_move(self, event: InputEvent) -> bool:
        if not self._settings.include_mouse_move:
            return False

        last = self._last_move
        if last is None:
            return True

        min_delta = self._settings.mouse_move_min_delta_px
        dx = abs(event.x - last.x)
        dy = abs(event.y - last.y)
        return dx >= min_delta or dy >= min_delta
