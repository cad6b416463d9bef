"""
Macro Playback Engine
Replays macro events through an input synthesizer with timing control
"""

from __future__ import annotations
from typing import Optional, Callable
from dataclasses import dataclass, field
from datetime import datetime, time as dtime
from abc import ABC, abstractmethod
from enum import Enum
import math
import random
import threading
import time

from .errors import HookInstallError, InvalidArgumentError, InvalidStateError, PlaybackError
from .models import EventKind, InputEvent, Macro, MouseButton, WheelAxis, MOUSE_KINDS
from .schedule import DelayPolicy, ExecutionSchedule

from mousemacro.utils.logger import log, debug


US_PER_SECOND = 1_000_000


# ==================== SYNTHESIZERS ====================

class IInputSynthesizer(ABC):
    """Turns InputEvents into OS input"""

    @abstractmethod
    def emit(self, event: InputEvent):
        """Synthesize one event; raise on platform rejection"""


class PynputSynthesizer(IInputSynthesizer):
    """Synthesizes input with pynput controllers"""

    def __init__(self):
        try:
            from pynput import mouse, keyboard
        except Exception as e:
            raise HookInstallError(f"pynput is not available: {e}") from e

        self._mouse = mouse.Controller()
        self._keyboard = keyboard.Controller()
        self._key_code = keyboard.KeyCode
        self._buttons = {
            MouseButton.LEFT: mouse.Button.left,
            MouseButton.RIGHT: mouse.Button.right,
            MouseButton.MIDDLE: mouse.Button.middle,
        }
        # Extra buttons only exist on some backends
        for button, name in ((MouseButton.X1, 'x1'), (MouseButton.X2, 'x2'),
                             (MouseButton.X1, 'button8'), (MouseButton.X2, 'button9')):
            if button not in self._buttons and hasattr(mouse.Button, name):
                self._buttons[button] = getattr(mouse.Button, name)

    def _button(self, code: int):
        try:
            return self._buttons[MouseButton(code)]
        except (ValueError, KeyError) as e:
            raise InvalidArgumentError(f"Mouse button {code} is not supported on this platform") from e

    def emit(self, event: InputEvent):
        kind = event.kind
        if kind == EventKind.MOUSE_MOVE:
            self._mouse.position = (event.x, event.y)
        elif kind == EventKind.MOUSE_BUTTON_DOWN:
            self._mouse.position = (event.x, event.y)
            self._mouse.press(self._button(event.code))
        elif kind == EventKind.MOUSE_BUTTON_UP:
            self._mouse.position = (event.x, event.y)
            self._mouse.release(self._button(event.code))
        elif kind == EventKind.MOUSE_WHEEL:
            self._mouse.position = (event.x, event.y)
            if event.code == WheelAxis.HORIZONTAL:
                self._mouse.scroll(event.delta, 0)
            else:
                self._mouse.scroll(0, event.delta)
        elif kind == EventKind.KEY_DOWN:
            self._keyboard.press(self._key_code.from_vk(event.code))
        elif kind == EventKind.KEY_UP:
            self._keyboard.release(self._key_code.from_vk(event.code))
        else:
            raise InvalidArgumentError(f"Unhandled event kind: {kind!r}")


class DryRunSynthesizer(IInputSynthesizer):
    """Logs events instead of injecting them"""

    def __init__(self):
        self.emitted = 0

    def emit(self, event: InputEvent):
        self.emitted += 1
        log(f"[DRY-RUN] {event.get_summary()}")


# ==================== PLAYBACK STATE ====================

class PlaybackState(Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    ERROR = "error"


def _set_event() -> threading.Event:
    event = threading.Event()
    event.set()
    return event


@dataclass
class PlaybackSession:
    """Transient state of one play() call"""
    macro: Macro
    speed: float
    loops_remaining: int
    jitter_px: int = 0
    schedule: Optional[ExecutionSchedule] = None
    loop_delay: Optional[DelayPolicy] = None
    cursor: int = -1  # index of the last emitted event
    emitted: int = 0
    loop_start: float = 0.0
    paused_at: Optional[float] = None
    error: Optional[PlaybackError] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)
    resume_event: threading.Event = field(default_factory=_set_event)
    emit_lock: threading.Lock = field(default_factory=threading.Lock)


# ==================== PLAYBACK ENGINE ====================

class MacroPlayer:
    """
    Macro Playback Engine

    Each event is due at loop_start + timestamp / speed. Events are emitted
    strictly in recorded order; a late event is emitted immediately.
    """

    TICK = 0.05  # max sleep slice, bounds pause latency
    SCHEDULE_POLL = 0.2
    JOIN_TIMEOUT = 2.0

    def __init__(self,
                 synthesizer: Optional[IInputSynthesizer] = None,
                 clock: Callable[[], float] = time.perf_counter,
                 local_time: Callable[[], dtime] = lambda: datetime.now().time(),
                 rng: Optional[random.Random] = None):
        self._synthesizer = synthesizer
        self._clock = clock
        self._local_time = local_time
        self._rng = rng or random.Random()

        self._state = PlaybackState.IDLE
        self._lock = threading.Lock()
        self._session: Optional[PlaybackSession] = None
        self._thread: Optional[threading.Thread] = None

        # Callbacks
        self._on_state_change: Optional[Callable[[PlaybackState], None]] = None
        self._on_event: Optional[Callable[[int, InputEvent], None]] = None
        self._on_error: Optional[Callable[[PlaybackError], None]] = None

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def is_playing(self) -> bool:
        return self._state == PlaybackState.PLAYING

    @property
    def is_active(self) -> bool:
        return self._state in (PlaybackState.PLAYING, PlaybackState.PAUSED)

    @property
    def current_index(self) -> int:
        """Index of the last emitted event (-1 before the first)"""
        if self._session:
            return self._session.cursor
        return -1

    @property
    def last_error(self) -> Optional[PlaybackError]:
        if self._session:
            return self._session.error
        return None

    def set_synthesizer(self, synthesizer: IInputSynthesizer):
        if self.is_active:
            raise InvalidStateError("Cannot change synthesizer during playback")
        self._synthesizer = synthesizer

    def set_callbacks(self,
                      on_state_change: Callable[[PlaybackState], None] = None,
                      on_event: Callable[[int, InputEvent], None] = None,
                      on_error: Callable[[PlaybackError], None] = None):
        """Set playback callbacks"""
        self._on_state_change = on_state_change
        self._on_event = on_event
        self._on_error = on_error

    # ==================== CONTROL ====================

    def play(self, macro: Macro, speed: float = 1.0, loop_count: int = 1,
             jitter_px: int = 0, schedule: Optional[ExecutionSchedule] = None,
             loop_delay: Optional[DelayPolicy] = None):
        """
        Start macro playback on a background thread

        Args:
            macro: Macro to play
            speed: Playback speed multiplier (> 0)
            loop_count: Number of passes (>= 1)
            jitter_px: Random offset applied to mouse coordinates
            schedule: Local time window gating each pass
            loop_delay: Pause between passes (not scaled by speed)

        Raises:
            InvalidArgumentError: bad speed/loop_count/jitter
            InvalidStateError: playback already active
            HookInstallError: default synthesizer cannot be created
        """
        if isinstance(speed, bool) or not isinstance(speed, (int, float)) \
                or not math.isfinite(speed) or speed <= 0:
            raise InvalidArgumentError(f"speed must be a positive number, got {speed!r}")
        if isinstance(loop_count, bool) or not isinstance(loop_count, int) or loop_count < 1:
            raise InvalidArgumentError(f"loop_count must be >= 1, got {loop_count!r}")
        if isinstance(jitter_px, bool) or not isinstance(jitter_px, int) or jitter_px < 0:
            raise InvalidArgumentError(f"jitter_px must be >= 0, got {jitter_px!r}")
        if loop_delay is not None and not isinstance(loop_delay, DelayPolicy):
            raise InvalidArgumentError(f"loop_delay must be a DelayPolicy, got {loop_delay!r}")
        if self.is_active:
            raise InvalidStateError("Playback already in progress")

        # A cancelled session may still be unwinding
        self.join()

        if self._synthesizer is None:
            self._synthesizer = PynputSynthesizer()

        with self._lock:
            if self.is_active:
                raise InvalidStateError("Playback already in progress")

            session = PlaybackSession(
                macro=macro,
                speed=float(speed),
                loops_remaining=loop_count,
                jitter_px=jitter_px,
                schedule=schedule,
                loop_delay=loop_delay
            )
            self._session = session
            self._state = PlaybackState.PLAYING
            thread = threading.Thread(
                target=self._run, args=(session,), name="macro-player", daemon=True
            )
            self._thread = thread

        log(f"[PLAYER] Playback started: {macro.name} ({len(macro)} events, "
            f"speed x{speed}, loops {loop_count})")
        self._notify(PlaybackState.PLAYING)
        thread.start()

    def cancel(self, wait: bool = True) -> bool:
        """
        Stop playback; events already emitted are not undone

        Returns:
            False when nothing was playing
        """
        with self._lock:
            session = self._session
            if session is None or not self.is_active:
                return False
            # Waits for an in-flight emission so nothing is emitted after return
            with session.emit_lock:
                session.cancel_event.set()
            session.resume_event.set()
            self._state = PlaybackState.IDLE

        log(f"[PLAYER] Playback cancelled after {session.emitted} events")
        self._notify(PlaybackState.IDLE)
        if wait:
            self.join()
        return True

    def stop(self):
        """Alias of cancel()"""
        self.cancel()

    def pause(self):
        """Pause playback; the remaining schedule shifts by the paused time"""
        with self._lock:
            if self._state != PlaybackState.PLAYING:
                raise InvalidStateError(f"Cannot pause while {self._state.value}")
            session = self._session
            # An emission in flight completes before the pause takes hold
            with session.emit_lock:
                session.resume_event.clear()
            session.paused_at = self._clock()
            self._state = PlaybackState.PAUSED

        log("[PLAYER] Playback paused")
        self._notify(PlaybackState.PAUSED)

    def resume(self):
        """Resume paused playback"""
        with self._lock:
            if self._state != PlaybackState.PAUSED:
                raise InvalidStateError(f"Cannot resume while {self._state.value}")
            session = self._session
            now = self._clock()
            paused_from = max(session.paused_at, session.loop_start)
            session.loop_start += max(0.0, now - paused_from)
            session.paused_at = None
            session.resume_event.set()
            self._state = PlaybackState.PLAYING

        log("[PLAYER] Playback resumed")
        self._notify(PlaybackState.PLAYING)

    def toggle_pause(self):
        """Toggle pause state"""
        if self._state == PlaybackState.PLAYING:
            self.pause()
        elif self._state == PlaybackState.PAUSED:
            self.resume()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the playback thread to finish

        Returns:
            False if still running after timeout

        Raises:
            PlaybackError: the session failed
        """
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                return False
        error = self.last_error
        if error is not None:
            raise error
        return True

    def join(self, timeout: Optional[float] = JOIN_TIMEOUT):
        """Wait for the playback thread without raising its error"""
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def shutdown(self):
        """Clean shutdown"""
        self.cancel()

    # ==================== PLAYBACK LOOP ====================

    def _run(self, session: PlaybackSession):
        error = None
        try:
            self._run_loops(session)
        except PlaybackError as e:
            error = e
        except Exception as e:
            error = PlaybackError(session.cursor + 1, f"Playback aborted: {e}")
            error.__cause__ = e
        finally:
            self._finish(session, error)

    def _run_loops(self, session: PlaybackSession):
        events = session.macro.events

        while session.loops_remaining > 0:
            if not self._wait_for_schedule(session):
                return
            if not self._wait_while_paused(session):
                return

            session.loop_start = self._clock()
            for idx, event in enumerate(events):
                offset = event.timestamp_us / session.speed / US_PER_SECOND
                while True:
                    if not self._wait_until(session, offset):
                        return
                    with session.emit_lock:
                        if session.cancel_event.is_set():
                            return
                        if not session.resume_event.is_set():
                            # Paused after the wait returned; wait again
                            continue
                        try:
                            self._synthesizer.emit(self._apply_jitter(event, session))
                        except Exception as e:
                            raise PlaybackError(idx, f"Playback failed at event #{idx} "
                                                     f"({event.kind.name}): {e}") from e
                        session.cursor = idx
                        session.emitted += 1
                    break

                debug(f"[PLAYER] #{idx} {event.get_summary()}")
                if self._on_event:
                    self._on_event(idx, event)

            session.loops_remaining -= 1
            if session.loops_remaining > 0 and not self._wait_between_loops(session):
                return

    def _wait_between_loops(self, session: PlaybackSession) -> bool:
        """Apply the loop delay; False when cancelled"""
        policy = session.loop_delay
        if policy is None or policy.is_zero:
            return not session.cancel_event.is_set()
        delay_ms = policy.resolve_delay_ms(self._rng)
        debug(f"[PLAYER] Waiting {delay_ms}ms before next loop")
        return not session.cancel_event.wait(delay_ms / 1000.0)

    def _wait_until(self, session: PlaybackSession, offset: float) -> bool:
        """Sleep until loop_start + offset; False when cancelled"""
        while True:
            if session.cancel_event.is_set():
                return False
            if not session.resume_event.is_set():
                session.resume_event.wait(self.TICK)
                continue
            remaining = session.loop_start + offset - self._clock()
            if remaining <= 0:
                return True
            session.cancel_event.wait(min(remaining, self.TICK))

    def _wait_while_paused(self, session: PlaybackSession) -> bool:
        while not session.resume_event.is_set():
            session.resume_event.wait(self.TICK)
        return not session.cancel_event.is_set()

    def _wait_for_schedule(self, session: PlaybackSession) -> bool:
        schedule = session.schedule
        if schedule is None or schedule.is_allowed(self._local_time()):
            return not session.cancel_event.is_set()

        log(f"[PLAYER] Outside schedule {schedule.time_range}, waiting")
        while not schedule.is_allowed(self._local_time()):
            if session.cancel_event.wait(self.SCHEDULE_POLL):
                return False
        return not session.cancel_event.is_set()

    def _apply_jitter(self, event: InputEvent, session: PlaybackSession) -> InputEvent:
        if session.jitter_px <= 0 or event.kind not in MOUSE_KINDS:
            return event
        j = session.jitter_px
        return InputEvent(
            kind=event.kind,
            timestamp_us=event.timestamp_us,
            code=event.code,
            x=event.x + self._rng.randint(-j, j),
            y=event.y + self._rng.randint(-j, j),
            delta=event.delta
        )

    def _finish(self, session: PlaybackSession, error: Optional[PlaybackError]):
        new_state = None
        with self._lock:
            if error is not None:
                session.error = error
            if self._session is session and self.is_active:
                new_state = PlaybackState.ERROR if error else PlaybackState.IDLE
                self._state = new_state

        if new_state == PlaybackState.ERROR:
            log(f"[PLAYER] {error}")
        elif new_state == PlaybackState.IDLE:
            log(f"[PLAYER] Playback completed ({session.emitted} events)")

        if new_state is not None:
            self._notify(new_state)
        if new_state == PlaybackState.ERROR and self._on_error:
            self._on_error(error)

    def _notify(self, state: PlaybackState):
        if self._on_state_change:
            self._on_state_change(state)
