"""
Macro Recorder Engine
Buffers normalized input events into an immutable Macro while recording is active.

Hook callbacks only enqueue; a dedicated consumer thread owns the event
buffer and hands it over on stop().
"""

from __future__ import annotations
from typing import Optional, List, Callable, Dict, Union
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import time
import threading
import queue

from .errors import InvalidStateError
from .hooks import IRecorderHook, RawEvent
from .models import InputEvent, Macro, MacroSettings
from .processor import MacroEventProcessor

from mousemacro.utils.logger import log, debug


class RecorderState(Enum):
    IDLE = "idle"
    RECORDING = "recording"


@dataclass
class RecordingSession:
    """In-progress recording, owned by the consumer thread"""
    name: str
    start_time: float
    created_at: datetime
    events: List[InputEvent] = field(default_factory=list)
    last_timestamp_us: int = 0


_STOP = object()


class MacroRecorder:
    """
    Main Macro Recorder - coordinates the hook, normalization and buffering
    """

    def __init__(self,
                 hook: Optional[IRecorderHook] = None,
                 settings: Optional[MacroSettings] = None,
                 clock: Callable[[], float] = time.perf_counter):
        """
        Initialize recorder

        Args:
            hook: Global input hook; None records only events passed to record()
            settings: Move thinning / ignored keys
            clock: Must match the clock the hook stamps raw events with
        """
        self._hook = hook
        self._settings = settings or MacroSettings()
        self._clock = clock

        self._state = RecorderState.IDLE
        self._state_lock = threading.Lock()

        self._queue: "queue.Queue[Union[RawEvent, InputEvent, object]]" = queue.Queue()
        self._session: Optional[RecordingSession] = None
        self._consumer: Optional[threading.Thread] = None
        self._processor = MacroEventProcessor(self._settings)

        # Callbacks
        self._on_state_change: Optional[Callable[[RecorderState], None]] = None
        self._on_event: Optional[Callable[[InputEvent], None]] = None

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state == RecorderState.RECORDING

    @property
    def dropped(self) -> Dict[str, int]:
        """Dropped raw events per reason for the current/last recording"""
        return dict(self._processor.dropped)

    def set_callbacks(self,
                      on_state_change: Callable[[RecorderState], None] = None,
                      on_event: Callable[[InputEvent], None] = None):
        """Set callbacks for state changes and recorded events"""
        self._on_state_change = on_state_change
        self._on_event = on_event

    def set_hook(self, hook: Optional[IRecorderHook]):
        if self.is_recording:
            raise InvalidStateError("Cannot change hook while recording")
        self._hook = hook

    def set_settings(self, settings: MacroSettings):
        """Update recording settings (applies to the next recording)"""
        self._settings = settings

    # ==================== LIFECYCLE ====================

    def start(self, name: Optional[str] = None):
        """
        Start recording

        Raises:
            InvalidStateError: already recording
            HookInstallError: the hook could not be installed
        """
        with self._state_lock:
            if self._state != RecorderState.IDLE:
                raise InvalidStateError("Recording already in progress")

            session = RecordingSession(
                name=name or "New Recording",
                start_time=self._clock(),
                created_at=datetime.now(timezone.utc)
            )
            self._processor = MacroEventProcessor(self._settings)
            self._queue = queue.Queue()
            self._session = session
            self._consumer = threading.Thread(
                target=self._consume, args=(session, self._queue),
                name="macro-recorder", daemon=True
            )
            self._consumer.start()
            self._state = RecorderState.RECORDING

            if self._hook is not None:
                try:
                    self._hook.start(self.submit_raw)
                except BaseException:
                    self._state = RecorderState.IDLE
                    self._finish_consumer()
                    raise

        log(f"[RECORDER] Recording started: {session.name}")
        self._notify(RecorderState.RECORDING)

    def stop(self) -> Macro:
        """
        Stop recording and return the finished macro

        Raises:
            InvalidStateError: not recording
            Errors from the hook are re-raised once the recorder is idle
        """
        with self._state_lock:
            if self._state != RecorderState.RECORDING:
                raise InvalidStateError("Not recording")

            self._state = RecorderState.IDLE
            try:
                if self._hook is not None:
                    self._hook.stop()
            finally:
                session = self._finish_consumer()

        macro = Macro(name=session.name, events=session.events, created_at=session.created_at)
        dropped = self._processor.dropped_total
        log(f"[RECORDER] Recording stopped. {len(macro)} events captured, {dropped} dropped")
        self._notify(RecorderState.IDLE)
        return macro

    def shutdown(self):
        """Clean shutdown"""
        if self.is_recording:
            self.stop()

    # ==================== EVENT INTAKE ====================

    def record(self, event: InputEvent) -> bool:
        """
        Append a normalized event to the current recording

        Returns:
            False (and logs) when not recording
        """
        if self._state != RecorderState.RECORDING:
            debug(f"[RECORDER] Rejected event while idle: {event.get_summary()}")
            return False
        self._queue.put(event)
        return True

    def submit_raw(self, raw: RawEvent):
        """Hook callback; runs on the hook thread so it only enqueues"""
        if self._state != RecorderState.RECORDING:
            return
        self._queue.put(raw)

    # ==================== CONSUMER ====================

    def _consume(self, session: RecordingSession, events: queue.Queue):
        while True:
            item = events.get()
            if item is _STOP:
                break

            if isinstance(item, RawEvent):
                event = self._processor.process(item, session.start_time)
                if event is None:
                    continue
            else:
                event = item

            # Mouse and keyboard listeners run on separate threads and may interleave
            if event.timestamp_us < session.last_timestamp_us:
                event = event.with_timestamp(session.last_timestamp_us)
            session.last_timestamp_us = event.timestamp_us
            session.events.append(event)

            if self._on_event:
                self._on_event(event)

    def _finish_consumer(self) -> RecordingSession:
        self._queue.put(_STOP)
        if self._consumer is not None:
            self._consumer.join()
        session = self._session
        self._consumer = None
        self._session = None
        return session

    def _notify(self, state: RecorderState):
        if self._on_state_change:
            self._on_state_change(state)
