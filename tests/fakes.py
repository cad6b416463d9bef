"""In-memory stand-ins for the OS hook and input synthesizer"""

import threading
from typing import Callable, List, Optional

from mousemacro.core.macro.hooks import IRecorderHook, RawEvent
from mousemacro.core.macro.player import IInputSynthesizer
from mousemacro.core.macro.models import InputEvent
from mousemacro.core.macro.errors import HookInstallError


class FakeHook(IRecorderHook):
    """Hook driven by the test: call push() to deliver raw events"""

    def __init__(self, fail: bool = False, fail_stop: bool = False):
        self.fail = fail
        self.fail_stop = fail_stop
        self.callback: Optional[Callable[[RawEvent], None]] = None
        self.start_count = 0
        self.stop_count = 0

    def start(self, callback):
        if self.fail:
            raise HookInstallError("hook refused")
        self.start_count += 1
        self.callback = callback

    def stop(self):
        self.stop_count += 1
        self.callback = None
        if self.fail_stop:
            raise OSError("listener did not stop")

    def is_running(self) -> bool:
        return self.callback is not None

    def push(self, raw: RawEvent):
        if self.callback is not None:
            self.callback(raw)


class RecordingSynthesizer(IInputSynthesizer):
    """Collects emitted events; can fail at a given call or block on each emit"""

    def __init__(self, fail_at: Optional[int] = None, gate: Optional[threading.Event] = None):
        self.events: List[InputEvent] = []
        self.fail_at = fail_at
        self.gate = gate
        self.emitted = threading.Event()
        self._lock = threading.Lock()

    def emit(self, event: InputEvent):
        if self.gate is not None:
            self.gate.wait(5)
        with self._lock:
            if self.fail_at is not None and len(self.events) == self.fail_at:
                raise OSError("input injection rejected")
            self.events.append(event)
        self.emitted.set()


class ManualClock:
    """Clock the test advances by hand"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds
