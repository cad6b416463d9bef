"""
Macro Package
Provides recording, playback and persistence of input macros
"""

from .errors import (
    MacroError, HookInstallError, InvalidStateError, InvalidArgumentError,
    BusyError, CorruptDataError, PlaybackError
)

from .models import (
    EventKind, MouseButton, WheelAxis,
    InputEvent, Macro, check_monotonic,
    HotkeyConfig, PlaybackOptions, MacroSettings
)

from .schedule import LocalTimeRange, ExecutionSchedule, DelayPolicy

from .hooks import (
    RawEvent, RawEventType,
    IRecorderHook, PynputHook,
    GlobalHotkeyManager
)

from .processor import MacroEventProcessor, normalize_event, strip_unpaired_keys

from .recorder import MacroRecorder, RecorderState

from .player import (
    MacroPlayer, PlaybackState,
    IInputSynthesizer, PynputSynthesizer, DryRunSynthesizer
)

from .store import MacroStore, encode_macro, decode_macro

from .manager import MacroManager, SessionState


__all__ = [
    # Errors
    'MacroError', 'HookInstallError', 'InvalidStateError', 'InvalidArgumentError',
    'BusyError', 'CorruptDataError', 'PlaybackError',

    # Models
    'EventKind', 'MouseButton', 'WheelAxis',
    'InputEvent', 'Macro', 'check_monotonic',
    'HotkeyConfig', 'PlaybackOptions', 'MacroSettings',

    # Schedule
    'LocalTimeRange', 'ExecutionSchedule', 'DelayPolicy',

    # Hooks
    'RawEvent', 'RawEventType',
    'IRecorderHook', 'PynputHook',
    'GlobalHotkeyManager',

    # Recorder
    'MacroEventProcessor', 'normalize_event', 'strip_unpaired_keys',
    'MacroRecorder', 'RecorderState',

    # Player
    'MacroPlayer', 'PlaybackState',
    'IInputSynthesizer', 'PynputSynthesizer', 'DryRunSynthesizer',

    # Store
    'MacroStore', 'encode_macro', 'decode_macro',

    # Manager
    'MacroManager', 'SessionState',
]
