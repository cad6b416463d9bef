"""
Macro Manager - Session controller for recording and playback
Single authority over which session is active; coordinates recorder,
player, store and global hotkeys
"""

from __future__ import annotations
from typing import Optional, Callable
from dataclasses import replace
from enum import Enum
import threading

from .errors import BusyError, InvalidStateError, MacroError, PlaybackError
from .hooks import GlobalHotkeyManager, IRecorderHook, PynputHook
from .models import HotkeyConfig, Macro, MacroSettings, PlaybackOptions
from .player import IInputSynthesizer, MacroPlayer, PlaybackState
from .processor import strip_unpaired_keys
from .recorder import MacroRecorder
from .store import MacroStore

from mousemacro.utils.logger import log


class SessionState(Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PLAYING = "playing"
    PAUSED = "paused"


class MacroManager:
    """
    High-level Macro Manager

    At most one recording or playback session is active. Requests made
    while a session is active fail with BusyError instead of queuing.
    """

    def __init__(self,
                 hook: Optional[IRecorderHook] = None,
                 synthesizer: Optional[IInputSynthesizer] = None,
                 store: Optional[MacroStore] = None,
                 settings: Optional[MacroSettings] = None,
                 recorder: Optional[MacroRecorder] = None,
                 player: Optional[MacroPlayer] = None):
        """
        Initialize macro manager

        Args:
            hook: Input hook for recording (default: PynputHook)
            synthesizer: Input synthesizer for playback (default: pynput)
            store: Macro store (default: data/macros)
            settings: Recording/playback defaults
        """
        self._settings = settings or MacroSettings()
        self._store = store or MacroStore()

        # Components
        self._recorder = recorder or MacroRecorder(hook=hook or PynputHook(), settings=self._settings)
        self._player = player or MacroPlayer(synthesizer=synthesizer)
        self._hotkey_manager = GlobalHotkeyManager()
        self._hotkeys_enabled = False

        # State
        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._current_macro: Optional[Macro] = None
        self._last_error: Optional[MacroError] = None

        # Callbacks
        self._on_state_change: Optional[Callable[[SessionState], None]] = None
        self._on_macro_change: Optional[Callable[[Macro], None]] = None
        self._on_error: Optional[Callable[[MacroError], None]] = None

        self._player.set_callbacks(
            on_state_change=self._handle_player_state_change,
            on_error=self._handle_player_error
        )

    # ==================== PROPERTIES ====================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_idle(self) -> bool:
        return self._state == SessionState.IDLE

    @property
    def is_recording(self) -> bool:
        return self._state == SessionState.RECORDING

    @property
    def is_playing(self) -> bool:
        return self._state in (SessionState.PLAYING, SessionState.PAUSED)

    @property
    def current_macro(self) -> Optional[Macro]:
        return self._current_macro

    @property
    def last_error(self) -> Optional[MacroError]:
        return self._last_error

    @property
    def settings(self) -> MacroSettings:
        return self._settings

    @property
    def store(self) -> MacroStore:
        return self._store

    @property
    def recorder(self) -> MacroRecorder:
        return self._recorder

    @property
    def player(self) -> MacroPlayer:
        return self._player

    # ==================== CALLBACKS ====================

    def set_callbacks(self,
                      on_state_change: Callable[[SessionState], None] = None,
                      on_macro_change: Callable[[Macro], None] = None,
                      on_error: Callable[[MacroError], None] = None):
        """Set manager callbacks"""
        self._on_state_change = on_state_change
        self._on_macro_change = on_macro_change
        self._on_error = on_error

    def _set_state(self, state: SessionState):
        """Set state and notify callback (caller holds the lock)"""
        if state == self._state:
            return
        self._state = state
        if self._on_state_change:
            self._on_state_change(state)

    def _handle_player_state_change(self, state: PlaybackState):
        with self._lock:
            if self._state not in (SessionState.PLAYING, SessionState.PAUSED):
                return
            if state == PlaybackState.PAUSED:
                self._set_state(SessionState.PAUSED)
            elif state == PlaybackState.PLAYING:
                self._set_state(SessionState.PLAYING)
            else:
                self._set_state(SessionState.IDLE)

    def _handle_player_error(self, error: PlaybackError):
        self._last_error = error
        log(f"[MANAGER] Playback failed: {error}")
        if self._on_error:
            self._on_error(error)

    def _set_current_macro(self, macro: Macro):
        self._current_macro = macro
        if self._on_macro_change:
            self._on_macro_change(macro)

    # ==================== SESSION REQUESTS ====================

    def request_record(self, name: Optional[str] = None):
        """
        Start recording a new macro

        Raises:
            BusyError: a recording or playback is active
            HookInstallError: the input hook could not be installed
        """
        with self._lock:
            if self._state != SessionState.IDLE:
                raise BusyError(f"Cannot record while {self._state.value}")

            self._recorder.set_settings(self._settings)
            self._recorder.start(name)
            self._last_error = None
            self._set_state(SessionState.RECORDING)

        log(f"[MANAGER] Recording started: {name or 'New Recording'}")

    def request_play(self, macro: Optional[Macro] = None,
                     options: Optional[PlaybackOptions] = None):
        """
        Start playback of macro (default: current macro)

        Raises:
            BusyError: a recording or playback is active
            InvalidStateError: no macro given and none loaded
            InvalidArgumentError: bad playback options
        """
        with self._lock:
            if self._state != SessionState.IDLE:
                raise BusyError(f"Cannot play while {self._state.value}")

            if macro is None:
                macro = self._current_macro
            if macro is None:
                raise InvalidStateError("No macro loaded")

            options = options or self._settings.playback_options()
            self._player.play(
                macro,
                speed=options.speed,
                loop_count=options.loop_count,
                jitter_px=options.jitter_px,
                schedule=options.schedule,
                loop_delay=options.loop_delay()
            )
            # The player thread reports completion through the same lock,
            # so it cannot overtake this transition
            self._last_error = None
            self._set_state(SessionState.PLAYING)

        log(f"[MANAGER] Playback requested: {macro.name}")

    def request_stop(self) -> Optional[Macro]:
        """
        Stop the active session

        Returns:
            The recorded macro when a recording was stopped, else None
        """
        with self._lock:
            if self._state == SessionState.RECORDING:
                try:
                    macro = self._recorder.stop()
                except Exception:
                    # The recorder is idle even when its hook failed to stop
                    self._set_state(SessionState.IDLE)
                    raise
                if self._hotkeys_enabled:
                    macro = self._strip_hotkey_keys(macro)
                self._set_state(SessionState.IDLE)
                self._set_current_macro(macro)
                log(f"[MANAGER] Recording stopped: {macro.get_summary()}")
                return macro

            if self._state in (SessionState.PLAYING, SessionState.PAUSED):
                self._player.cancel(wait=False)
                self._set_state(SessionState.IDLE)
                log("[MANAGER] Playback stopped")
            else:
                return None

        # Join the player thread outside the lock
        self._player.join()
        return None

    def pause_playback(self):
        with self._lock:
            if not self.is_playing:
                raise InvalidStateError("No playback to pause")
            self._player.pause()

    def resume_playback(self):
        with self._lock:
            if self._state != SessionState.PAUSED:
                raise InvalidStateError("Playback is not paused")
            self._player.resume()

    def toggle_pause(self):
        """Toggle pause state"""
        with self._lock:
            if self._state == SessionState.PLAYING:
                self._player.pause()
            elif self._state == SessionState.PAUSED:
                self._player.resume()

    def toggle_recording(self):
        """Toggle recording on/off"""
        with self._lock:
            if self._state == SessionState.RECORDING:
                self.request_stop()
            else:
                self.request_record()

    def toggle_playback(self):
        """Toggle playback on/off"""
        with self._lock:
            if self.is_playing:
                stop = True
            else:
                stop = False
                self.request_play()
        if stop:
            self.request_stop()

    def wait_playback(self, timeout: Optional[float] = None) -> bool:
        """Block until the current playback ends (re-raises PlaybackError)"""
        return self._player.wait(timeout)

    # ==================== FILE OPERATIONS ====================

    def save(self, filepath: Optional[str] = None, macro: Optional[Macro] = None) -> str:
        """
        Save a macro (default: current macro)

        Args:
            filepath: Destination (default: library path from the macro name)

        Returns:
            The path written
        """
        if macro is None:
            macro = self._current_macro
        if macro is None:
            raise InvalidStateError("No macro to save")
        filepath = filepath or self._store.path_for(macro.name)
        path = self._store.save(macro, filepath)
        self._store.add_recent(path)
        return path

    def load(self, filepath: str) -> Macro:
        """Load a macro and make it current"""
        macro = self._store.load(filepath)
        self._store.add_recent(filepath)
        self._set_current_macro(macro)
        return macro

    def update_settings(self, **kwargs):
        """Update macro settings (applies to the next session)"""
        for key, value in kwargs.items():
            if not hasattr(self._settings, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self._settings, key, value)

    # ==================== HOTKEYS ====================

    def setup_global_hotkeys(self, config: Optional[HotkeyConfig] = None):
        """Setup global hotkeys for recording/playback control"""
        config = config or self._settings.hotkeys

        self._hotkey_manager.register(config.record_start_stop, self._hotkey_action(self.toggle_recording))
        self._hotkey_manager.register(config.play_toggle, self._hotkey_action(self.toggle_playback))
        self._hotkey_manager.register(config.pause_toggle, self._hotkey_action(self.toggle_pause))
        self._hotkey_manager.register(config.stop_playback, self._hotkey_action(self.request_stop))

        self._hotkey_manager.start()
        self._hotkeys_enabled = True
        log("[MANAGER] Global hotkeys enabled")

    def disable_global_hotkeys(self):
        """Disable global hotkeys"""
        self._hotkey_manager.stop()
        self._hotkeys_enabled = False
        log("[MANAGER] Global hotkeys disabled")

    def _hotkey_action(self, action: Callable[[], object]) -> Callable[[], None]:
        """Hotkeys run on their own thread; report failures instead of losing them"""
        def run():
            try:
                action()
            except MacroError as e:
                self._last_error = e
                log(f"[MANAGER] Hotkey action failed: {e}")
                if self._on_error:
                    self._on_error(e)
        return run

    def _strip_hotkey_keys(self, macro: Macro) -> Macro:
        """Remove the half-recorded hotkey chords around a recording"""
        kept = strip_unpaired_keys(macro.events)
        removed = len(macro) - len(kept)
        if removed == 0:
            return macro
        log(f"[MANAGER] Removed {removed} unpaired key events")
        return replace(macro, events=tuple(kept))

    # ==================== UTILITY ====================

    def shutdown(self):
        """Clean shutdown"""
        self.request_stop()
        self._hotkey_manager.stop()
        log("[MANAGER] Shutdown complete")
