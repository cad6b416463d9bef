"""
Macro Engine Errors
Every failure raised by the recorder, player, store and session manager
derives from MacroError so callers can catch the whole family at once.
"""

from typing import Optional


class MacroError(Exception):
    """Base class for macro engine errors"""


class HookInstallError(MacroError):
    """Global input hook could not be installed (missing permission, no backend)"""


class InvalidStateError(MacroError):
    """Operation is not allowed in the current state"""


class InvalidArgumentError(MacroError, ValueError):
    """Caller supplied a bad parameter"""


class BusyError(MacroError):
    """Another recording or playback session is already active"""


class CorruptDataError(MacroError):
    """Persisted macro file is unreadable, truncated or of an unknown version"""


class PlaybackError(MacroError):
    """Synthesizing an event failed mid-playback"""

    def __init__(self, index: int, message: Optional[str] = None):
        self.index = index
        super().__init__(message or f"Playback failed at event #{index}")
