"""
Macro Store - versioned binary persistence (.mmac) and the macro library

File layout (little-endian):
    header   magic "MMAC", formatVersion u16, eventCount u32,
             createdAtMicros i64, nameLength u16, name (UTF-8)
    records  eventCount x (kind u8, code i32, x i32, y i32, delta i32,
             timestampMicros u64)
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Union
import json
import os
import struct
import tempfile

from .errors import CorruptDataError, InvalidArgumentError
from .models import EventKind, InputEvent, Macro

from mousemacro.utils.logger import log, warn


MAGIC = b"MMAC"
FORMAT_VERSION = 1
SUPPORTED_VERSIONS = (FORMAT_VERSION,)
EXTENSION = ".mmac"

_HEADER = struct.Struct("<4sHIqH")
_RECORD = struct.Struct("<BiiiiQ")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

MAX_RECENT = 10

PathLike = Union[str, "os.PathLike[str]"]


# ==================== CODEC ====================

def _to_micros(dt: datetime) -> int:
    return (dt - _EPOCH) // timedelta(microseconds=1)


def encode_macro(macro: Macro) -> bytes:
    """Serialize a macro to the current format version"""
    name = macro.name.encode("utf-8")
    if len(name) > 0xFFFF:
        raise InvalidArgumentError("Macro name is too long to persist")

    parts = [_HEADER.pack(MAGIC, FORMAT_VERSION, len(macro.events),
                          _to_micros(macro.created_at), len(name)), name]
    for idx, event in enumerate(macro.events):
        try:
            parts.append(_RECORD.pack(int(event.kind), event.code, event.x, event.y,
                                      event.delta, event.timestamp_us))
        except struct.error as e:
            raise InvalidArgumentError(f"Event #{idx} does not fit the file format: {e}") from e
    return b"".join(parts)


def decode_macro(data: bytes) -> Macro:
    """
    Parse bytes produced by encode_macro

    Raises:
        CorruptDataError: bad magic, unknown version, truncated or invalid data
    """
    if len(data) < _HEADER.size:
        raise CorruptDataError("File is too short for a macro header")

    magic, version, count, created_us, name_len = _HEADER.unpack_from(data, 0)
    if magic != MAGIC:
        raise CorruptDataError("Not a macro file (bad magic)")
    if version not in SUPPORTED_VERSIONS:
        raise CorruptDataError(f"Unsupported macro format version {version}")

    offset = _HEADER.size
    expected = offset + name_len + count * _RECORD.size
    if len(data) != expected:
        raise CorruptDataError(
            f"Macro file size mismatch: expected {expected} bytes, got {len(data)}"
        )

    try:
        name = data[offset:offset + name_len].decode("utf-8")
        created_at = _EPOCH + timedelta(microseconds=created_us)
    except (UnicodeDecodeError, OverflowError) as e:
        raise CorruptDataError(f"Invalid macro metadata: {e}") from e
    offset += name_len

    events: List[InputEvent] = []
    last_ts = 0
    for idx in range(count):
        kind, code, x, y, delta, ts = _RECORD.unpack_from(data, offset)
        offset += _RECORD.size
        try:
            kind = EventKind(kind)
        except ValueError as e:
            raise CorruptDataError(f"Event #{idx} has unknown kind tag {kind}") from e
        if ts < last_ts:
            raise CorruptDataError(f"Event #{idx} timestamp goes backwards ({ts} < {last_ts})")
        last_ts = ts
        events.append(InputEvent(kind, ts, code=code, x=x, y=y, delta=delta))

    return Macro(name=name, events=tuple(events), created_at=created_at)


def atomic_write(destination: PathLike, payload: bytes):
    """Write to a temp file next to destination, then move it into place"""
    destination = os.fspath(destination)
    directory = os.path.dirname(os.path.abspath(destination))
    os.makedirs(directory, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", suffix=EXTENSION, dir=directory)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, destination)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


# ==================== STORE ====================

class MacroStore:
    """
    Saves/loads macros and keeps the macro library directory

    Args:
        directory: Library directory for list_macros()/path_for() and the
            recent-files list
    """

    DEFAULT_MACRO_DIR = os.path.join("data", "macros")

    def __init__(self, directory: Optional[PathLike] = None):
        self._directory = os.fspath(directory or self.DEFAULT_MACRO_DIR)
        self._recent_files: List[str] = []
        self._load_recent_files()

    @property
    def directory(self) -> str:
        return self._directory

    @property
    def recent_files(self) -> List[str]:
        return list(self._recent_files)

    # ==================== SAVE / LOAD ====================

    def save(self, macro: Macro, destination: PathLike) -> str:
        """
        Persist a macro atomically

        Returns:
            The path written
        """
        path = os.fspath(destination)
        atomic_write(path, encode_macro(macro))
        log(f"[STORE] Saved {macro.get_summary()} -> {path}")
        return path

    def load(self, source: PathLike) -> Macro:
        """
        Load a macro; reading has no side effects

        Raises:
            CorruptDataError: unrecognized version or invalid content
            OSError: the file cannot be read
        """
        path = os.fspath(source)
        with open(path, "rb") as f:
            data = f.read()
        try:
            macro = decode_macro(data)
        except CorruptDataError as e:
            warn(f"[STORE] Rejected {path}: {e}")
            raise
        log(f"[STORE] Loaded {macro.get_summary()} <- {path}")
        return macro

    # ==================== LIBRARY ====================

    def path_for(self, name: str) -> str:
        """Library path for a macro name"""
        safe = "".join(c if c.isalnum() or c in "-_ ." else "_" for c in name).strip() or "macro"
        if not safe.endswith(EXTENSION):
            safe += EXTENSION
        return os.path.join(self._directory, safe)

    def list_macros(self) -> List[str]:
        """Get sorted list of macro files in the library directory"""
        if not os.path.isdir(self._directory):
            return []
        return sorted(
            os.path.join(self._directory, f)
            for f in os.listdir(self._directory)
            if f.endswith(EXTENSION) and not f.startswith(".")
        )

    def add_recent(self, filepath: PathLike):
        """Add file to recent list; a failed write of the list is only logged"""
        abs_path = os.path.abspath(os.fspath(filepath))
        if abs_path in self._recent_files:
            self._recent_files.remove(abs_path)
        self._recent_files.insert(0, abs_path)
        self._recent_files = self._recent_files[:MAX_RECENT]
        self._save_recent_files()

    def _recent_path(self) -> str:
        return os.path.join(self._directory, ".recent.json")

    def _load_recent_files(self):
        recent_file = self._recent_path()
        if not os.path.exists(recent_file):
            return
        try:
            with open(recent_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            warn(f"[STORE] Ignoring unreadable recent list: {e}")
            return
        if isinstance(data, list):
            self._recent_files = [p for p in data if isinstance(p, str)][:MAX_RECENT]

    def _save_recent_files(self):
        payload = json.dumps(self._recent_files, indent=2).encode("utf-8")
        try:
            atomic_write(self._recent_path(), payload)
        except OSError as e:
            warn(f"[STORE] Could not update recent list: {e}")
