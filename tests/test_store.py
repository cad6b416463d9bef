"""
Test MacroStore
Binary format, rejection of bad files, atomic writes and the library directory
"""

import logging
import os
import struct
from datetime import datetime, timezone

import pytest
from unittest.mock import patch

from mousemacro.core.macro.errors import CorruptDataError, InvalidArgumentError
from mousemacro.core.macro.models import InputEvent, Macro, MouseButton, WheelAxis
from mousemacro.core.macro.store import (
    EXTENSION, MAGIC, MAX_RECENT, MacroStore, decode_macro, encode_macro
)
from mousemacro.utils.logger import LOGGER_NAME


@pytest.fixture
def store(tmp_path):
    return MacroStore(tmp_path / "library")


@pytest.fixture
def macro():
    return Macro(
        name="Login flow ✓",
        created_at=datetime(2024, 5, 6, 7, 8, 9, 123456, tzinfo=timezone.utc),
        events=[
            InputEvent.mouse_move(-5, 1080, 0),
            InputEvent.button_down(MouseButton.X2, 10, 20, 1_000),
            InputEvent.button_up(MouseButton.X2, 10, 20, 1_000),
            InputEvent.wheel(-120, 10, 20, 2_500, WheelAxis.HORIZONTAL),
            InputEvent.key_down(0x41, 3_000_000),
            InputEvent.key_up(0x41, 3_000_001),
        ],
    )


class TestCodec:

    def test_round_trip(self, macro):
        assert decode_macro(encode_macro(macro)) == macro

    def test_empty_macro_round_trip(self):
        empty = Macro(name="")
        assert decode_macro(encode_macro(empty)) == empty

    def test_header_layout(self, macro):
        data = encode_macro(macro)
        magic, version, count = struct.unpack_from("<4sHI", data, 0)
        assert (magic, version, count) == (MAGIC, 1, 6)
        name_len = struct.unpack_from("<H", data, 18)[0]
        assert data[20:20 + name_len].decode("utf-8") == macro.name
        assert len(data) == 20 + name_len + 6 * 25

    def test_unknown_version_rejected(self, macro):
        data = bytearray(encode_macro(macro))
        struct.pack_into("<H", data, 4, 2)
        with pytest.raises(CorruptDataError, match="version 2"):
            decode_macro(bytes(data))

    def test_bad_magic_rejected(self, macro):
        data = b"XXXX" + encode_macro(macro)[4:]
        with pytest.raises(CorruptDataError, match="magic"):
            decode_macro(data)

    @pytest.mark.parametrize("cut", [1, 10, 25])
    def test_truncated_rejected(self, macro, cut):
        with pytest.raises(CorruptDataError):
            decode_macro(encode_macro(macro)[:-cut])

    def test_trailing_bytes_rejected(self, macro):
        with pytest.raises(CorruptDataError):
            decode_macro(encode_macro(macro) + b"\0")

    def test_too_short_rejected(self):
        with pytest.raises(CorruptDataError):
            decode_macro(b"MMAC")

    def test_unknown_kind_rejected(self, macro):
        data = bytearray(encode_macro(macro))
        first_record = 20 + len(macro.name.encode("utf-8"))
        data[first_record] = 99
        with pytest.raises(CorruptDataError, match="kind"):
            decode_macro(bytes(data))

    def test_backwards_timestamp_rejected(self):
        record = struct.Struct("<BiiiiQ")
        header = struct.pack("<4sHIqH", MAGIC, 1, 2, 0, 0)
        data = header + record.pack(3, 0, 0, 0, 0, 10) + record.pack(3, 0, 0, 0, 0, 5)
        with pytest.raises(CorruptDataError, match="backwards"):
            decode_macro(data)

    def test_out_of_range_field_rejected(self):
        macro = Macro(events=[InputEvent.mouse_move(2 ** 40, 0, 0)])
        with pytest.raises(InvalidArgumentError):
            encode_macro(macro)


class TestMacroStore:

    def test_save_and_load(self, store, macro, tmp_path):
        path = store.save(macro, tmp_path / "out.mmac")
        assert os.path.exists(path)
        assert store.load(path) == macro

    def test_failed_load_leaves_no_state(self, store, tmp_path):
        bad = tmp_path / "bad.mmac"
        bad.write_bytes(b"MMAC" + b"\0" * 30)
        with pytest.raises(CorruptDataError):
            store.load(bad)
        assert store.recent_files == []

    def test_missing_file_raises_os_error(self, store, tmp_path):
        with pytest.raises(OSError):
            store.load(tmp_path / "missing.mmac")

    def test_atomic_write_keeps_old_file_on_failure(self, store, macro, tmp_path):
        dest = tmp_path / "keep.mmac"
        store.save(macro, dest)
        before = dest.read_bytes()

        with patch("mousemacro.core.macro.store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                store.save(macro.renamed("other"), dest)

        assert dest.read_bytes() == before
        assert [p for p in os.listdir(tmp_path) if p.startswith(".tmp-")] == []

    def test_library_listing(self, store, macro):
        store.save(macro, store.path_for("b"))
        store.save(macro, store.path_for("a/../evil"))
        names = [os.path.basename(p) for p in store.list_macros()]
        assert names == ["a_.._evil" + EXTENSION, "b" + EXTENSION]

    def test_list_missing_directory(self, tmp_path):
        assert MacroStore(tmp_path / "nope").list_macros() == []

    def test_recent_files_persist(self, tmp_path, macro):
        store = MacroStore(tmp_path)
        for i in range(MAX_RECENT + 2):
            store.add_recent(store.save(macro, tmp_path / f"m{i}.mmac"))

        reopened = MacroStore(tmp_path)
        assert len(reopened.recent_files) == MAX_RECENT
        assert reopened.recent_files[0] == str(tmp_path / f"m{MAX_RECENT + 1}.mmac")

    def test_unreadable_recent_list_ignored(self, tmp_path):
        (tmp_path / ".recent.json").write_text("{not json", encoding="utf-8")
        assert MacroStore(tmp_path).recent_files == []

    def test_save_and_load_leave_recent_list_alone(self, store, macro, tmp_path):
        path = store.save(macro, tmp_path / "out.mmac")
        store.load(path)
        assert store.recent_files == []
        assert not os.path.exists(store.directory)

    def test_recent_list_write_failure_only_warns(self, store, tmp_path, caplog):
        with patch("mousemacro.core.macro.store.atomic_write", side_effect=OSError("read-only")):
            with caplog.at_level(logging.WARNING, logger=LOGGER_NAME):
                store.add_recent(tmp_path / "x.mmac")
        assert store.recent_files == [str(tmp_path / "x.mmac")]
        assert "[STORE] Could not update recent list" in caplog.text
