"""
Test macro data models
Event construction, Macro invariants and settings serialization
"""

import pytest
from datetime import datetime, timezone

from mousemacro.core.macro.errors import InvalidArgumentError
from mousemacro.core.macro.models import (
    EventKind, HotkeyConfig, InputEvent, Macro, MacroSettings, MouseButton,
    PlaybackOptions, WheelAxis, check_monotonic
)
from mousemacro.core.macro.schedule import DelayPolicy


class TestInputEvent:
    """InputEvent construction and helpers"""

    def test_factories_set_kind_and_fields(self):
        move = InputEvent.mouse_move(10, 20, 5)
        assert move.kind == EventKind.MOUSE_MOVE
        assert (move.x, move.y, move.timestamp_us) == (10, 20, 5)

        down = InputEvent.button_down(MouseButton.RIGHT, 1, 2, 7)
        assert down.kind == EventKind.MOUSE_BUTTON_DOWN
        assert down.code == MouseButton.RIGHT

        wheel = InputEvent.wheel(-3, 0, 0, 9, WheelAxis.HORIZONTAL)
        assert wheel.delta == -3
        assert wheel.code == WheelAxis.HORIZONTAL

        key = InputEvent.key_up(65, 11)
        assert key.kind == EventKind.KEY_UP
        assert key.code == 65

    def test_plain_int_kind_is_coerced(self):
        event = InputEvent(1, 0, code=65)
        assert event.kind is EventKind.KEY_DOWN
        assert event.is_keyboard
        assert not event.is_mouse

    def test_unknown_kind_rejected(self):
        with pytest.raises(InvalidArgumentError):
            InputEvent(7, 0)

    def test_negative_timestamp_rejected(self):
        with pytest.raises(InvalidArgumentError):
            InputEvent.mouse_move(0, 0, -1)

    def test_invalid_argument_is_value_error(self):
        with pytest.raises(ValueError):
            InputEvent(0, 0)

    def test_with_timestamp_keeps_other_fields(self):
        event = InputEvent.button_up(MouseButton.LEFT, 3, 4, 100)
        moved = event.with_timestamp(250)
        assert moved.timestamp_us == 250
        assert (moved.kind, moved.code, moved.x, moved.y) == (event.kind, event.code, 3, 4)

    def test_summary_mentions_kind(self):
        assert "MOVE" in InputEvent.mouse_move(1, 2, 0).get_summary()
        assert "WHEEL vertical +1" in InputEvent.wheel(1, 0, 0, 0).get_summary()


class TestMacro:
    """Macro container invariants"""

    def test_empty_macro_is_valid(self):
        macro = Macro(name="empty")
        assert len(macro) == 0
        assert macro.duration_us == 0
        assert macro.kind_counts() == {}

    def test_events_become_tuple(self):
        macro = Macro(events=[InputEvent.mouse_move(0, 0, 0)])
        assert isinstance(macro.events, tuple)

    def test_backwards_timestamps_rejected(self):
        events = [InputEvent.mouse_move(0, 0, 10), InputEvent.mouse_move(1, 1, 5)]
        with pytest.raises(InvalidArgumentError, match="#1"):
            Macro(events=events)

    def test_equal_timestamps_allowed(self):
        events = [InputEvent.key_down(65, 10), InputEvent.key_up(65, 10)]
        assert len(Macro(events=events)) == 2

    def test_naive_created_at_treated_as_utc(self):
        macro = Macro(created_at=datetime(2024, 1, 2, 3, 4, 5))
        assert macro.created_at.tzinfo == timezone.utc

    def test_duration_and_counts(self):
        macro = Macro(events=[
            InputEvent.mouse_move(0, 0, 0),
            InputEvent.mouse_move(5, 5, 500),
            InputEvent.key_down(65, 1_500_000),
        ])
        assert macro.duration_us == 1_500_000
        assert macro.kind_counts() == {EventKind.MOUSE_MOVE: 2, EventKind.KEY_DOWN: 1}
        assert "3 events" in macro.get_summary()

    def test_renamed_returns_copy(self):
        macro = Macro(name="a")
        renamed = macro.renamed("b")
        assert renamed.name == "b"
        assert macro.name == "a"
        assert renamed.created_at == macro.created_at

    def test_check_monotonic_accepts_ordered(self):
        check_monotonic([InputEvent.key_down(1, 0), InputEvent.key_up(1, 1)])


class TestSettings:
    """Settings round-trip through plain dicts"""

    def test_from_empty_dict_gives_defaults(self):
        settings = MacroSettings.from_dict({})
        assert settings == MacroSettings()
        assert settings.hotkeys == HotkeyConfig()

    def test_to_dict_from_dict(self):
        settings = MacroSettings(include_mouse_move=False, ignored_keys=["f12"],
                                 play_speed_multiplier=2.0, loop_count=3, jitter_px=4,
                                 hotkeys=HotkeyConfig(play_toggle="Ctrl+Alt+P"))
        assert MacroSettings.from_dict(settings.to_dict()) == settings

    def test_playback_options_from_settings(self):
        options = MacroSettings(play_speed_multiplier=0.5, loop_count=2, jitter_px=1).playback_options()
        assert (options.speed, options.loop_count, options.jitter_px) == (0.5, 2, 1)
        assert options.schedule is None

    def test_loop_delay_settings(self):
        settings = MacroSettings(loop_delay_ms=200, loop_delay_random_ms=(5, 25))
        assert MacroSettings.from_dict(settings.to_dict()) == settings
        assert settings.to_dict()["loop_delay_random_ms"] == [5, 25]
        assert settings.playback_options().loop_delay() == DelayPolicy(200, 5, 25)
        assert PlaybackOptions().loop_delay().is_zero

    @pytest.mark.parametrize("options", [
        PlaybackOptions(loop_delay_ms=-1),
        PlaybackOptions(loop_delay_random_ms=(9, 3)),
        PlaybackOptions(loop_delay_random_ms=(1, 2, 3)),
    ])
    def test_invalid_loop_delay(self, options):
        with pytest.raises(InvalidArgumentError):
            options.loop_delay()

    def test_mouse_button_names(self):
        assert MouseButton.from_name("Left") == MouseButton.LEFT
        assert MouseButton.from_name("button8") == MouseButton.X1
        assert MouseButton.from_name("unknown") is None
