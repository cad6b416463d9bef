"""
Mouse Macro CLI
Record, replay and inspect input macros from the command line

    mousemacro record OUTPUT [--name] [--duration]
    mousemacro play FILE [--speed] [--loops] [--jitter] [--delay] [--delay-random]
                         [--dry-run] [--between]
    mousemacro info FILE
    mousemacro list
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Optional

import typer

from mousemacro.core.macro import (
    DelayPolicy, DryRunSynthesizer, ExecutionSchedule, LocalTimeRange, Macro,
    MacroError, MacroManager, MacroStore, PlaybackOptions
)
from mousemacro.utils import logger
from mousemacro.utils.config import AppConfig, load_config
from mousemacro.utils.logger import CONFIG_FILE, log


app = typer.Typer(
    help="Record and replay global mouse/keyboard macros",
    no_args_is_help=True,
)

POLL_INTERVAL = 0.2


# ==================== HELPERS ====================

def _config(ctx: typer.Context) -> AppConfig:
    return ctx.obj if isinstance(ctx.obj, AppConfig) else AppConfig()


def build_manager(config: AppConfig, dry_run: bool = False) -> MacroManager:
    """Manager wired from config; dry run swaps in the logging synthesizer"""
    return MacroManager(
        store=MacroStore(config.macro_dir),
        settings=config.macro_settings,
        synthesizer=DryRunSynthesizer() if dry_run else None
    )


def _fail(error: Exception):
    typer.echo(f"Error: {error}", err=True)
    raise typer.Exit(code=1)


def _format_duration(duration_us: int) -> str:
    return f"{duration_us / 1_000_000:.3f}s"


# ==================== GLOBAL OPTIONS ====================

@app.callback()
def main_callback(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging and per-event tracing"),
    config: Path = typer.Option(Path(CONFIG_FILE), "--config", help="Path to the JSON config file"),
) -> None:
    """Load config and set up logging before any command runs"""
    app_config = load_config(str(config))
    if debug:
        app_config.debug_mode = True
    logger.configure(
        debug_mode=app_config.debug_mode,
        enable_file_logging=app_config.enable_file_logging,
        enable_console_logging=app_config.enable_console_logging
    )
    ctx.obj = app_config


# ==================== COMMANDS ====================

@app.command()
def record(
    ctx: typer.Context,
    output: Path = typer.Argument(..., help="Destination .mmac file"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Macro name (default: file stem)"),
    duration: Optional[float] = typer.Option(
        None, "--duration", "-d", min=0.0, help="Stop after this many seconds (default: Ctrl+C)"
    ),
) -> None:
    """Record global input until the duration elapses or Ctrl+C, then save it"""
    config = _config(ctx)
    manager = build_manager(config)
    macro_name = name or output.stem

    try:
        manager.request_record(macro_name)
    except MacroError as e:
        _fail(e)

    typer.echo(f"Recording '{macro_name}'... press Ctrl+C to stop")
    try:
        if duration is not None:
            time.sleep(duration)
        else:
            while True:
                time.sleep(POLL_INTERVAL)
    except KeyboardInterrupt:
        log("[CLI] Recording interrupted")

    try:
        macro = manager.request_stop()
        path = manager.save(str(output), macro)
    except (MacroError, OSError) as e:
        _fail(e)
    finally:
        manager.shutdown()

    typer.echo(f"Saved {macro.get_summary()} -> {path}")


@app.command()
def play(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="Macro file to play"),
    speed: Optional[float] = typer.Option(None, "--speed", "-s", help="Speed multiplier (> 0)"),
    loops: Optional[int] = typer.Option(None, "--loops", "-l", help="Number of passes (>= 1)"),
    jitter: Optional[int] = typer.Option(None, "--jitter", "-j", help="Random mouse offset in pixels"),
    delay: Optional[int] = typer.Option(None, "--delay", help="Pause between loops in ms"),
    delay_random: Optional[str] = typer.Option(
        None, "--delay-random", help="Extra random pause between loops in ms, e.g. 100-500"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Log events instead of injecting input"),
    between: Optional[str] = typer.Option(
        None, "--between", help="Only play inside a local time window, e.g. 09:00-17:30"
    ),
) -> None:
    """Replay a saved macro"""
    config = _config(ctx)
    settings = config.macro_settings
    manager = build_manager(config, dry_run=dry_run or config.dry_run)

    try:
        schedule = None
        if between:
            schedule = ExecutionSchedule.within(LocalTimeRange.parse(between))
        options = PlaybackOptions(
            speed=settings.play_speed_multiplier if speed is None else speed,
            loop_count=settings.loop_count if loops is None else loops,
            jitter_px=settings.jitter_px if jitter is None else jitter,
            schedule=schedule,
            loop_delay_ms=settings.loop_delay_ms if delay is None else delay,
            loop_delay_random_ms=(tuple(settings.loop_delay_random_ms) if delay_random is None
                                  else DelayPolicy.parse_random_range(delay_random))
        )
        macro = manager.load(str(file))
        manager.request_play(macro, options)
    except (MacroError, OSError) as e:
        _fail(e)

    typer.echo(f"Playing {macro.get_summary()} (x{options.speed}, {options.loop_count} loop(s))")
    try:
        while not manager.wait_playback(POLL_INTERVAL):
            pass
    except KeyboardInterrupt:
        manager.request_stop()
        typer.echo("Playback cancelled")
        return
    except MacroError as e:
        _fail(e)
    finally:
        manager.shutdown()

    typer.echo("Playback finished")


@app.command()
def info(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="Macro file to inspect"),
) -> None:
    """Show name, creation time, event count, duration and per-kind counts"""
    store = MacroStore(_config(ctx).macro_dir)
    try:
        macro = store.load(str(file))
    except (MacroError, OSError) as e:
        _fail(e)

    _print_info(macro)


def _print_info(macro: Macro):
    typer.echo(f"Name:     {macro.name}")
    typer.echo(f"Created:  {macro.created_at.isoformat()}")
    typer.echo(f"Events:   {len(macro)}")
    typer.echo(f"Duration: {_format_duration(macro.duration_us)}")
    for kind, count in sorted(macro.kind_counts().items()):
        typer.echo(f"  {kind.name:<18} {count}")


@app.command("list")
def list_macros(ctx: typer.Context) -> None:
    """List macros in the library directory"""
    store = MacroStore(_config(ctx).macro_dir)
    paths = store.list_macros()
    if not paths:
        typer.echo(f"No macros in {store.directory}")
        return
    for path in paths:
        typer.echo(path)


def main():
    app()


if __name__ == "__main__":
    main()
