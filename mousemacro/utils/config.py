"""
Application Config
Loads and saves data/app_config.json
"""

from __future__ import annotations
from dataclasses import dataclass, field
import json
import os
import tempfile

from mousemacro.core.macro.models import MacroSettings
from mousemacro.utils.logger import CONFIG_FILE, warn


@dataclass
class AppConfig:
    """Top-level application settings"""
    macro_dir: str = os.path.join("data", "macros")
    debug_mode: bool = False
    enable_file_logging: bool = False
    enable_console_logging: bool = True
    dry_run: bool = False
    macro_settings: MacroSettings = field(default_factory=MacroSettings)

    def to_dict(self) -> dict:
        return {
            "macro_dir": self.macro_dir,
            "debug_mode": self.debug_mode,
            "enable_file_logging": self.enable_file_logging,
            "enable_console_logging": self.enable_console_logging,
            "dry_run": self.dry_run,
            "macro_settings": self.macro_settings.to_dict()
        }

    @staticmethod
    def from_dict(data: dict) -> 'AppConfig':
        return AppConfig(
            macro_dir=data.get("macro_dir", os.path.join("data", "macros")),
            debug_mode=data.get("debug_mode", False),
            enable_file_logging=data.get("enable_file_logging", False),
            enable_console_logging=data.get("enable_console_logging", True),
            dry_run=data.get("dry_run", False),
            macro_settings=MacroSettings.from_dict(data.get("macro_settings", {}))
        )


def load_config(config_file: str = CONFIG_FILE) -> AppConfig:
    """Load config; a missing or unreadable file yields defaults"""
    if not os.path.exists(config_file):
        return AppConfig()
    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        warn(f"[CONFIG] Cannot read {config_file}, using defaults: {e}")
        return AppConfig()
    if not isinstance(data, dict):
        warn(f"[CONFIG] {config_file} is not a JSON object, using defaults")
        return AppConfig()
    return AppConfig.from_dict(data)


def save_config(config: AppConfig, config_file: str = CONFIG_FILE):
    """Write config atomically (temp file + replace)"""
    directory = os.path.dirname(os.path.abspath(config_file))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".app_config.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(config.to_dict(), f, indent=2)
        os.replace(tmp_path, config_file)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
