from __future__ import annotations

import configparser
from dataclasses import dataclass
from pathlib import Path

from PySide6.QtCore import QStandardPaths


# -------------------------------------------------------------------------
# Default values for all settings
# -------------------------------------------------------------------------

# Device defaults
DEFAULT_READ_TIMEOUT_MS: int = 1000
DEFAULT_POLL_SLICE_MS: int = 100
DEFAULT_WATCH_INTERVAL_MS: int = 1000

# Behavior defaults
DEFAULT_POLL_ON_CONNECT: bool = True
DEFAULT_DISABLE_MACRO_KEY_ON_CONNECT: bool = True
DEFAULT_RESTORE_MACRO_KEY_ON_EXIT: bool = True
DEFAULT_AUTO_RECONNECT: bool = True
DEFAULT_SHOW_NOTIFICATIONS: bool = True

# Logging defaults
DEFAULT_LOG_LEVEL: str = "INFO"
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class AppConfig:
    """Settings persisted to settings.ini."""

    read_timeout_ms: int = DEFAULT_READ_TIMEOUT_MS
    poll_slice_ms: int = DEFAULT_POLL_SLICE_MS
    watch_interval_ms: int = DEFAULT_WATCH_INTERVAL_MS
    poll_on_connect: bool = DEFAULT_POLL_ON_CONNECT
    disable_macro_key_on_connect: bool = DEFAULT_DISABLE_MACRO_KEY_ON_CONNECT
    restore_macro_key_on_exit: bool = DEFAULT_RESTORE_MACRO_KEY_ON_EXIT
    auto_reconnect: bool = DEFAULT_AUTO_RECONNECT
    show_notifications: bool = DEFAULT_SHOW_NOTIFICATIONS
    log_level: str = DEFAULT_LOG_LEVEL


def config_path() -> Path:
    # e.g., C:\Users\<user>\AppData\Local\Sinc Keyboard Control on Windows
    config_dir = Path(QStandardPaths.writableLocation(QStandardPaths.AppConfigLocation))
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir / "settings.ini"


def _bool_str(value: bool) -> str:
    return "true" if value else "false"


def _to_parser(cfg: AppConfig) -> configparser.ConfigParser:
    parser = configparser.ConfigParser()
    parser["device"] = {
        "read_timeout_ms": str(int(cfg.read_timeout_ms)),
        "poll_slice_ms": str(int(cfg.poll_slice_ms)),
        "watch_interval_ms": str(int(cfg.watch_interval_ms)),
    }
    parser["behavior"] = {
        "poll_on_connect": _bool_str(cfg.poll_on_connect),
        "disable_macro_key_on_connect": _bool_str(cfg.disable_macro_key_on_connect),
        "restore_macro_key_on_exit": _bool_str(cfg.restore_macro_key_on_exit),
        "auto_reconnect": _bool_str(cfg.auto_reconnect),
        "show_notifications": _bool_str(cfg.show_notifications),
    }
    parser["logging"] = {
        "level": cfg.log_level,
    }
    return parser


def ensure_config_exists() -> None:
    """Create settings.ini with all default values if it doesn't exist."""
    path = config_path()
    if path.exists():
        return
    with path.open("w", encoding="utf-8") as f:
        _to_parser(AppConfig()).write(f)


def _positive_int(section: configparser.SectionProxy, key: str, default: int) -> int:
    try:
        value = int(section.get(key, str(default)))
    except ValueError:
        return default
    return value if value > 0 else default


def _boolean(section: configparser.SectionProxy, key: str, default: bool) -> bool:
    try:
        return section.getboolean(key, fallback=default)
    except ValueError:
        return default


def load_app_config() -> AppConfig:
    """Load settings, creating the file with defaults if needed.

    Missing sections, keys or unparsable values fall back to defaults.
    """
    ensure_config_exists()
    parser = configparser.ConfigParser()
    parser.read(config_path(), encoding="utf-8")
    for name in ("device", "behavior", "logging"):
        if name not in parser:
            parser[name] = {}

    device = parser["device"]
    behavior = parser["behavior"]
    level = parser["logging"].get("level", DEFAULT_LOG_LEVEL).strip().upper()

    return AppConfig(
        read_timeout_ms=_positive_int(device, "read_timeout_ms", DEFAULT_READ_TIMEOUT_MS),
        poll_slice_ms=_positive_int(device, "poll_slice_ms", DEFAULT_POLL_SLICE_MS),
        watch_interval_ms=_positive_int(device, "watch_interval_ms", DEFAULT_WATCH_INTERVAL_MS),
        poll_on_connect=_boolean(behavior, "poll_on_connect", DEFAULT_POLL_ON_CONNECT),
        disable_macro_key_on_connect=_boolean(
            behavior, "disable_macro_key_on_connect", DEFAULT_DISABLE_MACRO_KEY_ON_CONNECT
        ),
        restore_macro_key_on_exit=_boolean(
            behavior, "restore_macro_key_on_exit", DEFAULT_RESTORE_MACRO_KEY_ON_EXIT
        ),
        auto_reconnect=_boolean(behavior, "auto_reconnect", DEFAULT_AUTO_RECONNECT),
        show_notifications=_boolean(behavior, "show_notifications", DEFAULT_SHOW_NOTIFICATIONS),
        log_level=level if level in _LOG_LEVELS else DEFAULT_LOG_LEVEL,
    )


def save_app_config(cfg: AppConfig) -> None:
    path = config_path()
    with path.open("w", encoding="utf-8") as f:
        _to_parser(cfg).write(f)
