import logging
import sys
from typing import TYPE_CHECKING

from PySide6.QtWidgets import QApplication, QSystemTrayIcon

from skc_app.config import AppConfig, load_app_config
from skc_app.input.controller import KeyboardController

if TYPE_CHECKING:
    from skc_app.ui.tray import KeyboardTray

APP_NAME = "Sinc Keyboard Control"
APP_VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(levelname)s %(name)s - %(message)s",
    )


def create_application() -> QApplication:
    app = QApplication(sys.argv)
    app.setApplicationName(APP_NAME)
    app.setApplicationVersion(APP_VERSION)
    # The tray icon is the only UI; closing a balloon must not end the app.
    app.setQuitOnLastWindowClosed(False)
    return app


def create_controller(config: AppConfig) -> KeyboardController:
    return KeyboardController(
        read_timeout_ms=config.read_timeout_ms,
        poll_slice_ms=config.poll_slice_ms,
    )


def create_tray(config: AppConfig) -> "KeyboardTray":
    from .ui.tray import KeyboardTray  # Local import keeps the core importable without a QApplication.

    if not QSystemTrayIcon.isSystemTrayAvailable():
        logger.warning("No system tray available; the icon may not be shown")
    return KeyboardTray(create_controller(config), config=config)


def load_config() -> AppConfig:
    """Load settings and set up logging from them."""
    config = load_app_config()
    configure_logging(config.log_level)
    return config
