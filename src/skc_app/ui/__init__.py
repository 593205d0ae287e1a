"""UI package for Sinc Keyboard Control.

Exports:
    KeyboardTray: System tray icon and menu for the keyboard.
"""

from .tray import KeyboardTray

__all__ = [
    "KeyboardTray",
]
