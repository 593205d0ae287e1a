"""Exceptions raised by the keyboard core."""


class SkcError(Exception):
    """Base class for keyboard control errors."""


class TransportError(SkcError):
    """A HID read/write failed, transferred nothing, or the handle is closed."""


class ModeConflictError(SkcError):
    """The HID read side is already owned by another communication mode.

    Raised when a one-shot request is issued while the polling loop is
    reading. This is a usage error, never a transient failure.
    """
