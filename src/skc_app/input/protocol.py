"""Wire protocol for the Sinc keyboard's vendor HID interface.

Every message is a fixed 65-byte frame: a zero report id, the ``0x02``
command marker, the ``JML`` magic and a short ASCII suffix, zero-padded.
Encoding and decoding are pure; nothing here touches a device.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Union


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

FRAME_SIZE: int = 65
"""Size of every frame exchanged with the keyboard (report id + 64 bytes)."""

HEADER: bytes = b"\x00\x02"
MAGIC: bytes = b"JML"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class LayerState(Enum):
    """Host layer the keyboard believes it is paired with."""

    UNKNOWN = "Unknown"
    WINDOWS = "Windows"
    MAC = "Mac"

    def __str__(self) -> str:
        return self.value


class MacroKeyState(Enum):
    """Whether the physical layer-switch key is armed."""

    ENABLED = "Enabled"
    DISABLED = "Disabled"

    def __str__(self) -> str:
        return self.value


class Command(Enum):
    """Outbound commands; the value is the literal before padding."""

    SELECT_WINDOWS = HEADER + MAGIC + b"S0"
    SELECT_MAC = HEADER + MAGIC + b"S1"
    QUERY_LAYER_STATUS = HEADER + MAGIC + b"R"
    DISABLE_MACRO_KEY = HEADER + MAGIC + b"D"
    ENABLE_MACRO_KEY = HEADER + MAGIC + b"E"


class EventKind(Enum):
    LAYER_ACK = "layer_ack"
    LAYER_EVENT = "layer_event"
    MACRO_KEY_ACK = "macro_key_ack"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True, slots=True)
class DecodedEvent:
    """Result of parsing one inbound frame.

    ``layer`` is set for layer acks and unsolicited layer events,
    ``macro_key`` for macro key acks. Both are None when unrecognized.
    """

    kind: EventKind
    layer: LayerState | None = None
    macro_key: MacroKeyState | None = None

    @property
    def recognized(self) -> bool:
        return self.kind is not EventKind.UNRECOGNIZED


UNRECOGNIZED = DecodedEvent(EventKind.UNRECOGNIZED)

_RESPONSES: dict[bytes, DecodedEvent] = {
    HEADER + MAGIC + b"\x0f": DecodedEvent(EventKind.LAYER_ACK, layer=LayerState.WINDOWS),
    HEADER + MAGIC + b"\x0e": DecodedEvent(EventKind.LAYER_ACK, layer=LayerState.MAC),
    # Unsolicited: the user pressed the hardware layer key.
    HEADER + MAGIC + b"0": DecodedEvent(EventKind.LAYER_EVENT, layer=LayerState.WINDOWS),
    HEADER + MAGIC + b"1": DecodedEvent(EventKind.LAYER_EVENT, layer=LayerState.MAC),
    HEADER + MAGIC + b"DS": DecodedEvent(EventKind.MACRO_KEY_ACK, macro_key=MacroKeyState.DISABLED),
    HEADER + MAGIC + b"ES": DecodedEvent(EventKind.MACRO_KEY_ACK, macro_key=MacroKeyState.ENABLED),
}

FrameLike = Union[bytes, bytearray, memoryview, Iterable[int]]


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------

def encode(command: Command) -> bytes:
    """Return the zero-padded 65-byte frame for ``command``."""
    return command.value.ljust(FRAME_SIZE, b"\x00")


def _as_bytes(frame: FrameLike) -> bytes | None:
    if isinstance(frame, (bytes, bytearray, memoryview)):
        return bytes(frame)
    # hidapi hands back list[int]
    try:
        return bytes(frame)
    except (TypeError, ValueError):
        return None


def decode(frame: FrameLike) -> DecodedEvent:
    """Parse an inbound frame. Never raises; anything unknown is UNRECOGNIZED.

    The frame is read as ASCII with trailing NULs stripped, then matched
    exactly against the known responses (no prefix matching).
    """
    data = _as_bytes(frame)
    if data is None:
        return UNRECOGNIZED
    if any(b > 0x7F for b in data):
        return UNRECOGNIZED
    return _RESPONSES.get(data.rstrip(b"\x00"), UNRECOGNIZED)


def describe(frame: FrameLike) -> str:
    """Printable rendering of a frame for logs, padding trimmed."""
    data = _as_bytes(frame)
    if data is None:
        return "<invalid frame>"
    return repr(data.rstrip(b"\x00"))
