"""Session state for the connected keyboard and its change notifications."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from skc_app.input.protocol import DecodedEvent, EventKind, LayerState, MacroKeyState

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventHook(Generic[T]):
    """A list of listeners invoked in subscription order.

    A listener that raises is logged and skipped so the remaining
    listeners still see the event.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._listeners: list[Callable[[T], None]] = []
        self._lock = threading.Lock()

    def connect(self, listener: Callable[[T], None]) -> Callable[[], None]:
        """Subscribe ``listener``; returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def _disconnect() -> None:
            self.disconnect(listener)

        return _disconnect

    def disconnect(self, listener: Callable[[T], None]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def emit(self, payload: T) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(payload)
            except Exception:
                logger.exception("Listener for %s failed", self._name)

    def __len__(self) -> int:
        return len(self._listeners)


class StateField(Enum):
    LAYER = "layer"
    MACRO_KEY_DISABLED = "macro_key_disabled"
    CONNECTED = "connected"


@dataclass(frozen=True, slots=True)
class StateChange:
    """One field of the session changed from ``old_value`` to ``new_value``."""

    field: StateField
    old_value: Any
    new_value: Any


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    layer: LayerState | None
    macro_key_disabled: bool
    connected: bool


class SessionState:
    """Single source of truth for what is known about the keyboard.

    ``layer`` is None until the keyboard has reported one. Only the
    controller mutates the state; everyone else reads it and subscribes
    to :attr:`changed`.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._layer: LayerState | None = None
        self._macro_key_disabled = False
        self._connected = False
        self.changed: EventHook[StateChange] = EventHook("session state")

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def layer(self) -> LayerState | None:
        return self._layer

    @property
    def macro_key_disabled(self) -> bool:
        return self._macro_key_disabled

    @property
    def connected(self) -> bool:
        return self._connected

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return SessionSnapshot(
                layer=self._layer,
                macro_key_disabled=self._macro_key_disabled,
                connected=self._connected,
            )

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def apply(self, event: DecodedEvent) -> list[StateChange]:
        """Apply a decoded frame and notify about whatever actually changed."""
        if event.kind in (EventKind.LAYER_ACK, EventKind.LAYER_EVENT):
            return self._update({StateField.LAYER: event.layer})
        if event.kind is EventKind.MACRO_KEY_ACK:
            disabled = event.macro_key is MacroKeyState.DISABLED
            return self._update({StateField.MACRO_KEY_DISABLED: disabled})
        return []

    def set_connected(self, connected: bool) -> list[StateChange]:
        return self._update({StateField.CONNECTED: bool(connected)})

    def reset(self) -> list[StateChange]:
        """Back to the disconnected defaults: no layer, macro key armed."""
        return self._update(
            {
                StateField.LAYER: None,
                StateField.MACRO_KEY_DISABLED: False,
                StateField.CONNECTED: False,
            }
        )

    def _update(self, values: dict[StateField, Any]) -> list[StateChange]:
        changes: list[StateChange] = []
        with self._lock:
            for field, new_value in values.items():
                attr = "_" + field.value
                old_value = getattr(self, attr)
                if old_value == new_value:
                    continue
                setattr(self, attr, new_value)
                changes.append(StateChange(field, old_value, new_value))
        for change in changes:
            logger.debug("%s: %s -> %s", change.field.value, change.old_value, change.new_value)
            self.changed.emit(change)
        return changes
