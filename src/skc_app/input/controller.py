"""Session controller for the Sinc keyboard.

This module provides the connection lifecycle, the background polling loop
and the request dispatcher, all sharing a single HID handle. The handle
has one read side; :class:`ReadSide` hands it to either the polling loop
or a single one-shot request, never both.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Protocol

from skc_app.input.errors import ModeConflictError, TransportError
from skc_app.input.hid_backend import (
    SINC_FILTER,
    HidBackend,
    HidDeviceFilter,
    HidDeviceInfo,
    HidSession,
    format_device_label,
)
from skc_app.input.protocol import (
    Command,
    LayerState,
    MacroKeyState,
    decode,
    describe,
    encode,
)
from skc_app.input.state import EventHook, SessionState

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_READ_TIMEOUT_MS: int = 1000
"""How long a one-shot request waits for its response."""

DEFAULT_POLL_SLICE_MS: int = 100
"""Read slice used by the polling loop between cancellation checks."""

_SELECT_COMMANDS: dict[LayerState, Command] = {
    LayerState.WINDOWS: Command.SELECT_WINDOWS,
    LayerState.MAC: Command.SELECT_MAC,
}

_MACRO_KEY_COMMANDS: dict[MacroKeyState, Command] = {
    MacroKeyState.ENABLED: Command.ENABLE_MACRO_KEY,
    MacroKeyState.DISABLED: Command.DISABLE_MACRO_KEY,
}


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class RequestMode(Enum):
    """How a request gets its response.

    POLLING only writes; the polling loop picks up the reply.
    ONE_SHOT writes and then reads the reply itself.
    """

    POLLING = "polling"
    ONE_SHOT = "one_shot"


class Backend(Protocol):
    def enumerate_devices(self, device_filter: HidDeviceFilter) -> list[HidDeviceInfo]: ...

    def open(self, device: HidDeviceInfo) -> HidSession: ...


# ---------------------------------------------------------------------------
# Read side ownership
# ---------------------------------------------------------------------------

class ReadSide:
    """Token for the single reader of the HID handle."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._owner: RequestMode | None = None

    @property
    def owner(self) -> RequestMode | None:
        return self._owner

    def acquire(self, mode: RequestMode) -> None:
        with self._cond:
            if self._owner is not None:
                raise ModeConflictError(
                    f"Cannot read in {mode.value} mode: read side is held by {self._owner.value}"
                )
            self._owner = mode

    def release(self, mode: RequestMode) -> None:
        with self._cond:
            if self._owner is mode:
                self._owner = None
                self._cond.notify_all()

    @contextmanager
    def hold(self, mode: RequestMode) -> Iterator[None]:
        self.acquire(mode)
        try:
            yield
        finally:
            self.release(mode)

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait until nobody holds the read side."""
        with self._cond:
            return self._cond.wait_for(lambda: self._owner is None, timeout=timeout)


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class KeyboardController:
    """Owns the keyboard's HID handle and everything that talks through it.

    Observers read :attr:`state` and subscribe to ``state.changed``,
    :attr:`device_connected` and :attr:`device_disconnected`. Requests
    return False on transport failure or while disconnected. A one-shot
    request made while polling raises :class:`ModeConflictError`.
    """

    def __init__(
        self,
        backend: Backend | None = None,
        *,
        device_filter: HidDeviceFilter = SINC_FILTER,
        read_timeout_ms: int = DEFAULT_READ_TIMEOUT_MS,
        poll_slice_ms: int = DEFAULT_POLL_SLICE_MS,
    ) -> None:
        self._backend: Backend = backend if backend is not None else HidBackend()
        self._filter = device_filter
        self._read_timeout_ms = read_timeout_ms
        self._poll_slice_ms = poll_slice_ms

        self._lifecycle_lock = threading.RLock()
        self._connection_state = ConnectionState.DISCONNECTED
        self._session: HidSession | None = None
        self._device: HidDeviceInfo | None = None

        self._read_side = ReadSide()
        self._poll_thread: threading.Thread | None = None
        self._poll_cancel: threading.Event | None = None
        self._polling = False

        self.state = SessionState()
        self.device_connected: EventHook[None] = EventHook("device connected")
        self.device_disconnected: EventHook[None] = EventHook("device disconnected")

    def __enter__(self) -> KeyboardController:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection_state

    @property
    def connected(self) -> bool:
        return self._connection_state is ConnectionState.CONNECTED

    @property
    def device(self) -> HidDeviceInfo | None:
        """Return the opened device, if any."""
        return self._device

    @property
    def is_polling(self) -> bool:
        return self._polling

    @property
    def layer(self) -> LayerState | None:
        return self.state.layer

    @property
    def macro_key_disabled(self) -> bool:
        return self.state.macro_key_disabled

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    def open(self) -> bool:
        """Find the keyboard and open it.

        Returns:
            True if a new connection was made. False when no device matches,
            it could not be opened, or a connection already exists.
        """
        with self._lifecycle_lock:
            if self._connection_state is not ConnectionState.DISCONNECTED:
                logger.debug("open() ignored, already %s", self._connection_state.value)
                return False
            self._connection_state = ConnectionState.CONNECTING
            try:
                found = self._find_and_open()
            except Exception:
                logger.exception("Unexpected error while opening the keyboard")
                found = None
            if found is None:
                self._connection_state = ConnectionState.DISCONNECTED
                return False

            device, session = found
            self._session = session
            self._device = device
            self._connection_state = ConnectionState.CONNECTED
            logger.info("Connected to %s", format_device_label(device))

        self.state.set_connected(True)
        self.device_connected.emit(None)
        return True

    def _find_and_open(self) -> tuple[HidDeviceInfo, HidSession] | None:
        try:
            devices = self._backend.enumerate_devices(self._filter)
        except (OSError, TransportError):
            logger.exception("HID enumeration failed")
            devices = []
        if not devices:
            logger.warning(
                "No keyboard found (%04X:%04X usage %04X:%02X)",
                self._filter.vendor_id,
                self._filter.product_id,
                self._filter.usage_page,
                self._filter.usage,
            )
            return None

        device = devices[0]
        try:
            session = self._backend.open(device)
        except TransportError as exc:
            logger.warning("Failed to open keyboard: %s", exc)
            return None
        return device, session

    def close(self) -> None:
        """Cancel polling, close the handle and reset state. Safe to repeat."""
        with self._lifecycle_lock:
            if self._connection_state is ConnectionState.DISCONNECTED:
                return
            self.stop_polling()
            # let an in-flight one-shot finish its read before the handle goes
            if not self._read_side.wait_idle(timeout=self._read_timeout_ms / 1000.0 + 1.0):
                logger.warning("Closing HID handle with a read still in flight")
            session, self._session = self._session, None
            device, self._device = self._device, None
            if session is not None:
                session.close()
            self._connection_state = ConnectionState.DISCONNECTED
            if device is not None:
                logger.info("Disconnected from %s", format_device_label(device))

        self.state.reset()
        self.device_disconnected.emit(None)

    def handle_detach(self) -> None:
        """Detach notification from the device watcher."""
        logger.info("Keyboard detached")
        self.close()

    # -------------------------------------------------------------------------
    # Polling loop
    # -------------------------------------------------------------------------

    def start_polling(self, cancel: threading.Event | None = None) -> threading.Thread | None:
        """Start the background reader.

        Returns:
            The new thread, or None if disconnected or already polling.
        """
        with self._lifecycle_lock:
            if not self.connected or self._polling:
                return None
            try:
                self._read_side.acquire(RequestMode.POLLING)
            except ModeConflictError:
                logger.warning("Not starting polling while a one-shot request is reading")
                return None
            cancel = cancel if cancel is not None else threading.Event()
            self._poll_cancel = cancel
            self._polling = True
            thread = threading.Thread(
                target=self._poll_loop,
                args=(self._session, cancel),
                name="skc-poll",
                daemon=True,
            )
            self._poll_thread = thread
        thread.start()
        return thread

    def stop_polling(self, timeout: float | None = 2.0) -> None:
        thread, cancel = self._poll_thread, self._poll_cancel
        if cancel is not None:
            cancel.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Polling thread did not stop within %s s", timeout)
        self._poll_thread = None
        self._poll_cancel = None

    def _poll_loop(self, session: HidSession, cancel: threading.Event) -> None:
        logger.debug("Polling started")
        try:
            while not cancel.is_set() and self.connected:
                frame = session.read(cancel, slice_ms=self._poll_slice_ms)
                if frame is None or cancel.is_set():
                    break
                self._handle_frame(frame)
        except TransportError as exc:
            logger.warning("Polling stopped: %s", exc)
        except Exception:
            logger.exception("Polling loop crashed")
        finally:
            self._read_side.release(RequestMode.POLLING)
            self._polling = False
            logger.debug("Polling finished")

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def query_layer_status(self, mode: RequestMode = RequestMode.POLLING) -> bool:
        return self._request(Command.QUERY_LAYER_STATUS, mode)

    def request_layer(self, layer: LayerState, mode: RequestMode = RequestMode.POLLING) -> bool:
        try:
            command = _SELECT_COMMANDS[layer]
        except KeyError:
            raise ValueError(f"Cannot request layer {layer}") from None
        return self._request(command, mode)

    def set_macro_key(self, state: MacroKeyState, mode: RequestMode = RequestMode.POLLING) -> bool:
        return self._request(_MACRO_KEY_COMMANDS[state], mode)

    def _request(self, command: Command, mode: RequestMode) -> bool:
        session = self._session
        if not self.connected or session is None:
            logger.debug("%s dropped: not connected", command.name)
            return False
        if mode is RequestMode.POLLING:
            return self._write(session, command)

        with self._read_side.hold(RequestMode.ONE_SHOT):
            if not self._write(session, command):
                return False
            try:
                frame = session.read_once(timeout_ms=self._read_timeout_ms)
            except TransportError as exc:
                logger.warning("%s got no response: %s", command.name, exc)
                return False
            self._handle_frame(frame)
            return True

    def _write(self, session: HidSession, command: Command) -> bool:
        try:
            session.write(encode(command))
        except TransportError as exc:
            logger.warning("%s failed: %s", command.name, exc)
            return False
        logger.debug("Sent %s", command.name)
        return True

    def _handle_frame(self, frame: bytes) -> None:
        event = decode(frame)
        if not event.recognized:
            logger.debug("Ignoring unrecognized frame %s", describe(frame))
            return
        logger.debug("Received %s", event)
        self.state.apply(event)
