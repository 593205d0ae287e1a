"""Attach/detach notifications for the keyboard.

hidapi has no hotplug callbacks, so presence is polled by enumerating the
filtered interface at a fixed interval.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from skc_app.input.hid_backend import SINC_FILTER, HidBackend, HidDeviceFilter, HidDeviceInfo

logger = logging.getLogger(__name__)

DEFAULT_WATCH_INTERVAL_MS: int = 1000


class DeviceWatcher:
    """Calls ``on_attached``/``on_detached`` when keyboard presence changes."""

    def __init__(
        self,
        backend: HidBackend,
        *,
        on_attached: Callable[[HidDeviceInfo], None] | None = None,
        on_detached: Callable[[], None] | None = None,
        device_filter: HidDeviceFilter = SINC_FILTER,
        interval_ms: int = DEFAULT_WATCH_INTERVAL_MS,
        present: bool = False,
    ) -> None:
        self._backend = backend
        self._on_attached = on_attached or (lambda _: None)
        self._on_detached = on_detached or (lambda: None)
        self._filter = device_filter
        self._interval_ms = interval_ms
        self._present = present
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def present(self) -> bool:
        return self._present

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def check(self) -> bool:
        """Run a single presence check and fire callbacks on change.

        Returns:
            Whether the keyboard is currently present.
        """
        try:
            devices = self._backend.enumerate_devices(self._filter)
        except OSError:
            logger.exception("HID enumeration failed")
            return self._present

        was_present, self._present = self._present, bool(devices)
        if self._present and not was_present:
            logger.debug("Keyboard attached")
            self._on_attached(devices[0])
        elif was_present and not self._present:
            logger.debug("Keyboard detached")
            self._on_detached()
        return self._present

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="skc-watch", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 2.0) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.check()
            except Exception:
                logger.exception("Device watcher callback failed")
            self._stop.wait(self._interval_ms / 1000.0)
