from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional

from skc_app.input.errors import TransportError
from skc_app.input.protocol import FRAME_SIZE

try:
    import hid
except ImportError:
    hid = None

logger = logging.getLogger(__name__)

REPORT_ID: int = 0x00
"""Unnumbered reports: hidapi wants a zero report id in front of every write."""

PAYLOAD_SIZE: int = FRAME_SIZE - 1


@dataclass(frozen=True, slots=True)
class HidDeviceFilter:
    vendor_id: int
    product_id: int
    usage_page: int
    usage: int


SINC_FILTER = HidDeviceFilter(vendor_id=0xCB10, product_id=0x1267, usage_page=0xFF60, usage=0x61)
"""The raw-HID interface of the Sinc keyboard."""


@dataclass(frozen=True, slots=True)
class HidDeviceInfo:
    """Minimal HID device info needed for selection/opening."""

    vendor_id: int
    product_id: int
    usage_page: int
    usage: int
    product_string: str
    path: Any  # hidapi uses an opaque bytes-ish path on Windows


def hid_available() -> bool:
    return hid is not None


def enumerate_devices(device_filter: HidDeviceFilter) -> list[HidDeviceInfo]:
    """Return the interfaces matching vendor, product, usage page and usage."""
    if hid is None:
        return []
    devices = []
    seen_paths = set()
    for d in hid.enumerate(device_filter.vendor_id, device_filter.product_id):
        vendor_id = int(d.get("vendor_id") or 0)
        product_id = int(d.get("product_id") or 0)
        usage_page = int(d.get("usage_page") or 0)
        usage = int(d.get("usage") or 0)
        if (vendor_id, product_id) != (device_filter.vendor_id, device_filter.product_id):
            continue
        if usage_page != device_filter.usage_page or usage != device_filter.usage:
            continue
        path = d.get("path")
        if path in seen_paths:
            continue
        seen_paths.add(path)
        devices.append(
            HidDeviceInfo(
                vendor_id=vendor_id,
                product_id=product_id,
                usage_page=usage_page,
                usage=usage,
                product_string=(d.get("product_string") or "").strip(),
                path=path,
            )
        )
    return devices


def format_device_label(device: HidDeviceInfo) -> str:
    label = device.product_string or "HID device"
    return f"{label} ({device.vendor_id:04X}:{device.product_id:04X})"


class HidSession:
    """Manage a single opened HID device.

    Writes are serialized. Reads are not: callers must make sure only one
    thread reads at a time.
    """

    def __init__(self, handle: Any = None, device: HidDeviceInfo | None = None) -> None:
        self._handle = handle
        self._device = device
        self._write_lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    @property
    def device(self) -> HidDeviceInfo | None:
        return self._device

    def open(self, device: HidDeviceInfo) -> None:
        if hid is None:
            raise TransportError("hidapi is not installed")
        self.close()
        handle = None
        try:
            handle = hid.device()
            if device.path:
                handle.open_path(device.path)
            else:
                handle.open(device.vendor_id, device.product_id)
            handle.set_nonblocking(False)
        except (OSError, ValueError) as exc:
            if handle is not None:
                handle.close()
            raise TransportError(f"Unable to open {format_device_label(device)}: {exc}") from exc
        self._handle = handle
        self._device = device

    def close(self) -> None:
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        try:
            handle.close()
        except (OSError, ValueError):
            logger.debug("Ignoring error while closing HID handle", exc_info=True)

    def write(self, frame: bytes) -> int:
        """Send one frame (report id first) and return the bytes written."""
        handle = self._handle
        if handle is None:
            raise TransportError("HID handle is closed")
        with self._write_lock:
            try:
                written = handle.write(bytes(frame))
            except (OSError, ValueError) as exc:
                raise TransportError(f"HID write failed: {exc}") from exc
        if written is None or written <= 0:
            raise TransportError(f"HID write transferred nothing ({written})")
        return int(written)

    def read_report(self, *, timeout_ms: int) -> Optional[bytes]:
        """Read a single report with a blocking timeout.

        hidapi strips the report id from input reports; it is put back so
        inbound frames share the outbound layout.

        Returns:
            A FRAME_SIZE frame, or None if nothing arrived in time.
        """
        handle = self._handle
        if handle is None:
            raise TransportError("HID handle is closed")
        try:
            data = handle.read(PAYLOAD_SIZE, timeout_ms=int(timeout_ms))
        except (OSError, ValueError) as exc:
            raise TransportError(f"HID read failed: {exc}") from exc
        if not data:
            return None
        return (bytes([REPORT_ID]) + bytes(data)).ljust(FRAME_SIZE, b"\x00")

    def read(self, cancel: threading.Event, *, slice_ms: int = 100) -> Optional[bytes]:
        """Block until a frame arrives or ``cancel`` is set.

        Waits in ``slice_ms`` steps so cancellation is noticed promptly.
        Returns None when cancelled.
        """
        while not cancel.is_set():
            frame = self.read_report(timeout_ms=slice_ms)
            if frame is not None:
                return frame
        return None

    def read_once(self, *, timeout_ms: int) -> bytes:
        """Read the response to a request; nothing in time is a failure."""
        frame = self.read_report(timeout_ms=timeout_ms)
        if frame is None:
            raise TransportError(f"No response within {timeout_ms} ms")
        return frame


class HidBackend:
    """Opens the real hidapi devices. Tests substitute their own backend."""

    def enumerate_devices(self, device_filter: HidDeviceFilter) -> list[HidDeviceInfo]:
        return enumerate_devices(device_filter)

    def open(self, device: HidDeviceInfo) -> HidSession:
        session = HidSession()
        session.open(device)
        return session
