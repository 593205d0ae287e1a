"""Fake hidapi handle and backend shared by the device tests."""

from __future__ import annotations

import queue
from collections.abc import Callable

import pytest

from skc_app.input.errors import TransportError
from skc_app.input.hid_backend import SINC_FILTER, HidDeviceFilter, HidDeviceInfo, HidSession


def make_device(path: bytes = b"sinc-raw-hid") -> HidDeviceInfo:
    return HidDeviceInfo(
        vendor_id=SINC_FILTER.vendor_id,
        product_id=SINC_FILTER.product_id,
        usage_page=SINC_FILTER.usage_page,
        usage=SINC_FILTER.usage,
        product_string="Sinc",
        path=path,
    )


class FakeHidHandle:
    """Stands in for ``hid.device()``: records writes, serves queued reports.

    Like hidapi, reads return the report without its leading report id.
    """

    def __init__(self) -> None:
        self.writes: list[bytes] = []
        self.read_calls = 0
        self.closed = False
        self.write_result: int | None = None
        self.fail_reads = False
        self.responder: Callable[[bytes], bytes | None] | None = None
        self._inbound: queue.Queue[list[int]] = queue.Queue()

    def push(self, literal: bytes) -> None:
        """Queue a device report given as a full frame literal (report id first)."""
        self._inbound.put(list(literal[1:]))

    def write(self, data: bytes) -> int:
        if self.closed:
            raise ValueError("not open")
        self.writes.append(bytes(data))
        if self.responder is not None:
            reply = self.responder(bytes(data))
            if reply is not None:
                self.push(reply)
        return len(data) if self.write_result is None else self.write_result

    def read(self, max_length: int, timeout_ms: int = 0) -> list[int]:
        if self.closed:
            raise ValueError("not open")
        self.read_calls += 1
        if self.fail_reads:
            raise OSError("read error")
        try:
            return self._inbound.get(timeout=max(timeout_ms, 1) / 1000.0)[:max_length]
        except queue.Empty:
            return []

    def close(self) -> None:
        self.closed = True


class FakeBackend:
    def __init__(self, devices: list[HidDeviceInfo] | None = None) -> None:
        self.devices = list(devices) if devices is not None else [make_device()]
        self.handle = FakeHidHandle()
        self.open_error = False
        self.enumerate_calls = 0
        self.filters: list[HidDeviceFilter] = []

    def enumerate_devices(self, device_filter: HidDeviceFilter) -> list[HidDeviceInfo]:
        self.enumerate_calls += 1
        self.filters.append(device_filter)
        return list(self.devices)

    def open(self, device: HidDeviceInfo) -> HidSession:
        if self.open_error:
            raise TransportError("access denied")
        return HidSession(handle=self.handle, device=device)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def handle(backend: FakeBackend) -> FakeHidHandle:
    return backend.handle
