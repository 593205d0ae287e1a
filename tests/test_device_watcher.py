"""Tests for attach/detach detection."""

from __future__ import annotations

import threading

from skc_app.input.controller import KeyboardController
from skc_app.input.device_watcher import DeviceWatcher

from conftest import FakeBackend


class TestCheck:
    """Tests for single presence checks."""

    def test_attach_fires_once(self, backend: FakeBackend) -> None:
        attached = []
        watcher = DeviceWatcher(backend, on_attached=attached.append)

        assert watcher.check() is True
        assert watcher.check() is True
        assert attached == backend.devices

    def test_detach_fires_once(self, backend: FakeBackend) -> None:
        detached = []
        watcher = DeviceWatcher(backend, on_detached=lambda: detached.append(True), present=True)
        backend.devices = []

        assert watcher.check() is False
        assert watcher.check() is False
        assert detached == [True]

    def test_nothing_fires_without_change(self, backend: FakeBackend) -> None:
        events = []
        watcher = DeviceWatcher(
            backend,
            on_attached=events.append,
            on_detached=lambda: events.append("detached"),
            present=True,
        )

        watcher.check()

        assert events == []

    def test_enumeration_error_keeps_presence(self, backend: FakeBackend, monkeypatch) -> None:
        def broken(_):
            raise OSError("enumeration failed")

        watcher = DeviceWatcher(backend, present=True)
        monkeypatch.setattr(backend, "enumerate_devices", broken)

        assert watcher.check() is True


class TestWithController:
    def test_detach_disconnects_and_attach_reconnects(self, backend: FakeBackend) -> None:
        """The watcher drives the controller through detach and re-attach."""
        controller = KeyboardController(backend, poll_slice_ms=10)
        disconnected = []
        controller.device_disconnected.connect(disconnected.append)
        watcher = DeviceWatcher(
            backend,
            on_attached=lambda _: controller.open(),
            on_detached=controller.handle_detach,
            present=True,
        )
        controller.open()
        controller.start_polling()

        devices, backend.devices = backend.devices, []
        watcher.check()

        assert not controller.connected
        assert not controller.is_polling
        assert len(disconnected) == 1

        backend.devices = devices
        watcher.check()

        assert controller.connected
        controller.close()

    def test_detach_without_reconnect(self, backend: FakeBackend) -> None:
        """Detach still resets the controller when re-attach does not reopen it."""
        controller = KeyboardController(backend, poll_slice_ms=10)
        disconnected = []
        controller.device_disconnected.connect(disconnected.append)
        watcher = DeviceWatcher(backend, on_detached=controller.handle_detach, present=True)
        controller.open()
        controller.start_polling()

        devices, backend.devices = backend.devices, []
        watcher.check()

        assert not controller.connected
        assert controller.state.connected is False
        assert len(disconnected) == 1

        backend.devices = devices
        assert watcher.check() is True
        assert not controller.connected


class TestThread:
    def test_start_and_stop(self, backend: FakeBackend) -> None:
        attached = threading.Event()
        watcher = DeviceWatcher(backend, on_attached=lambda _: attached.set(), interval_ms=10)

        watcher.start()
        try:
            assert attached.wait(2.0)
            assert watcher.running
        finally:
            watcher.stop()

        assert not watcher.running
