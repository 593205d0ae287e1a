"""System tray front-end for the keyboard controller.

Design notes:
- All device logic lives in `skc_app.input.controller`; this class only
  wires menu actions to requests and renders state.
- Controller and watcher callbacks arrive on background threads and are
  re-emitted as Qt signals so widgets are only touched on the GUI thread.
"""

from __future__ import annotations

import logging

from PySide6.QtCore import QObject, Signal
from PySide6.QtGui import QAction, QActionGroup
from PySide6.QtWidgets import QApplication, QMenu, QSystemTrayIcon

from ..config import AppConfig
from ..input.controller import KeyboardController, RequestMode
from ..input.device_watcher import DeviceWatcher
from ..input.hid_backend import HidDeviceInfo
from ..input.protocol import LayerState, MacroKeyState
from ..input.state import StateChange, StateField
from .icons import layer_icon, layer_label

logger = logging.getLogger(__name__)

_TOOLTIP_BASE = "Sinc keyboard status: "


class KeyboardTray(QObject):
    """Tray icon showing the keyboard layer, with a menu to change it."""

    _state_changed = Signal(object)
    _device_connected = Signal()
    _device_disconnected = Signal()

    def __init__(
        self,
        controller: KeyboardController,
        *,
        config: AppConfig,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._controller = controller
        self._config = config

        self._watcher: DeviceWatcher | None = None
        self._shut_down = False

        self._tray = QSystemTrayIcon(self)
        self._build_menu()

        self._state_changed.connect(self._on_state_changed)
        self._device_connected.connect(self._on_device_connected)
        self._device_disconnected.connect(self._on_device_disconnected)
        controller.state.changed.connect(self._state_changed.emit)
        controller.device_connected.connect(lambda _: self._device_connected.emit())
        controller.device_disconnected.connect(lambda _: self._device_disconnected.emit())

        self._refresh_view()

    def _build_menu(self) -> None:
        self._menu = QMenu()

        self._layer_group = QActionGroup(self)
        self._layer_group.setExclusive(True)
        self._windows_action = QAction("Windows", self, checkable=True)
        self._windows_action.triggered.connect(lambda: self._request_layer(LayerState.WINDOWS))
        self._mac_action = QAction("Mac", self, checkable=True)
        self._mac_action.triggered.connect(lambda: self._request_layer(LayerState.MAC))
        for action in (self._windows_action, self._mac_action):
            self._layer_group.addAction(action)
            self._menu.addAction(action)

        self._menu.addSeparator()
        self._refresh_action = QAction("Refresh", self)
        self._refresh_action.triggered.connect(self._request_refresh)
        self._menu.addAction(self._refresh_action)

        self._macro_action = QAction("Disable macro key", self, checkable=True)
        self._macro_action.toggled.connect(self._on_macro_toggled)
        self._menu.addAction(self._macro_action)

        self._menu.addSeparator()
        self._reconnect_action = QAction("Reconnect", self)
        self._reconnect_action.triggered.connect(self.connect_device)
        self._menu.addAction(self._reconnect_action)

        exit_action = QAction("Exit", self)
        exit_action.triggered.connect(self.shutdown)
        self._menu.addAction(exit_action)

        self._tray.setContextMenu(self._menu)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        self._tray.show()
        if not self.connect_device():
            self._show_message("Error", "Unable to connect to the device", QSystemTrayIcon.Warning)
        # detach always resets the controller; re-attach only reopens with auto_reconnect
        self._watcher = DeviceWatcher(
            self._controller.backend,
            on_attached=self._on_watcher_attached if self._config.auto_reconnect else None,
            on_detached=self._controller.handle_detach,
            interval_ms=self._config.watch_interval_ms,
            present=self._controller.connected,
        )
        self._watcher.start()

    def connect_device(self) -> bool:
        if self._controller.connected:
            return True
        return self._controller.open()

    def shutdown(self) -> None:
        """Restore the macro key, close the device and quit."""
        if self._shut_down:
            return
        self._shut_down = True
        if self._watcher is not None:
            self._watcher.stop()
        if self._config.restore_macro_key_on_exit and self._controller.connected:
            self._controller.set_macro_key(MacroKeyState.ENABLED, RequestMode.POLLING)
        self._controller.close()
        self._tray.hide()
        QApplication.quit()

    # -------------------------------------------------------------------------
    # Device events
    # -------------------------------------------------------------------------

    def _on_watcher_attached(self, device: HidDeviceInfo) -> None:
        if not self._controller.connected:
            self._controller.open()

    def _on_device_connected(self) -> None:
        mode = RequestMode.ONE_SHOT
        if self._config.poll_on_connect and self._controller.start_polling() is not None:
            mode = RequestMode.POLLING
        if not self._controller.query_layer_status(mode):
            self._show_message("Error", "Unable to request a refresh from the device", QSystemTrayIcon.Warning)
        if self._config.disable_macro_key_on_connect:
            self._controller.set_macro_key(MacroKeyState.DISABLED, self._request_mode())
        self._refresh_view()

    def _on_device_disconnected(self) -> None:
        self._show_message("Disconnected", "Disconnected from keyboard", QSystemTrayIcon.Warning)
        self._refresh_view()

    def _on_state_changed(self, change: StateChange) -> None:
        self._refresh_view()
        if change.field is StateField.LAYER and change.new_value is not None:
            layer = change.new_value
            self._show_message(str(layer), f"Keyboard is in {layer} mode", QSystemTrayIcon.NoIcon)
        elif change.field is StateField.CONNECTED and change.new_value:
            self._show_message("Connected", "Connected to keyboard", QSystemTrayIcon.NoIcon)

    # -------------------------------------------------------------------------
    # Menu actions
    # -------------------------------------------------------------------------

    def _request_mode(self) -> RequestMode:
        return RequestMode.POLLING if self._controller.is_polling else RequestMode.ONE_SHOT

    def _request_layer(self, layer: LayerState) -> None:
        if not self._controller.request_layer(layer, self._request_mode()):
            self._show_message("Error", f"Unable to select {layer} mode", QSystemTrayIcon.Warning)
            self._refresh_view()

    def _request_refresh(self) -> None:
        if not self._controller.query_layer_status(self._request_mode()):
            self._show_message("Error", "Failed to refresh status", QSystemTrayIcon.Warning)

    def _on_macro_toggled(self, disabled: bool) -> None:
        if disabled == self._controller.macro_key_disabled:
            return
        state = MacroKeyState.DISABLED if disabled else MacroKeyState.ENABLED
        if not self._controller.set_macro_key(state, self._request_mode()):
            self._show_message("Error", "Unable to change the macro key", QSystemTrayIcon.Warning)
            self._refresh_view()

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def _refresh_view(self) -> None:
        snapshot = self._controller.state.snapshot()
        self._tray.setIcon(layer_icon(snapshot.layer, connected=snapshot.connected))
        if snapshot.connected:
            self._tray.setToolTip(_TOOLTIP_BASE + layer_label(snapshot.layer))
        else:
            self._tray.setToolTip(_TOOLTIP_BASE + "Disconnected")

        for action in (self._windows_action, self._mac_action, self._refresh_action, self._macro_action):
            action.setEnabled(snapshot.connected)
        self._reconnect_action.setEnabled(not snapshot.connected)

        # exclusive groups cannot be cleared by unchecking one action
        self._layer_group.setExclusive(False)
        self._windows_action.setChecked(snapshot.layer is LayerState.WINDOWS)
        self._mac_action.setChecked(snapshot.layer is LayerState.MAC)
        self._layer_group.setExclusive(True)

        self._macro_action.blockSignals(True)
        self._macro_action.setChecked(snapshot.macro_key_disabled)
        self._macro_action.blockSignals(False)

    def _show_message(self, title: str, text: str, icon: QSystemTrayIcon.MessageIcon) -> None:
        logger.info("%s: %s", title, text)
        if self._config.show_notifications and self._tray.isVisible():
            self._tray.showMessage(title, text, icon, 3000)
