"""Tray icons for each keyboard layer, drawn at runtime."""

from __future__ import annotations

from PySide6.QtCore import QRectF, Qt
from PySide6.QtGui import QColor, QFont, QIcon, QPainter, QPixmap

from skc_app.input.protocol import LayerState

_ICON_SIZE = 64

# glyph, background
_LAYER_STYLE: dict[LayerState | None, tuple[str, str]] = {
    LayerState.WINDOWS: ("W", "#0078d4"),
    LayerState.MAC: ("⌘", "#5e5e5e"),
    LayerState.UNKNOWN: ("?", "#b36b00"),
    None: ("?", "#8a8a8a"),
}


def layer_label(layer: LayerState | None) -> str:
    return "Unknown" if layer is None else str(layer)


def layer_icon(layer: LayerState | None, *, connected: bool = True) -> QIcon:
    glyph, background = _LAYER_STYLE.get(layer, _LAYER_STYLE[None])
    if not connected:
        glyph, background = "×", "#a01818"

    pixmap = QPixmap(_ICON_SIZE, _ICON_SIZE)
    pixmap.fill(Qt.transparent)
    painter = QPainter(pixmap)
    try:
        painter.setRenderHint(QPainter.Antialiasing)
        painter.setPen(Qt.NoPen)
        painter.setBrush(QColor(background))
        rect = QRectF(2, 2, _ICON_SIZE - 4, _ICON_SIZE - 4)
        painter.drawRoundedRect(rect, 12, 12)
        font = QFont()
        font.setBold(True)
        font.setPixelSize(int(_ICON_SIZE * 0.6))
        painter.setFont(font)
        painter.setPen(QColor("white"))
        painter.drawText(rect, Qt.AlignCenter, glyph)
    finally:
        painter.end()
    return QIcon(pixmap)
