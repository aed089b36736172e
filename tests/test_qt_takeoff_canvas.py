import os

from PySide6.QtCore import QPoint, QPointF, Qt
from PySide6.QtWidgets import QApplication

import genitakeoff_qt.takeoff_canvas as takeoff_canvas
from genitakeoff.domain.viewport import Size, ViewportController
from genitakeoff_qt.takeoff_canvas import TakeoffCanvas


class _FakeEvent:
    def __init__(self, x, y, button=Qt.LeftButton, angle=0):
        self._pos = QPointF(x, y)
        self._button = button
        self._angle = angle
        self._accepted = False

    def button(self):
        return self._button

    def position(self):
        return self._pos

    def angleDelta(self):
        return QPoint(0, self._angle)

    def accept(self):
        self._accepted = True

    @property
    def accepted(self):
        return self._accepted


def _ensure_app():
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    return QApplication.instance() or QApplication([])


def _canvas(content=Size(800, 600)):
    _ensure_app()
    viewport = ViewportController(Size(400, 300))
    viewport.set_content_size(content)
    canvas = TakeoffCanvas(viewport)
    canvas._pixmap = object()
    return canvas


def test_click_inside_page_emits_document_coordinates():
    canvas = _canvas()
    canvas.set_click_enabled(True)
    emitted = []
    canvas.documentPointClicked.connect(lambda x, y: emitted.append((x, y)))
    event = _FakeEvent(100.0, 50.0)

    canvas.mousePressEvent(event)

    assert emitted == [(200.0, 100.0)]
    assert event.accepted is True


def test_click_outside_page_falls_through(monkeypatch):
    canvas = _canvas(content=Size(400, 100))
    canvas.set_click_enabled(True)
    emitted = []
    fallback_calls = []
    canvas.documentPointClicked.connect(lambda x, y: emitted.append((x, y)))
    monkeypatch.setattr(
        takeoff_canvas.QWidget,
        "mousePressEvent",
        lambda _self, event: fallback_calls.append(event),
    )
    event = _FakeEvent(50.0, 20.0)

    canvas.mousePressEvent(event)

    assert emitted == []
    assert event.accepted is False
    assert fallback_calls == [event]


def test_left_drag_pans_when_clicks_are_disabled():
    canvas = _canvas()
    canvas.viewport.zoom_at_cursor((0.0, 0.0), 2.0)
    emitted = []
    canvas.documentPointClicked.connect(lambda x, y: emitted.append((x, y)))
    changes = []
    canvas.viewChanged.connect(lambda: changes.append(True))

    canvas.mousePressEvent(_FakeEvent(100.0, 100.0))
    canvas.mouseMoveEvent(_FakeEvent(50.0, 80.0))
    canvas.mouseReleaseEvent(_FakeEvent(50.0, 80.0))

    assert emitted == []
    assert canvas.viewport.state.pan == (-50.0, -20.0)
    assert canvas.viewport.state.fit_mode is False
    assert not canvas.viewport.dragging
    assert changes


def test_wheel_up_zooms_in_around_cursor():
    canvas = _canvas()
    event = _FakeEvent(200.0, 150.0, angle=120)

    canvas.wheelEvent(event)

    assert event.accepted is True
    assert canvas.viewport.state.zoom == 0.54


def test_fit_restores_fit_mode():
    canvas = _canvas()
    canvas.zoom_in()
    assert canvas.viewport.state.zoom == 0.625

    canvas.fit()

    assert canvas.viewport.state.zoom == 0.5
    assert canvas.viewport.state.fit_mode is True
