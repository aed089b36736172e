from PySide6.QtCore import QPointF, Qt, Signal
from PySide6.QtGui import QBrush, QColor, QImage, QPainter, QPen, QPixmap, QPolygonF
from PySide6.QtWidgets import QWidget

from genitakeoff.domain.geometry import GEOM_POINT, GEOM_POLYGON
from genitakeoff.domain.viewport import Size, ViewportController
from genitakeoff_qt.constants import (
    AREA_FILL_ALPHA,
    CANVAS_BACKGROUND,
    CANVAS_MIN_SIZE,
    COUNT_MARKER_RADIUS,
    OVERLAY_COLORS,
    OVERLAY_LINE_WIDTH,
    VERTEX_DOT_RADIUS,
)


def pixmap_from_rendered_page(page) -> QPixmap:
    fmt = QImage.Format_RGBA8888 if page.alpha else QImage.Format_RGB888
    image = QImage(page.samples, page.width, page.height, page.stride, fmt)
    # copy() detaches the image from the sample buffer before it is released
    return QPixmap.fromImage(image.copy())


class TakeoffCanvas(QWidget):
    """Paints one rendered page through a :class:`ViewportController`.

    All zoom and pan state lives in the controller; the widget only forwards
    input and draws. Clicks are reported in document pixels.
    """

    documentPointClicked = Signal(float, float)
    viewChanged = Signal()

    def __init__(self, viewport: ViewportController, parent=None):
        super().__init__(parent)
        self.viewport = viewport
        self._pixmap = None
        self._overlays = []
        self._pending_points = []
        self._pending_closed = False
        self._pending_kind = "pending"
        self._click_enabled = False
        self.setMinimumSize(*CANVAS_MIN_SIZE)
        self.setMouseTracking(False)
        self.setFocusPolicy(Qt.StrongFocus)

    # -- content --------------------------------------------------------

    def set_page_pixmap(self, pixmap: QPixmap | None):
        self._pixmap = pixmap
        self.update()

    def clear_page(self):
        self._pixmap = None
        self._overlays = []
        self._pending_points = []
        self.update()

    def set_click_enabled(self, enabled: bool):
        self._click_enabled = bool(enabled)
        if enabled:
            self.setCursor(Qt.CrossCursor)
        else:
            self.setCursor(Qt.OpenHandCursor)

    def set_overlays(self, overlays):
        """``overlays`` is a list of ``(kind, geom_type, points)`` in document pixels."""
        self._overlays = list(overlays or [])
        self.update()

    def set_pending(self, points, kind="pending", closed=False):
        self._pending_points = list(points or [])
        self._pending_kind = kind
        self._pending_closed = closed
        self.update()

    # -- view commands --------------------------------------------------

    def fit(self):
        self.viewport.fit()
        self._view_changed()

    def zoom_in(self):
        self.viewport.zoom_in()
        self._view_changed()

    def zoom_out(self):
        self.viewport.zoom_out()
        self._view_changed()

    def _view_changed(self):
        self.update()
        self.viewChanged.emit()

    # -- Qt events --------------------------------------------------------

    def resizeEvent(self, event):
        self.viewport.resize(Size(self.width(), self.height()))
        super().resizeEvent(event)
        self.viewChanged.emit()

    def wheelEvent(self, event):
        delta = event.angleDelta().y()
        if not delta:
            super().wheelEvent(event)
            return
        pos = event.position()
        # Qt reports wheel-up as positive; the controller zooms in on negative deltas
        self.viewport.wheel((pos.x(), pos.y()), -delta)
        event.accept()
        self._view_changed()

    def mousePressEvent(self, event):
        pos = event.position()
        point = (pos.x(), pos.y())
        if event.button() == Qt.MiddleButton or (event.button() == Qt.LeftButton and not self._click_enabled):
            self.viewport.begin_drag(point)
            self.setCursor(Qt.ClosedHandCursor)
            event.accept()
            return
        if event.button() == Qt.LeftButton and self._pixmap is not None:
            doc_point = self.viewport.screen_to_document(point)
            if self.viewport.contains_document_point(doc_point):
                self.documentPointClicked.emit(doc_point.x, doc_point.y)
                event.accept()
                return
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event):
        if self.viewport.dragging:
            pos = event.position()
            self.viewport.drag_to((pos.x(), pos.y()))
            event.accept()
            self._view_changed()
            return
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event):
        if self.viewport.dragging:
            self.viewport.end_drag()
            self.set_click_enabled(self._click_enabled)
            event.accept()
            return
        super().mouseReleaseEvent(event)

    def paintEvent(self, _event):
        painter = QPainter(self)
        painter.fillRect(self.rect(), CANVAS_BACKGROUND)
        state = self.viewport.state
        if self._pixmap is not None and state.has_geometry:
            painter.save()
            painter.translate(state.pan.x, state.pan.y)
            painter.scale(state.zoom, state.zoom)
            painter.setRenderHint(QPainter.SmoothPixmapTransform, True)
            painter.drawPixmap(0, 0, self._pixmap)
            painter.restore()

            painter.setRenderHint(QPainter.Antialiasing, True)
            for kind, geom_type, points in self._overlays:
                self._paint_shape(painter, kind, geom_type, points, closed=geom_type == GEOM_POLYGON)
            if self._pending_points:
                geom_type = GEOM_POINT if len(self._pending_points) == 1 else None
                self._paint_shape(
                    painter,
                    self._pending_kind,
                    geom_type,
                    self._pending_points,
                    closed=self._pending_closed,
                    show_vertices=True,
                )
        painter.end()

    def _paint_shape(self, painter, kind, geom_type, points, closed=False, show_vertices=False):
        color = QColor(OVERLAY_COLORS.get(kind, OVERLAY_COLORS["pending"]))
        screen = [self.viewport.document_to_screen(p) for p in points]
        if geom_type == GEOM_POINT:
            painter.setPen(Qt.NoPen)
            painter.setBrush(QBrush(color))
            for pt in screen:
                painter.drawEllipse(QPointF(pt.x, pt.y), COUNT_MARKER_RADIUS, COUNT_MARKER_RADIUS)
            return
        polygon = QPolygonF([QPointF(pt.x, pt.y) for pt in screen])
        painter.setPen(QPen(color, OVERLAY_LINE_WIDTH))
        if closed and len(screen) >= 3:
            fill = QColor(color)
            fill.setAlpha(AREA_FILL_ALPHA)
            painter.setBrush(QBrush(fill))
            painter.drawPolygon(polygon)
        else:
            painter.setBrush(Qt.NoBrush)
            painter.drawPolyline(polygon)
        if show_vertices:
            painter.setPen(Qt.NoPen)
            painter.setBrush(QBrush(color))
            for pt in screen:
                painter.drawEllipse(QPointF(pt.x, pt.y), VERTEX_DOT_RADIUS, VERTEX_DOT_RADIUS)


__all__ = ["TakeoffCanvas", "pixmap_from_rendered_page"]
