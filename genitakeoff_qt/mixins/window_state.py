import logging

from genitakeoff_qt.constants import QT_WINDOW_MIN_HEIGHT, QT_WINDOW_MIN_WIDTH

logger = logging.getLogger(__name__)

QT_WINDOW_DEFAULT_GEOMETRY = "1280x860"


class WindowStateMixin:
    def _restore_window_geometry(self):
        geometry = str(self.config.get("window_geometry", QT_WINDOW_DEFAULT_GEOMETRY))
        try:
            width_text, height_text = geometry.lower().split("x")
            width = max(QT_WINDOW_MIN_WIDTH, int(width_text))
            height = max(QT_WINDOW_MIN_HEIGHT, int(height_text))
        except ValueError:
            fallback_width, fallback_height = QT_WINDOW_DEFAULT_GEOMETRY.split("x")
            width = max(QT_WINDOW_MIN_WIDTH, int(fallback_width))
            height = max(QT_WINDOW_MIN_HEIGHT, int(fallback_height))
        self.resize(width, height)

    def closeEvent(self, event):
        if hasattr(self, "thread_pool"):
            self.thread_pool.waitForDone(2000)
        if hasattr(self, "_store_viewer_state"):
            self._store_viewer_state(wait=True)
        session = getattr(self, "session", None)
        if session is not None:
            session.close()
        db = getattr(self, "db", None)
        if db is not None:
            db.close()
        self.config.set("window_geometry", f"{self.width()}x{self.height()}")
        super().closeEvent(event)

    def _set_status(self, text):
        logger.debug("status: %s", text)
        self.status_lbl.setText(text)


__all__ = ["WindowStateMixin"]
