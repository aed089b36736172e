import logging
import os

from PySide6.QtCore import QThreadPool
from PySide6.QtWidgets import QMainWindow, QMessageBox

from genitakeoff.constants import APP_NAME, WHEEL_ZOOM_STEP
from genitakeoff.domain.viewport import ViewportController
from genitakeoff.infra.takeoff_db import TakeoffDatabase
from genitakeoff.services.calibration_service import CalibrationService
from genitakeoff.services.estimate_service import EstimateService
from genitakeoff.services.quantity_engine import QuantityEngine
from genitakeoff.services.takeoff_store import TakeoffItemStore
from genitakeoff.services.viewer_session import ViewerSession, ViewerStateStore
from genitakeoff_qt.constants import QT_THREAD_POOL_MAX_WORKERS, QT_WINDOW_MIN_HEIGHT, QT_WINDOW_MIN_WIDTH
from genitakeoff_qt.helpers.worker_manager import WorkerManager
from genitakeoff_qt.mixins import (
    EstimateMixin,
    TakeoffMixin,
    TakeoffUiMixin,
    ViewerMixin,
    WindowStateMixin,
)

logger = logging.getLogger(__name__)


class GeniTakeoffWindow(
    ViewerMixin,
    TakeoffMixin,
    EstimateMixin,
    TakeoffUiMixin,
    WindowStateMixin,
    QMainWindow,
):
    def __init__(self, config):
        super().__init__()
        self.config = config
        self.project_id = str(config.get("project_id") or "default")
        self.setWindowTitle(APP_NAME)
        self.setMinimumSize(QT_WINDOW_MIN_WIDTH, QT_WINDOW_MIN_HEIGHT)

        self.db = TakeoffDatabase(config.get("db_path"))
        self.item_store = TakeoffItemStore(self.db)
        self.calibrations = CalibrationService(self.db)
        self.quantities = QuantityEngine(self.item_store, self.calibrations)
        self.estimates = EstimateService(self.db, self.quantities, item_store=self.item_store)
        self.viewer_states = ViewerStateStore(self.db)
        self.session = ViewerSession(
            viewport=ViewportController(wheel_step=config.get_float("wheel_zoom_step", WHEEL_ZOOM_STEP))
        )

        self.thread_pool = QThreadPool.globalInstance()
        self.thread_pool.setMaxThreadCount(QT_THREAD_POOL_MAX_WORKERS)
        self.workers = WorkerManager(self.thread_pool, self, on_default_error=self._on_background_error)

        self._init_takeoff_state()
        self.setCentralWidget(self._build_takeoff_ui())
        self._restore_window_geometry()

        if config.load_error:
            QMessageBox.warning(self, "Config Error", f"Settings could not be loaded; defaults are in use.\n\n{config.load_error}")

        self._refresh_layers()
        self._refresh_totals()
        self._open_estimate_sheet()
        last_document = str(config.get("last_document") or "")
        if last_document and os.path.isfile(last_document):
            self._open_document_file(last_document)

    def _on_background_error(self, trace_text):
        last_line = trace_text.strip().splitlines()[-1] if trace_text.strip() else "Operation failed"
        self._set_status(last_line)


__all__ = ["GeniTakeoffWindow"]
