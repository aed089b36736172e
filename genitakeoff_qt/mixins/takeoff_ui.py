from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QAbstractItemView,
    QButtonGroup,
    QCheckBox,
    QComboBox,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QListWidget,
    QPushButton,
    QRadioButton,
    QSplitter,
    QTableWidget,
    QTabWidget,
    QVBoxLayout,
    QWidget,
)

from genitakeoff.domain.units import UNIT_CHOICES
from genitakeoff_qt.constants import (
    ESTIMATE_COLUMNS,
    ESTIMATE_PANEL_WIDTH,
    TOOL_LABELS,
    TOOL_NAVIGATE,
    TOOL_PANEL_WIDTH,
)
from genitakeoff_qt.takeoff_canvas import TakeoffCanvas


def _separator():
    sep = QLabel("")
    sep.setFixedHeight(1)
    sep.setStyleSheet("background: #dfe3ea;")
    return sep


class TakeoffUiMixin:
    def _build_takeoff_ui(self):
        root = QWidget()
        layout = QVBoxLayout(root)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(0)
        layout.addLayout(self._build_toolbar())

        splitter = QSplitter(Qt.Horizontal)
        splitter.addWidget(self._build_tool_panel())

        self.canvas = TakeoffCanvas(self.session.viewport)
        self.canvas.documentPointClicked.connect(self._on_document_point_clicked)
        self.canvas.viewChanged.connect(self._update_zoom_label)
        self.canvas.set_click_enabled(False)
        splitter.addWidget(self.canvas)

        splitter.addWidget(self._build_results_panel())
        splitter.setStretchFactor(1, 1)
        layout.addWidget(splitter, 1)

        status_row = QHBoxLayout()
        status_row.setContentsMargins(8, 4, 8, 4)
        self.status_lbl = QLabel("Ready")
        status_row.addWidget(self.status_lbl, 1)
        layout.addLayout(status_row)
        return root

    # ── Toolbar row ──────────────────────────────────────────────

    def _build_toolbar(self):
        toolbar = QHBoxLayout()
        toolbar.setContentsMargins(8, 6, 8, 6)
        open_btn = QPushButton("Open Drawing")
        open_btn.clicked.connect(self._open_document_dialog)
        toolbar.addWidget(open_btn)
        toolbar.addStretch(1)

        prev_btn = QPushButton("◀")
        prev_btn.setFixedWidth(32)
        prev_btn.clicked.connect(self._on_prev_page)
        self._page_label = QLabel("Page 0/0")
        next_btn = QPushButton("▶")
        next_btn.setFixedWidth(32)
        next_btn.clicked.connect(self._on_next_page)
        toolbar.addWidget(prev_btn)
        toolbar.addWidget(self._page_label)
        toolbar.addWidget(next_btn)
        toolbar.addStretch(1)

        for text, slot in (
            ("↺", self._on_rotate_ccw),
            ("↻", self._on_rotate_cw),
            ("Fit", self._on_fit),
            ("+", self._on_zoom_in),
            ("-", self._on_zoom_out),
        ):
            btn = QPushButton(text)
            if text != "Fit":
                btn.setFixedWidth(32)
            btn.clicked.connect(slot)
            toolbar.addWidget(btn)
        self._zoom_label = QLabel("100% | 0°")
        toolbar.addWidget(self._zoom_label)
        return toolbar

    # ── Left: tool panel ─────────────────────────────────────────

    def _build_tool_panel(self):
        panel = QWidget()
        panel.setObjectName("takeoffToolPanel")
        panel.setFixedWidth(TOOL_PANEL_WIDTH)
        tp_layout = QVBoxLayout(panel)
        tp_layout.setContentsMargins(8, 8, 8, 8)
        tp_layout.setSpacing(6)

        tp_layout.addWidget(QLabel("Tool:"))
        self._tool_group = QButtonGroup(panel)
        for tool_id, label in TOOL_LABELS.items():
            radio = QRadioButton(label)
            radio.setChecked(tool_id == TOOL_NAVIGATE)
            self._tool_group.addButton(radio, tool_id)
            tp_layout.addWidget(radio)
        self._tool_group.idToggled.connect(self._on_tool_changed)

        tp_layout.addWidget(QLabel("Layer:"))
        layer_row = QHBoxLayout()
        self._layer_combo = QComboBox()
        self._layer_combo.addItem("No layer", None)
        add_layer_btn = QPushButton("+")
        add_layer_btn.setFixedWidth(28)
        add_layer_btn.clicked.connect(self._on_add_layer)
        layer_row.addWidget(self._layer_combo, 1)
        layer_row.addWidget(add_layer_btn)
        tp_layout.addLayout(layer_row)

        tp_layout.addWidget(_separator())
        tp_layout.addWidget(QLabel("Calibration:"))
        self._cal_status_label = QLabel("Not calibrated")
        self._cal_status_label.setWordWrap(True)
        tp_layout.addWidget(self._cal_status_label)
        self._cal_page_scope_check = QCheckBox("This page only")
        self._cal_page_scope_check.setEnabled(self.calibrations.allow_page_scope)
        tp_layout.addWidget(self._cal_page_scope_check)
        self._unit_combo = QComboBox()
        self._unit_combo.addItems(list(UNIT_CHOICES))
        self._unit_combo.setCurrentText(str(self.config.get("display_unit") or "m"))
        self._unit_combo.currentTextChanged.connect(lambda unit: self.config.set("display_unit", unit))
        tp_layout.addWidget(self._unit_combo)
        clear_cal_btn = QPushButton("Clear Calibration")
        clear_cal_btn.clicked.connect(self._on_clear_calibration)
        tp_layout.addWidget(clear_cal_btn)

        tp_layout.addWidget(_separator())
        tp_layout.addWidget(QLabel("Current Shape:"))
        self._points_label = QLabel("Points: 0")
        tp_layout.addWidget(self._points_label)
        for text, slot in (
            ("Finish Shape", self._on_finish_shape),
            ("Undo Point", self._on_undo_point),
            ("Cancel Shape", self._cancel_pending_shape),
        ):
            btn = QPushButton(text)
            btn.clicked.connect(slot)
            tp_layout.addWidget(btn)
        tp_layout.addStretch(1)
        return panel

    # ── Right: items, totals and estimate ────────────────────────

    def _build_results_panel(self):
        tabs = QTabWidget()
        tabs.setMinimumWidth(ESTIMATE_PANEL_WIDTH)

        items_tab = QWidget()
        items_layout = QVBoxLayout(items_tab)
        items_layout.addWidget(QLabel("Items on this page:"))
        self._items_list = QListWidget()
        items_layout.addWidget(self._items_list, 1)
        delete_item_btn = QPushButton("Delete Selected Item")
        delete_item_btn.clicked.connect(self._on_delete_item)
        items_layout.addWidget(delete_item_btn)
        items_layout.addWidget(QLabel("Project totals:"))
        self._totals_list = QListWidget()
        items_layout.addWidget(self._totals_list, 1)
        tabs.addTab(items_tab, "Takeoff")

        estimate_tab = QWidget()
        est_layout = QVBoxLayout(estimate_tab)
        self._estimate_title = QLabel("Estimate")
        est_layout.addWidget(self._estimate_title)
        self._estimate_table = QTableWidget(0, len(ESTIMATE_COLUMNS))
        self._estimate_table.setHorizontalHeaderLabels(list(ESTIMATE_COLUMNS))
        self._estimate_table.setSelectionBehavior(QAbstractItemView.SelectRows)
        self._estimate_table.horizontalHeader().setSectionResizeMode(1, QHeaderView.Stretch)
        self._estimate_table.cellChanged.connect(self._on_estimate_cell_changed)
        est_layout.addWidget(self._estimate_table, 1)

        btn_row = QHBoxLayout()
        for text, slot in (
            ("Add Row", self._on_add_estimate_row),
            ("Import Takeoff", self._on_import_takeoff_rows),
            ("Delete Row", self._on_delete_estimate_row),
            ("Copy", self._on_copy_estimate),
        ):
            btn = QPushButton(text)
            btn.clicked.connect(slot)
            btn_row.addWidget(btn)
        est_layout.addLayout(btn_row)

        self._grand_total_label = QLabel("Total: 0.00")
        self._grand_total_label.setAlignment(Qt.AlignRight)
        est_layout.addWidget(self._grand_total_label)
        self._estimate_warning_label = QLabel("")
        self._estimate_warning_label.setObjectName("estimateWarning")
        est_layout.addWidget(self._estimate_warning_label)
        tabs.addTab(estimate_tab, "Estimate")
        return tabs


__all__ = ["TakeoffUiMixin"]
