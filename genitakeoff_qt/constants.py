from PySide6.QtGui import QColor

# Tool mode IDs (match QButtonGroup ids in mixins/takeoff_ui.py)
TOOL_NAVIGATE = 0
TOOL_COUNT = 1
TOOL_LINE = 2
TOOL_AREA = 3
TOOL_CALIBRATE = 4

TOOL_LABELS = {
    TOOL_NAVIGATE: "Navigate",
    TOOL_COUNT: "Count",
    TOOL_LINE: "Line",
    TOOL_AREA: "Area",
    TOOL_CALIBRATE: "Calibrate",
}

CANVAS_BACKGROUND = QColor("#3b4048")
CANVAS_MIN_SIZE = (320, 240)
COUNT_MARKER_RADIUS = 5
VERTEX_DOT_RADIUS = 3
OVERLAY_LINE_WIDTH = 2
OVERLAY_COLORS = {
    "count": QColor("#d7263d"),
    "line": QColor("#1b6ca8"),
    "measure": QColor("#1b6ca8"),
    "auto_line": QColor("#1b6ca8"),
    "area": QColor("#2a9d8f"),
    "pending": QColor("#f4a261"),
    "calibrate": QColor("#e76f51"),
}
AREA_FILL_ALPHA = 60

MIN_CALIBRATION_PIXELS = 0.5
QT_THREAD_POOL_MAX_WORKERS = 4
QT_WINDOW_MIN_WIDTH = 960
QT_WINDOW_MIN_HEIGHT = 640
TOOL_PANEL_WIDTH = 200
ESTIMATE_PANEL_WIDTH = 420

ESTIMATE_COLUMNS = ("Code", "Description", "UoM", "Source", "Qty", "Unit Cost", "Markup %", "Subtotal", "Total")

__all__ = [
    "AREA_FILL_ALPHA",
    "CANVAS_BACKGROUND",
    "CANVAS_MIN_SIZE",
    "COUNT_MARKER_RADIUS",
    "ESTIMATE_COLUMNS",
    "ESTIMATE_PANEL_WIDTH",
    "MIN_CALIBRATION_PIXELS",
    "OVERLAY_COLORS",
    "OVERLAY_LINE_WIDTH",
    "QT_THREAD_POOL_MAX_WORKERS",
    "QT_WINDOW_MIN_HEIGHT",
    "QT_WINDOW_MIN_WIDTH",
    "TOOL_AREA",
    "TOOL_CALIBRATE",
    "TOOL_COUNT",
    "TOOL_LABELS",
    "TOOL_LINE",
    "TOOL_NAVIGATE",
    "TOOL_PANEL_WIDTH",
    "VERTEX_DOT_RADIUS",
]
