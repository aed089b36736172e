APP_NAME = "Geni Takeoff"

ZOOM_MIN = 0.2
ZOOM_MAX = 6.0
WHEEL_ZOOM_STEP = 0.08
BUTTON_ZOOM_FACTOR = 1.25
ZOOM_PRECISION_DIGITS = 3
ROTATION_STEP_DEGREES = 90
VALID_ROTATIONS = (0, 90, 180, 270)

RENDER_SCALE = 1.5
PDF_POINTS_PER_INCH = 72.0

METERS_PER_UNIT = {
    "m": 1.0,
    "cm": 0.01,
    "mm": 0.001,
    "ft": 0.3048,
    "in": 0.0254,
}
DEFAULT_DISPLAY_UNIT = "m"
INCHES_PER_FOOT = 12.0

POINT_MIN_POINTS = 1
POLYLINE_MIN_POINTS = 2
POLYGON_MIN_POINTS = 3

DEFAULT_LAYER_UOM = "ea"
DEFAULT_ROW_UOM = "ea"
DEFAULT_SHEET_NAME = "Estimate"

SQL_PARAM_CHUNK_SIZE = 500
