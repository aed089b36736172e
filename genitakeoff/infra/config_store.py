import json
import os

from genitakeoff.constants import DEFAULT_DISPLAY_UNIT, WHEEL_ZOOM_STEP
from genitakeoff.paths import CONFIG_DIR, CONFIG_FILE, PDF_DIR, TAKEOFF_DB_FILE


class Config:
    """Persistent configuration manager."""

    def __init__(self):
        self.load_error = None
        self.data = {
            "display_unit": DEFAULT_DISPLAY_UNIT,
            "wheel_zoom_step": WHEEL_ZOOM_STEP,
            "db_path": TAKEOFF_DB_FILE,
            "pdf_dir": PDF_DIR,
            "project_id": "default",
            "last_document": "",
            "window_geometry": "1280x860",
        }
        self.load()

    def load(self):
        self.load_error = None
        if os.path.exists(CONFIG_FILE):
            try:
                with open(CONFIG_FILE, "r", encoding="utf-8") as f:
                    saved = json.load(f)
                if not isinstance(saved, dict):
                    raise ValueError("Config payload must be a JSON object.")
                self.data.update(saved)
            except (OSError, json.JSONDecodeError, TypeError, ValueError) as exc:
                self.load_error = str(exc)

    def save(self):
        os.makedirs(CONFIG_DIR, exist_ok=True)
        with open(CONFIG_FILE, "w", encoding="utf-8") as f:
            json.dump(self.data, f, indent=2)

    def get(self, key, default=None):
        return self.data.get(key, default)

    def get_float(self, key, default):
        try:
            value = float(self.data.get(key, default))
        except (TypeError, ValueError):
            return float(default)
        return value if value > 0 else float(default)

    def set(self, key, value):
        self.data[key] = value
        self.save()
