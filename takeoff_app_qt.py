import faulthandler
import logging
import sys

faulthandler.enable()  # Dump traceback on segfault/crash to stderr

from PySide6.QtWidgets import QApplication

from genitakeoff.constants import APP_NAME
from genitakeoff.infra.config_store import Config
from genitakeoff_qt.window import GeniTakeoffWindow


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = QApplication(sys.argv)
    app.setApplicationName(APP_NAME)
    config = Config()
    window = GeniTakeoffWindow(config=config)
    window.showMaximized()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
