from genitakeoff_qt.mixins.estimate import EstimateMixin
from genitakeoff_qt.mixins.takeoff import TakeoffMixin
from genitakeoff_qt.mixins.takeoff_ui import TakeoffUiMixin
from genitakeoff_qt.mixins.viewer import ViewerMixin
from genitakeoff_qt.mixins.window_state import WindowStateMixin

__all__ = [
    "EstimateMixin",
    "TakeoffMixin",
    "TakeoffUiMixin",
    "ViewerMixin",
    "WindowStateMixin",
]
