"""Viewport transform between screen pixels and document pixels.

Three spaces are involved. Document space is the unrotated page rendered at the
base render scale; stored geometry lives there. Content space is the rendered
canvas, i.e. the document rotated clockwise by ``rotation``. Screen space is the
widget, with ``screen = content * zoom + pan``.

The module is split into pure functions over a frozen :class:`ViewportState`
and a small :class:`ViewportController` that owns the current state and decides
when a re-fit happens (page change, rotation change, explicit fit). Nothing here
suspends or touches I/O.
"""

from dataclasses import dataclass, field, replace
from typing import NamedTuple

from genitakeoff.constants import (
    BUTTON_ZOOM_FACTOR,
    ROTATION_STEP_DEGREES,
    VALID_ROTATIONS,
    WHEEL_ZOOM_STEP,
    ZOOM_MAX,
    ZOOM_MIN,
    ZOOM_PRECISION_DIGITS,
)
from genitakeoff.errors import ValidationError


class Vec(NamedTuple):
    x: float = 0.0
    y: float = 0.0


class Size(NamedTuple):
    width: float = 0.0
    height: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


@dataclass(frozen=True)
class ViewportState:
    zoom: float = 1.0
    pan: Vec = field(default_factory=Vec)
    rotation: int = 0
    fit_mode: bool = True
    viewport: Size = field(default_factory=Size)
    content: Size = field(default_factory=Size)

    @property
    def has_geometry(self) -> bool:
        return not (self.viewport.is_empty or self.content.is_empty)


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def clamp_zoom(zoom: float) -> float:
    return clamp(float(zoom), ZOOM_MIN, ZOOM_MAX)


def normalize_rotation(rotation: int) -> int:
    value = int(rotation) % 360
    if value not in VALID_ROTATIONS:
        raise ValidationError(f"Rotation must be a multiple of {ROTATION_STEP_DEGREES} degrees, got {rotation}.")
    return value


def rotated_size(size: Size, rotation: int) -> Size:
    """Size of a page after rotating it by ``rotation`` degrees."""
    if normalize_rotation(rotation) in (90, 270):
        return Size(size.height, size.width)
    return Size(size.width, size.height)


def fit_zoom(viewport: Size, content: Size) -> float | None:
    if viewport.is_empty or content.is_empty:
        return None
    return clamp_zoom(min(viewport.width / content.width, viewport.height / content.height))


def _clamp_axis(offset: float, view_extent: float, scaled_extent: float) -> float:
    if scaled_extent <= view_extent:
        return (view_extent - scaled_extent) / 2.0
    return clamp(offset, view_extent - scaled_extent, 0.0)


def clamp_pan(pan: Vec, viewport: Size, content: Size, zoom: float) -> Vec:
    """Center an axis whose scaled content fits, otherwise keep the viewport covered."""
    if viewport.is_empty or content.is_empty:
        return Vec(*pan)
    return Vec(
        _clamp_axis(pan[0], viewport.width, content.width * zoom),
        _clamp_axis(pan[1], viewport.height, content.height * zoom),
    )


def content_to_document(point, page: Size, rotation: int) -> Vec:
    """Undo a clockwise page rotation; ``page`` is the unrotated page size."""
    x, y = point[0], point[1]
    rotation = normalize_rotation(rotation)
    if rotation == 90:
        return Vec(y, page.height - x)
    if rotation == 180:
        return Vec(page.width - x, page.height - y)
    if rotation == 270:
        return Vec(page.width - y, x)
    return Vec(x, y)


def document_to_content(point, page: Size, rotation: int) -> Vec:
    x, y = point[0], point[1]
    rotation = normalize_rotation(rotation)
    if rotation == 90:
        return Vec(page.height - y, x)
    if rotation == 180:
        return Vec(page.width - x, page.height - y)
    if rotation == 270:
        return Vec(y, page.width - x)
    return Vec(x, y)


def screen_to_content(state: ViewportState, point) -> Vec:
    return Vec((point[0] - state.pan.x) / state.zoom, (point[1] - state.pan.y) / state.zoom)


def content_to_screen(state: ViewportState, point) -> Vec:
    return Vec(point[0] * state.zoom + state.pan.x, point[1] * state.zoom + state.pan.y)


def screen_to_document(state: ViewportState, point) -> Vec:
    page = rotated_size(state.content, state.rotation)
    return content_to_document(screen_to_content(state, point), page, state.rotation)


def document_to_screen(state: ViewportState, point) -> Vec:
    page = rotated_size(state.content, state.rotation)
    return content_to_screen(state, document_to_content(point, page, state.rotation))


def anchored_pan(cursor, pan, zoom: float, new_zoom: float) -> Vec:
    """Pan that keeps the document point under ``cursor`` fixed across a zoom change."""
    doc_x = (cursor[0] - pan[0]) / zoom
    doc_y = (cursor[1] - pan[1]) / zoom
    return Vec(cursor[0] - doc_x * new_zoom, cursor[1] - doc_y * new_zoom)


def fit_to_viewport(state: ViewportState) -> ViewportState:
    zoom = fit_zoom(state.viewport, state.content)
    if zoom is None:
        return state
    pan = clamp_pan(Vec(0.0, 0.0), state.viewport, state.content, zoom)
    return replace(state, zoom=zoom, pan=pan, fit_mode=True)


def zoom_to(state: ViewportState, cursor, new_zoom: float) -> ViewportState:
    if not state.has_geometry:
        return state
    target = clamp_zoom(new_zoom)
    pan = anchored_pan(cursor, state.pan, state.zoom, target)
    return replace(
        state,
        zoom=target,
        pan=clamp_pan(pan, state.viewport, state.content, target),
        fit_mode=False,
    )


def zoom_at_cursor(state: ViewportState, cursor, factor: float) -> ViewportState:
    if factor <= 0:
        return state
    return zoom_to(state, cursor, state.zoom * factor)


def wheel_zoom(state: ViewportState, cursor, delta_y: float, step: float = WHEEL_ZOOM_STEP) -> ViewportState:
    """Wheel down (positive delta) zooms out, wheel up zooms in."""
    if not delta_y:
        return state
    direction = -1 if delta_y > 0 else 1
    target = round(state.zoom * (1 + direction * step), ZOOM_PRECISION_DIGITS)
    return zoom_to(state, cursor, target)


def pan_by(state: ViewportState, delta) -> ViewportState:
    if not state.has_geometry:
        return state
    pan = Vec(state.pan.x + delta[0], state.pan.y + delta[1])
    return replace(state, pan=clamp_pan(pan, state.viewport, state.content, state.zoom), fit_mode=False)


def viewport_center(state: ViewportState) -> Vec:
    return Vec(state.viewport.width / 2.0, state.viewport.height / 2.0)


class ViewportController:
    """Owns the live viewport state for one viewer.

    A fit is requested by page or rotation changes and by :meth:`fit`. It runs
    as soon as both the viewport and the freshly rendered content size are known,
    so a new page never inherits the previous page's zoom or pan.
    """

    def __init__(self, viewport: Size = Size(), wheel_step: float = WHEEL_ZOOM_STEP):
        self.state = ViewportState(viewport=Size(*viewport))
        self.page_number = 1
        self.wheel_step = wheel_step
        self._fit_pending = True
        self._drag_start = None

    # -- transitions that recenter --------------------------------------

    @property
    def fit_pending(self) -> bool:
        return self._fit_pending

    def reset(self):
        """Forget everything about the previous document."""
        self.state = ViewportState(viewport=self.state.viewport)
        self.page_number = 1
        self._drag_start = None
        self._request_fit(clear_content=True)

    def set_page(self, page_number: int) -> bool:
        page = int(page_number)
        if page < 1:
            raise ValidationError(f"Page numbers start at 1, got {page_number}.")
        if page == self.page_number:
            return False
        self.page_number = page
        self._request_fit(clear_content=True)
        return True

    def set_rotation(self, rotation: int) -> bool:
        value = normalize_rotation(rotation)
        if value == self.state.rotation:
            return False
        self.state = replace(self.state, rotation=value)
        self._request_fit(clear_content=True)
        return True

    def rotate(self, quarter_turns: int = 1) -> int:
        self.set_rotation(self.state.rotation + ROTATION_STEP_DEGREES * int(quarter_turns))
        return self.state.rotation

    def fit(self):
        self._request_fit(clear_content=False)

    def _request_fit(self, *, clear_content: bool):
        self._fit_pending = True
        if clear_content:
            self.state = replace(self.state, content=Size())
        self._try_fit()

    def _try_fit(self):
        if not self._fit_pending or not self.state.has_geometry:
            return
        self.state = fit_to_viewport(self.state)
        self._fit_pending = False

    # -- size updates ---------------------------------------------------

    def resize(self, viewport):
        size = Size(*viewport)
        self.state = replace(self.state, viewport=size)
        if self.state.fit_mode:
            self._fit_pending = True
            self._try_fit()
        else:
            self._reclamp()

    def set_content_size(self, content):
        self.state = replace(self.state, content=Size(*content))
        if self._fit_pending:
            self._try_fit()
        else:
            self._reclamp()

    def _reclamp(self):
        s = self.state
        self.state = replace(s, pan=clamp_pan(s.pan, s.viewport, s.content, s.zoom))

    # -- user interaction -------------------------------------------------

    def zoom_at_cursor(self, cursor, factor: float):
        self.state = zoom_at_cursor(self.state, cursor, factor)

    def wheel(self, cursor, delta_y: float):
        self.state = wheel_zoom(self.state, cursor, delta_y, self.wheel_step)

    def zoom_in(self):
        self.zoom_at_cursor(viewport_center(self.state), BUTTON_ZOOM_FACTOR)

    def zoom_out(self):
        self.zoom_at_cursor(viewport_center(self.state), 1.0 / BUTTON_ZOOM_FACTOR)

    def pan_by(self, delta):
        self.state = pan_by(self.state, delta)

    def begin_drag(self, screen_point):
        self._drag_start = (Vec(*screen_point), self.state.pan)

    def drag_to(self, screen_point):
        if self._drag_start is None or not self.state.has_geometry:
            return
        (sx, sy), start_pan = self._drag_start
        target = Vec(start_pan.x + screen_point[0] - sx, start_pan.y + screen_point[1] - sy)
        s = self.state
        self.state = replace(s, pan=clamp_pan(target, s.viewport, s.content, s.zoom), fit_mode=False)

    def end_drag(self):
        self._drag_start = None

    @property
    def dragging(self) -> bool:
        return self._drag_start is not None

    # -- mapping ----------------------------------------------------------

    def screen_to_document(self, point) -> Vec:
        return screen_to_document(self.state, point)

    def document_to_screen(self, point) -> Vec:
        return document_to_screen(self.state, point)

    def contains_document_point(self, point) -> bool:
        page = rotated_size(self.state.content, self.state.rotation)
        return 0 <= point[0] <= page.width and 0 <= point[1] <= page.height


__all__ = [
    "Size",
    "Vec",
    "ViewportController",
    "ViewportState",
    "anchored_pan",
    "clamp",
    "clamp_pan",
    "clamp_zoom",
    "content_to_document",
    "content_to_screen",
    "document_to_content",
    "document_to_screen",
    "fit_to_viewport",
    "fit_zoom",
    "normalize_rotation",
    "pan_by",
    "rotated_size",
    "screen_to_content",
    "screen_to_document",
    "wheel_zoom",
    "zoom_at_cursor",
    "zoom_to",
]
