"""One viewer's open document, active page and render bookkeeping.

Renders may finish out of order when the user flips pages quickly. Every
request gets a generation number and only the newest generation may update the
canvas; anything older is dropped on arrival.
"""

import logging
import threading
from dataclasses import dataclass

from genitakeoff.domain.viewport import ViewportController
from genitakeoff.errors import RenderError
from genitakeoff.infra.document_renderer import DocumentRenderer, RenderedPage
from genitakeoff.services.persistence import run_db

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderTicket:
    generation: int
    document_id: str
    page_number: int
    rotation: int
    scale: float | None = None


class ViewerSession:
    def __init__(self, renderer_factory=DocumentRenderer, viewport: ViewportController | None = None):
        self.renderer_factory = renderer_factory
        self.viewport = viewport or ViewportController()
        self.renderer = None
        self.document_id = None
        self._generation = 0
        # guards renderer swaps and in-flight counts; never held while rendering
        self._lock = threading.Lock()
        # one render at a time; fitz documents are not thread-safe
        self._render_lock = threading.Lock()
        self._in_flight = {}
        self._retired = set()

    # -- document ownership -------------------------------------------------

    def open_document(self, document_id, path=None, data=None) -> int:
        if path is None and data is None:
            raise RenderError("A path or document bytes are required.")
        renderer = self.renderer_factory()
        if path is not None:
            renderer.open_file(path)
        else:
            renderer.open_bytes(data)
        self.close()
        with self._lock:
            self.renderer = renderer
            self.document_id = document_id
        self.viewport.reset()
        self._bump()
        logger.info("Viewer opened document %s (%d pages)", document_id, renderer.page_count)
        return renderer.page_count

    def close(self):
        """Release the document handle; in-flight renders become stale.

        Never waits for a render. A handle that is still rendering is closed by
        the worker once that render returns.
        """
        with self._lock:
            renderer, self.renderer = self.renderer, None
            self.document_id = None
            self._bump()
            if renderer is not None and self._in_flight.get(renderer):
                self._retired.add(renderer)
                renderer = None
        if renderer is not None:
            renderer.close()

    @property
    def page_count(self) -> int:
        return self.renderer.page_count if self.renderer is not None else 0

    @property
    def page_number(self) -> int:
        return self.viewport.page_number

    # -- navigation -----------------------------------------------------------

    def go_to_page(self, page_number: int) -> int:
        count = self.page_count
        if count <= 0:
            return self.page_number
        target = max(1, min(int(page_number), count))
        if self.viewport.set_page(target):
            self._bump()
        return self.page_number

    def next_page(self) -> int:
        return self.go_to_page(self.page_number + 1)

    def prev_page(self) -> int:
        return self.go_to_page(self.page_number - 1)

    def set_rotation(self, rotation: int) -> int:
        if self.viewport.set_rotation(rotation):
            self._bump()
        return self.viewport.state.rotation

    def rotate(self, quarter_turns: int = 1) -> int:
        return self.set_rotation(self.viewport.state.rotation + 90 * int(quarter_turns))

    # -- rendering ------------------------------------------------------------

    def _bump(self):
        self._generation += 1

    @property
    def generation(self) -> int:
        return self._generation

    def request_render(self, scale: float | None = None) -> RenderTicket:
        if self.renderer is None:
            raise RenderError("No document is open.")
        self._bump()
        return RenderTicket(
            generation=self._generation,
            document_id=self.document_id,
            page_number=self.page_number,
            rotation=self.viewport.state.rotation,
            scale=scale,
        )

    def is_current(self, ticket: RenderTicket) -> bool:
        return ticket.generation == self._generation and ticket.document_id == self.document_id

    def render(self, ticket: RenderTicket) -> RenderedPage | None:
        """Blocking render, safe to call from a worker thread."""
        with self._lock:
            renderer = self.renderer
            if renderer is None or not self.is_current(ticket):
                return None
            self._in_flight[renderer] = self._in_flight.get(renderer, 0) + 1
        try:
            with self._render_lock:
                if not self.is_current(ticket):
                    return None
                return renderer.render(ticket.page_number, ticket.scale, ticket.rotation)
        finally:
            self._release(renderer)

    def _release(self, renderer):
        with self._lock:
            remaining = self._in_flight[renderer] - 1
            if remaining:
                self._in_flight[renderer] = remaining
                return
            del self._in_flight[renderer]
            if renderer not in self._retired:
                return
            self._retired.discard(renderer)
        logger.debug("Closing detached renderer after its last render")
        renderer.close()

    def accept_render(self, ticket: RenderTicket, page: RenderedPage | None) -> bool:
        if page is None or not self.is_current(ticket):
            logger.debug("Dropping stale render of page %s (generation %s)", ticket.page_number, ticket.generation)
            return False
        self.viewport.set_content_size(page.size)
        return True

    # -- remembered view ----------------------------------------------------

    def snapshot(self) -> dict:
        state = self.viewport.state
        return {"page_number": self.page_number, "rotation": state.rotation, "zoom": state.zoom}

    def restore(self, saved: dict | None):
        """Return to a remembered page and rotation; the view is re-fitted."""
        if not saved:
            return
        self.go_to_page(int(saved.get("page_number") or 1))
        self.set_rotation(int(saved.get("rotation") or 0))


class ViewerStateStore:
    def __init__(self, db):
        self.db = db

    async def load(self, document_id) -> dict | None:
        return await run_db(self.db.get_viewer_state, document_id)

    async def save(self, project_id, document_id, snapshot: dict):
        if document_id is None:
            return
        await run_db(
            self.db.save_viewer_state,
            project_id,
            document_id,
            snapshot["page_number"],
            snapshot["rotation"],
            snapshot["zoom"],
        )

    def save_session(self, project_id, session: ViewerSession):
        """Snapshot ``session`` now and return the coroutine that stores it."""
        return self.save(project_id, session.document_id, session.snapshot())


__all__ = ["RenderTicket", "ViewerSession", "ViewerStateStore"]
