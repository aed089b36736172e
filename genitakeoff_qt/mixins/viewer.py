import asyncio
import logging
import os

from PySide6.QtWidgets import QFileDialog, QMessageBox

from genitakeoff.errors import ProjectError, RenderError
from genitakeoff_qt.takeoff_canvas import pixmap_from_rendered_page

logger = logging.getLogger(__name__)


class ViewerMixin:
    # ── Open / close ─────────────────────────────────────────────

    def _open_document_dialog(self):
        start_dir = str(self.config.get("pdf_dir") or "")
        path, _ = QFileDialog.getOpenFileName(self, "Open Drawing", start_dir, "PDF Files (*.pdf);;All Files (*.*)")
        if not path:
            return
        self._open_document_file(path)

    def _open_document_file(self, path):
        normalized = os.path.abspath(path)
        if not os.path.isfile(normalized):
            QMessageBox.warning(self, "Drawing Not Found", f"Could not find drawing:\n{normalized}")
            return
        self._store_viewer_state()
        try:
            page_count = self.session.open_document(normalized, path=normalized)
        except RenderError as exc:
            QMessageBox.critical(self, "Drawing Load Error", f"Could not open drawing:\n{normalized}\n\n{exc}")
            return

        self.canvas.clear_page()
        self.config.set("last_document", normalized)
        self._update_page_label()
        self._set_status(f"Opened {os.path.basename(normalized)} ({page_count} pages)")
        self.workers.submit(
            lambda: self.viewer_states.load(normalized),
            self._on_viewer_state_loaded,
            on_error=self._on_viewer_state_error,
        )

    def _on_viewer_state_loaded(self, saved):
        self.session.restore(saved)
        self._on_page_changed()

    def _on_viewer_state_error(self, trace_text):
        logger.warning("Could not restore viewer state:\n%s", trace_text)
        self._on_page_changed()

    def _store_viewer_state(self, wait=False):
        """Remember page, rotation and zoom of the open document before it goes away.

        The snapshot is taken now and written in the background, unless ``wait``
        is set because the window is closing.
        """
        if self.session.document_id is None:
            return
        pending = self.viewer_states.save_session(self.project_id, self.session)
        if not wait:
            self.workers.submit(lambda: pending, lambda _saved: None, on_error=self._on_viewer_state_save_error)
            return
        try:
            asyncio.run(pending)
        except ProjectError as exc:
            logger.warning("Could not save viewer state: %s", exc)

    def _on_viewer_state_save_error(self, trace_text):
        logger.warning("Could not save viewer state:\n%s", trace_text)

    # ── Page navigation ──────────────────────────────────────────

    def _on_prev_page(self):
        before = self.session.page_number
        if self.session.prev_page() != before:
            self._on_page_changed()

    def _on_next_page(self):
        before = self.session.page_number
        if self.session.next_page() != before:
            self._on_page_changed()

    def _on_page_changed(self):
        self.canvas.clear_page()
        self._update_page_label()
        if hasattr(self, "_cancel_pending_shape"):
            self._cancel_pending_shape()
        self._request_render()
        if hasattr(self, "_refresh_page_items"):
            self._refresh_page_items()

    def _update_page_label(self):
        total = self.session.page_count
        current = self.session.page_number if total else 0
        self._page_label.setText(f"Page {current}/{total}")

    # ── Rotation / zoom ──────────────────────────────────────────

    def _on_rotate_cw(self):
        self._rotate(1)

    def _on_rotate_ccw(self):
        self._rotate(-1)

    def _rotate(self, quarter_turns):
        if self.session.document_id is None:
            return
        self.session.rotate(quarter_turns)
        # overlays stay in document space; only the page image needs a new render
        self.canvas.set_page_pixmap(None)
        self._request_render()

    def _on_fit(self):
        self.canvas.fit()

    def _on_zoom_in(self):
        self.canvas.zoom_in()

    def _on_zoom_out(self):
        self.canvas.zoom_out()

    def _update_zoom_label(self):
        state = self.session.viewport.state
        self._zoom_label.setText(f"{state.zoom * 100:.0f}% | {state.rotation}°")

    # ── Rendering ────────────────────────────────────────────────

    def _request_render(self):
        if self.session.document_id is None:
            return
        ticket = self.session.request_render()
        self.workers.submit(
            lambda: self.session.render(ticket),
            lambda page: self._on_page_rendered(ticket, page),
        )

    def _on_page_rendered(self, ticket, page):
        if not self.session.accept_render(ticket, page):
            return
        self.canvas.set_page_pixmap(pixmap_from_rendered_page(page))
        self._update_zoom_label()


__all__ = ["ViewerMixin"]
