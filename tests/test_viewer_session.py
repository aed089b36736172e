import asyncio
import threading

import pytest

from genitakeoff.domain.viewport import Size, ViewportController
from genitakeoff.errors import RenderError
from genitakeoff.infra.document_renderer import RenderedPage
from genitakeoff.infra.takeoff_db import TakeoffDatabase
from genitakeoff.services.viewer_session import ViewerSession, ViewerStateStore


class _FakeRenderer:
    instances = []
    page_sizes = {1: (800, 600), 2: (400, 300), 3: (400, 300)}

    def __init__(self):
        self.closed = False
        self.source = None
        self.render_calls = []
        _FakeRenderer.instances.append(self)

    def open_file(self, path):
        if str(path).endswith("bad.pdf"):
            raise RenderError("broken file")
        self.source = path
        return self.page_count

    def open_bytes(self, data):
        self.source = data
        return self.page_count

    @property
    def page_count(self):
        return len(self.page_sizes)

    def render(self, page_number, scale=None, rotation=0):
        self.render_calls.append((page_number, scale, rotation))
        width, height = self.page_sizes[page_number]
        if rotation in (90, 270):
            width, height = height, width
        return RenderedPage(page_number, rotation, scale or 1.0, width, height, width * 3, False, b"")

    def close(self):
        self.closed = True


@pytest.fixture
def session():
    _FakeRenderer.instances = []
    return ViewerSession(renderer_factory=_FakeRenderer, viewport=ViewportController(Size(400, 300)))


def _render_current(session):
    ticket = session.request_render()
    page = session.render(ticket)
    assert session.accept_render(ticket, page)
    return page


def test_open_document_fits_first_render(session):
    assert session.open_document("plan.pdf", path="plan.pdf") == 3
    assert session.page_number == 1

    _render_current(session)

    assert session.viewport.state.zoom == 0.5
    assert session.viewport.state.pan == (0.0, 0.0)


def test_open_requires_a_source(session):
    with pytest.raises(RenderError):
        session.open_document("plan.pdf")


def test_render_requires_an_open_document(session):
    with pytest.raises(RenderError):
        session.request_render()


def test_reopening_closes_the_previous_document(session):
    session.open_document("a.pdf", path="a.pdf")
    session.open_document("b.pdf", data=b"%PDF-1.7")

    first, second = _FakeRenderer.instances
    assert first.closed
    assert not second.closed
    assert session.document_id == "b.pdf"


def test_failed_open_keeps_the_current_document(session):
    session.open_document("a.pdf", path="a.pdf")
    with pytest.raises(RenderError):
        session.open_document("bad.pdf", path="bad.pdf")

    assert session.document_id == "a.pdf"
    assert not _FakeRenderer.instances[0].closed


def test_stale_renders_are_dropped(session):
    session.open_document("plan.pdf", path="plan.pdf")
    old = session.request_render()
    session.next_page()
    new = session.request_render()

    assert session.render(old) is None
    assert not session.is_current(old)
    stray = RenderedPage(1, 0, 1.0, 800, 600, 2400, False, b"")
    assert not session.accept_render(old, stray)

    page = session.render(new)
    assert page.page_number == 2
    assert session.accept_render(new, page)


def test_second_request_supersedes_the_first(session):
    session.open_document("plan.pdf", path="plan.pdf")
    first = session.request_render()
    second = session.request_render()

    assert not session.is_current(first)
    assert session.is_current(second)


def test_closing_invalidates_in_flight_renders(session):
    session.open_document("plan.pdf", path="plan.pdf")
    ticket = session.request_render()
    session.close()

    assert session.render(ticket) is None
    assert session.page_count == 0


def test_page_navigation_is_clamped(session):
    assert session.go_to_page(2) == 1
    session.open_document("plan.pdf", path="plan.pdf")

    assert session.go_to_page(99) == 3
    assert session.go_to_page(0) == 1
    assert session.prev_page() == 1
    assert session.next_page() == 2


def test_new_page_is_refitted(session):
    session.open_document("plan.pdf", path="plan.pdf")
    _render_current(session)
    session.viewport.zoom_in()
    assert session.viewport.state.zoom != 0.5

    session.next_page()
    _render_current(session)

    assert session.viewport.state.zoom == 1.0
    assert session.viewport.state.pan == (0.0, 0.0)


def test_rotation_renders_rotated_canvas(session):
    session.open_document("plan.pdf", path="plan.pdf")
    assert session.rotate(1) == 90
    page = _render_current(session)

    assert (page.width, page.height) == (600, 800)
    assert _FakeRenderer.instances[0].render_calls[-1] == (1, None, 90)
    assert session.rotate(-2) == 270


def test_snapshot_and_restore(session):
    session.open_document("plan.pdf", path="plan.pdf")
    session.go_to_page(3)
    session.rotate(2)
    saved = session.snapshot()
    assert saved["page_number"] == 3
    assert saved["rotation"] == 180

    other = ViewerSession(renderer_factory=_FakeRenderer)
    other.open_document("plan.pdf", path="plan.pdf")
    other.restore(saved)
    assert (other.page_number, other.viewport.state.rotation) == (3, 180)

    other.restore(None)
    assert other.page_number == 3


def test_viewer_state_store_round_trip(tmp_path, session):
    store = ViewerStateStore(TakeoffDatabase(str(tmp_path / "takeoff.db")))
    session.open_document("plan.pdf", path="plan.pdf")
    session.go_to_page(2)
    session.rotate(1)

    asyncio.run(store.save_session("proj", session))
    loaded = asyncio.run(store.load("plan.pdf"))

    assert loaded["page_number"] == 2
    assert loaded["rotation"] == 90
    assert asyncio.run(store.load("other.pdf")) is None


def test_viewer_state_store_ignores_closed_session(tmp_path, session):
    db = TakeoffDatabase(str(tmp_path / "takeoff.db"))
    store = ViewerStateStore(db)

    asyncio.run(store.save_session("proj", session))

    assert db.conn.execute("SELECT COUNT(*) AS count FROM viewer_states").fetchone()["count"] == 0


def test_switching_documents_does_not_wait_for_a_render(session):
    started, release = threading.Event(), threading.Event()
    session.open_document("a.pdf", path="a.pdf")
    first = _FakeRenderer.instances[0]
    fast_render = first.render

    def slow_render(*args):
        started.set()
        release.wait(5)
        return fast_render(*args)

    first.render = slow_render
    ticket = session.request_render()
    results = []
    worker = threading.Thread(target=lambda: results.append(session.render(ticket)))
    worker.start()
    assert started.wait(5)

    opener = threading.Thread(target=session.open_document, args=("b.pdf",), kwargs={"path": "b.pdf"})
    opener.start()
    opener.join(1)
    switched_while_rendering = not opener.is_alive()
    closed_while_rendering = first.closed
    release.set()
    worker.join(5)
    opener.join(5)

    assert switched_while_rendering
    assert not closed_while_rendering
    assert first.closed
    assert session.document_id == "b.pdf"
    assert not session.accept_render(ticket, results[0])
    assert not _FakeRenderer.instances[1].closed
