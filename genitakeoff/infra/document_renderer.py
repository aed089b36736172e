"""PyMuPDF-backed page renderer.

Document space is the unrotated page at ``base_scale`` (pixels per PDF point
times 72 dpi); a render at another scale or rotation produces a canvas that the
viewport maps back into that space.
"""

import hashlib
import logging
from dataclasses import dataclass

import fitz

from genitakeoff.constants import RENDER_SCALE
from genitakeoff.domain.viewport import Size, normalize_rotation, rotated_size
from genitakeoff.errors import RenderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedPage:
    page_number: int
    rotation: int
    scale: float
    width: int
    height: int
    stride: int
    alpha: bool
    samples: bytes

    @property
    def size(self) -> Size:
        return Size(self.width, self.height)


class DocumentRenderer:
    """Owns one open PyMuPDF document."""

    def __init__(self, base_scale: float = RENDER_SCALE):
        self.base_scale = float(base_scale)
        self._doc = None
        self.doc_key = None

    def open_file(self, path):
        try:
            doc = fitz.open(path)
        except Exception as exc:
            raise RenderError(f"Could not open document {path}: {exc}") from exc
        self._replace_doc(doc, f"file:{path}")
        return self.page_count

    def open_bytes(self, data: bytes):
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise RenderError(f"Could not open document bytes: {exc}") from exc
        self._replace_doc(doc, f"bytes:{hashlib.md5(data[:4096]).hexdigest()}")
        return self.page_count

    def _replace_doc(self, doc, doc_key):
        self.close()
        self._doc = doc
        self.doc_key = doc_key
        logger.debug("Opened %s with %d page(s)", doc_key, len(doc))

    @property
    def is_open(self) -> bool:
        return self._doc is not None

    @property
    def page_count(self) -> int:
        return len(self._doc) if self._doc is not None else 0

    def _page(self, page_number: int):
        if self._doc is None:
            raise RenderError("No document is open.")
        if page_number < 1 or page_number > len(self._doc):
            raise RenderError(f"Page {page_number} is out of range (1-{len(self._doc)}).")
        return self._doc[page_number - 1]

    def page_size(self, page_number: int, rotation: int = 0, scale: float | None = None) -> Size:
        """Pixel size of the page canvas at ``scale`` after rotation."""
        page = self._page(page_number)
        factor = self.base_scale if scale is None else float(scale)
        base = Size(page.rect.width * factor, page.rect.height * factor)
        return rotated_size(base, rotation)

    def render(self, page_number: int, scale: float | None = None, rotation: int = 0) -> RenderedPage:
        page = self._page(page_number)
        rotation = normalize_rotation(rotation)
        factor = self.base_scale if scale is None else float(scale)
        try:
            pix = page.get_pixmap(matrix=fitz.Matrix(factor, factor).prerotate(rotation))
        except Exception as exc:
            raise RenderError(f"Failed to render page {page_number}: {exc}") from exc
        return RenderedPage(
            page_number=page_number,
            rotation=rotation,
            scale=factor,
            width=pix.width,
            height=pix.height,
            stride=pix.stride,
            alpha=bool(pix.alpha),
            samples=bytes(pix.samples),
        )

    def close(self):
        if self._doc is not None:
            self._doc.close()
            logger.debug("Closed %s", self.doc_key)
        self._doc = None
        self.doc_key = None


__all__ = ["DocumentRenderer", "RenderedPage"]
