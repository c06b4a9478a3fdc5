"""PDF rendering helpers using PyMuPDF."""

from __future__ import annotations

from dataclasses import dataclass
import threading

import fitz


class PdfRenderError(RuntimeError):
    """Raised when a page cannot be rendered."""


@dataclass(frozen=True, slots=True)
class RenderedPage:
    page: int
    scale: float
    width: int
    height: int
    stride: int
    samples: bytes
    page_width: float
    page_height: float


def page_count(data: bytes) -> int:
    """Count pages without rendering any of them."""
    try:
        with fitz.open(stream=data, filetype="pdf") as document:
            return document.page_count
    except Exception as exc:
        raise PdfRenderError("Failed to read page count") from exc


def render_page(document: fitz.Document, page: int, scale: float) -> RenderedPage:
    if page < 1 or page > document.page_count:
        raise PdfRenderError(f"Page out of range: {page}")
    if scale <= 0:
        raise PdfRenderError(f"Invalid render scale: {scale}")

    try:
        pdf_page = document.load_page(page - 1)
        pix = pdf_page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False, annots=False)
    except Exception as exc:
        raise PdfRenderError(f"Failed to render page {page}") from exc

    return RenderedPage(
        page=page,
        scale=scale,
        width=pix.width,
        height=pix.height,
        stride=pix.stride,
        samples=bytes(pix.samples),
        page_width=float(pdf_page.rect.width),
        page_height=float(pdf_page.rect.height),
    )


@dataclass(frozen=True, slots=True)
class RenderTicket:
    page: int
    scale: float
    generation: int


class RenderScheduler:
    """Tracks the newest render request per page so stale results are dropped."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest: dict[int, int] = {}
        self._counter = 0

    def request(self, page: int, scale: float) -> RenderTicket:
        with self._lock:
            self._counter += 1
            self._latest[page] = self._counter
            return RenderTicket(page=page, scale=scale, generation=self._counter)

    def is_current(self, ticket: RenderTicket) -> bool:
        with self._lock:
            return self._latest.get(ticket.page) == ticket.generation

    def cancel_all(self) -> None:
        with self._lock:
            self._latest.clear()
