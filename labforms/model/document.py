"""Source PDF bytes and the shared PyMuPDF handle for one session."""

from __future__ import annotations

from dataclasses import dataclass

import fitz


@dataclass(slots=True)
class PdfDocument:
    source: str
    data: bytes
    handle: fitz.Document

    @property
    def page_count(self) -> int:
        return self.handle.page_count

    def page_size(self, page: int) -> tuple[float, float]:
        """Width and height in points of a 1-based page at scale 1."""
        rect = self.handle.load_page(page - 1).rect
        return float(rect.width), float(rect.height)

    def page_sizes(self) -> list[tuple[float, float]]:
        return [self.page_size(page) for page in range(1, self.page_count + 1)]

    def open_copy(self) -> fitz.Document:
        """Open an independent handle over the same bytes, for worker threads."""
        return fitz.open(stream=self.data, filetype="pdf")

    def close(self) -> None:
        if not self.handle.is_closed:
            self.handle.close()
