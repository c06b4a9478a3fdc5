"""Tests for loading and rendering PDFs."""

import httpx
import pytest

from conftest import LETTER, make_pdf
from labforms.pdf.loader import PdfLoadError, fetch_pdf_bytes, load_pdf, open_pdf_bytes, resolve_pdf_source
from labforms.pdf.renderer import PdfRenderError, RenderScheduler, page_count, render_page


class TestLoader:
    def test_load_from_path(self, tmp_path, letter_pdf):
        path = tmp_path / "sheet.pdf"
        path.write_bytes(letter_pdf)
        document = load_pdf(path)
        try:
            assert document.page_count == 2
            assert document.page_size(1) == LETTER
            assert document.data == letter_pdf
        finally:
            document.close()

    def test_missing_file(self, tmp_path):
        with pytest.raises(PdfLoadError):
            fetch_pdf_bytes(tmp_path / "nope.pdf")

    def test_fetch_over_http(self, letter_pdf):
        def handler(request):
            assert request.url.path == "/files/sheet.pdf"
            return httpx.Response(200, content=letter_pdf)

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            assert fetch_pdf_bytes("https://labs.example.org/files/sheet.pdf", client=client) == letter_pdf

    def test_http_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        with httpx.Client(transport=transport) as client:
            with pytest.raises(PdfLoadError):
                fetch_pdf_bytes("https://labs.example.org/missing.pdf", client=client)

    def test_garbage_bytes(self):
        with pytest.raises(PdfLoadError):
            open_pdf_bytes(b"definitely not a pdf")


class TestResolveSource:
    def test_upload_path_uses_api_origin(self):
        resolved = resolve_pdf_source("/uploads/1700000000-sheet.pdf", "https://labs.example.org/api")
        assert resolved == "https://labs.example.org/uploads/1700000000-sheet.pdf"

    def test_absolute_urls_are_kept(self):
        url = "https://cdn.example.org/sheet.pdf"
        assert resolve_pdf_source(url, "https://labs.example.org/api") == url

    def test_existing_local_file_wins(self, tmp_path):
        path = tmp_path / "sheet.pdf"
        path.write_bytes(b"%PDF")
        assert resolve_pdf_source(path, "https://labs.example.org/api") == str(path)

    def test_without_api_url(self):
        assert resolve_pdf_source("/uploads/sheet.pdf") == "/uploads/sheet.pdf"


class TestRenderer:
    def test_page_count(self, letter_pdf):
        assert page_count(letter_pdf) == 2

    def test_render_scales_pixels(self):
        document = open_pdf_bytes(make_pdf(((200.0, 100.0),)))
        try:
            rendered = render_page(document.handle, 1, 2.0)
        finally:
            document.close()
        assert (rendered.width, rendered.height) == (400, 200)
        assert (rendered.page_width, rendered.page_height) == (200.0, 100.0)
        assert len(rendered.samples) == rendered.stride * rendered.height

    def test_page_out_of_range(self, letter_pdf):
        document = open_pdf_bytes(letter_pdf)
        try:
            with pytest.raises(PdfRenderError):
                render_page(document.handle, 3, 1.0)
        finally:
            document.close()


class TestRenderScheduler:
    def test_newer_request_makes_older_stale(self):
        scheduler = RenderScheduler()
        old = scheduler.request(1, 1.0)
        new = scheduler.request(1, 1.5)
        other = scheduler.request(2, 1.5)
        assert not scheduler.is_current(old)
        assert scheduler.is_current(new)
        assert scheduler.is_current(other)

    def test_cancel_all(self):
        scheduler = RenderScheduler()
        ticket = scheduler.request(1, 1.0)
        scheduler.cancel_all()
        assert not scheduler.is_current(ticket)
