"""PDF loading helpers.

Bytes are fetched once per session and shared by rendering and export.
"""

from __future__ import annotations

import logging
from pathlib import Path

import fitz
import httpx

from labforms.model.document import PdfDocument

logger = logging.getLogger(__name__)


class PdfLoadError(RuntimeError):
    """Raised when a PDF cannot be fetched or opened."""


def resolve_pdf_source(source: str | Path, api_url: str | None = None) -> str:
    """Resolve a server-relative upload path against the API's origin.

    The document store hands out ``/uploads/<name>`` paths, served from the
    API host but outside the ``/api`` prefix. Local files win over that
    reading so an absolute filesystem path keeps working offline.
    """
    location = str(source)
    if api_url is None or location.startswith(("http://", "https://")):
        return location
    if location.startswith("/") and not Path(location).exists():
        return str(httpx.URL(api_url).join(location))
    return location


def fetch_pdf_bytes(
    source: str | Path,
    client: httpx.Client | None = None,
    timeout: float = 15.0,
) -> bytes:
    location = str(source)
    if location.startswith(("http://", "https://")):
        try:
            if client is not None:
                response = client.get(location)
            else:
                response = httpx.get(location, timeout=timeout, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise PdfLoadError(f"Failed to fetch PDF: {location}") from exc
        return response.content

    path = Path(location)
    if not path.exists():
        raise PdfLoadError(f"File not found: {path}")
    try:
        return path.read_bytes()
    except OSError as exc:
        raise PdfLoadError(f"Failed to read PDF: {path}") from exc


def open_pdf_bytes(data: bytes, source: str = "<memory>") -> PdfDocument:
    try:
        handle = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:
        raise PdfLoadError(f"Failed to open PDF: {source}") from exc
    return PdfDocument(source=source, data=data, handle=handle)


def load_pdf(
    source: str | Path,
    client: httpx.Client | None = None,
    timeout: float = 15.0,
) -> PdfDocument:
    data = fetch_pdf_bytes(source, client=client, timeout=timeout)
    document = open_pdf_bytes(data, str(source))
    logger.info("Loaded %s (%d page(s))", source, document.page_count)
    return document
