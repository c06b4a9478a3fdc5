"""Shared fixtures: generated PDFs, sample fields, an editor over two pages."""

from io import BytesIO

import pytest
from reportlab.pdfgen import canvas

from labforms.editing.engine import EditingEngine
from labforms.model.field import FieldType, FormField
from labforms.state.session import FieldStore
from labforms.viewer.transform import PageLayout

LETTER = (612.0, 792.0)


def make_pdf(page_sizes=(LETTER,), acroform=None) -> bytes:
    """Build a small PDF; `acroform(report, page_number)` may add widgets."""
    buffer = BytesIO()
    report = canvas.Canvas(buffer, pagesize=page_sizes[0])
    for page_number, size in enumerate(page_sizes, start=1):
        report.setPageSize(size)
        if acroform is not None:
            acroform(report, page_number)
        report.showPage()
    report.save()
    return buffer.getvalue()


def make_field(field_id, field_type=FieldType.TEXT, page=1, x=100.0, y=100.0, width=150.0, height=32.0, **extra):
    return FormField(
        id=field_id,
        field_type=field_type,
        page=page,
        x=x,
        y=y,
        width=width,
        height=height,
        **extra,
    )


@pytest.fixture
def letter_pdf() -> bytes:
    return make_pdf((LETTER, LETTER))


@pytest.fixture
def store() -> FieldStore:
    return FieldStore(template_id="tpl-1", title="Titration", page_count=2)


def two_page_layout(scale: float = 1.0) -> PageLayout:
    return PageLayout.stacked([LETTER, LETTER], scale, gap=16.0)


@pytest.fixture
def editor(store) -> EditingEngine:
    return EditingEngine(store, two_page_layout(1.0))
