"""Burn submitted values into the source PDF using a reportlab overlay + pypdf."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from io import BytesIO
import logging
from pathlib import Path
from typing import Any

from pypdf import PdfReader, PdfWriter
from reportlab.lib import colors
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from labforms.model.field import FieldType, FormField
from labforms.model.values import is_empty, parse_checkbox, resolve_value

logger = logging.getLogger(__name__)

FONT_NAME = "Helvetica"
LINE_SPACING = 1.2


class PdfExportError(RuntimeError):
    """Raised when output generation fails."""


@dataclass(frozen=True, slots=True)
class PageBox:
    left: float
    bottom: float
    width: float
    height: float


@dataclass(frozen=True, slots=True)
class DrawCommand:
    page_index: int
    text: str
    x: float
    y: float
    size: float
    max_width: float | None = None


def plan_drawing(
    fields: Iterable[FormField],
    values: Mapping[str, Any],
    page_heights: list[float],
) -> list[DrawCommand]:
    """Translate filled fields into text draws in the page's bottom-left space."""
    commands: list[DrawCommand] = []
    for field in fields:
        value = resolve_value(field, values)
        if is_empty(value):
            continue

        page_index = field.page - 1
        if page_index < 0 or page_index >= len(page_heights):
            logger.debug("Skipping field %s on missing page %d", field.id, field.page)
            continue
        page_height = page_heights[page_index]

        if field.field_type is FieldType.CHECKBOX:
            if parse_checkbox(value):
                commands.append(
                    DrawCommand(
                        page_index=page_index,
                        text="X",
                        x=field.x + field.width * 0.2,
                        y=page_height - field.y - field.height * 0.8,
                        size=field.height * 0.7,
                    )
                )
            continue

        font_size = field.effective_font_size
        commands.append(
            DrawCommand(
                page_index=page_index,
                text=str(value),
                x=field.x,
                y=page_height - field.y - font_size,
                size=font_size,
                max_width=field.width,
            )
        )
    return commands


def export_filled_pdf(
    source: bytes,
    fields: Iterable[FormField],
    values: Mapping[str, Any],
) -> bytes:
    """Return new PDF bytes with values drawn over the source pages.

    Any failure aborts the whole export with PdfExportError; partial output is
    never returned.
    """
    try:
        reader = PdfReader(BytesIO(source))
        boxes = [
            PageBox(
                left=float(page.mediabox.left),
                bottom=float(page.mediabox.bottom),
                width=float(page.mediabox.width),
                height=float(page.mediabox.height),
            )
            for page in reader.pages
        ]
        commands = plan_drawing(fields, values, [box.height for box in boxes])

        writer = PdfWriter()
        for page in reader.pages:
            writer.add_page(page)

        if commands:
            overlay_reader = PdfReader(_build_overlay_pdf(boxes, commands))
            for page_index in sorted({command.page_index for command in commands}):
                writer.pages[page_index].merge_page(overlay_reader.pages[page_index])

        output = BytesIO()
        writer.write(output)
    except Exception as exc:
        logger.exception("PDF export failed")
        raise PdfExportError("Failed to generate filled PDF") from exc

    logger.info("Exported filled PDF with %d drawn value(s)", len(commands))
    return output.getvalue()


def write_filled_pdf(
    source: bytes,
    output_path: str | Path,
    fields: Iterable[FormField],
    values: Mapping[str, Any],
) -> None:
    data = export_filled_pdf(source, fields, values)
    output = Path(output_path)
    try:
        output.write_bytes(data)
    except OSError as exc:
        raise PdfExportError(f"Failed to write output PDF: {output}") from exc


def _build_overlay_pdf(boxes: list[PageBox], commands: list[DrawCommand]) -> BytesIO:
    grouped: dict[int, list[DrawCommand]] = defaultdict(list)
    for command in commands:
        grouped[command.page_index].append(command)

    buffer = BytesIO()
    report = canvas.Canvas(buffer, pagesize=(boxes[0].width, boxes[0].height))

    for page_index, box in enumerate(boxes):
        report.setPageSize((box.width, box.height))
        report.setFillColor(colors.black)
        for command in grouped.get(page_index, []):
            _draw_command(report, box, command)
        report.showPage()

    report.save()
    buffer.seek(0)
    return buffer


def _draw_command(report: canvas.Canvas, box: PageBox, command: DrawCommand) -> None:
    report.setFont(FONT_NAME, command.size)
    if command.max_width is None:
        lines = [command.text]
    else:
        lines = simpleSplit(command.text, FONT_NAME, command.size, command.max_width) or [""]

    leading = command.size * LINE_SPACING
    report.saveState()
    report.translate(box.left, box.bottom)
    for line_number, line in enumerate(lines):
        report.drawString(command.x, command.y - line_number * leading, line)
    report.restoreState()
