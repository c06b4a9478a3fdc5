"""Import existing AcroForm widgets from a PDF as template fields."""

from __future__ import annotations

from io import BytesIO
import logging
import re

from pypdf import PdfReader

from labforms.model.field import FieldType, FormField, new_field_id

logger = logging.getLogger(__name__)

FLAG_REQUIRED = 1 << 1
FLAG_MULTILINE = 1 << 12
FLAG_RADIO = 1 << 15
FLAG_PUSHBUTTON = 1 << 16

_FONT_SIZE = re.compile(r"/\S+\s+([\d.]+)\s+Tf")


class PdfImportError(RuntimeError):
    """Raised when existing form fields cannot be imported."""


def _inherited(annot, parent_obj, key: str):
    value = annot.get(key)
    if value is None and parent_obj is not None:
        value = parent_obj.get(key)
    return value


def _font_size(appearance) -> float | None:
    if not appearance:
        return None
    match = _FONT_SIZE.search(str(appearance))
    if match is None:
        return None
    size = float(match.group(1))
    return size or None


def import_pdf_fields(source: bytes) -> list[FormField]:
    imported: list[FormField] = []

    try:
        reader = PdfReader(BytesIO(source))
        for page_number, page in enumerate(reader.pages, start=1):
            box = page.mediabox
            page_left = float(box.left)
            page_top = float(box.top)

            annots = page.get("/Annots") or []
            for annot_ref in annots:
                annot = annot_ref.get_object()
                if annot.get("/Subtype") != "/Widget":
                    continue

                parent = annot.get("/Parent")
                parent_obj = parent.get_object() if parent is not None else None

                field_type = _inherited(annot, parent_obj, "/FT")
                rect = annot.get("/Rect")
                if field_type is None or rect is None:
                    continue

                llx, lly, urx, ury = (float(value) for value in rect)
                left, right = sorted((llx, urx))
                bottom, top = sorted((lly, ury))
                if right - left <= 0 or top - bottom <= 0:
                    continue

                flags = int(_inherited(annot, parent_obj, "/Ff") or 0)
                name = str(annot.get("/T") or (parent_obj.get("/T") if parent_obj else "") or "")

                if field_type == "/Tx":
                    kind = FieldType.MULTILINE if flags & FLAG_MULTILINE else FieldType.TEXT
                elif field_type == "/Btn" and not flags & (FLAG_RADIO | FLAG_PUSHBUTTON):
                    kind = FieldType.CHECKBOX
                else:
                    continue

                imported.append(
                    FormField(
                        id=new_field_id(),
                        field_type=kind,
                        page=page_number,
                        x=left - page_left,
                        y=page_top - top,
                        width=right - left,
                        height=top - bottom,
                        label=name or None,
                        required=bool(flags & FLAG_REQUIRED),
                        font_size=_font_size(_inherited(annot, parent_obj, "/DA")),
                    )
                )
    except Exception as exc:
        raise PdfImportError("Failed to import form fields") from exc

    logger.info("Imported %d AcroForm field(s)", len(imported))
    return imported
