"""Translate templates to and from the document store's JSON shape.

The store names a field's id ``fieldId`` and uses camelCase keys; the model
uses ``id`` and snake_case. Translation happens only here.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from labforms.model.field import FieldType, FormField
from labforms.model.template import TemplateRecord
from labforms.model.values import parse_checkbox


class TemplateCodecError(ValueError):
    """Raised when a stored template payload cannot be decoded."""


def encode_field(field: FormField) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "fieldId": field.id,
        "type": field.field_type.value,
        "page": field.page,
        "x": field.x,
        "y": field.y,
        "width": field.width,
        "height": field.height,
        "required": field.required,
    }
    if field.label is not None:
        payload["label"] = field.label
    if field.font_size is not None:
        payload["fontSize"] = field.font_size
    return payload


def decode_field(payload: Mapping[str, Any]) -> FormField:
    field_id = payload.get("fieldId") or payload.get("id")
    if not field_id:
        raise TemplateCodecError(f"Field payload has no id: {dict(payload)!r}")
    try:
        font_size = payload.get("fontSize")
        return FormField(
            id=str(field_id),
            field_type=FieldType(payload["type"]),
            page=int(payload["page"]),
            x=float(payload["x"]),
            y=float(payload["y"]),
            width=float(payload["width"]),
            height=float(payload["height"]),
            label=payload.get("label"),
            required=parse_checkbox(payload.get("required", False)),
            font_size=float(font_size) if font_size is not None else None,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise TemplateCodecError(f"Invalid field payload for {field_id}") from exc


def encode_fields(fields: Iterable[FormField]) -> list[dict[str, Any]]:
    return [encode_field(field) for field in fields]


def encode_save(
    title: str,
    fields: Iterable[FormField],
    is_published: bool | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {"title": title, "fields": encode_fields(fields)}
    if is_published is not None:
        body["isPublished"] = is_published
    return body


def decode_template(payload: Mapping[str, Any]) -> TemplateRecord:
    template_id = payload.get("_id") or payload.get("id")
    if not template_id:
        raise TemplateCodecError("Template payload has no id")
    dimensions = payload.get("dimensions") or {}
    try:
        return TemplateRecord(
            template_id=str(template_id),
            title=str(payload.get("title", "")),
            pdf_url=str(payload["pdfUrl"]),
            page_count=int(payload["pageCount"]),
            width=float(dimensions.get("width", 0.0)),
            height=float(dimensions.get("height", 0.0)),
            fields=[decode_field(item) for item in payload.get("fields") or []],
            is_published=parse_checkbox(payload.get("isPublished", False)),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise TemplateCodecError(f"Invalid template payload for {template_id}") from exc


def encode_template(record: TemplateRecord) -> dict[str, Any]:
    return {
        "_id": record.template_id,
        "title": record.title,
        "pdfUrl": record.pdf_url,
        "pageCount": record.page_count,
        "dimensions": {"width": record.width, "height": record.height},
        "fields": encode_fields(record.fields),
        "isPublished": record.is_published,
    }
