"""Overlay layout for the editor, filler and reviewer views.

`compose_page` is a pure function of its inputs: the same fields, values and
scale always produce the same items, so repainting is idempotent.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
import time
from typing import Any

from labforms.config import ZoomRange
from labforms.model.field import FieldType, FormField
from labforms.model.values import is_empty, parse_checkbox, resolve_value
from labforms.viewer.transform import ViewRect, field_rect, to_view

CHECK_MARK = "✓"


class OverlayMode(str, Enum):
    EDIT = "edit"
    FILL = "fill"
    REVIEW = "review"


class HAlign(str, Enum):
    LEFT = "left"
    CENTER = "center"


class VAlign(str, Enum):
    TOP = "top"
    CENTER = "center"


@dataclass(frozen=True, slots=True)
class OverlayItem:
    field_id: str
    field_type: FieldType
    rect: ViewRect
    font_px: float
    text: str
    placeholder: str
    h_align: HAlign
    v_align: VAlign
    checked: bool = False
    required: bool = False
    selected: bool = False
    editable: bool = False

    @property
    def box(self) -> ViewRect:
        """Square box for checkboxes, centered in the field; the rect otherwise."""
        if self.field_type is not FieldType.CHECKBOX:
            return self.rect
        side = min(self.rect.width, self.rect.height)
        return ViewRect(
            self.rect.left + (self.rect.width - side) / 2.0,
            self.rect.top + (self.rect.height - side) / 2.0,
            side,
            side,
        )


def _display_text(field: FormField, value: Any, mode: OverlayMode) -> str:
    if mode is OverlayMode.EDIT:
        if field.field_type is FieldType.CHECKBOX:
            return ""
        return field.label or field.field_type.value
    if field.field_type is FieldType.CHECKBOX:
        return CHECK_MARK if parse_checkbox(value) else ""
    return "" if is_empty(value) else str(value)


def compose_page(
    fields: Iterable[FormField],
    scale: float,
    mode: OverlayMode,
    values: Mapping[str, Any] | None = None,
    selected_ids: Iterable[str] = (),
    origin: tuple[float, float] = (0.0, 0.0),
) -> list[OverlayItem]:
    selected = set(selected_ids)
    values = values or {}
    items = []
    for field in fields:
        value = resolve_value(field, values) if mode is not OverlayMode.EDIT else None
        items.append(
            OverlayItem(
                field_id=field.id,
                field_type=field.field_type,
                rect=field_rect(field, scale, origin),
                font_px=to_view(field.effective_font_size, scale),
                text=_display_text(field, value, mode),
                placeholder=field.label or "",
                h_align=HAlign.CENTER if field.field_type is FieldType.CHECKBOX else HAlign.LEFT,
                v_align=VAlign.TOP if field.field_type is FieldType.MULTILINE else VAlign.CENTER,
                checked=field.field_type is FieldType.CHECKBOX and parse_checkbox(value),
                required=field.required,
                selected=field.id in selected,
                editable=mode is OverlayMode.FILL,
            )
        )
    return items


class ZoomController:
    """Clamped zoom factor with an optional overlay mask after each change."""

    def __init__(
        self,
        zoom_range: ZoomRange,
        step: float = 0.1,
        scale: float = 1.0,
        mask_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.zoom_range = zoom_range
        self.step = step
        self.mask_seconds = mask_seconds
        self._clock = clock
        self._masked_until = 0.0
        self.scale = zoom_range.clamp(scale)

    def set_scale(self, scale: float) -> float:
        clamped = self.zoom_range.clamp(round(scale, 4))
        if clamped != self.scale:
            self.scale = clamped
            if self.mask_seconds > 0:
                self._masked_until = self._clock() + self.mask_seconds
        return self.scale

    def zoom_in(self) -> float:
        return self.set_scale(self.scale + self.step)

    def zoom_out(self) -> float:
        return self.set_scale(self.scale - self.step)

    def fit_width(self, page_width: float, viewport_width: float, fit_range: ZoomRange) -> float:
        if page_width <= 0:
            return self.scale
        return self.set_scale(fit_range.clamp(viewport_width / page_width))

    @property
    def masked(self) -> bool:
        return self._clock() < self._masked_until

    @property
    def percent(self) -> int:
        return round(self.scale * 100)
