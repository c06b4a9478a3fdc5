"""Form field model definitions.

Coordinates are PDF points with a top-left origin on the field's page; the
vertical flip to PDF's bottom-left origin happens only when drawing into the
source document.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
import uuid

from labforms.config import DEFAULT_FONT_SIZE


class FieldType(str, Enum):
    TEXT = "text"
    MULTILINE = "multiline"
    NUMBER = "number"
    DATE = "date"
    CHECKBOX = "checkbox"
    SIGNATURE = "signature"
    IMAGE = "image"


DEFAULT_SIZE: dict[FieldType, tuple[float, float]] = {
    field_type: (24.0, 24.0) if field_type is FieldType.CHECKBOX else (150.0, 32.0)
    for field_type in FieldType
}

CHECKBOX_MIN_SIDE = 16.0
MIN_WIDTH = 40.0
MIN_HEIGHT = 20.0


class FieldValidationError(ValueError):
    """Raised when a field does not fit its template."""


class FieldOutOfBoundsError(FieldValidationError):
    """Raised when a field's page lies outside the template's page range."""


class InvalidDimensionsError(FieldValidationError):
    """Raised when a field has a non-positive width or height."""


def new_field_id() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class FormField:
    id: str
    field_type: FieldType
    page: int
    x: float
    y: float
    width: float
    height: float
    label: str | None = None
    required: bool = False
    font_size: float | None = None

    @property
    def effective_font_size(self) -> float:
        return self.font_size if self.font_size else DEFAULT_FONT_SIZE

    @property
    def is_checkbox(self) -> bool:
        return self.field_type is FieldType.CHECKBOX

    def copy(self, **changes) -> "FormField":
        return replace(self, **changes)


def create_field(
    field_type: FieldType,
    page: int,
    x: float,
    y: float,
    *,
    field_id: str | None = None,
) -> FormField:
    """Build a field of the default size with a fresh id and placeholder label."""
    width, height = DEFAULT_SIZE[field_type]
    return FormField(
        id=field_id or new_field_id(),
        field_type=field_type,
        page=page,
        x=x,
        y=y,
        width=width,
        height=height,
        label=f"New {field_type.value}",
        required=False,
    )


def validate(field: FormField, page_count: int) -> None:
    if not 1 <= field.page <= page_count:
        raise FieldOutOfBoundsError(
            f"Field {field.id} is on page {field.page}, template has {page_count} page(s)"
        )
    if field.width <= 0 or field.height <= 0:
        raise InvalidDimensionsError(
            f"Field {field.id} has invalid size {field.width}x{field.height}"
        )


def clamp_resize(field_type: FieldType, width: float, height: float) -> tuple[float, float]:
    """Apply the minimum-size floor, locking checkboxes to a square."""
    if field_type is FieldType.CHECKBOX:
        side = max(CHECKBOX_MIN_SIDE, width)
        return side, side
    return max(MIN_WIDTH, width), max(MIN_HEIGHT, height)


def clone_fields(fields: list[FormField]) -> list[FormField]:
    """Copy fields for a duplicated template; every copy gets a new id."""
    return [field.copy(id=new_field_id()) for field in fields]
