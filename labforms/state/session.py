"""In-memory field store for the template open in one editor/filler session."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
import logging

from labforms.model.field import FormField
from labforms.model.template import TemplateRecord

logger = logging.getLogger(__name__)

_EDITABLE_ATTRS = {
    "field_type",
    "page",
    "x",
    "y",
    "width",
    "height",
    "label",
    "required",
    "font_size",
}


class FieldStoreError(RuntimeError):
    """Base class for field store contract violations."""


class DuplicateFieldIdError(FieldStoreError):
    """Raised when a field id is already present."""


class FieldNotFoundError(FieldStoreError):
    """Raised when a field id is not present."""


class TemplateLockedError(FieldStoreError):
    """Raised when the field layout of a published template is changed."""


@dataclass(slots=True)
class FieldStore:
    template_id: str | None = None
    title: str = ""
    page_count: int = 1
    is_published: bool = False
    fields: list[FormField] = field(default_factory=list)
    selected_ids: set[str] = field(default_factory=set)
    modified: bool = False

    @classmethod
    def from_record(cls, record: TemplateRecord) -> "FieldStore":
        return cls(
            template_id=record.template_id,
            title=record.title,
            page_count=record.page_count,
            is_published=record.is_published,
            fields=[f.copy() for f in record.fields],
        )

    def get(self, field_id: str) -> FormField:
        for candidate in self.fields:
            if candidate.id == field_id:
                return candidate
        logger.error("Field %s not found in template %s", field_id, self.template_id)
        raise FieldNotFoundError(f"Field not found: {field_id}")

    def find(self, field_id: str) -> FormField | None:
        for candidate in self.fields:
            if candidate.id == field_id:
                return candidate
        return None

    def __contains__(self, field_id: object) -> bool:
        return any(candidate.id == field_id for candidate in self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def page_fields(self, page: int) -> list[FormField]:
        return [f for f in self.fields if f.page == page]

    def add(self, new_field: FormField) -> None:
        self._ensure_unlocked()
        if new_field.id in self:
            logger.error("Duplicate field id %s in template %s", new_field.id, self.template_id)
            raise DuplicateFieldIdError(f"Duplicate field id: {new_field.id}")
        self.fields.append(new_field)
        self.modified = True

    def update(self, field_id: str, **changes) -> FormField:
        """Merge attribute changes into a field without re-validating placement."""
        self._ensure_unlocked()
        unknown = set(changes) - _EDITABLE_ATTRS
        if unknown:
            raise TypeError(f"Unknown field attribute(s): {', '.join(sorted(unknown))}")
        target = self.get(field_id)
        for name, value in changes.items():
            setattr(target, name, value)
        self.modified = True
        return target

    def remove(self, field_id: str) -> None:
        self._ensure_unlocked()
        target = self.get(field_id)
        self.fields.remove(target)
        self.selected_ids.discard(field_id)
        self.modified = True

    def remove_many(self, field_ids: Iterable[str]) -> int:
        """Remove every listed field that exists; unknown ids are skipped."""
        self._ensure_unlocked()
        doomed = set(field_ids)
        kept = [f for f in self.fields if f.id not in doomed]
        removed = len(self.fields) - len(kept)
        self.fields = kept
        self.selected_ids -= doomed
        if removed:
            self.modified = True
        return removed

    def move_many(self, field_ids: Iterable[str], dx: float, dy: float) -> int:
        """Translate every listed field that exists; unknown ids are skipped."""
        self._ensure_unlocked()
        targets = set(field_ids)
        moved = 0
        for candidate in self.fields:
            if candidate.id in targets:
                candidate.x += dx
                candidate.y += dy
                moved += 1
        if moved:
            self.modified = True
        return moved

    def select(self, field_ids: Iterable[str]) -> None:
        self.selected_ids = {fid for fid in field_ids if fid in self}

    def clear_selection(self) -> None:
        self.selected_ids = set()

    def selected_fields(self) -> list[FormField]:
        return [f for f in self.fields if f.id in self.selected_ids]

    def set_title(self, title: str) -> None:
        if title != self.title:
            self.title = title
            self.modified = True

    def set_published(self, published: bool) -> None:
        if self.is_published and not published:
            raise TemplateLockedError("A published template cannot be unpublished")
        if published != self.is_published:
            self.is_published = published
            self.modified = True

    def mark_saved(self, record: TemplateRecord | None = None) -> None:
        if record is not None:
            self.title = record.title
            self.is_published = record.is_published
            self.fields = [f.copy() for f in record.fields]
            self.selected_ids &= {f.id for f in self.fields}
        self.modified = False

    def _ensure_unlocked(self) -> None:
        if self.is_published:
            raise TemplateLockedError(f"Template {self.template_id} is published")
