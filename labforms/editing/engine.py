"""Pointer and keyboard interaction for the template editor.

The engine is toolkit independent: a view forwards pointer positions in its
own pixel space plus key events, and the engine turns them into field store
operations through the current page layout.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
import logging
import math

from labforms.config import Settings
from labforms.model.field import (
    DEFAULT_SIZE,
    FieldType,
    FieldValidationError,
    FormField,
    clamp_resize,
    create_field,
    new_field_id,
    validate,
)
from labforms.state.session import FieldStore, TemplateLockedError
from labforms.viewer.transform import PageLayout, ViewRect, to_model

logger = logging.getLogger(__name__)

DRAG_ACTIVATION_PX = 2.0
HANDLE_SIZE_PX = 10.0
FALLBACK_PLACEMENT = (100.0, 100.0)
TOOLBOX_FALLBACK = 50.0
TOOLBOX_MARGIN = 20.0

SHORTCUTS: dict[str, FieldType] = {
    "t": FieldType.TEXT,
    "a": FieldType.MULTILINE,
    "n": FieldType.NUMBER,
    "c": FieldType.CHECKBOX,
    "d": FieldType.DATE,
    "s": FieldType.SIGNATURE,
}

_ARROWS = {
    "ArrowUp": (0, -1),
    "ArrowDown": (0, 1),
    "ArrowLeft": (-1, 0),
    "ArrowRight": (1, 0),
}


class Gesture(str, Enum):
    IDLE = "idle"
    PRESSED = "pressed"
    DRAG = "drag"
    RESIZE = "resize"
    MARQUEE = "marquee"


@dataclass(frozen=True, slots=True)
class KeyEvent:
    key: str
    shift: bool = False
    ctrl: bool = False
    meta: bool = False
    in_text_input: bool = False

    @property
    def command(self) -> bool:
        return self.ctrl or self.meta


class EditingEngine:
    def __init__(
        self,
        store: FieldStore,
        layout: PageLayout,
        settings: Settings | None = None,
        zoom_requested: Callable[[float], None] | None = None,
    ) -> None:
        self.store = store
        self.layout = layout
        self.settings = settings or Settings()
        self.zoom_requested = zoom_requested
        self.active_page = 1
        self.cursor: tuple[float, float] | None = None

        self.gesture = Gesture.IDLE
        self._press: tuple[float, float] | None = None
        self._pointer: tuple[float, float] | None = None
        self._drag_start: dict[str, tuple[float, float]] = {}
        self._resize_id: str | None = None
        self._resize_start: tuple[float, float] | None = None

    @property
    def scale(self) -> float:
        return self.layout.scale

    def set_layout(self, layout: PageLayout) -> None:
        self.layout = layout

    def set_active_page(self, page: int) -> None:
        if 1 <= page <= max(1, self.layout.page_count):
            self.active_page = page

    @property
    def marquee_rect(self) -> ViewRect | None:
        if self.gesture is not Gesture.MARQUEE or self._press is None or self._pointer is None:
            return None
        return ViewRect.from_corners(*self._press, *self._pointer)

    # Pointer handling

    def field_at(self, x: float, y: float) -> FormField | None:
        for candidate in reversed(self.store.fields):
            rect = self.layout.field_rect(candidate)
            if rect is not None and rect.contains(x, y):
                return candidate
        return None

    def resize_handle_rect(self, target: FormField) -> ViewRect | None:
        rect = self.layout.field_rect(target)
        if rect is None:
            return None
        half = HANDLE_SIZE_PX / 2.0
        return ViewRect(rect.right - half, rect.bottom - half, HANDLE_SIZE_PX, HANDLE_SIZE_PX)

    def resizable_field(self) -> FormField | None:
        if len(self.store.selected_ids) != 1:
            return None
        (field_id,) = self.store.selected_ids
        return self.store.find(field_id)

    def pointer_down(self, x: float, y: float) -> bool:
        self.cursor = (x, y)
        self._press = (x, y)
        self._pointer = (x, y)

        resizable = self.resizable_field()
        if resizable is not None and not self.store.is_published:
            handle = self.resize_handle_rect(resizable)
            if handle is not None and handle.contains(x, y):
                self.gesture = Gesture.RESIZE
                self._resize_id = resizable.id
                self._resize_start = (resizable.width, resizable.height)
                return False

        hit = self.field_at(x, y)
        if hit is None:
            self.gesture = Gesture.MARQUEE
            return False

        changed = False
        if hit.id not in self.store.selected_ids:
            self.store.select([hit.id])
            changed = True
        self.gesture = Gesture.PRESSED
        self._drag_start = {
            f.id: (f.x, f.y) for f in self.store.selected_fields()
        }
        return changed

    def pointer_move(self, x: float, y: float) -> bool:
        self.cursor = (x, y)
        if self.gesture is Gesture.IDLE or self._press is None:
            return False
        self._pointer = (x, y)
        px, py = self._press

        if self.gesture is Gesture.MARQUEE:
            return True

        if self.gesture is Gesture.PRESSED:
            if math.hypot(x - px, y - py) < DRAG_ACTIVATION_PX:
                return False
            if self.store.is_published:
                logger.info("Template %s is published; drag ignored", self.store.template_id)
                self.gesture = Gesture.IDLE
                return False
            self.gesture = Gesture.DRAG

        dx = to_model(x - px, self.scale)
        dy = to_model(y - py, self.scale)

        if self.gesture is Gesture.DRAG:
            return self._apply(self._drag_to, dx, dy)
        if self.gesture is Gesture.RESIZE:
            return self._apply(self._resize_to, dx, dy)
        return False

    def pointer_up(self, x: float, y: float) -> bool:
        changed = False
        if self.gesture in (Gesture.DRAG, Gesture.RESIZE):
            changed = self.pointer_move(x, y)
        elif self.gesture is Gesture.MARQUEE:
            self._pointer = (x, y)
            changed = self._finish_marquee()

        self.gesture = Gesture.IDLE
        self._press = None
        self._pointer = None
        self._drag_start = {}
        self._resize_id = None
        self._resize_start = None
        return changed

    def _drag_to(self, dx: float, dy: float) -> None:
        for field_id, (start_x, start_y) in self._drag_start.items():
            if field_id in self.store:
                self.store.update(field_id, x=start_x + dx, y=start_y + dy)

    def _resize_to(self, dx: float, dy: float) -> None:
        if self._resize_id is None or self._resize_start is None:
            return
        target = self.store.find(self._resize_id)
        if target is None:
            return
        start_w, start_h = self._resize_start
        width, height = clamp_resize(target.field_type, start_w + dx, start_h + dy)
        self.store.update(target.id, width=width, height=height)

    def _finish_marquee(self) -> bool:
        rect = self.marquee_rect if self.gesture is Gesture.MARQUEE else None
        before = set(self.store.selected_ids)
        if rect is None:
            return False
        self.store.select(self.select_in_rect(rect))
        return self.store.selected_ids != before

    def select_in_rect(self, rect: ViewRect) -> list[str]:
        if rect.width <= 0 or rect.height <= 0:
            return []
        hits = []
        for candidate in self.store.fields:
            field_rect = self.layout.field_rect(candidate)
            if field_rect is not None and field_rect.overlaps(rect):
                hits.append(candidate.id)
        return hits

    # Keyboard handling

    def key_press(self, event: KeyEvent) -> bool:
        """Handle an editor shortcut; returns True when the key was consumed."""
        if event.in_text_input:
            return False

        key = event.key
        if key in ("+", "="):
            self._request_zoom(self.scale + self.settings.zoom_step)
            return True
        if key == "-":
            self._request_zoom(self.scale - self.settings.zoom_step)
            return True

        if key in ("Delete", "Backspace"):
            if not self.store.selected_ids:
                return False
            self.delete_selection()
            return True

        if key in _ARROWS:
            if not self.store.selected_ids:
                return False
            step = self.settings.nudge_step_large if event.shift else self.settings.nudge_step
            ux, uy = _ARROWS[key]
            self.nudge(ux * step, uy * step)
            return True

        lowered = key.lower()
        if event.command:
            if lowered == "a":
                self.select_all()
                return True
            if lowered == "d":
                self.duplicate_selection()
                return True
            return False

        field_type = SHORTCUTS.get(lowered)
        if field_type is not None:
            self.create_at_cursor(field_type)
            return True
        return False

    def _request_zoom(self, scale: float) -> None:
        clamped = self.settings.edit_zoom.clamp(round(scale, 4))
        if self.zoom_requested is not None:
            self.zoom_requested(clamped)

    # Operations

    def nudge(self, dx: float, dy: float) -> bool:
        if not self.store.selected_ids:
            return False
        ids = list(self.store.selected_ids)
        return self._apply(lambda: self.store.move_many(ids, dx, dy))

    def delete_selection(self) -> bool:
        ids = list(self.store.selected_ids)
        if not ids:
            return False
        return self._apply(lambda: self.store.remove_many(ids))

    def select_all(self) -> None:
        self.store.select(f.id for f in self.store.fields)

    def duplicate_selection(self) -> bool:
        sources = self.store.selected_fields()
        if not sources:
            return False
        offset = self.settings.duplicate_offset
        copies = [
            source.copy(id=new_field_id(), x=source.x + offset, y=source.y + offset)
            for source in sources
        ]

        def add_copies() -> None:
            for copy in copies:
                self.store.add(copy)
            self.store.select(c.id for c in copies)

        return self._apply(add_copies)

    def create_at_cursor(self, field_type: FieldType) -> FormField | None:
        """Create a field whose top-left corner sits under the pointer."""
        page = None
        if self.cursor is not None:
            page = self.layout.page_at(*self.cursor)
        if page is None:
            page = 1
            x, y = FALLBACK_PLACEMENT
        else:
            x, y = self.layout.to_page_point(page, *self.cursor)
        return self.add_field(create_field(field_type, page, x, y))

    def add_from_toolbox(self, field_type: FieldType, viewport: ViewRect | None = None) -> FormField | None:
        """Create a field centered in the visible part of the active page."""
        width, height = DEFAULT_SIZE[field_type]
        page = self.active_page
        cx, cy = TOOLBOX_FALLBACK, TOOLBOX_FALLBACK
        if viewport is not None and self.layout.origin(page) is not None:
            page_rect = self.layout.page_rect(page)
            left = max(viewport.left, page_rect.left)
            right = min(viewport.right, page_rect.right)
            top = max(viewport.top, page_rect.top)
            bottom = min(viewport.bottom, page_rect.bottom)
            cx, cy = self.layout.to_page_point(page, (left + right) / 2.0, (top + bottom) / 2.0)
            if cy < TOOLBOX_MARGIN:
                cy = TOOLBOX_FALLBACK
            if cx < TOOLBOX_MARGIN:
                cx = TOOLBOX_FALLBACK
        return self.add_field(create_field(field_type, page, cx - width / 2.0, cy - height / 2.0))

    def add_field(self, new_field: FormField) -> FormField | None:
        def insert() -> None:
            validate(new_field, self.store.page_count)
            self.store.add(new_field)
            self.store.select([new_field.id])

        return new_field if self._apply(insert) else None

    def update_selected(self, **changes) -> bool:
        """Apply properties-panel edits to the single selected field."""
        target = self.resizable_field()
        if target is None:
            return False

        def apply_changes() -> None:
            validate(target.copy(**changes), self.store.page_count)
            self.store.update(target.id, **changes)

        return self._apply(apply_changes)

    def _apply(self, operation: Callable[..., object], *args) -> bool:
        try:
            operation(*args)
        except TemplateLockedError as exc:
            logger.info("Edit rejected: %s", exc)
            return False
        except FieldValidationError as exc:
            logger.warning("Edit rejected: %s", exc)
            return False
        return True
