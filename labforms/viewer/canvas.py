"""Interactive canvas: stacked PDF pages with the field overlay on top."""

from __future__ import annotations

import logging
from typing import Any

from PySide6.QtCore import QDate, QObject, QRectF, QRunnable, Qt, QThreadPool, Signal
from PySide6.QtGui import QColor, QDoubleValidator, QFont, QImage, QPainter, QPen
from PySide6.QtWidgets import (
    QApplication,
    QCheckBox,
    QDateEdit,
    QLineEdit,
    QPlainTextEdit,
    QWidget,
)

from labforms.config import Settings
from labforms.editing.engine import EditingEngine, KeyEvent
from labforms.model.document import PdfDocument
from labforms.model.field import FieldType, FormField
from labforms.model.values import parse_checkbox, resolve_value
from labforms.pdf.renderer import PdfRenderError, RenderedPage, RenderScheduler, RenderTicket, render_page
from labforms.state.session import FieldStore
from labforms.viewer.overlay import HAlign, OverlayItem, OverlayMode, VAlign, compose_page
from labforms.viewer.transform import PageLayout, ViewRect

logger = logging.getLogger(__name__)

PAGE_GAP = 16.0
PAGE_MARGIN = 24.0

_NO_DATE = QDate(1900, 1, 1)

_KEY_NAMES = {
    Qt.Key.Key_Up.value: "ArrowUp",
    Qt.Key.Key_Down.value: "ArrowDown",
    Qt.Key.Key_Left.value: "ArrowLeft",
    Qt.Key.Key_Right.value: "ArrowRight",
    Qt.Key.Key_Delete.value: "Delete",
    Qt.Key.Key_Backspace.value: "Backspace",
}


class RenderSignals(QObject):
    finished = Signal(object, object)
    failed = Signal(object, str)


class RenderWorker(QRunnable):
    """Renders one page off the UI thread with its own document handle."""

    def __init__(self, document: PdfDocument, ticket: RenderTicket, scheduler: RenderScheduler) -> None:
        super().__init__()
        self._document = document
        self._ticket = ticket
        self._scheduler = scheduler
        self.signals = RenderSignals()

    def run(self) -> None:
        if not self._scheduler.is_current(self._ticket):
            return
        try:
            with self._document.open_copy() as handle:
                rendered = render_page(handle, self._ticket.page, self._ticket.scale)
        except PdfRenderError as exc:
            self.signals.failed.emit(self._ticket, str(exc))
            return
        except Exception as exc:
            self.signals.failed.emit(self._ticket, f"Failed to render page {self._ticket.page}: {exc}")
            return
        if self._scheduler.is_current(self._ticket):
            self.signals.finished.emit(self._ticket, rendered)


def rendered_to_qimage(rendered: RenderedPage) -> QImage:
    image = QImage(
        rendered.samples,
        rendered.width,
        rendered.height,
        rendered.stride,
        QImage.Format.Format_RGB888,
    )
    return image.copy()


class PdfCanvas(QWidget):
    selection_changed = Signal()
    fields_changed = Signal()
    zoom_requested = Signal(float)
    value_changed = Signal(str, object)
    render_failed = Signal(int, str)

    def __init__(self, mode: OverlayMode, settings: Settings | None = None) -> None:
        super().__init__()
        self.mode = mode
        self.settings = settings or Settings()
        self._document: PdfDocument | None = None
        self._store: FieldStore | None = None
        self._engine: EditingEngine | None = None
        self._layout = PageLayout.stacked([], 1.0)
        self._page_sizes: list[tuple[float, float]] = []
        self._images: dict[int, QImage] = {}
        self._failed_pages: set[int] = set()
        self._values: dict[str, Any] = {}
        self._read_only = False
        self._inputs: dict[str, QWidget] = {}
        self._overlay_masked = False
        self._scheduler = RenderScheduler()
        self._pool = QThreadPool.globalInstance()

        self.setMouseTracking(True)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setMinimumSize(500, 600)

    @property
    def engine(self) -> EditingEngine | None:
        return self._engine

    @property
    def layout_info(self) -> PageLayout:
        return self._layout

    @property
    def scale(self) -> float:
        return self._layout.scale

    def set_document(self, document: PdfDocument, store: FieldStore, scale: float) -> None:
        self.clear()
        self._document = document
        self._store = store
        self._page_sizes = document.page_sizes()
        self._layout = PageLayout.stacked(self._page_sizes, scale, PAGE_GAP, PAGE_MARGIN)
        if self.mode is OverlayMode.EDIT:
            self._engine = EditingEngine(
                store,
                self._layout,
                self.settings,
                zoom_requested=self.zoom_requested.emit,
            )
        self._apply_layout()

    def clear(self) -> None:
        self._scheduler.cancel_all()
        for widget in self._inputs.values():
            widget.deleteLater()
        self._inputs.clear()
        self._document = None
        self._store = None
        self._engine = None
        self._images.clear()
        self._failed_pages.clear()
        self._page_sizes = []
        self._layout = PageLayout.stacked([], 1.0)
        self.resize(500, 600)
        self.update()

    def set_scale(self, scale: float) -> None:
        if self._document is None or scale == self._layout.scale:
            return
        self._layout = PageLayout.stacked(self._page_sizes, scale, PAGE_GAP, PAGE_MARGIN)
        if self._engine is not None:
            self._engine.set_layout(self._layout)
        self._apply_layout()

    def set_values(self, values: dict[str, Any], read_only: bool = False) -> None:
        self._values = values
        self._read_only = read_only
        if self.mode is OverlayMode.FILL:
            for widget in self._inputs.values():
                widget.deleteLater()
            self._inputs.clear()
            self._sync_inputs()
        self.update()

    def set_overlay_masked(self, masked: bool) -> None:
        self._overlay_masked = masked
        for widget in self._inputs.values():
            widget.setVisible(not masked)
        self.update()

    def refresh_fields(self) -> None:
        if self.mode is OverlayMode.FILL:
            self._sync_inputs()
        self.update()

    def page_rect(self, page: int) -> ViewRect:
        return self._layout.page_rect(page)

    def _apply_layout(self) -> None:
        width, height = self._layout.total_size
        self.resize(int(width + PAGE_MARGIN), int(height + PAGE_GAP))
        self._failed_pages.clear()
        for page in range(1, self._layout.page_count + 1):
            self._request_render(page)
        if self.mode is OverlayMode.FILL:
            self._sync_inputs()
        self.update()

    def _request_render(self, page: int) -> None:
        if self._document is None:
            return
        ticket = self._scheduler.request(page, self._layout.scale)
        worker = RenderWorker(self._document, ticket, self._scheduler)
        worker.signals.finished.connect(self._on_page_rendered)
        worker.signals.failed.connect(self._on_render_failed)
        self._pool.start(worker)

    def _on_page_rendered(self, ticket: RenderTicket, rendered: RenderedPage) -> None:
        if not self._scheduler.is_current(ticket):
            return
        self._images[ticket.page] = rendered_to_qimage(rendered)
        self._failed_pages.discard(ticket.page)
        self.update()

    def _on_render_failed(self, ticket: RenderTicket, message: str) -> None:
        if not self._scheduler.is_current(ticket):
            return
        logger.error("Render failed for page %d: %s", ticket.page, message)
        self._failed_pages.add(ticket.page)
        self.render_failed.emit(ticket.page, message)
        self.update()

    def _overlay_items(self, page: int) -> list[OverlayItem]:
        if self._store is None:
            return []
        return compose_page(
            self._store.page_fields(page),
            self._layout.scale,
            self.mode,
            values=self._values,
            selected_ids=self._store.selected_ids if self.mode is OverlayMode.EDIT else (),
            origin=self._layout.origins[page - 1],
        )

    def paintEvent(self, event) -> None:  # type: ignore[override]
        del event
        painter = QPainter(self)
        painter.fillRect(self.rect(), QColor("#e9eaee"))

        for page in range(1, self._layout.page_count + 1):
            rect = _qrect(self._layout.page_rect(page))
            image = self._images.get(page)
            if image is not None:
                # Stale rasters are stretched until the new scale arrives.
                painter.drawImage(rect, image)
            else:
                painter.fillRect(rect, QColor("#ffffff"))
                painter.setPen(QColor("#9e9e9e"))
                message = "Failed to render page" if page in self._failed_pages else "Rendering..."
                painter.drawText(rect, Qt.AlignmentFlag.AlignCenter, f"{message} {page}")

            if self._overlay_masked or self.mode is OverlayMode.FILL:
                continue
            for item in self._overlay_items(page):
                if self.mode is OverlayMode.EDIT:
                    self._paint_edit_item(painter, item)
                else:
                    _paint_value(painter, item)

        marquee = self._engine.marquee_rect if self._engine is not None else None
        if marquee is not None:
            painter.setPen(QPen(QColor("#1565c0"), 1, Qt.PenStyle.DashLine))
            painter.fillRect(_qrect(marquee), QColor(21, 101, 192, 40))
            painter.drawRect(_qrect(marquee))

    def _paint_edit_item(self, painter: QPainter, item: OverlayItem) -> None:
        color = QColor("#c62828") if item.selected else QColor("#1565c0")
        pen = QPen(color)
        pen.setWidth(2)
        painter.setPen(pen)
        painter.drawRect(_qrect(item.box))
        if item.text:
            painter.setFont(_font(item.font_px))
            painter.drawText(
                _qrect(item.rect).adjusted(4, 0, -4, 0),
                _alignment(item),
                item.text,
            )
        if self._engine is not None and item.selected:
            resizable = self._engine.resizable_field()
            if resizable is not None and resizable.id == item.field_id:
                handle = self._engine.resize_handle_rect(resizable)
                if handle is not None:
                    painter.fillRect(_qrect(handle), color)

    def mousePressEvent(self, event) -> None:  # type: ignore[override]
        if self._engine is None or event.button() != Qt.MouseButton.LeftButton:
            return
        self.setFocus()
        pos = event.position()
        if self._engine.pointer_down(pos.x(), pos.y()):
            self.selection_changed.emit()
        self.update()

    def mouseMoveEvent(self, event) -> None:  # type: ignore[override]
        if self._engine is None:
            return
        pos = event.position()
        if self._engine.pointer_move(pos.x(), pos.y()):
            self.fields_changed.emit()
            self.update()

    def mouseReleaseEvent(self, event) -> None:  # type: ignore[override]
        if self._engine is None:
            return
        pos = event.position()
        before = set(self._engine.store.selected_ids)
        changed = self._engine.pointer_up(pos.x(), pos.y())
        if self._engine.store.selected_ids != before:
            self.selection_changed.emit()
        elif changed:
            self.fields_changed.emit()
        self.update()

    def keyPressEvent(self, event) -> None:  # type: ignore[override]
        if self._engine is None:
            super().keyPressEvent(event)
            return
        modifiers = event.modifiers()
        ctrl = bool(modifiers & Qt.KeyboardModifier.ControlModifier)
        meta = bool(modifiers & Qt.KeyboardModifier.MetaModifier)
        key = _KEY_NAMES.get(event.key())
        if key is None:
            key = event.text()
            if (ctrl or meta) and Qt.Key.Key_A.value <= event.key() <= Qt.Key.Key_Z.value:
                key = chr(event.key()).lower()
        focused = QApplication.focusWidget()
        key_event = KeyEvent(
            key=key,
            shift=bool(modifiers & Qt.KeyboardModifier.ShiftModifier),
            ctrl=ctrl,
            meta=meta,
            in_text_input=isinstance(focused, (QLineEdit, QPlainTextEdit)),
        )
        before = set(self._engine.store.selected_ids)
        if not self._engine.key_press(key_event):
            super().keyPressEvent(event)
            return
        event.accept()
        if self._engine.store.selected_ids != before:
            self.selection_changed.emit()
        self.fields_changed.emit()
        self.update()

    def _sync_inputs(self) -> None:
        """Create, move and fill the input widgets of the filler view."""
        if self._store is None:
            return
        wanted: dict[str, OverlayItem] = {}
        for page in range(1, self._layout.page_count + 1):
            for item in self._overlay_items(page):
                wanted[item.field_id] = item

        for field_id in list(self._inputs):
            if field_id not in wanted:
                self._inputs.pop(field_id).deleteLater()

        for field_id, item in wanted.items():
            widget = self._inputs.get(field_id)
            if widget is None:
                widget = self._make_input(self._store.get(field_id))
                self._inputs[field_id] = widget
            target = item.box if item.field_type is FieldType.CHECKBOX else item.rect
            widget.setGeometry(_qrect(target).toRect())
            widget.setFont(_font(item.font_px))
            widget.setEnabled(not self._read_only)
            widget.setVisible(not self._overlay_masked)

    def _make_input(self, field: FormField) -> QWidget:
        value = resolve_value(field, self._values)
        field_id = field.id

        if field.field_type is FieldType.CHECKBOX:
            box = QCheckBox(self)
            box.setChecked(parse_checkbox(value))
            box.toggled.connect(lambda checked: self.value_changed.emit(field_id, bool(checked)))
            return box
        if field.field_type is FieldType.MULTILINE:
            area = QPlainTextEdit(self)
            area.setPlaceholderText(field.label or "")
            area.setPlainText("" if value is None else str(value))
            area.textChanged.connect(lambda: self.value_changed.emit(field_id, area.toPlainText()))
            return area
        if field.field_type is FieldType.DATE:
            date_edit = QDateEdit(self)
            date_edit.setCalendarPopup(True)
            date_edit.setDisplayFormat("yyyy-MM-dd")
            # The minimum date stands for "no value" and is shown blank.
            date_edit.setMinimumDate(_NO_DATE)
            date_edit.setSpecialValueText(" ")
            parsed = QDate.fromString(str(value or ""), "yyyy-MM-dd")
            date_edit.setDate(parsed if parsed.isValid() else _NO_DATE)
            date_edit.dateChanged.connect(
                lambda date: self.value_changed.emit(
                    field_id, "" if date == _NO_DATE else date.toString("yyyy-MM-dd")
                )
            )
            return date_edit
        if field.field_type is FieldType.NUMBER:
            number = QLineEdit(self)
            number.setValidator(QDoubleValidator(number))
            number.setPlaceholderText(field.label or "")
            number.setText("" if value is None else str(value))
            number.textChanged.connect(lambda text: self.value_changed.emit(field_id, text))
            return number

        line = QLineEdit(self)
        line.setPlaceholderText(field.label or "")
        line.setText("" if value is None else str(value))
        line.textChanged.connect(lambda text: self.value_changed.emit(field_id, text))
        return line


def _qrect(rect: ViewRect) -> QRectF:
    return QRectF(rect.left, rect.top, rect.width, rect.height)


def _font(pixel_size: float) -> QFont:
    font = QFont("serif")
    font.setPixelSize(max(1, round(pixel_size)))
    return font


def _alignment(item: OverlayItem) -> Qt.AlignmentFlag:
    horizontal = (
        Qt.AlignmentFlag.AlignHCenter if item.h_align is HAlign.CENTER else Qt.AlignmentFlag.AlignLeft
    )
    vertical = Qt.AlignmentFlag.AlignTop if item.v_align is VAlign.TOP else Qt.AlignmentFlag.AlignVCenter
    return horizontal | vertical


def _paint_value(painter: QPainter, item: OverlayItem) -> None:
    if not item.text:
        return
    painter.setPen(QColor("#1a1a1a"))
    painter.setFont(_font(item.font_px))
    flags = _alignment(item).value
    if item.field_type is FieldType.MULTILINE:
        flags |= Qt.TextFlag.TextWordWrap.value
    painter.save()
    painter.setClipRect(_qrect(item.rect))
    painter.drawText(_qrect(item.rect), flags, item.text)
    painter.restore()
