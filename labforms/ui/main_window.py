"""Main application window for template editing, filling and review."""

from __future__ import annotations

from dataclasses import replace
import logging
from pathlib import Path
from typing import Any

from PySide6.QtCore import Qt, QTimer, Signal
from PySide6.QtGui import QAction
from PySide6.QtWidgets import (
    QCheckBox,
    QDoubleSpinBox,
    QFileDialog,
    QFormLayout,
    QInputDialog,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMainWindow,
    QMessageBox,
    QScrollArea,
    QSplitter,
    QToolBar,
    QWidget,
)

from labforms.config import FIT_ZOOM, Settings
from labforms.editing.engine import SHORTCUTS
from labforms.model.document import PdfDocument
from labforms.model.field import FieldType
from labforms.model.template import TemplateRecord
from labforms.model.values import (
    GRADE_MAX,
    GRADE_MIN,
    Submission,
    SubmissionLockedError,
    SubmissionReviewError,
    missing_required,
    normalize_values,
)
from labforms.pdf.importer import PdfImportError, import_pdf_fields
from labforms.pdf.loader import PdfLoadError, load_pdf, open_pdf_bytes
from labforms.pdf.writer import PdfExportError, write_filled_pdf
from labforms.persistence.gateway import (
    InMemoryTemplateGateway,
    TemplateGateway,
    TemplateGatewayError,
    save_store,
)
from labforms.persistence.codec import TemplateCodecError
from labforms.state.session import FieldStore, TemplateLockedError
from labforms.viewer.canvas import PAGE_GAP, PdfCanvas
from labforms.viewer.overlay import OverlayMode, ZoomController
from labforms.viewer.transform import ViewRect

logger = logging.getLogger(__name__)

_TOOL_LABELS = {
    FieldType.TEXT: "Single Line Text",
    FieldType.MULTILINE: "Paragraph Text",
    FieldType.NUMBER: "Number",
    FieldType.DATE: "Date",
    FieldType.CHECKBOX: "Checkbox",
    FieldType.SIGNATURE: "Signature",
}


class PropertiesPanel(QWidget):
    """Edits the single selected field through the editing engine."""

    def __init__(self, window: "MainWindow") -> None:
        super().__init__()
        self._window = window
        self._syncing = False

        self.label_edit = QLineEdit()
        self.required_box = QCheckBox("Required")
        self.width_spin = _spin(1.0, 5000.0)
        self.height_spin = _spin(1.0, 5000.0)
        self.font_spin = _spin(4.0, 96.0)

        layout = QFormLayout(self)
        layout.addRow("Label", self.label_edit)
        layout.addRow("", self.required_box)
        layout.addRow("Width", self.width_spin)
        layout.addRow("Height", self.height_spin)
        layout.addRow("Font size", self.font_spin)

        self.label_edit.textEdited.connect(lambda text: self._apply(label=text))
        self.required_box.toggled.connect(lambda checked: self._apply(required=checked))
        self.width_spin.valueChanged.connect(lambda value: self._apply(width=value))
        self.height_spin.valueChanged.connect(lambda value: self._apply(height=value))
        self.font_spin.valueChanged.connect(lambda value: self._apply(font_size=value))
        self.setEnabled(False)

    def show_field(self) -> None:
        engine = self._window.canvas.engine
        field = engine.resizable_field() if engine is not None else None
        self._syncing = True
        try:
            self.setEnabled(field is not None)
            if field is None:
                self.label_edit.clear()
                return
            self.label_edit.setText(field.label or "")
            self.required_box.setChecked(field.required)
            self.width_spin.setValue(field.width)
            self.height_spin.setValue(field.height)
            self.font_spin.setValue(field.effective_font_size)
        finally:
            self._syncing = False

    def _apply(self, **changes) -> None:
        engine = self._window.canvas.engine
        if self._syncing or engine is None:
            return
        if engine.update_selected(**changes):
            self._window.canvas.update()
            self._window.on_fields_changed()


class MainWindow(QMainWindow):
    submission_ready = Signal(dict)

    def __init__(
        self,
        mode: OverlayMode,
        gateway: TemplateGateway | None = None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__()
        self.mode = mode
        self.settings = settings or Settings()
        self.gateway: TemplateGateway = gateway or InMemoryTemplateGateway()
        self.setWindowTitle("Lab Form Builder")
        self.resize(1300, 850)

        self._document: PdfDocument | None = None
        self._store: FieldStore | None = None
        self._submission: Submission | None = None
        zoom_range = self.settings.edit_zoom if mode is OverlayMode.EDIT else self.settings.fill_zoom
        self._zoom = ZoomController(
            zoom_range,
            step=self.settings.zoom_step,
            mask_seconds=self.settings.zoom_mask_seconds if mode is OverlayMode.FILL else 0.0,
        )

        self.page_list = QListWidget()
        self.page_list.currentRowChanged.connect(self._on_page_selected)

        self.canvas = PdfCanvas(mode, self.settings)
        self.canvas.fields_changed.connect(self.on_fields_changed)
        self.canvas.selection_changed.connect(self._on_selection_changed)
        self.canvas.zoom_requested.connect(self.set_zoom)
        self.canvas.value_changed.connect(self._on_value_changed)
        self.canvas.render_failed.connect(self._on_render_failed)

        self.scroll_area = QScrollArea()
        self.scroll_area.setWidgetResizable(False)
        self.scroll_area.setAlignment(Qt.AlignmentFlag.AlignHCenter)
        self.scroll_area.setWidget(self.canvas)
        self.scroll_area.verticalScrollBar().valueChanged.connect(self._track_active_page)

        splitter = QSplitter()
        splitter.addWidget(self.page_list)
        splitter.addWidget(self.scroll_area)
        splitter.setStretchFactor(0, 1)
        splitter.setStretchFactor(1, 4)
        self.properties = PropertiesPanel(self)
        if mode is OverlayMode.EDIT:
            splitter.addWidget(self.properties)
            splitter.setStretchFactor(2, 1)
        self.setCentralWidget(splitter)

        self._build_toolbar()
        self.statusBar().showMessage("Ready")

    def _build_toolbar(self) -> None:
        toolbar = QToolBar("Main Toolbar")
        toolbar.setMovable(False)
        self.addToolBar(toolbar)

        if self.mode is OverlayMode.EDIT:
            self.title_edit = QLineEdit()
            self.title_edit.setPlaceholderText("Enter form title...")
            self.title_edit.setMaximumWidth(280)
            self.title_edit.textEdited.connect(self._on_title_edited)
            toolbar.addWidget(self.title_edit)

            self._add_action(toolbar, "Save Draft", self.save_template, "Ctrl+S")
            self._add_action(toolbar, "Publish", self.publish_template)
            toolbar.addSeparator()
            shortcuts = {field_type: key for key, field_type in SHORTCUTS.items()}
            for field_type, label in _TOOL_LABELS.items():
                self._add_action(
                    toolbar,
                    f"{label} ({shortcuts[field_type].upper()})",
                    lambda _checked=False, ft=field_type: self.add_field(ft),
                )
            toolbar.addSeparator()
            self._add_action(toolbar, "Delete Field", self.delete_selected_fields)
        else:
            self._add_action(toolbar, "Download PDF", self.export_pdf)
            if self.mode is OverlayMode.FILL:
                self._add_action(toolbar, "Submit", self.submit_values)
            else:
                self._add_action(toolbar, "Request Revision", self._prompt_revision)
                self._add_action(toolbar, "Grade and Lock", self._prompt_grade)

        toolbar.addSeparator()
        self._add_action(toolbar, "-", lambda: self.set_zoom(self._zoom.scale - self._zoom.step))
        self.zoom_label = QLabel("100%")
        toolbar.addWidget(self.zoom_label)
        self._add_action(toolbar, "+", lambda: self.set_zoom(self._zoom.scale + self._zoom.step))

    def _add_action(self, toolbar: QToolBar, text: str, slot, shortcut: str | None = None) -> QAction:
        action = QAction(text, self)
        if shortcut:
            action.setShortcut(shortcut)
        action.triggered.connect(slot)
        toolbar.addAction(action)
        return action

    @property
    def values(self) -> dict[str, Any]:
        """Value set of the open submission, keyed by field id."""
        return self._submission.values if self._submission is not None else {}

    def closeEvent(self, event) -> None:  # type: ignore[override]
        self._close_document()
        super().closeEvent(event)

    # Loading

    def open_template(self, template_id: str) -> bool:
        try:
            record = self.gateway.load(template_id)
        except (TemplateGatewayError, TemplateCodecError) as exc:
            QMessageBox.critical(self, "Open Failed", str(exc))
            return False
        return self._open_record(record)

    def open_local_pdf(self, path: str | Path, import_fields: bool = True) -> bool:
        """Start a new, unsaved template from a PDF on disk."""
        path = Path(path)
        try:
            document = load_pdf(path, timeout=self.settings.http_timeout)
        except PdfLoadError as exc:
            QMessageBox.critical(self, "Open Failed", str(exc))
            return False

        record = TemplateRecord.from_pdf(path.stem, path.stem, str(path), document)
        if import_fields:
            try:
                record.fields = import_pdf_fields(document.data)
            except PdfImportError as exc:
                QMessageBox.warning(self, "Field Import Warning", str(exc))
        if isinstance(self.gateway, InMemoryTemplateGateway):
            self.gateway.put_record(record)
        return self._open_record(record, document)

    def open_submission(self, submission: Submission, record: TemplateRecord | None = None) -> bool:
        """Show a submission's values over its template (filler or reviewer)."""
        if record is None:
            if submission.template_id is None:
                QMessageBox.critical(self, "Open Failed", "Submission has no template")
                return False
            try:
                record = self.gateway.load(submission.template_id)
            except (TemplateGatewayError, TemplateCodecError) as exc:
                QMessageBox.critical(self, "Open Failed", str(exc))
                return False
        if not self._open_record(record):
            return False
        self._submission = replace(submission, values=normalize_values(self._store.fields, submission.values))
        self.canvas.set_values(
            self.values,
            read_only=self.mode is OverlayMode.REVIEW or self._submission.is_locked,
        )
        return True

    def _open_record(self, record: TemplateRecord, document: PdfDocument | None = None) -> bool:
        self._close_document()
        if document is None:
            try:
                document = open_pdf_bytes(self.gateway.fetch_pdf(record.pdf_url), record.pdf_url)
            except (TemplateGatewayError, PdfLoadError) as exc:
                QMessageBox.critical(self, "Open Failed", str(exc))
                return False

        self._document = document
        self._store = FieldStore.from_record(record)
        self._submission = Submission(None, None, record.template_id, None)
        if self.mode is OverlayMode.EDIT:
            self.title_edit.setText(record.title)

        width, _height = document.page_size(1)
        viewport_width = self.scroll_area.viewport().width() - 48
        self._zoom.fit_width(width, viewport_width, FIT_ZOOM)
        self.canvas.set_document(document, self._store, self._zoom.scale)
        self.canvas.set_values(self.values)
        self.zoom_label.setText(f"{self._zoom.percent}%")
        self._populate_page_list()
        self.setWindowTitle(f"Lab Form Builder - {record.title}")
        self.statusBar().showMessage(
            f"Loaded {record.title}: {document.page_count} page(s), {len(self._store)} field(s)"
        )
        return True

    def _close_document(self) -> None:
        if self._store is not None and self._store.modified:
            logger.info("Discarding unsaved edits to template %s", self._store.template_id)
        self.canvas.clear()
        if self._document is not None:
            self._document.close()
            self._document = None
        self._store = None
        self._submission = None
        self.page_list.clear()

    # Editing

    def add_field(self, field_type: FieldType) -> None:
        engine = self.canvas.engine
        if engine is None:
            return
        viewport = self.scroll_area.viewport()
        visible = ViewRect(
            float(self.scroll_area.horizontalScrollBar().value()),
            float(self.scroll_area.verticalScrollBar().value()),
            float(viewport.width()),
            float(viewport.height()),
        )
        if engine.add_from_toolbox(field_type, visible) is None:
            self.statusBar().showMessage("Field could not be added.")
            return
        self.canvas.update()
        self._on_selection_changed()
        self.on_fields_changed()

    def delete_selected_fields(self) -> None:
        engine = self.canvas.engine
        if engine is None or not engine.delete_selection():
            self.statusBar().showMessage("No selected field to delete.")
            return
        self.canvas.update()
        self._on_selection_changed()
        self.on_fields_changed()

    def save_template(self) -> None:
        self._save(publish=False)

    def publish_template(self) -> None:
        if self._store is None:
            return
        answer = QMessageBox.question(
            self, "Publish Template", "Publishing will lock the design. Continue?"
        )
        if answer != QMessageBox.StandardButton.Yes:
            return
        self._save(publish=True)

    def _save(self, publish: bool) -> None:
        if self._store is None:
            QMessageBox.information(self, "No Template", "Open a template first.")
            return
        try:
            record = save_store(self.gateway, self._store, publish=publish)
        except (TemplateGatewayError, TemplateCodecError, TemplateLockedError) as exc:
            logger.error("Save failed: %s", exc)
            QMessageBox.critical(self, "Save Failed", str(exc))
            return
        self.canvas.update()
        self._on_selection_changed()
        label = "Published" if record.is_published else "Saved"
        self.statusBar().showMessage(f"{label}: {record.title} ({len(record.fields)} field(s))")

    def _on_title_edited(self, title: str) -> None:
        if self._store is not None:
            self._store.set_title(title)

    # Filling and export

    def export_pdf(self) -> None:
        if self._document is None or self._store is None:
            QMessageBox.information(self, "No Document", "Open a form first.")
            return
        output_path, _ = QFileDialog.getSaveFileName(
            self,
            "Save Filled PDF",
            str(Path.home() / f"{self._store.title}_filled.pdf"),
            "PDF Files (*.pdf)",
        )
        if not output_path:
            return
        try:
            write_filled_pdf(self._document.data, output_path, self._store.fields, self.values)
        except PdfExportError as exc:
            QMessageBox.critical(self, "Export Failed", f"{exc}. Please try again.")
            return
        self.statusBar().showMessage(f"Saved: {output_path}")

    def submit_values(self) -> None:
        if self._store is None:
            return
        if self._submission is not None and self._submission.is_locked:
            QMessageBox.information(self, "Locked", "This submission has been graded and locked.")
            return
        missing = missing_required(self._store.fields, self.values)
        if missing:
            names = ", ".join(field.label or field.field_type.value for field in missing)
            QMessageBox.warning(self, "Missing Fields", f"Please fill all required fields: {names}")
            return
        self.submission_ready.emit(dict(self.values))
        self.statusBar().showMessage(f"Submitted {len(self.values)} value(s)")

    def _on_value_changed(self, field_id: str, value: Any) -> None:
        if self._submission is None:
            return
        try:
            self._submission.set_value(field_id, value)
        except SubmissionLockedError as exc:
            logger.warning("Ignored edit of %s: %s", field_id, exc)
            self.statusBar().showMessage("This submission has been graded and locked.")

    # Review

    def _prompt_revision(self) -> None:
        remarks, ok = QInputDialog.getMultiLineText(self, "Request Revision", "Remarks for the student:")
        if ok:
            self.request_revision(remarks)

    def _prompt_grade(self) -> None:
        grade, ok = QInputDialog.getDouble(
            self, "Grade and Lock", f"Grade ({GRADE_MIN:g}-{GRADE_MAX:g}):", 0.0, GRADE_MIN, GRADE_MAX, 1
        )
        if not ok:
            return
        feedback, ok = QInputDialog.getMultiLineText(self, "Grade and Lock", "Feedback (optional):")
        if ok:
            self.finalize_grade(grade, feedback)

    def request_revision(self, remarks: str) -> bool:
        """Send the submission back to the student with remarks."""
        submission = self._reviewable_submission()
        if submission is None:
            return False
        try:
            updated = self.gateway.review_submission(submission.submission_id, remarks)
        except (SubmissionReviewError, TemplateGatewayError) as exc:
            QMessageBox.warning(self, "Request Revision", str(exc))
            return False
        self._show_reviewed(updated)
        self.statusBar().showMessage("Revision requested")
        return True

    def finalize_grade(self, grade: float, feedback: str = "") -> bool:
        """Grade the submission; the server locks it against further edits."""
        submission = self._reviewable_submission()
        if submission is None:
            return False
        try:
            updated = self.gateway.finalize_submission(submission.submission_id, grade, feedback)
        except (SubmissionReviewError, TemplateGatewayError) as exc:
            QMessageBox.warning(self, "Grade and Lock", str(exc))
            return False
        self._show_reviewed(updated)
        self.statusBar().showMessage(f"Graded {updated.grade:g} and locked")
        return True

    def _reviewable_submission(self) -> Submission | None:
        submission = self._submission
        if submission is None or submission.submission_id is None:
            QMessageBox.information(self, "No Submission", "Open a submission first.")
            return None
        if submission.is_locked:
            QMessageBox.information(self, "Locked", "This submission has already been graded and locked.")
            return None
        return submission

    def _show_reviewed(self, updated: Submission) -> None:
        self._submission = replace(updated, values=self._submission.values)
        self.canvas.set_values(self.values, read_only=True)

    # View

    def set_zoom(self, scale: float) -> None:
        previous = self._zoom.scale
        new_scale = self._zoom.set_scale(scale)
        if new_scale == previous:
            return
        if self._zoom.masked:
            self.canvas.set_overlay_masked(True)
            QTimer.singleShot(
                int(self._zoom.mask_seconds * 1000),
                lambda: self.canvas.set_overlay_masked(self._zoom.masked),
            )
        self.canvas.set_scale(new_scale)
        self.zoom_label.setText(f"{self._zoom.percent}%")

    def _populate_page_list(self) -> None:
        self.page_list.clear()
        if self._document is None:
            return
        for page_number in range(1, self._document.page_count + 1):
            self.page_list.addItem(QListWidgetItem(f"Page {page_number}"))
        self.page_list.setCurrentRow(0)

    def _on_page_selected(self, row: int) -> None:
        if self._document is None or row < 0:
            return
        page = row + 1
        if self.canvas.engine is not None:
            self.canvas.engine.set_active_page(page)
        rect = self.canvas.page_rect(page)
        scroll = self.scroll_area.verticalScrollBar()
        if not rect.top <= scroll.value() + 1 <= rect.bottom:
            scroll.setValue(int(rect.top))

    def _track_active_page(self, value: int) -> None:
        layout = self.canvas.layout_info
        middle = value + self.scroll_area.viewport().height() / 2.0
        for page in range(1, layout.page_count + 1):
            rect = layout.page_rect(page)
            if rect.top <= middle <= rect.bottom + PAGE_GAP:
                if self.canvas.engine is not None:
                    self.canvas.engine.set_active_page(page)
                self.page_list.blockSignals(True)
                self.page_list.setCurrentRow(page - 1)
                self.page_list.blockSignals(False)
                return

    def on_fields_changed(self) -> None:
        if self._store is None:
            return
        self.properties.show_field()
        marker = " (unsaved)" if self._store.modified else ""
        self.statusBar().showMessage(f"{len(self._store)} field(s){marker}")

    def _on_selection_changed(self) -> None:
        self.properties.show_field()
        if self._store is not None:
            self.statusBar().showMessage(f"{len(self._store.selected_ids)} field(s) selected")

    def _on_render_failed(self, page: int, message: str) -> None:
        self.statusBar().showMessage(f"Page {page} failed to render: {message}")


def _spin(minimum: float, maximum: float) -> QDoubleSpinBox:
    spin = QDoubleSpinBox()
    spin.setRange(minimum, maximum)
    spin.setDecimals(1)
    return spin
