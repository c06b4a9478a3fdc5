"""Submission value sets and the lenient parsing done at their boundary."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from labforms.model.field import FieldType, FormField

Scalar = Union[str, int, float, bool]

_CHECKED_STRINGS = {"true", "on", "1", "yes"}


GRADE_MIN = 0.0
GRADE_MAX = 100.0


class SubmissionStatus(str, Enum):
    NOT_SUBMITTED = "NOT_SUBMITTED"
    SUBMITTED = "SUBMITTED"
    NEEDS_REVISION = "NEEDS_REVISION"
    GRADED = "GRADED"


class SubmissionLockedError(RuntimeError):
    """Raised when values of a locked submission are changed."""


class SubmissionPayloadError(ValueError):
    """Raised when a stored submission payload cannot be decoded."""


class SubmissionReviewError(ValueError):
    """Raised when a revision request or grade is rejected before sending."""


def parse_checkbox(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in _CHECKED_STRINGS
    return False


def is_empty(value: Any) -> bool:
    return value is None or value == ""


def resolve_value(field_: FormField, values: Mapping[str, Any]) -> Any:
    """Value for a field keyed by id, falling back to its label."""
    if field_.id in values:
        return values[field_.id]
    if field_.label and field_.label in values:
        return values[field_.label]
    return None


def normalize_values(fields: Iterable[FormField], raw: Mapping[str, Any]) -> dict[str, Scalar]:
    """Re-key a raw value mapping by field id with canonical checkbox booleans."""
    normalized: dict[str, Scalar] = {}
    for field_ in fields:
        value = resolve_value(field_, raw)
        if field_.field_type is FieldType.CHECKBOX:
            if value is not None:
                normalized[field_.id] = parse_checkbox(value)
        elif not is_empty(value):
            normalized[field_.id] = value
    return normalized


def missing_required(fields: Iterable[FormField], values: Mapping[str, Any]) -> list[FormField]:
    missing = []
    for field_ in fields:
        if not field_.required:
            continue
        value = resolve_value(field_, values)
        if field_.field_type is FieldType.CHECKBOX:
            if not parse_checkbox(value):
                missing.append(field_)
        elif is_empty(value):
            missing.append(field_)
    return missing


def normalize_reference(ref: Any) -> str | None:
    """Reduce a raw id or an expanded document reference to its id."""
    if ref is None:
        return None
    if isinstance(ref, Mapping):
        inner = ref.get("_id", ref.get("id"))
        return None if inner is None else str(inner)
    return str(ref)


def check_revision_remarks(remarks: str | None) -> str:
    """Remarks are mandatory when sending a submission back for revision."""
    text = (remarks or "").strip()
    if not text:
        raise SubmissionReviewError("Add remarks explaining what needs to be revised")
    return text


def check_grade(grade: Any) -> float:
    try:
        value = float(grade)
    except (TypeError, ValueError) as exc:
        raise SubmissionReviewError(f"Grade must be a number, got {grade!r}") from exc
    if not GRADE_MIN <= value <= GRADE_MAX:
        raise SubmissionReviewError(
            f"Grade must be between {GRADE_MIN:g} and {GRADE_MAX:g}, got {value:g}"
        )
    return value


@dataclass(slots=True)
class Submission:
    submission_id: str | None
    student_id: str | None
    template_id: str | None
    experiment_id: str | None
    values: dict[str, Any] = field(default_factory=dict)
    status: SubmissionStatus = SubmissionStatus.NOT_SUBMITTED
    locked: bool = False
    remarks: str = ""
    grade: float | None = None
    feedback: str = ""

    @property
    def is_locked(self) -> bool:
        """Graded submissions are locked even when the flag was not stored."""
        return self.locked or self.status is SubmissionStatus.GRADED

    def set_value(self, field_id: str, value: Any) -> None:
        if self.is_locked:
            raise SubmissionLockedError(f"Submission {self.submission_id} is locked")
        self.values[field_id] = value

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Submission":
        raw_status = payload.get("status") or SubmissionStatus.NOT_SUBMITTED.value
        try:
            status = SubmissionStatus(raw_status)
        except ValueError as exc:
            raise SubmissionPayloadError(f"Unknown submission status: {raw_status!r}") from exc

        grade = payload.get("grade")
        try:
            grade = float(grade) if grade is not None else None
        except (TypeError, ValueError) as exc:
            raise SubmissionPayloadError(f"Invalid grade: {grade!r}") from exc

        return cls(
            submission_id=normalize_reference(payload.get("_id")),
            student_id=normalize_reference(payload.get("studentId")),
            template_id=normalize_reference(payload.get("templateId")),
            experiment_id=normalize_reference(payload.get("experimentId")),
            values=dict(payload.get("values") or {}),
            status=status,
            locked=parse_checkbox(payload.get("isLocked", False)),
            remarks=payload.get("remarks") or "",
            grade=grade,
            feedback=payload.get("feedback") or "",
        )
