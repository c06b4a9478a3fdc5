"""Tests for submission values and settings."""

import pytest

from conftest import make_field
from labforms.config import Settings
from labforms.model.field import FieldType
from labforms.model.values import (
    Submission,
    SubmissionLockedError,
    SubmissionPayloadError,
    SubmissionReviewError,
    SubmissionStatus,
    check_grade,
    check_revision_remarks,
    missing_required,
    normalize_reference,
    normalize_values,
    parse_checkbox,
)


@pytest.mark.parametrize("raw", [True, "true", "on", "TRUE", " yes ", 1, "1"])
def test_checked_inputs(raw):
    assert parse_checkbox(raw) is True


@pytest.mark.parametrize("raw", [False, "false", "off", "", None, 0, 2, "maybe", []])
def test_unchecked_inputs(raw):
    assert parse_checkbox(raw) is False


def test_normalize_values_rekeys_and_canonicalizes():
    fields = [
        make_field("f1", label="Volume"),
        make_field("f2", FieldType.CHECKBOX, label="Agree"),
        make_field("f3"),
    ]
    raw = {"Volume": "25.0", "f2": "on", "f3": ""}
    assert normalize_values(fields, raw) == {"f1": "25.0", "f2": True}


def test_missing_required():
    fields = [
        make_field("name", required=True),
        make_field("ok", FieldType.CHECKBOX, required=True),
        make_field("notes"),
    ]
    missing = missing_required(fields, {"name": "Ada", "ok": "off"})
    assert [f.id for f in missing] == ["ok"]
    assert missing_required(fields, {"name": "Ada", "ok": True}) == []


@pytest.mark.parametrize(
    "ref,expected",
    [("abc", "abc"), ({"_id": "abc", "name": "x"}, "abc"), ({"id": 7}, "7"), (None, None), ({}, None)],
)
def test_normalize_reference(ref, expected):
    assert normalize_reference(ref) == expected


class TestSubmission:
    def test_from_payload_with_expanded_references(self):
        submission = Submission.from_payload(
            {
                "_id": "s1",
                "studentId": {"_id": "u1", "name": "Ada"},
                "templateId": {"_id": "t1", "title": "Titration"},
                "experimentId": "e1",
                "values": {"f1": "3"},
                "status": "SUBMITTED",
            }
        )
        assert (submission.student_id, submission.template_id, submission.experiment_id) == ("u1", "t1", "e1")
        assert submission.status is SubmissionStatus.SUBMITTED
        assert not submission.is_locked

    def test_locked_submission_rejects_values(self):
        submission = Submission.from_payload({"_id": "s1", "isLocked": True})
        assert submission.is_locked
        with pytest.raises(SubmissionLockedError):
            submission.set_value("f1", "x")
        assert submission.values == {}

    def test_missing_status_is_not_submitted(self):
        submission = Submission.from_payload({"_id": "s1", "templateId": "t1"})
        assert submission.status is SubmissionStatus.NOT_SUBMITTED
        assert not submission.is_locked
        submission.set_value("f1", "x")
        assert submission.values == {"f1": "x"}

    def test_graded_submission_is_locked(self):
        submission = Submission.from_payload({"_id": "s1", "status": "GRADED", "grade": "87.5"})
        assert submission.status is SubmissionStatus.GRADED
        assert submission.grade == 87.5
        assert submission.is_locked
        with pytest.raises(SubmissionLockedError):
            submission.set_value("f1", "x")

    def test_needs_revision_stays_editable(self):
        submission = Submission.from_payload(
            {"_id": "s1", "status": "NEEDS_REVISION", "remarks": "Redo part 2", "isLocked": False}
        )
        assert submission.status is SubmissionStatus.NEEDS_REVISION
        assert submission.remarks == "Redo part 2"
        assert not submission.is_locked

    def test_unknown_status(self):
        with pytest.raises(SubmissionPayloadError, match="LOCKED"):
            Submission.from_payload({"_id": "s1", "status": "LOCKED"})


class TestReviewChecks:
    @pytest.mark.parametrize("grade", [0, "100", 72.5])
    def test_grades_in_range(self, grade):
        assert check_grade(grade) == float(grade)

    @pytest.mark.parametrize("grade", [-1, 100.5, "A+", None])
    def test_grades_rejected(self, grade):
        with pytest.raises(SubmissionReviewError):
            check_grade(grade)

    def test_remarks_are_stripped(self):
        assert check_revision_remarks("  Label the axes \n") == "Label the axes"

    @pytest.mark.parametrize("remarks", ["", "   ", None])
    def test_remarks_required(self, remarks):
        with pytest.raises(SubmissionReviewError):
            check_revision_remarks(remarks)


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.api_url == "http://localhost:5000/api"
        assert settings.http_timeout == 15.0

    def test_environment_overrides(self):
        settings = Settings.from_env(
            {
                "LABFORMS_API_URL": "https://labs.example.org/api/",
                "LABFORMS_HTTP_TIMEOUT": "3",
                "LABFORMS_LOG_LEVEL": "debug",
            }
        )
        assert settings.api_url == "https://labs.example.org/api"
        assert settings.http_timeout == 3.0
        assert settings.log_level == "DEBUG"

    def test_session_settings(self):
        settings = Settings.from_env(
            {
                "LABFORMS_SESSION_COOKIE": "s%3Aabc",
                "LABFORMS_EMAIL": "ta@example.org",
                "LABFORMS_PASSWORD": "secret",
            }
        )
        assert settings.session_cookie == "s%3Aabc"
        assert (settings.email, settings.password) == ("ta@example.org", "secret")
        assert Settings.from_env({}).session_cookie is None
