"""Load and save templates through the document store's REST endpoints."""

from __future__ import annotations

from collections.abc import Iterable
import copy
import logging
from typing import Any, Protocol

import httpx

from labforms.config import Settings
from labforms.model.field import FormField
from labforms.model.template import TemplateRecord
from labforms.model.values import (
    Submission,
    SubmissionPayloadError,
    SubmissionStatus,
    check_grade,
    check_revision_remarks,
)
from labforms.pdf.loader import PdfLoadError, fetch_pdf_bytes, resolve_pdf_source
from labforms.persistence.codec import decode_template, encode_save, encode_template
from labforms.state.session import FieldStore

logger = logging.getLogger(__name__)

SESSION_COOKIE = "connect.sid"


class TemplateGatewayError(RuntimeError):
    """Raised when the document store cannot be reached or rejects a request."""


class TemplateGateway(Protocol):
    def load(self, template_id: str) -> TemplateRecord: ...

    def save(
        self,
        template_id: str,
        title: str,
        fields: Iterable[FormField],
        is_published: bool | None = None,
    ) -> TemplateRecord: ...

    def fetch_pdf(self, pdf_url: str) -> bytes: ...

    def load_submission(self, submission_id: str) -> Submission: ...

    def review_submission(self, submission_id: str, remarks: str) -> Submission: ...

    def finalize_submission(self, submission_id: str, grade: float, feedback: str = "") -> Submission: ...


def save_store(gateway: TemplateGateway, store: FieldStore, publish: bool = False) -> TemplateRecord:
    """Persist the store explicitly; there is no autosave."""
    if store.template_id is None:
        raise TemplateGatewayError("Template has no id")
    record = gateway.save(
        store.template_id,
        store.title,
        store.fields,
        is_published=True if publish else None,
    )
    store.mark_saved(record)
    return record


class HttpTemplateGateway:
    def __init__(self, api_url: str, client: httpx.Client | None = None, timeout: float = 15.0) -> None:
        self.api_url = api_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.BaseTransport | None = None
    ) -> "HttpTemplateGateway":
        """Build a gateway that carries the configured session, logging in if asked."""
        cookies = {SESSION_COOKIE: settings.session_cookie} if settings.session_cookie else None
        client = httpx.Client(
            timeout=settings.http_timeout,
            cookies=cookies,
            follow_redirects=True,
            transport=transport,
        )
        gateway = cls(settings.api_url, client=client)
        if settings.email and settings.password:
            try:
                gateway.login(settings.email, settings.password)
            except TemplateGatewayError:
                gateway.close()
                raise
        return gateway

    def close(self) -> None:
        self._client.close()

    def login(self, email: str, password: str) -> dict[str, Any]:
        """Open a session; the client keeps the returned cookie for later requests."""
        user = self._request("POST", "/auth/login", json={"email": email, "password": password})
        logger.info("Logged in as %s", email)
        return user

    def load(self, template_id: str) -> TemplateRecord:
        return decode_template(self._request("GET", f"/templates/{template_id}"))

    def save(
        self,
        template_id: str,
        title: str,
        fields: Iterable[FormField],
        is_published: bool | None = None,
    ) -> TemplateRecord:
        body = encode_save(title, fields, is_published)
        record = decode_template(self._request("PUT", f"/templates/{template_id}", json=body))
        logger.info("Saved template %s (%d field(s))", template_id, len(record.fields))
        return record

    def fetch_pdf(self, pdf_url: str) -> bytes:
        """Fetch a template's PDF; upload paths are served from the API host."""
        location = resolve_pdf_source(pdf_url, self.api_url)
        try:
            return fetch_pdf_bytes(location, client=self._client)
        except PdfLoadError as exc:
            raise TemplateGatewayError(str(exc)) from exc

    def load_submission(self, submission_id: str) -> Submission:
        return self._submission("GET", f"/submissions/{submission_id}")

    def review_submission(self, submission_id: str, remarks: str) -> Submission:
        body = {"status": SubmissionStatus.NEEDS_REVISION.value, "remarks": check_revision_remarks(remarks)}
        submission = self._submission("PUT", f"/submissions/{submission_id}/review", json=body)
        logger.info("Requested revision of submission %s", submission_id)
        return submission

    def finalize_submission(self, submission_id: str, grade: float, feedback: str = "") -> Submission:
        body = {"grade": check_grade(grade), "feedback": feedback}
        submission = self._submission("PUT", f"/submissions/{submission_id}/finalize", json=body)
        logger.info("Graded submission %s: %g", submission_id, body["grade"])
        return submission

    def _submission(self, method: str, path: str, **kwargs) -> Submission:
        payload = self._request(method, path, **kwargs)
        try:
            return Submission.from_payload(payload)
        except SubmissionPayloadError as exc:
            raise TemplateGatewayError(f"{method} {self.api_url}{path}: {exc}") from exc

    def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        url = f"{self.api_url}{path}"
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise TemplateGatewayError(
                f"{method} {url} failed with status {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise TemplateGatewayError(f"{method} {url} failed") from exc


class InMemoryTemplateGateway:
    """Keeps wire-format payloads in a dict, as the document store would."""

    def __init__(self) -> None:
        self.documents: dict[str, dict[str, Any]] = {}
        self.submissions: dict[str, dict[str, Any]] = {}

    def put_record(self, record: TemplateRecord) -> None:
        self.documents[record.template_id] = encode_template(record)

    def put_submission(self, submission_id: str, payload: dict[str, Any]) -> None:
        self.submissions[submission_id] = {**copy.deepcopy(payload), "_id": submission_id}

    def load(self, template_id: str) -> TemplateRecord:
        try:
            payload = self.documents[template_id]
        except KeyError as exc:
            raise TemplateGatewayError(f"Template not found: {template_id}") from exc
        return decode_template(copy.deepcopy(payload))

    def save(
        self,
        template_id: str,
        title: str,
        fields: Iterable[FormField],
        is_published: bool | None = None,
    ) -> TemplateRecord:
        if template_id not in self.documents:
            raise TemplateGatewayError(f"Template not found: {template_id}")
        body = encode_save(title, fields, is_published)
        self.documents[template_id].update(copy.deepcopy(body))
        return self.load(template_id)

    def fetch_pdf(self, pdf_url: str) -> bytes:
        try:
            return fetch_pdf_bytes(pdf_url)
        except PdfLoadError as exc:
            raise TemplateGatewayError(str(exc)) from exc

    def load_submission(self, submission_id: str) -> Submission:
        try:
            payload = self.submissions[submission_id]
        except KeyError as exc:
            raise TemplateGatewayError(f"Submission not found: {submission_id}") from exc
        try:
            return Submission.from_payload(copy.deepcopy(payload))
        except SubmissionPayloadError as exc:
            raise TemplateGatewayError(str(exc)) from exc

    def review_submission(self, submission_id: str, remarks: str) -> Submission:
        remarks = check_revision_remarks(remarks)
        self._update_submission(
            submission_id, status=SubmissionStatus.NEEDS_REVISION.value, remarks=remarks
        )
        return self.load_submission(submission_id)

    def finalize_submission(self, submission_id: str, grade: float, feedback: str = "") -> Submission:
        grade = check_grade(grade)
        self._update_submission(
            submission_id,
            status=SubmissionStatus.GRADED.value,
            grade=grade,
            feedback=feedback,
            isLocked=True,
        )
        return self.load_submission(submission_id)

    def _update_submission(self, submission_id: str, **changes: Any) -> None:
        if submission_id not in self.submissions:
            raise TemplateGatewayError(f"Submission not found: {submission_id}")
        self.submissions[submission_id].update(changes)
