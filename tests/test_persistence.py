"""Tests for the template codec and the document store gateways."""

import json

import httpx
import pytest

from conftest import make_field, make_pdf
from labforms.model.field import FieldType
from labforms.model.template import TemplateRecord
from labforms.persistence.codec import (
    TemplateCodecError,
    decode_field,
    decode_template,
    encode_field,
    encode_template,
)
from labforms.config import Settings
from labforms.model.values import SubmissionReviewError, SubmissionStatus
from labforms.persistence.gateway import (
    SESSION_COOKIE,
    HttpTemplateGateway,
    InMemoryTemplateGateway,
    TemplateGatewayError,
    save_store,
)
from labforms.state.session import FieldStore

API = "https://labs.example.org/api"


def stored_template(**overrides):
    payload = {
        "_id": "tpl-1",
        "title": "Titration",
        "pdfUrl": "https://labs.example.org/files/titration.pdf",
        "pageCount": 2,
        "dimensions": {"width": 612, "height": 792},
        "fields": [
            {"fieldId": "f1", "type": "text", "page": 1, "x": 10, "y": 20, "width": 150, "height": 32,
             "label": "Volume", "required": True},
            {"fieldId": "f2", "type": "checkbox", "page": 2, "x": 5, "y": 6, "width": 24, "height": 24},
        ],
        "isPublished": False,
    }
    payload.update(overrides)
    return payload


class TestCodec:
    def test_field_wire_shape(self):
        payload = encode_field(make_field("f1", label="Volume", font_size=10))
        assert payload["fieldId"] == "f1"
        assert "id" not in payload
        assert payload["type"] == "text"
        assert payload["fontSize"] == 10

    def test_optional_keys_are_omitted(self):
        payload = encode_field(make_field("f1"))
        assert "label" not in payload
        assert "fontSize" not in payload

    def test_every_type_survives(self):
        for field_type in FieldType:
            field = make_field("f", field_type, label="L", required=True, font_size=9)
            assert decode_field(encode_field(field)) == field

    def test_legacy_id_key(self):
        field = decode_field({"id": "old", "type": "date", "page": 1, "x": 0, "y": 0, "width": 10, "height": 10})
        assert field.id == "old"
        assert field.field_type is FieldType.DATE

    def test_decode_template(self):
        record = decode_template(stored_template())
        assert record.template_id == "tpl-1"
        assert (record.page_count, record.width, record.height) == (2, 612, 792)
        assert [f.id for f in record.fields] == ["f1", "f2"]
        assert record.fields[0].required is True
        assert encode_template(record)["fields"][1]["fieldId"] == "f2"

    @pytest.mark.parametrize(
        "payload",
        [
            {"type": "text", "page": 1, "x": 0, "y": 0, "width": 1, "height": 1},
            {"fieldId": "f", "type": "slider", "page": 1, "x": 0, "y": 0, "width": 1, "height": 1},
            {"fieldId": "f", "type": "text", "page": 1, "x": 0, "y": 0, "width": 1},
        ],
    )
    def test_bad_field_payloads(self, payload):
        with pytest.raises(TemplateCodecError):
            decode_field(payload)

    def test_template_without_pdf_url(self):
        payload = stored_template()
        del payload["pdfUrl"]
        with pytest.raises(TemplateCodecError):
            decode_template(payload)

    def test_string_flags_are_parsed(self):
        payload = stored_template(isPublished="false")
        payload["fields"][0]["required"] = "false"
        payload["fields"][1]["required"] = "true"
        record = decode_template(payload)
        assert record.is_published is False
        assert [f.required for f in record.fields] == [False, True]


class TestInMemoryGateway:
    @pytest.fixture
    def gateway(self):
        gateway = InMemoryTemplateGateway()
        gateway.put_record(decode_template(stored_template()))
        return gateway

    def test_save_store_clears_modified(self, gateway):
        store = FieldStore.from_record(gateway.load("tpl-1"))
        store.update("f1", x=40)
        assert store.modified

        record = save_store(gateway, store)
        assert not store.modified
        assert record.fields[0].x == 40
        assert gateway.documents["tpl-1"]["fields"][0]["x"] == 40

    def test_loaded_record_is_a_copy(self, gateway):
        record = gateway.load("tpl-1")
        record.fields[0].x = 999
        assert gateway.load("tpl-1").fields[0].x == 10

    def test_publish(self, gateway):
        store = FieldStore.from_record(gateway.load("tpl-1"))
        save_store(gateway, store, publish=True)
        assert store.is_published
        assert gateway.load("tpl-1").is_published

    def test_unknown_template(self, gateway):
        with pytest.raises(TemplateGatewayError):
            gateway.load("missing")

    def test_store_without_id(self, gateway):
        with pytest.raises(TemplateGatewayError):
            save_store(gateway, FieldStore())

    def test_fetch_local_pdf(self, gateway, tmp_path):
        path = tmp_path / "sheet.pdf"
        path.write_bytes(b"%PDF-1.4")
        assert gateway.fetch_pdf(str(path)) == b"%PDF-1.4"
        with pytest.raises(TemplateGatewayError):
            gateway.fetch_pdf(str(tmp_path / "missing.pdf"))

    def test_revision_then_grade(self, gateway):
        gateway.put_submission("s1", {"templateId": "tpl-1", "values": {"f1": "3"}, "status": "SUBMITTED"})

        revised = gateway.review_submission("s1", " Show your working ")
        assert revised.status is SubmissionStatus.NEEDS_REVISION
        assert revised.remarks == "Show your working"
        assert not revised.is_locked

        graded = gateway.finalize_submission("s1", 92, "Good")
        assert graded.status is SubmissionStatus.GRADED
        assert (graded.grade, graded.feedback) == (92.0, "Good")
        assert graded.is_locked
        assert gateway.submissions["s1"]["isLocked"] is True

    def test_review_checks_run_before_storing(self, gateway):
        gateway.put_submission("s1", {"templateId": "tpl-1", "status": "SUBMITTED"})
        with pytest.raises(SubmissionReviewError):
            gateway.review_submission("s1", "  ")
        with pytest.raises(SubmissionReviewError):
            gateway.finalize_submission("s1", 101)
        assert gateway.submissions["s1"]["status"] == "SUBMITTED"

    def test_unknown_submission(self, gateway):
        with pytest.raises(TemplateGatewayError):
            gateway.load_submission("missing")


class TestHttpGateway:
    def make_gateway(self, handler):
        return HttpTemplateGateway(API, client=httpx.Client(transport=httpx.MockTransport(handler)))

    def test_load(self):
        def handler(request):
            assert request.method == "GET"
            assert str(request.url) == f"{API}/templates/tpl-1"
            return httpx.Response(200, json=stored_template())

        gateway = self.make_gateway(handler)
        assert gateway.load("tpl-1").title == "Titration"
        gateway.close()

    def test_save_sends_wire_fields(self):
        sent = {}

        def handler(request):
            sent.update(json.loads(request.content))
            return httpx.Response(200, json=stored_template(title=sent["title"], isPublished=True))

        gateway = self.make_gateway(handler)
        record = gateway.save("tpl-1", "Renamed", [make_field("f9")], is_published=True)
        assert sent["fields"][0]["fieldId"] == "f9"
        assert sent["isPublished"] is True
        assert record.title == "Renamed"

    def test_plain_save_leaves_publish_flag_out(self):
        sent = {}

        def handler(request):
            sent.update(json.loads(request.content))
            return httpx.Response(200, json=stored_template())

        self.make_gateway(handler).save("tpl-1", "Titration", [])
        assert "isPublished" not in sent

    def test_not_found(self):
        gateway = self.make_gateway(lambda request: httpx.Response(404, json={"error": "missing"}))
        with pytest.raises(TemplateGatewayError, match="404"):
            gateway.load("tpl-1")

    def test_submission(self):
        def handler(request):
            assert request.url.path == "/api/submissions/s1"
            return httpx.Response(
                200,
                json={"_id": "s1", "templateId": {"_id": "tpl-1"}, "values": {"f1": "3"}, "status": "SUBMITTED"},
            )

        submission = self.make_gateway(handler).load_submission("s1")
        assert submission.template_id == "tpl-1"
        assert submission.values == {"f1": "3"}

    def test_submission_with_unknown_status(self):
        gateway = self.make_gateway(lambda request: httpx.Response(200, json={"_id": "s1", "status": "ARCHIVED"}))
        with pytest.raises(TemplateGatewayError, match="ARCHIVED"):
            gateway.load_submission("s1")

    def test_upload_path_is_fetched_from_api_origin(self):
        pdf = make_pdf()

        def handler(request):
            assert str(request.url) == "https://labs.example.org/uploads/1700000000-titration.pdf"
            return httpx.Response(200, content=pdf)

        assert self.make_gateway(handler).fetch_pdf("/uploads/1700000000-titration.pdf") == pdf

    def test_missing_upload(self):
        gateway = self.make_gateway(lambda request: httpx.Response(404))
        with pytest.raises(TemplateGatewayError):
            gateway.fetch_pdf("/uploads/gone.pdf")

    def test_request_revision(self):
        sent = {}

        def handler(request):
            assert request.method == "PUT"
            assert request.url.path == "/api/submissions/s1/review"
            sent.update(json.loads(request.content))
            return httpx.Response(200, json={"_id": "s1", "status": "NEEDS_REVISION", "remarks": sent["remarks"]})

        submission = self.make_gateway(handler).review_submission("s1", "Label the axes\n")
        assert sent == {"status": "NEEDS_REVISION", "remarks": "Label the axes"}
        assert submission.status is SubmissionStatus.NEEDS_REVISION

    def test_finalize(self):
        sent = {}

        def handler(request):
            assert request.url.path == "/api/submissions/s1/finalize"
            sent.update(json.loads(request.content))
            return httpx.Response(
                200, json={"_id": "s1", "status": "GRADED", "grade": sent["grade"], "isLocked": True}
            )

        submission = self.make_gateway(handler).finalize_submission("s1", 88, "Tidy work")
        assert sent == {"grade": 88.0, "feedback": "Tidy work"}
        assert submission.is_locked

    def test_rejected_grade_is_not_sent(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        gateway = self.make_gateway(handler)
        with pytest.raises(SubmissionReviewError):
            gateway.finalize_submission("s1", 150)
        with pytest.raises(SubmissionReviewError):
            gateway.review_submission("s1", "")
        assert calls == []


class TestSession:
    def test_session_cookie_is_sent(self):
        def handler(request):
            assert request.headers["cookie"] == f"{SESSION_COOKIE}=s%3Aabc"
            return httpx.Response(200, json=stored_template())

        settings = Settings(api_url=API, session_cookie="s%3Aabc")
        gateway = HttpTemplateGateway.from_settings(settings, transport=httpx.MockTransport(handler))
        assert gateway.load("tpl-1").template_id == "tpl-1"
        gateway.close()

    def test_login_cookie_is_reused(self):
        seen = []

        def handler(request):
            if request.url.path == "/api/auth/login":
                assert json.loads(request.content) == {"email": "ta@example.org", "password": "secret"}
                return httpx.Response(
                    200,
                    headers={"set-cookie": f"{SESSION_COOKIE}=fresh; Path=/; HttpOnly"},
                    json={"email": "ta@example.org", "role": "TEACHER"},
                )
            seen.append(request.headers.get("cookie"))
            return httpx.Response(200, json=stored_template())

        settings = Settings(api_url=API, email="ta@example.org", password="secret")
        gateway = HttpTemplateGateway.from_settings(settings, transport=httpx.MockTransport(handler))
        gateway.load("tpl-1")
        assert seen == [f"{SESSION_COOKIE}=fresh"]

    def test_failed_login(self):
        settings = Settings(api_url=API, email="ta@example.org", password="wrong")
        transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "Invalid"}))
        with pytest.raises(TemplateGatewayError, match="401"):
            HttpTemplateGateway.from_settings(settings, transport=transport)


def test_record_round_trips_through_wire_format():
    record = TemplateRecord("t", "T", "x.pdf", 1, 612, 792, [make_field("a")], is_published=True)
    assert decode_template(encode_template(record)) == record


def test_duplicated_template_gets_fresh_field_ids():
    record = TemplateRecord("t", "Titration", "x.pdf", 1, 612, 792, [make_field("a"), make_field("b")], True)
    copy = record.duplicate("t2")
    assert copy.title == "Titration (copy)"
    assert copy.is_published is False
    assert {f.id for f in copy.fields}.isdisjoint({"a", "b"})
    assert [(f.x, f.y, f.label) for f in copy.fields] == [(f.x, f.y, f.label) for f in record.fields]
