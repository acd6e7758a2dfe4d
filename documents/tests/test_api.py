import uuid
from datetime import date
from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from documents import pdf_utils, views
from documents.exceptions import IdentifierSpaceExhausted
from documents.models import (
    CompanyTemplatePrice,
    Document,
    DocumentAuditLog,
    Notification,
    Payment,
    VerificationAttempt,
)
from documents.notifications import create_notification
from documents.tests.helpers import document_data, make_document, setup_company, setup_template


def fake_renderer(html_string):
    return b"%PDF-1.4\n" + html_string.encode("utf-8")


def create_payload(**overrides):
    data = document_data(**overrides)
    for key in ("owner_birth_date", "issue_date"):
        data[key] = data[key].isoformat()
    data["price_amount"] = str(data["price_amount"])
    return data


@pytest.fixture
def public_client():
    return APIClient()


@pytest.fixture
def stub_pdf(monkeypatch):
    monkeypatch.setattr(pdf_utils, "html_to_pdf", fake_renderer)


@pytest.mark.django_db
def test_staff_endpoints_require_login(public_client):
    doc = make_document()
    assert public_client.get("/api/documents/").status_code == 403
    assert public_client.get(f"/api/documents/{doc.pk}/payments/").status_code == 403
    assert public_client.get(f"/api/documents/{doc.pk}/pdf/").status_code == 403


@pytest.mark.django_db
def test_create_list_and_detail(api_client, staff_user):
    resp = api_client.post("/api/documents/", create_payload(), format="json")
    assert resp.status_code == 201, resp.content
    body = resp.json()
    assert body["reference_no"].startswith("REF-")
    assert body["price_amount"] == "1000.00"
    assert body["requester_label"] == "Mehmet Yilmaz"
    assert body["pdf_ready"] is False
    assert "token" not in body
    assert body["verification_url"].startswith("https://verify.example.test/verify/")

    doc = Document.objects.get(pk=body["id"])
    log = DocumentAuditLog.objects.get(document=doc, action_type="create")
    assert log.actor == staff_user
    assert log.ip_address == "127.0.0.1"

    listing = api_client.get("/api/documents/", {"q": "Ayse", "page_size": 5}).json()
    assert listing["total"] == 1
    assert listing["page_size"] == 5
    assert listing["results"][0]["id"] == body["id"]

    detail = api_client.get(f"/api/documents/{doc.pk}/")
    assert detail.status_code == 200
    assert detail.json()["owner_identity_no"] == "12345678901"


@pytest.mark.django_db
def test_create_validation_errors(api_client):
    resp = api_client.post(
        "/api/documents/", create_payload(requester_type="company", direct_customer_name=""), format="json"
    )
    assert resp.status_code == 400
    assert resp.json()["ok"] is False
    assert "company" in resp.json()["errors"]

    resp = api_client.post("/api/documents/", create_payload(price_amount=Decimal("-5")), format="json")
    assert resp.status_code == 400
    assert Document.objects.count() == 0


@pytest.mark.django_db
def test_patch_document_fields(api_client):
    doc = make_document()
    resp = api_client.patch(f"/api/documents/{doc.pk}/", {"dorm_name": "South Hall"}, format="json")
    assert resp.status_code == 200
    assert resp.json()["dorm_name"] == "South Hall"

    resp = api_client.patch(f"/api/documents/{doc.pk}/", {"payment_status": "paid"}, format="json")
    assert resp.status_code == 400
    doc.refresh_from_db()
    assert doc.payment_status == "unpaid"


@pytest.mark.django_db
def test_unknown_document_is_404(api_client):
    missing = uuid.uuid4()
    assert api_client.get(f"/api/documents/{missing}/").status_code == 404
    resp = api_client.post(
        f"/api/documents/{missing}/payments/",
        {"amount": "10", "currency": "TRY", "method": "cash"},
        format="json",
    )
    assert resp.status_code == 404
    assert api_client.patch(f"/api/documents/{missing}/tracking/", {"status": "shipped"}).status_code == 404


@pytest.mark.django_db
def test_status_and_tracking(api_client):
    doc = make_document()

    resp = api_client.patch(f"/api/documents/{doc.pk}/status/", {"status": "inactive"}, format="json")
    assert resp.json() == {"ok": True, "doc_status": "inactive"}
    assert api_client.patch(f"/api/documents/{doc.pk}/status/", {"status": "gone"}).status_code == 400

    resp = api_client.patch(
        f"/api/documents/{doc.pk}/tracking/", {"status": "shipped", "note": "DHL"}, format="json"
    )
    assert resp.status_code == 200
    assert resp.json()["tracking_status"] == "shipped"

    history = api_client.get(f"/api/documents/{doc.pk}/tracking/").json()["results"]
    assert len(history) == 1
    assert history[0]["from_status"] == "created"
    assert history[0]["note"] == "DHL"
    assert history[0]["changed_by"] == "staff"


@pytest.mark.django_db
def test_tracking_transition_conflict_is_400(api_client, settings):
    settings.DOCUMENT_TRACKING_TRANSITIONS = {"created": ["shipped"]}
    doc = make_document()
    resp = api_client.patch(f"/api/documents/{doc.pk}/tracking/", {"status": "received"}, format="json")
    assert resp.status_code == 400


@pytest.mark.django_db
def test_payments_flow(api_client):
    doc = make_document()
    url = f"/api/documents/{doc.pk}/payments/"

    resp = api_client.post(url, {"amount": "400", "currency": "TRY", "method": "cash"}, format="json")
    assert resp.status_code == 201
    assert resp.json()["payment_status"] == "partial"

    resp = api_client.post(url, {"amount": "600", "currency": "TRY", "method": "card"}, format="json")
    assert resp.json()["payment_status"] == "paid"

    resp = api_client.post(url, {"amount": "10", "currency": "USD", "method": "cash"}, format="json")
    assert resp.status_code == 400
    assert "USD" in resp.json()["detail"]

    resp = api_client.post(url, {"amount": "0", "currency": "TRY", "method": "cash"}, format="json")
    assert resp.status_code == 400

    body = api_client.get(url).json()
    assert body["summary"] == {
        "price_amount": "1000.00",
        "price_currency": "TRY",
        "paid_amount": "1000.00",
        "remaining_amount": "0.00",
        "payment_status": "paid",
    }
    assert len(body["payments"]) == 2
    assert body["payments"][0]["received_by"] == "staff"


@pytest.mark.django_db
def test_bulk_payment_and_summary(api_client):
    a = make_document()
    b = make_document(price_currency="USD")

    resp = api_client.post(
        "/api/accounting/payments/bulk/",
        {"document_ids": [str(a.pk), str(b.pk)], "amount": "250", "currency": "TRY", "method": "bank_transfer"},
        format="json",
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is False
    assert body["ok_count"] == 1
    assert body["failed_count"] == 1
    assert Payment.objects.count() == 1

    resp = api_client.post(
        "/api/accounting/payments/bulk/",
        {"document_ids": [], "amount": "250", "currency": "TRY", "method": "cash"},
        format="json",
    )
    assert resp.status_code == 400

    summary = api_client.post("/api/accounting/summary/", {"document_ids": [str(a.pk)]}, format="json").json()
    assert summary == {
        "document_count": 1,
        "currency": "TRY",
        "total_sales": "1000.00",
        "total_collected": "250.00",
        "total_remaining": "750.00",
    }
    mixed = api_client.post("/api/accounting/summary/", {"document_ids": [str(a.pk), str(b.pk)]}, format="json")
    assert mixed.status_code == 400


@pytest.mark.django_db
def test_pricing_endpoint(api_client, settings):
    settings.DOCUMENT_DEFAULT_PRICE_AMOUNT = Decimal("99.00")
    settings.DOCUMENT_DEFAULT_PRICE_CURRENCY = "TRY"
    company = setup_company()
    template = setup_template()
    CompanyTemplatePrice.objects.create(
        company=company, template=template, price_amount=Decimal("450.00"), price_currency="EUR"
    )

    assert api_client.get("/api/pricing/").json() == {"amount": "99.00", "currency": "TRY"}
    priced = api_client.get("/api/pricing/", {"company_id": str(company.pk), "template_id": str(template.pk)})
    assert priced.json() == {"amount": "450.00", "currency": "EUR"}


@pytest.mark.django_db
def test_verify_then_download_public_pdf(api_client, public_client, stub_pdf):
    doc = make_document()
    assert api_client.post(f"/api/documents/{doc.pk}/pdf/generate/").status_code == 200

    resp = public_client.post(
        "/api/verify/",
        {"reference_no": doc.reference_no, "identity_no": "12345678901", "token": doc.token},
        format="json",
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["result"]["document_id"] == str(doc.pk)
    assert body["result"]["pdf_ready"] is True
    session = body["verify_session"]["token"]

    url = f"/api/documents/{doc.pk}/pdf/public/"
    assert public_client.get(url).status_code == 401
    assert public_client.get(url, {"session": "nope"}).json() == {"ok": False, "message": "Unauthorized."}

    pdf = public_client.get(url, {"session": session})
    assert pdf.status_code == 200
    assert pdf["Content-Type"] == "application/pdf"
    assert pdf["Content-Disposition"].startswith("inline")
    assert pdf.content.startswith(b"%PDF-1.4")

    download = public_client.get(url, {"session": session, "download": "1"})
    assert download["Content-Disposition"].startswith("attachment")

    view_log = DocumentAuditLog.objects.get(document=doc, action_type="pdf_view")
    assert view_log.actor is None
    assert view_log.details == {"public": True}
    assert DocumentAuditLog.objects.filter(document=doc, action_type="pdf_download").count() == 1

    other = make_document()
    assert public_client.get(f"/api/documents/{other.pk}/pdf/public/", {"session": session}).status_code == 401


@pytest.mark.django_db
def test_staff_pdf_view_is_audited(api_client, staff_user, stub_pdf):
    doc = make_document()
    assert api_client.get(f"/api/documents/{doc.pk}/pdf/").status_code == 404

    api_client.post(f"/api/documents/{doc.pk}/pdf/generate/")
    resp = api_client.get(f"/api/documents/{doc.pk}/pdf/")
    assert resp.status_code == 200
    log = DocumentAuditLog.objects.get(document=doc, action_type="pdf_view")
    assert log.actor == staff_user
    assert log.details == {"public": False}


@pytest.mark.django_db
def test_failed_verify_is_generic(public_client):
    doc = make_document()
    resp = public_client.post(
        "/api/verify/", {"reference_no": doc.reference_no, "identity_no": "999"}, format="json"
    )
    assert resp.status_code == 200
    assert resp.json() == {"ok": False, "message": "The details could not be verified."}

    blank = public_client.post("/api/verify/", {"reference_no": "", "identity_no": ""}, format="json")
    assert blank.status_code == 400


@pytest.mark.django_db
def test_verify_rate_limit_returns_429(public_client, settings):
    settings.VERIFY_RATE_LIMIT = (1, 60)
    payload = {"reference_no": "REF-20240101-000000", "identity_no": "1"}
    assert public_client.post("/api/verify/", payload, format="json").status_code == 200

    resp = public_client.post("/api/verify/", payload, format="json")
    assert resp.status_code == 429
    assert resp.json()["ok"] is False
    assert 1 <= int(resp["Retry-After"]) <= 60


@pytest.mark.django_db
def test_overlong_verify_input_is_counted_and_logged(public_client, settings):
    settings.VERIFY_RATE_LIMIT = (1, 60)
    payload = {
        "reference_no": "R" * 80,
        "identity_no": "9" * 33,
        "token": "f" * 200,
        "birth_date": "2024-02-30",
    }

    resp = public_client.post("/api/verify/", payload, format="json")
    assert resp.status_code == 200
    assert resp.json() == {"ok": False, "message": "The details could not be verified."}
    attempt = VerificationAttempt.objects.get()
    assert attempt.success is False
    assert attempt.reference_no == "R" * 64
    assert attempt.token == "f" * 96
    assert attempt.birth_date is None
    log = DocumentAuditLog.objects.get(details__event="verify_fail")
    assert log.details["reference_no"] == "R" * 64

    assert public_client.post("/api/verify/", payload, format="json").status_code == 429
    assert VerificationAttempt.objects.count() == 1


@pytest.mark.django_db
def test_identifier_exhaustion_is_server_error(api_client, monkeypatch):
    def exhausted(*args, **kwargs):
        raise IdentifierSpaceExhausted("no free identifiers after 5 attempts")

    monkeypatch.setattr(views, "create_document", exhausted)
    resp = api_client.post("/api/documents/", create_payload(), format="json")
    assert resp.status_code == 500
    assert resp.json() == {"ok": False, "detail": "Internal server error."}
    assert not Document.objects.exists()


@pytest.mark.django_db
def test_verify_prefill(public_client):
    doc = make_document()
    resp = public_client.get("/api/verify/prefill/", {"token": doc.token})
    assert resp.json() == {"ok": True, "reference_no": doc.reference_no, "identity_no": "12345678901"}
    assert public_client.get("/api/verify/prefill/", {"token": "x"}).status_code == 404


@pytest.mark.django_db
def test_notifications(api_client):
    company = setup_company()
    first = create_notification("company", "kind:pdf_generated", company=company)
    create_notification("admin", "kind:other")

    rows = api_client.get("/api/notifications/", {"target_role": "company"}).json()["results"]
    assert [r["id"] for r in rows] == [first.pk]

    resp = api_client.post(f"/api/notifications/{first.pk}/read/")
    assert resp.status_code == 200
    first.refresh_from_db()
    assert first.read_at is not None

    unread = api_client.get("/api/notifications/", {"unread": "1"}).json()["results"]
    assert [r["title"] for r in unread] == ["kind:other"]
    assert api_client.post("/api/notifications/999999/read/").status_code == 404
    assert Notification.objects.count() == 2


@pytest.mark.django_db
def test_reports(api_client, public_client):
    company = setup_company("Dorm Partners")
    doc = make_document(
        requester_type="company",
        company_id=company.pk,
        direct_customer_name="",
        direct_customer_phone="",
        price_amount=Decimal("800"),
    )
    make_document()
    make_document(issue_date=date(2023, 9, 1))
    api_client.post(
        f"/api/documents/{doc.pk}/payments/",
        {"amount": "300", "currency": "TRY", "method": "bank_transfer"},
        format="json",
    )

    assert public_client.get("/api/reports/").status_code == 403
    body = api_client.get("/api/reports/", {"from": "2024-01-01", "to": "not-a-date"}).json()

    assert body["ok"] is True
    assert body["range"] == {"from": "2024-01-01", "to": None}
    assert body["summary"] == {
        "total_documents": 2,
        "total_sales": "1800.00",
        "total_collected": "300.00",
        "remaining": "1500.00",
        "payment_status_counts": {"unpaid": 1, "partial": 1, "paid": 0},
    }
    assert body["payments_by_method"][1] == {"method": "bank_transfer", "total_received": "300.00"}
    assert [row["method"] for row in body["payments_by_method"]] == ["cash", "bank_transfer", "card", "other"]
    assert body["top_companies"] == [
        {
            "company_id": str(company.pk),
            "company_name": "Dorm Partners",
            "documents_count": 1,
            "total_sales": "800.00",
        }
    ]
