from datetime import date
from decimal import Decimal

from documents.models import Company, DocumentTemplate
from documents.services.audit import AuditContext
from documents.services.lifecycle import create_document

CTX = AuditContext(ip_address="203.0.113.7", user_agent="pytest-agent")


def setup_company(name="Campus Agency", **kwargs):
    return Company.objects.create(company_name=name, **kwargs)


def setup_template(html="<p>{{ owner_full_name }} / {{ reference_no }}</p>", **kwargs):
    return DocumentTemplate.objects.create(name="Standard", html_content=html, **kwargs)


def document_data(**overrides):
    data = {
        "owner_full_name": "Ayse Yilmaz",
        "owner_identity_no": "12345678901",
        "owner_birth_date": date(2001, 4, 12),
        "university_name": "Ankara University",
        "dorm_name": "North Hall",
        "dorm_address": "Kampus 1",
        "issue_date": date(2024, 9, 1),
        "requester_type": "direct",
        "direct_customer_name": "Mehmet Yilmaz",
        "direct_customer_phone": "+90 555 000 0000",
        "price_amount": Decimal("1000.00"),
        "price_currency": "TRY",
    }
    data.update(overrides)
    return data


def make_document(actor=None, **overrides):
    return create_document(document_data(**overrides), actor, CTX)
