"""Document store and tracking state machine.

Every mutation locks the document row with ``select_for_update`` inside one
``transaction.atomic()`` block and writes its audit row in that same block.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Q

from documents.exceptions import (
    DocumentNotFound,
    IdentifierSpaceExhausted,
    InvalidInput,
    InvalidStatus,
    InvalidTransition,
)
from documents.models import Document, DocumentAuditLog, TrackingHistoryEntry
from documents.services.audit import record_audit, resolve_actor
from documents.services.identifiers import generate_identifiers
from documents.services.pricing import get_effective_price

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20

# Fields a caller may supply when creating a document.
CREATE_FIELDS = {
    "owner_full_name",
    "owner_identity_no",
    "owner_birth_date",
    "university_name",
    "dorm_name",
    "dorm_address",
    "issue_date",
    "footer_datetime",
    "requester_type",
    "company_id",
    "direct_customer_name",
    "direct_customer_phone",
    "price_amount",
    "price_currency",
    "template_id",
    "template_version",
    "template_values",
}

# Content fields that stay editable after issue.
EDITABLE_FIELDS = {
    "owner_full_name",
    "owner_identity_no",
    "owner_birth_date",
    "university_name",
    "dorm_name",
    "dorm_address",
    "issue_date",
    "footer_datetime",
    "requester_type",
    "company_id",
    "direct_customer_name",
    "direct_customer_phone",
}

TRACKING_VALUES = {value for value, _ in Document.TRACKING_CHOICES}
DOC_STATUS_VALUES = {value for value, _ in Document.DOC_STATUS_CHOICES}
PDF_STORAGE_VALUES = {value for value, _ in Document.PDF_STORAGE_CHOICES}


@dataclass
class DocumentFilter:
    q: str = ""
    doc_status: Optional[str] = None
    tracking_status: Optional[str] = None
    payment_status: Optional[str] = None
    payment_group: Optional[str] = None
    requester_type: Optional[str] = None
    company_id: Optional[str] = None
    issued_from: Optional[date] = None
    issued_to: Optional[date] = None
    sort: str = "desc"


@dataclass
class DocumentPage:
    rows: List[Document] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE


@dataclass(frozen=True)
class TrackingChange:
    new_status: str
    history_id: int


def _normalise_company_key(data):
    data = dict(data)
    if "company" in data and "company_id" not in data:
        company = data.pop("company")
        data["company_id"] = getattr(company, "pk", company)
    if "template" in data and "template_id" not in data:
        template = data.pop("template")
        data["template_id"] = getattr(template, "pk", template)
    return data


def _full_clean(document):
    try:
        document.full_clean(
            exclude=list(Document.IDENTIFIER_FIELDS),
            validate_unique=False,
            validate_constraints=False,
        )
    except ValidationError as exc:
        raise InvalidInput(exc.message_dict) from exc


def lock_document(document_id):
    try:
        return Document.objects.select_for_update().get(pk=document_id)
    except (Document.DoesNotExist, ValidationError, ValueError):
        raise DocumentNotFound(f"Document {document_id} not found")


def get_document(document_id):
    try:
        return Document.objects.select_related("company", "template").get(pk=document_id)
    except (Document.DoesNotExist, ValidationError, ValueError):
        raise DocumentNotFound(f"Document {document_id} not found")


def _identifiers_taken(ids):
    return Document.objects.filter(
        Q(token=ids.token) | Q(barcode_id=ids.barcode_id) | Q(reference_no=ids.reference_no)
    ).exists()


def create_with_unique_identifiers(insert, *, generate=generate_identifiers, max_attempts=5):
    """Call ``insert(identifiers)`` until it succeeds with a fresh triple.

    Each attempt runs in its own savepoint. An ``IntegrityError`` is retried
    only when one of the generated identifiers is already taken; any other
    integrity failure propagates unchanged.
    """
    for attempt in range(1, max_attempts + 1):
        ids = generate()
        try:
            with transaction.atomic():
                return insert(ids)
        except IntegrityError:
            if not _identifiers_taken(ids):
                raise
            logger.warning(
                "Identifier collision on attempt %s/%s (reference %s)",
                attempt,
                max_attempts,
                ids.reference_no,
            )
    logger.error("Identifier generation exhausted after %s attempts", max_attempts)
    raise IdentifierSpaceExhausted(
        f"Could not allocate unique document identifiers after {max_attempts} attempts"
    )


def create_document(data, actor=None, context=None, *, generate=generate_identifiers, max_attempts=None):
    data = _normalise_company_key(data)
    unknown = set(data) - CREATE_FIELDS
    if unknown:
        raise InvalidInput(f"Unknown document fields: {', '.join(sorted(unknown))}")

    price_given = "price_amount" in data
    document = Document(**data)
    document.created_by = resolve_actor(actor)
    _full_clean(document)

    if not price_given:
        price = get_effective_price(document.company_id, document.template_id)
        document.price_amount = price.amount
        if "price_currency" not in data:
            document.price_currency = price.currency
    if document.template_id and document.template_version is None:
        document.template_version = document.template.latest_version

    if max_attempts is None:
        max_attempts = getattr(settings, "DOCUMENT_IDENTIFIER_MAX_ATTEMPTS", 5)

    def insert(ids):
        document.token = ids.token
        document.barcode_id = ids.barcode_id
        document.reference_no = ids.reference_no
        document.save(force_insert=True)
        record_audit(
            document,
            DocumentAuditLog.ACTION_CREATE,
            actor,
            context,
            details={
                "reference_no": document.reference_no,
                "barcode_id": document.barcode_id,
                "requester_type": document.requester_type,
                "price_amount": document.price_amount,
                "price_currency": document.price_currency,
            },
        )
        return document

    with transaction.atomic():
        document = create_with_unique_identifiers(
            insert, generate=generate, max_attempts=max_attempts
        )
    logger.info("Document %s created (%s)", document.pk, document.reference_no)
    return document


def list_documents(filters=None, page=1, page_size=DEFAULT_PAGE_SIZE) -> DocumentPage:
    filters = filters or DocumentFilter()
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    try:
        page_size = int(page_size)
    except (TypeError, ValueError):
        page_size = DEFAULT_PAGE_SIZE
    if page < 1:
        page = 1
    if page_size < 1:
        page_size = DEFAULT_PAGE_SIZE
    page_size = min(page_size, MAX_PAGE_SIZE)

    qs = Document.objects.select_related("company")
    q = (filters.q or "").strip()
    if q:
        qs = qs.filter(
            Q(reference_no__icontains=q)
            | Q(barcode_id__icontains=q)
            | Q(owner_full_name__icontains=q)
            | Q(owner_identity_no__icontains=q)
        )
    if filters.doc_status:
        qs = qs.filter(doc_status=filters.doc_status)
    if filters.tracking_status:
        qs = qs.filter(tracking_status=filters.tracking_status)
    if filters.payment_status:
        qs = qs.filter(payment_status=filters.payment_status)
    if filters.payment_group == "paid":
        qs = qs.filter(payment_status=Document.PAYMENT_PAID)
    elif filters.payment_group == "unpaid":
        qs = qs.exclude(payment_status=Document.PAYMENT_PAID)
    if filters.requester_type:
        qs = qs.filter(requester_type=filters.requester_type)
    if filters.company_id:
        qs = qs.filter(company_id=filters.company_id)
    if filters.issued_from:
        qs = qs.filter(issue_date__gte=filters.issued_from)
    if filters.issued_to:
        qs = qs.filter(issue_date__lte=filters.issued_to)

    if filters.sort == "asc":
        qs = qs.order_by("created_at", "id")
    else:
        qs = qs.order_by("-created_at", "-id")

    total = qs.count()
    offset = (page - 1) * page_size
    rows = list(qs[offset : offset + page_size])
    return DocumentPage(rows=rows, total=total, page=page, page_size=page_size)


@transaction.atomic
def update_document_pdf_info(
    document_id, storage_type, url, pdf_hash, actor=None, context=None, template_version=None
):
    if storage_type not in PDF_STORAGE_VALUES:
        raise InvalidInput(f"Unknown PDF storage type {storage_type!r}")
    if not url or not pdf_hash:
        raise InvalidInput("PDF url and hash are required.")

    doc = lock_document(document_id)
    doc.pdf_storage_type = storage_type
    doc.pdf_url = url
    doc.pdf_hash = pdf_hash
    update_fields = ["pdf_storage_type", "pdf_url", "pdf_hash", "updated_at"]
    if template_version is not None:
        doc.template_version = template_version
        update_fields.append("template_version")
    doc.save(update_fields=update_fields)

    record_audit(
        doc,
        DocumentAuditLog.ACTION_UPDATE,
        actor,
        context,
        details={
            "kind": "pdf_generate",
            "storage_type": storage_type,
            "url": url,
            "pdf_hash": pdf_hash,
            "template_version": doc.template_version,
        },
    )
    return doc


@transaction.atomic
def update_document_fields(document_id, changes, actor=None, context=None):
    changes = _normalise_company_key(changes)
    rejected = set(changes) - EDITABLE_FIELDS
    if rejected:
        raise InvalidInput(f"Fields cannot be edited: {', '.join(sorted(rejected))}")

    doc = lock_document(document_id)
    before = {name: getattr(doc, name) for name in changes}
    for name, value in changes.items():
        setattr(doc, name, value)
    _full_clean(doc)

    diff = {}
    for name in changes:
        after = getattr(doc, name)
        if after != before[name]:
            diff[name] = {"from": before[name], "to": after}
    if not diff:
        return doc

    doc.save(update_fields=[*diff.keys(), "updated_at"])
    record_audit(
        doc,
        DocumentAuditLog.ACTION_UPDATE,
        actor,
        context,
        details={"kind": "fields", "changes": diff},
    )
    return doc


def _check_transition(from_status, to_status):
    table = getattr(settings, "DOCUMENT_TRACKING_TRANSITIONS", None)
    if not table:
        return
    if to_status not in table.get(from_status, ()):
        raise InvalidTransition(
            f"Tracking cannot move from {from_status!r} to {to_status!r}"
        )


@transaction.atomic
def change_tracking_status(document_id, to_status, note="", actor=None, context=None) -> TrackingChange:
    if to_status not in TRACKING_VALUES:
        raise InvalidStatus(f"Unknown tracking status {to_status!r}")

    doc = lock_document(document_id)
    from_status = doc.tracking_status
    _check_transition(from_status, to_status)

    doc.tracking_status = to_status
    doc.save(update_fields=["tracking_status", "updated_at"])

    entry = TrackingHistoryEntry.objects.create(
        document=doc,
        from_status=from_status,
        to_status=to_status,
        changed_by=resolve_actor(actor),
        note=note or "",
    )
    record_audit(
        doc,
        DocumentAuditLog.ACTION_TRACKING_CHANGE,
        actor,
        context,
        details={"from": from_status, "to": to_status, "note": note or ""},
    )
    return TrackingChange(new_status=to_status, history_id=entry.pk)


def ensure_document_exists(document_id):
    try:
        found = Document.objects.filter(pk=document_id).exists()
    except (ValidationError, ValueError):
        found = False
    if not found:
        raise DocumentNotFound(f"Document {document_id} not found")


def list_tracking_history(document_id):
    ensure_document_exists(document_id)
    return list(
        TrackingHistoryEntry.objects.filter(document_id=document_id)
        .select_related("changed_by")
        .order_by("-changed_at", "-id")
    )


@transaction.atomic
def update_document_status(document_id, new_status, actor=None, context=None):
    if new_status not in DOC_STATUS_VALUES:
        raise InvalidStatus(f"Unknown document status {new_status!r}")

    doc = lock_document(document_id)
    from_status = doc.doc_status
    doc.doc_status = new_status
    doc.save(update_fields=["doc_status", "updated_at"])
    record_audit(
        doc,
        DocumentAuditLog.ACTION_STATUS_CHANGE,
        actor,
        context,
        details={"from": from_status, "to": new_status},
    )
    return doc
