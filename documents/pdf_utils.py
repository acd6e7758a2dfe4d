"""Certificate rendering and PDF artifact linkage."""

import base64
import hashlib
import html
import logging
import re
from datetime import datetime

from django.conf import settings
from django.contrib.staticfiles import finders
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.template.loader import render_to_string
from django.urls import reverse
from django.utils import timezone
from reportlab.graphics import renderSVG
from reportlab.graphics.barcode import createBarcodeDrawing
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing

from .models import Document
from .notifications import notify_pdf_generated
from .services.lifecycle import get_document, update_document_pdf_info

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z0-9_]+)\s*\}\}")

# 1x1 transparent PNG
BLANK_PNG_DATA_URL = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mP8/x8AAwMB/ax2wGQAAAAASUVORK5CYII="
)

# Template keys that mirror document fields. Applied last so edits win.
ALIASES = {
    "full_name": "owner_full_name",
    "identity_no": "owner_identity_no",
    "birth_date": "owner_birth_date",
    "university": "university_name",
    "accommodation": "dorm_name",
    "address": "dorm_address",
    "amount": "price_amount",
    "currency": "price_currency",
    "companyId": "company_id",
    "customer_name": "direct_customer_name",
    "customer_phone": "direct_customer_phone",
    "footerDateTime": "footer_datetime",
    "requesterType": "requester_type",
}


def _fmt_date(value):
    if not value:
        return ""
    if isinstance(value, datetime):
        value = timezone.localtime(value)
    return value.strftime("%d.%m.%Y")


def _svg_data_url(drawing):
    svg = renderSVG.drawToString(drawing)
    if isinstance(svg, str):
        svg = svg.encode("utf-8")
    return "data:image/svg+xml;base64," + base64.b64encode(svg).decode("ascii")


def qr_data_url(text, size=180):
    widget = QrCodeWidget(text)
    x1, y1, x2, y2 = widget.getBounds()
    drawing = Drawing(
        size, size, transform=[size / (x2 - x1), 0, 0, size / (y2 - y1), 0, 0]
    )
    drawing.add(widget)
    return _svg_data_url(drawing)


def barcode_data_url(value):
    drawing = createBarcodeDrawing(
        "Code128", value=value, barHeight=36, barWidth=1.2, humanReadable=True
    )
    return _svg_data_url(drawing)


def stamp_data_url():
    path = finders.find("documents/stamp.png")
    if not path:
        return BLANK_PNG_DATA_URL
    with open(path, "rb") as fh:
        return "data:image/png;base64," + base64.b64encode(fh.read()).decode("ascii")


def build_verification_path(token):
    return f"/verify/{token}"


def build_verification_url(origin, token):
    return f"{origin.rstrip('/')}{build_verification_path(token)}"


def _live_values(document, verification_url):
    return {
        "reference_no": document.reference_no,
        "barcode_id": document.barcode_id,
        "token": document.token,
        "owner_full_name": document.owner_full_name,
        "owner_identity_no": document.owner_identity_no,
        "owner_birth_date": _fmt_date(document.owner_birth_date),
        "university_name": document.university_name,
        "dorm_name": document.dorm_name,
        "dorm_address": document.dorm_address,
        "issue_date": _fmt_date(document.issue_date),
        "footer_datetime": _fmt_date(document.footer_datetime),
        "requester_type": document.requester_type,
        "company_id": document.company_id,
        "direct_customer_name": document.direct_customer_name,
        "direct_customer_phone": document.direct_customer_phone,
        "price_amount": document.price_amount,
        "price_currency": document.price_currency,
        "requester_label": document.requester_label,
        "price_label": f"{document.price_amount} {document.price_currency}",
        "verification_url": verification_url,
        "verification_path": build_verification_path(document.token),
    }


def _system_values(document, verification_url):
    return {
        "stamp_data_url": stamp_data_url(),
        "qr_data_url": qr_data_url(verification_url),
        "barcode_data_url": barcode_data_url(document.barcode_id),
    }


def build_render_values(document, verification_url, system_values=None):
    """Merge snapshot, live fields and system values; later layers win.

    Evaluated on every render so an edited document never shows stale
    snapshot values.
    """
    merged = {}
    if isinstance(document.template_values, dict):
        merged.update(document.template_values)
    merged.update(_live_values(document, verification_url))
    if system_values is None:
        system_values = _system_values(document, verification_url)
    merged.update(system_values)
    for alias, source in ALIASES.items():
        merged[alias] = merged.get(source, "")

    values = {}
    for key, value in merged.items():
        text = "" if value is None else str(value)
        values[key] = text
        values[key.upper()] = text
    return values


def fill_placeholders(template_html, values):
    return PLACEHOLDER_RE.sub(
        lambda m: html.escape(values.get(m.group(1), ""), quote=True), template_html
    )


def render_document_html(document, values):
    if document.template_id:
        body = fill_placeholders(document.template.html_content, values)
    else:
        body = render_to_string(
            "documents/certificate.html", {"document": document, "values": values}
        )
    if body.lstrip().startswith("<!"):
        return body
    return "<!doctype html>" + body


def html_to_pdf(html_string, base_url=None):
    from weasyprint import HTML

    return HTML(string=html_string, base_url=base_url).write_pdf()


def pdf_storage_path(document_id):
    return f"pdfs/{document_id}.pdf"


def read_document_pdf(document_id):
    """Stored PDF bytes; ``FileNotFoundError`` when none was generated."""
    path = pdf_storage_path(document_id)
    if not default_storage.exists(path):
        raise FileNotFoundError(path)
    with default_storage.open(path, "rb") as fh:
        return fh.read()


def generate_document_pdf(document_id, actor=None, context=None, origin=None, renderer=None):
    """Render, store and link the PDF for a document. Returns the document."""
    document = get_document(document_id)
    origin = origin or getattr(settings, "DOCUMENT_PUBLIC_ORIGIN", "")
    verification_url = build_verification_url(origin, document.token)

    values = build_render_values(document, verification_url)
    html_string = render_document_html(document, values)
    pdf_bytes = (renderer or html_to_pdf)(html_string)
    pdf_hash = hashlib.sha256(pdf_bytes).hexdigest()

    path = pdf_storage_path(document.pk)
    if default_storage.exists(path):
        default_storage.delete(path)
    default_storage.save(path, ContentFile(pdf_bytes))

    template_version = document.template.latest_version if document.template_id else None
    document = update_document_pdf_info(
        document.pk,
        Document.PDF_LOCAL,
        reverse("documents_api:document-pdf", args=[document.pk]),
        pdf_hash,
        actor,
        context,
        template_version=template_version,
    )
    logger.info("PDF generated for %s (%s bytes)", document.pk, len(pdf_bytes))

    if document.requester_type == Document.REQUESTER_COMPANY and document.company_id:
        try:
            notify_pdf_generated(document, actor)
        except Exception:
            logger.exception("PDF notification failed for %s", document.pk)
    return document
