import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import HttpResponse
from django.utils.dateparse import parse_date
from rest_framework import permissions, status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .exceptions import (
    Conflict,
    Forbidden,
    IdentifierSpaceExhausted,
    ImmutableRecordError,
    InvalidInput,
    NotFound,
    RateLimited,
    error_message,
)
from .models import DocumentAuditLog
from .notifications import list_notifications, mark_notification_read
from .pdf_utils import generate_document_pdf, read_document_pdf
from .serializers import (
    BulkPaymentSerializer,
    DocumentCreateSerializer,
    DocumentSelectionSerializer,
    DocumentSerializer,
    DocumentStatusSerializer,
    DocumentWriteSerializer,
    NotificationSerializer,
    PaymentInputSerializer,
    PaymentSerializer,
    TrackingChangeSerializer,
    TrackingHistorySerializer,
    VerifySerializer,
)
from .services.audit import AuditContext, record_audit
from .services.lifecycle import (
    DocumentFilter,
    change_tracking_status,
    create_document,
    get_document,
    list_documents,
    list_tracking_history,
    update_document_fields,
    update_document_status,
)
from .services.payments import (
    add_bulk_payment,
    add_payment,
    get_accounting_summary,
    get_payment_summary,
    list_payments,
)
from .services.pricing import get_effective_price
from .services.reports import (
    DEFAULT_TOP_COMPANIES,
    get_payments_by_method,
    get_reports_summary,
    get_top_requesting_companies,
    parse_report_range,
)
from .services.verification import check_session, prefill_from_token, verify_document
from .utils.request_meta import client_ip, client_user_agent

logger = logging.getLogger(__name__)


def ledger_exception_handler(exc, context):
    """Map ledger failures to HTTP; everything else goes to DRF."""
    if isinstance(exc, RateLimited):
        response = Response(
            {"ok": False, "message": exc.message}, status=status.HTTP_429_TOO_MANY_REQUESTS
        )
        response["Retry-After"] = str(exc.retry_after)
        return response
    if isinstance(exc, NotFound):
        return Response({"ok": False, "detail": error_message(exc)}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, Forbidden):
        return Response({"ok": False, "detail": error_message(exc)}, status=status.HTTP_403_FORBIDDEN)
    if isinstance(exc, (InvalidInput, ValidationError)):
        body = {"ok": False, "detail": error_message(exc)}
        if hasattr(exc, "error_dict"):
            body["errors"] = exc.message_dict
        return Response(body, status=status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, IdentifierSpaceExhausted):
        # entropy or configuration fault
        logger.error("Document identifiers exhausted: %s", exc)
        return Response(
            {"ok": False, "detail": "Internal server error."},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    if isinstance(exc, (Conflict, ImmutableRecordError)):
        return Response({"ok": False, "detail": error_message(exc)}, status=status.HTTP_409_CONFLICT)
    return exception_handler(exc, context)


def _money(value):
    return None if value is None else str(value)


def _optional_date(value):
    """Parsed date, or None for anything blank or malformed."""
    if not value:
        return None
    try:
        return parse_date(str(value))
    except ValueError:
        return None


def _pdf_response(document_id, pdf_bytes, download):
    response = HttpResponse(pdf_bytes, content_type="application/pdf")
    disposition = "attachment" if download else "inline"
    response["Content-Disposition"] = f"{disposition}; filename=document-{document_id}.pdf"
    return response


@api_view(["GET", "POST"])
@permission_classes([permissions.IsAuthenticated])
def documents_collection(request):
    if request.method == "POST":
        serializer = DocumentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        document = create_document(
            dict(serializer.validated_data), request.user, AuditContext.from_request(request)
        )
        return Response(DocumentSerializer(document).data, status=status.HTTP_201_CREATED)

    params = request.query_params
    filters = DocumentFilter(
        q=params.get("q", ""),
        doc_status=params.get("doc_status") or None,
        tracking_status=params.get("tracking_status") or None,
        payment_status=params.get("payment_status") or None,
        payment_group=params.get("payment_group") or None,
        requester_type=params.get("requester_type") or None,
        company_id=params.get("company_id") or None,
        issued_from=_optional_date(params.get("issued_from")),
        issued_to=_optional_date(params.get("issued_to")),
        sort=params.get("sort", "desc"),
    )
    page = list_documents(filters, params.get("page", 1), params.get("page_size", 20))
    return Response(
        {
            "results": DocumentSerializer(page.rows, many=True).data,
            "total": page.total,
            "page": page.page,
            "page_size": page.page_size,
        }
    )


@api_view(["GET", "PATCH"])
@permission_classes([permissions.IsAuthenticated])
def document_detail(request, document_id):
    if request.method == "PATCH":
        serializer = DocumentWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        extra = set(request.data) - set(serializer.fields)
        if extra:
            raise InvalidInput(f"Fields cannot be edited: {', '.join(sorted(extra))}")
        document = update_document_fields(
            document_id,
            dict(serializer.validated_data),
            request.user,
            AuditContext.from_request(request),
        )
        return Response(DocumentSerializer(document).data)
    return Response(DocumentSerializer(get_document(document_id)).data)


@api_view(["PATCH"])
@permission_classes([permissions.IsAuthenticated])
def document_status(request, document_id):
    serializer = DocumentStatusSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    document = update_document_status(
        document_id,
        serializer.validated_data["status"],
        request.user,
        AuditContext.from_request(request),
    )
    return Response({"ok": True, "doc_status": document.doc_status})


@api_view(["GET", "PATCH"])
@permission_classes([permissions.IsAuthenticated])
def document_tracking(request, document_id):
    if request.method == "PATCH":
        serializer = TrackingChangeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        change = change_tracking_status(
            document_id,
            serializer.validated_data["status"],
            serializer.validated_data.get("note", ""),
            request.user,
            AuditContext.from_request(request),
        )
        return Response(
            {"ok": True, "tracking_status": change.new_status, "history_id": change.history_id}
        )
    history = list_tracking_history(document_id)
    return Response({"results": TrackingHistorySerializer(history, many=True).data})


@api_view(["GET", "POST"])
@permission_classes([permissions.IsAuthenticated])
def document_payments(request, document_id):
    if request.method == "POST":
        serializer = PaymentInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = add_payment(
            document_id,
            data["amount"],
            data["currency"],
            data["method"],
            payment_date=data.get("payment_date"),
            receipt_no=data.get("receipt_no", ""),
            note=data.get("note", ""),
            actor=request.user,
            context=AuditContext.from_request(request),
        )
        return Response(
            {"ok": True, "payment_id": result.payment_id, "payment_status": result.payment_status},
            status=status.HTTP_201_CREATED,
        )

    summary = get_payment_summary(document_id)
    payments = list_payments(document_id)
    return Response(
        {
            "summary": {
                "price_amount": _money(summary.price_amount),
                "price_currency": summary.price_currency,
                "paid_amount": _money(summary.paid_amount),
                "remaining_amount": _money(summary.remaining_amount),
                "payment_status": summary.payment_status,
            },
            "payments": PaymentSerializer(payments, many=True).data,
        }
    )


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated])
def document_pdf_generate(request, document_id):
    origin = getattr(settings, "DOCUMENT_PUBLIC_ORIGIN", "") or f"{request.scheme}://{request.get_host()}"
    document = generate_document_pdf(
        document_id,
        request.user,
        AuditContext.from_request(request),
        origin=origin,
    )
    return Response({"ok": True, "pdf_url": document.pdf_url, "pdf_hash": document.pdf_hash})


def _serve_pdf(request, document, actor):
    try:
        pdf_bytes = read_document_pdf(document.pk)
    except FileNotFoundError:
        return Response({"ok": False, "detail": "PDF not found."}, status=status.HTTP_404_NOT_FOUND)
    download = request.query_params.get("download") == "1"
    record_audit(
        document,
        DocumentAuditLog.ACTION_PDF_DOWNLOAD if download else DocumentAuditLog.ACTION_PDF_VIEW,
        actor,
        AuditContext.from_request(request),
        details={"public": actor is None},
    )
    return _pdf_response(document.pk, pdf_bytes, download)


@api_view(["GET"])
@permission_classes([permissions.IsAuthenticated])
def document_pdf(request, document_id):
    return _serve_pdf(request, get_document(document_id), request.user)


@api_view(["GET"])
@authentication_classes([])
@permission_classes([permissions.AllowAny])
def document_pdf_public(request, document_id):
    session_token = request.query_params.get("session", "")
    if not check_session(session_token, document_id, client_ip(request), client_user_agent(request)):
        return Response({"ok": False, "message": "Unauthorized."}, status=status.HTTP_401_UNAUTHORIZED)
    return _serve_pdf(request, get_document(document_id), None)


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated])
def accounting_bulk_payment(request):
    serializer = BulkPaymentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    report = add_bulk_payment(
        data["document_ids"],
        data["amount"],
        data["currency"],
        data["method"],
        payment_date=data.get("payment_date"),
        receipt_no=data.get("receipt_no", ""),
        note=data.get("note", ""),
        actor=request.user,
        context=AuditContext.from_request(request),
    )
    return Response(
        {
            "ok": report.failed_count == 0,
            "ok_count": report.ok_count,
            "failed_count": report.failed_count,
            "results": [
                {
                    "document_id": r.document_id,
                    "ok": r.ok,
                    "payment_id": r.payment_id,
                    "payment_status": r.payment_status,
                    "error": r.error,
                }
                for r in report.results
            ],
        }
    )


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated])
def accounting_summary(request):
    serializer = DocumentSelectionSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    summary = get_accounting_summary(serializer.validated_data["document_ids"])
    return Response(
        {
            "document_count": summary.document_count,
            "currency": summary.currency,
            "total_sales": _money(summary.total_sales),
            "total_collected": _money(summary.total_collected),
            "total_remaining": _money(summary.total_remaining),
        }
    )


@api_view(["GET"])
@permission_classes([permissions.IsAuthenticated])
def reports(request):
    params = request.query_params
    rng = parse_report_range(params.get("from"), params.get("to"))
    summary = get_reports_summary(rng)
    companies = get_top_requesting_companies(rng, params.get("limit", DEFAULT_TOP_COMPANIES))
    return Response(
        {
            "ok": True,
            "range": {
                "from": rng.date_from.isoformat() if rng.date_from else None,
                "to": rng.date_to.isoformat() if rng.date_to else None,
            },
            "summary": {
                "total_documents": summary.total_documents,
                "total_sales": _money(summary.total_sales),
                "total_collected": _money(summary.total_collected),
                "remaining": _money(summary.remaining),
                "payment_status_counts": summary.payment_status_counts,
            },
            "payments_by_method": [
                {"method": row.method, "total_received": _money(row.total_received)}
                for row in get_payments_by_method(rng)
            ],
            "top_companies": [
                {
                    "company_id": row.company_id,
                    "company_name": row.company_name,
                    "documents_count": row.documents_count,
                    "total_sales": _money(row.total_sales),
                }
                for row in companies
            ],
        }
    )


@api_view(["GET"])
@permission_classes([permissions.IsAuthenticated])
def pricing(request):
    price = get_effective_price(
        request.query_params.get("company_id") or None,
        request.query_params.get("template_id") or None,
    )
    return Response({"amount": _money(price.amount), "currency": price.currency})


@api_view(["POST"])
@authentication_classes([])
@permission_classes([permissions.AllowAny])
def verify(request):
    serializer = VerifySerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    outcome = verify_document(
        data.get("identity_no", ""),
        data.get("reference_no", ""),
        data.get("token") or None,
        context=AuditContext.from_request(request),
        birth_date=_optional_date(data.get("birth_date")),
    )
    if not outcome.ok:
        return Response({"ok": False, "message": outcome.message})
    match = outcome.match
    return Response(
        {
            "ok": True,
            "result": {
                "document_id": match.document_id,
                "status": match.doc_status,
                "reference_no": match.reference_no,
                "owner_full_name": match.owner_full_name,
                "university_name": match.university_name,
                "pdf_ready": match.pdf_ready,
            },
            "verify_session": {
                "token": outcome.session.token,
                "expires_at": outcome.session.expires_at.isoformat(),
            },
        }
    )


@api_view(["GET"])
@authentication_classes([])
@permission_classes([permissions.AllowAny])
def verify_prefill(request):
    reference_no, identity_no = prefill_from_token(
        request.query_params.get("token", ""),
        context=AuditContext.from_request(request),
    )
    return Response({"ok": True, "reference_no": reference_no, "identity_no": identity_no})


@api_view(["GET"])
@permission_classes([permissions.IsAuthenticated])
def notifications(request):
    params = request.query_params
    rows = list_notifications(
        target_role=params.get("target_role") or None,
        company_id=params.get("company_id") or None,
        unread_only=params.get("unread") == "1",
    )
    return Response({"results": NotificationSerializer(rows, many=True).data})


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated])
def notification_read(request, notification_id):
    notification = mark_notification_read(notification_id)
    return Response({"ok": True, "read_at": notification.read_at.isoformat()})
