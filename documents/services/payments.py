import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import List, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import DecimalField, Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from documents.exceptions import (
    InvalidAmount,
    InvalidCurrency,
    InvalidInput,
    LedgerError,
    error_message,
)
from documents.models import Document, DocumentAuditLog, Payment, currency_validator
from documents.services.audit import record_audit, resolve_actor
from documents.services.lifecycle import ensure_document_exists, get_document, lock_document

logger = logging.getLogger(__name__)

# Absorbs representation noise when comparing paid against price.
EPSILON = Decimal("1e-9")
ZERO = Decimal("0.00")
MAX_BULK_DOCUMENTS = 500

METHOD_VALUES = {value for value, _ in Payment.METHOD_CHOICES}


@dataclass(frozen=True)
class PaymentResult:
    payment_id: int
    payment_status: str


@dataclass(frozen=True)
class BulkPaymentResult:
    document_id: str
    ok: bool
    payment_id: Optional[int] = None
    payment_status: Optional[str] = None
    error: Optional[str] = None


@dataclass
class BulkPaymentReport:
    results: List[BulkPaymentResult] = field(default_factory=list)
    ok_count: int = 0
    failed_count: int = 0


@dataclass(frozen=True)
class PaymentSummary:
    price_amount: Decimal
    price_currency: str
    paid_amount: Decimal
    remaining_amount: Decimal
    payment_status: str


@dataclass(frozen=True)
class AccountingSummary:
    document_count: int
    currency: Optional[str]
    total_sales: Decimal
    total_collected: Decimal
    total_remaining: Decimal


def _q(x):
    return Decimal(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def parse_amount(amount):
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(f"Invalid payment amount {amount!r}")
    if not value.is_finite():
        raise InvalidAmount(f"Invalid payment amount {amount!r}")
    value = _q(value)
    if value <= 0:
        raise InvalidAmount("Payment amount must be greater than zero.")
    return value


def parse_currency(currency):
    code = (currency or "").strip().upper()
    try:
        currency_validator(code)
    except ValidationError:
        raise InvalidCurrency(f"Invalid currency {currency!r}")
    return code


def _payment_datetime(payment_date):
    if payment_date is None:
        return timezone.now()
    if isinstance(payment_date, datetime):
        value = payment_date
    elif isinstance(payment_date, date):
        value = datetime.combine(payment_date, time.min)
    else:
        raise InvalidInput(f"Invalid payment date {payment_date!r}")
    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    return value


def derive_payment_status(paid_amount, price_amount):
    paid = Decimal(paid_amount or 0)
    price = Decimal(price_amount or 0)
    if paid <= 0:
        return Document.PAYMENT_UNPAID
    if paid + EPSILON >= price:
        return Document.PAYMENT_PAID
    return Document.PAYMENT_PARTIAL


def paid_total(document_id):
    total = Payment.objects.filter(document_id=document_id).aggregate(total=Sum("amount"))["total"]
    return _q(total) if total is not None else ZERO


@transaction.atomic
def add_payment(
    document_id,
    amount,
    currency,
    method,
    payment_date=None,
    receipt_no="",
    note="",
    actor=None,
    context=None,
) -> PaymentResult:
    amount = parse_amount(amount)
    currency = parse_currency(currency)
    if method not in METHOD_VALUES:
        raise InvalidInput(f"Unknown payment method {method!r}")
    paid_at = _payment_datetime(payment_date)

    doc = lock_document(document_id)
    if currency != doc.price_currency:
        raise InvalidCurrency(
            f"Payment currency {currency} does not match document currency {doc.price_currency}"
        )

    payment = Payment.objects.create(
        document=doc,
        amount=amount,
        currency=currency,
        method=method,
        payment_date=paid_at,
        received_by=resolve_actor(actor),
        receipt_no=receipt_no or "",
        note=note or "",
    )

    status = derive_payment_status(paid_total(doc.pk), doc.price_amount)
    if status != doc.payment_status:
        doc.payment_status = status
        doc.save(update_fields=["payment_status", "updated_at"])

    record_audit(
        doc,
        DocumentAuditLog.ACTION_PAYMENT_ADDED,
        actor,
        context,
        details={
            "payment_id": payment.pk,
            "amount": amount,
            "currency": currency,
            "method": method,
            "payment_date": paid_at,
            "receipt_no": payment.receipt_no,
        },
    )
    return PaymentResult(payment_id=payment.pk, payment_status=status)


def add_bulk_payment(
    document_ids,
    amount,
    currency,
    method,
    payment_date=None,
    receipt_no="",
    note="",
    actor=None,
    context=None,
) -> BulkPaymentReport:
    """Post the same payment to each document, one transaction per document.

    A failure on one document is reported and never rolls back the others.
    """
    ids = list(dict.fromkeys(str(x) for x in (document_ids or []) if x))
    if not ids:
        raise InvalidInput("At least one document is required.")
    if len(ids) > MAX_BULK_DOCUMENTS:
        raise InvalidInput(f"At most {MAX_BULK_DOCUMENTS} documents per bulk payment.")
    amount = parse_amount(amount)
    currency = parse_currency(currency)
    if method not in METHOD_VALUES:
        raise InvalidInput(f"Unknown payment method {method!r}")

    report = BulkPaymentReport()
    for document_id in ids:
        try:
            result = add_payment(
                document_id,
                amount,
                currency,
                method,
                payment_date=payment_date,
                receipt_no=receipt_no,
                note=note,
                actor=actor,
                context=context,
            )
        except LedgerError as exc:
            report.failed_count += 1
            report.results.append(BulkPaymentResult(document_id=document_id, ok=False, error=error_message(exc)))
            continue
        report.ok_count += 1
        report.results.append(
            BulkPaymentResult(
                document_id=document_id,
                ok=True,
                payment_id=result.payment_id,
                payment_status=result.payment_status,
            )
        )
    logger.info(
        "Bulk payment: %s posted, %s failed", report.ok_count, report.failed_count
    )
    return report


def get_payment_summary(document_id) -> PaymentSummary:
    doc = get_document(document_id)
    paid = paid_total(doc.pk)
    remaining = doc.price_amount - paid
    return PaymentSummary(
        price_amount=doc.price_amount,
        price_currency=doc.price_currency,
        paid_amount=paid,
        remaining_amount=remaining if remaining > 0 else ZERO,
        payment_status=doc.payment_status,
    )


def list_payments(document_id):
    ensure_document_exists(document_id)
    return list(
        Payment.objects.filter(document_id=document_id)
        .select_related("received_by")
        .order_by("-payment_date", "-created_at", "-id")
    )


def get_accounting_summary(document_ids) -> AccountingSummary:
    """Sales, collections and balance over a selection of documents.

    Collections are capped at each document's price so overpayments do not
    inflate the total.
    """
    ids = list(dict.fromkeys(str(x) for x in (document_ids or []) if x))
    if not ids:
        raise InvalidInput("At least one document is required.")
    try:
        rows = list(
            Document.objects.filter(pk__in=ids)
            .annotate(
                paid=Coalesce(
                    Sum("payments__amount"),
                    Value(ZERO),
                    output_field=DecimalField(max_digits=14, decimal_places=2),
                )
            )
            .values("price_amount", "price_currency", "paid")
        )
    except ValidationError as exc:
        raise InvalidInput(exc.messages)

    currencies = {row["price_currency"] for row in rows}
    if len(currencies) > 1:
        raise InvalidCurrency(
            f"Selection mixes currencies: {', '.join(sorted(currencies))}"
        )

    sales = collected = remaining = ZERO
    for row in rows:
        price = row["price_amount"]
        paid = Decimal(row["paid"] or 0)
        sales += price
        collected += min(paid, price)
        remaining += max(price - paid, ZERO)
    return AccountingSummary(
        document_count=len(rows),
        currency=currencies.pop() if currencies else None,
        total_sales=_q(sales),
        total_collected=_q(collected),
        total_remaining=_q(remaining),
    )


def recompute_payment_status(document_id=None):
    """Re-derive stored payment status from the ledger. Returns rows changed."""
    if document_id is not None:
        ensure_document_exists(document_id)
        ids = [document_id]
    else:
        ids = list(Document.objects.order_by("created_at").values_list("pk", flat=True))

    changed = 0
    for pk in ids:
        with transaction.atomic():
            doc = lock_document(pk)
            paid = paid_total(doc.pk)
            status = derive_payment_status(paid, doc.price_amount)
            if status == doc.payment_status:
                continue
            previous = doc.payment_status
            doc.payment_status = status
            doc.save(update_fields=["payment_status", "updated_at"])
            record_audit(
                doc,
                DocumentAuditLog.ACTION_UPDATE,
                details={
                    "kind": "payment_status_recompute",
                    "from": previous,
                    "to": status,
                    "paid_amount": paid,
                },
            )
            changed += 1
    if changed:
        logger.warning("Payment status drift repaired on %s document(s)", changed)
    return changed
