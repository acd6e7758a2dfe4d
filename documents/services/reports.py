"""Period reports over the ledger, filtered by document issue date.

Amounts are summed as stored. The figures are operational totals and do not
convert between currencies.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from django.db.models import Count, DecimalField, Q, Sum, Value
from django.db.models.functions import Coalesce
from django.utils.dateparse import parse_date

from documents.models import Document, Payment
from documents.services.payments import ZERO, _q

DEFAULT_TOP_COMPANIES = 10
MAX_TOP_COMPANIES = 50

_MONEY = DecimalField(max_digits=14, decimal_places=2)


@dataclass(frozen=True)
class ReportRange:
    date_from: Optional[date] = None
    date_to: Optional[date] = None


@dataclass(frozen=True)
class ReportsSummary:
    total_documents: int
    total_sales: Decimal
    total_collected: Decimal
    remaining: Decimal
    payment_status_counts: Dict[str, int]


@dataclass(frozen=True)
class MethodTotal:
    method: str
    total_received: Decimal


@dataclass(frozen=True)
class CompanyTotal:
    company_id: str
    company_name: str
    documents_count: int
    total_sales: Decimal


def _coerce_date(value):
    if isinstance(value, date):
        return value
    value = (value or "").strip()
    if len(value) != 10:
        return None
    try:
        return parse_date(value)
    except ValueError:
        return None


def parse_report_range(date_from=None, date_to=None) -> ReportRange:
    """Bounds as dates; anything that is not a real YYYY-MM-DD is dropped."""
    return ReportRange(date_from=_coerce_date(date_from), date_to=_coerce_date(date_to))


def _documents_in(rng, prefix=""):
    lookups = {}
    if rng.date_from is not None:
        lookups[f"{prefix}issue_date__gte"] = rng.date_from
    if rng.date_to is not None:
        lookups[f"{prefix}issue_date__lte"] = rng.date_to
    return lookups


def get_reports_summary(rng=None) -> ReportsSummary:
    rng = rng or ReportRange()
    totals = Document.objects.filter(**_documents_in(rng)).aggregate(
        total_documents=Count("id"),
        total_sales=Coalesce(Sum("price_amount"), Value(ZERO), output_field=_MONEY),
        **{
            f"{status}_count": Count("id", filter=Q(payment_status=status))
            for status, _ in Document.PAYMENT_STATUS_CHOICES
        },
    )
    collected = Payment.objects.filter(**_documents_in(rng, "document__")).aggregate(
        total=Coalesce(Sum("amount"), Value(ZERO), output_field=_MONEY)
    )["total"]

    sales = _q(totals["total_sales"])
    collected = _q(collected)
    return ReportsSummary(
        total_documents=totals["total_documents"],
        total_sales=sales,
        total_collected=collected,
        # overpayments are not capped here, so this can go negative
        remaining=sales - collected,
        payment_status_counts={
            status: totals[f"{status}_count"] for status, _ in Document.PAYMENT_STATUS_CHOICES
        },
    )


def get_payments_by_method(rng=None) -> List[MethodTotal]:
    """One row per payment method, zero-filled, in the order methods are declared."""
    rng = rng or ReportRange()
    rows = (
        Payment.objects.filter(**_documents_in(rng, "document__"))
        .values("method")
        .annotate(total=Sum("amount"))
        .order_by("method")
    )
    by_method = {row["method"]: row["total"] for row in rows}
    return [
        MethodTotal(method=method, total_received=_q(by_method.get(method) or ZERO))
        for method, _ in Payment.METHOD_CHOICES
    ]


def _clamp_limit(limit):
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        return DEFAULT_TOP_COMPANIES
    return max(1, min(MAX_TOP_COMPANIES, limit))


def get_top_requesting_companies(rng=None, limit=DEFAULT_TOP_COMPANIES) -> List[CompanyTotal]:
    rng = rng or ReportRange()
    rows = (
        Document.objects.filter(
            requester_type=Document.REQUESTER_COMPANY,
            company__isnull=False,
            **_documents_in(rng),
        )
        .values("company_id", "company__company_name")
        .annotate(documents_count=Count("id"), total_sales=Sum("price_amount"))
        .order_by("-documents_count", "company__company_name")[: _clamp_limit(limit)]
    )
    return [
        CompanyTotal(
            company_id=str(row["company_id"]),
            company_name=row["company__company_name"],
            documents_count=row["documents_count"],
            total_sales=_q(row["total_sales"] or ZERO),
        )
        for row in rows
    ]
