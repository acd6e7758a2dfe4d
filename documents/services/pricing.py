from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings

from documents.models import CompanyTemplatePrice


@dataclass(frozen=True)
class Money:
    amount: Decimal
    currency: str


def default_price() -> Money:
    return Money(
        amount=Decimal(str(getattr(settings, "DOCUMENT_DEFAULT_PRICE_AMOUNT", "0"))),
        currency=getattr(settings, "DOCUMENT_DEFAULT_PRICE_CURRENCY", "TRY"),
    )


def get_effective_price(company_id, template_id) -> Money:
    """Company specific price for a template, else the configured default."""
    if company_id and template_id:
        row = (
            CompanyTemplatePrice.objects.filter(company_id=company_id, template_id=template_id)
            .only("price_amount", "price_currency")
            .first()
        )
        if row is not None:
            return Money(amount=row.price_amount, currency=row.price_currency)
    return default_price()
