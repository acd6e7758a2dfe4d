import secrets
from dataclasses import dataclass
from datetime import timezone as dt_timezone

from django.conf import settings
from django.utils import timezone
from django.utils.crypto import get_random_string

DIGITS = "0123456789"


@dataclass(frozen=True)
class Identifiers:
    token: str
    barcode_id: str
    reference_no: str


def _random_digits(n=6):
    return get_random_string(n, allowed_chars=DIGITS)


def generate_identifiers(now=None) -> Identifiers:
    """Fresh (token, barcode_id, reference_no) triple.

    Date components are taken in UTC. Uniqueness is not checked here; the
    insert path retries on collision.
    """
    now = (now or timezone.now()).astimezone(dt_timezone.utc)
    prefix = getattr(settings, "DOCUMENT_BARCODE_PREFIX", "GCGM")
    return Identifiers(
        token=secrets.token_hex(48),
        barcode_id=f"{prefix}{now:%y%m%d}-{_random_digits()}",
        reference_no=f"REF-{now:%Y%m%d}-{_random_digits()}",
    )
