import re
from datetime import datetime, timedelta, timezone

from documents.services.identifiers import generate_identifiers

TOKEN_RE = re.compile(r"^[0-9a-f]{96}$")
BARCODE_RE = re.compile(r"^GCGM\d{6}-\d{6}$")
REFERENCE_RE = re.compile(r"^REF-\d{8}-\d{6}$")


def test_identifier_formats():
    ids = generate_identifiers()
    assert TOKEN_RE.match(ids.token)
    assert BARCODE_RE.match(ids.barcode_id)
    assert REFERENCE_RE.match(ids.reference_no)


def test_date_components_are_utc():
    # 23:30 at UTC-5 is already the next day in UTC
    now = datetime(2024, 12, 31, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    ids = generate_identifiers(now)
    assert ids.barcode_id.startswith("GCGM250101-")
    assert ids.reference_no.startswith("REF-20250101-")


def test_barcode_prefix_from_settings(settings):
    settings.DOCUMENT_BARCODE_PREFIX = "DORM"
    ids = generate_identifiers(datetime(2024, 3, 5, tzinfo=timezone.utc))
    assert ids.barcode_id.startswith("DORM240305-")


def test_ten_thousand_sets_are_distinct():
    generated = [generate_identifiers() for _ in range(10_000)]
    assert len({ids.token for ids in generated}) == 10_000
    assert len({(ids.token, ids.barcode_id, ids.reference_no) for ids in generated}) == 10_000
