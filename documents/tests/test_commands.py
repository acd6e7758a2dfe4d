from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import CommandError, call_command
from django.utils import timezone

from documents.models import Document, VerifySession
from documents.services.payments import add_payment
from documents.services.verification import verify_document
from documents.tasks import purge_expired_verify_sessions, recompute_payment_statuses
from documents.tests.helpers import CTX, make_document


def _expired_session(doc):
    verify_document("12345678901", doc.reference_no, context=CTX)
    VerifySession.objects.update(expires_at=timezone.now() - timedelta(minutes=1))


@pytest.mark.django_db
def test_purge_command():
    _expired_session(make_document())
    out = StringIO()
    call_command("purge_verify_sessions", stdout=out)
    assert "Removed 1 expired verify session(s)" in out.getvalue()
    assert not VerifySession.objects.exists()


@pytest.mark.django_db
def test_purge_task_runs_eagerly():
    _expired_session(make_document())
    assert purge_expired_verify_sessions.delay().get() == 1


@pytest.mark.django_db
def test_recompute_command():
    doc = make_document()
    add_payment(doc.pk, "1000", "TRY", "cash")
    Document.objects.filter(pk=doc.pk).update(payment_status=Document.PAYMENT_UNPAID)

    out = StringIO()
    call_command("recompute_payment_status", "--document", str(doc.pk), stdout=out)
    assert "Updated payment status on 1 document(s)" in out.getvalue()
    doc.refresh_from_db()
    assert doc.payment_status == "paid"

    with pytest.raises(CommandError):
        call_command("recompute_payment_status", "--document", "not-a-document")


@pytest.mark.django_db
def test_recompute_task_runs_eagerly():
    doc = make_document()
    add_payment(doc.pk, "10", "TRY", "cash")
    Document.objects.filter(pk=doc.pk).update(payment_status=Document.PAYMENT_UNPAID)
    assert recompute_payment_statuses.delay().get() == 1


@pytest.mark.django_db
def test_models_have_no_pending_migrations():
    out = StringIO()
    call_command("makemigrations", "documents", "--check", "--dry-run", stdout=out)
    assert "No changes detected" in out.getvalue()
