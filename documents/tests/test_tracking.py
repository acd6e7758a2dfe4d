import threading
import uuid

import pytest
from django.db import connection
from django.db.models import QuerySet

from documents.exceptions import DocumentNotFound, InvalidStatus, InvalidTransition
from documents.models import Document, DocumentAuditLog, TrackingHistoryEntry
from documents.services.lifecycle import (
    change_tracking_status,
    list_tracking_history,
    update_document_fields,
    update_document_status,
)
from documents.services.payments import add_payment
from documents.tests.helpers import CTX, make_document


@pytest.mark.django_db
def test_shipped_then_received_history(staff_user):
    doc = make_document()

    first = change_tracking_status(doc.pk, "shipped", "courier 42", staff_user, CTX)
    second = change_tracking_status(doc.pk, "received", "", staff_user, CTX)

    assert first.new_status == "shipped"
    assert second.new_status == "received"
    doc.refresh_from_db()
    assert doc.tracking_status == "received"

    history = list_tracking_history(doc.pk)
    assert [(h.from_status, h.to_status) for h in history] == [
        ("shipped", "received"),
        ("created", "shipped"),
    ]
    assert history[0].pk == second.history_id
    assert history[1].note == "courier 42"
    assert history[1].changed_by == staff_user

    logs = DocumentAuditLog.objects.filter(document=doc, action_type="tracking_change").order_by("id")
    assert [log.details for log in logs] == [
        {"from": "created", "to": "shipped", "note": "courier 42"},
        {"from": "shipped", "to": "received", "note": ""},
    ]


@pytest.mark.django_db
def test_history_chain_links_each_step():
    doc = make_document()
    for status in ("shipped", "received", "delivered_to_student", "residence_file_delivered"):
        change_tracking_status(doc.pk, status)

    history = list(reversed(list_tracking_history(doc.pk)))
    assert history[0].from_status == "created"
    for previous, entry in zip(history, history[1:]):
        assert entry.from_status == previous.to_status


@pytest.mark.django_db
def test_same_status_is_recorded():
    doc = make_document()
    change_tracking_status(doc.pk, "created", "re-scan")
    entry = TrackingHistoryEntry.objects.get(document=doc)
    assert (entry.from_status, entry.to_status) == ("created", "created")


@pytest.mark.django_db
def test_unknown_tracking_status_writes_nothing():
    doc = make_document()
    with pytest.raises(InvalidStatus):
        change_tracking_status(doc.pk, "lost_in_space")
    doc.refresh_from_db()
    assert doc.tracking_status == "created"
    assert not TrackingHistoryEntry.objects.exists()
    assert not DocumentAuditLog.objects.filter(action_type="tracking_change").exists()


@pytest.mark.django_db
def test_transition_table_is_enforced(settings):
    settings.DOCUMENT_TRACKING_TRANSITIONS = {"created": ["shipped", "cancelled"], "shipped": ["received"]}
    doc = make_document()

    with pytest.raises(InvalidTransition):
        change_tracking_status(doc.pk, "received")
    assert not TrackingHistoryEntry.objects.exists()

    change_tracking_status(doc.pk, "shipped")
    change_tracking_status(doc.pk, "received")
    with pytest.raises(InvalidTransition):
        change_tracking_status(doc.pk, "shipped")
    assert TrackingHistoryEntry.objects.count() == 2


@pytest.mark.django_db
def test_tracking_on_missing_document():
    with pytest.raises(DocumentNotFound):
        change_tracking_status(uuid.uuid4(), "shipped")
    with pytest.raises(DocumentNotFound):
        list_tracking_history(uuid.uuid4())


@pytest.mark.django_db
def test_document_status_change_is_audited(staff_user):
    doc = make_document()

    update_document_status(doc.pk, Document.STATUS_INACTIVE, staff_user, CTX)

    doc.refresh_from_db()
    assert doc.doc_status == "inactive"
    log = DocumentAuditLog.objects.get(document=doc, action_type="status_change")
    assert log.details == {"from": "active", "to": "inactive"}
    assert log.actor == staff_user


@pytest.mark.django_db
def test_unknown_document_status_is_rejected():
    doc = make_document()
    with pytest.raises(InvalidStatus):
        update_document_status(doc.pk, "archived")
    assert not DocumentAuditLog.objects.filter(action_type="status_change").exists()


@pytest.mark.django_db
def test_mutations_lock_the_document_row(monkeypatch):
    doc = make_document()
    locked = []
    select_for_update = QuerySet.select_for_update

    def recording(self, *args, **kwargs):
        locked.append((self.model, connection.in_atomic_block))
        return select_for_update(self, *args, **kwargs)

    monkeypatch.setattr(QuerySet, "select_for_update", recording)

    change_tracking_status(doc.pk, "shipped")
    update_document_status(doc.pk, Document.STATUS_INACTIVE)
    update_document_fields(doc.pk, {"dorm_name": "North Hall"})
    add_payment(doc.pk, "10", "TRY", "cash")

    assert locked == [(Document, True)] * 4
    doc.refresh_from_db()
    assert doc.tracking_status == "shipped"
    assert doc.dorm_name == "North Hall"


@pytest.mark.skipif(
    not connection.features.has_select_for_update,
    reason="backend has no SELECT ... FOR UPDATE",
)
@pytest.mark.django_db(transaction=True)
def test_concurrent_changes_are_serialised():
    doc = make_document()
    targets = ["shipped", "received", "delivered_to_agent", "cancelled"] * 3
    errors = []

    def worker(status):
        try:
            change_tracking_status(doc.pk, status)
        except Exception as exc:  # surfaced below
            errors.append(exc)
        finally:
            connection.close()

    threads = [threading.Thread(target=worker, args=(s,)) for s in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not errors
    history = list(TrackingHistoryEntry.objects.filter(document=doc).order_by("id"))
    assert len(history) == len(targets)
    assert history[0].from_status == "created"
    for previous, entry in zip(history, history[1:]):
        assert entry.from_status == previous.to_status
    doc.refresh_from_db()
    assert doc.tracking_status == history[-1].to_status
