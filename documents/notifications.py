"""In-app notifications, with an optional e-mail copy to the company."""

import json
import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.utils import timezone

from .exceptions import NotificationNotFound
from .models import Notification
from .services.audit import resolve_actor

logger = logging.getLogger(__name__)

KIND_PDF_GENERATED = "kind:pdf_generated"


def create_notification(target_role, title, message="", href="", company=None, created_by=None):
    return Notification.objects.create(
        target_role=target_role,
        company=company,
        title=title,
        message=message or "",
        href=href or "",
        created_by=resolve_actor(created_by),
    )


def send_company_email(company, subject, text_body, html_body=None):
    if not company or not company.contact_email:
        return False
    email = EmailMultiAlternatives(
        subject=subject,
        body=text_body,
        from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
        to=[company.contact_email],
    )
    if html_body:
        email.attach_alternative(html_body, "text/html")
    email.send(fail_silently=False)
    return True


def notify_pdf_generated(document, actor=None):
    """Tell the requesting company that its certificate PDF is ready."""
    notification = create_notification(
        Notification.ROLE_COMPANY,
        KIND_PDF_GENERATED,
        message=json.dumps({"referenceNo": document.reference_no}),
        href=f"/documents/{document.pk}",
        company=document.company,
        created_by=actor,
    )
    if getattr(settings, "DOCUMENT_NOTIFY_BY_EMAIL", False):
        send_company_email(
            document.company,
            f"Certificate {document.reference_no} is ready",
            f"The PDF for {document.owner_full_name} ({document.reference_no}) is ready.",
        )
    return notification


def list_notifications(target_role=None, company_id=None, unread_only=False, limit=50):
    qs = Notification.objects.all()
    if target_role:
        qs = qs.filter(target_role=target_role)
    if company_id:
        qs = qs.filter(company_id=company_id)
    if unread_only:
        qs = qs.filter(read_at__isnull=True)
    return list(qs.order_by("-created_at", "-id")[:limit])


def mark_notification_read(notification_id):
    try:
        notification = Notification.objects.get(pk=notification_id)
    except (Notification.DoesNotExist, ValueError):
        raise NotificationNotFound(f"Notification {notification_id} not found")
    if notification.read_at is None:
        notification.read_at = timezone.now()
        notification.save(update_fields=["read_at"])
    return notification
