from dataclasses import dataclass
from typing import Optional

from documents.models import DocumentAuditLog
from documents.utils.jsonsafe import json_safe
from documents.utils.request_meta import clean_ip, client_ip, client_user_agent


@dataclass(frozen=True)
class AuditContext:
    """Where a mutation came from, as recorded on the audit row."""

    ip_address: Optional[str] = None
    user_agent: str = ""

    @classmethod
    def from_request(cls, request):
        return cls(ip_address=client_ip(request), user_agent=client_user_agent(request))


EMPTY_CONTEXT = AuditContext()


def resolve_actor(actor):
    """Anonymous or missing users are stored as a null actor."""
    if actor is not None and getattr(actor, "is_authenticated", False):
        return actor
    return None


def record_audit(document, action_type, actor=None, context=None, details=None):
    """Append one audit row.

    Runs inside the caller's ``transaction.atomic()`` block when there is
    one, so the row commits or rolls back with the mutation it describes.
    """
    if action_type not in dict(DocumentAuditLog.ACTION_CHOICES):
        raise ValueError(f"Unknown audit action {action_type!r}")
    context = context or EMPTY_CONTEXT
    return DocumentAuditLog.objects.create(
        document=document,
        action_type=action_type,
        actor=resolve_actor(actor),
        ip_address=clean_ip(context.ip_address),
        user_agent=context.user_agent or "",
        details=json_safe(details) if details is not None else None,
    )
