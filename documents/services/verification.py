"""Public verification of issued documents.

A holder proves knowledge of the reference number and identity number (and,
from a printed QR code, the document token). A successful check issues a
short-lived session token that unlocks the public PDF download. Only
SHA-256 digests of identity numbers and session tokens are stored.
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from documents.exceptions import DocumentNotFound, InvalidInput, RateLimited
from documents.models import Document, DocumentAuditLog, VerificationAttempt, VerifySession
from documents.services.audit import EMPTY_CONTEXT, record_audit
from documents.services.rate_limit import get_rate_limiter
from documents.utils.request_meta import clean_ip

logger = logging.getLogger(__name__)

NOT_VERIFIED_MESSAGE = "The details could not be verified."
RATE_LIMITED_MESSAGE = "Too many attempts. Please try again later."


@dataclass(frozen=True)
class VerificationMatch:
    document_id: str
    doc_status: str
    reference_no: str
    owner_full_name: str
    university_name: str
    pdf_ready: bool


@dataclass(frozen=True)
class IssuedSession:
    token: str
    expires_at: object


@dataclass(frozen=True)
class VerificationOutcome:
    ok: bool
    match: Optional[VerificationMatch] = None
    session: Optional[IssuedSession] = None
    message: str = ""


def sha256_hex(value):
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def hash_identity_no(identity_no):
    return sha256_hex(identity_no)


def hash_session_token(token):
    return sha256_hex(token)


def _enforce_rate_limit(limiter, bucket, context, setting_name, default):
    limit, window = getattr(settings, setting_name, default)
    ip = clean_ip(context.ip_address) or "unknown"
    decision = (limiter or get_rate_limiter()).check(f"{bucket}:{ip}", limit, window)
    if not decision.allowed:
        logger.info("Rate limit hit for %s from %s", bucket, ip)
        raise RateLimited(decision.retry_after, RATE_LIMITED_MESSAGE)


def _find_match(identity_no, reference_no, token):
    qs = Document.objects.filter(reference_no=reference_no, owner_identity_no=identity_no)
    if token:
        qs = qs.filter(token=token)
    return qs.first()


def issue_session(document, context, ttl_minutes=None):
    if ttl_minutes is None:
        ttl_minutes = getattr(settings, "VERIFY_SESSION_TTL_MINUTES", 5)
    ttl_minutes = max(1, int(ttl_minutes))
    token = secrets.token_hex(32)
    expires_at = timezone.now() + timedelta(minutes=ttl_minutes)
    VerifySession.objects.create(
        token_hash=hash_session_token(token),
        document=document,
        ip_address=clean_ip(context.ip_address),
        user_agent=context.user_agent or None,
        expires_at=expires_at,
    )
    return IssuedSession(token=token, expires_at=expires_at)


def verify_document(identity_no, reference_no, token=None, *, context=None, limiter=None, birth_date=None):
    context = context or EMPTY_CONTEXT
    _enforce_rate_limit(limiter, "verify", context, "VERIFY_RATE_LIMIT", (10, 60))

    identity_no = (identity_no or "").strip()
    reference_no = (reference_no or "").strip()
    token = (token or "").strip() or None
    if not identity_no or not reference_no:
        raise InvalidInput("Reference number and identity number are required.")

    identity_hash = hash_identity_no(identity_no)
    details = {"token_present": bool(token), "reference_no": reference_no[:64]}

    with transaction.atomic():
        document = _find_match(identity_no, reference_no, token)
        VerificationAttempt.objects.create(
            token=(token or "")[:96],
            reference_no=reference_no[:64],
            identity_no_hash=identity_hash,
            birth_date=birth_date,
            success=document is not None,
            ip_address=clean_ip(context.ip_address),
        )
        if document is None:
            record_audit(
                None,
                DocumentAuditLog.ACTION_UPDATE,
                context=context,
                details={"event": "verify_fail", **details},
            )
            logger.info("Verification failed for reference %s", reference_no)
            return VerificationOutcome(ok=False, message=NOT_VERIFIED_MESSAGE)

        record_audit(
            document,
            DocumentAuditLog.ACTION_UPDATE,
            context=context,
            details={"event": "verify_success", **details},
        )
        session = issue_session(document, context)

    match = VerificationMatch(
        document_id=str(document.pk),
        doc_status=document.doc_status,
        reference_no=document.reference_no,
        owner_full_name=document.owner_full_name,
        university_name=document.university_name,
        pdf_ready=document.pdf_ready,
    )
    return VerificationOutcome(ok=True, match=match, session=session)


def prefill_from_token(token, *, context=None, limiter=None):
    """``(reference_no, identity_no)`` for the verification link on a certificate."""
    context = context or EMPTY_CONTEXT
    _enforce_rate_limit(limiter, "verify_prefill", context, "VERIFY_PREFILL_RATE_LIMIT", (30, 60))
    token = (token or "").strip()
    if not token:
        raise InvalidInput("Token is required.")
    row = (
        Document.objects.filter(token=token)
        .values_list("reference_no", "owner_identity_no")
        .first()
    )
    if row is None or not all(row):
        raise DocumentNotFound("No document for this token")
    return row


def check_session(session_token, document_id, ip_address=None, user_agent=None):
    """True when the session is live for this document and client.

    IP and user agent are compared only when the session was bound to them.
    """
    if not session_token:
        return False
    session = (
        VerifySession.objects.filter(
            token_hash=hash_session_token(session_token),
            expires_at__gt=timezone.now(),
        )
        .first()
    )
    if session is None or str(session.document_id) != str(document_id):
        return False
    if session.ip_address is not None and session.ip_address != clean_ip(ip_address):
        return False
    if session.user_agent is not None and session.user_agent != (user_agent or ""):
        return False
    return True


def purge_expired_sessions(now=None):
    deleted, _ = VerifySession.objects.filter(expires_at__lte=now or timezone.now()).delete()
    return deleted
