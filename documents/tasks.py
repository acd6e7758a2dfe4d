import logging

from celery import shared_task

from .services.payments import recompute_payment_status
from .services.verification import purge_expired_sessions

logger = logging.getLogger(__name__)


def purge_expired_verify_sessions_sync():
    """Delete verify sessions past their expiry. Used by the task and the CLI."""
    deleted = purge_expired_sessions()
    logger.info(f"purge_expired_verify_sessions: removed {deleted} expired session(s).")
    return deleted


@shared_task
def purge_expired_verify_sessions():
    """Celery task wrapper around the synchronous purge."""
    return purge_expired_verify_sessions_sync()


@shared_task
def recompute_payment_statuses(document_id=None):
    changed = recompute_payment_status(document_id)
    logger.info(f"recompute_payment_statuses: {changed} document(s) updated.")
    return changed
