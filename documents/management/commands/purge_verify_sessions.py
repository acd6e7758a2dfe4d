from django.core.management.base import BaseCommand

from documents.tasks import purge_expired_verify_sessions_sync


class Command(BaseCommand):
    help = "Delete public verification sessions that have expired"

    def handle(self, *args, **options):
        deleted = purge_expired_verify_sessions_sync()
        self.stdout.write(self.style.SUCCESS(f"Removed {deleted} expired verify session(s)"))
