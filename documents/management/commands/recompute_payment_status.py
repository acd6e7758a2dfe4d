from django.core.management.base import BaseCommand, CommandError

from documents.exceptions import DocumentNotFound
from documents.services.payments import recompute_payment_status


class Command(BaseCommand):
    help = "Re-derive stored payment status from the payment ledger"

    def add_arguments(self, parser):
        parser.add_argument(
            "--document", default=None, help="Only recompute this document id"
        )

    def handle(self, *args, **options):
        document_id = options.get("document")
        try:
            changed = recompute_payment_status(document_id)
        except DocumentNotFound as exc:
            raise CommandError(str(exc))
        self.stdout.write(self.style.SUCCESS(f"Updated payment status on {changed} document(s)"))
