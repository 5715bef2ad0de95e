from django.core.management.base import BaseCommand

from bookings.reconciliation import process_pending_dispatches


class Command(BaseCommand):
    help = "Send booking emails that are still pending or failed on an earlier attempt"

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit", type=int, default=50,
            help="Maximum number of emails to process in this run",
        )

    def handle(self, *args, **options):
        result = process_pending_dispatches(limit=options["limit"])

        if not result["processed"]:
            self.stdout.write("No pending emails.")
            return

        self.stdout.write(self.style.SUCCESS(f"✅ Sent {result['sent']} of {result['processed']} emails"))
        if result["failed"]:
            self.stdout.write(self.style.WARNING(f"⚠️ {result['failed']} emails failed and will be retried"))
