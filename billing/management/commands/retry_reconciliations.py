from django.core.management.base import BaseCommand

from billing.services.reconciliation_service import retry_pending_effects


class Command(BaseCommand):
    help = "Finish wallet credits and status updates for completed transactions whose effects are still pending."

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=100, help="Maximum transactions to process.")

    def handle(self, *args, **options):
        result = retry_pending_effects(limit=options["limit"])
        self.stdout.write(f"Effects applied: {result['done']}")
        if result["still_pending"]:
            self.stdout.write(self.style.WARNING(f"Still pending: {result['still_pending']}"))
        else:
            self.stdout.write(self.style.SUCCESS("No pending reconciliations."))
