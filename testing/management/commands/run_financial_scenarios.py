from django.core.management.base import BaseCommand, CommandError

from testing.financial.runner import AVAILABLE_SCENARIOS, run_all, run_scenario


class Command(BaseCommand):
    help = "Replay payment, expiry and settlement scenarios in a rolled-back transaction (needs ALLOW_TEST_SCENARIOS)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--scenario",
            type=str,
            choices=sorted(AVAILABLE_SCENARIOS),
            help="Run only one scenario.",
        )
        parser.add_argument("--list", action="store_true", help="List scenarios and exit.")

    def handle(self, *args, **options):
        if options["list"]:
            for name in AVAILABLE_SCENARIOS:
                self.stdout.write(name)
            return
        scenario = options.get("scenario")
        self.stdout.write(self.style.WARNING("=== Payment Scenario Runner ==="))
        try:
            if scenario:
                run_scenario(scenario)
            else:
                run_all()
        except Exception as exc:
            raise CommandError(f"Scenario run failed: {exc}")
        self.stdout.write(self.style.SUCCESS("All requested scenarios passed."))
