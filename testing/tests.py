from io import StringIO

from django.core.management import CommandError, call_command
from django.test import TestCase, override_settings

from accounts.models import CustomUser
from billing.models import Transaction
from testing.financial.base import SCENARIO_EMAIL_DOMAIN
from testing.financial.runner import AVAILABLE_SCENARIOS


class ScenarioRunnerTests(TestCase):
    @override_settings(ALLOW_TEST_SCENARIOS=True)
    def test_all_scenarios_pass_and_leave_nothing_behind(self):
        out = StringIO()

        call_command("run_financial_scenarios", stdout=out)

        self.assertIn("All requested scenarios passed.", out.getvalue())
        self.assertFalse(CustomUser.objects.filter(email__endswith=SCENARIO_EMAIL_DOMAIN).exists())
        self.assertFalse(Transaction.objects.exists())

    @override_settings(ALLOW_TEST_SCENARIOS=True)
    def test_single_scenario(self):
        out = StringIO()
        call_command("run_financial_scenarios", scenario="settlement", stdout=out)
        self.assertIn("All requested scenarios passed.", out.getvalue())

    def test_list(self):
        out = StringIO()
        call_command("run_financial_scenarios", list=True, stdout=out)
        self.assertEqual(out.getvalue().split(), list(AVAILABLE_SCENARIOS))

    @override_settings(ALLOW_TEST_SCENARIOS=False)
    def test_disabled_outside_test_environments(self):
        with self.assertRaises(CommandError):
            call_command("run_financial_scenarios", stdout=StringIO())
