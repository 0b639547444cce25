from testing.financial.base import assert_scenarios_enabled
from testing.financial.scenarios import (
    scenario_expired_request,
    scenario_group_split,
    scenario_replayed_confirmation,
    scenario_settlement,
)

AVAILABLE_SCENARIOS = {
    "group_split": scenario_group_split,
    "expired_request": scenario_expired_request,
    "settlement": scenario_settlement,
    "replayed_confirmation": scenario_replayed_confirmation,
}


def run_scenario(name):
    assert_scenarios_enabled()
    if name not in AVAILABLE_SCENARIOS:
        raise Exception(f"Unknown scenario '{name}'. Available: {', '.join(AVAILABLE_SCENARIOS.keys())}")
    AVAILABLE_SCENARIOS[name].run()


def run_all():
    assert_scenarios_enabled()
    for _, scenario in AVAILABLE_SCENARIOS.items():
        scenario.run()
