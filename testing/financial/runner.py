from testing.financial.base import assert_scenarios_enabled, cleanup_scenario_data
from testing.financial.scenarios import (
    scenario_cancel_completed,
    scenario_double_end_guard,
    scenario_full_settlement,
    scenario_partial_payment,
    scenario_payout,
    scenario_stale_sweep,
    scenario_topup_idempotent,
)

AVAILABLE_SCENARIOS = {
    "full_settlement": scenario_full_settlement,
    "partial_payment": scenario_partial_payment,
    "double_end_guard": scenario_double_end_guard,
    "cancel_completed": scenario_cancel_completed,
    "payout": scenario_payout,
    "topup_idempotent": scenario_topup_idempotent,
    "stale_sweep": scenario_stale_sweep,
}


def run_scenario(name):
    assert_scenarios_enabled()
    if name not in AVAILABLE_SCENARIOS:
        raise ValueError(f"Unknown scenario '{name}'. Available: {', '.join(AVAILABLE_SCENARIOS.keys())}")
    try:
        AVAILABLE_SCENARIOS[name].run()
    finally:
        cleanup_scenario_data()


def run_all():
    assert_scenarios_enabled()
    for name in AVAILABLE_SCENARIOS:
        run_scenario(name)
