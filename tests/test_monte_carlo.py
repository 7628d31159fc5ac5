"""Tests for the trial walk, the aggregator and the batch runner."""

import pytest

from retirement_runway.calculators import monte_carlo
from retirement_runway.config import SimulationConfig
from retirement_runway.errors import InputValidationError
from retirement_runway.models import (
    GuardrailsPolicy,
    IncomeEvent,
    PartTimeWork,
    SimulationInput,
    TrialResult,
)


class ScriptedSampler:
    """Returns a fixed sequence of annual returns."""

    def __init__(self, values):
        self._values = iter(values)

    def sample(self, mean, std_dev):
        return next(self._values)


def _guardrails(**kw):
    params = dict(upper_threshold=1.2, lower_threshold=0.8, increase_percent=0.1, decrease_percent=0.1)
    params.update(kw)
    return GuardrailsPolicy(**params)


def _flat(portfolio, spending, years, **kw):
    return SimulationInput(portfolio, spending, years, 0.0, 0.0, **kw)


# ---------- single trial ----------
def test_upper_guardrail_compounds_every_year():
    sim = SimulationInput(1000.0, 100.0, 3, 0.0, 0.0, guardrails=_guardrails())
    trial = monte_carlo.simulate_trial(sim, ScriptedSampler([0.5, 0.0, 0.0]), record=True)
    spending = [y.spending for y in trial.year_by_year]
    assert spending == pytest.approx([110.0, 121.0, 133.1])
    assert [y.guardrail for y in trial.year_by_year] == ["ceiling"] * 3
    assert trial.ending_balance == pytest.approx(1135.9)
    assert trial.success


def test_spending_ceiling_caps_increases():
    sim = SimulationInput(1000.0, 100.0, 3, 0.0, 0.0, guardrails=_guardrails(), spending_ceiling=115.0)
    trial = monte_carlo.simulate_trial(sim, ScriptedSampler([0.5, 0.0, 0.0]), record=True)
    assert [y.spending for y in trial.year_by_year] == pytest.approx([110.0, 115.0, 115.0])
    assert trial.ending_balance == pytest.approx(1160.0)


def test_floor_compares_against_decreased_spending():
    # 92 * 0.9 = 82.8 < floor 95, so spending is raised to the floor
    sim = SimulationInput(1000.0, 92.0, 1, 0.0, 0.0, guardrails=_guardrails(), essential_floor=95.0)
    trial = monte_carlo.simulate_trial(sim, ScriptedSampler([-0.2]), record=True)
    assert trial.year_by_year[0].spending == pytest.approx(95.0)
    assert trial.year_by_year[0].guardrail == "floor"
    assert trial.ending_balance == pytest.approx(705.0)


def test_lower_guardrail_without_floor():
    sim = SimulationInput(1000.0, 92.0, 1, 0.0, 0.0, guardrails=_guardrails())
    trial = monte_carlo.simulate_trial(sim, ScriptedSampler([-0.2]))
    assert trial.ending_balance == pytest.approx(800.0 - 82.8)


def test_disabled_guardrails_are_ignored():
    sim = SimulationInput(1000.0, 100.0, 1, 0.0, 0.0, guardrails=_guardrails(enabled=False))
    trial = monte_carlo.simulate_trial(sim, ScriptedSampler([0.5]))
    assert trial.ending_balance == pytest.approx(1400.0)


def test_social_security_starts_at_start_year():
    sim = _flat(1000.0, 100.0, 3, social_security=IncomeEvent(start_year=1, annual_amount=100.0))
    trial = monte_carlo.simulate_trial(sim, ScriptedSampler([0.0] * 3), record=True)
    assert [y.income for y in trial.year_by_year] == [0.0, 100.0, 100.0]
    assert trial.ending_balance == pytest.approx(900.0)
    assert trial.lowest_balance == pytest.approx(900.0)
    assert trial.lowest_balance_year == 0


def test_part_time_work_only_in_first_years():
    sim = _flat(1000.0, 100.0, 3, part_time_work=PartTimeWork(income=50.0, years=2))
    trial = monte_carlo.simulate_trial(sim, ScriptedSampler([0.0] * 3), record=True)
    assert [y.work_income for y in trial.year_by_year] == [50.0, 50.0, 0.0]
    assert trial.ending_balance == pytest.approx(800.0)


def test_depletion_stops_the_trial():
    trial = monte_carlo.simulate_trial(_flat(100.0, 60.0, 5), ScriptedSampler([0.0] * 5), record=True)
    assert not trial.success
    assert trial.years_lasted == 2
    assert trial.ending_balance == 0.0
    assert trial.lowest_balance == 0.0
    assert trial.lowest_balance_year == 1
    assert len(trial.year_by_year) == 2


def test_exactly_zero_balance_is_failure():
    trial = monte_carlo.simulate_trial(_flat(100.0, 50.0, 2), ScriptedSampler([0.0] * 2))
    assert not trial.success
    assert trial.years_lasted == 2


def test_trial_does_not_record_by_default():
    trial = monte_carlo.simulate_trial(_flat(1000.0, 10.0, 2), ScriptedSampler([0.0] * 2))
    assert trial.year_by_year is None


# ---------- aggregation ----------
def _ok(balance):
    return TrialResult(True, balance, 30, balance, 0)


def _failed(years):
    return TrialResult(False, 0.0, years, 0.0, years - 1)


def test_aggregate_even_median_and_percentiles():
    result = monte_carlo.aggregate_trials([_ok(1.0), _ok(2.0), _ok(3.0), _ok(4.0)])
    assert result.success_rate == 1.0
    assert result.success.median_ending_balance == 2.5
    assert result.success.p10_ending_balance == 1.0
    assert result.success.p90_ending_balance == 4.0
    assert result.failure.count == 0
    assert result.failure.worst_case == 0
    assert result.failure.average_years_lasted == 0.0


def test_aggregate_failures():
    result = monte_carlo.aggregate_trials([_failed(5), _failed(3), _failed(10), _ok(100.0)])
    assert result.success_rate == 0.25
    assert result.failure.count == 3
    assert result.failure.average_years_lasted == pytest.approx(6.0)
    assert result.failure.median_years_lasted == 5.0
    assert result.failure.worst_case == 3
    assert result.success.median_ending_balance == 100.0


def test_aggregate_all_failed_has_zero_success_stats():
    result = monte_carlo.aggregate_trials([_failed(2), _failed(4)])
    assert result.success_rate == 0.0
    assert result.success.count == 0
    assert result.success.median_ending_balance == 0.0
    assert result.success.p90_ending_balance == 0.0


def test_aggregate_rejects_zero_iterations():
    with pytest.raises(InputValidationError):
        monte_carlo.aggregate_trials([])


# ---------- batch runs ----------
def test_zero_volatility_is_all_or_nothing():
    assert monte_carlo.run_simulations(_flat(1000.0, 30.0, 30), 200, seed=1).success_rate == 1.0
    assert monte_carlo.run_simulations(_flat(1000.0, 40.0, 30), 200, seed=1).success_rate == 0.0


def test_repeatability_with_seed():
    sim = SimulationInput(1_000_000, 40_000, 30, 0.05, 0.12)
    first = monte_carlo.run_simulations(sim, 500, seed=12345)
    second = monte_carlo.run_simulations(sim, 500, seed=12345)
    assert first == second


def test_worker_count_does_not_change_results():
    sim = SimulationInput(1_000_000, 40_000, 30, 0.05, 0.12)
    cfg = SimulationConfig(trial_chunk_size=100)
    serial = monte_carlo.run_simulations(sim, 400, seed=3, workers=1, config=cfg)
    pooled = monte_carlo.run_simulations(sim, 400, seed=3, workers=2, config=cfg)
    assert serial == pooled
    assert serial.sample_paths == pooled.sample_paths


def test_success_rate_falls_as_spending_rises():
    base = SimulationInput(1_000_000, 0, 30, 0.05, 0.12)
    rates = [
        monte_carlo.run_simulations(base.with_spending(s), 1000, seed=9).success_rate
        for s in (30_000, 40_000, 50_000, 60_000)
    ]
    assert rates == sorted(rates, reverse=True)


def test_sample_paths_recorded_for_first_trials():
    sim = SimulationInput(1_000_000, 40_000, 30, 0.05, 0.12)
    result = monte_carlo.run_simulations(sim, 1000, seed=5)
    assert len(result.sample_paths) == 10
    assert all(0 < len(p) <= 30 for p in result.sample_paths)


def test_guardrail_risk_stats_from_sample_paths():
    sim = SimulationInput(1_000_000, 40_000, 30, 0.05, 0.12, guardrails=_guardrails(), essential_floor=30_000)
    result = monte_carlo.run_simulations(sim, 500, seed=5)
    risk = result.risk
    assert 0.0 <= risk.percent_hitting_floor <= 1.0
    assert risk.ceiling_trigger_percent > 0.0
    assert risk.average_lowest_balance > 0.0


def test_invalid_input_raises_before_running():
    with pytest.raises(InputValidationError) as exc:
        monte_carlo.run_simulations(SimulationInput(1000.0, None, 30, 0.05, 0.12), 10)
    assert exc.value.fields == ["annual_spending"]

    with pytest.raises(InputValidationError):
        monte_carlo.run_simulations(_flat(1000.0, 10.0, 5), 0)


# ---------- reference scenarios ----------
def test_scenario_four_percent():
    sim = SimulationInput(1_000_000, 40_000, 30, 0.05, 0.12)
    rate = monte_carlo.run_simulations(sim, 10_000, seed=2024).success_rate
    assert 0.85 <= rate <= 0.95


def test_scenario_three_percent():
    sim = SimulationInput(1_000_000, 30_000, 30, 0.05, 0.12)
    assert monte_carlo.run_simulations(sim, 10_000, seed=2024).success_rate >= 0.95


def test_scenario_eight_percent():
    sim = SimulationInput(1_000_000, 80_000, 30, 0.05, 0.12)
    assert monte_carlo.run_simulations(sim, 10_000, seed=2024).success_rate < 0.30


def test_scenario_tiny_portfolio():
    sim = SimulationInput(100_000, 50_000, 30, 0.05, 0.12)
    result = monte_carlo.run_simulations(sim, 10_000, seed=2024)
    assert result.success_rate < 0.05
    assert result.failure.average_years_lasted < 4
