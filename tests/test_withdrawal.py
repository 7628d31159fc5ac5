"""Tests for the maximum-sustainable-withdrawal search."""

import pytest

from retirement_runway.calculators import monte_carlo
from retirement_runway.calculators import withdrawal
from retirement_runway.errors import InputValidationError
from retirement_runway.models import SimulationInput


def _flat_plan(**kw):
    return SimulationInput(1_000_000, None, 30, 0.0, 0.0, **kw)


def test_max_withdrawal_finds_cap_without_volatility():
    """With no market movement the cap is just under portfolio / years."""
    result = withdrawal.find_max_withdrawal(_flat_plan(), target_success_rate=1.0, seed=1)
    # 20k..100k bracket halves to 33,125 after 8 probes (33,333 would be exact)
    assert result.max_withdrawal == 33_125
    assert result.search_iterations == 8
    assert result.success_rate == 1.0
    assert result.monthly_amount == 2760
    assert result.withdrawal_rate == pytest.approx(0.033125)
    assert result.target_success_rate == 1.0


def test_base_spending_is_ignored():
    a = withdrawal.find_max_withdrawal(_flat_plan(), 1.0, seed=1)
    b = withdrawal.find_max_withdrawal(_flat_plan().with_spending(90_000), 1.0, seed=1)
    assert a == b


def test_essential_floor_is_lower_bound():
    result = withdrawal.find_max_withdrawal(_flat_plan(essential_floor=50_000), 1.0, seed=1)
    # nothing above 50k survives 30 years, so the floor comes back
    assert result.max_withdrawal == 50_000
    assert result.success_rate == 0.0


def test_empty_bracket_returns_low_without_probing():
    result = withdrawal.find_max_withdrawal(_flat_plan(essential_floor=200_000), 1.0, seed=1)
    assert result.max_withdrawal == 200_000
    assert result.search_iterations == 0


def test_max_search_steps():
    assert withdrawal.max_search_steps(20_000, 100_000, 500) == 8
    assert withdrawal.max_search_steps(20_000, 20_400, 500) == 0
    assert withdrawal.max_search_steps(200_000, 100_000, 500) == 0


def test_solver_converges_near_target():
    base = SimulationInput(1_000_000, None, 30, 0.05, 0.12)
    result = withdrawal.find_max_withdrawal(base, target_success_rate=0.9, seed=11)
    low, high = withdrawal.search_bounds(base)
    assert result.search_iterations <= withdrawal.max_search_steps(low, high, 500)
    assert low <= result.max_withdrawal <= high
    assert result.success_rate == pytest.approx(0.9, abs=0.06)

    independent = monte_carlo.run_simulations(base.with_spending(result.max_withdrawal), 2000, seed=99)
    assert independent.success_rate == pytest.approx(0.9, abs=0.06)


@pytest.mark.parametrize("target", [0.0, -0.1, 1.5])
def test_rejects_bad_target(target):
    with pytest.raises(InputValidationError):
        withdrawal.find_max_withdrawal(_flat_plan(), target_success_rate=target)


def test_rejects_bad_precision():
    with pytest.raises(InputValidationError):
        withdrawal.find_max_withdrawal(_flat_plan(), 0.9, precision=0)


def test_rejects_zero_iterations_per_test():
    with pytest.raises(InputValidationError) as exc:
        withdrawal.find_max_withdrawal(_flat_plan(), 0.9, iterations_per_test=0)
    assert exc.value.fields == ["iterations_per_test"]
