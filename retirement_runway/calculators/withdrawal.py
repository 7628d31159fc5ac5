"""Maximum sustainable withdrawal via binary search.

The search brackets annual spending between the essential floor (or a
$20k default) and 10 % of the starting portfolio, and halves the bracket until
it is narrower than ``precision`` dollars.  Each probe runs a reduced batch of
trials; every probe reuses the same seed so that success rate moves
monotonically with spending between probes.

Example
-------

>>> from retirement_runway.models import SimulationInput
>>> base = SimulationInput(1_000_000, None, 30, 0.0, 0.0)
>>> result = find_max_withdrawal(base, target_success_rate=1.0, seed=1)
>>> 32_833 <= result.max_withdrawal <= 33_333
True
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from ..config import DEFAULT_CONFIG, SimulationConfig
from ..errors import FieldIssue, InputValidationError
from ..models import MaxWithdrawalResult, SimulationInput
from ..validation import validate_input, validate_iterations
from .monte_carlo import run_simulations
from .returns import BoxMullerSampler, SamplerFactory, Seed, seed_sequence

logger = logging.getLogger(__name__)


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def search_bounds(base: SimulationInput, config: SimulationConfig = DEFAULT_CONFIG):
    low = base.essential_floor if base.essential_floor is not None else config.solver_default_floor
    high = base.starting_portfolio * config.solver_high_fraction
    return float(low), float(high)


def max_search_steps(low: float, high: float, precision: float) -> int:
    """Upper bound on the number of probes for a bracket ``[low, high]``."""
    if high - low <= precision:
        return 0
    return int(math.ceil(math.log2((high - low) / precision)))


def find_max_withdrawal(
    base: SimulationInput,
    target_success_rate: float,
    iterations_per_test: Optional[int] = None,
    precision: Optional[float] = None,
    seed: Seed = None,
    workers: Optional[int] = None,
    sampler_factory: SamplerFactory = BoxMullerSampler,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> MaxWithdrawalResult:
    """Largest annual spending whose success rate meets ``target_success_rate``.

    Parameters
    ----------
    base : SimulationInput
        Plan inputs; ``annual_spending`` is ignored.
    target_success_rate : float
        Required success rate in (0, 1].
    iterations_per_test : int, optional
        Trials per probe (default ``config.solver_iterations_per_test``).
    precision : float, optional
        Stop once the bracket is this narrow, in dollars
        (default ``config.solver_precision``).

    Returns
    -------
    MaxWithdrawalResult
        Best spending found, the success rate re-measured at that level with
        ``config.solver_verification_iterations`` trials, and the probe count.
        If no probe meets the target the lower bound is returned.
    """
    if iterations_per_test is None:
        iterations_per_test = config.solver_iterations_per_test
    precision = config.solver_precision if precision is None else precision

    issues = []
    if not 0.0 < target_success_rate <= 1.0:
        issues.append(FieldIssue("target_success_rate", "must be in (0, 1]"))
    if not precision > 0:
        issues.append(FieldIssue("precision", "must be positive"))
    if issues:
        raise InputValidationError(issues)
    validate_iterations(iterations_per_test, "iterations_per_test")
    validate_input(base, require_spending=False)

    low, high = search_bounds(base, config)
    seed = seed_sequence(seed)
    best = low
    steps = 0

    while high - low > precision:
        steps += 1
        mid = round_half_up((low + high) / 2)
        result = run_simulations(
            base.with_spending(mid), iterations_per_test, seed=seed,
            workers=workers, sampler_factory=sampler_factory, config=config,
        )
        logger.debug("probe %d: spending %d -> success %.3f", steps, mid, result.success_rate)
        if result.success_rate >= target_success_rate:
            best = mid
            low = mid
        else:
            high = mid

    final = run_simulations(
        base.with_spending(best), config.solver_verification_iterations, seed=seed,
        workers=workers, sampler_factory=sampler_factory, config=config,
    )
    logger.info(
        "max withdrawal %.0f at %.1f%% success after %d probes",
        best, final.success_rate * 100, steps,
    )
    return MaxWithdrawalResult(
        max_withdrawal=best,
        success_rate=final.success_rate,
        search_iterations=steps,
        monthly_amount=round_half_up(best / 12),
        withdrawal_rate=best / base.starting_portfolio,
        target_success_rate=target_success_rate,
    )
