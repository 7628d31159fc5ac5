from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor
from typing import List, Optional, Sequence

import numpy as np

from ..config import DEFAULT_CONFIG, SimulationConfig
from ..models import (
    AggregatedResult,
    FailureStats,
    RiskStats,
    SimulationInput,
    SuccessStats,
    TrialResult,
    YearResult,
)
from ..validation import validate_input, validate_iterations
from .returns import BoxMullerSampler, ReturnSampler, SamplerFactory, Seed, spawn_rngs

logger = logging.getLogger(__name__)


def simulate_trial(sim: SimulationInput, sampler: ReturnSampler, record: bool = False) -> TrialResult:
    """Walk one retirement year by year.

    Order within a year: market return, income, guardrail adjustment,
    withdrawal.  Everything is in real (today's) dollars, so spending is never
    inflated separately.  The trial stops at the first year the balance
    reaches zero.
    """
    initial = float(sim.starting_portfolio)
    balance = initial
    spending = float(sim.annual_spending or 0.0)
    lowest_balance = balance
    lowest_year = 0

    ss = sim.social_security
    work = sim.part_time_work
    guard = sim.guardrails if sim.guardrails_active else None
    floor = sim.essential_floor
    ceiling = sim.spending_ceiling

    years: List[YearResult] = []

    for year in range(sim.years):
        start_balance = balance

        r = sampler.sample(sim.real_return, sim.volatility)
        balance *= 1.0 + r

        income = 0.0
        if ss is not None and year >= ss.start_year:
            income = ss.annual_amount
            balance += income

        work_income = 0.0
        if work is not None and year < work.years:
            work_income = work.income
            balance += work_income

        triggered = None
        if guard is not None:
            ratio = balance / initial
            # adjustments repeat every year the ratio stays past a threshold
            if ratio >= guard.upper_threshold:
                spending *= 1.0 + guard.increase_percent
                if ceiling is not None:
                    spending = min(spending, ceiling)
                triggered = "ceiling"
            elif ratio <= guard.lower_threshold:
                decreased = spending * (1.0 - guard.decrease_percent)
                # floor is compared with the decreased amount, not the prior one
                spending = max(decreased, floor if floor is not None else decreased)
                triggered = "floor"

        balance -= spending

        if record:
            years.append(YearResult(
                year=year,
                start_balance=start_balance,
                annual_return=r,
                spending=spending,
                income=income,
                work_income=work_income,
                end_balance=balance,
                guardrail=triggered,
            ))

        if balance < lowest_balance:
            lowest_balance = balance
            lowest_year = year

        if balance <= 0:
            return TrialResult(
                success=False,
                ending_balance=0.0,
                years_lasted=year + 1,
                lowest_balance=0.0,
                lowest_balance_year=year,
                year_by_year=tuple(years) if record else None,
            )

    return TrialResult(
        success=True,
        ending_balance=balance,
        years_lasted=sim.years,
        lowest_balance=lowest_balance,
        lowest_balance_year=lowest_year,
        year_by_year=tuple(years) if record else None,
    )


# ---------- aggregation helpers ----------
def _median(sorted_values: Sequence[float]) -> float:
    n = len(sorted_values)
    if n == 0:
        return 0.0
    mid = n // 2
    if n % 2:
        return float(sorted_values[mid])
    return (sorted_values[mid - 1] + sorted_values[mid]) / 2.0


def _percentile(sorted_values: Sequence[float], p: float) -> float:
    """Nearest-rank style: index ``floor(n * p)`` clamped to the last element."""
    n = len(sorted_values)
    if n == 0:
        return 0.0
    idx = min(int(np.floor(n * p)), n - 1)
    return float(sorted_values[idx])


def _average(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return float(sum(values)) / len(values)


def aggregate_trials(trials: Sequence[TrialResult], iterations: Optional[int] = None) -> AggregatedResult:
    """Reduce a batch of trials to success/failure statistics.

    ``iterations`` defaults to ``len(trials)``.  Empty success or failure sets
    yield zeroed statistics.  Risk metrics that need year-by-year data are
    computed only from the trials that recorded it (the sample paths).
    """
    if iterations is None:
        iterations = len(trials)
    validate_iterations(iterations)

    successes = [t for t in trials if t.success]
    failures = [t for t in trials if not t.success]

    ending = sorted(t.ending_balance for t in successes)
    lasted = sorted(t.years_lasted for t in failures)

    samples = [t.year_by_year for t in trials if t.year_by_year is not None]
    sample_years = [y for path in samples for y in path]
    floor_paths = sum(1 for path in samples if any(y.guardrail == "floor" for y in path))

    risk = RiskStats(
        average_lowest_balance=_average([t.lowest_balance for t in trials]),
        percent_hitting_floor=floor_paths / len(samples) if samples else 0.0,
        ceiling_trigger_percent=(
            sum(1 for y in sample_years if y.guardrail == "ceiling") / len(sample_years)
            if sample_years else 0.0
        ),
        floor_trigger_percent=(
            sum(1 for y in sample_years if y.guardrail == "floor") / len(sample_years)
            if sample_years else 0.0
        ),
    )

    return AggregatedResult(
        success_rate=len(successes) / iterations,
        iterations=iterations,
        success=SuccessStats(
            count=len(successes),
            median_ending_balance=_median(ending),
            p10_ending_balance=_percentile(ending, 0.1),
            p90_ending_balance=_percentile(ending, 0.9),
        ),
        failure=FailureStats(
            count=len(failures),
            average_years_lasted=_average(lasted),
            median_years_lasted=_median(lasted),
            worst_case=lasted[0] if lasted else 0,
        ),
        risk=risk,
        sample_paths=tuple(samples),
    )


# ---------- batch execution ----------
def _run_chunk(
    sim: SimulationInput,
    count: int,
    rng: np.random.Generator,
    record: int,
    sampler_factory: SamplerFactory,
) -> List[TrialResult]:
    sampler = sampler_factory(rng)
    return [simulate_trial(sim, sampler, record=i < record) for i in range(count)]


def run_trials(
    sim: SimulationInput,
    iterations: int,
    seed: Seed = None,
    workers: Optional[int] = None,
    sampler_factory: SamplerFactory = BoxMullerSampler,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> List[TrialResult]:
    """Run ``iterations`` independent trials.

    Trials are split into chunks of ``config.trial_chunk_size``; each chunk
    draws from its own generator spawned from ``seed``, so the output for a
    given seed does not depend on ``workers``.  With more than one worker the
    chunks run in a process pool and are collected in submission order.
    """
    chunk = max(1, int(config.trial_chunk_size))
    sizes = [min(chunk, iterations - start) for start in range(0, iterations, chunk)]
    rngs = spawn_rngs(seed, len(sizes))

    remaining = config.sample_path_count
    records = []
    for size in sizes:
        records.append(max(0, min(size, remaining)))
        remaining -= records[-1]

    workers = config.workers if workers is None else workers
    if workers <= 1 or len(sizes) == 1:
        batches = [
            _run_chunk(sim, size, rng, rec, sampler_factory)
            for size, rng, rec in zip(sizes, rngs, records)
        ]
    else:
        logger.debug("running %d chunks across %d workers", len(sizes), workers)
        with ProcessPoolExecutor(max_workers=workers) as executor:
            batches = list(executor.map(
                _run_chunk,
                [sim] * len(sizes), sizes, rngs, records, [sampler_factory] * len(sizes),
            ))

    results: List[TrialResult] = []
    for batch in batches:
        results.extend(batch)
    return results


def run_simulations(
    sim: SimulationInput,
    iterations: Optional[int] = None,
    seed: Seed = None,
    workers: Optional[int] = None,
    sampler_factory: SamplerFactory = BoxMullerSampler,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> AggregatedResult:
    """Validate ``sim``, run the trials and aggregate them."""
    iterations = config.iterations if iterations is None else iterations
    validate_iterations(iterations)
    validate_input(sim)

    trials = run_trials(sim, iterations, seed=seed, workers=workers,
                        sampler_factory=sampler_factory, config=config)
    result = aggregate_trials(trials, iterations)
    logger.debug(
        "simulated %d trials at spending %.0f: success rate %.3f",
        iterations, sim.annual_spending or 0.0, result.success_rate,
    )
    return result
