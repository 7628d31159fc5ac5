"""Planning context and the services that run the simulator on it.

A :class:`PlanningContext` is the flattened view of a household's records:
portfolio value, spending breakdown, Social Security claim, guardrail
settings and market assumptions.  The services here turn it into a
:class:`~retirement_runway.models.SimulationInput` and run the core:

* :func:`run_simulation` – success-rate report, served from the result cache
  when the inputs have not materially changed.
* :func:`find_max_sustainable_withdrawal` – binary-search solver plus a
  comparison with current spending.  Never cached.
* :func:`run_what_if` – one-off scenario with overrides, listing what changed.
* :func:`run_sensitivity_analysis` – which assumption moves success the most.

Operations refuse to run on an incomplete context and raise
:class:`~retirement_runway.errors.PlanNotReadyError` naming what is missing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

from .cache import ResultCache, simulate_with_cache
from .calculators import social_security as ss_calc
from .calculators.monte_carlo import run_simulations
from .calculators.returns import Seed, seed_sequence
from .calculators.withdrawal import find_max_withdrawal
from .config import DEFAULT_CONFIG, SimulationConfig
from .errors import PlanNotReadyError
from .models import (
    AggregatedResult,
    GuardrailsPolicy,
    IncomeEvent,
    MaxWithdrawalResult,
    PartTimeWork,
    SimulationInput,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpendingGoal:
    """An itemised annual budget on top of base living expenses."""

    name: str
    annual_amount: float
    is_essential: bool = False
    start_year: Optional[int] = None
    end_year: Optional[int] = None


@dataclass(frozen=True)
class SocialSecurityClaim:
    benefit_at_62: Optional[float] = None
    benefit_at_67: Optional[float] = None
    benefit_at_70: Optional[float] = None
    planned_claiming_age: int = 67
    pia: Optional[float] = None

    def monthly_benefit(self, claiming_age: Optional[int] = None) -> float:
        return ss_calc.monthly_benefit(
            self.planned_claiming_age if claiming_age is None else claiming_age,
            benefit_at_62=self.benefit_at_62,
            benefit_at_67=self.benefit_at_67,
            benefit_at_70=self.benefit_at_70,
            pia=self.pia,
        )

    def income_event(self, retirement_age: int, claiming_age: Optional[int] = None) -> IncomeEvent:
        age = self.planned_claiming_age if claiming_age is None else claiming_age
        return ss_calc.income_event(self.monthly_benefit(age), age, retirement_age)


@dataclass(frozen=True)
class GuardrailsSettings:
    """Guardrails as entered by the user: percents relative to the start."""

    is_enabled: bool
    upper_threshold_percent: float = 0.20
    lower_threshold_percent: float = 0.20
    spending_adjustment_percent: float = 0.10
    spending_floor: Optional[float] = None
    spending_ceiling: Optional[float] = None

    def policy(self) -> Optional[GuardrailsPolicy]:
        if not self.is_enabled:
            return None
        return GuardrailsPolicy(
            upper_threshold=1 + self.upper_threshold_percent,
            lower_threshold=1 - self.lower_threshold_percent,
            increase_percent=self.spending_adjustment_percent,
            decrease_percent=self.spending_adjustment_percent,
        )


@dataclass(frozen=True)
class PlanningContext:
    investment_value: float = 0.0
    cash_value: float = 0.0
    current_age: Optional[int] = None
    retirement_age: Optional[int] = None
    plan_to_age: Optional[int] = None
    base_living_expense: float = 0.0
    goals: Tuple[SpendingGoal, ...] = ()
    social_security: Optional[SocialSecurityClaim] = None
    guardrails: Optional[GuardrailsSettings] = None
    part_time_work: Optional[PartTimeWork] = None
    real_return: Optional[float] = None
    volatility: Optional[float] = None
    target_success_rate: Optional[float] = None
    iterations: Optional[int] = None

    # ---- spending breakdown ----
    @property
    def portfolio_value(self) -> float:
        return self.investment_value + self.cash_value

    @property
    def total_goals_amount(self) -> float:
        return sum(g.annual_amount for g in self.goals)

    @property
    def essential_goals_amount(self) -> float:
        return sum(g.annual_amount for g in self.goals if g.is_essential)

    @property
    def discretionary_amount(self) -> float:
        return self.total_goals_amount - self.essential_goals_amount

    @property
    def total_annual_spending(self) -> float:
        return self.base_living_expense + self.total_goals_amount

    @property
    def essential_floor(self) -> float:
        return self.base_living_expense + self.essential_goals_amount

    @property
    def simulation_essential_floor(self) -> float:
        """A floor set on the guardrails wins over the computed essential floor."""
        if self.guardrails is not None and self.guardrails.spending_floor is not None:
            return self.guardrails.spending_floor
        return self.essential_floor

    @property
    def spending_ceiling(self) -> Optional[float]:
        return self.guardrails.spending_ceiling if self.guardrails is not None else None

    # ---- readiness ----
    @property
    def missing_inputs(self) -> List[str]:
        missing = []
        if self.portfolio_value <= 0:
            missing.append("portfolio value")
        if self.current_age is None:
            missing.append("current age")
        if self.retirement_age is None:
            missing.append("retirement age")
        if self.total_annual_spending <= 0:
            missing.append("annual spending")
        return missing

    @property
    def is_ready(self) -> bool:
        return not self.missing_inputs

    def require_ready(self) -> None:
        missing = self.missing_inputs
        if missing:
            raise PlanNotReadyError(missing)

    # ---- assumptions with defaults ----
    def effective_retirement_age(self, config: SimulationConfig = DEFAULT_CONFIG) -> int:
        return self.retirement_age if self.retirement_age is not None else config.retirement_age

    def effective_plan_to_age(self, config: SimulationConfig = DEFAULT_CONFIG) -> int:
        return self.plan_to_age if self.plan_to_age is not None else config.plan_to_age

    def years(self, config: SimulationConfig = DEFAULT_CONFIG) -> int:
        return self.effective_plan_to_age(config) - self.effective_retirement_age(config)

    def assumptions(self, config: SimulationConfig = DEFAULT_CONFIG) -> Dict[str, float]:
        return {
            "real_return": config.real_return if self.real_return is None else self.real_return,
            "volatility": config.volatility if self.volatility is None else self.volatility,
            "target_success_rate": (
                config.target_success_rate if self.target_success_rate is None else self.target_success_rate
            ),
            "iterations": config.iterations if self.iterations is None else self.iterations,
        }

    def to_simulation_input(self, config: SimulationConfig = DEFAULT_CONFIG) -> SimulationInput:
        a = self.assumptions(config)
        retirement_age = self.effective_retirement_age(config)
        return SimulationInput(
            starting_portfolio=self.portfolio_value,
            annual_spending=self.total_annual_spending,
            years=self.years(config),
            real_return=a["real_return"],
            volatility=a["volatility"],
            social_security=(
                self.social_security.income_event(retirement_age)
                if self.social_security is not None else None
            ),
            essential_floor=self.simulation_essential_floor,
            spending_ceiling=self.spending_ceiling,
            guardrails=self.guardrails.policy() if self.guardrails is not None else None,
            part_time_work=(
                self.part_time_work
                if self.part_time_work is not None and self.part_time_work.income > 0 else None
            ),
        )

    def summary(self, config: SimulationConfig = DEFAULT_CONFIG) -> Dict:
        sim = self.to_simulation_input(config)
        return {
            "portfolio_value": self.portfolio_value,
            "base_living_expense": self.base_living_expense,
            "total_goals_amount": self.total_goals_amount,
            "essential_floor": self.essential_floor,
            "discretionary_amount": self.discretionary_amount,
            "total_annual_spending": self.total_annual_spending,
            "years": sim.years,
            "real_return": sim.real_return,
            "volatility": sim.volatility,
            "retirement_age": self.retirement_age,
            "plan_to_age": self.effective_plan_to_age(config),
            "has_social_security": sim.social_security is not None,
            "has_guardrails": sim.guardrails is not None,
            "has_part_time_work": sim.part_time_work is not None,
            "goals_count": len(self.goals),
        }


# ---------- reports ----------
@dataclass(frozen=True)
class SimulationReport:
    results: AggregatedResult
    inputs: Dict
    from_cache: bool = False
    cached_at: Optional[float] = None


@dataclass(frozen=True)
class WithdrawalComparison:
    current_spending: float
    max_sustainable_spending: float
    difference: float
    percent_difference: float
    can_afford_current_spending: bool
    current_withdrawal_rate: float


@dataclass(frozen=True)
class WithdrawalReport:
    result: MaxWithdrawalResult
    comparison: WithdrawalComparison


@dataclass(frozen=True)
class WhatIfReport:
    results: AggregatedResult
    scenario: Dict
    changes_from_baseline: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class SensitivityRow:
    variable: str
    impact: float
    low_value: float
    low_success_rate: float
    high_value: float
    high_success_rate: float


@dataclass(frozen=True)
class SensitivityReport:
    baseline_success_rate: float
    rows: List[SensitivityRow]


# ---------- services ----------
def run_simulation(
    context: PlanningContext,
    cache: Optional[ResultCache] = None,
    iterations: Optional[int] = None,
    skip_cache: bool = False,
    seed: Seed = None,
    workers: Optional[int] = None,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> SimulationReport:
    context.require_ready()
    sim = context.to_simulation_input(config)
    iterations = iterations if iterations is not None else context.assumptions(config)["iterations"]
    results, from_cache, cached_at = simulate_with_cache(
        sim, cache, iterations=iterations, skip_cache=skip_cache,
        seed=seed, workers=workers, config=config,
    )
    return SimulationReport(
        results=results,
        inputs=context.summary(config),
        from_cache=from_cache,
        cached_at=cached_at,
    )


def find_max_sustainable_withdrawal(
    context: PlanningContext,
    target_success_rate: Optional[float] = None,
    seed: Seed = None,
    workers: Optional[int] = None,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> WithdrawalReport:
    context.require_ready()
    if target_success_rate is None:
        target_success_rate = context.assumptions(config)["target_success_rate"]

    base = replace(context.to_simulation_input(config), annual_spending=None)
    result = find_max_withdrawal(base, target_success_rate, seed=seed, workers=workers, config=config)

    current = context.total_annual_spending
    difference = result.max_withdrawal - current
    comparison = WithdrawalComparison(
        current_spending=current,
        max_sustainable_spending=result.max_withdrawal,
        difference=difference,
        percent_difference=round(difference / current * 100, 1),
        can_afford_current_spending=result.max_withdrawal >= current,
        current_withdrawal_rate=current / context.portfolio_value,
    )
    return WithdrawalReport(result=result, comparison=comparison)


def run_what_if(
    context: PlanningContext,
    annual_spending: Optional[float] = None,
    retirement_age: Optional[int] = None,
    plan_to_age: Optional[int] = None,
    real_return: Optional[float] = None,
    volatility: Optional[float] = None,
    ss_claiming_age: Optional[int] = None,
    part_time_income: Optional[float] = None,
    part_time_years: Optional[int] = None,
    guardrails_enabled: Optional[bool] = None,
    iterations: Optional[int] = None,
    seed: Seed = None,
    workers: Optional[int] = None,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> WhatIfReport:
    """Simulate the saved plan with some values overridden.

    A spending override replaces the whole breakdown (goals are ignored) and
    the essential floor falls back to ``config.what_if_floor_fraction`` of it.
    Nothing is cached.
    """
    if context.portfolio_value <= 0:
        raise PlanNotReadyError(["portfolio value"])

    base = context.to_simulation_input(config)
    changes: List[str] = []

    spending = base.annual_spending
    floor = base.essential_floor
    if annual_spending is not None:
        if annual_spending != spending:
            changes.append(f"Spending: ${spending:,.0f} → ${annual_spending:,.0f}")
        spending = annual_spending
        floor = annual_spending * config.what_if_floor_fraction

    ret_age = context.effective_retirement_age(config)
    if retirement_age is not None and retirement_age != ret_age:
        changes.append(f"Retirement age: {ret_age} → {retirement_age}")
        ret_age = retirement_age

    end_age = context.effective_plan_to_age(config)
    if plan_to_age is not None and plan_to_age != end_age:
        changes.append(f"Plan to age: {end_age} → {plan_to_age}")
        end_age = plan_to_age

    ret = base.real_return
    if real_return is not None and real_return != ret:
        changes.append(f"Real return: {ret * 100:.1f}% → {real_return * 100:.1f}%")
        ret = real_return

    vol = base.volatility
    if volatility is not None and volatility != vol:
        changes.append(f"Volatility: {vol * 100:.1f}% → {volatility * 100:.1f}%")
        vol = volatility

    income = None
    if context.social_security is not None:
        claim = context.social_security
        if ss_claiming_age is not None and ss_claiming_age != claim.planned_claiming_age:
            changes.append(f"SS claiming age: {claim.planned_claiming_age} → {ss_claiming_age}")
        income = claim.income_event(ret_age, ss_claiming_age)

    work = base.part_time_work
    if part_time_income is not None or part_time_years is not None:
        prior = context.part_time_work
        work = PartTimeWork(
            income=part_time_income if part_time_income is not None else (prior.income if prior else 0.0),
            years=part_time_years if part_time_years is not None else (prior.years if prior else 0),
        )
        if work.income > 0 and work.years > 0:
            changes.append(f"Part-time work: ${work.income:,.0f}/yr for {work.years} years")
        else:
            work = None

    guard = base.guardrails
    if guardrails_enabled is not None:
        if guardrails_enabled and guard is None:
            guard = config.what_if_guardrails
            changes.append("Guardrails: disabled → enabled")
        elif not guardrails_enabled and guard is not None:
            guard = None
            changes.append("Guardrails: enabled → disabled")

    sim = SimulationInput(
        starting_portfolio=base.starting_portfolio,
        annual_spending=spending,
        years=end_age - ret_age,
        real_return=ret,
        volatility=vol,
        social_security=income,
        essential_floor=floor,
        spending_ceiling=base.spending_ceiling,
        guardrails=guard,
        part_time_work=work,
    )
    iterations = iterations if iterations is not None else context.assumptions(config)["iterations"]
    results = run_simulations(sim, iterations, seed=seed, workers=workers, config=config)

    scenario = {
        "portfolio_value": sim.starting_portfolio,
        "annual_spending": spending,
        "years": sim.years,
        "retirement_age": ret_age,
        "plan_to_age": end_age,
        "real_return": ret,
        "volatility": vol,
        "has_social_security": income is not None,
        "has_guardrails": guard is not None,
        "has_part_time_work": work is not None,
    }
    return WhatIfReport(results=results, scenario=scenario, changes_from_baseline=changes)


# (label, multiplier low, multiplier high)
_SENSITIVITY_VARIABLES = (
    ("Base Spending", 0.8, 1.2),
    ("Expected Return", 0.7, 1.3),
    ("Volatility", 0.7, 1.3),
    ("Planning Horizon", 0.83, 1.17),
)


def _vary(context: PlanningContext, base: SimulationInput, label: str, mult: float) -> Tuple[float, SimulationInput]:
    if label == "Base Spending":
        value = context.base_living_expense * mult
        return value, replace(base, annual_spending=value + context.total_goals_amount)
    if label == "Expected Return":
        value = base.real_return * mult
        return value, replace(base, real_return=value)
    if label == "Volatility":
        value = base.volatility * mult
        return value, replace(base, volatility=value)
    value = max(1, int(round(base.years * mult)))
    return float(value), replace(base, years=value)


def run_sensitivity_analysis(
    context: PlanningContext,
    seed: Seed = None,
    workers: Optional[int] = None,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> SensitivityReport:
    """Swing each key assumption low/high and rank by success-rate impact.

    All runs share one seed so differences come from the inputs, not noise.
    """
    context.require_ready()
    base = context.to_simulation_input(config)
    seed = seed_sequence(seed)

    baseline = run_simulations(base, config.iterations, seed=seed, workers=workers, config=config)

    rows: List[SensitivityRow] = []
    for label, low_mult, high_mult in _SENSITIVITY_VARIABLES:
        low_value, low_input = _vary(context, base, label, low_mult)
        high_value, high_input = _vary(context, base, label, high_mult)
        low = run_simulations(low_input, config.sensitivity_iterations, seed=seed, workers=workers, config=config)
        high = run_simulations(high_input, config.sensitivity_iterations, seed=seed, workers=workers, config=config)
        rows.append(SensitivityRow(
            variable=label,
            impact=abs(high.success_rate - low.success_rate),
            low_value=low_value,
            low_success_rate=low.success_rate,
            high_value=high_value,
            high_success_rate=high.success_rate,
        ))

    rows.sort(key=lambda r: r.impact, reverse=True)
    logger.info("sensitivity: baseline %.3f, top driver %s", baseline.success_rate, rows[0].variable)
    return SensitivityReport(baseline_success_rate=baseline.success_rate, rows=rows)
