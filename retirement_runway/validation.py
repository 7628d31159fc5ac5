"""Up-front checks on simulation inputs.

Every problem is collected and raised together as an
:class:`~retirement_runway.errors.InputValidationError`; no defaults are
guessed for missing required values.
"""

from __future__ import annotations

import math
from numbers import Integral
from typing import List

from .errors import FieldIssue, InputValidationError
from .models import SimulationInput


def _finite(x) -> bool:
    try:
        return math.isfinite(float(x))
    except (TypeError, ValueError):
        return False


def input_issues(sim: SimulationInput, require_spending: bool = True) -> List[FieldIssue]:
    issues: List[FieldIssue] = []

    # a zero portfolio would divide by zero in the guardrail ratio
    if not _finite(sim.starting_portfolio) or sim.starting_portfolio <= 0:
        issues.append(FieldIssue("starting_portfolio", "must be a positive amount"))

    if sim.annual_spending is None:
        if require_spending:
            issues.append(FieldIssue("annual_spending", "missing"))
    elif not _finite(sim.annual_spending) or sim.annual_spending < 0:
        issues.append(FieldIssue("annual_spending", "must be zero or more"))

    if isinstance(sim.years, bool) or not isinstance(sim.years, Integral) or sim.years <= 0:
        issues.append(FieldIssue("years", "must be a positive whole number"))

    if not _finite(sim.real_return):
        issues.append(FieldIssue("real_return", "must be a finite number"))
    if not _finite(sim.volatility) or sim.volatility < 0:
        issues.append(FieldIssue("volatility", "must be zero or more"))

    ss = sim.social_security
    if ss is not None:
        if not isinstance(ss.start_year, Integral) or ss.start_year < 0:
            issues.append(FieldIssue("social_security.start_year", "must be a year offset of zero or more"))
        if not _finite(ss.annual_amount) or ss.annual_amount < 0:
            issues.append(FieldIssue("social_security.annual_amount", "must be zero or more"))

    ptw = sim.part_time_work
    if ptw is not None:
        if not _finite(ptw.income) or ptw.income < 0:
            issues.append(FieldIssue("part_time_work.income", "must be zero or more"))
        if not isinstance(ptw.years, Integral) or ptw.years < 0:
            issues.append(FieldIssue("part_time_work.years", "must be zero or more"))

    if sim.essential_floor is not None and (not _finite(sim.essential_floor) or sim.essential_floor < 0):
        issues.append(FieldIssue("essential_floor", "must be zero or more"))
    if sim.spending_ceiling is not None and (not _finite(sim.spending_ceiling) or sim.spending_ceiling < 0):
        issues.append(FieldIssue("spending_ceiling", "must be zero or more"))

    g = sim.guardrails
    if g is not None and g.enabled:
        if not (_finite(g.upper_threshold) and g.upper_threshold > 1):
            issues.append(FieldIssue("guardrails.upper_threshold", "must be greater than 1"))
        if not (_finite(g.lower_threshold) and g.lower_threshold < 1):
            issues.append(FieldIssue("guardrails.lower_threshold", "must be less than 1"))
        if not _finite(g.increase_percent) or g.increase_percent < 0:
            issues.append(FieldIssue("guardrails.increase_percent", "must be zero or more"))
        if not _finite(g.decrease_percent) or g.decrease_percent < 0:
            issues.append(FieldIssue("guardrails.decrease_percent", "must be zero or more"))

    return issues


def validate_input(sim: SimulationInput, require_spending: bool = True) -> None:
    issues = input_issues(sim, require_spending=require_spending)
    if issues:
        raise InputValidationError(issues)


def validate_iterations(iterations: int, name: str = "iterations") -> None:
    if isinstance(iterations, bool) or not isinstance(iterations, Integral) or iterations <= 0:
        raise InputValidationError([FieldIssue(name, "must be a positive whole number")])
