"""Default assumptions for simulations, the solver and the result cache.

Values live on a frozen :class:`SimulationConfig`; callers pass one explicitly
(``config=...``) or rely on :data:`DEFAULT_CONFIG`.  Nothing here is mutated at
runtime.

The defaults are deliberately conservative:

* 5 % real return and 12 % volatility, roughly a balanced 60/40 portfolio
  after inflation.
* Plan to age 95.
* A 90 % success target.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional

from dotenv import load_dotenv

from .errors import FieldIssue, InputValidationError
from .models import GuardrailsPolicy

ENV_PREFIX = "RUNWAY_"


def _default_what_if_guardrails() -> GuardrailsPolicy:
    return GuardrailsPolicy(
        upper_threshold=1.2,
        lower_threshold=0.8,
        increase_percent=0.1,
        decrease_percent=0.1,
    )


@dataclass(frozen=True)
class SimulationConfig:
    # market / plan assumptions
    real_return: float = 0.05
    volatility: float = 0.12
    plan_to_age: int = 95
    retirement_age: int = 65
    target_success_rate: float = 0.90
    iterations: int = 1000

    # aggregation
    sample_path_count: int = 10
    trial_chunk_size: int = 250
    workers: int = 1

    # max-withdrawal solver
    solver_iterations_per_test: int = 500
    solver_precision: float = 500.0
    solver_default_floor: float = 20000.0
    solver_high_fraction: float = 0.10
    solver_verification_iterations: int = 1000

    # result cache
    cache_ttl_seconds: float = 24 * 60 * 60
    expired_purge_limit: int = 10

    # what-if / sensitivity
    sensitivity_iterations: int = 500
    what_if_floor_fraction: float = 0.7
    what_if_guardrails: GuardrailsPolicy = field(default_factory=_default_what_if_guardrails)


DEFAULT_CONFIG = SimulationConfig()


def _coerce(raw: str, current):
    if isinstance(current, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(float(raw))
    return float(raw)


def load_config(env_file: Optional[str] = None, base: SimulationConfig = DEFAULT_CONFIG) -> SimulationConfig:
    """Build a config from ``RUNWAY_*`` environment variables.

    ``RUNWAY_REAL_RETURN=0.04`` overrides ``real_return`` and so on.  When
    ``env_file`` is given it is loaded first (existing variables win).
    """
    if env_file:
        load_dotenv(env_file, override=False)

    overrides: Dict[str, object] = {}
    issues: List[FieldIssue] = []
    for f in fields(SimulationConfig):
        if f.name == "what_if_guardrails":
            continue
        raw = os.environ.get(ENV_PREFIX + f.name.upper())
        if raw is None or raw == "":
            continue
        try:
            overrides[f.name] = _coerce(raw, getattr(base, f.name))
        except ValueError:
            issues.append(FieldIssue(ENV_PREFIX + f.name.upper(), f"not a number: {raw!r}"))
    if issues:
        raise InputValidationError(issues)

    if not overrides:
        return base
    values = {f.name: getattr(base, f.name) for f in fields(SimulationConfig)}
    values.update(overrides)
    cfg = SimulationConfig(**values)
    validate_assumptions(cfg.real_return, cfg.volatility, cfg.plan_to_age, cfg.target_success_rate)
    return cfg


def validate_assumptions(
    real_return: float,
    volatility: float,
    plan_to_age: int,
    target_success_rate: float,
) -> None:
    """Reject market/plan assumptions outside the supported ranges."""
    issues: List[FieldIssue] = []
    if not -0.1 <= real_return <= 0.2:
        issues.append(FieldIssue("real_return", "should be between -10% and 20%"))
    if not 0.0 <= volatility <= 0.5:
        issues.append(FieldIssue("volatility", "should be between 0% and 50%"))
    if not 70 <= plan_to_age <= 120:
        issues.append(FieldIssue("plan_to_age", "should be between 70 and 120"))
    if not 0.5 <= target_success_rate <= 0.99:
        issues.append(FieldIssue("target_success_rate", "should be between 50% and 99%"))
    if issues:
        raise InputValidationError(issues)
