"""Plain data carriers shared by the simulator, solver and cache.

All of these are frozen dataclasses: a :class:`SimulationInput` is owned by
the caller for one request, a :class:`TrialResult` lives for one aggregation
pass, and an :class:`AggregatedResult` is handed to reporting layers as
read-only data.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class IncomeEvent:
    """Pension-like benefit paid every year from ``start_year`` (0-based) on."""

    start_year: int
    annual_amount: float


@dataclass(frozen=True)
class PartTimeWork:
    """Earned income added during the first ``years`` years of retirement."""

    income: float
    years: int


@dataclass(frozen=True)
class GuardrailsPolicy:
    """Dynamic spending rule relative to the starting portfolio.

    ``upper_threshold`` / ``lower_threshold`` are ratios of the current balance
    to the starting portfolio (e.g. 1.20 and 0.80).  The percents are decimals.
    """

    upper_threshold: float
    lower_threshold: float
    increase_percent: float
    decrease_percent: float
    enabled: bool = True


@dataclass(frozen=True)
class SimulationInput:
    starting_portfolio: float
    annual_spending: Optional[float]
    years: int
    real_return: float
    volatility: float
    social_security: Optional[IncomeEvent] = None
    essential_floor: Optional[float] = None
    spending_ceiling: Optional[float] = None
    guardrails: Optional[GuardrailsPolicy] = None
    part_time_work: Optional[PartTimeWork] = None

    def with_spending(self, annual_spending: float) -> "SimulationInput":
        return replace(self, annual_spending=annual_spending)

    @property
    def guardrails_active(self) -> bool:
        return self.guardrails is not None and self.guardrails.enabled


@dataclass(frozen=True)
class YearResult:
    year: int
    start_balance: float
    annual_return: float
    spending: float
    income: float
    work_income: float
    end_balance: float
    guardrail: Optional[str] = None  # "ceiling", "floor" or None


@dataclass(frozen=True)
class TrialResult:
    success: bool
    ending_balance: float
    years_lasted: int
    lowest_balance: float
    lowest_balance_year: int
    year_by_year: Optional[Tuple[YearResult, ...]] = None


@dataclass(frozen=True)
class SuccessStats:
    count: int = 0
    median_ending_balance: float = 0.0
    p10_ending_balance: float = 0.0
    p90_ending_balance: float = 0.0


@dataclass(frozen=True)
class FailureStats:
    count: int = 0
    average_years_lasted: float = 0.0
    median_years_lasted: float = 0.0
    worst_case: int = 0


@dataclass(frozen=True)
class RiskStats:
    average_lowest_balance: float = 0.0
    percent_hitting_floor: float = 0.0
    ceiling_trigger_percent: float = 0.0
    floor_trigger_percent: float = 0.0


@dataclass(frozen=True)
class AggregatedResult:
    success_rate: float
    iterations: int
    success: SuccessStats
    failure: FailureStats
    risk: RiskStats = field(default_factory=RiskStats)
    # per-trial detail; not persisted and not part of equality
    sample_paths: Tuple[Tuple[YearResult, ...], ...] = field(default=(), compare=False)

    def to_dict(self) -> Dict:
        """Persisted form; sample paths are not stored."""
        return {
            "successRate": self.success_rate,
            "iterations": self.iterations,
            "success": {
                "count": self.success.count,
                "medianEndingBalance": self.success.median_ending_balance,
                "p10EndingBalance": self.success.p10_ending_balance,
                "p90EndingBalance": self.success.p90_ending_balance,
            },
            "failure": {
                "count": self.failure.count,
                "averageYearsLasted": self.failure.average_years_lasted,
                "medianYearsLasted": self.failure.median_years_lasted,
                "worstCase": self.failure.worst_case,
            },
            "risk": {
                "averageLowestBalance": self.risk.average_lowest_balance,
                "percentHittingFloor": self.risk.percent_hitting_floor,
                "ceilingTriggerPercent": self.risk.ceiling_trigger_percent,
                "floorTriggerPercent": self.risk.floor_trigger_percent,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "AggregatedResult":
        s = data.get("success", {})
        f = data.get("failure", {})
        r = data.get("risk", {})
        return cls(
            success_rate=float(data["successRate"]),
            iterations=int(data["iterations"]),
            success=SuccessStats(
                count=int(s.get("count", 0)),
                median_ending_balance=float(s.get("medianEndingBalance", 0.0)),
                p10_ending_balance=float(s.get("p10EndingBalance", 0.0)),
                p90_ending_balance=float(s.get("p90EndingBalance", 0.0)),
            ),
            failure=FailureStats(
                count=int(f.get("count", 0)),
                average_years_lasted=float(f.get("averageYearsLasted", 0.0)),
                median_years_lasted=float(f.get("medianYearsLasted", 0.0)),
                worst_case=int(f.get("worstCase", 0)),
            ),
            risk=RiskStats(
                average_lowest_balance=float(r.get("averageLowestBalance", 0.0)),
                percent_hitting_floor=float(r.get("percentHittingFloor", 0.0)),
                ceiling_trigger_percent=float(r.get("ceilingTriggerPercent", 0.0)),
                floor_trigger_percent=float(r.get("floorTriggerPercent", 0.0)),
            ),
        )

    def without_detail(self) -> "AggregatedResult":
        """Copy holding only what the cache persists."""
        return replace(self, sample_paths=())


@dataclass(frozen=True)
class MaxWithdrawalResult:
    max_withdrawal: float
    success_rate: float
    search_iterations: int
    monthly_amount: float = 0.0
    withdrawal_rate: float = 0.0
    target_success_rate: float = 0.0


@dataclass(frozen=True)
class CacheEntry:
    inputs_hash: str
    results: AggregatedResult
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at < now
