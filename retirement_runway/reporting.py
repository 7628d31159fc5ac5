"""Tabular and text views of simulation results for display layers."""

from __future__ import annotations

from typing import Optional

import pandas as pd

from .models import AggregatedResult
from .planning import SensitivityReport

_PATH_COLUMNS = [
    "path", "year", "start_balance", "annual_return", "spending",
    "income", "work_income", "end_balance", "guardrail",
]


def sample_paths_frame(result: AggregatedResult) -> pd.DataFrame:
    """One row per (sample path, year).  Empty for results read from the cache."""
    rows = []
    for i, path in enumerate(result.sample_paths):
        for y in path:
            rows.append({
                "path": i,
                "year": y.year,
                "start_balance": y.start_balance,
                "annual_return": y.annual_return,
                "spending": y.spending,
                "income": y.income,
                "work_income": y.work_income,
                "end_balance": y.end_balance,
                "guardrail": y.guardrail,
            })
    return pd.DataFrame(rows, columns=_PATH_COLUMNS)


def sensitivity_frame(report: SensitivityReport) -> pd.DataFrame:
    df = pd.DataFrame(
        [{
            "variable": r.variable,
            "impact": r.impact,
            "low_value": r.low_value,
            "low_success_rate": r.low_success_rate,
            "high_value": r.high_value,
            "high_success_rate": r.high_success_rate,
        } for r in report.rows],
        columns=["variable", "impact", "low_value", "low_success_rate",
                 "high_value", "high_success_rate"],
    )
    df["baseline_success_rate"] = report.baseline_success_rate
    return df


def summarize(result: AggregatedResult, years: Optional[int] = None) -> str:
    """Short rule-based insight about a simulation result.

    >>> from retirement_runway.models import AggregatedResult, SuccessStats, FailureStats
    >>> r = AggregatedResult(0.92, 100, SuccessStats(92, 850000.0), FailureStats(8, 24.0, 24.0, 19))
    >>> summarize(r, 30).startswith("Your plan has a high chance of success (92.0% of 100 simulations)")
    True
    """
    success = result.success_rate
    if success >= 0.85:
        outlook = "high chance of success"
    elif success >= 0.6:
        outlook = "moderate chance of success"
    else:
        outlook = "plan may be at risk"

    horizon = f" after {years} years" if years else ""
    text = (
        f"Your plan has a {outlook} ({success * 100:.1f}% of {result.iterations} simulations). "
        f"Median ending balance{horizon} is ${result.success.median_ending_balance:,.0f}."
    )
    if result.failure.count:
        text += (
            f" Failing paths ran out after {result.failure.average_years_lasted:.1f} years on average"
            f" (earliest in year {result.failure.worst_case})."
        )
    return text
