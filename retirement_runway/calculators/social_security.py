"""Social Security as a simulator income stream.

Benefit statements quote a monthly amount at 62, at full retirement age (67)
and at 70.  The planner claims at one of those ages; any other age falls back
to the full-retirement figure.  When only a Primary Insurance Amount (PIA) is
known the benefit is approximated from it:

* claiming before FRA reduces the benefit by 7 % per year early;
* claiming after FRA (up to 70) adds 8 % per year of delay;
* claiming ages are clamped to [62, 70].

The simulator works in years since retirement, so the claim is converted to a
0-based start year and an annual amount in today's dollars.

>>> round(adjusted_monthly_benefit(2000, 65), 2)
1720.0
>>> income_start_year(claiming_age=67, retirement_age=62)
5
"""

from __future__ import annotations

from typing import Optional

from ..models import IncomeEvent

FULL_RETIREMENT_AGE = 67


def adjusted_monthly_benefit(pia: float, claiming_age: int, fra: int = FULL_RETIREMENT_AGE) -> float:
    claiming_age = max(62, min(70, claiming_age))
    years_diff = claiming_age - fra
    if years_diff < 0:
        factor = 1 + 0.07 * years_diff
    else:
        factor = 1 + 0.08 * years_diff
    return pia * factor


def monthly_benefit(
    claiming_age: int,
    benefit_at_62: Optional[float] = None,
    benefit_at_67: Optional[float] = None,
    benefit_at_70: Optional[float] = None,
    pia: Optional[float] = None,
) -> float:
    """Monthly benefit at ``claiming_age`` from a benefit statement or a PIA."""
    if claiming_age == 62 and benefit_at_62 is not None:
        return float(benefit_at_62)
    if claiming_age == 70 and benefit_at_70 is not None:
        return float(benefit_at_70)
    if benefit_at_67 is not None:
        return float(benefit_at_67)
    if pia is not None:
        return adjusted_monthly_benefit(pia, claiming_age)
    return 0.0


def income_start_year(claiming_age: int, retirement_age: int) -> int:
    return max(0, int(claiming_age) - int(retirement_age))


def income_event(monthly: float, claiming_age: int, retirement_age: int) -> IncomeEvent:
    """Annual income event; the annual amount is rounded to whole dollars."""
    return IncomeEvent(
        start_year=income_start_year(claiming_age, retirement_age),
        annual_amount=float(round(monthly * 12)),
    )


__all__ = ["adjusted_monthly_benefit", "monthly_benefit", "income_start_year", "income_event"]
