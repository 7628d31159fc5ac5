"""Core retirement-sustainability calculators.

The `calculators` package contains small, focused modules that each implement
one piece of the simulation:

* ``returns`` – normally distributed annual real returns (Box-Muller) and
  seeding helpers.
* ``monte_carlo`` – the year-by-year trial walk with guardrails and income,
  plus the trial aggregator and batch runner.
* ``withdrawal`` – binary-search solver for the maximum sustainable spending.
* ``social_security`` – converts a claiming decision into a simulator income
  stream.

Each module exposes a few public functions with clear parameters and returns.  See
individual docstrings for details.
"""

from . import returns, monte_carlo, withdrawal, social_security  # noqa: F401

__all__ = ["returns", "monte_carlo", "withdrawal", "social_security"]
