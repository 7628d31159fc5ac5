"""Monte Carlo retirement-sustainability simulator.

``calculators`` holds the numerical core (return sampling, trial walk,
aggregation, max-withdrawal search); ``cache`` stores aggregated results for a
day; ``planning`` turns a household's planning context into simulator input
and runs the user-facing operations.
"""

from .config import DEFAULT_CONFIG, SimulationConfig, load_config  # noqa: F401
from .models import (  # noqa: F401
    AggregatedResult,
    GuardrailsPolicy,
    IncomeEvent,
    MaxWithdrawalResult,
    PartTimeWork,
    SimulationInput,
)

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_CONFIG",
    "SimulationConfig",
    "load_config",
    "AggregatedResult",
    "GuardrailsPolicy",
    "IncomeEvent",
    "MaxWithdrawalResult",
    "PartTimeWork",
    "SimulationInput",
]
