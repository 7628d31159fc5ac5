"""Exceptions raised by the simulator, planning services and cache stores."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List


class RunwayError(Exception):
    """Base class for all errors raised by this package."""


@dataclass(frozen=True)
class FieldIssue:
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class InputValidationError(RunwayError, ValueError):
    """One or more inputs are missing or invalid.

    Raised before any simulation runs.  ``issues`` holds every problem found,
    not just the first one, so callers can surface the whole list.
    """

    def __init__(self, issues: Iterable[FieldIssue]):
        self.issues: List[FieldIssue] = list(issues)
        super().__init__("Invalid simulation inputs: " + "; ".join(str(i) for i in self.issues))

    @property
    def fields(self) -> List[str]:
        return [i.field for i in self.issues]


class PlanNotReadyError(InputValidationError):
    """The planning context lacks required inputs."""

    def __init__(self, missing: Iterable[str]):
        self.missing_inputs: List[str] = list(missing)
        InputValidationError.__init__(self, [FieldIssue(m, "missing") for m in self.missing_inputs])
        self.args = (f"Missing required inputs: {', '.join(self.missing_inputs)}",)


class CacheUnavailableError(RunwayError):
    """The backing cache store could not be read or written."""
