"""
Tagged step outcomes for result-collecting pipelines.

Each pipeline stage returns a `StepOutcome` (success, warning or fatal). The
driver stops at the first fatal outcome and keeps the warnings for the final
report.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class StepStatus(str, Enum):
    """Outcome of a single pipeline step."""

    SUCCESS = "success"
    WARNING = "warning"
    FATAL = "fatal"


@dataclass
class StepOutcome:
    step: str
    status: StepStatus
    message: str = ""

    @classmethod
    def success(cls, step: str, message: str = "") -> "StepOutcome":
        return cls(step, StepStatus.SUCCESS, message)

    @classmethod
    def warning(cls, step: str, message: str) -> "StepOutcome":
        return cls(step, StepStatus.WARNING, message)

    @classmethod
    def fatal(cls, step: str, message: str) -> "StepOutcome":
        return cls(step, StepStatus.FATAL, message)


@dataclass
class ProvisionReport:
    """Accumulated outcomes of one pipeline run."""

    outcomes: List[StepOutcome] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)
    listener: Optional[Callable[[StepOutcome], None]] = field(default=None, repr=False)

    def add(self, outcome: StepOutcome) -> StepOutcome:
        self.outcomes.append(outcome)
        if self.listener is not None:
            self.listener(outcome)
        return outcome

    def warn(self, step: str, message: str) -> StepOutcome:
        return self.add(StepOutcome.warning(step, message))

    @property
    def warnings(self) -> List[StepOutcome]:
        return [o for o in self.outcomes if o.status == StepStatus.WARNING]

    @property
    def fatal(self) -> Optional[StepOutcome]:
        for outcome in self.outcomes:
            if outcome.status == StepStatus.FATAL:
                return outcome
        return None

    @property
    def ok(self) -> bool:
        return self.fatal is None
