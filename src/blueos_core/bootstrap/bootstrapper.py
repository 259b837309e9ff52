"""Ordered execution of bootstrap steps."""

import subprocess
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Sequence

import structlog

if TYPE_CHECKING:
    from .steps import BootstrapStep

logger = structlog.get_logger()


class StepOutcome(Enum):
    """Outcome of a single bootstrap step."""
    APPLIED = "applied"
    SKIPPED = "skipped"
    FATAL = "fatal"


@dataclass
class StepResult:
    step: str
    outcome: StepOutcome
    reason: Optional[str] = None
    error: Optional[BaseException] = None


@dataclass
class BootstrapReport:
    results: List[StepResult] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        """Reasons of every skipped step."""
        return [f"{r.step}: {r.reason}" for r in self.results if r.outcome == StepOutcome.SKIPPED]

    @property
    def fatal(self) -> Optional[StepResult]:
        for result in self.results:
            if result.outcome == StepOutcome.FATAL:
                return result
        return None

    @property
    def ok(self) -> bool:
        return self.fatal is None


class Bootstrapper:
    """Runs the bootstrap steps once, in order.

    A step whose precondition is missing is skipped with a warning. An OS
    error while applying a step is fatal and stops the remaining steps.
    """

    def __init__(self, steps: Sequence["BootstrapStep"]):
        self.steps = list(steps)

    def run(self) -> BootstrapReport:
        report = BootstrapReport()
        for step in self.steps:
            result = self._run_step(step)
            report.results.append(result)
            if result.outcome == StepOutcome.FATAL:
                break
        return report

    def _run_step(self, step: "BootstrapStep") -> StepResult:
        missing = step.precondition()
        if missing is not None:
            logger.warning("Bootstrap step skipped", step=step.name, reason=missing)
            return StepResult(step.name, StepOutcome.SKIPPED, reason=missing)

        try:
            detail = step.apply()
        except (OSError, subprocess.CalledProcessError) as e:
            logger.error("Bootstrap step failed", step=step.name, error=str(e))
            return StepResult(step.name, StepOutcome.FATAL, reason=str(e), error=e)

        logger.info("Bootstrap step applied", step=step.name, detail=detail)
        return StepResult(step.name, StepOutcome.APPLIED, reason=detail)
