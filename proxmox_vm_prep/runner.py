"""Sequential, prompt-gated step runner."""

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from proxmox_vm_prep.errors import FatalStepError, MissingInputError, SetupError
from proxmox_vm_prep.host import Host
from proxmox_vm_prep.steps import Step
from proxmox_vm_prep.ui import (
    NordColors,
    print_error,
    print_message,
    print_section,
    print_success,
    print_warning,
)

logger = logging.getLogger(__name__)


class StepOutcome(enum.Enum):
    SATISFIED = "satisfied"
    APPLIED = "applied"
    DECLINED = "declined"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    name: str
    outcome: StepOutcome
    message: str = ""


@dataclass
class PipelineResult:
    results: List[StepResult] = field(default_factory=list)

    def outcome_of(self, name: str) -> StepOutcome:
        for result in self.results:
            if result.name == name:
                return result.outcome
        raise KeyError(name)

    @property
    def failed(self) -> List[StepResult]:
        return [r for r in self.results if r.outcome is StepOutcome.FAILED]

    def rows(self) -> List[Tuple[str, str, str]]:
        return [(r.name, r.outcome.value, r.message) for r in self.results]


def _is_satisfied(step: Step, host: Host) -> bool:
    try:
        return step.check(host)
    except SetupError as e:
        logger.warning("Check for %s failed (%s), treating it as not done", step.name, e)
        return False


def run_step(step: Step, host: Host) -> StepResult:
    """
    Run one step: check, ask, apply.

    Raises:
        FatalStepError: From a step marked fatal; nothing after it should run.
    """
    print_section(step.title or step.name)

    if _is_satisfied(step, host):
        message = step.satisfied_message(host)
        print_success(message)
        return StepResult(step.name, StepOutcome.SATISFIED, message)

    question = step.question(host)
    if question and not host.confirm(question):
        print_message(f"Skipped {step.title or step.name}", NordColors.POLAR_NIGHT_4, "–")
        return StepResult(step.name, StepOutcome.DECLINED, "declined")

    try:
        message = step.apply(host) or "done"
    except MissingInputError as e:
        print_warning(str(e))
        return StepResult(step.name, StepOutcome.SKIPPED, str(e))
    except SetupError as e:
        if step.fatal and isinstance(e, FatalStepError):
            print_error(str(e))
            raise
        print_error(f"{step.title or step.name} failed: {e}")
        return StepResult(step.name, StepOutcome.FAILED, str(e).splitlines()[0])

    if step.has_check and not _is_satisfied(step, host):
        logger.warning(
            "%s applied but its check still fails; a new login session may be needed",
            step.name,
        )
    return StepResult(step.name, StepOutcome.APPLIED, message)


def run_pipeline(steps: Sequence[Step], host: Host) -> PipelineResult:
    """
    Run steps strictly in order.

    Declined, skipped and failed steps are recorded and the pipeline moves
    on; only a ``FatalStepError`` stops it.
    """
    result = PipelineResult()
    for step in steps:
        logger.info("Running step %s", step.name)
        step_result = run_step(step, host)
        logger.info("Step %s: %s", step.name, step_result.outcome.value)
        result.results.append(step_result)
    return result
