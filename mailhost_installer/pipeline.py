from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .errors import ConfigError
from .state_store import is_step_completed, mark_step_completed

logger = logging.getLogger(__name__)


class Step(Protocol):
    """A single idempotent step."""

    step_id: str

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        ...


@dataclass(frozen=True)
class PipelineResult:
    state: Dict[str, Any]
    ran_steps: List[str]
    skipped_steps: List[str]


def _check_step_ids(steps: Sequence[Step], *ids: Optional[str]) -> None:
    known = [s.step_id for s in steps]
    for step_id in ids:
        if step_id is not None and step_id not in known:
            raise ConfigError(f"Unknown step id {step_id!r}; known steps: {', '.join(known)}")


def run_pipeline(
    *,
    state: Dict[str, Any],
    steps: Sequence[Step],
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    force: bool = False,
) -> PipelineResult:
    """Run steps in order with resume/idempotency semantics.

    Completed steps recorded in ``state`` are skipped unless ``force``. A step
    that raises is not marked completed, so the next run resumes there.
    """

    _check_step_ids(steps, start_at, stop_after)

    ran: List[str] = []
    skipped: List[str] = []
    timings = state.setdefault("execution", {}).setdefault("timings", {})

    started = start_at is None

    for step in steps:
        if not started:
            if step.step_id == start_at:
                started = True
            else:
                continue

        state.setdefault("execution", {})["current_step"] = step.step_id

        if (not force) and is_step_completed(state, step.step_id):
            logger.info("Skipping step %s (already completed)", step.step_id)
            skipped.append(step.step_id)
        else:
            logger.info("Running step %s", step.step_id)
            t0 = time.monotonic()
            state = step.run(state)
            timings[step.step_id] = round(time.monotonic() - t0, 3)
            mark_step_completed(state, step.step_id)
            ran.append(step.step_id)

        if stop_after is not None and step.step_id == stop_after:
            logger.info("Stopping after %s", stop_after)
            break

    state.setdefault("execution", {})["current_step"] = None
    return PipelineResult(state=state, ran_steps=ran, skipped_steps=skipped)
