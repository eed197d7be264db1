"""
Concurrent execution of build plans.

Steps run on a thread pool. A step is submitted once every step it depends
on has succeeded; steps with no path between them run concurrently. A
scoped failure (compile error, code generation failure, host tool build
failure) marks every step depending on it as blocked while unrelated steps
keep going. Any other exception stops the build and is re-raised once the
running steps have finished.
"""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from qtbuildkit.build.plan import BuildPlan, BuildStep
from qtbuildkit.core.exceptions import BuildCancelled, StepFailure
from qtbuildkit.core.process import ProcessRunner

logger = logging.getLogger(__name__)

SUCCESS = "success"
FAILED = "failed"
BLOCKED = "blocked"
CANCELLED = "cancelled"


@dataclass
class StepResult:
    """
    Outcome of one build step.

    Attributes:
        step: The step
        status: 'success', 'failed', 'blocked' or 'cancelled'
        value: Return value of the step (on success)
        error: Exception raised by the step (on failure)
        blocked_by: Id of the failed step that prevented this one from running
        duration: Wall-clock seconds the step ran
    """

    step: BuildStep
    status: str
    value: Any = None
    error: Optional[BaseException] = None
    blocked_by: Optional[str] = None
    duration: float = 0.0


class BuildScheduler:
    """
    Runs plan steps concurrently while respecting step dependencies.

    Attributes:
        jobs: Maximum concurrent steps
        runner: Process runner terminated on cancel()
    """

    def __init__(self, jobs: Optional[int] = None, runner: Optional[ProcessRunner] = None):
        self.jobs = max(1, jobs or 1)
        self.runner = runner or ProcessRunner()
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop starting steps and terminate the external processes in flight."""
        logger.warning("Cancelling build")
        self._cancelled.set()
        self.runner.cancel()

    def run(self, plan: BuildPlan, execute: Callable[[BuildStep], Any]) -> Dict[str, StepResult]:
        """
        Execute every step of the plan.

        Args:
            plan: Resolved build plan
            execute: Called with each step in a worker thread; its return
                value is stored in the step result

        Returns:
            Step id -> StepResult, in plan order

        Raises:
            Exception: The first exception that is neither a scoped step
                failure nor a cancellation
        """
        results: Dict[str, StepResult] = {}
        running: Dict[Future, BuildStep] = {}
        started: Dict[str, float] = {}
        fatal: Optional[BaseException] = None

        def timed(step: BuildStep) -> Any:
            started[step.id] = time.monotonic()
            return execute(step)

        with ThreadPoolExecutor(max_workers=self.jobs, thread_name_prefix="qtbuild") as pool:
            while True:
                if fatal is None and not self.cancelled:
                    self._submit_ready(plan, results, running, pool, timed)
                if not running:
                    break

                done, _ = wait(list(running), return_when=FIRST_COMPLETED)
                for future in done:
                    step = running.pop(future)
                    duration = time.monotonic() - started.get(step.id, time.monotonic())
                    result = self._result(step, future, duration)
                    results[step.id] = result
                    if result.status == FAILED and not isinstance(result.error, StepFailure):
                        if fatal is None:
                            fatal = result.error
                            self._cancelled.set()
                            self.runner.cancel()

        for step in plan:
            if step.id not in results:
                results[step.id] = StepResult(step, CANCELLED)

        if fatal is not None:
            raise fatal

        return {step.id: results[step.id] for step in plan}

    def _submit_ready(self, plan, results, running, pool, timed) -> None:
        submitted = {step.id for step in running.values()}
        # Plan order lists dependencies first, so one pass propagates blocking
        for step in plan:
            if step.id in results or step.id in submitted:
                continue
            dep_results = [results.get(d) for d in step.depends_on]
            failed = [r for r in dep_results if r is not None and r.status != SUCCESS]
            if failed:
                origin = failed[0]
                blocked_by = origin.blocked_by or origin.step.id
                status = CANCELLED if origin.status == CANCELLED else BLOCKED
                results[step.id] = StepResult(step, status, blocked_by=blocked_by)
                if status == BLOCKED:
                    logger.info(f"Skipping {step.id}: blocked by {blocked_by}")
                continue
            if all(r is not None for r in dep_results):
                running[pool.submit(timed, step)] = step
                submitted.add(step.id)

    @staticmethod
    def _result(step: BuildStep, future: Future, duration: float) -> StepResult:
        error = future.exception()
        if error is None:
            logger.debug(f"{step.id} finished in {duration:.2f}s")
            return StepResult(step, SUCCESS, value=future.result(), duration=duration)
        if isinstance(error, BuildCancelled):
            return StepResult(step, CANCELLED, error=error, duration=duration)
        if isinstance(error, StepFailure):
            logger.error(f"{step.id} failed: {error}")
        else:
            logger.error(f"{step.id} raised {type(error).__name__}: {error}")
        return StepResult(step, FAILED, error=error, duration=duration)


__all__ = ["BuildScheduler", "StepResult", "SUCCESS", "FAILED", "BLOCKED", "CANCELLED"]
