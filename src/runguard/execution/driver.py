"""Control loops around the gate and the admitter.

``ControlLoopDriver`` runs inside one job instance and drives it through the
oldest-wins gate::

    POLLING ──can proceed──▶ PROCEEDING (terminal)
       ▲   └─must wait────▶ WAITING
       └──── interval ───────┘

Each POLLING step fetches a fresh snapshot (retrying only the fetch, with
bounded exponential backoff) and evaluates the gate once. There is no bound
on POLLING/WAITING cycles unless ``max_cycles`` is set; the enclosing
workflow's own timeout is the usual bound.

``AdmissionLoop`` invokes a :class:`QueueGatedAdmitter` on a fixed cadence
until stopped.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from runguard.adapters.protocols import ExecutionDirectory
from runguard.coordination.admitter import AdmissionResult, QueueGatedAdmitter
from runguard.coordination.gate import evaluate_gate
from runguard.core.errors import GateTimeout, RunGuardError
from runguard.core.logging import LogContext, get_logger
from runguard.core.models import GateDecision
from runguard.core.settings import RunGuardSettings
from runguard.execution.retry import ExponentialBackoff, RetryContext

logger = get_logger(__name__)


class GateState(str, Enum):
    POLLING = "polling"
    WAITING = "waiting"
    PROCEEDING = "proceeding"


GATE_VALID_TRANSITIONS: dict[GateState, frozenset[GateState]] = {
    GateState.POLLING: frozenset({GateState.WAITING, GateState.PROCEEDING}),
    GateState.WAITING: frozenset({GateState.POLLING}),
    GateState.PROCEEDING: frozenset(),  # terminal
}


class InvalidTransitionError(RunGuardError):
    """Raised when the driver attempts an illegal state transition."""

    def __init__(self, current: GateState, target: GateState) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid GateState transition: {current.value} -> {target.value}")


@dataclass
class DriverConfig:
    """Named timing constants for the control loop.

    Tests use near-zero intervals; production defaults wait one minute
    between polls and try each directory query three times.
    """

    wait_interval_seconds: float = 60.0
    query_max_attempts: int = 3
    backoff_base_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    backoff_max_seconds: float = 30.0
    max_cycles: int | None = None

    @classmethod
    def from_settings(cls, settings: RunGuardSettings, **overrides: Any) -> DriverConfig:
        values = {
            "wait_interval_seconds": settings.wait_interval_seconds,
            "query_max_attempts": settings.query_max_attempts,
            "backoff_base_seconds": settings.backoff_base_seconds,
            "backoff_multiplier": settings.backoff_multiplier,
            "backoff_max_seconds": settings.backoff_max_seconds,
        }
        values.update(overrides)
        return cls(**values)

    def retry_strategy(self) -> ExponentialBackoff:
        return ExponentialBackoff(
            max_attempts=self.query_max_attempts,
            base_delay=self.backoff_base_seconds,
            multiplier=self.backoff_multiplier,
            max_delay=self.backoff_max_seconds,
        )


@dataclass
class DriverOutcome:
    """Final decision plus whatever the job body returned."""

    decision: GateDecision
    cycles: int
    result: Any = None
    history: list[GateState] = field(default_factory=list)


class ControlLoopDriver:
    """Drives one instance through POLLING/WAITING until it may proceed.

    Example:
        >>> driver = ControlLoopDriver(directory, job_id, execution_arn)
        >>> outcome = driver.run(body=export_everything)
    """

    def __init__(
        self,
        directory: ExecutionDirectory,
        job_id: str,
        current_identity: str,
        config: DriverConfig | None = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self.directory = directory
        self.job_id = job_id
        self.current_identity = current_identity
        self.config = config or DriverConfig()
        self.sleep = sleep
        self.state = GateState.POLLING
        self.cycles = 0
        self.history: list[GateState] = [GateState.POLLING]
        self.last_decision: GateDecision | None = None

    def _transition(self, target: GateState) -> None:
        if target not in GATE_VALID_TRANSITIONS[self.state]:
            raise InvalidTransitionError(self.state, target)
        logger.debug("gate_state_changed", previous=self.state.value, state=target.value)
        self.state = target
        self.history.append(target)

    def _log_retry(self, attempt: int, error: Exception, delay: float) -> None:
        logger.warning(
            "directory_query_retry",
            attempt=attempt,
            max_attempts=self.config.query_max_attempts,
            delay=round(delay, 3),
            error=str(error),
        )

    def poll(self) -> GateDecision:
        """One POLLING step: fresh snapshot, one gate evaluation."""
        if self.state != GateState.POLLING:
            raise InvalidTransitionError(self.state, GateState.POLLING)

        self.cycles += 1
        retry = RetryContext(
            self.config.retry_strategy(),
            on_retry=self._log_retry,
            sleep=self.sleep,
        )
        snapshot = retry.run(self.directory.list_running, self.job_id)
        decision = evaluate_gate(self.current_identity, snapshot)
        self.last_decision = decision

        if decision.can_proceed:
            self._transition(GateState.PROCEEDING)
        else:
            self._transition(GateState.WAITING)
        return decision

    def wait(self) -> None:
        """One WAITING step: sleep the fixed interval, then poll again."""
        self.sleep(self.config.wait_interval_seconds)
        self._transition(GateState.POLLING)

    def run_until_proceed(self) -> GateDecision:
        """Alternate POLLING and WAITING until the gate grants proceed."""
        with LogContext(job_id=self.job_id, instance_id=self.current_identity):
            while True:
                decision = self.poll()
                if decision.can_proceed:
                    logger.info("gate_proceeding", cycles=self.cycles)
                    return decision

                logger.info(
                    "gate_waiting",
                    cycle=self.cycles,
                    pending=[i.identity for i in decision.pending_instances],
                    wait_seconds=self.config.wait_interval_seconds,
                )
                if self.config.max_cycles is not None and self.cycles >= self.config.max_cycles:
                    raise GateTimeout(self.current_identity, self.cycles).with_context(job_id=self.job_id)
                self.wait()

    def run(self, body: Callable[[], Any] | None = None) -> DriverOutcome:
        """Wait for admission, then hand control to ``body``."""
        decision = self.run_until_proceed()
        result = body() if body is not None else None
        return DriverOutcome(
            decision=decision,
            cycles=self.cycles,
            result=result,
            history=list(self.history),
        )


class AdmissionLoop:
    """Invokes an admitter on a fixed cadence.

    A failed cycle is logged and the loop carries on with the next tick,
    unless ``stop_on_error`` is set. Because the request is only deleted
    after a successful launch, a failed cycle leaves it queued.
    """

    def __init__(
        self,
        admitter: QueueGatedAdmitter,
        interval_seconds: float = 60.0,
        max_cycles: int | None = None,
        stop_event: threading.Event | None = None,
        stop_on_error: bool = False,
    ) -> None:
        self.admitter = admitter
        self.interval_seconds = interval_seconds
        self.max_cycles = max_cycles
        self.stop_event = stop_event or threading.Event()
        self.stop_on_error = stop_on_error
        self.cycles = 0
        self.results: list[AdmissionResult] = []
        self.errors: list[Exception] = []

    def stop(self) -> None:
        self.stop_event.set()

    def run(self) -> list[AdmissionResult]:
        logger.info(
            "admission_loop_started",
            job_id=self.admitter.job_id,
            interval_seconds=self.interval_seconds,
        )
        while not self.stop_event.is_set():
            self.cycles += 1
            try:
                self.results.append(self.admitter.run_cycle())
            except Exception as e:
                self.errors.append(e)
                logger.exception("admission_cycle_failed", job_id=self.admitter.job_id, cycle=self.cycles)
                if self.stop_on_error:
                    raise

            if self.max_cycles is not None and self.cycles >= self.max_cycles:
                break
            self.stop_event.wait(self.interval_seconds)

        logger.info("admission_loop_stopped", job_id=self.admitter.job_id, cycles=self.cycles)
        return self.results


__all__ = [
    "GateState",
    "GATE_VALID_TRANSITIONS",
    "InvalidTransitionError",
    "DriverConfig",
    "DriverOutcome",
    "ControlLoopDriver",
    "AdmissionLoop",
]
