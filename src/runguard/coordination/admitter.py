"""Queue-gated admitter: start a new instance only when none is running.

One cycle handles at most one admission request:

1. Receive at most one request. None available is a no-op cycle.
2. Query the directory fresh. Nothing is cached between cycles.
3. Any RUNNING instance: leave the request queued (back-pressure).
4. Otherwise launch with the request body and optional name, then delete.

The request is deleted only after the launch returns. A crash between the
two causes redelivery; the launch name, when present, turns the duplicate
start into ``LaunchRejected``, which is treated as already launched.

Queue and directory calls are retried with the configured strategy. The
launch itself is never retried.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from runguard.adapters.protocols import AdmissionQueue, ExecutionDirectory, JobLauncher
from runguard.core.errors import LaunchRejected
from runguard.core.logging import get_logger
from runguard.core.models import AdmissionRequest
from runguard.execution.retry import NoRetry, RetryContext, RetryStrategy

logger = get_logger(__name__)

T = TypeVar("T")


class AdmissionOutcome(str, Enum):
    """Result of one admission cycle. None of these is an error."""

    NO_REQUEST = "no_request"
    BLOCKED = "blocked"
    LAUNCHED = "launched"
    ALREADY_LAUNCHED = "already_launched"


@dataclass(frozen=True)
class AdmissionResult:
    outcome: AdmissionOutcome
    request: AdmissionRequest | None = None
    instance_identity: str | None = None
    running_count: int = 0

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "messageId": self.request.message_id if self.request else None,
            "instanceIdentity": self.instance_identity,
            "runningCount": self.running_count,
        }


class QueueGatedAdmitter:
    """Admits queued requests one at a time for a single job.

    Safe to invoke concurrently: every cycle re-reads the directory, and a
    request is only consumed after its launch call returned.
    """

    def __init__(
        self,
        queue: AdmissionQueue,
        directory: ExecutionDirectory,
        launcher: JobLauncher,
        job_id: str,
        retry_strategy: RetryStrategy | None = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self.queue = queue
        self.directory = directory
        self.launcher = launcher
        self.job_id = job_id
        self.retry_strategy = retry_strategy or NoRetry()
        self.sleep = sleep

    def run_cycle(self) -> AdmissionResult:
        """Process at most one admission request end-to-end."""
        request = self._call("receive", self.queue.receive_one)
        if request is None:
            logger.debug("admission_queue_empty", job_id=self.job_id)
            return AdmissionResult(AdmissionOutcome.NO_REQUEST)

        snapshot = self._call("list_running", self.directory.list_running, self.job_id)
        running = snapshot.running
        if running:
            logger.info(
                "admission_blocked",
                job_id=self.job_id,
                message_id=request.message_id,
                running=[i.identity for i in running],
            )
            return AdmissionResult(AdmissionOutcome.BLOCKED, request=request, running_count=len(running))

        try:
            identity = self.launcher.start(self.job_id, request.body, request.name)
        except LaunchRejected:
            logger.info(
                "admission_already_launched",
                job_id=self.job_id,
                message_id=request.message_id,
                name=request.name,
            )
            self._call("delete", self.queue.delete, request)
            return AdmissionResult(AdmissionOutcome.ALREADY_LAUNCHED, request=request)

        self._call("delete", self.queue.delete, request)
        logger.info(
            "admission_launched",
            job_id=self.job_id,
            message_id=request.message_id,
            instance_id=identity,
        )
        return AdmissionResult(AdmissionOutcome.LAUNCHED, request=request, instance_identity=identity)

    def _call(self, operation: str, func: Callable[..., T], *args: Any) -> T:
        """Run a queue or directory call under ``retry_strategy``. Launches are not retried."""

        def log_retry(attempt: int, error: Exception, delay: float) -> None:
            logger.warning(
                "admission_call_retry",
                job_id=self.job_id,
                operation=operation,
                attempt=attempt,
                delay=round(delay, 3),
                error=str(error),
            )

        retry = RetryContext(self.retry_strategy, on_retry=log_retry, sleep=self.sleep)
        return retry.run(func, *args)


__all__ = ["AdmissionOutcome", "AdmissionResult", "QueueGatedAdmitter"]
