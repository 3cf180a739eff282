"""Serverless entrypoints for both strategies.

``can_proceed_handler`` is the gate invocation boundary: the enclosing state
machine passes its own state machine and execution identifiers and branches
on ``canProceed`` in the returned record. Retries and the wait between polls
belong to the state machine, so this handler fetches exactly once.

``queue_poller_handler`` is the admission cycle boundary, invoked on a fixed
schedule. It reads ``QUEUE_URL`` and ``STATE_MACHINE_ARN`` from the
environment.
"""

from __future__ import annotations

from typing import Any

from runguard.adapters.aws import SqsAdmissionQueue, StepFunctionsDirectory, StepFunctionsLauncher
from runguard.adapters.protocols import AdmissionQueue, ExecutionDirectory, JobLauncher
from runguard.coordination.admitter import QueueGatedAdmitter
from runguard.coordination.gate import evaluate_gate
from runguard.core.errors import MissingConfigError, RunGuardError
from runguard.core.logging import LogContext, get_logger
from runguard.core.settings import RunGuardSettings, get_settings
from runguard.execution.driver import DriverConfig

logger = get_logger(__name__)


def _require(event: dict[str, Any], key: str) -> str:
    value = event.get(key)
    if not value:
        raise MissingConfigError(key, f"Gate event is missing {key!r}")
    return value


def can_proceed_handler(
    event: dict[str, Any],
    context: Any = None,
    *,
    directory: ExecutionDirectory | None = None,
) -> dict[str, Any]:
    """Evaluate the gate once for ``event["executionId"]``.

    Event:
        ``{"stateMachineId": "...", "executionId": "..."}``

    Returns:
        ``GateDecision.to_dict()``
    """
    job_id = _require(event, "stateMachineId")
    instance_id = _require(event, "executionId")

    if directory is None:
        directory = StepFunctionsDirectory.from_settings(get_settings())

    with LogContext(job_id=job_id, instance_id=instance_id):
        snapshot = directory.list_running(job_id)
        try:
            decision = evaluate_gate(instance_id, snapshot)
        except RunGuardError as e:
            logger.error("gate_failed", **e.to_dict())
            raise
    return decision.to_dict()


def build_admitter(
    settings: RunGuardSettings,
    *,
    queue: AdmissionQueue | None = None,
    directory: ExecutionDirectory | None = None,
    launcher: JobLauncher | None = None,
) -> QueueGatedAdmitter:
    """Wire a :class:`QueueGatedAdmitter` from settings.

    Raises:
        MissingConfigError: ``QUEUE_URL`` or ``STATE_MACHINE_ARN`` is unset
    """
    if not settings.queue_url:
        raise MissingConfigError("QUEUE_URL", "missing QUEUE_URL env var")
    if not settings.job_id:
        raise MissingConfigError("STATE_MACHINE_ARN", "missing STATE_MACHINE_ARN env var")

    if queue is None:
        queue = SqsAdmissionQueue.from_settings(settings, settings.queue_url)
    if directory is None:
        directory = StepFunctionsDirectory.from_settings(settings)
    if launcher is None:
        launcher = StepFunctionsLauncher.from_settings(settings)

    return QueueGatedAdmitter(
        queue=queue,
        directory=directory,
        launcher=launcher,
        job_id=settings.job_id,
        retry_strategy=DriverConfig.from_settings(settings).retry_strategy(),
    )


def queue_poller_handler(
    event: Any = None,
    context: Any = None,
    *,
    settings: RunGuardSettings | None = None,
    admitter: QueueGatedAdmitter | None = None,
) -> dict[str, Any]:
    """Run one admission cycle. The event payload is ignored."""
    if admitter is None:
        admitter = build_admitter(settings or get_settings())

    with LogContext(job_id=admitter.job_id):
        result = admitter.run_cycle()
    return result.to_dict()


__all__ = ["can_proceed_handler", "queue_poller_handler", "build_admitter"]
