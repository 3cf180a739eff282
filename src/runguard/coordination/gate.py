"""
Oldest-wins gate: decide whether an instance may run the job body.

Every running instance lists the running instances of its own job and asks
"am I the oldest?". Only the instance with the smallest ``(start_time,
identity)`` pair proceeds; every other instance waits and asks again later
with a fresh snapshot. There is no central admission point and no signaling
between instances.

Manifesto:
    The directory is eventually consistent, so two instances can briefly
    disagree about who is oldest. The gate therefore checks its own answer:
    ``can_proceed`` must hold exactly when nothing is pending. A snapshot
    that breaks this, or one that does not contain the caller, aborts the
    cycle loudly instead of guessing.

    - **Pure:** No I/O; a decision is a function of the snapshot
    - **Deterministic:** Identity breaks millisecond ties
    - **Fail safe:** Consistency violations raise, never default to proceed

Architecture:
    ::

        snapshot (most recent first)
              │
              ▼  sorted(key=instance_sort_key)
        [oldest, ..., newest]
              │
              ├── find current            ── SelfNotFound
              ├── pending = ordered ahead of current
              ├── can_proceed = oldest is current
              └── cross-check             ── InvariantViolation
              │
              ▼
        GateDecision

Examples:
    >>> from datetime import UTC, datetime, timedelta
    >>> t100 = datetime(2025, 1, 9, tzinfo=UTC) + timedelta(milliseconds=100)
    >>> t150 = t100 + timedelta(milliseconds=50)
    >>> snapshot = DirectorySnapshot.of("job", [
    ...     JobInstance("C", t150), JobInstance("B", t100), JobInstance("A", t100),
    ... ])
    >>> evaluate_gate("A", snapshot).can_proceed
    True
    >>> [i.identity for i in evaluate_gate("C", snapshot).pending_instances]
    ['A', 'B']

Tags:
    mutual-exclusion, oldest-wins, eventual-consistency, runguard
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from runguard.core.errors import InvariantViolation, SelfNotFound
from runguard.core.logging import get_logger
from runguard.core.models import DirectorySnapshot, GateDecision, JobInstance

logger = get_logger(__name__)


def instance_sort_key(instance: JobInstance) -> tuple[datetime, str]:
    """Total order over instances: start time, then identity."""
    return (instance.start_time, instance.identity)


def sort_oldest_first(instances: Sequence[JobInstance]) -> list[JobInstance]:
    return sorted(instances, key=instance_sort_key)


def find_current_instance(current_identity: str, instances: Sequence[JobInstance]) -> JobInstance:
    """Return the caller's own entry.

    Raises:
        SelfNotFound: The caller is absent from its own directory query
    """
    for instance in instances:
        if instance.identity == current_identity:
            return instance
    raise SelfNotFound(current_identity)


def pending_instances(current: JobInstance, ordered: Sequence[JobInstance]) -> list[JobInstance]:
    """Instances ordered strictly ahead of ``current``.

    ``ordered`` must already be sorted with :func:`instance_sort_key`.
    """
    current_key = instance_sort_key(current)
    return [instance for instance in ordered if instance_sort_key(instance) < current_key]


def evaluate_gate(current_identity: str, snapshot: DirectorySnapshot) -> GateDecision:
    """Decide whether ``current_identity`` may proceed given ``snapshot``.

    Args:
        current_identity: Identity of the instance asking
        snapshot: Running instances of the same job

    Returns:
        GateDecision with the caller's entry and the instances blocking it

    Raises:
        SelfNotFound: The caller is not in the snapshot
        InvariantViolation: ``can_proceed`` disagrees with the pending list
    """
    ordered = sort_oldest_first(snapshot.running)

    try:
        current = find_current_instance(current_identity, ordered)
    except SelfNotFound as e:
        e.with_context(job_id=snapshot.job_id, snapshot=snapshot.to_dict())
        logger.error(
            "gate_self_not_found",
            job_id=snapshot.job_id,
            instance_id=current_identity,
            running=len(ordered),
            snapshot=snapshot.to_dict(),
        )
        raise

    pending = pending_instances(current, ordered)
    can_proceed = ordered[0].identity == current_identity

    if can_proceed != (len(pending) == 0):
        logger.error(
            "gate_invariant_violated",
            job_id=snapshot.job_id,
            can_proceed=can_proceed,
            current_instance=current.to_record(),
            pending_instances=[i.to_record() for i in pending],
            snapshot=snapshot.to_dict(),
        )
        raise InvariantViolation(
            "Pending instances must be empty exactly when the instance can proceed"
        ).with_context(
            job_id=snapshot.job_id,
            instance_id=current_identity,
            snapshot=snapshot.to_dict(),
        )

    decision = GateDecision(
        can_proceed=can_proceed,
        current_instance=current,
        pending_instances=tuple(pending),
    )

    logger.info(
        "gate_evaluated",
        job_id=snapshot.job_id,
        instance_id=current_identity,
        can_proceed=can_proceed,
        pending=len(pending),
    )
    return decision


__all__ = [
    "instance_sort_key",
    "sort_oldest_first",
    "find_current_instance",
    "pending_instances",
    "evaluate_gate",
]
