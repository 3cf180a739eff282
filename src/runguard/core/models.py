"""Coordination domain models.

Defines the read-only data the decision logic works with:
- JobInstance: one running attempt of the guarded job
- DirectorySnapshot: the instances returned by a single directory query
- AdmissionRequest: one message taken from the admission queue
- GateDecision: the auditable proceed/wait answer for one instance

All models are frozen. The directory service is authoritative; the core only
ever holds snapshots.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from runguard.core.errors import InvariantViolation


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def to_millis(value: datetime) -> datetime:
    """Truncate a datetime to the directory's millisecond resolution."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class InstanceStatus(str, Enum):
    """Status reported by the directory. Only RUNNING is consumed."""

    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"
    ABORTED = "ABORTED"
    PENDING_REDRIVE = "PENDING_REDRIVE"


@dataclass(frozen=True)
class JobInstance:
    """One running attempt of the guarded job.

    Attributes:
        identity: Opaque identity, unique per attempt (execution ARN)
        start_time: Start timestamp, millisecond resolution
        status: Directory-reported status
    """

    identity: str
    start_time: datetime
    status: InstanceStatus = InstanceStatus.RUNNING

    def __post_init__(self) -> None:
        object.__setattr__(self, "start_time", to_millis(self.start_time))

    @property
    def is_running(self) -> bool:
        return self.status == InstanceStatus.RUNNING

    def to_record(self) -> dict[str, str]:
        """Audit record used in serialized gate decisions."""
        return {"identity": self.identity, "startTime": format_timestamp(self.start_time)}


@dataclass(frozen=True)
class DirectorySnapshot:
    """Instances returned atomically by one directory query.

    Identities are distinct within a snapshot; start times may collide.
    Lifetime is one decision cycle, the snapshot is never cached.
    """

    job_id: str
    instances: tuple[JobInstance, ...] = ()
    queried_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        object.__setattr__(self, "instances", tuple(self.instances))
        seen: set[str] = set()
        for instance in self.instances:
            if instance.identity in seen:
                raise InvariantViolation(
                    f"Directory snapshot for {self.job_id} lists {instance.identity} more than once"
                ).with_context(job_id=self.job_id, instance_id=instance.identity)
            seen.add(instance.identity)

    @classmethod
    def of(cls, job_id: str, instances: Iterable[JobInstance]) -> DirectorySnapshot:
        return cls(job_id=job_id, instances=tuple(instances))

    @property
    def running(self) -> tuple[JobInstance, ...]:
        return tuple(i for i in self.instances if i.is_running)

    def __len__(self) -> int:
        return len(self.instances)

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.job_id,
            "queriedAt": format_timestamp(self.queried_at),
            "instances": [i.to_record() for i in self.instances],
        }


@dataclass(frozen=True)
class AdmissionRequest:
    """A request to start a new instance, taken from the admission queue.

    ``receipt_handle`` acknowledges consumption; ``name`` is the optional
    launch name used as an idempotency key.
    """

    body: str | None
    receipt_handle: str
    name: str | None = None
    message_id: str | None = None
    attributes: Mapping[str, str] = field(default_factory=dict, hash=False)


@dataclass(frozen=True)
class GateDecision:
    """Proceed/wait answer for one instance, with its audit trail.

    ``can_proceed`` is true iff ``pending_instances`` is empty. Construction
    checks this and raises :class:`InvariantViolation` otherwise.
    """

    can_proceed: bool
    current_instance: JobInstance
    pending_instances: tuple[JobInstance, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "pending_instances", tuple(self.pending_instances))
        if self.can_proceed != (len(self.pending_instances) == 0):
            raise InvariantViolation(
                "can_proceed must be true exactly when there are no pending instances"
            ).with_context(
                instance_id=self.current_instance.identity,
                can_proceed=self.can_proceed,
                pending=[i.identity for i in self.pending_instances],
            )

    def to_dict(self) -> dict[str, Any]:
        """Flat record consumed by the enclosing workflow's branching logic."""
        return {
            "canProceed": self.can_proceed,
            "currentInstance": self.current_instance.to_record(),
            "pendingInstances": [i.to_record() for i in self.pending_instances],
        }


__all__ = [
    "InstanceStatus",
    "JobInstance",
    "DirectorySnapshot",
    "AdmissionRequest",
    "GateDecision",
    "utcnow",
    "to_millis",
    "format_timestamp",
]
