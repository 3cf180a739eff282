"""In-process adapters for tests, dry runs and local demos.

``InMemoryDirectory``, ``InMemoryAdmissionQueue`` and ``InMemoryLauncher``
share state the way the real services do: a launched instance shows up in
the directory as RUNNING until it is completed.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable
from datetime import datetime, timedelta

from runguard.core.errors import (
    DirectoryUnavailable,
    EmptyDirectoryResponse,
    LaunchRejected,
)
from runguard.core.models import (
    AdmissionRequest,
    DirectorySnapshot,
    InstanceStatus,
    JobInstance,
    utcnow,
)


class InMemoryDirectory:
    """Directory backed by a dict of job id to instances.

    Failure injection:
        ``fail_next(n)`` makes the next ``n`` queries raise
        ``DirectoryUnavailable``; ``omit_results`` makes queries behave as if
        the upstream response had no result list.
    """

    def __init__(self) -> None:
        self._instances: dict[str, dict[str, JobInstance]] = {}
        self._failures_pending = 0
        self.omit_results = False
        self.queries: list[str] = []

    def add(
        self,
        job_id: str,
        identity: str,
        start_time: datetime,
        status: InstanceStatus = InstanceStatus.RUNNING,
    ) -> JobInstance:
        instance = JobInstance(identity=identity, start_time=start_time, status=status)
        self._instances.setdefault(job_id, {})[identity] = instance
        return instance

    def complete(self, job_id: str, identity: str, status: InstanceStatus = InstanceStatus.SUCCEEDED) -> None:
        current = self._instances[job_id][identity]
        self._instances[job_id][identity] = JobInstance(current.identity, current.start_time, status)

    def fail_next(self, count: int = 1) -> None:
        self._failures_pending = count

    def list_running(self, job_id: str) -> DirectorySnapshot:
        self.queries.append(job_id)

        if self._failures_pending > 0:
            self._failures_pending -= 1
            raise DirectoryUnavailable(f"Injected directory failure for {job_id}").with_context(job_id=job_id)

        if self.omit_results:
            raise EmptyDirectoryResponse(job_id)

        # Most recent first, like ListExecutions.
        running = sorted(
            (i for i in self._instances.get(job_id, {}).values() if i.is_running),
            key=lambda i: i.start_time,
            reverse=True,
        )
        return DirectorySnapshot(job_id=job_id, instances=tuple(running))


class InMemoryAdmissionQueue:
    """FIFO admission queue. Messages stay queued until deleted."""

    def __init__(self) -> None:
        self._messages: list[AdmissionRequest] = []
        self._handles = itertools.count(1)
        self.deleted: list[AdmissionRequest] = []

    def send(self, body: str | None = None, name: str | None = None) -> AdmissionRequest:
        handle = next(self._handles)
        request = AdmissionRequest(
            body=body,
            receipt_handle=f"handle-{handle}",
            name=name,
            message_id=f"msg-{handle}",
        )
        self._messages.append(request)
        return request

    def receive_one(self) -> AdmissionRequest | None:
        return self._messages[0] if self._messages else None

    def delete(self, request: AdmissionRequest) -> None:
        self._messages = [m for m in self._messages if m.receipt_handle != request.receipt_handle]
        self.deleted.append(request)

    def __len__(self) -> int:
        return len(self._messages)


class InMemoryLauncher:
    """Launcher that registers started instances in an ``InMemoryDirectory``.

    Names are remembered for the lifetime of the launcher, mirroring how a
    Step Functions execution name cannot be reused.
    """

    def __init__(
        self,
        directory: InMemoryDirectory,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.directory = directory
        self.clock = clock
        self._names: set[tuple[str, str]] = set()
        self._ids = itertools.count(1)
        self.launches: list[tuple[str, str | None, str | None]] = []

    def start(self, job_id: str, input: str | None = None, name: str | None = None) -> str:
        if name is not None and (job_id, name) in self._names:
            raise LaunchRejected(name).with_context(job_id=job_id)

        identity = f"{job_id}:{name or f'instance-{next(self._ids)}'}"
        self.directory.add(job_id, identity, self.clock())
        if name is not None:
            self._names.add((job_id, name))
        self.launches.append((job_id, input, name))
        return identity


def ticking_clock(start: datetime, step: timedelta = timedelta(milliseconds=1)) -> Callable[[], datetime]:
    """Clock that advances by ``step`` on every call."""
    counter = itertools.count()

    def _now() -> datetime:
        return start + step * next(counter)

    return _now


__all__ = [
    "InMemoryDirectory",
    "InMemoryAdmissionQueue",
    "InMemoryLauncher",
    "ticking_clock",
]
