"""
Protocol definitions for the three external boundaries.

The decision logic never talks to a cloud SDK directly. It depends only on
these structural contracts, which the boto3 adapters in
:mod:`runguard.adapters.aws` and the deterministic adapters in
:mod:`runguard.adapters.memory` both satisfy.

Features:
    - **ExecutionDirectory:** List running instances of a job
    - **AdmissionQueue:** Receive at most one request, delete by handle
    - **JobLauncher:** Start an instance with an optional idempotency name

Guardrails:
    ❌ DON'T: Cache directory results between decision cycles
    ✅ DO: Query the directory fresh for every decision

Tags:
    protocol, directory, queue, launcher, runguard, contracts
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from runguard.core.models import AdmissionRequest, DirectorySnapshot


@runtime_checkable
class ExecutionDirectory(Protocol):
    """Eventually-consistent listing of running instances.

    ``list_running`` raises ``DirectoryUnavailable`` on transport failure and
    ``EmptyDirectoryResponse`` when the result list is structurally absent.
    The returned snapshot may be stale.
    """

    def list_running(self, job_id: str) -> DirectorySnapshot: ...


@runtime_checkable
class AdmissionQueue(Protocol):
    """At-least-once request queue for the admission strategy."""

    def receive_one(self) -> AdmissionRequest | None: ...

    def delete(self, request: AdmissionRequest) -> None: ...


@runtime_checkable
class JobLauncher(Protocol):
    """Starts new instances of a job.

    ``start`` raises ``LaunchRejected`` if ``name`` is already in use.
    """

    def start(self, job_id: str, input: str | None = None, name: str | None = None) -> str: ...


__all__ = ["ExecutionDirectory", "AdmissionQueue", "JobLauncher"]
