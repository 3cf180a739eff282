"""Deterministic builders for instances and snapshots."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from runguard.core.models import DirectorySnapshot, JobInstance

JOB_ID = "arn:aws:states:us-east-1:123456789012:stateMachine:nightly-export"
BASE_TIME = datetime(2025, 1, 9, 12, 0, 0, tzinfo=UTC)


def at(ms: int) -> datetime:
    """Timestamp ``ms`` milliseconds after the fixed base time."""
    return BASE_TIME + timedelta(milliseconds=ms)


def instance(identity: str, ms: int) -> JobInstance:
    return JobInstance(identity=identity, start_time=at(ms))


def snapshot(*instances: JobInstance, job_id: str = JOB_ID) -> DirectorySnapshot:
    return DirectorySnapshot.of(job_id, instances)
