"""Adapters for the directory, queue and launcher boundaries."""

from runguard.adapters.memory import InMemoryAdmissionQueue, InMemoryDirectory, InMemoryLauncher
from runguard.adapters.protocols import AdmissionQueue, ExecutionDirectory, JobLauncher

__all__ = [
    "AdmissionQueue",
    "ExecutionDirectory",
    "JobLauncher",
    "InMemoryAdmissionQueue",
    "InMemoryDirectory",
    "InMemoryLauncher",
]
