"""Core primitives: models, errors, logging and settings."""

from runguard.core.errors import (
    ConsistencyError,
    DirectoryUnavailable,
    EmptyDirectoryResponse,
    InvariantViolation,
    LaunchRejected,
    RunGuardError,
    SelfNotFound,
)
from runguard.core.models import (
    AdmissionRequest,
    DirectorySnapshot,
    GateDecision,
    InstanceStatus,
    JobInstance,
)

__all__ = [
    "AdmissionRequest",
    "ConsistencyError",
    "DirectorySnapshot",
    "DirectoryUnavailable",
    "EmptyDirectoryResponse",
    "GateDecision",
    "InstanceStatus",
    "InvariantViolation",
    "JobInstance",
    "LaunchRejected",
    "RunGuardError",
    "SelfNotFound",
]
