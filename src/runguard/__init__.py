"""
runguard - at-most-one-running guards for long-running jobs.

Two strategies over an eventually-consistent execution directory:

- :class:`~runguard.coordination.admitter.QueueGatedAdmitter` admits queued
  requests only while no instance is running.
- :func:`~runguard.coordination.gate.evaluate_gate` lets every running
  instance decide for itself whether it is the oldest, driven by
  :class:`~runguard.execution.driver.ControlLoopDriver`.
"""

__version__ = "0.1.0"

from runguard.coordination.admitter import AdmissionOutcome, AdmissionResult, QueueGatedAdmitter
from runguard.coordination.gate import evaluate_gate, instance_sort_key
from runguard.core.errors import (
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
from runguard.execution.driver import AdmissionLoop, ControlLoopDriver, DriverConfig, GateState

__all__ = [
    "AdmissionLoop",
    "AdmissionOutcome",
    "AdmissionRequest",
    "AdmissionResult",
    "ControlLoopDriver",
    "DirectorySnapshot",
    "DirectoryUnavailable",
    "DriverConfig",
    "EmptyDirectoryResponse",
    "GateDecision",
    "GateState",
    "InstanceStatus",
    "InvariantViolation",
    "JobInstance",
    "LaunchRejected",
    "QueueGatedAdmitter",
    "RunGuardError",
    "SelfNotFound",
    "evaluate_gate",
    "instance_sort_key",
]
