"""Decision logic for both mutual-exclusion strategies."""

from runguard.coordination.admitter import AdmissionOutcome, AdmissionResult, QueueGatedAdmitter
from runguard.coordination.gate import evaluate_gate, instance_sort_key

__all__ = [
    "AdmissionOutcome",
    "AdmissionResult",
    "QueueGatedAdmitter",
    "evaluate_gate",
    "instance_sort_key",
]
