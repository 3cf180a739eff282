"""
Structured error types for runguard.

Every failure the coordination core can raise is a ``RunGuardError`` carrying
a category, an explicit retry flag, structured context and an optional
chained cause. The retry layer inspects ``retryable`` to decide whether a
directory or queue call may be attempted again; everything else propagates.

Manifesto:
    - **Typed Error Hierarchy:** Transport failures, consistency violations
      and benign races are different types, never a generic ``Exception``
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry job/instance metadata for logging
    - **Fail Loudly:** Consistency violations are never retryable

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                      RunGuardError                            │
        │       (category, retryable, context, cause)                   │
        ├──────────────────────────────────────────────────────────────┤
        │  TransientError          ConsistencyError      ConfigError   │
        │  (retryable=True)        (CONSISTENCY)         (CONFIG)      │
        │       │                       │                     │        │
        │  DirectoryUnavailable    EmptyDirectoryResponse  MissingConfig│
        │  QueueUnavailable        SelfNotFound                         │
        │  LaunchFailed            InvariantViolation                   │
        │                                                               │
        │  LaunchRejected (LAUNCH)      GateTimeout (ORCHESTRATION)     │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = DirectoryUnavailable("ListExecutions throttled")
    >>> error.retryable
    True
    >>> error.with_context(job_id="arn:aws:states:...:stateMachine:nightly")
    DirectoryUnavailable('ListExecutions throttled', category=DIRECTORY)

    >>> SelfNotFound("exec-1").retryable
    False

Guardrails:
    ❌ DON'T: Retry a ConsistencyError, the snapshot cannot be trusted
    ✅ DO: Let it abort the decision cycle and surface to the workflow

    ❌ DON'T: Treat LaunchRejected as a failure
    ✅ DO: Treat it as another admitter having won the race

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context, runguard
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for classification and log routing."""

    # Infrastructure (usually transient)
    DIRECTORY = "DIRECTORY"       # Execution listing API
    QUEUE = "QUEUE"               # Admission queue transport
    LAUNCH = "LAUNCH"             # Starting a new instance

    # Coordination
    CONSISTENCY = "CONSISTENCY"   # Snapshot contradicts its own assumptions
    ORCHESTRATION = "ORCHESTRATION"

    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        job_id: Logical job (state machine) the error relates to
        instance_id: Instance (execution) identity, if any
        queue_url: Admission queue, if any
        metadata: Additional key-value pairs
    """

    job_id: str | None = None
    instance_id: str | None = None
    queue_url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["job_id", "instance_id", "queue_url"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class RunGuardError(Exception):
    """
    Base exception for all runguard errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    raising sites only pass a message and, where relevant, a cause.

    Examples:
        >>> error = RunGuardError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["retryable"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> RunGuardError:
        """
        Add context to this error (fluent API).

        Usage:
            raise DirectoryUnavailable("timeout").with_context(job_id=job_id)
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }

        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict

        if self.cause is not None:
            result["cause"] = str(self.cause)

        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (Retryable)
# =============================================================================


class TransientError(RunGuardError):
    """Temporary failure that may succeed on retry."""

    default_retryable = True


class DirectoryUnavailable(TransientError):
    """The execution directory could not be queried."""

    default_category = ErrorCategory.DIRECTORY


class QueueUnavailable(TransientError):
    """The admission queue could not be reached."""

    default_category = ErrorCategory.QUEUE


class LaunchFailed(TransientError):
    """Starting a new instance failed for a reason other than a name clash."""

    default_category = ErrorCategory.LAUNCH


# =============================================================================
# CONSISTENCY ERRORS (Fatal)
# =============================================================================


class ConsistencyError(RunGuardError):
    """
    A directory snapshot violated the assumptions the decision relies on.

    Never retryable. Guessing a safe default here risks a double-run, so the
    decision cycle is aborted instead.
    """

    default_category = ErrorCategory.CONSISTENCY
    default_retryable = False


class EmptyDirectoryResponse(ConsistencyError):
    """The directory call succeeded but omitted the result list entirely."""

    def __init__(self, job_id: str, **kwargs: Any):
        self.job_id = job_id
        super().__init__(f"Directory response for {job_id} did not include a result list", **kwargs)
        self.context.job_id = job_id


class SelfNotFound(ConsistencyError):
    """The calling instance is missing from its own directory query."""

    def __init__(self, instance_id: str, **kwargs: Any):
        self.instance_id = instance_id
        super().__init__(
            f"Current instance ({instance_id}) was not found in the running instances",
            **kwargs,
        )
        self.context.instance_id = instance_id


class InvariantViolation(ConsistencyError):
    """``can_proceed`` disagreed with the emptiness of the pending list."""


# =============================================================================
# LAUNCH / ORCHESTRATION / CONFIG
# =============================================================================


class LaunchRejected(RunGuardError):
    """The launch name is already associated with an instance.

    Benign: another admitter already launched this request.
    """

    default_category = ErrorCategory.LAUNCH
    default_retryable = False

    def __init__(self, name: str | None, message: str | None = None, **kwargs: Any):
        self.name = name
        super().__init__(message or f"Launch rejected, name already in use: {name}", **kwargs)


class GateTimeout(RunGuardError):
    """The control loop exhausted an explicit cycle bound without proceeding."""

    default_category = ErrorCategory.ORCHESTRATION

    def __init__(self, instance_id: str, cycles: int, **kwargs: Any):
        self.instance_id = instance_id
        self.cycles = cycles
        super().__init__(
            f"Instance {instance_id} could not proceed after {cycles} polling cycles",
            **kwargs,
        )


class ConfigError(RunGuardError):
    """Configuration error. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


def is_retryable(error: BaseException) -> bool:
    """Check whether an exception may be retried by the fetch layer."""
    return isinstance(error, RunGuardError) and error.retryable


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "RunGuardError",
    "TransientError",
    "DirectoryUnavailable",
    "QueueUnavailable",
    "LaunchFailed",
    "ConsistencyError",
    "EmptyDirectoryResponse",
    "SelfNotFound",
    "InvariantViolation",
    "LaunchRejected",
    "GateTimeout",
    "ConfigError",
    "MissingConfigError",
    "is_retryable",
]
