"""boto3 adapters: Step Functions as directory and launcher, SQS as queue.

Works against AWS and against emulators such as LocalStack via
``endpoint_url``. Every SDK failure is translated into the runguard error
hierarchy with the botocore exception chained as the cause.
"""

from __future__ import annotations

from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from runguard.core.errors import (
    DirectoryUnavailable,
    EmptyDirectoryResponse,
    LaunchFailed,
    LaunchRejected,
    QueueUnavailable,
)
from runguard.core.logging import get_logger
from runguard.core.models import (
    AdmissionRequest,
    DirectorySnapshot,
    InstanceStatus,
    JobInstance,
    utcnow,
)
from runguard.core.settings import DEFAULT_MAX_RESULTS, RunGuardSettings

logger = get_logger(__name__)

# Message attribute carrying the optional launch name.
NAME_ATTRIBUTE = "Name"


def _error_code(error: Exception) -> str | None:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code")
    return None


def build_client(
    service_name: str,
    region: str | None = None,
    endpoint_url: str | None = None,
) -> Any:
    """Create a boto3 client that sends each request exactly once.

    Retries are owned by :mod:`runguard.execution.retry` so that backoff is
    visible in logs and bounded by configuration.
    """
    client_kwargs: dict[str, Any] = {
        "service_name": service_name,
        "config": Config(retries={"total_max_attempts": 1, "mode": "standard"}),
    }

    if region:
        client_kwargs["region_name"] = region

    if endpoint_url:
        client_kwargs["endpoint_url"] = endpoint_url

    return boto3.client(**client_kwargs)


class StepFunctionsDirectory:
    """Lists running executions of a state machine via ``ListExecutions``.

    ``ListExecutions`` is eventually consistent: results are best effort and
    may not reflect very recent starts. Results arrive most recent first;
    the gate re-sorts them.
    """

    def __init__(self, client: Any, max_results: int = DEFAULT_MAX_RESULTS):
        self.client = client
        self.max_results = max_results

    @classmethod
    def from_settings(cls, settings: RunGuardSettings) -> StepFunctionsDirectory:
        client = build_client("stepfunctions", settings.region, settings.endpoint_url)
        return cls(client, max_results=settings.max_results)

    def list_running(self, job_id: str) -> DirectorySnapshot:
        try:
            response = self.client.list_executions(
                stateMachineArn=job_id,
                statusFilter=InstanceStatus.RUNNING.value,
                maxResults=self.max_results,
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning("directory_query_failed", job_id=job_id, error=str(e))
            raise DirectoryUnavailable(
                f"ListExecutions failed for {job_id}", cause=e
            ).with_context(job_id=job_id, error_code=_error_code(e)) from e

        executions = response.get("executions")
        if executions is None:
            raise EmptyDirectoryResponse(job_id)

        instances = [
            JobInstance(
                identity=item["executionArn"],
                start_time=item["startDate"],
                status=InstanceStatus(item.get("status", InstanceStatus.RUNNING.value)),
            )
            for item in executions
        ]

        if len(instances) >= self.max_results:
            logger.warning(
                "directory_result_limit_reached",
                job_id=job_id,
                max_results=self.max_results,
            )

        logger.debug("directory_queried", job_id=job_id, running=len(instances))
        return DirectorySnapshot(job_id=job_id, instances=tuple(instances), queried_at=utcnow())


class StepFunctionsLauncher:
    """Starts executions via ``StartExecution``.

    The execution name doubles as an idempotency key: Step Functions rejects
    a second start with the same name, which surfaces as ``LaunchRejected``.
    """

    def __init__(self, client: Any):
        self.client = client

    @classmethod
    def from_settings(cls, settings: RunGuardSettings) -> StepFunctionsLauncher:
        return cls(build_client("stepfunctions", settings.region, settings.endpoint_url))

    def start(self, job_id: str, input: str | None = None, name: str | None = None) -> str:
        kwargs: dict[str, Any] = {"stateMachineArn": job_id}
        if input is not None:
            kwargs["input"] = input
        if name:
            kwargs["name"] = name

        try:
            response = self.client.start_execution(**kwargs)
        except ClientError as e:
            if _error_code(e) == "ExecutionAlreadyExists":
                raise LaunchRejected(name, cause=e).with_context(job_id=job_id) from e
            raise LaunchFailed(f"StartExecution failed for {job_id}", cause=e).with_context(
                job_id=job_id, error_code=_error_code(e)
            ) from e
        except BotoCoreError as e:
            raise LaunchFailed(f"StartExecution failed for {job_id}", cause=e).with_context(
                job_id=job_id
            ) from e

        execution_arn = response["executionArn"]
        logger.info("instance_started", job_id=job_id, instance_id=execution_arn, name=name)
        return execution_arn


class SqsAdmissionQueue:
    """Admission queue backed by SQS ``ReceiveMessage``/``DeleteMessage``."""

    def __init__(self, client: Any, queue_url: str, wait_time_seconds: int = 0):
        self.client = client
        self.queue_url = queue_url
        self.wait_time_seconds = wait_time_seconds

    @classmethod
    def from_settings(cls, settings: RunGuardSettings, queue_url: str) -> SqsAdmissionQueue:
        return cls(build_client("sqs", settings.region, settings.endpoint_url), queue_url)

    def receive_one(self) -> AdmissionRequest | None:
        try:
            response = self.client.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=1,
                WaitTimeSeconds=self.wait_time_seconds,
                AttributeNames=["All"],
                MessageAttributeNames=[NAME_ATTRIBUTE],
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueUnavailable(f"ReceiveMessage failed for {self.queue_url}", cause=e).with_context(
                queue_url=self.queue_url
            ) from e

        messages = response.get("Messages") or []
        if len(messages) != 1:
            return None

        message = messages[0]
        attributes = message.get("Attributes") or {}
        message_attributes = message.get("MessageAttributes") or {}

        name = message_attributes.get(NAME_ATTRIBUTE, {}).get("StringValue") or attributes.get(
            NAME_ATTRIBUTE
        )

        return AdmissionRequest(
            body=message.get("Body"),
            receipt_handle=message["ReceiptHandle"],
            name=name or None,
            message_id=message.get("MessageId"),
            attributes=dict(attributes),
        )

    def delete(self, request: AdmissionRequest) -> None:
        try:
            self.client.delete_message(
                QueueUrl=self.queue_url,
                ReceiptHandle=request.receipt_handle,
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueUnavailable(f"DeleteMessage failed for {self.queue_url}", cause=e).with_context(
                queue_url=self.queue_url, message_id=request.message_id
            ) from e

        logger.debug("request_deleted", queue_url=self.queue_url, message_id=request.message_id)


__all__ = [
    "StepFunctionsDirectory",
    "StepFunctionsLauncher",
    "SqsAdmissionQueue",
    "build_client",
]
