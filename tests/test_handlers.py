"""Tests for the serverless entrypoints."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from runguard.coordination.admitter import QueueGatedAdmitter
from runguard.core.errors import EmptyDirectoryResponse, MissingConfigError, SelfNotFound
from runguard.core.settings import RunGuardSettings
from runguard.execution.retry import ExponentialBackoff
from runguard.handlers import build_admitter, can_proceed_handler, queue_poller_handler
from tests._support.builders import JOB_ID, at

QUEUE_URL = "https://sqs.us-east-1.amazonaws.com/123456789012/nightly-export-requests"


class TestCanProceedHandler:
    def test_returns_decision_record(self, directory):
        directory.add(JOB_ID, "A", at(0))
        directory.add(JOB_ID, "B", at(100))

        record = can_proceed_handler({"stateMachineId": JOB_ID, "executionId": "B"}, directory=directory)

        assert record["canProceed"] is False
        assert record["currentInstance"]["identity"] == "B"
        assert record["currentInstance"]["startTime"] == "2025-01-09T12:00:00.100Z"
        assert [p["identity"] for p in record["pendingInstances"]] == ["A"]

    def test_single_fetch(self, directory):
        directory.add(JOB_ID, "A", at(0))
        can_proceed_handler({"stateMachineId": JOB_ID, "executionId": "A"}, directory=directory)
        assert directory.queries == [JOB_ID]

    @pytest.mark.parametrize("event", [{}, {"stateMachineId": JOB_ID}, {"executionId": "A"}])
    def test_missing_event_keys(self, event, directory):
        with pytest.raises(MissingConfigError):
            can_proceed_handler(event, directory=directory)
        assert directory.queries == []

    def test_self_not_found_propagates(self, directory):
        with pytest.raises(SelfNotFound):
            can_proceed_handler({"stateMachineId": JOB_ID, "executionId": "A"}, directory=directory)

    def test_empty_response_propagates(self, directory):
        directory.omit_results = True
        with pytest.raises(EmptyDirectoryResponse):
            can_proceed_handler({"stateMachineId": JOB_ID, "executionId": "A"}, directory=directory)

    @patch("runguard.handlers.StepFunctionsDirectory.from_settings")
    def test_default_directory_from_settings(self, mock_from_settings, directory):
        directory.add(JOB_ID, "A", at(0))
        mock_from_settings.return_value = directory

        record = can_proceed_handler({"stateMachineId": JOB_ID, "executionId": "A"})

        assert record["canProceed"] is True
        mock_from_settings.assert_called_once()


class TestBuildAdmitter:
    def test_requires_queue_url(self):
        with pytest.raises(MissingConfigError) as exc_info:
            build_admitter(RunGuardSettings(job_id=JOB_ID))
        assert exc_info.value.key == "QUEUE_URL"

    def test_requires_state_machine_arn(self):
        with pytest.raises(MissingConfigError) as exc_info:
            build_admitter(RunGuardSettings(queue_url=QUEUE_URL))
        assert exc_info.value.key == "STATE_MACHINE_ARN"

    def test_reads_environment(self, monkeypatch, queue, directory, launcher):
        monkeypatch.setenv("QUEUE_URL", QUEUE_URL)
        monkeypatch.setenv("STATE_MACHINE_ARN", JOB_ID)

        admitter = build_admitter(RunGuardSettings(), queue=queue, directory=directory, launcher=launcher)

        assert isinstance(admitter, QueueGatedAdmitter)
        assert admitter.job_id == JOB_ID
        assert admitter.queue is queue
        assert isinstance(admitter.retry_strategy, ExponentialBackoff)

    @patch("runguard.handlers.StepFunctionsLauncher.from_settings")
    @patch("runguard.handlers.StepFunctionsDirectory.from_settings")
    @patch("runguard.handlers.SqsAdmissionQueue.from_settings")
    def test_builds_aws_adapters(self, mock_queue, mock_directory, mock_launcher):
        settings = RunGuardSettings(job_id=JOB_ID, queue_url=QUEUE_URL)

        admitter = build_admitter(settings)

        mock_queue.assert_called_once_with(settings, QUEUE_URL)
        assert admitter.directory is mock_directory.return_value
        assert admitter.launcher is mock_launcher.return_value


class TestQueuePollerHandler:
    def test_runs_one_cycle(self, queue, directory, launcher):
        queue.send("{}")
        admitter = QueueGatedAdmitter(queue, directory, launcher, JOB_ID)

        record = queue_poller_handler({"source": "aws.events"}, None, admitter=admitter)

        assert record["outcome"] == "launched"
        assert len(queue) == 0

    def test_builds_admitter_from_settings(self):
        settings = RunGuardSettings(job_id=JOB_ID, queue_url=QUEUE_URL)
        admitter = MagicMock()
        admitter.job_id = JOB_ID
        admitter.run_cycle.return_value.to_dict.return_value = {"outcome": "no_request"}

        with patch("runguard.handlers.build_admitter", return_value=admitter) as mock_build:
            record = queue_poller_handler(settings=settings)

        mock_build.assert_called_once_with(settings)
        assert record == {"outcome": "no_request"}

    def test_missing_configuration(self):
        with pytest.raises(MissingConfigError):
            queue_poller_handler({}, None, settings=RunGuardSettings())
