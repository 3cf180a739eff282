"""Tests for the queue-gated admitter."""

from __future__ import annotations

from unittest.mock import MagicMock, call

import pytest

from runguard.coordination.admitter import AdmissionOutcome, QueueGatedAdmitter
from runguard.core.errors import DirectoryUnavailable, LaunchFailed, LaunchRejected, QueueUnavailable
from runguard.core.models import AdmissionRequest, InstanceStatus
from runguard.execution.retry import ExponentialBackoff
from tests._support.builders import BASE_TIME, JOB_ID, at, instance, snapshot


@pytest.fixture
def admitter(queue, directory, launcher, no_sleep) -> QueueGatedAdmitter:
    return QueueGatedAdmitter(queue, directory, launcher, JOB_ID, sleep=no_sleep)


class TestRunCycle:
    def test_empty_queue_is_noop(self, admitter, directory, launcher):
        result = admitter.run_cycle()

        assert result.outcome is AdmissionOutcome.NO_REQUEST
        assert directory.queries == []
        assert launcher.launches == []

    def test_launches_when_nothing_running(self, admitter, queue, launcher):
        request = queue.send('{"date": "2025-01-09"}')

        result = admitter.run_cycle()

        assert result.outcome is AdmissionOutcome.LAUNCHED
        assert result.request == request
        assert result.instance_identity is not None
        assert launcher.launches == [(JOB_ID, '{"date": "2025-01-09"}', None)]
        assert len(queue) == 0
        assert queue.deleted == [request]

    def test_blocked_while_running(self, admitter, queue, directory, launcher):
        directory.add(JOB_ID, "exec-1", BASE_TIME)
        request = queue.send("{}")

        result = admitter.run_cycle()

        assert result.outcome is AdmissionOutcome.BLOCKED
        assert result.running_count == 1
        assert launcher.launches == []
        assert queue.receive_one() == request
        assert queue.deleted == []

    def test_finished_instances_do_not_block(self, admitter, queue, directory):
        directory.add(JOB_ID, "exec-1", BASE_TIME, status=InstanceStatus.SUCCEEDED)
        queue.send("{}")

        assert admitter.run_cycle().outcome is AdmissionOutcome.LAUNCHED

    def test_one_request_per_cycle(self, admitter, queue, directory, launcher):
        queue.send("first")
        queue.send("second")

        first = admitter.run_cycle()
        assert first.outcome is AdmissionOutcome.LAUNCHED
        # The launched instance is now running and blocks the next request.
        assert admitter.run_cycle().outcome is AdmissionOutcome.BLOCKED
        assert len(queue) == 1

        directory.complete(JOB_ID, first.instance_identity)
        assert admitter.run_cycle().outcome is AdmissionOutcome.LAUNCHED
        assert len(queue) == 0
        assert [body for _, body, _ in launcher.launches] == ["first", "second"]

    def test_launch_name_passed_through(self, admitter, queue, launcher):
        queue.send("{}", name="export-2025-01-09")
        result = admitter.run_cycle()
        assert launcher.launches == [(JOB_ID, "{}", "export-2025-01-09")]
        assert result.instance_identity == f"{JOB_ID}:export-2025-01-09"

    def test_launch_rejected_deletes_request(self, queue, directory, no_sleep):
        launcher = MagicMock()
        launcher.start.side_effect = LaunchRejected("export-2025-01-09")
        admitter = QueueGatedAdmitter(queue, directory, launcher, JOB_ID, sleep=no_sleep)
        request = queue.send("{}", name="export-2025-01-09")

        result = admitter.run_cycle()

        assert result.outcome is AdmissionOutcome.ALREADY_LAUNCHED
        assert queue.deleted == [request]
        assert len(queue) == 0

    def test_launch_failure_keeps_request(self, queue, directory, no_sleep):
        launcher = MagicMock()
        launcher.start.side_effect = LaunchFailed("throttled")
        admitter = QueueGatedAdmitter(queue, directory, launcher, JOB_ID, sleep=no_sleep)
        request = queue.send("{}")

        with pytest.raises(LaunchFailed):
            admitter.run_cycle()

        assert queue.deleted == []
        assert queue.receive_one() == request

    def test_delete_happens_after_launch(self):
        request = AdmissionRequest(body="{}", receipt_handle="rh-1", message_id="m-1")
        parent = MagicMock()
        parent.queue.receive_one.return_value = request
        parent.directory.list_running.return_value = snapshot()
        parent.launcher.start.return_value = "exec-new"

        admitter = QueueGatedAdmitter(parent.queue, parent.directory, parent.launcher, JOB_ID)
        result = admitter.run_cycle()

        assert result.instance_identity == "exec-new"
        assert parent.mock_calls == [
            call.queue.receive_one(),
            call.directory.list_running(JOB_ID),
            call.launcher.start(JOB_ID, "{}", None),
            call.queue.delete(request),
        ]

    def test_directory_failure_propagates_without_launch(self, admitter, queue, directory, launcher):
        queue.send("{}")
        directory.fail_next(1)

        with pytest.raises(DirectoryUnavailable):
            admitter.run_cycle()

        assert launcher.launches == []
        assert len(queue) == 1

    def test_directory_retry(self, queue, directory, launcher, no_sleep):
        admitter = QueueGatedAdmitter(
            queue,
            directory,
            launcher,
            JOB_ID,
            retry_strategy=ExponentialBackoff(max_attempts=3, base_delay=0.5),
            sleep=no_sleep,
        )
        queue.send("{}")
        directory.fail_next(2)

        result = admitter.run_cycle()

        assert result.outcome is AdmissionOutcome.LAUNCHED
        assert len(directory.queries) == 3
        assert no_sleep.delays == [0.5, 1.0]

    def test_delete_retried_after_launch(self, queue, directory, launcher, no_sleep):
        queue_mock = MagicMock(wraps=queue)
        queue_mock.delete.side_effect = [QueueUnavailable("throttled"), None]
        admitter = QueueGatedAdmitter(
            queue_mock,
            directory,
            launcher,
            JOB_ID,
            retry_strategy=ExponentialBackoff(max_attempts=3, base_delay=0.5),
            sleep=no_sleep,
        )
        queue.send("{}")

        result = admitter.run_cycle()

        assert result.outcome is AdmissionOutcome.LAUNCHED
        assert queue_mock.delete.call_count == 2
        assert len(launcher.launches) == 1
        assert no_sleep.delays == [0.5]

    def test_receive_retried(self, directory, launcher, no_sleep):
        queue = MagicMock()
        request = AdmissionRequest(body="{}", receipt_handle="rh-1", message_id="m-1")
        queue.receive_one.side_effect = [QueueUnavailable("throttled"), request]
        admitter = QueueGatedAdmitter(
            queue,
            directory,
            launcher,
            JOB_ID,
            retry_strategy=ExponentialBackoff(max_attempts=3, base_delay=0.5),
            sleep=no_sleep,
        )

        result = admitter.run_cycle()

        assert result.outcome is AdmissionOutcome.LAUNCHED
        assert queue.receive_one.call_count == 2
        queue.delete.assert_called_once_with(request)

    def test_delete_retries_exhausted(self, queue, directory, launcher, no_sleep):
        queue_mock = MagicMock(wraps=queue)
        queue_mock.delete.side_effect = QueueUnavailable("down")
        admitter = QueueGatedAdmitter(
            queue_mock,
            directory,
            launcher,
            JOB_ID,
            retry_strategy=ExponentialBackoff(max_attempts=2),
            sleep=no_sleep,
        )
        queue.send("{}")

        with pytest.raises(QueueUnavailable):
            admitter.run_cycle()

        assert queue_mock.delete.call_count == 2
        assert len(launcher.launches) == 1
        assert len(queue) == 1

    def test_launch_not_retried(self, queue, directory, no_sleep):
        launcher = MagicMock()
        launcher.start.side_effect = LaunchFailed("throttled")
        admitter = QueueGatedAdmitter(
            queue,
            directory,
            launcher,
            JOB_ID,
            retry_strategy=ExponentialBackoff(max_attempts=3),
            sleep=no_sleep,
        )
        queue.send("{}")

        with pytest.raises(LaunchFailed):
            admitter.run_cycle()
        launcher.start.assert_called_once()

    def test_result_to_dict(self, admitter, queue):
        queue.send("{}")
        record = admitter.run_cycle().to_dict()
        assert record["outcome"] == "launched"
        assert record["messageId"] == "msg-1"
        assert record["runningCount"] == 0


class TestNeverLaunchesWhileRunning:
    """Repeated cycles never start a second instance while one runs."""

    def test_many_cycles(self, admitter, queue, directory, launcher):
        for n in range(5):
            queue.send(f"req-{n}")

        outcomes = [admitter.run_cycle().outcome for _ in range(10)]

        assert outcomes.count(AdmissionOutcome.LAUNCHED) == 1
        running = directory.list_running(JOB_ID).running
        assert len(running) == 1
        assert len(queue) == 4

    def test_stale_old_instance_still_blocks(self, admitter, queue, directory):
        directory.add(JOB_ID, "exec-old", at(-86_400_000))
        queue.send("{}")
        assert admitter.run_cycle().outcome is AdmissionOutcome.BLOCKED

    def test_single_instance_snapshot_blocks(self, queue, launcher, no_sleep):
        directory = MagicMock()
        directory.list_running.return_value = snapshot(instance("exec-1", 0))
        admitter = QueueGatedAdmitter(queue, directory, launcher, JOB_ID, sleep=no_sleep)
        queue.send("{}")

        assert admitter.run_cycle().outcome is AdmissionOutcome.BLOCKED
        assert launcher.launches == []
