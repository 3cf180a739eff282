"""Tests for runguard.core.models."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from runguard.core.errors import InvariantViolation
from runguard.core.models import (
    AdmissionRequest,
    DirectorySnapshot,
    GateDecision,
    InstanceStatus,
    JobInstance,
    format_timestamp,
    to_millis,
)
from tests._support.builders import JOB_ID, at, instance, snapshot


class TestJobInstance:
    def test_start_time_truncated_to_millis(self):
        raw = datetime(2025, 1, 9, 12, 0, 0, 123456, tzinfo=timezone.utc)
        assert JobInstance("a", raw).start_time.microsecond == 123000

    def test_naive_start_time_assumed_utc(self):
        naive = datetime(2025, 1, 9, 12, 0, 0)
        assert to_millis(naive).tzinfo is not None

    def test_defaults_to_running(self):
        assert instance("a", 0).is_running
        assert not JobInstance("a", at(0), InstanceStatus.SUCCEEDED).is_running

    def test_to_record(self):
        assert instance("a", 5).to_record() == {
            "identity": "a",
            "startTime": "2025-01-09T12:00:00.005Z",
        }

    def test_is_frozen(self):
        with pytest.raises(AttributeError):
            instance("a", 0).identity = "b"


class TestDirectorySnapshot:
    def test_preserves_directory_order(self):
        snap = snapshot(instance("b", 10), instance("a", 0))
        assert [i.identity for i in snap.instances] == ["b", "a"]

    def test_equal_start_times_allowed(self):
        snap = snapshot(instance("a", 100), instance("b", 100))
        assert len(snap) == 2

    def test_duplicate_identity_rejected(self):
        with pytest.raises(InvariantViolation):
            snapshot(instance("a", 100), instance("a", 200))

    def test_empty_snapshot_is_valid(self):
        snap = DirectorySnapshot(job_id=JOB_ID)
        assert snap.instances == ()
        assert snap.running == ()

    def test_running_filters_status(self):
        snap = snapshot(instance("a", 0), JobInstance("b", at(1), InstanceStatus.ABORTED))
        assert [i.identity for i in snap.running] == ["a"]

    def test_to_dict(self):
        d = snapshot(instance("a", 0)).to_dict()
        assert d["jobId"] == JOB_ID
        assert d["instances"] == [{"identity": "a", "startTime": format_timestamp(at(0))}]


class TestGateDecision:
    def test_proceed_with_no_pending(self):
        decision = GateDecision(True, instance("a", 0))
        assert decision.pending_instances == ()

    def test_proceed_with_pending_violates_invariant(self):
        with pytest.raises(InvariantViolation):
            GateDecision(True, instance("b", 0), (instance("a", 0),))

    def test_wait_without_pending_violates_invariant(self):
        with pytest.raises(InvariantViolation):
            GateDecision(False, instance("a", 0), ())

    def test_to_dict_is_flat_record(self):
        decision = GateDecision(False, instance("b", 100), [instance("a", 100)])
        assert decision.to_dict() == {
            "canProceed": False,
            "currentInstance": {"identity": "b", "startTime": "2025-01-09T12:00:00.100Z"},
            "pendingInstances": [{"identity": "a", "startTime": "2025-01-09T12:00:00.100Z"}],
        }


class TestAdmissionRequest:
    def test_optional_fields(self):
        request = AdmissionRequest(body='{"date": "2025-01-09"}', receipt_handle="rh-1")
        assert request.name is None
        assert request.attributes == {}
