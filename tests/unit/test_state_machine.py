"""Tests for the kanban status state machine and its attachment gate."""

import pytest

from jobsync.backends.base import ApiResponse
from jobsync.core.schemas import Identity, JobRecord, JobStatus, parse_records
from jobsync.sync.artifacts import ArtifactIndex
from jobsync.sync.auth_gate import AuthRefreshGate
from jobsync.sync.cache import SessionCache
from jobsync.sync.errors import JobsApiError
from jobsync.sync.state_machine import StatusStateMachine, TransitionOutcome

from conftest import (
    EXPIRED,
    FakeBackend,
    FakeCredentials,
    RecordingSurface,
    updated_jobs,
    wire_job,
)

CODE = "2468"


@pytest.fixture
def machine(
    cache: SessionCache,
    gate: AuthRefreshGate,
    backend: FakeBackend,
    artifacts: ArtifactIndex,
    surface: RecordingSurface,
) -> StatusStateMachine:
    return StatusStateMachine(cache, gate, backend, artifacts, surface=surface, deletion_code=CODE)


def _seed(cache: SessionCache, identity: Identity, *jobs: dict) -> None:
    cache.set(identity.email, parse_records(list(jobs)))


def _status(cache: SessionCache, identity: Identity, job_id: str) -> JobStatus:
    record = cache.find(identity.email, job_id)
    assert record is not None
    return record.current_status


# ---------------------------------------------------------------------------
# Attachment gate
# ---------------------------------------------------------------------------


class TestGate:
    async def test_saved_to_applied_without_artifact_is_pending(
        self,
        machine: StatusStateMachine,
        cache: SessionCache,
        identity: Identity,
        backend: FakeBackend,
        surface: RecordingSurface,
    ) -> None:
        _seed(cache, identity, wire_job("1"))
        result = await machine.drop("1", JobStatus.APPLIED)

        assert result.outcome is TransitionOutcome.PENDING
        assert machine.pending is not None
        assert machine.pending.job_id == "1"
        assert machine.pending.target_status is JobStatus.APPLIED
        assert surface.opened == ["1"]
        assert backend.count("update_status") == 0
        assert _status(cache, identity, "1") is JobStatus.SAVED

    async def test_pending_resolved_by_upload(
        self,
        machine: StatusStateMachine,
        cache: SessionCache,
        identity: Identity,
        backend: FakeBackend,
    ) -> None:
        _seed(cache, identity, wire_job("1"))
        await machine.drop("1", JobStatus.APPLIED)

        backend.queue("update_status", updated_jobs(
            wire_job("1", "applied by user", attachments=["https://cdn.example.com/cv.pdf"]),
        ))
        result = await machine.upload_completed("1", "https://cdn.example.com/cv.pdf")

        assert result is not None
        assert result.outcome is TransitionOutcome.APPLIED
        assert machine.pending is None
        assert backend.count("update_status") == 1
        assert _status(cache, identity, "1") is JobStatus.APPLIED

    async def test_upload_for_other_job_ignored(
        self, machine: StatusStateMachine, cache: SessionCache, identity: Identity,
    ) -> None:
        _seed(cache, identity, wire_job("1"), wire_job("2"))
        await machine.drop("1", JobStatus.APPLIED)
        assert await machine.upload_completed("2", "https://cdn.example.com/x.png") is None
        assert machine.pending is not None

    async def test_artifact_report_for_replaced_job_ignored(
        self,
        machine: StatusStateMachine,
        cache: SessionCache,
        identity: Identity,
        backend: FakeBackend,
    ) -> None:
        _seed(cache, identity, wire_job("1"), wire_job("2"))
        await machine.drop("1", JobStatus.APPLIED)
        await machine.drop("2", JobStatus.APPLIED)

        assert await machine.artifact_check_done("1", True) is None

        assert machine.pending is not None
        assert machine.pending.job_id == "2"
        assert backend.count("update_status") == 0
        assert _status(cache, identity, "2") is JobStatus.SAVED

    async def test_artifact_report_for_vanished_job_clears_pending(
        self,
        machine: StatusStateMachine,
        cache: SessionCache,
        identity: Identity,
        backend: FakeBackend,
    ) -> None:
        _seed(cache, identity, wire_job("1"))
        await machine.drop("1", JobStatus.APPLIED)
        _seed(cache, identity, wire_job("2"))

        assert await machine.artifact_check_done("1", True) is None
        assert machine.pending is None
        assert backend.count("update_status") == 0

    async def test_pending_resolved_by_existing_artifact(
        self, machine: StatusStateMachine, cache: SessionCache, identity: Identity, backend: FakeBackend,
    ) -> None:
        _seed(cache, identity, wire_job("1"))
        await machine.drop("1", JobStatus.INTERVIEWING)
        backend.queue("update_status", updated_jobs(wire_job("1", "interviewing")))

        assert await machine.artifact_check_done("1", False) is None
        assert machine.pending is not None

        result = await machine.artifact_check_done("1", True)
        assert result is not None
        assert result.outcome is TransitionOutcome.APPLIED

    async def test_dismiss_discards_pending(
        self, machine: StatusStateMachine, cache: SessionCache, identity: Identity, backend: FakeBackend,
    ) -> None:
        _seed(cache, identity, wire_job("1"))
        await machine.drop("1", JobStatus.APPLIED)
        machine.dismiss()

        assert machine.pending is None
        assert backend.count("update_status") == 0
        assert _status(cache, identity, "1") is JobStatus.SAVED

    async def test_second_gated_drop_replaces_first(
        self,
        machine: StatusStateMachine,
        cache: SessionCache,
        identity: Identity,
        surface: RecordingSurface,
    ) -> None:
        _seed(cache, identity, wire_job("1"), wire_job("2"))
        await machine.drop("1", JobStatus.APPLIED)
        await machine.drop("2", JobStatus.OFFER)

        assert machine.pending is not None
        assert machine.pending.job_id == "2"
        assert surface.opened == ["1", "2"]

    async def test_attachment_on_record_skips_gate(
        self, machine: StatusStateMachine, cache: SessionCache, identity: Identity, backend: FakeBackend,
    ) -> None:
        _seed(cache, identity, wire_job("1", attachments=["https://cdn.example.com/a.png"]))
        backend.queue("update_status", updated_jobs(wire_job("1", "applied")))

        result = await machine.drop("1", JobStatus.APPLIED)

        assert result.outcome is TransitionOutcome.APPLIED
        assert machine.pending is None

    async def test_registered_resume_skips_gate(
        self,
        machine: StatusStateMachine,
        cache: SessionCache,
        identity: Identity,
        backend: FakeBackend,
        artifacts: ArtifactIndex,
    ) -> None:
        _seed(cache, identity, wire_job("1"))
        artifacts.register_resume("1")
        backend.queue("update_status", updated_jobs(wire_job("1", "offer")))

        result = await machine.drop("1", JobStatus.OFFER)
        assert result.outcome is TransitionOutcome.APPLIED


# ---------------------------------------------------------------------------
# Ungated moves
# ---------------------------------------------------------------------------


class TestUngated:
    async def test_interviewing_to_rejected_applies_immediately(
        self,
        machine: StatusStateMachine,
        cache: SessionCache,
        identity: Identity,
        backend: FakeBackend,
        surface: RecordingSurface,
    ) -> None:
        _seed(cache, identity, wire_job("1", "interviewing"))
        backend.queue("update_status", updated_jobs(wire_job("1", "rejected by user")))

        result = await machine.drop("1", JobStatus.REJECTED)

        assert result.outcome is TransitionOutcome.APPLIED
        assert surface.opened == []
        assert backend.calls[-1][1][1:] == ("1", JobStatus.REJECTED)
        assert _status(cache, identity, "1") is JobStatus.REJECTED

    async def test_back_to_saved_not_gated(
        self, machine: StatusStateMachine, cache: SessionCache, identity: Identity, backend: FakeBackend,
    ) -> None:
        _seed(cache, identity, wire_job("1", "applied"))
        backend.queue("update_status", updated_jobs(wire_job("1", "saved")))
        result = await machine.drop("1", JobStatus.SAVED)
        assert result.outcome is TransitionOutcome.APPLIED

    async def test_same_column_ignored(
        self, machine: StatusStateMachine, cache: SessionCache, identity: Identity, backend: FakeBackend,
    ) -> None:
        _seed(cache, identity, wire_job("1", "offer"))
        result = await machine.drop("1", JobStatus.OFFER)
        assert result.outcome is TransitionOutcome.IGNORED
        assert backend.count("update_status") == 0

    async def test_unknown_job_ignored(self, machine: StatusStateMachine) -> None:
        result = await machine.drop("404", JobStatus.APPLIED)
        assert result.outcome is TransitionOutcome.IGNORED

    async def test_server_list_replaces_cache(
        self, machine: StatusStateMachine, cache: SessionCache, identity: Identity, backend: FakeBackend,
    ) -> None:
        _seed(cache, identity, wire_job("1", "applied"))
        backend.queue("update_status", updated_jobs(wire_job("1", "offer"), wire_job("7")))
        await machine.drop("1", JobStatus.OFFER)
        assert [r.job_id for r in cache.records(identity.email)] == ["1", "7"]


# ---------------------------------------------------------------------------
# Failures revert the optimistic move
# ---------------------------------------------------------------------------


class TestFailures:
    async def test_refused_update_reverts(
        self, machine: StatusStateMachine, cache: SessionCache, identity: Identity, backend: FakeBackend,
    ) -> None:
        _seed(cache, identity, wire_job("1", "applied"))
        backend.queue("update_status", ApiResponse(status_code=400, body={"message": "nope"}))

        result = await machine.drop("1", JobStatus.OFFER)

        assert result.outcome is TransitionOutcome.FAILED
        assert result.message == "Failed to update job status"
        assert _status(cache, identity, "1") is JobStatus.APPLIED

    async def test_transport_error_reverts(
        self, machine: StatusStateMachine, cache: SessionCache, identity: Identity, backend: FakeBackend,
    ) -> None:
        _seed(cache, identity, wire_job("1", "applied"))
        backend.queue("update_status", JobsApiError("Network error", transport=True))

        result = await machine.drop("1", JobStatus.OFFER)

        assert result.outcome is TransitionOutcome.FAILED
        assert _status(cache, identity, "1") is JobStatus.APPLIED

    async def test_reauth_required(
        self,
        machine: StatusStateMachine,
        cache: SessionCache,
        identity: Identity,
        backend: FakeBackend,
        credentials: FakeCredentials,
    ) -> None:
        _seed(cache, identity, wire_job("1", "applied"))
        credentials.refresh_ok = False
        backend.queue("update_status", EXPIRED)

        result = await machine.drop("1", JobStatus.OFFER)

        assert result.outcome is TransitionOutcome.REAUTH_REQUIRED
        assert cache.identity is None

    async def test_moves_locally_before_response(
        self, machine: StatusStateMachine, cache: SessionCache, identity: Identity, backend: FakeBackend,
    ) -> None:
        _seed(cache, identity, wire_job("1", "applied"))
        seen: list[JobStatus] = []

        async def observe() -> ApiResponse:
            seen.append(_status(cache, identity, "1"))
            return updated_jobs(wire_job("1", "offer"))

        backend.queue("update_status", observe())
        await machine.drop("1", JobStatus.OFFER)
        assert seen == [JobStatus.OFFER]

    async def test_local_move_carries_new_attribution(
        self, machine: StatusStateMachine, cache: SessionCache, identity: Identity, backend: FakeBackend,
    ) -> None:
        _seed(cache, identity, wire_job("1", "applied by Priya"))
        actors: list[str] = []

        async def observe() -> ApiResponse:
            record = cache.find(identity.email, "1")
            assert record is not None
            actors.append(record.status_actor)
            return updated_jobs(wire_job("1", "offer by user"))

        backend.queue("update_status", observe())
        await machine.drop("1", JobStatus.OFFER)
        assert actors == ["user"]


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------


class TestDeletion:
    async def test_drop_on_deleted_needs_code(
        self, machine: StatusStateMachine, cache: SessionCache, identity: Identity, backend: FakeBackend,
    ) -> None:
        _seed(cache, identity, wire_job("1"))
        result = await machine.drop("1", JobStatus.DELETED, confirmation_code="0000")

        assert result.outcome is TransitionOutcome.REJECTED
        assert result.message == "Incorrect deletion code"
        assert backend.count("update_status") == 0

    async def test_drop_on_deleted_with_code(
        self, machine: StatusStateMachine, cache: SessionCache, identity: Identity, backend: FakeBackend,
    ) -> None:
        _seed(cache, identity, wire_job("1"))
        backend.queue("update_status", updated_jobs(wire_job("1", "deleted")))
        result = await machine.drop("1", JobStatus.DELETED, confirmation_code=CODE)
        assert result.outcome is TransitionOutcome.APPLIED

    async def test_delete_job_removes(
        self, machine: StatusStateMachine, cache: SessionCache, identity: Identity, backend: FakeBackend,
    ) -> None:
        _seed(cache, identity, wire_job("1"), wire_job("2"))
        await machine.drop("1", JobStatus.APPLIED)
        backend.queue("delete_job", updated_jobs(wire_job("2")))

        result = await machine.delete_job("1", CODE)

        assert result.outcome is TransitionOutcome.APPLIED
        assert [r.job_id for r in cache.records(identity.email)] == ["2"]
        assert machine.pending is None

    async def test_empty_configured_code_rejects(
        self,
        cache: SessionCache,
        gate: AuthRefreshGate,
        backend: FakeBackend,
        artifacts: ArtifactIndex,
        identity: Identity,
    ) -> None:
        machine = StatusStateMachine(cache, gate, backend, artifacts)
        _seed(cache, identity, wire_job("1"))
        result = await machine.delete_job("1", "")
        assert result.outcome is TransitionOutcome.REJECTED
        assert backend.count("delete_job") == 0


def test_replace_skips_newer_record(
    cache: SessionCache,
    gate: AuthRefreshGate,
    backend: FakeBackend,
    artifacts: ArtifactIndex,
    identity: Identity,
) -> None:
    machine = StatusStateMachine(cache, gate, backend, artifacts)
    _seed(cache, identity, wire_job("1"))
    stale = JobRecord(job_id="1", job_title="Old")
    machine._replace_record(stale, stale.touch(current_status=JobStatus.OFFER))
    assert _status(cache, identity, "1") is JobStatus.SAVED
