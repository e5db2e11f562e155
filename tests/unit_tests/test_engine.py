"""Unit tests for the workflow engine state machine."""

import asyncio
import re
from uuid import uuid4

import pytest

from sipedes_api.workflow.engine import TRANSITIONS
from sipedes_api.workflow.engine import WorkflowEngine
from sipedes_api.workflow.engine import is_terminal
from sipedes_api.workflow.engine import legal_next_states
from sipedes_api.workflow.enums import PermohonanStatus
from sipedes_api.workflow.exceptions import ConcurrentModification
from sipedes_api.workflow.exceptions import InvalidTransition
from sipedes_api.workflow.exceptions import MissingReason
from sipedes_api.workflow.exceptions import MissingResultDocument
from sipedes_api.workflow.exceptions import NotFound
from sipedes_api.workflow.exceptions import ValidationFailed
from sipedes_api.workflow.models.permohonan import Permohonan
from sipedes_api.workflow.models.permohonan import Requester
from sipedes_api.workflow.models.permohonan import ServiceRef
from tests.fixtures.workflow_fixtures import pdf_upload

OFFICER = "B"


@pytest.fixture
async def single_document_permohonan(repository, registry, tracking, clock):
    """Domicile letter request with a single 500 KB KTP.pdf."""
    permohonan_id = uuid4()
    record = await registry.validate_and_store(
        pdf_upload("KTP.pdf", b"%PDF" + b"0" * (500 * 1024 - 4)),
        "KTP",
        permohonan_id,
    )
    permohonan = Permohonan.create(
        requester=Requester(requester_id="warga-001", name="Budi"),
        service=ServiceRef(service_id=1, name="Domicile Letter"),
        purpose="",
        documents=[record],
        required_labels=["KTP"],
        tracking_number=await tracking.next(),
        submitted_at=clock(),
        permohonan_id=permohonan_id,
    )
    return await repository.save(permohonan)


async def result_record(registry, permohonan):
    return await registry.store_result(pdf_upload("Letter.pdf"), permohonan.permohonan_id)


# Shortest path from SUBMITTED to each status
PATHS = {
    PermohonanStatus.SUBMITTED: [],
    PermohonanStatus.VERIFIED: [PermohonanStatus.VERIFIED],
    PermohonanStatus.PROCESSING: [PermohonanStatus.VERIFIED, PermohonanStatus.PROCESSING],
    PermohonanStatus.COMPLETED: [PermohonanStatus.VERIFIED, PermohonanStatus.PROCESSING, PermohonanStatus.COMPLETED],
    PermohonanStatus.REJECTED: [PermohonanStatus.REJECTED],
}

ILLEGAL_MOVES = [
    (current, target)
    for current in PermohonanStatus
    for target in PermohonanStatus
    if target not in legal_next_states(current)
]


async def walk_to(engine, registry, permohonan, status):
    for step in PATHS[status]:
        result_document = await result_record(registry, permohonan) if step == PermohonanStatus.COMPLETED else None
        permohonan = await engine.transition(
            permohonan, step, OFFICER, note="alasan", result_document=result_document
        )
    return permohonan


class TestIllegalTransitions:
    """Every illegal move from every reachable status leaves the stored permohonan alone."""

    @pytest.mark.parametrize(
        "current,target",
        ILLEGAL_MOVES,
        ids=[f"{current.value}->{target.value}" for current, target in ILLEGAL_MOVES],
    )
    async def test_refused_and_unchanged(
        self, engine, repository, registry, dispatcher, single_document_permohonan, current, target
    ):
        reached = await walk_to(engine, registry, single_document_permohonan, current)
        assert reached.status == current
        events_before = len(dispatcher.events)
        result_document = await result_record(registry, reached) if target == PermohonanStatus.COMPLETED else None

        with pytest.raises(InvalidTransition):
            await engine.transition(reached, target, OFFICER, note="alasan", result_document=result_document)

        stored = await repository.find_by_id(reached.permohonan_id)
        assert stored == reached
        assert stored.version == reached.version
        assert len(dispatcher.events) == events_before

    async def test_completed_refuses_every_target(self, engine, registry, single_document_permohonan):
        completed = await walk_to(engine, registry, single_document_permohonan, PermohonanStatus.COMPLETED)

        for target in PermohonanStatus:
            with pytest.raises(InvalidTransition):
                await engine.transition(completed, target, OFFICER, note="lagi")


class TestTransitionTable:
    """Tests for the legal-next-state table."""

    def test_happy_path_and_rejections(self):
        assert legal_next_states(PermohonanStatus.SUBMITTED) == {PermohonanStatus.VERIFIED, PermohonanStatus.REJECTED}
        assert legal_next_states(PermohonanStatus.VERIFIED) == {PermohonanStatus.PROCESSING, PermohonanStatus.REJECTED}
        assert legal_next_states(PermohonanStatus.PROCESSING) == {PermohonanStatus.COMPLETED, PermohonanStatus.REJECTED}

    def test_terminal_states(self):
        assert is_terminal(PermohonanStatus.COMPLETED)
        assert is_terminal(PermohonanStatus.REJECTED)
        assert not is_terminal(PermohonanStatus.PROCESSING)

    def test_every_status_has_an_entry(self):
        assert set(TRANSITIONS) == set(PermohonanStatus)


class TestExampleScenarios:
    """Lifecycle walk-through from submission to completion or rejection."""

    async def test_create(self, single_document_permohonan):
        permohonan = single_document_permohonan
        assert permohonan.status == PermohonanStatus.SUBMITTED
        assert re.fullmatch(r"REG-\d{8}-\d{4}", permohonan.tracking_number)
        assert len(permohonan.timeline) == 1

    async def test_verify(self, engine, single_document_permohonan, dispatcher):
        verified = await engine.transition(
            single_document_permohonan, PermohonanStatus.VERIFIED, OFFICER, note="documents complete"
        )

        assert verified.status == PermohonanStatus.VERIFIED
        assert len(verified.timeline) == 2
        assert verified.timeline[1].actor == OFFICER
        assert verified.timeline[1].note == "documents complete"
        assert verified.version == 2
        assert dispatcher.events[0].old_status == PermohonanStatus.SUBMITTED
        assert dispatcher.events[0].new_status == PermohonanStatus.VERIFIED

    async def test_skipping_processing_is_refused(self, engine, repository, registry, single_document_permohonan):
        verified = await engine.transition(single_document_permohonan, PermohonanStatus.VERIFIED, OFFICER)
        record = await result_record(registry, verified)

        with pytest.raises(InvalidTransition):
            await engine.transition(verified, PermohonanStatus.COMPLETED, OFFICER, result_document=record)

        stored = await repository.find_by_id(verified.permohonan_id)
        assert stored.status == PermohonanStatus.VERIFIED
        assert len(stored.timeline) == 2
        assert stored == verified

    async def test_complete_without_result_document(self, engine, repository, single_document_permohonan):
        await engine.transition(single_document_permohonan, PermohonanStatus.VERIFIED, OFFICER)
        processing = await engine.transition(single_document_permohonan, PermohonanStatus.PROCESSING, OFFICER)

        with pytest.raises(MissingResultDocument):
            await engine.transition(processing, PermohonanStatus.COMPLETED, OFFICER)

        stored = await repository.find_by_id(processing.permohonan_id)
        assert stored.status == PermohonanStatus.PROCESSING
        assert stored.result_document is None

    async def test_complete_with_result_document(self, engine, registry, dispatcher, single_document_permohonan):
        await engine.transition(single_document_permohonan, PermohonanStatus.VERIFIED, OFFICER)
        processing = await engine.transition(single_document_permohonan, PermohonanStatus.PROCESSING, OFFICER)
        record = await result_record(registry, processing)

        completed = await engine.transition(processing, PermohonanStatus.COMPLETED, OFFICER, result_document=record)

        assert completed.status == PermohonanStatus.COMPLETED
        assert completed.result_document == record
        assert len(completed.timeline) == len(processing.timeline) + 1
        event = dispatcher.events[-1]
        assert (event.old_status, event.new_status) == (PermohonanStatus.PROCESSING, PermohonanStatus.COMPLETED)
        assert event.tracking_number == completed.tracking_number
        assert event.permohonan_id == completed.permohonan_id

    async def test_reject_requires_reason_then_is_terminal(self, engine, single_document_permohonan):
        with pytest.raises(MissingReason):
            await engine.transition(single_document_permohonan, PermohonanStatus.REJECTED, OFFICER, note="")
        with pytest.raises(MissingReason):
            await engine.transition(single_document_permohonan, PermohonanStatus.REJECTED, OFFICER, note="   ")

        rejected = await engine.transition(
            single_document_permohonan, PermohonanStatus.REJECTED, OFFICER, note="incomplete documents"
        )
        assert rejected.status == PermohonanStatus.REJECTED
        assert rejected.rejection_reason == "incomplete documents"
        assert rejected.is_terminal

        for target in PermohonanStatus:
            with pytest.raises(InvalidTransition):
                await engine.transition(rejected, target, OFFICER, note="again")


class TestTransitionValidation:
    """Tests for check order and argument validation."""

    async def test_apply_does_not_touch_input(self, engine, single_document_permohonan):
        before = single_document_permohonan
        after = engine.apply(before, PermohonanStatus.VERIFIED, OFFICER)

        assert before.status == PermohonanStatus.SUBMITTED
        assert len(before.timeline) == 1
        assert after.version == before.version + 1

    async def test_illegal_target_checked_before_reason(self, engine, single_document_permohonan):
        with pytest.raises(InvalidTransition):
            engine.apply(single_document_permohonan, PermohonanStatus.SUBMITTED, OFFICER)

    async def test_result_document_only_with_completion(self, engine, registry, single_document_permohonan):
        record = await result_record(registry, single_document_permohonan)
        with pytest.raises(ValidationFailed):
            engine.apply(single_document_permohonan, PermohonanStatus.VERIFIED, OFFICER, result_document=record)

    async def test_actor_required(self, engine, single_document_permohonan):
        with pytest.raises(ValidationFailed):
            engine.apply(single_document_permohonan, PermohonanStatus.VERIFIED, "  ")

    async def test_unknown_id(self, engine):
        with pytest.raises(NotFound):
            await engine.transition(uuid4(), PermohonanStatus.VERIFIED, OFFICER)

    async def test_timestamp_never_goes_backwards(self, engine, clock, single_document_permohonan):
        clock.advance(hours=-5)
        verified = await engine.transition(single_document_permohonan, PermohonanStatus.VERIFIED, OFFICER)
        assert verified.timeline[1].timestamp == verified.timeline[0].timestamp

    async def test_stale_snapshot_validated_against_stored_state(self, engine, single_document_permohonan):
        await engine.transition(single_document_permohonan, PermohonanStatus.VERIFIED, OFFICER)

        # The caller still holds the SUBMITTED snapshot
        with pytest.raises(InvalidTransition):
            await engine.transition(single_document_permohonan, PermohonanStatus.VERIFIED, OFFICER)


class TestConcurrency:
    """Tests for serialized writers on the same permohonan."""

    async def test_two_officers_reject_once(self, engine, repository, dispatcher, single_document_permohonan):
        results = await asyncio.gather(
            engine.transition(single_document_permohonan, PermohonanStatus.REJECTED, "A", note="KTP buram"),
            engine.transition(single_document_permohonan, PermohonanStatus.REJECTED, "B", note="KK tidak sesuai"),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, Permohonan)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], InvalidTransition)

        stored = await repository.find_by_id(single_document_permohonan.permohonan_id)
        assert len(stored.timeline) == 2
        assert len(dispatcher.events) == 1

    async def test_unlocked_stale_save_is_refused(self, repository, single_document_permohonan):
        a = single_document_permohonan.with_version(2)
        await repository.save(a)
        with pytest.raises(ConcurrentModification):
            await repository.save(single_document_permohonan.with_version(2))

    async def test_lock_released_after_transition(self, engine, single_document_permohonan):
        await engine.transition(single_document_permohonan, PermohonanStatus.VERIFIED, OFFICER)
        assert len(engine.locks) == 0


class TestNotificationFailure:
    """A failing dispatcher never rolls back a committed transition."""

    async def test_dispatch_failure_is_logged_not_raised(
        self, repository, failing_dispatcher, clock, single_document_permohonan, captured_logs
    ):
        engine = WorkflowEngine(repository, dispatcher=failing_dispatcher, clock=clock)

        verified = await engine.transition(single_document_permohonan, PermohonanStatus.VERIFIED, OFFICER)

        stored = await repository.find_by_id(verified.permohonan_id)
        assert stored.status == PermohonanStatus.VERIFIED
        failing_dispatcher.dispatch.assert_awaited_once()
        errors = [r for r in captured_logs if r["level"] == "ERROR"]
        assert errors
        assert "dispatch failed" in errors[0]["message"]
