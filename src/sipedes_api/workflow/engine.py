"""
Workflow Engine

State machine for the permohonan lifecycle:

    SUBMITTED -> VERIFIED -> PROCESSING -> COMPLETED
        |            |            |
        +------------+------------+------> REJECTED

COMPLETED and REJECTED are terminal. A transition is validated, applied to a
fresh copy of the aggregate and persisted under the per-aggregate lock; the
StatusChanged event is dispatched only after the save committed.
"""

from typing import Dict
from typing import FrozenSet
from typing import Optional
from typing import Union
from uuid import UUID

from loguru import logger

from sipedes_api.workflow.db.repository_base import PermohonanRepository
from sipedes_api.workflow.enums import PermohonanStatus
from sipedes_api.workflow.exceptions import InvalidTransition
from sipedes_api.workflow.exceptions import MissingReason
from sipedes_api.workflow.exceptions import MissingResultDocument
from sipedes_api.workflow.exceptions import NotFound
from sipedes_api.workflow.exceptions import ValidationFailed
from sipedes_api.workflow.locks import LockRegistry
from sipedes_api.workflow.models.document import DocumentRecord
from sipedes_api.workflow.models.events import StatusChanged
from sipedes_api.workflow.models.permohonan import Permohonan
from sipedes_api.workflow.models.timeline import TimelineEntry
from sipedes_api.workflow.notifications.dispatcher import LoggingNotificationDispatcher
from sipedes_api.workflow.notifications.dispatcher import NotificationDispatcher
from sipedes_api.workflow.timeutils import Clock
from sipedes_api.workflow.timeutils import utc_now

TRANSITIONS: Dict[PermohonanStatus, FrozenSet[PermohonanStatus]] = {
    PermohonanStatus.SUBMITTED: frozenset({PermohonanStatus.VERIFIED, PermohonanStatus.REJECTED}),
    PermohonanStatus.VERIFIED: frozenset({PermohonanStatus.PROCESSING, PermohonanStatus.REJECTED}),
    PermohonanStatus.PROCESSING: frozenset({PermohonanStatus.COMPLETED, PermohonanStatus.REJECTED}),
    PermohonanStatus.COMPLETED: frozenset(),
    PermohonanStatus.REJECTED: frozenset(),
}


def legal_next_states(status: PermohonanStatus) -> FrozenSet[PermohonanStatus]:
    """Statuses reachable from ``status`` in one transition."""
    return TRANSITIONS[PermohonanStatus(status)]


def is_terminal(status: PermohonanStatus) -> bool:
    return not legal_next_states(status)


def _clean_note(note: Optional[str]) -> Optional[str]:
    if note is None or not note.strip():
        return None
    return note.strip()


class WorkflowEngine:
    """Applies status transitions atomically."""

    def __init__(
        self,
        repository: PermohonanRepository,
        dispatcher: Optional[NotificationDispatcher] = None,
        locks: Optional[LockRegistry] = None,
        clock: Clock = utc_now,
    ):
        self.repository = repository
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()
        self.locks = locks or LockRegistry()
        self.clock = clock

    def apply(
        self,
        current: Permohonan,
        target: PermohonanStatus,
        actor: str,
        note: Optional[str] = None,
        result_document: Optional[DocumentRecord] = None,
    ) -> Permohonan:
        """
        Validate and apply a transition in memory (no persistence, no event).

        Checks run in this order: legality, rejection reason, result document,
        then the audit actor.

        Returns:
            New aggregate with the appended timeline entry and ``version + 1``

        Raises:
            InvalidTransition: ``target`` not reachable from the current status
            MissingReason: REJECTED without a non-blank note
            MissingResultDocument: COMPLETED without a result document
            ValidationFailed: result document on another target, or empty actor
        """
        target = PermohonanStatus(target)
        if target not in legal_next_states(current.status):
            logger.warning(
                "Illegal transition refused",
                tracking_number=current.tracking_number,
                from_status=current.status.value,
                to_status=target.value,
                actor=actor,
            )
            raise InvalidTransition(
                f"Cannot move {current.tracking_number} from {current.status.value} to {target.value}",
                tracking_number=current.tracking_number,
                from_status=current.status.value,
                to_status=target.value,
            )

        note = _clean_note(note)
        if target == PermohonanStatus.REJECTED and note is None:
            raise MissingReason(
                f"Rejecting {current.tracking_number} requires a reason",
                tracking_number=current.tracking_number,
            )
        if target == PermohonanStatus.COMPLETED and result_document is None:
            raise MissingResultDocument(
                f"Completing {current.tracking_number} requires the result document",
                tracking_number=current.tracking_number,
            )
        if result_document is not None and target != PermohonanStatus.COMPLETED:
            raise ValidationFailed(
                f"A result document can only accompany the transition to {PermohonanStatus.COMPLETED.value}",
                tracking_number=current.tracking_number,
            )

        actor = (actor or "").strip()
        if not actor:
            raise ValidationFailed("Transition requires the acting officer", tracking_number=current.tracking_number)

        aggregate = current
        if target == PermohonanStatus.COMPLETED:
            aggregate = aggregate.attach_result_document(result_document)

        # Ledger stays non-decreasing even if the clock steps backwards
        timestamp = max(self.clock(), current.updated_at)
        entry = TimelineEntry(status=target, timestamp=timestamp, note=note, actor=actor)
        rejection_reason = note if target == PermohonanStatus.REJECTED else None

        return aggregate.record_transition(entry, rejection_reason=rejection_reason).with_version(current.version + 1)

    async def transition(
        self,
        permohonan: Union[Permohonan, UUID],
        target: PermohonanStatus,
        actor: str,
        note: Optional[str] = None,
        result_document: Optional[DocumentRecord] = None,
    ) -> Permohonan:
        """
        Move a permohonan to ``target``.

        The aggregate is re-read under its lock, so a stale snapshot passed in
        is validated against the stored state, not against itself.

        Args:
            permohonan: Aggregate or its id
            target: Requested status
            actor: Acting officer id (audit)
            note: Optional note; the rejection reason for REJECTED
            result_document: Issued document, required for COMPLETED

        Returns:
            The persisted aggregate

        Raises:
            NotFound: unknown id
            InvalidTransition, MissingReason, MissingResultDocument, ValidationFailed: see ``apply``
            ConcurrentModification: the stored version moved during the save
        """
        permohonan_id = permohonan.permohonan_id if isinstance(permohonan, Permohonan) else permohonan

        async with self.locks.hold(permohonan_id):
            current = await self.repository.find_by_id(permohonan_id)
            if current is None:
                raise NotFound(f"Permohonan {permohonan_id} not found", permohonan_id=str(permohonan_id))
            updated = self.apply(current, target, actor, note=note, result_document=result_document)
            stored = await self.repository.save(updated)

        logger.info(
            "Permohonan transitioned",
            tracking_number=stored.tracking_number,
            from_status=current.status.value,
            to_status=stored.status.value,
            actor=stored.latest_entry.actor,
            version=stored.version,
        )
        await self._emit(current, stored)
        return stored

    async def _emit(self, before: Permohonan, after: Permohonan) -> None:
        entry = after.latest_entry
        event = StatusChanged(
            permohonan_id=after.permohonan_id,
            tracking_number=after.tracking_number,
            requester_id=after.requester.requester_id,
            old_status=before.status,
            new_status=after.status,
            actor=entry.actor or "",
            note=entry.note,
            occurred_at=entry.timestamp,
        )
        try:
            await self.dispatcher.dispatch(event)
        except Exception as e:
            # Transition is already committed
            logger.error(
                f"Status notification dispatch failed for {after.tracking_number}: {e}",
                event_id=str(event.event_id),
                exc_info=True,
            )
