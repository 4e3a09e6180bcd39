"""
Batch lifecycle state machine.

    submitted → under_inspection → inspection_complete → certified | rejected
                                                          certified → revoked

Every status write goes through ``BatchStateMachine.apply``, which guards
on the current status (atomic conditional update) and appends exactly one
Status History Ledger entry in the same write. A lost race surfaces as
``Conflict``; an illegal trigger as ``PreconditionFailed``.
"""

from __future__ import annotations

import logging
import re
import secrets
import string
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Protocol

from .errors import DuplicateKey, PreconditionFailed
from .history import entry_document, make_entry
from .schema import (
    Batch,
    BatchStatus,
    DestinationInfo,
    OriginInfo,
    Party,
    PartyRole,
    Priority,
    ProductInfo,
    utcnow,
)
from .store import BATCHES, PARTIES, DocumentStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------

class Trigger(str, Enum):
    START_INSPECTION = "start inspection"
    SUBMIT_INSPECTION = "submit inspection result"
    ISSUE_CREDENTIAL = "issue credential"
    REJECT = "reject"
    REVOKE = "revoke"


TRANSITIONS: dict[Trigger, tuple[BatchStatus, BatchStatus]] = {
    Trigger.START_INSPECTION: (BatchStatus.SUBMITTED, BatchStatus.UNDER_INSPECTION),
    Trigger.SUBMIT_INSPECTION: (BatchStatus.UNDER_INSPECTION, BatchStatus.INSPECTION_COMPLETE),
    Trigger.ISSUE_CREDENTIAL: (BatchStatus.INSPECTION_COMPLETE, BatchStatus.CERTIFIED),
    Trigger.REJECT: (BatchStatus.INSPECTION_COMPLETE, BatchStatus.REJECTED),
    Trigger.REVOKE: (BatchStatus.CERTIFIED, BatchStatus.REVOKED),
}

# Owner may edit product/origin/destination/notes/priority only here
EDITABLE_STATUSES = frozenset({BatchStatus.SUBMITTED, BatchStatus.UNDER_INSPECTION})

TERMINAL_STATUSES = frozenset({BatchStatus.REJECTED, BatchStatus.REVOKED})


def next_status(current: BatchStatus, trigger: Trigger) -> BatchStatus:
    """Target status for *trigger* from *current*, or ``PreconditionFailed``."""
    source, target = TRANSITIONS[trigger]
    if current != source:
        raise PreconditionFailed(
            f"cannot {trigger.value}: batch is {current.value}, "
            f"must be {source.value}"
        )
    return target


def reachable(current: BatchStatus) -> set[BatchStatus]:
    """Statuses directly reachable from *current*."""
    return {dst for src, dst in TRANSITIONS.values() if src == current}


# ---------------------------------------------------------------------------
# Batch identifiers
# ---------------------------------------------------------------------------

BATCH_ID_PREFIX = "CF"
BATCH_ID_ALPHABET = string.ascii_uppercase + string.digits
BATCH_ID_PATTERN = re.compile(r"^CF-\d{4}-[A-Z0-9]{6}$")


def generate_batch_id(now: Optional[datetime] = None) -> str:
    """``CF-YYMM-XXXXXX`` with a random 6-character alphanumeric suffix."""
    now = now or utcnow()
    suffix = "".join(secrets.choice(BATCH_ID_ALPHABET) for _ in range(6))
    return f"{BATCH_ID_PREFIX}-{now:%y%m}-{suffix}"


# ---------------------------------------------------------------------------
# Inspector assignment
# ---------------------------------------------------------------------------

class AssignmentStrategy(Protocol):
    """Chooses the QA agency a new batch is routed to (or None)."""

    def assign(self, store: DocumentStore, batch: Batch) -> Optional[str]:
        ...


def _active_inspectors(store: DocumentStore) -> list[Party]:
    docs = store.find(PARTIES, {"role": PartyRole.QA_AGENCY.value, "is_active": True})
    parties = [Party.model_validate(d) for d in docs]
    return sorted(parties, key=lambda p: (p.created_at, p.id))


class FirstActiveInspector:
    """Route every batch to the earliest-registered active QA agency."""

    def assign(self, store: DocumentStore, batch: Batch) -> Optional[str]:
        inspectors = _active_inspectors(store)
        return inspectors[0].id if inspectors else None


class LeastLoadedInspector:
    """Route to the active QA agency with the fewest open batches."""

    open_statuses = (
        BatchStatus.SUBMITTED.value,
        BatchStatus.UNDER_INSPECTION.value,
        BatchStatus.INSPECTION_COMPLETE.value,
    )

    def assign(self, store: DocumentStore, batch: Batch) -> Optional[str]:
        inspectors = _active_inspectors(store)
        if not inspectors:
            return None
        load = {
            p.id: len(store.find(
                BATCHES, {"assigned_inspector": p.id, "status": self.open_statuses}
            ))
            for p in inspectors
        }
        # min() keeps registration order on ties
        return min(inspectors, key=lambda p: load[p.id]).id


class NoAssignment:
    def assign(self, store: DocumentStore, batch: Batch) -> Optional[str]:
        return None


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

class BatchStateMachine:
    """Owns batch creation and every batch status write."""

    def __init__(
        self,
        store: DocumentStore,
        assignment: AssignmentStrategy | None = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[datetime], str] = generate_batch_id,
    ):
        self.store = store
        self.assignment = assignment or FirstActiveInspector()
        self.clock = clock
        self.id_factory = id_factory

    def create(
        self,
        product: ProductInfo,
        origin: OriginInfo,
        destination: DestinationInfo,
        priority: Priority,
        owner_id: str,
        notes: Optional[str] = None,
    ) -> Batch:
        """Create a batch in ``submitted`` and route it to an inspector.

        Identifier collisions are retried once with a fresh identifier.
        """
        now = self.clock()
        entry = make_entry(
            BatchStatus.SUBMITTED, owner_id,
            "Batch submitted for quality inspection", at=now,
        )
        batch = Batch(
            batch_id=self.id_factory(now),
            owner_id=owner_id,
            product=product,
            origin=origin,
            destination=destination,
            priority=priority,
            notes=notes,
            status=BatchStatus.SUBMITTED,
            status_history=[entry],
            created_at=now,
            updated_at=now,
        )
        batch.assigned_inspector = self.assignment.assign(self.store, batch)

        try:
            self.store.insert(BATCHES, batch.batch_id, batch.model_dump(mode="json"))
        except DuplicateKey:
            logger.warning(f"Batch id collision on {batch.batch_id}, regenerating")
            batch.batch_id = self.id_factory(now)
            self.store.insert(BATCHES, batch.batch_id, batch.model_dump(mode="json"))

        logger.info(
            f"Batch {batch.batch_id} submitted by {owner_id} "
            f"(assigned to {batch.assigned_inspector or 'nobody'})"
        )
        return batch

    def apply(
        self,
        batch: Batch,
        trigger: Trigger,
        actor_id: str,
        remarks: Optional[str] = None,
        changes: dict | None = None,
        expected: dict | None = None,
    ) -> Batch:
        """
        Move *batch* along *trigger*.

        The write is conditional on the stored status still equalling
        ``batch.status`` (plus any extra *expected* fields); otherwise the
        store raises ``Conflict`` and nothing is written.
        """
        target = next_status(batch.status, trigger)
        now = self.clock()
        entry = make_entry(target, actor_id, remarks, at=now)

        guard = {"status": batch.status.value}
        guard.update(expected or {})
        update = dict(changes or {})
        update["status"] = target.value
        update["updated_at"] = now.isoformat()

        doc = self.store.update(
            BATCHES,
            batch.batch_id,
            update,
            expected=guard,
            append={"status_history": [entry_document(entry)]},
        )
        logger.info(
            f"Batch {batch.batch_id}: {batch.status.value} → {target.value} "
            f"by {actor_id}"
        )
        return Batch.model_validate(doc)
