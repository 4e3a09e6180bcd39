"""
Status History Ledger.

Append-only audit trail of a batch's status changes. Entries are only
ever produced by the lifecycle transition function and are written in the
same atomic update as the status itself, so the order within one batch is
total.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from .schema import Batch, BatchStatus, StatusHistoryEntry, utcnow


def make_entry(
    status: BatchStatus,
    actor_id: Optional[str],
    remarks: Optional[str] = None,
    at: Optional[datetime] = None,
) -> StatusHistoryEntry:
    return StatusHistoryEntry(
        status=status,
        changed_by=actor_id,
        changed_at=at or utcnow(),
        remarks=remarks,
    )


def entry_document(entry: StatusHistoryEntry) -> dict:
    """Store-ready form of a ledger entry."""
    return entry.model_dump(mode="json")


def last_entry(batch: Batch) -> Optional[StatusHistoryEntry]:
    return batch.status_history[-1] if batch.status_history else None


def statuses(batch: Batch) -> list[BatchStatus]:
    """Sequence of statuses the batch has passed through, oldest first."""
    return [e.status for e in batch.status_history]


def is_consistent(batch: Batch) -> bool:
    """The ledger ends at the batch's current status."""
    last = last_entry(batch)
    return last is not None and last.status == batch.status
