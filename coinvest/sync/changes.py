"""
Remote Change Events

A change event says that one row of one remote table was inserted,
updated or deleted:

    {"eventType": "INSERT" | "UPDATE" | "DELETE", "new": {...}, "old": {...}}

Rows use the remote (snake_case) column names.

Merging is idempotent. This matters because our own optimistic writes
come back to us as events: an INSERT for an id we already hold is
ignored, an UPDATE replaces by id, a DELETE removes by id.

Google Sheets has no push feed, so diff_snapshots() produces the same
events from two successive reads.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from coinvest.models.ledger import EntityKind, LedgerSnapshot
from coinvest.services.storage.schema import from_remote_record, to_remote_row


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """One remote row change."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    event_type: ChangeType = Field(alias="eventType")
    new: Optional[dict[str, Any]] = None
    old: Optional[dict[str, Any]] = None

    @property
    def record_id(self) -> Optional[str]:
        row = self.old if self.event_type == ChangeType.DELETE else self.new
        return (row or {}).get("id")


def parse_change_payload(payload: dict[str, Any]) -> ChangeEvent:
    """
    Validate a raw change payload.

    Raises:
        pydantic.ValidationError: If the event type is unknown
        ValueError: If the row the event type needs is missing
    """
    event = ChangeEvent.model_validate(payload)
    if event.event_type == ChangeType.DELETE:
        if not event.old or "id" not in event.old:
            raise ValueError("DELETE event needs old.id")
    elif not event.new:
        raise ValueError(f"{event.event_type.value} event needs a new row")
    return event


def merge_change(
    snapshot: LedgerSnapshot,
    kind: EntityKind,
    event: ChangeEvent,
) -> tuple[LedgerSnapshot, bool]:
    """
    Fold one event into a snapshot.

    Returns:
        (new snapshot, whether anything changed)

    Raises:
        pydantic.ValidationError: If the row is not a valid record
    """
    if event.event_type == ChangeType.DELETE:
        record_id = event.old["id"]
        if not snapshot.contains(kind, record_id):
            return snapshot, False
        return snapshot.removed(kind, record_id), True

    record = from_remote_record(kind, event.new)

    if event.event_type == ChangeType.INSERT:
        # Our own optimistic insert echoing back
        if snapshot.contains(kind, record.id):
            return snapshot, False
        return snapshot.inserted(kind, record), True

    if not snapshot.contains(kind, record.id):
        return snapshot, False
    if snapshot.find(kind, record.id) == record:
        return snapshot, False
    return snapshot.replaced(kind, record), True


def diff_snapshots(
    before: LedgerSnapshot,
    after: LedgerSnapshot,
) -> list[tuple[EntityKind, ChangeEvent]]:
    """
    Change events that turn `before` into `after`.

    Per table: inserts, then updates, then deletes, each in row order.
    """
    events = []

    for kind in EntityKind:
        old_rows = {r.id: r for r in before.records(kind)}
        new_rows = {r.id: r for r in after.records(kind)}

        for record_id, record in new_rows.items():
            if record_id not in old_rows:
                events.append((kind, ChangeEvent(
                    event_type=ChangeType.INSERT,
                    new=to_remote_row(kind, record),
                )))

        for record_id, record in new_rows.items():
            previous = old_rows.get(record_id)
            if previous is not None and previous != record:
                events.append((kind, ChangeEvent(
                    event_type=ChangeType.UPDATE,
                    new=to_remote_row(kind, record),
                    old=to_remote_row(kind, previous),
                )))

        for record_id, record in old_rows.items():
            if record_id not in new_rows:
                events.append((kind, ChangeEvent(
                    event_type=ChangeType.DELETE,
                    old=to_remote_row(kind, record),
                )))

    return events
