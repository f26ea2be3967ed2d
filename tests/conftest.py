"""
Shared fixtures.

No test touches the network: the remote store and the audit storage are
in-memory fakes. The fake store can be told to fail so the revert and
compensation paths can be exercised.
"""

from datetime import date
from decimal import Decimal
from typing import Awaitable, Callable, Optional

import pytest

from coinvest.allocation import AllocationEngine
from coinvest.audit import AuditLogger
from coinvest.models.audit import AuditEvent
from coinvest.models.ledger import (
    EntityKind,
    LedgerRecord,
    LedgerSnapshot,
    Project,
    ProjectStatus,
    seed_snapshot,
)
from coinvest.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStoreInterface,
    NotFoundError,
    StorageError,
)
from coinvest.sync import SyncCoordinator


class InMemoryLedgerStore(LedgerStoreInterface):
    """
    Dict-backed remote store.

    Failure switches:
        fail_load       - load_all raises ConnectionError
        fail_ids        - any write touching one of these ids raises StorageError
        fail_insert_at  - the Nth insert (1-based) raises StorageError
        fail_deletes    - every delete raises StorageError

    before_insert, if set, is awaited once at the start of the next insert.
    """

    def __init__(self, snapshot: Optional[LedgerSnapshot] = None):
        snapshot = snapshot or LedgerSnapshot()
        self.tables = {
            kind: {r.id: r for r in snapshot.records(kind)} for kind in EntityKind
        }
        self.fail_load = False
        self.fail_ids: set[str] = set()
        self.fail_deletes = False
        self.fail_insert_at: Optional[int] = None
        self.insert_count = 0
        self.before_insert: Optional[Callable[[], Awaitable[None]]] = None
        self.calls: list[tuple[str, EntityKind, str]] = []

    def as_snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            partners=tuple(self.tables[EntityKind.PARTNERS].values()),
            projects=tuple(self.tables[EntityKind.PROJECTS].values()),
            transactions=tuple(self.tables[EntityKind.TRANSACTIONS].values()),
        )

    async def load_all(self) -> LedgerSnapshot:
        if self.fail_load:
            raise ConnectionError("remote offline")
        return self.as_snapshot()

    async def insert(self, kind: EntityKind, record: LedgerRecord) -> bool:
        if self.before_insert is not None:
            hook, self.before_insert = self.before_insert, None
            await hook()
        self.calls.append(("insert", kind, record.id))
        self.insert_count += 1
        if self.insert_count == self.fail_insert_at:
            raise StorageError(f"insert of {record.id} failed")
        if record.id in self.fail_ids:
            raise StorageError(f"insert of {record.id} failed")
        if record.id in self.tables[kind]:
            raise DuplicateError(record.id)
        self.tables[kind][record.id] = record
        return True

    async def update(self, kind: EntityKind, record: LedgerRecord) -> bool:
        self.calls.append(("update", kind, record.id))
        if record.id in self.fail_ids:
            raise StorageError(f"update of {record.id} failed")
        if record.id not in self.tables[kind]:
            raise NotFoundError(record.id)
        self.tables[kind][record.id] = record
        return True

    async def delete(self, kind: EntityKind, record_id: str) -> bool:
        self.calls.append(("delete", kind, record_id))
        if self.fail_deletes or record_id in self.fail_ids:
            raise StorageError(f"delete of {record_id} failed")
        return self.tables[kind].pop(record_id, None) is not None


class InMemoryAuditStorage(AuditStorageInterface):
    """Keeps every appended event."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self.events))[:limit]

    def types(self) -> list[str]:
        return [e.event_type.value for e in self.events]


@pytest.fixture
def ledger() -> LedgerSnapshot:
    """Seed ledger plus a second project to fund transfers from."""
    return seed_snapshot().inserted(
        EntityKind.PROJECTS,
        Project(
            id="proj2",
            name="Food Truck",
            status=ProjectStatus.ACTIVE,
            start_date=date(2023, 3, 1),
        ),
    )


@pytest.fixture
def engine() -> AllocationEngine:
    return AllocationEngine(
        split_tolerance=Decimal("1"),
        require_partner_for_withdrawal=True,
    )


@pytest.fixture
def remote(ledger) -> InMemoryLedgerStore:
    return InMemoryLedgerStore(ledger)


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def coordinator(remote, engine, audit_storage) -> SyncCoordinator:
    """Remote-mode coordinator; call `await coordinator.load()` first."""
    return SyncCoordinator(
        remote=remote,
        engine=engine,
        audit_logger=AuditLogger(audit_storage),
        cascade_linked_deletes=False,
    )
