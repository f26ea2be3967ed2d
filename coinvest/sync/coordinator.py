"""
Sync Coordinator

Owns the single current LedgerSnapshot and is its only writer.

FLOW for every mutation:
1. Validate (allocation engine or integrity check). Nothing changes on failure.
2. Build the new snapshot and swap it in immediately (optimistic).
3. Persist:
   - Remote mode: write each record to the remote store in order
   - Local mode: write the whole snapshot to the JSON file
4. On failure, undo: records already written remotely are rolled back
   (best effort), the local snapshot reverts, and the error is audited.

CRITICAL: Remote and local modes are mutually exclusive. In remote mode
the JSON file is never written; in local mode the remote is never called.

Concurrent edits from several sessions are last-write-wins at the store.
"""

import json
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, Field, ValidationError

from coinvest.allocation import AllocationEngine
from coinvest.audit import AuditLogger, create_correlation_id
from coinvest.config import get_settings
from coinvest.models.allocation import (
    AllocationResult,
    ExpenseRequest,
    TransactionRequest,
)
from coinvest.models.audit import AuditEventBuilder
from coinvest.models.ledger import (
    EntityKind,
    LedgerRecord,
    LedgerSnapshot,
    Partner,
    Project,
    Transaction,
    seed_snapshot,
)
from coinvest.services.storage import (
    LedgerStoreInterface,
    LocalSnapshotStore,
    StorageError,
)
from coinvest.sync.changes import merge_change, parse_change_payload, diff_snapshots


logger = structlog.get_logger(__name__)

_ACTION_NAMES = {"insert": "added", "update": "updated", "delete": "deleted"}


class MutationResult(BaseModel):
    """Outcome of one mutation, shown to the user."""

    success: bool
    message: str = ""
    records: list[LedgerRecord] = Field(
        default_factory=list,
        description="Records written (or that would have been written)"
    )
    linked_transaction_id: Optional[str] = Field(
        default=None,
        description="Other side of a transfer left in place by a delete"
    )
    allocation: Optional[AllocationResult] = None


@dataclass(frozen=True)
class _Write:
    """One record-level write and what it replaces."""

    kind: EntityKind
    action: str  # "insert", "update" or "delete"
    record: LedgerRecord
    previous: Optional[LedgerRecord] = None

    def apply(self, snapshot: LedgerSnapshot) -> LedgerSnapshot:
        if self.action == "insert":
            return snapshot.inserted(self.kind, self.record)
        if self.action == "update":
            return snapshot.replaced(self.kind, self.record)
        return snapshot.removed(self.kind, self.record.id)

    def undo(self, snapshot: LedgerSnapshot) -> LedgerSnapshot:
        if self.action == "insert":
            return snapshot.removed(self.kind, self.record.id)
        if self.action == "update":
            return snapshot.replaced(self.kind, self.previous)
        return snapshot.inserted(self.kind, self.record)

    async def send(self, remote: LedgerStoreInterface) -> None:
        if self.action == "insert":
            await remote.insert(self.kind, self.record)
        elif self.action == "update":
            await remote.update(self.kind, self.record)
        else:
            await remote.delete(self.kind, self.record.id)

    async def rollback(self, remote: LedgerStoreInterface) -> None:
        if self.action == "insert":
            await remote.delete(self.kind, self.record.id)
        elif self.action == "update":
            await remote.update(self.kind, self.previous)
        else:
            await remote.insert(self.kind, self.record)


class SyncCoordinator:
    """
    Applies user actions to the ledger and keeps storage in step.

    Usage:
        coordinator = SyncCoordinator(remote=GoogleSheetsLedgerStore())
        await coordinator.load()
        result = await coordinator.record_expense(request)
    """

    def __init__(
        self,
        remote: Optional[LedgerStoreInterface] = None,
        local: Optional[LocalSnapshotStore] = None,
        engine: Optional[AllocationEngine] = None,
        audit_logger: Optional[AuditLogger] = None,
        cascade_linked_deletes: Optional[bool] = None,
    ):
        if remote is not None and local is not None:
            raise ValueError("Use either a remote store or a local file, not both")

        self._remote = remote
        self._local = local
        self._engine = engine or AllocationEngine()
        self._audit = audit_logger or AuditLogger()
        self._cascade_default = (
            cascade_linked_deletes if cascade_linked_deletes is not None
            else get_settings().app.cascade_linked_deletes
        )
        self._snapshot = LedgerSnapshot()

    @property
    def snapshot(self) -> LedgerSnapshot:
        return self._snapshot

    @property
    def mode(self) -> str:
        if self._remote is not None:
            return "remote"
        if self._local is not None:
            return "local"
        return "memory"

    @property
    def engine(self) -> AllocationEngine:
        return self._engine

    # =========================================================================
    # LOADING
    # =========================================================================

    async def load(self) -> LedgerSnapshot:
        """
        Initial fetch. Never raises.

        Remote mode: a failed read leaves an empty ledger.
        Local mode: a missing or unreadable file starts from the seed ledger.
        """
        if self._remote is not None:
            try:
                self._snapshot = await self._remote.load_all()
            except StorageError as e:
                await self._audit.log(AuditEventBuilder.remote_load_failed(str(e)))
                self._snapshot = LedgerSnapshot()
        elif self._local is not None:
            try:
                saved = self._local.load()
            except StorageError as e:
                await self._audit.log_error("local_load_failed", str(e))
                saved = None
            self._snapshot = saved if saved is not None else seed_snapshot()

        return self._snapshot

    async def poll(self) -> int:
        """
        Re-read the remote store and merge whatever changed.

        Returns the number of changes applied. Only meaningful in remote mode.
        """
        if self._remote is None:
            return 0
        try:
            fresh = await self._remote.load_all()
        except StorageError as e:
            await self._audit.log(AuditEventBuilder.remote_load_failed(str(e)))
            return 0

        applied = 0
        for kind, event in diff_snapshots(self._snapshot, fresh):
            if await self.apply_change(kind, event.model_dump(by_alias=True)):
                applied += 1
        return applied

    # =========================================================================
    # COMMIT
    # =========================================================================

    async def _commit(
        self,
        writes: list[_Write],
        correlation_id: Optional[UUID] = None,
    ) -> Optional[str]:
        """
        Apply writes optimistically, then persist them.

        Returns None on success, or the error message after reverting.
        """
        before = self._snapshot
        optimistic = before
        for write in writes:
            optimistic = write.apply(optimistic)
        self._snapshot = optimistic

        if self._remote is not None:
            done = []
            for write in writes:
                try:
                    await write.send(self._remote)
                except StorageError as e:
                    await self._rollback_remote(done, correlation_id)
                    self._revert(before, optimistic, writes)
                    await self._audit.log_remote_write_failed(
                        entity_type=write.kind.value,
                        entity_id=write.record.id,
                        operation=write.action,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                    return str(e)
                done.append(write)

        elif self._local is not None:
            try:
                self._local.save(self._snapshot)
            except StorageError as e:
                self._revert(before, optimistic, writes)
                await self._audit.log_error(
                    "local_save_failed", str(e), correlation_id=correlation_id,
                )
                return str(e)

        for write in writes:
            await self._audit.log_record_written(
                entity_type=write.kind.value,
                entity_id=write.record.id,
                action=_ACTION_NAMES[write.action],
                correlation_id=correlation_id,
            )
        return None

    async def _rollback_remote(
        self,
        done: list[_Write],
        correlation_id: Optional[UUID],
    ) -> None:
        """Compensate remote writes that already went through, newest first."""
        for write in reversed(done):
            try:
                await write.rollback(self._remote)
            except StorageError as e:
                await self._audit.log_compensation_failed(
                    entity_id=write.record.id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )

    def _revert(
        self,
        before: LedgerSnapshot,
        optimistic: LedgerSnapshot,
        writes: list[_Write],
    ) -> None:
        if self._snapshot is optimistic:
            self._snapshot = before
            return
        # Something else was merged meanwhile: undo only our own writes
        snapshot = self._snapshot
        for write in reversed(writes):
            snapshot = write.undo(snapshot)
        self._snapshot = snapshot

    async def _commit_result(
        self,
        writes: list[_Write],
        success_message: str,
        correlation_id: Optional[UUID] = None,
        **extra: Any,
    ) -> MutationResult:
        records = [w.record for w in writes]
        error = await self._commit(writes, correlation_id or create_correlation_id())
        if error is not None:
            return MutationResult(
                success=False,
                message=f"Could not save to storage: {error}",
                records=records,
                **extra,
            )
        return MutationResult(success=True, message=success_message, records=records, **extra)

    # =========================================================================
    # PARTNERS AND PROJECTS
    # =========================================================================

    async def add_partner(self, partner: Partner) -> MutationResult:
        if self._snapshot.has_partner(partner.id):
            return MutationResult(success=False, message=f"Partner {partner.id} already exists")
        return await self._commit_result(
            [_Write(EntityKind.PARTNERS, "insert", partner)],
            f"Added partner {partner.name}",
        )

    async def delete_partner(self, partner_id: str) -> MutationResult:
        """Refused while any transaction still references the partner."""
        partner = self._snapshot.get_partner(partner_id)
        if partner is None:
            return MutationResult(success=False, message=f"Partner {partner_id} not found")

        if self._snapshot.exists_transaction_for_partner(partner_id):
            await self._audit.log(AuditEventBuilder.partner_delete_blocked(partner_id))
            return MutationResult(
                success=False,
                message=f"{partner.name} still has transactions and cannot be deleted",
            )

        return await self._commit_result(
            [_Write(EntityKind.PARTNERS, "delete", partner)],
            f"Deleted partner {partner.name}",
        )

    async def add_project(self, project: Project) -> MutationResult:
        if self._snapshot.has_project(project.id):
            return MutationResult(success=False, message=f"Project {project.id} already exists")
        return await self._commit_result(
            [_Write(EntityKind.PROJECTS, "insert", project)],
            f"Added project {project.name}",
        )

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def _check_references(self, transaction: Transaction) -> Optional[str]:
        """Same rules as record_direct: references, amount and partner requirements."""
        issues = self._engine.validate_transaction(self._snapshot, transaction)
        errors = [i.message for i in issues if i.severity == "error"]
        return "; ".join(errors) if errors else None

    async def add_transaction(self, transaction: Transaction) -> MutationResult:
        """Add a ready-made record without allocation."""
        error = self._check_references(transaction)
        if error is None and self._snapshot.get_transaction(transaction.id) is not None:
            error = f"Transaction {transaction.id} already exists"
        if error:
            return MutationResult(success=False, message=error)
        return await self._commit_result(
            [_Write(EntityKind.TRANSACTIONS, "insert", transaction)],
            "Transaction saved",
        )

    async def update_transaction(self, transaction: Transaction) -> MutationResult:
        """Replace a record by id."""
        previous = self._snapshot.get_transaction(transaction.id)
        if previous is None:
            return MutationResult(success=False, message=f"Transaction {transaction.id} not found")
        error = self._check_references(transaction)
        if error:
            return MutationResult(success=False, message=error)
        return await self._commit_result(
            [_Write(EntityKind.TRANSACTIONS, "update", transaction, previous)],
            "Transaction updated",
        )

    async def delete_transaction(
        self,
        transaction_id: str,
        cascade_linked: Optional[bool] = None,
    ) -> MutationResult:
        """
        Delete a record.

        The other side of a cross-project transfer is left in place unless
        cascade_linked is set; its id is returned so the caller can warn.
        """
        transaction = self._snapshot.get_transaction(transaction_id)
        if transaction is None:
            return MutationResult(success=False, message=f"Transaction {transaction_id} not found")

        cascade = self._cascade_default if cascade_linked is None else cascade_linked
        writes = [_Write(EntityKind.TRANSACTIONS, "delete", transaction)]
        linked = None

        sibling = self._snapshot.linked_sibling(transaction)
        if sibling is not None and cascade:
            writes.append(_Write(EntityKind.TRANSACTIONS, "delete", sibling))
        elif sibling is not None:
            linked = sibling.id

        message = "Transaction deleted"
        if linked:
            message += " (the linked transfer entry on the other project was kept)"
        return await self._commit_result(writes, message, linked_transaction_id=linked)

    # =========================================================================
    # ALLOCATION
    # =========================================================================

    async def _apply_allocation(
        self,
        result: AllocationResult,
        project_id: str,
        amount: str,
    ) -> MutationResult:
        summary = self._engine.get_user_friendly_summary(result)

        if not result.success:
            await self._audit.log_allocation_rejected(
                project_id=project_id,
                issues=[issue.model_dump() for issue in result.issues],
                correlation_id=result.request_id,
            )
            return MutationResult(success=False, message=summary, allocation=result)

        writes = []
        if result.updated is not None:
            previous = self._snapshot.get_transaction(result.updated.id)
            writes.append(_Write(EntityKind.TRANSACTIONS, "update", result.updated, previous))
        writes.extend(_Write(EntityKind.TRANSACTIONS, "insert", t) for t in result.entries)

        outcome = await self._commit_result(
            writes, summary, correlation_id=result.request_id, allocation=result,
        )
        if outcome.success:
            await self._audit.log_allocation_applied(
                project_id=project_id,
                amount=amount,
                entry_ids=[w.record.id for w in writes],
                correlation_id=result.request_id,
            )
        return outcome

    async def record_expense(self, request: ExpenseRequest) -> MutationResult:
        """Allocate a new expense and save every record it produces."""
        result = self._engine.allocate_expense(self._snapshot, request)
        return await self._apply_allocation(result, request.project_id, str(request.amount))

    async def edit_expense(self, transaction_id: str, request: ExpenseRequest) -> MutationResult:
        """Rewrite an expense and its funding source."""
        result = self._engine.reallocate_expense(self._snapshot, transaction_id, request)
        return await self._apply_allocation(result, request.project_id, str(request.amount))

    async def record_direct(
        self,
        request: TransactionRequest,
        transaction_id: Optional[str] = None,
    ) -> MutationResult:
        """Income, investment, withdrawal or a plain expense; optionally rewriting one."""
        result = self._engine.record_direct(self._snapshot, request, transaction_id)
        return await self._apply_allocation(result, request.project_id, str(request.amount))

    # =========================================================================
    # REMOTE CHANGE EVENTS
    # =========================================================================

    async def apply_change(self, kind: Union[EntityKind, str], payload: dict[str, Any]) -> bool:
        """
        Merge one remote change event.

        Returns True if the ledger changed. A malformed event is logged
        and leaves the ledger untouched.
        """
        try:
            kind = EntityKind(kind)
            event = parse_change_payload(payload)
            self._snapshot, applied = merge_change(self._snapshot, kind, event)
        except ValueError as e:
            table = kind.value if isinstance(kind, EntityKind) else kind
            logger.warning("change_event_rejected", table=table, error=str(e))
            return False

        await self._audit.log(AuditEventBuilder.change_event(
            entity_type=kind.value,
            entity_id=event.record_id or "",
            change_type=event.event_type.value,
            applied=applied,
        ))
        return applied

    # =========================================================================
    # IMPORT / EXPORT
    # =========================================================================

    async def import_snapshot(self, data: Union[str, bytes, dict]) -> MutationResult:
        """
        Replace the whole ledger from an export file. Local mode only.

        The file must hold partners, projects and transactions; anything
        else is rejected and the current ledger is kept.
        """
        if self._remote is not None:
            reason = "Import is only available in local mode"
            await self._audit.log(AuditEventBuilder.import_rejected(reason))
            return MutationResult(success=False, message=reason)

        try:
            raw = json.loads(data) if isinstance(data, (str, bytes)) else data
            if not isinstance(raw, dict):
                raise ValueError("Top level must be an object")
            snapshot = LedgerSnapshot.from_export_dict(raw)
            problems = snapshot.integrity_errors()
            if problems:
                raise ValueError("; ".join(problems))
        except (TypeError, ValueError, ValidationError) as e:
            await self._audit.log(AuditEventBuilder.import_rejected(str(e)))
            return MutationResult(success=False, message=f"Invalid backup file: {e}")

        previous = self._snapshot
        self._snapshot = snapshot
        if self._local is not None:
            try:
                self._local.save(snapshot)
            except StorageError as e:
                self._snapshot = previous
                await self._audit.log_error("local_save_failed", str(e))
                return MutationResult(success=False, message=f"Could not save imported data: {e}")

        await self._audit.log(AuditEventBuilder.snapshot_imported(self._counts()))
        return MutationResult(success=True, message="Data imported")

    def export_snapshot(self) -> str:
        """Pretty-printed JSON of the current ledger."""
        event = AuditEventBuilder.snapshot_exported(self._counts())
        logger.info("audit_event", **event.to_log_dict())
        return json.dumps(self._snapshot.to_export_dict(), indent=2, ensure_ascii=False)

    @staticmethod
    def export_filename(today: Optional[date] = None) -> str:
        today = today or date.today()
        return f"CoInvest-Backup-{today.isoformat()}.json"

    def _counts(self) -> dict[str, int]:
        return {kind.value: len(self._snapshot.records(kind)) for kind in EntityKind}
