"""
Allocation Engine

Turns one "record an expense of A on project P" request into the
concrete ledger records it implies, depending on who paid:

    Central pool     -> one EXPENSE on P, no partner
    Partner X        -> one EXPENSE on P attributed to X
                        (counted as X's investment by the aggregations)
    Other project Q  -> one EXPENSE on P and a mirror EXPENSE on Q,
                        linked to each other through linked_transaction_id

A split request does the same for every positive sub-amount.

Processing happens in two stages, like any form submission:

STAGE 1 - REQUEST VALIDATION:
- Target project exists
- Amount is positive
- Every funding source resolves to the pool, a partner or another project
- Split sub-amounts add up to the requested amount (within tolerance)

STAGE 2 - RECORD BUILDING:
- Only reached when stage 1 found no errors
- All records are built together or not at all

IMPORTANT: The engine NEVER raises for bad input and NEVER fixes it
silently. It returns an AllocationResult that says what is wrong.
It also never touches storage: the sync coordinator applies the records.
"""

from decimal import Decimal
from typing import Optional

from coinvest.config import get_settings
from coinvest.models.allocation import (
    POOL_KEY,
    AllocationIssue,
    AllocationResult,
    ExpenseRequest,
    FundingKind,
    FundingSource,
    TransactionRequest,
)
from coinvest.models.ledger import (
    LedgerSnapshot,
    Project,
    Transaction,
    TransactionType,
    new_id,
)


class AllocationEngine:
    """
    Builds ledger records from user requests.

    Pure with respect to the snapshot it is given: the snapshot is only
    read, and the result lists the records the caller should apply.
    """

    def __init__(
        self,
        split_tolerance: Optional[Decimal] = None,
        require_partner_for_withdrawal: Optional[bool] = None,
    ):
        """
        Initialize the engine.

        Args:
            split_tolerance: Allowed rounding slack between split total and
                            requested amount. Defaults to app settings.
            require_partner_for_withdrawal: Reject withdrawals without a
                            partner. Defaults to app settings.
        """
        settings = get_settings().app
        self._tolerance = (
            split_tolerance if split_tolerance is not None
            else settings.split_tolerance
        )
        self._require_withdrawal_partner = (
            require_partner_for_withdrawal
            if require_partner_for_withdrawal is not None
            else settings.require_partner_for_withdrawal
        )

    # =========================================================================
    # STAGE 1 - VALIDATION
    # =========================================================================

    def _validate_target(
        self,
        snapshot: LedgerSnapshot,
        project_id: str,
        amount: Decimal,
    ) -> list[AllocationIssue]:
        issues = []

        if not project_id:
            issues.append(AllocationIssue(
                field="project_id",
                issue_type="missing",
                message="A project must be selected",
                suggested_fix="Pick the project this money belongs to",
            ))
        elif not snapshot.has_project(project_id):
            issues.append(AllocationIssue(
                field="project_id",
                issue_type="unknown_reference",
                message=f"Project {project_id} does not exist",
            ))

        if amount is None or amount <= 0:
            issues.append(AllocationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                suggested_fix="Enter a positive amount",
            ))

        return issues

    def _check_source(
        self,
        snapshot: LedgerSnapshot,
        source: FundingSource,
        project_id: str,
    ) -> Optional[AllocationIssue]:
        """Check that a resolved source points at something real."""
        if source.kind == FundingKind.PARTNER and not snapshot.has_partner(source.source_id):
            return AllocationIssue(
                field="funding",
                issue_type="unknown_reference",
                message=f"Partner {source.source_id} does not exist",
            )
        if source.kind == FundingKind.PROJECT:
            if source.source_id == project_id:
                return AllocationIssue(
                    field="funding",
                    issue_type="self_funding",
                    message="A project cannot fund its own expense",
                    suggested_fix="Choose the central pool or a different project",
                )
            if not snapshot.has_project(source.source_id):
                return AllocationIssue(
                    field="funding",
                    issue_type="unknown_reference",
                    message=f"Project {source.source_id} does not exist",
                )
        return None

    def _resolve_key(
        self,
        snapshot: LedgerSnapshot,
        key: str,
    ) -> Optional[FundingSource]:
        """Split keys: "POOL", then partner ids, then project ids."""
        if key == POOL_KEY:
            return FundingSource.pool()
        if snapshot.has_partner(key):
            return FundingSource.partner(key)
        if snapshot.has_project(key):
            return FundingSource.project(key)
        return None

    def _resolve_sources(
        self,
        snapshot: LedgerSnapshot,
        request: ExpenseRequest,
    ) -> tuple[list[tuple[FundingSource, Decimal]], list[AllocationIssue]]:
        """
        Turn the funding spec into (source, amount) pairs.

        Returns: (sources, issues)
        """
        funding = request.funding
        issues = []

        if not funding.is_split:
            issue = self._check_source(snapshot, funding.source, request.project_id)
            if issue:
                issues.append(issue)
            return [(funding.source, request.amount)], issues

        sources = []
        split_total = Decimal("0")

        for key, sub_amount in funding.split.items():
            split_total += sub_amount

            if sub_amount == 0:
                continue
            if sub_amount < 0:
                issues.append(AllocationIssue(
                    field=f"split.{key}",
                    issue_type="invalid_value",
                    message=f"Split amount for {key} cannot be negative",
                ))
                continue

            source = self._resolve_key(snapshot, key)
            if source is None:
                issues.append(AllocationIssue(
                    field=f"split.{key}",
                    issue_type="unknown_reference",
                    message=f"Funding source {key} is neither the pool, a partner nor a project",
                ))
                continue

            issue = self._check_source(snapshot, source, request.project_id)
            if issue:
                issues.append(issue)
                continue

            sources.append((source, sub_amount))

        if not sources and not issues:
            issues.append(AllocationIssue(
                field="split",
                issue_type="empty",
                message="Split payment has no positive amounts",
                suggested_fix="Enter at least one amount",
            ))

        if request.amount is not None and abs(split_total - request.amount) > self._tolerance:
            issues.append(AllocationIssue(
                field="split",
                issue_type="split_mismatch",
                message=(
                    f"Split total ({split_total:,}) does not match "
                    f"the expense amount ({request.amount:,})"
                ),
                suggested_fix="Adjust the split so it adds up to the expense amount",
            ))

        return sources, issues

    # =========================================================================
    # STAGE 2 - RECORD BUILDING
    # =========================================================================

    def _expense(
        self,
        request: ExpenseRequest,
        project_id: str,
        amount: Decimal,
        note: str,
        partner_id: Optional[str] = None,
        record_id: Optional[str] = None,
        linked_id: Optional[str] = None,
    ) -> Transaction:
        return Transaction(
            id=record_id or new_id(),
            project_id=project_id,
            partner_id=partner_id,
            type=TransactionType.EXPENSE,
            amount=amount,
            date=request.date,
            note=note.strip(),
            linked_transaction_id=linked_id,
        )

    def _entries_for_source(
        self,
        snapshot: LedgerSnapshot,
        request: ExpenseRequest,
        project: Project,
        source: FundingSource,
        amount: Decimal,
    ) -> list[Transaction]:
        note = request.note
        split = request.funding.is_split

        if source.kind == FundingKind.PROJECT:
            source_project = snapshot.get_project(source.source_id)
            main_id, mirror_id = new_id(), new_id()
            return [
                self._expense(
                    request, project.id, amount,
                    f"{note} (funded from project: {source_project.name})",
                    record_id=main_id, linked_id=mirror_id,
                ),
                self._expense(
                    request, source_project.id, amount,
                    f"(transferred to project: {project.name}) {note}",
                    record_id=mirror_id, linked_id=main_id,
                ),
            ]

        if source.kind == FundingKind.PARTNER:
            partner = snapshot.get_partner(source.source_id)
            text = f"{note} (paid by {partner.name})" if split else note
            return [self._expense(request, project.id, amount, text, partner_id=partner.id)]

        text = f"{note} (central pool)" if split else note
        return [self._expense(request, project.id, amount, text)]

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def allocate_expense(
        self,
        snapshot: LedgerSnapshot,
        request: ExpenseRequest,
    ) -> AllocationResult:
        """
        Allocate a new expense.

        Args:
            snapshot: Current ledger (read only)
            request: The expense and its funding

        Returns:
            AllocationResult with the records to create, or the issues found
        """
        issues = self._validate_target(snapshot, request.project_id, request.amount)
        sources, source_issues = self._resolve_sources(snapshot, request)
        issues.extend(source_issues)

        if any(issue.severity == "error" for issue in issues):
            return AllocationResult(
                request_id=request.request_id,
                success=False,
                issues=issues,
            )

        project = snapshot.get_project(request.project_id)
        entries = []
        for source, amount in sources:
            entries.extend(
                self._entries_for_source(snapshot, request, project, source, amount)
            )

        return AllocationResult(
            request_id=request.request_id,
            success=True,
            entries=entries,
            issues=issues,
        )

    def reallocate_expense(
        self,
        snapshot: LedgerSnapshot,
        transaction_id: str,
        request: ExpenseRequest,
    ) -> AllocationResult:
        """
        Edit an existing expense and its single funding source.

        The original record keeps its id and becomes an EXPENSE whatever its
        previous type was. When the new source is another project, a fresh
        mirror entry is created on that project. Mirror
        entries from earlier edits are left as they are.
        """
        issues = []
        existing = snapshot.get_transaction(transaction_id)

        if existing is None:
            issues.append(AllocationIssue(
                field="transaction_id",
                issue_type="unknown_reference",
                message=f"Transaction {transaction_id} does not exist",
            ))

        if request.funding.is_split:
            issues.append(AllocationIssue(
                field="funding",
                issue_type="unsupported",
                message="Split payment is only available for new expenses",
            ))
            return AllocationResult(
                request_id=request.request_id, success=False, issues=issues,
            )

        issues.extend(self._validate_target(snapshot, request.project_id, request.amount))
        source = request.funding.source
        issue = self._check_source(snapshot, source, request.project_id)
        if issue:
            issues.append(issue)

        if any(i.severity == "error" for i in issues):
            return AllocationResult(
                request_id=request.request_id, success=False, issues=issues,
            )

        project = snapshot.get_project(request.project_id)
        entries = []

        if source.kind == FundingKind.PROJECT:
            source_project = snapshot.get_project(source.source_id)
            mirror_id = new_id()
            updated = self._expense(
                request, project.id, request.amount,
                f"{request.note} (funded from project: {source_project.name})",
                record_id=existing.id, linked_id=mirror_id,
            )
            entries.append(self._expense(
                request, source_project.id, request.amount,
                f"(transferred on edit to project: {project.name}) {request.note}",
                record_id=mirror_id, linked_id=existing.id,
            ))
        else:
            updated = self._expense(
                request, project.id, request.amount, request.note,
                partner_id=source.source_id if source.kind == FundingKind.PARTNER else None,
                record_id=existing.id,
            )

        return AllocationResult(
            request_id=request.request_id,
            success=True,
            entries=entries,
            updated=updated,
            issues=issues,
        )

    def _validate_direct(
        self,
        snapshot: LedgerSnapshot,
        request: TransactionRequest,
    ) -> list[AllocationIssue]:
        issues = self._validate_target(snapshot, request.project_id, request.amount)

        if request.partner_id:
            if not snapshot.has_partner(request.partner_id):
                issues.append(AllocationIssue(
                    field="partner_id",
                    issue_type="unknown_reference",
                    message=f"Partner {request.partner_id} does not exist",
                ))
        elif request.type == TransactionType.INVESTMENT or (
            request.type == TransactionType.WITHDRAWAL and self._require_withdrawal_partner
        ):
            issues.append(AllocationIssue(
                field="partner_id",
                issue_type="missing",
                message=f"{request.type.value.capitalize()} needs a partner",
                suggested_fix="Select which partner put in or took out the money",
            ))

        return issues

    def validate_transaction(
        self,
        snapshot: LedgerSnapshot,
        transaction: Transaction,
    ) -> list[AllocationIssue]:
        """Direct-record rules applied to a ready-made transaction."""
        request = TransactionRequest(
            project_id=transaction.project_id,
            type=transaction.type,
            amount=transaction.amount,
            date=transaction.date,
            note=transaction.note,
            partner_id=transaction.partner_id,
        )
        return self._validate_direct(snapshot, request)

    def record_direct(
        self,
        snapshot: LedgerSnapshot,
        request: TransactionRequest,
        transaction_id: Optional[str] = None,
    ) -> AllocationResult:
        """
        Build a single record without allocation.

        Used for INCOME, INVESTMENT and WITHDRAWAL, and for expenses
        entered without a funding source. When transaction_id is given the
        existing record is rewritten under the same id.
        """
        issues = self._validate_direct(snapshot, request)

        if transaction_id is not None and snapshot.get_transaction(transaction_id) is None:
            issues.append(AllocationIssue(
                field="transaction_id",
                issue_type="unknown_reference",
                message=f"Transaction {transaction_id} does not exist",
            ))

        if any(i.severity == "error" for i in issues):
            return AllocationResult(
                request_id=request.request_id, success=False, issues=issues,
            )

        record = Transaction(
            id=transaction_id or new_id(),
            project_id=request.project_id,
            partner_id=request.partner_id,
            type=request.type,
            amount=request.amount,
            date=request.date,
            note=request.note.strip(),
        )

        if transaction_id is not None:
            return AllocationResult(
                request_id=request.request_id, success=True, updated=record, issues=issues,
            )
        return AllocationResult(
            request_id=request.request_id, success=True, entries=[record], issues=issues,
        )

    def get_user_friendly_summary(self, result: AllocationResult) -> str:
        """
        Summary shown to the user after a submit.
        """
        if result.success:
            count = len(result.entries) + (1 if result.updated else 0)
            return f"✅ Saved {count} record{'s' if count != 1 else ''}."

        lines = ["❌ Nothing was saved:"]
        for issue in result.issues:
            if issue.severity == "error":
                lines.append(f"   • {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     💡 {issue.suggested_fix}")
        return "\n".join(lines)
