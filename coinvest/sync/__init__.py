"""Keeps the in-memory ledger and its storage in step."""

from coinvest.sync.changes import (
    ChangeEvent,
    ChangeType,
    diff_snapshots,
    merge_change,
    parse_change_payload,
)
from coinvest.sync.coordinator import MutationResult, SyncCoordinator

__all__ = [
    "ChangeEvent",
    "ChangeType",
    "MutationResult",
    "SyncCoordinator",
    "diff_snapshots",
    "merge_change",
    "parse_change_payload",
]
