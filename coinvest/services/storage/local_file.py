"""
Local Snapshot Store

Keeps the whole ledger in one JSON file on this machine. Used when no
remote store is configured. The file holds the same camelCase shape as
an export, so a backup file can be copied into place directly.
"""

import json
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from coinvest.models.ledger import LedgerSnapshot
from coinvest.services.storage.interface import StorageError


class LocalSnapshotStore:
    """Whole-snapshot persistence in a single JSON file."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def load(self) -> Optional[LedgerSnapshot]:
        """
        Read the saved snapshot.

        Returns:
            The snapshot, or None if nothing has been saved yet

        Raises:
            StorageError: If the file exists but cannot be parsed
        """
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return LedgerSnapshot.from_export_dict(data)
        except (OSError, ValueError, ValidationError) as e:
            raise StorageError(f"Saved ledger at {self._path} is unreadable: {e}")

    def save(self, snapshot: LedgerSnapshot) -> None:
        """Overwrite the file with the given snapshot."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                json.dumps(snapshot.to_export_dict(), indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as e:
            raise StorageError(f"Failed to save ledger to {self._path}: {e}")
