"""
Remote Schema Mapping

The snapshot and export shape uses camelCase field names; the remote
tables use snake_case column names. This module is the ONLY place the
two spellings meet. Both directions read the same table, so a new
field is added in exactly one spot.
"""

from typing import Any

from coinvest.models.ledger import EntityKind, LedgerRecord, RECORD_TYPES


# camelCase snapshot field -> snake_case remote column, in column order
REMOTE_FIELD_NAMES: dict[EntityKind, dict[str, str]] = {
    EntityKind.PARTNERS: {
        "id": "id",
        "name": "name",
        "avatar": "avatar",
        "color": "color",
    },
    EntityKind.PROJECTS: {
        "id": "id",
        "name": "name",
        "description": "description",
        "status": "status",
        "startDate": "start_date",
    },
    EntityKind.TRANSACTIONS: {
        "id": "id",
        "projectId": "project_id",
        "partnerId": "partner_id",
        "type": "type",
        "amount": "amount",
        "date": "date",
        "note": "note",
        "linkedTransactionId": "linked_transaction_id",
    },
}


def remote_columns(kind: EntityKind) -> list[str]:
    """Remote column names for a table, in order."""
    return list(REMOTE_FIELD_NAMES[kind].values())


def to_remote_row(kind: EntityKind, record: LedgerRecord) -> dict[str, Any]:
    """
    Record -> remote row keyed by snake_case column.

    Every column is present; absent optional values are None.
    """
    data = record.to_record()
    return {
        remote: data.get(local)
        for local, remote in REMOTE_FIELD_NAMES[kind].items()
    }


def from_remote_record(kind: EntityKind, data: dict[str, Any]) -> LedgerRecord:
    """
    Remote row -> validated record.

    Accepts snake_case or camelCase keys (or a mix). Unknown columns,
    such as server-side timestamps, are ignored.

    Raises:
        pydantic.ValidationError: If the row does not describe a valid record
    """
    renamed = {}
    for local, remote in REMOTE_FIELD_NAMES[kind].items():
        if remote in data:
            renamed[local] = data[remote]
        elif local in data:
            renamed[local] = data[local]
    return RECORD_TYPES[kind].model_validate(renamed)
