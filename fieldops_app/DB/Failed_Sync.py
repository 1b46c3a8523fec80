# Failed_Sync.py
# Description: Durable queue of records whose download or upload failed (FailedSync table).
#
"""
Failed_Sync.py
--------------

`FailedOpTracker` stores (table id, record id, operation) triples for records
that could not be synchronised. It does no network I/O: a retry pass reads
`list_pending()`, replays each entry and calls `clear()` on success.

`record()` never deduplicates. Callers that need idempotency use `exists()`
first, or `record_once()`.

For downloads the record id is the server key; for uploads it is the local key.
"""
# Imports
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Union
#
# 3rd-Party Imports
#
# Local Imports
from fieldops_app.Constants import OP_DOWNLOAD, OP_UPLOAD
from fieldops_app.DB.FieldOps_DB import FieldOpsDB, InputError
#
########################################################################################################################
#
# Functions:

logger = logging.getLogger(__name__)

_OPERATIONS = (OP_DOWNLOAD, OP_UPLOAD)


@dataclass(frozen=True)
class FailedOperation:
    row_id: int
    table_id: int
    data_id: int
    operation: str = OP_DOWNLOAD


def _table_id(kind: Union[int, Any]) -> int:
    """Accepts a TableId, a plain int or anything carrying a `table_id`."""
    return int(getattr(kind, 'table_id', kind))


def _check_operation(operation: str):
    if operation not in _OPERATIONS:
        raise InputError(f"Unknown sync operation '{operation}', expected one of {_OPERATIONS}")


class FailedOpTracker:
    def __init__(self, db: FieldOpsDB):
        self.db = db

    def record(self, kind, data_id: int, operation: str = OP_DOWNLOAD) -> int:
        """Appends a failed operation and returns its row id."""
        _check_operation(operation)
        with self.db.transaction():
            cursor = self.db.execute_query(
                "INSERT INTO FailedSync (table_id, data_id, operation) VALUES (?, ?, ?)",
                (_table_id(kind), int(data_id), operation))
        logger.info(f"Recorded failed {operation} for table {_table_id(kind)} record {data_id}")
        return int(cursor.lastrowid)

    def exists(self, kind, data_id: int, operation: str = OP_DOWNLOAD) -> bool:
        row = self.db.fetch_one(
            "SELECT 1 AS found FROM FailedSync WHERE table_id = ? AND data_id = ? AND operation = ? LIMIT 1",
            (_table_id(kind), int(data_id), operation))
        return row is not None

    def record_once(self, kind, data_id: int, operation: str = OP_DOWNLOAD) -> bool:
        """Records the failure unless an identical entry is pending. Returns True when a row was added."""
        with self.db.transaction():
            if self.exists(kind, data_id, operation):
                return False
            self.record(kind, data_id, operation)
        return True

    def list_pending(self, kind=None, operation: Optional[str] = None) -> List[FailedOperation]:
        query = "SELECT id, table_id, data_id, operation FROM FailedSync"
        clauses, params = [], []
        if kind is not None:
            clauses.append("table_id = ?")
            params.append(_table_id(kind))
        if operation is not None:
            _check_operation(operation)
            clauses.append("operation = ?")
            params.append(operation)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY id"
        return [FailedOperation(row_id=row['id'], table_id=row['table_id'], data_id=row['data_id'],
                                operation=row['operation'])
                for row in self.db.fetch_all(query, tuple(params))]

    def clear(self, kind, data_id: int, operation: Optional[str] = None) -> int:
        """Deletes every pending entry for (kind, data_id), optionally only for one operation."""
        query = "DELETE FROM FailedSync WHERE table_id = ? AND data_id = ?"
        params = [_table_id(kind), int(data_id)]
        if operation is not None:
            _check_operation(operation)
            query += " AND operation = ?"
            params.append(operation)
        with self.db.transaction():
            cursor = self.db.execute_query(query, tuple(params))
        if cursor.rowcount:
            logger.info(f"Cleared {cursor.rowcount} failed entries for table {_table_id(kind)} record {data_id}")
        return cursor.rowcount

    def count(self) -> int:
        return int(self.db.fetch_one("SELECT COUNT(*) AS n FROM FailedSync")['n'])

#
# End of Failed_Sync.py
########################################################################################################################
