# Identity_Map.py
# Description: Local key / server key bookkeeping and the upsert rule for syncable rows.
#
"""
Identity_Map.py
---------------

Every syncable row has two identities:

- the local key (``id``), assigned by SQLite on insert and never sent to the server
- the server key (``<entity>Id``), assigned by the server, unique when not -1

`IdentityMap.upsert` matches on the server key and updates in place, so the
local key of a server record never changes once the row exists. A row whose
server key is still -1 never matches anything and is always inserted.
"""
# Imports
import logging
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional
#
# 3rd-Party Imports
#
# Local Imports
from fieldops_app.Constants import UNASSIGNED_ID
from fieldops_app.DB.FieldOps_DB import ConflictError, FieldOpsDB, InputError

if TYPE_CHECKING:
    from fieldops_app.Sync.entities import EntityKind
#
########################################################################################################################
#
# Functions:

logger = logging.getLogger(__name__)


class IdentityMap:
    def __init__(self, db: FieldOpsDB):
        self.db = db

    def find_by_server_key(self, kind: 'EntityKind', server_key: int) -> Optional[Dict[str, Any]]:
        if server_key is None or int(server_key) == UNASSIGNED_ID:
            return None
        return self.db.fetch_one(
            f"SELECT * FROM {kind.table} WHERE {kind.server_key} = ? LIMIT 1", (int(server_key),))

    def find_by_local_key(self, kind: 'EntityKind', local_key: int) -> Optional[Dict[str, Any]]:
        return self.db.fetch_one(f"SELECT * FROM {kind.table} WHERE id = ?", (int(local_key),))

    def upsert(self, kind: 'EntityKind', record: Mapping[str, Any]) -> int:
        """
        Writes `record` and returns its local key.

        Matches an existing row by server key; when found, the synced columns are
        updated in place and the row keeps its local key. Otherwise a new row is
        inserted. Runs inside the caller's transaction when one is open.

        Raises:
            InputError: If the record carries no server key column.
            ConflictError: If the write violates the server key uniqueness.
        """
        if kind.server_key not in record:
            raise InputError(f"{kind.table} record has no '{kind.server_key}' column")
        server_key = record[kind.server_key]
        server_key = UNASSIGNED_ID if server_key is None else int(server_key)
        columns = [col for col in kind.columns if col in record]
        values = [record[col] for col in columns]

        with self.db.transaction():
            existing = self.find_by_server_key(kind, server_key)
            if existing is not None:
                assignments = ", ".join(f"{col} = ?" for col in columns)
                self.db.execute_query(
                    f"UPDATE {kind.table} SET {assignments} WHERE id = ?", tuple(values) + (existing['id'],))
                logger.debug(f"Updated {kind.table} local={existing['id']} server={server_key}")
                return int(existing['id'])

            placeholders = ", ".join("?" for _ in columns)
            cursor = self.db.execute_query(
                f"INSERT INTO {kind.table} ({', '.join(columns)}) VALUES ({placeholders})", tuple(values))
            local_key = int(cursor.lastrowid)
            logger.debug(f"Inserted {kind.table} local={local_key} server={server_key}")
            return local_key

    def assign_server_key(self, kind: 'EntityKind', local_key: int, server_key: int) -> None:
        """
        Records the server key issued for a locally created row. The local key is untouched.

        Raises:
            InputError: If the row does not exist or `server_key` is the unassigned sentinel.
            ConflictError: If another row already holds `server_key`.
        """
        if server_key is None or int(server_key) == UNASSIGNED_ID:
            raise InputError(f"Cannot assign the unassigned sentinel as a server key for {kind.table}")
        with self.db.transaction():
            holder = self.find_by_server_key(kind, server_key)
            if holder is not None and int(holder['id']) != int(local_key):
                raise ConflictError(f"Server key {server_key} already belongs to local row {holder['id']}",
                                    entity=kind.table, entity_id=server_key)
            cursor = self.db.execute_query(
                f"UPDATE {kind.table} SET {kind.server_key} = ? WHERE id = ?", (int(server_key), int(local_key)))
            if cursor.rowcount == 0:
                raise InputError(f"{kind.table} has no row with local key {local_key}")
        logger.info(f"Assigned server key {server_key} to {kind.table} local row {local_key}")

#
# End of Identity_Map.py
########################################################################################################################
