# Sync_Engine.py
# Description: Download/upload reconciliation between the local store and the FieldOps server.
#
"""
Sync_Engine.py
--------------

`SyncEngine` drives the per-table download passes, single-record retries and
uploads of locally created or edited rows.

Download pass for one table:

1. Read the table's watermark (`SyncTime`).
2. Fetch pages `part_no = 0, 1, ...` with the same `update_date`, stopping at
   the first page shorter than the page size.
3. Apply every page in its own transaction. Each record is merged under a
   SAVEPOINT; a record that fails is rolled back on its own and recorded in
   `FailedSync` for a single-id retry, and the rest of the page commits.
4. Persist the watermark the server returned with the final page, but only when
   every record of that page (and of every page before it) merged. A page with
   a failure ends the pass and leaves the watermark where it was, so the next
   natural pass downloads the same window again.

Network I/O is awaited; database work between two awaits is synchronous, so a
page transaction never interleaves with another coroutine's writes.
"""
# Imports
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from fieldops_app.Constants import OP_DOWNLOAD, OP_UPLOAD, SYNC_BATCH_LIMIT, UNASSIGNED_ID, UserType
from fieldops_app.DB.FieldOps_DB import FieldOpsDB, FieldOpsDBError, InputError
from fieldops_app.DB.Failed_Sync import FailedOpTracker
from fieldops_app.DB.Identity_Map import IdentityMap
from fieldops_app.DB.Sync_Time import SyncTimeRepository
from fieldops_app.Sync import entities
from fieldops_app.Sync.entities import EntityKind, get_kind
from fieldops_app.Sync.failures import (
    Failure, NetworkFailure, Result, ServerFailure, ValidationFailure, to_failure
)
from fieldops_app.Sync.Partial_Merge import PartialPayload, apply_partial, merge
from fieldops_app.api.client import FieldOpsAPIClient
from fieldops_app.api.schemas import DownloadParams
#
########################################################################################################################
#
# Functions:

# Tables a supplier never downloads.
_SUPPLIER_EXCLUDED = frozenset({
    entities.ORDERS.table, entities.ORDER_SUB.table, entities.ORDER_SUB_SUGGESTIONS.table,
    entities.CUSTOMERS.table, entities.SALESMAN.table, entities.SUPPLIERS.table,
})

# Shortage tables are only downloaded by the roles that act on them.
_ROLE_RESTRICTED = {
    entities.OUT_OF_STOCK_MASTER.table: frozenset({UserType.ADMIN, UserType.SUPPLIER}),
    entities.OUT_OF_STOCK_PRODUCTS.table: frozenset({UserType.ADMIN, UserType.STOREKEEPER, UserType.SUPPLIER}),
}

# A new parent is added together with its unsent children, sent as `items`.
# Unsent children share the parent's UUID; the link column is filled in on acknowledgement.
_NESTED_ITEMS: Dict[str, Tuple[EntityKind, str]] = {
    entities.OUT_OF_STOCK_MASTER.table: (entities.OUT_OF_STOCK_PRODUCTS, "oospMasterId"),
}

# Errors a single record may raise while merging; anything else aborts the page.
_RECORD_ERRORS = (InputError, FieldOpsDBError, ValueError, TypeError, KeyError)


@dataclass(frozen=True)
class UserContext:
    user_id: int
    user_type: UserType


@dataclass
class PageOutcome:
    merged: int = 0
    held: int = 0
    failed_ids: List[Any] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed_ids


@dataclass
class TableSyncStats:
    table: str
    pages: int = 0
    merged: int = 0
    held: int = 0
    failed: int = 0
    watermark: Optional[str] = None
    watermark_advanced: bool = False


@dataclass
class RetryOutcome:
    attempted: int = 0
    cleared: int = 0
    remaining: int = 0


@dataclass
class SyncReport:
    tables_synced: List[str] = field(default_factory=list)
    records_merged: int = 0
    failures_recorded: int = 0
    retry: RetryOutcome = field(default_factory=RetryOutcome)
    table_stats: Dict[str, TableSyncStats] = field(default_factory=dict)
    first_failure: Optional[Failure] = None

    def note_failure(self, failure: Failure):
        if self.first_failure is None:
            self.first_failure = failure


def is_permitted(kind: EntityKind, user_type: int) -> bool:
    """Role gate for downloads in a sync cycle."""
    if int(user_type) == UserType.SUPPLIER and kind.table in _SUPPLIER_EXCLUDED:
        return False
    allowed = _ROLE_RESTRICTED.get(kind.table)
    return allowed is None or int(user_type) in allowed


class SyncEngine:
    def __init__(self, db: FieldOpsDB, api_client: FieldOpsAPIClient, page_size: int = SYNC_BATCH_LIMIT,
                 identity_map: Optional[IdentityMap] = None, tracker: Optional[FailedOpTracker] = None,
                 watermarks: Optional[SyncTimeRepository] = None):
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self.db = db
        self.api = api_client
        self.page_size = page_size
        self.identity_map = identity_map or IdentityMap(db)
        self.tracker = tracker or FailedOpTracker(db)
        self.watermarks = watermarks or SyncTimeRepository(db)
        self._table_locks: Dict[str, asyncio.Lock] = {}
        logger.info(f"SyncEngine initialized for {db.db_path_str} against {api_client.base_url} (page size {page_size})")

    def _lock_for(self, kind: EntityKind) -> asyncio.Lock:
        lock = self._table_locks.get(kind.table)
        if lock is None:
            lock = self._table_locks[kind.table] = asyncio.Lock()
        return lock

    def permitted_kinds(self, user: UserContext) -> List[EntityKind]:
        return [kind for kind in entities.SYNC_ORDER if is_permitted(kind, user.user_type)]

    # --- Download ---
    async def download_batch(self, kind: EntityKind, watermark: Optional[str], page_number: int, page_size: int,
                             user: UserContext) -> Result[Tuple[List[Dict[str, Any]], Optional[str]]]:
        """
        Fetches one page of `kind` changed since `watermark`.

        The returned watermark is the server's `updated_date` when the page is the
        last one (shorter than `page_size`), otherwise the unchanged `watermark`:
        the pass is not finished until the short page arrives.
        """
        kind = get_kind(kind)
        try:
            params = DownloadParams(part_no=page_number, limit=page_size, user_type=int(user.user_type),
                                    user_id=int(user.user_id), update_date=watermark)
            envelope = await self.api.download(kind.download_endpoint, params)
        except Exception as e:
            failure = to_failure(e)
            logger.warning(f"Download of {kind.table} page {page_number} failed: {failure}")
            return Result.fail(failure)
        records = envelope.records
        next_watermark = (envelope.updated_date or watermark) if len(records) < page_size else watermark
        return Result.ok((records, next_watermark))

    def _record_failure(self, kind: EntityKind, raw: Any, operation: str) -> Optional[int]:
        data_id = raw.get("id") if isinstance(raw, dict) else None
        try:
            data_id = int(data_id)
        except (TypeError, ValueError):
            logger.error(f"{kind.table}: failed record carries no usable id, it cannot be retried: {raw!r:.200}")
            return None
        self.tracker.record_once(kind, data_id, operation)
        return data_id

    def _upload_pending(self, kind: EntityKind, raw: Any) -> bool:
        """True when the local copy of `raw` has changes still waiting to be uploaded."""
        if not kind.uploadable or not isinstance(raw, dict):
            return False
        try:
            server_key = int(raw.get("id"))
        except (TypeError, ValueError):
            return False
        row = self.identity_map.find_by_server_key(kind, server_key)
        return row is not None and self.tracker.exists(kind, row['id'], OP_UPLOAD)

    def apply_page(self, kind: EntityKind, records: Sequence[Dict[str, Any]],
                   next_watermark: Optional[str] = None) -> PageOutcome:
        """
        Merges one page in a single transaction with a savepoint per record.

        Failed records are rolled back individually and queued in FailedSync. A
        record whose local row still has an upload queued is held: the local copy
        wins until the upload's acknowledgement is merged back. The watermark is
        written in the same transaction, and only if nothing failed.
        """
        outcome = PageOutcome()
        with self.db.transaction():
            for index, raw in enumerate(records):
                if self._upload_pending(kind, raw):
                    logger.info(f"{kind.table}: record {raw.get('id')} has local changes waiting to upload, "
                                f"server copy held back")
                    outcome.held += 1
                    continue
                try:
                    with self.db.savepoint(f"sync_record_{index}"):
                        apply_partial(self.identity_map, PartialPayload.from_wire(kind, raw))
                    outcome.merged += 1
                except _RECORD_ERRORS as e:
                    logger.warning(f"{kind.table}: record {index} of page failed to merge: {e}")
                    outcome.failed_ids.append(self._record_failure(kind, raw, OP_DOWNLOAD))
            if outcome.complete and next_watermark is not None:
                self.watermarks.set_watermark(kind.table, next_watermark)
        return outcome

    async def download_table(self, kind, user: UserContext) -> Result[TableSyncStats]:
        """Runs the page loop for one table."""
        kind = get_kind(kind)
        stats = TableSyncStats(table=kind.table)
        async with self._lock_for(kind):
            watermark = self.watermarks.get_watermark(kind.table)
            stats.watermark = watermark
            page_number = 0
            while True:
                batch = await self.download_batch(kind, watermark, page_number, self.page_size, user)
                if batch.is_failure:
                    return Result.fail(batch.failure)
                records, next_watermark = batch.value
                try:
                    outcome = self.apply_page(kind, records, next_watermark)
                except Exception as e:
                    failure = to_failure(e)
                    logger.error(f"{kind.table}: page {page_number} could not be applied: {failure}")
                    return Result.fail(failure)
                stats.pages += 1
                stats.merged += outcome.merged
                stats.held += outcome.held
                stats.failed += len(outcome.failed_ids)
                if not outcome.complete:
                    logger.warning(f"{kind.table}: page {page_number} had {len(outcome.failed_ids)} failed record(s); "
                                   f"watermark stays at {watermark}")
                    break
                if len(records) < self.page_size:
                    if next_watermark != watermark:
                        stats.watermark = next_watermark
                        stats.watermark_advanced = True
                    break
                page_number += 1
        logger.info(f"{kind.table}: {stats.merged} merged, {stats.held} held, {stats.failed} failed "
                    f"over {stats.pages} page(s)")
        return Result.ok(stats)

    async def download_single(self, kind, server_key: int) -> Result[int]:
        """Fetches one record by server key (`?id=`) and merges it. Returns its local key."""
        kind = get_kind(kind)
        try:
            envelope = await self.api.download_single(kind.download_endpoint, int(server_key))
            records = envelope.records
            if not records:
                return Result.fail(ServerFailure(f"{kind.table} record {server_key} not returned by server"))
            with self.db.transaction():
                local_key = apply_partial(self.identity_map, PartialPayload.from_wire(kind, records[0]))
            return Result.ok(local_key)
        except Exception as e:
            failure = to_failure(e)
            logger.warning(f"Single-record download of {kind.table} {server_key} failed: {failure}")
            return Result.fail(failure)

    # --- Upload ---
    async def upload_local(self, kind, local_key: int, record_failure: bool = True) -> Result[int]:
        """
        Sends a local row to the server and returns the server key.

        Rows with an unassigned server key go to the kind's add endpoint, others to
        its update endpoint. The acknowledged record is merged back and the new
        server key stored against the unchanged local key. A failed upload is
        queued as an `upload` entry in FailedSync unless `record_failure` is False.
        """
        kind = get_kind(kind)
        row = self.identity_map.find_by_local_key(kind, local_key)
        if row is None:
            return Result.fail(ValidationFailure(f"{kind.table} has no row with local key {local_key}"))
        is_new = int(row[kind.server_key]) == UNASSIGNED_ID
        endpoint = kind.add_endpoint if is_new else kind.update_endpoint
        if not endpoint:
            return Result.fail(ValidationFailure(
                f"{kind.table} cannot be uploaded ({'add' if is_new else 'update'} is not supported)"))

        wire = PartialPayload.from_record(kind, row).to_wire_sentinels()
        nested = _NESTED_ITEMS.get(kind.table) if is_new else None
        children: List[Dict[str, Any]] = []
        if is_new:
            wire.pop("id", None)
        if nested is not None:
            children = self._unsent_children(nested, row)
            wire["items"] = [self._new_row_wire(nested[0], child) for child in children]
        try:
            ack = await self.api.upload(endpoint, wire)
            server_key = ack.server_key if ack.server_key is not None else (None if is_new else int(row[kind.server_key]))
            if server_key is None:
                raise InputError(f"{kind.table} upload acknowledged without a server id")
            with self.db.transaction(immediate=True):
                if is_new:
                    self.identity_map.assign_server_key(kind, local_key, server_key)
                current = self.identity_map.find_by_local_key(kind, local_key)
                merged = merge(PartialPayload.from_wire(kind, ack.record), current)
                self.identity_map.upsert(kind, merged)
                if nested is not None:
                    self._link_children(nested, children, ack.record.get("items"), server_key)
        except Exception as e:
            failure = to_failure(e)
            logger.warning(f"Upload of {kind.table} local row {local_key} failed: {failure}")
            if record_failure:
                try:
                    self.tracker.record_once(kind, local_key, OP_UPLOAD)
                except FieldOpsDBError as db_err:
                    logger.error(f"Could not queue failed upload of {kind.table} {local_key}: {db_err}")
            return Result.fail(failure)
        logger.info(f"Uploaded {kind.table} local row {local_key} (server key {server_key})")
        return Result.ok(server_key)

    @staticmethod
    def _new_row_wire(kind: EntityKind, row: Dict[str, Any]) -> Dict[str, Any]:
        wire = PartialPayload.from_record(kind, row).to_wire_sentinels()
        wire.pop("id", None)
        return wire

    def _unsent_children(self, nested: Tuple[EntityKind, str], parent: Dict[str, Any]) -> List[Dict[str, Any]]:
        child_kind, link_column = nested
        if not parent.get('UUID'):
            return []
        return self.db.fetch_all(
            f"SELECT * FROM {child_kind.table} WHERE {child_kind.server_key} = ? AND {link_column} = ? "
            f"AND UUID = ? ORDER BY id",
            (UNASSIGNED_ID, UNASSIGNED_ID, parent['UUID']))

    def _link_children(self, nested: Tuple[EntityKind, str], children: List[Dict[str, Any]],
                       acknowledged: Any, parent_key: int):
        """
        Points the sent children at the parent's new server key and merges the
        acknowledged items back, matched by position.
        """
        child_kind, link_column = nested
        items = acknowledged if isinstance(acknowledged, list) else []
        if len(items) != len(children):
            logger.warning(f"{child_kind.table}: {len(children)} item(s) sent, {len(items)} acknowledged; "
                           f"unacknowledged items stay without a server key")
        for index, child in enumerate(children):
            self.db.execute_query(f"UPDATE {child_kind.table} SET {link_column} = ? WHERE id = ?",
                                  (int(parent_key), child['id']))
            if index >= len(items):
                continue
            partial = PartialPayload.from_wire(child_kind, items[index])
            if partial.server_key is None:
                continue
            self.identity_map.assign_server_key(child_kind, child['id'], partial.server_key)
            current = self.identity_map.find_by_local_key(child_kind, child['id'])
            self.identity_map.upsert(child_kind, merge(partial, current))

    # --- Retry ---
    async def retry_failed(self) -> Result[RetryOutcome]:
        """
        Replays every pending FailedSync entry once.

        Successful entries are cleared; the rest stay queued. A network failure
        ends the pass early and is returned as the failure.
        """
        outcome = RetryOutcome()
        try:
            pending = self.tracker.list_pending()
        except FieldOpsDBError as e:
            return Result.fail(to_failure(e))
        for entry in pending:
            try:
                kind = get_kind(entry.table_id)
            except KeyError:
                logger.warning(f"Skipping failed entry {entry.row_id}: unknown table id {entry.table_id}")
                continue
            outcome.attempted += 1
            if entry.operation == OP_UPLOAD:
                result = await self.upload_local(kind, entry.data_id, record_failure=False)
            else:
                result = await self.download_single(kind, entry.data_id)
            if result.is_ok:
                self.tracker.clear(kind, entry.data_id, entry.operation)
                outcome.cleared += 1
            elif isinstance(result.failure, NetworkFailure):
                outcome.remaining = self.tracker.count()
                return Result.fail(result.failure)
        outcome.remaining = self.tracker.count()
        logger.info(f"Retry pass: {outcome.cleared}/{outcome.attempted} cleared, {outcome.remaining} pending")
        return Result.ok(outcome)

    # --- Cycles ---
    async def run_sync_cycle(self, user: UserContext) -> Result[SyncReport]:
        """
        Retry pass, then a download pass for every table the user's role may see,
        in dependency order. The retry pass also posts local edits queued as
        uploads (workflow transitions, reported shortages), so they reach the
        server before its copies are downloaded. A network failure aborts the
        cycle; already committed pages stay, and stored data remains readable.
        """
        report = SyncReport()
        failed_before = self.tracker.count()
        logger.info(f"Starting sync cycle for user {user.user_id} (type {int(user.user_type)})")

        retry = await self.retry_failed()
        if retry.is_failure:
            logger.warning(f"Could not sync, will retry: {retry.failure.message}")
            return Result.fail(retry.failure)
        report.retry = retry.value

        for kind in self.permitted_kinds(user):
            result = await self.download_table(kind, user)
            if result.is_failure:
                if isinstance(result.failure, NetworkFailure):
                    logger.warning(f"Could not sync, will retry: {result.failure.message}")
                    return Result.fail(result.failure)
                report.note_failure(result.failure)
                continue
            stats = result.value
            report.tables_synced.append(kind.table)
            report.table_stats[kind.table] = stats
            report.records_merged += stats.merged
            if stats.failed:
                report.note_failure(ValidationFailure(f"{kind.table}: {stats.failed} record(s) failed to merge"))

        report.failures_recorded = max(self.tracker.count() - failed_before + report.retry.cleared, 0)
        logger.info(f"Sync cycle finished: {len(report.tables_synced)} tables, {report.records_merged} merged, "
                    f"{report.failures_recorded} failures recorded")
        return Result.ok(report)

    async def sync_tables_concurrently(self, kinds: Iterable, user: UserContext) -> Dict[str, Result[TableSyncStats]]:
        """Downloads distinct tables concurrently; a table never runs two passes at once."""
        unique: Dict[str, EntityKind] = {}
        for kind in kinds:
            kind = get_kind(kind)
            unique.setdefault(kind.table, kind)
        results = await asyncio.gather(*(self.download_table(kind, user) for kind in unique.values()))
        return dict(zip(unique.keys(), results))

#
# End of Sync_Engine.py
########################################################################################################################
