# Fulfillment_Workflow.py
# Description: Out-of-stock fulfillment state machine (admin -> supplier -> salesman).
#
"""
Fulfillment_Workflow.py
-----------------------

A shortage master (`OutOfStockMaster`) owns one or more supplier-facing lines
(`OutOfStockProducts`). Lines move through integer status codes:

    0 Unresolved
    1 AwaitingSupplierResponse
    2 Available
    3 PartiallyOrNotAvailable
    4 NotAvailable (admin gave up on the line)
    5 Cancelled

A line is terminal once it leaves {0, 1}. The master is open (0) until it is
resolved (stored as ``isCompleteflag = 1``, reported as status 4) or
cancelled (5); it may only be resolved when all of its lines are terminal.

Which role may do what from which state is held in one table and checked by
`resolve_transition`, a pure function. Every mutating call re-reads the row
inside a `BEGIN IMMEDIATE` transaction before validating, so two roles racing
on the same line serialize and the loser gets `InvalidTransition`.

Changed rows the server already knows are queued as `upload` entries in
FailedSync within the same transaction; the next sync cycle's retry pass
posts them to the kind's update endpoint. A freshly reported shortage has no
server keys yet: its lines carry the master's UUID until the server
acknowledges the report and hands out ids.
"""
# Imports
import uuid
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from fieldops_app.Constants import OP_UPLOAD, UNASSIGNED_ID, UserType
from fieldops_app.DB.Failed_Sync import FailedOpTracker
from fieldops_app.DB.FieldOps_DB import FieldOpsDB, InputError
from fieldops_app.DB.Packing_Ledger import PackingLedger
from fieldops_app.Sync import entities
from fieldops_app.Sync.entities import EntityKind
from fieldops_app.Sync.failures import InvalidTransition, Result, ValidationFailure, to_failure
#
########################################################################################################################
#
# Functions:


class LineStatus(IntEnum):
    UNRESOLVED = 0
    AWAITING_SUPPLIER = 1
    AVAILABLE = 2
    PARTIALLY_AVAILABLE = 3
    NOT_AVAILABLE = 4
    CANCELLED = 5


class MasterStatus(IntEnum):
    UNRESOLVED = 0
    RESOLVED = 4
    CANCELLED = 5


class Action(str, Enum):
    ASSIGN_SUPPLIER = "assign_supplier"
    SEND_TO_SUPPLIER = "send_to_supplier"
    RESPOND_AVAILABLE = "respond_available"
    RESPOND_PARTIAL = "respond_partial"
    ADMIN_ACCEPT = "admin_accept"
    ADMIN_REJECT = "admin_reject"
    MARK_NOT_AVAILABLE = "mark_not_available"
    CANCEL = "cancel"
    COMPLETE = "complete"


_ADMIN = frozenset({UserType.ADMIN})
_SUPPLIER = frozenset({UserType.SUPPLIER})
_CANCELLERS = frozenset({UserType.ADMIN, UserType.SALESMAN})

# (action, from state) -> (roles allowed, to state)
LINE_TRANSITIONS: Dict[Tuple[Action, int], Tuple[FrozenSet[UserType], int]] = {
    (Action.ASSIGN_SUPPLIER, LineStatus.UNRESOLVED): (_ADMIN, LineStatus.UNRESOLVED),
    (Action.ASSIGN_SUPPLIER, LineStatus.PARTIALLY_AVAILABLE): (_ADMIN, LineStatus.PARTIALLY_AVAILABLE),
    (Action.SEND_TO_SUPPLIER, LineStatus.UNRESOLVED): (_ADMIN, LineStatus.AWAITING_SUPPLIER),
    (Action.RESPOND_AVAILABLE, LineStatus.AWAITING_SUPPLIER): (_SUPPLIER, LineStatus.AVAILABLE),
    (Action.RESPOND_PARTIAL, LineStatus.AWAITING_SUPPLIER): (_SUPPLIER, LineStatus.PARTIALLY_AVAILABLE),
    (Action.ADMIN_ACCEPT, LineStatus.PARTIALLY_AVAILABLE): (_ADMIN, LineStatus.AVAILABLE),
    (Action.ADMIN_REJECT, LineStatus.UNRESOLVED): (_ADMIN, LineStatus.NOT_AVAILABLE),
    (Action.ADMIN_REJECT, LineStatus.PARTIALLY_AVAILABLE): (_ADMIN, LineStatus.UNRESOLVED),
    (Action.MARK_NOT_AVAILABLE, LineStatus.UNRESOLVED): (_ADMIN, LineStatus.NOT_AVAILABLE),
    (Action.MARK_NOT_AVAILABLE, LineStatus.PARTIALLY_AVAILABLE): (_ADMIN, LineStatus.NOT_AVAILABLE),
    (Action.CANCEL, LineStatus.UNRESOLVED): (_CANCELLERS, LineStatus.CANCELLED),
    (Action.CANCEL, LineStatus.AWAITING_SUPPLIER): (_CANCELLERS, LineStatus.CANCELLED),
    (Action.CANCEL, LineStatus.AVAILABLE): (_CANCELLERS, LineStatus.CANCELLED),
    (Action.CANCEL, LineStatus.PARTIALLY_AVAILABLE): (_CANCELLERS, LineStatus.CANCELLED),
}

MASTER_TRANSITIONS: Dict[Tuple[Action, int], Tuple[FrozenSet[UserType], int]] = {
    (Action.COMPLETE, MasterStatus.UNRESOLVED): (_ADMIN, MasterStatus.RESOLVED),
    (Action.CANCEL, MasterStatus.UNRESOLVED): (_CANCELLERS, MasterStatus.CANCELLED),
}

OPEN_LINE_STATES = frozenset({LineStatus.UNRESOLVED, LineStatus.AWAITING_SUPPLIER})

# isCompleteflag <-> master status
_FLAG_TO_MASTER = {0: MasterStatus.UNRESOLVED, 1: MasterStatus.RESOLVED, 5: MasterStatus.CANCELLED}
_MASTER_TO_FLAG = {MasterStatus.UNRESOLVED: 0, MasterStatus.RESOLVED: 1, MasterStatus.CANCELLED: 5}

# --- Shortage reports ---
_REPORTERS = frozenset({UserType.ADMIN, UserType.STOREKEEPER, UserType.SALESMAN})
# Keys and workflow state are set by report_shortage, never by the caller.
_REPORT_MASTER_COLUMNS = frozenset(entities.OUT_OF_STOCK_MASTER.columns) - {
    "oospMasterId", "availQty", "isCompleteflag", "flag", "UUID"}
_REPORT_LINE_COLUMNS = frozenset(entities.OUT_OF_STOCK_PRODUCTS.columns) - {
    "oospId", "oospMasterId", "availQty", "oospFlag", "isCheckedflag", "flag", "UUID"}
# Line columns copied from the master unless the line sets them.
_LINE_INHERITS = ("orderSubId", "custId", "salesmanId", "storekeeperId", "dateAndTime",
                  "productId", "unitId", "carId", "qty", "baseQty")


def _name(enum_cls, value) -> str:
    try:
        return enum_cls(value).name
    except ValueError:
        return str(value)


def _resolve(table: Dict[Tuple[Action, int], Tuple[FrozenSet[UserType], int]], state_enum,
             state: int, action: Action, role: int) -> Result[int]:
    entry = table.get((Action(action), int(state)))
    if entry is None:
        return Result.fail(InvalidTransition(
            f"Cannot {Action(action).value} from state {_name(state_enum, state)}",
            state=int(state), action=Action(action).value, role=int(role)))
    roles, to_state = entry
    if int(role) not in roles:
        return Result.fail(InvalidTransition(
            f"Role {_name(UserType, role)} may not {Action(action).value} "
            f"(state {_name(state_enum, state)})",
            state=int(state), action=Action(action).value, role=int(role)))
    return Result.ok(int(to_state))


def resolve_transition(state: int, action: Action, role: int) -> Result[int]:
    """Looks up a line transition. Returns the target state or an `InvalidTransition`."""
    return _resolve(LINE_TRANSITIONS, LineStatus, state, action, role)


def resolve_master_transition(state: int, action: Action, role: int) -> Result[int]:
    """Looks up a master transition. Returns the target state or an `InvalidTransition`."""
    return _resolve(MASTER_TRANSITIONS, MasterStatus, state, action, role)


def is_terminal(state: int) -> bool:
    return int(state) not in OPEN_LINE_STATES


def master_status(row: Dict[str, Any]) -> int:
    return int(_FLAG_TO_MASTER.get(int(row['isCompleteflag']), MasterStatus.UNRESOLVED))


class FulfillmentWorkflow:
    def __init__(self, db: FieldOpsDB, packing_ledger: Optional[PackingLedger] = None,
                 tracker: Optional[FailedOpTracker] = None):
        self.db = db
        self.packing_ledger = packing_ledger or PackingLedger(db)
        self.tracker = tracker or FailedOpTracker(db)

    # --- Plumbing ---
    def _run(self, label: str, body: Callable[[], Result]) -> Result:
        """Runs `body` in one immediate transaction, turning exceptions into failures."""
        try:
            with self.db.transaction(immediate=True):
                result = body()
                if result.is_failure:
                    raise _Rejected(result)
            return result
        except _Rejected as rejected:
            logger.info(f"{label} rejected: {rejected.result.failure.message}")
            return rejected.result
        except Exception as e:
            failure = to_failure(e)
            logger.error(f"{label} failed: {failure}")
            return Result.fail(failure)

    def _line(self, line_id: int) -> Dict[str, Any]:
        row = self.db.fetch_one("SELECT * FROM OutOfStockProducts WHERE id = ?", (int(line_id),))
        if row is None:
            raise InputError(f"Out-of-stock line {line_id} does not exist")
        return row

    def _master(self, master_id: int) -> Dict[str, Any]:
        row = self.db.fetch_one("SELECT * FROM OutOfStockMaster WHERE id = ?", (int(master_id),))
        if row is None:
            raise InputError(f"Out-of-stock master {master_id} does not exist")
        return row

    def _master_of_line(self, line: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if int(line['oospMasterId']) != UNASSIGNED_ID:
            return self.db.fetch_one("SELECT * FROM OutOfStockMaster WHERE oospMasterId = ?",
                                     (int(line['oospMasterId']),))
        if int(line['oospId']) == UNASSIGNED_ID and line['UUID']:
            # Unsent report: the line still carries its master's UUID
            return self.db.fetch_one("SELECT * FROM OutOfStockMaster WHERE oospMasterId = -1 AND UUID = ?",
                                     (line['UUID'],))
        return None

    def _lines_of(self, master: Dict[str, Any]) -> List[Dict[str, Any]]:
        if int(master['oospMasterId']) != UNASSIGNED_ID:
            return self.db.fetch_all("SELECT * FROM OutOfStockProducts WHERE oospMasterId = ? ORDER BY id",
                                     (int(master['oospMasterId']),))
        if not master['UUID']:
            return []
        return self.db.fetch_all(
            "SELECT * FROM OutOfStockProducts WHERE oospMasterId = -1 AND oospId = -1 AND UUID = ? ORDER BY id",
            (master['UUID'],))

    def _queue_upload(self, kind: EntityKind, local_key: int):
        """Queues a changed row for the next sync. Rows the server has never seen go up with their report."""
        row = self.db.fetch_one(f"SELECT {kind.server_key} AS server_key FROM {kind.table} WHERE id = ?",
                                (int(local_key),))
        if row is None or int(row['server_key']) == UNASSIGNED_ID:
            return
        self.tracker.record_once(kind, local_key, OP_UPLOAD)

    def _update_line(self, line_id: int, **values):
        assignments = ", ".join(f"{col} = ?" for col in values)
        self.db.execute_query(f"UPDATE OutOfStockProducts SET {assignments} WHERE id = ?",
                              tuple(values.values()) + (int(line_id),))
        self._queue_upload(entities.OUT_OF_STOCK_PRODUCTS, line_id)

    def _update_master(self, master_id: int, queue_upload: bool = True, **values):
        assignments = ", ".join(f"{col} = ?" for col in values)
        self.db.execute_query(f"UPDATE OutOfStockMaster SET {assignments} WHERE id = ?",
                              tuple(values.values()) + (int(master_id),))
        if queue_upload:
            self._queue_upload(entities.OUT_OF_STOCK_MASTER, master_id)

    def _insert(self, table: str, values: Mapping[str, Any]) -> int:
        columns = list(values)
        cursor = self.db.execute_query(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
            tuple(values[col] for col in columns))
        return int(cursor.lastrowid)

    def _line_transition(self, line_id: int, action: Action, role: int) -> Tuple[Dict[str, Any], Result[int]]:
        line = self._line(line_id)
        return line, resolve_transition(int(line['oospFlag']), action, role)

    # --- Reporting ---
    def report_shortage(self, master: Mapping[str, Any], lines: Sequence[Mapping[str, Any]],
                        role: int) -> Result[int]:
        """
        Records a new shortage: a master and its lines, all Unresolved, with
        unassigned server keys. The master is queued for upload and its lines go
        up with it as the report's items.

        Args:
            master: Column values for the master (orderSubId, productId, qty, ...).
            lines: Column values per line. Unset columns are copied from the master.
            role: Reporting user's type (admin, storekeeper or salesman).

        Returns:
            The master's local id.
        """
        def body():
            if int(role) not in _REPORTERS:
                return Result.fail(InvalidTransition(f"Role {_name(UserType, role)} may not report shortages",
                                                     action="report_shortage", role=int(role)))
            unknown = set(master) - _REPORT_MASTER_COLUMNS
            for line in lines:
                unknown |= set(line) - _REPORT_LINE_COLUMNS
            if unknown:
                return Result.fail(ValidationFailure(f"Cannot set {sorted(unknown)} when reporting a shortage"))

            now = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            report_uuid = str(uuid.uuid4())
            master_values: Dict[str, Any] = {"dateAndTime": now, "createdDateTime": now, "updatedDateTime": now}
            master_values.update(master)
            master_values.update(oospMasterId=UNASSIGNED_ID, availQty=0.0, isCompleteflag=0, flag=1,
                                 isViewed=1, UUID=report_uuid)
            line_rows = []
            for line in lines:
                values = {col: master_values[col] for col in _LINE_INHERITS if col in master_values}
                values.update(createdDateTime=now, updatedDateTime=now)
                values.update(line)
                values.update(oospId=UNASSIGNED_ID, oospMasterId=UNASSIGNED_ID, availQty=0.0,
                              oospFlag=int(LineStatus.UNRESOLVED), isCheckedflag=0, flag=1, isViewed=0,
                              UUID=report_uuid)
                line_rows.append(values)
            for values in [master_values] + line_rows:
                if float(values.get('qty', 0)) <= 0:
                    return Result.fail(ValidationFailure(
                        f"Shortage quantity must be positive, got {values.get('qty')!r}"))

            master_id = self._insert("OutOfStockMaster", master_values)
            for values in line_rows:
                self._insert("OutOfStockProducts", values)
            self.tracker.record_once(entities.OUT_OF_STOCK_MASTER, master_id, OP_UPLOAD)
            logger.info(f"Shortage reported: master {master_id} with {len(line_rows)} line(s), report {report_uuid}")
            return Result.ok(master_id)
        return self._run("report_shortage", body)

    # --- Admin: assignment ---
    def assign_supplier(self, line_id: int, supplier_id: int, role: int) -> Result[int]:
        """Sets the line's supplier; allowed from 0 and 3, status unchanged."""
        def body():
            if supplier_id is None or int(supplier_id) == UNASSIGNED_ID:
                return Result.fail(ValidationFailure("A supplier must be given to assign"))
            line, result = self._line_transition(line_id, Action.ASSIGN_SUPPLIER, role)
            if result.is_ok:
                self._update_line(line_id, supplierId=int(supplier_id))
            return result
        return self._run(f"assign_supplier(line={line_id})", body)

    def send_to_supplier(self, line_id: int, role: int) -> Result[int]:
        """0 -> 1, requires an assigned supplier."""
        def body():
            line, result = self._line_transition(line_id, Action.SEND_TO_SUPPLIER, role)
            if result.is_failure:
                return result
            if int(line['supplierId']) == UNASSIGNED_ID:
                return Result.fail(InvalidTransition(
                    "Cannot send to supplier: no supplier assigned",
                    state=int(line['oospFlag']), action=Action.SEND_TO_SUPPLIER.value, role=int(role)))
            self._update_line(line_id, oospFlag=result.value, isCheckedflag=0, isViewed=0)
            return result
        return self._run(f"send_to_supplier(line={line_id})", body)

    # --- Supplier ---
    def supplier_respond(self, line_id: int, available: bool, qty: float, role: int) -> Result[int]:
        """
        Records the supplier's answer on a line awaiting response.

        Fully available (and `qty` covers the request): -> 2, availQty = requested.
        Otherwise: -> 3, availQty = qty clamped to at most requested - 1 and at least 0.
        """
        def body():
            if qty is None or float(qty) < 0:
                return Result.fail(ValidationFailure(f"Available quantity must be non-negative, got {qty!r}"))
            line = self._line(line_id)
            requested = float(line['qty'])
            full = bool(available) and float(qty) >= requested
            action = Action.RESPOND_AVAILABLE if full else Action.RESPOND_PARTIAL
            result = resolve_transition(int(line['oospFlag']), action, role)
            if result.is_failure:
                return result
            if full:
                avail = requested
            else:
                avail = max(0.0, min(float(qty), requested - 1))
            self._update_line(line_id, oospFlag=result.value, availQty=avail, isCheckedflag=1, isViewed=0)
            return result
        return self._run(f"supplier_respond(line={line_id})", body)

    # --- Admin: review ---
    def admin_accept(self, line_id: int, role: int) -> Result[int]:
        """3 -> 2: the offered partial quantity is accepted."""
        def body():
            line, result = self._line_transition(line_id, Action.ADMIN_ACCEPT, role)
            if result.is_ok:
                self._update_line(line_id, oospFlag=result.value)
            return result
        return self._run(f"admin_accept(line={line_id})", body)

    def admin_reject(self, line_id: int, role: int) -> Result[int]:
        """
        3 -> 0 when the supplier offered something (availQty > 0); the supplier is
        cleared so the line can be re-assigned. An unresolved line, or one with
        nothing offered, takes the not-available path instead.
        """
        def body():
            line, result = self._line_transition(line_id, Action.ADMIN_REJECT, role)
            if result.is_failure:
                return result
            if result.value == LineStatus.NOT_AVAILABLE or float(line['availQty']) <= 0:
                return self._mark_not_available_in_tx(line, role)
            self._update_line(line_id, oospFlag=result.value, supplierId=UNASSIGNED_ID,
                              availQty=0.0, isCheckedflag=0)
            return result
        return self._run(f"admin_reject(line={line_id})", body)

    def admin_mark_not_available(self, line_id: int, role: int) -> Result[int]:
        """0/3 -> 4, then inform the salesman or complete the master when possible."""
        return self._run(f"admin_mark_not_available(line={line_id})",
                         lambda: self._mark_not_available_in_tx(self._line(line_id), role))

    def _mark_not_available_in_tx(self, line: Dict[str, Any], role: int) -> Result[int]:
        result = resolve_transition(int(line['oospFlag']), Action.MARK_NOT_AVAILABLE, role)
        if result.is_failure:
            return result
        self._update_line(line['id'], oospFlag=result.value, availQty=0.0, isCheckedflag=1)

        master = self._master_of_line(line)
        if master is None or master_status(master) != MasterStatus.UNRESOLVED:
            return result
        lines = self._lines_of(master)
        order_sub_id = int(line['orderSubId'])
        if order_sub_id != UNASSIGNED_ID and all(is_terminal(l['oospFlag']) for l in lines):
            follow_up = self._inform_salesman_in_tx(master, None, role, order_sub_id=order_sub_id)
        else:
            follow_up = self._complete_in_tx(master, role)
        if follow_up.is_failure:
            logger.debug(f"Master {master['id']} stays open: {follow_up.failure.message}")
        return result

    # --- Cancellation ---
    def cancel_line(self, line_id: int, role: int) -> Result[int]:
        def body():
            line, result = self._line_transition(line_id, Action.CANCEL, role)
            if result.is_ok:
                self._update_line(line_id, oospFlag=result.value)
            return result
        return self._run(f"cancel_line(line={line_id})", body)

    def _cancel_master_in_tx(self, master: Dict[str, Any], role: int) -> Result[int]:
        result = resolve_master_transition(master_status(master), Action.CANCEL, role)
        if result.is_failure:
            return result
        self._update_master(master['id'], isCompleteflag=_MASTER_TO_FLAG[MasterStatus(result.value)])
        for line in self._lines_of(master):
            if resolve_transition(int(line['oospFlag']), Action.CANCEL, role).is_ok:
                self._update_line(line['id'], oospFlag=LineStatus.CANCELLED)
        return result

    def cancel_master(self, master_id: int, role: int) -> Result[int]:
        """0 -> 5 for the master and every line still cancellable."""
        return self._run(f"cancel_master(master={master_id})",
                         lambda: self._cancel_master_in_tx(self._master(master_id), role))

    def cancel_for_order_line(self, order_sub_id: int, role: int) -> Result[int]:
        """Cancels every open master raised for an order line. Returns how many were cancelled."""
        def body():
            masters = self.db.fetch_all(
                "SELECT * FROM OutOfStockMaster WHERE orderSubId = ? AND isCompleteflag = 0 ORDER BY id",
                (int(order_sub_id),))
            for master in masters:
                result = self._cancel_master_in_tx(master, role)
                if result.is_failure:
                    return result
            return Result.ok(len(masters))
        return self._run(f"cancel_for_order_line(order_sub={order_sub_id})", body)

    # --- Completion ---
    def _complete_in_tx(self, master: Dict[str, Any], role: int) -> Result[int]:
        result = resolve_master_transition(master_status(master), Action.COMPLETE, role)
        if result.is_failure:
            return result
        open_lines = [l['id'] for l in self._lines_of(master) if not is_terminal(l['oospFlag'])]
        if open_lines:
            return Result.fail(InvalidTransition(
                f"Master {master['id']} still has {len(open_lines)} unresolved line(s): {open_lines}",
                state=master_status(master), action=Action.COMPLETE.value, role=int(role)))
        self._update_master(master['id'], isCompleteflag=_MASTER_TO_FLAG[MasterStatus.RESOLVED])
        return result

    def complete_if_all_lines_terminal(self, master_id: int, role: int = UserType.ADMIN) -> Result[int]:
        """Resolves the master when none of its lines is in state 0 or 1. Scans the lines on every call."""
        return self._run(f"complete_if_all_lines_terminal(master={master_id})",
                         lambda: self._complete_in_tx(self._master(master_id), role))

    def _inform_salesman_in_tx(self, master: Dict[str, Any], available_qty: Optional[float],
                               role: int, order_sub_id: Optional[int] = None) -> Result[int]:
        result = resolve_master_transition(master_status(master), Action.COMPLETE, role)
        if result.is_failure:
            return result
        lines = self._lines_of(master)
        open_lines = [l['id'] for l in lines if not is_terminal(l['oospFlag'])]
        if open_lines:
            return Result.fail(InvalidTransition(
                f"Cannot inform salesman: lines {open_lines} are unresolved",
                state=master_status(master), action=Action.COMPLETE.value, role=int(role)))
        if order_sub_id is None:
            order_sub_id = int(master['orderSubId'])
        if order_sub_id == UNASSIGNED_ID:
            return Result.fail(ValidationFailure(f"Master {master['id']} is not linked to an order line"))
        order_line = self.db.fetch_one("SELECT id FROM OrderSub WHERE orderSubId = ?", (order_sub_id,))
        if order_line is None:
            return Result.fail(ValidationFailure(f"Order line {order_sub_id} is not in the local store"))
        if available_qty is None:
            available_qty = sum(float(l['availQty']) for l in lines if int(l['oospFlag']) == LineStatus.AVAILABLE)
        self.db.execute_query("UPDATE OrderSub SET availQty = ?, isCheckedflag = 1 WHERE id = ?",
                              (float(available_qty), order_line['id']))
        self._update_master(master['id'], availQty=float(available_qty),
                            isCompleteflag=_MASTER_TO_FLAG[MasterStatus.RESOLVED])
        logger.info(f"Salesman informed for master {master['id']}: {available_qty} available")
        return result

    def inform_salesman(self, master_id: int, available_qty: Optional[float] = None,
                        role: int = UserType.ADMIN) -> Result[int]:
        """
        Writes the outcome back to the originating order line and resolves the master.

        Requires every line to be terminal. `available_qty` defaults to the sum of
        availQty over lines in state 2.
        """
        if available_qty is not None and float(available_qty) < 0:
            return Result.fail(ValidationFailure(f"Available quantity must be non-negative, got {available_qty!r}"))
        return self._run(f"inform_salesman(master={master_id})",
                         lambda: self._inform_salesman_in_tx(self._master(master_id), available_qty, role))

    # --- Storekeeper ---
    def mark_packed(self, order_line_id: int, qty: float, role: int) -> Result[bool]:
        if int(role) != UserType.STOREKEEPER:
            return Result.fail(InvalidTransition(f"Role {_name(UserType, role)} may not mark lines packed",
                                                 action="mark_packed", role=int(role)))
        try:
            self.packing_ledger.pack(order_line_id, qty)
        except Exception as e:
            return Result.fail(to_failure(e))
        return Result.ok(True)

    def unmark_packed(self, order_line_id: int, role: int) -> Result[bool]:
        if int(role) != UserType.STOREKEEPER:
            return Result.fail(InvalidTransition(f"Role {_name(UserType, role)} may not unmark packed lines",
                                                 action="unmark_packed", role=int(role)))
        try:
            return Result.ok(self.packing_ledger.unpack(order_line_id))
        except Exception as e:
            return Result.fail(to_failure(e))

    def is_packed(self, line_id: int) -> Result[bool]:
        try:
            line = self._line(line_id)
            return Result.ok(self.packing_ledger.is_packed(int(line['oospId'])))
        except Exception as e:
            return Result.fail(to_failure(e))

    # --- Read views ---
    def get_master(self, master_id: int) -> Result[Dict[str, Any]]:
        try:
            master = self._master(master_id)
        except Exception as e:
            return Result.fail(to_failure(e))
        master['status'] = master_status(master)
        return Result.ok(master)

    def get_lines(self, master_id: int) -> Result[List[Dict[str, Any]]]:
        try:
            lines = self._lines_of(self._master(master_id))
            for line in lines:
                packed = int(line['oospId']) != UNASSIGNED_ID and self.packing_ledger.is_packed(int(line['oospId']))
                line['isPacked'] = int(packed)
        except Exception as e:
            return Result.fail(to_failure(e))
        return Result.ok(lines)

    def count_unviewed(self, role: int, supplier_id: Optional[int] = None) -> Result[int]:
        """
        Unviewed, active shortage records for a role: masters for admin and
        salesman, lines for supplier and storekeeper (optionally one supplier's).
        """
        if int(role) in (UserType.ADMIN, UserType.SALESMAN):
            query, params = "SELECT COUNT(*) AS n FROM OutOfStockMaster WHERE flag = 1 AND isViewed = 0", ()
        elif int(role) in (UserType.SUPPLIER, UserType.STOREKEEPER):
            query, params = "SELECT COUNT(*) AS n FROM OutOfStockProducts WHERE flag = 1 AND isViewed = 0", ()
            if supplier_id is not None:
                query += " AND supplierId = ?"
                params = (int(supplier_id),)
        else:
            return Result.ok(0)
        try:
            return Result.ok(int(self.db.fetch_one(query, params)['n']))
        except Exception as e:
            return Result.fail(to_failure(e))

    def mark_viewed(self, master_id: int) -> Result[int]:
        """Marks a master and its lines viewed. Returns the number of lines touched."""
        def body():
            master = self._master(master_id)
            # isViewed is local only, nothing to upload
            self._update_master(master_id, queue_upload=False, isViewed=1)
            line_ids = [line['id'] for line in self._lines_of(master)]
            if line_ids:
                self.db.execute_query(
                    f"UPDATE OutOfStockProducts SET isViewed = 1 WHERE id IN ({', '.join('?' for _ in line_ids)})",
                    tuple(line_ids))
            return Result.ok(len(line_ids))
        return self._run(f"mark_viewed(master={master_id})", body)


class _Rejected(Exception):
    """Carries a failed Result out of a transaction so nothing it wrote is kept."""

    def __init__(self, result: Result):
        super().__init__(result.failure.message)
        self.result = result

#
# End of Fulfillment_Workflow.py
########################################################################################################################
