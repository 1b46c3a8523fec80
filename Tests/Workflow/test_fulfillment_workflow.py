# test_fulfillment_workflow.py
#
# Tests for the out-of-stock fulfillment state machine.
#
# Imports
import itertools
import threading
#
# Third-Party Imports
import pytest
#
# Local Imports
from fieldops_app.Constants import OP_UPLOAD, UserType
from fieldops_app.DB.Failed_Sync import FailedOpTracker
from fieldops_app.DB.FieldOps_DB import FieldOpsDB
from fieldops_app.Sync import entities
from fieldops_app.Sync.failures import DatabaseFailure, InvalidTransition, ValidationFailure
from fieldops_app.Workflow.Fulfillment_Workflow import (
    LINE_TRANSITIONS,
    Action,
    FulfillmentWorkflow,
    LineStatus,
    MasterStatus,
    is_terminal,
    resolve_master_transition,
    resolve_transition,
)
#
########################################################################################################################
#
# Functions:

ADMIN, STOREKEEPER, SALESMAN, SUPPLIER = UserType.ADMIN, UserType.STOREKEEPER, UserType.SALESMAN, UserType.SUPPLIER

_server_keys = itertools.count(1000)


def add_master(db, order_sub_id=-1, qty=10, flag=1):
    server_key = next(_server_keys)
    with db.transaction():
        cursor = db.execute_query(
            "INSERT INTO OutOfStockMaster (oospMasterId, orderSubId, qty, flag) VALUES (?, ?, ?, ?)",
            (server_key, order_sub_id, qty, flag))
    return cursor.lastrowid


def add_line(db, master_id, state=LineStatus.UNRESOLVED, qty=10, supplier_id=-1, avail=0.0, flag=1,
             order_sub_id=None):
    owner = db.fetch_one("SELECT oospMasterId, orderSubId FROM OutOfStockMaster WHERE id = ?", (master_id,))
    if order_sub_id is None:
        order_sub_id = owner['orderSubId']
    with db.transaction():
        cursor = db.execute_query(
            "INSERT INTO OutOfStockProducts (oospId, oospMasterId, orderSubId, oospFlag, qty, supplierId, availQty, flag) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (next(_server_keys), owner['oospMasterId'], order_sub_id, int(state), qty, supplier_id, avail, flag))
    return cursor.lastrowid


def add_order_line(db, order_sub_id, quantity=10):
    with db.transaction():
        db.execute_query("INSERT INTO OrderSub (orderSubId, quantity) VALUES (?, ?)", (order_sub_id, quantity))


def line(db, line_id):
    return db.fetch_one("SELECT * FROM OutOfStockProducts WHERE id = ?", (line_id,))


def master(db, master_id):
    return db.fetch_one("SELECT * FROM OutOfStockMaster WHERE id = ?", (master_id,))


# --- Transition table ---

@pytest.mark.parametrize("state", list(LineStatus))
@pytest.mark.parametrize("action", [a for a in Action if a is not Action.COMPLETE])
@pytest.mark.parametrize("role", list(UserType))
def test_resolve_transition_matches_table(state, action, role):
    entry = LINE_TRANSITIONS.get((action, int(state)))
    result = resolve_transition(state, action, role)
    if entry is not None and role in entry[0]:
        assert result.value == int(entry[1])
    else:
        assert isinstance(result.failure, InvalidTransition)
        assert result.failure.state == int(state)
        assert result.failure.role == int(role)


@pytest.mark.parametrize("state, action, role, expected", [
    (MasterStatus.UNRESOLVED, Action.COMPLETE, ADMIN, MasterStatus.RESOLVED),
    (MasterStatus.UNRESOLVED, Action.CANCEL, SALESMAN, MasterStatus.CANCELLED),
    (MasterStatus.UNRESOLVED, Action.COMPLETE, SALESMAN, None),
    (MasterStatus.RESOLVED, Action.CANCEL, ADMIN, None),
    (MasterStatus.CANCELLED, Action.COMPLETE, ADMIN, None),
])
def test_master_transitions(state, action, role, expected):
    result = resolve_master_transition(state, action, role)
    if expected is None:
        assert isinstance(result.failure, InvalidTransition)
    else:
        assert result.value == int(expected)


def test_terminal_states():
    assert [s for s in LineStatus if not is_terminal(s)] == [LineStatus.UNRESOLVED, LineStatus.AWAITING_SUPPLIER]


# --- Admin / supplier path ---

class TestHappyPath:
    def test_assign_send_respond_complete(self, workflow, memory_db):
        master_id = add_master(memory_db)
        line_id = add_line(memory_db, master_id)

        assert workflow.assign_supplier(line_id, 55, ADMIN).unwrap() == LineStatus.UNRESOLVED
        assert workflow.send_to_supplier(line_id, ADMIN).unwrap() == LineStatus.AWAITING_SUPPLIER
        assert workflow.supplier_respond(line_id, True, 10, SUPPLIER).unwrap() == LineStatus.AVAILABLE

        stored = line(memory_db, line_id)
        assert (stored['supplierId'], stored['availQty'], stored['isCheckedflag']) == (55, 10.0, 1)

        assert workflow.complete_if_all_lines_terminal(master_id).unwrap() == MasterStatus.RESOLVED
        assert master(memory_db, master_id)['isCompleteflag'] == 1
        assert workflow.get_master(master_id).unwrap()['status'] == MasterStatus.RESOLVED

    def test_send_requires_supplier(self, workflow, memory_db):
        line_id = add_line(memory_db, add_master(memory_db))
        result = workflow.send_to_supplier(line_id, ADMIN)
        assert isinstance(result.failure, InvalidTransition)
        assert line(memory_db, line_id)['oospFlag'] == LineStatus.UNRESOLVED

    def test_assign_requires_a_supplier_id(self, workflow, memory_db):
        line_id = add_line(memory_db, add_master(memory_db))
        assert isinstance(workflow.assign_supplier(line_id, -1, ADMIN).failure, ValidationFailure)

    def test_reassign_after_partial(self, workflow, memory_db):
        line_id = add_line(memory_db, add_master(memory_db), state=LineStatus.PARTIALLY_AVAILABLE, supplier_id=5)
        assert workflow.assign_supplier(line_id, 6, ADMIN).unwrap() == LineStatus.PARTIALLY_AVAILABLE
        assert line(memory_db, line_id)['supplierId'] == 6

    @pytest.mark.parametrize("call", [
        lambda wf, line_id: wf.supplier_respond(line_id, True, 10, ADMIN),
        lambda wf, line_id: wf.send_to_supplier(line_id, SUPPLIER),
        lambda wf, line_id: wf.admin_accept(line_id, ADMIN),
        lambda wf, line_id: wf.cancel_line(line_id, SUPPLIER),
        lambda wf, line_id: wf.cancel_line(line_id, STOREKEEPER),
    ])
    def test_illegal_calls_leave_status_unchanged(self, workflow, memory_db, call):
        line_id = add_line(memory_db, add_master(memory_db), state=LineStatus.AWAITING_SUPPLIER, supplier_id=5)
        before = line(memory_db, line_id)
        result = call(workflow, line_id)
        assert isinstance(result.failure, InvalidTransition)
        assert line(memory_db, line_id) == before

    def test_missing_line(self, workflow):
        assert isinstance(workflow.cancel_line(424242, ADMIN).failure, ValidationFailure)


class TestSupplierResponse:
    def test_partial_response_is_clamped_below_requested(self, workflow, memory_db):
        line_id = add_line(memory_db, add_master(memory_db), state=LineStatus.AWAITING_SUPPLIER, qty=10)
        assert workflow.supplier_respond(line_id, False, 10, SUPPLIER).unwrap() == LineStatus.PARTIALLY_AVAILABLE
        assert line(memory_db, line_id)['availQty'] == 9.0

    def test_available_but_short_is_partial(self, workflow, memory_db):
        line_id = add_line(memory_db, add_master(memory_db), state=LineStatus.AWAITING_SUPPLIER, qty=10)
        assert workflow.supplier_respond(line_id, True, 4, SUPPLIER).unwrap() == LineStatus.PARTIALLY_AVAILABLE
        assert line(memory_db, line_id)['availQty'] == 4.0

    def test_clamp_never_goes_negative(self, workflow, memory_db):
        line_id = add_line(memory_db, add_master(memory_db), state=LineStatus.AWAITING_SUPPLIER, qty=0.5)
        workflow.supplier_respond(line_id, False, 3, SUPPLIER).unwrap()
        assert line(memory_db, line_id)['availQty'] == 0.0

    def test_negative_quantity_rejected(self, workflow, memory_db):
        line_id = add_line(memory_db, add_master(memory_db), state=LineStatus.AWAITING_SUPPLIER)
        assert isinstance(workflow.supplier_respond(line_id, False, -1, SUPPLIER).failure, ValidationFailure)
        assert line(memory_db, line_id)['oospFlag'] == LineStatus.AWAITING_SUPPLIER


class TestAdminReview:
    def test_accept_partial(self, workflow, memory_db):
        line_id = add_line(memory_db, add_master(memory_db), state=LineStatus.PARTIALLY_AVAILABLE, avail=4)
        assert workflow.admin_accept(line_id, ADMIN).unwrap() == LineStatus.AVAILABLE

    def test_reject_with_offer_cycles_back(self, workflow, memory_db):
        line_id = add_line(memory_db, add_master(memory_db), state=LineStatus.PARTIALLY_AVAILABLE,
                           supplier_id=5, avail=4)
        assert workflow.admin_reject(line_id, ADMIN).unwrap() == LineStatus.UNRESOLVED
        stored = line(memory_db, line_id)
        assert (stored['supplierId'], stored['availQty'], stored['isCheckedflag']) == (-1, 0.0, 0)

    def test_reject_without_offer_marks_not_available(self, workflow, memory_db):
        line_id = add_line(memory_db, add_master(memory_db), state=LineStatus.PARTIALLY_AVAILABLE, avail=0)
        assert workflow.admin_reject(line_id, ADMIN).unwrap() == LineStatus.NOT_AVAILABLE

    def test_reject_unresolved_line_marks_not_available(self, workflow, memory_db):
        add_order_line(memory_db, 504)
        master_id = add_master(memory_db, order_sub_id=504)
        line_id = add_line(memory_db, master_id, state=LineStatus.UNRESOLVED, supplier_id=5)

        assert workflow.admin_reject(line_id, ADMIN).unwrap() == LineStatus.NOT_AVAILABLE

        stored = line(memory_db, line_id)
        assert (stored['oospFlag'], stored['availQty'], stored['isCheckedflag']) == (4, 0.0, 1)
        assert memory_db.fetch_one("SELECT isCheckedflag FROM OrderSub WHERE orderSubId = 504")['isCheckedflag'] == 1
        assert master(memory_db, master_id)['isCompleteflag'] == 1

    @pytest.mark.parametrize("state", [LineStatus.AWAITING_SUPPLIER, LineStatus.AVAILABLE])
    def test_reject_rejected_outside_review_states(self, workflow, memory_db, state):
        line_id = add_line(memory_db, add_master(memory_db), state=state, supplier_id=5, avail=4)
        assert isinstance(workflow.admin_reject(line_id, ADMIN).failure, InvalidTransition)
        assert line(memory_db, line_id)['oospFlag'] == state

    def test_salesman_cannot_reject(self, workflow, memory_db):
        line_id = add_line(memory_db, add_master(memory_db), state=LineStatus.UNRESOLVED)
        assert isinstance(workflow.admin_reject(line_id, SALESMAN).failure, InvalidTransition)
        assert line(memory_db, line_id)['oospFlag'] == LineStatus.UNRESOLVED

    def test_not_available_informs_salesman(self, workflow, memory_db):
        add_order_line(memory_db, 500)
        master_id = add_master(memory_db, order_sub_id=500)
        line_id = add_line(memory_db, master_id, state=LineStatus.UNRESOLVED)

        assert workflow.admin_mark_not_available(line_id, ADMIN).unwrap() == LineStatus.NOT_AVAILABLE

        stored = line(memory_db, line_id)
        assert (stored['oospFlag'], stored['availQty'], stored['isCheckedflag']) == (4, 0.0, 1)
        order_line = memory_db.fetch_one("SELECT availQty, isCheckedflag FROM OrderSub WHERE orderSubId = 500")
        assert order_line == {"availQty": 0.0, "isCheckedflag": 1}
        assert master(memory_db, master_id)['isCompleteflag'] == 1

    def test_not_available_informs_through_the_lines_order_line(self, workflow, memory_db):
        add_order_line(memory_db, 510)
        add_order_line(memory_db, 511)
        master_id = add_master(memory_db, order_sub_id=511)
        line_id = add_line(memory_db, master_id, state=LineStatus.PARTIALLY_AVAILABLE, order_sub_id=510)

        workflow.admin_mark_not_available(line_id, ADMIN).unwrap()

        checked = {row['orderSubId']: row['isCheckedflag']
                   for row in memory_db.fetch_all("SELECT orderSubId, isCheckedflag FROM OrderSub")}
        assert checked == {510: 1, 511: 0}
        assert master(memory_db, master_id)['isCompleteflag'] == 1

    def test_not_available_informs_even_when_master_has_no_order_line(self, workflow, memory_db):
        add_order_line(memory_db, 512)
        master_id = add_master(memory_db)
        line_id = add_line(memory_db, master_id, order_sub_id=512)

        workflow.admin_mark_not_available(line_id, ADMIN).unwrap()

        assert memory_db.fetch_one("SELECT isCheckedflag FROM OrderSub WHERE orderSubId = 512")['isCheckedflag'] == 1
        assert master(memory_db, master_id)['isCompleteflag'] == 1

    def test_not_available_completes_unlinked_master(self, workflow, memory_db):
        master_id = add_master(memory_db)
        add_line(memory_db, master_id, state=LineStatus.AVAILABLE)
        line_id = add_line(memory_db, master_id, state=LineStatus.PARTIALLY_AVAILABLE)

        workflow.admin_mark_not_available(line_id, ADMIN).unwrap()
        assert master(memory_db, master_id)['isCompleteflag'] == 1

    def test_not_available_leaves_master_open_while_lines_pending(self, workflow, memory_db):
        master_id = add_master(memory_db)
        add_line(memory_db, master_id, state=LineStatus.AWAITING_SUPPLIER)
        line_id = add_line(memory_db, master_id, state=LineStatus.UNRESOLVED)

        assert workflow.admin_mark_not_available(line_id, ADMIN).unwrap() == LineStatus.NOT_AVAILABLE
        assert master(memory_db, master_id)['isCompleteflag'] == 0

    def test_not_available_with_order_line_missing_locally(self, workflow, memory_db):
        master_id = add_master(memory_db, order_sub_id=777)
        line_id = add_line(memory_db, master_id)

        assert workflow.admin_mark_not_available(line_id, ADMIN).unwrap() == LineStatus.NOT_AVAILABLE
        assert master(memory_db, master_id)['isCompleteflag'] == 0


class TestCompletion:
    def test_guard_rejects_open_lines(self, workflow, memory_db):
        master_id = add_master(memory_db)
        add_line(memory_db, master_id, state=LineStatus.AVAILABLE)
        add_line(memory_db, master_id, state=LineStatus.AWAITING_SUPPLIER)

        result = workflow.complete_if_all_lines_terminal(master_id)

        assert isinstance(result.failure, InvalidTransition)
        assert master(memory_db, master_id)['isCompleteflag'] == 0

    def test_guard_rescans_lines(self, workflow, memory_db):
        master_id = add_master(memory_db)
        add_line(memory_db, master_id, state=LineStatus.AVAILABLE)
        pending = add_line(memory_db, master_id, state=LineStatus.AWAITING_SUPPLIER, supplier_id=5)
        assert workflow.complete_if_all_lines_terminal(master_id).is_failure

        workflow.supplier_respond(pending, True, 10, SUPPLIER).unwrap()
        assert workflow.complete_if_all_lines_terminal(master_id).unwrap() == MasterStatus.RESOLVED

    def test_master_without_lines_completes(self, workflow, memory_db):
        master_id = add_master(memory_db)
        assert workflow.complete_if_all_lines_terminal(master_id).unwrap() == MasterStatus.RESOLVED

    def test_only_admin_completes(self, workflow, memory_db):
        master_id = add_master(memory_db)
        assert isinstance(workflow.complete_if_all_lines_terminal(master_id, SALESMAN).failure, InvalidTransition)

    def test_inform_salesman_sums_available_lines(self, workflow, memory_db):
        add_order_line(memory_db, 501)
        master_id = add_master(memory_db, order_sub_id=501)
        add_line(memory_db, master_id, state=LineStatus.AVAILABLE, avail=6)
        add_line(memory_db, master_id, state=LineStatus.NOT_AVAILABLE)
        add_line(memory_db, master_id, state=LineStatus.CANCELLED, avail=3)

        workflow.inform_salesman(master_id).unwrap()

        assert memory_db.fetch_one("SELECT availQty FROM OrderSub WHERE orderSubId = 501")['availQty'] == 6.0
        stored = master(memory_db, master_id)
        assert (stored['availQty'], stored['isCompleteflag']) == (6.0, 1)

    def test_inform_salesman_explicit_quantity(self, workflow, memory_db):
        add_order_line(memory_db, 502)
        master_id = add_master(memory_db, order_sub_id=502)
        workflow.inform_salesman(master_id, available_qty=2).unwrap()
        assert memory_db.fetch_one("SELECT availQty FROM OrderSub WHERE orderSubId = 502")['availQty'] == 2.0

    def test_inform_salesman_requires_terminal_lines(self, workflow, memory_db):
        add_order_line(memory_db, 503)
        master_id = add_master(memory_db, order_sub_id=503)
        add_line(memory_db, master_id, state=LineStatus.UNRESOLVED)
        assert isinstance(workflow.inform_salesman(master_id).failure, InvalidTransition)
        assert memory_db.fetch_one("SELECT isCheckedflag FROM OrderSub WHERE orderSubId = 503")['isCheckedflag'] == 0

    def test_inform_salesman_requires_local_order_line(self, workflow, memory_db):
        master_id = add_master(memory_db, order_sub_id=999)
        assert isinstance(workflow.inform_salesman(master_id).failure, ValidationFailure)
        assert master(memory_db, master_id)['isCompleteflag'] == 0


class TestCancellation:
    @pytest.mark.parametrize("state", [0, 1, 2, 3])
    def test_cancel_line(self, workflow, memory_db, state):
        line_id = add_line(memory_db, add_master(memory_db), state=state)
        assert workflow.cancel_line(line_id, SALESMAN).unwrap() == LineStatus.CANCELLED

    @pytest.mark.parametrize("state", [4, 5])
    def test_cancel_terminal_line_rejected(self, workflow, memory_db, state):
        line_id = add_line(memory_db, add_master(memory_db), state=state)
        assert isinstance(workflow.cancel_line(line_id, ADMIN).failure, InvalidTransition)

    def test_cancel_master_cascades(self, workflow, memory_db):
        master_id = add_master(memory_db)
        open_line = add_line(memory_db, master_id, state=LineStatus.UNRESOLVED)
        waiting = add_line(memory_db, master_id, state=LineStatus.AWAITING_SUPPLIER)
        rejected = add_line(memory_db, master_id, state=LineStatus.NOT_AVAILABLE)

        assert workflow.cancel_master(master_id, SALESMAN).unwrap() == MasterStatus.CANCELLED

        assert master(memory_db, master_id)['isCompleteflag'] == 5
        assert [line(memory_db, l)['oospFlag'] for l in (open_line, waiting, rejected)] == [5, 5, 4]
        assert workflow.get_master(master_id).unwrap()['status'] == MasterStatus.CANCELLED

    def test_supplier_cannot_cancel_master(self, workflow, memory_db):
        master_id = add_master(memory_db)
        assert isinstance(workflow.cancel_master(master_id, SUPPLIER).failure, InvalidTransition)
        assert master(memory_db, master_id)['isCompleteflag'] == 0

    def test_cancel_for_order_line(self, workflow, memory_db):
        first = add_master(memory_db, order_sub_id=600)
        second = add_master(memory_db, order_sub_id=600)
        other = add_master(memory_db, order_sub_id=601)
        line_id = add_line(memory_db, first, state=LineStatus.AWAITING_SUPPLIER)

        assert workflow.cancel_for_order_line(600, SALESMAN).unwrap() == 2

        assert [master(memory_db, m)['isCompleteflag'] for m in (first, second, other)] == [5, 5, 0]
        assert line(memory_db, line_id)['oospFlag'] == LineStatus.CANCELLED


class TestPacking:
    def test_storekeeper_packs(self, workflow, memory_db):
        master_id = add_master(memory_db)
        line_id = add_line(memory_db, master_id, state=LineStatus.AVAILABLE)
        oosp_id = line(memory_db, line_id)['oospId']

        assert workflow.is_packed(line_id).unwrap() is False
        assert workflow.mark_packed(oosp_id, 3, STOREKEEPER).unwrap() is True
        assert workflow.is_packed(line_id).unwrap() is True
        assert workflow.get_lines(master_id).unwrap()[0]['isPacked'] == 1
        assert line(memory_db, line_id)['oospFlag'] == LineStatus.AVAILABLE

        assert workflow.unmark_packed(oosp_id, STOREKEEPER).unwrap() is True
        assert workflow.is_packed(line_id).unwrap() is False

    @pytest.mark.parametrize("role", [ADMIN, SALESMAN, SUPPLIER])
    def test_other_roles_cannot_pack(self, workflow, role):
        assert isinstance(workflow.mark_packed(1, 1, role).failure, InvalidTransition)
        assert isinstance(workflow.unmark_packed(1, role).failure, InvalidTransition)

    def test_negative_pack_quantity(self, workflow):
        assert isinstance(workflow.mark_packed(1, -2, STOREKEEPER).failure, ValidationFailure)


class TestViews:
    def test_count_unviewed_and_mark_viewed(self, workflow, memory_db):
        master_id = add_master(memory_db)
        add_master(memory_db, flag=0)
        add_line(memory_db, master_id, supplier_id=5)
        add_line(memory_db, master_id, supplier_id=6)

        assert workflow.count_unviewed(ADMIN).unwrap() == 1
        assert workflow.count_unviewed(SUPPLIER).unwrap() == 2
        assert workflow.count_unviewed(SUPPLIER, supplier_id=5).unwrap() == 1
        assert workflow.count_unviewed(UserType.DRIVER).unwrap() == 0

        assert workflow.mark_viewed(master_id).unwrap() == 2
        assert workflow.count_unviewed(SALESMAN).unwrap() == 0
        assert workflow.count_unviewed(STOREKEEPER).unwrap() == 0

    def test_get_lines_of_missing_master(self, workflow):
        assert isinstance(workflow.get_lines(9999).failure, ValidationFailure)


# --- Upload queue ---

class TestUploadQueue:
    def test_transitions_queue_changed_rows(self, workflow, memory_db):
        tracker = FailedOpTracker(memory_db)
        master_id = add_master(memory_db)
        line_id = add_line(memory_db, master_id, state=LineStatus.AVAILABLE)
        other = add_line(memory_db, master_id, state=LineStatus.UNRESOLVED, supplier_id=5)

        workflow.send_to_supplier(other, ADMIN).unwrap()
        workflow.supplier_respond(other, True, 10, SUPPLIER).unwrap()
        workflow.complete_if_all_lines_terminal(master_id).unwrap()

        assert tracker.exists(entities.OUT_OF_STOCK_PRODUCTS, other, OP_UPLOAD)
        assert tracker.exists(entities.OUT_OF_STOCK_MASTER, master_id, OP_UPLOAD)
        assert not tracker.exists(entities.OUT_OF_STOCK_PRODUCTS, line_id, OP_UPLOAD)
        # queued once, however many transitions touched the line
        assert len(tracker.list_pending(entities.OUT_OF_STOCK_PRODUCTS, OP_UPLOAD)) == 1

    def test_rejected_transition_queues_nothing(self, workflow, memory_db):
        line_id = add_line(memory_db, add_master(memory_db))
        assert workflow.send_to_supplier(line_id, ADMIN).is_failure
        assert FailedOpTracker(memory_db).count() == 0

    def test_mark_viewed_queues_nothing(self, workflow, memory_db):
        master_id = add_master(memory_db)
        add_line(memory_db, master_id)
        workflow.mark_viewed(master_id).unwrap()
        assert FailedOpTracker(memory_db).count() == 0


# --- Reporting ---

class TestReportShortage:
    def test_report_creates_master_and_lines(self, workflow, memory_db):
        master_id = workflow.report_shortage(
            {"orderSubId": 700, "custId": 3, "productId": 41, "qty": 6, "note": "urgent"},
            [{"supplierId": 5}, {"qty": 2, "productId": 42}],
            SALESMAN).unwrap()

        stored = master(memory_db, master_id)
        assert (stored['oospMasterId'], stored['isCompleteflag'], stored['flag'], stored['qty']) == (-1, 0, 1, 6.0)
        assert stored['UUID']
        lines = workflow.get_lines(master_id).unwrap()
        assert [(l['oospId'], l['oospMasterId'], l['oospFlag']) for l in lines] == [(-1, -1, 0), (-1, -1, 0)]
        assert [(l['productId'], l['qty'], l['supplierId']) for l in lines] == [(41, 6.0, 5), (42, 2.0, -1)]
        assert all(l['orderSubId'] == 700 and l['custId'] == 3 and l['UUID'] == stored['UUID'] for l in lines)
        assert [l['isPacked'] for l in lines] == [0, 0]

    def test_report_is_queued_for_upload(self, workflow, memory_db):
        tracker = FailedOpTracker(memory_db)
        master_id = workflow.report_shortage({"qty": 1}, [{}], STOREKEEPER).unwrap()
        assert [(e.data_id, e.operation) for e in tracker.list_pending()] == [(master_id, OP_UPLOAD)]
        assert tracker.list_pending()[0].table_id == entities.OUT_OF_STOCK_MASTER.table_id

    def test_reports_keep_their_lines_apart(self, workflow, memory_db):
        first = workflow.report_shortage({"qty": 1}, [{}, {}], ADMIN).unwrap()
        second = workflow.report_shortage({"qty": 1}, [{}], ADMIN).unwrap()
        assert len(workflow.get_lines(first).unwrap()) == 2
        assert len(workflow.get_lines(second).unwrap()) == 1

    def test_unsent_line_transitions_reach_its_master(self, workflow, memory_db):
        master_id = workflow.report_shortage({"qty": 4}, [{}], ADMIN).unwrap()
        line_id = workflow.get_lines(master_id).unwrap()[0]['id']

        assert workflow.admin_mark_not_available(line_id, ADMIN).unwrap() == LineStatus.NOT_AVAILABLE

        assert master(memory_db, master_id)['isCompleteflag'] == 1
        # unsent rows travel with the report, not on their own
        assert not FailedOpTracker(memory_db).exists(entities.OUT_OF_STOCK_PRODUCTS, line_id, OP_UPLOAD)

    @pytest.mark.parametrize("role", [SUPPLIER, UserType.DRIVER])
    def test_role_may_not_report(self, workflow, memory_db, role):
        result = workflow.report_shortage({"qty": 1}, [{}], role)
        assert isinstance(result.failure, InvalidTransition)
        assert memory_db.fetch_one("SELECT COUNT(*) AS n FROM OutOfStockMaster")['n'] == 0

    @pytest.mark.parametrize("master_values, lines", [
        ({"qty": 0}, [{}]),
        ({"qty": 3}, [{"qty": -1}]),
        ({"qty": 3, "oospMasterId": 5}, [{}]),
        ({"qty": 3}, [{"oospFlag": 2}]),
    ])
    def test_invalid_report_writes_nothing(self, workflow, memory_db, master_values, lines):
        result = workflow.report_shortage(master_values, lines, ADMIN)
        assert isinstance(result.failure, ValidationFailure)
        assert memory_db.fetch_one("SELECT COUNT(*) AS n FROM OutOfStockMaster")['n'] == 0
        assert memory_db.fetch_one("SELECT COUNT(*) AS n FROM OutOfStockProducts")['n'] == 0
        assert FailedOpTracker(memory_db).count() == 0


def test_racing_responses_serialize(temp_db_path):
    """Two threads answering the same line: exactly one transition wins."""
    db = FieldOpsDB(temp_db_path, client_id="race")
    master_id = add_master(db)
    line_id = add_line(db, master_id, state=LineStatus.AWAITING_SUPPLIER, supplier_id=5)
    workflow = FulfillmentWorkflow(db)
    results = []
    barrier = threading.Barrier(2)

    def respond(available):
        barrier.wait()
        results.append(workflow.supplier_respond(line_id, available, 10 if available else 3, SUPPLIER))
        db.close_connection()

    threads = [threading.Thread(target=respond, args=(flag,)) for flag in (True, False)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(r.is_ok for r in results) == [False, True]
    loser = next(r for r in results if r.is_failure)
    assert isinstance(loser.failure, (InvalidTransition, DatabaseFailure))
    assert line(db, line_id)['oospFlag'] in (LineStatus.AVAILABLE, LineStatus.PARTIALLY_AVAILABLE)
    db.close_connection()

#
# End of test_fulfillment_workflow.py
########################################################################################################################
