# test_local_tables.py
#
# Tests for the local-only tables: FailedSync, SyncTime and PackedSubs.
#
# Imports
#
# Third-Party Imports
import pytest
#
# Local Imports
from fieldops_app.Constants import OP_DOWNLOAD, OP_UPLOAD, TableId
from fieldops_app.DB.FieldOps_DB import InputError
from fieldops_app.DB.Failed_Sync import FailedOperation
from fieldops_app.Sync import entities
#
########################################################################################################################
#
# Functions:

class TestFailedOpTracker:
    def test_record_and_list(self, tracker):
        tracker.record(entities.CUSTOMERS, 7)
        tracker.record(TableId.PRODUCT, 3, OP_UPLOAD)
        pending = tracker.list_pending()
        assert [(p.table_id, p.data_id, p.operation) for p in pending] == [
            (TableId.CUSTOMER, 7, OP_DOWNLOAD),
            (TableId.PRODUCT, 3, OP_UPLOAD),
        ]
        assert all(isinstance(p, FailedOperation) for p in pending)

    def test_record_does_not_deduplicate(self, tracker):
        tracker.record(entities.CUSTOMERS, 7)
        tracker.record(entities.CUSTOMERS, 7)
        assert tracker.count() == 2

    def test_record_once(self, tracker):
        assert tracker.record_once(entities.CUSTOMERS, 7) is True
        assert tracker.record_once(entities.CUSTOMERS, 7) is False
        assert tracker.record_once(entities.CUSTOMERS, 7, OP_UPLOAD) is True
        assert tracker.count() == 2

    def test_exists(self, tracker):
        assert not tracker.exists(entities.CUSTOMERS, 7)
        tracker.record(entities.CUSTOMERS, 7)
        assert tracker.exists(entities.CUSTOMERS, 7)
        assert not tracker.exists(entities.CUSTOMERS, 7, OP_UPLOAD)
        assert not tracker.exists(entities.ROUTES, 7)

    def test_clear_removes_every_matching_entry(self, tracker):
        tracker.record(entities.CUSTOMERS, 7)
        tracker.record(entities.CUSTOMERS, 7)
        tracker.record(entities.CUSTOMERS, 8)
        assert tracker.clear(entities.CUSTOMERS, 7) == 2
        assert [p.data_id for p in tracker.list_pending()] == [8]

    def test_clear_by_operation(self, tracker):
        tracker.record(entities.CUSTOMERS, 7, OP_DOWNLOAD)
        tracker.record(entities.CUSTOMERS, 7, OP_UPLOAD)
        assert tracker.clear(entities.CUSTOMERS, 7, OP_UPLOAD) == 1
        assert tracker.exists(entities.CUSTOMERS, 7, OP_DOWNLOAD)

    def test_list_filtered(self, tracker):
        tracker.record(entities.CUSTOMERS, 1)
        tracker.record(entities.ROUTES, 2, OP_UPLOAD)
        assert [p.data_id for p in tracker.list_pending(kind=entities.ROUTES)] == [2]
        assert [p.data_id for p in tracker.list_pending(operation=OP_DOWNLOAD)] == [1]

    def test_unknown_operation_rejected(self, tracker):
        with pytest.raises(InputError):
            tracker.record(entities.CUSTOMERS, 1, "delete")


class TestSyncTime:
    def test_missing_watermark_is_none(self, watermarks):
        assert watermarks.get_watermark("Customers") is None

    def test_set_and_replace(self, watermarks):
        watermarks.set_watermark("Customers", "2024-05-01 10:00:00")
        watermarks.set_watermark("Customers", "2024-05-02 08:30:00")
        assert watermarks.get_watermark("Customers") == "2024-05-02 08:30:00"
        assert watermarks.all_watermarks() == {"Customers": "2024-05-02 08:30:00"}

    def test_clear(self, watermarks):
        watermarks.set_watermark("Units", "x")
        assert watermarks.clear_watermark("Units") is True
        assert watermarks.clear_watermark("Units") is False

    @pytest.mark.parametrize("table_name, value", [("", "x"), ("Units", None)])
    def test_invalid_input(self, watermarks, table_name, value):
        with pytest.raises(InputError):
            watermarks.set_watermark(table_name, value)


class TestPackingLedger:
    def test_pack_and_unpack(self, ledger):
        assert not ledger.is_packed(5)
        ledger.pack(5, 3)
        assert ledger.is_packed(5)
        assert ledger.packed_quantity(5) == 3.0
        assert ledger.unpack(5) is True
        assert not ledger.is_packed(5)
        assert ledger.unpack(5) is False

    def test_repack_replaces_quantity(self, ledger):
        ledger.pack(5, 3)
        ledger.pack(5, 4.5)
        assert ledger.all_packed() == {5: 4.5}

    def test_negative_quantity_rejected(self, ledger):
        with pytest.raises(InputError):
            ledger.pack(5, -1)
        assert ledger.packed_quantity(5) is None

#
# End of test_local_tables.py
########################################################################################################################
