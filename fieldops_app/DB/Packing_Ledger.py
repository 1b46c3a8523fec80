# Packing_Ledger.py
# Description: Storekeeper packing marks (PackedSubs table). A row means "packed".
#
# Imports
import logging
from typing import Dict, Optional
#
# 3rd-Party Imports
#
# Local Imports
from fieldops_app.DB.FieldOps_DB import FieldOpsDB, InputError
#
########################################################################################################################
#
# Functions:

logger = logging.getLogger(__name__)


class PackingLedger:
    def __init__(self, db: FieldOpsDB):
        self.db = db

    def pack(self, order_line_id: int, quantity: float) -> None:
        """Marks a line packed with `quantity`; packing again replaces the quantity."""
        if quantity is None or float(quantity) < 0:
            raise InputError(f"Packed quantity must be a non-negative number, got {quantity!r}")
        with self.db.transaction():
            self.db.execute_query(
                "INSERT INTO PackedSubs (orderSubId, quantity) VALUES (?, ?) "
                "ON CONFLICT(orderSubId) DO UPDATE SET quantity = excluded.quantity",
                (int(order_line_id), float(quantity)))
        logger.debug(f"Packed line {order_line_id} (qty {quantity})")

    def unpack(self, order_line_id: int) -> bool:
        with self.db.transaction():
            cursor = self.db.execute_query("DELETE FROM PackedSubs WHERE orderSubId = ?", (int(order_line_id),))
        return cursor.rowcount > 0

    def is_packed(self, order_line_id: int) -> bool:
        row = self.db.fetch_one("SELECT 1 AS packed FROM PackedSubs WHERE orderSubId = ?", (int(order_line_id),))
        return row is not None

    def packed_quantity(self, order_line_id: int) -> Optional[float]:
        row = self.db.fetch_one("SELECT quantity FROM PackedSubs WHERE orderSubId = ?", (int(order_line_id),))
        return float(row['quantity']) if row else None

    def all_packed(self) -> Dict[int, float]:
        return {row['orderSubId']: row['quantity']
                for row in self.db.fetch_all("SELECT orderSubId, quantity FROM PackedSubs ORDER BY orderSubId")}

#
# End of Packing_Ledger.py
########################################################################################################################
