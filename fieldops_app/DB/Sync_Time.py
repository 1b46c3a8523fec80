# Sync_Time.py
# Description: Per-table download watermarks (SyncTime table).
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


class SyncTimeRepository:
    """Reads and writes the last `updated_date` the server reported for each table."""

    def __init__(self, db: FieldOpsDB):
        self.db = db

    def get_watermark(self, table_name: str) -> Optional[str]:
        row = self.db.fetch_one("SELECT update_date FROM SyncTime WHERE table_name = ?", (table_name,))
        return row['update_date'] if row else None

    def set_watermark(self, table_name: str, update_date: str) -> None:
        if not table_name:
            raise InputError("table_name cannot be empty.")
        if update_date is None:
            raise InputError(f"Watermark for {table_name} cannot be None.")
        with self.db.transaction():
            self.db.execute_query(
                "INSERT INTO SyncTime (table_name, update_date) VALUES (?, ?) "
                "ON CONFLICT(table_name) DO UPDATE SET update_date = excluded.update_date",
                (table_name, str(update_date)))
        logger.debug(f"Watermark for {table_name} set to {update_date}")

    def clear_watermark(self, table_name: str) -> bool:
        with self.db.transaction():
            cursor = self.db.execute_query("DELETE FROM SyncTime WHERE table_name = ?", (table_name,))
        return cursor.rowcount > 0

    def all_watermarks(self) -> Dict[str, str]:
        return {row['table_name']: row['update_date']
                for row in self.db.fetch_all("SELECT table_name, update_date FROM SyncTime ORDER BY table_name")}

#
# End of Sync_Time.py
########################################################################################################################
