# Schema_Migrations.py
# Description: Table definitions and the ordered migration chain for the FieldOps local store.
#
"""
Schema_Migrations.py
--------------------

Holds the final table layout of the FieldOps store and the version-indexed
migration chain that reaches it from an empty database.

Column definitions live in one place (`TABLE_COLUMNS`). The fresh schema is
rendered straight from them, and every migration that adds a table or column
in its final form reuses the same definition, so a store migrated 1..N ends
up with the same columns and defaults as one created directly at N. Shapes
that only ever existed in older versions (the first Product table, the TEXT
typed flag columns later narrowed to INTEGER) are spelled out next to the
migration that introduced them.

Each migration receives an open connection that is already inside a
transaction and must not commit.
"""
# Imports
import logging
import re
import sqlite3
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
#
# Third-Party Imports
#
# Local Imports
#
########################################################################################################################
#
# Functions:

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 22

_PK = "id INTEGER PRIMARY KEY AUTOINCREMENT"

# --- Final column layout, per table ---
TABLE_COLUMNS: Dict[str, List[Tuple[str, str]]] = {
    "SyncTime": [
        ("table_name", "TEXT NOT NULL UNIQUE"),
        ("update_date", "TEXT NOT NULL"),
    ],
    "FailedSync": [
        ("table_id", "INTEGER NOT NULL"),
        ("data_id", "INTEGER NOT NULL"),
        ("operation", "TEXT DEFAULT 'download' NOT NULL"),
    ],
    "UsersCategory": [
        ("userCategoryId", "INTEGER NOT NULL"),
        ("name", "TEXT DEFAULT '' NOT NULL"),
        ("permissionJson", "TEXT DEFAULT '{}' NOT NULL"),
        ("flag", "INTEGER DEFAULT 1 NOT NULL"),
    ],
    "Users": [
        ("userId", "INTEGER NOT NULL"),
        ("code", "TEXT DEFAULT '' NOT NULL"),
        ("name", "TEXT DEFAULT '' NOT NULL"),
        ("phone", "TEXT DEFAULT '' NOT NULL"),
        ("address", "TEXT DEFAULT '' NOT NULL"),
        ("categoryId", "INTEGER DEFAULT -1 NOT NULL"),
        ("password", "TEXT DEFAULT '' NOT NULL"),
        ("createdDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("updatedDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("deviceToken", "TEXT DEFAULT '' NOT NULL"),
        ("multiDeviceLogin", "INTEGER DEFAULT 0 NOT NULL"),
        ("flag", "INTEGER DEFAULT 1 NOT NULL"),
    ],
    "SalesMan": [
        ("salesManId", "INTEGER NOT NULL"),
        ("userId", "INTEGER DEFAULT -1 NOT NULL"),
        ("code", "TEXT DEFAULT '' NOT NULL"),
        ("name", "TEXT DEFAULT '' NOT NULL"),
        ("phone", "TEXT DEFAULT '' NOT NULL"),
        ("address", "TEXT DEFAULT '' NOT NULL"),
        ("deviceToken", "TEXT DEFAULT '' NOT NULL"),
        ("createdDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("updatedDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("flag", "INTEGER DEFAULT 1 NOT NULL"),
    ],
    "Suppliers": [
        ("supplierId", "INTEGER NOT NULL"),
        ("userId", "INTEGER DEFAULT -1 NOT NULL"),
        ("code", "TEXT DEFAULT '' NOT NULL"),
        ("name", "TEXT DEFAULT '' NOT NULL"),
        ("phone", "TEXT DEFAULT '' NOT NULL"),
        ("address", "TEXT DEFAULT '' NOT NULL"),
        ("deviceToken", "TEXT DEFAULT '' NOT NULL"),
        ("createdDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("updatedDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("flag", "INTEGER DEFAULT 1 NOT NULL"),
    ],
    "Routes": [
        ("routeId", "INTEGER NOT NULL"),
        ("code", "TEXT DEFAULT '' NOT NULL"),
        ("name", "TEXT DEFAULT '' NOT NULL"),
        ("salesmanId", "INTEGER DEFAULT -1 NOT NULL"),
        ("createdDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("updatedDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("flag", "INTEGER DEFAULT 1 NOT NULL"),
    ],
    "Customers": [
        ("customerId", "INTEGER NOT NULL"),
        ("code", "TEXT DEFAULT '' NOT NULL"),
        ("name", "TEXT DEFAULT '' NOT NULL"),
        ("phone", "TEXT DEFAULT '' NOT NULL"),
        ("address", "TEXT DEFAULT '' NOT NULL"),
        ("routId", "INTEGER DEFAULT -1 NOT NULL"),
        ("salesmanId", "INTEGER DEFAULT -1 NOT NULL"),
        ("rating", "INTEGER DEFAULT 10 NOT NULL"),
        ("deviceToken", "TEXT DEFAULT '' NOT NULL"),
        ("createdDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("updatedDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("flag", "INTEGER DEFAULT 1 NOT NULL"),
    ],
    "Category": [
        ("categoryId", "INTEGER NOT NULL"),
        ("name", "TEXT DEFAULT '' NOT NULL"),
        ("remark", "TEXT DEFAULT '' NOT NULL"),
        ("flag", "INTEGER DEFAULT 1 NOT NULL"),
    ],
    "SubCategory": [
        ("subCategoryId", "INTEGER NOT NULL"),
        ("parentId", "INTEGER DEFAULT -1 NOT NULL"),
        ("name", "TEXT DEFAULT '' NOT NULL"),
        ("remark", "TEXT DEFAULT '' NOT NULL"),
        ("flag", "INTEGER DEFAULT 1 NOT NULL"),
    ],
    "Units": [
        ("unitId", "INTEGER NOT NULL"),
        ("code", "TEXT"),
        ("name", "TEXT"),
        ("displayName", "TEXT"),
        ("type", "INTEGER"),
        ("baseId", "INTEGER"),
        ("baseQty", "REAL"),
        ("comment", "TEXT"),
        ("flag", "INTEGER"),
    ],
    "Product": [
        ("productId", "INTEGER NOT NULL"),
        ("code", "TEXT DEFAULT '' NOT NULL"),
        ("barcode", "TEXT DEFAULT '' NOT NULL"),
        ("name", "TEXT DEFAULT '' NOT NULL"),
        ("subName", "TEXT DEFAULT '' NOT NULL"),
        ("brand", "TEXT DEFAULT '' NOT NULL"),
        ("subBrand", "TEXT DEFAULT '' NOT NULL"),
        ("categoryId", "INTEGER DEFAULT -1 NOT NULL"),
        ("subCategoryId", "INTEGER DEFAULT -1 NOT NULL"),
        ("defaultSuppId", "INTEGER DEFAULT -1 NOT NULL"),
        ("autoSend", "INTEGER DEFAULT 0 NOT NULL"),
        ("baseUnitId", "INTEGER DEFAULT -1 NOT NULL"),
        ("defaultUnitId", "INTEGER DEFAULT -1 NOT NULL"),
        ("photoUrl", "TEXT DEFAULT '' NOT NULL"),
        ("price", "REAL DEFAULT 0.0 NOT NULL"),
        ("mrp", "REAL DEFAULT 0.0 NOT NULL"),
        ("retailPrice", "REAL DEFAULT 0.0 NOT NULL"),
        ("fittingCharge", "REAL DEFAULT 0.0 NOT NULL"),
        ("note", "TEXT DEFAULT '' NOT NULL"),
        ("outtOfStockFlag", "INTEGER DEFAULT 1 NOT NULL"),
        ("flag", "INTEGER DEFAULT 1 NOT NULL"),
    ],
    "ProductUnits": [
        ("productUnitId", "INTEGER NOT NULL"),
        ("productId", "INTEGER DEFAULT -1 NOT NULL"),
        ("baseUnitId", "INTEGER DEFAULT -1 NOT NULL"),
        ("derivedUnitId", "INTEGER DEFAULT -1 NOT NULL"),
        ("flag", "INTEGER DEFAULT 1 NOT NULL"),
    ],
    "ProductCar": [
        ("productCarId", "INTEGER NOT NULL"),
        ("productId", "INTEGER DEFAULT -1 NOT NULL"),
        ("carBrandId", "INTEGER DEFAULT -1 NOT NULL"),
        ("carNameId", "INTEGER DEFAULT -1 NOT NULL"),
        ("carModelId", "INTEGER DEFAULT -1 NOT NULL"),
        ("carVersionId", "INTEGER DEFAULT -1 NOT NULL"),
        ("flag", "INTEGER DEFAULT 1 NOT NULL"),
    ],
    "CarBrand": [
        ("carBrandId", "INTEGER NOT NULL"),
        ("name", "TEXT DEFAULT '' NOT NULL"),
        ("flag", "INTEGER DEFAULT 1 NOT NULL"),
    ],
    "CarName": [
        ("carNameId", "INTEGER NOT NULL"),
        ("carBrandId", "INTEGER DEFAULT -1 NOT NULL"),
        ("name", "TEXT DEFAULT '' NOT NULL"),
        ("flag", "INTEGER DEFAULT 1 NOT NULL"),
    ],
    "CarModel": [
        ("carModelId", "INTEGER NOT NULL"),
        ("carNameId", "INTEGER DEFAULT -1 NOT NULL"),
        ("carBrandId", "INTEGER DEFAULT -1 NOT NULL"),
        ("name", "TEXT DEFAULT '' NOT NULL"),
        ("flag", "INTEGER DEFAULT 1 NOT NULL"),
    ],
    "CarVersion": [
        ("carVersionId", "INTEGER NOT NULL"),
        ("carNameId", "INTEGER DEFAULT -1 NOT NULL"),
        ("carBrandId", "INTEGER DEFAULT -1 NOT NULL"),
        ("carModelId", "INTEGER DEFAULT -1 NOT NULL"),
        ("name", "TEXT DEFAULT '' NOT NULL"),
        ("flag", "INTEGER DEFAULT 1 NOT NULL"),
    ],
    "Orders": [
        ("orderId", "INTEGER NOT NULL"),
        ("invoiceNo", "TEXT DEFAULT '' NOT NULL"),
        ("UUID", "TEXT DEFAULT '' NOT NULL"),
        ("customerId", "INTEGER DEFAULT -1 NOT NULL"),
        ("customerName", "TEXT DEFAULT '' NOT NULL"),
        ("salesmanId", "INTEGER DEFAULT -1 NOT NULL"),
        ("storeKeeperId", "INTEGER DEFAULT -1 NOT NULL"),
        ("billerId", "INTEGER DEFAULT -1 NOT NULL"),
        ("checkerId", "INTEGER DEFAULT -1 NOT NULL"),
        ("dateAndTime", "TEXT DEFAULT '' NOT NULL"),
        ("note", "TEXT DEFAULT '' NOT NULL"),
        ("total", "REAL DEFAULT 0.0 NOT NULL"),
        ("freightCharge", "REAL DEFAULT 0.0 NOT NULL"),
        ("approveFlag", "INTEGER DEFAULT 0 NOT NULL"),
        ("createdDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("updatedDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("flag", "INTEGER DEFAULT 0 NOT NULL"),
        ("isProcessFinish", "INTEGER DEFAULT 0 NOT NULL"),
    ],
    "OrderSub": [
        ("orderSubId", "INTEGER NOT NULL"),
        ("orderId", "INTEGER DEFAULT -1 NOT NULL"),
        ("invoiceNo", "TEXT DEFAULT '' NOT NULL"),
        ("UUID", "TEXT DEFAULT '' NOT NULL"),
        ("customerId", "INTEGER DEFAULT -1 NOT NULL"),
        ("salesmanId", "INTEGER DEFAULT -1 NOT NULL"),
        ("storeKeeperId", "INTEGER DEFAULT -1 NOT NULL"),
        ("dateAndTime", "TEXT DEFAULT '' NOT NULL"),
        ("productId", "INTEGER DEFAULT -1 NOT NULL"),
        ("unitId", "INTEGER DEFAULT -1 NOT NULL"),
        ("carId", "INTEGER DEFAULT -1 NOT NULL"),
        ("rate", "REAL DEFAULT 0.0 NOT NULL"),
        ("updateRate", "REAL DEFAULT 0.0 NOT NULL"),
        ("quantity", "REAL DEFAULT 0.0 NOT NULL"),
        ("availQty", "REAL DEFAULT 0.0 NOT NULL"),
        ("unitBaseQty", "REAL DEFAULT 0.0 NOT NULL"),
        ("note", "TEXT DEFAULT '' NOT NULL"),
        ("narration", "TEXT DEFAULT '' NOT NULL"),
        ("orderFlag", "INTEGER DEFAULT 0 NOT NULL"),
        ("createdDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("updatedDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("isCheckedflag", "INTEGER DEFAULT 0 NOT NULL"),
        ("flag", "INTEGER DEFAULT 0 NOT NULL"),
    ],
    "OrderSubSuggestions": [
        ("sugId", "INTEGER NOT NULL"),
        ("orderSubId", "INTEGER DEFAULT -1 NOT NULL"),
        ("productId", "INTEGER DEFAULT -1 NOT NULL"),
        ("price", "REAL DEFAULT 0.0 NOT NULL"),
        ("note", "TEXT DEFAULT '' NOT NULL"),
        ("flag", "INTEGER DEFAULT 0 NOT NULL"),
    ],
    "OutOfStockMaster": [
        ("oospMasterId", "INTEGER NOT NULL"),
        ("orderSubId", "INTEGER DEFAULT -1 NOT NULL"),
        ("custId", "INTEGER DEFAULT -1 NOT NULL"),
        ("salesmanId", "INTEGER DEFAULT -1 NOT NULL"),
        ("storekeeperId", "INTEGER DEFAULT -1 NOT NULL"),
        ("dateAndTime", "TEXT DEFAULT '' NOT NULL"),
        ("productId", "INTEGER DEFAULT -1 NOT NULL"),
        ("unitId", "INTEGER DEFAULT -1 NOT NULL"),
        ("carId", "INTEGER DEFAULT -1 NOT NULL"),
        ("qty", "REAL DEFAULT 0.0 NOT NULL"),
        ("availQty", "REAL DEFAULT 0.0 NOT NULL"),
        ("baseQty", "REAL DEFAULT 0.0 NOT NULL"),
        ("note", "TEXT DEFAULT '' NOT NULL"),
        ("narration", "TEXT DEFAULT '' NOT NULL"),
        ("createdDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("updatedDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("isCompleteflag", "INTEGER DEFAULT 0 NOT NULL"),
        ("flag", "INTEGER DEFAULT 0 NOT NULL"),
        ("UUID", "TEXT DEFAULT '' NOT NULL"),
        ("isViewed", "INTEGER DEFAULT 0 NOT NULL"),
    ],
    "OutOfStockProducts": [
        ("oospId", "INTEGER NOT NULL"),
        ("oospMasterId", "INTEGER DEFAULT -1 NOT NULL"),
        ("orderSubId", "INTEGER DEFAULT -1 NOT NULL"),
        ("custId", "INTEGER DEFAULT -1 NOT NULL"),
        ("salesmanId", "INTEGER DEFAULT -1 NOT NULL"),
        ("storekeeperId", "INTEGER DEFAULT -1 NOT NULL"),
        ("dateAndTime", "TEXT DEFAULT '' NOT NULL"),
        ("supplierId", "INTEGER DEFAULT -1 NOT NULL"),
        ("productId", "INTEGER DEFAULT -1 NOT NULL"),
        ("unitId", "INTEGER DEFAULT -1 NOT NULL"),
        ("carId", "INTEGER DEFAULT -1 NOT NULL"),
        ("rate", "REAL DEFAULT 0.0 NOT NULL"),
        ("updateRate", "REAL DEFAULT 0.0 NOT NULL"),
        ("qty", "REAL DEFAULT 0.0 NOT NULL"),
        ("availQty", "REAL DEFAULT 0.0 NOT NULL"),
        ("baseQty", "REAL DEFAULT 0.0 NOT NULL"),
        ("note", "TEXT DEFAULT '' NOT NULL"),
        ("narration", "TEXT DEFAULT '' NOT NULL"),
        ("oospFlag", "INTEGER DEFAULT 0 NOT NULL"),
        ("createdDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("updatedDateTime", "TEXT DEFAULT '' NOT NULL"),
        ("isCheckedflag", "INTEGER DEFAULT 0 NOT NULL"),
        ("flag", "INTEGER DEFAULT 0 NOT NULL"),
        ("UUID", "TEXT DEFAULT '' NOT NULL"),
        ("isViewed", "INTEGER DEFAULT 0 NOT NULL"),
    ],
    "PackedSubs": [
        ("orderSubId", "INTEGER NOT NULL UNIQUE"),
        ("quantity", "REAL DEFAULT 0.0 NOT NULL"),
    ],
}

# OrderSubEditCache is a local scratch copy of an order line while it is being edited.
TABLE_COLUMNS["OrderSubEditCache"] = [
    ("orderSubId", "INTEGER NOT NULL UNIQUE") if name == "orderSubId" else (name, decl)
    for name, decl in TABLE_COLUMNS["OrderSub"]
]

# Server-assigned key column for every table that is reconciled with the server.
SERVER_KEY_COLUMNS: Dict[str, str] = {
    "UsersCategory": "userCategoryId",
    "Users": "userId",
    "SalesMan": "salesManId",
    "Suppliers": "supplierId",
    "Routes": "routeId",
    "Customers": "customerId",
    "Category": "categoryId",
    "SubCategory": "subCategoryId",
    "Units": "unitId",
    "Product": "productId",
    "ProductUnits": "productUnitId",
    "ProductCar": "productCarId",
    "CarBrand": "carBrandId",
    "CarName": "carNameId",
    "CarModel": "carModelId",
    "CarVersion": "carVersionId",
    "Orders": "orderId",
    "OrderSub": "orderSubId",
    "OrderSubSuggestions": "sugId",
    "OutOfStockMaster": "oospMasterId",
    "OutOfStockProducts": "oospId",
}

# Creation order of the fresh schema (reference data first).
TABLE_ORDER: Tuple[str, ...] = (
    "SyncTime", "FailedSync", "UsersCategory", "Users", "SalesMan", "Suppliers", "Routes", "Customers",
    "Category", "SubCategory", "Units", "Product", "ProductUnits", "ProductCar", "CarBrand", "CarName",
    "CarModel", "CarVersion", "Orders", "OrderSub", "OrderSubEditCache", "OrderSubSuggestions",
    "OutOfStockMaster", "OutOfStockProducts", "PackedSubs",
)


# --- SQL builders ---
def _column_sql(table: str, column: str) -> str:
    for name, decl in TABLE_COLUMNS[table]:
        if name == column:
            return f"{name} {decl}"
    raise KeyError(f"Unknown column {table}.{column}")


def create_table_sql(table: str, exclude: Iterable[str] = (),
                     overrides: Optional[Dict[str, str]] = None, name: Optional[str] = None) -> str:
    """
    Renders a CREATE TABLE statement from `TABLE_COLUMNS`.

    Args:
        table: Table whose column layout is used.
        exclude: Columns left out (they are added by a later migration).
        overrides: Column name -> declaration, for shapes that predate the final one.
        name: Table name to create, if different (used by rebuild-and-copy steps).
    """
    excluded = set(exclude)
    overrides = overrides or {}
    parts = [_PK]
    for col_name, decl in TABLE_COLUMNS[table]:
        if col_name in excluded:
            continue
        parts.append(f"{col_name} {overrides.get(col_name, decl)}")
    body = ",\n    ".join(parts)
    return f"CREATE TABLE {name or table} (\n    {body}\n)"


def server_key_index_sql(table: str) -> str:
    column = SERVER_KEY_COLUMNS[table]
    # -1 marks rows the server has not assigned yet; any number of those may exist.
    return (f"CREATE UNIQUE INDEX IF NOT EXISTS idx_{table}_server_key "
            f"ON {table}({column}) WHERE {column} <> -1")


_EXTRA_INDEXES: Dict[str, str] = {
    "idx_OutOfStockProducts_master":
        "CREATE INDEX IF NOT EXISTS idx_OutOfStockProducts_master ON OutOfStockProducts(oospMasterId)",
}


def _create_final_table(conn: sqlite3.Connection, table: str):
    conn.execute(create_table_sql(table))
    if table in SERVER_KEY_COLUMNS:
        conn.execute(server_key_index_sql(table))
    logger.debug(f"Created table {table}")


def _add_column(conn: sqlite3.Connection, table: str, column: str):
    conn.execute(f"ALTER TABLE {table} ADD COLUMN {_column_sql(table, column)}")


def _rebuild_and_copy(conn: sqlite3.Connection, table: str, columns: Sequence[str], casts: Dict[str, str],
                      exclude: Iterable[str] = ()):
    """
    Replaces `table` with a copy built from its final column declarations.

    SQLite cannot change a column type in place, so the data is copied into a
    fresh table (applying `casts`), the old table dropped and the new one renamed.
    """
    temp_name = f"{table}_new"
    conn.execute(create_table_sql(table, exclude=exclude, name=temp_name))
    select_cols = ", ".join(casts.get(col, col) for col in columns)
    column_list = ", ".join(columns)
    conn.execute(f"INSERT INTO {temp_name} (id, {column_list}) SELECT id, {select_cols} FROM {table}")
    conn.execute(f"DROP TABLE {table}")
    conn.execute(f"ALTER TABLE {temp_name} RENAME TO {table}")
    if table in SERVER_KEY_COLUMNS:
        conn.execute(server_key_index_sql(table))
    logger.debug(f"Rebuilt table {table} ({len(columns)} columns copied)")


_DEFAULT_RE = re.compile(r"DEFAULT\s+('(?:[^']*)'|-?\d+(?:\.\d+)?)", re.IGNORECASE)


def column_defaults(table: str) -> Dict[str, Any]:
    """
    Returns the declared default of every column of `table` as a Python value.
    Columns without a DEFAULT clause map to None.
    """
    defaults: Dict[str, Any] = {}
    for name, decl in TABLE_COLUMNS[table]:
        match = _DEFAULT_RE.search(decl)
        if not match:
            defaults[name] = None
            continue
        literal = match.group(1)
        if literal.startswith("'"):
            defaults[name] = literal[1:-1]
        elif "." in literal:
            defaults[name] = float(literal)
        else:
            defaults[name] = int(literal)
    return defaults


def create_full_schema(conn: sqlite3.Connection):
    """Creates every table and index of the current schema version."""
    for table in TABLE_ORDER:
        _create_final_table(conn, table)
    for index_sql in _EXTRA_INDEXES.values():
        conn.execute(index_sql)


# --- Migrations ---
# Product as first shipped; replaced wholesale in migration 6.
_LEGACY_PRODUCT_SQL = """
CREATE TABLE Product (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    productId INTEGER NOT NULL,
    code TEXT,
    barcode TEXT,
    name TEXT,
    brand TEXT,
    subBrand TEXT,
    categoryId INTEGER,
    subCategoryId INTEGER,
    defaultSuppId INTEGER,
    baseUnitId INTEGER,
    defaultUnitId INTEGER,
    photoUrl TEXT,
    price REAL,
    type INTEGER,
    outtOfStockFlag INTEGER DEFAULT 1,
    flag INTEGER DEFAULT 1
)
"""


def _migration_1(conn: sqlite3.Connection):
    conn.execute(_LEGACY_PRODUCT_SQL)
    conn.execute(server_key_index_sql("Product"))


def _migration_2(conn: sqlite3.Connection):
    _create_final_table(conn, "Units")


def _migration_3(conn: sqlite3.Connection):
    for table in ("Category", "SubCategory", "CarBrand", "CarName", "CarModel", "CarVersion"):
        _create_final_table(conn, table)


def _migration_4(conn: sqlite3.Connection):
    _create_final_table(conn, "UsersCategory")
    conn.execute(create_table_sql("Users", exclude=("address",)))
    conn.execute(server_key_index_sql("Users"))
    _create_final_table(conn, "Customers")
    conn.execute(create_table_sql("Suppliers", exclude=("userId",)))
    conn.execute(server_key_index_sql("Suppliers"))
    _create_final_table(conn, "Routes")


def _migration_5(conn: sqlite3.Connection):
    _add_column(conn, "Suppliers", "userId")
    _create_final_table(conn, "SalesMan")


def _migration_6(conn: sqlite3.Connection):
    # The early Product table only held data re-downloadable from the server.
    conn.execute("DROP TABLE IF EXISTS Product")
    _create_final_table(conn, "Product")


def _migration_7(conn: sqlite3.Connection):
    conn.execute(create_table_sql("Orders", exclude=("isProcessFinish",)))
    conn.execute(server_key_index_sql("Orders"))
    conn.execute(create_table_sql("OrderSub", exclude=("availQty", "narration"),
                                  overrides={"isCheckedflag": "TEXT DEFAULT '0' NOT NULL"}))
    conn.execute(server_key_index_sql("OrderSub"))


def _migration_8(conn: sqlite3.Connection):
    _create_final_table(conn, "ProductCar")


def _migration_9(conn: sqlite3.Connection):
    _create_final_table(conn, "ProductUnits")


def _migration_10(conn: sqlite3.Connection):
    conn.execute(create_table_sql("OrderSubSuggestions", exclude=("note",)))
    conn.execute(server_key_index_sql("OrderSubSuggestions"))
    conn.execute(create_table_sql("OutOfStockProducts",
                                  exclude=("oospMasterId", "narration", "UUID", "isViewed"),
                                  overrides={"oospFlag": "TEXT DEFAULT '0' NOT NULL"}))
    conn.execute(server_key_index_sql("OutOfStockProducts"))
    _add_column(conn, "OrderSub", "availQty")


def _migration_11(conn: sqlite3.Connection):
    _add_column(conn, "OrderSubSuggestions", "note")


_ORDER_SUB_V12_COLUMNS = [name for name, _ in TABLE_COLUMNS["OrderSub"] if name != "narration"]


def _migration_12(conn: sqlite3.Connection):
    # isCheckedflag narrowed from TEXT to INTEGER
    _rebuild_and_copy(conn, "OrderSub", _ORDER_SUB_V12_COLUMNS,
                      casts={"isCheckedflag": "CAST(isCheckedflag AS INTEGER)"},
                      exclude=("narration",))


_OOSP_V13_EXCLUDED = ("oospMasterId", "narration", "UUID", "isViewed")
_OOSP_V13_COLUMNS = [name for name, _ in TABLE_COLUMNS["OutOfStockProducts"] if name not in _OOSP_V13_EXCLUDED]


def _migration_13(conn: sqlite3.Connection):
    # oospFlag narrowed from TEXT to INTEGER
    _rebuild_and_copy(conn, "OutOfStockProducts", _OOSP_V13_COLUMNS,
                      casts={"oospFlag": "CAST(oospFlag AS INTEGER)"},
                      exclude=_OOSP_V13_EXCLUDED)


def _migration_14(conn: sqlite3.Connection):
    conn.execute(create_table_sql("OutOfStockMaster", exclude=("narration", "UUID", "isViewed")))
    conn.execute(server_key_index_sql("OutOfStockMaster"))


def _migration_15(conn: sqlite3.Connection):
    _add_column(conn, "OutOfStockProducts", "oospMasterId")
    conn.execute(_EXTRA_INDEXES["idx_OutOfStockProducts_master"])


def _migration_16(conn: sqlite3.Connection):
    _create_final_table(conn, "FailedSync")


def _migration_17(conn: sqlite3.Connection):
    _add_column(conn, "Orders", "isProcessFinish")


def _migration_18(conn: sqlite3.Connection):
    _add_column(conn, "Users", "address")


def _migration_19(conn: sqlite3.Connection):
    _add_column(conn, "OutOfStockMaster", "isViewed")
    _add_column(conn, "OutOfStockProducts", "isViewed")


def _migration_20(conn: sqlite3.Connection):
    _create_final_table(conn, "SyncTime")


def _migration_21(conn: sqlite3.Connection):
    _create_final_table(conn, "PackedSubs")
    _add_column(conn, "OrderSub", "narration")
    _add_column(conn, "OutOfStockProducts", "narration")
    _add_column(conn, "OutOfStockProducts", "UUID")
    _add_column(conn, "OutOfStockMaster", "narration")
    _add_column(conn, "OutOfStockMaster", "UUID")


def _migration_22(conn: sqlite3.Connection):
    _create_final_table(conn, "OrderSubEditCache")


MIGRATIONS: Dict[int, Callable[[sqlite3.Connection], None]] = {
    1: _migration_1,
    2: _migration_2,
    3: _migration_3,
    4: _migration_4,
    5: _migration_5,
    6: _migration_6,
    7: _migration_7,
    8: _migration_8,
    9: _migration_9,
    10: _migration_10,
    11: _migration_11,
    12: _migration_12,
    13: _migration_13,
    14: _migration_14,
    15: _migration_15,
    16: _migration_16,
    17: _migration_17,
    18: _migration_18,
    19: _migration_19,
    20: _migration_20,
    21: _migration_21,
    22: _migration_22,
}

#
# End of Schema_Migrations.py
########################################################################################################################
