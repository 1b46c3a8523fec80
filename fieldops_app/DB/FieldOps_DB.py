# FieldOps_DB.py
# Description: SQLite store for the FieldOps offline data layer.
#
"""
FieldOps_DB.py
--------------

The local store of the FieldOps client. It owns the database file, its
schema version (kept in `PRAGMA user_version`) and the migration chain that
brings an older store up to date.

This library provides:
- Thread-safe database connections using `threading.local`.
- Fresh schema creation, and a per-step migration chain (see `Schema_Migrations`)
  where every step runs in its own transaction and bumps the version inside it.
- Refusal to open a store written by a newer version of the code.
- A transaction context manager (optionally `BEGIN IMMEDIATE`) and a savepoint
  context manager for per-record rollback inside a larger transaction.
- Custom exceptions for database-specific errors, schema issues, input validation,
  and unique-key conflicts.

The library requires a `client_id` upon initialization, which identifies the
device in log output.
"""
# Imports
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
#
# Third-Party Libraries
#
# Local Imports
from fieldops_app.DB import Schema_Migrations
#
########################################################################################################################
#
# Functions:

logger = logging.getLogger(__name__)


# --- Custom Exceptions ---
class FieldOpsDBError(Exception):
    """Base exception for FieldOpsDB related errors."""
    pass


class SchemaError(FieldOpsDBError):
    """Exception for schema version mismatches or migration failures."""
    pass


class InputError(ValueError):
    """Custom exception for input validation errors."""
    pass


class ConflictError(FieldOpsDBError):
    """
    Indicates a unique constraint violation, typically two rows claiming the same server key.

    Attributes:
        entity (Optional[str]): The table involved in the conflict (e.g., "Customers").
        entity_id (Any): The key of the row involved.
    """

    def __init__(self, message="Conflict detected.", entity: Optional[str] = None, entity_id: Any = None):
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id

    def __str__(self):
        base = super().__str__()
        details = []
        if self.entity:
            details.append(f"Entity: {self.entity}")
        if self.entity_id is not None:
            details.append(f"ID: {self.entity_id}")
        return f"{base} ({', '.join(details)})" if details else base


# --- Database Class ---
class FieldOpsDB:
    _CURRENT_SCHEMA_VERSION = Schema_Migrations.CURRENT_SCHEMA_VERSION

    def __init__(self, db_path: Union[str, Path], client_id: str, target_version: Optional[int] = None):
        """
        Opens (creating or migrating as needed) the FieldOps store.

        Args:
            db_path: Path to the SQLite database file or ":memory:".
            client_id: Identifier of this device. Must not be empty.
            target_version: Schema version to bring the store to. Defaults to the
                            current version. A lower value is only useful for exercising
                            the migration chain.

        Raises:
            ValueError: If `client_id` is empty or the target version is out of range.
            SchemaError: If the stored version is newer than `target_version`, or a
                         migration step fails.
            FieldOpsDBError: If the directory cannot be created or initialization fails.
        """
        if isinstance(db_path, Path):
            self.is_memory_db = False
            self.db_path = db_path.resolve()
        else:
            self.is_memory_db = (db_path == ':memory:')
            self.db_path = Path(db_path).resolve() if not self.is_memory_db else Path(":memory:")
        self.db_path_str = str(self.db_path) if not self.is_memory_db else ':memory:'

        if not client_id:
            raise ValueError("Client ID cannot be empty or None.")
        self.client_id = client_id

        self.target_version = self._CURRENT_SCHEMA_VERSION if target_version is None else int(target_version)
        if not 1 <= self.target_version <= self._CURRENT_SCHEMA_VERSION:
            raise ValueError(f"target_version must be between 1 and {self._CURRENT_SCHEMA_VERSION}, "
                             f"got {self.target_version}")

        if not self.is_memory_db:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise FieldOpsDBError(f"Failed to create database directory {self.db_path.parent}: {e}")

        logger.info(f"Initializing FieldOpsDB for path: {self.db_path_str} [Client ID: {self.client_id}]")
        self._local = threading.local()
        try:
            self._initialize_schema()
            logger.debug(f"FieldOpsDB initialization completed successfully for {self.db_path_str}")
        except SchemaError:
            self.close_connection()
            raise
        except (FieldOpsDBError, sqlite3.Error) as e:
            logger.critical(f"FATAL: DB Initialization failed for {self.db_path_str}: {e}", exc_info=True)
            self.close_connection()
            raise FieldOpsDBError(f"Database initialization failed: {e}") from e

    # --- Connection Management ---
    def _get_thread_connection(self) -> sqlite3.Connection:
        """
        Retrieves or creates a thread-local SQLite connection.

        Reopens the connection if it was closed. Enables WAL mode for file-based
        databases and sets PRAGMA foreign_keys=ON.
        """
        conn = getattr(self._local, 'conn', None)
        if conn:
            try:
                conn.execute("SELECT 1")
            except (sqlite3.ProgrammingError, sqlite3.OperationalError):
                logger.warning(
                    f"Thread-local connection for {self.db_path_str} was closed or became unusable. Reopening.")
                try:
                    conn.close()
                except sqlite3.Error:
                    pass
                conn = None

        if not conn:
            try:
                conn = sqlite3.connect(
                    self.db_path_str,
                    check_same_thread=False,
                    timeout=15
                )
                conn.row_factory = sqlite3.Row
                if not self.is_memory_db:
                    conn.execute("PRAGMA journal_mode=WAL;")

                conn.execute("PRAGMA foreign_keys = ON;")
                self._local.conn = conn
                logger.debug(f"Opened SQLite connection to {self.db_path_str} for thread {threading.get_ident()}")
            except sqlite3.Error as e:
                logger.error(f"Failed to connect to database {self.db_path_str}: {e}", exc_info=True)
                self._local.conn = None
                raise FieldOpsDBError(f"Failed to connect to database '{self.db_path_str}': {e}") from e
        return self._local.conn

    def get_connection(self) -> sqlite3.Connection:
        """Returns the active sqlite3.Connection for the current thread."""
        return self._get_thread_connection()

    def close_connection(self):
        """
        Closes the current thread's database connection.

        An open transaction is rolled back first. For file databases in WAL mode a
        TRUNCATE checkpoint is attempted before closing.
        """
        conn = getattr(self._local, 'conn', None)
        if conn is not None:
            try:
                if conn.in_transaction:
                    logger.warning(
                        f"Connection to {self.db_path_str} is in an uncommitted transaction during close. Rolling back.")
                    try:
                        conn.rollback()
                    except sqlite3.Error as rb_err:
                        logger.error(f"Rollback attempt during close for {self.db_path_str} failed: {rb_err}")

                if not self.is_memory_db and not conn.in_transaction:
                    mode_row = conn.execute("PRAGMA journal_mode;").fetchone()
                    if mode_row and mode_row[0].lower() == 'wal':
                        try:
                            conn.execute("PRAGMA wal_checkpoint(TRUNCATE);")
                            logger.debug(f"WAL checkpoint TRUNCATE executed for {self.db_path_str}.")
                        except sqlite3.Error as cp_err:
                            logger.warning(f"WAL checkpoint failed for {self.db_path_str}: {cp_err}")
                conn.close()
                logger.debug(f"Closed connection for thread {threading.get_ident()} to {self.db_path_str}.")
            except sqlite3.Error as e:
                logger.warning(
                    f"Error during SQLite connection close/checkpoint for {self.db_path_str} on thread {threading.get_ident()}: {e}")
            finally:
                if hasattr(self._local, 'conn'):
                    self._local.conn = None

    # --- Query Execution ---
    def execute_query(self, query: str, params: Optional[Union[tuple, Dict[str, Any]]] = None, *, commit: bool = False,
                      script: bool = False) -> sqlite3.Cursor:
        """
        Executes a single SQL query or an entire SQL script.

        Args:
            query: The SQL query string or script.
            params: Optional parameters for the query (tuple or dict). Ignored for scripts.
            commit: If True, and not within a `with db.transaction():` block, commits after execution.
            script: If True, executes the query string with `executescript`.

        Returns:
            The sqlite3.Cursor object after execution.

        Raises:
            ConflictError: If a "unique constraint failed" IntegrityError occurs.
            FieldOpsDBError: For other SQLite errors.
        """
        conn = self.get_connection()
        try:
            cursor = conn.cursor()
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(f"Executing SQL (script={script}): {query[:300]}... Params: {str(params)[:200]}...")

            if script:
                cursor.executescript(query)
            else:
                cursor.execute(query, params or ())

            if commit and conn.in_transaction and not getattr(self._local, 'tx_depth', 0):
                conn.commit()
                logger.debug("Committed directly by execute_query.")
            return cursor
        except sqlite3.IntegrityError as e:
            logger.warning(f"Integrity constraint violation: {query[:300]}... Error: {e}")
            if "unique constraint failed" in str(e).lower():
                raise ConflictError(message=f"Unique constraint violation: {e}") from e
            raise FieldOpsDBError(f"Database constraint violation: {e}") from e
        except sqlite3.Error as e:
            logger.error(f"Query execution failed: {query[:300]}... Error: {e}", exc_info=True)
            raise FieldOpsDBError(f"Query execution failed: {e}") from e

    def execute_many(self, query: str, params_list: List[tuple], *, commit: bool = False) -> Optional[sqlite3.Cursor]:
        """
        Executes a parameterized SQL query once per parameter set.

        Returns None without executing when `params_list` is empty.
        """
        conn = self.get_connection()
        if not isinstance(params_list, list) or not params_list:
            logger.debug("execute_many called with empty or invalid params_list.")
            return None
        try:
            cursor = conn.cursor()
            logger.debug(f"Executing Many: {query[:150]}... with {len(params_list)} sets.")
            cursor.executemany(query, params_list)
            if commit and conn.in_transaction and not getattr(self._local, 'tx_depth', 0):
                conn.commit()
                logger.debug("Committed Many directly by execute_many.")
            return cursor
        except sqlite3.IntegrityError as e:
            logger.warning(f"Integrity constraint violation during batch: {query[:150]}... Error: {e}")
            if "unique constraint failed" in str(e).lower():
                raise ConflictError(message=f"Unique constraint violation during batch: {e}") from e
            raise FieldOpsDBError(f"Database constraint violation during batch: {e}") from e
        except sqlite3.Error as e:
            logger.error(f"Execute Many failed: {query[:150]}... Error: {e}", exc_info=True)
            raise FieldOpsDBError(f"Execute Many failed: {e}") from e

    def fetch_one(self, query: str, params: Optional[Union[tuple, Dict[str, Any]]] = None) -> Optional[Dict[str, Any]]:
        row = self.execute_query(query, params).fetchone()
        return dict(row) if row else None

    def fetch_all(self, query: str, params: Optional[Union[tuple, Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
        return [dict(row) for row in self.execute_query(query, params).fetchall()]

    # --- Transaction Context ---
    def transaction(self, immediate: bool = False) -> 'TransactionContextManager':
        """
        Returns a context manager for database transactions.

        Usage:
            with db.transaction(immediate=True) as conn:
                # re-read, validate, write
                ...

        Nested use joins the outer transaction; only the outermost block commits
        or rolls back. `immediate=True` takes the write lock up front with
        `BEGIN IMMEDIATE`, so read-then-write units on the same rows serialize.
        """
        return TransactionContextManager(self, immediate=immediate)

    def savepoint(self, name: str) -> 'SavepointContextManager':
        """
        Returns a context manager wrapping a SAVEPOINT.

        On an exception the work done since the savepoint is rolled back and the
        exception propagates; the enclosing transaction stays open.
        """
        return SavepointContextManager(self, name)

    # --- Schema Initialization and Migration ---
    def _get_db_version(self, conn: sqlite3.Connection) -> int:
        try:
            return int(conn.execute("PRAGMA user_version").fetchone()[0])
        except sqlite3.Error as e:
            logger.error(f"Could not determine database schema version: {e}", exc_info=True)
            raise SchemaError(f"Could not determine schema version: {e}") from e

    def get_db_version(self) -> int:
        return self._get_db_version(self.get_connection())

    @staticmethod
    def _set_db_version(conn: sqlite3.Connection, version: int):
        conn.execute(f"PRAGMA user_version = {int(version)}")

    def _apply_full_schema(self, conn: sqlite3.Connection):
        logger.info(f"Applying full schema version {self._CURRENT_SCHEMA_VERSION} to DB: {self.db_path_str}...")
        Schema_Migrations.create_full_schema(conn)
        self._set_db_version(conn, self._CURRENT_SCHEMA_VERSION)

    def _apply_migration(self, version: int):
        """Runs one migration step and bumps the version, all in a single transaction."""
        migration = Schema_Migrations.MIGRATIONS.get(version)
        if migration is None:
            raise SchemaError(f"No migration registered for version {version}.")
        try:
            with self.transaction() as conn:
                migration(conn)
                self._set_db_version(conn, version)
        except (sqlite3.Error, FieldOpsDBError) as e:
            logger.error(f"Migration to version {version} failed for {self.db_path_str}: {e}", exc_info=True)
            raise SchemaError(f"Migration to schema version {version} failed: {e}") from e
        logger.info(f"Migrated {self.db_path_str} to schema version {version}.")

    def _initialize_schema(self):
        """
        Creates or migrates the schema to `self.target_version`.

        - Stored version 0 and target current: the full schema is created in one transaction.
        - Stored version 0 and target lower: migrations 1..target are run.
        - Stored version lower than target: migrations stored+1..target are run, one transaction each.
        - Stored version newer than target: SchemaError, nothing is touched.
        """
        conn = self.get_connection()
        current_db_version = self._get_db_version(conn)
        target_version = self.target_version
        logger.info(f"Checking DB schema. Current version: {current_db_version}. Target: {target_version}")

        if current_db_version == target_version:
            logger.debug(f"Database schema is up to date (Version {target_version}).")
            return
        if current_db_version > target_version:
            raise SchemaError(
                f"Database schema version ({current_db_version}) is newer than supported by code ({target_version}). Aborting.")

        if current_db_version == 0 and target_version == self._CURRENT_SCHEMA_VERSION:
            try:
                with self.transaction() as tx_conn:
                    self._apply_full_schema(tx_conn)
            except (sqlite3.Error, FieldOpsDBError) as e:
                logger.error(f"Full schema creation failed for {self.db_path_str}: {e}", exc_info=True)
                raise SchemaError(f"DB schema V{self._CURRENT_SCHEMA_VERSION} setup failed: {e}") from e
        else:
            for version in range(current_db_version + 1, target_version + 1):
                self._apply_migration(version)

        final_version = self._get_db_version(conn)
        if final_version != target_version:
            raise SchemaError(
                f"Schema setup completed, but final DB version is {final_version}, expected {target_version}.")
        logger.info(f"Database schema successfully initialized/migrated to version {final_version}.")

    def get_schema_snapshot(self) -> Dict[str, Dict[str, Any]]:
        """
        Describes the current schema as plain data for comparison.

        Returns:
            Mapping of table name to {"columns": {name: (type, notnull, default, pk)},
            "indexes": {index name: sql}}. Column order is not part of the snapshot.
        """
        snapshot: Dict[str, Dict[str, Any]] = {}
        tables = self.fetch_all(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name")
        for table in tables:
            name = table['name']
            columns = {}
            for col in self.fetch_all(f"PRAGMA table_info('{name}')"):
                columns[col['name']] = (col['type'].upper(), col['notnull'], col['dflt_value'], col['pk'])
            indexes = {
                idx['name']: idx['sql']
                for idx in self.fetch_all(
                    "SELECT name, sql FROM sqlite_master WHERE type = 'index' AND tbl_name = ? AND sql IS NOT NULL",
                    (name,))
            }
            snapshot[name] = {"columns": columns, "indexes": indexes}
        return snapshot

    def list_tables(self) -> List[str]:
        return sorted(self.get_schema_snapshot().keys())


class TransactionContextManager:
    def __init__(self, db_instance: FieldOpsDB, immediate: bool = False):
        self.db = db_instance
        self.immediate = immediate
        self.conn: Optional[sqlite3.Connection] = None
        self.is_outermost_transaction = False

    def __enter__(self) -> sqlite3.Connection:
        self.conn = self.db.get_connection()
        if not self.conn.in_transaction:
            self.conn.execute("BEGIN IMMEDIATE" if self.immediate else "BEGIN")
            self.is_outermost_transaction = True
            logger.debug(f"Transaction started (outermost, immediate={self.immediate}) on thread {threading.get_ident()}.")
        else:
            logger.debug(f"Entering nested transaction block on thread {threading.get_ident()}.")
        self.db._local.tx_depth = getattr(self.db._local, 'tx_depth', 0) + 1
        return self.conn

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.db._local.tx_depth = max(getattr(self.db._local, 'tx_depth', 1) - 1, 0)
        if not self.conn:
            logger.error("Transaction context: Connection is None in __exit__.")
            return False

        if self.is_outermost_transaction:
            if exc_type:
                logger.error(
                    f"Transaction (outermost) failed, rolling back on thread {threading.get_ident()}: {exc_type.__name__} - {exc_val}")
                try:
                    self.conn.rollback()
                    logger.debug(f"Rollback successful on thread {threading.get_ident()}.")
                except sqlite3.Error as rb_err:
                    logger.critical(f"Rollback FAILED on thread {threading.get_ident()}: {rb_err}", exc_info=True)
            else:
                try:
                    self.conn.commit()
                    logger.debug(f"Transaction (outermost) committed successfully on thread {threading.get_ident()}.")
                except sqlite3.Error as commit_err:
                    logger.error(f"Commit FAILED on thread {threading.get_ident()}, attempting rollback: {commit_err}",
                                 exc_info=True)
                    try:
                        self.conn.rollback()
                    except sqlite3.Error as rb_err_after_commit_fail:
                        logger.critical(
                            f"Rollback after failed commit also FAILED on thread {threading.get_ident()}: {rb_err_after_commit_fail}",
                            exc_info=True)
                    raise FieldOpsDBError(f"Commit failed: {commit_err}") from commit_err
        elif exc_type:
            logger.debug(
                f"Exception in nested transaction block on thread {threading.get_ident()}: {exc_type.__name__}. Outermost transaction will handle rollback.")

        return False


class SavepointContextManager:
    def __init__(self, db_instance: FieldOpsDB, name: str):
        self.db = db_instance
        self.name = name
        self.conn: Optional[sqlite3.Connection] = None

    def __enter__(self) -> sqlite3.Connection:
        self.conn = self.db.get_connection()
        self.conn.execute(f"SAVEPOINT {self.name}")
        return self.conn

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.debug(f"Rolling back to savepoint {self.name}: {exc_type.__name__} - {exc_val}")
            try:
                self.conn.execute(f"ROLLBACK TO SAVEPOINT {self.name}")
                self.conn.execute(f"RELEASE SAVEPOINT {self.name}")
            except sqlite3.Error as rb_err:
                logger.critical(f"Rollback to savepoint {self.name} FAILED: {rb_err}", exc_info=True)
        else:
            self.conn.execute(f"RELEASE SAVEPOINT {self.name}")
        return False

#
# End of FieldOps_DB.py
########################################################################################################################
