# Tests/conftest.py
# Shared fixtures for the FieldOps store, sync engine and workflow tests.
#
# Imports
#
# Third-Party Imports
import pytest
#
# Local Imports
from fieldops_app.Constants import UserType
from fieldops_app.DB.Failed_Sync import FailedOpTracker
from fieldops_app.DB.FieldOps_DB import FieldOpsDB
from fieldops_app.DB.Identity_Map import IdentityMap
from fieldops_app.DB.Packing_Ledger import PackingLedger
from fieldops_app.DB.Sync_Time import SyncTimeRepository
from fieldops_app.Sync.Sync_Engine import SyncEngine, UserContext
from fieldops_app.Workflow.Fulfillment_Workflow import FulfillmentWorkflow
from fieldops_app.api.client import FieldOpsAPIClient
#
########################################################################################################################
#
# Functions:

# --- Database Fixtures ---

@pytest.fixture(scope="function")
def temp_db_path(tmp_path):
    """Provides a path to a temporary database file for each test."""
    return tmp_path / "test_fieldops.sqlite"


@pytest.fixture(scope="function")
def file_db(temp_db_path):
    """Creates a file-based store at the current schema version."""
    db = FieldOpsDB(temp_db_path, client_id="file_client")
    yield db
    db.close_connection()


@pytest.fixture(scope="function")
def memory_db():
    """Creates an in-memory store at the current schema version."""
    db = FieldOpsDB(":memory:", client_id="memory_client")
    yield db
    db.close_connection()


@pytest.fixture
def identity_map(memory_db):
    return IdentityMap(memory_db)


@pytest.fixture
def tracker(memory_db):
    return FailedOpTracker(memory_db)


@pytest.fixture
def watermarks(memory_db):
    return SyncTimeRepository(memory_db)


@pytest.fixture
def ledger(memory_db):
    return PackingLedger(memory_db)


# --- Sync Fixtures ---

@pytest.fixture
def api_client():
    """A client that is never allowed to reach the network; tests patch its methods."""
    return FieldOpsAPIClient("http://fieldops.test", token="test-token")


@pytest.fixture
def sync_engine(memory_db, api_client):
    return SyncEngine(memory_db, api_client)


@pytest.fixture
def admin_user():
    return UserContext(user_id=1, user_type=UserType.ADMIN)


@pytest.fixture
def workflow(memory_db):
    return FulfillmentWorkflow(memory_db)

#
# End of Tests/conftest.py
########################################################################################################################
