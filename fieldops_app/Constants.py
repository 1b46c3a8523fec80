# Constants.py
# Description: Shared codes for user roles, syncable tables and wire sentinels
#
# Imports
from enum import IntEnum
#
# 3rd-Party Imports
#
# Local Imports
#
########################################################################################################################
#
# Functions:

# --- Sentinels ---
# Domain sentinel: "known absent / not assigned" (also the unassigned server key)
UNASSIGNED_ID = -1
# Wire sentinel: "field not present in this payload"
NOT_PRESENT_INT = -2

# --- Sync Defaults ---
SYNC_BATCH_LIMIT = 500
DEFAULT_API_TIMEOUT = 45.0


class UserType(IntEnum):
    """User categories as issued by the server (``cat_id`` on the user record)."""
    ADMIN = 1
    STOREKEEPER = 2
    SALESMAN = 3
    SUPPLIER = 4
    BILLER = 5
    CHECKER = 6
    DRIVER = 7


class TableId(IntEnum):
    """
    Numeric ids for syncable tables. Values match the server's notification ids
    so a FailedSync row can be replayed against the right endpoint.
    """
    PRODUCT = 1
    CAR_BRAND = 2
    CAR_NAME = 3
    CAR_MODEL = 4
    CAR_VERSION = 5
    CATEGORY = 6
    SUB_CATEGORY = 7
    ORDER = 8
    ORDER_SUB = 9
    ORDER_SUB_SUGGESTION = 10
    OUT_OF_STOCK = 11
    OUT_OF_STOCK_SUB = 12
    CUSTOMER = 13
    USER = 14
    SALESMAN = 15
    SUPPLIER = 16
    ROUTES = 17
    UNITS = 18
    PRODUCT_UNITS = 19
    PRODUCT_CAR = 20
    # 21 and 22 are notification-only ids on the server (store keeper update, logout)
    USER_CATEGORY = 23


# --- FailedSync operations ---
OP_DOWNLOAD = "download"
OP_UPLOAD = "upload"

#
# End of Constants.py
########################################################################################################################
