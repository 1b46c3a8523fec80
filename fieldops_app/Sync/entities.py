# entities.py
# Description: Catalogue of syncable entity kinds: table, endpoints and the JSON <-> column field map.
#
# Imports
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union
#
# 3rd-Party Imports
#
# Local Imports
from fieldops_app.Constants import TableId, UNASSIGNED_ID
from fieldops_app.DB.Schema_Migrations import column_defaults
#
########################################################################################################################
#
# Functions:


class FieldType(Enum):
    """Selects the merge rule applied to a column."""
    TEXT = "text"          # '' on the wire means absent
    INT = "int"            # -2 on the wire means absent, -1 is a real value
    REAL = "real"          # null means absent
    NULLABLE = "nullable"  # null means absent, stored column may hold NULL


@dataclass(frozen=True)
class FieldSpec:
    json_key: str
    column: str
    field_type: FieldType
    aliases: Tuple[str, ...] = ()

    @property
    def json_keys(self) -> Tuple[str, ...]:
        return (self.json_key,) + self.aliases


@dataclass(frozen=True)
class EntityKind:
    """
    One syncable entity type.

    `fields` always starts with the server key, mapped from the wire key ``id``.
    Upload endpoints are optional; kinds without them are download-only.
    """
    table: str
    table_id: TableId
    server_key: str
    download_endpoint: str
    fields: Tuple[FieldSpec, ...]
    add_endpoint: Optional[str] = None
    update_endpoint: Optional[str] = None

    @property
    def name(self) -> str:
        return self.table

    @property
    def columns(self) -> Tuple[str, ...]:
        return tuple(f.column for f in self.fields)

    def field_for_column(self, column: str) -> FieldSpec:
        for spec in self.fields:
            if spec.column == column:
                return spec
        raise KeyError(f"{self.table} has no synced column '{column}'")

    @property
    def uploadable(self) -> bool:
        return bool(self.add_endpoint or self.update_endpoint)


def _text(json_key: str, column: str, *aliases: str) -> FieldSpec:
    return FieldSpec(json_key, column, FieldType.TEXT, aliases)


def _int(json_key: str, column: str, *aliases: str) -> FieldSpec:
    return FieldSpec(json_key, column, FieldType.INT, aliases)


def _real(json_key: str, column: str) -> FieldSpec:
    return FieldSpec(json_key, column, FieldType.REAL)


def _nullable(json_key: str, column: str) -> FieldSpec:
    return FieldSpec(json_key, column, FieldType.NULLABLE)


def _kind(table: str, table_id: TableId, server_key: str, download_endpoint: str, *fields: FieldSpec,
          add_endpoint: Optional[str] = None, update_endpoint: Optional[str] = None) -> EntityKind:
    return EntityKind(
        table=table,
        table_id=table_id,
        server_key=server_key,
        download_endpoint=download_endpoint,
        fields=(_int("id", server_key),) + fields,
        add_endpoint=add_endpoint,
        update_endpoint=update_endpoint,
    )


_TIMESTAMPS = (_text("created_at", "createdDateTime"), _text("updated_at", "updatedDateTime"))

# --- Reference data ---
USERS_CATEGORY = _kind(
    "UsersCategory", TableId.USER_CATEGORY, "userCategoryId", "api/user_category/download",
    _text("name", "name"),
    _text("permission_json", "permissionJson"),
    _int("flag", "flag"),
)

UNITS = _kind(
    "Units", TableId.UNITS, "unitId", "api/units/download",
    _nullable("code", "code"),
    _nullable("name", "name"),
    _nullable("display_name", "displayName"),
    _nullable("type", "type"),
    _nullable("base_id", "baseId"),
    _nullable("base_qty", "baseQty"),
    _nullable("comment", "comment"),
    _nullable("flag", "flag"),
)

CATEGORY = _kind(
    "Category", TableId.CATEGORY, "categoryId", "api/category/download",
    _text("name", "name"),
    _text("remark", "remark"),
    _int("flag", "flag"),
)

SUB_CATEGORY = _kind(
    "SubCategory", TableId.SUB_CATEGORY, "subCategoryId", "api/sub_category/download",
    _int("cat_id", "parentId"),
    _text("name", "name"),
    _text("remark", "remark"),
    _int("flag", "flag"),
)

CAR_BRAND = _kind(
    "CarBrand", TableId.CAR_BRAND, "carBrandId", "api/cars/download_car_brands",
    _text("brand_name", "name"),
    _int("flag", "flag"),
)

CAR_NAME = _kind(
    "CarName", TableId.CAR_NAME, "carNameId", "api/cars/download_car_names",
    _int("car_brand_id", "carBrandId"),
    _text("car_name", "name"),
    _int("flag", "flag"),
)

CAR_MODEL = _kind(
    "CarModel", TableId.CAR_MODEL, "carModelId", "api/cars/download_car_models",
    _int("car_brand_id", "carBrandId"),
    _int("car_name_id", "carNameId"),
    _text("model_name", "name"),
    _int("flag", "flag"),
)

CAR_VERSION = _kind(
    "CarVersion", TableId.CAR_VERSION, "carVersionId", "api/cars/download_car_versions",
    _int("car_brand_id", "carBrandId"),
    _int("car_name_id", "carNameId"),
    _int("car_model_id", "carModelId"),
    _text("version_name", "name"),
    _int("flag", "flag"),
)

PRODUCT = _kind(
    "Product", TableId.PRODUCT, "productId", "api/products/download",
    _text("code", "code"),
    _text("barcode", "barcode"),
    _text("name", "name"),
    _text("sub_name", "subName"),
    _text("brand", "brand"),
    _text("sub_brand", "subBrand"),
    _int("category_id", "categoryId"),
    _int("sub_category_id", "subCategoryId"),
    _int("default_supp_id", "defaultSuppId"),
    _int("auto_sendto_supplier_flag", "autoSend"),
    _int("base_unit_id", "baseUnitId"),
    _int("default_unit_id", "defaultUnitId"),
    _text("photo", "photoUrl"),
    _real("price", "price"),
    _real("mrp", "mrp"),
    _real("retail_price", "retailPrice"),
    _real("fitting_charge", "fittingCharge"),
    _text("note", "note"),
    _int("flag", "flag"),
)

PRODUCT_UNITS = _kind(
    "ProductUnits", TableId.PRODUCT_UNITS, "productUnitId", "api/product_units/download",
    _int("prd_id", "productId"),
    _int("base_unit_id", "baseUnitId"),
    _int("derived_unit_id", "derivedUnitId"),
    _int("flag", "flag"),
)

PRODUCT_CAR = _kind(
    "ProductCar", TableId.PRODUCT_CAR, "productCarId", "api/product_cars/download",
    _int("product_id", "productId"),
    _int("car_brand_id", "carBrandId"),
    _int("car_name_id", "carNameId"),
    _int("car_model_id", "carModelId"),
    _int("car_version_id", "carVersionId"),
    _int("flag", "flag"),
)

# --- People ---
ROUTES = _kind(
    "Routes", TableId.ROUTES, "routeId", "api/routes/download",
    _text("code", "code"),
    _text("name", "name"),
    _int("salesman_id", "salesmanId"),
    _int("flag", "flag"),
    *_TIMESTAMPS,
    add_endpoint="api/route/add",
    update_endpoint="api/route/update",
)

USERS = _kind(
    "Users", TableId.USER, "userId", "api/users/download",
    _text("code", "code"),
    _text("name", "name"),
    _text("phone_no", "phone"),
    _text("address", "address"),
    _int("user_cat_id", "categoryId", "cat_id"),
    _int("flag", "flag"),
    *_TIMESTAMPS,
)

SALESMAN = _kind(
    "SalesMan", TableId.SALESMAN, "salesManId", "api/sales_man/download",
    _int("user_id", "userId"),
    _text("code", "code"),
    _text("name", "name"),
    _text("phone_no", "phone"),
    _text("address", "address"),
    _int("flag", "flag"),
    *_TIMESTAMPS,
)

SUPPLIERS = _kind(
    "Suppliers", TableId.SUPPLIER, "supplierId", "api/suppliers/download",
    _int("user_id", "userId"),
    _text("code", "code"),
    _text("name", "name"),
    _text("phone_no", "phone"),
    _text("address", "address"),
    _int("flag", "flag"),
    *_TIMESTAMPS,
)

CUSTOMERS = _kind(
    "Customers", TableId.CUSTOMER, "customerId", "api/customer/download",
    _text("code", "code"),
    _text("name", "name"),
    _text("phone_no", "phone"),
    _text("address", "address"),
    _int("rout_id", "routId"),
    _int("sales_man_id", "salesmanId"),
    _int("rating", "rating"),
    _int("flag", "flag"),
    *_TIMESTAMPS,
    add_endpoint="api/customer/add",
    update_endpoint="api/customer/update",
)

# --- Transactional data ---
ORDERS = _kind(
    "Orders", TableId.ORDER, "orderId", "api/orders/download_orders",
    _text("uuid", "UUID"),
    _text("order_inv_no", "invoiceNo"),
    _int("order_cust_id", "customerId"),
    _text("order_cust_name", "customerName"),
    _int("order_salesman_id", "salesmanId"),
    _int("order_stock_keeper_id", "storeKeeperId"),
    _int("order_biller_id", "billerId"),
    _int("order_checker_id", "checkerId"),
    _text("order_date_time", "dateAndTime"),
    _real("order_total", "total"),
    _real("order_freight_charge", "freightCharge"),
    _text("order_note", "note"),
    _int("order_approve_flag", "approveFlag"),
    _int("order_flag", "flag"),
    *_TIMESTAMPS,
)

ORDER_SUB = _kind(
    "OrderSub", TableId.ORDER_SUB, "orderSubId", "api/orders/download_order_sub",
    _text("order_sub_ordr_inv_id", "invoiceNo"),
    _int("order_sub_ordr_id", "orderId"),
    _int("order_sub_cust_id", "customerId"),
    _int("order_sub_salesman_id", "salesmanId"),
    _int("order_sub_stock_keeper_id", "storeKeeperId"),
    _text("order_sub_date_time", "dateAndTime"),
    _int("order_sub_prd_id", "productId"),
    _int("order_sub_unit_id", "unitId"),
    _int("order_sub_car_id", "carId"),
    _real("order_sub_rate", "rate"),
    _real("order_sub_update_rate", "updateRate"),
    _real("order_sub_qty", "quantity"),
    _real("order_sub_available_qty", "availQty"),
    _real("order_sub_unit_base_qty", "unitBaseQty"),
    _int("order_sub_is_checked_flag", "isCheckedflag"),
    _int("order_sub_ordr_flag", "orderFlag"),
    _text("order_sub_note", "note"),
    _text("order_sub_narration", "narration"),
    _int("order_sub_flag", "flag"),
    *_TIMESTAMPS,
)

ORDER_SUB_SUGGESTIONS = _kind(
    "OrderSubSuggestions", TableId.ORDER_SUB_SUGGESTION, "sugId", "api/orders/download_order_sub_suggestions",
    _int("order_sub_id", "orderSubId"),
    _int("prod_id", "productId"),
    _real("price", "price"),
    _text("note", "note"),
    _int("flag", "flag"),
)

OUT_OF_STOCK_MASTER = _kind(
    "OutOfStockMaster", TableId.OUT_OF_STOCK, "oospMasterId", "api/out_of_stock/download_out_of_stocks",
    _int("outos_order_sub_id", "orderSubId"),
    _int("outos_cust_id", "custId"),
    _int("outos_sales_man_id", "salesmanId"),
    _int("outos_stock_keeper_id", "storekeeperId"),
    _text("outos_date_and_time", "dateAndTime"),
    _int("outos_prod_id", "productId"),
    _int("outos_unit_id", "unitId"),
    _int("outos_car_id", "carId"),
    _real("outos_qty", "qty"),
    _real("outos_available_qty", "availQty"),
    _real("outos_unit_base_qty", "baseQty"),
    _text("outos_note", "note"),
    _text("outos_narration", "narration"),
    _int("outos_is_compleated_flag", "isCompleteflag"),
    _int("outos_flag", "flag"),
    _text("uuid", "UUID"),
    *_TIMESTAMPS,
    add_endpoint="api/out_of_stocks/add",
    update_endpoint="api/out_of_stock/update_compleated_flag",
)

OUT_OF_STOCK_PRODUCTS = _kind(
    "OutOfStockProducts", TableId.OUT_OF_STOCK_SUB, "oospId", "api/out_of_stock/download_out_of_stock_sub",
    _int("outos_sub_outos_id", "oospMasterId"),
    _int("outos_sub_order_sub_id", "orderSubId"),
    _int("outos_sub_cust_id", "custId"),
    _int("outos_sub_sales_man_id", "salesmanId"),
    _int("outos_sub_stock_keeper_id", "storekeeperId"),
    _text("outos_sub_date_and_time", "dateAndTime"),
    _int("outos_sub_supp_id", "supplierId"),
    _int("outos_sub_prod_id", "productId"),
    _int("outos_sub_unit_id", "unitId"),
    _int("outos_sub_car_id", "carId"),
    _real("outos_sub_rate", "rate"),
    _real("outos_sub_updated_rate", "updateRate"),
    _real("outos_sub_qty", "qty"),
    _real("outos_sub_available_qty", "availQty"),
    _real("outos_sub_unit_base_qty", "baseQty"),
    _int("outos_sub_status_flag", "oospFlag"),
    _int("outos_sub_is_checked_flag", "isCheckedflag"),
    _text("outos_sub_note", "note"),
    _text("outos_sub_narration", "narration"),
    _int("outos_sub_flag", "flag"),
    _text("uuid", "UUID"),
    *_TIMESTAMPS,
    update_endpoint="api/out_of_stock_sub/update",
)

# Dependency order of a full sync cycle: reference data before the rows that point at it.
SYNC_ORDER: Tuple[EntityKind, ...] = (
    USERS_CATEGORY, UNITS, CATEGORY, SUB_CATEGORY, CAR_BRAND, CAR_NAME, CAR_MODEL, CAR_VERSION,
    PRODUCT, PRODUCT_UNITS, PRODUCT_CAR, ROUTES, USERS, SALESMAN, SUPPLIERS, CUSTOMERS,
    ORDERS, ORDER_SUB, ORDER_SUB_SUGGESTIONS, OUT_OF_STOCK_MASTER, OUT_OF_STOCK_PRODUCTS,
)

KINDS_BY_TABLE: Dict[str, EntityKind] = {kind.table: kind for kind in SYNC_ORDER}
KINDS_BY_ID: Dict[int, EntityKind] = {int(kind.table_id): kind for kind in SYNC_ORDER}


def get_kind(key: Union[str, int, EntityKind]) -> EntityKind:
    """Looks a kind up by table name or numeric table id."""
    if isinstance(key, EntityKind):
        return key
    if isinstance(key, str):
        try:
            return KINDS_BY_TABLE[key]
        except KeyError:
            raise KeyError(f"Unknown entity kind '{key}'") from None
    try:
        return KINDS_BY_ID[int(key)]
    except KeyError:
        raise KeyError(f"Unknown table id {key}") from None


def new_record(kind: EntityKind) -> Dict[str, Any]:
    """
    A record as the table would store it with nothing but defaults filled in.
    Used as the "existing" side when a server record is seen for the first time.
    """
    defaults = column_defaults(kind.table)
    record = {column: defaults.get(column) for column in kind.columns}
    record[kind.server_key] = UNASSIGNED_ID
    return record

#
# End of entities.py
########################################################################################################################
