"""Task catalog: ERP endpoints bound to task descriptors"""

from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, Optional

from reportsync.connectors.erp import ErpConnector
from reportsync.core.exceptions import ValidationError
from reportsync.sync.models import DimensionKind, FetchContext, Granularity, Page, PersistenceMode
from reportsync.sync.tasks import ArchiveTarget, FetchPageFn, TaskDescriptor, TaskRegistry, TaskType
from reportsync.sync.window import period_label

# Endpoint-family success codes
STANDARD_CODES = (0, 200, "200")
BD_CODES = (0, 1, 200, "200")

# FBA cost stream business types (stock in / out / adjustments)
COST_STREAM_BUSINESS_TYPES = [
    1, 10, 11, 12, 13, 14, 20, 35, 25, 30, 31,
    200, 201, 202, 205, 220, 15, 215, 225, 226, 227,
    5, 210, 400, 420, 405,
]

BodyBuilder = Callable[[FetchContext], Dict[str, Any]]


def _sid(ctx: FetchContext) -> int:
    if ctx.dimension is None:
        raise ValidationError("sid is required for store-level endpoints")
    return int(ctx.dimension.attrs.get("sid", ctx.dimension.key))


def _day(d) -> str:
    return d.isoformat()


def _next_day(d) -> str:
    # Amazon source reports treat end_date as exclusive
    return (d + timedelta(days=1)).isoformat()


def post_fetch(
    connector: ErpConnector,
    path: str,
    build_body: BodyBuilder,
    success_codes: Iterable[Any] = STANDARD_CODES,
    offset_field: str = "offset",
    length_field: str = "length",
) -> FetchPageFn:
    """Paged POST endpoint: business params from build_body plus offset/length"""
    codes = tuple(success_codes)

    def fetch(ctx: FetchContext, offset: int, length: int) -> Page:
        body = {**build_body(ctx), offset_field: offset, length_field: length}
        envelope = connector.post(ctx.account, path, body, codes)
        return Page(connector.extract_records(envelope), connector.extract_total(envelope))

    return fetch


def get_fetch(
    connector: ErpConnector,
    path: str,
    success_codes: Iterable[Any] = STANDARD_CODES,
) -> FetchPageFn:
    """Unpaged GET endpoint: everything comes back on the first call"""
    codes = tuple(success_codes)

    def fetch(ctx: FetchContext, offset: int, length: int) -> Page:
        if offset > 0:
            return Page([], 0)
        envelope = connector.get(ctx.account, path, success_codes=codes)
        records = connector.extract_records(envelope)
        return Page(records, len(records))

    return fetch


def build_registry(connector: ErpConnector, settings, page_size: Optional[int] = None) -> TaskRegistry:
    """
    Build the registration table for every supported task type

    Args:
        connector: ERP connector shared by all fetch handlers
        settings: Application settings (table names, default page size)
        page_size: Override for endpoints documented at 1000 per page

    Returns:
        TaskRegistry with one descriptor per TaskType
    """
    size = page_size or settings.DEFAULT_PAGE_SIZE
    sellers_table = settings.SELLERS_TABLE

    descriptors = [
        # Amazon source reports
        TaskDescriptor(
            task_type=TaskType.ALL_ORDERS,
            description="Amazon all orders report",
            fetch_fn=post_fetch(connector, "/erp/sc/data/mws_report/allOrders", lambda ctx: {
                "sid": _sid(ctx),
                "date_type": 1,
                "start_date": _day(ctx.start),
                "end_date": _next_day(ctx.end),
            }),
            table="erp_all_orders",
            persistence_mode=PersistenceMode.OVERWRITE_BY_PERIOD,
            dimension_kind=DimensionKind.STORE,
            page_size=size,
        ),
        TaskDescriptor(
            task_type=TaskType.FBA_ORDERS,
            description="Amazon FBA orders report",
            fetch_fn=post_fetch(connector, "/erp/sc/data/mws_report/fbaOrders", lambda ctx: {
                "sid": _sid(ctx),
                "date_type": 1,
                "start_date": _day(ctx.start),
                "end_date": _next_day(ctx.end),
            }),
            table="erp_fba_orders",
            persistence_mode=PersistenceMode.OVERWRITE_BY_PERIOD,
            dimension_kind=DimensionKind.STORE,
            page_size=size,
        ),
        TaskDescriptor(
            task_type=TaskType.FBA_REFUND_ORDERS,
            description="Amazon FBA customer returns report",
            fetch_fn=post_fetch(connector, "/erp/sc/data/mws_report/refundOrders", lambda ctx: {
                "sid": _sid(ctx),
                "date_type": 1,
                "start_date": _day(ctx.start),
                "end_date": _next_day(ctx.end),
            }),
            table="erp_fba_refund_orders",
            max_span_days=31,
            dimension_kind=DimensionKind.STORE,
            key_fields=("order_id", "sku", "return_date", "license_plate_number"),
            page_size=size,
        ),
        TaskDescriptor(
            task_type=TaskType.TRANSACTION,
            description="Amazon transaction report",
            fetch_fn=post_fetch(connector, "/erp/sc/data/mws_report/transaction", lambda ctx: {
                "sid": _sid(ctx),
                "event_date": _day(ctx.start),
            }),
            table="erp_transactions",
            persistence_mode=PersistenceMode.OVERWRITE_BY_PERIOD,
            dimension_kind=DimensionKind.STORE,
            page_size=size,
        ),
        TaskDescriptor(
            task_type=TaskType.REMOVAL_SHIPMENT,
            description="Amazon removal shipments by seller",
            # Seller-level report: any sid of the seller returns all of its rows
            fetch_fn=post_fetch(connector, "/erp/sc/statistic/removalShipment/list", lambda ctx: {
                "seller_id": ctx.dimension.key,
                "start_date": _day(ctx.start),
                "end_date": _next_day(ctx.end),
            }),
            table="erp_removal_shipments",
            persistence_mode=PersistenceMode.OVERWRITE_BY_PERIOD,
            dimension_kind=DimensionKind.SELLER,
            page_size=size,
        ),
        # Statistics
        TaskDescriptor(
            task_type=TaskType.SALES_REPORT,
            description="ASIN daily sales report",
            fetch_fn=post_fetch(connector, "/erp/sc/data/sales_report/asinDailyLists", lambda ctx: {
                "sid": _sid(ctx),
                "event_date": _day(ctx.start),
                "asin_type": 1,
            }),
            table="erp_sales_report",
            persistence_mode=PersistenceMode.OVERWRITE_BY_PERIOD,
            dimension_kind=DimensionKind.STORE,
            page_size=size,
        ),
        TaskDescriptor(
            task_type=TaskType.RETURN_ORDER_ANALYSIS,
            description="Return order analysis",
            fetch_fn=post_fetch(connector, "/basicOpen/salesAnalysis/returnOrder/analysisLists", lambda ctx: {
                "startDate": _day(ctx.start),
                "endDate": _day(ctx.end),
            }),
            table="erp_return_order_analysis",
            max_span_days=366,
            persistence_mode=PersistenceMode.OVERWRITE_BY_PERIOD,
            page_size=20,
        ),
        TaskDescriptor(
            task_type=TaskType.FBA_STORAGE_FEE_MONTH,
            description="FBA monthly storage fee",
            fetch_fn=post_fetch(connector, "/erp/sc/data/fba_report/storageFeeMonth", lambda ctx: {
                "sid": _sid(ctx),
                "month": period_label(ctx.start, Granularity.MONTH),
            }),
            table="erp_fba_storage_fee_month",
            granularity=Granularity.MONTH,
            default_lookback=3,
            persistence_mode=PersistenceMode.OVERWRITE_BY_PERIOD,
            dimension_kind=DimensionKind.STORE,
            page_size=size,
        ),
        # Finance
        TaskDescriptor(
            task_type=TaskType.RECEIVABLE_REPORT,
            description="Monthly receivable report",
            fetch_fn=post_fetch(connector, "/bd/sp/api/open/monthly/receivable/report/list", lambda ctx: {
                "settleMonth": period_label(ctx.start, Granularity.MONTH),
                "sids": [_sid(ctx)],
                "currencyCode": ctx.dimension.attrs.get("currency") or ctx.dimension.attrs.get("currency_code"),
            }, success_codes=BD_CODES),
            table="erp_receivable_report",
            granularity=Granularity.MONTH,
            default_lookback=3,
            persistence_mode=PersistenceMode.OVERWRITE_BY_PERIOD,
            dimension_kind=DimensionKind.STORE_CURRENCY,
            page_size=20,
        ),
        TaskDescriptor(
            task_type=TaskType.FBA_COST_STREAM,
            description="FBA cost stream by shop",
            fetch_fn=post_fetch(connector, "/cost/center/api/cost/stream", lambda ctx: {
                "shop_names": [ctx.dimension.key],
                "business_types": COST_STREAM_BUSINESS_TYPES,
                "query_type": "01",
                "start_date": _day(ctx.start),
                "end_date": _day(ctx.end),
            }),
            table="erp_fba_cost_stream",
            persistence_mode=PersistenceMode.OVERWRITE_BY_PERIOD,
            dimension_kind=DimensionKind.SHOP,
            page_size=200,
        ),
        # Purchasing
        TaskDescriptor(
            task_type=TaskType.PURCHASE_ORDER,
            description="Purchase orders by update time",
            fetch_fn=post_fetch(connector, "/erp/sc/routing/data/local_inventory/purchaseOrderList", lambda ctx: {
                "start_date": _day(ctx.start),
                "end_date": _day(ctx.end),
                "search_field_time": "update_time",
            }),
            table="erp_purchase_orders",
            max_span_days=31,
            key_fields=("order_sn",),
            page_size=500,
        ),
        # Reference data
        TaskDescriptor(
            task_type=TaskType.SELLER_LISTS,
            description="Amazon store list",
            fetch_fn=get_fetch(connector, ErpConnector.SELLER_LIST_PATH),
            table=sellers_table,
            granularity=Granularity.NONE,
            persistence_mode=PersistenceMode.ARCHIVE_THEN_FULL_RESYNC,
            key_fields=("sid",),
            archive_targets=(ArchiveTarget(sellers_table),),
        ),
        TaskDescriptor(
            task_type=TaskType.MARKETPLACES,
            description="Amazon marketplaces",
            fetch_fn=get_fetch(connector, "/erp/sc/data/seller/allMarketplace"),
            table="erp_marketplaces",
            granularity=Granularity.NONE,
            persistence_mode=PersistenceMode.ARCHIVE_THEN_FULL_RESYNC,
            key_fields=("mid",),
            archive_targets=(ArchiveTarget("erp_marketplaces", account_scoped=False),),
            global_scope=True,
        ),
        TaskDescriptor(
            task_type=TaskType.SUPPLIERS,
            description="Suppliers",
            fetch_fn=post_fetch(connector, "/erp/sc/data/local_inventory/supplier", lambda ctx: {}),
            table="erp_suppliers",
            granularity=Granularity.NONE,
            persistence_mode=PersistenceMode.ARCHIVE_THEN_FULL_RESYNC,
            key_fields=("supplier_id",),
            archive_targets=(ArchiveTarget("erp_suppliers"),),
            page_size=size,
        ),
        TaskDescriptor(
            task_type=TaskType.WAREHOUSES,
            description="Warehouses",
            fetch_fn=post_fetch(connector, "/erp/sc/data/local_inventory/warehouse", lambda ctx: {}),
            table="erp_warehouses",
            granularity=Granularity.NONE,
            persistence_mode=PersistenceMode.ARCHIVE_THEN_FULL_RESYNC,
            key_fields=("wid",),
            archive_targets=(ArchiveTarget("erp_warehouses"),),
            page_size=size,
        ),
        TaskDescriptor(
            task_type=TaskType.LISTINGS,
            description="Amazon listings by store",
            fetch_fn=post_fetch(connector, "/erp/sc/data/mws/listing", lambda ctx: {
                "sid": str(_sid(ctx)),
            }),
            table="erp_listings",
            granularity=Granularity.NONE,
            persistence_mode=PersistenceMode.ARCHIVE_THEN_FULL_RESYNC,
            dimension_kind=DimensionKind.STORE,
            key_fields=("seller_sku",),
            archive_targets=(ArchiveTarget("erp_listings"),),
            page_size=min(size, 1000),
        ),
    ]

    return TaskRegistry(descriptors)
