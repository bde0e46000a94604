import logging
from datetime import datetime, timezone

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from stockledger.database import run_in_transaction
from stockledger.errors import AlreadyExists, Conflict, InvalidQuantity, NotFound
from stockledger.models.catalog import Product
from stockledger.models.inventory import InventoryRecord
from stockledger.models.stock_movement import MovementType
from stockledger.schemas.inventory import InventoryCreate, InventoryUpdate
from stockledger.services import catalog_service
from stockledger.services.stock_level import StockStatus, classify, status_expression

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "quantity": InventoryRecord.quantity,
    "product_code": Product.product_code,
    "name": Product.name,
    "created_at": InventoryRecord.created_at,
}


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# --- Lookups ---

def find_record(
    db: Session,
    product_id: str,
    location_id: str,
    include_deleted: bool = False,
    for_update: bool = False,
) -> InventoryRecord | None:
    q = db.query(InventoryRecord).filter(
        InventoryRecord.product_id == product_id,
        InventoryRecord.location_id == location_id,
    )
    if not include_deleted:
        q = q.filter(InventoryRecord.deleted_at.is_(None))
    if for_update:
        q = q.with_for_update(of=InventoryRecord).populate_existing()
    return q.first()


def get_record(db: Session, product_id: str, location_id: str) -> InventoryRecord:
    record = find_record(db, product_id, location_id)
    if not record:
        raise NotFound(f"No inventory record for product {product_id} at location {location_id}")
    return record


def get_inventory(db: Session, inventory_id: str) -> InventoryRecord:
    record = (
        db.query(InventoryRecord)
        .filter(InventoryRecord.id == inventory_id, InventoryRecord.deleted_at.is_(None))
        .first()
    )
    if not record:
        raise NotFound(f"Inventory record {inventory_id} not found")
    return record


def lock_record(db: Session, inventory_id: str) -> InventoryRecord:
    """Re-read a record under an exclusive row lock (SELECT ... FOR UPDATE)."""
    record = (
        db.query(InventoryRecord)
        .filter(InventoryRecord.id == inventory_id, InventoryRecord.deleted_at.is_(None))
        .with_for_update(of=InventoryRecord)
        .populate_existing()
        .first()
    )
    if not record:
        raise NotFound(f"Inventory record {inventory_id} not found")
    return record


def lock_records(db: Session, inventory_ids: list[str]) -> dict[str, InventoryRecord]:
    """Lock several records in ascending id order so concurrent callers cannot deadlock."""
    return {inventory_id: lock_record(db, inventory_id) for inventory_id in sorted(set(inventory_ids))}


# --- Store writes (no commit, no movements) ---

def upsert_initial(
    db: Session,
    product_id: str,
    location_id: str,
    min_stock_level: int | None = None,
    max_stock_level: int | None = None,
    warehouse_location: str = "",
    zone: str = "",
) -> InventoryRecord:
    """Create the zero-quantity record for a pair, reviving a soft-deleted one.

    Opening stock is booked afterwards as a ledger movement by the caller.
    """
    existing = find_record(db, product_id, location_id, include_deleted=True)
    if existing and not existing.is_deleted:
        raise AlreadyExists(f"Inventory for product {product_id} at location {location_id} already exists")

    if existing:
        existing.deleted_at = None
        existing.min_stock_level = min_stock_level
        existing.max_stock_level = max_stock_level
        existing.warehouse_location = warehouse_location or ""
        existing.zone = zone or ""
        db.flush()
        logger.info("Revived inventory record %s (product=%s, location=%s)", existing.id, product_id, location_id)
        return existing

    record = InventoryRecord(
        product_id=product_id,
        location_id=location_id,
        quantity=0,
        reserved_quantity=0,
        min_stock_level=min_stock_level,
        max_stock_level=max_stock_level,
        warehouse_location=warehouse_location or "",
        zone=zone or "",
    )
    db.add(record)
    db.flush()
    return record


def _validate_levels(min_stock_level: int | None, max_stock_level: int | None) -> None:
    if min_stock_level is not None and min_stock_level < 0:
        raise InvalidQuantity("min_stock_level cannot be negative")
    if max_stock_level is not None and max_stock_level < 0:
        raise InvalidQuantity("max_stock_level cannot be negative")
    if min_stock_level is not None and max_stock_level and min_stock_level > max_stock_level:
        raise InvalidQuantity("min_stock_level cannot exceed max_stock_level")


# --- Operations ---

def create_inventory(db: Session, data: InventoryCreate, actor: str = "system") -> InventoryRecord:
    from stockledger.services.adjustment_service import apply_movement

    if data.quantity < 0:
        raise InvalidQuantity("Initial quantity cannot be negative")
    _validate_levels(data.min_stock_level, data.max_stock_level)

    def _create() -> InventoryRecord:
        product = catalog_service.require_product(db, data.product_id)
        catalog_service.require_location(db, data.location_id)
        record = upsert_initial(
            db,
            data.product_id,
            data.location_id,
            min_stock_level=data.min_stock_level,
            max_stock_level=data.max_stock_level,
            warehouse_location=data.location,
            zone=data.zone,
        )
        if data.quantity > 0:
            apply_movement(
                db,
                record,
                MovementType.IN.value,
                data.quantity,
                created_by=actor,
                notes="Initial stock on inventory creation",
                reference_type="INITIAL_STOCK",
                # Opening stock is valued at the catalog cost unless one is given
                unit_cost=data.unit_cost if data.unit_cost is not None else (product.cost_price or None),
            )
        return record

    record = run_in_transaction(db, _create, label="create inventory")
    logger.info(
        "Created inventory %s (product=%s, location=%s, quantity=%d)",
        record.id, record.product_id, record.location_id, record.quantity,
    )
    return record


def update_inventory(db: Session, inventory_id: str, data: InventoryUpdate) -> InventoryRecord:
    """Update thresholds and placement. Quantity is never touched here."""
    update_data = data.model_dump(exclude_unset=True)
    if "location" in update_data:
        update_data["warehouse_location"] = update_data.pop("location") or ""
    if "zone" in update_data:
        update_data["zone"] = update_data["zone"] or ""

    def _update() -> InventoryRecord:
        record = lock_record(db, inventory_id)
        _validate_levels(
            update_data.get("min_stock_level", record.min_stock_level),
            update_data.get("max_stock_level", record.max_stock_level),
        )
        for field, value in update_data.items():
            setattr(record, field, value)
        db.flush()
        return record

    return run_in_transaction(db, _update, label="update inventory")


def delete_inventory(db: Session, inventory_id: str) -> None:
    """Soft delete. Refused while stock is on hand or reserved."""

    def _delete() -> None:
        record = lock_record(db, inventory_id)
        if record.quantity != 0 or record.reserved_quantity != 0:
            raise Conflict(
                f"Cannot delete inventory with stock on hand (quantity={record.quantity}, "
                f"reserved={record.reserved_quantity})"
            )
        record.deleted_at = _now()
        db.flush()

    run_in_transaction(db, _delete, label="delete inventory")
    logger.info("Deleted inventory record %s", inventory_id)


def _filtered_query(
    db: Session,
    location_id: str | None = None,
    product_id: str | None = None,
    category: str | None = None,
    status: StockStatus | None = None,
    low_stock: bool = False,
    search: str | None = None,
):
    status_col = status_expression(InventoryRecord, Product)
    q = (
        db.query(InventoryRecord)
        .outerjoin(Product, Product.id == InventoryRecord.product_id)
        .filter(InventoryRecord.deleted_at.is_(None))
    )
    if location_id:
        q = q.filter(InventoryRecord.location_id == location_id)
    if product_id:
        q = q.filter(InventoryRecord.product_id == product_id)
    if category:
        q = q.filter(Product.category == category)
    if status:
        q = q.filter(status_col == StockStatus(status).value)
    if low_stock:
        q = q.filter(status_col.in_([StockStatus.LOW_STOCK.value, StockStatus.OUT_OF_STOCK.value]))
    if search:
        term = f"%{search.strip().lower()}%"
        q = q.filter(
            or_(
                func.lower(Product.name).like(term),
                func.lower(Product.sku).like(term),
                func.lower(Product.product_code).like(term),
            )
        )
    return q


def list_inventory(
    db: Session,
    location_id: str | None = None,
    product_id: str | None = None,
    category: str | None = None,
    status: StockStatus | None = None,
    low_stock: bool = False,
    search: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[InventoryRecord], int]:
    q = _filtered_query(db, location_id, product_id, category, status, low_stock, search)
    total = q.count()

    column = SORT_COLUMNS.get(sort_by, InventoryRecord.created_at)
    ordering = column.asc() if sort_order == "asc" else column.desc()
    records = q.order_by(ordering, InventoryRecord.id.asc()).offset(skip).limit(limit).all()
    return records, total


def get_low_stock(db: Session, location_id: str | None = None) -> list[InventoryRecord]:
    q = _filtered_query(db, location_id=location_id, low_stock=True)
    return q.order_by(InventoryRecord.quantity.asc(), InventoryRecord.id.asc()).all()


def inventory_stats(db: Session, location_id: str | None = None) -> dict:
    records = _filtered_query(db, location_id=location_id).all()

    counts = {s.value: 0 for s in StockStatus}
    by_category: dict[str, int] = {}
    for r in records:
        counts[classify(r).value] += 1
        cat = (r.product.category if r.product else "") or "Uncategorized"
        by_category[cat] = by_category.get(cat, 0) + 1

    return {
        "total_items": len(records),
        "total_quantity": sum(r.quantity for r in records),
        "total_value": round(sum(r.total_value for r in records), 2),
        "in_stock_items": counts[StockStatus.IN_STOCK.value],
        "low_stock_items": counts[StockStatus.LOW_STOCK.value],
        "out_of_stock_items": counts[StockStatus.OUT_OF_STOCK.value],
        "overstocked_items": counts[StockStatus.OVERSTOCKED.value],
        "category_breakdown": by_category,
    }
