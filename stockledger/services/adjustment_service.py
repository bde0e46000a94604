"""Single-location stock changes.

Every change locks the record, updates it and appends exactly one ledger
entry inside one transaction (see ``run_in_transaction``).
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from stockledger.config import settings
from stockledger.database import run_in_transaction
from stockledger.errors import Conflict, InsufficientStock, InvalidMovementType, InvalidQuantity, NotFound
from stockledger.models.inventory import InventoryRecord
from stockledger.models.stock_movement import (
    MOVEMENT_DIRECTIONS,
    RESTOCK_MOVEMENT_TYPES,
    SIGNED_MOVEMENT_TYPES,
    TRANSFER_MOVEMENT_TYPES,
    MovementType,
    StockMovement,
    normalize_movement_type,
)
from stockledger.services import inventory_service, ledger_service

logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_TYPE = "ADJUSTMENT"


class AdjustmentResult:
    """Outcome of one stock change; ``replayed`` marks an idempotent repeat."""

    def __init__(self, movement: StockMovement | None, inventory: InventoryRecord, replayed: bool = False):
        self.movement = movement
        self.inventory = inventory
        self.replayed = replayed


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def resolve_delta(movement_type: str, quantity: int) -> tuple[str, int]:
    """Validate a request and turn it into (normalized type, signed delta).

    Fixed-direction types take a positive quantity; ADJUSTMENT takes the
    signed correction as-is.
    """
    name = normalize_movement_type(movement_type)
    if not _is_int(quantity):
        raise InvalidQuantity("Quantity must be a whole number")
    if name in SIGNED_MOVEMENT_TYPES:
        if quantity == 0:
            raise InvalidQuantity("Adjustment quantity cannot be zero")
        return name, quantity
    if quantity <= 0:
        raise InvalidQuantity("Quantity must be greater than zero")
    return name, MOVEMENT_DIRECTIONS[name] * quantity


def moving_average_cost(quantity: int, average_cost: float, incoming: int, unit_cost: float) -> float:
    if quantity <= 0:
        return round(unit_cost, 4)
    total = quantity * average_cost + incoming * unit_cost
    return round(total / (quantity + incoming), 4)


def apply_movement(
    db: Session,
    record: InventoryRecord,
    movement_type: str,
    delta: int,
    created_by: str = "system",
    notes: str = "",
    reference_id: str | None = None,
    reference_type: str | None = None,
    unit_cost: float | None = None,
    allow_negative: bool | None = None,
) -> StockMovement:
    """Apply ``delta`` to a record the caller has already locked and log it.

    Flushes but never commits; the enclosing transaction decides.
    """
    if delta == 0:
        raise InvalidQuantity("Quantity change cannot be zero")
    if allow_negative is None:
        allow_negative = settings.ALLOW_NEGATIVE_STOCK

    before = record.quantity
    after = before + delta
    if not allow_negative:
        if after < 0:
            raise InsufficientStock(available=before, requested=-delta)
        # Issues (sale, damage, transfer out) may not consume reserved stock;
        # signed corrections only answer to on-hand quantity
        if delta < 0 and movement_type not in SIGNED_MOVEMENT_TYPES and record.available_quantity + delta < 0:
            raise InsufficientStock(available=record.available_quantity, requested=-delta)

    direction = 1 if delta > 0 else -1
    if direction > 0 and unit_cost is not None:
        record.average_cost = moving_average_cost(before, record.average_cost or 0.0, delta, unit_cost)
    record.quantity = after
    record.total_value = round(after * (record.average_cost or 0.0), 2)
    if direction > 0 and movement_type in RESTOCK_MOVEMENT_TYPES:
        record.last_restocked = _now()
    db.flush()

    return ledger_service.append(
        db,
        record,
        movement_type=movement_type,
        direction=direction,
        quantity=abs(delta),
        quantity_before=before,
        quantity_after=after,
        created_by=created_by,
        notes=notes,
        reference_id=reference_id,
        reference_type=reference_type,
        unit_cost=unit_cost,
    )


def _find_replay(
    db: Session,
    product_id: str,
    location_id: str,
    movement_type: str,
    delta: int,
    reference_type: str,
    reference_id: str,
) -> AdjustmentResult | None:
    existing = ledger_service.find_by_reference(
        db, reference_type, reference_id, product_id=product_id, location_id=location_id,
        movement_types=[movement_type],
    )
    if not existing:
        return None
    movement = existing[0]
    if movement.signed_quantity != delta:
        raise Conflict(f"Reference {reference_id} was already used with different parameters")
    record = inventory_service.find_record(db, product_id, location_id, include_deleted=True)
    return AdjustmentResult(movement=movement, inventory=record, replayed=True)


def adjust_stock(
    db: Session,
    product_id: str,
    location_id: str,
    quantity: int,
    movement_type: str,
    notes: str = "",
    reference_id: str | None = None,
    reference_type: str | None = None,
    unit_cost: float | None = None,
    allow_negative: bool | None = None,
    actor: str = "system",
) -> AdjustmentResult:
    name, delta = resolve_delta(movement_type, quantity)
    if name in TRANSFER_MOVEMENT_TYPES:
        raise InvalidMovementType("Transfer movements can only be created by a stock transfer")
    if unit_cost is not None and unit_cost < 0:
        raise InvalidQuantity("Unit cost cannot be negative")
    if reference_id and not reference_type:
        reference_type = DEFAULT_REFERENCE_TYPE

    def _adjust() -> AdjustmentResult:
        if reference_id:
            replay = _find_replay(db, product_id, location_id, name, delta, reference_type, reference_id)
            if replay:
                return replay
        record = inventory_service.find_record(db, product_id, location_id, for_update=True)
        if not record:
            raise NotFound(f"No inventory record for product {product_id} at location {location_id}")
        movement = apply_movement(
            db,
            record,
            name,
            delta,
            created_by=actor,
            notes=notes,
            reference_id=reference_id,
            reference_type=reference_type,
            unit_cost=unit_cost,
            allow_negative=allow_negative,
        )
        return AdjustmentResult(movement=movement, inventory=record)

    result = run_in_transaction(db, _adjust, label="stock adjustment")
    if result.replayed:
        logger.warning("Replayed adjustment for reference %s/%s", reference_type, reference_id)
    else:
        logger.info(
            "Adjusted stock product=%s location=%s type=%s delta=%+d -> %d",
            product_id, location_id, name, delta, result.movement.quantity_after,
        )
    return result


def adjust_stock_by_id(db: Session, inventory_id: str, quantity: int, movement_type: str, **kwargs) -> AdjustmentResult:
    record = inventory_service.get_inventory(db, inventory_id)
    return adjust_stock(db, record.product_id, record.location_id, quantity, movement_type, **kwargs)


def stock_check(
    db: Session,
    inventory_id: str,
    counted_quantity: int,
    notes: str = "",
    actor: str = "system",
) -> AdjustmentResult:
    """Book a physical count: the difference to the counted level becomes an ADJUSTMENT."""
    if not _is_int(counted_quantity) or counted_quantity < 0:
        raise InvalidQuantity("Counted quantity must be a non-negative whole number")

    def _check() -> AdjustmentResult:
        record = inventory_service.lock_record(db, inventory_id)
        before = record.quantity
        movement = None
        if counted_quantity != before:
            movement = apply_movement(
                db,
                record,
                MovementType.ADJUSTMENT.value,
                counted_quantity - before,
                created_by=actor,
                notes=notes or f"Stock count: {before} -> {counted_quantity}",
                reference_type="STOCK_CHECK",
                allow_negative=True,
            )
        record.last_stock_check = _now()
        db.flush()
        return AdjustmentResult(movement=movement, inventory=record)

    result = run_in_transaction(db, _check, label="stock check")
    logger.info("Stock check on %s: counted %d", inventory_id, counted_quantity)
    return result


def reserve_stock(db: Session, inventory_id: str, quantity: int) -> InventoryRecord:
    """Hold available stock for a pending sale. On-hand quantity is unchanged."""
    if not _is_int(quantity) or quantity <= 0:
        raise InvalidQuantity("Quantity must be greater than zero")

    def _reserve() -> InventoryRecord:
        record = inventory_service.lock_record(db, inventory_id)
        if record.available_quantity < quantity:
            raise InsufficientStock(available=record.available_quantity, requested=quantity)
        record.reserved_quantity += quantity
        db.flush()
        return record

    return run_in_transaction(db, _reserve, label="reserve stock")


def release_stock(db: Session, inventory_id: str, quantity: int) -> InventoryRecord:
    if not _is_int(quantity) or quantity <= 0:
        raise InvalidQuantity("Quantity must be greater than zero")

    def _release() -> InventoryRecord:
        record = inventory_service.lock_record(db, inventory_id)
        if quantity > record.reserved_quantity:
            raise InvalidQuantity(
                f"Cannot release {quantity}; only {record.reserved_quantity} reserved"
            )
        record.reserved_quantity -= quantity
        db.flush()
        return record

    return run_in_transaction(db, _release, label="release stock")
