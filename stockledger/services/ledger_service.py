"""Movement ledger: append-only writes and history reads.

The ledger never computes before/after snapshots itself. Callers derive them
while holding the record lock and hand them over; ``append`` only checks they
agree with the movement before persisting.
"""
from datetime import datetime

from sqlalchemy.orm import Session

from stockledger.models.inventory import InventoryRecord
from stockledger.models.stock_movement import StockMovement


def append(
    db: Session,
    record: InventoryRecord,
    movement_type: str,
    direction: int,
    quantity: int,
    quantity_before: int,
    quantity_after: int,
    created_by: str = "system",
    notes: str = "",
    reference_id: str | None = None,
    reference_type: str | None = None,
    unit_cost: float | None = None,
) -> StockMovement:
    if quantity <= 0:
        raise ValueError("Ledger quantity must be positive")
    if direction not in (1, -1):
        raise ValueError("Ledger direction must be 1 or -1")
    if quantity_after - quantity_before != direction * quantity:
        raise ValueError(
            f"Snapshot mismatch: {quantity_before} -> {quantity_after} does not match {direction * quantity:+d}"
        )
    if record.quantity != quantity_after:
        raise ValueError("Record quantity must be updated before its movement is appended")

    movement = StockMovement(
        inventory_record_id=record.id,
        product_id=record.product_id,
        location_id=record.location_id,
        movement_type=movement_type,
        direction=direction,
        quantity=quantity,
        quantity_before=quantity_before,
        quantity_after=quantity_after,
        unit_cost=unit_cost,
        record_version=record.version,
        reference_id=reference_id,
        reference_type=reference_type,
        notes=notes or "",
        created_by=created_by or "system",
    )
    db.add(movement)
    db.flush()
    return movement


def get_movement(db: Session, movement_id: str) -> StockMovement | None:
    return db.query(StockMovement).filter(StockMovement.id == movement_id).first()


def find_by_reference(
    db: Session,
    reference_type: str,
    reference_id: str,
    product_id: str | None = None,
    location_id: str | None = None,
    movement_types: list[str] | None = None,
) -> list[StockMovement]:
    q = db.query(StockMovement).filter(
        StockMovement.reference_type == reference_type,
        StockMovement.reference_id == reference_id,
    )
    if product_id:
        q = q.filter(StockMovement.product_id == product_id)
    if location_id:
        q = q.filter(StockMovement.location_id == location_id)
    if movement_types:
        q = q.filter(StockMovement.movement_type.in_(movement_types))
    return q.order_by(StockMovement.created_at.asc(), StockMovement.record_version.asc()).all()


def query_movements(
    db: Session,
    product_id: str | None = None,
    location_id: str | None = None,
    inventory_id: str | None = None,
    movement_types: list[str] | None = None,
    reference_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[StockMovement], int]:
    """Newest first. Returns one page plus the total match count."""
    q = db.query(StockMovement)
    if product_id:
        q = q.filter(StockMovement.product_id == product_id)
    if location_id:
        q = q.filter(StockMovement.location_id == location_id)
    if inventory_id:
        q = q.filter(StockMovement.inventory_record_id == inventory_id)
    if movement_types:
        q = q.filter(StockMovement.movement_type.in_([t.upper() for t in movement_types]))
    if reference_id:
        q = q.filter(StockMovement.reference_id == reference_id)
    if start_date:
        q = q.filter(StockMovement.created_at >= start_date)
    if end_date:
        q = q.filter(StockMovement.created_at <= end_date)

    total = q.count()
    movements = (
        q.order_by(StockMovement.created_at.desc(), StockMovement.record_version.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
    return movements, total


def movements_for_record(db: Session, record_id: str) -> list[StockMovement]:
    """A record's full history in commit order."""
    return (
        db.query(StockMovement)
        .filter(StockMovement.inventory_record_id == record_id)
        .order_by(StockMovement.record_version.asc())
        .all()
    )


def replay_quantity(db: Session, record_id: str) -> int:
    total = 0
    for movement in movements_for_record(db, record_id):
        total += movement.signed_quantity
    return total
