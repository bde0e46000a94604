"""Cross-location stock transfers.

A transfer is a TRANSFER_OUT at the source and a TRANSFER_IN at the
destination sharing one reference id (the transfer id). Both legs are written
in one database transaction, so readers see both or neither.
"""
import logging
import uuid
from datetime import datetime

from sqlalchemy import and_
from sqlalchemy.orm import Session, aliased

from stockledger.database import run_in_transaction
from stockledger.errors import Conflict, InsufficientStock, InvalidQuantity, NotFound, SameLocation
from stockledger.models.inventory import InventoryRecord
from stockledger.models.stock_movement import MovementType, StockMovement
from stockledger.services import catalog_service, inventory_service, ledger_service
from stockledger.services.adjustment_service import apply_movement

logger = logging.getLogger(__name__)

TRANSFER_REFERENCE_TYPE = "TRANSFER"


class TransferResult:
    def __init__(
        self,
        transfer_id: str,
        product_id: str,
        from_location_id: str,
        to_location_id: str,
        quantity: int,
        out_movement: StockMovement,
        in_movement: StockMovement,
        source: InventoryRecord | None = None,
        destination: InventoryRecord | None = None,
        replayed: bool = False,
    ):
        self.transfer_id = transfer_id
        self.product_id = product_id
        self.from_location_id = from_location_id
        self.to_location_id = to_location_id
        self.quantity = quantity
        self.out_movement = out_movement
        self.in_movement = in_movement
        self.source = source
        self.destination = destination
        self.replayed = replayed

    @property
    def notes(self) -> str:
        return self.out_movement.notes

    @property
    def created_at(self) -> datetime:
        return self.out_movement.created_at

    @property
    def created_by(self) -> str:
        return self.out_movement.created_by


def _debit_source(
    db: Session, source: InventoryRecord, quantity: int, transfer_id: str, notes: str, actor: str
) -> StockMovement:
    return apply_movement(
        db,
        source,
        MovementType.TRANSFER_OUT.value,
        -quantity,
        created_by=actor,
        notes=notes,
        reference_id=transfer_id,
        reference_type=TRANSFER_REFERENCE_TYPE,
        allow_negative=False,
    )


def _credit_destination(
    db: Session,
    destination: InventoryRecord,
    quantity: int,
    transfer_id: str,
    notes: str,
    actor: str,
    unit_cost: float | None,
) -> StockMovement:
    # Stock arrives at the cost it carried at the source
    return apply_movement(
        db,
        destination,
        MovementType.TRANSFER_IN.value,
        quantity,
        created_by=actor,
        notes=notes,
        reference_id=transfer_id,
        reference_type=TRANSFER_REFERENCE_TYPE,
        unit_cost=unit_cost,
    )


def _find_replay(
    db: Session, transfer_id: str, product_id: str, from_location_id: str, to_location_id: str, quantity: int
) -> TransferResult | None:
    legs = ledger_service.find_by_reference(db, TRANSFER_REFERENCE_TYPE, transfer_id)
    if not legs:
        return None
    out_leg = next((m for m in legs if m.movement_type == MovementType.TRANSFER_OUT.value), None)
    in_leg = next((m for m in legs if m.movement_type == MovementType.TRANSFER_IN.value), None)
    if out_leg is None or in_leg is None:
        # Both legs commit together; a lone leg means the id belongs to something else
        raise Conflict(f"Reference {transfer_id} does not identify a complete transfer")
    if (
        out_leg.product_id != product_id
        or out_leg.location_id != from_location_id
        or in_leg.location_id != to_location_id
        or out_leg.quantity != quantity
    ):
        raise Conflict(f"Transfer {transfer_id} was already recorded with different parameters")

    source = inventory_service.find_record(db, product_id, from_location_id, include_deleted=True)
    destination = inventory_service.find_record(db, product_id, to_location_id, include_deleted=True)
    return TransferResult(
        transfer_id=transfer_id,
        product_id=product_id,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        quantity=quantity,
        out_movement=out_leg,
        in_movement=in_leg,
        source=source,
        destination=destination,
        replayed=True,
    )


def _destination_record(db: Session, product_id: str, location_id: str) -> InventoryRecord:
    record = inventory_service.find_record(db, product_id, location_id)
    if record:
        return record
    return inventory_service.upsert_initial(db, product_id, location_id)


def transfer_stock(
    db: Session,
    product_id: str,
    from_location_id: str,
    to_location_id: str,
    quantity: int,
    notes: str = "",
    reference_id: str | None = None,
    actor: str = "system",
) -> TransferResult:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise InvalidQuantity("Transfer quantity must be greater than zero")
    if from_location_id == to_location_id:
        raise SameLocation("Source and destination locations must be different")

    # Fixed outside the transaction so retries reuse the same id
    transfer_id = reference_id or str(uuid.uuid4())

    def _transfer() -> TransferResult:
        if reference_id:
            replay = _find_replay(db, transfer_id, product_id, from_location_id, to_location_id, quantity)
            if replay:
                return replay

        catalog_service.require_location(db, from_location_id)
        catalog_service.require_location(db, to_location_id)
        catalog_service.require_product(db, product_id)

        source = inventory_service.find_record(db, product_id, from_location_id)
        if not source:
            raise NotFound(f"No inventory record for product {product_id} at location {from_location_id}")
        destination = _destination_record(db, product_id, to_location_id)

        locked = inventory_service.lock_records(db, [source.id, destination.id])
        source, destination = locked[source.id], locked[destination.id]

        if source.available_quantity < quantity:
            raise InsufficientStock(available=source.available_quantity, requested=quantity)

        unit_cost = source.average_cost if source.average_cost else None
        out_movement = _debit_source(db, source, quantity, transfer_id, notes, actor)
        in_movement = _credit_destination(db, destination, quantity, transfer_id, notes, actor, unit_cost)

        return TransferResult(
            transfer_id=transfer_id,
            product_id=product_id,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            quantity=quantity,
            out_movement=out_movement,
            in_movement=in_movement,
            source=source,
            destination=destination,
        )

    result = run_in_transaction(db, _transfer, label="stock transfer")
    if result.replayed:
        logger.warning("Replayed transfer %s", transfer_id)
    else:
        logger.info(
            "Transferred %d of product %s from %s to %s (transfer %s)",
            quantity, product_id, from_location_id, to_location_id, transfer_id,
        )
    return result


def _transfer_pairs(
    db: Session,
    product_id: str | None = None,
    from_location_id: str | None = None,
    to_location_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
):
    """Query of (TRANSFER_OUT, TRANSFER_IN) rows joined on the transfer id."""
    out_leg = aliased(StockMovement)
    in_leg = aliased(StockMovement)
    q = (
        db.query(out_leg, in_leg)
        .join(
            in_leg,
            and_(
                in_leg.reference_type == out_leg.reference_type,
                in_leg.reference_id == out_leg.reference_id,
                in_leg.movement_type == MovementType.TRANSFER_IN.value,
            ),
        )
        .filter(
            out_leg.reference_type == TRANSFER_REFERENCE_TYPE,
            out_leg.movement_type == MovementType.TRANSFER_OUT.value,
        )
    )
    if product_id:
        q = q.filter(out_leg.product_id == product_id)
    if from_location_id:
        q = q.filter(out_leg.location_id == from_location_id)
    if to_location_id:
        q = q.filter(in_leg.location_id == to_location_id)
    if start_date:
        q = q.filter(out_leg.created_at >= start_date)
    if end_date:
        q = q.filter(out_leg.created_at <= end_date)
    return q, out_leg


def list_transfers(
    db: Session,
    product_id: str | None = None,
    from_location_id: str | None = None,
    to_location_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    sort_order: str = "desc",
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[TransferResult], int]:
    """Transfer history, one item per transfer with both legs. Newest first by default."""
    q, out_leg = _transfer_pairs(db, product_id, from_location_id, to_location_id, start_date, end_date)
    total = q.count()

    ordering = out_leg.created_at.asc() if sort_order == "asc" else out_leg.created_at.desc()
    rows = q.order_by(ordering, out_leg.id.asc()).offset(skip).limit(limit).all()
    transfers = [
        TransferResult(
            transfer_id=out_movement.reference_id,
            product_id=out_movement.product_id,
            from_location_id=out_movement.location_id,
            to_location_id=in_movement.location_id,
            quantity=out_movement.quantity,
            out_movement=out_movement,
            in_movement=in_movement,
        )
        for out_movement, in_movement in rows
    ]
    return transfers, total


def transfer_stats(
    db: Session,
    product_id: str | None = None,
    from_location_id: str | None = None,
    to_location_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict:
    q, _ = _transfer_pairs(db, product_id, from_location_id, to_location_id, start_date, end_date)
    legs = [out_movement for out_movement, _ in q.all()]
    return {
        "total_transfers": len(legs),
        "total_items_transferred": sum(m.quantity for m in legs),
    }
