import threading
import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.database import Base
from stockledger.errors import InvalidMovementType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MovementType(str, PyEnum):
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"
    RETURN = "RETURN"
    DAMAGED = "DAMAGED"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    # Audit types used by purchasing, sales and returns workflows
    PURCHASE = "PURCHASE"
    SALE = "SALE"
    ADJUSTMENT_IN = "ADJUSTMENT_IN"
    ADJUSTMENT_OUT = "ADJUSTMENT_OUT"
    RETURN_FROM_CUSTOMER = "RETURN_FROM_CUSTOMER"
    RETURN_TO_SUPPLIER = "RETURN_TO_SUPPLIER"
    FOUND = "FOUND"
    LOST = "LOST"
    RELEASE = "RELEASE"


# Fixed direction per type: +1 adds stock, -1 removes it. ADJUSTMENT is absent
# on purpose: its sign comes from the caller.
MOVEMENT_DIRECTIONS: dict[str, int] = {
    MovementType.IN.value: 1,
    MovementType.RETURN.value: 1,
    MovementType.TRANSFER_IN.value: 1,
    MovementType.PURCHASE.value: 1,
    MovementType.ADJUSTMENT_IN.value: 1,
    MovementType.RETURN_FROM_CUSTOMER.value: 1,
    MovementType.FOUND.value: 1,
    MovementType.RELEASE.value: 1,
    MovementType.OUT.value: -1,
    MovementType.DAMAGED.value: -1,
    MovementType.TRANSFER_OUT.value: -1,
    MovementType.SALE.value: -1,
    MovementType.ADJUSTMENT_OUT.value: -1,
    MovementType.RETURN_TO_SUPPLIER.value: -1,
    MovementType.LOST.value: -1,
}

SIGNED_MOVEMENT_TYPES = {MovementType.ADJUSTMENT.value}

# Types that count as a restock for last_restocked
RESTOCK_MOVEMENT_TYPES = {
    MovementType.IN.value,
    MovementType.PURCHASE.value,
    MovementType.TRANSFER_IN.value,
}

# Transfer legs are only written by the transfer coordinator
TRANSFER_MOVEMENT_TYPES = {MovementType.TRANSFER_IN.value, MovementType.TRANSFER_OUT.value}


_registry_lock = threading.Lock()


def register_movement_type(name: str, direction: int | None) -> None:
    """Add a movement type. ``direction`` None means the caller signs the quantity.

    Call at application startup, before requests are served. Writers are
    serialized, and each update adds the new entry before removing the old one,
    so a concurrent reader always finds the type in one of the two tables.
    """
    name = name.strip().upper()
    if direction not in (None, 1, -1):
        raise ValueError("direction must be 1, -1 or None")
    with _registry_lock:
        if direction is None:
            SIGNED_MOVEMENT_TYPES.add(name)
            MOVEMENT_DIRECTIONS.pop(name, None)
        else:
            MOVEMENT_DIRECTIONS[name] = direction
            SIGNED_MOVEMENT_TYPES.discard(name)


def normalize_movement_type(value: str) -> str:
    name = (value.value if isinstance(value, MovementType) else str(value or "")).strip().upper()
    if name not in MOVEMENT_DIRECTIONS and name not in SIGNED_MOVEMENT_TYPES:
        raise InvalidMovementType(f"Unknown movement type '{value}'")
    return name


class StockMovement(Base):
    """One immutable ledger entry. ``quantity`` is always positive; ``direction`` carries the sign."""

    __tablename__ = "stock_movements"
    __table_args__ = (
        UniqueConstraint("inventory_record_id", "record_version", name="ux_movement_record_version"),
        UniqueConstraint(
            "reference_type", "reference_id", "inventory_record_id", "movement_type",
            name="ux_movement_reference",
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    inventory_record_id: Mapped[str] = mapped_column(
        String, ForeignKey("inventory_records.id"), nullable=False, index=True
    )
    product_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    location_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    movement_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    direction: Mapped[int] = mapped_column(Integer, nullable=False)  # +1 in, -1 out
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_before: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_after: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost: Mapped[float | None] = mapped_column(Float, nullable=True)

    # InventoryRecord.version after this write; orders a record's history
    record_version: Mapped[int] = mapped_column(Integer, nullable=False)

    reference_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    reference_type: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str] = mapped_column(Text, default="")
    # Set in Python so stored values carry microseconds like bound filter values
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, index=True)
    created_by: Mapped[str] = mapped_column(String, default="system")

    @property
    def signed_quantity(self) -> int:
        return self.direction * self.quantity


@event.listens_for(StockMovement, "before_update")
def _reject_update(mapper, connection, target):
    raise RuntimeError(f"Stock movement {target.id} is append-only and cannot be updated")


@event.listens_for(StockMovement, "before_delete")
def _reject_delete(mapper, connection, target):
    raise RuntimeError(f"Stock movement {target.id} is append-only and cannot be deleted")
